from datetime import datetime, timedelta, timezone

from app import db

RACE_STATUSES = ("upcoming", "completed", "cancelled")


class Race(db.Model):
    __tablename__ = "races"

    id = db.Column(db.Integer, primary_key=True)

    # Race identification
    season = db.Column(db.String(4), nullable=False)
    round = db.Column(db.Integer, nullable=False)
    race_name = db.Column(db.String(100), nullable=False)
    circuit_name = db.Column(db.String(100))
    country = db.Column(db.String(60))

    # Session times (UTC)
    race_start = db.Column(db.DateTime, nullable=False)
    qualifying_start = db.Column(db.DateTime)

    # Race status
    status = db.Column(db.String(20), nullable=False, default="upcoming")
    predictions_open = db.Column(db.Boolean, default=True)
    results_processed = db.Column(db.Boolean, default=False)

    # Head-to-head matchups; a matchup is configured only when both sides are set
    h2h_driver1_id = db.Column(db.String(50))
    h2h_driver2_id = db.Column(db.String(50))
    h2h_team1_id = db.Column(db.String(50))
    h2h_team2_id = db.Column(db.String(50))

    # Set while a worker is scoring this race
    scoring_claimed_at = db.Column(db.DateTime, nullable=True)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    result = db.relationship(
        "RaceResult",
        backref="race",
        uselist=False,
        cascade="all, delete-orphan",
    )
    predictions = db.relationship(
        "Prediction", backref="race", lazy="dynamic", cascade="all, delete-orphan"
    )

    __table_args__ = (
        db.UniqueConstraint("season", "round", name="unique_season_round"),
        db.Index("idx_race_start", "race_start"),
        db.Index("idx_race_status_processed", "status", "results_processed"),
    )

    def __repr__(self):
        return f"<Race {self.season} R{self.round} {self.race_name}>"

    @property
    def has_driver_head_to_head(self):
        return bool(self.h2h_driver1_id and self.h2h_driver2_id)

    @property
    def has_team_head_to_head(self):
        return bool(self.h2h_team1_id and self.h2h_team2_id)

    def has_started(self):
        """Check if the race start time has passed"""
        from app.utils.timezone_utils import ensure_utc, get_utc_time

        return ensure_utc(self.race_start) <= get_utc_time()

    def accepts_predictions(self):
        """Predictions can be submitted or edited until the race starts"""
        return (
            bool(self.predictions_open)
            and self.status == "upcoming"
            and not self.has_started()
        )

    def format_race_time_local(self, format_str="%a %d %b at %H:%M %Z"):
        """Format race start in the application's timezone"""
        from app.utils.timezone_utils import format_race_time

        return format_race_time(self.race_start, format_str)

    @staticmethod
    def get_races_awaiting_results(settle_hours=3):
        """Races that finished at least settle_hours ago and are not scored yet"""
        cutoff = datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(
            hours=settle_hours
        )
        return (
            Race.query.filter(
                Race.race_start <= cutoff,
                Race.status != "cancelled",
                Race.results_processed.is_(False),
            )
            .order_by(Race.race_start)
            .all()
        )

    def head_to_head_config(self):
        """Configured matchups for API responses"""
        return {
            "driver": (
                {"participant1": self.h2h_driver1_id, "participant2": self.h2h_driver2_id}
                if self.has_driver_head_to_head
                else None
            ),
            "team": (
                {"participant1": self.h2h_team1_id, "participant2": self.h2h_team2_id}
                if self.has_team_head_to_head
                else None
            ),
        }

    def to_dict(self):
        """Convert race to dictionary for API responses"""
        return {
            "id": self.id,
            "season": self.season,
            "round": self.round,
            "race_name": self.race_name,
            "circuit_name": self.circuit_name,
            "country": self.country,
            "race_start": self.race_start.isoformat() if self.race_start else None,
            "qualifying_start": (
                self.qualifying_start.isoformat() if self.qualifying_start else None
            ),
            "status": self.status,
            "predictions_open": self.accepts_predictions(),
            "results_processed": self.results_processed,
            "started": self.has_started(),
            "head_to_head": self.head_to_head_config(),
        }

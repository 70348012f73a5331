from datetime import datetime, timezone

from app import db
from app.utils.exceptions import MalformedPrediction


class Prediction(db.Model):
    __tablename__ = "predictions"

    id = db.Column(db.Integer, primary_key=True)

    # Prediction identification
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    race_id = db.Column(db.Integer, db.ForeignKey("races.id"), nullable=False)

    # Picks (driver / constructor ids)
    podium = db.Column(db.JSON, nullable=False, default=list)  # [P1, P2, P3]
    pole_position = db.Column(db.String(50))
    fastest_lap = db.Column(db.String(50))
    first_retirement = db.Column(db.String(50))

    driver_h2h_driver1 = db.Column(db.String(50))
    driver_h2h_driver2 = db.Column(db.String(50))
    driver_h2h_winner = db.Column(db.String(50))
    team_h2h_team1 = db.Column(db.String(50))
    team_h2h_team2 = db.Column(db.String(50))
    team_h2h_winner = db.Column(db.String(50))

    # Score; points and score_breakdown are always set or cleared together
    points = db.Column(db.Integer, nullable=True)  # None = not scored yet
    score_breakdown = db.Column(db.JSON, nullable=True)
    scored_at = db.Column(db.DateTime)

    # Timestamps
    submitted_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("user_id", "race_id", name="unique_user_race_prediction"),
        db.Index("idx_prediction_race", "race_id"),
        db.Index("idx_prediction_race_points", "race_id", "points"),
    )

    def __repr__(self):
        return f"<Prediction user_id={self.user_id} race_id={self.race_id} points={self.points}>"

    @property
    def is_scored(self):
        return self.points is not None

    @property
    def correct_count(self):
        """Number of breakdown entries, which is what correct_predictions counts"""
        return len(self.score_breakdown or [])

    def to_input(self):
        """Build the immutable PredictionInput the scoring engine works on.

        Raises:
            MalformedPrediction: the stored podium is not 3 driver ids.
        """
        from app.utils.scoring import HeadToHeadPick, PredictionInput, validate_podium

        try:
            podium = validate_podium(self.podium)
        except MalformedPrediction as e:
            raise MalformedPrediction(
                f"Prediction {self.id} has an invalid podium {self.podium!r}: {e}",
                prediction_id=self.id,
            ) from e

        return PredictionInput(
            podium=podium,
            pole_position=self.pole_position,
            fastest_lap=self.fastest_lap,
            first_retirement=self.first_retirement,
            driver_head_to_head=HeadToHeadPick(
                self.driver_h2h_driver1, self.driver_h2h_driver2, self.driver_h2h_winner
            ),
            team_head_to_head=HeadToHeadPick(
                self.team_h2h_team1, self.team_h2h_team2, self.team_h2h_winner
            ),
        )

    def apply_score(self, points, breakdown, scored_at=None):
        """Persist a score; breakdown is a list of {type, points, subject} dicts.

        scored_at carries over the time of an earlier identical score.
        """
        self.points = points
        self.score_breakdown = list(breakdown)
        self.scored_at = scored_at or datetime.now(timezone.utc)

    def clear_score(self):
        self.points = None
        self.score_breakdown = None
        self.scored_at = None

    def to_dict(self):
        """Convert prediction to dictionary for API responses"""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "race_id": self.race_id,
            "podium": list(self.podium or []),
            "pole_position": self.pole_position,
            "fastest_lap": self.fastest_lap,
            "first_retirement": self.first_retirement,
            "driver_head_to_head": {
                "driver1": self.driver_h2h_driver1,
                "driver2": self.driver_h2h_driver2,
                "winner": self.driver_h2h_winner,
            },
            "team_head_to_head": {
                "team1": self.team_h2h_team1,
                "team2": self.team_h2h_team2,
                "winner": self.team_h2h_winner,
            },
            "scored": self.is_scored,
            "points": self.points,
            "score_breakdown": self.score_breakdown,
            "scored_at": self.scored_at.isoformat() if self.scored_at else None,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
        }

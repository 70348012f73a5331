from datetime import datetime, timezone

from app import db
from app.utils.head_to_head import INCOMPLETE, FinishingRecord

HEAD_TO_HEAD_KINDS = ("driver", "team")


class RaceResult(db.Model):
    """Official outcome of one race, as used for scoring"""

    __tablename__ = "race_results"

    id = db.Column(db.Integer, primary_key=True)
    race_id = db.Column(
        db.Integer, db.ForeignKey("races.id"), nullable=False, unique=True
    )

    # Scored categories (driver ids)
    pole_position = db.Column(db.String(50))
    podium = db.Column(db.JSON, nullable=False, default=list)  # finishing order
    fastest_lap = db.Column(db.String(50))
    first_retirement = db.Column(db.String(50))

    processed_at = db.Column(db.DateTime)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    entries = db.relationship(
        "RaceEntry",
        backref="race_result",
        cascade="all, delete-orphan",
        order_by="RaceEntry.id",
    )
    head_to_heads = db.relationship(
        "HeadToHeadResult", backref="race_result", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<RaceResult race_id={self.race_id} podium={self.podium}>"

    def finishing_records(self):
        """Classification rows in the form the head-to-head resolver takes"""
        return [entry.to_record() for entry in self.entries]

    def get_head_to_head(self, kind):
        for h2h in self.head_to_heads:
            if h2h.kind == kind:
                return h2h
        return None

    def to_outcome(self):
        """Build the immutable RaceOutcome the scoring engine works on"""
        from app.utils.scoring import RaceOutcome

        driver_h2h = self.get_head_to_head("driver")
        team_h2h = self.get_head_to_head("team")

        return RaceOutcome(
            podium=tuple(self.podium or ()),
            pole_position=self.pole_position,
            fastest_lap=self.fastest_lap,
            first_retirement=self.first_retirement,
            driver_head_to_head=driver_h2h.to_outcome() if driver_h2h else None,
            team_head_to_head=team_h2h.to_outcome() if team_h2h else None,
        )

    def to_dict(self):
        """Convert result to dictionary for API responses"""
        return {
            "race_id": self.race_id,
            "pole_position": self.pole_position,
            "podium": list(self.podium or []),
            "fastest_lap": self.fastest_lap,
            "first_retirement": self.first_retirement,
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
            "head_to_head": {h2h.kind: h2h.to_dict() for h2h in self.head_to_heads},
            "classification": [
                entry.to_dict()
                for entry in sorted(
                    self.entries,
                    key=lambda e: (e.position is None, e.position or 0),
                )
            ],
        }


class RaceEntry(db.Model):
    __tablename__ = "race_entries"

    id = db.Column(db.Integer, primary_key=True)
    race_result_id = db.Column(
        db.Integer, db.ForeignKey("race_results.id"), nullable=False
    )

    # Driver and constructor
    driver_id = db.Column(db.String(50), nullable=False)
    code = db.Column(db.String(3))
    given_name = db.Column(db.String(50))
    family_name = db.Column(db.String(50))
    constructor_id = db.Column(db.String(50))
    constructor_name = db.Column(db.String(100))

    # Classification
    grid = db.Column(db.Integer)
    position = db.Column(db.Integer)  # None when not classified
    status = db.Column(db.String(50))  # "Finished", "Lapped", "+1 Lap", "Engine", ...
    points = db.Column(db.Float, default=0.0)
    laps = db.Column(db.Integer)
    fastest_lap_rank = db.Column(db.Integer)

    __table_args__ = (
        db.UniqueConstraint("race_result_id", "driver_id", name="unique_result_driver"),
        db.Index("idx_entry_constructor", "race_result_id", "constructor_id"),
    )

    def __repr__(self):
        return f"<RaceEntry {self.driver_id} P{self.position or '-'} {self.status}>"

    @property
    def full_name(self):
        names = [n for n in (self.given_name, self.family_name) if n]
        return " ".join(names) or self.driver_id

    def to_record(self):
        return FinishingRecord(
            driver_id=self.driver_id,
            constructor_id=self.constructor_id,
            position=self.position,
            status=self.status,
        )

    def to_dict(self):
        return {
            "driver_id": self.driver_id,
            "code": self.code,
            "name": self.full_name,
            "constructor_id": self.constructor_id,
            "constructor_name": self.constructor_name,
            "grid": self.grid,
            "position": self.position,
            "status": self.status,
            "points": self.points,
            "laps": self.laps,
            "fastest_lap_rank": self.fastest_lap_rank,
        }


class HeadToHeadResult(db.Model):
    """Stored resolution of one driver or team matchup.

    status is "resolved", "tie" (winner is None) or "incomplete". An incomplete
    row may still carry the winner of an earlier successful resolution.
    """

    __tablename__ = "head_to_head_results"

    id = db.Column(db.Integer, primary_key=True)
    race_result_id = db.Column(
        db.Integer, db.ForeignKey("race_results.id"), nullable=False
    )
    kind = db.Column(db.String(10), nullable=False)  # "driver" or "team"

    participant1_id = db.Column(db.String(50), nullable=False)
    participant2_id = db.Column(db.String(50), nullable=False)
    participant1_name = db.Column(db.String(100))
    participant2_name = db.Column(db.String(100))

    # Finishing position (driver) or average position (team)
    participant1_value = db.Column(db.Float)
    participant2_value = db.Column(db.Float)

    winner = db.Column(db.String(50))
    status = db.Column(db.String(20), nullable=False, default=INCOMPLETE)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("race_result_id", "kind", name="unique_result_h2h_kind"),
        db.CheckConstraint("kind IN ('driver', 'team')", name="valid_h2h_kind"),
    )

    def __repr__(self):
        return (
            f"<HeadToHeadResult {self.kind} {self.participant1_id} vs "
            f"{self.participant2_id} -> {self.winner or self.status}>"
        )

    def to_outcome(self):
        from app.utils.scoring import HeadToHeadOutcome

        return HeadToHeadOutcome(
            participant1=self.participant1_id,
            participant2=self.participant2_id,
            winner=self.winner,
            status=self.status,
        )

    def to_dict(self):
        return {
            "kind": self.kind,
            "participant1": {
                "id": self.participant1_id,
                "name": self.participant1_name,
                "value": self.participant1_value,
            },
            "participant2": {
                "id": self.participant2_id,
                "name": self.participant2_name,
                "value": self.participant2_value,
            },
            "winner": self.winner,
            "status": self.status,
        }

from datetime import datetime, timezone

from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash

from app import db


class User(UserMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False, index=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    display_name = db.Column(db.String(100))

    # Account status
    is_active = db.Column(db.Boolean, default=True)
    is_admin = db.Column(db.Boolean, default=False)  # Site-wide admin privileges

    # Running totals, always reproducible from scored predictions
    total_points = db.Column(db.Integer, nullable=False, default=0)
    correct_predictions = db.Column(db.Integer, nullable=False, default=0)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    predictions = db.relationship(
        "Prediction", backref="user", lazy="dynamic", cascade="all, delete-orphan"
    )

    __table_args__ = (
        db.Index("idx_user_total_points", "total_points"),
        db.Index("idx_user_created_at", "created_at"),
    )

    def __repr__(self):
        return f"<User {self.username}>"

    def set_password(self, password):
        """Set password hash"""
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        """Check password against hash"""
        return check_password_hash(self.password_hash, password)

    @property
    def full_name(self):
        """Return display name or username"""
        return self.display_name or self.username

    @staticmethod
    def get_leaderboard(limit=None):
        """Users ordered by total points, then correct predictions, with rank.

        Users with equal points and correct predictions share a rank.
        """
        query = User.query.filter(User.is_active.is_(True)).order_by(
            User.total_points.desc(),
            User.correct_predictions.desc(),
            User.username.asc(),
        )
        if limit:
            query = query.limit(limit)

        leaderboard = []
        previous_key = None
        rank = 0
        for index, user in enumerate(query.all(), start=1):
            key = (user.total_points, user.correct_predictions)
            if key != previous_key:
                rank = index
                previous_key = key
            leaderboard.append(
                {
                    "rank": rank,
                    "user_id": user.id,
                    "username": user.username,
                    "display_name": user.full_name,
                    "total_points": user.total_points,
                    "correct_predictions": user.correct_predictions,
                }
            )

        return leaderboard

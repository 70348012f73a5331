from app import db  # noqa: F401 - imported for model imports

from .prediction import Prediction
from .race import Race
from .race_result import HeadToHeadResult, RaceEntry, RaceResult
from .user import User

__all__ = [
    "User",
    "Race",
    "RaceResult",
    "RaceEntry",
    "HeadToHeadResult",
    "Prediction",
]

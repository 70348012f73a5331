"""
Scoring Engine for F1 Tipping

Scores one prediction against one race outcome. The engine is a pure
function of its inputs and the PointSchedule it was built with: no database
access, no logging, same output for the same input. Persisting the result and
updating user totals is done by app.services.score_service.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple

from app.utils.exceptions import MalformedPrediction
from app.utils.head_to_head import TIE

# Breakdown entry types, in evaluation order
POLE_POSITION = "POLE_POSITION"
WINNER = "WINNER"
SECOND_PLACE = "SECOND_PLACE"
THIRD_PLACE = "THIRD_PLACE"
PODIUM_DRIVER = "PODIUM_DRIVER"
ALL_PODIUM_CORRECT_ORDER = "ALL_PODIUM_CORRECT_ORDER"
ALL_PODIUM_WRONG_ORDER = "ALL_PODIUM_WRONG_ORDER"
FASTEST_LAP = "FASTEST_LAP"
FIRST_RETIREMENT = "FIRST_RETIREMENT"
DRIVER_H2H = "DRIVER_H2H"
TEAM_H2H = "TEAM_H2H"

OUTCOME_CATEGORIES = (
    POLE_POSITION,
    WINNER,
    SECOND_PLACE,
    THIRD_PLACE,
    PODIUM_DRIVER,
    ALL_PODIUM_CORRECT_ORDER,
    ALL_PODIUM_WRONG_ORDER,
    FASTEST_LAP,
    FIRST_RETIREMENT,
    DRIVER_H2H,
    TEAM_H2H,
)

PODIUM_SIZE = 3
ALL_PODIUM_CORRECT_LABEL = "All podium correct"
ALL_PODIUM_WRONG_ORDER_LABEL = "All podium wrong order"


@dataclass(frozen=True)
class HeadToHeadPick:
    participant1: Optional[str]
    participant2: Optional[str]
    winner: Optional[str]


@dataclass(frozen=True)
class PredictionInput:
    podium: Tuple[Optional[str], ...]
    pole_position: Optional[str] = None
    fastest_lap: Optional[str] = None
    first_retirement: Optional[str] = None
    driver_head_to_head: Optional[HeadToHeadPick] = None
    team_head_to_head: Optional[HeadToHeadPick] = None


@dataclass(frozen=True)
class HeadToHeadOutcome:
    participant1: Optional[str]
    participant2: Optional[str]
    winner: Optional[str]
    status: str


@dataclass(frozen=True)
class RaceOutcome:
    podium: Tuple[str, ...] = ()
    pole_position: Optional[str] = None
    fastest_lap: Optional[str] = None
    first_retirement: Optional[str] = None
    driver_head_to_head: Optional[HeadToHeadOutcome] = None
    team_head_to_head: Optional[HeadToHeadOutcome] = None


@dataclass(frozen=True)
class ScoreBreakdownEntry:
    type: str
    points: int
    subject: str

    def to_dict(self):
        return {"type": self.type, "points": self.points, "subject": self.subject}

    @classmethod
    def from_dict(cls, data):
        return cls(type=data["type"], points=int(data["points"]), subject=data["subject"])


@dataclass(frozen=True)
class ScoreResult:
    points: int
    breakdown: Tuple[ScoreBreakdownEntry, ...]
    # Why head-to-head categories awarded nothing: "tie" or "not available"
    diagnostics: Tuple[str, ...] = field(default=(), compare=False)

    @property
    def correct_predictions(self):
        return len(self.breakdown)

    def breakdown_as_dicts(self):
        return [entry.to_dict() for entry in self.breakdown]


def _matches(predicted, actual):
    # An absent prediction never scores, even against an absent outcome
    return bool(predicted) and predicted == actual


def validate_podium(podium):
    """Return the podium as a tuple of 3 driver ids (None for an empty slot).

    Raises:
        MalformedPrediction: not a sequence of exactly 3 strings or None.
    """
    if isinstance(podium, (str, bytes)) or not isinstance(podium, (list, tuple)):
        raise MalformedPrediction(
            f"Podium must be a sequence of {PODIUM_SIZE} drivers, got {type(podium).__name__}"
        )
    if len(podium) != PODIUM_SIZE:
        raise MalformedPrediction(
            f"Podium must have exactly {PODIUM_SIZE} drivers, got {len(podium)}"
        )
    for entry in podium:
        if entry is not None and not isinstance(entry, str):
            raise MalformedPrediction(
                f"Podium entries must be driver ids, got {type(entry).__name__}"
            )
    return tuple(podium)


class ScoringEngine:
    """Scores predictions with a fixed point schedule"""

    def __init__(self, schedule):
        self.schedule = schedule

    def score(self, prediction, outcome):
        """Score one prediction against a race outcome.

        Args:
            prediction: PredictionInput
            outcome: RaceOutcome

        Returns:
            ScoreResult with the total and an ordered, typed breakdown.

        Raises:
            MalformedPrediction: the predicted podium is not 3 entries long.
        """
        points = self.schedule
        predicted_podium = validate_podium(prediction.podium)
        actual_podium = tuple(outcome.podium or ())

        breakdown = []
        diagnostics = []

        if _matches(prediction.pole_position, outcome.pole_position):
            breakdown.append(
                ScoreBreakdownEntry(POLE_POSITION, points.pole_position, prediction.pole_position)
            )

        # Exact podium positions
        exact_matches = set()
        position_categories = (
            (WINNER, points.winner),
            (SECOND_PLACE, points.second_place),
            (THIRD_PLACE, points.third_place),
        )
        for index, (category, value) in enumerate(position_categories):
            predicted = predicted_podium[index]
            actual = actual_podium[index] if index < len(actual_podium) else None
            if _matches(predicted, actual):
                breakdown.append(ScoreBreakdownEntry(category, value, predicted))
                exact_matches.add(predicted)

        # Podium drivers in the wrong position, never credited twice
        credited = set(exact_matches)
        for predicted in predicted_podium:
            if not predicted or predicted in credited:
                continue
            if predicted in actual_podium:
                breakdown.append(
                    ScoreBreakdownEntry(PODIUM_DRIVER, points.podium_driver, predicted)
                )
                credited.add(predicted)

        # Bonuses: correct order and wrong order are mutually exclusive
        if (
            len(actual_podium) == PODIUM_SIZE
            and all(predicted_podium)
            and set(predicted_podium) == set(actual_podium)
        ):
            if len(exact_matches) == PODIUM_SIZE:
                breakdown.append(
                    ScoreBreakdownEntry(
                        ALL_PODIUM_CORRECT_ORDER,
                        points.all_podium_correct_order,
                        ALL_PODIUM_CORRECT_LABEL,
                    )
                )
            else:
                breakdown.append(
                    ScoreBreakdownEntry(
                        ALL_PODIUM_WRONG_ORDER,
                        points.all_podium_wrong_order,
                        ALL_PODIUM_WRONG_ORDER_LABEL,
                    )
                )

        if _matches(prediction.fastest_lap, outcome.fastest_lap):
            breakdown.append(
                ScoreBreakdownEntry(FASTEST_LAP, points.fastest_lap, prediction.fastest_lap)
            )

        if _matches(prediction.first_retirement, outcome.first_retirement):
            breakdown.append(
                ScoreBreakdownEntry(
                    FIRST_RETIREMENT, points.first_retirement, prediction.first_retirement
                )
            )

        for category, value, pick, result in (
            (
                DRIVER_H2H,
                points.driver_head_to_head,
                prediction.driver_head_to_head,
                outcome.driver_head_to_head,
            ),
            (
                TEAM_H2H,
                points.team_head_to_head,
                prediction.team_head_to_head,
                outcome.team_head_to_head,
            ),
        ):
            entry, note = self._score_head_to_head(category, value, pick, result)
            if entry:
                breakdown.append(entry)
            if note:
                diagnostics.append(note)

        total = sum(entry.points for entry in breakdown)
        return ScoreResult(total, tuple(breakdown), tuple(diagnostics))

    @staticmethod
    def _score_head_to_head(category, value, pick, result):
        predicted = pick.winner if pick else None

        # Only a known winner is scored; an incomplete matchup may still carry
        # the winner of an earlier resolution
        if result is None or not result.winner:
            if result is not None and result.status == TIE:
                return None, f"{category}: tie, no points awarded"
            note = f"{category}: result not available" if predicted else None
            return None, note

        if _matches(predicted, result.winner):
            return ScoreBreakdownEntry(category, value, predicted), None

        return None, None


def calculate_score(prediction, outcome, schedule):
    """Score a prediction with the given point schedule"""
    return ScoringEngine(schedule).score(prediction, outcome)


_SUMMARY_LABELS = {
    POLE_POSITION: "Pole Position",
    WINNER: "Race Winner (P1)",
    SECOND_PLACE: "Second Place (P2)",
    THIRD_PLACE: "Third Place (P3)",
    FASTEST_LAP: "Fastest Lap",
    FIRST_RETIREMENT: "First Retirement",
}


def _or_na(value):
    return value if value else "N/A"


def format_score_summary(username, prediction, outcome, points, breakdown):
    """Human-readable summary of one scored prediction, for display and audit.

    Args:
        username: owner of the prediction
        prediction: PredictionInput
        outcome: RaceOutcome
        points: total awarded
        breakdown: sequence of ScoreBreakdownEntry
    """
    lines = [f"===== SCORE SUMMARY FOR {username} =====", "", "PREDICTIONS vs RESULTS:"]

    lines.append(
        f"- Pole Position: {_or_na(prediction.pole_position)} "
        f"(Actual: {_or_na(outcome.pole_position)})"
    )
    lines.append(
        f"- Podium: {', '.join(_or_na(d) for d in prediction.podium)} "
        f"(Actual: {', '.join(outcome.podium) or 'N/A'})"
    )
    lines.append(
        f"- Fastest Lap: {_or_na(prediction.fastest_lap)} "
        f"(Actual: {_or_na(outcome.fastest_lap)})"
    )
    lines.append(
        f"- First Retirement: {_or_na(prediction.first_retirement)} "
        f"(Actual: {_or_na(outcome.first_retirement)})"
    )

    for label, pick, result in (
        ("Driver", prediction.driver_head_to_head, outcome.driver_head_to_head),
        ("Team", prediction.team_head_to_head, outcome.team_head_to_head),
    ):
        if not pick or not pick.winner or result is None:
            continue
        if result.winner:
            actual = result.winner
        elif result.status == TIE:
            actual = "Tie (no winner)"
        else:
            actual = "Not available"
        lines.append(
            f"- {label} Head-to-Head: {_or_na(result.participant1 or pick.participant1)} "
            f"vs {_or_na(result.participant2 or pick.participant2)}"
        )
        lines.append(f"  Predicted winner: {pick.winner}")
        lines.append(f"  Actual winner: {actual}")

    lines.extend(["", "POINTS EARNED:"])

    grouped = {}
    for entry in breakdown:
        grouped.setdefault(entry.type, []).append(entry)

    for category, entries in grouped.items():
        subtotal = sum(e.points for e in entries)
        if category in _SUMMARY_LABELS:
            lines.append(f"- {_SUMMARY_LABELS[category]}: {entries[0].subject} (+{subtotal} pts)")
        elif category == PODIUM_DRIVER:
            lines.append("- Correct podium drivers but wrong position:")
            lines.extend(f"  * {e.subject} (+{e.points} pt)" for e in entries)
        elif category == ALL_PODIUM_CORRECT_ORDER:
            lines.append(f"- BONUS: All 3 podium drivers in correct order (+{subtotal} pts)")
        elif category == ALL_PODIUM_WRONG_ORDER:
            lines.append(f"- BONUS: All 3 podium drivers but wrong order (+{subtotal} pts)")
        elif category == DRIVER_H2H:
            lines.append(
                f"- Driver Head-to-Head: Correctly predicted {entries[0].subject} (+{subtotal} pts)"
            )
        elif category == TEAM_H2H:
            lines.append(
                f"- Team Head-to-Head: Correctly predicted {entries[0].subject} (+{subtotal} pts)"
            )
        else:
            lines.append(
                f"- {category}: {', '.join(e.subject for e in entries)} (+{subtotal} pts)"
            )

    if not grouped:
        lines.append("- No points earned")

    lines.extend(["", f"TOTAL SCORE: {points} points"])
    return "\n".join(lines) + "\n"

"""
F1 Tipping Batch Scorer

Scores every prediction for a race against its stored outcome, persists the
points and breakdown on each prediction and keeps user totals in step.

A race is scored by one worker at a time. The worker claims the race by
setting races.scoring_claimed_at with a conditional UPDATE; claims older than
SCORING_CLAIM_TIMEOUT seconds are treated as abandoned and can be taken over.
User totals are only ever changed with `SET x = x + n` statements so that
concurrent batches for different races never lose each other's updates.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List

from flask import current_app
from sqlalchemy import or_, update

from app import db
from app.models import Prediction, Race, User
from app.utils.cache_utils import invalidate_model_cache
from app.utils.exceptions import MalformedPrediction, OutcomeNotFound, ScoringInProgress
from app.utils.point_system import get_point_schedule
from app.utils.scoring import ScoreBreakdownEntry, ScoringEngine, format_score_summary

logger = logging.getLogger(__name__)


@dataclass
class UserScore:
    user_id: int
    username: str
    score: int
    breakdown: list
    summary: str

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "username": self.username,
            "score": self.score,
            "breakdown": self.breakdown,
            "summary": self.summary,
        }


@dataclass
class ScoringReport:
    race_id: int
    processed_count: int = 0
    skipped: bool = False
    failed_count: int = 0
    results: List[UserScore] = field(default_factory=list)

    def to_dict(self):
        return {
            "race_id": self.race_id,
            "processed_count": self.processed_count,
            "skipped": self.skipped,
            "failed_count": self.failed_count,
            "results": [r.to_dict() for r in self.results],
        }


def _utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _claim_race(race_id):
    """Mark the race as being scored; raise ScoringInProgress if another worker holds it"""
    timeout = current_app.config.get("SCORING_CLAIM_TIMEOUT", 600)
    now = _utcnow()
    stale_before = now - timedelta(seconds=timeout)

    claimed = db.session.execute(
        update(Race)
        .where(
            Race.id == race_id,
            or_(
                Race.scoring_claimed_at.is_(None),
                Race.scoring_claimed_at < stale_before,
            ),
        )
        .values(scoring_claimed_at=now)
        .execution_options(synchronize_session=False)
    ).rowcount
    db.session.commit()

    if not claimed:
        raise ScoringInProgress(race_id)

    logger.debug(f"Claimed race {race_id} for scoring")


def _release_claim(race_id):
    try:
        db.session.execute(
            update(Race)
            .where(Race.id == race_id)
            .values(scoring_claimed_at=None)
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to release scoring claim for race {race_id}: {e}", exc_info=True)


def _increment_user_totals(user_id, points, correct):
    """Atomically add to (or, with negative values, subtract from) a user's totals"""
    db.session.execute(
        update(User)
        .where(User.id == user_id)
        .values(
            total_points=User.total_points + points,
            correct_predictions=User.correct_predictions + correct,
        )
        .execution_options(synchronize_session=False)
    )


def _reset_race_scores(race):
    """Take back every stored score for the race and clear it.

    Returns {prediction_id: (points, breakdown, scored_at)} of the cleared scores.
    """
    scored = race.predictions.filter(Prediction.points.isnot(None)).all()

    previous = {}
    for prediction in scored:
        previous[prediction.id] = (
            prediction.points,
            prediction.score_breakdown,
            prediction.scored_at,
        )
        _increment_user_totals(
            prediction.user_id, -prediction.points, -prediction.correct_count
        )
        prediction.clear_score()

    db.session.flush()
    logger.info(f"Cleared {len(scored)} existing scores for race {race.id}")
    return previous


def _score_predictions(race, report, schedule, previous=None):
    engine = ScoringEngine(schedule)
    outcome = race.result.to_outcome()
    previous = previous or {}

    predictions = race.predictions.order_by(Prediction.id).all()
    logger.info(f"Scoring {len(predictions)} predictions for {race.race_name}")

    for prediction in predictions:
        username = prediction.user.username if prediction.user else str(prediction.user_id)
        try:
            prediction_input = prediction.to_input()
            result = engine.score(prediction_input, outcome)
            summary = format_score_summary(
                username, prediction_input, outcome, result.points, result.breakdown
            )
        except MalformedPrediction as e:
            report.failed_count += 1
            logger.warning(
                f"Skipping prediction {prediction.id} (user {prediction.user_id}) "
                f"for race {race.id}: {e}"
            )
            continue

        breakdown = result.breakdown_as_dicts()

        # An unchanged re-score keeps its original timestamp
        scored_at = None
        earlier = previous.get(prediction.id)
        if earlier and earlier[:2] == (result.points, breakdown):
            scored_at = earlier[2]

        prediction.apply_score(result.points, breakdown, scored_at)
        _increment_user_totals(
            prediction.user_id, result.points, result.correct_predictions
        )

        for note in result.diagnostics:
            logger.debug(f"Prediction {prediction.id}: {note}")

        report.results.append(
            UserScore(
                user_id=prediction.user_id,
                username=username,
                score=result.points,
                breakdown=breakdown,
                summary=summary,
            )
        )
        report.processed_count += 1


def process_race_scores(race_id, force=False, schedule=None):
    """Score all predictions for a race.

    Args:
        race_id: Race primary key
        force: re-score even if predictions already carry scores
        schedule: PointSchedule to use instead of the configured one

    Returns:
        ScoringReport

    Raises:
        OutcomeNotFound: the race or its result does not exist
        ScoringInProgress: another worker is scoring this race
    """
    race = db.session.get(Race, race_id)
    if race is None or race.result is None:
        raise OutcomeNotFound(race_id)

    _claim_race(race_id)

    report = ScoringReport(race_id=race_id)
    try:
        # Reload after the claim commit expired the instance
        race = db.session.get(Race, race_id)

        already_scored = race.predictions.filter(Prediction.points.isnot(None)).count()
        if already_scored and not force:
            report.skipped = True
            report.processed_count = already_scored
            logger.info(
                f"Race {race_id} already has {already_scored} scored predictions, skipping"
            )
            return report

        previous = _reset_race_scores(race) if already_scored else None

        _score_predictions(race, report, schedule or get_point_schedule(), previous)

        race.results_processed = True
        race.predictions_open = False
        race.status = "completed"
        race.result.processed_at = _utcnow()
        db.session.commit()

    except Exception:
        db.session.rollback()
        logger.error(f"Scoring failed for race {race_id}", exc_info=True)
        raise
    finally:
        _release_claim(race_id)

    invalidate_model_cache("Prediction")
    invalidate_model_cache("User")

    logger.info(
        f"Race {race_id} scored: {report.processed_count} processed, "
        f"{report.failed_count} failed"
    )
    return report


def recompute_user_totals():
    """Rebuild every user's total_points and correct_predictions from stored scores.

    Returns the number of users whose totals changed.
    """
    totals = {}
    scored = Prediction.query.filter(Prediction.points.isnot(None)).all()
    for prediction in scored:
        points, correct = totals.get(prediction.user_id, (0, 0))
        totals[prediction.user_id] = (
            points + prediction.points,
            correct + prediction.correct_count,
        )

    changed = 0
    try:
        for user in User.query.all():
            points, correct = totals.get(user.id, (0, 0))
            if user.total_points != points or user.correct_predictions != correct:
                logger.info(
                    f"Correcting totals for {user.username}: "
                    f"{user.total_points} -> {points} points, "
                    f"{user.correct_predictions} -> {correct} correct"
                )
                user.total_points = points
                user.correct_predictions = correct
                changed += 1

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    invalidate_model_cache("User")
    logger.info(f"Recomputed totals for all users, {changed} corrected")
    return changed


def get_race_scores(race_id):
    """Stored scores for a race with a rendered summary per user, best first"""
    race = db.session.get(Race, race_id)
    if race is None or race.result is None:
        raise OutcomeNotFound(race_id)

    outcome = race.result.to_outcome()
    scores = []

    predictions = (
        race.predictions.filter(Prediction.points.isnot(None))
        .order_by(Prediction.points.desc(), Prediction.id)
        .all()
    )
    for prediction in predictions:
        breakdown = [ScoreBreakdownEntry.from_dict(e) for e in prediction.score_breakdown]
        try:
            prediction_input = prediction.to_input()
        except MalformedPrediction:
            summary = None
        else:
            summary = format_score_summary(
                prediction.user.username,
                prediction_input,
                outcome,
                prediction.points,
                breakdown,
            )

        score = UserScore(
            user_id=prediction.user_id,
            username=prediction.user.username,
            score=prediction.points,
            breakdown=prediction.score_breakdown,
            summary=summary,
        ).to_dict()
        score["prediction"] = prediction.to_dict()
        scores.append(score)

    return scores

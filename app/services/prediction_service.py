"""
Prediction submission: one prediction per user and race, editable until the
race closes for predictions.
"""

import logging

from sqlalchemy.exc import IntegrityError

from app import db
from app.models import Prediction
from app.utils.exceptions import MalformedPrediction, PredictionsClosed
from app.utils.scoring import validate_podium

logger = logging.getLogger(__name__)

SINGLE_PICK_FIELDS = ("pole_position", "fastest_lap", "first_retirement")


def _optional_id(data, key):
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise MalformedPrediction(f"{key} must be a driver id, got {type(value).__name__}")
    return value or None


def _head_to_head_pick(data, key, participants):
    """Validate a head-to-head winner pick against the race's configured matchup"""
    winner = _optional_id(data, key)
    if winner is None:
        return None
    if not all(participants):
        raise MalformedPrediction(f"{key}: no matchup is configured for this race")
    if winner not in participants:
        raise MalformedPrediction(f"{key} must be one of {', '.join(participants)}")
    return winner


def submit_prediction(user, race, data):
    """Create or replace the user's prediction for a race.

    Args:
        user: User submitting
        race: Race the prediction is for
        data: mapping with "podium" (3 driver ids), optional "pole_position",
            "fastest_lap", "first_retirement", "driver_h2h_winner" and
            "team_h2h_winner"

    Returns:
        (Prediction, created)

    Raises:
        PredictionsClosed: the race no longer accepts predictions
        MalformedPrediction: the submitted picks are invalid
    """
    if not race.accepts_predictions():
        raise PredictionsClosed(race.id)

    if not isinstance(data, dict):
        raise MalformedPrediction("Prediction must be a JSON object")

    podium = list(validate_podium(data.get("podium")))
    picks = {field: _optional_id(data, field) for field in SINGLE_PICK_FIELDS}

    driver_pair = (race.h2h_driver1_id, race.h2h_driver2_id)
    team_pair = (race.h2h_team1_id, race.h2h_team2_id)
    driver_winner = _head_to_head_pick(data, "driver_h2h_winner", driver_pair)
    team_winner = _head_to_head_pick(data, "team_h2h_winner", team_pair)

    prediction = Prediction.query.filter_by(user_id=user.id, race_id=race.id).first()
    created = prediction is None
    if created:
        prediction = Prediction(user_id=user.id, race_id=race.id)
        db.session.add(prediction)

    prediction.podium = podium
    for field, value in picks.items():
        setattr(prediction, field, value)

    # Matchup participants are stored alongside the pick
    prediction.driver_h2h_driver1, prediction.driver_h2h_driver2 = (
        driver_pair if driver_winner else (None, None)
    )
    prediction.driver_h2h_winner = driver_winner
    prediction.team_h2h_team1, prediction.team_h2h_team2 = (
        team_pair if team_winner else (None, None)
    )
    prediction.team_h2h_winner = team_winner

    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        # A concurrent first submission won the unique (user, race) slot
        raise MalformedPrediction(
            f"A prediction for race {race.id} was already submitted, resubmit to update it"
        ) from e

    logger.info(
        f"User {user.username} {'submitted' if created else 'updated'} "
        f"prediction for race {race.id}"
    )
    return prediction, created

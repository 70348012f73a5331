"""Shared fixtures, factories and a sample race classification."""

from datetime import datetime, timedelta, timezone

import pytest

from app import create_app, db
from app.models import Prediction, Race, User
from app.utils.results_sync import (
    derive_fastest_lap,
    derive_first_retirement,
    derive_podium,
)

# (driver_id, constructor_id, position, status, fastest_lap_rank)
SAMPLE_CLASSIFICATION = [
    ("max_verstappen", "red_bull", 1, "Finished", 3),
    ("norris", "mclaren", 2, "Finished", 1),
    ("leclerc", "ferrari", 3, "Finished", 2),
    ("piastri", "mclaren", 4, "Finished", 4),
    ("hamilton", "ferrari", 5, "Finished", 5),
    ("perez", "red_bull", 6, "+1 Lap", 6),
    ("alonso", "aston_martin", 7, "Lapped", 7),
    ("stroll", "aston_martin", 8, "Engine", 8),
    ("sainz", "williams", 9, "Collision", None),
    ("albon", "williams", 10, "Disqualified", None),
]

SAMPLE_PODIUM = ["max_verstappen", "norris", "leclerc"]
SAMPLE_POLE = "leclerc"


def make_entries(classification=None):
    """Entry dicts in the shape ResultsSync.fetch_race_results returns"""
    entries = []
    for driver_id, constructor_id, position, status, fl_rank in (
        classification or SAMPLE_CLASSIFICATION
    ):
        entries.append(
            {
                "driver_id": driver_id,
                "code": driver_id[:3].upper(),
                "given_name": None,
                "family_name": driver_id.replace("_", " ").title(),
                "constructor_id": constructor_id,
                "constructor_name": constructor_id.replace("_", " ").title(),
                "grid": position,
                "position": position,
                "status": status,
                "points": 0.0,
                "laps": 57,
                "fastest_lap_rank": fl_rank,
            }
        )
    return entries


def make_payload(classification=None, pole_position=SAMPLE_POLE):
    entries = make_entries(classification)
    return {
        "results": entries,
        "podium": derive_podium(entries),
        "pole_position": pole_position,
        "fastest_lap": derive_fastest_lap(entries),
        "first_retirement": derive_first_retirement(entries),
    }


@pytest.fixture
def app():
    app = create_app("testing")
    ctx = app.app_context()
    ctx.push()

    yield app

    db.session.remove()
    db.drop_all()
    ctx.pop()


@pytest.fixture
def session(app):
    return db.session


@pytest.fixture
def make_user(session):
    def _make_user(username="alice", is_admin=False, **kwargs):
        user = User(
            username=username,
            email=f"{username}@example.com",
            is_admin=is_admin,
            **kwargs,
        )
        user.set_password("password")
        session.add(user)
        session.commit()
        return user

    return _make_user


@pytest.fixture
def make_race(session):
    def _make_race(round_number=1, hours_ago=5, **kwargs):
        start = datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(hours=hours_ago)
        defaults = {
            "season": "2024",
            "round": round_number,
            "race_name": f"Grand Prix {round_number}",
            "circuit_name": "Test Circuit",
            "country": "Testland",
            "race_start": start,
            "qualifying_start": start - timedelta(days=1),
            "h2h_driver1_id": "hamilton",
            "h2h_driver2_id": "stroll",
            "h2h_team1_id": "mclaren",
            "h2h_team2_id": "ferrari",
        }
        defaults.update(kwargs)
        race = Race(**defaults)
        session.add(race)
        session.commit()
        return race

    return _make_race


@pytest.fixture
def make_prediction(session):
    def _make_prediction(user, race, podium=None, **kwargs):
        prediction = Prediction(
            user_id=user.id,
            race_id=race.id,
            podium=list(SAMPLE_PODIUM) if podium is None else podium,
            **kwargs,
        )
        session.add(prediction)
        session.commit()
        return prediction

    return _make_prediction


@pytest.fixture
def race_with_result(make_race):
    """A race with the sample classification stored and matchups resolved"""
    from app.services.results_service import store_race_outcome

    race = make_race()
    store_race_outcome(race, make_payload())
    return race

"""Tests for the management CLI."""

import importlib
from datetime import datetime

import pytest
from click.testing import CliRunner

from app import db
from app.models import Race, User
from app.services.results_service import store_race_outcome
from tests.conftest import make_payload


@pytest.fixture
def manage(monkeypatch):
    monkeypatch.setenv("FLASK_CONFIG", "testing")
    module = importlib.import_module("manage")

    with module.app.app_context():
        db.create_all()
        yield module
        db.session.remove()
        db.drop_all()


@pytest.fixture
def runner():
    return CliRunner()


def _add_race(round_number=1):
    race = Race(
        season="2024",
        round=round_number,
        race_name="Bahrain Grand Prix",
        race_start=datetime(2024, 3, 2, 15, 0),
        h2h_driver1_id="hamilton",
        h2h_driver2_id="stroll",
    )
    db.session.add(race)
    db.session.commit()
    return race


class TestUserCommands:
    def test_create_admin(self, manage, runner) -> None:
        result = runner.invoke(
            manage.cli, ["user", "create-admin", "root", "root@example.com", "secret"]
        )

        assert result.exit_code == 0
        assert "Created admin user 'root'" in result.output
        user = User.query.filter_by(username="root").one()
        assert user.is_admin
        assert user.check_password("secret")

    def test_duplicate_admin(self, manage, runner) -> None:
        args = ["user", "create-admin", "root", "root@example.com", "secret"]
        runner.invoke(manage.cli, args)
        result = runner.invoke(manage.cli, args)

        assert "already exists" in result.output
        assert User.query.count() == 1


class TestRaceCommands:
    def test_set_head_to_head(self, manage, runner) -> None:
        race = _add_race()

        result = runner.invoke(
            manage.cli,
            ["race", "set-h2h", str(race.id), "--teams", "mclaren", "ferrari"],
        )

        assert result.exit_code == 0
        race = db.session.get(Race, race.id)
        assert (race.h2h_team1_id, race.h2h_team2_id) == ("mclaren", "ferrari")
        assert race.h2h_driver1_id == "hamilton"

    def test_unknown_race(self, manage, runner) -> None:
        result = runner.invoke(manage.cli, ["race", "set-h2h", "42", "--drivers", "a", "b"])
        assert "Race 42 not found" in result.output

    def test_list(self, manage, runner) -> None:
        _add_race()
        result = runner.invoke(manage.cli, ["race", "list", "--season", "2024"])
        assert "2024 R1 Bahrain Grand Prix" in result.output


class TestScoreCommands:
    def test_process(self, manage, runner) -> None:
        race = _add_race()
        store_race_outcome(race, make_payload())

        result = runner.invoke(manage.cli, ["score", "process", str(race.id)])

        assert result.exit_code == 0
        assert f"Scored 0 predictions for race {race.id}" in result.output
        assert db.session.get(Race, race.id).results_processed

    def test_process_without_results(self, manage, runner) -> None:
        race = _add_race()
        result = runner.invoke(manage.cli, ["score", "process", str(race.id)])
        assert f"No race outcome recorded for race {race.id}" in result.output

    def test_resolve(self, manage, runner) -> None:
        race = _add_race()
        store_race_outcome(race, make_payload())

        result = runner.invoke(manage.cli, ["results", "resolve", str(race.id)])

        assert "driver: hamilton vs stroll -> hamilton" in result.output


class TestStatus:
    def test_status(self, manage, runner) -> None:
        _add_race()

        result = runner.invoke(manage.cli, ["status"])

        assert "Database: Connected" in result.output
        assert "Races: 0/1 scored" in result.output
        assert "Awaiting results: Bahrain Grand Prix" in result.output

"""Tests for head-to-head resolution and the point schedule."""

import pytest

from app.utils.head_to_head import (
    INCOMPLETE,
    RESOLVED,
    TIE,
    FinishingRecord,
    driver_finishing_position,
    is_running_at_finish,
    resolve_driver_matchup,
    resolve_team_matchup,
    round_half_up,
    team_average_position,
)
from app.utils.point_system import DEFAULT_POINT_SCHEDULE, PointSchedule, get_point_schedule


def record(driver_id, constructor_id, position, status="Finished"):
    return FinishingRecord(driver_id, constructor_id, position, status)


class TestRunningStatus:
    @pytest.mark.parametrize("status", ["Finished", "Lapped", "+1 Lap", "+3 Laps"])
    def test_running(self, status) -> None:
        assert is_running_at_finish(status)

    @pytest.mark.parametrize("status", ["Engine", "Collision", "Disqualified", "Retired", "", None])
    def test_not_running(self, status) -> None:
        assert not is_running_at_finish(status)

    def test_retired_driver_has_no_finishing_position(self) -> None:
        records = [record("stroll", "aston_martin", 8, "Engine")]
        assert driver_finishing_position(records, "stroll") is None


class TestDriverMatchup:
    def test_lower_position_wins(self) -> None:
        records = [record("hamilton", "ferrari", 5), record("leclerc", "ferrari", 3)]
        resolution = resolve_driver_matchup(records, "hamilton", "leclerc")
        assert resolution.status == RESOLVED
        assert resolution.winner == "leclerc"
        assert (resolution.participant1_value, resolution.participant2_value) == (5, 3)

    def test_finisher_beats_retirement(self) -> None:
        records = [
            record("hamilton", "ferrari", 15, "+2 Laps"),
            record("stroll", "aston_martin", 8, "Engine"),
        ]
        resolution = resolve_driver_matchup(records, "hamilton", "stroll")
        assert resolution.winner == "hamilton"

    def test_both_retired_is_tie(self) -> None:
        records = [
            record("hamilton", "ferrari", 18, "Collision"),
            record("stroll", "aston_martin", 19, "Engine"),
        ]
        resolution = resolve_driver_matchup(records, "hamilton", "stroll")
        assert resolution.status == TIE
        assert resolution.winner is None
        assert resolution.is_tie

    def test_missing_driver_is_incomplete(self) -> None:
        records = [record("hamilton", "ferrari", 5)]
        resolution = resolve_driver_matchup(records, "hamilton", "stroll")
        assert resolution.status == INCOMPLETE
        assert resolution.winner is None
        assert not resolution.is_complete


class TestTeamMatchup:
    def test_equal_averages_tie(self) -> None:
        records = [
            record("max_verstappen", "red_bull", 1),
            record("perez", "red_bull", 5),
            record("norris", "mclaren", 2),
            record("piastri", "mclaren", 4),
        ]
        resolution = resolve_team_matchup(records, "red_bull", "mclaren")
        assert resolution.status == TIE
        assert resolution.winner is None
        assert resolution.participant1_value == 3.0
        assert resolution.participant2_value == 3.0

    def test_lower_average_wins(self) -> None:
        records = [
            record("norris", "mclaren", 2),
            record("piastri", "mclaren", 4),
            record("leclerc", "ferrari", 3),
            record("hamilton", "ferrari", 5),
        ]
        resolution = resolve_team_matchup(records, "mclaren", "ferrari")
        assert resolution.winner == "mclaren"

    def test_retired_positions_count_for_teams(self) -> None:
        records = [
            record("stroll", "aston_martin", 20, "Engine"),
            record("alonso", "aston_martin", 2),
            record("sainz", "williams", 9),
            record("albon", "williams", 10),
        ]
        assert team_average_position(records, "aston_martin") == 11.0
        resolution = resolve_team_matchup(records, "aston_martin", "williams")
        assert resolution.winner == "williams"

    def test_team_without_positions_loses(self) -> None:
        records = [
            record("sainz", "williams", None, "Did not start"),
            record("norris", "mclaren", 12),
        ]
        resolution = resolve_team_matchup(records, "williams", "mclaren")
        assert resolution.winner == "mclaren"

    def test_missing_team_is_incomplete(self) -> None:
        records = [record("norris", "mclaren", 2)]
        assert resolve_team_matchup(records, "mclaren", "ferrari").status == INCOMPLETE

    def test_average_rounded_to_two_decimals(self) -> None:
        records = [
            record("a", "haas", 1),
            record("b", "haas", 2),
            record("c", "haas", 7),
        ]
        assert team_average_position(records, "haas") == 3.33

    def test_round_half_up(self) -> None:
        assert round_half_up(1.125) == 1.13
        assert round_half_up(2.5) == 2.5
        assert round_half_up(3.333333) == 3.33


class TestPointSchedule:
    def test_defaults(self) -> None:
        assert DEFAULT_POINT_SCHEDULE.winner == 6
        assert DEFAULT_POINT_SCHEDULE.driver_head_to_head == 1
        assert DEFAULT_POINT_SCHEDULE.team_head_to_head == 1
        assert DEFAULT_POINT_SCHEDULE.max_points() == 24

    def test_overrides(self) -> None:
        schedule = PointSchedule.from_mapping({"driver_head_to_head": 3})
        assert schedule.driver_head_to_head == 3
        assert schedule.winner == 6
        assert schedule.max_points() == 26

    def test_empty_overrides_return_defaults(self) -> None:
        assert PointSchedule.from_mapping(None) is DEFAULT_POINT_SCHEDULE
        assert PointSchedule.from_mapping({}) is DEFAULT_POINT_SCHEDULE

    @pytest.mark.parametrize(
        "overrides",
        [{"unknown_category": 1}, {"winner": -1}, {"winner": "6"}, {"winner": True}],
    )
    def test_invalid_overrides(self, overrides) -> None:
        with pytest.raises(ValueError):
            PointSchedule.from_mapping(overrides)

    def test_schedule_from_config(self) -> None:
        schedule = get_point_schedule({"POINT_SCHEDULE": {"pole_position": 5}})
        assert schedule.pole_position == 5
        assert schedule.to_dict()["pole_position"] == 5

"""
Point values for every scoring category.

One PointSchedule instance is built when the app starts (defaults plus any
POINT_SCHEDULE overrides from config) and handed to the ScoringEngine.
"""

from dataclasses import dataclass, fields, replace


@dataclass(frozen=True)
class PointSchedule:
    pole_position: int = 2
    winner: int = 6
    second_place: int = 4
    third_place: int = 2
    podium_driver: int = 1  # on the podium, wrong position
    all_podium_correct_order: int = 6
    all_podium_wrong_order: int = 2
    fastest_lap: int = 1
    first_retirement: int = 1
    driver_head_to_head: int = 1
    team_head_to_head: int = 1

    @classmethod
    def from_mapping(cls, overrides=None):
        """Build a schedule from the defaults with selected values replaced.

        Raises ValueError for unknown categories or non-integer/negative values.
        """
        if not overrides:
            return DEFAULT_POINT_SCHEDULE

        known = {f.name for f in fields(cls)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown point categories: {', '.join(sorted(unknown))}")

        for name, value in overrides.items():
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValueError(f"Point value for {name} must be a non-negative integer")

        return replace(DEFAULT_POINT_SCHEDULE, **overrides)

    def max_points(self):
        """Highest score one prediction can earn for a race"""
        # The wrong-order bonus never stacks with the exact podium, so it is not counted
        return (
            self.pole_position
            + self.winner
            + self.second_place
            + self.third_place
            + self.all_podium_correct_order
            + self.fastest_lap
            + self.first_retirement
            + self.driver_head_to_head
            + self.team_head_to_head
        )

    def to_dict(self):
        return {f.name: getattr(self, f.name) for f in fields(self)}


DEFAULT_POINT_SCHEDULE = PointSchedule()


def get_point_schedule(app_config=None):
    """Return the schedule configured for the current app"""
    if app_config is None:
        from flask import current_app

        app_config = current_app.config

    return PointSchedule.from_mapping(app_config.get("POINT_SCHEDULE"))

"""
Head-to-head resolution for race weekends.

Driver and team matchups are deliberately resolved with different rules:

- A driver's position only counts when the car was running at the finish
  ("Finished", "Lapped" or an Ergast "+N Lap(s)" status).
- A team's score is the mean of every recorded position of its entries,
  whatever the status, rounded to 2 decimals before comparing.

Both return a MatchupResolution. A participant with no race data at all gives
an "incomplete" resolution (no winner yet) instead of an error.
"""

import logging
import math
import re
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

RESOLVED = "resolved"
TIE = "tie"
INCOMPLETE = "incomplete"

RUNNING_STATUSES = frozenset({"Finished", "Lapped"})
_LAPPED_STATUS = re.compile(r"^\+\d+ Laps?$")


@dataclass(frozen=True)
class FinishingRecord:
    """The fields of one classification row the resolver looks at"""

    driver_id: str
    constructor_id: Optional[str]
    position: Optional[int]
    status: Optional[str]


@dataclass(frozen=True)
class MatchupResolution:
    status: str
    winner: Optional[str] = None
    participant1_value: Optional[float] = None
    participant2_value: Optional[float] = None

    @property
    def is_tie(self):
        return self.status == TIE

    @property
    def is_complete(self):
        return self.status != INCOMPLETE


def is_running_at_finish(status):
    """True if the status means the car was still running when the race ended"""
    if not status:
        return False
    return status in RUNNING_STATUSES or bool(_LAPPED_STATUS.match(status))


def driver_finishing_position(records, driver_id):
    """Finishing position of a driver, or None if they did not finish running"""
    for record in records:
        if record.driver_id != driver_id:
            continue
        if record.position is not None and is_running_at_finish(record.status):
            return record.position
        return None
    return None


def round_half_up(value, digits=2):
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


def team_average_position(records, constructor_id):
    """Mean recorded position of a team's entries, rounded to 2 decimals.

    Retired cars count with whatever position they were classified at.
    Returns None when none of the team's entries has a position.
    """
    positions = [
        r.position
        for r in records
        if r.constructor_id == constructor_id and r.position is not None
    ]
    if not positions:
        return None
    return round_half_up(sum(positions) / len(positions))


def _compare(id1, value1, id2, value2):
    """Lower value wins; a defined value beats an undefined one"""
    if value1 is not None and value2 is not None:
        if value1 < value2:
            winner = id1
        elif value2 < value1:
            winner = id2
        else:
            return MatchupResolution(TIE, None, value1, value2)
    elif value1 is not None:
        winner = id1
    elif value2 is not None:
        winner = id2
    else:
        return MatchupResolution(TIE, None, value1, value2)

    return MatchupResolution(RESOLVED, winner, value1, value2)


def resolve_driver_matchup(records, driver1_id, driver2_id):
    present = {r.driver_id for r in records}
    if driver1_id not in present or driver2_id not in present:
        logger.info(
            f"Driver head-to-head {driver1_id} vs {driver2_id} incomplete: "
            f"missing race data"
        )
        return MatchupResolution(INCOMPLETE)

    pos1 = driver_finishing_position(records, driver1_id)
    pos2 = driver_finishing_position(records, driver2_id)
    resolution = _compare(driver1_id, pos1, driver2_id, pos2)

    logger.debug(
        f"Driver head-to-head: {driver1_id} (P{pos1 or 'DNF'}) vs "
        f"{driver2_id} (P{pos2 or 'DNF'}) -> {resolution.winner or 'tie'}"
    )
    return resolution


def resolve_team_matchup(records, team1_id, team2_id):
    present = {r.constructor_id for r in records}
    if team1_id not in present or team2_id not in present:
        logger.info(
            f"Team head-to-head {team1_id} vs {team2_id} incomplete: "
            f"missing race data"
        )
        return MatchupResolution(INCOMPLETE)

    avg1 = team_average_position(records, team1_id)
    avg2 = team_average_position(records, team2_id)
    resolution = _compare(team1_id, avg1, team2_id, avg2)

    logger.debug(
        f"Team head-to-head: {team1_id} (avg {avg1}) vs {team2_id} (avg {avg2}) "
        f"-> {resolution.winner or 'tie'}"
    )
    return resolution

"""
Stores race outcomes and resolves the weekend's head-to-head matchups.
"""

import logging

from app import db
from app.models import HeadToHeadResult, Race, RaceEntry, RaceResult
from app.utils.cache_utils import invalidate_model_cache
from app.utils.head_to_head import (
    INCOMPLETE,
    resolve_driver_matchup,
    resolve_team_matchup,
)
from app.utils.results_sync import ResultsSync

logger = logging.getLogger(__name__)

ENTRY_FIELDS = (
    "driver_id",
    "code",
    "given_name",
    "family_name",
    "constructor_id",
    "constructor_name",
    "grid",
    "position",
    "status",
    "points",
    "laps",
    "fastest_lap_rank",
)


def _participant_names(result):
    drivers = {}
    teams = {}
    for entry in result.entries:
        drivers[entry.driver_id] = entry.full_name
        if entry.constructor_id:
            teams[entry.constructor_id] = entry.constructor_name or entry.constructor_id
    return drivers, teams


def resolve_head_to_heads(race, result):
    """Rebuild the stored driver and team matchup results for a race.

    Each matchup is resolved on its own. A stored winner survives only when the
    new resolution is incomplete; matchups no longer configured are removed.
    Changes are added to the session, not committed.
    """
    records = result.finishing_records()
    driver_names, team_names = _participant_names(result)

    matchups = (
        (
            "driver",
            race.has_driver_head_to_head,
            race.h2h_driver1_id,
            race.h2h_driver2_id,
            resolve_driver_matchup,
            driver_names,
        ),
        (
            "team",
            race.has_team_head_to_head,
            race.h2h_team1_id,
            race.h2h_team2_id,
            resolve_team_matchup,
            team_names,
        ),
    )

    resolved = {}
    for kind, configured, participant1, participant2, resolver, names in matchups:
        existing = result.get_head_to_head(kind)

        if not configured:
            if existing is not None:
                result.head_to_heads.remove(existing)
                logger.info(f"Removed unconfigured {kind} head-to-head for race {race.id}")
            continue

        resolution = resolver(records, participant1, participant2)

        previous_winner = None
        if (
            existing is not None
            and existing.participant1_id == participant1
            and existing.participant2_id == participant2
        ):
            previous_winner = existing.winner

        if existing is None:
            existing = HeadToHeadResult(kind=kind)
            result.head_to_heads.append(existing)

        existing.participant1_id = participant1
        existing.participant2_id = participant2
        existing.participant1_name = names.get(participant1, participant1)
        existing.participant2_name = names.get(participant2, participant2)
        existing.participant1_value = resolution.participant1_value
        existing.participant2_value = resolution.participant2_value
        existing.status = resolution.status

        if resolution.status == INCOMPLETE:
            existing.winner = previous_winner
            if previous_winner:
                logger.warning(
                    f"{kind.capitalize()} head-to-head for race {race.id} incomplete, "
                    f"keeping previous winner {previous_winner}"
                )
        else:
            existing.winner = resolution.winner

        logger.info(
            f"{kind.capitalize()} head-to-head for race {race.id}: "
            f"{participant1} vs {participant2} -> {existing.winner or resolution.status}"
        )
        resolved[kind] = existing

    return resolved


def store_race_outcome(race, payload):
    """Create or replace the stored outcome of a race and resolve its matchups.

    Args:
        race: Race
        payload: dict as returned by ResultsSync.fetch_race_results

    Returns:
        RaceResult (committed)
    """
    try:
        result = race.result
        if result is None:
            result = RaceResult(race_id=race.id)
            race.result = result

        result.pole_position = payload.get("pole_position")
        result.podium = list(payload.get("podium") or [])
        result.fastest_lap = payload.get("fastest_lap")
        result.first_retirement = payload.get("first_retirement")

        # Replace the classification wholesale
        result.entries.clear()
        db.session.flush()
        for row in payload.get("results", []):
            result.entries.append(
                RaceEntry(**{name: row.get(name) for name in ENTRY_FIELDS})
            )
        db.session.flush()

        resolve_head_to_heads(race, result)
        db.session.commit()

    except Exception:
        db.session.rollback()
        logger.error(f"Failed to store outcome for race {race.id}", exc_info=True)
        raise

    invalidate_model_cache("RaceResult")
    logger.info(
        f"Stored outcome for {race.race_name}: {len(result.entries)} entries, "
        f"podium {result.podium}"
    )
    return result


def sync_race_results(race, results_sync=None):
    """Fetch a race's outcome from the results API and store it.

    Returns the RaceResult, or None when the API has no results yet.
    """
    results_sync = results_sync or ResultsSync()
    payload = results_sync.fetch_race_results(race.season, race.round)
    if payload is None:
        return None

    return store_race_outcome(race, payload)


def re_resolve_race(race):
    """Re-run head-to-head resolution against the stored classification"""
    if race.result is None:
        return None

    try:
        resolved = resolve_head_to_heads(race, race.result)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    invalidate_model_cache("RaceResult")
    return resolved


def import_season_schedule(season, results_sync=None):
    """Create or update the races of a season from the results API.

    Existing races keep their head-to-head configuration and scoring state.
    Returns (created, updated).
    """
    results_sync = results_sync or ResultsSync()
    schedule = results_sync.fetch_season_schedule(season)

    created = 0
    updated = 0
    try:
        for data in schedule:
            if data["round"] is None or data["race_start"] is None:
                logger.warning(f"Skipping race without round or start time: {data}")
                continue

            race = Race.query.filter_by(season=data["season"], round=data["round"]).first()
            if race is None:
                race = Race(season=data["season"], round=data["round"])
                db.session.add(race)
                created += 1
            else:
                updated += 1

            race.race_name = data["race_name"]
            race.circuit_name = data["circuit_name"]
            race.country = data["country"]
            race.race_start = data["race_start"]
            race.qualifying_start = data["qualifying_start"]

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    invalidate_model_cache("Race")
    logger.info(f"Imported season {season}: {created} created, {updated} updated")
    return created, updated

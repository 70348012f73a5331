"""
Client for the Jolpica (Ergast-compatible) F1 results API.

Only fetches and reshapes data; storing it is app.services.results_service's job.
"""

import logging
import time
from functools import wraps

import requests

from app.utils.timezone_utils import parse_session_time

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://api.jolpi.ca/ergast/f1"


class ResultsSyncError(Exception):
    """The results API could not be reached or returned unusable data"""


def rate_limit_decorator(max_retries=3, base_delay=1.0, backoff_factor=2.0):
    """
    Decorator to handle API rate limiting with exponential backoff
    """

    def decorator(func):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            for attempt in range(max_retries):
                try:
                    response = func(self, *args, **kwargs)

                    if hasattr(response, "status_code"):
                        if response.status_code == 429:
                            retry_after = float(
                                response.headers.get(
                                    "Retry-After",
                                    base_delay * (backoff_factor**attempt),
                                )
                            )
                            logger.warning(
                                f"Rate limited. Waiting {retry_after}s before retry {attempt + 1}/{max_retries}"
                            )
                            time.sleep(retry_after)
                            continue
                        elif response.status_code >= 500:
                            delay = base_delay * (backoff_factor**attempt)
                            logger.warning(
                                f"Server error {response.status_code}. Waiting {delay}s before retry {attempt + 1}/{max_retries}"
                            )
                            time.sleep(delay)
                            continue

                    return response

                except requests.exceptions.RequestException as e:
                    delay = base_delay * (backoff_factor**attempt)
                    logger.warning(
                        f"Request failed: {e}. Waiting {delay}s before retry {attempt + 1}/{max_retries}"
                    )
                    if attempt < max_retries - 1:
                        time.sleep(delay)
                    else:
                        raise ResultsSyncError(str(e)) from e

            raise ResultsSyncError(f"Max retries ({max_retries}) exceeded")

        return wrapper

    return decorator


def _to_int(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _to_float(value):
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _first_race(data):
    races = data.get("MRData", {}).get("RaceTable", {}).get("Races", [])
    return races[0] if races else None


def parse_result_entry(result):
    """Flatten one Ergast result row into the fields stored on RaceEntry"""
    driver = result.get("Driver", {})
    constructor = result.get("Constructor", {})
    fastest_lap = result.get("FastestLap") or {}

    return {
        "driver_id": driver.get("driverId"),
        "code": driver.get("code"),
        "given_name": driver.get("givenName"),
        "family_name": driver.get("familyName"),
        "constructor_id": constructor.get("constructorId"),
        "constructor_name": constructor.get("name"),
        "grid": _to_int(result.get("grid")),
        "position": _to_int(result.get("position")),
        "status": result.get("status"),
        "points": _to_float(result.get("points")),
        "laps": _to_int(result.get("laps")),
        "fastest_lap_rank": _to_int(fastest_lap.get("rank")),
    }


def derive_podium(entries):
    """Driver ids of positions 1-3 in finishing order"""
    placed = [e for e in entries if e["position"] is not None and e["position"] <= 3]
    return [e["driver_id"] for e in sorted(placed, key=lambda e: e["position"])]


def derive_fastest_lap(entries):
    for entry in entries:
        if entry["fastest_lap_rank"] == 1:
            return entry["driver_id"]
    return None


def derive_first_retirement(entries):
    """The last-placed classified driver who was not disqualified.

    Despite the name this is not the first car to stop; the category has always
    been settled this way and stored scores depend on it.
    """
    last_placed = None
    for entry in entries:
        if entry["status"] == "Disqualified" or entry["position"] is None:
            continue
        if last_placed is None or entry["position"] > last_placed["position"]:
            last_placed = entry
    return last_placed["driver_id"] if last_placed else None


class ResultsSync:
    """
    Fetches race classifications, qualifying and schedules with rate limiting
    and retries
    """

    def __init__(self, api_base_url=None, min_request_interval=0.5):
        self.api_base_url = (api_base_url or DEFAULT_API_BASE_URL).rstrip("/")
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": "F1-Tipping-App/1.0"})

        self.request_count = 0
        self.last_request_time = 0
        self.min_request_interval = min_request_interval

    def _enforce_rate_limit(self):
        """Enforce a minimum interval between requests"""
        time_since_last = time.time() - self.last_request_time
        if time_since_last < self.min_request_interval:
            time.sleep(self.min_request_interval - time_since_last)

        self.last_request_time = time.time()
        self.request_count += 1

    @rate_limit_decorator(max_retries=3, base_delay=2.0)
    def _make_api_request(self, url, params=None):
        """Make API request with rate limiting and retry logic"""
        self._enforce_rate_limit()
        return self.session.get(url, params=params, timeout=30)

    def _get_json(self, path):
        url = f"{self.api_base_url}/{path}"
        response = self._make_api_request(url)

        if response.status_code == 404:
            logger.info(f"No data at {url}")
            return None
        if response.status_code >= 400:
            raise ResultsSyncError(f"HTTP {response.status_code} from {url}")

        try:
            return response.json()
        except ValueError as e:
            raise ResultsSyncError(f"Invalid JSON from {url}") from e

    def fetch_pole_position(self, season, round_number):
        """Driver id of the fastest qualifier, or None if qualifying has no data"""
        data = self._get_json(f"{season}/{round_number}/qualifying.json")
        race = _first_race(data) if data else None
        if not race or not race.get("QualifyingResults"):
            return None

        first = race["QualifyingResults"][0]
        return first.get("Driver", {}).get("driverId")

    def fetch_race_results(self, season, round_number):
        """Fetch and derive the race outcome.

        Returns a dict with "results" (entry dicts), "podium", "pole_position",
        "fastest_lap" and "first_retirement", or None when the API has no
        classification for the race yet.
        """
        logger.info(f"Fetching {season} round {round_number} results")
        data = self._get_json(f"{season}/{round_number}/results.json")
        race = _first_race(data) if data else None
        if not race or not race.get("Results"):
            logger.info(f"No results available yet for {season} round {round_number}")
            return None

        entries = [parse_result_entry(r) for r in race["Results"]]

        try:
            pole_position = self.fetch_pole_position(season, round_number)
        except ResultsSyncError as e:
            logger.warning(f"Could not fetch pole position for {season} round {round_number}: {e}")
            pole_position = None

        payload = {
            "results": entries,
            "podium": derive_podium(entries),
            "pole_position": pole_position,
            "fastest_lap": derive_fastest_lap(entries),
            "first_retirement": derive_first_retirement(entries),
        }

        logger.info(
            f"Fetched {len(entries)} results for {season} round {round_number}: "
            f"podium={payload['podium']} fastest_lap={payload['fastest_lap']} "
            f"first_retirement={payload['first_retirement']}"
        )
        return payload

    def fetch_season_schedule(self, season):
        """List of race dicts (season, round, names, UTC start times) for a season"""
        data = self._get_json(f"{season}.json")
        if not data:
            return []

        races = data.get("MRData", {}).get("RaceTable", {}).get("Races", [])
        schedule = []
        for race in races:
            circuit = race.get("Circuit", {})
            qualifying = race.get("Qualifying") or {}
            schedule.append(
                {
                    "season": str(race.get("season", season)),
                    "round": _to_int(race.get("round")),
                    "race_name": race.get("raceName"),
                    "circuit_name": circuit.get("circuitName"),
                    "country": circuit.get("Location", {}).get("country"),
                    "race_start": parse_session_time(race.get("date"), race.get("time")),
                    "qualifying_start": parse_session_time(
                        qualifying.get("date"), qualifying.get("time")
                    ),
                }
            )

        logger.info(f"Fetched {len(schedule)} races for season {season}")
        return schedule

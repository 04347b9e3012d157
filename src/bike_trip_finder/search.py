"""Round-trip and single-route journey search over a JourneyCatalog.

Both operations use the same conventions:

- A city resolves to every station whose ``city`` matches exactly; journeys
  between any station of the origin city and any station of the destination
  city are considered.
- The search day is the UTC calendar day, 00:00:00.000 to 23:59:59.999, both
  ends inclusive.
- Results are ordered by departure time, then journey id.
"""

from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from datetime import date, datetime, timedelta, timezone
from typing import Iterator, List, Optional, Tuple, Union

from pydantic import ValidationError

from .catalog import JourneyCatalog
from .config import SearchDefaults
from .errors import InvalidInput, SearchFailed, TripFinderError
from .models import JourneyWithDetails, RoundTripResult, RoundTripSearchInput, Station

logger = logging.getLogger(__name__)

DATE_PATTERN = re.compile(r"^[0-9]{4}-[0-9]{2}-[0-9]{2}$")
END_OF_DAY = timedelta(days=1) - timedelta(milliseconds=1)
HOURS_PER_DAY = 24


def day_window(departure_date: str) -> Tuple[datetime, datetime]:
    """Return (day_start, day_end) in UTC for a ``YYYY-MM-DD`` string.

    day_end is 23:59:59.999 of the same day and is meant to be inclusive.
    """
    if not isinstance(departure_date, str) or not DATE_PATTERN.match(departure_date):
        raise InvalidInput(f"Date must be in YYYY-MM-DD format: {departure_date!r}")
    try:
        day = date.fromisoformat(departure_date)
    except ValueError as exc:
        raise InvalidInput(f"Not a calendar date: {departure_date!r}") from exc
    day_start = datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
    return day_start, day_start + END_OF_DAY


def resolve_criteria(
    criteria: Union[RoundTripSearchInput, dict],
    defaults: Optional[SearchDefaults] = None,
) -> RoundTripSearchInput:
    """Validate criteria and fill unset cities and delay from ``defaults``."""
    defaults = defaults or SearchDefaults()
    if isinstance(criteria, dict):
        try:
            criteria = RoundTripSearchInput(**criteria)
        except ValidationError as exc:
            raise InvalidInput(str(exc)) from exc
    try:
        resolved = RoundTripSearchInput(
            departure_date=criteria.departure_date,
            origin_city=criteria.origin_city or defaults.default_origin_city,
            destination_city=criteria.destination_city or defaults.default_destination_city,
            return_delay_hours=(
                criteria.return_delay_hours
                if criteria.return_delay_hours is not None
                else defaults.default_return_delay_hours
            ),
        )
    except ValidationError as exc:
        raise InvalidInput(str(exc)) from exc
    # rejects dates like 2024-02-30 that pass the pattern
    day_window(resolved.departure_date)
    return resolved


@contextmanager
def _catalog_failures(operation: str) -> Iterator[None]:
    try:
        yield
    except SearchFailed as exc:
        logger.error("%s failed: %s", operation, exc)
        raise
    except TripFinderError:
        raise
    except Exception as exc:
        logger.error("%s failed: %s", operation, exc)
        raise SearchFailed(f"{operation} failed: {exc}") from exc


def _station_ids(stations: List[Station]) -> List[int]:
    return [s.id for s in stations]


def search_round_trip(
    catalog: JourneyCatalog,
    criteria: Union[RoundTripSearchInput, dict],
    defaults: Optional[SearchDefaults] = None,
) -> RoundTripResult:
    """Find outbound journeys for the day and return journeys on the reverse route.

    Return journeys must depart no earlier than the start of the search day
    plus ``return_delay_hours`` and no later than the end of the same day.
    """
    c = resolve_criteria(criteria, defaults)
    day_start, day_end = day_window(c.departure_date)

    result = RoundTripResult(
        search_date=c.departure_date,
        origin_city=c.origin_city,
        destination_city=c.destination_city,
    )
    # A delay that reaches past the end of the day leaves no return window.
    return_start = None
    if c.return_delay_hours < HOURS_PER_DAY:
        return_start = day_start + timedelta(hours=c.return_delay_hours)

    with _catalog_failures("Round trip search"):
        origin_stations = catalog.find_stations_by_city(c.origin_city)
        destination_stations = catalog.find_stations_by_city(c.destination_city)
        if not origin_stations or not destination_stations:
            logger.info(
                "No stations for %s",
                c.origin_city if not origin_stations else c.destination_city,
            )
            return result

        origin_ids = _station_ids(origin_stations)
        destination_ids = _station_ids(destination_stations)

        outbound = catalog.find_journeys(origin_ids, destination_ids, day_start, day_end, inclusive=True)
        returns = []
        if return_start is not None:
            returns = catalog.find_journeys(destination_ids, origin_ids, return_start, day_end, inclusive=True)

    result.outbound_journeys = _ordered(outbound)
    result.return_journeys = _ordered(returns)
    logger.debug(
        "%s -> %s on %s: %d outbound, %d return",
        c.origin_city,
        c.destination_city,
        c.departure_date,
        len(result.outbound_journeys),
        len(result.return_journeys),
    )
    return result


def journeys_for_route(
    catalog: JourneyCatalog,
    origin_city: str,
    destination_city: str,
    departure_date: str,
) -> List[JourneyWithDetails]:
    """Journeys from ``origin_city`` to ``destination_city`` departing on the given day."""
    if not origin_city or not destination_city:
        raise InvalidInput("origin_city and destination_city must be non-empty")
    day_start, day_end = day_window(departure_date)

    with _catalog_failures("Route lookup"):
        origin_stations = catalog.find_stations_by_city(origin_city)
        destination_stations = catalog.find_stations_by_city(destination_city)
        if not origin_stations or not destination_stations:
            return []
        journeys = catalog.find_journeys(
            _station_ids(origin_stations),
            _station_ids(destination_stations),
            day_start,
            day_end,
            inclusive=True,
        )
    return _ordered(journeys)


def list_stations(catalog: JourneyCatalog) -> List[Station]:
    with _catalog_failures("Station listing"):
        return catalog.list_stations()


def _ordered(journeys: List[JourneyWithDetails]) -> List[JourneyWithDetails]:
    # Catalogs other than the SQL one need not sort.
    return sorted(journeys, key=lambda j: (j.departure_time, j.id))

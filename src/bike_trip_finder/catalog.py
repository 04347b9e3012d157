"""Journey catalog: the read-only data source behind every search."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, List, Protocol

from pydantic import ValidationError
from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import aliased, sessionmaker

from .db import JourneyOrm, StationOrm, TrainOrm, create_engine_for_url, to_db_time
from .errors import DataIntegrityError, SearchFailed
from .models import JourneyWithDetails, Station

logger = logging.getLogger(__name__)


class JourneyCatalog(Protocol):
    """Port for station and journey lookups."""

    def find_stations_by_city(self, city: str) -> List[Station]:
        """Stations whose city equals ``city`` exactly."""
        ...

    def find_journeys(
        self,
        origin_station_ids: Iterable[int],
        destination_station_ids: Iterable[int],
        window_start: datetime,
        window_end: datetime,
        inclusive: bool = True,
    ) -> List[JourneyWithDetails]:
        """Journeys between the two station sets departing inside the window.

        The window start is always inclusive; ``inclusive`` controls the end.
        Results are ordered by departure time, then journey id.
        """
        ...

    def list_stations(self) -> List[Station]:
        """All stations ordered by city, then name."""
        ...


class SqlJourneyCatalog:
    """JourneyCatalog backed by the SQLAlchemy schema in ``db.py``."""

    def __init__(self, db_url: str):
        self.db_url = db_url
        self._engine = create_engine_for_url(db_url)
        self._Session = sessionmaker(bind=self._engine, autoflush=False, autocommit=False, future=True)

    def close(self) -> None:
        self._engine.dispose()

    def __enter__(self) -> "SqlJourneyCatalog":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def ping(self) -> None:
        try:
            with self._Session() as session:
                session.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            raise SearchFailed(f"Catalog not reachable: {exc}") from exc

    def find_stations_by_city(self, city: str) -> List[Station]:
        stmt = select(StationOrm).where(StationOrm.city == city).order_by(StationOrm.id)
        try:
            with self._Session() as session:
                rows = session.execute(stmt).scalars().all()
                return [Station(id=r.id, name=r.name, code=r.code, city=r.city) for r in rows]
        except SQLAlchemyError as exc:
            raise SearchFailed(f"Station lookup for city {city!r} failed: {exc}") from exc

    def list_stations(self) -> List[Station]:
        stmt = select(StationOrm).order_by(StationOrm.city, StationOrm.name)
        try:
            with self._Session() as session:
                rows = session.execute(stmt).scalars().all()
                return [Station(id=r.id, name=r.name, code=r.code, city=r.city) for r in rows]
        except SQLAlchemyError as exc:
            raise SearchFailed(f"Station listing failed: {exc}") from exc

    def find_journeys(
        self,
        origin_station_ids: Iterable[int],
        destination_station_ids: Iterable[int],
        window_start: datetime,
        window_end: datetime,
        inclusive: bool = True,
    ) -> List[JourneyWithDetails]:
        origin_ids = set(origin_station_ids)
        destination_ids = set(destination_station_ids)
        if not origin_ids or not destination_ids:
            return []

        # One joined fetch: the stations table appears twice, once per endpoint.
        origin = aliased(StationOrm, name="origin_stations")
        destination = aliased(StationOrm, name="destination_stations")
        start = to_db_time(window_start)
        end = to_db_time(window_end)
        end_clause = JourneyOrm.departure_time <= end if inclusive else JourneyOrm.departure_time < end
        stmt = (
            select(
                JourneyOrm.id,
                TrainOrm.train_number,
                TrainOrm.train_type,
                origin.name.label("origin_station_name"),
                destination.name.label("destination_station_name"),
                JourneyOrm.departure_time,
                JourneyOrm.arrival_time,
                JourneyOrm.duration_minutes,
                JourneyOrm.price_cents,
                TrainOrm.has_bicycle_space,
                TrainOrm.bicycle_spaces_available,
                JourneyOrm.bicycle_reservation_required,
                JourneyOrm.bicycle_price_cents,
            )
            .join(TrainOrm, JourneyOrm.train_id == TrainOrm.id)
            .join(origin, JourneyOrm.origin_station_id == origin.id)
            .join(destination, JourneyOrm.destination_station_id == destination.id)
            .where(
                JourneyOrm.origin_station_id.in_(origin_ids),
                JourneyOrm.destination_station_id.in_(destination_ids),
                JourneyOrm.departure_time >= start,
                end_clause,
            )
            .order_by(JourneyOrm.departure_time, JourneyOrm.id)
        )
        try:
            with self._Session() as session:
                rows = session.execute(stmt).all()
        except SQLAlchemyError as exc:
            raise SearchFailed(f"Journey lookup failed: {exc}") from exc

        out: List[JourneyWithDetails] = []
        for r in rows:
            try:
                out.append(JourneyWithDetails(**r._asdict()))
            except ValidationError as exc:
                logger.error("Inconsistent journey row %s: %s", r.id, exc)
                raise DataIntegrityError(f"Journey {r.id} has inconsistent data: {exc}") from exc
        return out

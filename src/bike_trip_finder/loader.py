from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from sqlalchemy import select

from .db import JourneyOrm, StationOrm, TrainOrm, create_session_maker, init_db, to_db_time
from .errors import CatalogLoadError
from .models import Journey, ensure_utc

logger = logging.getLogger(__name__)


class StationEntry(BaseModel):
    name: str = Field(min_length=1)
    code: str = Field(min_length=1)
    city: str = Field(min_length=1)


class TrainEntry(BaseModel):
    train_number: str = Field(min_length=1)
    train_type: str = Field(min_length=1)
    has_bicycle_space: bool = False
    bicycle_spaces_available: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _no_spaces_without_bicycle_area(self) -> "TrainEntry":
        if not self.has_bicycle_space and self.bicycle_spaces_available != 0:
            raise ValueError(
                f"{self.train_number}: bicycle_spaces_available must be 0 without bicycle space"
            )
        return self


class JourneyEntry(BaseModel):
    train_number: str
    origin_code: str
    destination_code: str
    departure_time: datetime
    arrival_time: datetime
    duration_minutes: Optional[int] = None
    price_cents: int = Field(ge=0)
    bicycle_reservation_required: bool = False
    bicycle_price_cents: int = Field(default=0, ge=0)

    @field_validator("departure_time", "arrival_time")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    def effective_duration(self) -> int:
        if self.duration_minutes is not None:
            return self.duration_minutes
        return int((self.arrival_time - self.departure_time).total_seconds() // 60)


class CatalogDocument(BaseModel):
    stations: List[StationEntry] = Field(default_factory=list)
    trains: List[TrainEntry] = Field(default_factory=list)
    journeys: List[JourneyEntry] = Field(default_factory=list)


def read_catalog_file(path: Path) -> CatalogDocument:
    """Parse a YAML catalog document (stations, trains, journeys)."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Catalog file not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        try:
            raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise CatalogLoadError(f"Malformed YAML in {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise CatalogLoadError("Catalog root must be a mapping")
    try:
        return CatalogDocument(**raw)
    except ValidationError as exc:
        raise CatalogLoadError(f"Invalid catalog document {path}: {exc}") from exc


def upsert_stations(session, stations: List[StationEntry]) -> Dict[str, int]:
    """Insert or update stations keyed by code. Returns code -> station id."""
    ids: Dict[str, int] = {}
    for s in stations:
        orm = session.execute(select(StationOrm).where(StationOrm.code == s.code)).scalar_one_or_none()
        if orm is None:
            orm = StationOrm(code=s.code)
            session.add(orm)
        orm.name = s.name
        orm.city = s.city
        session.flush()
        ids[s.code] = orm.id
    return ids


def upsert_trains(session, trains: List[TrainEntry]) -> Dict[str, int]:
    """Insert or update trains keyed by train number. Returns number -> train id."""
    ids: Dict[str, int] = {}
    for t in trains:
        orm = session.execute(
            select(TrainOrm).where(TrainOrm.train_number == t.train_number)
        ).scalar_one_or_none()
        if orm is None:
            orm = TrainOrm(train_number=t.train_number)
            session.add(orm)
        orm.train_type = t.train_type
        orm.has_bicycle_space = t.has_bicycle_space
        orm.bicycle_spaces_available = t.bicycle_spaces_available
        session.flush()
        ids[t.train_number] = orm.id
    return ids


def _lookup_ids(session, orm_cls, key_attr) -> Dict[str, int]:
    return {key: id_ for key, id_ in session.execute(select(key_attr, orm_cls.id)).all()}


def _journey_exists(session, train_id, origin_station_id, destination_station_id, departure_time) -> bool:
    stmt = select(JourneyOrm.id).where(
        JourneyOrm.train_id == train_id,
        JourneyOrm.origin_station_id == origin_station_id,
        JourneyOrm.destination_station_id == destination_station_id,
        JourneyOrm.departure_time == departure_time,
    )
    return session.execute(stmt).first() is not None


def insert_journeys(
    session,
    journeys: List[JourneyEntry],
    station_ids: Dict[str, int],
    train_ids: Dict[str, int],
    bicycle_space: Optional[Dict[str, bool]] = None,
) -> Tuple[int, int]:
    """Insert journeys; returns (inserted_count, skipped_duplicates).

    ``bicycle_space`` maps train number to has_bicycle_space; journeys charging
    a bicycle price on a train without bicycle space are rejected.
    """
    bicycle_space = bicycle_space or {}
    inserted = 0
    skipped = 0
    seen = set()
    for j in journeys:
        try:
            train_id = train_ids[j.train_number]
        except KeyError:
            raise CatalogLoadError(f"Unknown train number: {j.train_number}") from None
        try:
            origin_id = station_ids[j.origin_code]
            destination_id = station_ids[j.destination_code]
        except KeyError as exc:
            raise CatalogLoadError(f"Unknown station code: {exc.args[0]}") from None
        if j.bicycle_price_cents and not bicycle_space.get(j.train_number, True):
            raise CatalogLoadError(
                f"{j.train_number} {j.origin_code}->{j.destination_code}: "
                "bicycle_price_cents must be 0 on a train without bicycle space"
            )
        try:
            journey = Journey(
                id=0,
                train_id=train_id,
                origin_station_id=origin_id,
                destination_station_id=destination_id,
                departure_time=j.departure_time,
                arrival_time=j.arrival_time,
                duration_minutes=j.effective_duration(),
                price_cents=j.price_cents,
                bicycle_reservation_required=j.bicycle_reservation_required,
                bicycle_price_cents=j.bicycle_price_cents,
            )
        except ValidationError as exc:
            raise CatalogLoadError(
                f"Invalid journey {j.train_number} {j.origin_code}->{j.destination_code}: {exc}"
            ) from exc

        key = (
            journey.train_id,
            journey.origin_station_id,
            journey.destination_station_id,
            to_db_time(journey.departure_time),
        )
        if key in seen or _journey_exists(session, *key):
            skipped += 1
            continue
        seen.add(key)
        session.add(
            JourneyOrm(
                train_id=journey.train_id,
                origin_station_id=journey.origin_station_id,
                destination_station_id=journey.destination_station_id,
                departure_time=to_db_time(journey.departure_time),
                arrival_time=to_db_time(journey.arrival_time),
                duration_minutes=journey.duration_minutes,
                price_cents=journey.price_cents,
                bicycle_reservation_required=journey.bicycle_reservation_required,
                bicycle_price_cents=journey.bicycle_price_cents,
            )
        )
        inserted += 1
    session.flush()
    return inserted, skipped


def load_catalog(db_url: str, document: CatalogDocument) -> Tuple[int, int, int, int]:
    """Write a catalog document to the database.

    Returns:
        (stations_upserted, trains_upserted, journeys_inserted, journeys_skipped)
    """
    init_db(db_url)  # ensure schema exists
    Session = create_session_maker(db_url)
    with Session() as session:
        station_ids = _lookup_ids(session, StationOrm, StationOrm.code)
        station_ids.update(upsert_stations(session, document.stations))
        train_ids = _lookup_ids(session, TrainOrm, TrainOrm.train_number)
        train_ids.update(upsert_trains(session, document.trains))
        bicycle_space = dict(session.execute(select(TrainOrm.train_number, TrainOrm.has_bicycle_space)).all())
        inserted, skipped = insert_journeys(session, document.journeys, station_ids, train_ids, bicycle_space)
        session.commit()
    logger.info(
        "Loaded %d stations, %d trains, %d journeys (%d duplicates skipped)",
        len(document.stations),
        len(document.trains),
        inserted,
        skipped,
    )
    return len(document.stations), len(document.trains), inserted, skipped


def load_catalog_file(db_url: str, path: Path) -> Tuple[int, int, int, int]:
    return load_catalog(db_url, read_catalog_file(path))

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker


class Base(DeclarativeBase):
    pass


class StationOrm(Base):
    __tablename__ = "stations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String)
    code: Mapped[str] = mapped_column(String(16), unique=True)
    city: Mapped[str] = mapped_column(String, index=True)


class TrainOrm(Base):
    __tablename__ = "trains"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    train_number: Mapped[str] = mapped_column(String(32), unique=True)  # e.g. "ICE 1001"
    train_type: Mapped[str] = mapped_column(String(16))
    has_bicycle_space: Mapped[bool] = mapped_column(Boolean, default=False)
    bicycle_spaces_available: Mapped[int] = mapped_column(Integer, default=0)


class JourneyOrm(Base):
    __tablename__ = "journeys"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    train_id: Mapped[int] = mapped_column(Integer, ForeignKey("trains.id"))
    origin_station_id: Mapped[int] = mapped_column(Integer, ForeignKey("stations.id"), index=True)
    destination_station_id: Mapped[int] = mapped_column(Integer, ForeignKey("stations.id"), index=True)
    # naive UTC, see to_db_time()
    departure_time: Mapped[datetime] = mapped_column(DateTime, index=True)
    arrival_time: Mapped[datetime] = mapped_column(DateTime)
    duration_minutes: Mapped[int] = mapped_column(Integer)
    price_cents: Mapped[int] = mapped_column(Integer)
    bicycle_reservation_required: Mapped[bool] = mapped_column(Boolean, default=False)
    bicycle_price_cents: Mapped[int] = mapped_column(Integer, default=0)

    __table_args__ = (
        UniqueConstraint(
            "train_id",
            "origin_station_id",
            "destination_station_id",
            "departure_time",
            name="uq_journey_identity",
        ),
    )


def _ensure_sqlite_path(db_url: str) -> None:
    if db_url.startswith("sqlite:///") and ":memory:" not in db_url:
        path_str = db_url.replace("sqlite:///", "", 1)
        p = Path(path_str).expanduser()
        p.parent.mkdir(parents=True, exist_ok=True)


def create_engine_for_url(db_url: str):
    _ensure_sqlite_path(db_url)
    return create_engine(db_url, future=True)


def create_session_maker(db_url: str):
    engine = create_engine_for_url(db_url)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


def init_db(db_url: str) -> None:
    engine = create_engine_for_url(db_url)
    Base.metadata.create_all(engine)
    engine.dispose()


def to_db_time(value: datetime) -> datetime:
    """Convert a datetime to the naive UTC form stored in the journeys table.

    Naive input is taken to be UTC already.
    """
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value

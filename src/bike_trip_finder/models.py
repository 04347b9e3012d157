from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Station(BaseModel):
    id: int
    name: str
    code: str
    city: str


class Train(BaseModel):
    id: int
    train_number: str
    train_type: str  # ICE, IC, RE, ...
    has_bicycle_space: bool = False
    bicycle_spaces_available: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _no_spaces_without_bicycle_area(self) -> "Train":
        if not self.has_bicycle_space and self.bicycle_spaces_available != 0:
            raise ValueError("bicycle_spaces_available must be 0 when has_bicycle_space is false")
        return self


class Journey(BaseModel):
    id: int
    train_id: int
    origin_station_id: int
    destination_station_id: int
    departure_time: datetime
    arrival_time: datetime
    duration_minutes: int = Field(gt=0)
    price_cents: int = Field(ge=0)  # minor units, never floats
    bicycle_reservation_required: bool = False
    bicycle_price_cents: int = Field(default=0, ge=0)

    @field_validator("departure_time", "arrival_time")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @model_validator(mode="after")
    def _check_endpoints_and_times(self) -> "Journey":
        if self.origin_station_id == self.destination_station_id:
            raise ValueError("origin and destination station must differ")
        if self.arrival_time < self.departure_time:
            raise ValueError("arrival_time must not be before departure_time")
        return self


class JourneyWithDetails(BaseModel):
    """A journey flattened with its train's bicycle fields and both station names."""

    id: int
    train_number: str
    train_type: str
    origin_station_name: str
    destination_station_name: str
    departure_time: datetime
    arrival_time: datetime
    duration_minutes: int
    price_cents: int
    has_bicycle_space: bool
    bicycle_spaces_available: int
    bicycle_reservation_required: bool
    bicycle_price_cents: int

    @field_validator("departure_time", "arrival_time")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @model_validator(mode="after")
    def _bicycle_fields_consistent(self) -> "JourneyWithDetails":
        if not self.has_bicycle_space and (self.bicycle_spaces_available or self.bicycle_price_cents):
            raise ValueError(
                f"journey {self.id} ({self.train_number}) reports bicycle spaces/price without bicycle space"
            )
        return self


class RoundTripSearchInput(BaseModel):
    """Search criteria. Cities and delay left as None are filled from SearchDefaults."""

    departure_date: str = Field(pattern=r"^[0-9]{4}-[0-9]{2}-[0-9]{2}$")
    origin_city: Optional[str] = Field(default=None, min_length=1)
    destination_city: Optional[str] = Field(default=None, min_length=1)
    return_delay_hours: Optional[int] = Field(default=None, gt=0, strict=True)


class RoundTripResult(BaseModel):
    outbound_journeys: List[JourneyWithDetails] = Field(default_factory=list)
    return_journeys: List[JourneyWithDetails] = Field(default_factory=list)
    search_date: str
    origin_city: str
    destination_city: str

"""Pydantic models for vehicle position telemetry.

A position record is the subset of a GTFS-RT VehiclePosition entity the
monitor stores: who, which route, where, when, and the stop status.
"""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, field_validator


class VehicleStatus(str, Enum):
    """Vehicle stop status (GTFS-RT VehicleStopStatus plus UNKNOWN)."""

    IN_TRANSIT_TO = "IN_TRANSIT_TO"
    STOPPED_AT = "STOPPED_AT"
    INCOMING_AT = "INCOMING_AT"
    UNKNOWN = "UNKNOWN"


class PositionRecord(BaseModel):
    """One observed position of one vehicle.

    Identity is ``(vehicle_id, observed_at)``. Records are append-only.
    """

    model_config = ConfigDict(frozen=True)

    vehicle_id: str
    route_id: str
    latitude: float
    longitude: float
    observed_at: datetime
    status: VehicleStatus = VehicleStatus.UNKNOWN

    @field_validator("observed_at")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        # naive timestamps are taken as UTC
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


class LatestPosition(PositionRecord):
    """The most recent position of a vehicle, as resolved at query time."""

    age_minutes: int  # whole minutes between observed_at and query time, truncated


class VehiclePair(BaseModel):
    """Two vehicles on the same route, ordered so first.vehicle_id < second.vehicle_id."""

    model_config = ConfigDict(frozen=True)

    first: LatestPosition
    second: LatestPosition

    @property
    def route_id(self) -> str:
        return self.first.route_id

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class AlertType(str, Enum):
    """Kinds of service disruption the detectors report."""

    DELAYED_VEHICLE = "DELAYED_VEHICLE"
    VEHICLE_BUNCHING = "VEHICLE_BUNCHING"
    LOW_ROUTE_COVERAGE = "LOW_ROUTE_COVERAGE"
    OFFLINE_VEHICLE = "OFFLINE_VEHICLE"


class ServiceAlert(BaseModel):
    """A single disruption found during one monitoring cycle.

    Severity direction depends on the type: higher is worse for every type
    except VEHICLE_BUNCHING, where severity is the gap in hundredths of a
    kilometre and a smaller value means the vehicles are closer together.
    """

    model_config = ConfigDict(frozen=True)

    type: AlertType
    message: str
    route_id: str | None = None
    vehicle_id: str | None = Field(
        default=None, description="Vehicle id, or comma-joined ids for bunching pairs"
    )
    latitude: float = 0.0
    longitude: float = 0.0
    severity: int
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

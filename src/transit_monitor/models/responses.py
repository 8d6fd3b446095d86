from pydantic import BaseModel, ConfigDict, Field

from transit_monitor.models.alerts import AlertType, ServiceAlert


class IngestStats(BaseModel):
    """Point-in-time snapshot of the ingestion counters."""

    model_config = ConfigDict(frozen=True)

    total_fetched: int = 0
    total_stored: int = 0
    last_fetch_count: int = 0
    last_fetch_time_ms: int = 0
    running_time_ms: int = 0
    is_running: bool = False

    @property
    def ingestion_rate(self) -> float:
        """Records fetched per second of running time (0.0 when unknown)."""
        seconds = self.running_time_ms / 1000
        if seconds <= 0:
            return 0.0
        return self.total_fetched / seconds


class StatusCount(BaseModel):
    status: str
    vehicle_count: int


class SystemSummary(BaseModel):
    total_records: int = Field(description="Rows in the position store")
    unique_vehicles: int
    oldest_observation: int | None = Field(
        default=None, description="Unix timestamp of the oldest stored position"
    )
    newest_observation: int | None = Field(
        default=None, description="Unix timestamp of the newest stored position"
    )


class IngestionStatisticsResponse(BaseModel):
    statistics: IngestStats | None = None
    ingestion_rate: float = Field(default=0.0, description="Records fetched per second")
    monitor_available: bool


class AlertSummaryResponse(BaseModel):
    counts: dict[AlertType, int]
    total_alerts: int
    monitor_available: bool


class RecentAlertsResponse(BaseModel):
    alerts: list[ServiceAlert]
    count: int = Field(description="Number of alerts returned")
    monitor_available: bool


class ThresholdsResponse(BaseModel):
    stopped_threshold_minutes: int
    bunching_distance_km: float
    minimum_vehicles_per_route: int
    offline_threshold_minutes: int
    fetch_interval_seconds: int
    monitor_interval_seconds: int

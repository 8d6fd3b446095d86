from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from transit_monitor.exceptions import ConfigurationError


class Thresholds(BaseModel):
    """Detector tunables."""

    model_config = ConfigDict(frozen=True)

    stopped_threshold_minutes: int = Field(default=5, ge=0)
    bunching_distance_km: float = Field(default=1.0, ge=0)
    minimum_vehicles_per_route: int = Field(default=2, ge=1)
    offline_threshold_minutes: int = Field(default=15, ge=0)


class MonitorConfig(BaseSettings):
    """Configuration for feed access, storage, scheduling and detection.

    Automatically loads from environment variables and .env file.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    # feed credentials (required to run the pipelines)
    api_token: str | None = Field(default=None, alias="API_TOKEN")
    base_url: str | None = Field(default=None, alias="GTFS_BASE_URL")
    agency: str | None = Field(default=None, alias="GTFS_AGENCY")
    feed_timeout_seconds: float = Field(default=30.0, alias="FEED_TIMEOUT", gt=0)

    db_path: Path = Field(default=Path("data/transit.db"), alias="TRANSIT_DB_PATH")

    fetch_interval_seconds: int = Field(default=30, alias="FETCH_INTERVAL", ge=1)
    monitor_interval_seconds: int = Field(default=60, alias="MONITOR_INTERVAL", ge=1)
    batch_size: int = Field(default=100, alias="BATCH_SIZE", ge=1)

    stopped_threshold_minutes: int = Field(default=5, alias="STOPPED_THRESHOLD_MINUTES", ge=0)
    bunching_distance_km: float = Field(default=1.0, alias="BUNCHING_DISTANCE_KM", ge=0)
    minimum_vehicles_per_route: int = Field(default=2, alias="MINIMUM_VEHICLES_PER_ROUTE", ge=1)
    offline_threshold_minutes: int = Field(default=15, alias="OFFLINE_THRESHOLD_MINUTES", ge=0)

    alert_capacity: int = Field(default=100, alias="ALERT_CAPACITY", ge=1)
    quiet_mode: bool = Field(default=True, alias="QUIET_MODE")

    @property
    def missing_feed_settings(self) -> list[str]:
        """Names of the required feed variables that are unset or empty."""
        required = {
            "API_TOKEN": self.api_token,
            "GTFS_BASE_URL": self.base_url,
            "GTFS_AGENCY": self.agency,
        }
        return [name for name, value in required.items() if not value]

    @property
    def is_feed_configured(self) -> bool:
        return not self.missing_feed_settings

    @property
    def feed_url(self) -> str | None:
        """VehiclePositions feed URL, or None when the feed is not configured."""
        if not self.is_feed_configured:
            return None
        return f"{self.base_url}?api_key={self.api_token}&agency={self.agency}"

    def require_feed(self) -> str:
        """Return the feed URL or fail fast.

        Raises:
            ConfigurationError: If any required feed variable is missing.
        """
        missing = self.missing_feed_settings
        if missing:
            raise ConfigurationError(
                f"Missing configuration: {', '.join(missing)}. Please check your .env file."
            )
        return self.feed_url  # type: ignore[return-value]

    def thresholds(self) -> Thresholds:
        return Thresholds(
            stopped_threshold_minutes=self.stopped_threshold_minutes,
            bunching_distance_km=self.bunching_distance_km,
            minimum_vehicles_per_route=self.minimum_vehicles_per_route,
            offline_threshold_minutes=self.offline_threshold_minutes,
        )


@lru_cache
def get_monitor_config() -> MonitorConfig:
    """Get monitor configuration (cached, used only at bootstrap).

    Returns:
        MonitorConfig with values from .env file or environment variables.
    """
    return MonitorConfig()

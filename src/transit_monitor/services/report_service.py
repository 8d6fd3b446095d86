"""Reporting access to the running monitor.

The MCP tools read statistics, alert counts and recent alerts through this
module. The server lifespan registers the TransitMonitor it owns with
``set_monitor``; without one, every function answers with
``monitor_available=False`` instead of failing.
"""

from transit_monitor.data.config import MonitorConfig, get_monitor_config
from transit_monitor.models.responses import (
    AlertSummaryResponse,
    IngestionStatisticsResponse,
    RecentAlertsResponse,
    ThresholdsResponse,
)
from transit_monitor.services.transit_monitor import TransitMonitor

# Set by the server lifespan while the pipelines run
_monitor: TransitMonitor | None = None


def set_monitor(monitor: TransitMonitor | None) -> None:
    """Register (or clear) the monitor the reporting functions read from."""
    global _monitor
    _monitor = monitor


def get_monitor() -> TransitMonitor | None:
    return _monitor


def get_ingestion_statistics() -> IngestionStatisticsResponse:
    """Snapshot of the ingestion counters."""
    if _monitor is None:
        return IngestionStatisticsResponse(monitor_available=False)

    stats = _monitor.ingest.get_statistics()
    return IngestionStatisticsResponse(
        statistics=stats,
        ingestion_rate=round(stats.ingestion_rate, 2),
        monitor_available=True,
    )


def get_alert_summary() -> AlertSummaryResponse:
    """Alert counts by type since the monitor started."""
    if _monitor is None:
        return AlertSummaryResponse(counts={}, total_alerts=0, monitor_available=False)

    return AlertSummaryResponse(
        counts=_monitor.aggregator.get_alert_counts(),
        total_alerts=_monitor.aggregator.total_alerts(),
        monitor_available=True,
    )


def get_recent_alerts(limit: int = 15) -> RecentAlertsResponse:
    """The most recent alerts, newest first.

    Args:
        limit: Maximum number of alerts to return.
    """
    if _monitor is None:
        return RecentAlertsResponse(alerts=[], count=0, monitor_available=False)

    alerts = list(reversed(_monitor.aggregator.get_recent_alerts(limit)))
    return RecentAlertsResponse(alerts=alerts, count=len(alerts), monitor_available=True)


def get_monitoring_thresholds() -> ThresholdsResponse:
    """Detector thresholds and schedule intervals in effect."""
    config: MonitorConfig = _monitor.config if _monitor is not None else get_monitor_config()
    thresholds = config.thresholds()
    return ThresholdsResponse(
        stopped_threshold_minutes=thresholds.stopped_threshold_minutes,
        bunching_distance_km=thresholds.bunching_distance_km,
        minimum_vehicles_per_route=thresholds.minimum_vehicles_per_route,
        offline_threshold_minutes=thresholds.offline_threshold_minutes,
        fetch_interval_seconds=config.fetch_interval_seconds,
        monitor_interval_seconds=config.monitor_interval_seconds,
    )


def reset_service() -> None:
    """Reset the service state completely. Useful for testing."""
    global _monitor
    _monitor = None
    if hasattr(get_monitor_config, "cache_clear"):
        get_monitor_config.cache_clear()

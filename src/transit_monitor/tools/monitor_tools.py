from transit_monitor.app import mcp
from transit_monitor.models.responses import (
    AlertSummaryResponse,
    IngestionStatisticsResponse,
    RecentAlertsResponse,
    ThresholdsResponse,
)
from transit_monitor.services import report_service


@mcp.tool()
def get_ingestion_statistics() -> IngestionStatisticsResponse:
    """Get statistics for the vehicle position ingestion pipeline.

    Returns total records fetched and stored since the pipeline started,
    the size and duration of the last fetch, running time, and the
    ingestion rate in records per second.

    When monitor_available is False the pipelines are not running
    (usually because the feed credentials are not configured).
    """
    return report_service.get_ingestion_statistics()


@mcp.tool()
def get_alert_summary() -> AlertSummaryResponse:
    """Get the number of service disruption alerts raised, by type.

    Types are DELAYED_VEHICLE (stopped too long), VEHICLE_BUNCHING (two
    vehicles on the same route too close together), LOW_ROUTE_COVERAGE
    (too few active vehicles on a route) and OFFLINE_VEHICLE (vehicle
    stopped reporting while its route is active).
    """
    return report_service.get_alert_summary()


@mcp.tool()
def get_recent_alerts(limit: int = 15) -> RecentAlertsResponse:
    """Get the most recent service disruption alerts, newest first.

    Severity is higher-is-worse for every type except VEHICLE_BUNCHING,
    where it is the gap between the two vehicles in hundredths of a km
    (lower means closer together).

    Args:
        limit: Maximum number of alerts to return (1-100, default: 15).

    Returns:
        RecentAlertsResponse with the alerts and their count.
    """
    # Validate and clamp limit to 1-100
    limit = max(1, min(100, limit))

    return report_service.get_recent_alerts(limit=limit)


@mcp.tool()
def get_monitoring_thresholds() -> ThresholdsResponse:
    """Get the detector thresholds and polling intervals in effect."""
    return report_service.get_monitoring_thresholds()

"""Tests for the monitoring MCP tools."""

from unittest.mock import patch

from transit_monitor.models.alerts import AlertType, ServiceAlert
from transit_monitor.models.responses import (
    AlertSummaryResponse,
    IngestionStatisticsResponse,
    IngestStats,
    RecentAlertsResponse,
)
from transit_monitor.tools.monitor_tools import (
    get_alert_summary,
    get_ingestion_statistics,
    get_monitoring_thresholds,
    get_recent_alerts,
)


def _create_mock_alerts_response(count: int = 3) -> RecentAlertsResponse:
    """Create a mock recent alerts response."""
    alerts = [
        ServiceAlert(
            type=AlertType.OFFLINE_VEHICLE,
            message=f"Vehicle V{i} on route R1 has not reported for {20 + i} minutes",
            route_id="R1",
            vehicle_id=f"V{i}",
            severity=20 + i,
        )
        for i in range(count)
    ]
    return RecentAlertsResponse(alerts=alerts, count=count, monitor_available=True)


def test_get_ingestion_statistics_delegates():
    response = IngestionStatisticsResponse(
        statistics=IngestStats(total_fetched=10, total_stored=10),
        monitor_available=True,
    )

    with patch(
        "transit_monitor.tools.monitor_tools.report_service.get_ingestion_statistics",
        return_value=response,
    ):
        result = get_ingestion_statistics()

    assert result is response


def test_get_alert_summary_delegates():
    response = AlertSummaryResponse(
        counts={AlertType.VEHICLE_BUNCHING: 4}, total_alerts=4, monitor_available=True
    )

    with patch(
        "transit_monitor.tools.monitor_tools.report_service.get_alert_summary",
        return_value=response,
    ):
        result = get_alert_summary()

    assert result.total_alerts == 4


def test_get_recent_alerts_default_limit():
    with patch(
        "transit_monitor.tools.monitor_tools.report_service.get_recent_alerts",
        return_value=_create_mock_alerts_response(),
    ) as mock_get:
        result = get_recent_alerts()

    mock_get.assert_called_once_with(limit=15)
    assert result.count == 3


def test_get_recent_alerts_limit_clamped():
    with patch(
        "transit_monitor.tools.monitor_tools.report_service.get_recent_alerts",
        return_value=_create_mock_alerts_response(),
    ) as mock_get:
        get_recent_alerts(limit=500)
        get_recent_alerts(limit=0)

    assert [call.kwargs["limit"] for call in mock_get.call_args_list] == [100, 1]


def test_get_monitoring_thresholds_without_monitor():
    from transit_monitor.services import report_service

    report_service.reset_service()
    result = get_monitoring_thresholds()

    assert result.minimum_vehicles_per_route >= 1
    assert result.fetch_interval_seconds >= 1

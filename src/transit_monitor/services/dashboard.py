"""Plain-text dashboard for the ``run`` command.

Formatting helpers are pure functions over snapshots; ``build_dashboard``
gathers the snapshots from a running TransitMonitor.
"""

from collections import Counter
from collections.abc import Sequence
from datetime import UTC, datetime

from transit_monitor.data.config import Thresholds
from transit_monitor.data.position_store import ACTIVE_WINDOW_MINUTES
from transit_monitor.models.alerts import AlertType, ServiceAlert
from transit_monitor.models.realtime import PositionRecord
from transit_monitor.models.responses import IngestStats, StatusCount, SystemSummary
from transit_monitor.services.transit_monitor import TransitMonitor

RULE = "=" * 60


def format_duration(seconds: int) -> str:
    """Format seconds as HH:MM:SS."""
    minutes, secs = divmod(max(seconds, 0), 60)
    hours, minutes = divmod(minutes, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def format_ingestion_status(stats: IngestStats) -> list[str]:
    lines = [
        f"• Status: {'Running' if stats.is_running else 'Stopped'}",
        f"• Records fetched: {stats.total_fetched}",
        f"• Records stored: {stats.total_stored}",
        f"• Last fetch count: {stats.last_fetch_count}",
    ]
    if stats.last_fetch_time_ms > 0:
        lines.append(f"• Last fetch time: {stats.last_fetch_time_ms}ms")
    if stats.running_time_ms > 0:
        lines.append(f"• Running time: {format_duration(stats.running_time_ms // 1000)}")
        if stats.total_fetched > 0:
            lines.append(f"• Ingestion rate: {stats.ingestion_rate:.2f} records/second")
    return lines


def format_alert_statistics(counts: dict[AlertType, int]) -> list[str]:
    if not any(counts.values()):
        return ["No alerts have been generated yet"]

    lines = [f"• {alert_type.value}: {count} alerts" for alert_type, count in counts.items()]
    lines.append(f"Total alerts detected: {sum(counts.values())}")
    return lines


def format_recent_alerts(alerts: Sequence[ServiceAlert], limit: int = 15) -> list[str]:
    """Newest alerts first, at most ``limit`` of them."""
    if not alerts:
        return ["No active alerts"]

    newest = list(reversed(alerts))[:limit]
    lines = [f"Found {len(alerts)} active alerts:"]
    lines.extend(f"• {alert.message} [{alert.created_at:%H:%M:%S}]" for alert in newest)
    return lines


def format_thresholds(thresholds: Thresholds) -> list[str]:
    return [
        f"• Delayed vehicle threshold: {thresholds.stopped_threshold_minutes} minutes",
        f"• Vehicle bunching distance: {thresholds.bunching_distance_km:g} km",
        f"• Minimum vehicles per route: {thresholds.minimum_vehicles_per_route}",
        f"• Vehicle offline threshold: {thresholds.offline_threshold_minutes} minutes",
    ]


def format_route_counts(counts: Sequence[tuple[str, int]], limit: int = 10) -> list[str]:
    if not counts:
        return ["No active vehicles found"]
    busiest = sorted(counts, key=lambda item: (-item[1], item[0]))[:limit]
    return [f"• Route {route_id:<8}: {count:3d} vehicles" for route_id, count in busiest]


def format_status_distribution(statuses: Sequence[StatusCount]) -> list[str]:
    if not statuses:
        return ["No status data available"]
    return [f"• {s.status:<15}: {s.vehicle_count:5d} vehicles" for s in statuses]


def format_system_summary(summary: SystemSummary) -> list[str]:
    lines = [
        f"• Total records: {summary.total_records}",
        f"• Unique vehicles: {summary.unique_vehicles}",
    ]
    if summary.oldest_observation is not None and summary.newest_observation is not None:
        oldest = datetime.fromtimestamp(summary.oldest_observation, UTC)
        newest = datetime.fromtimestamp(summary.newest_observation, UTC)
        lines.append(f"• Oldest record: {oldest:%Y-%m-%d %H:%M:%S}")
        lines.append(f"• Newest record: {newest:%Y-%m-%d %H:%M:%S}")
    return lines


def format_feed_summary(positions: Sequence[PositionRecord]) -> list[str]:
    """Describe one feed snapshot: routes, vehicles, statuses and extent."""
    if not positions:
        return ["No vehicle positions in feed"]

    routes = Counter(p.route_id for p in positions)
    statuses = Counter(p.status.value for p in positions)
    total = len(positions)

    lines = [
        f"• Unique routes: {len(routes)}",
        f"• Unique vehicles: {len({p.vehicle_id for p in positions})}",
        "",
        "Vehicle status distribution:",
    ]
    lines.extend(
        f"• {status}: {count} vehicles ({count * 100 / total:.1f}%)"
        for status, count in statuses.most_common()
    )
    lines.append("")
    lines.append("Top 5 routes by vehicle count:")
    lines.extend(f"• Route {route}: {count} vehicles" for route, count in routes.most_common(5))

    latitudes = [p.latitude for p in positions]
    longitudes = [p.longitude for p in positions]
    lines.append("")
    lines.append("Geographic coverage:")
    lines.append(f"• Latitude range: {min(latitudes)} to {max(latitudes)}")
    lines.append(f"• Longitude range: {min(longitudes)} to {max(longitudes)}")
    return lines


def _section(title: str, lines: list[str]) -> list[str]:
    return ["", title, *lines]


async def build_dashboard(monitor: TransitMonitor, now: datetime | None = None) -> str:
    """Render the full dashboard for a running monitor."""
    if now is None:
        now = datetime.now(UTC)

    store = monitor.store
    route_counts = await store.route_vehicle_counts(now, max_age_minutes=ACTIVE_WINDOW_MINUTES)
    statuses = await store.status_distribution(now)
    summary = await store.system_summary()

    lines = [RULE, "TRANSIT MONITORING DASHBOARD", f"Current time: {now:%Y-%m-%d %H:%M:%S}", RULE]
    lines += _section("ACTIVE VEHICLES BY ROUTE", format_route_counts(route_counts))
    lines += _section("VEHICLE STATUS DISTRIBUTION", format_status_distribution(statuses))
    lines += _section("DATA INGESTION STATUS", format_ingestion_status(monitor.ingest.get_statistics()))
    lines += _section("ALERT STATISTICS", format_alert_statistics(monitor.aggregator.get_alert_counts()))
    lines += _section("RECENT ALERTS", format_recent_alerts(monitor.aggregator.get_recent_alerts()))
    lines += _section("SYSTEM STATISTICS", format_system_summary(summary))
    lines += _section("MONITORING THRESHOLDS", format_thresholds(monitor.thresholds))
    lines.append(RULE)
    return "\n".join(lines)

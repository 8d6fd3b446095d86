import argparse
import asyncio
import logging
import signal
import sys
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel

from transit_monitor.app import mcp
from transit_monitor.data.config import MonitorConfig, get_monitor_config
from transit_monitor.exceptions import ConfigurationError, TransientFetchError
from transit_monitor.tools import monitor_tools  # noqa: F401  (registers the tools)

logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    timestamp: str
    monitoring: bool


@mcp.tool()
def health() -> HealthResponse:
    """Check if the transit monitor server is running and healthy.

    Returns the server status, version, current timestamp, and whether the
    ingestion and monitoring pipelines are active.
    """
    from transit_monitor import __version__
    from transit_monitor.services.report_service import get_monitor

    monitor = get_monitor()
    return HealthResponse(
        status="ok",
        version=__version__,
        timestamp=datetime.now(UTC).isoformat(),
        monitoring=monitor is not None and monitor.is_running,
    )


async def run_init_db(db_path: Path) -> None:
    """Create the position store schema."""
    from transit_monitor.data.position_store import PositionStore

    await PositionStore(db_path).initialize()
    print(f"Position store ready at {db_path}")


async def run_check_feed(config: MonitorConfig) -> None:
    """Fetch one snapshot from the feed and summarize it."""
    from transit_monitor.data.gtfsrt_client import GTFSRTClient
    from transit_monitor.services.dashboard import format_feed_summary

    async with GTFSRTClient(config) as client:
        positions = await client.fetch_positions()

    print(f"\nFetched {len(positions)} vehicle positions")
    for line in format_feed_summary(positions):
        print(line)


async def run_monitor(config: MonitorConfig, dashboard_interval: float) -> None:
    """Run both pipelines and print the dashboard until interrupted."""
    from transit_monitor.services.dashboard import build_dashboard
    from transit_monitor.services.transit_monitor import TransitMonitor

    stop_requested = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_requested.set)
        except NotImplementedError:
            # Windows event loops: Ctrl-C surfaces as KeyboardInterrupt instead
            pass

    async with TransitMonitor(config) as monitor:
        print("Transit monitoring system is running. Press Ctrl-C to exit.")
        while not stop_requested.is_set():
            try:
                await asyncio.wait_for(stop_requested.wait(), timeout=dashboard_interval)
            except TimeoutError:
                try:
                    print(await build_dashboard(monitor))
                except Exception:
                    logger.exception("Dashboard error")
        print("Stopping transit monitoring system")

    print("System stopped")


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="transit-monitor",
        description="Transit service disruption monitor",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    subparsers = parser.add_subparsers(dest="command")

    # init-db command
    init_parser = subparsers.add_parser(
        "init-db",
        help="Create the SQLite position store",
    )
    init_parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="SQLite database path (default: data/transit.db or TRANSIT_DB_PATH env var)",
    )

    # check-feed command
    subparsers.add_parser(
        "check-feed",
        help="Fetch the vehicle positions feed once and summarize it",
    )

    # run command
    run_parser = subparsers.add_parser(
        "run",
        help="Run ingestion and monitoring with a terminal dashboard",
    )
    run_parser.add_argument(
        "--dashboard-interval",
        type=float,
        default=10.0,
        help="Seconds between dashboard refreshes (default: 10)",
    )
    run_parser.add_argument(
        "--show-alerts",
        action="store_true",
        help="Log every alert as it is raised (disables quiet mode)",
    )

    # serve command (default)
    subparsers.add_parser(
        "serve",
        help="Run the MCP server (default)",
    )

    args = parser.parse_args()

    # Configure logging
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    config = get_monitor_config()

    try:
        if args.command == "init-db":
            asyncio.run(run_init_db(args.db or config.db_path))
        elif args.command == "check-feed":
            config.require_feed()
            asyncio.run(run_check_feed(config))
        elif args.command == "run":
            config.require_feed()
            if args.show_alerts:
                config = config.model_copy(update={"quiet_mode": False})
            asyncio.run(run_monitor(config, args.dashboard_interval))
        else:
            # Default: run MCP server
            mcp.run()
    except ConfigurationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(2)
    except TransientFetchError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()

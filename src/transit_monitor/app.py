"""MCP application instance.

This module exists to avoid circular import issues when running with `python -m`.
All tool modules should import `mcp` from here, not from server.py.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from mcp.server.fastmcp import FastMCP

logger = logging.getLogger(__name__)


@asynccontextmanager
async def monitor_lifespan(server: FastMCP) -> AsyncIterator[None]:
    """Run the ingestion and monitoring pipelines for as long as the server runs.

    Without feed credentials the server still starts; the reporting tools
    then answer with monitor_available=False.
    """
    from transit_monitor.data.config import get_monitor_config
    from transit_monitor.services import report_service
    from transit_monitor.services.transit_monitor import TransitMonitor

    config = get_monitor_config()
    if not config.is_feed_configured:
        logger.warning(
            f"Feed not configured (missing {', '.join(config.missing_feed_settings)}); "
            "serving without live monitoring"
        )
        yield
        return

    async with TransitMonitor(config) as monitor:
        report_service.set_monitor(monitor)
        try:
            yield
        finally:
            report_service.set_monitor(None)


# Initialize the MCP server
mcp = FastMCP(
    "Transit Monitor",
    instructions="Live transit service monitoring - ingestion statistics and disruption alerts",
    lifespan=monitor_lifespan,
)

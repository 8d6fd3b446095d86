"""Owns the lifecycle of the store, feed client and both pipelines."""

import logging
from contextlib import AsyncExitStack

from transit_monitor.data.config import MonitorConfig
from transit_monitor.data.gtfsrt_client import GTFSRTClient
from transit_monitor.data.position_store import PositionStore
from transit_monitor.data.protocols import PositionFeed
from transit_monitor.services.alert_aggregator import AlertAggregator
from transit_monitor.services.ingest_service import IngestPipeline
from transit_monitor.services.monitor_service import MonitorPipeline

logger = logging.getLogger(__name__)


class TransitMonitor:
    """Wires the ingestion and monitoring pipelines from one configuration.

    Usage:
        async with TransitMonitor(config) as monitor:
            stats = monitor.ingest.get_statistics()
    """

    def __init__(
        self,
        config: MonitorConfig,
        feed: PositionFeed | None = None,
        store: PositionStore | None = None,
    ):
        """Initialize the monitor.

        Args:
            config: Settings for every component.
            feed: Position source; defaults to a GTFSRTClient opened on start().
            store: Position store; defaults to a PositionStore at config.db_path.
        """
        self.config = config
        self.thresholds = config.thresholds()
        self.store = store or PositionStore(config.db_path)

        self._client: GTFSRTClient | None = None
        if feed is None:
            self._client = GTFSRTClient(config)
            feed = self._client

        self.aggregator = AlertAggregator(
            capacity=config.alert_capacity, quiet_mode=config.quiet_mode
        )
        self.ingest = IngestPipeline(feed, self.store, batch_size=config.batch_size)
        self.monitor = MonitorPipeline(self.store, self.aggregator, self.thresholds)
        self._exit_stack: AsyncExitStack | None = None

    @property
    def is_running(self) -> bool:
        return self.ingest.is_running or self.monitor.is_running

    async def start(self) -> None:
        """Prepare the store and start both schedules.

        Raises:
            ConfigurationError: If the default feed client is used and its
                settings are missing. Nothing is scheduled in that case.
        """
        if self.is_running:
            logger.warning("Transit monitor is already running")
            return

        if self._client is not None:
            self.config.require_feed()

        await self.store.initialize()

        self._exit_stack = AsyncExitStack()
        if self._client is not None:
            await self._exit_stack.enter_async_context(self._client)

        self.ingest.start(self.config.fetch_interval_seconds)
        self.monitor.start(self.config.monitor_interval_seconds)

    async def stop(self) -> None:
        """Stop both schedules and release the feed client."""
        try:
            await self.monitor.stop()
        finally:
            try:
                await self.ingest.stop()
            finally:
                if self._exit_stack is not None:
                    await self._exit_stack.aclose()
                    self._exit_stack = None

    async def __aenter__(self) -> "TransitMonitor":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

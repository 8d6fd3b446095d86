"""Periodic evaluation of the disruption detectors.

Each monitoring tick runs every detector in order against the position
store and records what they find in the alert aggregator.
"""

import logging
from collections.abc import Sequence
from datetime import UTC, datetime

from transit_monitor.data.config import Thresholds
from transit_monitor.data.protocols import PositionQuery
from transit_monitor.models.alerts import ServiceAlert
from transit_monitor.services.alert_aggregator import AlertAggregator
from transit_monitor.services.detectors import Detector, default_detectors
from transit_monitor.services.scheduler import PeriodicTask

logger = logging.getLogger(__name__)

DEFAULT_INITIAL_DELAY = 5.0
DEFAULT_STOP_TIMEOUT = 10.0


class MonitorPipeline:
    """Runs the detectors on a fixed interval and feeds the aggregator."""

    def __init__(
        self,
        store: PositionQuery,
        aggregator: AlertAggregator,
        thresholds: Thresholds | None = None,
        detectors: Sequence[Detector] | None = None,
    ):
        """Initialize the pipeline.

        Args:
            store: Source of latest-position queries.
            aggregator: Receives every alert raised.
            thresholds: Detector tunables (defaults when omitted).
            detectors: Overrides the default four detectors.
        """
        self._store = store
        self._aggregator = aggregator
        self.thresholds = thresholds or Thresholds()
        self._detectors = list(detectors) if detectors is not None else default_detectors(self.thresholds)
        self._ticker = PeriodicTask("service-monitor", self.run_once)

    @property
    def detectors(self) -> list[Detector]:
        return list(self._detectors)

    @property
    def is_running(self) -> bool:
        return self._ticker.is_running

    def start(self, interval_seconds: float, initial_delay: float = DEFAULT_INITIAL_DELAY) -> bool:
        """Start periodic monitoring.

        Alert counters and the recent-alert buffer are cleared once the
        schedule is accepted.

        Returns:
            True if monitoring was started, False if it was already running.
        """
        if not self._ticker.start(interval_seconds, initial_delay):
            return False
        self._aggregator.reset()
        logger.info(
            f"Starting service disruption monitoring (polling every {interval_seconds} seconds)"
        )
        return True

    async def stop(self, timeout: float = DEFAULT_STOP_TIMEOUT) -> bool:
        stopped = await self._ticker.stop(timeout)
        if stopped:
            logger.info("Service monitoring stopped")
        return stopped

    def stop_threadsafe(self, timeout: float = DEFAULT_STOP_TIMEOUT) -> bool:
        return self._ticker.stop_threadsafe(timeout)

    async def run_once(self, now: datetime | None = None) -> list[ServiceAlert]:
        """Run every detector once.

        A failing detector is logged and skipped; the others still run.

        Args:
            now: Reference time for age computations (defaults to current UTC time).

        Returns:
            All alerts raised during this cycle, in detector order.
        """
        if now is None:
            now = datetime.now(UTC)

        cycle_alerts: list[ServiceAlert] = []
        for detector in self._detectors:
            try:
                alerts = await detector.evaluate(self._store, now)
            except Exception:
                logger.exception(f"Error checking for {detector.label}")
                continue

            for alert in alerts:
                self._aggregator.record_alert(alert)
            if alerts:
                logger.info(f"Found {len(alerts)} {detector.label}")
            cycle_alerts.extend(alerts)

        return cycle_alerts

"""Bounded alert history and per-type counters.

Detectors record alerts from the monitoring task while reporting code may
read from any other thread, so every access goes through one lock and
readers only ever get copies.
"""

import logging
import threading
from collections import deque

from transit_monitor.models.alerts import AlertType, ServiceAlert

logger = logging.getLogger(__name__)

DEFAULT_ALERT_CAPACITY = 100


class AlertAggregator:
    """Counts alerts by type and keeps the most recent ones."""

    def __init__(self, capacity: int = DEFAULT_ALERT_CAPACITY, quiet_mode: bool = False):
        """Initialize the aggregator.

        Args:
            capacity: Maximum number of alerts kept; the oldest is evicted first.
            quiet_mode: If True, recorded alerts are not logged individually.

        Raises:
            ValueError: If capacity is less than 1.
        """
        if capacity < 1:
            raise ValueError("Alert capacity must be at least 1")

        self._capacity = capacity
        self._quiet_mode = quiet_mode
        self._lock = threading.Lock()
        self._counts: dict[AlertType, int] = {alert_type: 0 for alert_type in AlertType}
        self._recent: deque[ServiceAlert] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def quiet_mode(self) -> bool:
        return self._quiet_mode

    @quiet_mode.setter
    def quiet_mode(self, value: bool) -> None:
        self._quiet_mode = value

    def record_alert(self, alert: ServiceAlert) -> None:
        """Count the alert and append it to the recent history."""
        with self._lock:
            self._counts[alert.type] += 1
            self._recent.append(alert)

        if not self._quiet_mode:
            logger.warning(f"ALERT: {alert.message}")

    def get_alert_counts(self) -> dict[AlertType, int]:
        """Return a copy of the per-type counters."""
        with self._lock:
            return dict(self._counts)

    def get_recent_alerts(self, limit: int | None = None) -> list[ServiceAlert]:
        """Return a copy of the recent alerts, oldest first.

        Args:
            limit: If given, only the last ``limit`` alerts.
        """
        with self._lock:
            alerts = list(self._recent)
        if limit is not None:
            return alerts[-limit:] if limit > 0 else []
        return alerts

    def total_alerts(self) -> int:
        with self._lock:
            return sum(self._counts.values())

    def reset(self) -> None:
        """Zero the counters and drop the history."""
        with self._lock:
            self._counts = {alert_type: 0 for alert_type in AlertType}
            self._recent.clear()

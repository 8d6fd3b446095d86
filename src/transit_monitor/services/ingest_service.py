"""Periodic ingestion of vehicle positions: fetch, batch, store, count.

Every tick fetches a full snapshot from the feed and writes it in
fixed-size batches, one transaction per batch. A failing batch does not
stop the remaining ones, and a failing tick never ends the schedule.
"""

import logging
import threading
import time
from collections.abc import Iterator, Sequence

from transit_monitor.data.protocols import PositionFeed, PositionSink
from transit_monitor.exceptions import PartialStorageError, StorageError, TransientFetchError
from transit_monitor.models.realtime import PositionRecord
from transit_monitor.models.responses import IngestStats
from transit_monitor.services.scheduler import PeriodicTask

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100
DEFAULT_STOP_TIMEOUT = 5.0


def batch_positions(
    positions: Sequence[PositionRecord], batch_size: int
) -> Iterator[Sequence[PositionRecord]]:
    """Split positions into consecutive chunks of at most batch_size.

    Raises:
        ValueError: If batch_size is less than 1.
    """
    if batch_size < 1:
        raise ValueError("Batch size must be at least 1")
    for start in range(0, len(positions), batch_size):
        yield positions[start : start + batch_size]


class IngestPipeline:
    """Fetches positions from a feed and stores them on a fixed interval."""

    def __init__(
        self,
        feed: PositionFeed,
        store: PositionSink,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        """Initialize the pipeline.

        Args:
            feed: Source of position snapshots.
            store: Transactional batch writer.
            batch_size: Records per write transaction.
        """
        self._feed = feed
        self._store = store
        self._batch_size = DEFAULT_BATCH_SIZE
        self.with_batch_size(batch_size)

        self._ticker = PeriodicTask("data-ingestion", self.run_once)

        # counters are read from reporting threads
        self._lock = threading.Lock()
        self._total_fetched = 0
        self._total_stored = 0
        self._last_fetch_count = 0
        self._last_fetch_time_ms = 0
        self._started_at: float | None = None
        self._stopped_at: float | None = None

    @property
    def batch_size(self) -> int:
        return self._batch_size

    @property
    def is_running(self) -> bool:
        return self._ticker.is_running

    def with_batch_size(self, batch_size: int) -> "IngestPipeline":
        """Set the number of records written per transaction.

        Raises:
            ValueError: If batch_size is less than 1.
        """
        if batch_size < 1:
            raise ValueError("Batch size must be at least 1")
        self._batch_size = batch_size
        return self

    def start(self, interval_seconds: float) -> bool:
        """Start periodic ingestion; the first tick runs immediately.

        Counters are reset to zero. Does nothing if already running.

        Returns:
            True if ingestion was started.
        """
        if self._ticker.is_running:
            logger.warning("Ingestion service is already running. Stop it first before restarting.")
            return False

        with self._lock:
            self._total_fetched = 0
            self._total_stored = 0
            self._last_fetch_count = 0
            self._last_fetch_time_ms = 0
            self._started_at = time.monotonic()
            self._stopped_at = None

        self._ticker.start(interval_seconds)
        logger.info(f"Data ingestion service started with {interval_seconds} second interval")
        return True

    async def stop(self, timeout: float = DEFAULT_STOP_TIMEOUT) -> bool:
        """Stop periodic ingestion, waiting up to timeout for the current tick.

        Returns:
            True if a running schedule was stopped.
        """
        stopped = await self._ticker.stop(timeout)
        if stopped:
            with self._lock:
                self._stopped_at = time.monotonic()
            logger.info("Data ingestion service stopped")
        return stopped

    def stop_threadsafe(self, timeout: float = DEFAULT_STOP_TIMEOUT) -> bool:
        """Stop ingestion from a thread other than the event loop's."""
        stopped = self._ticker.stop_threadsafe(timeout)
        if stopped:
            with self._lock:
                self._stopped_at = time.monotonic()
        return stopped

    async def run_once(self) -> int:
        """Run one fetch-and-store tick.

        Never raises (other than cancellation); failures are logged.

        Returns:
            Number of records stored during this tick.
        """
        tick_start = time.monotonic()
        stored = 0
        try:
            positions = await self._feed.fetch_positions()

            with self._lock:
                self._last_fetch_count = len(positions)
                self._total_fetched += len(positions)

            if not positions:
                logger.info("No vehicle positions fetched from feed")
                return 0

            stored = await self._store_positions(positions)
            logger.info(f"Fetched {len(positions)} and stored {stored} vehicle positions")
        except TransientFetchError as e:
            logger.warning(f"Error in data ingestion: {e}")
        except Exception:
            logger.exception("Unexpected error in data ingestion")
        finally:
            with self._lock:
                self._last_fetch_time_ms = int((time.monotonic() - tick_start) * 1000)

        return stored

    async def _store_positions(self, positions: Sequence[PositionRecord]) -> int:
        """Write positions batch by batch and return how many were stored."""
        stored = 0
        for index, batch in enumerate(batch_positions(positions, self._batch_size)):
            try:
                written = await self._write_batch(index, batch)
            except PartialStorageError as e:
                logger.error(f"Error storing vehicle positions: {e}")
                continue

            stored += written
            # per batch, so a later failure keeps the earlier batches counted
            with self._lock:
                self._total_stored += written

        return stored

    async def _write_batch(self, index: int, batch: Sequence[PositionRecord]) -> int:
        try:
            return await self._store.upsert_positions(batch)
        except StorageError as e:
            raise PartialStorageError(
                f"Batch {index} ({len(batch)} records) failed: {e}",
                batch_index=index,
                batch_size=len(batch),
            ) from e

    def get_statistics(self) -> IngestStats:
        """Return a snapshot of the ingestion counters."""
        with self._lock:
            if self._started_at is None:
                running_time_ms = 0
            else:
                end = self._stopped_at if self._stopped_at is not None else time.monotonic()
                running_time_ms = int((end - self._started_at) * 1000)

            return IngestStats(
                total_fetched=self._total_fetched,
                total_stored=self._total_stored,
                last_fetch_count=self._last_fetch_count,
                last_fetch_time_ms=self._last_fetch_time_ms,
                running_time_ms=running_time_ms,
                is_running=self._ticker.is_running,
            )

"""Exception hierarchy for transit_monitor."""

import asyncio


class TransitMonitorError(Exception):
    """Base exception for all transit_monitor errors."""


class ConfigurationError(TransitMonitorError):
    """Required settings are missing or invalid.

    Raised before any schedule starts; retrying will not help.
    """


class TransientFetchError(TransitMonitorError):
    """The position feed was unreachable or returned a malformed payload."""


class StorageError(TransitMonitorError):
    """A write to the position store failed."""


class PartialStorageError(StorageError):
    """One batch within an ingestion tick could not be written."""

    def __init__(self, message: str, *, batch_index: int, batch_size: int) -> None:
        self.batch_index = batch_index
        self.batch_size = batch_size
        super().__init__(message)


class SchedulerShutdownError(asyncio.CancelledError):
    """Graceful drain was interrupted and the ticker was force-cancelled.

    Subclasses CancelledError so the interruption keeps propagating to
    whoever cancelled the caller of ``stop()``.
    """

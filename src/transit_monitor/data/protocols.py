"""Capabilities the pipelines need from their collaborators.

The ingestion pipeline only needs something that fetches positions and
something that stores them; the detectors only need the analytic queries.
Anything implementing these methods can be injected, which is how the
tests swap in fakes.
"""

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol

from transit_monitor.models.realtime import (
    LatestPosition,
    PositionRecord,
    VehiclePair,
    VehicleStatus,
)


class PositionFeed(Protocol):
    async def fetch_positions(self) -> list[PositionRecord]:
        """Return a full snapshot of currently broadcast vehicles.

        Raises:
            TransientFetchError: If the feed is unreachable or malformed.
        """
        ...


class PositionSink(Protocol):
    async def upsert_positions(self, batch: Sequence[PositionRecord]) -> int:
        """Write one batch atomically and return the number of rows written.

        Raises:
            StorageError: If the batch could not be written.
        """
        ...


class PositionQuery(Protocol):
    async def latest_positions(
        self,
        now: datetime,
        *,
        status: VehicleStatus | None = None,
        max_age_minutes: int | None = None,
        min_age_minutes: int | None = None,
        active_routes_only: bool = False,
    ) -> list[LatestPosition]: ...

    async def route_vehicle_counts(
        self, now: datetime, *, max_age_minutes: int
    ) -> list[tuple[str, int]]: ...

    async def same_route_pairs(
        self, now: datetime, *, status: VehicleStatus | None = None
    ) -> list[VehiclePair]: ...

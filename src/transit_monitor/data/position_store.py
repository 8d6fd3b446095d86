"""SQLite store for vehicle position history.

Positions are append-only rows keyed by ``(vehicle_id, observed_at)``.
Nothing here caches a vehicle's current position: every detector query
resolves the latest row per vehicle on the fly through ``LATEST_POSITIONS_CTE``.
"""

import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiosqlite

from transit_monitor.data.database import get_db
from transit_monitor.exceptions import StorageError
from transit_monitor.models.realtime import (
    LatestPosition,
    PositionRecord,
    VehiclePair,
    VehicleStatus,
)
from transit_monitor.models.responses import StatusCount, SystemSummary

logger = logging.getLogger(__name__)

# A vehicle whose latest report is younger than this counts as active.
ACTIVE_WINDOW_MINUTES = 15

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS vehicle_positions (
    vehicle_id TEXT NOT NULL,
    route_id TEXT NOT NULL,
    latitude REAL NOT NULL,
    longitude REAL NOT NULL,
    observed_at INTEGER NOT NULL,
    status TEXT NOT NULL,
    PRIMARY KEY (vehicle_id, observed_at)
);

CREATE INDEX IF NOT EXISTS idx_positions_route ON vehicle_positions(route_id);
CREATE INDEX IF NOT EXISTS idx_positions_observed ON vehicle_positions(observed_at);
"""

UPSERT_SQL = """
INSERT INTO vehicle_positions (vehicle_id, route_id, latitude, longitude, observed_at, status)
VALUES (?, ?, ?, ?, ?, ?)
ON CONFLICT (vehicle_id, observed_at) DO UPDATE SET
    route_id = excluded.route_id,
    latitude = excluded.latitude,
    longitude = excluded.longitude,
    status = excluded.status
"""

# Latest position per vehicle. Age is integer division, i.e. whole minutes, truncated.
LATEST_POSITIONS_CTE = """
WITH latest AS (
    SELECT v.vehicle_id, v.route_id, v.latitude, v.longitude, v.observed_at, v.status,
           (:now - v.observed_at) / 60 AS age_minutes
    FROM vehicle_positions v
    JOIN (
        SELECT vehicle_id, MAX(observed_at) AS latest_ts
        FROM vehicle_positions
        GROUP BY vehicle_id
    ) l ON v.vehicle_id = l.vehicle_id AND v.observed_at = l.latest_ts
)
"""

_LATEST_COLUMNS = (
    "vehicle_id",
    "route_id",
    "latitude",
    "longitude",
    "observed_at",
    "status",
    "age_minutes",
)


def to_epoch_seconds(value: datetime) -> int:
    """Convert a datetime to whole unix seconds (naive values are taken as UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return int(value.timestamp())


def _record_to_row(record: PositionRecord) -> tuple[Any, ...]:
    return (
        record.vehicle_id,
        record.route_id,
        record.latitude,
        record.longitude,
        to_epoch_seconds(record.observed_at),
        record.status.value,
    )


def _row_to_latest(row: aiosqlite.Row, prefix: str = "") -> LatestPosition:
    """Convert a database row (optionally with prefixed columns) to a LatestPosition."""
    try:
        status = VehicleStatus(row[f"{prefix}status"])
    except ValueError:
        status = VehicleStatus.UNKNOWN
    return LatestPosition(
        vehicle_id=row[f"{prefix}vehicle_id"],
        route_id=row[f"{prefix}route_id"],
        latitude=float(row[f"{prefix}latitude"]),
        longitude=float(row[f"{prefix}longitude"]),
        observed_at=datetime.fromtimestamp(row[f"{prefix}observed_at"], UTC),
        status=status,
        age_minutes=int(row[f"{prefix}age_minutes"]),
    )


class PositionStore:
    """Position history backed by a SQLite file.

    Every operation opens its own connection, so a write transaction from
    the ingestion pipeline is never shared with a detector query.
    """

    def __init__(self, db_path: Path):
        """Initialize the store.

        Args:
            db_path: Path of the SQLite database file.
        """
        self.db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the schema if it does not exist yet. Safe to call repeatedly."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(self.db_path) as db:
            # WAL lets detector reads proceed while an ingestion batch commits
            await db.execute("PRAGMA journal_mode=WAL")
            await db.executescript(SCHEMA_SQL)
            await db.commit()
        logger.info(f"Position store ready at {self.db_path}")

    async def upsert_positions(self, batch: Sequence[PositionRecord]) -> int:
        """Write a batch of positions in a single transaction.

        Args:
            batch: Position records; re-sent identities overwrite the stored row.

        Returns:
            Number of records written.

        Raises:
            StorageError: If the transaction failed; nothing from the batch is kept.
        """
        if not batch:
            return 0

        rows = [_record_to_row(record) for record in batch]
        try:
            async with get_db(self.db_path) as db:
                # uncommitted work is discarded when the connection closes
                await db.executemany(UPSERT_SQL, rows)
                await db.commit()
        except (aiosqlite.Error, FileNotFoundError) as e:
            raise StorageError(f"Failed to write {len(rows)} positions: {e}") from e

        return len(rows)

    async def latest_positions(
        self,
        now: datetime,
        *,
        status: VehicleStatus | None = None,
        max_age_minutes: int | None = None,
        min_age_minutes: int | None = None,
        active_routes_only: bool = False,
    ) -> list[LatestPosition]:
        """Resolve the latest position of every vehicle.

        Args:
            now: Reference time for the age computation.
            status: Keep only vehicles whose latest status matches.
            max_age_minutes: Keep only positions strictly younger than this.
            min_age_minutes: Keep only positions at least this old.
            active_routes_only: Keep only vehicles on routes that have at least
                one vehicle reported within ACTIVE_WINDOW_MINUTES.

        Returns:
            LatestPosition rows ordered by vehicle_id.
        """
        conditions: list[str] = []
        params: dict[str, Any] = {"now": to_epoch_seconds(now)}

        if status is not None:
            conditions.append("status = :status")
            params["status"] = status.value
        if max_age_minutes is not None:
            conditions.append("age_minutes < :max_age")
            params["max_age"] = max_age_minutes
        if min_age_minutes is not None:
            conditions.append("age_minutes >= :min_age")
            params["min_age"] = min_age_minutes
        if active_routes_only:
            conditions.append(
                "route_id IN (SELECT route_id FROM latest WHERE age_minutes < :active_window)"
            )
            params["active_window"] = ACTIVE_WINDOW_MINUTES

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        sql = f"""
            {LATEST_POSITIONS_CTE}
            SELECT {", ".join(_LATEST_COLUMNS)}
            FROM latest
            {where}
            ORDER BY vehicle_id
        """

        async with get_db(self.db_path) as db:
            async with db.execute(sql, params) as cursor:
                rows = await cursor.fetchall()

        return [_row_to_latest(row) for row in rows]

    async def route_vehicle_counts(
        self, now: datetime, *, max_age_minutes: int
    ) -> list[tuple[str, int]]:
        """Count distinct vehicles per route among positions younger than max_age_minutes.

        Routes without any such vehicle do not appear.

        Returns:
            (route_id, vehicle_count) pairs, fewest vehicles first.
        """
        sql = f"""
            {LATEST_POSITIONS_CTE}
            SELECT route_id, COUNT(DISTINCT vehicle_id) AS vehicle_count
            FROM latest
            WHERE age_minutes < :max_age
            GROUP BY route_id
            ORDER BY vehicle_count, route_id
        """
        params = {"now": to_epoch_seconds(now), "max_age": max_age_minutes}

        async with get_db(self.db_path) as db:
            async with db.execute(sql, params) as cursor:
                rows = await cursor.fetchall()

        return [(row["route_id"], int(row["vehicle_count"])) for row in rows]

    async def same_route_pairs(
        self, now: datetime, *, status: VehicleStatus | None = None
    ) -> list[VehiclePair]:
        """List every unordered pair of vehicles sharing a route.

        Each pair appears once, with the lexically smaller vehicle_id first.

        Args:
            now: Reference time for the age computation.
            status: Consider only vehicles whose latest status matches.
        """
        where = "WHERE status = :status" if status is not None else ""
        params: dict[str, Any] = {"now": to_epoch_seconds(now)}
        if status is not None:
            params["status"] = status.value

        a_columns = ", ".join(f"a.{col} AS a_{col}" for col in _LATEST_COLUMNS)
        b_columns = ", ".join(f"b.{col} AS b_{col}" for col in _LATEST_COLUMNS)
        sql = f"""
            {LATEST_POSITIONS_CTE},
            candidates AS (
                SELECT * FROM latest {where}
            )
            SELECT {a_columns}, {b_columns}
            FROM candidates a
            JOIN candidates b ON a.route_id = b.route_id AND a.vehicle_id < b.vehicle_id
            ORDER BY a.route_id, a.vehicle_id, b.vehicle_id
        """

        async with get_db(self.db_path) as db:
            async with db.execute(sql, params) as cursor:
                rows = await cursor.fetchall()

        return [
            VehiclePair(first=_row_to_latest(row, "a_"), second=_row_to_latest(row, "b_"))
            for row in rows
        ]

    async def status_distribution(
        self, now: datetime, *, max_age_minutes: int = ACTIVE_WINDOW_MINUTES
    ) -> list[StatusCount]:
        """Count recently reporting vehicles by their latest status."""
        sql = f"""
            {LATEST_POSITIONS_CTE}
            SELECT status, COUNT(*) AS vehicle_count
            FROM latest
            WHERE age_minutes < :max_age
            GROUP BY status
            ORDER BY vehicle_count DESC, status
        """
        params = {"now": to_epoch_seconds(now), "max_age": max_age_minutes}

        async with get_db(self.db_path) as db:
            async with db.execute(sql, params) as cursor:
                rows = await cursor.fetchall()

        return [StatusCount(status=row["status"], vehicle_count=row["vehicle_count"]) for row in rows]

    async def system_summary(self) -> SystemSummary:
        """Totals over the whole position history."""
        sql = """
            SELECT COUNT(*) AS total_records,
                   COUNT(DISTINCT vehicle_id) AS unique_vehicles,
                   MIN(observed_at) AS oldest,
                   MAX(observed_at) AS newest
            FROM vehicle_positions
        """
        async with get_db(self.db_path) as db:
            async with db.execute(sql) as cursor:
                row = await cursor.fetchone()

        if row is None:
            return SystemSummary(total_records=0, unique_vehicles=0)

        return SystemSummary(
            total_records=row["total_records"],
            unique_vehicles=row["unique_vehicles"],
            oldest_observation=row["oldest"],
            newest_observation=row["newest"],
        )

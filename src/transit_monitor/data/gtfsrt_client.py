from datetime import UTC, datetime

import httpx
from google.protobuf.message import DecodeError
from google.transit import gtfs_realtime_pb2

from transit_monitor.data.config import MonitorConfig
from transit_monitor.exceptions import TransientFetchError
from transit_monitor.models.realtime import PositionRecord, VehicleStatus


class GTFSRTClient:
    """Async HTTP client for the GTFS-RT vehicle positions feed.

    Each fetch returns a full snapshot of the vehicles currently broadcast.

    Usage:
        async with GTFSRTClient(config) as client:
            positions = await client.fetch_positions()
    """

    def __init__(self, config: MonitorConfig):
        """Initialize the client.

        Args:
            config: Monitor configuration with feed credentials and timeout.
        """
        self._config = config
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "GTFSRTClient":
        """Enter async context - create HTTP client."""
        self._client = httpx.AsyncClient(timeout=self._config.feed_timeout_seconds)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context - close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def fetch_positions(self) -> list[PositionRecord]:
        """Fetch and parse the vehicle positions feed.

        Returns:
            PositionRecord for every entity carrying a vehicle, trip and position.

        Raises:
            RuntimeError: If client not initialized.
            ConfigurationError: If the feed settings are missing.
            TransientFetchError: If the request fails or the payload can't be decoded.
        """
        if not self._client:
            raise RuntimeError("Client not initialized - use 'async with'")

        url = self._config.require_feed()

        try:
            response = await self._client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise TransientFetchError(f"Error fetching GTFS feed: {e}") from e

        feed = gtfs_realtime_pb2.FeedMessage()
        try:
            feed.ParseFromString(response.content)
        except DecodeError as e:
            raise TransientFetchError(f"Error parsing GTFS feed: {e}") from e

        return self._parse_vehicle_positions(feed)

    def _parse_vehicle_positions(
        self, feed: gtfs_realtime_pb2.FeedMessage
    ) -> list[PositionRecord]:
        """Parse protobuf feed message into position records."""
        fetched_at = datetime.now(UTC)

        positions: list[PositionRecord] = []
        for entity in feed.entity:
            if not entity.HasField("vehicle"):
                continue
            vp = entity.vehicle
            # entities without a vehicle, trip or fix can't be attributed
            if not (vp.HasField("position") and vp.HasField("vehicle") and vp.HasField("trip")):
                continue
            positions.append(self._parse_vehicle_position(vp, fetched_at))

        return positions

    def _parse_vehicle_position(
        self, vp: gtfs_realtime_pb2.VehiclePosition, fetched_at: datetime
    ) -> PositionRecord:
        """Parse a single vehicle position entity."""
        if vp.HasField("timestamp"):
            observed_at = datetime.fromtimestamp(vp.timestamp, UTC)
        else:
            observed_at = fetched_at

        return PositionRecord(
            vehicle_id=vp.vehicle.id,
            route_id=vp.trip.route_id,
            latitude=vp.position.latitude,
            longitude=vp.position.longitude,
            observed_at=observed_at,
            status=self._parse_status(vp),
        )

    def _parse_status(self, vp: gtfs_realtime_pb2.VehiclePosition) -> VehicleStatus:
        """Map the GTFS-RT stop status enum to ours (missing -> UNKNOWN)."""
        if not vp.HasField("current_status"):
            return VehicleStatus.UNKNOWN
        status_name = gtfs_realtime_pb2.VehiclePosition.VehicleStopStatus.Name(vp.current_status)
        try:
            return VehicleStatus(status_name)
        except ValueError:
            return VehicleStatus.UNKNOWN

"""Tests for the disruption detectors."""

from datetime import UTC, datetime, timedelta
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from transit_monitor.data.config import Thresholds
from transit_monitor.data.position_store import PositionStore
from transit_monitor.models.alerts import AlertType
from transit_monitor.models.realtime import PositionRecord, VehicleStatus
from transit_monitor.services.detectors import (
    DelayedVehicleDetector,
    LowRouteCoverageDetector,
    OfflineVehicleDetector,
    VehicleBunchingDetector,
    default_detectors,
    planar_distance_km,
)

NOW = datetime(2026, 3, 2, 8, 0, 0, tzinfo=UTC)


def _record(
    vehicle_id: str,
    route_id: str = "R1",
    minutes_ago: float = 0,
    status: VehicleStatus = VehicleStatus.IN_TRANSIT_TO,
    latitude: float = 37.770,
    longitude: float = -122.420,
) -> PositionRecord:
    return PositionRecord(
        vehicle_id=vehicle_id,
        route_id=route_id,
        latitude=latitude,
        longitude=longitude,
        observed_at=NOW - timedelta(minutes=minutes_ago),
        status=status,
    )


async def _create_store(tmp_path: Path, records: list[PositionRecord]) -> PositionStore:
    store = PositionStore(tmp_path / "positions.db")
    await store.initialize()
    await store.upsert_positions(records)
    return store


# =============================================================================
# Distance approximation
# =============================================================================


def test_planar_distance_same_point_is_zero():
    assert planar_distance_km(37.77, -122.42, 37.77, -122.42) == 0.0


def test_planar_distance_uses_111_km_per_degree():
    assert planar_distance_km(0.0, 0.0, 1.0, 0.0) == pytest.approx(111.0)
    assert planar_distance_km(0.0, 0.0, 0.0, 1.0) == pytest.approx(111.0)


def test_planar_distance_ignores_latitude_scaling():
    """One degree of longitude is 111 km even far from the equator."""
    assert planar_distance_km(60.0, 10.0, 60.0, 11.0) == pytest.approx(111.0)


def test_default_detectors_order():
    detectors = default_detectors()
    assert [d.alert_type for d in detectors] == [
        AlertType.DELAYED_VEHICLE,
        AlertType.VEHICLE_BUNCHING,
        AlertType.LOW_ROUTE_COVERAGE,
        AlertType.OFFLINE_VEHICLE,
    ]


# =============================================================================
# Delayed vehicles
# =============================================================================


class TestDelayedVehicleDetector:
    async def test_stopped_six_minutes_raises_one_alert(self, tmp_path: Path) -> None:
        store = await _create_store(
            tmp_path, [_record("V1", minutes_ago=6, status=VehicleStatus.STOPPED_AT)]
        )

        alerts = await DelayedVehicleDetector().evaluate(store, NOW)

        assert len(alerts) == 1
        alert = alerts[0]
        assert alert.type == AlertType.DELAYED_VEHICLE
        assert "V1" in alert.message
        assert "6" in alert.message
        assert alert.vehicle_id == "V1"
        assert alert.route_id == "R1"
        assert alert.severity == 6
        assert alert.created_at == NOW

    async def test_threshold_is_inclusive(self, tmp_path: Path) -> None:
        store = await _create_store(
            tmp_path,
            [
                _record("V1", minutes_ago=5, status=VehicleStatus.STOPPED_AT),
                _record("V2", minutes_ago=4, status=VehicleStatus.STOPPED_AT),
            ],
        )

        alerts = await DelayedVehicleDetector().evaluate(store, NOW)

        assert [a.vehicle_id for a in alerts] == ["V1"]

    async def test_moving_vehicle_is_not_delayed(self, tmp_path: Path) -> None:
        store = await _create_store(
            tmp_path, [_record("V1", minutes_ago=30, status=VehicleStatus.IN_TRANSIT_TO)]
        )

        assert await DelayedVehicleDetector().evaluate(store, NOW) == []

    async def test_only_latest_report_counts(self, tmp_path: Path) -> None:
        store = await _create_store(
            tmp_path,
            [
                _record("V1", minutes_ago=20, status=VehicleStatus.STOPPED_AT),
                _record("V1", minutes_ago=1, status=VehicleStatus.IN_TRANSIT_TO),
            ],
        )

        assert await DelayedVehicleDetector().evaluate(store, NOW) == []

    async def test_custom_threshold(self, tmp_path: Path) -> None:
        store = await _create_store(
            tmp_path, [_record("V1", minutes_ago=3, status=VehicleStatus.STOPPED_AT)]
        )
        detector = DelayedVehicleDetector(Thresholds(stopped_threshold_minutes=2))

        alerts = await detector.evaluate(store, NOW)

        assert len(alerts) == 1


# =============================================================================
# Bunching
# =============================================================================


class TestVehicleBunchingDetector:
    async def test_close_pair_raises_one_alert(self, tmp_path: Path) -> None:
        store = await _create_store(
            tmp_path,
            [
                _record("V2", latitude=37.770, longitude=-122.420),
                _record("V3", latitude=37.775, longitude=-122.420),
            ],
        )

        alerts = await VehicleBunchingDetector().evaluate(store, NOW)

        assert len(alerts) == 1
        alert = alerts[0]
        assert alert.type == AlertType.VEHICLE_BUNCHING
        assert alert.vehicle_id == "V2,V3"
        assert alert.route_id == "R1"
        assert "V2" in alert.message and "V3" in alert.message
        assert alert.severity == 55
        assert alert.latitude == pytest.approx(37.7725)

    async def test_diagonal_offset_within_threshold(self, tmp_path: Path) -> None:
        """0.005 degrees on both axes is about 0.78 km: one alert, no mirrored duplicate."""
        store = await _create_store(
            tmp_path,
            [
                _record("V2", latitude=37.770, longitude=-122.420),
                _record("V3", latitude=37.775, longitude=-122.415),
            ],
        )

        alerts = await VehicleBunchingDetector(Thresholds(bunching_distance_km=1.0)).evaluate(
            store, NOW
        )

        assert len(alerts) == 1
        assert alerts[0].vehicle_id == "V2,V3"
        assert alerts[0].severity == 78

    async def test_distant_pair_is_ignored(self, tmp_path: Path) -> None:
        store = await _create_store(
            tmp_path,
            [
                _record("V1", latitude=37.70),
                _record("V2", latitude=37.80),
            ],
        )

        assert await VehicleBunchingDetector().evaluate(store, NOW) == []

    async def test_different_routes_are_ignored(self, tmp_path: Path) -> None:
        store = await _create_store(
            tmp_path,
            [
                _record("V1", route_id="R1"),
                _record("V2", route_id="R2"),
            ],
        )

        assert await VehicleBunchingDetector().evaluate(store, NOW) == []

    async def test_stopped_vehicles_are_ignored(self, tmp_path: Path) -> None:
        store = await _create_store(
            tmp_path,
            [
                _record("V1", status=VehicleStatus.STOPPED_AT),
                _record("V2", status=VehicleStatus.IN_TRANSIT_TO),
            ],
        )

        assert await VehicleBunchingDetector().evaluate(store, NOW) == []

    async def test_alerts_sorted_closest_first(self, tmp_path: Path) -> None:
        store = await _create_store(
            tmp_path,
            [
                _record("A1", route_id="R1", latitude=37.770),
                _record("A2", route_id="R1", latitude=37.778),
                _record("B1", route_id="R2", latitude=37.770),
                _record("B2", route_id="R2", latitude=37.771),
            ],
        )

        alerts = await VehicleBunchingDetector().evaluate(store, NOW)

        assert [a.vehicle_id for a in alerts] == ["B1,B2", "A1,A2"]
        assert alerts[0].severity < alerts[1].severity


# =============================================================================
# Route coverage
# =============================================================================


class TestLowRouteCoverageDetector:
    async def test_route_below_minimum(self, tmp_path: Path) -> None:
        store = await _create_store(
            tmp_path,
            [
                _record("V1", route_id="R1"),
                _record("V2", route_id="R2"),
                _record("V3", route_id="R2"),
            ],
        )

        alerts = await LowRouteCoverageDetector().evaluate(store, NOW)

        assert len(alerts) == 1
        alert = alerts[0]
        assert alert.type == AlertType.LOW_ROUTE_COVERAGE
        assert alert.route_id == "R1"
        assert alert.vehicle_id is None
        assert alert.severity == 1

    async def test_stale_vehicles_do_not_count(self, tmp_path: Path) -> None:
        store = await _create_store(
            tmp_path,
            [
                _record("V1", route_id="R1", minutes_ago=1),
                _record("V2", route_id="R1", minutes_ago=15),
            ],
        )

        alerts = await LowRouteCoverageDetector().evaluate(store, NOW)

        assert [a.route_id for a in alerts] == ["R1"]

    async def test_route_without_active_vehicles_is_not_reported(self, tmp_path: Path) -> None:
        store = await _create_store(tmp_path, [_record("V1", route_id="R1", minutes_ago=30)])

        assert await LowRouteCoverageDetector().evaluate(store, NOW) == []

    async def test_severity_is_shortfall(self, tmp_path: Path) -> None:
        store = await _create_store(tmp_path, [_record("V1", route_id="R1")])
        detector = LowRouteCoverageDetector(Thresholds(minimum_vehicles_per_route=4))

        alerts = await detector.evaluate(store, NOW)

        assert alerts[0].severity == 3


# =============================================================================
# Offline vehicles
# =============================================================================


class TestOfflineVehicleDetector:
    async def test_silent_vehicle_on_active_route(self, tmp_path: Path) -> None:
        store = await _create_store(
            tmp_path,
            [
                _record("V1", route_id="R1", minutes_ago=1),
                _record("V2", route_id="R1", minutes_ago=20),
            ],
        )

        alerts = await OfflineVehicleDetector().evaluate(store, NOW)

        assert len(alerts) == 1
        alert = alerts[0]
        assert alert.type == AlertType.OFFLINE_VEHICLE
        assert alert.vehicle_id == "V2"
        assert alert.severity == 20

    async def test_dark_route_is_never_flagged(self, tmp_path: Path) -> None:
        store = await _create_store(
            tmp_path,
            [
                _record("V1", route_id="R1", minutes_ago=30),
                _record("V2", route_id="R1", minutes_ago=45),
            ],
        )

        assert await OfflineVehicleDetector().evaluate(store, NOW) == []

    async def test_sorted_longest_silence_first(self, tmp_path: Path) -> None:
        store = await _create_store(
            tmp_path,
            [
                _record("V1", route_id="R1", minutes_ago=1),
                _record("V2", route_id="R1", minutes_ago=16),
                _record("V3", route_id="R1", minutes_ago=40),
            ],
        )

        alerts = await OfflineVehicleDetector().evaluate(store, NOW)

        assert [a.vehicle_id for a in alerts] == ["V3", "V2"]

    async def test_below_threshold_is_not_offline(self, tmp_path: Path) -> None:
        store = await _create_store(
            tmp_path,
            [
                _record("V1", route_id="R1", minutes_ago=1),
                _record("V2", route_id="R1", minutes_ago=14),
            ],
        )

        assert await OfflineVehicleDetector().evaluate(store, NOW) == []


# =============================================================================
# Query contract
# =============================================================================


async def test_offline_detector_queries_active_routes_only():
    """Detectors only go through the query protocol, so any store works."""
    store = AsyncMock()
    store.latest_positions = AsyncMock(return_value=[])

    await OfflineVehicleDetector(Thresholds(offline_threshold_minutes=9)).evaluate(store, NOW)

    store.latest_positions.assert_awaited_once_with(
        NOW, min_age_minutes=9, active_routes_only=True
    )

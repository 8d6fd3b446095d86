"""Rule-based service disruption detectors.

Each detector reads the latest position per vehicle through a PositionQuery
and returns the alerts for one monitoring cycle. Detectors keep no state
between cycles.
"""

import math
from datetime import datetime

from transit_monitor.data.config import Thresholds
from transit_monitor.data.position_store import ACTIVE_WINDOW_MINUTES
from transit_monitor.data.protocols import PositionQuery
from transit_monitor.models.alerts import AlertType, ServiceAlert
from transit_monitor.models.realtime import VehicleStatus

# Kilometres per degree on the flat-plane approximation.
KM_PER_DEGREE = 111


def planar_distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Approximate distance in kilometres, treating degrees as a flat grid.

    No longitude scaling by latitude and no geodesic correction; alert
    counts depend on this exact approximation.
    """
    return math.sqrt((lat1 - lat2) ** 2 + (lon1 - lon2) ** 2) * KM_PER_DEGREE


class Detector:
    """Base class for a single disruption rule."""

    name: str = "detector"
    label: str = "anomalies"
    alert_type: AlertType

    def __init__(self, thresholds: Thresholds | None = None):
        self.thresholds = thresholds or Thresholds()

    async def evaluate(self, store: PositionQuery, now: datetime) -> list[ServiceAlert]:
        raise NotImplementedError


class DelayedVehicleDetector(Detector):
    """Vehicles whose latest report is STOPPED_AT and at least N minutes old."""

    name = "delayed_vehicle"
    label = "delayed vehicles"
    alert_type = AlertType.DELAYED_VEHICLE

    async def evaluate(self, store: PositionQuery, now: datetime) -> list[ServiceAlert]:
        threshold = self.thresholds.stopped_threshold_minutes
        positions = await store.latest_positions(
            now, status=VehicleStatus.STOPPED_AT, min_age_minutes=threshold
        )

        return [
            ServiceAlert(
                type=self.alert_type,
                message=(
                    f"Vehicle {p.vehicle_id} on route {p.route_id} "
                    f"has been stopped for {p.age_minutes} minutes"
                ),
                route_id=p.route_id,
                vehicle_id=p.vehicle_id,
                latitude=p.latitude,
                longitude=p.longitude,
                severity=p.age_minutes,
                created_at=now,
            )
            for p in positions
        ]


class VehicleBunchingDetector(Detector):
    """Pairs of moving vehicles on the same route closer than the bunching distance.

    Severity is ``int(distance_km * 100)``: the closer the pair, the lower
    the number. This runs opposite to every other alert type.
    """

    name = "vehicle_bunching"
    label = "instances of vehicle bunching"
    alert_type = AlertType.VEHICLE_BUNCHING

    async def evaluate(self, store: PositionQuery, now: datetime) -> list[ServiceAlert]:
        limit_km = self.thresholds.bunching_distance_km
        pairs = await store.same_route_pairs(now, status=VehicleStatus.IN_TRANSIT_TO)

        close: list[tuple[float, ServiceAlert]] = []
        for pair in pairs:
            a, b = pair.first, pair.second
            distance_km = planar_distance_km(a.latitude, a.longitude, b.latitude, b.longitude)
            if distance_km >= limit_km:
                continue

            alert = ServiceAlert(
                type=self.alert_type,
                message=(
                    f"Vehicles {a.vehicle_id} and {b.vehicle_id} on route {pair.route_id} "
                    f"are only {distance_km:.2f} km apart"
                ),
                route_id=pair.route_id,
                vehicle_id=f"{a.vehicle_id},{b.vehicle_id}",
                latitude=(a.latitude + b.latitude) / 2,
                longitude=(a.longitude + b.longitude) / 2,
                severity=int(distance_km * 100),
                created_at=now,
            )
            close.append((distance_km, alert))

        close.sort(key=lambda item: item[0])
        return [alert for _, alert in close]


class LowRouteCoverageDetector(Detector):
    """Routes served by fewer active vehicles than the configured minimum.

    Only routes with at least one active vehicle are considered.
    """

    name = "low_route_coverage"
    label = "routes with insufficient vehicle coverage"
    alert_type = AlertType.LOW_ROUTE_COVERAGE

    async def evaluate(self, store: PositionQuery, now: datetime) -> list[ServiceAlert]:
        minimum = self.thresholds.minimum_vehicles_per_route
        counts = await store.route_vehicle_counts(now, max_age_minutes=ACTIVE_WINDOW_MINUTES)

        return [
            ServiceAlert(
                type=self.alert_type,
                message=(
                    f"Route {route_id} has only {count} vehicle(s) in service "
                    f"(minimum {minimum} required)"
                ),
                route_id=route_id,
                vehicle_id=None,
                severity=minimum - count,
                created_at=now,
            )
            for route_id, count in counts
            if count < minimum
        ]


class OfflineVehicleDetector(Detector):
    """Vehicles that stopped reporting while their route is still active.

    A vehicle on a route where no vehicle reported within the active window
    is never flagged by this rule.
    """

    name = "offline_vehicle"
    label = "offline vehicles"
    alert_type = AlertType.OFFLINE_VEHICLE

    async def evaluate(self, store: PositionQuery, now: datetime) -> list[ServiceAlert]:
        threshold = self.thresholds.offline_threshold_minutes
        positions = await store.latest_positions(
            now, min_age_minutes=threshold, active_routes_only=True
        )
        positions.sort(key=lambda p: p.age_minutes, reverse=True)

        return [
            ServiceAlert(
                type=self.alert_type,
                message=(
                    f"Vehicle {p.vehicle_id} on route {p.route_id} "
                    f"has not reported for {p.age_minutes} minutes"
                ),
                route_id=p.route_id,
                vehicle_id=p.vehicle_id,
                latitude=p.latitude,
                longitude=p.longitude,
                severity=p.age_minutes,
                created_at=now,
            )
            for p in positions
        ]


def default_detectors(thresholds: Thresholds | None = None) -> list[Detector]:
    """The four detectors in the order a monitoring cycle runs them."""
    return [
        DelayedVehicleDetector(thresholds),
        VehicleBunchingDetector(thresholds),
        LowRouteCoverageDetector(thresholds),
        OfflineVehicleDetector(thresholds),
    ]

"""
Route ordering for a cluster.

Greedy nearest-neighbor from the cluster center. It is a heuristic, not an
optimal tour, but it is deterministic: ties go to the stop listed first, so
callers pass stops in insertion order.
"""

from dataclasses import dataclass, field
from typing import Sequence

from ...shared.geo import haversine_miles


@dataclass(frozen=True)
class RouteStop:
    job_id: int
    latitude: float
    longitude: float
    duration_hours: float


@dataclass
class RoutePlan:
    ordered_job_ids: list[int] = field(default_factory=list)
    leg_miles: list[float] = field(default_factory=list)
    total_distance_miles: float = 0.0
    travel_minutes: float = 0.0
    work_minutes: float = 0.0
    total_minutes: float = 0.0
    fuel_cost: float = 0.0
    cached: bool = False


def nearest_neighbor_order(
    start_lat: float, start_lon: float, stops: Sequence[RouteStop]
) -> list[tuple[RouteStop, float]]:
    """Visit order with the leg distance that reaches each stop"""
    remaining = list(stops)
    current_lat, current_lon = start_lat, start_lon
    ordered = []

    while remaining:
        best_index = 0
        best_distance = None
        for index, stop in enumerate(remaining):
            distance = haversine_miles(current_lat, current_lon, stop.latitude, stop.longitude)
            # strict comparison keeps the earlier stop on ties
            if best_distance is None or distance < best_distance:
                best_index, best_distance = index, distance

        stop = remaining.pop(best_index)
        ordered.append((stop, best_distance))
        current_lat, current_lon = stop.latitude, stop.longitude

    return ordered


def plan_route(
    start_lat: float,
    start_lon: float,
    stops: Sequence[RouteStop],
    minutes_per_mile: float,
    fuel_cost_per_mile: float,
) -> RoutePlan:
    """Order stops and total up travel, on-site work and fuel (no return leg)"""
    ordered = nearest_neighbor_order(start_lat, start_lon, stops)

    total_distance = sum(leg for _, leg in ordered)
    travel_minutes = total_distance * minutes_per_mile
    work_minutes = sum(stop.duration_hours * 60 for stop, _ in ordered)

    return RoutePlan(
        ordered_job_ids=[stop.job_id for stop, _ in ordered],
        leg_miles=[round(leg, 2) for _, leg in ordered],
        total_distance_miles=round(total_distance, 2),
        travel_minutes=round(travel_minutes, 1),
        work_minutes=round(work_minutes, 1),
        total_minutes=round(travel_minutes + work_minutes, 1),
        fuel_cost=round(total_distance * fuel_cost_per_mile, 2),
    )

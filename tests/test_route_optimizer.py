import pytest

from fenceops.domain.scheduling.routing import RouteStop, nearest_neighbor_order, plan_route
from fenceops.shared.geo import haversine_miles


def stop(job_id, lat, lon, hours=4):
    return RouteStop(job_id=job_id, latitude=lat, longitude=lon, duration_hours=hours)


def test_greedy_order_from_center():
    stops = [
        stop(1, 32.90, -96.80),  # far north
        stop(2, 32.78, -96.80),  # closest to center
        stop(3, 32.84, -96.80),
    ]
    order = nearest_neighbor_order(32.7767, -96.7970, stops)
    assert [s.job_id for s, _ in order] == [2, 3, 1]


def test_ties_go_to_insertion_order():
    # two stops the same distance east and west of the center
    stops = [stop(10, 32.0, -97.0), stop(11, 32.0, -95.0)]
    order = nearest_neighbor_order(32.0, -96.0, stops)
    assert order[0][0].job_id == 10

    order = nearest_neighbor_order(32.0, -96.0, list(reversed(stops)))
    assert order[0][0].job_id == 11


def test_plan_totals():
    stops = [stop(1, 32.80, -96.80, hours=2), stop(2, 32.85, -96.80, hours=3)]
    plan = plan_route(32.75, -96.80, stops, minutes_per_mile=2, fuel_cost_per_mile=0.15)

    first = haversine_miles(32.75, -96.80, 32.80, -96.80)
    second = haversine_miles(32.80, -96.80, 32.85, -96.80)
    assert plan.ordered_job_ids == [1, 2]
    assert plan.total_distance_miles == pytest.approx(first + second, abs=0.01)
    assert plan.travel_minutes == pytest.approx((first + second) * 2, abs=0.1)
    assert plan.work_minutes == 300
    assert plan.total_minutes == pytest.approx(plan.travel_minutes + 300, abs=0.1)
    assert plan.fuel_cost == pytest.approx((first + second) * 0.15, abs=0.01)


def test_order_is_deterministic():
    stops = [stop(i, 32.7 + (i % 5) * 0.013, -96.8 + (i % 3) * 0.017) for i in range(1, 7)]
    first = plan_route(32.7767, -96.7970, stops, 2, 0.15)
    second = plan_route(32.7767, -96.7970, stops, 2, 0.15)
    assert first.ordered_job_ids == second.ordered_job_ids
    assert sorted(first.ordered_job_ids) == list(range(1, 7))


def test_empty_route():
    plan = plan_route(32.0, -96.0, [], 2, 0.15)
    assert plan.ordered_job_ids == []
    assert plan.total_minutes == 0


def test_haversine_known_distance():
    # Dallas to Houston is roughly 225 miles
    assert haversine_miles(32.7767, -96.7970, 29.7604, -95.3698) == pytest.approx(225, abs=5)

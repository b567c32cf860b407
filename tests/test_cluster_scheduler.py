import threading
from datetime import date, timedelta

import pytest

from fenceops.database import SessionLocal
from fenceops.domain.pricing.schemas import ScheduleQuoteRequest
from fenceops.domain.pricing.service import QuoteService
from fenceops.domain.scheduling.schemas import ClusterCreate
from fenceops.domain.scheduling.service import ClusterScheduler, priority_score, resolve_window
from fenceops.models import ClusterJob, JobCluster
from fenceops.shared.exceptions import (
    CapacityConflict,
    DomainValidationError,
    NotFoundError,
    WorkflowStateError,
)

from .conftest import DALLAS, NoGeocoder

CLUSTER_DATE = date.today() + timedelta(days=5)


@pytest.fixture
def scheduler(db, seeded):
    return ClusterScheduler(db, seeded)


def open_cluster(scheduler, max_jobs=6, lat=DALLAS[0], lon=DALLAS[1], cluster_date=CLUSTER_DATE):
    return scheduler.create_cluster(
        ClusterCreate(cluster_date=cluster_date, center_latitude=lat, center_longitude=lon, max_jobs=max_jobs)
    )


class TestCapacity:
    def test_add_job_counts_and_versions(self, scheduler):
        cluster = open_cluster(scheduler)
        job = scheduler.add_job(cluster.id, DALLAS[0] + 0.01, DALLAS[1])

        cluster = scheduler.get_cluster(cluster.id)
        assert cluster.job_count == 1
        assert cluster.version == 1
        assert job.distance_from_center == pytest.approx(0.69, abs=0.02)

    def test_full_cluster_rejects_job(self, scheduler):
        cluster = open_cluster(scheduler, max_jobs=1)
        scheduler.add_job(cluster.id, *DALLAS)
        with pytest.raises(CapacityConflict) as exc_info:
            scheduler.add_job(cluster.id, *DALLAS)
        assert exc_info.value.status_code == 409
        assert scheduler.get_cluster(cluster.id).job_count == 1

    def test_concurrent_joins_never_overfill(self, db, scheduler):
        cluster = open_cluster(scheduler, max_jobs=2)
        cluster_id = cluster.id
        tenant_id = scheduler.tenant_id
        db.close()

        attempts = 5
        barrier = threading.Barrier(attempts)
        results = []
        lock = threading.Lock()

        def join(offset):
            session = SessionLocal()
            try:
                barrier.wait()
                ClusterScheduler(session, tenant_id).add_job(cluster_id, DALLAS[0] + offset, DALLAS[1])
                outcome = "joined"
            except CapacityConflict:
                outcome = "conflict"
            finally:
                session.close()
            with lock:
                results.append(outcome)

        threads = [threading.Thread(target=join, args=(i * 0.001,)) for i in range(attempts)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results.count("joined") == 2
        assert results.count("conflict") == 3

        session = SessionLocal()
        try:
            stored = session.get(JobCluster, cluster_id)
            assert stored.job_count == 2
            assert len(ClusterScheduler(session, tenant_id).active_jobs(cluster_id)) == 2
        finally:
            session.close()

    def test_remove_job_frees_slot(self, scheduler):
        cluster = open_cluster(scheduler, max_jobs=1)
        job = scheduler.add_job(cluster.id, *DALLAS)

        removed = scheduler.remove_job(cluster.id, job.id)
        assert removed.status == "cancelled"
        assert scheduler.get_cluster(cluster.id).job_count == 0
        scheduler.add_job(cluster.id, *DALLAS)

        with pytest.raises(WorkflowStateError):
            scheduler.remove_job(cluster.id, job.id)

    def test_closed_cluster_rejects_job(self, scheduler):
        cluster = open_cluster(scheduler)
        assert scheduler.close_past_clusters(today=CLUSTER_DATE + timedelta(days=1)) == 1
        with pytest.raises(CapacityConflict):
            scheduler.add_job(cluster.id, *DALLAS)

    def test_unknown_cluster(self, scheduler):
        with pytest.raises(NotFoundError):
            scheduler.add_job(98765, *DALLAS)

    def test_clusters_are_tenant_scoped(self, db, scheduler):
        cluster = open_cluster(scheduler)
        with pytest.raises(NotFoundError):
            ClusterScheduler(db, "someone-else").get_cluster(cluster.id)


class TestRoutes:
    def test_route_is_cached_until_membership_changes(self, scheduler):
        cluster = open_cluster(scheduler)
        far = scheduler.add_job(cluster.id, DALLAS[0] + 0.03, DALLAS[1])
        near = scheduler.add_job(cluster.id, DALLAS[0] + 0.01, DALLAS[1])

        _, plan = scheduler.optimize_route(cluster.id)
        assert not plan.cached
        assert plan.ordered_job_ids == [near.id, far.id]
        assert plan.work_minutes == 480

        _, again = scheduler.optimize_route(cluster.id)
        assert again.cached
        assert again.ordered_job_ids == plan.ordered_job_ids
        assert again.total_distance_miles == plan.total_distance_miles

        nearest = scheduler.add_job(cluster.id, DALLAS[0] + 0.001, DALLAS[1])
        _, replanned = scheduler.optimize_route(cluster.id)
        assert not replanned.cached
        assert replanned.ordered_job_ids == [nearest.id, near.id, far.id]

    def test_route_sets_schedule_order(self, scheduler):
        cluster = open_cluster(scheduler)
        far = scheduler.add_job(cluster.id, DALLAS[0] + 0.02, DALLAS[1])
        near = scheduler.add_job(cluster.id, DALLAS[0] + 0.005, DALLAS[1])
        scheduler.optimize_route(cluster.id)

        orders = {job.id: job.schedule_order for job in scheduler.active_jobs(cluster.id)}
        assert orders == {near.id: 1, far.id: 2}


class TestSchedulingOptions:
    def test_best_option_prefers_fuller_cluster(self, scheduler):
        busy = open_cluster(scheduler, lat=DALLAS[0] + 0.014)
        for _ in range(3):
            scheduler.add_job(busy.id, DALLAS[0] + 0.014, DALLAS[1])
        quiet = open_cluster(scheduler, lat=DALLAS[0] + 0.007)
        scheduler.add_job(quiet.id, DALLAS[0] + 0.007, DALLAS[1])

        recommendation = scheduler.scheduling_options(
            *DALLAS, base_price=2000, preferred_date=CLUSTER_DATE, flexible_scheduling=True
        )

        assert [o.option_type for o in recommendation.options] == [
            "join_cluster",
            "join_cluster",
            "flexible_scheduling",
        ]
        best = recommendation.best_option
        assert best.cluster_id == busy.id
        assert best.discount_type == "Four+ Job Cluster"
        assert best.estimated_savings == pytest.approx(364.5)
        assert best.priority_score == pytest.approx(priority_score(364.5, 3))
        assert recommendation.potential_savings == best.estimated_savings
        assert recommendation.nearby_opportunities == 2

    def test_clusters_outside_radius_or_window_are_skipped(self, scheduler):
        open_cluster(scheduler, lat=DALLAS[0] + 0.2)  # ~14 miles away
        open_cluster(scheduler, cluster_date=CLUSTER_DATE + timedelta(days=30))

        recommendation = scheduler.scheduling_options(*DALLAS, base_price=2000, preferred_date=CLUSTER_DATE)
        assert recommendation.options == []
        assert recommendation.best_option is None

    def test_full_cluster_is_not_offered(self, scheduler):
        cluster = open_cluster(scheduler, max_jobs=1)
        scheduler.add_job(cluster.id, *DALLAS)
        recommendation = scheduler.scheduling_options(*DALLAS, base_price=2000, preferred_date=CLUSTER_DATE)
        assert all(o.cluster_id != cluster.id for o in recommendation.options)

    def test_savings_never_exceed_price(self, scheduler):
        cluster = open_cluster(scheduler)
        recommendation = scheduler.scheduling_options(*DALLAS, base_price=100, preferred_date=CLUSTER_DATE)
        option = recommendation.best_option
        assert option.cluster_id == cluster.id
        assert option.estimated_savings == 100  # Same Day Add-On is a flat $150
        assert option.final_price == 0

    def test_without_coordinates_only_flexible_applies(self, scheduler):
        open_cluster(scheduler)
        recommendation = scheduler.scheduling_options(None, None, base_price=2000, flexible_scheduling=True)
        assert [o.option_type for o in recommendation.options] == ["flexible_scheduling"]

    def test_new_cluster_from_nearby_unscheduled_quotes(self, db, seeded, scheduler):
        quotes = QuoteService(db, seeded, geocoder=NoGeocoder())
        for offset in (0.005, 0.01):
            quotes.create_quote(
                {"latitude": DALLAS[0] + offset, "longitude": DALLAS[1], "fence_perimeter": 400}
            )
        quotes.create_quote({"latitude": DALLAS[0] + 0.5, "longitude": DALLAS[1]})  # too far

        recommendation = scheduler.scheduling_options(*DALLAS, base_price=2000)
        assert len(recommendation.options) == 1
        option = recommendation.options[0]
        assert option.option_type == "new_cluster"
        assert option.jobs_in_cluster == 2
        assert option.total_jobs == 3
        assert option.discount_type == "Three Job Cluster"
        assert option.cluster_date == date.today()


class TestResolveWindow:
    def test_preferred_date_wins(self):
        day = date(2030, 3, 3)
        assert resolve_window(day, date(2030, 1, 1), date(2030, 2, 1)) == (day, day)

    def test_open_ended_range(self):
        start = date(2030, 3, 1)
        assert resolve_window(date_range_start=start) == (start, start + timedelta(days=14))

    def test_default_window(self):
        today = date(2030, 3, 1)
        assert resolve_window(today=today) == (today, date(2030, 3, 15))


class TestScheduleQuote:
    @pytest.fixture
    def quotes(self, db, seeded):
        return QuoteService(db, seeded, geocoder=NoGeocoder())

    def test_new_cluster_is_centred_on_quote(self, quotes):
        quote, _ = quotes.create_quote({"latitude": DALLAS[0], "longitude": DALLAS[1], "preferred_date": CLUSTER_DATE.isoformat()})
        booked = quotes.schedule_quote(quote.id, ScheduleQuoteRequest(option_type="new_cluster"))

        assert booked.cluster_date == CLUSTER_DATE
        assert booked.jobs_in_cluster == 1
        cluster = quotes.scheduler.get_cluster(booked.cluster_id)
        assert (cluster.center_latitude, cluster.center_longitude) == DALLAS

        with pytest.raises(WorkflowStateError):
            quotes.schedule_quote(quote.id, ScheduleQuoteRequest(option_type="new_cluster"))

    def test_join_existing_cluster(self, quotes):
        cluster = open_cluster(quotes.scheduler)
        quote, _ = quotes.create_quote({"latitude": DALLAS[0], "longitude": DALLAS[1]})
        booked = quotes.schedule_quote(
            quote.id, ScheduleQuoteRequest(option_type="join_cluster", cluster_id=cluster.id)
        )
        assert booked.cluster_id == cluster.id
        assert booked.jobs_in_cluster == 1

    def test_join_requires_cluster_id(self, quotes):
        quote, _ = quotes.create_quote({"latitude": DALLAS[0], "longitude": DALLAS[1]})
        with pytest.raises(DomainValidationError):
            quotes.schedule_quote(quote.id, ScheduleQuoteRequest(option_type="join_cluster"))

    def test_unknown_option(self, quotes):
        quote, _ = quotes.create_quote({"latitude": DALLAS[0], "longitude": DALLAS[1]})
        with pytest.raises(DomainValidationError):
            quotes.schedule_quote(quote.id, ScheduleQuoteRequest(option_type="next_tuesday"))

    def test_flexible_sets_flag(self, quotes):
        quote, _ = quotes.create_quote({"property_type": "Commercial"})
        booked = quotes.schedule_quote(quote.id, ScheduleQuoteRequest(option_type="flexible_scheduling"))
        assert booked.cluster_id is None
        assert quotes.get_quote(quote.id).flexible_scheduling

    def test_quote_without_coordinates_cannot_be_routed(self, quotes):
        quote, _ = quotes.create_quote({"property_type": "Commercial"})
        with pytest.raises(WorkflowStateError):
            quotes.schedule_quote(quote.id, ScheduleQuoteRequest(option_type="new_cluster"))

    def test_rejected_new_cluster_leaves_no_empty_route(self, db, quotes):
        quote, _ = quotes.create_quote({"latitude": DALLAS[0], "longitude": DALLAS[1]})
        quotes.schedule_quote(quote.id, ScheduleQuoteRequest(option_type="new_cluster"))

        with pytest.raises(WorkflowStateError):
            quotes.schedule_quote(quote.id, ScheduleQuoteRequest(option_type="new_cluster"))
        assert db.query(JobCluster).count() == 1

    def test_concurrent_bookings_put_quote_on_one_route(self, db, seeded, quotes):
        cluster_id = open_cluster(quotes.scheduler).id
        quote, _ = quotes.create_quote({"latitude": DALLAS[0], "longitude": DALLAS[1]})
        quote_id = quote.id
        db.close()

        requests = [
            ScheduleQuoteRequest(option_type="new_cluster"),
            ScheduleQuoteRequest(option_type="join_cluster", cluster_id=cluster_id),
        ]
        barrier = threading.Barrier(len(requests))
        results = []
        lock = threading.Lock()

        def book(request):
            session = SessionLocal()
            try:
                barrier.wait()
                QuoteService(session, seeded, geocoder=NoGeocoder()).schedule_quote(quote_id, request)
                outcome = "booked"
            except WorkflowStateError:
                outcome = "conflict"
            finally:
                session.close()
            with lock:
                results.append(outcome)

        threads = [threading.Thread(target=book, args=(request,)) for request in requests]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(results) == ["booked", "conflict"]

        session = SessionLocal()
        try:
            memberships = session.query(ClusterJob).filter(ClusterJob.quote_id == quote_id).count()
            assert memberships == 1
            assert session.query(JobCluster).filter(JobCluster.id != cluster_id, JobCluster.job_count == 0).count() == 0
        finally:
            session.close()

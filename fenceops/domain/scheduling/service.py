"""
Cluster scheduling service.

Groups installations onto one technician route per day. Finds open clusters
near a job, proposes a new cluster when only unscheduled quotes are nearby,
ranks every option by score = savings / 100 + jobs_in_cluster * 2, and keeps
cluster capacity intact under concurrent joins.
"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...config import (
    CLUSTER_RADIUS_MILES,
    DEFAULT_JOB_DURATION_HOURS,
    FLEX_WINDOW_DAYS,
    FUEL_COST_PER_MILE,
    MAX_JOBS_PER_DAY,
    TRAVEL_MINUTES_PER_MILE,
    UNSCHEDULED_LOOKBACK_DAYS,
)
from ...models import ClusterJob, JobCluster, Quote, SchedulingDiscount, utcnow
from ...shared.enums import ClusterJobStatus, ClusterStatus, SchedulingOptionType
from ...shared.exceptions import CapacityConflict, NotFoundError, WorkflowStateError
from ...shared.geo import haversine_miles
from .discounts import DiscountResolver
from .repository import SchedulingRepository
from .routing import RoutePlan, RouteStop, plan_route
from .schemas import ClusterCreate, SchedulingOption, SchedulingRecommendation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClusterCandidate:
    cluster: JobCluster
    distance_miles: float

    @property
    def available_spots(self) -> int:
        return self.cluster.max_jobs - self.cluster.job_count


@dataclass(frozen=True)
class NearbyJob:
    quote_id: int
    latitude: float
    longitude: float
    distance_miles: float
    preferred_date: Optional[date]


def priority_score(estimated_savings: float, jobs_in_cluster: int) -> float:
    """$100 of savings is worth one point, each job already on the route two"""
    return estimated_savings / 100 + jobs_in_cluster * 2


def resolve_window(
    preferred_date: Optional[date] = None,
    date_range_start: Optional[date] = None,
    date_range_end: Optional[date] = None,
    today: Optional[date] = None,
) -> tuple[date, date]:
    """Preferred date, else the explicit range, else the next FLEX_WINDOW_DAYS"""
    if preferred_date:
        return preferred_date, preferred_date
    today = today or date.today()
    if date_range_start or date_range_end:
        start = date_range_start or today
        end = date_range_end or start + timedelta(days=FLEX_WINDOW_DAYS)
        return start, end
    return today, today + timedelta(days=FLEX_WINDOW_DAYS)


class ClusterScheduler:
    """Service layer for job clustering and route planning"""

    def __init__(self, db: Session, tenant_id: str, discounts: Optional[DiscountResolver] = None):
        self.db = db
        self.tenant_id = tenant_id
        self.repo = SchedulingRepository()
        self.discounts = discounts or DiscountResolver(db, tenant_id)

    # ------------------------------------------------------------------
    # Candidates
    # ------------------------------------------------------------------

    def find_joinable_clusters(
        self,
        latitude: float,
        longitude: float,
        window: tuple[date, date],
        radius_miles: float = CLUSTER_RADIUS_MILES,
    ) -> list[ClusterCandidate]:
        """Open clusters in the window within radius, nearest first"""
        candidates = []
        for cluster in self.repo.find_open_clusters(self.db, self.tenant_id, window[0], window[1]):
            distance = haversine_miles(latitude, longitude, cluster.center_latitude, cluster.center_longitude)
            if distance <= radius_miles:
                candidates.append(ClusterCandidate(cluster=cluster, distance_miles=distance))

        candidates.sort(key=lambda c: c.distance_miles)
        return candidates

    def find_nearby_unscheduled_jobs(
        self,
        latitude: float,
        longitude: float,
        window: tuple[date, date],
        radius_miles: float = CLUSTER_RADIUS_MILES,
        exclude_quote_id: Optional[int] = None,
    ) -> list[NearbyJob]:
        since = utcnow() - timedelta(days=UNSCHEDULED_LOOKBACK_DAYS)
        nearby = []
        for quote in self.repo.unscheduled_quotes(self.db, self.tenant_id, since):
            if quote.id == exclude_quote_id:
                continue
            if quote.preferred_date and not (window[0] <= quote.preferred_date <= window[1]):
                continue
            distance = haversine_miles(latitude, longitude, quote.latitude, quote.longitude)
            if distance <= radius_miles:
                nearby.append(
                    NearbyJob(
                        quote_id=quote.id,
                        latitude=quote.latitude,
                        longitude=quote.longitude,
                        distance_miles=distance,
                        preferred_date=quote.preferred_date,
                    )
                )
        return nearby

    def propose_new_cluster(
        self,
        nearby_jobs: list[NearbyJob],
        base_price: float,
        cluster_date: date,
    ) -> Optional[SchedulingOption]:
        """Synthetic option for opening a route with the nearby unscheduled jobs"""
        if not nearby_jobs:
            return None

        total_jobs = min(len(nearby_jobs) + 1, MAX_JOBS_PER_DAY)
        discount = self.discounts.resolve(total_jobs, base_price)
        savings = min(discount.amount, base_price) if discount else 0.0
        return SchedulingOption(
            option_type=SchedulingOptionType.NEW_CLUSTER.value,
            cluster_date=cluster_date,
            jobs_in_cluster=len(nearby_jobs),
            total_jobs=total_jobs,
            discount_type=discount.discount_type if discount else None,
            discount_percentage=discount.discount_percentage if discount else 0,
            fuel_savings_estimate=discount.fuel_savings_estimate if discount else 0,
            estimated_savings=savings,
            final_price=round(base_price - savings, 2),
            priority_score=round(priority_score(savings, len(nearby_jobs)), 4),
        )

    def scheduling_options(
        self,
        latitude: Optional[float],
        longitude: Optional[float],
        base_price: float,
        preferred_date: Optional[date] = None,
        date_range_start: Optional[date] = None,
        date_range_end: Optional[date] = None,
        flexible_scheduling: bool = False,
        radius_miles: float = CLUSTER_RADIUS_MILES,
        exclude_quote_id: Optional[int] = None,
    ) -> SchedulingRecommendation:
        """
        Every scheduling option for a job, best first.

        Only one option is ever applied to a quote; cluster discounts never
        stack with each other or with the flexible discount. Without
        coordinates only the flexible option can apply.
        """
        window = resolve_window(preferred_date, date_range_start, date_range_end)
        options: list[SchedulingOption] = []
        located = latitude is not None and longitude is not None

        candidates = self.find_joinable_clusters(latitude, longitude, window, radius_miles) if located else []
        for candidate in candidates:
            cluster = candidate.cluster
            total_jobs = cluster.job_count + 1
            discount = self.discounts.resolve(total_jobs, base_price)
            savings = min(discount.amount, base_price) if discount else 0.0
            options.append(
                SchedulingOption(
                    option_type=SchedulingOptionType.JOIN_CLUSTER.value,
                    cluster_id=cluster.id,
                    cluster_date=cluster.cluster_date,
                    technician_id=cluster.technician_id,
                    distance_miles=round(candidate.distance_miles, 2),
                    jobs_in_cluster=cluster.job_count,
                    total_jobs=total_jobs,
                    available_spots=candidate.available_spots,
                    discount_type=discount.discount_type if discount else None,
                    discount_percentage=discount.discount_percentage if discount else 0,
                    fuel_savings_estimate=discount.fuel_savings_estimate if discount else 0,
                    estimated_savings=savings,
                    final_price=round(base_price - savings, 2),
                    priority_score=round(priority_score(savings, cluster.job_count), 4),
                )
            )

        nearby_jobs = []
        if located and not candidates:
            nearby_jobs = self.find_nearby_unscheduled_jobs(
                latitude, longitude, window, radius_miles, exclude_quote_id
            )
            new_cluster = self.propose_new_cluster(nearby_jobs, base_price, window[0])
            if new_cluster:
                options.append(new_cluster)

        if flexible_scheduling:
            discount = self.discounts.resolve_flexible(base_price)
            if discount:
                savings = min(discount.amount, base_price)
                options.append(
                    SchedulingOption(
                        option_type=SchedulingOptionType.FLEXIBLE.value,
                        discount_type=discount.discount_type,
                        discount_percentage=discount.discount_percentage,
                        estimated_savings=savings,
                        final_price=round(base_price - savings, 2),
                        priority_score=round(priority_score(savings, 0), 4),
                    )
                )

        # stable sort: equal scores keep discovery order
        options.sort(key=lambda o: -o.priority_score)
        best = options[0] if options else None

        return SchedulingRecommendation(
            window_start=window[0],
            window_end=window[1],
            base_price=round(base_price, 2),
            nearby_opportunities=len(candidates) + len(nearby_jobs),
            options=options,
            best_option=best,
            potential_savings=best.estimated_savings if best else 0,
        )

    # ------------------------------------------------------------------
    # Clusters and memberships
    # ------------------------------------------------------------------

    def get_cluster(self, cluster_id: int) -> JobCluster:
        cluster = self.repo.get_cluster(self.db, self.tenant_id, cluster_id)
        if not cluster:
            raise NotFoundError("Job cluster not found", cluster_id=cluster_id)
        return cluster

    def active_jobs(self, cluster_id: int) -> list[ClusterJob]:
        return self.repo.active_jobs(self.db, self.tenant_id, cluster_id)

    def create_cluster(self, data: ClusterCreate) -> JobCluster:
        cluster = self.repo.create_cluster(
            self.db,
            self.tenant_id,
            cluster_date=data.cluster_date,
            technician_id=data.technician_id,
            center_latitude=data.center_latitude,
            center_longitude=data.center_longitude,
            radius_miles=data.radius_miles,
            max_jobs=data.max_jobs,
            job_count=0,
            version=0,
            status=ClusterStatus.ACTIVE.value,
        )
        logger.info(
            f"✅ Created job cluster {cluster.id} for {cluster.cluster_date} "
            f"(tenant {self.tenant_id}, capacity {cluster.max_jobs})"
        )
        return cluster

    def add_job(
        self,
        cluster_id: int,
        latitude: float,
        longitude: float,
        quote_id: Optional[int] = None,
        appointment_ref: Optional[str] = None,
        estimated_duration_hours: float = DEFAULT_JOB_DURATION_HOURS,
    ) -> ClusterJob:
        """
        Add a job to a cluster.

        The capacity check and the insert run in one transaction holding the
        cluster row lock, so N concurrent joins against K free slots produce
        exactly K memberships.

        Raises:
            NotFoundError: Unknown cluster
            CapacityConflict: Cluster is full or no longer active
        """
        try:
            cluster = self._locked_cluster(cluster_id)
            job = self._attach_job(
                cluster, latitude, longitude, quote_id, appointment_ref, estimated_duration_hours
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        return self._joined(job, cluster)

    def _locked_cluster(self, cluster_id: int) -> JobCluster:
        cluster = self.repo.get_cluster_for_update(self.db, self.tenant_id, cluster_id)
        if not cluster:
            raise NotFoundError("Job cluster not found", cluster_id=cluster_id)
        return cluster

    def _attach_job(
        self,
        cluster: JobCluster,
        latitude: float,
        longitude: float,
        quote_id: Optional[int] = None,
        appointment_ref: Optional[str] = None,
        estimated_duration_hours: float = DEFAULT_JOB_DURATION_HOURS,
    ) -> ClusterJob:
        """Capacity check and membership insert; the caller holds the cluster lock and commits"""
        if cluster.status != ClusterStatus.ACTIVE.value:
            raise CapacityConflict(
                "Cluster is closed, choose a different scheduling option",
                cluster_id=cluster.id,
            )
        if cluster.job_count >= cluster.max_jobs:
            raise CapacityConflict(
                "Cluster is full, retry with a different scheduling option",
                cluster_id=cluster.id,
                max_jobs=cluster.max_jobs,
            )

        job = ClusterJob(
            tenant_id=self.tenant_id,
            cluster_id=cluster.id,
            quote_id=quote_id,
            appointment_ref=appointment_ref,
            latitude=latitude,
            longitude=longitude,
            distance_from_center=round(
                haversine_miles(latitude, longitude, cluster.center_latitude, cluster.center_longitude), 2
            ),
            estimated_duration_hours=estimated_duration_hours,
            status=ClusterJobStatus.ACTIVE.value,
        )
        cluster.job_count += 1
        cluster.version += 1
        self.db.add(job)
        self.repo.delete_route_cache(self.db, self.tenant_id, cluster.id)
        return job

    def _joined(self, job: ClusterJob, cluster: JobCluster) -> ClusterJob:
        self.db.refresh(job)
        logger.info(
            f"✅ Job {job.id} joined cluster {cluster.id} "
            f"({cluster.job_count}/{cluster.max_jobs}, tenant {self.tenant_id})"
        )
        return job

    def remove_job(self, cluster_id: int, job_id: int) -> ClusterJob:
        """Cancel a membership and free its slot"""
        try:
            cluster = self.repo.get_cluster_for_update(self.db, self.tenant_id, cluster_id)
            if not cluster:
                raise NotFoundError("Job cluster not found", cluster_id=cluster_id)
            job = self.repo.get_cluster_job(self.db, self.tenant_id, cluster_id, job_id)
            if not job:
                raise NotFoundError("Cluster job not found", cluster_id=cluster_id, job_id=job_id)
            if job.status != ClusterJobStatus.ACTIVE.value:
                raise WorkflowStateError("Cluster job is already cancelled", job_id=job_id)

            job.status = ClusterJobStatus.CANCELLED.value
            job.schedule_order = None
            cluster.job_count = max(0, cluster.job_count - 1)
            cluster.version += 1
            self.repo.delete_route_cache(self.db, self.tenant_id, cluster.id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(job)
        logger.info(f"🗑️ Job {job_id} removed from cluster {cluster_id} (tenant {self.tenant_id})")
        return job

    def _lock_unscheduled_quote(self, quote_id: int) -> Quote:
        quote = self.repo.get_quote_for_update(self.db, self.tenant_id, quote_id)
        if not quote:
            raise NotFoundError("Quote not found", quote_id=quote_id)
        if quote.latitude is None or quote.longitude is None:
            raise WorkflowStateError("Quote has no coordinates and cannot be routed", quote_id=quote_id)
        if self.repo.active_membership_for_quote(self.db, self.tenant_id, quote_id):
            raise WorkflowStateError("Quote is already scheduled on an active route", quote_id=quote_id)
        return quote

    def join_with_quote(self, cluster_id: int, quote: Quote) -> ClusterJob:
        """Put a quote on an existing route; the quote lock serializes competing schedule calls"""
        try:
            locked = self._lock_unscheduled_quote(quote.id)
            cluster = self._locked_cluster(cluster_id)
            job = self._attach_job(cluster, locked.latitude, locked.longitude, quote_id=locked.id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        return self._joined(job, cluster)

    def create_cluster_with_quote(self, data: ClusterCreate, quote: Quote) -> ClusterJob:
        """Open a new route with the quote as its first job, in one transaction"""
        try:
            locked = self._lock_unscheduled_quote(quote.id)
            cluster = JobCluster(
                tenant_id=self.tenant_id,
                cluster_date=data.cluster_date,
                technician_id=data.technician_id,
                center_latitude=data.center_latitude,
                center_longitude=data.center_longitude,
                radius_miles=data.radius_miles,
                max_jobs=data.max_jobs,
                job_count=0,
                version=0,
                status=ClusterStatus.ACTIVE.value,
            )
            self.db.add(cluster)
            self.db.flush()
            job = self._attach_job(cluster, locked.latitude, locked.longitude, quote_id=locked.id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"✅ Created job cluster {cluster.id} for {cluster.cluster_date} "
            f"(tenant {self.tenant_id}, capacity {cluster.max_jobs})"
        )
        return self._joined(job, cluster)

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------

    def optimize_route(self, cluster_id: int) -> tuple[JobCluster, RoutePlan]:
        """Nearest-neighbor visiting order, cached until membership changes"""
        cluster = self.get_cluster(cluster_id)

        cached = self.repo.get_route_cache(self.db, self.tenant_id, cluster.id)
        if cached and cached.cluster_version == cluster.version:
            return cluster, RoutePlan(
                ordered_job_ids=list(cached.route_order),
                leg_miles=list(cached.leg_miles or []),
                total_distance_miles=cached.total_distance_miles,
                travel_minutes=cached.total_travel_time_minutes,
                work_minutes=cached.total_work_minutes,
                total_minutes=round(cached.total_travel_time_minutes + cached.total_work_minutes, 1),
                fuel_cost=cached.fuel_cost_estimated,
                cached=True,
            )

        jobs = self.active_jobs(cluster.id)
        stops = [
            RouteStop(
                job_id=job.id,
                latitude=job.latitude,
                longitude=job.longitude,
                duration_hours=job.estimated_duration_hours,
            )
            for job in jobs
        ]
        plan = plan_route(
            cluster.center_latitude,
            cluster.center_longitude,
            stops,
            minutes_per_mile=TRAVEL_MINUTES_PER_MILE,
            fuel_cost_per_mile=FUEL_COST_PER_MILE,
        )

        try:
            positions = {job_id: index + 1 for index, job_id in enumerate(plan.ordered_job_ids)}
            for job in jobs:
                job.schedule_order = positions[job.id]
            self.repo.save_route_cache(
                self.db,
                self.tenant_id,
                cluster.id,
                cluster_version=cluster.version,
                route_order=plan.ordered_job_ids,
                leg_miles=plan.leg_miles,
                total_distance_miles=plan.total_distance_miles,
                total_travel_time_minutes=plan.travel_minutes,
                total_work_minutes=plan.work_minutes,
                fuel_cost_estimated=plan.fuel_cost,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"🗺️ Route for cluster {cluster.id} v{cluster.version}: "
            f"{len(plan.ordered_job_ids)} stops, {plan.total_distance_miles} mi"
        )
        return cluster, plan

    # ------------------------------------------------------------------
    # Maintenance / reporting
    # ------------------------------------------------------------------

    def close_past_clusters(self, today: Optional[date] = None) -> int:
        closed = self.repo.close_past_clusters(self.db, today or date.today(), self.tenant_id)
        if closed:
            logger.info(f"📦 Archived {closed} past clusters (tenant {self.tenant_id})")
        return closed

    def list_discount_rules(self, include_inactive: bool = False) -> list[SchedulingDiscount]:
        return self.repo.list_discount_rules(self.db, self.tenant_id, active_only=not include_inactive)

    def analytics(self) -> dict:
        counts = self.repo.cluster_counts_by_status(self.db, self.tenant_id)
        rules = self.repo.list_discount_rules(self.db, self.tenant_id, active_only=True)
        return {
            "clusters_by_status": counts,
            "total_clusters": sum(counts.values()),
            "average_jobs_per_active_cluster": round(self.repo.average_active_jobs(self.db, self.tenant_id), 2),
            "active_discount_rules": len(rules),
            "generated_at": utcnow().isoformat(),
        }

"""Scheduling repository - Database operations for clusters, routes and discount rules"""

from datetime import date, datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ...models import ClusterJob, JobCluster, Quote, RouteCache, SchedulingDiscount, utcnow
from ...shared.enums import ClusterJobStatus, ClusterStatus, QuoteStatus


class SchedulingRepository:
    """Repository for job cluster database operations"""

    # Clusters
    @staticmethod
    def get_cluster(db: Session, tenant_id: str, cluster_id: int) -> Optional[JobCluster]:
        return (
            db.query(JobCluster)
            .filter(JobCluster.tenant_id == tenant_id, JobCluster.id == cluster_id)
            .first()
        )

    @staticmethod
    def get_cluster_for_update(db: Session, tenant_id: str, cluster_id: int) -> Optional[JobCluster]:
        """Cluster row re-read under a row lock (SELECT ... FOR UPDATE on PostgreSQL)"""
        return (
            db.query(JobCluster)
            .filter(JobCluster.tenant_id == tenant_id, JobCluster.id == cluster_id)
            .populate_existing()
            .with_for_update()
            .first()
        )

    @staticmethod
    def find_open_clusters(db: Session, tenant_id: str, start: date, end: date) -> list[JobCluster]:
        """Active clusters inside the window that still have a free slot"""
        return (
            db.query(JobCluster)
            .filter(
                JobCluster.tenant_id == tenant_id,
                JobCluster.status == ClusterStatus.ACTIVE.value,
                JobCluster.cluster_date >= start,
                JobCluster.cluster_date <= end,
                JobCluster.job_count < JobCluster.max_jobs,
            )
            .order_by(JobCluster.id)
            .all()
        )

    @staticmethod
    def create_cluster(db: Session, tenant_id: str, **cluster_data) -> JobCluster:
        cluster = JobCluster(tenant_id=tenant_id, **cluster_data)
        db.add(cluster)
        db.commit()
        db.refresh(cluster)
        return cluster

    @staticmethod
    def close_past_clusters(db: Session, today: date, tenant_id: Optional[str] = None) -> int:
        query = db.query(JobCluster).filter(
            JobCluster.status == ClusterStatus.ACTIVE.value,
            JobCluster.cluster_date < today,
        )
        if tenant_id:
            query = query.filter(JobCluster.tenant_id == tenant_id)
        closed = query.update(
            {JobCluster.status: ClusterStatus.CLOSED.value, JobCluster.closed_at: utcnow()},
            synchronize_session=False,
        )
        db.commit()
        return closed

    @staticmethod
    def cluster_counts_by_status(db: Session, tenant_id: str) -> dict[str, int]:
        rows = (
            db.query(JobCluster.status, func.count(JobCluster.id))
            .filter(JobCluster.tenant_id == tenant_id)
            .group_by(JobCluster.status)
            .all()
        )
        return {status: count for status, count in rows}

    @staticmethod
    def average_active_jobs(db: Session, tenant_id: str) -> float:
        value = (
            db.query(func.avg(JobCluster.job_count))
            .filter(JobCluster.tenant_id == tenant_id, JobCluster.status == ClusterStatus.ACTIVE.value)
            .scalar()
        )
        return float(value or 0)

    # Memberships
    @staticmethod
    def active_jobs(db: Session, tenant_id: str, cluster_id: int) -> list[ClusterJob]:
        return (
            db.query(ClusterJob)
            .filter(
                ClusterJob.tenant_id == tenant_id,
                ClusterJob.cluster_id == cluster_id,
                ClusterJob.status == ClusterJobStatus.ACTIVE.value,
            )
            .order_by(ClusterJob.id)
            .all()
        )

    @staticmethod
    def get_cluster_job(db: Session, tenant_id: str, cluster_id: int, job_id: int) -> Optional[ClusterJob]:
        return (
            db.query(ClusterJob)
            .filter(
                ClusterJob.tenant_id == tenant_id,
                ClusterJob.cluster_id == cluster_id,
                ClusterJob.id == job_id,
            )
            .first()
        )

    @staticmethod
    def get_quote_for_update(db: Session, tenant_id: str, quote_id: int) -> Optional[Quote]:
        """Quote row lock, held while its route membership is decided"""
        return (
            db.query(Quote)
            .filter(Quote.tenant_id == tenant_id, Quote.id == quote_id)
            .populate_existing()
            .with_for_update()
            .first()
        )

    @staticmethod
    def active_membership_for_quote(db: Session, tenant_id: str, quote_id: int) -> Optional[ClusterJob]:
        return (
            db.query(ClusterJob)
            .join(JobCluster, ClusterJob.cluster_id == JobCluster.id)
            .filter(
                ClusterJob.tenant_id == tenant_id,
                ClusterJob.quote_id == quote_id,
                ClusterJob.status == ClusterJobStatus.ACTIVE.value,
                JobCluster.status == ClusterStatus.ACTIVE.value,
            )
            .first()
        )

    @staticmethod
    def unscheduled_quotes(db: Session, tenant_id: str, created_since: datetime) -> list[Quote]:
        """Recent pending quotes with coordinates that are not on an active route"""
        scheduled = (
            select(ClusterJob.quote_id)
            .join(JobCluster, ClusterJob.cluster_id == JobCluster.id)
            .where(
                ClusterJob.tenant_id == tenant_id,
                ClusterJob.quote_id.isnot(None),
                ClusterJob.status == ClusterJobStatus.ACTIVE.value,
                JobCluster.status == ClusterStatus.ACTIVE.value,
            )
        )
        return (
            db.query(Quote)
            .filter(
                Quote.tenant_id == tenant_id,
                Quote.status == QuoteStatus.PENDING.value,
                Quote.converted_to_customer.is_(False),
                Quote.latitude.isnot(None),
                Quote.longitude.isnot(None),
                Quote.created_at >= created_since,
                Quote.id.notin_(scheduled),
            )
            .order_by(Quote.id)
            .all()
        )

    # Route cache
    @staticmethod
    def get_route_cache(db: Session, tenant_id: str, cluster_id: int) -> Optional[RouteCache]:
        return (
            db.query(RouteCache)
            .filter(RouteCache.tenant_id == tenant_id, RouteCache.cluster_id == cluster_id)
            .first()
        )

    @staticmethod
    def delete_route_cache(db: Session, tenant_id: str, cluster_id: int) -> None:
        db.query(RouteCache).filter(
            RouteCache.tenant_id == tenant_id, RouteCache.cluster_id == cluster_id
        ).delete(synchronize_session=False)

    @staticmethod
    def save_route_cache(db: Session, tenant_id: str, cluster_id: int, **route_data) -> RouteCache:
        """Insert or overwrite the cached route (caller commits)"""
        entry = SchedulingRepository.get_route_cache(db, tenant_id, cluster_id)
        if entry is None:
            entry = RouteCache(tenant_id=tenant_id, cluster_id=cluster_id)
            db.add(entry)
        for key, value in route_data.items():
            setattr(entry, key, value)
        entry.optimized_at = utcnow()
        return entry

    # Discount rules
    @staticmethod
    def list_discount_rules(
        db: Session,
        tenant_id: str,
        family: Optional[str] = None,
        active_only: bool = True,
    ) -> list[SchedulingDiscount]:
        query = db.query(SchedulingDiscount).filter(SchedulingDiscount.tenant_id == tenant_id)
        if family:
            query = query.filter(SchedulingDiscount.family == family)
        if active_only:
            query = query.filter(SchedulingDiscount.is_active.is_(True))
        return query.order_by(SchedulingDiscount.min_jobs, SchedulingDiscount.id).all()

"""Scheduling router - FastAPI endpoints for job clusters, routes and discounts"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from ...models import JobCluster
from ...tenancy import get_tenant_id
from .schemas import (
    ClusterCreate,
    ClusterJobCreate,
    ClusterJobResponse,
    ClusterResponse,
    DiscountResolution,
    DiscountRuleResponse,
    RoutePlanResponse,
    SchedulingOptionsRequest,
    SchedulingRecommendation,
)
from .service import ClusterScheduler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scheduling", tags=["Scheduling"])


def get_cluster_scheduler(
    db: Session = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
) -> ClusterScheduler:
    """Dependency injection for ClusterScheduler"""
    return ClusterScheduler(db, tenant_id)


def _cluster_response(scheduler: ClusterScheduler, cluster: JobCluster) -> ClusterResponse:
    return ClusterResponse(
        id=cluster.id,
        cluster_date=cluster.cluster_date,
        technician_id=cluster.technician_id,
        center_latitude=cluster.center_latitude,
        center_longitude=cluster.center_longitude,
        radius_miles=cluster.radius_miles,
        job_count=cluster.job_count,
        max_jobs=cluster.max_jobs,
        available_spots=max(0, cluster.max_jobs - cluster.job_count),
        version=cluster.version,
        status=cluster.status,
        jobs=[ClusterJobResponse.model_validate(job) for job in scheduler.active_jobs(cluster.id)],
    )


@router.post("/options", response_model=SchedulingRecommendation)
async def get_scheduling_options(
    data: SchedulingOptionsRequest,
    scheduler: ClusterScheduler = Depends(get_cluster_scheduler),
):
    """Rank join-cluster, new-cluster and flexible options for a location"""
    return scheduler.scheduling_options(
        latitude=data.latitude,
        longitude=data.longitude,
        base_price=data.base_price,
        preferred_date=data.preferred_date,
        date_range_start=data.date_range_start,
        date_range_end=data.date_range_end,
        flexible_scheduling=data.flexible_scheduling,
        radius_miles=data.radius_miles,
    )


# ============================================================================
# CLUSTERS
# ============================================================================


@router.post("/clusters", response_model=ClusterResponse, status_code=201)
async def create_cluster(
    data: ClusterCreate,
    scheduler: ClusterScheduler = Depends(get_cluster_scheduler),
):
    cluster = scheduler.create_cluster(data)
    return _cluster_response(scheduler, cluster)


@router.get("/clusters/{cluster_id}", response_model=ClusterResponse)
async def get_cluster(
    cluster_id: int,
    scheduler: ClusterScheduler = Depends(get_cluster_scheduler),
):
    cluster = scheduler.get_cluster(cluster_id)
    return _cluster_response(scheduler, cluster)


@router.post("/clusters/{cluster_id}/jobs", response_model=ClusterJobResponse, status_code=201)
async def add_cluster_job(
    cluster_id: int,
    data: ClusterJobCreate,
    scheduler: ClusterScheduler = Depends(get_cluster_scheduler),
):
    """Add a job; 409 when the cluster filled up first"""
    return scheduler.add_job(
        cluster_id,
        latitude=data.latitude,
        longitude=data.longitude,
        quote_id=data.quote_id,
        appointment_ref=data.appointment_ref,
        estimated_duration_hours=data.estimated_duration_hours,
    )


@router.delete("/clusters/{cluster_id}/jobs/{job_id}", response_model=ClusterJobResponse)
async def remove_cluster_job(
    cluster_id: int,
    job_id: int,
    scheduler: ClusterScheduler = Depends(get_cluster_scheduler),
):
    return scheduler.remove_job(cluster_id, job_id)


@router.get("/clusters/{cluster_id}/route", response_model=RoutePlanResponse)
async def get_cluster_route(
    cluster_id: int,
    scheduler: ClusterScheduler = Depends(get_cluster_scheduler),
):
    cluster, plan = scheduler.optimize_route(cluster_id)
    return RoutePlanResponse(
        cluster_id=cluster.id,
        cluster_version=cluster.version,
        ordered_job_ids=plan.ordered_job_ids,
        leg_miles=plan.leg_miles,
        total_distance_miles=plan.total_distance_miles,
        travel_minutes=plan.travel_minutes,
        work_minutes=plan.work_minutes,
        total_minutes=plan.total_minutes,
        fuel_cost=plan.fuel_cost,
        cached=plan.cached,
    )


# ============================================================================
# DISCOUNTS / ANALYTICS
# ============================================================================


@router.get("/discounts", response_model=list[DiscountRuleResponse])
async def list_discount_rules(
    include_inactive: bool = Query(False),
    scheduler: ClusterScheduler = Depends(get_cluster_scheduler),
):
    return scheduler.list_discount_rules(include_inactive)


@router.get("/discounts/resolve", response_model=DiscountResolution)
async def resolve_discount(
    total_jobs: int = Query(..., ge=1),
    base_price: float = Query(..., ge=0),
    scheduler: ClusterScheduler = Depends(get_cluster_scheduler),
):
    """Cluster discount for a route of total_jobs jobs (the new job included)"""
    discount = scheduler.discounts.resolve(total_jobs, base_price)
    if discount is None:
        return DiscountResolution(total_jobs=total_jobs, base_price=base_price, matched=False)
    return DiscountResolution(
        total_jobs=total_jobs,
        base_price=base_price,
        matched=True,
        discount_type=discount.discount_type,
        discount_percentage=discount.discount_percentage,
        fixed_amount=discount.fixed_amount,
        fuel_savings_share=discount.fuel_savings_share,
        fuel_savings_estimate=discount.fuel_savings_estimate,
        amount=discount.amount,
    )


@router.get("/analytics")
async def get_scheduling_analytics(scheduler: ClusterScheduler = Depends(get_cluster_scheduler)):
    return scheduler.analytics()

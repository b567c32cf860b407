"""Scheduling domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from ...config import CLUSTER_RADIUS_MILES, DEFAULT_JOB_DURATION_HOURS, MAX_JOBS_PER_DAY


class ClusterCreate(BaseModel):
    """Schema for opening a technician route for one day"""

    cluster_date: date
    technician_id: Optional[str] = None
    center_latitude: float = Field(..., ge=-90, le=90)
    center_longitude: float = Field(..., ge=-180, le=180)
    radius_miles: float = Field(CLUSTER_RADIUS_MILES, gt=0)
    max_jobs: int = Field(MAX_JOBS_PER_DAY, ge=1, le=MAX_JOBS_PER_DAY)


class ClusterJobCreate(BaseModel):
    """Schema for adding a job to a cluster"""

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    quote_id: Optional[int] = None
    appointment_ref: Optional[str] = None
    estimated_duration_hours: float = Field(DEFAULT_JOB_DURATION_HOURS, gt=0)


class ClusterJobResponse(BaseModel):
    id: int
    cluster_id: int
    quote_id: Optional[int] = None
    appointment_ref: Optional[str] = None
    latitude: float
    longitude: float
    distance_from_center: Optional[float] = None
    schedule_order: Optional[int] = None
    estimated_duration_hours: float
    status: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ClusterResponse(BaseModel):
    id: int
    cluster_date: date
    technician_id: Optional[str] = None
    center_latitude: float
    center_longitude: float
    radius_miles: float
    job_count: int
    max_jobs: int
    available_spots: int
    version: int
    status: str
    jobs: list[ClusterJobResponse] = []


class RoutePlanResponse(BaseModel):
    cluster_id: int
    cluster_version: int
    ordered_job_ids: list[int]
    leg_miles: list[float]
    total_distance_miles: float
    travel_minutes: float
    work_minutes: float
    total_minutes: float
    fuel_cost: float
    cached: bool


class SchedulingOptionsRequest(BaseModel):
    """Ask for scheduling options at a location for an already-priced installation"""

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    base_price: float = Field(..., ge=0)
    preferred_date: Optional[date] = None
    date_range_start: Optional[date] = None
    date_range_end: Optional[date] = None
    flexible_scheduling: bool = False
    radius_miles: float = Field(CLUSTER_RADIUS_MILES, gt=0)

    @model_validator(mode="after")
    def check_range(self):
        if self.date_range_start and self.date_range_end and self.date_range_end < self.date_range_start:
            raise ValueError("date_range_end must not be before date_range_start")
        return self


class SchedulingOption(BaseModel):
    option_type: str  # join_cluster, new_cluster, flexible_scheduling
    cluster_id: Optional[int] = None
    cluster_date: Optional[date] = None
    technician_id: Optional[str] = None
    distance_miles: Optional[float] = None
    jobs_in_cluster: int = 0
    total_jobs: int = 1
    available_spots: Optional[int] = None
    discount_type: Optional[str] = None
    discount_percentage: float = 0
    fuel_savings_estimate: float = 0
    estimated_savings: float = 0
    final_price: float
    priority_score: float


class SchedulingRecommendation(BaseModel):
    window_start: date
    window_end: date
    base_price: float
    nearby_opportunities: int
    options: list[SchedulingOption] = []
    best_option: Optional[SchedulingOption] = None
    potential_savings: float = 0


class DiscountRuleResponse(BaseModel):
    id: int
    discount_type: str
    family: str
    min_jobs: int
    max_jobs: int
    discount_percentage: float
    discount_fixed_amount: float
    fuel_savings_share: float
    description: Optional[str] = None
    is_active: bool

    class Config:
        from_attributes = True


class DiscountResolution(BaseModel):
    total_jobs: int
    base_price: float
    matched: bool
    discount_type: Optional[str] = None
    discount_percentage: float = 0
    fixed_amount: float = 0
    fuel_savings_share: float = 0
    fuel_savings_estimate: float = 0
    amount: float = 0

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what the columns store"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ============================================================================
# RATEBOOK (reference data, seeded once per tenant)
# ============================================================================


class PricingZone(Base):
    __tablename__ = "pricing_zones"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), index=True, nullable=False)
    zone_name = Column(String(255), nullable=False)
    state = Column(String(2), nullable=False)
    city = Column(String(255), nullable=True)  # NULL = state-wide (rural) fallback zone
    zip_code = Column(String(10), nullable=True, index=True)
    base_multiplier = Column(Float, default=1.0, nullable=False)
    labor_rate_hourly = Column(Float, default=35.0, nullable=False)
    material_markup = Column(Float, default=1.2, nullable=False)
    market_demand = Column(String(20), default="normal", nullable=False)  # low, normal, high
    competition_level = Column(String(20), default="moderate", nullable=False)  # low, moderate, high
    average_property_size = Column(Integer, default=8000)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class ServiceCenter(Base):
    __tablename__ = "service_centers"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), index=True, nullable=False)
    name = Column(String(255), nullable=False)
    address = Column(String(500), nullable=True)
    city = Column(String(255), nullable=True)
    state = Column(String(2), nullable=True)
    zip_code = Column(String(10), nullable=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    max_service_radius_miles = Column(Float, default=50, nullable=False)
    technician_count = Column(Integer, default=5)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)


class PropertyType(Base):
    __tablename__ = "property_types"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), index=True, nullable=False)
    type_name = Column(String(100), nullable=False)
    base_price = Column(Float, nullable=False)
    per_foot_price = Column(Float, default=0.50, nullable=False)
    difficulty_multiplier = Column(Float, default=1.0, nullable=False)
    typical_install_hours = Column(Float, default=4, nullable=False)
    description = Column(String(500), nullable=True)


class TerrainModifier(Base):
    __tablename__ = "terrain_modifiers"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), index=True, nullable=False)
    terrain_type = Column(String(100), nullable=False)
    difficulty_multiplier = Column(Float, default=1.0, nullable=False)
    additional_hours = Column(Float, default=0, nullable=False)
    description = Column(String(500), nullable=True)


class DistanceTier(Base):
    """Trip charge tier covering [min_miles, max_miles)"""

    __tablename__ = "distance_pricing"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), index=True, nullable=False)
    min_miles = Column(Float, nullable=False)
    max_miles = Column(Float, nullable=False)
    trip_charge = Column(Float, default=0, nullable=False)
    per_mile_charge = Column(Float, default=0, nullable=False)
    description = Column(String(255), nullable=True)


# ============================================================================
# QUOTES
# ============================================================================


class Quote(Base):
    """Priced quote with its lifecycle (pending -> accepted/rejected/expired)"""

    __tablename__ = "quote_history"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), index=True, nullable=False)
    customer_name = Column(String(255), nullable=True)
    customer_email = Column(String(255), nullable=True)
    customer_phone = Column(String(50), nullable=True)
    address = Column(String(500), nullable=True)
    city = Column(String(255), nullable=True)
    state = Column(String(2), nullable=True)
    zip_code = Column(String(10), nullable=True, index=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    property_size = Column(Integer, nullable=True)
    property_type = Column(String(100), nullable=True, index=True)
    terrain_type = Column(String(100), nullable=True)
    fence_perimeter = Column(Float, nullable=True)
    num_pets = Column(Integer, default=1)
    selected_tier = Column(String(50), nullable=True)
    preferred_date = Column(Date, nullable=True)
    flexible_scheduling = Column(Boolean, default=False, nullable=False)

    # Price terms (full itemization lives in breakdown)
    zone_name = Column(String(255), nullable=True)
    base_price = Column(Float, nullable=True)
    location_multiplier = Column(Float, nullable=True)
    terrain_multiplier = Column(Float, nullable=True)
    distance_charge = Column(Float, nullable=True)
    scheduling_savings = Column(Float, default=0)
    total_price = Column(Float, nullable=True)
    breakdown = Column(JSON, nullable=True)

    status = Column(String(20), default="pending", nullable=False, index=True)
    quote_valid_days = Column(Integer, default=30)
    expires_at = Column(DateTime, nullable=True)
    converted_to_customer = Column(Boolean, default=False, nullable=False)
    customer_id = Column(String(255), nullable=True)  # CRM record once converted
    created_by = Column(String(255), nullable=True)
    status_changed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    cluster_jobs = relationship("ClusterJob", back_populates="quote")


class CompetitorPricing(Base):
    __tablename__ = "competitor_pricing"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), index=True, nullable=False)
    competitor_name = Column(String(255), nullable=False)
    service_area = Column(String(255), nullable=True)
    zip_code = Column(String(10), nullable=True)
    property_type = Column(String(100), nullable=True, index=True)
    base_installation_price = Column(Float, nullable=False)
    monthly_service_price = Column(Float, nullable=True)
    fence_perimeter_range = Column(String(50), nullable=True)
    pricing_date = Column(Date, nullable=False)
    source = Column(String(50), nullable=True)  # quote_match, market_research, customer_report
    verified = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow)


# ============================================================================
# SCHEDULING
# ============================================================================


class JobCluster(Base):
    """One technician's route for one day"""

    __tablename__ = "job_clusters"
    __table_args__ = (
        CheckConstraint("job_count >= 0 AND job_count <= max_jobs", name="ck_job_clusters_capacity"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), index=True, nullable=False)
    cluster_date = Column(Date, nullable=False, index=True)
    technician_id = Column(String(255), nullable=True)
    center_latitude = Column(Float, nullable=False)
    center_longitude = Column(Float, nullable=False)
    radius_miles = Column(Float, default=5, nullable=False)
    job_count = Column(Integer, default=0, nullable=False)
    max_jobs = Column(Integer, default=6, nullable=False)
    # Bumped on every membership change, route_cache rows are only valid for the same version
    version = Column(Integer, default=0, nullable=False)
    total_travel_savings = Column(Float, default=0)
    fuel_cost_savings = Column(Float, default=0)
    status = Column(String(20), default="active", nullable=False)  # active, closed
    created_at = Column(DateTime, default=utcnow)
    closed_at = Column(DateTime, nullable=True)

    jobs = relationship(
        "ClusterJob",
        back_populates="cluster",
        order_by="ClusterJob.id",
        cascade="all, delete-orphan",
    )


class ClusterJob(Base):
    __tablename__ = "cluster_jobs"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), index=True, nullable=False)
    cluster_id = Column(Integer, ForeignKey("job_clusters.id"), nullable=False, index=True)
    quote_id = Column(Integer, ForeignKey("quote_history.id"), nullable=True)
    appointment_ref = Column(String(255), nullable=True)  # external appointment id
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    distance_from_center = Column(Float, nullable=True)
    schedule_order = Column(Integer, nullable=True)
    estimated_duration_hours = Column(Float, default=4, nullable=False)
    status = Column(String(20), default="active", nullable=False)  # active, cancelled
    created_at = Column(DateTime, default=utcnow)

    cluster = relationship("JobCluster", back_populates="jobs")
    quote = relationship("Quote", back_populates="cluster_jobs")


class RouteCache(Base):
    __tablename__ = "route_cache"
    __table_args__ = (UniqueConstraint("cluster_id", name="uq_route_cache_cluster"),)

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), index=True, nullable=False)
    cluster_id = Column(Integer, ForeignKey("job_clusters.id"), nullable=False)
    cluster_version = Column(Integer, nullable=False)
    route_order = Column(JSON, nullable=False)  # job ids in visiting order
    leg_miles = Column(JSON, nullable=True)
    total_distance_miles = Column(Float, nullable=False)
    total_travel_time_minutes = Column(Float, nullable=False)
    total_work_minutes = Column(Float, nullable=False)
    fuel_cost_estimated = Column(Float, nullable=False)
    optimized_at = Column(DateTime, default=utcnow)


class SchedulingDiscount(Base):
    __tablename__ = "scheduling_discounts"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), index=True, nullable=False)
    discount_type = Column(String(100), nullable=False)  # display name, e.g. "Three Job Cluster"
    family = Column(String(20), default="cluster", nullable=False)  # cluster, flexible
    min_jobs = Column(Integer, default=2, nullable=False)
    max_jobs = Column(Integer, default=6, nullable=False)
    discount_percentage = Column(Float, default=0, nullable=False)
    discount_fixed_amount = Column(Float, default=0, nullable=False)
    fuel_savings_share = Column(Float, default=0.5, nullable=False)
    description = Column(String(500), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)


# ============================================================================
# PRICING APPROVALS
# ============================================================================


class ApprovalRule(Base):
    __tablename__ = "approval_rules"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), index=True, nullable=False)
    rule_name = Column(String(255), nullable=False)
    rule_type = Column(String(20), nullable=False)  # amount, discount, anomaly, custom
    threshold_amount = Column(Float, nullable=True)
    threshold_percentage = Column(Float, nullable=True)
    approval_level = Column(String(20), nullable=False)  # manager, director, owner
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)


class PricingApproval(Base):
    __tablename__ = "pricing_approvals"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), index=True, nullable=False)
    quote_id = Column(Integer, ForeignKey("quote_history.id"), nullable=True)
    customer_name = Column(String(255), nullable=True)
    original_price = Column(Float, nullable=False)
    requested_price = Column(Float, nullable=False)
    discount_amount = Column(Float, default=0)
    discount_percentage = Column(Float, default=0)
    reason_code = Column(String(50), nullable=True)  # competitor_match, volume_discount, loyalty, auto_generated
    justification = Column(Text, nullable=True)
    triggers = Column(JSON, nullable=True)
    requested_by = Column(String(255), nullable=True)
    approval_level_required = Column(String(20), nullable=False)
    status = Column(String(20), default="pending", nullable=False, index=True)
    current_step_order = Column(Integer, default=1, nullable=False)
    version = Column(Integer, default=0, nullable=False)
    decided_by = Column(String(255), nullable=True)
    decided_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    steps = relationship(
        "ApprovalStep",
        back_populates="approval",
        order_by="ApprovalStep.step_order",
        cascade="all, delete-orphan",
    )


class ApprovalStep(Base):
    __tablename__ = "approval_steps"
    __table_args__ = (UniqueConstraint("approval_id", "step_order", name="uq_approval_step_order"),)

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), index=True, nullable=False)
    approval_id = Column(Integer, ForeignKey("pricing_approvals.id"), nullable=False)
    step_order = Column(Integer, nullable=False)
    approver_level = Column(String(20), nullable=False)
    approver_id = Column(String(255), nullable=True)
    status = Column(String(20), default="pending", nullable=False)  # pending, approved, rejected, skipped
    comments = Column(String(2000), nullable=True)
    completed_at = Column(DateTime, nullable=True)

    approval = relationship("PricingApproval", back_populates="steps")


class PricingAlert(Base):
    """Audit record for every fired rule and detected anomaly"""

    __tablename__ = "pricing_alerts"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(64), index=True, nullable=False)
    alert_type = Column(String(50), nullable=False)
    quote_id = Column(Integer, ForeignKey("quote_history.id"), nullable=True)
    approval_id = Column(Integer, ForeignKey("pricing_approvals.id"), nullable=True)
    rule_name = Column(String(255), nullable=True)
    alert_message = Column(String(1000), nullable=True)
    severity = Column(String(20), default="medium", nullable=False)
    resolved = Column(Boolean, default=False, nullable=False)
    resolved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)

"""Pricing domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ...shared.validators import normalize_state, validate_email, validate_us_phone, validate_zipcode
from ..scheduling.schemas import SchedulingRecommendation


class QuoteRequest(BaseModel):
    """
    Schema for a price request.

    Location comes from ZIP / city / state and, when known, explicit
    coordinates. Missing coordinates are geocoded from the address.
    """

    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)

    property_size: int = Field(8000, gt=0)  # square feet
    fence_perimeter: float = Field(500, ge=0)  # linear feet
    property_type: str = "Standard Residential"
    terrain_type: str = "Flat/Easy"
    num_pets: int = Field(1, ge=1, le=20)
    selected_tier: str = "Professional"

    preferred_date: Optional[date] = None
    date_range_start: Optional[date] = None
    date_range_end: Optional[date] = None
    flexible_scheduling: bool = False

    created_by: Optional[str] = None

    @field_validator("zip_code")
    @classmethod
    def validate_zip(cls, v):
        return validate_zipcode(v)

    @field_validator("state")
    @classmethod
    def validate_state(cls, v):
        return normalize_state(v)

    @field_validator("customer_phone")
    @classmethod
    def validate_phone(cls, v):
        if v:
            return validate_us_phone(v)
        return v

    @field_validator("customer_email")
    @classmethod
    def validate_email_field(cls, v):
        if v:
            return validate_email(v)
        return v

    @model_validator(mode="after")
    def check_consistency(self):
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be provided together")
        if self.date_range_start and self.date_range_end and self.date_range_end < self.date_range_start:
            raise ValueError("date_range_end must not be before date_range_start")
        return self

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class LineItem(BaseModel):
    code: str
    label: str
    amount: float


class LocationDetail(BaseModel):
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    geocoded: bool = False
    zone_id: Optional[int] = None
    zone_name: str
    zone_matched_by: str
    market_demand: str
    competition_level: str
    nearest_service_center: Optional[str] = None
    distance_miles: Optional[float] = None
    within_service_radius: Optional[bool] = None


class PropertyDetail(BaseModel):
    property_type: str
    property_type_is_default: bool
    size_sqft: int
    fence_perimeter_ft: float
    terrain: str
    terrain_is_default: bool
    num_pets: int


class PricingTerms(BaseModel):
    """Every intermediate term of the price computation"""

    base_equipment_cost: float
    perimeter_cost: float
    location_multiplier: float
    terrain_multiplier: float
    pet_multiplier: float
    base_price: float
    labor_hours: float
    labor_rate: float
    labor_cost: float
    distance_charge: float
    installation_subtotal: float
    demand_multiplier: float
    total_installation: float
    monthly_service: float
    selected_tier: str


class QuoteTotals(BaseModel):
    pre_discount_installation: float
    scheduling_savings: float = 0
    one_time_installation: float
    monthly_service: float
    first_year_total: float
    estimated_install_hours: float


class RecommendedDiscount(BaseModel):
    percentage: float
    reason: str


class MarketAnalysis(BaseModel):
    price_position: str
    confidence_score: int
    recommended_discount: RecommendedDiscount


class PricedQuote(BaseModel):
    quote_id: Optional[int] = None
    location: LocationDetail
    property_details: PropertyDetail
    pricing: PricingTerms
    line_items: list[LineItem]
    totals: QuoteTotals
    market_analysis: MarketAnalysis
    scheduling: Optional[SchedulingRecommendation] = None
    applied_option: Optional[str] = None
    warnings: list[str] = []


class QuoteResponse(BaseModel):
    """Schema for a persisted quote"""

    id: int
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    property_type: Optional[str] = None
    fence_perimeter: Optional[float] = None
    selected_tier: Optional[str] = None
    preferred_date: Optional[date] = None
    flexible_scheduling: bool
    zone_name: Optional[str] = None
    base_price: Optional[float] = None
    scheduling_savings: Optional[float] = None
    total_price: Optional[float] = None
    status: str
    expires_at: Optional[datetime] = None
    converted_to_customer: bool
    customer_id: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class QuoteDetailResponse(QuoteResponse):
    breakdown: Optional[dict] = None


class QuoteStatusUpdate(BaseModel):
    status: str
    customer_id: Optional[str] = None


class ScheduleQuoteRequest(BaseModel):
    """Book a persisted quote onto a route"""

    option_type: str  # join_cluster, new_cluster, flexible_scheduling
    cluster_id: Optional[int] = None
    cluster_date: Optional[date] = None
    technician_id: Optional[str] = None


class ScheduleQuoteResponse(BaseModel):
    quote_id: int
    option_type: str
    cluster_id: Optional[int] = None
    cluster_job_id: Optional[int] = None
    cluster_date: Optional[date] = None
    jobs_in_cluster: Optional[int] = None

"""Approvals domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from ..pricing.schemas import QuoteRequest


class ApprovalEvaluationRequest(BaseModel):
    """
    Run the approval gate for a saved quote (quote_id) or an unsaved request
    (quote, priced on the fly). A requested_price marks the request as custom
    pricing.
    """

    quote_id: Optional[int] = None
    quote: Optional[QuoteRequest] = None
    requested_price: Optional[float] = Field(None, ge=0)
    reason_code: Optional[str] = None  # competitor_match, volume_discount, loyalty
    justification: Optional[str] = Field(None, max_length=2000)
    requested_by: Optional[str] = None
    customer_name: Optional[str] = None

    @model_validator(mode="after")
    def check_source(self):
        if (self.quote_id is None) == (self.quote is None):
            raise ValueError("Provide exactly one of quote_id or quote")
        return self


class TriggerResponse(BaseModel):
    rule_id: Optional[int] = None
    rule_name: str
    rule_type: str
    approval_level: str
    reason: str


class AnomalyResponse(BaseModel):
    alert_type: str
    severity: str
    message: str


class CompetitorAnalysisResponse(BaseModel):
    competitor_count: int
    avg_competitor_price: Optional[float] = None
    our_price: float
    price_difference_percentage: Optional[float] = None
    requires_review: bool
    reason: str


class ApprovalCheckResponse(BaseModel):
    """Dry-run result, nothing is persisted"""

    requires_approval: bool
    required_level: Optional[str] = None
    original_price: float
    final_price: float
    discount_amount: float
    discount_percentage: float
    triggers: list[TriggerResponse] = []
    anomalies: list[AnomalyResponse] = []
    competitor_analysis: CompetitorAnalysisResponse
    estimated_approval_time: Optional[str] = None


class ApprovalEvaluationResponse(BaseModel):
    auto_approved: bool
    approval_id: Optional[int] = None
    required_level: Optional[str] = None
    triggers: list[TriggerResponse] = []
    anomalies: list[AnomalyResponse] = []
    estimated_approval_time: Optional[str] = None
    expires_at: Optional[datetime] = None


class ApprovalDecisionRequest(BaseModel):
    approver_id: str = Field(..., min_length=1)
    approver_level: str  # manager, director, owner
    decision: str  # approved, rejected
    comments: Optional[str] = Field(None, max_length=2000)


class ApprovalDecisionResponse(BaseModel):
    approval_id: int
    status: str
    final_decision: bool
    next_level: Optional[str] = None
    version: int


class ApprovalStepResponse(BaseModel):
    id: int
    step_order: int
    approver_level: str
    approver_id: Optional[str] = None
    status: str
    comments: Optional[str] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ApprovalResponse(BaseModel):
    id: int
    quote_id: Optional[int] = None
    customer_name: Optional[str] = None
    original_price: float
    requested_price: float
    discount_amount: Optional[float] = None
    discount_percentage: Optional[float] = None
    reason_code: Optional[str] = None
    justification: Optional[str] = None
    triggers: Optional[list] = None
    requested_by: Optional[str] = None
    approval_level_required: str
    status: str
    current_step_order: int
    version: int
    decided_by: Optional[str] = None
    decided_at: Optional[datetime] = None
    expires_at: datetime
    created_at: Optional[datetime] = None
    steps: list[ApprovalStepResponse] = []

    class Config:
        from_attributes = True


class ApprovalRuleCreate(BaseModel):
    rule_name: str = Field(..., min_length=1, max_length=255)
    rule_type: str  # amount, discount, anomaly, custom
    threshold_amount: Optional[float] = Field(None, gt=0)
    threshold_percentage: Optional[float] = Field(None, gt=0, le=100)
    approval_level: str
    is_active: bool = True


class ApprovalRuleUpdate(BaseModel):
    rule_name: Optional[str] = Field(None, min_length=1, max_length=255)
    threshold_amount: Optional[float] = Field(None, gt=0)
    threshold_percentage: Optional[float] = Field(None, gt=0, le=100)
    approval_level: Optional[str] = None
    is_active: Optional[bool] = None


class ApprovalRuleResponse(BaseModel):
    id: int
    rule_name: str
    rule_type: str
    threshold_amount: Optional[float] = None
    threshold_percentage: Optional[float] = None
    approval_level: str
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CompetitorPricingCreate(BaseModel):
    competitor_name: str = Field(..., min_length=1, max_length=255)
    service_area: Optional[str] = None
    zip_code: Optional[str] = None
    property_type: str
    base_installation_price: float = Field(..., gt=0)
    monthly_service_price: Optional[float] = Field(None, ge=0)
    fence_perimeter_range: Optional[str] = None
    pricing_date: Optional[date] = None
    source: str = "market_research"  # quote_match, market_research, customer_report
    verified: bool = False


class CompetitorPricingResponse(BaseModel):
    id: int
    competitor_name: str
    service_area: Optional[str] = None
    zip_code: Optional[str] = None
    property_type: Optional[str] = None
    base_installation_price: float
    monthly_service_price: Optional[float] = None
    fence_perimeter_range: Optional[str] = None
    pricing_date: date
    source: Optional[str] = None
    verified: bool

    class Config:
        from_attributes = True


class PricingAlertResponse(BaseModel):
    id: int
    alert_type: str
    quote_id: Optional[int] = None
    approval_id: Optional[int] = None
    rule_name: Optional[str] = None
    alert_message: Optional[str] = None
    severity: str
    resolved: bool
    resolved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ApprovalSummary(BaseModel):
    pending: int
    approved_last_7_days: int
    rejected_last_7_days: int
    expired: int
    avg_approved_discount_percentage: float
    highest_pending_amount: float
    unresolved_alerts: int

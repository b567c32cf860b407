"""Approvals router - FastAPI endpoints for the pricing approval gate"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from ...tenancy import get_tenant_id
from ..pricing.schemas import PricedQuote
from ..pricing.service import QuoteService
from .schemas import (
    ApprovalCheckResponse,
    ApprovalDecisionRequest,
    ApprovalDecisionResponse,
    ApprovalEvaluationRequest,
    ApprovalEvaluationResponse,
    ApprovalResponse,
    ApprovalRuleCreate,
    ApprovalRuleResponse,
    ApprovalRuleUpdate,
    ApprovalSummary,
    CompetitorPricingCreate,
    CompetitorPricingResponse,
    PricingAlertResponse,
)
from .service import ApprovalGate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/approvals", tags=["Approvals"])


def get_approval_gate(
    db: Session = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
) -> ApprovalGate:
    """Dependency injection for ApprovalGate"""
    return ApprovalGate(db, tenant_id)


def get_quote_service(
    db: Session = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
) -> QuoteService:
    return QuoteService(db, tenant_id)


def _priced_quote(data: ApprovalEvaluationRequest, quotes: QuoteService) -> tuple[PricedQuote, Optional[str]]:
    """The stored breakdown for quote_id, or a fresh price for an inline request"""
    if data.quote_id is not None:
        quote = quotes.get_quote(data.quote_id)
        return quotes.load_priced_quote(quote.id), data.customer_name or quote.customer_name
    return quotes.preview(data.quote), data.customer_name or data.quote.customer_name


@router.post("/check", response_model=ApprovalCheckResponse)
async def check_approval(
    data: ApprovalEvaluationRequest,
    gate: ApprovalGate = Depends(get_approval_gate),
    quotes: QuoteService = Depends(get_quote_service),
):
    """What the gate would decide, without opening a workflow or writing alerts"""
    priced, _ = _priced_quote(data, quotes)
    return gate.check(priced, requested_price=data.requested_price, quote_id=data.quote_id)


@router.post("/evaluate", response_model=ApprovalEvaluationResponse)
async def evaluate_approval(
    data: ApprovalEvaluationRequest,
    gate: ApprovalGate = Depends(get_approval_gate),
    quotes: QuoteService = Depends(get_quote_service),
):
    priced, customer_name = _priced_quote(data, quotes)
    return gate.evaluate(
        priced,
        requested_by=data.requested_by,
        quote_id=data.quote_id,
        customer_name=customer_name,
        requested_price=data.requested_price,
        reason_code=data.reason_code,
        justification=data.justification,
    )


@router.get("/pending", response_model=list[ApprovalResponse])
async def list_pending_approvals(
    level: str = Query(..., description="manager, director or owner"),
    gate: ApprovalGate = Depends(get_approval_gate),
):
    """Approvals waiting on a decision at this level"""
    return gate.pending_for_level(level)


@router.get("/history", response_model=list[ApprovalResponse])
async def list_approval_history(
    limit: int = Query(50, ge=1, le=200),
    gate: ApprovalGate = Depends(get_approval_gate),
):
    return gate.history(limit)


@router.get("/summary", response_model=ApprovalSummary)
async def get_approval_summary(gate: ApprovalGate = Depends(get_approval_gate)):
    return gate.summary()


@router.post("/maintenance/expire")
async def expire_stale_approvals(gate: ApprovalGate = Depends(get_approval_gate)):
    expired = gate.expire_stale()
    return {"expired": expired}


# ============================================================================
# RULES
# ============================================================================


@router.get("/rules", response_model=list[ApprovalRuleResponse])
async def list_approval_rules(
    include_inactive: bool = Query(False),
    gate: ApprovalGate = Depends(get_approval_gate),
):
    return gate.list_rules(include_inactive)


@router.post("/rules", response_model=ApprovalRuleResponse, status_code=201)
async def create_approval_rule(
    data: ApprovalRuleCreate,
    gate: ApprovalGate = Depends(get_approval_gate),
):
    return gate.create_rule(data)


@router.put("/rules/{rule_id}", response_model=ApprovalRuleResponse)
async def update_approval_rule(
    rule_id: int,
    data: ApprovalRuleUpdate,
    gate: ApprovalGate = Depends(get_approval_gate),
):
    return gate.update_rule(rule_id, data)


# ============================================================================
# COMPETITORS / ALERTS
# ============================================================================


@router.get("/competitors", response_model=list[CompetitorPricingResponse])
async def list_competitor_prices(
    property_type: Optional[str] = Query(None),
    gate: ApprovalGate = Depends(get_approval_gate),
):
    return gate.list_competitors(property_type)


@router.post("/competitors", response_model=CompetitorPricingResponse, status_code=201)
async def add_competitor_price(
    data: CompetitorPricingCreate,
    gate: ApprovalGate = Depends(get_approval_gate),
):
    return gate.add_competitor(data)


@router.put("/competitors/{competitor_id}/verify", response_model=CompetitorPricingResponse)
async def verify_competitor_price(
    competitor_id: int,
    gate: ApprovalGate = Depends(get_approval_gate),
):
    return gate.verify_competitor(competitor_id)


@router.get("/alerts", response_model=list[PricingAlertResponse])
async def list_pricing_alerts(
    severity: Optional[str] = Query(None),
    include_resolved: bool = Query(False),
    gate: ApprovalGate = Depends(get_approval_gate),
):
    return gate.list_alerts(severity, include_resolved)


@router.put("/alerts/{alert_id}/resolve", response_model=PricingAlertResponse)
async def resolve_pricing_alert(
    alert_id: int,
    gate: ApprovalGate = Depends(get_approval_gate),
):
    return gate.resolve_alert(alert_id)


# ============================================================================
# SINGLE APPROVAL
# ============================================================================


@router.get("/{approval_id}", response_model=ApprovalResponse)
async def get_approval(
    approval_id: int,
    gate: ApprovalGate = Depends(get_approval_gate),
):
    return gate.get_approval(approval_id)


@router.post("/{approval_id}/decision", response_model=ApprovalDecisionResponse)
async def decide_approval(
    approval_id: int,
    data: ApprovalDecisionRequest,
    gate: ApprovalGate = Depends(get_approval_gate),
):
    """Decide the current step; 409 when the step is not current or the request is closed"""
    outcome = gate.decide(
        approval_id,
        approver_id=data.approver_id,
        approver_level=data.approver_level,
        decision=data.decision,
        comments=data.comments,
    )
    return ApprovalDecisionResponse(
        approval_id=outcome.approval_id,
        status=outcome.status,
        final_decision=outcome.final_decision,
        next_level=outcome.next_level,
        version=outcome.version,
    )

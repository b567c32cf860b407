"""
Pricing approval gate.

Evaluates a priced quote against the tenant's approval rules plus anomaly
checks (similar-quote variance, competitor variance, configuration), opens a
sequential manager -> director -> owner workflow when anything fires, and
records every fired rule and detected anomaly as a PricingAlert, whether or
not approval ends up being required.
"""

import logging
from datetime import date, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...config import ANOMALY_LOOKBACK_DAYS, APPROVAL_TTL_DAYS, COMPETITOR_LOOKBACK_DAYS
from ...models import ApprovalRule, CompetitorPricing, PricingAlert, PricingApproval, utcnow
from ...shared.enums import (
    AlertSeverity,
    ApprovalLevel,
    ApprovalRuleType,
    ApprovalStatus,
)
from ...shared.exceptions import DomainValidationError, NotFoundError, WorkflowStateError
from ..pricing.schemas import PricedQuote
from . import rules
from .repository import ApprovalRepository
from .schemas import (
    AnomalyResponse,
    ApprovalCheckResponse,
    ApprovalEvaluationResponse,
    ApprovalRuleCreate,
    ApprovalRuleUpdate,
    ApprovalSummary,
    CompetitorAnalysisResponse,
    CompetitorPricingCreate,
    TriggerResponse,
)
from .workflow import ApprovalWorkflow, DecisionOutcome, build_steps

logger = logging.getLogger(__name__)


def _trigger_response(trigger: rules.Trigger) -> TriggerResponse:
    return TriggerResponse(
        rule_id=trigger.rule_id,
        rule_name=trigger.rule_name,
        rule_type=trigger.rule_type,
        approval_level=trigger.approval_level,
        reason=trigger.reason,
    )


def _anomaly_response(anomaly: rules.Anomaly) -> AnomalyResponse:
    return AnomalyResponse(alert_type=anomaly.alert_type, severity=anomaly.severity, message=anomaly.message)


class ApprovalGate:
    """Service layer for pricing approvals"""

    def __init__(self, db: Session, tenant_id: str):
        self.db = db
        self.tenant_id = tenant_id
        self.repo = ApprovalRepository()

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def subject_for(self, priced: PricedQuote, requested_price: Optional[float] = None) -> rules.PriceSubject:
        """Gate the requested price when one is given, otherwise the quoted total"""
        custom = requested_price is not None
        return rules.PriceSubject(
            original_price=priced.totals.pre_discount_installation,
            final_price=round(requested_price, 2) if custom else priced.totals.one_time_installation,
            property_type=priced.property_details.property_type,
            fence_perimeter=priced.property_details.fence_perimeter_ft,
            property_size=priced.property_details.size_sqft,
            custom_pricing=custom,
        )

    def run_rules(self, subject: rules.PriceSubject, exclude_quote_id: Optional[int] = None) -> rules.Evaluation:
        now = utcnow()
        low, high = rules.perimeter_bounds(subject.fence_perimeter)
        similar = self.repo.similar_quote_prices(
            self.db,
            self.tenant_id,
            subject.property_type,
            low,
            high,
            since=now - timedelta(days=ANOMALY_LOOKBACK_DAYS),
            exclude_quote_id=exclude_quote_id,
        )
        competitors = self.repo.competitor_prices(
            self.db,
            self.tenant_id,
            subject.property_type,
            since=date.today() - timedelta(days=COMPETITOR_LOOKBACK_DAYS),
        )
        active_rules = [rules.RuleSpec.from_model(rule) for rule in self.repo.list_rules(self.db, self.tenant_id)]
        return rules.evaluate(subject, active_rules, similar, competitors)

    def check(
        self,
        priced: PricedQuote,
        requested_price: Optional[float] = None,
        quote_id: Optional[int] = None,
    ) -> ApprovalCheckResponse:
        """Dry run: what the gate would decide, without persisting anything"""
        subject = self.subject_for(priced, requested_price)
        evaluation = self.run_rules(subject, exclude_quote_id=quote_id)
        analysis = evaluation.competitor_analysis
        return ApprovalCheckResponse(
            requires_approval=evaluation.requires_approval,
            required_level=evaluation.required_level,
            original_price=subject.original_price,
            final_price=subject.final_price,
            discount_amount=subject.discount_amount,
            discount_percentage=round(subject.discount_percentage, 2),
            triggers=[_trigger_response(t) for t in evaluation.triggers],
            anomalies=[_anomaly_response(a) for a in evaluation.anomalies],
            competitor_analysis=CompetitorAnalysisResponse(
                competitor_count=analysis.competitor_count,
                avg_competitor_price=analysis.avg_competitor_price,
                our_price=analysis.our_price,
                price_difference_percentage=analysis.price_difference_percentage,
                requires_review=analysis.requires_review,
                reason=analysis.reason,
            ),
            estimated_approval_time=rules.estimated_approval_time(evaluation.required_level),
        )

    def evaluate(
        self,
        priced: PricedQuote,
        requested_by: Optional[str] = None,
        quote_id: Optional[int] = None,
        customer_name: Optional[str] = None,
        requested_price: Optional[float] = None,
        reason_code: Optional[str] = None,
        justification: Optional[str] = None,
    ) -> ApprovalEvaluationResponse:
        """
        Auto-approve, or open an approval workflow at the highest fired level.

        Alerts for every fired rule and anomaly are written either way.
        """
        quote_id = quote_id if quote_id is not None else priced.quote_id
        subject = self.subject_for(priced, requested_price)
        evaluation = self.run_rules(subject, exclude_quote_id=quote_id)

        anomaly_alerts = [
            PricingAlert(
                tenant_id=self.tenant_id,
                alert_type=anomaly.alert_type,
                quote_id=quote_id,
                alert_message=anomaly.message,
                severity=anomaly.severity,
            )
            for anomaly in evaluation.anomalies
        ]
        triggers = [_trigger_response(t) for t in evaluation.triggers]
        anomalies = [_anomaly_response(a) for a in evaluation.anomalies]

        if not evaluation.requires_approval:
            if anomaly_alerts:
                self.repo.add_alerts(self.db, anomaly_alerts)
                logger.info(
                    f"⚠️ Quote {quote_id} auto-approved with {len(anomaly_alerts)} anomaly alerts "
                    f"(tenant {self.tenant_id})"
                )
            return ApprovalEvaluationResponse(auto_approved=True, anomalies=anomalies)

        required_level = evaluation.required_level
        trigger_alerts = [
            PricingAlert(
                tenant_id=self.tenant_id,
                alert_type="approval_trigger",
                quote_id=quote_id,
                rule_name=trigger.rule_name,
                alert_message=trigger.reason,
                severity=rules.TRIGGER_SEVERITY.get(trigger.approval_level, AlertSeverity.MEDIUM.value),
            )
            for trigger in evaluation.triggers
        ]

        now = utcnow()
        approval = PricingApproval(
            tenant_id=self.tenant_id,
            quote_id=quote_id,
            customer_name=customer_name or "Unknown",
            original_price=subject.original_price,
            requested_price=subject.final_price,
            discount_amount=subject.discount_amount,
            discount_percentage=round(subject.discount_percentage, 2),
            reason_code=reason_code or ("custom" if subject.custom_pricing else "auto_generated"),
            justification=justification or "; ".join(t.reason for t in evaluation.triggers),
            triggers=[t.model_dump() for t in triggers],
            requested_by=requested_by,
            approval_level_required=required_level,
            status=ApprovalStatus.PENDING.value,
            current_step_order=1,
            version=0,
            expires_at=now + timedelta(days=APPROVAL_TTL_DAYS),
            created_at=now,
        )
        approval.steps = build_steps(self.tenant_id, rules.workflow_levels(required_level))
        approval = self.repo.add_approval(self.db, approval, anomaly_alerts + trigger_alerts)

        logger.info(
            f"📋 Approval {approval.id} opened at {required_level} level for quote {quote_id} "
            f"({len(triggers)} triggers, tenant {self.tenant_id})"
        )
        return ApprovalEvaluationResponse(
            auto_approved=False,
            approval_id=approval.id,
            required_level=required_level,
            triggers=triggers,
            anomalies=anomalies,
            estimated_approval_time=rules.estimated_approval_time(required_level),
            expires_at=approval.expires_at,
        )

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def decide(
        self,
        approval_id: int,
        approver_id: str,
        approver_level: str,
        decision: str,
        comments: Optional[str] = None,
    ) -> DecisionOutcome:
        """
        Decide the current step of an approval.

        Runs under the approval row lock so two approvers can never act on
        the same step, or skip ahead of a pending lower level.

        Raises:
            NotFoundError: Unknown approval
            WorkflowStateError: Terminal, expired, or not the current step
        """
        expired = False
        try:
            approval = self.repo.get_approval_for_update(self.db, self.tenant_id, approval_id)
            if not approval:
                raise NotFoundError("Approval request not found", approval_id=approval_id)

            workflow = ApprovalWorkflow(approval)
            now = utcnow()
            if workflow.is_expired(now):
                workflow.expire(now)
                expired = True
                outcome = None
            else:
                outcome = workflow.decide(approver_id, approver_level, decision, comments, now)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if expired:
            logger.info(f"⌛ Approval {approval_id} expired before a decision (tenant {self.tenant_id})")
            raise WorkflowStateError(
                "Approval request has expired",
                approval_id=approval_id,
                status=ApprovalStatus.EXPIRED.value,
            )

        logger.info(
            f"✅ Approval {approval_id}: {approver_level} {decision} by {approver_id} -> {outcome.status}"
            + (f" (next: {outcome.next_level})" if outcome.next_level else "")
        )
        return outcome

    def expire_stale(self) -> int:
        return expire_stale_approvals(self.db, self.tenant_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_approval(self, approval_id: int) -> PricingApproval:
        approval = self.repo.get_approval(self.db, self.tenant_id, approval_id)
        if not approval:
            raise NotFoundError("Approval request not found", approval_id=approval_id)
        return approval

    def pending_for_level(self, level: str) -> list[PricingApproval]:
        level = self._checked(ApprovalLevel, level, "level")
        return self.repo.pending_for_level(self.db, self.tenant_id, level, utcnow())

    def history(self, limit: int = 50) -> list[PricingApproval]:
        return self.repo.decided_history(self.db, self.tenant_id, limit)

    def summary(self) -> ApprovalSummary:
        now = utcnow()
        week_ago = now - timedelta(days=7)
        return ApprovalSummary(
            pending=self.repo.count_open(self.db, self.tenant_id, now),
            approved_last_7_days=self.repo.count_by_status(
                self.db, self.tenant_id, ApprovalStatus.APPROVED.value, decided_since=week_ago
            ),
            rejected_last_7_days=self.repo.count_by_status(
                self.db, self.tenant_id, ApprovalStatus.REJECTED.value, decided_since=week_ago
            ),
            expired=self.repo.count_by_status(self.db, self.tenant_id, ApprovalStatus.EXPIRED.value),
            avg_approved_discount_percentage=round(self.repo.avg_approved_discount(self.db, self.tenant_id), 2),
            highest_pending_amount=round(self.repo.highest_pending_amount(self.db, self.tenant_id, now), 2),
            unresolved_alerts=self.repo.count_unresolved_alerts(self.db, self.tenant_id),
        )

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def list_rules(self, include_inactive: bool = False) -> list[ApprovalRule]:
        return self.repo.list_rules(self.db, self.tenant_id, active_only=not include_inactive)

    def create_rule(self, data: ApprovalRuleCreate) -> ApprovalRule:
        rule_type = self._checked(ApprovalRuleType, data.rule_type, "rule_type")
        approval_level = self._checked(ApprovalLevel, data.approval_level, "approval_level")
        self._check_thresholds(rule_type, data.threshold_amount, data.threshold_percentage)

        rule = self.repo.create_rule(
            self.db,
            self.tenant_id,
            rule_name=data.rule_name,
            rule_type=rule_type,
            threshold_amount=data.threshold_amount,
            threshold_percentage=data.threshold_percentage,
            approval_level=approval_level,
            is_active=data.is_active,
        )
        logger.info(f"✅ Approval rule '{rule.rule_name}' created (tenant {self.tenant_id})")
        return rule

    def update_rule(self, rule_id: int, data: ApprovalRuleUpdate) -> ApprovalRule:
        rule = self.repo.get_rule(self.db, self.tenant_id, rule_id)
        if not rule:
            raise NotFoundError("Approval rule not found", rule_id=rule_id)

        update_data = data.model_dump(exclude_unset=True)
        if "approval_level" in update_data:
            update_data["approval_level"] = self._checked(ApprovalLevel, update_data["approval_level"], "approval_level")
        self._check_thresholds(
            rule.rule_type,
            update_data.get("threshold_amount", rule.threshold_amount),
            update_data.get("threshold_percentage", rule.threshold_percentage),
        )
        return self.repo.update_rule(self.db, rule, update_data)

    # ------------------------------------------------------------------
    # Competitors / alerts
    # ------------------------------------------------------------------

    def list_competitors(self, property_type: Optional[str] = None) -> list[CompetitorPricing]:
        return self.repo.list_competitors(self.db, self.tenant_id, property_type)

    def add_competitor(self, data: CompetitorPricingCreate) -> CompetitorPricing:
        competitor_data = data.model_dump()
        competitor_data["pricing_date"] = data.pricing_date or date.today()
        return self.repo.create_competitor(self.db, self.tenant_id, **competitor_data)

    def verify_competitor(self, competitor_id: int) -> CompetitorPricing:
        competitor = self.repo.get_competitor(self.db, self.tenant_id, competitor_id)
        if not competitor:
            raise NotFoundError("Competitor price not found", competitor_id=competitor_id)
        competitor.verified = True
        self.db.commit()
        self.db.refresh(competitor)
        return competitor

    def list_alerts(self, severity: Optional[str] = None, include_resolved: bool = False) -> list[PricingAlert]:
        if severity:
            severity = self._checked(AlertSeverity, severity, "severity")
        return self.repo.list_alerts(self.db, self.tenant_id, severity, include_resolved)

    def resolve_alert(self, alert_id: int) -> PricingAlert:
        alert = self.repo.get_alert(self.db, self.tenant_id, alert_id)
        if not alert:
            raise NotFoundError("Pricing alert not found", alert_id=alert_id)
        if not alert.resolved:
            alert.resolved = True
            alert.resolved_at = utcnow()
            self.db.commit()
            self.db.refresh(alert)
        return alert

    @staticmethod
    def _check_thresholds(rule_type: str, threshold_amount, threshold_percentage) -> None:
        if rule_type == ApprovalRuleType.AMOUNT.value and threshold_amount is None:
            raise DomainValidationError("Amount rules need threshold_amount")
        if rule_type == ApprovalRuleType.DISCOUNT.value and threshold_percentage is None:
            raise DomainValidationError("Discount rules need threshold_percentage")

    @staticmethod
    def _checked(enum_cls, value: str, field: str) -> str:
        try:
            return enum_cls((value or "").strip().lower()).value
        except ValueError:
            allowed = ", ".join(item.value for item in enum_cls)
            raise DomainValidationError(f"{field} must be one of: {allowed}", **{field: value})


def expire_stale_approvals(db: Session, tenant_id: Optional[str] = None) -> int:
    """Void pending approvals past their TTL; all tenants when tenant_id is None"""
    now = utcnow()
    try:
        stale = ApprovalRepository.stale_pending(db, now, tenant_id)
        for approval in stale:
            ApprovalWorkflow(approval).expire(now)
        db.commit()
    except Exception:
        db.rollback()
        raise

    if stale:
        logger.info(f"⌛ Expired {len(stale)} pending approvals" + (f" (tenant {tenant_id})" if tenant_id else ""))
    return len(stale)

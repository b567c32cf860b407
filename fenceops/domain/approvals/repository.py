"""Approvals repository - Database operations for rules, approvals, competitors and alerts"""

from datetime import date, datetime
from typing import Optional

from sqlalchemy import and_, func
from sqlalchemy.orm import Session, selectinload

from ...models import ApprovalRule, ApprovalStep, CompetitorPricing, PricingAlert, PricingApproval, Quote
from ...shared.enums import ApprovalStatus


class ApprovalRepository:
    """Repository for approval-related database operations"""

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    @staticmethod
    def list_rules(db: Session, tenant_id: str, active_only: bool = True) -> list[ApprovalRule]:
        query = db.query(ApprovalRule).filter(ApprovalRule.tenant_id == tenant_id)
        if active_only:
            query = query.filter(ApprovalRule.is_active.is_(True))
        return query.order_by(ApprovalRule.rule_type, ApprovalRule.id).all()

    @staticmethod
    def get_rule(db: Session, tenant_id: str, rule_id: int) -> Optional[ApprovalRule]:
        return (
            db.query(ApprovalRule)
            .filter(ApprovalRule.tenant_id == tenant_id, ApprovalRule.id == rule_id)
            .first()
        )

    @staticmethod
    def create_rule(db: Session, tenant_id: str, **rule_data) -> ApprovalRule:
        rule = ApprovalRule(tenant_id=tenant_id, **rule_data)
        db.add(rule)
        db.commit()
        db.refresh(rule)
        return rule

    @staticmethod
    def update_rule(db: Session, rule: ApprovalRule, update_data: dict) -> ApprovalRule:
        for field, value in update_data.items():
            setattr(rule, field, value)
        db.commit()
        db.refresh(rule)
        return rule

    # ------------------------------------------------------------------
    # Comparables
    # ------------------------------------------------------------------

    @staticmethod
    def similar_quote_prices(
        db: Session,
        tenant_id: str,
        property_type: str,
        min_perimeter: float,
        max_perimeter: float,
        since: datetime,
        exclude_quote_id: Optional[int] = None,
    ) -> list[float]:
        query = db.query(Quote.total_price).filter(
            Quote.tenant_id == tenant_id,
            Quote.property_type == property_type,
            Quote.fence_perimeter.between(min_perimeter, max_perimeter),
            Quote.created_at >= since,
            Quote.total_price.isnot(None),
        )
        if exclude_quote_id is not None:
            query = query.filter(Quote.id != exclude_quote_id)
        return [row[0] for row in query.all()]

    @staticmethod
    def competitor_prices(db: Session, tenant_id: str, property_type: str, since: date) -> list[float]:
        rows = (
            db.query(CompetitorPricing.base_installation_price)
            .filter(
                CompetitorPricing.tenant_id == tenant_id,
                CompetitorPricing.property_type == property_type,
                CompetitorPricing.pricing_date >= since,
            )
            .all()
        )
        return [row[0] for row in rows]

    # ------------------------------------------------------------------
    # Approvals
    # ------------------------------------------------------------------

    @staticmethod
    def add_approval(db: Session, approval: PricingApproval, alerts: list[PricingAlert]) -> PricingApproval:
        """Approval, its steps and its alerts in one commit"""
        try:
            db.add(approval)
            db.flush()
            for alert in alerts:
                alert.approval_id = approval.id
                db.add(alert)
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(approval)
        return approval

    @staticmethod
    def add_alerts(db: Session, alerts: list[PricingAlert]) -> None:
        try:
            db.add_all(alerts)
            db.commit()
        except Exception:
            db.rollback()
            raise

    @staticmethod
    def get_approval(db: Session, tenant_id: str, approval_id: int) -> Optional[PricingApproval]:
        return (
            db.query(PricingApproval)
            .options(selectinload(PricingApproval.steps))
            .filter(PricingApproval.tenant_id == tenant_id, PricingApproval.id == approval_id)
            .first()
        )

    @staticmethod
    def get_approval_for_update(db: Session, tenant_id: str, approval_id: int) -> Optional[PricingApproval]:
        return (
            db.query(PricingApproval)
            .filter(PricingApproval.tenant_id == tenant_id, PricingApproval.id == approval_id)
            .populate_existing()
            .with_for_update()
            .first()
        )

    @staticmethod
    def pending_for_level(db: Session, tenant_id: str, level: str, now: datetime) -> list[PricingApproval]:
        """Pending, unexpired approvals whose current step belongs to level"""
        return (
            db.query(PricingApproval)
            .join(
                ApprovalStep,
                and_(
                    ApprovalStep.approval_id == PricingApproval.id,
                    ApprovalStep.step_order == PricingApproval.current_step_order,
                ),
            )
            .options(selectinload(PricingApproval.steps))
            .filter(
                PricingApproval.tenant_id == tenant_id,
                PricingApproval.status == ApprovalStatus.PENDING.value,
                PricingApproval.expires_at > now,
                ApprovalStep.approver_level == level,
            )
            .order_by(PricingApproval.created_at.asc(), PricingApproval.id.asc())
            .all()
        )

    @staticmethod
    def decided_history(db: Session, tenant_id: str, limit: int = 50) -> list[PricingApproval]:
        return (
            db.query(PricingApproval)
            .options(selectinload(PricingApproval.steps))
            .filter(
                PricingApproval.tenant_id == tenant_id,
                PricingApproval.status.in_([ApprovalStatus.APPROVED.value, ApprovalStatus.REJECTED.value]),
            )
            .order_by(PricingApproval.decided_at.desc(), PricingApproval.id.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def stale_pending(db: Session, now: datetime, tenant_id: Optional[str] = None) -> list[PricingApproval]:
        query = db.query(PricingApproval).filter(
            PricingApproval.status == ApprovalStatus.PENDING.value,
            PricingApproval.expires_at <= now,
        )
        if tenant_id:
            query = query.filter(PricingApproval.tenant_id == tenant_id)
        return query.populate_existing().with_for_update().all()

    @staticmethod
    def count_by_status(db: Session, tenant_id: str, status: str, decided_since: Optional[datetime] = None) -> int:
        query = db.query(func.count(PricingApproval.id)).filter(
            PricingApproval.tenant_id == tenant_id,
            PricingApproval.status == status,
        )
        if decided_since is not None:
            query = query.filter(PricingApproval.decided_at >= decided_since)
        return query.scalar() or 0

    @staticmethod
    def count_open(db: Session, tenant_id: str, now: datetime) -> int:
        return (
            db.query(func.count(PricingApproval.id))
            .filter(
                PricingApproval.tenant_id == tenant_id,
                PricingApproval.status == ApprovalStatus.PENDING.value,
                PricingApproval.expires_at > now,
            )
            .scalar()
            or 0
        )

    @staticmethod
    def avg_approved_discount(db: Session, tenant_id: str) -> float:
        value = (
            db.query(func.avg(PricingApproval.discount_percentage))
            .filter(
                PricingApproval.tenant_id == tenant_id,
                PricingApproval.status == ApprovalStatus.APPROVED.value,
            )
            .scalar()
        )
        return float(value or 0)

    @staticmethod
    def highest_pending_amount(db: Session, tenant_id: str, now: datetime) -> float:
        value = (
            db.query(func.max(PricingApproval.requested_price))
            .filter(
                PricingApproval.tenant_id == tenant_id,
                PricingApproval.status == ApprovalStatus.PENDING.value,
                PricingApproval.expires_at > now,
            )
            .scalar()
        )
        return float(value or 0)

    # ------------------------------------------------------------------
    # Competitors
    # ------------------------------------------------------------------

    @staticmethod
    def list_competitors(db: Session, tenant_id: str, property_type: Optional[str] = None) -> list[CompetitorPricing]:
        query = db.query(CompetitorPricing).filter(CompetitorPricing.tenant_id == tenant_id)
        if property_type:
            query = query.filter(CompetitorPricing.property_type == property_type)
        return query.order_by(CompetitorPricing.pricing_date.desc(), CompetitorPricing.id.desc()).all()

    @staticmethod
    def get_competitor(db: Session, tenant_id: str, competitor_id: int) -> Optional[CompetitorPricing]:
        return (
            db.query(CompetitorPricing)
            .filter(CompetitorPricing.tenant_id == tenant_id, CompetitorPricing.id == competitor_id)
            .first()
        )

    @staticmethod
    def create_competitor(db: Session, tenant_id: str, **competitor_data) -> CompetitorPricing:
        competitor = CompetitorPricing(tenant_id=tenant_id, **competitor_data)
        db.add(competitor)
        db.commit()
        db.refresh(competitor)
        return competitor

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    @staticmethod
    def list_alerts(
        db: Session,
        tenant_id: str,
        severity: Optional[str] = None,
        include_resolved: bool = False,
        limit: int = 100,
    ) -> list[PricingAlert]:
        query = db.query(PricingAlert).filter(PricingAlert.tenant_id == tenant_id)
        if severity:
            query = query.filter(PricingAlert.severity == severity)
        if not include_resolved:
            query = query.filter(PricingAlert.resolved.is_(False))
        return query.order_by(PricingAlert.created_at.desc(), PricingAlert.id.desc()).limit(limit).all()

    @staticmethod
    def get_alert(db: Session, tenant_id: str, alert_id: int) -> Optional[PricingAlert]:
        return (
            db.query(PricingAlert)
            .filter(PricingAlert.tenant_id == tenant_id, PricingAlert.id == alert_id)
            .first()
        )

    @staticmethod
    def count_unresolved_alerts(db: Session, tenant_id: str) -> int:
        return (
            db.query(func.count(PricingAlert.id))
            .filter(PricingAlert.tenant_id == tenant_id, PricingAlert.resolved.is_(False))
            .scalar()
            or 0
        )

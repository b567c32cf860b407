"""Quote repository - Database operations for quote history"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Integer, cast, func
from sqlalchemy.orm import Session

from ...models import Quote
from ...shared.enums import QuoteStatus


class QuoteRepository:
    """Repository for quote_history database operations"""

    @staticmethod
    def create_quote(db: Session, tenant_id: str, **quote_data) -> Quote:
        quote = Quote(tenant_id=tenant_id, **quote_data)
        db.add(quote)
        db.commit()
        db.refresh(quote)
        return quote

    @staticmethod
    def get_quote(db: Session, tenant_id: str, quote_id: int) -> Optional[Quote]:
        return db.query(Quote).filter(Quote.tenant_id == tenant_id, Quote.id == quote_id).first()

    @staticmethod
    def get_quote_for_update(db: Session, tenant_id: str, quote_id: int) -> Optional[Quote]:
        return (
            db.query(Quote)
            .filter(Quote.tenant_id == tenant_id, Quote.id == quote_id)
            .populate_existing()
            .with_for_update()
            .first()
        )

    @staticmethod
    def list_quotes(
        db: Session,
        tenant_id: str,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Quote]:
        query = db.query(Quote).filter(Quote.tenant_id == tenant_id)
        if status:
            query = query.filter(Quote.status == status)
        return query.order_by(Quote.created_at.desc(), Quote.id.desc()).offset(offset).limit(limit).all()

    @staticmethod
    def expire_stale(db: Session, now: datetime, tenant_id: Optional[str] = None) -> int:
        """Pending quotes past expires_at become expired"""
        query = db.query(Quote).filter(
            Quote.status == QuoteStatus.PENDING.value,
            Quote.expires_at.isnot(None),
            Quote.expires_at < now,
        )
        if tenant_id:
            query = query.filter(Quote.tenant_id == tenant_id)
        expired = query.update(
            {Quote.status: QuoteStatus.EXPIRED.value, Quote.status_changed_at: now},
            synchronize_session=False,
        )
        db.commit()
        return expired

    @staticmethod
    def _grouped_stats(db: Session, tenant_id: str, column) -> list[dict]:
        rows = (
            db.query(
                column,
                func.count(Quote.id),
                func.avg(Quote.total_price),
                func.min(Quote.total_price),
                func.max(Quote.total_price),
                func.sum(cast(Quote.converted_to_customer, Integer)),
            )
            .filter(Quote.tenant_id == tenant_id)
            .group_by(column)
            .order_by(func.count(Quote.id).desc())
            .all()
        )
        return [
            {
                "name": name,
                "quote_count": count,
                "avg_price": round(float(avg or 0), 2),
                "min_price": round(float(low or 0), 2),
                "max_price": round(float(high or 0), 2),
                "conversions": int(conversions or 0),
            }
            for name, count, avg, low, high, conversions in rows
        ]

    @staticmethod
    def stats_by_zone(db: Session, tenant_id: str) -> list[dict]:
        return QuoteRepository._grouped_stats(db, tenant_id, Quote.zone_name)

    @staticmethod
    def stats_by_tier(db: Session, tenant_id: str) -> list[dict]:
        return QuoteRepository._grouped_stats(db, tenant_id, Quote.selected_tier)

    @staticmethod
    def counts_by_status(db: Session, tenant_id: str) -> dict[str, int]:
        rows = (
            db.query(Quote.status, func.count(Quote.id))
            .filter(Quote.tenant_id == tenant_id)
            .group_by(Quote.status)
            .all()
        )
        return {status: count for status, count in rows}

"""
Scheduling discount resolution.

Maps the size of a shared route (or a flexible-date booking) to a discount:
    amount = max(base_price * pct / 100, fixed) + fuel_estimate * fuel_share
where fuel_estimate is the round-trip fuel saved by splitting one trip
across N jobs instead of driving N separate trips.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from sqlalchemy.orm import Session

from ...config import BASE_TRIP_MILES, FUEL_COST_PER_MILE
from ...models import SchedulingDiscount
from ...shared.enums import DiscountFamily
from .repository import SchedulingRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiscountQuote:
    rule_id: int
    discount_type: str
    family: str
    total_jobs: int
    discount_percentage: float
    fixed_amount: float
    fuel_savings_share: float
    fuel_savings_estimate: float
    amount: float


def fuel_savings_estimate(total_jobs: int) -> float:
    """Fuel saved per job when N jobs share one round trip"""
    if total_jobs < 1:
        return 0.0
    separate_trip = 2 * BASE_TRIP_MILES * FUEL_COST_PER_MILE
    return separate_trip - separate_trip / total_jobs


def select_rule(rules: Sequence[SchedulingDiscount], total_jobs: int) -> Optional[SchedulingDiscount]:
    """
    Rule whose [min_jobs, max_jobs] contains total_jobs.

    Overlapping rules do not raise: the highest percentage wins, then the
    larger fixed amount, then the oldest rule.
    """
    applicable = [r for r in rules if r.min_jobs <= total_jobs <= r.max_jobs]
    if not applicable:
        return None
    return min(
        applicable,
        key=lambda r: (-(r.discount_percentage or 0), -(r.discount_fixed_amount or 0), r.id),
    )


class DiscountResolver:
    """Discount lookups for one tenant; rules are read once per resolver"""

    def __init__(self, db: Session, tenant_id: str):
        self.db = db
        self.tenant_id = tenant_id
        self.repo = SchedulingRepository()
        self._rules: dict[str, list[SchedulingDiscount]] = {}

    def rules(self, family: DiscountFamily) -> list[SchedulingDiscount]:
        if family.value not in self._rules:
            self._rules[family.value] = self.repo.list_discount_rules(
                self.db, self.tenant_id, family=family.value, active_only=True
            )
        return self._rules[family.value]

    def resolve(self, total_jobs: int, base_price: float) -> Optional[DiscountQuote]:
        """Cluster discount for a route of total_jobs (new job included)"""
        rule = select_rule(self.rules(DiscountFamily.CLUSTER), total_jobs)
        if rule is None:
            logger.debug(f"No cluster discount rule covers {total_jobs} jobs (tenant {self.tenant_id})")
            return None

        fuel = fuel_savings_estimate(total_jobs)
        pct = rule.discount_percentage or 0
        fixed = rule.discount_fixed_amount or 0
        amount = max(base_price * pct / 100, fixed) + fuel * rule.fuel_savings_share
        return DiscountQuote(
            rule_id=rule.id,
            discount_type=rule.discount_type,
            family=rule.family,
            total_jobs=total_jobs,
            discount_percentage=pct,
            fixed_amount=fixed,
            fuel_savings_share=rule.fuel_savings_share,
            fuel_savings_estimate=round(fuel, 2),
            amount=round(amount, 2),
        )

    def resolve_flexible(self, base_price: float) -> Optional[DiscountQuote]:
        """Flexible-date discount; no shared route, so no fuel share"""
        rules = self.rules(DiscountFamily.FLEXIBLE)
        if not rules:
            return None

        rule = min(
            rules,
            key=lambda r: (-(r.discount_percentage or 0), -(r.discount_fixed_amount or 0), r.id),
        )
        pct = rule.discount_percentage or 0
        fixed = rule.discount_fixed_amount or 0
        return DiscountQuote(
            rule_id=rule.id,
            discount_type=rule.discount_type,
            family=rule.family,
            total_jobs=1,
            discount_percentage=pct,
            fixed_amount=fixed,
            fuel_savings_share=0.0,
            fuel_savings_estimate=0.0,
            amount=round(max(base_price * pct / 100, fixed), 2),
        )

"""
Approval rule evaluation.

Pure functions over plain values: the service loads rules, comparable quote
prices and competitor prices, and this module decides what fires.
"""

from dataclasses import dataclass, field
from typing import Optional

from ...shared.enums import APPROVAL_LEVEL_ORDER, AlertSeverity, ApprovalLevel, ApprovalRuleType

PRICE_VARIANCE_THRESHOLD = 25.0  # % from the mean of similar quotes
HIGH_VARIANCE_THRESHOLD = 50.0
MIN_SIMILAR_QUOTES = 3
SIMILAR_PERIMETER_TOLERANCE = 0.20  # +/- 20% fence perimeter
COMPETITOR_ABOVE_THRESHOLD = 20.0
COMPETITOR_BELOW_THRESHOLD = 15.0
CONFIG_MAX_PERIMETER_FT = 2000
CONFIG_MIN_PROPERTY_SQFT = 10000

TRIGGER_SEVERITY = {
    ApprovalLevel.MANAGER.value: AlertSeverity.MEDIUM.value,
    ApprovalLevel.DIRECTOR.value: AlertSeverity.HIGH.value,
    ApprovalLevel.OWNER.value: AlertSeverity.CRITICAL.value,
}

ESTIMATED_APPROVAL_TIME = {
    ApprovalLevel.MANAGER.value: "2-4 hours",
    ApprovalLevel.DIRECTOR.value: "4-8 hours",
    ApprovalLevel.OWNER.value: "1-2 business days",
}


@dataclass(frozen=True)
class PriceSubject:
    """The price being gated, with the inputs anomaly checks compare on"""

    original_price: float
    final_price: float
    property_type: str
    fence_perimeter: float
    property_size: int
    custom_pricing: bool = False

    @property
    def discount_amount(self) -> float:
        return round(self.original_price - self.final_price, 2)

    @property
    def discount_percentage(self) -> float:
        if self.original_price <= 0:
            return 0.0
        return round(self.discount_amount / self.original_price * 100, 4)


@dataclass(frozen=True)
class RuleSpec:
    rule_id: Optional[int]
    rule_name: str
    rule_type: str
    approval_level: str
    threshold_amount: Optional[float] = None
    threshold_percentage: Optional[float] = None

    @classmethod
    def from_model(cls, rule) -> "RuleSpec":
        return cls(
            rule_id=rule.id,
            rule_name=rule.rule_name,
            rule_type=rule.rule_type,
            approval_level=rule.approval_level,
            threshold_amount=rule.threshold_amount,
            threshold_percentage=rule.threshold_percentage,
        )


@dataclass(frozen=True)
class Anomaly:
    alert_type: str  # pricing_variance, competitor_variance, configuration_anomaly
    severity: str
    message: str
    requires_review: bool = True


@dataclass(frozen=True)
class Trigger:
    rule_id: Optional[int]
    rule_name: str
    rule_type: str
    approval_level: str
    reason: str


@dataclass(frozen=True)
class CompetitorAnalysis:
    competitor_count: int
    our_price: float
    avg_competitor_price: Optional[float] = None
    price_difference_percentage: Optional[float] = None
    requires_review: bool = False
    reason: str = "No competitor data available"


@dataclass
class Evaluation:
    subject: PriceSubject
    triggers: list[Trigger] = field(default_factory=list)
    anomalies: list[Anomaly] = field(default_factory=list)
    competitor_analysis: Optional[CompetitorAnalysis] = None

    @property
    def requires_approval(self) -> bool:
        return bool(self.triggers)

    @property
    def required_level(self) -> Optional[str]:
        return highest_level(trigger.approval_level for trigger in self.triggers)


def _variance_severity(variance: float) -> str:
    return AlertSeverity.HIGH.value if variance > HIGH_VARIANCE_THRESHOLD else AlertSeverity.MEDIUM.value


def perimeter_bounds(fence_perimeter: float) -> tuple[float, float]:
    return (
        fence_perimeter * (1 - SIMILAR_PERIMETER_TOLERANCE),
        fence_perimeter * (1 + SIMILAR_PERIMETER_TOLERANCE),
    )


def price_variance_anomaly(price: float, similar_prices: list[float]) -> Optional[Anomaly]:
    """Fires when price is more than 25% away from the mean of at least 3 similar quotes"""
    if len(similar_prices) < MIN_SIMILAR_QUOTES:
        return None
    avg_price = sum(similar_prices) / len(similar_prices)
    if avg_price <= 0:
        return None
    variance = abs(price - avg_price) / avg_price * 100
    if variance <= PRICE_VARIANCE_THRESHOLD:
        return None
    return Anomaly(
        alert_type="pricing_variance",
        severity=_variance_severity(variance),
        message=f"Price variance of {variance:.1f}% from {len(similar_prices)} similar quotes (avg: ${avg_price:,.2f})",
    )


def analyze_competitors(price: float, competitor_prices: list[float]) -> CompetitorAnalysis:
    """Review when more than 20% above or more than 15% below the competitor average"""
    if not competitor_prices:
        return CompetitorAnalysis(competitor_count=0, our_price=price)

    avg_price = sum(competitor_prices) / len(competitor_prices)
    difference = (price - avg_price) / avg_price * 100 if avg_price > 0 else 0.0
    requires_review = False
    reason = "Within competitor range"
    if difference > COMPETITOR_ABOVE_THRESHOLD:
        requires_review = True
        reason = f"Our price is {difference:.1f}% higher than competitor average (${avg_price:,.2f})"
    elif difference < -COMPETITOR_BELOW_THRESHOLD:
        requires_review = True
        reason = f"Our price is {abs(difference):.1f}% lower than competitor average (${avg_price:,.2f}) - verify profitability"

    return CompetitorAnalysis(
        competitor_count=len(competitor_prices),
        our_price=price,
        avg_competitor_price=round(avg_price, 2),
        price_difference_percentage=round(difference, 2),
        requires_review=requires_review,
        reason=reason,
    )


def competitor_anomaly(analysis: CompetitorAnalysis) -> Optional[Anomaly]:
    if not analysis.requires_review:
        return None
    return Anomaly(
        alert_type="competitor_variance",
        severity=_variance_severity(abs(analysis.price_difference_percentage or 0)),
        message=analysis.reason,
    )


def configuration_anomaly(fence_perimeter: float, property_size: int) -> Optional[Anomaly]:
    """Logged for review, never escalates the quote"""
    if fence_perimeter > CONFIG_MAX_PERIMETER_FT and property_size < CONFIG_MIN_PROPERTY_SQFT:
        return Anomaly(
            alert_type="configuration_anomaly",
            severity=AlertSeverity.MEDIUM.value,
            message="High fence perimeter relative to property size - verify measurements",
            requires_review=False,
        )
    return None


def fired_rules(subject: PriceSubject, rules: list[RuleSpec], anomalies: list[Anomaly]) -> list[Trigger]:
    """
    Every active rule that fires for the subject.

    Amount thresholds are inclusive. Discount rules only look at a real
    discount. Anomaly rules fire once per reviewable anomaly.
    """
    triggers = []
    discount = subject.discount_percentage
    reviewable = [anomaly for anomaly in anomalies if anomaly.requires_review]

    for rule in sorted(rules, key=lambda r: (r.threshold_amount or 0, r.threshold_percentage or 0, r.rule_id or 0)):
        if rule.rule_type == ApprovalRuleType.AMOUNT.value:
            if rule.threshold_amount is not None and subject.final_price >= rule.threshold_amount:
                triggers.append(_trigger(
                    rule,
                    f"Quote amount ${subject.final_price:,.2f} meets threshold of ${rule.threshold_amount:,.2f}",
                ))

        elif rule.rule_type == ApprovalRuleType.DISCOUNT.value:
            if rule.threshold_percentage is not None and discount > 0 and discount >= rule.threshold_percentage:
                triggers.append(_trigger(
                    rule,
                    f"Discount of {discount:.1f}% meets threshold of {rule.threshold_percentage:g}%",
                ))

        elif rule.rule_type == ApprovalRuleType.ANOMALY.value:
            for anomaly in reviewable:
                triggers.append(_trigger(rule, anomaly.message))

        elif rule.rule_type == ApprovalRuleType.CUSTOM.value:
            if subject.custom_pricing:
                triggers.append(_trigger(
                    rule,
                    f"Custom price ${subject.final_price:,.2f} requested (calculated ${subject.original_price:,.2f})",
                ))

    return triggers


def _trigger(rule: RuleSpec, reason: str) -> Trigger:
    return Trigger(
        rule_id=rule.rule_id,
        rule_name=rule.rule_name,
        rule_type=rule.rule_type,
        approval_level=rule.approval_level,
        reason=reason,
    )


def evaluate(
    subject: PriceSubject,
    rules: list[RuleSpec],
    similar_prices: list[float],
    competitor_prices: list[float],
) -> Evaluation:
    analysis = analyze_competitors(subject.final_price, competitor_prices)
    candidates = [
        price_variance_anomaly(subject.final_price, similar_prices),
        competitor_anomaly(analysis),
        configuration_anomaly(subject.fence_perimeter, subject.property_size),
    ]
    anomalies = [anomaly for anomaly in candidates if anomaly is not None]
    return Evaluation(
        subject=subject,
        triggers=fired_rules(subject, rules, anomalies),
        anomalies=anomalies,
        competitor_analysis=analysis,
    )


def highest_level(levels) -> Optional[str]:
    ranked = [ApprovalLevel(level) for level in levels]
    if not ranked:
        return None
    return max(ranked, key=lambda level: level.rank).value


def workflow_levels(required_level: str) -> list[str]:
    """manager, then director, then owner, up to and including the required level"""
    required = ApprovalLevel(required_level)
    return [level.value for level in APPROVAL_LEVEL_ORDER[: required.rank + 1]]


def estimated_approval_time(level: Optional[str]) -> Optional[str]:
    if level is None:
        return None
    return ESTIMATED_APPROVAL_TIME.get(level, ESTIMATED_APPROVAL_TIME[ApprovalLevel.MANAGER.value])

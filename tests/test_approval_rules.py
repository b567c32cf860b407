import pytest

from fenceops.domain.approvals import rules
from fenceops.domain.approvals.rules import PriceSubject, RuleSpec

SEED_RULES = [
    RuleSpec(1, "High Value Quote Approval", "amount", "manager", threshold_amount=15000),
    RuleSpec(2, "Extreme Value Quote", "amount", "owner", threshold_amount=50000),
    RuleSpec(3, "Large Discount Approval", "discount", "manager", threshold_percentage=20),
    RuleSpec(4, "Massive Discount Approval", "discount", "director", threshold_percentage=35),
    RuleSpec(5, "Pricing Anomaly Review", "anomaly", "manager"),
    RuleSpec(6, "Custom Pricing Approval", "custom", "manager"),
]


def subject(final_price, original_price=None, perimeter=500, size=8000, custom=False):
    return PriceSubject(
        original_price=final_price if original_price is None else original_price,
        final_price=final_price,
        property_type="Standard Residential",
        fence_perimeter=perimeter,
        property_size=size,
        custom_pricing=custom,
    )


def fired(evaluation):
    return [trigger.rule_name for trigger in evaluation.triggers]


class TestAmountRules:
    def test_threshold_is_inclusive(self):
        evaluation = rules.evaluate(subject(15000), SEED_RULES, [], [])
        assert fired(evaluation) == ["High Value Quote Approval"]
        assert evaluation.required_level == "manager"

    def test_just_below_threshold_passes(self):
        evaluation = rules.evaluate(subject(14999.99), SEED_RULES, [], [])
        assert not evaluation.requires_approval
        assert evaluation.required_level is None

    def test_highest_level_wins(self):
        evaluation = rules.evaluate(subject(60000), SEED_RULES, [], [])
        assert set(fired(evaluation)) == {"High Value Quote Approval", "Extreme Value Quote"}
        assert evaluation.required_level == "owner"


class TestDiscountRules:
    def test_discount_percentage(self):
        s = subject(750, original_price=1000)
        assert s.discount_amount == 250
        assert s.discount_percentage == 25

    def test_large_discount(self):
        evaluation = rules.evaluate(subject(800, original_price=1000), SEED_RULES, [], [])
        assert fired(evaluation) == ["Large Discount Approval"]

    def test_massive_discount_needs_director(self):
        evaluation = rules.evaluate(subject(600, original_price=1000), SEED_RULES, [], [])
        assert set(fired(evaluation)) == {"Large Discount Approval", "Massive Discount Approval"}
        assert evaluation.required_level == "director"

    def test_markup_is_not_a_discount(self):
        evaluation = rules.evaluate(subject(1500, original_price=1000), SEED_RULES, [], [])
        assert not evaluation.requires_approval

    def test_zero_discount_rule_only_fires_on_real_discounts(self):
        zero = [RuleSpec(9, "Any Discount", "discount", "manager", threshold_percentage=0)]
        assert not rules.evaluate(subject(1000), zero, [], []).requires_approval
        assert rules.evaluate(subject(990, original_price=1000), zero, [], []).requires_approval

    def test_custom_price_fires_custom_rule(self):
        evaluation = rules.evaluate(subject(990, original_price=1000, custom=True), SEED_RULES, [], [])
        assert fired(evaluation) == ["Custom Pricing Approval"]


class TestAnomalies:
    def test_price_variance_needs_three_similar_quotes(self):
        assert rules.price_variance_anomaly(5000, [1000, 1000]) is None

    def test_price_variance_fires_above_25_percent(self):
        anomaly = rules.price_variance_anomaly(1300, [1000, 1000, 1000])
        assert anomaly.alert_type == "pricing_variance"
        assert anomaly.severity == "medium"
        assert rules.price_variance_anomaly(1250, [1000, 1000, 1000]) is None

    def test_price_variance_high_severity(self):
        assert rules.price_variance_anomaly(1600, [1000, 1000, 1000]).severity == "high"

    def test_variance_escalates_through_anomaly_rule(self):
        evaluation = rules.evaluate(subject(2000), SEED_RULES, [1000, 1000, 1000], [])
        assert fired(evaluation) == ["Pricing Anomaly Review"]
        assert evaluation.anomalies[0].severity == "high"

    def test_competitor_above_and_below(self):
        above = rules.analyze_competitors(1300, [1000, 1000])
        assert above.requires_review
        assert above.price_difference_percentage == 30

        below = rules.analyze_competitors(800, [1000])
        assert below.requires_review
        assert "verify profitability" in below.reason

        within = rules.analyze_competitors(1100, [1000])
        assert not within.requires_review
        assert rules.competitor_anomaly(within) is None

    def test_no_competitor_data(self):
        analysis = rules.analyze_competitors(1000, [])
        assert analysis.competitor_count == 0
        assert analysis.avg_competitor_price is None
        assert not analysis.requires_review

    def test_configuration_anomaly_is_logged_but_does_not_escalate(self):
        evaluation = rules.evaluate(subject(3000, perimeter=2500, size=6000), SEED_RULES, [], [])
        assert [a.alert_type for a in evaluation.anomalies] == ["configuration_anomaly"]
        assert not evaluation.requires_approval

    def test_each_reviewable_anomaly_is_its_own_trigger(self):
        evaluation = rules.evaluate(subject(2000), SEED_RULES, [1000, 1000, 1000], [1000])
        assert fired(evaluation) == ["Pricing Anomaly Review", "Pricing Anomaly Review"]

    def test_similar_perimeter_bounds(self):
        assert rules.perimeter_bounds(500) == pytest.approx((400, 600))


class TestLevels:
    def test_workflow_is_sequential_up_to_required_level(self):
        assert rules.workflow_levels("manager") == ["manager"]
        assert rules.workflow_levels("director") == ["manager", "director"]
        assert rules.workflow_levels("owner") == ["manager", "director", "owner"]

    def test_highest_level(self):
        assert rules.highest_level(["manager", "owner", "director"]) == "owner"
        assert rules.highest_level([]) is None

    def test_estimated_time(self):
        assert rules.estimated_approval_time("owner") == "1-2 business days"
        assert rules.estimated_approval_time(None) is None

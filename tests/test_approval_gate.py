import threading
from datetime import timedelta

import pytest

from fenceops.database import SessionLocal
from fenceops.domain.approvals.schemas import ApprovalRuleCreate, ApprovalRuleUpdate, CompetitorPricingCreate
from fenceops.domain.approvals.service import ApprovalGate, expire_stale_approvals
from fenceops.domain.pricing.service import QuoteService
from fenceops.models import utcnow
from fenceops.shared.exceptions import DomainValidationError, NotFoundError, WorkflowStateError

from .conftest import DALLAS, NoGeocoder

# No competitor prices are seeded for these property types
COMMERCIAL = {"property_type": "Commercial", "fence_perimeter": 500}
SMALL = {"property_type": "Small Residential", "fence_perimeter": 200}


@pytest.fixture
def gate(db, seeded):
    return ApprovalGate(db, seeded)


@pytest.fixture
def quotes(db, seeded):
    return QuoteService(db, seeded, geocoder=NoGeocoder())


def open_director_approval(gate, quotes):
    """Half-price custom quote: discount and custom rules fire, director is the top level"""
    priced = quotes.preview(COMMERCIAL)
    requested = round(priced.totals.pre_discount_installation * 0.5, 2)
    return gate.evaluate(priced, requested_by="rep-7", customer_name="Big Box Co", requested_price=requested)


class TestEvaluate:
    def test_ordinary_quote_is_auto_approved(self, gate, quotes):
        result = gate.evaluate(quotes.preview(SMALL))
        assert result.auto_approved
        assert result.approval_id is None
        assert gate.summary().pending == 0

    def test_anomaly_alerts_are_written_even_when_auto_approved(self, gate, quotes):
        priced = quotes.preview({**SMALL, "fence_perimeter": 2500, "property_size": 6000})
        result = gate.evaluate(priced)

        assert result.auto_approved
        assert [a.alert_type for a in result.anomalies] == ["configuration_anomaly"]
        assert [a.alert_type for a in gate.list_alerts()] == ["configuration_anomaly"]

    def test_director_workflow_is_opened(self, gate, quotes):
        result = open_director_approval(gate, quotes)

        assert not result.auto_approved
        assert result.required_level == "director"
        assert {t.rule_name for t in result.triggers} == {
            "Large Discount Approval",
            "Massive Discount Approval",
            "Custom Pricing Approval",
        }
        assert result.estimated_approval_time == "4-8 hours"

        approval = gate.get_approval(result.approval_id)
        assert [s.approver_level for s in approval.steps] == ["manager", "director"]
        assert approval.discount_percentage == pytest.approx(50, abs=0.01)
        assert approval.reason_code == "custom"
        assert approval.expires_at > utcnow() + timedelta(days=6)

        alerts = gate.list_alerts()
        assert len(alerts) == 3
        assert {a.alert_type for a in alerts} == {"approval_trigger"}
        assert {a.approval_id for a in alerts} == {approval.id}
        assert {a.severity for a in alerts} == {"medium", "high"}

    def test_price_variance_against_similar_saved_quotes(self, gate, quotes):
        for _ in range(3):
            quotes.create_quote(COMMERCIAL)
        priced = quotes.preview(COMMERCIAL)
        result = gate.evaluate(priced, requested_price=round(priced.totals.one_time_installation * 1.4, 2))

        assert result.required_level == "manager"
        assert {t.rule_name for t in result.triggers} == {"Pricing Anomaly Review", "Custom Pricing Approval"}
        assert [a.alert_type for a in result.anomalies] == ["pricing_variance"]

    def test_saved_quote_is_not_its_own_comparable(self, gate, quotes):
        for _ in range(2):
            quotes.create_quote(COMMERCIAL)
        quote, priced = quotes.create_quote(COMMERCIAL)
        requested = priced.totals.one_time_installation * 2

        # two other quotes are not enough comparables
        assert gate.check(priced, requested_price=requested, quote_id=quote.id).anomalies == []
        assert [a.alert_type for a in gate.check(priced, requested_price=requested).anomalies] == ["pricing_variance"]

    def test_check_is_a_dry_run(self, gate, quotes):
        # Standard Residential sits well above the seeded competitor average
        priced = quotes.preview({"latitude": DALLAS[0], "longitude": DALLAS[1], "zip_code": "75201"})
        check = gate.check(priced)

        assert check.requires_approval
        assert check.competitor_analysis.requires_review
        assert check.competitor_analysis.competitor_count == 3
        assert gate.list_alerts() == []
        assert gate.summary().pending == 0


class TestDecisions:
    def test_levels_are_decided_in_order(self, gate, quotes):
        approval_id = open_director_approval(gate, quotes).approval_id

        with pytest.raises(WorkflowStateError):
            gate.decide(approval_id, "dir-1", "director", "approved")

        first = gate.decide(approval_id, "mgr-1", "manager", "approved", "fine by me")
        assert first.status == "pending"
        assert not first.final_decision
        assert first.next_level == "director"

        assert gate.pending_for_level("manager") == []
        assert [a.id for a in gate.pending_for_level("director")] == [approval_id]

        final = gate.decide(approval_id, "dir-1", "director", "approved")
        assert final.status == "approved"
        assert final.final_decision
        assert final.version == 2

        approval = gate.get_approval(approval_id)
        assert approval.decided_by == "dir-1"
        assert [s.status for s in approval.steps] == ["approved", "approved"]

        with pytest.raises(WorkflowStateError):
            gate.decide(approval_id, "dir-1", "director", "approved")

    def test_rejection_skips_remaining_steps(self, gate, quotes):
        approval_id = open_director_approval(gate, quotes).approval_id

        outcome = gate.decide(approval_id, "mgr-1", "manager", "rejected", "too deep")
        assert outcome.status == "rejected"
        assert outcome.final_decision

        approval = gate.get_approval(approval_id)
        assert [s.status for s in approval.steps] == ["rejected", "skipped"]
        assert [a.id for a in gate.history()] == [approval_id]

    def test_unknown_decision_or_level(self, gate, quotes):
        approval_id = open_director_approval(gate, quotes).approval_id
        with pytest.raises(DomainValidationError):
            gate.decide(approval_id, "mgr-1", "manager", "maybe")
        with pytest.raises(DomainValidationError):
            gate.decide(approval_id, "mgr-1", "intern", "approved")

    def test_unknown_approval(self, gate):
        with pytest.raises(NotFoundError):
            gate.decide(4040, "mgr-1", "manager", "approved")

    def test_expired_approval_cannot_be_decided(self, db, gate, quotes):
        approval_id = open_director_approval(gate, quotes).approval_id
        approval = gate.get_approval(approval_id)
        approval.expires_at = utcnow() - timedelta(minutes=1)
        db.commit()

        with pytest.raises(WorkflowStateError):
            gate.decide(approval_id, "mgr-1", "manager", "approved")

        approval = gate.get_approval(approval_id)
        assert approval.status == "expired"
        assert [s.status for s in approval.steps] == ["skipped", "skipped"]

    def test_expiry_sweep(self, db, seeded, gate, quotes):
        stale_id = open_director_approval(gate, quotes).approval_id
        fresh_id = open_director_approval(gate, quotes).approval_id
        gate.get_approval(stale_id).expires_at = utcnow() - timedelta(hours=1)
        db.commit()

        assert expire_stale_approvals(db) == 1
        assert gate.get_approval(stale_id).status == "expired"
        assert gate.get_approval(fresh_id).status == "pending"
        assert gate.summary().expired == 1

    def test_concurrent_decisions_on_one_step(self, db, seeded, gate, quotes):
        approval_id = open_director_approval(gate, quotes).approval_id
        db.close()

        barrier = threading.Barrier(2)
        results = []
        lock = threading.Lock()

        def decide(approver_id):
            session = SessionLocal()
            try:
                barrier.wait()
                ApprovalGate(session, seeded).decide(approval_id, approver_id, "manager", "approved")
                outcome = "decided"
            except WorkflowStateError:
                outcome = "conflict"
            finally:
                session.close()
            with lock:
                results.append(outcome)

        threads = [threading.Thread(target=decide, args=(f"mgr-{i}",)) for i in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(results) == ["conflict", "decided"]

        session = SessionLocal()
        try:
            approval = ApprovalGate(session, seeded).get_approval(approval_id)
            assert approval.current_step_order == 2
            assert approval.version == 1
        finally:
            session.close()


class TestSummary:
    def test_summary_counts(self, gate, quotes):
        first = open_director_approval(gate, quotes)
        second = open_director_approval(gate, quotes)
        gate.decide(second.approval_id, "mgr-1", "manager", "rejected")

        summary = gate.summary()
        assert summary.pending == 1
        assert summary.rejected_last_7_days == 1
        assert summary.highest_pending_amount == pytest.approx(gate.get_approval(first.approval_id).requested_price)
        assert summary.unresolved_alerts == 6


class TestAdministration:
    def test_amount_rule_needs_threshold(self, gate):
        with pytest.raises(DomainValidationError):
            gate.create_rule(ApprovalRuleCreate(rule_name="Bad", rule_type="amount", approval_level="manager"))

    def test_rule_enums_are_checked(self, gate):
        with pytest.raises(DomainValidationError):
            gate.create_rule(ApprovalRuleCreate(rule_name="Bad", rule_type="vibes", approval_level="manager"))
        with pytest.raises(DomainValidationError):
            gate.create_rule(
                ApprovalRuleCreate(rule_name="Bad", rule_type="amount", threshold_amount=10, approval_level="ceo")
            )

    def test_deactivated_rule_stops_firing(self, gate, quotes):
        custom = next(r for r in gate.list_rules() if r.rule_type == "custom")
        gate.update_rule(custom.id, ApprovalRuleUpdate(is_active=False))

        priced = quotes.preview(SMALL)
        result = gate.evaluate(priced, requested_price=priced.totals.one_time_installation)
        assert result.auto_approved

    def test_new_competitor_feeds_analysis(self, gate, quotes):
        priced = quotes.preview(COMMERCIAL)
        gate.add_competitor(
            CompetitorPricingCreate(
                competitor_name="Invisible Fence",
                property_type="Commercial",
                base_installation_price=round(priced.totals.one_time_installation / 2, 2),
            )
        )
        check = gate.check(priced)
        assert check.competitor_analysis.competitor_count == 1
        assert check.competitor_analysis.price_difference_percentage == pytest.approx(100, abs=0.1)
        assert check.required_level == "manager"

    def test_resolve_alert(self, gate, quotes):
        open_director_approval(gate, quotes)
        alert = gate.list_alerts()[0]
        resolved = gate.resolve_alert(alert.id)
        assert resolved.resolved
        assert len(gate.list_alerts()) == 2
        assert len(gate.list_alerts(include_resolved=True)) == 3

    def test_verify_unknown_competitor(self, gate):
        with pytest.raises(NotFoundError):
            gate.verify_competitor(555)

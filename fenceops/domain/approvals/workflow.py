"""
Sequential approval workflow.

A PricingApproval is pending until its steps finish. Exactly one step is
current at a time (current_step_order); a decision is only accepted for that
step. Approving the last step approves the request, rejecting any step
rejects it and skips the rest. A pending request past expires_at is voided.

The workflow only mutates the ORM rows; the caller holds the row lock and
commits.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ...models import ApprovalStep, PricingApproval
from ...shared.enums import ApprovalLevel, ApprovalStatus, Decision, StepStatus
from ...shared.exceptions import DomainValidationError, WorkflowStateError


@dataclass(frozen=True)
class DecisionOutcome:
    approval_id: int
    status: str
    final_decision: bool
    next_level: Optional[str]
    version: int


def build_steps(tenant_id: str, levels: list[str]) -> list[ApprovalStep]:
    return [
        ApprovalStep(
            tenant_id=tenant_id,
            step_order=order,
            approver_level=level,
            status=StepStatus.PENDING.value,
        )
        for order, level in enumerate(levels, start=1)
    ]


class ApprovalWorkflow:
    def __init__(self, approval: PricingApproval):
        self.approval = approval

    @property
    def current_step(self) -> Optional[ApprovalStep]:
        if self.approval.status != ApprovalStatus.PENDING.value:
            return None
        for step in self.approval.steps:
            if step.step_order == self.approval.current_step_order:
                return step
        return None

    def is_expired(self, now: datetime) -> bool:
        return self.approval.status == ApprovalStatus.PENDING.value and self.approval.expires_at <= now

    def expire(self, now: datetime) -> None:
        self.approval.status = ApprovalStatus.EXPIRED.value
        self.approval.decided_at = now
        self._skip_pending(now)
        self.approval.version += 1

    def decide(
        self,
        approver_id: str,
        approver_level: str,
        decision: str,
        comments: Optional[str],
        now: datetime,
    ) -> DecisionOutcome:
        """
        Apply one decision to the current step.

        Raises:
            DomainValidationError: Unknown decision or approver level
            WorkflowStateError: Request is terminal, or the decision is not
                for the current step
        """
        decision = _checked(Decision, decision, "decision")
        approver_level = _checked(ApprovalLevel, approver_level, "approver_level")
        approval = self.approval

        if approval.status != ApprovalStatus.PENDING.value:
            raise WorkflowStateError(
                f"Approval request is {approval.status}, no further decisions accepted",
                approval_id=approval.id,
                status=approval.status,
            )

        step = self.current_step
        if step is None:
            raise WorkflowStateError("Approval request has no current step", approval_id=approval.id)
        if step.approver_level != approver_level:
            raise WorkflowStateError(
                f"Current step needs a {step.approver_level} decision, not {approver_level}",
                approval_id=approval.id,
                current_level=step.approver_level,
                current_step_order=step.step_order,
            )

        step.status = decision
        step.approver_id = approver_id
        step.comments = comments
        step.completed_at = now
        approval.version += 1

        if decision == Decision.REJECTED.value:
            approval.status = ApprovalStatus.REJECTED.value
            approval.decided_by = approver_id
            approval.decided_at = now
            self._skip_pending(now)
            return self._outcome(final_decision=True)

        next_step = self._step_after(step)
        if next_step is None:
            approval.status = ApprovalStatus.APPROVED.value
            approval.decided_by = approver_id
            approval.decided_at = now
            return self._outcome(final_decision=True)

        approval.current_step_order = next_step.step_order
        return self._outcome(final_decision=False, next_level=next_step.approver_level)

    def _step_after(self, step: ApprovalStep) -> Optional[ApprovalStep]:
        later = [s for s in self.approval.steps if s.step_order > step.step_order]
        return min(later, key=lambda s: s.step_order) if later else None

    def _skip_pending(self, now: datetime) -> None:
        for step in self.approval.steps:
            if step.status == StepStatus.PENDING.value:
                step.status = StepStatus.SKIPPED.value
                step.completed_at = now

    def _outcome(self, final_decision: bool, next_level: Optional[str] = None) -> DecisionOutcome:
        return DecisionOutcome(
            approval_id=self.approval.id,
            status=self.approval.status,
            final_decision=final_decision,
            next_level=next_level,
            version=self.approval.version,
        )


def _checked(enum_cls, value: str, field: str) -> str:
    try:
        return enum_cls((value or "").strip().lower()).value
    except ValueError:
        allowed = ", ".join(item.value for item in enum_cls)
        raise DomainValidationError(f"{field} must be one of: {allowed}", **{field: value})

"""Payrun approval state machine.

Steps are immutable; every transition returns a new step and leaves the
input list untouched. The current step and the payrun status are always
derived from the step list, never stored.

Step transitions:
- pending → approved   (approve, override)
- pending → rejected   (reject)
- pending → pending    (delegate: approver changes, level and status do not)

Payrun status (derived):
- draft             no steps
- pending_approval  steps exist, none rejected, not all approved
- approved          every step approved
- rejected          any step rejected; the chain halts
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from uuid import UUID, uuid4

from statutory_payroll.errors import (
    AlreadyActionedError,
    InvalidChainConfigError,
    InvalidInputError,
    NotCurrentStepError,
    StepNotFoundError,
)


class StepStatus(str, Enum):
    """Approval step status values."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class PayRunStatus(str, Enum):
    """Payrun status derived from its approval steps."""

    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"


# Step statuses reachable from each status
VALID_STEP_TRANSITIONS: dict[StepStatus, set[StepStatus]] = {
    StepStatus.PENDING: {StepStatus.APPROVED, StepStatus.REJECTED},
    StepStatus.APPROVED: set(),
    StepStatus.REJECTED: set(),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ApproverLevel:
    """One configured level of an approval chain."""

    level: int
    approver_id: UUID
    approver_role: str | None = None


@dataclass(frozen=True)
class ApprovalPolicy:
    """Organization approval settings."""

    allow_delegation: bool = True
    rejection_comment_required: bool = True
    max_levels: int = 5


@dataclass(frozen=True)
class PayrunApprovalStep:
    """One level of a payrun's approval chain."""

    step_id: UUID
    pay_run_id: UUID
    chain_id: UUID
    level: int
    approver_id: UUID
    status: StepStatus = StepStatus.PENDING
    approver_role: str | None = None

    actioned_at: datetime | None = None
    actioned_by_user_id: UUID | None = None
    comments: str | None = None

    # Delegation trail
    delegated_by: UUID | None = None
    delegated_by_user_id: UUID | None = None
    delegated_at: datetime | None = None
    original_approver_id: UUID | None = None

    # Administrative override
    override_reason: str | None = None
    overridden_by: UUID | None = None

    workflow_version: int | None = None
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def is_pending(self) -> bool:
        return self.status == StepStatus.PENDING

    @property
    def is_overridden(self) -> bool:
        return self.overridden_by is not None


def create_approval_chain(
    pay_run_id: UUID,
    approver_levels: Iterable[ApproverLevel],
    *,
    workflow_version: int | None = None,
    policy: ApprovalPolicy | None = None,
    now: datetime | None = None,
) -> list[PayrunApprovalStep]:
    """Create one pending step per level, ordered by level.

    Levels must be unique and contiguous from 1.
    """
    levels = sorted(approver_levels, key=lambda a: a.level)
    if not levels:
        raise InvalidChainConfigError("Approval chain needs at least one level")

    numbers = [a.level for a in levels]
    if len(set(numbers)) != len(numbers):
        duplicates = sorted({n for n in numbers if numbers.count(n) > 1})
        raise InvalidChainConfigError(f"Duplicate approval levels: {duplicates}")
    if numbers != list(range(1, len(numbers) + 1)):
        raise InvalidChainConfigError(
            f"Approval levels must be contiguous from 1 (got {numbers})"
        )
    if policy is not None and len(numbers) > policy.max_levels:
        raise InvalidChainConfigError(
            f"Approval chain has {len(numbers)} levels; maximum is {policy.max_levels}"
        )

    chain_id = uuid4()
    created_at = now or _utcnow()
    return [
        PayrunApprovalStep(
            step_id=uuid4(),
            pay_run_id=pay_run_id,
            chain_id=chain_id,
            level=a.level,
            approver_id=a.approver_id,
            approver_role=a.approver_role,
            workflow_version=workflow_version,
            created_at=created_at,
        )
        for a in levels
    ]


def latest_chain(steps: Iterable[PayrunApprovalStep]) -> list[PayrunApprovalStep]:
    """Steps of the most recently created chain, ordered by level.

    Resubmitted payruns keep earlier chains for audit; only the latest one
    drives the payrun's status.
    """
    steps = list(steps)
    if not steps:
        return []
    newest = max(steps, key=lambda s: s.created_at)
    return sorted((s for s in steps if s.chain_id == newest.chain_id), key=lambda s: s.level)


def current_step(steps: Iterable[PayrunApprovalStep]) -> PayrunApprovalStep | None:
    """The lowest pending step whose lower levels are all approved.

    None when the chain is empty, fully approved, or halted by a rejection.
    """
    for step in latest_chain(steps):
        if step.status == StepStatus.APPROVED:
            continue
        if step.status == StepStatus.PENDING:
            return step
        return None
    return None


def derive_status(steps: Iterable[PayrunApprovalStep]) -> PayRunStatus:
    """Derive payrun status from its approval steps."""
    chain = latest_chain(steps)
    if not chain:
        return PayRunStatus.DRAFT
    if any(s.status == StepStatus.REJECTED for s in chain):
        return PayRunStatus.REJECTED
    if all(s.status == StepStatus.APPROVED for s in chain):
        return PayRunStatus.APPROVED
    return PayRunStatus.PENDING_APPROVAL


def _find_step(steps: Sequence[PayrunApprovalStep], step_id: UUID) -> PayrunApprovalStep:
    step = next((s for s in steps if s.step_id == step_id), None)
    if step is None:
        raise StepNotFoundError(step_id)
    return step


def require_current(
    steps: Sequence[PayrunApprovalStep], step_id: UUID
) -> PayrunApprovalStep:
    """Return the step if it is pending and next in line, else raise."""
    step = _find_step(steps, step_id)
    if step.status != StepStatus.PENDING:
        raise AlreadyActionedError(step.step_id, step.status)

    chain = [s for s in steps if s.chain_id == step.chain_id]
    current = current_step(chain)
    if current is None or current.step_id != step.step_id:
        halted = any(s.status == StepStatus.REJECTED for s in chain)
        raise NotCurrentStepError(
            step.step_id,
            step.level,
            current_level=current.level if current else None,
            halted=halted,
        )
    return step


def _close(
    step: PayrunApprovalStep,
    to_status: StepStatus,
    acting_user_id: UUID,
    comments: str | None,
    now: datetime | None,
    **changes: object,
) -> PayrunApprovalStep:
    if to_status not in VALID_STEP_TRANSITIONS[step.status]:
        raise AlreadyActionedError(step.step_id, step.status)
    return replace(
        step,
        status=to_status,
        actioned_at=now or _utcnow(),
        actioned_by_user_id=acting_user_id,
        comments=comments,
        **changes,
    )


def approve(
    steps: Sequence[PayrunApprovalStep],
    step_id: UUID,
    acting_user_id: UUID,
    comments: str | None = None,
    *,
    now: datetime | None = None,
) -> PayrunApprovalStep:
    """Approve the current step."""
    step = require_current(steps, step_id)
    return _close(step, StepStatus.APPROVED, acting_user_id, comments, now)


def reject(
    steps: Sequence[PayrunApprovalStep],
    step_id: UUID,
    acting_user_id: UUID,
    comments: str | None,
    *,
    policy: ApprovalPolicy | None = None,
    now: datetime | None = None,
) -> PayrunApprovalStep:
    """Reject the current step, halting the chain."""
    policy = policy or ApprovalPolicy()
    step = require_current(steps, step_id)
    if policy.rejection_comment_required and not (comments and comments.strip()):
        raise InvalidInputError("A comment is required to reject an approval step")
    return _close(step, StepStatus.REJECTED, acting_user_id, comments, now)


def delegate(
    steps: Sequence[PayrunApprovalStep],
    step_id: UUID,
    from_user_id: UUID,
    to_user_id: UUID,
    *,
    acting_user_id: UUID | None = None,
    policy: ApprovalPolicy | None = None,
    now: datetime | None = None,
) -> PayrunApprovalStep:
    """Reassign the current step to another approver."""
    policy = policy or ApprovalPolicy()
    if not policy.allow_delegation:
        raise InvalidChainConfigError("Delegation is disabled for this organization")

    step = require_current(steps, step_id)
    if to_user_id == step.approver_id:
        raise InvalidInputError(f"Step {step_id} is already assigned to {to_user_id}")

    return replace(
        step,
        approver_id=to_user_id,
        delegated_by=from_user_id,
        delegated_by_user_id=acting_user_id or from_user_id,
        delegated_at=now or _utcnow(),
        original_approver_id=step.original_approver_id or step.approver_id,
    )


def override(
    steps: Sequence[PayrunApprovalStep],
    step_id: UUID,
    acting_user_id: UUID,
    reason: str,
    *,
    now: datetime | None = None,
) -> PayrunApprovalStep:
    """Force-approve the current step on behalf of its approver."""
    if not (reason and reason.strip()):
        raise InvalidInputError("An override requires a reason")
    step = require_current(steps, step_id)
    return _close(
        step,
        StepStatus.APPROVED,
        acting_user_id,
        step.comments,
        now,
        override_reason=reason,
        overridden_by=acting_user_id,
    )


def apply_step(
    steps: Sequence[PayrunApprovalStep], updated: PayrunApprovalStep
) -> list[PayrunApprovalStep]:
    """Return a new step list with ``updated`` in place of its previous version."""
    return [updated if s.step_id == updated.step_id else s for s in steps]

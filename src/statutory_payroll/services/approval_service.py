"""Approval service - orchestrates approval chains over a step repository."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from uuid import UUID

from statutory_payroll.errors import (
    AlreadyActionedError,
    InvalidChainConfigError,
    StepNotFoundError,
)
from statutory_payroll.services import state_machine as sm
from statutory_payroll.services.events import (
    ApprovalChainStarted,
    ApprovalStepApproved,
    ApprovalStepDelegated,
    ApprovalStepOverridden,
    ApprovalStepRejected,
    DomainEvent,
    EventEmitter,
    EventMetadata,
    PayRunApprovalCompleted,
)
from statutory_payroll.services.repositories import ApprovalStepRepository
from statutory_payroll.services.state_machine import (
    ApprovalPolicy,
    ApproverLevel,
    PayrunApprovalStep,
    PayRunStatus,
)

logger = logging.getLogger(__name__)


class ApprovalService:
    """Service for a payrun's multi-level approval.

    Operations:
    - start_approval: Create the chain (or a new one after a rejection)
    - approve / reject: Action the current step
    - delegate: Hand the current step to another approver
    - override: Force-approve the current step with a reason
    - get_status / get_current_step: Derived views over the stored steps

    Each transition is computed by the pure state machine and saved with a
    conditional write; losing a race raises AlreadyActionedError.
    """

    def __init__(
        self,
        repository: ApprovalStepRepository,
        emitter: EventEmitter | None = None,
        policy: ApprovalPolicy | None = None,
    ):
        self.repository = repository
        self.emitter = emitter or EventEmitter()
        self.policy = policy or ApprovalPolicy()

    async def get_steps(self, pay_run_id: UUID) -> list[PayrunApprovalStep]:
        """All steps of the pay run, including earlier rejected chains."""
        return await self.repository.load_steps(pay_run_id)

    async def get_status(self, pay_run_id: UUID) -> PayRunStatus:
        return sm.derive_status(await self.repository.load_steps(pay_run_id))

    async def get_current_step(self, pay_run_id: UUID) -> PayrunApprovalStep | None:
        return sm.current_step(await self.repository.load_steps(pay_run_id))

    async def start_approval(
        self,
        pay_run_id: UUID,
        approver_levels: Iterable[ApproverLevel],
        *,
        submitted_by: UUID | None = None,
        workflow_version: int | None = None,
    ) -> list[PayrunApprovalStep]:
        """Submit a pay run for approval.

        A pay run may be resubmitted only after its latest chain was
        rejected; the new chain is appended and earlier steps are kept.
        """
        existing = await self.repository.load_steps(pay_run_id)
        status = sm.derive_status(existing)
        if status not in (PayRunStatus.DRAFT, PayRunStatus.REJECTED):
            raise InvalidChainConfigError(
                f"Pay run {pay_run_id} already has an approval chain ({status.value})"
            )

        # A new chain must sort after every earlier one
        now = datetime.now(timezone.utc)
        if existing:
            now = max(now, max(s.created_at for s in existing) + timedelta(microseconds=1))

        steps = sm.create_approval_chain(
            pay_run_id,
            approver_levels,
            workflow_version=workflow_version,
            policy=self.policy,
            now=now,
        )
        await self.repository.add_steps(steps)

        logger.info(
            "Approval chain %s started for pay run %s with %d levels%s",
            steps[0].chain_id,
            pay_run_id,
            len(steps),
            " (resubmission)" if existing else "",
        )
        self._emit(
            ApprovalChainStarted(
                metadata=self._metadata(pay_run_id, submitted_by),
                pay_run_id=pay_run_id,
                chain_id=steps[0].chain_id,
                levels=len(steps),
            )
        )
        return steps

    async def approve(
        self, step_id: UUID, acting_user_id: UUID, comments: str | None = None
    ) -> PayrunApprovalStep:
        steps, step = await self._load_for(step_id)
        updated = sm.approve(steps, step_id, acting_user_id, comments)
        await self._save(updated, step)

        logger.info(
            "Pay run %s level %d approved by %s", updated.pay_run_id, updated.level, acting_user_id
        )
        self._emit(
            ApprovalStepApproved(
                metadata=self._metadata(updated.pay_run_id, acting_user_id),
                pay_run_id=updated.pay_run_id,
                step_id=updated.step_id,
                level=updated.level,
                approved_by=acting_user_id,
            )
        )
        self._emit_if_completed(sm.apply_step(steps, updated), updated, acting_user_id)
        return updated

    async def reject(
        self, step_id: UUID, acting_user_id: UUID, comments: str | None
    ) -> PayrunApprovalStep:
        steps, step = await self._load_for(step_id)
        updated = sm.reject(steps, step_id, acting_user_id, comments, policy=self.policy)
        await self._save(updated, step)

        logger.info(
            "Pay run %s level %d rejected by %s", updated.pay_run_id, updated.level, acting_user_id
        )
        self._emit(
            ApprovalStepRejected(
                metadata=self._metadata(updated.pay_run_id, acting_user_id),
                pay_run_id=updated.pay_run_id,
                step_id=updated.step_id,
                level=updated.level,
                rejected_by=acting_user_id,
                comments=comments,
            )
        )
        return updated

    async def delegate(
        self,
        step_id: UUID,
        from_user_id: UUID,
        to_user_id: UUID,
        *,
        acting_user_id: UUID | None = None,
    ) -> PayrunApprovalStep:
        steps, step = await self._load_for(step_id)
        updated = sm.delegate(
            steps,
            step_id,
            from_user_id,
            to_user_id,
            acting_user_id=acting_user_id,
            policy=self.policy,
        )
        await self._save(updated, step)

        logger.info(
            "Pay run %s level %d delegated from %s to %s",
            updated.pay_run_id,
            updated.level,
            step.approver_id,
            to_user_id,
        )
        self._emit(
            ApprovalStepDelegated(
                metadata=self._metadata(updated.pay_run_id, acting_user_id or from_user_id),
                pay_run_id=updated.pay_run_id,
                step_id=updated.step_id,
                level=updated.level,
                from_approver_id=step.approver_id,
                to_approver_id=to_user_id,
            )
        )
        return updated

    async def override(
        self, step_id: UUID, acting_user_id: UUID, reason: str
    ) -> PayrunApprovalStep:
        steps, step = await self._load_for(step_id)
        updated = sm.override(steps, step_id, acting_user_id, reason)
        await self._save(updated, step)

        logger.warning(
            "Pay run %s level %d overridden by %s: %s",
            updated.pay_run_id,
            updated.level,
            acting_user_id,
            reason,
        )
        self._emit(
            ApprovalStepOverridden(
                metadata=self._metadata(updated.pay_run_id, acting_user_id),
                pay_run_id=updated.pay_run_id,
                step_id=updated.step_id,
                level=updated.level,
                overridden_by=acting_user_id,
                reason=reason,
            )
        )
        self._emit_if_completed(sm.apply_step(steps, updated), updated, acting_user_id)
        return updated

    async def _load_for(
        self, step_id: UUID
    ) -> tuple[list[PayrunApprovalStep], PayrunApprovalStep]:
        """Load the step and its pay run's steps."""
        step = await self.repository.get_step(step_id)
        if step is None:
            raise StepNotFoundError(step_id)
        steps = await self.repository.load_steps(step.pay_run_id)
        return steps, step

    async def _save(self, updated: PayrunApprovalStep, expected: PayrunApprovalStep) -> None:
        try:
            await self.repository.save_step(updated, expected)
        except AlreadyActionedError:
            logger.warning(
                "Concurrent update on approval step %s (pay run %s level %d)",
                expected.step_id,
                expected.pay_run_id,
                expected.level,
            )
            raise

    def _emit_if_completed(
        self,
        steps: list[PayrunApprovalStep],
        updated: PayrunApprovalStep,
        acting_user_id: UUID,
    ) -> None:
        if sm.derive_status(steps) != PayRunStatus.APPROVED:
            return
        logger.info("Pay run %s fully approved", updated.pay_run_id)
        self._emit(
            PayRunApprovalCompleted(
                metadata=self._metadata(updated.pay_run_id, acting_user_id),
                pay_run_id=updated.pay_run_id,
                chain_id=updated.chain_id,
            )
        )

    def _metadata(self, pay_run_id: UUID, actor_id: UUID | None) -> EventMetadata:
        return EventMetadata.create(
            correlation_id=pay_run_id,
            actor_id=actor_id,
            actor_type="user" if actor_id else "system",
        )

    def _emit(self, event: DomainEvent) -> None:
        self.emitter.emit(event)

"""Tests for the approval service over the in-memory repository."""

import asyncio
from uuid import uuid4

import pytest

from statutory_payroll.errors import (
    AlreadyActionedError,
    InvalidChainConfigError,
    StepNotFoundError,
)
from statutory_payroll.services.approval_service import ApprovalService
from statutory_payroll.services.events import (
    ApprovalChainStarted,
    ApprovalStepApproved,
    ApprovalStepDelegated,
    ApprovalStepOverridden,
    ApprovalStepRejected,
    EventEmitter,
    EventMetadata,
    PayRunApprovalCompleted,
)
from statutory_payroll.services.repositories import InMemoryApprovalStepRepository
from statutory_payroll.services.state_machine import ApproverLevel, PayRunStatus, StepStatus

pytestmark = pytest.mark.asyncio

ALICE, BOB, DAVE, ADMIN = (uuid4() for _ in range(4))


@pytest.fixture
def events():
    return []


@pytest.fixture
def service(events):
    emitter = EventEmitter()
    emitter.on_all(events.append)
    return ApprovalService(InMemoryApprovalStepRepository(), emitter=emitter)


async def start(service, pay_run_id=None):
    pay_run_id = pay_run_id or uuid4()
    steps = await service.start_approval(
        pay_run_id, [ApproverLevel(1, ALICE), ApproverLevel(2, BOB)], submitted_by=ADMIN
    )
    return pay_run_id, steps


class TestApprovalFlow:
    """Happy path and derived status."""

    async def test_full_approval(self, service, events):
        pay_run_id, steps = await start(service)
        assert await service.get_status(pay_run_id) == PayRunStatus.PENDING_APPROVAL

        await service.approve(steps[0].step_id, ALICE)
        assert (await service.get_current_step(pay_run_id)).level == 2

        await service.approve(steps[1].step_id, BOB, "looks good")
        assert await service.get_status(pay_run_id) == PayRunStatus.APPROVED
        assert await service.get_current_step(pay_run_id) is None

        assert [type(e) for e in events] == [
            ApprovalChainStarted,
            ApprovalStepApproved,
            ApprovalStepApproved,
            PayRunApprovalCompleted,
        ]
        assert all(e.metadata.correlation_id == pay_run_id for e in events)

    async def test_draft_without_chain(self, service):
        assert await service.get_status(uuid4()) == PayRunStatus.DRAFT

    async def test_override_completes_chain(self, service, events):
        pay_run_id, steps = await start(service)
        await service.approve(steps[0].step_id, ALICE)
        overridden = await service.override(steps[1].step_id, ADMIN, "approver on leave")

        assert overridden.overridden_by == ADMIN
        assert await service.get_status(pay_run_id) == PayRunStatus.APPROVED
        assert isinstance(events[-2], ApprovalStepOverridden)
        assert isinstance(events[-1], PayRunApprovalCompleted)

    async def test_delegate_then_approve(self, service, events):
        pay_run_id, steps = await start(service)
        await service.delegate(steps[0].step_id, ALICE, DAVE)
        approved = await service.approve(steps[0].step_id, DAVE)

        assert approved.approver_id == DAVE
        assert approved.original_approver_id == ALICE
        delegated = next(e for e in events if isinstance(e, ApprovalStepDelegated))
        assert (delegated.from_approver_id, delegated.to_approver_id) == (ALICE, DAVE)

    async def test_unknown_step(self, service):
        with pytest.raises(StepNotFoundError):
            await service.approve(uuid4(), ALICE)


class TestRejectionAndResubmission:
    async def test_reject_then_resubmit(self, service, events):
        pay_run_id, first = await start(service)
        await service.reject(first[0].step_id, ALICE, "missing overtime")
        assert await service.get_status(pay_run_id) == PayRunStatus.REJECTED
        assert isinstance(events[-1], ApprovalStepRejected)

        _, second = await start(service, pay_run_id)
        assert {s.step_id for s in second}.isdisjoint({s.step_id for s in first})
        assert second[0].chain_id != first[0].chain_id
        assert await service.get_status(pay_run_id) == PayRunStatus.PENDING_APPROVAL

        history = await service.get_steps(pay_run_id)
        assert len(history) == 4
        assert history[0].status == StepStatus.REJECTED

    async def test_cannot_restart_pending_chain(self, service):
        pay_run_id, _ = await start(service)
        with pytest.raises(InvalidChainConfigError):
            await start(service, pay_run_id)

    async def test_cannot_restart_approved_chain(self, service):
        pay_run_id, steps = await start(service)
        await service.approve(steps[0].step_id, ALICE)
        await service.approve(steps[1].step_id, BOB)
        with pytest.raises(InvalidChainConfigError):
            await start(service, pay_run_id)


class TestConcurrency:
    """Conditional writes: only one of two racing approvals wins."""

    async def test_concurrent_approvals(self, service):
        _, steps = await start(service)
        results = await asyncio.gather(
            service.approve(steps[0].step_id, ALICE),
            service.approve(steps[0].step_id, ALICE),
            return_exceptions=True,
        )
        assert sum(1 for r in results if isinstance(r, AlreadyActionedError)) == 1
        assert sum(1 for r in results if not isinstance(r, Exception)) == 1

    async def test_stale_write_rejected(self):
        repository = InMemoryApprovalStepRepository()
        service = ApprovalService(repository)
        _, steps = await start(service)

        # A concurrent writer approves after our read
        stale = steps[0]
        await service.approve(stale.step_id, ALICE)
        with pytest.raises(AlreadyActionedError):
            await repository.save_step(stale, stale)


class TestEventIsolation:
    async def test_failing_handler_does_not_block_transition(self, events):
        emitter = EventEmitter()

        def broken(event):
            raise RuntimeError("notification service down")

        emitter.on(ApprovalStepApproved, broken)
        emitter.on_all(events.append)
        service = ApprovalService(InMemoryApprovalStepRepository(), emitter=emitter)

        pay_run_id, steps = await start(service)
        await service.approve(steps[0].step_id, ALICE)
        assert (await service.get_current_step(pay_run_id)).level == 2
        assert any(isinstance(e, ApprovalStepApproved) for e in events)

    async def test_event_serialization(self):
        event = ApprovalStepRejected(
            metadata=EventMetadata.create(actor_id=ALICE),
            pay_run_id=uuid4(),
            step_id=uuid4(),
            level=1,
            rejected_by=ALICE,
            comments="redo",
        )
        data = event.to_dict()
        assert data["event_type"] == "ApprovalStepRejected"
        assert data["rejected_by"] == str(ALICE)
        assert '"level": 1' in event.to_json()

"""Storage for approval steps and computed pay items.

Step updates are conditional: a save only succeeds if the stored step
still has the status and approver the caller read. Two approvers racing on
the same step therefore cannot both win.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Sequence
from typing import Protocol
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from statutory_payroll.calculators.types import PayItem
from statutory_payroll.errors import AlreadyActionedError, InvalidInputError, StepNotFoundError
from statutory_payroll.models.approval import PayrunApprovalStepRecord, step_values
from statutory_payroll.models.pay_item import PayItemLineRecord, PayItemRecord
from statutory_payroll.services.state_machine import PayrunApprovalStep


class ApprovalStepRepository(Protocol):
    async def load_steps(self, pay_run_id: UUID) -> list[PayrunApprovalStep]: ...

    async def get_step(self, step_id: UUID) -> PayrunApprovalStep | None: ...

    async def add_steps(self, steps: Sequence[PayrunApprovalStep]) -> None: ...

    async def save_step(
        self, step: PayrunApprovalStep, expected: PayrunApprovalStep
    ) -> PayrunApprovalStep:
        """Persist ``step`` if the stored row still matches ``expected``.

        Raises AlreadyActionedError when another writer got there first.
        """
        ...


class PayItemSink(Protocol):
    async def replace_pay_items(self, pay_run_id: UUID, items: Iterable[PayItem]) -> None: ...

    async def load_pay_items(self, pay_run_id: UUID) -> list[PayItem]: ...


def _ordered(steps: Iterable[PayrunApprovalStep]) -> list[PayrunApprovalStep]:
    return sorted(steps, key=lambda s: (s.created_at, s.level))


class InMemoryApprovalStepRepository:
    """Process-local repository, used for tests and single-process tools."""

    def __init__(self) -> None:
        self._steps: dict[UUID, PayrunApprovalStep] = {}
        self._lock = threading.Lock()

    async def load_steps(self, pay_run_id: UUID) -> list[PayrunApprovalStep]:
        with self._lock:
            return _ordered(s for s in self._steps.values() if s.pay_run_id == pay_run_id)

    async def get_step(self, step_id: UUID) -> PayrunApprovalStep | None:
        with self._lock:
            return self._steps.get(step_id)

    async def add_steps(self, steps: Sequence[PayrunApprovalStep]) -> None:
        with self._lock:
            for step in steps:
                self._steps[step.step_id] = step

    async def save_step(
        self, step: PayrunApprovalStep, expected: PayrunApprovalStep
    ) -> PayrunApprovalStep:
        with self._lock:
            stored = self._steps.get(step.step_id)
            if stored is None:
                raise StepNotFoundError(step.step_id)
            if stored.status != expected.status or stored.approver_id != expected.approver_id:
                raise AlreadyActionedError(stored.step_id, stored.status)
            self._steps[step.step_id] = step
            return step


class SqlAlchemyApprovalStepRepository:
    """Repository backed by the ``payrun_approval_step`` table.

    Flushes but does not commit; the session owner controls the transaction.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def load_steps(self, pay_run_id: UUID) -> list[PayrunApprovalStep]:
        result = await self.session.execute(
            select(PayrunApprovalStepRecord)
            .where(PayrunApprovalStepRecord.pay_run_id == pay_run_id)
            .execution_options(populate_existing=True)
        )
        return _ordered(r.to_domain() for r in result.scalars())

    async def get_step(self, step_id: UUID) -> PayrunApprovalStep | None:
        result = await self.session.execute(
            select(PayrunApprovalStepRecord)
            .where(PayrunApprovalStepRecord.step_id == step_id)
            .execution_options(populate_existing=True)
        )
        record = result.scalar_one_or_none()
        return record.to_domain() if record else None

    async def add_steps(self, steps: Sequence[PayrunApprovalStep]) -> None:
        self.session.add_all(PayrunApprovalStepRecord.from_domain(s) for s in steps)
        await self.session.flush()

    async def save_step(
        self, step: PayrunApprovalStep, expected: PayrunApprovalStep
    ) -> PayrunApprovalStep:
        values = step_values(step)
        values.pop("step_id")
        result = await self.session.execute(
            update(PayrunApprovalStepRecord)
            .where(
                PayrunApprovalStepRecord.step_id == step.step_id,
                PayrunApprovalStepRecord.status == expected.status.value,
                PayrunApprovalStepRecord.approver_id == expected.approver_id,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return step

        current = await self.get_step(step.step_id)
        if current is None:
            raise StepNotFoundError(step.step_id)
        raise AlreadyActionedError(current.step_id, current.status)


def _check_pay_run(pay_run_id: UUID, items: Iterable[PayItem]) -> None:
    for item in items:
        if item.pay_run_id != pay_run_id:
            raise InvalidInputError(
                f"Pay item for employee {item.employee_id} belongs to pay run {item.pay_run_id}"
            )


class InMemoryPayItemSink:
    def __init__(self) -> None:
        self._items: dict[UUID, list[PayItem]] = {}

    async def replace_pay_items(self, pay_run_id: UUID, items: Iterable[PayItem]) -> None:
        items = list(items)
        _check_pay_run(pay_run_id, items)
        self._items[pay_run_id] = items

    async def load_pay_items(self, pay_run_id: UUID) -> list[PayItem]:
        return list(self._items.get(pay_run_id, []))


class SqlAlchemyPayItemSink:
    """Stores computed pay items and their lines.

    Recalculating a pay run replaces its previous items wholesale.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def replace_pay_items(self, pay_run_id: UUID, items: Iterable[PayItem]) -> None:
        items = list(items)
        _check_pay_run(pay_run_id, items)
        existing = select(PayItemRecord.pay_item_id).where(PayItemRecord.pay_run_id == pay_run_id)
        await self.session.execute(
            delete(PayItemLineRecord).where(PayItemLineRecord.pay_item_id.in_(existing))
        )
        await self.session.execute(
            delete(PayItemRecord).where(PayItemRecord.pay_run_id == pay_run_id)
        )
        for item in items:
            self.session.add(PayItemRecord.from_domain(item))
        await self.session.flush()

    async def load_pay_items(self, pay_run_id: UUID) -> list[PayItem]:
        result = await self.session.execute(
            select(PayItemRecord)
            .where(PayItemRecord.pay_run_id == pay_run_id)
            .order_by(PayItemRecord.employee_id)
            .execution_options(populate_existing=True)
        )
        return [r.to_domain() for r in result.scalars()]

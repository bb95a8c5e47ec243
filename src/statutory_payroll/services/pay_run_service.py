"""Pay run calculation service - computes and stores a pay run's items."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from uuid import UUID

from statutory_payroll.calculators.engine import DeductionEngine
from statutory_payroll.calculators.types import PayGroup, PayItem, PayRunCalculationResult, PayRunEntry
from statutory_payroll.errors import PayRunLockedError
from statutory_payroll.services.repositories import ApprovalStepRepository, PayItemSink
from statutory_payroll.services.state_machine import PayRunStatus, derive_status

logger = logging.getLogger(__name__)

# Pay item changes allowed only before submission or after a rejection
CALCULABLE_STATUSES = frozenset({PayRunStatus.DRAFT, PayRunStatus.REJECTED})


class PayRunCalculationService:
    """Runs the deduction engine for a pay run and persists the results.

    Recalculation replaces the pay run's stored items. Employees that fail
    to compute are reported in the result and not stored. Pay runs pending
    approval or approved are locked; a rejected pay run may be recalculated
    and resubmitted.
    """

    def __init__(self, engine: DeductionEngine, sink: PayItemSink, steps: ApprovalStepRepository):
        self.engine = engine
        self.sink = sink
        self.steps = steps

    async def calculate(
        self,
        pay_run_id: UUID,
        entries: Iterable[PayRunEntry],
        pay_group: PayGroup | None = None,
    ) -> PayRunCalculationResult:
        status = derive_status(await self.steps.load_steps(pay_run_id))
        if status not in CALCULABLE_STATUSES:
            logger.warning("Refusing to recalculate pay run %s (%s)", pay_run_id, status.value)
            raise PayRunLockedError(pay_run_id, status.value)

        result = self.engine.compute_pay_run(pay_run_id, entries, pay_group)
        await self.sink.replace_pay_items(pay_run_id, result.items.values())

        logger.info(
            "Pay run %s calculated: %d items, %d errors, net %s",
            pay_run_id,
            len(result.items),
            result.error_count,
            result.total_net,
        )
        for employee_id, message in result.errors.items():
            logger.warning("Pay run %s employee %s not calculated: %s", pay_run_id, employee_id, message)
        return result

    async def get_pay_items(self, pay_run_id: UUID) -> list[PayItem]:
        return await self.sink.load_pay_items(pay_run_id)

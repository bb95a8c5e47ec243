"""Pay run calculation and approval chain endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, status

from statutory_payroll.api.dependencies import Approvals, Calculations
from statutory_payroll.api.schemas import (
    ApprovalChainCreate,
    ApprovalStatusResponse,
    ApprovalStepResponse,
    ErrorResponse,
    PayItemResponse,
    PayRunCalculateRequest,
    PayRunCalculationResponse,
)
from statutory_payroll.calculators.types import PayRunEntry
from statutory_payroll.services.state_machine import ApproverLevel, current_step, derive_status

router = APIRouter(prefix="/pay-runs", tags=["pay-runs"])


@router.post(
    "/{pay_run_id}/calculate",
    response_model=PayRunCalculationResponse,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def calculate_pay_run(
    service: Calculations,
    pay_run_id: Annotated[UUID, Path()],
    payload: PayRunCalculateRequest,
) -> PayRunCalculationResponse:
    """Compute and store pay items, replacing any earlier calculation.

    Refused with 409 once the pay run is pending approval or approved.
    """
    entries = [
        PayRunEntry(employee=e.employee.to_domain(), gross_pay=e.gross_pay)
        for e in payload.entries
    ]
    pay_group = payload.pay_group.to_domain() if payload.pay_group else None
    result = await service.calculate(pay_run_id, entries, pay_group)

    return PayRunCalculationResponse(
        pay_run_id=pay_run_id,
        items=[PayItemResponse.model_validate(i) for i in result.items.values()],
        errors=result.errors,
        total_gross=result.total_gross,
        total_deductions=result.total_deductions,
        total_net=result.total_net,
        total_employer_contributions=result.total_employer_contributions,
    )


@router.get("/{pay_run_id}/pay-items", response_model=list[PayItemResponse])
async def list_pay_items(
    service: Calculations,
    pay_run_id: Annotated[UUID, Path()],
) -> list[PayItemResponse]:
    items = await service.get_pay_items(pay_run_id)
    return [PayItemResponse.model_validate(i) for i in items]


@router.post(
    "/{pay_run_id}/approval-chain",
    response_model=list[ApprovalStepResponse],
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
async def start_approval(
    service: Approvals,
    pay_run_id: Annotated[UUID, Path()],
    payload: ApprovalChainCreate,
) -> list[ApprovalStepResponse]:
    """Submit a pay run for approval (or resubmit after a rejection)."""
    steps = await service.start_approval(
        pay_run_id,
        [ApproverLevel(lv.level, lv.approver_id, lv.approver_role) for lv in payload.levels],
        submitted_by=payload.submitted_by,
        workflow_version=payload.workflow_version,
    )
    return [ApprovalStepResponse.model_validate(s) for s in steps]


@router.get("/{pay_run_id}/approval", response_model=ApprovalStatusResponse)
async def get_approval(
    service: Approvals,
    pay_run_id: Annotated[UUID, Path()],
) -> ApprovalStatusResponse:
    """Derived approval status, current step and full step history."""
    steps = await service.get_steps(pay_run_id)
    current = current_step(steps)
    return ApprovalStatusResponse(
        pay_run_id=pay_run_id,
        status=derive_status(steps),
        current_step=ApprovalStepResponse.model_validate(current) if current else None,
        steps=[ApprovalStepResponse.model_validate(s) for s in steps],
    )

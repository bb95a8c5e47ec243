"""Approval step action endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path

from statutory_payroll.api.dependencies import Approvals
from statutory_payroll.api.schemas import (
    ApprovalStepResponse,
    ApproveRequest,
    DelegateRequest,
    ErrorResponse,
    OverrideRequest,
    RejectRequest,
)

router = APIRouter(prefix="/approval-steps", tags=["approvals"])

ACTION_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


@router.post("/{step_id}/approve", response_model=ApprovalStepResponse, responses=ACTION_RESPONSES)
async def approve_step(
    service: Approvals,
    step_id: Annotated[UUID, Path()],
    payload: ApproveRequest,
) -> ApprovalStepResponse:
    step = await service.approve(step_id, payload.acting_user_id, payload.comments)
    return ApprovalStepResponse.model_validate(step)


@router.post("/{step_id}/reject", response_model=ApprovalStepResponse, responses=ACTION_RESPONSES)
async def reject_step(
    service: Approvals,
    step_id: Annotated[UUID, Path()],
    payload: RejectRequest,
) -> ApprovalStepResponse:
    step = await service.reject(step_id, payload.acting_user_id, payload.comments)
    return ApprovalStepResponse.model_validate(step)


@router.post("/{step_id}/delegate", response_model=ApprovalStepResponse, responses=ACTION_RESPONSES)
async def delegate_step(
    service: Approvals,
    step_id: Annotated[UUID, Path()],
    payload: DelegateRequest,
) -> ApprovalStepResponse:
    step = await service.delegate(
        step_id,
        payload.from_user_id,
        payload.to_user_id,
        acting_user_id=payload.acting_user_id,
    )
    return ApprovalStepResponse.model_validate(step)


@router.post("/{step_id}/override", response_model=ApprovalStepResponse, responses=ACTION_RESPONSES)
async def override_step(
    service: Approvals,
    step_id: Annotated[UUID, Path()],
    payload: OverrideRequest,
) -> ApprovalStepResponse:
    """Force-approve the current step; the reason is recorded."""
    step = await service.override(step_id, payload.acting_user_id, payload.reason)
    return ApprovalStepResponse.model_validate(step)

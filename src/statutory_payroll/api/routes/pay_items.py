"""Single-employee calculation endpoints."""

from fastapi import APIRouter

from statutory_payroll.api.dependencies import Engine
from statutory_payroll.api.schemas import (
    ErrorResponse,
    GrossUpRequest,
    PayItemCalculateRequest,
    PayItemResponse,
)

router = APIRouter(prefix="/pay-items", tags=["pay-items"])


@router.post(
    "/calculate",
    response_model=PayItemResponse,
    responses={400: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def calculate_pay_item(engine: Engine, payload: PayItemCalculateRequest) -> PayItemResponse:
    """Compute deductions and net pay for one employee without storing them."""
    item = engine.compute_pay_item(
        payload.employee.to_domain(),
        payload.gross_pay,
        pay_run_id=payload.pay_run_id,
    )
    return PayItemResponse.model_validate(item)


@router.post(
    "/gross-up",
    response_model=PayItemResponse,
    responses={400: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def gross_up_pay_item(engine: Engine, payload: GrossUpRequest) -> PayItemResponse:
    """Find the gross pay that yields the requested net pay."""
    item = engine.gross_from_net(
        payload.target_net_pay,
        payload.employee.to_domain(),
        pay_run_id=payload.pay_run_id,
    )
    return PayItemResponse.model_validate(item)

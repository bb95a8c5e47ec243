"""Jurisdiction table endpoints."""

from typing import Annotated

from fastapi import APIRouter, HTTPException, Path, status

from statutory_payroll.api.dependencies import Registry
from statutory_payroll.api.schemas import (
    ErrorResponse,
    JurisdictionResponse,
    JurisdictionSummary,
)
from statutory_payroll.errors import ConfigurationError

router = APIRouter(prefix="/jurisdictions", tags=["jurisdictions"])


@router.get("", response_model=list[JurisdictionSummary])
async def list_jurisdictions(registry: Registry) -> list[JurisdictionSummary]:
    return [
        JurisdictionSummary(code=j.code, name=j.name, currency=j.currency) for j in registry
    ]


@router.get(
    "/{code}",
    response_model=JurisdictionResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_jurisdiction(
    registry: Registry,
    code: Annotated[str, Path(description="Jurisdiction code or country name")],
) -> JurisdictionResponse:
    """Get a jurisdiction's deduction rules."""
    try:
        jurisdiction = registry.get(code)
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return JurisdictionResponse.from_jurisdiction(jurisdiction)

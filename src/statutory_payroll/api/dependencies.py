"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from statutory_payroll.calculators.engine import DeductionEngine
from statutory_payroll.calculators.jurisdictions import JurisdictionRegistry, load_registry
from statutory_payroll.config import get_settings
from statutory_payroll.database import get_session
from statutory_payroll.services.approval_service import ApprovalService
from statutory_payroll.services.events import EventEmitter
from statutory_payroll.services.pay_run_service import PayRunCalculationService
from statutory_payroll.services.repositories import (
    SqlAlchemyApprovalStepRepository,
    SqlAlchemyPayItemSink,
)
from statutory_payroll.services.state_machine import ApprovalPolicy


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency; commits when the request succeeds."""
    async with get_session() as session:
        yield session


@lru_cache(maxsize=1)
def get_registry() -> JurisdictionRegistry:
    """Jurisdiction tables, loaded and validated once per process."""
    return load_registry(get_settings().jurisdictions_path)


@lru_cache(maxsize=1)
def get_event_emitter() -> EventEmitter:
    return EventEmitter()


def get_approval_policy() -> ApprovalPolicy:
    settings = get_settings()
    return ApprovalPolicy(
        allow_delegation=settings.approvals_allow_delegation,
        rejection_comment_required=settings.approvals_rejection_comment_required,
        max_levels=settings.approvals_max_levels,
    )


Registry = Annotated[JurisdictionRegistry, Depends(get_registry)]
DbSession = Annotated[AsyncSession, Depends(get_db_session)]


def get_deduction_engine(registry: Registry) -> DeductionEngine:
    return DeductionEngine(registry, unit=get_settings().money_unit)


Engine = Annotated[DeductionEngine, Depends(get_deduction_engine)]


def get_approval_service(
    db: DbSession,
    emitter: Annotated[EventEmitter, Depends(get_event_emitter)],
    policy: Annotated[ApprovalPolicy, Depends(get_approval_policy)],
) -> ApprovalService:
    return ApprovalService(SqlAlchemyApprovalStepRepository(db), emitter=emitter, policy=policy)


def get_calculation_service(db: DbSession, engine: Engine) -> PayRunCalculationService:
    return PayRunCalculationService(
        engine, SqlAlchemyPayItemSink(db), SqlAlchemyApprovalStepRepository(db)
    )


# Type aliases for cleaner dependency injection
Approvals = Annotated[ApprovalService, Depends(get_approval_service)]
Calculations = Annotated[PayRunCalculationService, Depends(get_calculation_service)]

"""Payrun approval step model."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from statutory_payroll.models.base import Base, as_utc
from statutory_payroll.services.state_machine import PayrunApprovalStep, StepStatus


class PayrunApprovalStepRecord(Base):
    """One level of a payrun approval chain."""

    __tablename__ = "payrun_approval_step"

    step_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    pay_run_id: Mapped[UUID] = mapped_column(nullable=False)
    chain_id: Mapped[UUID] = mapped_column(nullable=False)
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    approver_id: Mapped[UUID] = mapped_column(nullable=False)
    approver_role: Mapped[str | None] = mapped_column(String)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")

    actioned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    actioned_by_user_id: Mapped[UUID | None] = mapped_column()
    comments: Mapped[str | None] = mapped_column(Text)

    delegated_by: Mapped[UUID | None] = mapped_column()
    delegated_by_user_id: Mapped[UUID | None] = mapped_column()
    delegated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    original_approver_id: Mapped[UUID | None] = mapped_column()

    override_reason: Mapped[str | None] = mapped_column(Text)
    overridden_by: Mapped[UUID | None] = mapped_column()

    workflow_version: Mapped[int | None] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("chain_id", "level", name="payrun_approval_step_chain_level_unique"),
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="payrun_approval_step_status_check",
        ),
        CheckConstraint("level >= 1", name="payrun_approval_step_level_check"),
        Index("payrun_approval_step_pay_run_idx", "pay_run_id"),
    )

    def to_domain(self) -> PayrunApprovalStep:
        return PayrunApprovalStep(
            step_id=self.step_id,
            pay_run_id=self.pay_run_id,
            chain_id=self.chain_id,
            level=self.level,
            approver_id=self.approver_id,
            status=StepStatus(self.status),
            approver_role=self.approver_role,
            actioned_at=as_utc(self.actioned_at),
            actioned_by_user_id=self.actioned_by_user_id,
            comments=self.comments,
            delegated_by=self.delegated_by,
            delegated_by_user_id=self.delegated_by_user_id,
            delegated_at=as_utc(self.delegated_at),
            original_approver_id=self.original_approver_id,
            override_reason=self.override_reason,
            overridden_by=self.overridden_by,
            workflow_version=self.workflow_version,
            created_at=as_utc(self.created_at),
        )

    @classmethod
    def from_domain(cls, step: PayrunApprovalStep) -> PayrunApprovalStepRecord:
        return cls(**step_values(step))


def step_values(step: PayrunApprovalStep) -> dict:
    """Column values for a domain step."""
    return {
        "step_id": step.step_id,
        "pay_run_id": step.pay_run_id,
        "chain_id": step.chain_id,
        "level": step.level,
        "approver_id": step.approver_id,
        "approver_role": step.approver_role,
        "status": step.status.value,
        "actioned_at": step.actioned_at,
        "actioned_by_user_id": step.actioned_by_user_id,
        "comments": step.comments,
        "delegated_by": step.delegated_by,
        "delegated_by_user_id": step.delegated_by_user_id,
        "delegated_at": step.delegated_at,
        "original_approver_id": step.original_approver_id,
        "override_reason": step.override_reason,
        "overridden_by": step.overridden_by,
        "workflow_version": step.workflow_version,
        "created_at": step.created_at,
    }

"""Computed pay item and line models."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from statutory_payroll.calculators.types import (
    ContributionLine,
    DeductionKind,
    DeductionLine,
    PayItem,
)
from statutory_payroll.models.base import Base, TimestampMixin


class PayItemRecord(Base, TimestampMixin):
    """Gross-to-net result for one employee in one pay run."""

    __tablename__ = "pay_item"

    pay_item_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    pay_run_id: Mapped[UUID] = mapped_column(nullable=False)
    employee_id: Mapped[UUID] = mapped_column(nullable=False)
    jurisdiction_code: Mapped[str] = mapped_column(String(8), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    gross_pay: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    total_deductions: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    net_pay: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    total_employer_contributions: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("pay_run_id", "employee_id", name="pay_item_run_employee_unique"),
        CheckConstraint("gross_pay >= 0", name="pay_item_gross_check"),
    )

    lines: Mapped[list[PayItemLineRecord]] = relationship(
        back_populates="pay_item",
        cascade="all, delete-orphan",
        order_by="PayItemLineRecord.line_no",
        lazy="selectin",
    )

    def to_domain(self) -> PayItem:
        deductions = tuple(
            DeductionLine(rule_name=ln.rule_name, amount=ln.amount, kind=DeductionKind(ln.kind))
            for ln in self.lines
            if ln.side == "employee"
        )
        contributions = tuple(
            ContributionLine(rule_name=ln.rule_name, amount=ln.amount)
            for ln in self.lines
            if ln.side == "employer"
        )
        return PayItem(
            employee_id=self.employee_id,
            pay_run_id=self.pay_run_id,
            jurisdiction_code=self.jurisdiction_code,
            currency=self.currency,
            gross_pay=self.gross_pay,
            deductions=deductions,
            employer_contributions=contributions,
        )

    @classmethod
    def from_domain(cls, item: PayItem) -> PayItemRecord:
        lines = [
            PayItemLineRecord(
                line_no=i,
                side="employee",
                rule_name=d.rule_name,
                kind=d.kind.value,
                amount=d.amount,
            )
            for i, d in enumerate(item.deductions)
        ]
        offset = len(lines)
        lines.extend(
            PayItemLineRecord(
                line_no=offset + i,
                side="employer",
                rule_name=c.rule_name,
                kind=None,
                amount=c.amount,
            )
            for i, c in enumerate(item.employer_contributions)
        )
        return cls(
            pay_run_id=item.pay_run_id,
            employee_id=item.employee_id,
            jurisdiction_code=item.jurisdiction_code,
            currency=item.currency,
            gross_pay=item.gross_pay,
            total_deductions=item.total_deductions,
            net_pay=item.net_pay,
            total_employer_contributions=item.total_employer_contributions,
            lines=lines,
        )


class PayItemLineRecord(Base):
    """An employee deduction or employer contribution line."""

    __tablename__ = "pay_item_line"

    pay_item_line_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    pay_item_id: Mapped[UUID] = mapped_column(
        ForeignKey("pay_item.pay_item_id", ondelete="CASCADE"),
        nullable=False,
    )
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)
    side: Mapped[str] = mapped_column(String, nullable=False)
    rule_name: Mapped[str] = mapped_column(String, nullable=False)
    kind: Mapped[str | None] = mapped_column(String)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)

    __table_args__ = (
        CheckConstraint("side IN ('employee', 'employer')", name="pay_item_line_side_check"),
        CheckConstraint("amount >= 0", name="pay_item_line_amount_check"),
    )

    pay_item: Mapped[PayItemRecord] = relationship(back_populates="lines")

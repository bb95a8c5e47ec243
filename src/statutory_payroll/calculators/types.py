"""Type definitions for the deduction engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_DOWN, Decimal
from enum import Enum
from typing import Any, ClassVar, Union
from uuid import UUID

# Statutory amounts in the supported currencies are whole units
MONEY_UNIT = Decimal("1")


def truncate(amount: Decimal, unit: Decimal = MONEY_UNIT) -> Decimal:
    """Truncate an amount down to the money unit."""
    return amount.quantize(unit, rounding=ROUND_DOWN)


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    """Convert a numeric value to Decimal without float artefacts."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class RateKind(str, Enum):
    """How a bracket's rate is applied."""

    PERCENTAGE = "percentage"  # fraction of the slice inside the band
    FLAT_AMOUNT = "flat_amount"  # fixed contribution for the band containing gross


class DeductionKind(str, Enum):
    """Deduction rule kinds."""

    FIXED = "fixed"
    PERCENTAGE = "percentage"
    PROGRESSIVE = "progressive"


class EmployeeClassification(str, Enum):
    """Employee classification used to select applicable rules."""

    LOCAL = "local"
    EXPATRIATE = "expatriate"
    EXEMPT = "exempt"


class PayFrequency(str, Enum):
    """Pay group frequencies."""

    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    SEMIMONTHLY = "semimonthly"
    MONTHLY = "monthly"


DEFAULT_CLASSIFICATIONS = frozenset(
    {EmployeeClassification.LOCAL, EmployeeClassification.EXPATRIATE}
)


@dataclass(frozen=True)
class TaxBracket:
    """One band of a bracket table."""

    min_amount: Decimal
    max_amount: Decimal | None  # None = open-ended top band
    rate: Decimal  # fraction for PERCENTAGE, currency amount for FLAT_AMOUNT
    rate_kind: RateKind = RateKind.PERCENTAGE

    def contains(self, amount: Decimal) -> bool:
        if amount < self.min_amount:
            return False
        return self.max_amount is None or amount <= self.max_amount


@dataclass(frozen=True)
class FixedAmount:
    """Flat amount deducted every period (e.g. a local service tax)."""

    kind: ClassVar[DeductionKind] = DeductionKind.FIXED

    amount: Decimal


@dataclass(frozen=True)
class PercentageOfGross:
    """Percentage of gross pay, optionally capped at a wage ceiling."""

    kind: ClassVar[DeductionKind] = DeductionKind.PERCENTAGE

    percentage: Decimal  # 0-100
    wage_ceiling: Decimal | None = None


@dataclass(frozen=True)
class ProgressiveBrackets:
    """Bracket table, with an optional relief subtracted from the result."""

    kind: ClassVar[DeductionKind] = DeductionKind.PROGRESSIVE

    brackets: tuple[TaxBracket, ...]
    relief: Decimal = Decimal("0")

    @property
    def rate_kind(self) -> RateKind:
        return self.brackets[0].rate_kind if self.brackets else RateKind.PERCENTAGE


RuleCalculation = Union[FixedAmount, PercentageOfGross, ProgressiveBrackets]


@dataclass(frozen=True)
class DeductionRule:
    """A statutory deduction rule for one jurisdiction."""

    name: str
    calculation: RuleCalculation
    mandatory: bool = True
    description: str = ""

    # Contribution splits, expressed 0-100
    employee_contribution: Decimal | None = None
    employer_contribution: Decimal | None = None

    # Amount is an employer cost only and never reduces net pay
    employer_only: bool = False

    applies_to: frozenset[EmployeeClassification] = DEFAULT_CLASSIFICATIONS

    @property
    def kind(self) -> DeductionKind:
        return self.calculation.kind

    @property
    def wage_ceiling(self) -> Decimal | None:
        if isinstance(self.calculation, PercentageOfGross):
            return self.calculation.wage_ceiling
        return None


@dataclass(frozen=True)
class JurisdictionDeductionSet:
    """Currency and deduction rules for one jurisdiction."""

    code: str
    currency: str
    deductions: tuple[DeductionRule, ...]
    name: str = ""
    apply_fixed_when_no_pay: bool = True

    def rule(self, name: str) -> DeductionRule | None:
        return next((r for r in self.deductions if r.name == name), None)


@dataclass(frozen=True)
class Employee:
    """Employee attributes the engine needs."""

    employee_id: UUID
    jurisdiction_code: str
    classification: EmployeeClassification = EmployeeClassification.LOCAL

    # Rule names opted into (non-mandatory) or exempted from
    opted_in_rules: frozenset[str] = frozenset()
    exempt_rules: frozenset[str] = frozenset()


@dataclass(frozen=True)
class PayGroup:
    """Pay group configuration consumed from the surrounding application."""

    pay_group_id: UUID
    jurisdiction_code: str
    pay_frequency: PayFrequency = PayFrequency.MONTHLY


@dataclass(frozen=True)
class DeductionLine:
    """An itemized employee deduction."""

    rule_name: str
    amount: Decimal
    kind: DeductionKind


@dataclass(frozen=True)
class ContributionLine:
    """An itemized employer contribution."""

    rule_name: str
    amount: Decimal


@dataclass(frozen=True)
class PayItem:
    """Computed gross-to-net result for one employee in one pay run.

    Totals are derived from the itemized lines, so net pay always equals
    gross pay minus the sum of the deductions.
    """

    employee_id: UUID
    pay_run_id: UUID | None
    jurisdiction_code: str
    currency: str
    gross_pay: Decimal
    deductions: tuple[DeductionLine, ...] = ()
    employer_contributions: tuple[ContributionLine, ...] = ()

    @property
    def total_deductions(self) -> Decimal:
        return sum((d.amount for d in self.deductions), Decimal("0"))

    @property
    def net_pay(self) -> Decimal:
        return self.gross_pay - self.total_deductions

    @property
    def total_employer_contributions(self) -> Decimal:
        return sum((c.amount for c in self.employer_contributions), Decimal("0"))

    def deduction_amount(self, rule_name: str) -> Decimal:
        """Amount deducted for a rule, zero if the rule did not apply."""
        return next(
            (d.amount for d in self.deductions if d.rule_name == rule_name),
            Decimal("0"),
        )

    def to_canonical_dict(self) -> dict[str, Any]:
        """Return canonical dict (deterministic ordering, string amounts)."""
        return {
            "employee_id": str(self.employee_id),
            "pay_run_id": str(self.pay_run_id) if self.pay_run_id else None,
            "jurisdiction_code": self.jurisdiction_code,
            "currency": self.currency,
            "gross_pay": str(self.gross_pay),
            "deductions": [
                {"rule_name": d.rule_name, "amount": str(d.amount), "kind": d.kind.value}
                for d in self.deductions
            ],
            "total_deductions": str(self.total_deductions),
            "net_pay": str(self.net_pay),
            "employer_contributions": [
                {"rule_name": c.rule_name, "amount": str(c.amount)}
                for c in self.employer_contributions
            ],
            "total_employer_contributions": str(self.total_employer_contributions),
        }


@dataclass(frozen=True)
class PayRunEntry:
    """One employee's gross pay for a pay run."""

    employee: Employee
    gross_pay: Decimal


@dataclass
class PayRunCalculationResult:
    """Result of computing pay items for an entire pay run."""

    pay_run_id: UUID
    items: dict[UUID, PayItem] = field(default_factory=dict)  # employee_id -> item
    errors: dict[UUID, str] = field(default_factory=dict)  # employee_id -> message

    @property
    def total_gross(self) -> Decimal:
        return sum((i.gross_pay for i in self.items.values()), Decimal("0"))

    @property
    def total_deductions(self) -> Decimal:
        return sum((i.total_deductions for i in self.items.values()), Decimal("0"))

    @property
    def total_net(self) -> Decimal:
        return sum((i.net_pay for i in self.items.values()), Decimal("0"))

    @property
    def total_employer_contributions(self) -> Decimal:
        return sum(
            (i.total_employer_contributions for i in self.items.values()), Decimal("0")
        )

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def success(self) -> bool:
        return not self.errors

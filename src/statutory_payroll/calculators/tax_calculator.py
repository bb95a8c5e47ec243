"""Deduction and bracket calculations.

All functions are pure: they take gross pay and rule data and return the
amount, truncated to the money unit. Negative gross pay is rejected.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

from statutory_payroll.calculators.types import (
    MONEY_UNIT,
    DeductionRule,
    FixedAmount,
    PercentageOfGross,
    ProgressiveBrackets,
    RateKind,
    TaxBracket,
    to_decimal,
    truncate,
)
from statutory_payroll.errors import InvalidInputError

ZERO = Decimal("0")


def _require_non_negative(gross_pay: Decimal | int | float | str) -> Decimal:
    amount = to_decimal(gross_pay)
    if amount < 0:
        raise InvalidInputError(f"Gross pay must not be negative (got {amount})")
    return amount


def _contribution_base(gross_pay: Decimal, wage_ceiling: Decimal | None) -> Decimal:
    if wage_ceiling is None:
        return gross_pay
    return min(gross_pay, wage_ceiling)


def calculate_progressive_tax(
    gross_pay: Decimal | int | float | str,
    brackets: Sequence[TaxBracket],
    unit: Decimal = MONEY_UNIT,
) -> Decimal:
    """Calculate the amount due under a bracket table.

    PERCENTAGE tables accumulate ``slice * rate`` over every band below gross
    pay, where the slice is ``min(gross, max) - min``; the loop stops at the
    first band whose minimum is at or above gross pay.

    FLAT_AMOUNT tables return the amount of the band containing gross pay.

    Gross pay below the first band yields zero.
    """
    gross = _require_non_negative(gross_pay)
    if not brackets:
        raise InvalidInputError("Bracket table must not be empty")

    ordered = sorted(brackets, key=lambda b: b.min_amount)
    kinds = {b.rate_kind for b in ordered}
    if len(kinds) > 1:
        raise InvalidInputError("Bracket table mixes percentage and flat-amount bands")

    if ordered[0].rate_kind == RateKind.FLAT_AMOUNT:
        amount = ZERO
        for bracket in ordered:
            if gross < bracket.min_amount:
                break
            amount = bracket.rate
        return truncate(amount, unit)

    total = ZERO
    for bracket in ordered:
        if gross <= bracket.min_amount:
            break

        upper = gross if bracket.max_amount is None else min(gross, bracket.max_amount)
        taxable_in_bracket = upper - bracket.min_amount
        if taxable_in_bracket > 0:
            total += taxable_in_bracket * bracket.rate

    return truncate(total, unit)


def calculate_deduction(
    gross_pay: Decimal | int | float | str,
    rule: DeductionRule,
    *,
    apply_fixed_when_no_pay: bool = True,
    unit: Decimal = MONEY_UNIT,
) -> Decimal:
    """Calculate the amount a rule yields for the given gross pay.

    Fixed rules return their configured amount whatever the gross pay, unless
    the jurisdiction disables fixed deductions for periods with no pay.
    """
    gross = _require_non_negative(gross_pay)
    calc = rule.calculation

    if isinstance(calc, FixedAmount):
        if gross == 0 and not apply_fixed_when_no_pay:
            return ZERO
        return calc.amount

    if isinstance(calc, PercentageOfGross):
        base = _contribution_base(gross, calc.wage_ceiling)
        return truncate(base * calc.percentage / 100, unit)

    if isinstance(calc, ProgressiveBrackets):
        tax = calculate_progressive_tax(gross, calc.brackets, unit)
        if tax > 0 and calc.relief > 0:
            tax = max(ZERO, tax - calc.relief)
        return truncate(tax, unit)

    raise InvalidInputError(
        f"Rule '{rule.name}' has unsupported calculation {type(calc).__name__}"
    )


def calculate_employer_contribution(
    gross_pay: Decimal | int | float | str,
    rule: DeductionRule,
    *,
    apply_fixed_when_no_pay: bool = True,
    unit: Decimal = MONEY_UNIT,
) -> Decimal:
    """Calculate the employer-side amount for a rule.

    Employer-only rules contribute their full computed amount. Other rules
    contribute ``employer_contribution`` percent of the (capped) gross pay.
    """
    gross = _require_non_negative(gross_pay)

    if rule.employer_only:
        return calculate_deduction(
            gross, rule, apply_fixed_when_no_pay=apply_fixed_when_no_pay, unit=unit
        )

    if rule.employer_contribution is None:
        return ZERO

    base = _contribution_base(gross, rule.wage_ceiling)
    return truncate(base * rule.employer_contribution / 100, unit)

"""Deduction engine - gross to net for employees and pay runs."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from decimal import Decimal
from uuid import UUID

from statutory_payroll.calculators.jurisdictions import JurisdictionRegistry
from statutory_payroll.calculators.tax_calculator import (
    calculate_deduction,
    calculate_employer_contribution,
)
from statutory_payroll.calculators.types import (
    MONEY_UNIT,
    ContributionLine,
    DeductionLine,
    DeductionRule,
    Employee,
    JurisdictionDeductionSet,
    PayGroup,
    PayItem,
    PayRunCalculationResult,
    PayRunEntry,
    to_decimal,
    truncate,
)
from statutory_payroll.errors import InvalidInputError, PayrollError

Applicability = Callable[[Employee, DeductionRule], bool]

# Upper bound on doublings when searching for a gross-up bracket
MAX_GROSS_UP_DOUBLINGS = 64


def default_applicability(employee: Employee, rule: DeductionRule) -> bool:
    """Data-driven rule selection.

    A rule applies when it covers the employee's classification, is
    mandatory or opted into, and the employee is not individually exempt.
    """
    if employee.classification not in rule.applies_to:
        return False
    if rule.name in employee.exempt_rules:
        return False
    return rule.mandatory or rule.name in employee.opted_in_rules


def compute_pay_item(
    employee: Employee,
    gross_pay: Decimal | int | str,
    jurisdiction: JurisdictionDeductionSet,
    *,
    pay_run_id: UUID | None = None,
    is_applicable: Applicability = default_applicability,
    unit: Decimal = MONEY_UNIT,
) -> PayItem:
    """Compute itemized deductions, net pay and employer contributions.

    Rules are evaluated in configuration order. Employer-only rules and the
    employer share of split rules are reported separately and do not reduce
    net pay.
    """
    gross = to_decimal(gross_pay)
    if gross < 0:
        raise InvalidInputError(
            f"Gross pay must not be negative for employee {employee.employee_id} (got {gross})"
        )

    deductions: list[DeductionLine] = []
    contributions: list[ContributionLine] = []

    for rule in jurisdiction.deductions:
        if not is_applicable(employee, rule):
            continue

        if not rule.employer_only:
            amount = calculate_deduction(
                gross,
                rule,
                apply_fixed_when_no_pay=jurisdiction.apply_fixed_when_no_pay,
                unit=unit,
            )
            deductions.append(DeductionLine(rule_name=rule.name, amount=amount, kind=rule.kind))

        employer_amount = calculate_employer_contribution(
            gross,
            rule,
            apply_fixed_when_no_pay=jurisdiction.apply_fixed_when_no_pay,
            unit=unit,
        )
        if employer_amount > 0:
            contributions.append(ContributionLine(rule_name=rule.name, amount=employer_amount))

    return PayItem(
        employee_id=employee.employee_id,
        pay_run_id=pay_run_id,
        jurisdiction_code=jurisdiction.code,
        currency=jurisdiction.currency,
        gross_pay=gross,
        deductions=tuple(deductions),
        employer_contributions=tuple(contributions),
    )


class DeductionEngine:
    """Computes pay items against a registry of jurisdiction tables.

    The engine holds no mutable state; the registry is read-only reference
    data loaded once.
    """

    def __init__(
        self,
        registry: JurisdictionRegistry | None = None,
        is_applicable: Applicability = default_applicability,
        unit: Decimal = MONEY_UNIT,
    ):
        self.registry = registry or JurisdictionRegistry.default()
        self.is_applicable = is_applicable
        self.unit = unit

    def jurisdiction_for(
        self, employee: Employee, pay_group: PayGroup | None = None
    ) -> JurisdictionDeductionSet:
        """Pay group jurisdiction wins over the employee's own."""
        code = pay_group.jurisdiction_code if pay_group else employee.jurisdiction_code
        return self.registry.get(code)

    def compute_pay_item(
        self,
        employee: Employee,
        gross_pay: Decimal | int | str,
        jurisdiction: JurisdictionDeductionSet | None = None,
        *,
        pay_run_id: UUID | None = None,
        is_applicable: Applicability | None = None,
    ) -> PayItem:
        return compute_pay_item(
            employee,
            gross_pay,
            jurisdiction or self.jurisdiction_for(employee),
            pay_run_id=pay_run_id,
            is_applicable=is_applicable or self.is_applicable,
            unit=self.unit,
        )

    def compute_pay_run(
        self,
        pay_run_id: UUID,
        entries: Iterable[PayRunEntry],
        pay_group: PayGroup | None = None,
    ) -> PayRunCalculationResult:
        """Compute one pay item per employee.

        Employees whose input or configuration is invalid are reported in
        ``errors`` and get no pay item.
        """
        result = PayRunCalculationResult(pay_run_id=pay_run_id)

        for entry in entries:
            employee_id = entry.employee.employee_id
            if employee_id in result.items or employee_id in result.errors:
                result.errors[employee_id] = "Employee appears more than once in pay run"
                result.items.pop(employee_id, None)
                continue
            try:
                jurisdiction = self.jurisdiction_for(entry.employee, pay_group)
                result.items[employee_id] = self.compute_pay_item(
                    entry.employee,
                    entry.gross_pay,
                    jurisdiction,
                    pay_run_id=pay_run_id,
                )
            except PayrollError as e:
                result.errors[employee_id] = str(e)

        return result

    def gross_from_net(
        self,
        target_net: Decimal | int | str,
        employee: Employee,
        jurisdiction: JurisdictionDeductionSet | None = None,
        *,
        pay_run_id: UUID | None = None,
    ) -> PayItem:
        """Find a gross pay whose net pay reaches ``target_net``.

        Used for expatriate contracts agreed in net terms. Searches by
        bisection in money units: the returned item's net pay is at least the
        target and less than one unit above it, and one unit less gross falls
        short. Net pay is not monotonic across flat-amount bands (Kenya NHIF),
        so a smaller gross elsewhere may also reach the target.
        """
        target = to_decimal(target_net)
        if target < 0:
            raise InvalidInputError(f"Target net pay must not be negative (got {target})")

        jurisdiction = jurisdiction or self.jurisdiction_for(employee)

        def net_at(gross: Decimal) -> Decimal:
            return self.compute_pay_item(employee, gross, jurisdiction).net_pay

        # Net never exceeds gross, so the answer lies above target - unit
        low = truncate(target, self.unit) - self.unit
        high = max(truncate(target, self.unit), self.unit)
        for _ in range(MAX_GROSS_UP_DOUBLINGS):
            if net_at(high) >= target:
                break
            low = high
            high *= 2
        else:
            raise InvalidInputError(
                f"Net pay {target} is unreachable under {jurisdiction.code} deductions"
            )

        while high - low > self.unit:
            mid = truncate((low + high) / 2, self.unit)
            if net_at(mid) >= target:
                high = mid
            else:
                low = mid

        return self.compute_pay_item(employee, high, jurisdiction, pay_run_id=pay_run_id)

"""Statutory deduction engine."""

from statutory_payroll.calculators.engine import (
    DeductionEngine,
    compute_pay_item,
    default_applicability,
)
from statutory_payroll.calculators.jurisdictions import (
    JurisdictionRegistry,
    load_jurisdictions,
    load_registry,
    resolve_jurisdiction_code,
)
from statutory_payroll.calculators.tax_calculator import (
    calculate_deduction,
    calculate_employer_contribution,
    calculate_progressive_tax,
)
from statutory_payroll.calculators.types import (
    DeductionKind,
    DeductionRule,
    Employee,
    EmployeeClassification,
    FixedAmount,
    JurisdictionDeductionSet,
    PayGroup,
    PayItem,
    PayRunEntry,
    PercentageOfGross,
    ProgressiveBrackets,
    RateKind,
    TaxBracket,
)

__all__ = [
    "DeductionEngine",
    "DeductionKind",
    "DeductionRule",
    "Employee",
    "EmployeeClassification",
    "FixedAmount",
    "JurisdictionDeductionSet",
    "JurisdictionRegistry",
    "PayGroup",
    "PayItem",
    "PayRunEntry",
    "PercentageOfGross",
    "ProgressiveBrackets",
    "RateKind",
    "TaxBracket",
    "calculate_deduction",
    "calculate_employer_contribution",
    "calculate_progressive_tax",
    "compute_pay_item",
    "default_applicability",
    "load_jurisdictions",
    "load_registry",
    "resolve_jurisdiction_code",
]

"""Pydantic schemas for API request/response models."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from statutory_payroll.calculators.types import (
    DeductionKind,
    DeductionRule,
    Employee,
    EmployeeClassification,
    FixedAmount,
    JurisdictionDeductionSet,
    PayFrequency,
    PayGroup,
    PercentageOfGross,
    RateKind,
)
from statutory_payroll.services.state_machine import PayRunStatus, StepStatus


class ErrorResponse(BaseModel):
    detail: str
    code: str


# ============================================================================
# Jurisdiction schemas
# ============================================================================


class TaxBracketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    min_amount: Decimal
    max_amount: Decimal | None
    rate: Decimal
    rate_kind: RateKind


class DeductionRuleResponse(BaseModel):
    name: str
    kind: DeductionKind
    mandatory: bool
    description: str
    employer_only: bool
    applies_to: list[EmployeeClassification]
    employee_contribution: Decimal | None = None
    employer_contribution: Decimal | None = None
    amount: Decimal | None = None
    percentage: Decimal | None = None
    wage_ceiling: Decimal | None = None
    relief: Decimal | None = None
    brackets: list[TaxBracketResponse] | None = None

    @classmethod
    def from_rule(cls, rule: DeductionRule) -> "DeductionRuleResponse":
        calc = rule.calculation
        fields: dict = {}
        if isinstance(calc, FixedAmount):
            fields["amount"] = calc.amount
        elif isinstance(calc, PercentageOfGross):
            fields["percentage"] = calc.percentage
            fields["wage_ceiling"] = calc.wage_ceiling
        else:
            fields["relief"] = calc.relief
            fields["brackets"] = [TaxBracketResponse.model_validate(b) for b in calc.brackets]
        return cls(
            name=rule.name,
            kind=rule.kind,
            mandatory=rule.mandatory,
            description=rule.description,
            employer_only=rule.employer_only,
            applies_to=sorted(rule.applies_to, key=lambda c: c.value),
            employee_contribution=rule.employee_contribution,
            employer_contribution=rule.employer_contribution,
            **fields,
        )


class JurisdictionSummary(BaseModel):
    code: str
    name: str
    currency: str


class JurisdictionResponse(JurisdictionSummary):
    apply_fixed_when_no_pay: bool
    deductions: list[DeductionRuleResponse]

    @classmethod
    def from_jurisdiction(cls, j: JurisdictionDeductionSet) -> "JurisdictionResponse":
        return cls(
            code=j.code,
            name=j.name,
            currency=j.currency,
            apply_fixed_when_no_pay=j.apply_fixed_when_no_pay,
            deductions=[DeductionRuleResponse.from_rule(r) for r in j.deductions],
        )


# ============================================================================
# Pay item schemas
# ============================================================================


class EmployeeInput(BaseModel):
    employee_id: UUID
    jurisdiction: str = Field(description="Jurisdiction code or country name")
    classification: EmployeeClassification = EmployeeClassification.LOCAL
    opted_in_rules: list[str] = Field(default_factory=list)
    exempt_rules: list[str] = Field(default_factory=list)

    def to_domain(self) -> Employee:
        # Names are resolved by the registry at calculation time
        return Employee(
            employee_id=self.employee_id,
            jurisdiction_code=self.jurisdiction,
            classification=self.classification,
            opted_in_rules=frozenset(self.opted_in_rules),
            exempt_rules=frozenset(self.exempt_rules),
        )


class PayGroupInput(BaseModel):
    pay_group_id: UUID
    jurisdiction: str
    pay_frequency: PayFrequency = PayFrequency.MONTHLY

    def to_domain(self) -> PayGroup:
        return PayGroup(
            pay_group_id=self.pay_group_id,
            jurisdiction_code=self.jurisdiction,
            pay_frequency=self.pay_frequency,
        )


class PayItemCalculateRequest(BaseModel):
    employee: EmployeeInput
    gross_pay: Decimal
    pay_run_id: UUID | None = None


class GrossUpRequest(BaseModel):
    employee: EmployeeInput
    target_net_pay: Decimal
    pay_run_id: UUID | None = None


class DeductionLineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    rule_name: str
    amount: Decimal
    kind: DeductionKind


class ContributionLineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    rule_name: str
    amount: Decimal


class PayItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    employee_id: UUID
    pay_run_id: UUID | None
    jurisdiction_code: str
    currency: str
    gross_pay: Decimal
    deductions: list[DeductionLineResponse]
    total_deductions: Decimal
    net_pay: Decimal
    employer_contributions: list[ContributionLineResponse]
    total_employer_contributions: Decimal


class PayRunEntryInput(BaseModel):
    employee: EmployeeInput
    gross_pay: Decimal


class PayRunCalculateRequest(BaseModel):
    entries: list[PayRunEntryInput]
    pay_group: PayGroupInput | None = None


class PayRunCalculationResponse(BaseModel):
    pay_run_id: UUID
    items: list[PayItemResponse]
    errors: dict[UUID, str]
    total_gross: Decimal
    total_deductions: Decimal
    total_net: Decimal
    total_employer_contributions: Decimal


# ============================================================================
# Approval schemas
# ============================================================================


class ApproverLevelInput(BaseModel):
    level: int
    approver_id: UUID
    approver_role: str | None = None


class ApprovalChainCreate(BaseModel):
    levels: list[ApproverLevelInput]
    submitted_by: UUID | None = None
    workflow_version: int | None = None


class ApprovalStepResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    step_id: UUID
    pay_run_id: UUID
    chain_id: UUID
    level: int
    approver_id: UUID
    approver_role: str | None = None
    status: StepStatus
    actioned_at: datetime | None = None
    actioned_by_user_id: UUID | None = None
    comments: str | None = None
    delegated_by: UUID | None = None
    delegated_by_user_id: UUID | None = None
    delegated_at: datetime | None = None
    original_approver_id: UUID | None = None
    override_reason: str | None = None
    overridden_by: UUID | None = None
    workflow_version: int | None = None
    created_at: datetime


class ApprovalStatusResponse(BaseModel):
    pay_run_id: UUID
    status: PayRunStatus
    current_step: ApprovalStepResponse | None
    steps: list[ApprovalStepResponse]


class ApproveRequest(BaseModel):
    acting_user_id: UUID
    comments: str | None = None


class RejectRequest(BaseModel):
    acting_user_id: UUID
    comments: str | None = None


class DelegateRequest(BaseModel):
    from_user_id: UUID
    to_user_id: UUID
    acting_user_id: UUID | None = None


class OverrideRequest(BaseModel):
    acting_user_id: UUID
    reason: str = Field(min_length=1)

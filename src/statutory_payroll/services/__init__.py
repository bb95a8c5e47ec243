"""Payrun approval workflow services."""

from statutory_payroll.services.state_machine import (
    ApprovalPolicy,
    ApproverLevel,
    PayrunApprovalStep,
    PayRunStatus,
    StepStatus,
)

__all__ = [
    "ApprovalPolicy",
    "ApproverLevel",
    "PayrunApprovalStep",
    "PayRunStatus",
    "StepStatus",
]

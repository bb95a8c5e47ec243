"""Typed errors raised by the deduction engine and the approval workflow."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

if TYPE_CHECKING:
    from statutory_payroll.services.state_machine import StepStatus


class PayrollError(Exception):
    """Base class for all statutory payroll errors."""


class InvalidInputError(PayrollError):
    """Raised for invalid caller input (negative gross pay, malformed rules)."""


class ConfigurationError(PayrollError):
    """Raised when jurisdiction configuration fails validation at load time."""

    def __init__(
        self,
        message: str,
        jurisdiction: str | None = None,
        rule: str | None = None,
    ):
        self.jurisdiction = jurisdiction
        self.rule = rule
        self.reason = message
        location = ""
        if jurisdiction:
            location = f"jurisdiction '{jurisdiction}'"
            if rule:
                location += f", rule '{rule}'"
            location += ": "
        super().__init__(f"{location}{message}")


class InvalidChainConfigError(PayrollError):
    """Raised when an approval chain cannot be created or used as configured."""


class StepNotFoundError(InvalidInputError):
    """Raised when an approval step id does not exist."""

    def __init__(self, step_id: UUID):
        self.step_id = step_id
        super().__init__(f"Approval step {step_id} not found")


class NotCurrentStepError(PayrollError):
    """Raised when a transition targets a step that is not next in line."""

    def __init__(
        self,
        step_id: UUID,
        level: int,
        current_level: int | None = None,
        halted: bool = False,
    ):
        self.step_id = step_id
        self.level = level
        self.current_level = current_level
        self.halted = halted
        if halted:
            msg = f"Approval chain is halted by a rejection; level {level} cannot be actioned"
        elif current_level is None:
            msg = f"Approval chain has no pending step; level {level} cannot be actioned"
        else:
            msg = f"Level {level} is not the current step (current level: {current_level})"
        super().__init__(msg)


class AlreadyActionedError(PayrollError):
    """Raised when a step has already left the pending state or changed concurrently."""

    def __init__(self, step_id: UUID, status: StepStatus | str):
        self.step_id = step_id
        self.status = status
        value = getattr(status, "value", status)
        super().__init__(f"Approval step {step_id} was already actioned (status: {value})")


class PayRunLockedError(PayrollError):
    """Raised when a pay run's items change while it is under or past approval."""

    def __init__(self, pay_run_id: UUID, status: str):
        self.pay_run_id = pay_run_id
        self.status = status
        super().__init__(
            f"Pay run {pay_run_id} is {status}; its pay items can only be "
            "recalculated while draft or rejected"
        )

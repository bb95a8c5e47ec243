"""SQLAlchemy ORM models."""

from statutory_payroll.models.approval import PayrunApprovalStepRecord
from statutory_payroll.models.base import Base
from statutory_payroll.models.pay_item import PayItemLineRecord, PayItemRecord

__all__ = ["Base", "PayItemLineRecord", "PayItemRecord", "PayrunApprovalStepRecord"]

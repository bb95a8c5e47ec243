"""Statutory payroll core: deduction engine and payrun approval workflow."""

__version__ = "0.1.0"

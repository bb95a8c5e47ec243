"""API routes."""

from statutory_payroll.api.routes.approvals import router as approvals_router
from statutory_payroll.api.routes.health import router as health_router
from statutory_payroll.api.routes.jurisdictions import router as jurisdictions_router
from statutory_payroll.api.routes.pay_items import router as pay_items_router
from statutory_payroll.api.routes.pay_runs import router as pay_runs_router

__all__ = [
    "approvals_router",
    "health_router",
    "jurisdictions_router",
    "pay_items_router",
    "pay_runs_router",
]

"""SQLAlchemy ORM Models for the commission ledger."""

from backend.models.base import AuditMixin, Base, TimestampMixin
from backend.models.calculation_run import CalculationRun
from backend.models.commission_entry import CommissionEntry
from backend.models.commission_plan import (
    CommissionPlan,
    PlanComponent,
    UserPlanAssignment,
    assignment_components,
)
from backend.models.employee import Employee
from backend.models.source_record import Account, Placement, Timesheet

__all__ = [
    "Base",
    "TimestampMixin",
    "AuditMixin",
    "Account",
    "CalculationRun",
    "CommissionEntry",
    "CommissionPlan",
    "Employee",
    "Placement",
    "PlanComponent",
    "Timesheet",
    "UserPlanAssignment",
    "assignment_components",
]

"""Pydantic API Schemas for the commission ledger."""

from backend.schemas.calculation import (
    BatchFailure,
    BatchResult,
    CalculatedEntryResponse,
    CalculationRequest,
    CalculationRunResponse,
    EmployeeCalculationResponse,
    EmployeeRunResult,
)
from backend.schemas.commission import (
    BulkActionResponse,
    BulkEntryAction,
    CommissionEntryResponse,
    EntryAction,
    ManualEntryCreate,
)
from backend.schemas.plan import (
    AssignmentCreate,
    AssignmentResponse,
    ComponentCreate,
    ComponentResponse,
    ComponentUpdate,
    PlanCloneRequest,
    PlanCreate,
    PlanResponse,
)

__all__ = [
    "CalculationRequest",
    "CalculatedEntryResponse",
    "EmployeeCalculationResponse",
    "EmployeeRunResult",
    "BatchFailure",
    "BatchResult",
    "CalculationRunResponse",
    "CommissionEntryResponse",
    "ManualEntryCreate",
    "EntryAction",
    "BulkEntryAction",
    "BulkActionResponse",
    "ComponentCreate",
    "ComponentUpdate",
    "ComponentResponse",
    "PlanCreate",
    "PlanResponse",
    "PlanCloneRequest",
    "AssignmentCreate",
    "AssignmentResponse",
]

"""
Calculation Pydantic Schemas

API request/response models for commission calculation runs.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from engines.schemas.commission_engine import CalculatedEntry, SourceKind
from engines.services.fiscal_calendar import PERIOD_PATTERN


class CalculationRequest(BaseModel):
    """Calculate one employee, or every employee with an assignment."""

    period: str = Field(..., pattern=PERIOD_PATTERN.pattern, description="Calendar month (YYYY-MM)")
    employee_id: UUID | None = Field(
        default=None,
        description="Employee to calculate; omit for a period-wide batch",
    )
    dry_run: bool = Field(default=False, description="Return entries without writing them")
    current_period: str | None = Field(
        default=None,
        pattern=PERIOD_PATTERN.pattern,
        description="Override for 'today' when marking backdated entries",
    )
    actor_id: UUID | None = None

    @model_validator(mode="after")
    def dry_run_needs_employee(self) -> "CalculationRequest":
        if self.dry_run and self.employee_id is None:
            raise ValueError("dry_run requires employee_id")
        return self


class CalculatedEntryResponse(BaseModel):
    """An entry as computed by the engine (persisted or not)."""

    employee_id: UUID
    plan_component_id: UUID
    source_kind: SourceKind
    source_placement_id: UUID | None
    source_timesheet_id: UUID | None
    period: str
    gross_value: Decimal
    commission_amount: Decimal
    rate: Decimal
    is_clawback: bool
    backdated_from_period: str | None

    @classmethod
    def from_entry(cls, entry: CalculatedEntry) -> "CalculatedEntryResponse":
        return cls(**entry.model_dump(mode="python"))


class EmployeeCalculationResponse(BaseModel):
    """Result of calculating one employee."""

    employee_id: UUID
    period: str
    dry_run: bool
    entries: list[CalculatedEntryResponse]
    total_commission: Decimal


class EmployeeRunResult(BaseModel):
    """One employee's outcome within a batch."""

    employee_id: UUID
    entry_count: int


class BatchFailure(BaseModel):
    """An employee whose calculation failed within a batch."""

    employee_id: UUID
    error: str


class BatchResult(BaseModel):
    """Outcome of a period-wide calculation."""

    run_id: UUID
    period: str
    results: list[EmployeeRunResult] = Field(default_factory=list)
    failures: list[BatchFailure] = Field(default_factory=list)

    @property
    def total_entries(self) -> int:
        return sum(r.entry_count for r in self.results)


class CalculationRunResponse(BaseModel):
    """Schema for calculation run response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    period: str
    status: str
    triggered_by: UUID | None
    error_message: str | None

    # Progress
    total_employees: int
    processed_employees: int
    failed_employees: int
    total_entries: int
    failures: list[dict]

    started_at: datetime | None
    completed_at: datetime | None

"""
Commission Entry Pydantic Schemas

API request/response models for commission entries and their workflow.
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from engines.schemas.commission_engine import SourceKind
from engines.services.fiscal_calendar import PERIOD_PATTERN


class CommissionEntryResponse(BaseModel):
    """Schema for a stored commission entry."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    employee_id: UUID
    plan_component_id: UUID | None
    source_kind: str | None
    source_placement_id: UUID | None
    source_timesheet_id: UUID | None
    period: str
    gross_value: Decimal
    commission_amount: Decimal
    rate: Decimal
    is_clawback: bool
    clawback_of_entry_id: UUID | None
    status: str
    hold_reason: str | None
    payout_date: datetime | None
    is_manual_override: bool
    note: str | None
    backdated_from_period: str | None
    created_by: UUID | None


class ManualEntryCreate(BaseModel):
    """Schema for entering a commission line by hand."""

    employee_id: UUID
    period: str = Field(..., pattern=PERIOD_PATTERN.pattern)
    commission_amount: Decimal
    gross_value: Decimal = Decimal("0")
    rate: Decimal = Decimal("0")
    plan_component_id: UUID | None = None
    source_kind: SourceKind | None = None
    source_id: UUID | None = None
    note: str | None = Field(default=None, max_length=2000)
    actor_id: UUID | None = None

    @model_validator(mode="after")
    def source_needs_kind(self) -> "ManualEntryCreate":
        if self.source_id is not None and self.source_kind is None:
            raise ValueError("source_kind is required with source_id")
        return self


class EntryAction(BaseModel):
    """Schema for moving one entry through its workflow."""

    action: Literal["approve", "pay", "hold", "release", "clawback"]
    reason: str | None = Field(
        default=None,
        max_length=1000,
        description="Hold reason (defaults to \"Held by admin\"); used as the note for clawback",
    )
    actor_id: UUID | None = None
    current_period: str | None = Field(default=None, pattern=PERIOD_PATTERN.pattern)


class BulkEntryAction(BaseModel):
    """Select entries for bulk approval or payment, by id or by period."""

    entry_ids: list[UUID] | None = None
    period: str | None = Field(default=None, pattern=PERIOD_PATTERN.pattern)
    actor_id: UUID | None = None

    @model_validator(mode="after")
    def needs_selection(self) -> "BulkEntryAction":
        if not self.entry_ids and self.period is None:
            raise ValueError("Provide entry_ids or period")
        return self


class BulkActionResponse(BaseModel):
    updated: int

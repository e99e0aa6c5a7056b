"""
Commission Engine Schemas

Input/output models for the commission calculation engine.
The engine only sees these shapes, never ORM rows.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class ComponentType(str, Enum):
    """Kind of rule a plan component represents."""

    PLACEMENT_PERM = "PLACEMENT_PERM"
    PLACEMENT_CONTRACT = "PLACEMENT_CONTRACT"
    TIMESHEET = "TIMESHEET"
    OVERRIDE = "OVERRIDE"
    KICKER = "KICKER"
    BONUS_FLAT = "BONUS_FLAT"  # paid manually, never matched by the engine


class SourceKind(str, Enum):
    """Kind of billable event a source record came from."""

    PLACEMENT = "PLACEMENT"
    TIMESHEET = "TIMESHEET"


class PlacementType(str, Enum):
    PERM = "PERM"
    CONTRACT = "CONTRACT"


class ComponentRule(BaseModel):
    """One active plan component as seen by the engine."""

    id: UUID
    name: str
    type: ComponentType
    rate: Decimal | None = None
    is_percentage: bool = True
    min_value: Decimal | None = None
    max_value: Decimal | None = None
    tier: int | None = None
    account_filter: str | None = None
    kicker_threshold: Decimal | None = None
    is_active: bool = True

    @property
    def group_key(self) -> tuple[str, str]:
        """Components sharing this key form one tier ladder."""
        return (self.name, self.type.value)


class AssignmentRule(BaseModel):
    """An employee's assignment to a plan, with its connected components."""

    id: UUID
    employee_id: UUID
    plan_id: UUID
    plan_name: str = ""
    start_date: date
    end_date: date | None = None
    components: list[ComponentRule] = Field(default_factory=list)


class SourceRecord(BaseModel):
    """
    Normalized billable event (placement or timesheet).

    ``gross_value`` is the billed amount for timesheets and equals
    ``nfi_value`` for placements. A negative ``nfi_value`` marks a reversal.
    """

    kind: SourceKind
    id: UUID
    external_id: str | None = None
    name: str = ""
    account_name: str | None = None
    owner_id: UUID | None = None
    nfi_value: Decimal
    gross_value: Decimal
    settlement_date: date | None = None
    placement_type: PlacementType | None = None
    is_clawback: bool = False
    commission_paid: bool = False


class CalculatedEntry(BaseModel):
    """One computed payout line, before persistence."""

    employee_id: UUID
    plan_component_id: UUID
    source_kind: SourceKind
    source_placement_id: UUID | None = None
    source_timesheet_id: UUID | None = None
    period: str
    gross_value: Decimal
    commission_amount: Decimal
    rate: Decimal
    is_clawback: bool = False
    backdated_from_period: str | None = None

    @property
    def source_id(self) -> UUID | None:
        return self.source_placement_id or self.source_timesheet_id

    @property
    def entry_key(self) -> tuple:
        """Identity of a computed line within one employee/period."""
        return (
            self.plan_component_id,
            self.source_kind.value,
            self.source_id,
            self.is_clawback,
        )

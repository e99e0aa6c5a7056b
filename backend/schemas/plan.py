"""
Commission Plan Pydantic Schemas

API request/response models for plans, components and assignments.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ComponentCreate(BaseModel):
    """Schema for adding a component to a plan."""

    name: str = Field(..., min_length=1, max_length=255)
    type: str = Field(..., description="One of the ComponentType values")
    rate: Decimal | None = None
    is_percentage: bool = True
    min_value: Decimal | None = None
    max_value: Decimal | None = None
    tier: int | None = Field(default=None, ge=0)
    account_filter: str | None = Field(default=None, max_length=255)
    kicker_threshold: Decimal | None = None
    notes: str | None = None


class ComponentUpdate(BaseModel):
    """Schema for changing a component; unset fields stay as they are."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    rate: Decimal | None = None
    is_percentage: bool | None = None
    min_value: Decimal | None = None
    max_value: Decimal | None = None
    tier: int | None = Field(default=None, ge=0)
    account_filter: str | None = Field(default=None, max_length=255)
    kicker_threshold: Decimal | None = None
    notes: str | None = None

    @field_validator("name", "is_percentage")
    @classmethod
    def not_null(cls, value):
        if value is None:
            raise ValueError("may be omitted but not null")
        return value


class ComponentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    plan_id: UUID
    name: str
    type: str
    rate: Decimal | None
    is_percentage: bool
    min_value: Decimal | None
    max_value: Decimal | None
    tier: int | None
    account_filter: str | None
    kicker_threshold: Decimal | None
    is_active: bool
    notes: str | None


class PlanCreate(BaseModel):
    """Schema for creating a plan, optionally with its components."""

    name: str = Field(..., min_length=1, max_length=255)
    fiscal_year: str = Field(..., description="Fiscal year label, e.g. FY26/27")
    description: str | None = None
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    components: list[ComponentCreate] = Field(default_factory=list)
    actor_id: UUID | None = None


class PlanResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str | None
    fiscal_year: str
    currency: str
    version: int
    is_active: bool
    components: list[ComponentResponse]


class PlanCloneRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    fiscal_year: str
    actor_id: UUID | None = None


class AssignmentCreate(BaseModel):
    """Schema for assigning a plan (or some of its components) to an employee."""

    employee_id: UUID
    start_date: date
    end_date: date | None = None
    component_ids: list[UUID] | None = Field(
        default=None,
        description="Components to connect; defaults to every active component",
    )
    actor_id: UUID | None = None


class AssignmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    employee_id: UUID
    plan_id: UUID
    start_date: date
    end_date: date | None
    components: list[ComponentResponse]

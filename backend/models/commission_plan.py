"""
Commission Plan Models

Plans, their rate components, and the assignment of a subset of a plan's
components to an employee for a date range.

Components are never hard-deleted once calculated against; deactivation
(``is_active = False``) removes them from future calculations only.
"""

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Numeric,
    String,
    Table,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.models.base import AuditMixin, Base, TimestampMixin

if TYPE_CHECKING:
    from backend.models.employee import Employee


assignment_components = Table(
    "assignment_components",
    Base.metadata,
    Column(
        "assignment_id",
        ForeignKey("user_plan_assignments.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "component_id",
        ForeignKey("plan_components.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class CommissionPlan(TimestampMixin, AuditMixin, Base):
    """A named, versioned bundle of rate components for one fiscal year."""

    __tablename__ = "commission_plans"

    id: Mapped[UUID] = mapped_column(
        primary_key=True,
        default=uuid4,
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    fiscal_year: Mapped[str] = mapped_column(
        String(7),
        nullable=False,
        comment="Fiscal year label, e.g. FY26/27",
    )
    currency: Mapped[str] = mapped_column(
        String(3),
        default="GBP",
        nullable=False,
    )
    version: Mapped[int] = mapped_column(
        default=1,
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(
        default=True,
        nullable=False,
    )

    # Relationships
    components: Mapped[list["PlanComponent"]] = relationship(
        back_populates="plan",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    assignments: Mapped[list["UserPlanAssignment"]] = relationship(
        back_populates="plan",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<CommissionPlan {self.id} ({self.name} {self.fiscal_year})>"


class PlanComponent(TimestampMixin, Base):
    """
    One rate rule of a plan.

    Components sharing ``(name, type)`` and differing by ``tier`` form a
    tier ladder; ``[min_value, max_value)`` windows apply to a single source
    record's absolute NFI, not to period totals.
    """

    __tablename__ = "plan_components"

    id: Mapped[UUID] = mapped_column(
        primary_key=True,
        default=uuid4,
    )
    plan_id: Mapped[UUID] = mapped_column(
        ForeignKey("commission_plans.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    type: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        comment="PLACEMENT_PERM|PLACEMENT_CONTRACT|TIMESHEET|OVERRIDE|KICKER|BONUS_FLAT",
    )
    rate: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 6),
        nullable=True,
        comment="Fraction when is_percentage, else a flat currency amount",
    )
    is_percentage: Mapped[bool] = mapped_column(
        default=True,
        nullable=False,
    )
    min_value: Mapped[Decimal | None] = mapped_column(
        Numeric(14, 2),
        nullable=True,
        comment="Tier window lower bound (inclusive)",
    )
    max_value: Mapped[Decimal | None] = mapped_column(
        Numeric(14, 2),
        nullable=True,
        comment="Tier window upper bound (exclusive)",
    )
    tier: Mapped[int | None] = mapped_column(
        nullable=True,
    )
    account_filter: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Case-insensitive substring of the client account name",
    )
    kicker_threshold: Mapped[Decimal | None] = mapped_column(
        Numeric(14, 2),
        nullable=True,
        comment="Cumulative period NFI that activates a KICKER",
    )
    is_active: Mapped[bool] = mapped_column(
        default=True,
        nullable=False,
    )
    notes: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    # Relationships
    plan: Mapped["CommissionPlan"] = relationship(
        back_populates="components",
    )

    __table_args__ = (
        CheckConstraint(
            "type IN ('PLACEMENT_PERM', 'PLACEMENT_CONTRACT', 'TIMESHEET', 'OVERRIDE', 'KICKER', 'BONUS_FLAT')",
            name="valid_component_type",
        ),
        CheckConstraint(
            "kicker_threshold IS NULL OR kicker_threshold >= 0",
            name="non_negative_kicker_threshold",
        ),
        Index("ix_plan_components_plan_id", "plan_id"),
    )

    def __repr__(self) -> str:
        return f"<PlanComponent {self.id} ({self.name} {self.type} tier={self.tier})>"


class UserPlanAssignment(TimestampMixin, AuditMixin, Base):
    """
    Binds an employee to a plan for ``[start_date, end_date)``.

    ``end_date`` of None means open-ended. An employee may hold several
    concurrent assignments.
    """

    __tablename__ = "user_plan_assignments"

    id: Mapped[UUID] = mapped_column(
        primary_key=True,
        default=uuid4,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
    )
    plan_id: Mapped[UUID] = mapped_column(
        ForeignKey("commission_plans.id", ondelete="CASCADE"),
        nullable=False,
    )
    start_date: Mapped[date] = mapped_column(
        nullable=False,
    )
    end_date: Mapped[date | None] = mapped_column(
        nullable=True,
    )

    # Relationships
    employee: Mapped["Employee"] = relationship(
        back_populates="plan_assignments",
    )
    plan: Mapped["CommissionPlan"] = relationship(
        back_populates="assignments",
        lazy="selectin",
    )
    components: Mapped[list["PlanComponent"]] = relationship(
        secondary=assignment_components,
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint(
            "end_date IS NULL OR end_date > start_date",
            name="valid_assignment_range",
        ),
        Index("ix_user_plan_assignments_employee", "employee_id", "start_date"),
    )

    def __repr__(self) -> str:
        return f"<UserPlanAssignment {self.id} (employee={self.employee_id} plan={self.plan_id})>"

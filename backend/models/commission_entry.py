"""
CommissionEntry Model

One payout line, either calculated by the engine or entered by hand.

Status lifecycle:
PENDING -> APPROVED -> PAID
PENDING and APPROVED entries can be HELD; HELD releases back to PENDING.

Only PENDING entries that are neither manual nor clawbacks are ever
replaced by recalculation.
APPROVED and PAID entries are permanent; reversing one means adding a
clawback entry that links back to it.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from backend.models.commission_plan import PlanComponent
    from backend.models.employee import Employee


class EntryStatus(str, Enum):
    """Commission entry status (state machine)."""

    PENDING = "PENDING"  # Calculated or entered, awaiting approval
    APPROVED = "APPROVED"  # Approved for payout
    PAID = "PAID"  # Paid out; terminal
    HELD = "HELD"  # Parked by an admin, with a reason


# Statuses recalculation must leave untouched
PRESERVED_STATUSES = (EntryStatus.APPROVED, EntryStatus.PAID, EntryStatus.HELD)


class CommissionEntry(TimestampMixin, Base):
    """A calculated or manually entered commission line."""

    __tablename__ = "commission_entries"

    id: Mapped[UUID] = mapped_column(
        primary_key=True,
        default=uuid4,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
    )
    plan_component_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("plan_components.id", ondelete="SET NULL"),
        nullable=True,
        comment="Originating component; null for manual entries",
    )

    # Source record (tagged by source_kind)
    source_kind: Mapped[str | None] = mapped_column(
        String(10),
        nullable=True,
        comment="PLACEMENT|TIMESHEET; null for manual entries without a source",
    )
    source_placement_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("placements.id", ondelete="SET NULL"),
        nullable=True,
    )
    source_timesheet_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("timesheets.id", ondelete="SET NULL"),
        nullable=True,
    )

    period: Mapped[str] = mapped_column(
        String(7),
        nullable=False,
        comment="Calendar month the entry posts to (YYYY-MM)",
    )
    gross_value: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
    )
    commission_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
    )
    rate: Mapped[Decimal] = mapped_column(
        Numeric(12, 6),
        default=Decimal("0"),
        nullable=False,
    )

    # Clawbacks
    is_clawback: Mapped[bool] = mapped_column(
        default=False,
        nullable=False,
    )
    clawback_of_entry_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("commission_entries.id", ondelete="SET NULL"),
        nullable=True,
        comment="Entry this one reverses",
    )

    # Workflow
    status: Mapped[str] = mapped_column(
        String(10),
        default=EntryStatus.PENDING.value,
        nullable=False,
    )
    hold_reason: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    payout_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    is_manual_override: Mapped[bool] = mapped_column(
        default=False,
        nullable=False,
    )
    note: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    backdated_from_period: Mapped[str | None] = mapped_column(
        String(7),
        nullable=True,
        comment="Set when calculated for a period other than the current one",
    )
    created_by: Mapped[UUID | None] = mapped_column(
        nullable=True,
        comment="Actor for manual entries and clawbacks",
    )

    # Relationships
    employee: Mapped["Employee"] = relationship()
    plan_component: Mapped["PlanComponent | None"] = relationship()
    clawback_of_entry: Mapped["CommissionEntry | None"] = relationship(
        remote_side=[id],
        foreign_keys=[clawback_of_entry_id],
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'PAID', 'HELD')",
            name="valid_entry_status",
        ),
        CheckConstraint(
            "source_kind IN ('PLACEMENT', 'TIMESHEET')",
            name="valid_source_kind",
        ),
        Index("ix_commission_entries_employee_period", "employee_id", "period", "status"),
        Index("ix_commission_entries_period_status", "period", "status"),
    )

    def __repr__(self) -> str:
        return f"<CommissionEntry {self.id} ({self.period} {self.commission_amount} {self.status})>"

    @property
    def source_id(self) -> UUID | None:
        return self.source_placement_id or self.source_timesheet_id

    @property
    def is_replaceable(self) -> bool:
        """Whether recalculation may delete this entry."""
        return (
            self.status == EntryStatus.PENDING.value
            and not self.is_manual_override
            and self.clawback_of_entry_id is None
        )

    @property
    def entry_key(self) -> tuple:
        return (self.plan_component_id, self.source_kind, self.source_id, self.is_clawback)

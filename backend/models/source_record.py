"""
Source Record Models

Placements and timesheets synced from the CRM, plus the client accounts
they bill. The engine reads these; it never writes them.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.models.base import Base, TimestampMixin


class Account(TimestampMixin, Base):
    """A client account; its name is what component account filters match."""

    __tablename__ = "accounts"

    id: Mapped[UUID] = mapped_column(
        primary_key=True,
        default=uuid4,
    )
    external_id: Mapped[str | None] = mapped_column(
        String(64),
        unique=True,
        nullable=True,
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )


class Placement(TimestampMixin, Base):
    """
    A perm or contract placement.

    Eligible for commission once ``paid_to_company`` is set; it settles on
    ``invoiced_date``. A negative ``nfi_value`` reverses an earlier placement.
    """

    __tablename__ = "placements"

    id: Mapped[UUID] = mapped_column(
        primary_key=True,
        default=uuid4,
    )
    external_id: Mapped[str | None] = mapped_column(
        String(64),
        unique=True,
        nullable=True,
        comment="CRM record id",
    )
    name: Mapped[str] = mapped_column(
        String(255),
        default="",
        nullable=False,
    )
    account_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("accounts.id", ondelete="SET NULL"),
        nullable=True,
    )
    owner_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("employees.id", ondelete="SET NULL"),
        nullable=True,
    )
    placement_type: Mapped[str | None] = mapped_column(
        String(10),
        nullable=True,
        comment="PERM|CONTRACT",
    )
    nfi_value: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        default=Decimal("0"),
        nullable=False,
    )
    invoiced_date: Mapped[date | None] = mapped_column(
        nullable=True,
    )
    paid_to_company: Mapped[bool] = mapped_column(
        default=False,
        nullable=False,
    )
    is_clawback: Mapped[bool] = mapped_column(
        default=False,
        nullable=False,
    )
    commission_paid: Mapped[bool] = mapped_column(
        default=False,
        nullable=False,
    )

    account: Mapped["Account | None"] = relationship(lazy="selectin")

    __table_args__ = (
        CheckConstraint(
            "placement_type IS NULL OR placement_type IN ('PERM', 'CONTRACT')",
            name="valid_placement_type",
        ),
        Index("ix_placements_paid_invoiced", "paid_to_company", "invoiced_date"),
    )


class Timesheet(TimestampMixin, Base):
    """A weekly contractor timesheet; settles on ``week_ending``."""

    __tablename__ = "timesheets"

    id: Mapped[UUID] = mapped_column(
        primary_key=True,
        default=uuid4,
    )
    external_id: Mapped[str | None] = mapped_column(
        String(64),
        unique=True,
        nullable=True,
    )
    name: Mapped[str] = mapped_column(
        String(255),
        default="",
        nullable=False,
    )
    account_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("accounts.id", ondelete="SET NULL"),
        nullable=True,
    )
    owner_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("employees.id", ondelete="SET NULL"),
        nullable=True,
    )
    nfi_value: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        default=Decimal("0"),
        nullable=False,
    )
    gross_value: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        default=Decimal("0"),
        nullable=False,
        comment="Billed amount",
    )
    week_ending: Mapped[date | None] = mapped_column(
        nullable=True,
    )
    paid_to_company: Mapped[bool] = mapped_column(
        default=False,
        nullable=False,
    )
    is_clawback: Mapped[bool] = mapped_column(
        default=False,
        nullable=False,
    )
    commission_paid: Mapped[bool] = mapped_column(
        default=False,
        nullable=False,
    )

    account: Mapped["Account | None"] = relationship(lazy="selectin")

    __table_args__ = (
        Index("ix_timesheets_paid_week_ending", "paid_to_company", "week_ending"),
    )

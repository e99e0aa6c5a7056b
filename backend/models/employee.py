"""
Employee Model

Commission earners and the manager/report graph used for overrides.
Rows are written by the HR sync; the engine only reads them.
"""

from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.models.base import Base, JSONType, TimestampMixin

if TYPE_CHECKING:
    from backend.models.commission_plan import UserPlanAssignment


class Employee(TimestampMixin, Base):
    """A commission-earning employee."""

    __tablename__ = "employees"

    id: Mapped[UUID] = mapped_column(
        primary_key=True,
        default=uuid4,
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    email: Mapped[str | None] = mapped_column(
        String(255),
        unique=True,
        nullable=True,
    )
    manager_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("employees.id", ondelete="SET NULL"),
        nullable=True,
        comment="Line manager; the manager earns overrides on this employee's records",
    )
    is_active: Mapped[bool] = mapped_column(
        default=True,
        nullable=False,
    )
    external_ids: Mapped[dict] = mapped_column(
        JSONType,
        default=dict,
        nullable=False,
        comment="IDs in external systems: {'crm': '005...', 'hr': '1234'}",
    )

    # Relationships
    manager: Mapped["Employee | None"] = relationship(
        remote_side=[id],
        back_populates="direct_reports",
    )
    direct_reports: Mapped[list["Employee"]] = relationship(
        back_populates="manager",
    )
    plan_assignments: Mapped[list["UserPlanAssignment"]] = relationship(
        back_populates="employee",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_employees_manager_id", "manager_id"),
        Index("ix_employees_active", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<Employee {self.id} ({self.name})>"

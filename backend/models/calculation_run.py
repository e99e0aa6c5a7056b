"""
CalculationRun Model

One period-wide commission calculation batch.
Tracks progress and the employees whose calculation failed.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backend.models.base import Base, JSONType, TimestampMixin


class RunStatus(str, Enum):
    """
    Calculation run status.

    State transitions:
    running -> completed
            -> completed_with_errors (some employees failed, the rest committed)
            -> failed (the batch itself could not proceed)
    """

    RUNNING = "running"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"


class CalculationRun(TimestampMixin, Base):
    """
    Batch calculation for every employee with an assignment in a period.

    Each employee's entries are committed on their own, so a run that is
    abandoned midway leaves the finished employees' results in place.
    """

    __tablename__ = "calculation_runs"

    id: Mapped[UUID] = mapped_column(
        primary_key=True,
        default=uuid4,
    )
    period: Mapped[str] = mapped_column(
        String(7),
        nullable=False,
        comment="Calendar month calculated (YYYY-MM)",
    )
    status: Mapped[str] = mapped_column(
        String(30),
        default=RunStatus.RUNNING.value,
        nullable=False,
    )
    triggered_by: Mapped[UUID | None] = mapped_column(
        nullable=True,
        comment="Actor that started the run; null for scheduled runs",
    )
    error_message: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    # Progress tracking
    total_employees: Mapped[int] = mapped_column(
        default=0,
    )
    processed_employees: Mapped[int] = mapped_column(
        default=0,
    )
    failed_employees: Mapped[int] = mapped_column(
        default=0,
    )
    total_entries: Mapped[int] = mapped_column(
        default=0,
    )
    failures: Mapped[list] = mapped_column(
        JSONType,
        default=list,
        nullable=False,
        comment="[{'employee_id': ..., 'error': ...}] for employees that failed",
    )

    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('running', 'completed', 'completed_with_errors', 'failed')",
            name="valid_run_status",
        ),
        Index("ix_calculation_runs_period", "period"),
    )

    def __repr__(self) -> str:
        return f"<CalculationRun {self.id} ({self.period}, {self.status})>"

    @property
    def progress_percentage(self) -> float:
        """Calculate progress percentage."""
        if self.total_employees == 0:
            return 0.0
        return (self.processed_employees / self.total_employees) * 100

    @property
    def is_complete(self) -> bool:
        return self.status != RunStatus.RUNNING.value

"""
Commission Repository

Storage capabilities the commission service needs, behind an abstract
interface so the engine can run against PostgreSQL in production and an
in-memory fake in unit tests.

The SQLAlchemy implementation reads everything fresh on each call; nothing
is cached between calculations.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from datetime import date, datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import delete, or_, select, text, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.models.calculation_run import CalculationRun, RunStatus
from backend.models.commission_entry import CommissionEntry, EntryStatus
from backend.models.commission_plan import PlanComponent, UserPlanAssignment
from backend.models.employee import Employee
from backend.models.source_record import Placement, Timesheet
from engines.schemas.commission_engine import AssignmentRule, ComponentRule, ComponentType, SourceRecord
from engines.services.source_adapter import normalize_records

logger = logging.getLogger(__name__)


def without_preserved(
    entries: Sequence[CommissionEntry],
    existing: Iterable[CommissionEntry],
) -> list[CommissionEntry]:
    """
    Drop new entries whose line is already held by a preserved entry.

    A preserved entry (approved, paid, held, manual or a clawback) keeps
    its line; recalculation must not add a second PENDING copy of it.
    """
    preserved_keys = {e.entry_key for e in existing if not e.is_replaceable}
    return [e for e in entries if e.entry_key not in preserved_keys]


class CommissionRepository(ABC):
    """Abstract storage interface for commission calculation."""

    @abstractmethod
    async def get_employee(self, employee_id: UUID) -> Employee | None:
        """Fetch an employee, or None if the id is unknown."""

    @abstractmethod
    async def find_assignments(
        self, employee_id: UUID, start: date, end: date
    ) -> list[AssignmentRule]:
        """Assignments overlapping ``[start, end)`` with their active components."""

    @abstractmethod
    async def find_direct_report_ids(self, employee_id: UUID) -> list[UUID]:
        """Ids of employees whose manager is ``employee_id``."""

    @abstractmethod
    async def find_source_records(self, start: date, end: date) -> list[SourceRecord]:
        """Paid placements and timesheets settled in ``[start, end)``."""

    @abstractmethod
    async def find_employees_with_assignments(self) -> list[UUID]:
        """Active employees holding at least one plan assignment."""

    @abstractmethod
    async def replace_pending_entries(
        self,
        employee_id: UUID,
        period: str,
        entries: Sequence[CommissionEntry],
    ) -> list[CommissionEntry]:
        """
        Atomically swap replaceable entries for ``entries``.

        Deletes PENDING, non-manual, non-clawback entries of the
        employee/period and inserts ``entries`` minus any line a preserved
        entry already holds. Either both steps happen or neither does.
        Returns the inserted entries.
        """

    @abstractmethod
    async def get_entry(self, entry_id: UUID) -> CommissionEntry | None:
        """Fetch one entry, or None."""

    @abstractmethod
    async def find_entries(
        self,
        employee_id: UUID | None = None,
        period: str | None = None,
        statuses: Sequence[EntryStatus] | None = None,
        entry_ids: Sequence[UUID] | None = None,
    ) -> list[CommissionEntry]:
        """Entries matching every filter given."""

    @abstractmethod
    async def create_entry(self, entry: CommissionEntry) -> CommissionEntry:
        """Insert and commit one entry."""

    @abstractmethod
    async def update_entries(self, entries: Sequence[CommissionEntry]) -> None:
        """Commit in-place changes to existing entries."""

    async def update_entry(self, entry: CommissionEntry) -> CommissionEntry:
        await self.update_entries([entry])
        return entry

    @abstractmethod
    async def start_run(self, period: str, triggered_by: UUID | None, total: int) -> UUID:
        """Record a new running CalculationRun; returns its id."""

    @abstractmethod
    async def update_run(self, run_id: UUID, **values: Any) -> None:
        """Update a CalculationRun's columns."""

    @abstractmethod
    async def rollback(self) -> None:
        """Discard uncommitted work after a failure."""


def to_component_rule(component: PlanComponent) -> ComponentRule | None:
    """Engine view of a component, or None if its type is unknown."""
    try:
        component_type = ComponentType(component.type)
    except ValueError:
        logger.warning(f"Component {component.id} has unknown type {component.type!r}; skipped")
        return None
    return ComponentRule(
        id=component.id,
        name=component.name,
        type=component_type,
        rate=component.rate,
        is_percentage=component.is_percentage,
        min_value=component.min_value,
        max_value=component.max_value,
        tier=component.tier,
        account_filter=component.account_filter or None,
        kicker_threshold=component.kicker_threshold,
        is_active=component.is_active,
    )


def to_assignment_rule(assignment: UserPlanAssignment) -> AssignmentRule | None:
    """Engine view of an assignment's active components, or None without a plan."""
    if assignment.plan is None:
        logger.warning(f"Assignment {assignment.id} has no plan; skipped")
        return None
    rules = []
    for component in assignment.components:
        if not component.is_active:
            continue
        rule = to_component_rule(component)
        if rule is not None:
            rules.append(rule)
    return AssignmentRule(
        id=assignment.id,
        employee_id=assignment.employee_id,
        plan_id=assignment.plan_id,
        plan_name=assignment.plan.name,
        start_date=assignment.start_date,
        end_date=assignment.end_date,
        components=rules,
    )


class SqlAlchemyCommissionRepository(CommissionRepository):
    """Commission storage on an async SQLAlchemy session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_employee(self, employee_id: UUID) -> Employee | None:
        result = await self.db.execute(
            select(Employee).where(Employee.id == employee_id)
        )
        return result.scalar_one_or_none()

    async def find_assignments(
        self, employee_id: UUID, start: date, end: date
    ) -> list[AssignmentRule]:
        result = await self.db.execute(
            select(UserPlanAssignment)
            .where(
                UserPlanAssignment.employee_id == employee_id,
                UserPlanAssignment.start_date < end,
                or_(
                    UserPlanAssignment.end_date.is_(None),
                    UserPlanAssignment.end_date > start,
                ),
            )
            .order_by(UserPlanAssignment.start_date, UserPlanAssignment.id)
        )
        rules = []
        for assignment in result.scalars().all():
            rule = to_assignment_rule(assignment)
            if rule is not None:
                rules.append(rule)
        return rules

    async def find_direct_report_ids(self, employee_id: UUID) -> list[UUID]:
        result = await self.db.execute(
            select(Employee.id).where(Employee.manager_id == employee_id)
        )
        return list(result.scalars().all())

    async def find_source_records(self, start: date, end: date) -> list[SourceRecord]:
        placements = await self.db.execute(
            select(Placement)
            .where(
                Placement.paid_to_company.is_(True),
                Placement.invoiced_date >= start,
                Placement.invoiced_date < end,
            )
            .order_by(Placement.invoiced_date, Placement.id)
        )
        timesheets = await self.db.execute(
            select(Timesheet)
            .where(
                Timesheet.paid_to_company.is_(True),
                Timesheet.week_ending >= start,
                Timesheet.week_ending < end,
            )
            .order_by(Timesheet.week_ending, Timesheet.id)
        )
        return normalize_records(placements.scalars().all(), timesheets.scalars().all())

    async def find_employees_with_assignments(self) -> list[UUID]:
        result = await self.db.execute(
            select(Employee.id)
            .join(UserPlanAssignment, UserPlanAssignment.employee_id == Employee.id)
            .where(Employee.is_active.is_(True))
            .distinct()
            .order_by(Employee.id)
        )
        return list(result.scalars().all())

    async def _lock_employee_period(self, employee_id: UUID, period: str) -> None:
        """Serialize concurrent persists of one employee/period on PostgreSQL."""
        if self.db.get_bind().dialect.name != "postgresql":
            return
        await self.db.execute(
            text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
            {"key": f"commission:{employee_id}:{period}"},
        )

    async def replace_pending_entries(
        self,
        employee_id: UUID,
        period: str,
        entries: Sequence[CommissionEntry],
    ) -> list[CommissionEntry]:
        try:
            await self._lock_employee_period(employee_id, period)

            existing = await self.find_entries(employee_id=employee_id, period=period)
            to_insert = without_preserved(entries, existing)

            result = await self.db.execute(
                delete(CommissionEntry).where(
                    CommissionEntry.employee_id == employee_id,
                    CommissionEntry.period == period,
                    CommissionEntry.status == EntryStatus.PENDING.value,
                    CommissionEntry.is_manual_override.is_(False),
                    CommissionEntry.clawback_of_entry_id.is_(None),
                )
            )
            self.db.add_all(to_insert)
            await self.db.flush()
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            f"Replaced {result.rowcount} pending entries with {len(to_insert)} "
            f"for employee {employee_id} in {period}"
        )
        return to_insert

    async def get_entry(self, entry_id: UUID) -> CommissionEntry | None:
        result = await self.db.execute(
            select(CommissionEntry).where(CommissionEntry.id == entry_id)
        )
        return result.scalar_one_or_none()

    async def find_entries(
        self,
        employee_id: UUID | None = None,
        period: str | None = None,
        statuses: Sequence[EntryStatus] | None = None,
        entry_ids: Sequence[UUID] | None = None,
    ) -> list[CommissionEntry]:
        stmt = select(CommissionEntry)
        if employee_id is not None:
            stmt = stmt.where(CommissionEntry.employee_id == employee_id)
        if period is not None:
            stmt = stmt.where(CommissionEntry.period == period)
        if statuses:
            stmt = stmt.where(CommissionEntry.status.in_([s.value for s in statuses]))
        if entry_ids is not None:
            stmt = stmt.where(CommissionEntry.id.in_(list(entry_ids)))
        result = await self.db.execute(
            stmt.order_by(CommissionEntry.period, CommissionEntry.employee_id, CommissionEntry.id)
        )
        return list(result.scalars().all())

    async def create_entry(self, entry: CommissionEntry) -> CommissionEntry:
        self.db.add(entry)
        await self.db.flush()
        await self.db.commit()
        return entry

    async def update_entries(self, entries: Sequence[CommissionEntry]) -> None:
        self.db.add_all(entries)
        await self.db.commit()

    async def start_run(self, period: str, triggered_by: UUID | None, total: int) -> UUID:
        run_id = uuid4()
        self.db.add(
            CalculationRun(
                id=run_id,
                period=period,
                status=RunStatus.RUNNING.value,
                triggered_by=triggered_by,
                total_employees=total,
                processed_employees=0,
                failed_employees=0,
                total_entries=0,
                failures=[],
                started_at=datetime.now(timezone.utc),
            )
        )
        await self.db.commit()
        return run_id

    async def update_run(self, run_id: UUID, **values: Any) -> None:
        await self.db.execute(
            update(CalculationRun).where(CalculationRun.id == run_id).values(**values)
        )
        await self.db.commit()

    async def rollback(self) -> None:
        await self.db.rollback()

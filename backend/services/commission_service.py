"""
Commission Service

Orchestrates the pure commission engine against the repository:
single-employee calculation and persistence, period-wide batches,
clawbacks, manual entries and the approval workflow.
"""

import logging
from collections.abc import Sequence
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy.exc import OperationalError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from backend.config import Settings, get_settings
from backend.models.calculation_run import RunStatus
from backend.models.commission_entry import CommissionEntry, EntryStatus
from backend.schemas.calculation import BatchFailure, BatchResult, EmployeeRunResult
from backend.services.commission_repository import CommissionRepository
from engines.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from engines.schemas.commission_engine import CalculatedEntry, SourceKind
from engines.services.commission_calculator import calculate_commission_entries
from engines.services.fiscal_calendar import date_range_of, parse_period, period_of

logger = logging.getLogger(__name__)

# action -> (allowed current statuses, resulting status)
TRANSITIONS: dict[str, tuple[set[EntryStatus], EntryStatus]] = {
    "approve": ({EntryStatus.PENDING}, EntryStatus.APPROVED),
    "pay": ({EntryStatus.APPROVED}, EntryStatus.PAID),
    "hold": ({EntryStatus.PENDING, EntryStatus.APPROVED}, EntryStatus.HELD),
    "release": ({EntryStatus.HELD}, EntryStatus.PENDING),
}

# Update the run row every N employees
PROGRESS_INTERVAL = 10

DEFAULT_HOLD_REASON = "Held by admin"


def to_entry_row(entry: CalculatedEntry) -> CommissionEntry:
    """New PENDING row for a calculated entry."""
    return CommissionEntry(
        id=uuid4(),
        employee_id=entry.employee_id,
        plan_component_id=entry.plan_component_id,
        source_kind=entry.source_kind.value,
        source_placement_id=entry.source_placement_id,
        source_timesheet_id=entry.source_timesheet_id,
        period=entry.period,
        gross_value=entry.gross_value,
        commission_amount=entry.commission_amount,
        rate=entry.rate,
        is_clawback=entry.is_clawback,
        clawback_of_entry_id=None,
        status=EntryStatus.PENDING.value,
        is_manual_override=False,
        backdated_from_period=entry.backdated_from_period,
    )


class CommissionService:
    """
    Commission calculation and entry workflow.

    Usage:
        service = CommissionService(SqlAlchemyCommissionRepository(session))
        entries = await service.calculate(employee_id, "2026-05")
    """

    def __init__(self, repository: CommissionRepository, settings: Settings | None = None):
        self.repository = repository
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Calculation
    # ------------------------------------------------------------------

    async def calculate(
        self,
        employee_id: UUID,
        period: str,
        dry_run: bool = False,
        current_period: str | None = None,
    ) -> list[CalculatedEntry]:
        """
        Calculate one employee's entries for one period.

        Persists them (replacing replaceable entries) unless ``dry_run``;
        the computed entries are returned either way.
        """
        parse_period(period)
        if current_period is not None:
            parse_period(current_period)

        entries, _ = await self._calculate(employee_id, period, dry_run, current_period)
        return entries

    async def _calculate(
        self,
        employee_id: UUID,
        period: str,
        dry_run: bool,
        current_period: str | None,
    ) -> tuple[list[CalculatedEntry], list[CommissionEntry]]:
        """Computed entries and the rows actually written for them."""
        employee = await self.repository.get_employee(employee_id)
        if employee is None:
            raise NotFoundError("Employee", employee_id)

        start, end = date_range_of(period)
        assignments = await self.repository.find_assignments(employee_id, start, end)
        if not assignments:
            logger.info(f"Employee {employee_id} has no assignments in {period}")
            return [], []

        report_ids = await self.repository.find_direct_report_ids(employee_id)
        records = await self.repository.find_source_records(start, end)

        entries = calculate_commission_entries(
            employee_id,
            period,
            assignments,
            report_ids,
            records,
            current_period=current_period,
        )

        if dry_run:
            return entries, []
        return entries, await self.persist(employee_id, period, entries)

    async def persist(
        self,
        employee_id: UUID,
        period: str,
        entries: Sequence[CalculatedEntry],
    ) -> list[CommissionEntry]:
        """
        Replace the employee/period's replaceable entries with ``entries``.

        Transient database errors are retried; each attempt is one
        transaction, so a failed attempt leaves the old entries in place.
        """
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.settings.persist_retry_attempts),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
            retry=retry_if_exception_type(OperationalError),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(
                        f"Retrying persist for employee {employee_id} in {period} "
                        f"(attempt {attempt.retry_state.attempt_number})"
                    )
                rows = [to_entry_row(e) for e in entries]
                inserted = await self.repository.replace_pending_entries(employee_id, period, rows)
        return inserted

    async def calculate_all(
        self,
        period: str,
        actor_id: UUID | None = None,
        current_period: str | None = None,
    ) -> BatchResult:
        """
        Calculate every active employee holding an assignment.

        One employee's failure is recorded and the batch carries on;
        each employee's entries are committed independently.
        An employee's ``entry_count`` is the rows written, so lines already
        held by approved, paid or held entries are not counted.
        """
        parse_period(period)
        if current_period is not None:
            parse_period(current_period)
        employee_ids = await self.repository.find_employees_with_assignments()
        run_id = await self.repository.start_run(period, actor_id, len(employee_ids))
        logger.info(f"Calculation run {run_id} started for {len(employee_ids)} employees in {period}")

        result = BatchResult(run_id=run_id, period=period)

        try:
            for index, employee_id in enumerate(employee_ids, start=1):
                try:
                    _, inserted = await self._calculate(employee_id, period, False, current_period)
                    result.results.append(
                        EmployeeRunResult(employee_id=employee_id, entry_count=len(inserted))
                    )
                except Exception as e:
                    logger.exception(f"Calculation failed for employee {employee_id} in {period}")
                    await self.repository.rollback()
                    result.failures.append(BatchFailure(employee_id=employee_id, error=str(e)))

                if index % PROGRESS_INTERVAL == 0:
                    await self.repository.update_run(
                        run_id,
                        processed_employees=index,
                        failed_employees=len(result.failures),
                    )
        except Exception as e:
            logger.exception(f"Calculation run {run_id} aborted")
            await self.repository.rollback()
            await self.repository.update_run(
                run_id,
                status=RunStatus.FAILED.value,
                error_message=str(e),
                completed_at=datetime.now(timezone.utc),
            )
            raise

        status = RunStatus.COMPLETED_WITH_ERRORS if result.failures else RunStatus.COMPLETED
        await self.repository.update_run(
            run_id,
            status=status.value,
            processed_employees=len(employee_ids),
            failed_employees=len(result.failures),
            total_entries=result.total_entries,
            failures=[f.model_dump(mode="json") for f in result.failures],
            completed_at=datetime.now(timezone.utc),
        )
        logger.info(
            f"Calculation run {run_id} finished: {len(result.results)} succeeded, "
            f"{len(result.failures)} failed, {result.total_entries} entries"
        )
        return result

    # ------------------------------------------------------------------
    # Clawbacks and manual entries
    # ------------------------------------------------------------------

    async def create_clawback(
        self,
        entry_id: UUID,
        actor_id: UUID | None,
        note: str | None = None,
        current_period: str | None = None,
    ) -> CommissionEntry:
        """Reverse an entry with an exact negative copy in the current period."""
        original = await self.get_entry(entry_id)
        if current_period is not None:
            parse_period(current_period)

        clawback = CommissionEntry(
            id=uuid4(),
            employee_id=original.employee_id,
            plan_component_id=original.plan_component_id,
            source_kind=original.source_kind,
            source_placement_id=original.source_placement_id,
            source_timesheet_id=original.source_timesheet_id,
            period=current_period or period_of(date.today()),
            gross_value=-original.gross_value,
            commission_amount=-original.commission_amount,
            rate=original.rate,
            is_clawback=True,
            clawback_of_entry_id=original.id,
            status=EntryStatus.PENDING.value,
            is_manual_override=False,
            note=note or f"Clawback of {original.id}",
            created_by=actor_id,
        )
        await self.repository.create_entry(clawback)
        logger.info(f"Clawback {clawback.id} created for entry {original.id} by {actor_id}")
        return clawback

    async def create_manual_entry(
        self,
        employee_id: UUID,
        period: str,
        commission_amount: Decimal,
        actor_id: UUID | None = None,
        gross_value: Decimal = Decimal("0"),
        rate: Decimal = Decimal("0"),
        plan_component_id: UUID | None = None,
        source_kind: SourceKind | None = None,
        source_id: UUID | None = None,
        note: str | None = None,
    ) -> CommissionEntry:
        """Enter a commission line by hand; recalculation never replaces it."""
        parse_period(period)
        if source_id is not None and source_kind is None:
            raise ValidationError("source_kind is required with source_id")
        if await self.repository.get_employee(employee_id) is None:
            raise NotFoundError("Employee", employee_id)

        entry = CommissionEntry(
            id=uuid4(),
            employee_id=employee_id,
            plan_component_id=plan_component_id,
            source_kind=source_kind.value if source_kind else None,
            source_placement_id=source_id if source_kind == SourceKind.PLACEMENT else None,
            source_timesheet_id=source_id if source_kind == SourceKind.TIMESHEET else None,
            period=period,
            gross_value=gross_value,
            commission_amount=commission_amount,
            rate=rate,
            is_clawback=False,
            status=EntryStatus.PENDING.value,
            is_manual_override=True,
            note=note,
            created_by=actor_id,
        )
        await self.repository.create_entry(entry)
        logger.info(f"Manual entry {entry.id} created for employee {employee_id} in {period}")
        return entry

    # ------------------------------------------------------------------
    # Entry workflow
    # ------------------------------------------------------------------

    async def get_entry(self, entry_id: UUID) -> CommissionEntry:
        entry = await self.repository.get_entry(entry_id)
        if entry is None:
            raise NotFoundError("Commission entry", entry_id)
        return entry

    async def list_entries(
        self,
        employee_id: UUID | None = None,
        period: str | None = None,
        status: EntryStatus | None = None,
    ) -> list[CommissionEntry]:
        if period is not None:
            parse_period(period)
        return await self.repository.find_entries(
            employee_id=employee_id,
            period=period,
            statuses=[status] if status else None,
        )

    def _apply(self, entry: CommissionEntry, action: str, reason: str | None = None) -> None:
        allowed, target = TRANSITIONS[action]
        if EntryStatus(entry.status) not in allowed:
            raise InvalidTransitionError(entry.id, entry.status, action)

        entry.status = target.value
        if target == EntryStatus.PAID:
            entry.payout_date = datetime.now(timezone.utc)
        elif target == EntryStatus.HELD:
            entry.hold_reason = reason
        elif action == "release":
            entry.hold_reason = None

    async def transition(
        self,
        entry_id: UUID,
        action: str,
        reason: str | None = None,
    ) -> CommissionEntry:
        """Move one entry through the approval workflow."""
        if action not in TRANSITIONS:
            raise ValidationError(f"Unknown action: {action}")
        if action == "hold":
            reason = reason or DEFAULT_HOLD_REASON

        entry = await self.get_entry(entry_id)
        previous = entry.status
        self._apply(entry, action, reason)
        await self.repository.update_entry(entry)
        logger.info(f"Entry {entry_id}: {previous} -> {entry.status}")
        return entry

    async def approve(self, entry_id: UUID) -> CommissionEntry:
        return await self.transition(entry_id, "approve")

    async def pay(self, entry_id: UUID) -> CommissionEntry:
        return await self.transition(entry_id, "pay")

    async def hold(self, entry_id: UUID, reason: str | None = None) -> CommissionEntry:
        return await self.transition(entry_id, "hold", reason)

    async def release(self, entry_id: UUID) -> CommissionEntry:
        return await self.transition(entry_id, "release")

    async def _bulk(
        self,
        action: str,
        entry_ids: Sequence[UUID] | None,
        period: str | None,
    ) -> int:
        if not entry_ids and period is None:
            raise ValidationError("Provide entry ids or a period")
        if period is not None:
            parse_period(period)

        allowed, _ = TRANSITIONS[action]
        entries = await self.repository.find_entries(
            period=period,
            statuses=sorted(allowed, key=lambda s: s.value),
            entry_ids=entry_ids or None,
        )
        for entry in entries:
            self._apply(entry, action)
        if entries:
            await self.repository.update_entries(entries)
        logger.info(f"Bulk {action}: {len(entries)} entries")
        return len(entries)

    async def approve_entries(
        self,
        entry_ids: Sequence[UUID] | None = None,
        period: str | None = None,
    ) -> int:
        """Approve every PENDING entry among the ids or in the period."""
        return await self._bulk("approve", entry_ids, period)

    async def pay_entries(
        self,
        entry_ids: Sequence[UUID] | None = None,
        period: str | None = None,
    ) -> int:
        """Pay every APPROVED entry among the ids or in the period."""
        return await self._bulk("pay", entry_ids, period)

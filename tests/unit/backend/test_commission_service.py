"""
Commission Service Unit Tests

Calculation, persistence, clawbacks, batches and the entry workflow,
run against the in-memory repository.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from backend.config import Settings
from backend.models.commission_entry import EntryStatus
from backend.services.commission_service import CommissionService
from engines.exceptions import InvalidTransitionError, NotFoundError, ParseError, ValidationError
from engines.schemas.commission_engine import SourceKind
from tests.factories import (
    make_assignment_rule,
    make_component_rule,
    make_employee,
    make_entry,
    make_ladder,
    make_placement_record,
)
from tests.fakes import InMemoryCommissionRepository

PERIOD = "2026-05"


@pytest.fixture
def service(repository: InMemoryCommissionRepository) -> CommissionService:
    return CommissionService(repository, settings=Settings(persist_retry_attempts=3))


@pytest.fixture
def recruiter(repository: InMemoryCommissionRepository):
    """An employee on a two-tier perm plan with one 25,000 placement in May."""
    employee = repository.add_employee(make_employee())
    ladder = make_ladder()
    repository.assignments.append(make_assignment_rule(employee.id, ladder))
    repository.records.append(make_placement_record(employee.id, "25000"))
    return employee


# ---------------------------------------------------------------------------
# calculate / persist
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_calculate_persists_pending_entry(service, repository, recruiter) -> None:
    entries = await service.calculate(recruiter.id, PERIOD, current_period=PERIOD)

    assert len(entries) == 1
    stored = repository.entries_for(recruiter.id, PERIOD)
    assert len(stored) == 1
    assert stored[0].status == EntryStatus.PENDING.value
    assert stored[0].commission_amount == Decimal("3750.00")
    assert stored[0].rate == Decimal("0.15")
    assert stored[0].source_kind == SourceKind.PLACEMENT.value


@pytest.mark.asyncio
async def test_dry_run_writes_nothing(service, repository, recruiter) -> None:
    entries = await service.calculate(recruiter.id, PERIOD, dry_run=True, current_period=PERIOD)

    assert len(entries) == 1
    assert repository.entries == {}
    assert repository.replace_calls == 0


@pytest.mark.asyncio
async def test_recalculation_is_idempotent(service, repository, recruiter) -> None:
    await service.calculate(recruiter.id, PERIOD, current_period=PERIOD)
    first = sorted((e.entry_key, e.commission_amount) for e in repository.entries_for(recruiter.id, PERIOD))

    await service.calculate(recruiter.id, PERIOD, current_period=PERIOD)
    second = sorted((e.entry_key, e.commission_amount) for e in repository.entries_for(recruiter.id, PERIOD))

    assert first == second


@pytest.mark.asyncio
async def test_recalculation_preserves_approved_entry(service, repository, recruiter) -> None:
    await service.calculate(recruiter.id, PERIOD, current_period=PERIOD)
    (entry,) = repository.entries_for(recruiter.id, PERIOD)
    await service.approve(entry.id)

    await service.calculate(recruiter.id, PERIOD, current_period=PERIOD)

    stored = repository.entries_for(recruiter.id, PERIOD)
    assert [e.id for e in stored] == [entry.id]
    assert stored[0].status == EntryStatus.APPROVED.value


@pytest.mark.asyncio
async def test_paid_entry_survives_source_change(service, repository, recruiter) -> None:
    await service.calculate(recruiter.id, PERIOD, current_period=PERIOD)
    (entry,) = repository.entries_for(recruiter.id, PERIOD)
    await service.approve(entry.id)
    await service.pay(entry.id)

    original = repository.records[0]
    repository.records[0] = make_placement_record(recruiter.id, "40000", id=original.id)
    recalculated = await service.calculate(recruiter.id, PERIOD, current_period=PERIOD)

    assert recalculated[0].commission_amount == Decimal("6000.00")
    stored = repository.entries_for(recruiter.id, PERIOD)
    assert [e.id for e in stored] == [entry.id]
    assert stored[0].status == EntryStatus.PAID.value
    assert stored[0].commission_amount == Decimal("3750.00")
    assert stored[0].gross_value == Decimal("25000")


@pytest.mark.asyncio
async def test_recalculation_keeps_manual_and_held_entries(service, repository, recruiter) -> None:
    held = make_entry(recruiter.id, status=EntryStatus.HELD.value, hold_reason="Disputed")
    manual = make_entry(recruiter.id, plan_component_id=None, is_manual_override=True)
    stale = make_entry(recruiter.id)
    repository.add_entries(held, manual, stale)

    await service.calculate(recruiter.id, PERIOD, current_period=PERIOD)

    ids = {e.id for e in repository.entries_for(recruiter.id, PERIOD)}
    assert held.id in ids
    assert manual.id in ids
    assert stale.id not in ids
    assert len(ids) == 3


@pytest.mark.asyncio
async def test_unknown_employee_raises(service) -> None:
    with pytest.raises(NotFoundError):
        await service.calculate(uuid4(), PERIOD)


@pytest.mark.asyncio
async def test_malformed_period_raises_before_lookup(service, repository, recruiter) -> None:
    with pytest.raises(ParseError):
        await service.calculate(recruiter.id, "2026-13")
    assert repository.replace_calls == 0


@pytest.mark.asyncio
async def test_no_assignments_returns_empty(service, repository) -> None:
    employee = repository.add_employee(make_employee())
    assert await service.calculate(employee.id, PERIOD) == []
    assert repository.replace_calls == 0


@pytest.mark.asyncio
async def test_assignment_outside_period_ignored(service, repository) -> None:
    employee = repository.add_employee(make_employee())
    repository.assignments.append(
        make_assignment_rule(employee.id, [make_component_rule()], start_date=date(2026, 6, 1))
    )
    repository.records.append(make_placement_record(employee.id, "1000"))
    assert await service.calculate(employee.id, PERIOD) == []


@pytest.mark.asyncio
async def test_persist_retries_transient_errors(service, repository, recruiter) -> None:
    repository.transient_failures = 2

    await service.calculate(recruiter.id, PERIOD, current_period=PERIOD)

    assert repository.replace_calls == 3
    assert len(repository.entries_for(recruiter.id, PERIOD)) == 1


@pytest.mark.asyncio
async def test_persist_gives_up_and_keeps_old_entries(service, repository, recruiter) -> None:
    old = make_entry(recruiter.id)
    repository.add_entries(old)
    repository.transient_failures = 5

    with pytest.raises(OperationalError):
        await service.calculate(recruiter.id, PERIOD, current_period=PERIOD)

    assert repository.replace_calls == 3
    assert [e.id for e in repository.entries_for(recruiter.id, PERIOD)] == [old.id]


# ---------------------------------------------------------------------------
# Clawbacks and manual entries
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_clawback_negates_original(service, repository) -> None:
    employee_id = uuid4()
    actor_id = uuid4()
    original = make_entry(
        employee_id,
        status=EntryStatus.PAID.value,
        gross_value=Decimal("1200.00"),
        commission_amount=Decimal("180.00"),
    )
    repository.add_entries(original)

    clawback = await service.create_clawback(original.id, actor_id, current_period="2026-07")

    assert clawback.gross_value == Decimal("-1200.00")
    assert clawback.commission_amount == Decimal("-180.00")
    assert clawback.is_clawback is True
    assert clawback.clawback_of_entry_id == original.id
    assert clawback.status == EntryStatus.PENDING.value
    assert clawback.period == "2026-07"
    assert clawback.note == f"Clawback of {original.id}"
    assert clawback.created_by == actor_id
    assert clawback.source_placement_id == original.source_placement_id
    assert repository.entries[original.id].status == EntryStatus.PAID.value


@pytest.mark.asyncio
async def test_clawback_uses_given_note(service, repository) -> None:
    original = make_entry(uuid4())
    repository.add_entries(original)
    clawback = await service.create_clawback(original.id, None, note="Candidate left in week 2")
    assert clawback.note == "Candidate left in week 2"


@pytest.mark.asyncio
async def test_clawback_of_unknown_entry_raises(service) -> None:
    with pytest.raises(NotFoundError):
        await service.create_clawback(uuid4(), uuid4())


@pytest.mark.asyncio
async def test_clawback_survives_recalculation(service, repository, recruiter) -> None:
    await service.calculate(recruiter.id, PERIOD, current_period=PERIOD)
    (entry,) = repository.entries_for(recruiter.id, PERIOD)
    await service.approve(entry.id)
    await service.pay(entry.id)

    clawback = await service.create_clawback(entry.id, None, current_period=PERIOD)
    await service.calculate(recruiter.id, PERIOD, current_period=PERIOD)

    ids = {e.id for e in repository.entries_for(recruiter.id, PERIOD)}
    assert ids == {entry.id, clawback.id}


@pytest.mark.asyncio
async def test_manual_entry(service, repository, recruiter) -> None:
    source_id = uuid4()
    entry = await service.create_manual_entry(
        recruiter.id,
        PERIOD,
        Decimal("500.00"),
        source_kind=SourceKind.PLACEMENT,
        source_id=source_id,
        note="Split deal",
    )

    assert entry.is_manual_override is True
    assert entry.status == EntryStatus.PENDING.value
    assert entry.source_placement_id == source_id
    assert entry.source_timesheet_id is None
    assert repository.entries[entry.id] is entry


@pytest.mark.asyncio
async def test_manual_entry_source_needs_kind(service, recruiter) -> None:
    with pytest.raises(ValidationError):
        await service.create_manual_entry(recruiter.id, PERIOD, Decimal("1"), source_id=uuid4())


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_full_lifecycle(service, repository) -> None:
    entry = make_entry(uuid4())
    repository.add_entries(entry)

    await service.approve(entry.id)
    await service.hold(entry.id, "Awaiting client payment")
    assert entry.status == EntryStatus.HELD.value
    assert entry.hold_reason == "Awaiting client payment"

    await service.release(entry.id)
    assert entry.status == EntryStatus.PENDING.value
    assert entry.hold_reason is None

    await service.approve(entry.id)
    paid = await service.pay(entry.id)
    assert paid.status == EntryStatus.PAID.value
    assert paid.payout_date is not None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status,action",
    [
        (EntryStatus.PENDING, "pay"),
        (EntryStatus.APPROVED, "approve"),
        (EntryStatus.PAID, "hold"),
        (EntryStatus.PAID, "approve"),
        (EntryStatus.PENDING, "release"),
    ],
)
async def test_invalid_transitions(service, repository, status, action) -> None:
    entry = make_entry(uuid4(), status=status.value)
    repository.add_entries(entry)

    with pytest.raises(InvalidTransitionError):
        await service.transition(entry.id, action, reason="x")
    assert entry.status == status.value


@pytest.mark.asyncio
async def test_hold_without_reason_uses_default(service, repository) -> None:
    entry = make_entry(uuid4())
    repository.add_entries(entry)

    await service.transition(entry.id, "hold")

    assert entry.status == EntryStatus.HELD.value
    assert entry.hold_reason == "Held by admin"


@pytest.mark.asyncio
async def test_unknown_action_rejected(service, repository) -> None:
    entry = make_entry(uuid4())
    repository.add_entries(entry)
    with pytest.raises(ValidationError):
        await service.transition(entry.id, "reopen")


@pytest.mark.asyncio
async def test_bulk_approve_by_period_only_touches_pending(service, repository) -> None:
    employee_id = uuid4()
    pending = [make_entry(employee_id) for _ in range(3)]
    paid = make_entry(employee_id, status=EntryStatus.PAID.value)
    other_period = make_entry(employee_id, period="2026-06")
    repository.add_entries(*pending, paid, other_period)

    updated = await service.approve_entries(period=PERIOD)

    assert updated == 3
    assert all(e.status == EntryStatus.APPROVED.value for e in pending)
    assert paid.status == EntryStatus.PAID.value
    assert other_period.status == EntryStatus.PENDING.value


@pytest.mark.asyncio
async def test_bulk_pay_by_ids(service, repository) -> None:
    employee_id = uuid4()
    approved = make_entry(employee_id, status=EntryStatus.APPROVED.value)
    pending = make_entry(employee_id)
    repository.add_entries(approved, pending)

    updated = await service.pay_entries(entry_ids=[approved.id, pending.id])

    assert updated == 1
    assert approved.status == EntryStatus.PAID.value
    assert pending.status == EntryStatus.PENDING.value


@pytest.mark.asyncio
async def test_bulk_needs_selection(service) -> None:
    with pytest.raises(ValidationError):
        await service.approve_entries()


# ---------------------------------------------------------------------------
# calculate_all
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_calculate_all_collects_failures(service, repository, recruiter) -> None:
    broken = repository.add_employee(make_employee(name="Broken Storage"))
    repository.assignments.append(make_assignment_rule(broken.id, [make_component_rule()]))
    repository.records.append(make_placement_record(broken.id, "1000"))
    repository.failing_employee_ids.add(broken.id)

    inactive = repository.add_employee(make_employee(is_active=False))
    repository.assignments.append(make_assignment_rule(inactive.id, [make_component_rule()]))

    actor_id = uuid4()
    result = await service.calculate_all(PERIOD, actor_id, current_period=PERIOD)

    assert [r.employee_id for r in result.results] == [recruiter.id]
    assert result.results[0].entry_count == 1
    assert [f.employee_id for f in result.failures] == [broken.id]
    assert "storage rejected" in result.failures[0].error
    assert repository.rollbacks == 1

    run = repository.runs[result.run_id]
    assert run["status"] == "completed_with_errors"
    assert run["triggered_by"] == actor_id
    assert run["total_employees"] == 2
    assert run["failed_employees"] == 1
    assert run["total_entries"] == 1
    assert run["failures"] == [{"employee_id": str(broken.id), "error": result.failures[0].error}]


@pytest.mark.asyncio
async def test_calculate_all_counts_written_rows(service, repository, recruiter) -> None:
    await service.calculate(recruiter.id, PERIOD, current_period=PERIOD)
    (entry,) = repository.entries_for(recruiter.id, PERIOD)
    await service.approve(entry.id)

    result = await service.calculate_all(PERIOD, current_period=PERIOD)

    assert result.results[0].entry_count == 0
    assert result.total_entries == 0
    assert repository.runs[result.run_id]["total_entries"] == 0
    assert [e.id for e in repository.entries_for(recruiter.id, PERIOD)] == [entry.id]


@pytest.mark.asyncio
async def test_calculate_all_clean_run(service, repository, recruiter) -> None:
    result = await service.calculate_all(PERIOD, current_period=PERIOD)

    assert result.failures == []
    assert result.total_entries == 1
    assert repository.runs[result.run_id]["status"] == "completed"

"""
Test Factories

Helper functions for creating engine inputs and model instances in tests.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from backend.models.commission_entry import CommissionEntry, EntryStatus
from backend.models.commission_plan import CommissionPlan, PlanComponent, UserPlanAssignment
from backend.models.employee import Employee
from backend.models.source_record import Account, Placement, Timesheet
from engines.schemas.commission_engine import (
    AssignmentRule,
    ComponentRule,
    ComponentType,
    PlacementType,
    SourceKind,
    SourceRecord,
)


# ---------------------------------------------------------------------------
# Engine inputs
# ---------------------------------------------------------------------------


def make_component_rule(**overrides) -> ComponentRule:
    """Create a ComponentRule with sensible defaults (10% perm placements)."""
    defaults = {
        "id": uuid4(),
        "name": "Perm Fee",
        "type": ComponentType.PLACEMENT_PERM,
        "rate": Decimal("0.10"),
        "is_percentage": True,
    }
    defaults.update(overrides)
    return ComponentRule(**defaults)


def make_ladder(name: str = "Perm Ladder", component_type: ComponentType = ComponentType.PLACEMENT_PERM) -> list[ComponentRule]:
    """Two-tier ladder: 5% below 10,000 and 15% from 10,000 up."""
    return [
        make_component_rule(
            name=name,
            type=component_type,
            rate=Decimal("0.05"),
            min_value=Decimal("0"),
            max_value=Decimal("10000"),
            tier=1,
        ),
        make_component_rule(
            name=name,
            type=component_type,
            rate=Decimal("0.15"),
            min_value=Decimal("10000"),
            max_value=None,
            tier=2,
        ),
    ]


def make_assignment_rule(employee_id: UUID, components: list[ComponentRule], **overrides) -> AssignmentRule:
    defaults = {
        "id": uuid4(),
        "employee_id": employee_id,
        "plan_id": uuid4(),
        "plan_name": "FY26/27 Sales",
        "start_date": date(2026, 4, 1),
        "end_date": None,
        "components": components,
    }
    defaults.update(overrides)
    return AssignmentRule(**defaults)


def make_placement_record(owner_id: UUID | None, nfi: str | Decimal, **overrides) -> SourceRecord:
    """Create a paid PERM placement SourceRecord."""
    nfi_value = Decimal(str(nfi))
    defaults = {
        "kind": SourceKind.PLACEMENT,
        "id": uuid4(),
        "name": "Senior Engineer",
        "account_name": "Acme Holdings",
        "owner_id": owner_id,
        "nfi_value": nfi_value,
        "gross_value": nfi_value,
        "settlement_date": date(2026, 5, 15),
        "placement_type": PlacementType.PERM,
    }
    defaults.update(overrides)
    return SourceRecord(**defaults)


def make_timesheet_record(owner_id: UUID | None, nfi: str | Decimal, gross: str | Decimal = "2000", **overrides) -> SourceRecord:
    defaults = {
        "kind": SourceKind.TIMESHEET,
        "id": uuid4(),
        "name": "Week 20",
        "account_name": "Acme Holdings",
        "owner_id": owner_id,
        "nfi_value": Decimal(str(nfi)),
        "gross_value": Decimal(str(gross)),
        "settlement_date": date(2026, 5, 22),
    }
    defaults.update(overrides)
    return SourceRecord(**defaults)


# ---------------------------------------------------------------------------
# ORM models
# ---------------------------------------------------------------------------


def make_employee(**overrides) -> Employee:
    """Create an Employee instance with sensible defaults."""
    defaults = {
        "id": uuid4(),
        "name": "Alex Recruiter",
        "email": f"recruiter-{uuid4().hex[:8]}@test.com",
        "manager_id": None,
        "is_active": True,
        "external_ids": {},
    }
    defaults.update(overrides)
    return Employee(**defaults)


def make_entry(employee_id: UUID, **overrides) -> CommissionEntry:
    """Create a PENDING calculated CommissionEntry with every column set."""
    defaults = {
        "id": uuid4(),
        "employee_id": employee_id,
        "plan_component_id": uuid4(),
        "source_kind": SourceKind.PLACEMENT.value,
        "source_placement_id": uuid4(),
        "source_timesheet_id": None,
        "period": "2026-05",
        "gross_value": Decimal("1200.00"),
        "commission_amount": Decimal("120.00"),
        "rate": Decimal("0.10"),
        "is_clawback": False,
        "clawback_of_entry_id": None,
        "status": EntryStatus.PENDING.value,
        "hold_reason": None,
        "payout_date": None,
        "is_manual_override": False,
        "note": None,
        "backdated_from_period": None,
        "created_by": None,
    }
    defaults.update(overrides)
    return CommissionEntry(**defaults)


def make_plan(components: list[PlanComponent] | None = None, **overrides) -> CommissionPlan:
    plan_id = overrides.pop("id", uuid4())
    defaults = {
        "id": plan_id,
        "name": "FY26/27 Sales",
        "description": None,
        "fiscal_year": "FY26/27",
        "currency": "GBP",
        "version": 1,
        "is_active": True,
    }
    defaults.update(overrides)
    plan = CommissionPlan(**defaults)
    for component in components or []:
        component.plan_id = plan_id
    plan.components = components or []
    return plan


def make_component(**overrides) -> PlanComponent:
    defaults = {
        "id": uuid4(),
        "name": "Perm Fee",
        "type": ComponentType.PLACEMENT_PERM.value,
        "rate": Decimal("0.10"),
        "is_percentage": True,
        "min_value": None,
        "max_value": None,
        "tier": None,
        "account_filter": None,
        "kicker_threshold": None,
        "is_active": True,
        "notes": None,
    }
    defaults.update(overrides)
    return PlanComponent(**defaults)


def make_assignment(employee_id: UUID, plan: CommissionPlan, **overrides) -> UserPlanAssignment:
    defaults = {
        "id": uuid4(),
        "employee_id": employee_id,
        "plan_id": plan.id,
        "plan": plan,
        "start_date": date(2026, 4, 1),
        "end_date": None,
        "components": list(plan.components),
    }
    defaults.update(overrides)
    return UserPlanAssignment(**defaults)


def make_account(**overrides) -> Account:
    defaults = {"id": uuid4(), "external_id": None, "name": "Acme Holdings"}
    defaults.update(overrides)
    return Account(**defaults)


def make_placement(owner_id: UUID | None, nfi: str | Decimal, **overrides) -> Placement:
    defaults = {
        "id": uuid4(),
        "external_id": None,
        "name": "Senior Engineer",
        "account_id": None,
        "owner_id": owner_id,
        "placement_type": PlacementType.PERM.value,
        "nfi_value": Decimal(str(nfi)),
        "invoiced_date": date(2026, 5, 15),
        "paid_to_company": True,
        "is_clawback": False,
        "commission_paid": False,
    }
    defaults.update(overrides)
    return Placement(**defaults)


def make_timesheet(owner_id: UUID | None, nfi: str | Decimal, **overrides) -> Timesheet:
    defaults = {
        "id": uuid4(),
        "external_id": None,
        "name": "Week 20",
        "account_id": None,
        "owner_id": owner_id,
        "nfi_value": Decimal(str(nfi)),
        "gross_value": Decimal("2000.00"),
        "week_ending": date(2026, 5, 22),
        "paid_to_company": True,
        "is_clawback": False,
        "commission_paid": False,
    }
    defaults.update(overrides)
    return Timesheet(**defaults)

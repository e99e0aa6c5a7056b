"""
Plan Catalog Service

Creates and maintains commission plans, their components and employee
assignments. Every check runs before anything is written, so a rejected
request leaves the catalog unchanged.
"""

import logging
from collections.abc import Iterable, Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import get_settings
from backend.models.commission_plan import CommissionPlan, PlanComponent, UserPlanAssignment
from backend.models.employee import Employee
from backend.schemas.plan import ComponentCreate, ComponentUpdate
from engines.exceptions import NotFoundError, ValidationError
from engines.schemas.commission_engine import ComponentRule, ComponentType
from engines.services.commission_calculator import group_components, ladder_problem
from engines.services.fiscal_calendar import fiscal_year_start

logger = logging.getLogger(__name__)

COMPONENT_FIELDS = (
    "name",
    "type",
    "rate",
    "is_percentage",
    "min_value",
    "max_value",
    "tier",
    "account_filter",
    "kicker_threshold",
    "notes",
)

# Columns an update may leave out but never clear
NOT_NULL_FIELDS = ("name", "is_percentage")


def validate_component(
    component_type: str,
    min_value: Decimal | None = None,
    max_value: Decimal | None = None,
    kicker_threshold: Decimal | None = None,
) -> ComponentType:
    """Check one component's own fields; returns the parsed type."""
    try:
        parsed = ComponentType(component_type)
    except ValueError:
        raise ValidationError(f"Unknown component type: {component_type!r}") from None

    if kicker_threshold is not None and kicker_threshold < 0:
        raise ValidationError("kicker_threshold must not be negative")
    if parsed == ComponentType.KICKER and kicker_threshold is None:
        raise ValidationError("A KICKER component needs a kicker_threshold")
    if min_value is not None and max_value is not None and min_value >= max_value:
        raise ValidationError(f"min_value {min_value} must be below max_value {max_value}")
    return parsed


def _as_rule(component_id: UUID, values: dict) -> ComponentRule:
    return ComponentRule(
        id=component_id,
        name=values["name"],
        type=ComponentType(values["type"]),
        rate=values["rate"],
        is_percentage=values["is_percentage"],
        min_value=values["min_value"],
        max_value=values["max_value"],
        tier=values["tier"],
        kicker_threshold=values["kicker_threshold"],
    )


def _values(component: PlanComponent) -> dict:
    return {field: getattr(component, field) for field in COMPONENT_FIELDS}


def validate_ladders(components: Iterable[PlanComponent], replaced: dict[UUID, dict] | None = None) -> None:
    """
    Reject any (name, type) ladder among active components whose windows overlap.

    ``replaced`` maps a component id to the field values it is about to take.
    """
    replaced = replaced or {}
    rules = [
        _as_rule(c.id, replaced.get(c.id) or _values(c))
        for c in components
        if c.is_active
    ]
    for (name, type_), group in group_components(rules).items():
        if len(group) < 2:
            continue
        problem = ladder_problem(group)
        if problem:
            raise ValidationError(f"Invalid tier ladder '{name}' ({type_}): {problem}")


def _new_component(plan_id: UUID, data: ComponentCreate) -> PlanComponent:
    component_type = validate_component(
        data.type, data.min_value, data.max_value, data.kicker_threshold
    )
    return PlanComponent(
        id=uuid4(),
        plan_id=plan_id,
        name=data.name,
        type=component_type.value,
        rate=data.rate,
        is_percentage=data.is_percentage,
        min_value=data.min_value,
        max_value=data.max_value,
        tier=data.tier,
        account_filter=data.account_filter or None,
        kicker_threshold=data.kicker_threshold,
        is_active=True,
        notes=data.notes,
    )


class PlanCatalog:
    """Plan, component and assignment maintenance on an async session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_plan(self, plan_id: UUID) -> CommissionPlan:
        plan = await self.db.get(CommissionPlan, plan_id)
        if plan is None:
            raise NotFoundError("Plan", plan_id)
        return plan

    async def _get_component(self, plan_id: UUID, component_id: UUID) -> PlanComponent:
        component = await self.db.get(PlanComponent, component_id)
        if component is None or component.plan_id != plan_id:
            raise NotFoundError("Component", component_id)
        return component

    async def create_plan(
        self,
        name: str,
        fiscal_year: str,
        components: Sequence[ComponentCreate] = (),
        description: str | None = None,
        currency: str | None = None,
        actor_id: UUID | None = None,
    ) -> CommissionPlan:
        fiscal_year_start(fiscal_year)

        plan_id = uuid4()
        rows = [_new_component(plan_id, c) for c in components]
        validate_ladders(rows)

        plan = CommissionPlan(
            id=plan_id,
            name=name,
            description=description,
            fiscal_year=fiscal_year,
            currency=currency or get_settings().default_currency,
            version=1,
            is_active=True,
            components=rows,
            created_by=actor_id,
        )
        self.db.add(plan)
        await self.db.commit()
        logger.info(f"Plan {plan.id} '{name}' created for {fiscal_year} with {len(rows)} components")
        return plan

    async def add_component(self, plan_id: UUID, data: ComponentCreate) -> PlanComponent:
        plan = await self.get_plan(plan_id)
        component = _new_component(plan_id, data)
        validate_ladders([*plan.components, component])

        plan.components.append(component)
        await self.db.commit()
        logger.info(f"Component {component.id} '{component.name}' added to plan {plan_id}")
        return component

    async def update_component(
        self,
        plan_id: UUID,
        component_id: UUID,
        data: ComponentUpdate,
    ) -> PlanComponent:
        plan = await self.get_plan(plan_id)
        component = await self._get_component(plan_id, component_id)

        changes = data.model_dump(exclude_unset=True)
        for field in NOT_NULL_FIELDS:
            if field in changes and changes[field] is None:
                raise ValidationError(f"{field} cannot be null")
        merged = _values(component)
        merged.update(changes)
        validate_component(
            merged["type"], merged["min_value"], merged["max_value"], merged["kicker_threshold"]
        )

        validate_ladders(plan.components, replaced={component.id: merged})

        for field, value in changes.items():
            setattr(component, field, value)
        await self.db.commit()
        logger.info(f"Component {component_id} updated: {sorted(changes)}")
        return component

    async def deactivate_component(self, plan_id: UUID, component_id: UUID) -> PlanComponent:
        """Remove a component from future calculations; past entries keep pointing at it."""
        component = await self._get_component(plan_id, component_id)
        component.is_active = False
        await self.db.commit()
        logger.info(f"Component {component_id} deactivated")
        return component

    async def clone_plan(
        self,
        plan_id: UUID,
        new_name: str,
        new_fiscal_year: str,
        actor_id: UUID | None = None,
    ) -> CommissionPlan:
        """Copy a plan and its components; assignments are not copied."""
        fiscal_year_start(new_fiscal_year)
        original = await self.get_plan(plan_id)

        clone_id = uuid4()
        components = [
            PlanComponent(
                id=uuid4(),
                plan_id=clone_id,
                **_values(c),
                is_active=c.is_active,
            )
            for c in original.components
        ]
        clone = CommissionPlan(
            id=clone_id,
            name=new_name,
            description=original.description,
            fiscal_year=new_fiscal_year,
            currency=original.currency,
            version=original.version + 1 if new_name == original.name else 1,
            is_active=True,
            components=components,
            created_by=actor_id,
        )
        self.db.add(clone)
        await self.db.commit()
        logger.info(f"Plan {plan_id} cloned to {clone.id} '{new_name}' for {new_fiscal_year}")
        return clone

    async def assign_plan(
        self,
        plan_id: UUID,
        employee_id: UUID,
        start_date: date,
        end_date: date | None = None,
        component_ids: Sequence[UUID] | None = None,
        actor_id: UUID | None = None,
    ) -> UserPlanAssignment:
        """Assign a plan to an employee; defaults to every active component."""
        if end_date is not None and end_date <= start_date:
            raise ValidationError("end_date must be after start_date")

        if await self.db.get(Employee, employee_id) is None:
            raise NotFoundError("Employee", employee_id)
        plan = await self.get_plan(plan_id)

        active = {c.id: c for c in plan.components if c.is_active}
        if component_ids:
            unknown = [str(cid) for cid in component_ids if cid not in active]
            if unknown:
                raise ValidationError(
                    f"Components not active on plan {plan_id}: {', '.join(unknown)}"
                )
            components = [active[cid] for cid in dict.fromkeys(component_ids)]
        else:
            components = list(active.values())

        assignment = UserPlanAssignment(
            id=uuid4(),
            employee_id=employee_id,
            plan_id=plan_id,
            plan=plan,
            start_date=start_date,
            end_date=end_date,
            components=components,
            created_by=actor_id,
        )
        self.db.add(assignment)
        await self.db.commit()
        logger.info(
            f"Plan {plan_id} assigned to employee {employee_id} from {start_date} "
            f"with {len(components)} components"
        )
        return assignment

    async def remove_assignment(self, assignment_id: UUID) -> None:
        assignment = await self.db.get(UserPlanAssignment, assignment_id)
        if assignment is None:
            raise NotFoundError("Assignment", assignment_id)
        await self.db.delete(assignment)
        await self.db.commit()
        logger.info(f"Assignment {assignment_id} removed")

    async def list_assignments(self, employee_id: UUID) -> list[UserPlanAssignment]:
        result = await self.db.execute(
            select(UserPlanAssignment)
            .where(UserPlanAssignment.employee_id == employee_id)
            .order_by(UserPlanAssignment.start_date)
        )
        return list(result.scalars().all())

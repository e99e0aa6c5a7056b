"""
Plan API Routes

Endpoints for commission plans, their components and employee assignments.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.db.session import get_db
from backend.schemas.plan import (
    AssignmentCreate,
    AssignmentResponse,
    ComponentCreate,
    ComponentResponse,
    ComponentUpdate,
    PlanCloneRequest,
    PlanCreate,
    PlanResponse,
)
from backend.services.plan_catalog import PlanCatalog

router = APIRouter()


async def get_plan_catalog(db: AsyncSession = Depends(get_db)) -> PlanCatalog:
    return PlanCatalog(db)


@router.post(
    "",
    response_model=PlanResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create plan",
)
async def create_plan(
    request: PlanCreate,
    catalog: PlanCatalog = Depends(get_plan_catalog),
) -> PlanResponse:
    plan = await catalog.create_plan(
        request.name,
        request.fiscal_year,
        components=request.components,
        description=request.description,
        currency=request.currency,
        actor_id=request.actor_id,
    )
    return PlanResponse.model_validate(plan)


# Registered before "/{plan_id}" routes so "assignments" is never read as a plan id
@router.delete(
    "/assignments/{assignment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove assignment",
)
async def remove_assignment(
    assignment_id: UUID,
    catalog: PlanCatalog = Depends(get_plan_catalog),
) -> None:
    await catalog.remove_assignment(assignment_id)


@router.get(
    "/{plan_id}",
    response_model=PlanResponse,
    summary="Get plan",
)
async def get_plan(
    plan_id: UUID,
    catalog: PlanCatalog = Depends(get_plan_catalog),
) -> PlanResponse:
    return PlanResponse.model_validate(await catalog.get_plan(plan_id))


@router.post(
    "/{plan_id}/components",
    response_model=ComponentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add component",
)
async def add_component(
    plan_id: UUID,
    request: ComponentCreate,
    catalog: PlanCatalog = Depends(get_plan_catalog),
) -> ComponentResponse:
    return ComponentResponse.model_validate(await catalog.add_component(plan_id, request))


@router.put(
    "/{plan_id}/components/{component_id}",
    response_model=ComponentResponse,
    summary="Update component",
)
async def update_component(
    plan_id: UUID,
    component_id: UUID,
    request: ComponentUpdate,
    catalog: PlanCatalog = Depends(get_plan_catalog),
) -> ComponentResponse:
    component = await catalog.update_component(plan_id, component_id, request)
    return ComponentResponse.model_validate(component)


@router.delete(
    "/{plan_id}/components/{component_id}",
    response_model=ComponentResponse,
    summary="Deactivate component",
    description="Soft delete: the component stops applying to future calculations.",
)
async def deactivate_component(
    plan_id: UUID,
    component_id: UUID,
    catalog: PlanCatalog = Depends(get_plan_catalog),
) -> ComponentResponse:
    component = await catalog.deactivate_component(plan_id, component_id)
    return ComponentResponse.model_validate(component)


@router.post(
    "/{plan_id}/clone",
    response_model=PlanResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Clone plan",
    description="Copy a plan and its components under a new name and fiscal year.",
)
async def clone_plan(
    plan_id: UUID,
    request: PlanCloneRequest,
    catalog: PlanCatalog = Depends(get_plan_catalog),
) -> PlanResponse:
    clone = await catalog.clone_plan(plan_id, request.name, request.fiscal_year, request.actor_id)
    return PlanResponse.model_validate(clone)


@router.post(
    "/{plan_id}/assign",
    response_model=AssignmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Assign plan",
)
async def assign_plan(
    plan_id: UUID,
    request: AssignmentCreate,
    catalog: PlanCatalog = Depends(get_plan_catalog),
) -> AssignmentResponse:
    assignment = await catalog.assign_plan(
        plan_id,
        request.employee_id,
        request.start_date,
        end_date=request.end_date,
        component_ids=request.component_ids,
        actor_id=request.actor_id,
    )
    return AssignmentResponse.model_validate(assignment)

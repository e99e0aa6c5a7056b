"""
Commission API Routes

Endpoints for calculating commissions and moving entries through
approval, payment, holds and clawbacks.
"""

from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.db.session import get_db
from backend.models.commission_entry import EntryStatus
from backend.schemas.calculation import (
    CalculatedEntryResponse,
    CalculationRequest,
    EmployeeCalculationResponse,
)
from backend.schemas.commission import (
    BulkActionResponse,
    BulkEntryAction,
    CommissionEntryResponse,
    EntryAction,
    ManualEntryCreate,
)
from backend.services.commission_repository import SqlAlchemyCommissionRepository
from backend.services.commission_service import CommissionService
from engines.services.fiscal_calendar import PERIOD_PATTERN

router = APIRouter()


async def get_commission_service(db: AsyncSession = Depends(get_db)) -> CommissionService:
    return CommissionService(SqlAlchemyCommissionRepository(db))


@router.post(
    "/calculate",
    summary="Calculate commissions",
    description=(
        "Calculate one employee synchronously (optionally as a dry run), "
        "or queue a period-wide batch when no employee is given."
    ),
)
async def calculate_commissions(
    request: CalculationRequest,
    service: CommissionService = Depends(get_commission_service),
) -> dict:
    if request.employee_id is None:
        from workers.tasks.calculation_tasks import calculate_period

        task = calculate_period.delay(
            request.period,
            str(request.actor_id) if request.actor_id else None,
            request.current_period,
        )
        return {"status": "queued", "period": request.period, "task_id": task.id}

    entries = await service.calculate(
        request.employee_id,
        request.period,
        dry_run=request.dry_run,
        current_period=request.current_period,
    )
    response = EmployeeCalculationResponse(
        employee_id=request.employee_id,
        period=request.period,
        dry_run=request.dry_run,
        entries=[CalculatedEntryResponse.from_entry(e) for e in entries],
        total_commission=sum((e.commission_amount for e in entries), Decimal("0")),
    )
    return response.model_dump(mode="json")


@router.get(
    "",
    response_model=list[CommissionEntryResponse],
    summary="List commission entries",
)
async def list_entries(
    employee_id: UUID | None = Query(default=None),
    period: str | None = Query(default=None, pattern=PERIOD_PATTERN.pattern),
    entry_status: EntryStatus | None = Query(default=None, alias="status"),
    service: CommissionService = Depends(get_commission_service),
) -> list[CommissionEntryResponse]:
    entries = await service.list_entries(employee_id=employee_id, period=period, status=entry_status)
    return [CommissionEntryResponse.model_validate(e) for e in entries]


@router.post(
    "",
    response_model=CommissionEntryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create manual entry",
)
async def create_manual_entry(
    request: ManualEntryCreate,
    service: CommissionService = Depends(get_commission_service),
) -> CommissionEntryResponse:
    entry = await service.create_manual_entry(
        request.employee_id,
        request.period,
        request.commission_amount,
        actor_id=request.actor_id,
        gross_value=request.gross_value,
        rate=request.rate,
        plan_component_id=request.plan_component_id,
        source_kind=request.source_kind,
        source_id=request.source_id,
        note=request.note,
    )
    return CommissionEntryResponse.model_validate(entry)


@router.post(
    "/approve",
    response_model=BulkActionResponse,
    summary="Bulk approve",
    description="Approve every PENDING entry among the given ids or in the given period.",
)
async def approve_entries(
    request: BulkEntryAction,
    service: CommissionService = Depends(get_commission_service),
) -> BulkActionResponse:
    updated = await service.approve_entries(entry_ids=request.entry_ids, period=request.period)
    return BulkActionResponse(updated=updated)


@router.post(
    "/pay",
    response_model=BulkActionResponse,
    summary="Bulk pay",
    description="Mark every APPROVED entry among the given ids or in the given period as paid.",
)
async def pay_entries(
    request: BulkEntryAction,
    service: CommissionService = Depends(get_commission_service),
) -> BulkActionResponse:
    updated = await service.pay_entries(entry_ids=request.entry_ids, period=request.period)
    return BulkActionResponse(updated=updated)


@router.get(
    "/{entry_id}",
    response_model=CommissionEntryResponse,
    summary="Get commission entry",
)
async def get_entry(
    entry_id: UUID,
    service: CommissionService = Depends(get_commission_service),
) -> CommissionEntryResponse:
    return CommissionEntryResponse.model_validate(await service.get_entry(entry_id))


@router.patch(
    "/{entry_id}",
    response_model=CommissionEntryResponse,
    summary="Apply a workflow action",
    description="approve, pay, hold (optional reason), release, or clawback (creates a new entry).",
)
async def apply_action(
    entry_id: UUID,
    request: EntryAction,
    service: CommissionService = Depends(get_commission_service),
) -> CommissionEntryResponse:
    if request.action == "clawback":
        entry = await service.create_clawback(
            entry_id,
            request.actor_id,
            note=request.reason,
            current_period=request.current_period,
        )
    else:
        entry = await service.transition(entry_id, request.action, request.reason)
    return CommissionEntryResponse.model_validate(entry)

"""
Calculation Run API Routes

Read-only history of period-wide calculation batches.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.db.session import get_db
from backend.models.calculation_run import CalculationRun
from backend.schemas.calculation import CalculationRunResponse
from engines.services.fiscal_calendar import PERIOD_PATTERN

router = APIRouter()


@router.get(
    "/runs",
    response_model=list[CalculationRunResponse],
    summary="List calculation runs",
)
async def list_calculation_runs(
    period: str | None = Query(default=None, pattern=PERIOD_PATTERN.pattern),
    limit: int = Query(default=20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
) -> list[CalculationRunResponse]:
    query = select(CalculationRun)
    if period:
        query = query.where(CalculationRun.period == period)
    result = await db.execute(query.order_by(CalculationRun.started_at.desc()).limit(limit))
    return [CalculationRunResponse.model_validate(r) for r in result.scalars().all()]


@router.get(
    "/runs/{run_id}",
    response_model=CalculationRunResponse,
    summary="Get calculation run",
)
async def get_calculation_run(
    run_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> CalculationRunResponse:
    run = await db.get(CalculationRun, run_id)
    if not run:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Calculation run {run_id} not found",
        )
    return CalculationRunResponse.model_validate(run)

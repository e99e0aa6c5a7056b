"""
Calculation Tasks

Background commission calculation: single employees, whole periods,
and the nightly recalculation of the current period.
"""

import asyncio
import logging
from datetime import date
from uuid import UUID

from workers.celery_app import app

logger = logging.getLogger(__name__)


@app.task(bind=True, max_retries=2, default_retry_delay=120)
def calculate_period(
    self,
    period: str,
    actor_id: str | None = None,
    current_period: str | None = None,
):
    """
    Calculate every employee with an assignment for one period.

    Individual employee failures are recorded on the CalculationRun and do
    not fail the task; only a failure of the batch itself is retried.
    """
    logger.info(f"Starting commission calculation for {period}")
    try:
        return asyncio.run(
            _async_calculate_period(
                period,
                UUID(actor_id) if actor_id else None,
                current_period,
            )
        )
    except Exception as exc:
        logger.error(f"Commission calculation for {period} failed: {exc}")
        raise self.retry(exc=exc)


@app.task
def calculate_employee(
    employee_id: str,
    period: str,
    current_period: str | None = None,
):
    """Recalculate a single employee (e.g., after a late-paid placement)."""
    logger.info(f"Recalculating employee {employee_id} for {period}")
    return asyncio.run(_async_calculate_employee(UUID(employee_id), period, current_period))


@app.task
def recalculate_current_period():
    """Nightly refresh of the current month's PENDING entries."""
    from engines.services.fiscal_calendar import period_of

    period = period_of(date.today())
    logger.info(f"Nightly recalculation for {period}")
    return asyncio.run(_async_calculate_period(period, None, period))


async def _async_calculate_period(
    period: str,
    actor_id: UUID | None,
    current_period: str | None,
) -> dict:
    from backend.db.session import engine, get_async_session
    from backend.services.commission_repository import SqlAlchemyCommissionRepository
    from backend.services.commission_service import CommissionService

    # Each task runs on a fresh event loop; pooled connections cannot outlive it
    try:
        async with get_async_session() as db:
            service = CommissionService(SqlAlchemyCommissionRepository(db))
            result = await service.calculate_all(period, actor_id, current_period=current_period)
    finally:
        await engine.dispose()

    return {
        "run_id": str(result.run_id),
        "period": period,
        "succeeded": len(result.results),
        "failed": len(result.failures),
        "total_entries": result.total_entries,
    }


async def _async_calculate_employee(
    employee_id: UUID,
    period: str,
    current_period: str | None,
) -> dict:
    from backend.db.session import engine, get_async_session
    from backend.services.commission_repository import SqlAlchemyCommissionRepository
    from backend.services.commission_service import CommissionService

    try:
        async with get_async_session() as db:
            service = CommissionService(SqlAlchemyCommissionRepository(db))
            entries = await service.calculate(employee_id, period, current_period=current_period)
    finally:
        await engine.dispose()

    return {
        "employee_id": str(employee_id),
        "period": period,
        "entry_count": len(entries),
    }

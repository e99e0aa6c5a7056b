"""
Celery Application Configuration

Configures Celery with Redis broker and result backend.
Calculation work runs on its own queue.
"""

from celery import Celery
from celery.schedules import crontab

from backend.config import get_settings

settings = get_settings()

app = Celery(
    "commission_ledger",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["workers.tasks.calculation_tasks"],
)

app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # Timezone
    timezone="UTC",
    enable_utc=True,

    # Task behavior
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,

    # Result expiry
    result_expires=86400,  # 24 hours

    # Routing
    task_routes={
        "workers.tasks.calculation_tasks.*": {"queue": "calculations"},
    },
    task_default_queue="default",

    worker_concurrency=4,
)

# Beat schedule for periodic tasks
app.conf.beat_schedule = {}
if settings.nightly_recalculation_enabled:
    app.conf.beat_schedule["nightly-recalculation"] = {
        "task": "workers.tasks.calculation_tasks.recalculate_current_period",
        "schedule": crontab(hour=2, minute=0),
        "options": {"queue": "calculations"},
    }

# Initialize Sentry for error monitoring in workers
if settings.sentry_dsn:
    import sentry_sdk
    from sentry_sdk.integrations.celery import CeleryIntegration

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        release=f"commission-ledger-worker@{settings.app_version}",
        traces_sample_rate=0.1,
        integrations=[CeleryIntegration()],
    )

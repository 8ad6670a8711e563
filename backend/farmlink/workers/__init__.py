import asyncio

from celery import Celery
from celery.signals import setup_logging as celery_setup_logging

from farmlink.core.config import settings
from farmlink.core.logging_config import setup_logging

_loop = None


def worker_loop() -> asyncio.AbstractEventLoop:
    """Return the event loop shared by every task in this worker process.

    The async engine's pooled connections are bound to the loop that opened
    them, so tasks must not spin up a fresh loop per run.
    """
    global _loop
    if _loop is None or _loop.is_closed():
        _loop = asyncio.new_event_loop()
    return _loop


@celery_setup_logging.connect
def _configure_worker_logging(**kwargs) -> None:
    # same JSON format as the API
    setup_logging()


celery_app = Celery(
    "farmlink_worker",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    result_expires=3600,
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    beat_schedule={
        "reconcile-contracts": {
            "task": "reconcile_contracts",
            "schedule": float(settings.reconcile_interval_seconds),
            # drop runs queued longer than one interval
            "options": {"expires": settings.reconcile_interval_seconds},
        },
    },
)

# Import tasks so they are registered with the celery app
import farmlink.workers.reconcile  # noqa: F401, E402

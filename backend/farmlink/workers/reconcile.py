"""Celery task that repairs half-finished bid acceptances."""

import logging

from farmlink.core.deps import get_escrow_orchestrator
from farmlink.db.session import async_session_factory
from farmlink.services.reconcile import reconcile_contracts as run_reconcile
from farmlink.workers import celery_app, worker_loop

logger = logging.getLogger(__name__)


async def _run() -> dict[str, int]:
    async with async_session_factory() as db:
        try:
            return await run_reconcile(db, get_escrow_orchestrator())
        finally:
            await db.close()


@celery_app.task(name="reconcile_contracts", bind=True, max_retries=3, default_retry_delay=60)
def reconcile_contracts(self) -> dict[str, int]:
    """Periodic task: reject stray pending bids and open missing escrows on active contracts."""
    try:
        return worker_loop().run_until_complete(_run())
    except Exception as exc:
        logger.exception("reconcile_contracts failed")
        raise self.retry(exc=exc)

"""Fire-and-forget audit trail for money-moving operations."""

import json
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from farmlink.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


async def log_audit(
    db: AsyncSession,
    *,
    action: str,
    entity_type: str,
    entity_id: int | None = None,
    user_id: int | None = None,
    details: dict | None = None,
) -> None:
    """Write an audit row in the caller's transaction. Exceptions are caught and logged.

    The row is flushed inside a savepoint, so a failed write is rolled back
    on its own and the caller's pending work survives.
    """
    try:
        async with db.begin_nested():
            db.add(AuditLog(
                user_id=user_id,
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                details=json.dumps(details, default=str) if details else None,
            ))
            await db.flush()
    except Exception:
        logger.exception("Failed to write audit log: %s %s/%s", action, entity_type, entity_id)

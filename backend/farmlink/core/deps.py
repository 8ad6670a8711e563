import logging
from collections.abc import AsyncGenerator
from functools import lru_cache

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from farmlink.core.errors import InternalError
from farmlink.db.session import async_session_factory
from farmlink.services.escrow import EscrowOrchestrator

logger = logging.getLogger(__name__)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a request-scoped session; uncommitted work is rolled back on exit.

    Driver and ORM failures surface as ``InternalError`` so clients get the
    standard error body without database details.
    """
    async with async_session_factory() as session:
        try:
            yield session
        except SQLAlchemyError as exc:
            await session.rollback()
            logger.exception("Database error during request")
            raise InternalError("Database error") from exc
        except Exception:
            await session.rollback()
            raise


@lru_cache
def get_escrow_orchestrator() -> EscrowOrchestrator:
    """Process-wide orchestrator, built once with the configured commission rate."""
    return EscrowOrchestrator()

"""Dispatch of verified payment-processor events onto the escrow orchestrator."""

import logging
from typing import assert_never

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from farmlink.models.escrow import PaymentTransaction
from farmlink.services.escrow import EscrowOrchestrator
from farmlink.services.payments.gateway import GatewayEvent, GatewayEventType

logger = logging.getLogger(__name__)


async def _transaction_for_intent(
    db: AsyncSession, intent_id: str | None,
) -> PaymentTransaction | None:
    if not intent_id:
        return None
    result = await db.execute(
        select(PaymentTransaction)
        .where(PaymentTransaction.payment_gateway_id == intent_id)
        .order_by(PaymentTransaction.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def handle_gateway_event(
    db: AsyncSession,
    event: GatewayEvent,
    orchestrator: EscrowOrchestrator,
) -> bool:
    """Apply one event. Returns True if it changed state.

    Unknown transactions, duplicates and unrecognized event types are logged
    and acknowledged without effect.
    """
    kind = event.kind
    match kind:
        case GatewayEventType.PAYMENT_SUCCEEDED:
            tx = await _transaction_for_intent(db, event.intent_id)
            if tx is None:
                logger.warning("Payment %s succeeded for unknown transaction", event.intent_id)
                return False
            return await orchestrator.confirm_funding(db, tx.escrow_id, tx.payment_gateway_id)

        case GatewayEventType.PAYMENT_FAILED:
            tx = await _transaction_for_intent(db, event.intent_id)
            if tx is None:
                logger.warning("Payment %s failed for unknown transaction", event.intent_id)
                return False
            return await orchestrator.fail_funding(db, tx, event.failure_message)

        case GatewayEventType.UNRECOGNIZED:
            logger.info("Ignoring unhandled webhook event %s (%s)", event.id, event.type)
            return False

        case _:
            assert_never(kind)

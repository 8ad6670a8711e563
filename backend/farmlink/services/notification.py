"""Fire-and-forget notifications for contract, payment, message and shipment events.

Events are written in their own session after the triggering business
transaction has committed, then optionally pushed to the realtime broadcast
hook. Exceptions are caught and logged; notifications never break the main
flow.
"""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from decimal import Decimal

import httpx
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import retry, stop_after_attempt, wait_exponential

from farmlink.core.config import settings
from farmlink.db.session import async_session_factory
from farmlink.models.contract import Contract, ContractBid
from farmlink.models.conversation import Message
from farmlink.models.escrow import EscrowAccount
from farmlink.models.logistics import Shipment
from farmlink.models.notification import Notification

logger = logging.getLogger(__name__)

TYPE_CONTRACT = "contract"
TYPE_PAYMENT = "payment"
TYPE_MESSAGE = "message"
TYPE_SHIPMENT = "shipment"

_STATUS_MESSAGES = {
    "active": "Contract for {crop_type} has been activated",
    "completed": "Contract for {crop_type} has been completed",
    "cancelled": "Contract for {crop_type} has been cancelled",
}


@dataclass(frozen=True)
class NotificationEvent:
    user_id: int
    type: str
    title: str
    content: str
    related_id: int | None = None


def _money(amount: Decimal) -> str:
    return f"${amount:,.2f}"


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
    reraise=True,
)
async def _broadcast(events: list[NotificationEvent]) -> None:
    """Push events to the realtime fan-out hook with retry."""
    headers = {"Content-Type": "application/json"}
    if settings.realtime_api_key:
        headers["Authorization"] = f"Bearer {settings.realtime_api_key}"
    async with httpx.AsyncClient(timeout=10) as client:
        resp = await client.post(
            settings.realtime_broadcast_url,
            json={"event": "notification", "payload": [asdict(e) for e in events]},
            headers=headers,
        )
    resp.raise_for_status()


async def publish(*events: NotificationEvent) -> int:
    """Persist events and fan them out. Returns the number written (0 on failure)."""
    batch = [e for e in events if e.user_id is not None]
    if not batch:
        return 0

    try:
        async with async_session_factory() as session:
            session.add_all([Notification(**asdict(e)) for e in batch])
            await session.commit()
    except Exception:
        logger.exception("Failed to write %d notification(s)", len(batch))
        return 0

    if settings.realtime_broadcast_url:
        try:
            await _broadcast(batch)
        except Exception:
            logger.exception("Realtime broadcast failed for %d notification(s)", len(batch))

    return len(batch)


# ---------------------------------------------------------------------------
# Event helpers
# ---------------------------------------------------------------------------


async def notify_contract_proposed(contract: Contract) -> None:
    if contract.buyer_id is None:
        return
    await publish(NotificationEvent(
        user_id=contract.buyer_id,
        type=TYPE_CONTRACT,
        title="New Contract Proposal",
        content=(
            f"You have received a new contract proposal for {contract.crop_type} "
            f"({contract.quantity.normalize():f} units)"
        ),
        related_id=contract.id,
    ))


async def notify_bid_placed(contract: Contract, bid: ContractBid) -> None:
    await publish(NotificationEvent(
        user_id=contract.farmer_id,
        type=TYPE_CONTRACT,
        title="New Bid Received",
        content=(
            f"You received a new bid of {_money(bid.bid_amount)} "
            f"for your {contract.crop_type} contract"
        ),
        related_id=contract.id,
    ))


async def notify_bid_resolved(contract: Contract, bid: ContractBid, accepted: bool) -> None:
    outcome = "accepted!" if accepted else "rejected."
    await publish(NotificationEvent(
        user_id=bid.bidder_id,
        type=TYPE_CONTRACT,
        title="Bid Accepted" if accepted else "Bid Rejected",
        content=(
            f"Your bid of {_money(bid.bid_amount)} for {contract.crop_type} "
            f"has been {outcome}"
        ),
        related_id=contract.id,
    ))


async def notify_contract_status_change(contract: Contract, actor_id: int) -> None:
    """Tell the counter-party of ``actor_id`` about the contract's new status."""
    template = _STATUS_MESSAGES.get(contract.status)
    if template is None:
        return
    other_party = contract.buyer_id if actor_id == contract.farmer_id else contract.farmer_id
    if other_party is None:
        return
    await publish(NotificationEvent(
        user_id=other_party,
        type=TYPE_CONTRACT,
        title="Contract Status Update",
        content=template.format(crop_type=contract.crop_type),
        related_id=contract.id,
    ))


async def notify_escrow_funded(escrow: EscrowAccount) -> None:
    await publish(
        NotificationEvent(
            user_id=escrow.farmer_id,
            type=TYPE_PAYMENT,
            title="Payment Received",
            content="The contract has been funded! You can now proceed with delivery.",
            related_id=escrow.contract_id,
        ),
        NotificationEvent(
            user_id=escrow.buyer_id,
            type=TYPE_PAYMENT,
            title="Payment Confirmed",
            content="Your payment has been confirmed and is held in escrow.",
            related_id=escrow.contract_id,
        ),
    )


async def notify_payment_failed(escrow: EscrowAccount) -> None:
    await publish(NotificationEvent(
        user_id=escrow.buyer_id,
        type=TYPE_PAYMENT,
        title="Payment Failed",
        content="Your payment failed. Please try again or contact support.",
        related_id=escrow.contract_id,
    ))


async def notify_payment_released(escrow: EscrowAccount) -> None:
    await publish(NotificationEvent(
        user_id=escrow.farmer_id,
        type=TYPE_PAYMENT,
        title="Payment Released",
        content=(
            f"{_money(escrow.farmer_amount)} has been released to you "
            f"(platform commission {_money(escrow.platform_commission)})."
        ),
        related_id=escrow.contract_id,
    ))


async def notify_new_message(message: Message, recipient_id: int, sender_name: str | None) -> None:
    await publish(NotificationEvent(
        user_id=recipient_id,
        type=TYPE_MESSAGE,
        title="New Message",
        content=f"You have a new message from {sender_name or 'a user'}",
        related_id=message.id,
    ))


async def notify_shipment_update(contract: Contract, shipment: Shipment, recipient_id: int | None) -> None:
    if recipient_id is None:
        return
    if shipment.status == "delivered":
        title = "Shipment Delivered"
        content = f"Your {contract.crop_type} shipment {shipment.tracking_number} has been delivered"
    elif shipment.status == "booked":
        title = "Shipment Booked"
        content = (
            f"A shipment for {contract.crop_type} has been booked "
            f"(tracking {shipment.tracking_number})"
        )
    else:
        title = "Shipment Update"
        content = f"Shipment {shipment.tracking_number} is now at {shipment.current_location}"
    await publish(NotificationEvent(
        user_id=recipient_id,
        type=TYPE_SHIPMENT,
        title=title,
        content=content,
        related_id=contract.id,
    ))


# ---------------------------------------------------------------------------
# Inbox queries
# ---------------------------------------------------------------------------


async def list_notifications(
    db: AsyncSession,
    user_id: int,
    unread_only: bool = False,
    limit: int = 50,
) -> tuple[list[Notification], int]:
    """Return the user's newest notifications and their total unread count."""
    query = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        query = query.where(Notification.read_at.is_(None))
    result = await db.execute(
        query.order_by(Notification.id.desc()).limit(limit)
    )
    unread = await db.scalar(
        select(func.count(Notification.id)).where(
            Notification.user_id == user_id,
            Notification.read_at.is_(None),
        )
    )
    return list(result.scalars().all()), unread or 0


async def mark_read(
    db: AsyncSession,
    user_id: int,
    notification_ids: list[int] | None = None,
) -> int:
    """Stamp read_at on the user's unread notifications (all when ids is None)."""
    stmt = (
        update(Notification)
        .where(Notification.user_id == user_id, Notification.read_at.is_(None))
        .values(read_at=datetime.now(timezone.utc))
    )
    if notification_ids is not None:
        if not notification_ids:
            return 0
        stmt = stmt.where(Notification.id.in_(notification_ids))
    result = await db.execute(stmt.execution_options(synchronize_session=False))
    await db.commit()
    return result.rowcount or 0

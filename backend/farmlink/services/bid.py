"""Bid negotiation: placing, listing and resolving buyer bids on pending contracts.

Accepting a bid is one database transaction: the bid flips to accepted, the
contract takes the bidder as buyer at the bid price and becomes active, every
sibling pending bid is rejected and the escrow account is opened. Readers see
either none or all of it. Only the bidder notification happens afterwards.
"""

import logging
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import assert_never

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from farmlink.api.schemas import BidCreate
from farmlink.core.errors import (
    DuplicateBidError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    SelfDealingError,
)
from farmlink.models.contract import Contract, ContractBid
from farmlink.models.profile import Profile
from farmlink.services.contract_state_machine import BidAction, BidStatus, ContractStatus
from farmlink.services.escrow import EscrowOrchestrator

logger = logging.getLogger(__name__)

UNIT_PRICE_QUANTUM = Decimal("0.0001")


def derive_unit_price(bid_amount: Decimal, quantity: Decimal) -> Decimal:
    return (bid_amount / quantity).quantize(UNIT_PRICE_QUANTUM, rounding=ROUND_HALF_UP)


async def _get_contract(db: AsyncSession, contract_id: int) -> Contract:
    result = await db.execute(select(Contract).where(Contract.id == contract_id))
    contract = result.scalar_one_or_none()
    if contract is None:
        raise NotFoundError("Contract not found")
    return contract


async def _has_pending_bid(db: AsyncSession, contract_id: int, bidder_id: int) -> bool:
    result = await db.execute(
        select(ContractBid.id).where(
            ContractBid.contract_id == contract_id,
            ContractBid.bidder_id == bidder_id,
            ContractBid.status == BidStatus.PENDING,
        ).limit(1)
    )
    return result.scalar_one_or_none() is not None


async def place_bid(
    db: AsyncSession, bidder: Profile, contract_id: int, data: BidCreate,
) -> ContractBid:
    contract = await _get_contract(db, contract_id)
    if contract.status != ContractStatus.PENDING:
        raise InvalidStateError("Contract is not accepting bids")
    if contract.farmer_id == bidder.id:
        raise SelfDealingError()
    if await _has_pending_bid(db, contract.id, bidder.id):
        raise DuplicateBidError()

    bid = ContractBid(
        contract_id=contract.id,
        bidder_id=bidder.id,
        bid_amount=data.bid_amount,
        message=data.message,
        status=BidStatus.PENDING,
    )
    db.add(bid)
    try:
        await db.commit()
    except IntegrityError:
        # partial unique index on pending bids caught a concurrent duplicate
        await db.rollback()
        raise DuplicateBidError()
    await db.refresh(bid)

    logger.info(
        "Bid %s placed on contract %s by profile %s (amount=%s)",
        bid.id, contract.id, bidder.id, bid.bid_amount,
    )

    from farmlink.services.notification import notify_bid_placed

    await notify_bid_placed(contract, bid)
    return bid


async def list_bids(db: AsyncSession, contract_id: int, caller_id: int) -> list[ContractBid]:
    """Bids on a contract, newest first. Visible to the farmer and the contract buyer."""
    contract = await _get_contract(db, contract_id)
    if caller_id not in (contract.farmer_id, contract.buyer_id):
        raise ForbiddenError("Access denied")

    result = await db.execute(
        select(ContractBid)
        .where(ContractBid.contract_id == contract.id)
        .order_by(ContractBid.id.desc())
    )
    return list(result.scalars().all())


async def resolve_bid(
    db: AsyncSession,
    contract_id: int,
    bid_id: int,
    caller_id: int,
    action: BidAction,
    orchestrator: EscrowOrchestrator,
) -> ContractBid:
    contract = await _get_contract(db, contract_id)
    if contract.farmer_id != caller_id:
        raise ForbiddenError("Only the contract owner can manage bids")

    result = await db.execute(
        select(ContractBid).where(
            ContractBid.id == bid_id, ContractBid.contract_id == contract.id,
        )
    )
    bid = result.scalar_one_or_none()
    if bid is None:
        raise NotFoundError("Bid not found")
    if bid.status != BidStatus.PENDING:
        raise InvalidStateError("Bid is no longer pending")

    match action:
        case BidAction.ACCEPT:
            await _accept(db, contract, bid, orchestrator)
            accepted = True
        case BidAction.REJECT:
            await _reject(db, bid)
            accepted = False
        case _:
            assert_never(action)

    from farmlink.services.notification import notify_bid_resolved

    await notify_bid_resolved(contract, bid, accepted)
    return bid


async def _claim_bid(db: AsyncSession, bid: ContractBid, new_status: BidStatus) -> None:
    claimed = await db.execute(
        update(ContractBid)
        .where(ContractBid.id == bid.id, ContractBid.status == BidStatus.PENDING)
        .values(status=new_status, updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        await db.rollback()
        raise InvalidStateError("Bid is no longer pending")


async def _reject(db: AsyncSession, bid: ContractBid) -> None:
    await _claim_bid(db, bid, BidStatus.REJECTED)
    await db.commit()
    await db.refresh(bid)
    logger.info("Bid %s on contract %s rejected", bid.id, bid.contract_id)


async def _accept(
    db: AsyncSession,
    contract: Contract,
    bid: ContractBid,
    orchestrator: EscrowOrchestrator,
) -> None:
    if contract.status != ContractStatus.PENDING:
        raise InvalidStateError("Contract is no longer accepting bids")

    # (a) the bid
    await _claim_bid(db, bid, BidStatus.ACCEPTED)

    # (b) the contract, guarded on still being pending
    now = datetime.now(timezone.utc)
    activated = await db.execute(
        update(Contract)
        .where(Contract.id == contract.id, Contract.status == ContractStatus.PENDING)
        .values(
            buyer_id=bid.bidder_id,
            price_per_unit=derive_unit_price(bid.bid_amount, contract.quantity),
            total_amount=bid.bid_amount,
            status=ContractStatus.ACTIVE,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if activated.rowcount != 1:
        await db.rollback()
        raise InvalidStateError("Contract is no longer accepting bids")

    # (c) every other pending bid
    siblings = await db.execute(
        update(ContractBid)
        .where(
            ContractBid.contract_id == contract.id,
            ContractBid.status == BidStatus.PENDING,
            ContractBid.id != bid.id,
        )
        .values(status=BidStatus.REJECTED, updated_at=now)
        .execution_options(synchronize_session=False)
    )

    # (d) the escrow, in the same transaction
    await db.refresh(contract)
    await orchestrator.open_escrow(db, contract, commit=False)

    await db.commit()
    await db.refresh(bid)
    await db.refresh(contract)

    logger.info(
        "Bid %s accepted: contract %s active with buyer %s at %s (%d sibling bid(s) rejected)",
        bid.id, contract.id, contract.buyer_id, contract.total_amount, siblings.rowcount or 0,
    )

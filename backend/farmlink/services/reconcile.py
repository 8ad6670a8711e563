"""Repair of half-finished bid acceptances.

Detects ``active`` contracts that still carry pending bids or that have a
buyer but no escrow account, and brings them to the state a completed
acceptance would have left. The payment processor is never contacted.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from farmlink.models.contract import Contract, ContractBid
from farmlink.models.escrow import EscrowAccount
from farmlink.services.contract_state_machine import BidStatus, ContractStatus
from farmlink.services.escrow import EscrowOrchestrator

logger = logging.getLogger(__name__)


async def reconcile_contracts(
    db: AsyncSession, orchestrator: EscrowOrchestrator,
) -> dict[str, int]:
    active_ids = select(Contract.id).where(Contract.status == ContractStatus.ACTIVE)
    rejected = await db.execute(
        update(ContractBid)
        .where(
            ContractBid.contract_id.in_(active_ids),
            ContractBid.status == BidStatus.PENDING,
        )
        .values(status=BidStatus.REJECTED, updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    bids_rejected = rejected.rowcount or 0

    result = await db.execute(
        select(Contract)
        .outerjoin(EscrowAccount, EscrowAccount.contract_id == Contract.id)
        .where(
            Contract.status == ContractStatus.ACTIVE,
            Contract.buyer_id.is_not(None),
            EscrowAccount.id.is_(None),
        )
    )
    escrows_opened = 0
    for contract in result.scalars().all():
        await orchestrator.open_escrow(db, contract)
        escrows_opened += 1

    report = {"bids_rejected": bids_rejected, "escrows_opened": escrows_opened}
    if bids_rejected or escrows_opened:
        logger.warning("Reconciled partial bid acceptances: %s", report)
    else:
        logger.info("Reconciliation found nothing to repair")
    return report

"""Business metrics endpoint: lightweight aggregates for monitoring."""

from decimal import Decimal

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from farmlink.api.schemas import MetricsResponse
from farmlink.core.deps import get_db
from farmlink.models.contract import Contract
from farmlink.models.escrow import EscrowAccount, PlatformWalletEntry

router = APIRouter(tags=["metrics"])


@router.get("/metrics", response_model=MetricsResponse)
async def get_metrics(db: AsyncSession = Depends(get_db)):
    contract_rows = (
        await db.execute(
            select(Contract.status, func.count()).group_by(Contract.status)
        )
    ).all()

    escrow_rows = (
        await db.execute(
            select(EscrowAccount.status, func.count()).group_by(EscrowAccount.status)
        )
    ).all()

    commission = (
        await db.execute(select(func.coalesce(func.sum(PlatformWalletEntry.amount), 0)))
    ).scalar()

    return MetricsResponse(
        contracts_by_status={row[0]: row[1] for row in contract_rows},
        escrows_by_status={row[0]: row[1] for row in escrow_rows},
        platform_commission_total=Decimal(str(commission or 0)),
    )

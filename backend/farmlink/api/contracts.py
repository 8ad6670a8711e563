"""Contract and bid endpoints."""

from typing import Literal

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from farmlink.api.schemas import (
    BidCreate,
    BidResolve,
    BidResponse,
    ContractCreate,
    ContractResponse,
    ContractStatusUpdate,
)
from farmlink.core.deps import get_db, get_escrow_orchestrator
from farmlink.core.security import get_current_user
from farmlink.models.profile import Profile
from farmlink.services import bid as bid_svc
from farmlink.services import contract as contract_svc
from farmlink.services.escrow import EscrowOrchestrator

router = APIRouter(prefix="/contracts", tags=["contracts"])


@router.post("", response_model=ContractResponse, status_code=201)
async def create_contract(
    body: ContractCreate,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await contract_svc.create_contract(db, user, body)


@router.get("", response_model=list[ContractResponse])
async def list_contracts(
    status: str | None = None,
    role: Literal["farmer", "buyer"] | None = None,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await contract_svc.list_contracts(db, user.id, status=status, role=role)


@router.get("/{contract_id}", response_model=ContractResponse)
async def get_contract(
    contract_id: int,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await contract_svc.get_contract_for_party(db, contract_id, user.id)


@router.put("/{contract_id}/status", response_model=ContractResponse)
async def update_contract_status(
    contract_id: int,
    body: ContractStatusUpdate,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    orchestrator: EscrowOrchestrator = Depends(get_escrow_orchestrator),
):
    return await contract_svc.set_contract_status(
        db, contract_id, user.id, body.status, orchestrator, notes=body.notes,
    )


# ---------------------------------------------------------------------------
# Bids
# ---------------------------------------------------------------------------


@router.post("/{contract_id}/bids", response_model=BidResponse, status_code=201)
async def place_bid(
    contract_id: int,
    body: BidCreate,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await bid_svc.place_bid(db, user, contract_id, body)


@router.get("/{contract_id}/bids", response_model=list[BidResponse])
async def list_bids(
    contract_id: int,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await bid_svc.list_bids(db, contract_id, user.id)


@router.put("/{contract_id}/bids/{bid_id}", response_model=BidResponse)
async def resolve_bid(
    contract_id: int,
    bid_id: int,
    body: BidResolve,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    orchestrator: EscrowOrchestrator = Depends(get_escrow_orchestrator),
):
    """Accept or reject a pending bid. Only the contract's farmer may do this."""
    return await bid_svc.resolve_bid(
        db, contract_id, bid_id, user.id, body.action, orchestrator,
    )

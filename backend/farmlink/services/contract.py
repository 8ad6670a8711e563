import logging
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from farmlink.api.schemas import ContractCreate
from farmlink.core.errors import (
    ForbiddenError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    SelfDealingError,
)
from farmlink.models.contract import Contract
from farmlink.models.escrow import EscrowAccount
from farmlink.models.profile import Profile
from farmlink.services.audit import log_audit
from farmlink.services.contract_state_machine import (
    ContractStatus,
    EscrowStatus,
    validate_transition,
)
from farmlink.services.escrow import EscrowOrchestrator
from farmlink.services.profile import get_profile_by_id

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


async def create_contract(db: AsyncSession, farmer: Profile, data: ContractCreate) -> Contract:
    if farmer.user_type != "farmer":
        raise ForbiddenError("Only farmers can create contracts")

    if data.buyer_id is not None:
        if data.buyer_id == farmer.id:
            raise SelfDealingError("A contract needs two different parties")
        if await get_profile_by_id(db, data.buyer_id) is None:
            raise NotFoundError("Buyer not found")

    contract = Contract(
        farmer_id=farmer.id,
        buyer_id=data.buyer_id,
        crop_type=data.crop_type,
        quantity=data.quantity,
        price_per_unit=data.price_per_unit,
        total_amount=(data.quantity * data.price_per_unit).quantize(CENT, rounding=ROUND_HALF_UP),
        delivery_date=data.delivery_date,
        quality_standards=data.quality_standards,
        payment_terms=data.payment_terms or "Payment on Delivery",
        status=ContractStatus.PENDING,
    )
    db.add(contract)
    await db.commit()
    await db.refresh(contract)

    logger.info(
        "Contract %s created by farmer %s (%s, total=%s)",
        contract.id, farmer.id, contract.crop_type, contract.total_amount,
    )

    from farmlink.services.notification import notify_contract_proposed

    await notify_contract_proposed(contract)
    return contract


async def list_contracts(
    db: AsyncSession,
    user_id: int,
    status: str | None = None,
    role: str | None = None,
) -> list[Contract]:
    query = select(Contract)
    if role == "farmer":
        query = query.where(Contract.farmer_id == user_id)
    elif role == "buyer":
        query = query.where(Contract.buyer_id == user_id)
    else:
        query = query.where(or_(Contract.farmer_id == user_id, Contract.buyer_id == user_id))
    if status:
        query = query.where(Contract.status == status)

    result = await db.execute(query.order_by(Contract.created_at.desc(), Contract.id.desc()))
    return list(result.scalars().all())


async def get_contract(db: AsyncSession, contract_id: int) -> Contract:
    result = await db.execute(select(Contract).where(Contract.id == contract_id))
    contract = result.scalar_one_or_none()
    if contract is None:
        raise NotFoundError("Contract not found")
    return contract


async def get_contract_for_party(db: AsyncSession, contract_id: int, user_id: int) -> Contract:
    contract = await get_contract(db, contract_id)
    if user_id not in (contract.farmer_id, contract.buyer_id):
        raise ForbiddenError("Access denied")
    return contract


async def set_contract_status(
    db: AsyncSession,
    contract_id: int,
    caller_id: int,
    new_status: str,
    orchestrator: EscrowOrchestrator,
    notes: str | None = None,
) -> Contract:
    """Move a contract along its status machine on behalf of one of its parties.

    Completion is reserved for escrow release whenever an escrow exists and is
    not yet released, and a contract holding funded escrow cannot be cancelled.
    Activation opens the escrow in the same transaction; cancelling fails any
    deposit still awaiting payment.
    """
    contract = await get_contract_for_party(db, contract_id, caller_id)
    current = contract.status
    target = validate_transition(current, new_status)

    escrow = await orchestrator.get_escrow_for_contract(db, contract.id)
    if target == ContractStatus.ACTIVE and contract.buyer_id is None:
        raise InvalidTransitionError(current, target, "contract has no buyer")
    if (
        target == ContractStatus.COMPLETED
        and escrow is not None
        and escrow.status != EscrowStatus.RELEASED
    ):
        raise InvalidTransitionError(current, target, "escrow has not been released")
    if (
        target == ContractStatus.CANCELLED
        and escrow is not None
        and escrow.status == EscrowStatus.FUNDED
    ):
        raise InvalidTransitionError(current, target, "escrow holds funds")

    conditions = [Contract.id == contract.id, Contract.status == current]
    if target == ContractStatus.CANCELLED:
        # funding may have landed since the guard above
        conditions.append(
            ~select(EscrowAccount.id)
            .where(
                EscrowAccount.contract_id == contract.id,
                EscrowAccount.status != EscrowStatus.PENDING,
            )
            .exists()
        )
    result = await db.execute(
        update(Contract)
        .where(*conditions)
        .values(status=target, updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        raise InvalidStateError("Contract status changed concurrently, please retry")
    await db.refresh(contract)

    if target == ContractStatus.ACTIVE:
        await orchestrator.open_escrow(db, contract, commit=False)
    elif target == ContractStatus.CANCELLED and escrow is not None:
        await orchestrator.void_pending_deposits(db, escrow.id, "Contract cancelled")

    await log_audit(
        db, action="contract_status", entity_type="contract", entity_id=contract.id,
        user_id=caller_id,
        details={"from": current, "to": target, "notes": notes},
    )
    await db.commit()
    await db.refresh(contract)

    logger.info("Contract %s: %s -> %s by profile %s", contract.id, current, target, caller_id)

    from farmlink.services.notification import notify_contract_status_change

    await notify_contract_status_change(contract, caller_id)
    return contract

"""Escrow ledger orchestrator: open, fund, confirm, fail and release escrow accounts.

Every mutator re-checks the escrow status inside its UPDATE statement
(``WHERE status = <expected>``) so concurrent callers on the same escrow
serialize on the row: exactly one of them sees ``rowcount == 1``.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from farmlink.core.config import settings
from farmlink.core.errors import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
)
from farmlink.models.contract import Contract
from farmlink.models.escrow import (
    DeliveryVerification,
    EscrowAccount,
    PaymentTransaction,
    PlatformWalletEntry,
)
from farmlink.services.audit import log_audit
from farmlink.services.contract_state_machine import (
    ContractStatus,
    EscrowStatus,
    TransactionStatus,
    TransactionType,
    escrow_can_advance,
    escrow_predecessor,
)
from farmlink.services.payments.gateway import PaymentIntent, StripeGateway, to_cents

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# Deposits made with this method go through a processor payment intent.
CARD_METHOD = "stripe"
DECLINED_CARD_SUFFIX = "0002"

CONTRACT_INACTIVE_REASON = "Contract is no longer active"
SUPERSEDED_REASON = "Superseded by a new deposit"


def split_commission(total_amount: Decimal, rate: Decimal) -> tuple[Decimal, Decimal]:
    """Return (platform_commission, farmer_amount); the two always sum to total."""
    commission = (total_amount * rate).quantize(CENT, rounding=ROUND_HALF_UP)
    return commission, total_amount - commission


@dataclass
class FundingAttempt:
    escrow: EscrowAccount
    transaction: PaymentTransaction
    intent: PaymentIntent | None = None


@dataclass
class ReleaseReceipt:
    escrow_id: int
    farmer_amount: Decimal
    commission: Decimal
    released_at: datetime


class EscrowOrchestrator:
    """Drives escrow accounts and their payment ledger through pending → funded → released."""

    def __init__(
        self,
        commission_rate: Decimal | None = None,
        gateway: StripeGateway | None = None,
    ) -> None:
        rate = settings.platform_commission_rate if commission_rate is None else commission_rate
        self.commission_rate = Decimal(rate)
        self.gateway = gateway or StripeGateway()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_escrow(self, db: AsyncSession, escrow_id: int) -> EscrowAccount:
        result = await db.execute(select(EscrowAccount).where(EscrowAccount.id == escrow_id))
        escrow = result.scalar_one_or_none()
        if escrow is None:
            raise NotFoundError("Escrow account not found")
        return escrow

    async def get_escrow_for_contract(
        self, db: AsyncSession, contract_id: int,
    ) -> EscrowAccount | None:
        result = await db.execute(
            select(EscrowAccount).where(EscrowAccount.contract_id == contract_id)
        )
        return result.scalar_one_or_none()

    async def list_escrows_for_user(self, db: AsyncSession, user_id: int) -> list[EscrowAccount]:
        result = await db.execute(
            select(EscrowAccount)
            .where(or_(EscrowAccount.buyer_id == user_id, EscrowAccount.farmer_id == user_id))
            .order_by(EscrowAccount.id.desc())
        )
        return list(result.scalars().all())

    async def escrow_for_buyer(
        self, db: AsyncSession, contract_id: int, buyer_id: int,
    ) -> EscrowAccount:
        """Resolve (opening if needed) the escrow the contract's buyer is about to fund."""
        result = await db.execute(select(Contract).where(Contract.id == contract_id))
        contract = result.scalar_one_or_none()
        if contract is None:
            raise NotFoundError("Contract not found")
        if contract.buyer_id != buyer_id:
            raise ForbiddenError("Only the buyer can fund this contract")
        if contract.status != ContractStatus.ACTIVE:
            raise InvalidStateError("Contract must be active to fund")
        return await self.open_escrow(db, contract)

    async def _pending_deposit(
        self, db: AsyncSession, escrow_id: int, gateway_id: str | None = None,
    ) -> PaymentTransaction | None:
        query = select(PaymentTransaction).where(
            PaymentTransaction.escrow_id == escrow_id,
            PaymentTransaction.transaction_type == TransactionType.DEPOSIT,
            PaymentTransaction.status == TransactionStatus.PENDING,
        )
        if gateway_id is not None:
            query = query.where(PaymentTransaction.payment_gateway_id == gateway_id)
        result = await db.execute(query.order_by(PaymentTransaction.id.desc()).limit(1))
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Open
    # ------------------------------------------------------------------

    async def open_escrow(
        self,
        db: AsyncSession,
        contract: Contract,
        *,
        commit: bool = True,
    ) -> EscrowAccount:
        """Create the escrow for an active contract, or return the one that exists.

        Pure bookkeeping: no money moves. With ``commit=False`` the row joins
        the caller's transaction.
        """
        if contract.status != ContractStatus.ACTIVE:
            raise InvalidStateError("Contract must be active to open escrow")
        if contract.buyer_id is None:
            raise InvalidStateError("Contract has no buyer")

        existing = await self.get_escrow_for_contract(db, contract.id)
        if existing is not None:
            return existing

        commission, farmer_amount = split_commission(contract.total_amount, self.commission_rate)
        escrow = EscrowAccount(
            contract_id=contract.id,
            buyer_id=contract.buyer_id,
            farmer_id=contract.farmer_id,
            total_amount=contract.total_amount,
            platform_commission_rate=self.commission_rate,
            platform_commission=commission,
            farmer_amount=farmer_amount,
            status=EscrowStatus.PENDING,
        )
        try:
            async with db.begin_nested():
                db.add(escrow)
        except IntegrityError:
            # UNIQUE(contract_id): another trigger opened it first
            existing = await self.get_escrow_for_contract(db, contract.id)
            if existing is None:
                raise
            logger.info("Escrow for contract %s opened concurrently; reusing %s", contract.id, existing.id)
            return existing

        await log_audit(
            db, action="escrow_open", entity_type="escrow", entity_id=escrow.id,
            details={
                "contract_id": contract.id,
                "total_amount": contract.total_amount,
                "commission_rate": self.commission_rate,
            },
        )
        if commit:
            await db.commit()
            await db.refresh(escrow)

        logger.info(
            "Opened escrow %s for contract %s: total=%s commission=%s farmer=%s",
            escrow.id, contract.id, escrow.total_amount, commission, farmer_amount,
        )
        return escrow

    # ------------------------------------------------------------------
    # Fund
    # ------------------------------------------------------------------

    async def fund_escrow(
        self,
        db: AsyncSession,
        escrow_id: int,
        amount: Decimal,
        method: str,
        actor_id: int | None = None,
    ) -> FundingAttempt:
        """Record a pending deposit; card deposits also get a processor intent.

        An escrow holds at most one pending deposit. Funding again with the
        same method hands back that deposit (and its intent); a different
        method supersedes it. The deposit stays pending until
        ``confirm_funding`` runs.
        """
        escrow = await self.get_escrow(db, escrow_id)
        if actor_id is not None and actor_id != escrow.buyer_id:
            raise ForbiddenError("Only the buyer can fund this contract")
        if not escrow_can_advance(escrow.status, EscrowStatus.FUNDED):
            raise InvalidStateError("Escrow already funded")
        if amount != escrow.total_amount:
            raise InvalidStateError(
                f"Deposit amount must equal the escrow total of {escrow.total_amount}"
            )

        existing = await self._pending_deposit(db, escrow.id)
        if existing is not None:
            if existing.payment_method == method:
                return await self._resume_deposit(db, escrow, existing)
            await self.void_pending_deposits(db, escrow.id, SUPERSEDED_REASON)

        deposit = PaymentTransaction(
            escrow_id=escrow.id,
            transaction_type=TransactionType.DEPOSIT,
            amount=amount,
            payment_method=method,
            status=TransactionStatus.PENDING,
        )
        try:
            async with db.begin_nested():
                db.add(deposit)
        except IntegrityError:
            # one pending deposit per escrow: a concurrent call recorded it first
            existing = await self._pending_deposit(db, escrow.id)
            if existing is None:
                raise
            return await self._resume_deposit(db, escrow, existing)

        intent: PaymentIntent | None = None
        if method == CARD_METHOD:
            intent = await self._create_intent(db, escrow, deposit)

        await db.commit()
        await db.refresh(deposit)
        logger.info(
            "Deposit %s recorded for escrow %s (method=%s, gateway_id=%s)",
            deposit.id, escrow.id, method, deposit.payment_gateway_id,
        )
        return FundingAttempt(escrow=escrow, transaction=deposit, intent=intent)

    async def _create_intent(
        self, db: AsyncSession, escrow: EscrowAccount, deposit: PaymentTransaction,
    ) -> PaymentIntent:
        contract = await db.get(Contract, escrow.contract_id)
        intent = await self.gateway.create_payment_intent(
            to_cents(deposit.amount),
            metadata={
                "contract_id": escrow.contract_id,
                "escrow_id": escrow.id,
                "buyer_id": escrow.buyer_id,
                "farmer_id": escrow.farmer_id,
                "transaction_id": deposit.id,
            },
            description=(
                f"Escrow funding for {contract.crop_type} contract" if contract else None
            ),
        )
        deposit.payment_gateway_id = intent.id
        return intent

    async def _resume_deposit(
        self, db: AsyncSession, escrow: EscrowAccount, deposit: PaymentTransaction,
    ) -> FundingAttempt:
        intent: PaymentIntent | None = None
        if deposit.payment_method == CARD_METHOD:
            if deposit.payment_gateway_id:
                intent = await self.gateway.retrieve_payment_intent(deposit.payment_gateway_id)
            else:
                intent = await self._create_intent(db, escrow, deposit)
                await db.commit()
                await db.refresh(deposit)
        logger.info("Reusing pending deposit %s for escrow %s", deposit.id, escrow.id)
        return FundingAttempt(escrow=escrow, transaction=deposit, intent=intent)

    async def void_pending_deposits(self, db: AsyncSession, escrow_id: int, reason: str) -> int:
        """Fail every deposit still awaiting payment on the escrow; the caller commits."""
        now = datetime.now(timezone.utc)
        result = await db.execute(
            update(PaymentTransaction)
            .where(
                PaymentTransaction.escrow_id == escrow_id,
                PaymentTransaction.transaction_type == TransactionType.DEPOSIT,
                PaymentTransaction.status == TransactionStatus.PENDING,
            )
            .values(
                status=TransactionStatus.FAILED,
                failure_reason=reason,
                processed_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            logger.info("Voided %s pending deposit(s) on escrow %s: %s", result.rowcount, escrow_id, reason)
        return result.rowcount

    async def confirm_funding(
        self,
        db: AsyncSession,
        escrow_id: int,
        gateway_id: str | None = None,
    ) -> bool:
        """Complete the matching deposit and mark the escrow funded.

        Returns False (and changes nothing) when the escrow is no longer
        pending or no matching pending deposit exists. Duplicate processor
        callbacks land here. The contract must still be active when the
        escrow flips; otherwise the deposit is failed instead.
        """
        escrow = await self.get_escrow(db, escrow_id)
        if not escrow_can_advance(escrow.status, EscrowStatus.FUNDED):
            logger.info(
                "Escrow %s already %s; ignoring funding confirmation (gateway_id=%s)",
                escrow.id, escrow.status, gateway_id,
            )
            return False

        deposit = await self._pending_deposit(db, escrow.id, gateway_id)
        if deposit is None:
            logger.warning(
                "No pending deposit for escrow %s (gateway_id=%s); ignoring confirmation",
                escrow.id, gateway_id,
            )
            return False

        contract_id = escrow.contract_id
        deposit_id = deposit.id
        contract_active = (
            select(Contract.id)
            .where(Contract.id == contract_id, Contract.status == ContractStatus.ACTIVE)
            .exists()
        )
        now = datetime.now(timezone.utc)
        result = await db.execute(
            update(EscrowAccount)
            .where(
                EscrowAccount.id == escrow_id,
                EscrowAccount.status == escrow_predecessor(EscrowStatus.FUNDED),
                contract_active,
            )
            .values(status=EscrowStatus.FUNDED, funded_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await db.rollback()
            current = await self.get_escrow(db, escrow_id)
            if current.status != EscrowStatus.PENDING:
                logger.info("Escrow %s funded by a concurrent confirmation; no-op", escrow_id)
                return False
            logger.warning(
                "Contract %s is no longer active; failing deposit %s", contract_id, deposit_id,
            )
            stale = await self._get_transaction(db, deposit_id)
            await self.fail_funding(db, stale, CONTRACT_INACTIVE_REASON)
            return False

        deposit.status = TransactionStatus.COMPLETED
        deposit.processed_at = now
        await log_audit(
            db, action="escrow_funded", entity_type="escrow", entity_id=escrow_id,
            details={"transaction_id": deposit_id, "gateway_id": deposit.payment_gateway_id},
        )
        await db.commit()
        await db.refresh(escrow)

        logger.info("Escrow %s funded by deposit %s", escrow_id, deposit_id)

        from farmlink.services.notification import notify_escrow_funded

        await notify_escrow_funded(escrow)
        return True

    async def fail_funding(
        self,
        db: AsyncSession,
        deposit: PaymentTransaction,
        reason: str,
    ) -> bool:
        """Mark a pending deposit failed and tell the buyer. Completed deposits are left alone."""
        deposit_id = deposit.id
        escrow_id = deposit.escrow_id
        now = datetime.now(timezone.utc)
        result = await db.execute(
            update(PaymentTransaction)
            .where(
                PaymentTransaction.id == deposit_id,
                PaymentTransaction.status == TransactionStatus.PENDING,
            )
            .values(
                status=TransactionStatus.FAILED,
                failure_reason=reason,
                processed_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await db.rollback()
            logger.info("Deposit %s is no longer pending; failure ignored", deposit_id)
            return False

        await log_audit(
            db, action="escrow_funding_failed", entity_type="escrow", entity_id=escrow_id,
            details={"transaction_id": deposit_id, "reason": reason},
        )
        await db.commit()
        await db.refresh(deposit)

        escrow = await self.get_escrow(db, escrow_id)
        logger.warning("Deposit %s for escrow %s failed: %s", deposit_id, escrow_id, reason)

        from farmlink.services.notification import notify_payment_failed

        await notify_payment_failed(escrow)
        return True

    async def _get_transaction(self, db: AsyncSession, transaction_id: int) -> PaymentTransaction:
        result = await db.execute(
            select(PaymentTransaction).where(PaymentTransaction.id == transaction_id)
        )
        transaction = result.scalar_one_or_none()
        if transaction is None:
            raise NotFoundError("Transaction not found")
        return transaction

    async def process_simulated_payment(
        self,
        db: AsyncSession,
        transaction_id: int,
        actor_id: int,
        payment_details: dict | None = None,
    ) -> bool:
        """Synchronous processing shortcut, routed through the same paths a webhook uses."""
        deposit = await self._get_transaction(db, transaction_id)

        escrow = await self.get_escrow(db, deposit.escrow_id)
        if actor_id != escrow.buyer_id:
            raise ForbiddenError("Only the buyer can pay for this contract")
        if not escrow_can_advance(escrow.status, EscrowStatus.FUNDED):
            raise InvalidStateError("Escrow already funded")
        if (
            deposit.transaction_type != TransactionType.DEPOSIT
            or deposit.status != TransactionStatus.PENDING
        ):
            raise InvalidStateError("Transaction is not awaiting payment")

        contract_status = (
            await db.execute(select(Contract.status).where(Contract.id == escrow.contract_id))
        ).scalar_one_or_none()
        if contract_status != ContractStatus.ACTIVE:
            await self.fail_funding(db, deposit, CONTRACT_INACTIVE_REASON)
            raise InvalidStateError(CONTRACT_INACTIVE_REASON)

        card_number = str((payment_details or {}).get("card_number", ""))
        if card_number.endswith(DECLINED_CARD_SUFFIX):
            await self.fail_funding(db, deposit, "Payment gateway declined")
            return False

        if not deposit.payment_gateway_id:
            deposit.payment_gateway_id = f"sim_{uuid.uuid4().hex}"
            await db.flush()
        return await self.confirm_funding(db, escrow.id, deposit.payment_gateway_id)

    # ------------------------------------------------------------------
    # Release
    # ------------------------------------------------------------------

    async def release_payment(
        self,
        db: AsyncSession,
        escrow_id: int,
        caller_id: int,
        verification_notes: str | None = None,
    ) -> ReleaseReceipt:
        """Buyer confirms delivery: split funds, credit the platform, complete the contract.

        All ledger rows and both status changes commit together.
        """
        escrow = await self.get_escrow(db, escrow_id)
        if caller_id != escrow.buyer_id:
            raise ForbiddenError("Only buyer can release payment")
        if not escrow_can_advance(escrow.status, EscrowStatus.RELEASED):
            raise InvalidStateError("Escrow must be funded before release")

        now = datetime.now(timezone.utc)
        claimed = await db.execute(
            update(EscrowAccount)
            .where(
                EscrowAccount.id == escrow.id,
                EscrowAccount.status == escrow_predecessor(EscrowStatus.RELEASED),
            )
            .values(status=EscrowStatus.RELEASED, released_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            await db.rollback()
            raise InvalidStateError("Escrow must be funded before release")

        completed = await db.execute(
            update(Contract)
            .where(Contract.id == escrow.contract_id, Contract.status == ContractStatus.ACTIVE)
            .values(status=ContractStatus.COMPLETED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if completed.rowcount != 1:
            await db.rollback()
            raise InvalidStateError("Contract must be active to complete")

        db.add(DeliveryVerification(
            contract_id=escrow.contract_id,
            verified_by=caller_id,
            verification_type="buyer_confirmation",
            status="approved",
            notes=verification_notes,
        ))
        release_tx = PaymentTransaction(
            escrow_id=escrow.id,
            transaction_type=TransactionType.RELEASE,
            amount=escrow.farmer_amount,
            payment_method="escrow_release",
            status=TransactionStatus.COMPLETED,
            processed_at=now,
        )
        commission_tx = PaymentTransaction(
            escrow_id=escrow.id,
            transaction_type=TransactionType.COMMISSION,
            amount=escrow.platform_commission,
            payment_method="platform_commission",
            status=TransactionStatus.COMPLETED,
            processed_at=now,
        )
        db.add_all([release_tx, commission_tx])
        await db.flush()

        db.add(PlatformWalletEntry(
            transaction_id=commission_tx.id,
            amount=escrow.platform_commission,
            transaction_type=TransactionType.COMMISSION,
        ))
        await log_audit(
            db, action="escrow_release", entity_type="escrow", entity_id=escrow.id,
            user_id=caller_id,
            details={
                "farmer_amount": escrow.farmer_amount,
                "commission": escrow.platform_commission,
                "release_tx": release_tx.id,
                "commission_tx": commission_tx.id,
            },
        )
        await db.commit()
        await db.refresh(escrow)

        logger.info(
            "Released escrow %s: farmer=%s commission=%s",
            escrow.id, escrow.farmer_amount, escrow.platform_commission,
        )

        from farmlink.services.notification import notify_payment_released

        await notify_payment_released(escrow)

        return ReleaseReceipt(
            escrow_id=escrow.id,
            farmer_amount=escrow.farmer_amount,
            commission=escrow.platform_commission,
            released_at=now,
        )

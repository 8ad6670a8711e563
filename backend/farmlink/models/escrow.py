from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from farmlink.db.base import Base


class EscrowAccount(Base):
    __tablename__ = "escrow_accounts"

    contract_id: Mapped[int] = mapped_column(
        ForeignKey("contracts.id", ondelete="CASCADE"), unique=True, nullable=False, index=True
    )
    buyer_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("profiles.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    farmer_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("profiles.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    platform_commission_rate: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False)
    platform_commission: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    farmer_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default="pending", server_default="pending", nullable=False, index=True
    )  # pending / funded / released
    funded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    released_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    contract = relationship("Contract", lazy="selectin")
    transactions = relationship(
        "PaymentTransaction",
        lazy="selectin",
        order_by="PaymentTransaction.id",
        viewonly=True,
    )


class PaymentTransaction(Base):
    """Append-only ledger line under one escrow account."""

    __tablename__ = "payment_transactions"

    escrow_id: Mapped[int] = mapped_column(
        ForeignKey("escrow_accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    transaction_type: Mapped[str] = mapped_column(String(20), nullable=False)  # deposit / release / commission
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(50), nullable=False)
    payment_gateway_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    status: Mapped[str] = mapped_column(
        String(20), default="pending", server_default="pending", nullable=False
    )  # pending / completed / failed
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        # at most one deposit awaiting payment per escrow
        Index(
            "uq_payment_transactions_one_pending_deposit",
            "escrow_id",
            unique=True,
            postgresql_where=text("status = 'pending' AND transaction_type = 'deposit'"),
            sqlite_where=text("status = 'pending' AND transaction_type = 'deposit'"),
        ),
    )


class DeliveryVerification(Base):
    __tablename__ = "delivery_verifications"

    contract_id: Mapped[int] = mapped_column(
        ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    verified_by: Mapped[int] = mapped_column(
        Integer, ForeignKey("profiles.id", ondelete="RESTRICT"), nullable=False
    )
    verification_type: Mapped[str] = mapped_column(String(30), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)


class PlatformWalletEntry(Base):
    """Platform-side ledger of collected commission."""

    __tablename__ = "platform_wallet"

    transaction_id: Mapped[int] = mapped_column(
        ForeignKey("payment_transactions.id", ondelete="RESTRICT"), unique=True, nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    transaction_type: Mapped[str] = mapped_column(String(20), nullable=False)

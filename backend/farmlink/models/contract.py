from datetime import date
from decimal import Decimal

from sqlalchemy import Date, ForeignKey, Index, Integer, Numeric, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from farmlink.db.base import Base


class Contract(Base):
    __tablename__ = "contracts"

    farmer_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    buyer_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True
    )
    crop_type: Mapped[str] = mapped_column(String(100), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    price_per_unit: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    delivery_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default="pending", server_default="pending", nullable=False, index=True
    )  # pending / active / completed / cancelled
    quality_standards: Mapped[str | None] = mapped_column(Text, nullable=True)
    payment_terms: Mapped[str] = mapped_column(
        Text, default="Payment on Delivery", server_default="Payment on Delivery"
    )

    farmer = relationship("Profile", foreign_keys=[farmer_id], lazy="selectin")
    buyer = relationship("Profile", foreign_keys=[buyer_id], lazy="selectin")


class ContractBid(Base):
    __tablename__ = "contract_bids"

    contract_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    bidder_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    bid_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default="pending", server_default="pending", nullable=False
    )  # pending / accepted / rejected

    bidder = relationship("Profile", foreign_keys=[bidder_id], lazy="selectin")

    __table_args__ = (
        Index("ix_contract_bids_contract_status", "contract_id", "status"),
        # one pending bid per bidder per contract
        Index(
            "uq_contract_bids_one_pending",
            "contract_id", "bidder_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

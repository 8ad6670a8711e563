from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from farmlink.db.base import Base


class LogisticsProvider(Base):
    __tablename__ = "logistics_providers"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(30), nullable=False, index=True)  # shipping / storage
    capabilities: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    base_rate: Mapped[Decimal] = mapped_column(Numeric(10, 4), nullable=False)  # per kg per km
    rating: Mapped[Decimal] = mapped_column(
        Numeric(3, 2), default=Decimal("0"), server_default="0", nullable=False
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default="true", nullable=False
    )


class ShippingQuote(Base):
    __tablename__ = "shipping_quotes"

    contract_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    provider_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("logistics_providers.id", ondelete="CASCADE"), nullable=False
    )
    origin_address: Mapped[str] = mapped_column(Text, nullable=False)
    destination_address: Mapped[str] = mapped_column(Text, nullable=False)
    weight: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)  # kg
    distance_km: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    service_type: Mapped[str] = mapped_column(String(30), nullable=False)
    estimated_cost: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    estimated_delivery_days: Mapped[int] = mapped_column(Integer, nullable=False)
    valid_until: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default="pending", server_default="pending", nullable=False
    )  # pending / accepted

    provider = relationship("LogisticsProvider", lazy="selectin")


class Shipment(Base):
    __tablename__ = "shipments"

    contract_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    quote_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("shipping_quotes.id", ondelete="RESTRICT"), unique=True, nullable=False
    )
    tracking_number: Mapped[str] = mapped_column(String(40), unique=True, nullable=False)
    pickup_date: Mapped[date] = mapped_column(Date, nullable=False)
    estimated_delivery_date: Mapped[date] = mapped_column(Date, nullable=False)
    special_instructions: Mapped[str | None] = mapped_column(Text, nullable=True)
    current_location: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default="booked", server_default="booked", nullable=False
    )  # booked / in_transit / delivered

    quote = relationship("ShippingQuote", lazy="selectin")
    tracking_events = relationship(
        "ShipmentTrackingEvent",
        lazy="selectin",
        order_by="ShipmentTrackingEvent.id",
        viewonly=True,
    )


class ShipmentTrackingEvent(Base):
    __tablename__ = "shipment_tracking"

    shipment_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("shipments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    location: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

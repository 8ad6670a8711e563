"""Shipping quotes, bookings and tracking for contracted produce.

Quotes are priced per kg per km from each provider's base rate. Booking
accepts exactly one quote; the farmer then reports tracking events until
the shipment is delivered.
"""

import logging
import math
import uuid
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from farmlink.api.schemas import QuoteRequest, ShipmentCreate, TrackingUpdate
from farmlink.core.errors import ForbiddenError, InvalidStateError, NotFoundError
from farmlink.models.contract import Contract
from farmlink.models.logistics import (
    LogisticsProvider,
    Shipment,
    ShipmentTrackingEvent,
    ShippingQuote,
)
from farmlink.services.contract import get_contract_for_party
from farmlink.services.contract_state_machine import ContractStatus

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
QUOTE_VALIDITY = timedelta(days=7)

SERVICE_MULTIPLIERS = {
    "standard": Decimal("1"),
    "express": Decimal("1.5"),
    "refrigerated": Decimal("1.3"),
}

# status -> statuses a tracking event may move it to
SHIPMENT_TRANSITIONS = {
    "booked": {"in_transit", "delivered"},
    "in_transit": {"in_transit", "delivered"},
    "delivered": set(),
}


def quote_cost(base_rate: Decimal, weight: Decimal, distance_km: Decimal, service_type: str) -> Decimal:
    cost = base_rate * weight * distance_km * SERVICE_MULTIPLIERS[service_type]
    return cost.quantize(CENT, rounding=ROUND_HALF_UP)


def delivery_days(distance_km: Decimal, service_type: str) -> int:
    if service_type == "express":
        return 1 + math.ceil(distance_km / 800)
    return 3 + math.ceil(distance_km / 400)


async def list_providers(
    db: AsyncSession,
    provider_type: str | None = None,
    service_type: str | None = None,
) -> list[LogisticsProvider]:
    query = select(LogisticsProvider).where(LogisticsProvider.is_active.is_(True))
    if provider_type:
        query = query.where(LogisticsProvider.type == provider_type)
    result = await db.execute(
        query.order_by(LogisticsProvider.rating.desc(), LogisticsProvider.id)
    )
    providers = list(result.scalars().all())
    if service_type:
        # JSON containment differs per dialect
        providers = [p for p in providers if service_type in (p.capabilities or [])]
    return providers


async def request_quotes(db: AsyncSession, user_id: int, data: QuoteRequest) -> list[ShippingQuote]:
    """Price the shipment with every active shipping provider that offers the service."""
    contract = await get_contract_for_party(db, data.contract_id, user_id)
    providers = await list_providers(db, provider_type="shipping", service_type=data.service_type)
    if not providers:
        logger.info("No shipping providers offer %s for contract %s", data.service_type, contract.id)
        return []

    valid_until = datetime.now(timezone.utc) + QUOTE_VALIDITY
    days = delivery_days(data.distance_km, data.service_type)
    quotes = [
        ShippingQuote(
            contract_id=contract.id,
            provider=provider,
            origin_address=data.origin_address,
            destination_address=data.destination_address,
            weight=data.weight,
            distance_km=data.distance_km,
            service_type=data.service_type,
            estimated_cost=quote_cost(provider.base_rate, data.weight, data.distance_km, data.service_type),
            estimated_delivery_days=days,
            valid_until=valid_until,
        )
        for provider in providers
    ]
    db.add_all(quotes)
    await db.commit()

    logger.info("Issued %d shipping quotes for contract %s", len(quotes), contract.id)
    return sorted(quotes, key=lambda q: (q.estimated_cost, q.id))


async def list_quotes(db: AsyncSession, user_id: int, contract_id: int) -> list[ShippingQuote]:
    await get_contract_for_party(db, contract_id, user_id)
    result = await db.execute(
        select(ShippingQuote)
        .where(ShippingQuote.contract_id == contract_id)
        .order_by(ShippingQuote.estimated_cost, ShippingQuote.id)
    )
    return list(result.scalars().all())


async def _get_shipment(db: AsyncSession, shipment_id: int) -> Shipment:
    result = await db.execute(
        select(Shipment)
        .where(Shipment.id == shipment_id)
        .execution_options(populate_existing=True)
    )
    shipment = result.scalar_one_or_none()
    if shipment is None:
        raise NotFoundError("Shipment not found")
    return shipment


async def book_shipment(db: AsyncSession, user_id: int, data: ShipmentCreate) -> Shipment:
    quote = await db.get(ShippingQuote, data.quote_id, populate_existing=True)
    if quote is None:
        raise NotFoundError("Quote not found")
    contract = await get_contract_for_party(db, quote.contract_id, user_id)
    if contract.status != ContractStatus.ACTIVE:
        raise InvalidStateError("Contract must be active to book a shipment")

    valid_until = quote.valid_until
    if valid_until.tzinfo is None:
        valid_until = valid_until.replace(tzinfo=timezone.utc)
    if valid_until < datetime.now(timezone.utc):
        raise InvalidStateError("Quote has expired")

    quote_id = quote.id
    result = await db.execute(
        update(ShippingQuote)
        .where(ShippingQuote.id == quote_id, ShippingQuote.status == "pending")
        .values(status="accepted", updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        raise InvalidStateError("Quote is no longer available")

    shipment = Shipment(
        contract_id=quote.contract_id,
        quote_id=quote_id,
        tracking_number=f"TRK{uuid.uuid4().hex[:12].upper()}",
        pickup_date=data.pickup_date,
        estimated_delivery_date=data.pickup_date + timedelta(days=quote.estimated_delivery_days),
        special_instructions=data.special_instructions,
        current_location=quote.origin_address,
        status="booked",
    )
    db.add(shipment)
    await db.flush()
    db.add(ShipmentTrackingEvent(
        shipment_id=shipment.id,
        location=quote.origin_address,
        status="booked",
        description="Shipment booked and awaiting pickup",
    ))
    await db.commit()
    await db.refresh(quote)

    shipment = await _get_shipment(db, shipment.id)
    logger.info(
        "Shipment %s (%s) booked for contract %s from quote %s",
        shipment.id, shipment.tracking_number, contract.id, quote_id,
    )

    from farmlink.services.notification import notify_shipment_update

    other = contract.buyer_id if user_id == contract.farmer_id else contract.farmer_id
    await notify_shipment_update(contract, shipment, other)
    return shipment


async def list_shipments(
    db: AsyncSession, user_id: int, contract_id: int | None = None,
) -> list[Shipment]:
    query = (
        select(Shipment)
        .join(Contract, Contract.id == Shipment.contract_id)
        .where((Contract.farmer_id == user_id) | (Contract.buyer_id == user_id))
    )
    if contract_id is not None:
        query = query.where(Shipment.contract_id == contract_id)
    result = await db.execute(query.order_by(Shipment.created_at.desc(), Shipment.id.desc()))
    return list(result.scalars().all())


async def add_tracking_event(
    db: AsyncSession, user_id: int, shipment_id: int, data: TrackingUpdate,
) -> Shipment:
    shipment = await _get_shipment(db, shipment_id)
    contract = await db.get(Contract, shipment.contract_id)
    if contract is None or contract.farmer_id != user_id:
        raise ForbiddenError("Only the shipping farmer can update tracking")

    current = shipment.status
    if data.status not in SHIPMENT_TRANSITIONS[current]:
        raise InvalidStateError(f"Cannot move shipment from {current} to {data.status}")

    result = await db.execute(
        update(Shipment)
        .where(Shipment.id == shipment.id, Shipment.status == current)
        .values(
            status=data.status,
            current_location=data.location,
            updated_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        raise InvalidStateError("Shipment status changed concurrently, please retry")

    db.add(ShipmentTrackingEvent(
        shipment_id=shipment_id,
        location=data.location,
        status=data.status,
        description=data.description,
    ))
    await db.commit()

    shipment = await _get_shipment(db, shipment_id)
    logger.info("Shipment %s: %s -> %s at %s", shipment_id, current, data.status, data.location)

    if shipment.status == "delivered":
        from farmlink.services.notification import notify_shipment_update

        await notify_shipment_update(contract, shipment, contract.buyer_id)
    return shipment

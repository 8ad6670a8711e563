"""Shipping quotes, bookings and tracking updates."""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select, update

from conftest import auth_headers
from farmlink.api.schemas import QuoteRequest, ShipmentCreate, TrackingUpdate
from farmlink.core.errors import ForbiddenError, InvalidStateError, NotFoundError
from farmlink.models.logistics import LogisticsProvider, Shipment, ShippingQuote
from farmlink.services import logistics as logistics_svc


@pytest.fixture
async def providers(db):
    rows = [
        LogisticsProvider(
            name="Rift Valley Hauliers", type="shipping",
            capabilities=["standard", "refrigerated"], base_rate=Decimal("0.0100"), rating=Decimal("4.5"),
        ),
        LogisticsProvider(
            name="Lakeside Express", type="shipping",
            capabilities=["standard", "express"], base_rate=Decimal("0.0120"), rating=Decimal("4.8"),
        ),
        LogisticsProvider(
            name="Cold Store Ltd", type="storage",
            capabilities=["refrigerated"], base_rate=Decimal("0.0050"), rating=Decimal("4.9"),
        ),
        LogisticsProvider(
            name="Retired Trucks", type="shipping",
            capabilities=["standard"], base_rate=Decimal("0.0010"), rating=Decimal("3.0"), is_active=False,
        ),
    ]
    db.add_all(rows)
    await db.commit()
    return rows


def _quote_request(contract_id: int, service_type: str = "standard") -> QuoteRequest:
    return QuoteRequest(
        contract_id=contract_id,
        origin_address="Nakuru depot",
        destination_address="Nairobi mill",
        weight=Decimal("1000"),
        distance_km=Decimal("120"),
        service_type=service_type,
    )


class TestPricing:
    def test_cost_and_days(self):
        assert logistics_svc.quote_cost(Decimal("0.01"), Decimal("1000"), Decimal("120"), "standard") == Decimal("1200.00")
        assert logistics_svc.quote_cost(Decimal("0.01"), Decimal("1000"), Decimal("120"), "express") == Decimal("1800.00")
        assert logistics_svc.quote_cost(Decimal("0.0033"), Decimal("1"), Decimal("1.5"), "refrigerated") == Decimal("0.01")
        assert logistics_svc.delivery_days(Decimal("120"), "standard") == 4
        assert logistics_svc.delivery_days(Decimal("900"), "standard") == 6
        assert logistics_svc.delivery_days(Decimal("900"), "express") == 3


class TestProviders:
    @pytest.mark.asyncio
    async def test_active_only_best_rated_first(self, db, providers):
        rows = await logistics_svc.list_providers(db)
        assert [p.name for p in rows] == ["Cold Store Ltd", "Lakeside Express", "Rift Valley Hauliers"]

    @pytest.mark.asyncio
    async def test_filter_by_type_and_capability(self, db, providers):
        rows = await logistics_svc.list_providers(db, provider_type="shipping", service_type="refrigerated")
        assert [p.name for p in rows] == ["Rift Valley Hauliers"]


class TestQuotes:
    @pytest.mark.asyncio
    async def test_one_quote_per_capable_provider(self, db, providers, make_contract, farmer, buyer):
        contract = await make_contract(farmer, buyer, status="active")

        quotes = await logistics_svc.request_quotes(db, buyer.id, _quote_request(contract.id))

        assert [(q.provider.name, q.estimated_cost) for q in quotes] == [
            ("Rift Valley Hauliers", Decimal("1200.00")),
            ("Lakeside Express", Decimal("1440.00")),
        ]
        assert all(q.estimated_delivery_days == 4 for q in quotes)
        assert all(q.status == "pending" for q in quotes)

    @pytest.mark.asyncio
    async def test_no_capable_provider_gives_no_quotes(self, db, make_contract, farmer, buyer):
        contract = await make_contract(farmer, buyer, status="active")
        assert await logistics_svc.request_quotes(db, buyer.id, _quote_request(contract.id, "express")) == []

    @pytest.mark.asyncio
    async def test_outsider_forbidden(self, db, providers, make_contract, make_profile, farmer, buyer):
        outsider = await make_profile("buyer", "Outsider")
        contract = await make_contract(farmer, buyer, status="active")

        with pytest.raises(ForbiddenError):
            await logistics_svc.request_quotes(db, outsider.id, _quote_request(contract.id))
        with pytest.raises(ForbiddenError):
            await logistics_svc.list_quotes(db, outsider.id, contract.id)


class TestBooking:
    @pytest.mark.asyncio
    async def test_books_cheapest_quote(self, db, providers, make_contract, farmer, buyer):
        contract = await make_contract(farmer, buyer, status="active")
        [cheapest, _] = await logistics_svc.request_quotes(db, buyer.id, _quote_request(contract.id))

        with patch("farmlink.services.notification.publish", new_callable=AsyncMock) as publish:
            shipment = await logistics_svc.book_shipment(db, buyer.id, ShipmentCreate(
                quote_id=cheapest.id, pickup_date=date(2026, 11, 2),
            ))

        assert shipment.tracking_number.startswith("TRK")
        assert shipment.status == "booked"
        assert shipment.estimated_delivery_date == date(2026, 11, 6)
        assert shipment.current_location == "Nakuru depot"
        assert [e.status for e in shipment.tracking_events] == ["booked"]
        assert shipment.quote.status == "accepted"

        event = publish.await_args.args[0]
        assert event.user_id == farmer.id
        assert event.title == "Shipment Booked"

    @pytest.mark.asyncio
    async def test_quote_books_once(self, db, providers, make_contract, farmer, buyer):
        contract = await make_contract(farmer, buyer, status="active")
        [quote, _] = await logistics_svc.request_quotes(db, buyer.id, _quote_request(contract.id))
        body = ShipmentCreate(quote_id=quote.id, pickup_date=date(2026, 11, 2))

        await logistics_svc.book_shipment(db, buyer.id, body)
        with pytest.raises(InvalidStateError, match="no longer available"):
            await logistics_svc.book_shipment(db, farmer.id, body)

        assert await db.scalar(select(func.count(Shipment.id))) == 1

    @pytest.mark.asyncio
    async def test_expired_quote_rejected(self, db, providers, make_contract, farmer, buyer):
        contract = await make_contract(farmer, buyer, status="active")
        [quote, _] = await logistics_svc.request_quotes(db, buyer.id, _quote_request(contract.id))
        await db.execute(
            update(ShippingQuote)
            .where(ShippingQuote.id == quote.id)
            .values(valid_until=datetime.now(timezone.utc) - timedelta(hours=1))
        )
        await db.commit()

        with pytest.raises(InvalidStateError, match="expired"):
            await logistics_svc.book_shipment(db, buyer.id, ShipmentCreate(
                quote_id=quote.id, pickup_date=date(2026, 11, 2),
            ))

    @pytest.mark.asyncio
    async def test_contract_must_be_active(self, db, providers, make_contract, farmer, buyer):
        contract = await make_contract(farmer, buyer, status="pending")
        [quote, _] = await logistics_svc.request_quotes(db, buyer.id, _quote_request(contract.id))

        with pytest.raises(InvalidStateError, match="active"):
            await logistics_svc.book_shipment(db, buyer.id, ShipmentCreate(
                quote_id=quote.id, pickup_date=date(2026, 11, 2),
            ))

    @pytest.mark.asyncio
    async def test_unknown_quote(self, db, buyer):
        with pytest.raises(NotFoundError):
            await logistics_svc.book_shipment(db, buyer.id, ShipmentCreate(
                quote_id=9999, pickup_date=date(2026, 11, 2),
            ))


class TestTracking:
    @pytest.fixture
    async def shipment(self, db, providers, make_contract, farmer, buyer):
        contract = await make_contract(farmer, buyer, status="active")
        [quote, _] = await logistics_svc.request_quotes(db, buyer.id, _quote_request(contract.id))
        return await logistics_svc.book_shipment(db, buyer.id, ShipmentCreate(
            quote_id=quote.id, pickup_date=date(2026, 11, 2),
        ))

    @pytest.mark.asyncio
    async def test_delivery_notifies_buyer(self, db, shipment, farmer, buyer):
        await logistics_svc.add_tracking_event(db, farmer.id, shipment.id, TrackingUpdate(
            location="Gilgil weighbridge", status="in_transit",
        ))
        with patch("farmlink.services.notification.publish", new_callable=AsyncMock) as publish:
            updated = await logistics_svc.add_tracking_event(db, farmer.id, shipment.id, TrackingUpdate(
                location="Nairobi mill", status="delivered", description="Signed for by stores",
            ))

        assert updated.status == "delivered"
        assert updated.current_location == "Nairobi mill"
        assert [e.status for e in updated.tracking_events] == ["booked", "in_transit", "delivered"]
        event = publish.await_args.args[0]
        assert event.user_id == buyer.id
        assert event.title == "Shipment Delivered"

    @pytest.mark.asyncio
    async def test_only_farmer_updates(self, db, shipment, buyer):
        with pytest.raises(ForbiddenError):
            await logistics_svc.add_tracking_event(db, buyer.id, shipment.id, TrackingUpdate(
                location="Somewhere", status="in_transit",
            ))

    @pytest.mark.asyncio
    async def test_delivered_is_final(self, db, shipment, farmer):
        await logistics_svc.add_tracking_event(db, farmer.id, shipment.id, TrackingUpdate(
            location="Nairobi mill", status="delivered",
        ))
        with pytest.raises(InvalidStateError):
            await logistics_svc.add_tracking_event(db, farmer.id, shipment.id, TrackingUpdate(
                location="Back at depot", status="in_transit",
            ))


class TestLogisticsApi:
    @pytest.mark.asyncio
    async def test_quote_book_and_list(self, client, providers, make_contract, make_profile, farmer, buyer):
        contract = await make_contract(farmer, buyer, status="active")

        resp = await client.post("/api/logistics/quotes", json={
            "contract_id": contract.id,
            "origin_address": "Nakuru depot",
            "destination_address": "Nairobi mill",
            "weight": "1000",
            "distance_km": "120",
            "service_type": "express",
        }, headers=auth_headers(buyer))
        assert resp.status_code == 201
        [quote] = resp.json()["quotes"]
        assert quote["provider"]["name"] == "Lakeside Express"
        assert Decimal(quote["estimated_cost"]) == Decimal("2160.00")
        assert quote["estimated_delivery_days"] == 2

        resp = await client.post("/api/logistics/shipments", json={
            "quote_id": quote["id"], "pickup_date": "2026-11-02",
        }, headers=auth_headers(farmer))
        assert resp.status_code == 201
        assert resp.json()["estimated_delivery_date"] == "2026-11-04"

        listing = (await client.get(
            f"/api/logistics/shipments?contract_id={contract.id}", headers=auth_headers(buyer),
        )).json()
        assert [s["status"] for s in listing["shipments"]] == ["booked"]

        outsider = await make_profile("buyer", "Outsider")
        listing = (await client.get("/api/logistics/shipments", headers=auth_headers(outsider))).json()
        assert listing["shipments"] == []

    @pytest.mark.asyncio
    async def test_unknown_service_type_rejected(self, client, make_contract, farmer, buyer):
        contract = await make_contract(farmer, buyer, status="active")

        resp = await client.post("/api/logistics/quotes", json={
            "contract_id": contract.id,
            "origin_address": "A",
            "destination_address": "B",
            "weight": "10",
            "distance_km": "5",
            "service_type": "teleport",
        }, headers=auth_headers(buyer))

        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_provider_listing(self, client, providers, buyer):
        resp = await client.get("/api/logistics/providers?type=shipping", headers=auth_headers(buyer))

        assert [p["name"] for p in resp.json()["providers"]] == ["Lakeside Express", "Rift Valley Hauliers"]

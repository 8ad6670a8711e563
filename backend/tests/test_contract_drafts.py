"""Contract templates, drafts and draft submission."""

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from conftest import auth_headers
from farmlink.api.schemas import DraftCreate, DraftUpdate, TemplateCreate
from farmlink.core.errors import ForbiddenError, InvalidStateError, NotFoundError
from farmlink.models.contract import Contract
from farmlink.services import contract_draft as draft_svc

TERMS = {
    "crop_type": "Maize",
    "quantity": "10",
    "price_per_unit": "5",
    "delivery_date": "2026-12-01",
    "quality_standards": "Grade 1, moisture below 13.5%",
}


class TestTemplates:
    @pytest.mark.asyncio
    async def test_create_and_list(self, db, farmer):
        template = await draft_svc.create_template(db, farmer.id, TemplateCreate(
            name="Grain forward sale", template_fields={"fields": ["crop_type", "quantity"]},
        ))

        assert template.created_by == farmer.id
        assert template.is_default is False
        assert [t.id for t in await draft_svc.list_templates(db)] == [template.id]

    @pytest.mark.asyncio
    async def test_name_and_fields_required(self, db, farmer):
        with pytest.raises(InvalidStateError, match="name and template_fields are required"):
            await draft_svc.create_template(db, farmer.id, TemplateCreate(name="Empty"))


class TestDrafts:
    @pytest.mark.asyncio
    async def test_only_farmers_draft(self, db, buyer):
        with pytest.raises(ForbiddenError):
            await draft_svc.create_draft(db, buyer, DraftCreate(contract_data=TERMS))

    @pytest.mark.asyncio
    async def test_unknown_template_and_buyer(self, db, farmer):
        with pytest.raises(NotFoundError, match="Template"):
            await draft_svc.create_draft(db, farmer, DraftCreate(template_id=9999))
        with pytest.raises(NotFoundError, match="Buyer"):
            await draft_svc.create_draft(db, farmer, DraftCreate(buyer_id=9999))

    @pytest.mark.asyncio
    async def test_named_buyer_can_read_but_not_edit(self, db, make_profile, farmer, buyer):
        outsider = await make_profile("buyer", "Outsider")
        draft = await draft_svc.create_draft(db, farmer, DraftCreate(buyer_id=buyer.id, contract_data=TERMS))

        assert (await draft_svc.get_draft(db, draft.id, buyer.id)).buyer.full_name == "Bob Buyer"
        assert [d.id for d in await draft_svc.list_drafts(db, buyer.id)] == [draft.id]
        with pytest.raises(ForbiddenError):
            await draft_svc.update_draft(db, draft.id, buyer.id, DraftUpdate(contract_data={}))
        with pytest.raises(ForbiddenError):
            await draft_svc.get_draft(db, draft.id, outsider.id)

    @pytest.mark.asyncio
    async def test_update_replaces_terms(self, db, farmer, buyer):
        draft = await draft_svc.create_draft(db, farmer, DraftCreate(contract_data={"crop_type": "Maize"}))

        updated = await draft_svc.update_draft(db, draft.id, farmer.id, DraftUpdate(
            contract_data=TERMS, buyer_id=buyer.id,
        ))

        assert updated.contract_data == TERMS
        assert updated.buyer_id == buyer.id


class TestSubmitDraft:
    @pytest.mark.asyncio
    async def test_submit_creates_pending_contract(self, db, farmer, buyer):
        draft = await draft_svc.create_draft(db, farmer, DraftCreate(buyer_id=buyer.id, contract_data=TERMS))

        submitted, contract = await draft_svc.submit_draft(db, draft.id, farmer)

        assert submitted.status == "submitted"
        assert submitted.contract_id == contract.id
        assert contract.status == "pending"
        assert contract.buyer_id == buyer.id
        assert contract.total_amount == Decimal("50")

    @pytest.mark.asyncio
    async def test_submit_twice_creates_one_contract(self, db, farmer):
        draft = await draft_svc.create_draft(db, farmer, DraftCreate(contract_data=TERMS))
        await draft_svc.submit_draft(db, draft.id, farmer)

        with pytest.raises(InvalidStateError, match="already been submitted"):
            await draft_svc.submit_draft(db, draft.id, farmer)
        with pytest.raises(InvalidStateError):
            await draft_svc.update_draft(db, draft.id, farmer.id, DraftUpdate(contract_data=TERMS))

        assert await db.scalar(select(func.count(Contract.id))) == 1

    @pytest.mark.asyncio
    async def test_incomplete_terms_stay_draft(self, db, farmer):
        draft = await draft_svc.create_draft(db, farmer, DraftCreate(contract_data={"crop_type": "Maize"}))

        with pytest.raises(InvalidStateError, match="Draft is incomplete: quantity"):
            await draft_svc.submit_draft(db, draft.id, farmer)

        assert (await draft_svc.get_draft(db, draft.id, farmer.id)).status == "draft"
        assert await db.scalar(select(func.count(Contract.id))) == 0


class TestDraftsApi:
    @pytest.mark.asyncio
    async def test_draft_to_contract(self, client, farmer, buyer):
        resp = await client.post("/api/contracts/templates", json={
            "name": "Grain forward sale", "template_fields": {"fields": ["crop_type"]},
        }, headers=auth_headers(farmer))
        assert resp.status_code == 201
        template_id = resp.json()["id"]

        resp = await client.post("/api/contracts/drafts", json={
            "template_id": template_id, "buyer_id": buyer.id, "contract_data": {"crop_type": "Maize"},
        }, headers=auth_headers(farmer))
        assert resp.status_code == 201
        draft = resp.json()
        assert draft["template"]["name"] == "Grain forward sale"

        resp = await client.put(
            f"/api/contracts/drafts/{draft['id']}", json={"contract_data": TERMS}, headers=auth_headers(farmer),
        )
        assert resp.json()["contract_data"] == TERMS

        resp = await client.post(f"/api/contracts/drafts/{draft['id']}/submit", headers=auth_headers(farmer))
        assert resp.status_code == 201
        body = resp.json()
        assert body["draft"]["status"] == "submitted"
        assert body["contract"]["crop_type"] == "Maize"
        assert body["contract"]["allowed_transitions"] == ["active", "cancelled"]

        listing = (await client.get("/api/contracts/drafts", headers=auth_headers(buyer))).json()
        assert [d["contract_id"] for d in listing["drafts"]] == [body["contract"]["id"]]

    @pytest.mark.asyncio
    async def test_template_without_fields_rejected(self, client, farmer):
        resp = await client.post("/api/contracts/templates", json={"name": "Empty"}, headers=auth_headers(farmer))

        assert resp.status_code == 400
        assert resp.json() == {"error": "name and template_fields are required"}

    @pytest.mark.asyncio
    async def test_templates_route_not_read_as_contract_id(self, client, farmer):
        resp = await client.get("/api/contracts/templates", headers=auth_headers(farmer))

        assert resp.status_code == 200
        assert resp.json() == {"templates": []}

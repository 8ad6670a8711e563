"""Tests for post-completion ratings."""

from decimal import Decimal

import pytest

from conftest import auth_headers
from farmlink.api.schemas import RatingSubmit
from farmlink.core.errors import ForbiddenError, InvalidStateError
from farmlink.services import rating as rating_svc


class TestSubmitRatings:
    @pytest.mark.asyncio
    async def test_upserts_per_category(self, db, make_contract, farmer, buyer):
        contract = await make_contract(farmer, buyer, status="completed")

        rows = await rating_svc.submit_ratings(db, buyer.id, RatingSubmit(
            contract_id=contract.id, reviewee_id=farmer.id,
            ratings={"overall": 4, "quality": 5}, review_text="Clean, dry grain",
        ))
        assert {r.category: r.rating for r in rows} == {"overall": 4, "quality": 5}
        assert next(r for r in rows if r.category == "overall").review_text == "Clean, dry grain"

        again = await rating_svc.submit_ratings(db, buyer.id, RatingSubmit(
            contract_id=contract.id, reviewee_id=farmer.id, ratings={"overall": 2},
        ))
        assert again[0].id == next(r.id for r in rows if r.category == "overall")
        assert again[0].rating == 2

    @pytest.mark.asyncio
    async def test_contract_must_be_completed(self, db, make_contract, farmer, buyer):
        contract = await make_contract(farmer, buyer, status="active")
        with pytest.raises(InvalidStateError):
            await rating_svc.submit_ratings(db, buyer.id, RatingSubmit(
                contract_id=contract.id, reviewee_id=farmer.id, ratings={"overall": 5},
            ))

    @pytest.mark.asyncio
    async def test_outsider_forbidden(self, db, make_contract, make_profile, farmer, buyer):
        outsider = await make_profile("buyer", "Outsider")
        contract = await make_contract(farmer, buyer, status="completed")
        with pytest.raises(ForbiddenError):
            await rating_svc.submit_ratings(db, outsider.id, RatingSubmit(
                contract_id=contract.id, reviewee_id=farmer.id, ratings={"overall": 5},
            ))

    @pytest.mark.asyncio
    async def test_cannot_rate_self(self, db, make_contract, farmer, buyer):
        contract = await make_contract(farmer, buyer, status="completed")
        with pytest.raises(InvalidStateError):
            await rating_svc.submit_ratings(db, buyer.id, RatingSubmit(
                contract_id=contract.id, reviewee_id=buyer.id, ratings={"overall": 5},
            ))


class TestRatingsApi:
    @pytest.mark.asyncio
    async def test_summary_averages_overall_only(self, client, make_contract, make_profile, farmer, buyer):
        second_buyer = await make_profile("buyer", "Second Buyer")
        first = await make_contract(farmer, buyer, status="completed")
        second = await make_contract(farmer, second_buyer, status="completed")

        for reviewer, contract, score in ((buyer, first, 5), (second_buyer, second, 4)):
            resp = await client.post(
                "/api/ratings",
                json={
                    "contract_id": contract.id,
                    "reviewee_id": farmer.id,
                    "ratings": {"overall": score, "timeliness": 1},
                },
                headers=auth_headers(reviewer),
            )
            assert resp.status_code == 201, resp.text

        data = (await client.get(f"/api/ratings/{farmer.id}")).json()

        assert Decimal(data["summary"]["average_rating"]) == Decimal("4.50")
        assert data["summary"]["total_reviews"] == 2
        assert {r["reviewer"]["full_name"] for r in data["reviews"]} == {"Bob Buyer", "Second Buyer"}

    @pytest.mark.asyncio
    async def test_no_reviews(self, client, farmer):
        data = (await client.get(f"/api/ratings/{farmer.id}")).json()
        assert data["summary"]["total_reviews"] == 0
        assert data["reviews"] == []

    @pytest.mark.asyncio
    async def test_score_out_of_range(self, client, make_contract, farmer, buyer):
        contract = await make_contract(farmer, buyer, status="completed")
        resp = await client.post(
            "/api/ratings",
            json={"contract_id": contract.id, "reviewee_id": farmer.id, "ratings": {"overall": 6}},
            headers=auth_headers(buyer),
        )
        assert resp.status_code == 400

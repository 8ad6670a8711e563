from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from farmlink.api.schemas import RatingSubmit
from farmlink.core.errors import ForbiddenError, InvalidStateError
from farmlink.models.contract import Contract
from farmlink.models.rating import Rating
from farmlink.services.contract_state_machine import ContractStatus

OVERALL = "overall"
RECENT_REVIEWS = 10


async def submit_ratings(db: AsyncSession, reviewer_id: int, data: RatingSubmit) -> list[Rating]:
    """Upsert one row per category for (contract, reviewer, reviewee)."""
    result = await db.execute(
        select(Contract).where(
            Contract.id == data.contract_id,
            Contract.status == ContractStatus.COMPLETED,
        )
    )
    contract = result.scalar_one_or_none()
    if contract is None:
        raise InvalidStateError("Contract not found or not completed")
    if reviewer_id not in (contract.farmer_id, contract.buyer_id):
        raise ForbiddenError("Unauthorized to review this contract")
    other_party = contract.buyer_id if reviewer_id == contract.farmer_id else contract.farmer_id
    if data.reviewee_id != other_party:
        raise InvalidStateError("Reviewee must be the other party of the contract")

    existing = await db.execute(
        select(Rating).where(
            Rating.contract_id == contract.id,
            Rating.reviewer_id == reviewer_id,
            Rating.reviewee_id == data.reviewee_id,
        )
    )
    by_category = {r.category: r for r in existing.scalars().all()}

    rows: list[Rating] = []
    for category, score in data.ratings.items():
        review_text = data.review_text if category == OVERALL else None
        row = by_category.get(category)
        if row is None:
            row = Rating(
                contract_id=contract.id,
                reviewer_id=reviewer_id,
                reviewee_id=data.reviewee_id,
                category=category,
                rating=score,
                review_text=review_text,
            )
            db.add(row)
        else:
            row.rating = score
            row.review_text = review_text
        rows.append(row)

    await db.commit()
    for row in rows:
        await db.refresh(row)
    return rows


async def get_rating_summary(db: AsyncSession, user_id: int) -> dict:
    stats = await db.execute(
        select(func.avg(Rating.rating), func.count(Rating.id)).where(
            Rating.reviewee_id == user_id, Rating.category == OVERALL,
        )
    )
    average, total = stats.one()

    result = await db.execute(
        select(Rating)
        .where(Rating.reviewee_id == user_id, Rating.category == OVERALL)
        .order_by(Rating.created_at.desc(), Rating.id.desc())
        .limit(RECENT_REVIEWS)
    )
    return {
        "summary": {
            "average_rating": (
                Decimal(str(average)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
                if average is not None else Decimal("0")
            ),
            "total_reviews": total or 0,
        },
        "reviews": list(result.scalars().all()),
    }

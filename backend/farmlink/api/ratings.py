from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from farmlink.api.schemas import RatingResponse, RatingSubmit, RatingSummaryResponse
from farmlink.core.deps import get_db
from farmlink.core.security import get_current_user
from farmlink.models.profile import Profile
from farmlink.services import rating as rating_svc

router = APIRouter(prefix="/ratings", tags=["ratings"])


@router.post("", response_model=list[RatingResponse], status_code=201)
async def submit_ratings(
    body: RatingSubmit,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Rate the other party of a completed contract; re-submitting overwrites."""
    return await rating_svc.submit_ratings(db, user.id, body)


@router.get("/{user_id}", response_model=RatingSummaryResponse)
async def get_ratings(user_id: int, db: AsyncSession = Depends(get_db)):
    return await rating_svc.get_rating_summary(db, user_id)

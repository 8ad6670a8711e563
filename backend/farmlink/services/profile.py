from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from farmlink.models.profile import Profile


async def get_profile_by_id(db: AsyncSession, profile_id: int) -> Profile | None:
    result = await db.execute(select(Profile).where(Profile.id == profile_id))
    return result.scalar_one_or_none()

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from farmlink.api.schemas import (
    NotificationListResponse,
    NotificationMarkRead,
    NotificationMarkReadResponse,
)
from farmlink.core.deps import get_db
from farmlink.core.security import get_current_user
from farmlink.models.profile import Profile
from farmlink.services import notification as notification_svc

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    unread_only: bool = False,
    limit: int = Query(default=50, ge=1, le=200),
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    items, unread = await notification_svc.list_notifications(
        db, user.id, unread_only=unread_only, limit=limit,
    )
    return NotificationListResponse(notifications=items, unread_count=unread)


@router.put("", response_model=NotificationMarkReadResponse)
async def mark_notifications_read(
    body: NotificationMarkRead,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    ids = None if body.mark_all else body.notification_ids
    updated = await notification_svc.mark_read(db, user.id, ids)
    return NotificationMarkReadResponse(updated=updated)

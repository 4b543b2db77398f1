"""Notification center for every registered user.

Contractor dashboards use the /contractor/notifications paths; they serve
the same per-user feed.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from propertyflow.core.database import get_db
from propertyflow.core.security import require_registered, AuthenticatedUser
from propertyflow.schemas.base import MessageResponse
from propertyflow.schemas.subscription import NotificationListResponse, NotificationResponse
from propertyflow.services.notifications import NotificationService

router = APIRouter(tags=["notifications"])


@router.get("/notifications", response_model=NotificationListResponse)
@router.get("/contractor/notifications", response_model=NotificationListResponse)
async def list_notifications(
    unread_only: bool = False,
    limit: int = 50,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_registered),
):
    service = NotificationService(db)
    notifications = await service.list_for_user(
        current_user.db_user_id, unread_only=unread_only, limit=min(max(limit, 1), 100),
    )
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in notifications],
        unread_count=await service.unread_count(current_user.db_user_id),
    )


@router.post("/notifications/read-all", response_model=MessageResponse)
@router.post("/contractor/notifications/read-all", response_model=MessageResponse)
async def mark_all_notifications_read(
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_registered),
):
    count = await NotificationService(db).mark_all_read(current_user.db_user_id)
    await db.commit()
    return MessageResponse(message=f"Marked {count} notifications as read")


@router.post("/notifications/{notification_id}/read", response_model=MessageResponse)
@router.post("/contractor/notifications/{notification_id}/read", response_model=MessageResponse)
async def mark_notification_read(
    notification_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_registered),
):
    updated = await NotificationService(db).mark_read(current_user.db_user_id, notification_id)
    if not updated:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    await db.commit()
    return MessageResponse(message="Notification marked as read")

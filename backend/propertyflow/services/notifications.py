"""In-app notifications."""

import logging
from datetime import datetime, timedelta
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from propertyflow.models.notification import Notification
from propertyflow.models.enums import NotificationType

logger = logging.getLogger(__name__)


class NotificationService:
    """Creates and reads notification-center entries."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        user_id: UUID,
        type: NotificationType,
        title: str,
        message: str,
        action_url: Optional[str] = None,
        feature: Optional[str] = None,
        meta: Optional[dict[str, Any]] = None,
    ) -> Notification:
        """Add a notification to the caller's transaction."""
        notification = Notification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            action_url=action_url,
            feature=feature,
            meta=meta,
        )
        self.db.add(notification)
        await self.db.flush()
        logger.debug("Created %s notification for user %s", type.value, user_id)
        return notification

    async def sent_within(
        self,
        user_id: UUID,
        type: NotificationType,
        feature: str,
        hours: int,
    ) -> bool:
        """True if the same notification went out in the last `hours`."""
        since = datetime.utcnow() - timedelta(hours=hours)
        result = await self.db.execute(
            select(Notification.id)
            .where(
                Notification.user_id == user_id,
                Notification.type == type,
                Notification.feature == feature,
                Notification.created_at >= since,
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def list_for_user(
        self,
        user_id: UUID,
        unread_only: bool = False,
        limit: int = 50,
    ) -> list[Notification]:
        query = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            query = query.where(Notification.is_read.is_(False))
        query = query.order_by(Notification.created_at.desc()).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def unread_count(self, user_id: UUID) -> int:
        result = await self.db.execute(
            select(func.count(Notification.id)).where(
                Notification.user_id == user_id,
                Notification.is_read.is_(False),
            )
        )
        return result.scalar_one()

    async def mark_read(self, user_id: UUID, notification_id: UUID) -> bool:
        """Mark one notification read. False if it does not belong to the user."""
        result = await self.db.execute(
            update(Notification)
            .where(Notification.id == notification_id, Notification.user_id == user_id)
            .values(is_read=True, read_at=datetime.utcnow())
        )
        return result.rowcount > 0

    async def mark_all_read(self, user_id: UUID) -> int:
        result = await self.db.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True, read_at=datetime.utcnow())
        )
        return result.rowcount

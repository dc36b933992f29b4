"""Repository layer for in-app notifications."""

import uuid
from datetime import datetime
from typing import Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from trademart.models.models import Notification


class NotificationRepository:

    @staticmethod
    async def exists_since(db: AsyncSession, user_id: uuid.UUID, notification_type: str, since: datetime) -> bool:
        result = await db.execute(
            select(func.count(Notification.id)).where(
                Notification.user_id == user_id,
                Notification.type == notification_type,
                Notification.created_at >= since,
            )
        )
        return (result.scalar_one() or 0) > 0

    @staticmethod
    async def list_for_user(
        db: AsyncSession, user_id: uuid.UUID, unread_only: bool, limit: int, offset: int
    ) -> tuple[Sequence[Notification], int]:
        criteria = [Notification.user_id == user_id]
        if unread_only:
            criteria.append(Notification.is_read.is_(False))

        total = await db.execute(select(func.count(Notification.id)).where(*criteria))
        rows = await db.execute(
            select(Notification)
            .where(*criteria)
            .order_by(Notification.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return rows.scalars().all(), int(total.scalar_one() or 0)

    @staticmethod
    async def mark_read(db: AsyncSession, user_id: uuid.UUID, notification_id: uuid.UUID) -> int:
        result = await db.execute(
            update(Notification)
            .where(Notification.id == notification_id, Notification.user_id == user_id)
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    @staticmethod
    async def mark_all_read(db: AsyncSession, user_id: uuid.UUID) -> int:
        result = await db.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

"""Notification service for in-app user notifications."""

import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from trademart.database.notification_repo import NotificationRepository
from trademart.models.models import Notification
from trademart.utils.clock import day_start, utcnow

logger = logging.getLogger("trademart.leads")

LEAD_PURCHASED = "LEAD_PURCHASED"
SUBSCRIPTION_EXPIRED = "SUBSCRIPTION_EXPIRED"

_BUCKET_LABELS = {"daily": "Daily", "weekly": "Weekly", "yearly": "Yearly"}


def exhausted_type(bucket: str) -> str:
    return f"LEAD_{bucket.upper()}_EXHAUSTED"


class NotificationService:
    """Service for managing user notifications."""

    @staticmethod
    async def create_notification(
        db: AsyncSession,
        user_id: uuid.UUID,
        notification_type: str,
        title: str,
        message: str,
        link: Optional[str] = None,
        reference_id: Optional[str] = None,
        commit: bool = True,
    ) -> Notification:
        """Create a notification for a user.

        With `commit=False` the row is only flushed, so it joins the caller's
        transaction.
        """
        notification = Notification(
            user_id=user_id,
            type=notification_type,
            title=title,
            message=message,
            link=link,
            reference_id=reference_id,
            is_read=False,
        )

        db.add(notification)
        if commit:
            await db.commit()
        else:
            await db.flush()

        return notification

    @staticmethod
    async def create_once_per_day(
        db: AsyncSession,
        user_id: uuid.UUID,
        notification_type: str,
        title: str,
        message: str,
        now: Optional[datetime] = None,
        **kwargs,
    ) -> Optional[Notification]:
        """Create the notification unless one of the same type already exists for this UTC day."""
        since = day_start(now or utcnow())
        if await NotificationRepository.exists_since(db, user_id, notification_type, since):
            return None
        return await NotificationService.create_notification(
            db, user_id, notification_type, title, message, commit=False, **kwargs
        )

    @staticmethod
    async def notify_lead_purchased(
        db: AsyncSession,
        user_id: uuid.UUID,
        product_name: Optional[str],
        reference_id: str,
    ) -> Notification:
        suffix = f" for {product_name}" if product_name else ""
        return await NotificationService.create_notification(
            db=db,
            user_id=user_id,
            notification_type=LEAD_PURCHASED,
            title="Lead purchased",
            message=f"You purchased a lead{suffix}. Contact details are now available.",
            link="/vendor/leads",
            reference_id=reference_id,
            commit=False,
        )

    @staticmethod
    async def notify_quota_exhausted(
        db: AsyncSession,
        user_id: uuid.UUID,
        bucket: str,
        now: datetime,
    ) -> Optional[Notification]:
        label = _BUCKET_LABELS.get(bucket, bucket.title())
        return await NotificationService.create_once_per_day(
            db,
            user_id,
            exhausted_type(bucket),
            title=f"{label} lead limit reached",
            message=f"You have used all {label.lower()} leads included in your plan.",
            now=now,
            link="/vendor/subscription",
        )

    @staticmethod
    async def notify_subscription_expired(
        db: AsyncSession,
        user_id: uuid.UUID,
        plan_name: Optional[str],
    ) -> Notification:
        return await NotificationService.create_notification(
            db=db,
            user_id=user_id,
            notification_type=SUBSCRIPTION_EXPIRED,
            title="Subscription expired",
            message=f"{plan_name or 'Your subscription'} has expired. Renew to keep receiving leads.",
            link="/vendor/subscription",
            commit=False,
        )

    @staticmethod
    async def list_notifications(
        db: AsyncSession, user_id: uuid.UUID, unread_only: bool = False, limit: int = 50, offset: int = 0
    ) -> tuple[list[Notification], int]:
        rows, total = await NotificationRepository.list_for_user(db, user_id, unread_only, limit, offset)
        return list(rows), total

    @staticmethod
    async def mark_read(db: AsyncSession, user_id: uuid.UUID, notification_id: uuid.UUID) -> bool:
        updated = await NotificationRepository.mark_read(db, user_id, notification_id)
        await db.commit()
        return updated > 0

    @staticmethod
    async def mark_all_read(db: AsyncSession, user_id: uuid.UUID) -> int:
        updated = await NotificationRepository.mark_all_read(db, user_id)
        await db.commit()
        logger.info("Notifications marked read", extra={"user_id": str(user_id), "count": updated})
        return updated

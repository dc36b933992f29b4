"""Repository layer for vendor plan subscriptions.

This module contains ONLY database access logic - no business rules.

Key Concepts:
- VendorPlan: a plan tier with daily/weekly/yearly lead limits
- VendorPlanSubscription: a time-bounded link between a vendor and a plan
"""

import uuid
from datetime import datetime
from typing import Optional, Sequence, Tuple

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from trademart.models.lead_enums import SubscriptionStatus
from trademart.models.models import VendorPlan, VendorPlanSubscription


class SubscriptionRepository:
    """Repository for vendor subscription database operations."""

    @staticmethod
    async def get_active_subscription(
        db: AsyncSession, vendor_id: uuid.UUID, now: datetime
    ) -> Optional[Tuple[VendorPlanSubscription, Optional[VendorPlan]]]:
        """
        Fetch the vendor's current subscription and its plan.

        A subscription is current when its status is ACTIVE and `now` falls
        within its start/end dates (missing dates are open-ended). When
        several rows qualify the one ending last wins.

        Args:
            db: Database session
            vendor_id: ID of the vendor
            now: Reference time (UTC)

        Returns:
            Tuple of (VendorPlanSubscription, VendorPlan or None) if found, None otherwise
        """
        result = await db.execute(
            select(VendorPlanSubscription, VendorPlan)
            .outerjoin(VendorPlan, VendorPlanSubscription.plan_id == VendorPlan.id)
            .where(
                VendorPlanSubscription.vendor_id == vendor_id,
                VendorPlanSubscription.status == SubscriptionStatus.ACTIVE.value,
                or_(VendorPlanSubscription.end_date.is_(None), VendorPlanSubscription.end_date > now),
                or_(VendorPlanSubscription.start_date.is_(None), VendorPlanSubscription.start_date <= now),
            )
            .order_by(VendorPlanSubscription.end_date.desc().nulls_first())
            .limit(1)
        )
        row = result.first()
        return (row[0], row[1]) if row else None

    @staticmethod
    async def list_lapsed_subscriptions(
        db: AsyncSession, now: datetime
    ) -> Sequence[Tuple[VendorPlanSubscription, Optional[VendorPlan]]]:
        result = await db.execute(
            select(VendorPlanSubscription, VendorPlan)
            .outerjoin(VendorPlan, VendorPlanSubscription.plan_id == VendorPlan.id)
            .where(
                VendorPlanSubscription.status == SubscriptionStatus.ACTIVE.value,
                VendorPlanSubscription.end_date.is_not(None),
                VendorPlanSubscription.end_date <= now,
            )
        )
        return [(sub, plan) for sub, plan in result.all()]

    @staticmethod
    async def mark_expired(db: AsyncSession, subscription_ids: Sequence[uuid.UUID]) -> int:
        if not subscription_ids:
            return 0
        result = await db.execute(
            update(VendorPlanSubscription)
            .where(VendorPlanSubscription.id.in_(subscription_ids))
            .values(status=SubscriptionStatus.EXPIRED.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    @staticmethod
    async def get_plan_by_name(db: AsyncSession, name: str) -> Optional[VendorPlan]:
        result = await db.execute(select(VendorPlan).where(VendorPlan.name == name))
        return result.scalars().first()

"""Service layer for vendor subscriptions and lead quota counters.

This module contains the business rules for plan limits and quota periods.
It orchestrates repository calls and transforms data into API-ready formats.

Key Concepts:
- Active subscription: status ACTIVE and the current time inside its start/end dates
- Quota buckets: daily (UTC day), weekly (week starting Monday 00:00 UTC) and
  yearly (calendar year). Each bucket has a limit copied from the plan and a
  used counter. Buckets are independent: a claim spends exactly one bucket.
- Lazy reset: counters are not reset by a scheduler. Whenever the quota row
  is read for a claim, a bucket whose reset timestamp falls before the
  current period start is zeroed and stamped with the new period start.
- Limit sync: limits are re-copied from the active plan on every claim, so a
  plan change takes effect without a migration.

Architecture:
- Repository: Fetches raw data from database
- Service: Applies period and limit rules, formats summaries
- Route: Orchestrates service calls and returns HTTP responses
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from trademart.core.capabilities import SchemaCapabilities
from trademart.database.identity_repo import IdentityRepository
from trademart.database.quota_repo import BUCKETS, QuotaRepository
from trademart.database.subscription_repo import SubscriptionRepository
from trademart.models.models import VendorLeadQuota, VendorPlan, VendorPlanSubscription
from trademart.services.notification_service import NotificationService
from trademart.utils.clock import as_utc, day_start, utcnow, week_start, year_start

logger = logging.getLogger("trademart.leads")

PERIOD_STARTS: dict[str, Callable[[datetime], datetime]] = {
    "daily": day_start,
    "weekly": week_start,
    "yearly": year_start,
}


@dataclass(frozen=True)
class QuotaSnapshot:
    """Limits and usage after period resets, without touching the database."""

    limits: dict[str, int]
    used: dict[str, int]

    @property
    def remaining(self) -> dict[str, int]:
        return {bucket: max(0, self.limits[bucket] - self.used[bucket]) for bucket in BUCKETS}

    @classmethod
    def empty(cls) -> "QuotaSnapshot":
        zero = {bucket: 0 for bucket in BUCKETS}
        return cls(limits=dict(zero), used=dict(zero))


@dataclass(frozen=True)
class ActiveSubscription:
    subscription: VendorPlanSubscription
    plan: Optional[VendorPlan]

    @property
    def plan_name(self) -> str:
        return self.plan.name if self.plan is not None and self.plan.name else ""

    @property
    def plan_id(self) -> Optional[uuid.UUID]:
        return self.subscription.plan_id


def _non_negative(value: Optional[int]) -> int:
    try:
        return max(0, int(value or 0))
    except (TypeError, ValueError):
        return 0


class SubscriptionService:
    """Service for vendor subscription and quota business logic."""

    @staticmethod
    def plan_limits(plan: Optional[VendorPlan]) -> dict[str, int]:
        """
        Read bucket limits from a plan.

        Missing plans and NULL or negative limits count as zero.
        """
        if plan is None:
            return {bucket: 0 for bucket in BUCKETS}
        return {bucket: _non_negative(getattr(plan, f"{bucket}_limit")) for bucket in BUCKETS}

    @staticmethod
    def needs_reset(reset_at: Optional[datetime], bucket: str, now: datetime) -> bool:
        period_start = PERIOD_STARTS[bucket](now)
        reset_at = as_utc(reset_at)
        return reset_at is None or reset_at < period_start

    @staticmethod
    def snapshot(quota: Optional[VendorLeadQuota], limits: dict[str, int], now: datetime) -> QuotaSnapshot:
        """
        Compute usage as of `now` for a quota row that may be stale.

        Used by read-only paths (quota summary, existing purchases) that must
        not write to the database.
        """
        if quota is None:
            return QuotaSnapshot(limits=dict(limits), used={bucket: 0 for bucket in BUCKETS})

        used = {}
        for bucket in BUCKETS:
            if SubscriptionService.needs_reset(getattr(quota, f"{bucket}_reset_at"), bucket, now):
                used[bucket] = 0
            else:
                used[bucket] = _non_negative(getattr(quota, f"{bucket}_used"))
        return QuotaSnapshot(limits=dict(limits), used=used)

    @staticmethod
    async def get_active_subscription(
        db: AsyncSession, vendor_id: uuid.UUID, now: Optional[datetime] = None
    ) -> Optional[ActiveSubscription]:
        row = await SubscriptionRepository.get_active_subscription(db, vendor_id, now or utcnow())
        if row is None:
            return None
        subscription, plan = row
        return ActiveSubscription(subscription=subscription, plan=plan)

    @staticmethod
    async def prepare_quota(
        db: AsyncSession,
        vendor_id: uuid.UUID,
        active: ActiveSubscription,
        now: datetime,
    ) -> VendorLeadQuota:
        """
        Load the vendor's quota row ready for a claim.

        Step 1: Create the row from plan limits if the vendor has none.
        Step 2: Reset every bucket whose period rolled over.
        Step 3: Copy the current plan limits onto the row.

        Changes are flushed, not committed; they belong to the caller's transaction.
        """
        limits = SubscriptionService.plan_limits(active.plan)

        # Step 1: Create on first use. A concurrent first claim may win the
        # unique vendor_id insert; re-read in that case.
        quota = await QuotaRepository.get_for_vendor(db, vendor_id)
        if quota is None:
            try:
                async with db.begin_nested():
                    quota = await QuotaRepository.create(db, vendor_id, active.plan_id, limits, now)
            except IntegrityError:
                quota = await QuotaRepository.get_for_vendor(db, vendor_id)
                if quota is None:
                    raise

        # Step 2: Lazy period resets. Used counters change only through guarded UPDATEs.
        stale = False
        for bucket in BUCKETS:
            if SubscriptionService.needs_reset(getattr(quota, f"{bucket}_reset_at"), bucket, now):
                await QuotaRepository.reset_period(db, quota.id, bucket, PERIOD_STARTS[bucket](now), now)
                stale = True
            elif (getattr(quota, f"{bucket}_used") or 0) < 0:
                await QuotaRepository.clear_negative(db, quota.id, bucket)
                stale = True
        if stale:
            await db.refresh(quota)

        # Step 3: Sync limits with the plan
        quota.plan_id = active.plan_id
        for bucket in BUCKETS:
            setattr(quota, f"{bucket}_limit", limits[bucket])
        quota.updated_at = now

        await db.flush()
        return quota

    @staticmethod
    async def get_quota_summary(db: AsyncSession, vendor_id: uuid.UUID, now: Optional[datetime] = None) -> dict:
        """Remaining daily/weekly/yearly counts and the current plan, for the vendor dashboard."""
        now = now or utcnow()
        active = await SubscriptionService.get_active_subscription(db, vendor_id, now)
        quota = await QuotaRepository.get_for_vendor(db, vendor_id)

        if active is None:
            snapshot = QuotaSnapshot.empty()
        else:
            snapshot = SubscriptionService.snapshot(quota, SubscriptionService.plan_limits(active.plan), now)

        return {
            "plan_name": active.plan_name if active else None,
            "subscription_status": active.subscription.status if active else None,
            "subscription_end_date": as_utc(active.subscription.end_date) if active else None,
            "limits": snapshot.limits,
            "used": snapshot.used,
            "remaining": snapshot.remaining,
        }

    @staticmethod
    async def expire_lapsed_subscriptions(
        db: AsyncSession,
        now: Optional[datetime] = None,
        capabilities: Optional[SchemaCapabilities] = None,
    ) -> int:
        """
        Mark ACTIVE subscriptions past their end date as EXPIRED.

        Vendors left without any active subscription get their quota limits
        zeroed and, when the notifications table exists, an in-app notification.

        Returns:
            Number of subscriptions expired
        """
        now = now or utcnow()
        capabilities = capabilities or SchemaCapabilities()
        lapsed = await SubscriptionRepository.list_lapsed_subscriptions(db, now)
        if not lapsed:
            return 0

        expired = await SubscriptionRepository.mark_expired(db, [sub.id for sub, _ in lapsed])

        handled: set[uuid.UUID] = set()
        for subscription, plan in lapsed:
            vendor_id = subscription.vendor_id
            if vendor_id in handled:
                continue
            handled.add(vendor_id)

            if await SubscriptionRepository.get_active_subscription(db, vendor_id, now) is not None:
                continue

            await QuotaRepository.zero_limits(db, vendor_id, now)
            if not capabilities.notifications:
                continue
            vendor = await IdentityRepository.get_vendor(db, vendor_id)
            if vendor is not None and vendor.user_id is not None:
                await NotificationService.notify_subscription_expired(
                    db, vendor.user_id, plan.name if plan is not None else None
                )

        await db.commit()
        logger.info("Expired lapsed subscriptions", extra={"expired": expired, "vendors": len(handled)})
        return expired

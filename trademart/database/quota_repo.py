"""Repository layer for vendor lead quota counters.

This module contains ONLY database access logic - no business rules.
Period resets and bucket selection live in the quota service.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from trademart.models.models import VendorLeadQuota

BUCKETS = ("daily", "weekly", "yearly")


class QuotaRepository:
    """Repository for vendor_lead_quota rows."""

    @staticmethod
    async def get_for_vendor(db: AsyncSession, vendor_id: uuid.UUID) -> Optional[VendorLeadQuota]:
        result = await db.execute(select(VendorLeadQuota).where(VendorLeadQuota.vendor_id == vendor_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def create(
        db: AsyncSession,
        vendor_id: uuid.UUID,
        plan_id: Optional[uuid.UUID],
        limits: dict[str, int],
        now: datetime,
    ) -> VendorLeadQuota:
        quota = VendorLeadQuota(
            vendor_id=vendor_id,
            plan_id=plan_id,
            daily_limit=limits["daily"],
            weekly_limit=limits["weekly"],
            yearly_limit=limits["yearly"],
            daily_used=0,
            weekly_used=0,
            yearly_used=0,
            updated_at=now,
        )
        db.add(quota)
        await db.flush()
        return quota

    @staticmethod
    async def try_increment(
        db: AsyncSession,
        quota_id: uuid.UUID,
        bucket: str,
        expected_used: int,
        now: datetime,
    ) -> bool:
        """
        Atomically add one to `<bucket>_used`.

        The UPDATE only matches while the counter still equals `expected_used`
        and is below its limit, so two concurrent claims cannot both take the
        last unit of a bucket.

        Returns:
            True when exactly one row was updated
        """
        if bucket not in BUCKETS:
            raise ValueError(f"Unknown quota bucket: {bucket}")

        used_col = getattr(VendorLeadQuota, f"{bucket}_used")
        limit_col = getattr(VendorLeadQuota, f"{bucket}_limit")
        result = await db.execute(
            update(VendorLeadQuota)
            .where(
                VendorLeadQuota.id == quota_id,
                used_col == expected_used,
                used_col < limit_col,
            )
            .values({used_col: used_col + 1, VendorLeadQuota.updated_at: now})
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    async def reset_period(
        db: AsyncSession,
        quota_id: uuid.UUID,
        bucket: str,
        period_start: datetime,
        now: datetime,
    ) -> bool:
        """
        Zero `<bucket>_used` and stamp `<bucket>_reset_at` with `period_start`.

        Only matches while the stored reset time is still before `period_start`,
        so a request that lost the race never wipes counts spent after the
        winner's reset.

        Returns:
            True when this call performed the reset
        """
        if bucket not in BUCKETS:
            raise ValueError(f"Unknown quota bucket: {bucket}")

        used_col = getattr(VendorLeadQuota, f"{bucket}_used")
        reset_col = getattr(VendorLeadQuota, f"{bucket}_reset_at")
        result = await db.execute(
            update(VendorLeadQuota)
            .where(
                VendorLeadQuota.id == quota_id,
                or_(reset_col.is_(None), reset_col < period_start),
            )
            .values({used_col: 0, reset_col: period_start, VendorLeadQuota.updated_at: now})
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    async def clear_negative(db: AsyncSession, quota_id: uuid.UUID, bucket: str) -> bool:
        if bucket not in BUCKETS:
            raise ValueError(f"Unknown quota bucket: {bucket}")

        used_col = getattr(VendorLeadQuota, f"{bucket}_used")
        result = await db.execute(
            update(VendorLeadQuota)
            .where(VendorLeadQuota.id == quota_id, used_col < 0)
            .values({used_col: 0})
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    async def zero_limits(db: AsyncSession, vendor_id: uuid.UUID, now: datetime) -> int:
        """Zero the limits; used counters and reset times are kept for a renewal in the same period."""
        result = await db.execute(
            update(VendorLeadQuota)
            .where(VendorLeadQuota.vendor_id == vendor_id)
            .values(
                daily_limit=0,
                weekly_limit=0,
                yearly_limit=0,
                plan_id=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

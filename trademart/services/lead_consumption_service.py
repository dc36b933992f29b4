"""Service layer for claiming leads against vendor quota.

A vendor claims a lead either from plan quota (daily, weekly or yearly
bucket) or by paying for it (PAID_EXTRA). The whole claim runs in one
transaction:

1. Validate input and load the vendor and the lead.
2. Return the earlier purchase unchanged if this vendor already has one,
   even when the lead has since been closed. Then check lead status and ownership.
3. Require an active subscription.
4. Enforce the purchaser cap on marketplace leads (row locked FOR UPDATE).
5. Prepare the quota row (create, period resets, limit sync) and spend one
   unit from the first bucket with capacity, using a guarded UPDATE that is
   retried when another request changed the counter in between.
6. Insert the purchase, mark the lead PURCHASED, write the status history
   row and notifications, then commit.

Business outcomes (quota exhausted, cap reached, ...) are returned as a
ConsumptionResult; database failures are raised as AppException subclasses.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from trademart.core.capabilities import SchemaCapabilities
from trademart.core.config import settings
from trademart.core.db import translate_db_error
from trademart.database.identity_repo import IdentityRepository
from trademart.database.lead_repo import LeadRepository
from trademart.database.quota_repo import QuotaRepository
from trademart.models.lead_enums import (
    ConsumptionMode,
    ConsumptionType,
    HistorySource,
    LeadStatus,
    VendorLeadStatus,
)
from trademart.models.models import Lead, LeadPurchase, LeadStatusHistory
from trademart.services.notification_service import NotificationService
from trademart.services.subscription_service import ActiveSubscription, SubscriptionService
from trademart.utils.clock import as_utc, utcnow
from trademart.utils.exceptions import ServiceUnavailableException

logger = logging.getLogger("trademart.leads")

STATUS_BY_CODE = {
    "INVALID_INPUT": 400,
    "VENDOR_NOT_FOUND": 404,
    "LEAD_NOT_FOUND": 404,
    "LEAD_UNAVAILABLE": 409,
    "LEAD_NOT_PURCHASABLE": 409,
    "SUBSCRIPTION_INACTIVE": 403,
    "LEAD_CAP_REACHED": 409,
    "PAID_REQUIRED": 402,
}

PURCHASABLE_STATUSES = {"", LeadStatus.AVAILABLE.value, LeadStatus.PURCHASED.value}
PAID_MODES = {ConsumptionMode.BUY_EXTRA, ConsumptionMode.PAID}

# Bucket order per mode; paid modes never touch a bucket.
BUCKET_ORDER = {
    ConsumptionMode.AUTO: ("daily", "weekly", "yearly"),
    ConsumptionMode.USE_WEEKLY: ("weekly", "yearly"),
}

CONSUMPTION_TYPE_BY_BUCKET = {
    "daily": ConsumptionType.DAILY_INCLUDED,
    "weekly": ConsumptionType.WEEKLY_INCLUDED,
    "yearly": ConsumptionType.YEARLY_INCLUDED,
}


@dataclass
class ConsumptionResult:
    success: bool
    code: str
    message: str = ""
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def status_code(self) -> int:
        if self.success:
            return 200 if self.payload.get("existing_purchase") else 201
        return STATUS_BY_CODE.get(self.code, 400)

    @classmethod
    def failure(cls, code: str, message: str, **payload: Any) -> "ConsumptionResult":
        return cls(success=False, code=code, message=message, payload=payload)


def normalize_mode(mode: Any) -> ConsumptionMode:
    if isinstance(mode, ConsumptionMode):
        return mode
    raw = str(mode or "").strip().upper()
    try:
        return ConsumptionMode(raw)
    except ValueError:
        return ConsumptionMode.AUTO


def clamp_price(value: Any) -> float:
    """Negative, non-numeric and non-finite prices become 0."""
    try:
        price = float(value)
    except (TypeError, ValueError):
        return 0.0
    if price != price or price in (float("inf"), float("-inf")) or price < 0:
        return 0.0
    return round(price, 2)


def serialize_purchase(purchase: LeadPurchase) -> dict[str, Any]:
    return {
        "id": str(purchase.id),
        "vendor_id": str(purchase.vendor_id),
        "lead_id": str(purchase.lead_id),
        "amount": purchase.amount,
        "payment_status": purchase.payment_status,
        "consumption_type": purchase.consumption_type,
        "purchase_price": purchase.purchase_price,
        "purchase_datetime": as_utc(purchase.purchase_datetime),
        "subscription_plan_name": purchase.subscription_plan_name,
        "lead_status": purchase.lead_status,
    }


def _to_uuid(value: Any) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value).strip())
    except (TypeError, ValueError, AttributeError):
        return None


class LeadConsumptionService:
    """Service for the lead claim transaction."""

    @staticmethod
    async def consume(
        db: AsyncSession,
        vendor_id: Any,
        lead_id: Any,
        mode: Any = ConsumptionMode.AUTO,
        purchase_price: Any = None,
        capabilities: Optional[SchemaCapabilities] = None,
        actor_user_id: Optional[uuid.UUID] = None,
        now: Optional[datetime] = None,
    ) -> ConsumptionResult:
        """Claim `lead_id` for `vendor_id`; see the module docstring for the steps."""
        try:
            return await LeadConsumptionService._consume(
                db,
                vendor_id,
                lead_id,
                normalize_mode(mode),
                purchase_price,
                capabilities or SchemaCapabilities(),
                actor_user_id,
                as_utc(now) or utcnow(),
            )
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.error(
                "Lead consumption failed",
                extra={"vendor_id": str(vendor_id), "lead_id": str(lead_id), "error": str(exc)},
            )
            raise translate_db_error(exc) from exc

    @staticmethod
    async def _consume(
        db: AsyncSession,
        raw_vendor_id: Any,
        raw_lead_id: Any,
        mode: ConsumptionMode,
        requested_price: Any,
        capabilities: SchemaCapabilities,
        actor_user_id: Optional[uuid.UUID],
        now: datetime,
    ) -> ConsumptionResult:
        vendor_id = _to_uuid(raw_vendor_id)
        lead_id = _to_uuid(raw_lead_id)
        if vendor_id is None or lead_id is None:
            return ConsumptionResult.failure("INVALID_INPUT", "vendor_id and lead_id are required")

        vendor = await IdentityRepository.get_vendor(db, vendor_id)
        if vendor is None:
            return ConsumptionResult.failure("VENDOR_NOT_FOUND", "Vendor not found")
        vendor_user_id = vendor.user_id

        lead = await LeadRepository.get_lead_for_update(db, lead_id)
        if lead is None:
            return ConsumptionResult.failure("LEAD_NOT_FOUND", "Lead not found")

        existing = await LeadRepository.get_purchase(db, vendor_id, lead_id)
        if existing is not None:
            return await LeadConsumptionService._existing_result(db, vendor_id, existing, now)

        lead_status = str(lead.status or "").strip().upper()
        if lead_status not in PURCHASABLE_STATUSES:
            return ConsumptionResult.failure("LEAD_UNAVAILABLE", "Lead no longer available")

        if lead.vendor_id is not None and lead.vendor_id != vendor_id:
            return ConsumptionResult.failure("LEAD_NOT_PURCHASABLE", "This lead is not purchasable")

        active = await SubscriptionService.get_active_subscription(db, vendor_id, now)
        if active is None:
            return ConsumptionResult.failure(
                "SUBSCRIPTION_INACTIVE", "No active subscription plan", moved_to_my_leads=False
            )

        if lead.vendor_id is None:
            purchasers = await LeadRepository.count_purchases(db, lead_id)
            if purchasers >= settings.MARKETPLACE_MAX_VENDORS_PER_LEAD:
                return ConsumptionResult.failure(
                    "LEAD_CAP_REACHED",
                    f"This lead has reached maximum {settings.MARKETPLACE_MAX_VENDORS_PER_LEAD} vendors limit",
                )

        quota = await SubscriptionService.prepare_quota(db, vendor_id, active, now)

        consumed_bucket: Optional[str] = None
        if mode in PAID_MODES:
            consumption_type = ConsumptionType.PAID_EXTRA
        else:
            consumed_bucket = await LeadConsumptionService._spend_bucket(db, quota, BUCKET_ORDER[mode], now)
            if consumed_bucket is None:
                remaining = SubscriptionService.snapshot(
                    quota, SubscriptionService.plan_limits(active.plan), now
                ).remaining
                plan_name = active.plan_name
                await db.rollback()
                return ConsumptionResult.failure(
                    "PAID_REQUIRED",
                    "Included quota exhausted. Paid consumption required.",
                    remaining=remaining,
                    subscription_plan_name=plan_name,
                    moved_to_my_leads=False,
                )
            consumption_type = CONSUMPTION_TYPE_BY_BUCKET[consumed_bucket]

        effective_price = 0.0
        if consumption_type == ConsumptionType.PAID_EXTRA:
            if requested_price is None:
                requested_price = lead.price if lead.price is not None else settings.DEFAULT_LEAD_PRICE
            effective_price = clamp_price(requested_price)

        plan_name = active.plan_name
        purchase = LeadPurchase(
            vendor_id=vendor_id,
            lead_id=lead_id,
            amount=effective_price,
            payment_status="COMPLETED",
            consumption_type=consumption_type.value,
            purchase_price=effective_price,
            purchase_datetime=now,
            subscription_plan_name=plan_name or None,
            lead_status=VendorLeadStatus.ACTIVE.value,
            updated_at=now,
        )
        try:
            await LeadRepository.add_purchase(db, purchase)
        except IntegrityError:
            # Double submit: the other request's purchase is the result.
            await db.rollback()
            logger.info(
                "Concurrent purchase detected; returning existing purchase",
                extra={"vendor_id": str(vendor_id), "lead_id": str(lead_id)},
            )
            existing = await LeadRepository.get_purchase(db, vendor_id, lead_id)
            if existing is None:
                raise
            return await LeadConsumptionService._existing_result(db, vendor_id, existing, now)

        lead.status = LeadStatus.PURCHASED.value
        await db.flush()

        if capabilities.lead_status_history:
            await LeadConsumptionService._record_history(db, lead, purchase, vendor_id, actor_user_id, now)

        await db.refresh(quota)
        remaining = SubscriptionService.snapshot(quota, SubscriptionService.plan_limits(active.plan), now).remaining

        if vendor_user_id is not None and capabilities.notifications:
            await LeadConsumptionService._notify(db, vendor_user_id, lead, purchase, consumed_bucket, remaining, now)

        payload = {
            "existing_purchase": False,
            "consumption_type": consumption_type.value,
            "remaining": remaining,
            "moved_to_my_leads": True,
            "purchase_datetime": now,
            "plan_name": plan_name,
            "subscription_plan_name": plan_name,
            "lead_status": purchase.lead_status,
            "purchase": serialize_purchase(purchase),
        }
        await db.commit()

        logger.info(
            "Lead purchased",
            extra={
                "vendor_id": str(vendor_id),
                "lead_id": str(lead_id),
                "consumption_type": consumption_type.value,
                "mode": mode.value,
            },
        )
        return ConsumptionResult(success=True, code="OK", payload=payload)

    @staticmethod
    async def _spend_bucket(db: AsyncSession, quota, order: tuple[str, ...], now: datetime) -> Optional[str]:
        """
        Spend one unit from the first bucket in `order` with capacity.

        Returns the bucket name, or None when every bucket in `order` is empty.
        A guarded UPDATE that matches no row means another request moved the
        counter; the row is re-read and the decision made again.
        """
        for _ in range(max(1, settings.QUOTA_UPDATE_RETRIES)):
            bucket = next(
                (b for b in order if (getattr(quota, f"{b}_used") or 0) < (getattr(quota, f"{b}_limit") or 0)),
                None,
            )
            if bucket is None:
                return None

            expected = getattr(quota, f"{bucket}_used") or 0
            if await QuotaRepository.try_increment(db, quota.id, bucket, expected, now):
                return bucket

            await db.refresh(quota)

        logger.warning("Quota update contention; giving up", extra={"quota_id": str(quota.id)})
        raise ServiceUnavailableException("Lead quota is busy, please retry")

    @staticmethod
    async def _existing_result(
        db: AsyncSession, vendor_id: uuid.UUID, existing: LeadPurchase, now: datetime
    ) -> ConsumptionResult:
        active = await SubscriptionService.get_active_subscription(db, vendor_id, now)
        quota = await QuotaRepository.get_for_vendor(db, vendor_id)
        limits = SubscriptionService.plan_limits(active.plan if active else None)
        remaining = SubscriptionService.snapshot(quota, limits, now).remaining
        plan_name = existing.subscription_plan_name or (active.plan_name if active else "")

        return ConsumptionResult(
            success=True,
            code="OK",
            payload={
                "existing_purchase": True,
                "consumption_type": str(existing.consumption_type or ConsumptionType.PAID_EXTRA.value).upper(),
                "remaining": remaining,
                "moved_to_my_leads": True,
                "purchase_datetime": as_utc(existing.purchase_datetime) or now,
                "plan_name": plan_name,
                "subscription_plan_name": plan_name,
                "lead_status": existing.lead_status or VendorLeadStatus.ACTIVE.value,
                "purchase": serialize_purchase(existing),
            },
        )

    @staticmethod
    async def _record_history(
        db: AsyncSession,
        lead: Lead,
        purchase: LeadPurchase,
        vendor_id: uuid.UUID,
        actor_user_id: Optional[uuid.UUID],
        now: datetime,
    ) -> None:
        try:
            async with db.begin_nested():
                await LeadRepository.add_history(
                    db,
                    LeadStatusHistory(
                        lead_id=lead.id,
                        vendor_id=vendor_id,
                        lead_purchase_id=purchase.id,
                        status=VendorLeadStatus.ACTIVE.value,
                        note="Lead purchased",
                        source=HistorySource.PURCHASE.value,
                        created_by=actor_user_id,
                        created_at=now,
                    ),
                )
        except SQLAlchemyError as exc:
            logger.warning(
                "Lead status history write failed",
                extra={"lead_id": str(lead.id), "vendor_id": str(vendor_id), "error": str(exc)},
            )

    @staticmethod
    async def _notify(
        db: AsyncSession,
        user_id: uuid.UUID,
        lead: Lead,
        purchase: LeadPurchase,
        consumed_bucket: Optional[str],
        remaining: dict[str, int],
        now: datetime,
    ) -> None:
        try:
            async with db.begin_nested():
                await NotificationService.notify_lead_purchased(
                    db, user_id, lead.product_name or lead.title, str(purchase.id)
                )
        except SQLAlchemyError as exc:
            logger.warning("Lead purchase notification failed", extra={"user_id": str(user_id), "error": str(exc)})

        if consumed_bucket is None or remaining.get(consumed_bucket) != 0:
            return
        try:
            async with db.begin_nested():
                await NotificationService.notify_quota_exhausted(db, user_id, consumed_bucket, now)
        except SQLAlchemyError as exc:
            logger.warning("Quota exhaustion notification failed", extra={"user_id": str(user_id), "error": str(exc)})

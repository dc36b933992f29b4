from datetime import timedelta

import pytest
from sqlalchemy import func, select

from trademart.core.capabilities import SchemaCapabilities
from trademart.core.config import settings
from trademart.database.lead_repo import LeadRepository
from trademart.database.quota_repo import QuotaRepository
from trademart.models.models import Lead, LeadPurchase, LeadStatusHistory, Notification, VendorLeadQuota
from trademart.services.lead_consumption_service import LeadConsumptionService, clamp_price, normalize_mode
from trademart.models.lead_enums import ConsumptionMode
from trademart.utils.clock import day_start, utcnow, week_start, year_start
from trademart.utils.exceptions import ServiceUnavailableException

pytestmark = pytest.mark.anyio


async def consume(session_factory, vendor_id, lead_id, **kwargs):
    async with session_factory() as session:
        return await LeadConsumptionService.consume(session, vendor_id, lead_id, **kwargs)


async def count(session_factory, stmt):
    async with session_factory() as session:
        return (await session.execute(stmt)).scalar_one()


async def test_first_claim_uses_daily_bucket(factory, session_factory):
    vendor = await factory.subscribed_vendor(daily=2, weekly=5, yearly=20)
    lead = await factory.lead()

    result = await consume(session_factory, vendor.id, lead.id)

    assert result.success
    assert result.status_code == 201
    assert result.payload["consumption_type"] == "DAILY_INCLUDED"
    assert result.payload["remaining"] == {"daily": 1, "weekly": 5, "yearly": 20}
    assert result.payload["existing_purchase"] is False
    assert result.payload["moved_to_my_leads"] is True
    assert result.payload["plan_name"] == "Growth"
    assert result.payload["purchase"]["lead_id"] == str(lead.id)

    async with session_factory() as session:
        stored = await session.get(Lead, lead.id)
        assert stored.status == "PURCHASED"


async def test_claim_is_idempotent_per_vendor_and_lead(factory, session_factory):
    vendor = await factory.subscribed_vendor(daily=2, weekly=5, yearly=20)
    lead = await factory.lead()

    first = await consume(session_factory, vendor.id, lead.id)
    second = await consume(session_factory, vendor.id, lead.id)

    assert second.success
    assert second.status_code == 200
    assert second.payload["existing_purchase"] is True
    assert second.payload["purchase"]["id"] == first.payload["purchase"]["id"]
    assert second.payload["remaining"] == first.payload["remaining"]
    assert await count(session_factory, select(func.count(LeadPurchase.id))) == 1


async def test_auto_moves_to_weekly_when_daily_used_up(factory, session_factory, db):
    now = utcnow()
    vendor = await factory.subscribed_vendor(daily=2, weekly=5, yearly=20)
    db.add(
        VendorLeadQuota(
            vendor_id=vendor.id,
            daily_limit=2,
            weekly_limit=5,
            yearly_limit=20,
            daily_used=2,
            daily_reset_at=day_start(now),
            weekly_reset_at=week_start(now),
            yearly_reset_at=year_start(now),
        )
    )
    await db.commit()
    lead = await factory.lead()

    result = await consume(session_factory, vendor.id, lead.id, now=now)

    assert result.success
    assert result.payload["consumption_type"] == "WEEKLY_INCLUDED"
    assert result.payload["remaining"] == {"daily": 0, "weekly": 4, "yearly": 20}


async def test_stale_daily_counter_is_reset(factory, session_factory, db):
    now = utcnow()
    vendor = await factory.subscribed_vendor(daily=2, weekly=5, yearly=20)
    db.add(
        VendorLeadQuota(
            vendor_id=vendor.id,
            daily_limit=2,
            weekly_limit=5,
            yearly_limit=20,
            daily_used=2,
            daily_reset_at=day_start(now) - timedelta(days=1),
            weekly_reset_at=week_start(now),
            yearly_reset_at=year_start(now),
        )
    )
    await db.commit()
    lead = await factory.lead()

    result = await consume(session_factory, vendor.id, lead.id, now=now)

    assert result.payload["consumption_type"] == "DAILY_INCLUDED"
    assert result.payload["remaining"]["daily"] == 1


async def test_use_weekly_leaves_daily_untouched(factory, session_factory):
    vendor = await factory.subscribed_vendor(daily=2, weekly=5, yearly=20)
    lead = await factory.lead()

    result = await consume(session_factory, vendor.id, lead.id, mode="use_weekly")

    assert result.payload["consumption_type"] == "WEEKLY_INCLUDED"
    assert result.payload["remaining"] == {"daily": 2, "weekly": 4, "yearly": 20}


async def test_exhausted_quota_requires_payment(factory, session_factory):
    vendor = await factory.subscribed_vendor(daily=1, weekly=0, yearly=0)
    first_lead = await factory.lead()
    second_lead = await factory.lead(title="Steel almirah")

    assert (await consume(session_factory, vendor.id, first_lead.id)).success
    result = await consume(session_factory, vendor.id, second_lead.id)

    assert not result.success
    assert result.code == "PAID_REQUIRED"
    assert result.status_code == 402
    assert result.payload["remaining"] == {"daily": 0, "weekly": 0, "yearly": 0}
    assert result.payload["subscription_plan_name"] == "Growth"
    assert result.payload["moved_to_my_leads"] is False

    async with session_factory() as session:
        assert (await session.get(Lead, second_lead.id)).status == "AVAILABLE"
    assert await count(session_factory, select(func.count(LeadPurchase.id))) == 1


async def test_paid_modes_skip_buckets_and_clamp_price(factory, session_factory):
    vendor = await factory.subscribed_vendor(daily=2, weekly=5, yearly=20)
    lead_a = await factory.lead(price=40)
    lead_b = await factory.lead(price=40)
    lead_c = await factory.lead(price=None)

    default_price = await consume(session_factory, vendor.id, lead_a.id, mode="PAID")
    explicit = await consume(session_factory, vendor.id, lead_b.id, mode="BUY_EXTRA", purchase_price=120.5)
    negative = await consume(session_factory, vendor.id, lead_c.id, mode="BUY_EXTRA", purchase_price=-5)

    for result in (default_price, explicit, negative):
        assert result.payload["consumption_type"] == "PAID_EXTRA"
        assert result.payload["remaining"] == {"daily": 2, "weekly": 5, "yearly": 20}
    assert default_price.payload["purchase"]["purchase_price"] == 40
    assert explicit.payload["purchase"]["purchase_price"] == 120.5
    assert negative.payload["purchase"]["purchase_price"] == 0


async def test_subscription_required(factory, session_factory):
    no_plan = await factory.vendor()
    expired = await factory.vendor()
    await factory.subscription(expired, end_date=utcnow() - timedelta(days=1))
    lead = await factory.lead()

    for vendor in (no_plan, expired):
        result = await consume(session_factory, vendor.id, lead.id, mode="PAID")
        assert result.code == "SUBSCRIPTION_INACTIVE"
        assert result.status_code == 403


async def test_marketplace_cap_of_five_vendors(factory, session_factory):
    lead = await factory.lead()
    holders = []
    for _ in range(5):
        holder = await factory.subscribed_vendor()
        await factory.purchase(holder, lead)
        holders.append(holder)
    sixth = await factory.subscribed_vendor()

    rejected = await consume(session_factory, sixth.id, lead.id)
    assert rejected.code == "LEAD_CAP_REACHED"
    assert rejected.status_code == 409

    again = await consume(session_factory, holders[0].id, lead.id)
    assert again.success and again.payload["existing_purchase"] is True


async def test_direct_leads_skip_cap_and_reject_other_vendors(factory, session_factory):
    owner = await factory.subscribed_vendor()
    other = await factory.subscribed_vendor()
    lead = await factory.lead(vendor_id=owner.id)

    assert (await consume(session_factory, other.id, lead.id)).code == "LEAD_NOT_PURCHASABLE"
    assert (await consume(session_factory, owner.id, lead.id)).success


async def test_validation_failures(factory, session_factory):
    vendor = await factory.subscribed_vendor()
    closed = await factory.lead(status="CLOSED")

    assert (await consume(session_factory, vendor.id, "not-a-uuid")).code == "INVALID_INPUT"
    assert (await consume(session_factory, None, closed.id)).status_code == 400
    missing_vendor = await consume(session_factory, "7c0ad3a4-3f7e-4a55-9d0e-0f3c8a7a0c11", closed.id)
    assert missing_vendor.code == "VENDOR_NOT_FOUND"
    missing_lead = await consume(session_factory, vendor.id, "7c0ad3a4-3f7e-4a55-9d0e-0f3c8a7a0c11")
    assert missing_lead.code == "LEAD_NOT_FOUND"
    unavailable = await consume(session_factory, vendor.id, closed.id)
    assert unavailable.code == "LEAD_UNAVAILABLE"
    assert unavailable.status_code == 409


async def test_existing_purchase_returned_after_lead_closed(factory, session_factory):
    vendor = await factory.subscribed_vendor()
    latecomer = await factory.subscribed_vendor()
    lead = await factory.lead()
    first = await consume(session_factory, vendor.id, lead.id)
    async with session_factory() as session:
        (await session.get(Lead, lead.id)).status = "CLOSED"
        await session.commit()

    again = await consume(session_factory, vendor.id, lead.id)

    assert again.success
    assert again.payload["existing_purchase"] is True
    assert again.payload["purchase"]["id"] == first.payload["purchase"]["id"]
    assert (await consume(session_factory, latecomer.id, lead.id)).code == "LEAD_UNAVAILABLE"


async def test_contended_quota_gives_up_with_retryable_error(factory, session_factory, monkeypatch):
    vendor = await factory.subscribed_vendor()
    lead = await factory.lead()
    attempts = []

    async def always_lose(db, quota_id, bucket, expected_used, now):
        attempts.append(bucket)
        return False

    monkeypatch.setattr(QuotaRepository, "try_increment", staticmethod(always_lose))

    with pytest.raises(ServiceUnavailableException) as excinfo:
        await consume(session_factory, vendor.id, lead.id)

    assert excinfo.value.status_code == 503
    assert excinfo.value.details == {"retryable": True}
    assert len(attempts) == settings.QUOTA_UPDATE_RETRIES
    assert await count(session_factory, select(func.count(LeadPurchase.id))) == 0


async def test_double_submit_returns_first_purchase_without_second_charge(factory, session_factory, monkeypatch):
    vendor = await factory.subscribed_vendor(daily=2, weekly=5, yearly=20)
    lead = await factory.lead()
    first = await consume(session_factory, vendor.id, lead.id)

    # The second request misses the pre-check and hits the unique constraint.
    original_get_purchase = LeadRepository.get_purchase
    missed = []

    async def miss_first_lookup(db, vendor_id, lead_id):
        if not missed:
            missed.append(lead_id)
            return None
        return await original_get_purchase(db, vendor_id, lead_id)

    monkeypatch.setattr(LeadRepository, "get_purchase", staticmethod(miss_first_lookup))

    second = await consume(session_factory, vendor.id, lead.id)

    assert missed == [lead.id]
    assert second.success
    assert second.status_code == 200
    assert second.payload["existing_purchase"] is True
    assert second.payload["purchase"]["id"] == first.payload["purchase"]["id"]
    assert await count(session_factory, select(func.count(LeadPurchase.id))) == 1
    async with session_factory() as session:
        quota = await QuotaRepository.get_for_vendor(session, vendor.id)
        assert (quota.daily_used, quota.weekly_used, quota.yearly_used) == (1, 0, 0)


async def test_purchase_writes_history_and_notifications(factory, session_factory):
    vendor = await factory.subscribed_vendor(daily=1, weekly=5, yearly=20)
    lead = await factory.lead()

    result = await consume(session_factory, vendor.id, lead.id)
    assert result.payload["remaining"]["daily"] == 0

    async with session_factory() as session:
        history = (await session.execute(select(LeadStatusHistory))).scalars().all()
        assert [(h.status, h.source) for h in history] == [("ACTIVE", "PURCHASE")]
        assert str(history[0].lead_purchase_id) == result.payload["purchase"]["id"]

        types = (
            await session.execute(select(Notification.type).where(Notification.user_id == vendor.user_id))
        ).scalars().all()
        assert sorted(types) == ["LEAD_DAILY_EXHAUSTED", "LEAD_PURCHASED"]


async def test_history_skipped_when_table_unavailable(factory, session_factory):
    vendor = await factory.subscribed_vendor()
    lead = await factory.lead()

    result = await consume(
        session_factory, vendor.id, lead.id, capabilities=SchemaCapabilities(lead_status_history=False)
    )

    assert result.success
    assert await count(session_factory, select(func.count(LeadStatusHistory.id))) == 0


async def test_mode_and_price_normalization():
    assert normalize_mode(None) is ConsumptionMode.AUTO
    assert normalize_mode("bogus") is ConsumptionMode.AUTO
    assert normalize_mode(" paid ") is ConsumptionMode.PAID
    assert clamp_price("abc") == 0.0
    assert clamp_price(float("nan")) == 0.0
    assert clamp_price("99.999") == 100.0

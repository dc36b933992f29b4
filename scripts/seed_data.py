"""Seed database with initial data (vendor plans, demo vendor, marketplace leads)."""

import asyncio
from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from trademart.core.config import settings
from trademart.core.db import _ensure_async_url
from trademart.core.security import hash_password
from trademart.database.identity_repo import IdentityRepository
from trademart.database.subscription_repo import SubscriptionRepository
from trademart.models.lead_enums import LeadStatus, SubscriptionStatus, UserRole
from trademart.models.models import Lead, VendorPlan, VendorPlanSubscription
from trademart.utils.clock import utcnow


async def seed_plans(session: AsyncSession) -> None:
    """Create or update vendor plans."""
    plans_data = [
        {"name": "Starter", "price": 0, "daily_limit": 2, "weekly_limit": 10, "yearly_limit": 100},
        {"name": "Growth", "price": 4999, "daily_limit": 10, "weekly_limit": 50, "yearly_limit": 1500},
        {"name": "Enterprise", "price": 19999, "daily_limit": 50, "weekly_limit": 250, "yearly_limit": 10000},
    ]

    for plan_data in plans_data:
        existing_plan = await SubscriptionRepository.get_plan_by_name(session, plan_data["name"])

        if existing_plan:
            for key, value in plan_data.items():
                setattr(existing_plan, key, value)
            print(f"✓ Updated plan: {plan_data['name']}")
        else:
            session.add(VendorPlan(**plan_data))
            print(f"✓ Created plan: {plan_data['name']}")

    await session.commit()


async def seed_demo_vendor(session: AsyncSession) -> None:
    """Create a demo vendor on the Starter plan."""
    demo_email = "vendor@demo.trademart.in"

    if await IdentityRepository.get_user_by_email(session, demo_email):
        print(f"✓ Demo vendor already exists: {demo_email}")
        return

    user = await IdentityRepository.create_user(
        session,
        email=demo_email,
        full_name="Demo Vendor",
        role=UserRole.VENDOR.value,
        password_hash=hash_password("demo123456"),
    )
    vendor = await IdentityRepository.create_vendor(
        session, user_id=user.id, email=demo_email, company_name="Demo Traders Pvt Ltd"
    )

    starter = await SubscriptionRepository.get_plan_by_name(session, "Starter")
    if starter:
        now = utcnow()
        session.add(
            VendorPlanSubscription(
                vendor_id=vendor.id,
                plan_id=starter.id,
                status=SubscriptionStatus.ACTIVE.value,
                start_date=now,
                end_date=now + timedelta(days=365),
            )
        )

    await session.commit()

    print(f"✓ Created demo vendor: {demo_email} (password: demo123456)")


async def seed_marketplace_leads(session: AsyncSession) -> None:
    """Create a few open marketplace leads if none exist."""
    result = await session.execute(select(Lead.id).where(Lead.vendor_id.is_(None)).limit(1))
    if result.first():
        print("✓ Marketplace leads already present")
        return

    leads = [
        Lead(
            title="Bulk cotton bedsheets",
            product_name="Cotton Bedsheet",
            category="Home Textiles",
            city="Jaipur",
            state="Rajasthan",
            location="Jaipur, Rajasthan",
            budget="50000",
            price=50,
            buyer_name="Anita Sharma",
            buyer_email="anita@example.in",
            buyer_phone="+91 98290 00001",
            status=LeadStatus.AVAILABLE.value,
        ),
        Lead(
            title="Stainless steel kitchen sinks",
            product_name="Kitchen Sink",
            category="Sanitaryware",
            city="Pune",
            state="Maharashtra",
            location="Pune, Maharashtra",
            budget="1.5 lakh",
            price=75,
            buyer_name="Rahul Deshmukh",
            buyer_email="rahul@example.in",
            buyer_phone="+91 98220 00002",
            status=LeadStatus.AVAILABLE.value,
        ),
    ]
    session.add_all(leads)
    await session.commit()
    print(f"✓ Created {len(leads)} marketplace leads")


async def main() -> None:
    """Run all seed operations."""
    print("🌱 Seeding database...")

    engine = create_async_engine(_ensure_async_url(settings.DATABASE_URL), echo=False)
    async_session = async_sessionmaker(engine, expire_on_commit=False)

    async with async_session() as session:
        await seed_plans(session)
        await seed_demo_vendor(session)
        await seed_marketplace_leads(session)

    await engine.dispose()

    print("✅ Database seeding completed!")


if __name__ == "__main__":
    asyncio.run(main())

"""Shared fixtures: a throwaway SQLite database, row factories and an API client."""

from __future__ import annotations

import logging
import os
import uuid
from datetime import datetime
from typing import Optional

os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("ENVIRONMENT", "test")

import httpx
import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from trademart.core.capabilities import SchemaCapabilities
from trademart.core.config import settings
from trademart.core.db import get_db
from trademart.core.security import AuthConfig, hash_password
from trademart.integrations.auth_provider import AuthProviderClient
from trademart.main import app
from trademart.models.base import Base
from trademart.models.lead_enums import LeadStatus, SubscriptionStatus, UserRole
from trademart.models.models import (
    Buyer,
    Employee,
    Lead,
    LeadPurchase,
    User,
    Vendor,
    VendorPlan,
    VendorPlanSubscription,
)

API = settings.API_PREFIX.rstrip("/")
PASSWORD = "secret123"


@pytest.fixture
def anyio_backend():
    return "asyncio"


def _enable_savepoints(engine) -> None:
    # pysqlite/aiosqlite emit their own BEGIN, which breaks SAVEPOINT; let SQLAlchemy do it
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'trademart.db'}", poolclass=NullPool)
    _enable_savepoints(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


class Factory:
    """Creates committed rows for tests."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _save(self, obj):
        self.db.add(obj)
        await self.db.commit()
        return obj

    async def user(
        self,
        email: Optional[str] = None,
        role: str = UserRole.USER.value,
        password: Optional[str] = PASSWORD,
        password_hash: Optional[str] = None,
        full_name: Optional[str] = None,
    ) -> User:
        return await self._save(
            User(
                email=email or f"user-{uuid.uuid4().hex[:8]}@trademart.in",
                role=role,
                full_name=full_name,
                password_hash=password_hash if password_hash is not None else (hash_password(password) if password else None),
            )
        )

    async def vendor(
        self,
        email: Optional[str] = None,
        user: Optional[User] = None,
        link_user: bool = True,
        is_active: bool = True,
        company_name: str = "Shree Ganesh Traders",
    ) -> Vendor:
        email = email or (user.email if user else f"vendor-{uuid.uuid4().hex[:8]}@trademart.in")
        if user is None and link_user:
            user = await self.user(email=email, role=UserRole.VENDOR.value)
        return await self._save(
            Vendor(
                email=email,
                user_id=user.id if user and link_user else None,
                company_name=company_name,
                is_active=is_active,
            )
        )

    async def buyer(self, email: Optional[str] = None, user: Optional[User] = None, link_user: bool = True) -> Buyer:
        email = email or (user.email if user else f"buyer-{uuid.uuid4().hex[:8]}@trademart.in")
        if user is None and link_user:
            user = await self.user(email=email, role=UserRole.BUYER.value)
        return await self._save(Buyer(email=email, user_id=user.id if user and link_user else None, full_name="Asha Buyer"))

    async def employee(
        self,
        email: str,
        role: str = UserRole.ADMIN.value,
        status: str = "ACTIVE",
        user: Optional[User] = None,
    ) -> Employee:
        return await self._save(
            Employee(email=email, role=role, status=status, user_id=user.id if user else None, full_name="Staff Member")
        )

    async def plan(self, name: str = "Growth", daily: int = 2, weekly: int = 5, yearly: int = 20, price: float = 999) -> VendorPlan:
        return await self._save(
            VendorPlan(name=name, price=price, daily_limit=daily, weekly_limit=weekly, yearly_limit=yearly)
        )

    async def subscription(
        self,
        vendor: Vendor,
        plan: Optional[VendorPlan] = None,
        status: str = SubscriptionStatus.ACTIVE.value,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> VendorPlanSubscription:
        plan = plan or await self.plan()
        return await self._save(
            VendorPlanSubscription(
                vendor_id=vendor.id, plan_id=plan.id, status=status, start_date=start_date, end_date=end_date
            )
        )

    async def subscribed_vendor(self, daily: int = 2, weekly: int = 5, yearly: int = 20, **kwargs) -> Vendor:
        vendor = await self.vendor(**kwargs)
        await self.subscription(vendor, await self.plan(daily=daily, weekly=weekly, yearly=yearly))
        return vendor

    async def lead(self, **fields) -> Lead:
        values = {
            "title": "Need 500 cotton bedsheets",
            "product_name": "Cotton Bedsheet",
            "category": "Home Textiles",
            "city": "Jaipur",
            "state": "Rajasthan",
            "location": "Jaipur, Rajasthan",
            "budget": "50000",
            "price": 40,
            "buyer_name": "Anita Sharma",
            "buyer_email": "anita@buyers.in",
            "buyer_phone": "+91 98290 00001",
            "status": LeadStatus.AVAILABLE.value,
        }
        values.update(fields)
        return await self._save(Lead(**values))

    async def purchase(self, vendor: Vendor, lead: Lead, **fields) -> LeadPurchase:
        values = {"consumption_type": "DAILY_INCLUDED", "amount": 0, "purchase_price": 0}
        values.update(fields)
        return await self._save(LeadPurchase(vendor_id=vendor.id, lead_id=lead.id, **values))


@pytest.fixture
def factory(db):
    return Factory(db)


@pytest.fixture
def auth_config():
    return AuthConfig.from_settings(settings, logging.getLogger("tests"))


@pytest.fixture
async def client(session_factory, auth_config):
    async def _override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    app.state.capabilities = SchemaCapabilities()
    app.state.auth_config = auth_config
    app.state.auth_provider = AuthProviderClient(auth_config)

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()


async def login(client: httpx.AsyncClient, email: str, password: str = PASSWORD, role: Optional[str] = None) -> str:
    """Log in through the API; returns the CSRF token for cookie-authenticated writes."""
    body = {"email": email, "password": password}
    if role:
        body["role"] = role
    resp = await client.post(f"{API}/auth/login", json=body)
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]["csrf_token"]

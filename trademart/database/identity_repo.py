"""Repository layer for user and identity rows (users, employees, vendors, buyers).

This module contains ONLY database access logic - no business rules.

Identity rows are matched by `user_id` first and then by case-insensitive
email, because rows created before a user signed in have no `user_id` yet.
"""

import uuid
from typing import Optional, TypeVar

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from trademart.models.models import Buyer, Employee, User, Vendor

IdentityRow = TypeVar("IdentityRow", Employee, Vendor, Buyer)


def normalize_email(email: Optional[str]) -> str:
    return str(email or "").strip().lower()


class IdentityRepository:
    """Repository for user/employee/vendor/buyer lookups."""

    @staticmethod
    async def get_user(db: AsyncSession, user_id: uuid.UUID) -> Optional[User]:
        result = await db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
        normalized = normalize_email(email)
        if not normalized:
            return None
        result = await db.execute(select(User).where(func.lower(User.email) == normalized))
        return result.scalar_one_or_none()

    @staticmethod
    async def create_user(
        db: AsyncSession,
        email: str,
        full_name: Optional[str] = None,
        phone: Optional[str] = None,
        role: str = "USER",
        password_hash: Optional[str] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> User:
        user = User(
            email=normalize_email(email),
            full_name=full_name,
            phone=phone,
            role=role,
            password_hash=password_hash,
        )
        if user_id is not None:
            user.id = user_id
        db.add(user)
        await db.flush()
        return user

    @staticmethod
    async def _first_by_identity(
        db: AsyncSession,
        model: type[IdentityRow],
        user_id: Optional[uuid.UUID],
        email: Optional[str],
        *criteria,
    ) -> Optional[IdentityRow]:
        if user_id is not None:
            result = await db.execute(select(model).where(model.user_id == user_id, *criteria).limit(1))
            row = result.scalars().first()
            if row is not None:
                return row

        normalized = normalize_email(email)
        if not normalized:
            return None
        result = await db.execute(
            select(model).where(func.lower(model.email) == normalized, *criteria).limit(1)
        )
        return result.scalars().first()

    @staticmethod
    async def find_employee(
        db: AsyncSession, user_id: Optional[uuid.UUID], email: Optional[str]
    ) -> Optional[Employee]:
        return await IdentityRepository._first_by_identity(db, Employee, user_id, email)

    @staticmethod
    async def find_vendor(db: AsyncSession, user_id: Optional[uuid.UUID], email: Optional[str]) -> Optional[Vendor]:
        return await IdentityRepository._first_by_identity(db, Vendor, user_id, email)

    @staticmethod
    async def find_buyer(db: AsyncSession, user_id: Optional[uuid.UUID], email: Optional[str]) -> Optional[Buyer]:
        return await IdentityRepository._first_by_identity(db, Buyer, user_id, email)

    @staticmethod
    async def get_vendor(db: AsyncSession, vendor_id: uuid.UUID) -> Optional[Vendor]:
        result = await db.execute(select(Vendor).where(Vendor.id == vendor_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def create_buyer(
        db: AsyncSession,
        user_id: uuid.UUID,
        email: str,
        full_name: Optional[str] = None,
        phone: Optional[str] = None,
        company_name: Optional[str] = None,
    ) -> Buyer:
        buyer = Buyer(
            user_id=user_id,
            email=normalize_email(email),
            full_name=full_name,
            phone=phone,
            company_name=company_name,
        )
        db.add(buyer)
        await db.flush()
        return buyer

    @staticmethod
    async def create_vendor(
        db: AsyncSession,
        user_id: uuid.UUID,
        email: str,
        company_name: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> Vendor:
        vendor = Vendor(user_id=user_id, email=normalize_email(email), company_name=company_name, phone=phone)
        db.add(vendor)
        await db.flush()
        return vendor

    @staticmethod
    async def backfill_user_id(db: AsyncSession, user_id: uuid.UUID, email: str) -> int:
        """
        Link identity rows that match `email` but have no user_id yet.

        Returns:
            Number of rows updated across employees, vendors and buyers
        """
        normalized = normalize_email(email)
        if not normalized:
            return 0

        updated = 0
        for model in (Employee, Vendor, Buyer):
            result = await db.execute(
                update(model)
                .where(func.lower(model.email) == normalized, model.user_id.is_(None))
                .values(user_id=user_id)
                .execution_options(synchronize_session="fetch")
            )
            updated += result.rowcount or 0
        return updated

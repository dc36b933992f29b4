"""Repository layer for leads, lead purchases and lead status history.

This module contains ONLY database access logic - no business rules.
"""

import uuid
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from trademart.models.models import Lead, LeadPurchase, LeadStatusHistory

MARKETPLACE_STATUSES = ("AVAILABLE", "PURCHASED")


class LeadRepository:
    """Repository for lead database operations."""

    @staticmethod
    async def get_lead(db: AsyncSession, lead_id: uuid.UUID) -> Optional[Lead]:
        result = await db.execute(select(Lead).where(Lead.id == lead_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_lead_for_update(db: AsyncSession, lead_id: uuid.UUID) -> Optional[Lead]:
        """Fetch a lead and lock its row until the transaction ends (no-op on SQLite)."""
        result = await db.execute(select(Lead).where(Lead.id == lead_id).with_for_update())
        return result.scalar_one_or_none()

    @staticmethod
    async def list_marketplace_leads(db: AsyncSession, limit: int) -> Sequence[Lead]:
        """Newest unassigned leads still open for purchase."""
        result = await db.execute(
            select(Lead)
            .where(Lead.vendor_id.is_(None), Lead.status.in_(MARKETPLACE_STATUSES))
            .order_by(Lead.created_at.desc())
            .limit(limit)
        )
        return result.scalars().all()

    @staticmethod
    async def list_direct_leads(db: AsyncSession, vendor_id: uuid.UUID) -> Sequence[Lead]:
        result = await db.execute(
            select(Lead).where(Lead.vendor_id == vendor_id).order_by(Lead.created_at.desc())
        )
        return result.scalars().all()

    @staticmethod
    async def get_purchase(db: AsyncSession, vendor_id: uuid.UUID, lead_id: uuid.UUID) -> Optional[LeadPurchase]:
        result = await db.execute(
            select(LeadPurchase)
            .where(LeadPurchase.vendor_id == vendor_id, LeadPurchase.lead_id == lead_id)
            .order_by(LeadPurchase.purchase_datetime.desc())
            .limit(1)
        )
        return result.scalars().first()

    @staticmethod
    async def list_vendor_purchases(db: AsyncSession, vendor_id: uuid.UUID) -> Sequence[tuple[LeadPurchase, Lead]]:
        result = await db.execute(
            select(LeadPurchase, Lead)
            .join(Lead, LeadPurchase.lead_id == Lead.id)
            .where(LeadPurchase.vendor_id == vendor_id)
            .order_by(LeadPurchase.purchase_datetime.desc())
        )
        return [(purchase, lead) for purchase, lead in result.all()]

    @staticmethod
    async def purchased_lead_ids(db: AsyncSession, vendor_id: uuid.UUID) -> set[uuid.UUID]:
        result = await db.execute(select(LeadPurchase.lead_id).where(LeadPurchase.vendor_id == vendor_id))
        return set(result.scalars().all())

    @staticmethod
    async def count_purchases(db: AsyncSession, lead_id: uuid.UUID) -> int:
        result = await db.execute(select(func.count(LeadPurchase.id)).where(LeadPurchase.lead_id == lead_id))
        return int(result.scalar_one() or 0)

    @staticmethod
    async def purchase_counts(db: AsyncSession, lead_ids: Sequence[uuid.UUID]) -> dict[uuid.UUID, int]:
        if not lead_ids:
            return {}
        result = await db.execute(
            select(LeadPurchase.lead_id, func.count(LeadPurchase.id))
            .where(LeadPurchase.lead_id.in_(lead_ids))
            .group_by(LeadPurchase.lead_id)
        )
        return {lead_id: int(count) for lead_id, count in result.all()}

    @staticmethod
    async def add_purchase(db: AsyncSession, purchase: LeadPurchase) -> LeadPurchase:
        db.add(purchase)
        await db.flush()
        return purchase

    @staticmethod
    async def add_history(db: AsyncSession, entry: LeadStatusHistory) -> LeadStatusHistory:
        db.add(entry)
        await db.flush()
        return entry

    @staticmethod
    async def list_history(
        db: AsyncSession, lead_id: uuid.UUID, vendor_id: uuid.UUID
    ) -> Sequence[LeadStatusHistory]:
        result = await db.execute(
            select(LeadStatusHistory)
            .where(LeadStatusHistory.lead_id == lead_id, LeadStatusHistory.vendor_id == vendor_id)
            .order_by(LeadStatusHistory.created_at.desc())
        )
        return result.scalars().all()

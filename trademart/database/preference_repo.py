"""Repository layer for vendor marketplace preferences."""

import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from trademart.models.models import VendorPreference


class PreferenceRepository:

    @staticmethod
    async def get_for_vendor(db: AsyncSession, vendor_id: uuid.UUID) -> Optional[VendorPreference]:
        result = await db.execute(select(VendorPreference).where(VendorPreference.vendor_id == vendor_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def upsert(db: AsyncSession, vendor_id: uuid.UUID, **values) -> VendorPreference:
        pref = await PreferenceRepository.get_for_vendor(db, vendor_id)
        if pref is None:
            pref = VendorPreference(vendor_id=vendor_id)
            db.add(pref)
        for key, value in values.items():
            setattr(pref, key, value)
        await db.flush()
        return pref

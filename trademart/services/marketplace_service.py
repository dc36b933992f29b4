"""Marketplace listing and vendor preference management."""

import json
import logging
import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from trademart.core.capabilities import SchemaCapabilities
from trademart.core.config import settings
from trademart.database.lead_repo import LeadRepository
from trademart.database.preference_repo import PreferenceRepository
from trademart.models.models import Lead, VendorPreference
from trademart.schemas.preferences import VendorPreferences
from trademart.services.marketplace_filter import MarketplacePreferences, decode_name_list, filter_leads
from trademart.utils.exceptions import FeatureUnavailableException

logger = logging.getLogger("trademart.leads")


def preferences_to_schema(pref: Optional[VendorPreference]) -> VendorPreferences:
    if pref is None:
        return VendorPreferences()
    return VendorPreferences(
        preferred_categories=decode_name_list(pref.preferred_categories),
        preferred_states=decode_name_list(pref.preferred_states),
        preferred_cities=decode_name_list(pref.preferred_cities),
        auto_lead_filter=pref.auto_lead_filter is not False,
        min_budget=pref.min_budget,
        max_budget=pref.max_budget,
    )


def schema_to_filter(prefs: VendorPreferences) -> MarketplacePreferences:
    return MarketplacePreferences.build(
        categories=prefs.preferred_categories,
        cities=prefs.preferred_cities,
        states=prefs.preferred_states,
        min_budget=prefs.min_budget,
        max_budget=prefs.max_budget,
        auto_lead_filter=prefs.auto_lead_filter,
    )


class MarketplaceService:
    """Service for the vendor marketplace view."""

    @staticmethod
    async def load_preferences(
        db: AsyncSession, vendor_id: uuid.UUID, capabilities: SchemaCapabilities
    ) -> VendorPreferences:
        if not capabilities.vendor_preferences:
            return VendorPreferences()
        return preferences_to_schema(await PreferenceRepository.get_for_vendor(db, vendor_id))

    @staticmethod
    async def save_preferences(
        db: AsyncSession,
        vendor_id: uuid.UUID,
        prefs: VendorPreferences,
        capabilities: SchemaCapabilities,
    ) -> VendorPreferences:
        if not capabilities.vendor_preferences:
            raise FeatureUnavailableException("vendor_preferences", "Lead preferences are not available yet")

        saved = await PreferenceRepository.upsert(
            db,
            vendor_id,
            preferred_categories=json.dumps(prefs.preferred_categories),
            preferred_states=json.dumps(prefs.preferred_states),
            preferred_cities=json.dumps(prefs.preferred_cities),
            auto_lead_filter=prefs.auto_lead_filter,
            min_budget=prefs.min_budget,
            max_budget=prefs.max_budget,
        )
        result = preferences_to_schema(saved)
        await db.commit()
        return result

    @staticmethod
    async def list_marketplace_leads(
        db: AsyncSession, vendor_id: uuid.UUID, capabilities: SchemaCapabilities
    ) -> list[Lead]:
        """
        Leads this vendor may still buy, filtered by its preferences.

        Leads the vendor already bought and leads at the purchaser cap are
        removed first. If the preference filter would hide every remaining
        lead the unfiltered list is returned, so the page is never empty
        while purchasable leads exist.
        """
        rows = list(await LeadRepository.list_marketplace_leads(db, settings.MARKETPLACE_FETCH_LIMIT))
        if not rows:
            return []

        mine = await LeadRepository.purchased_lead_ids(db, vendor_id)
        counts = await LeadRepository.purchase_counts(db, [lead.id for lead in rows])
        cap = settings.MARKETPLACE_MAX_VENDORS_PER_LEAD
        eligible = [lead for lead in rows if lead.id not in mine and counts.get(lead.id, 0) < cap]
        if not eligible:
            return []

        prefs = await MarketplaceService.load_preferences(db, vendor_id, capabilities)
        filtered = filter_leads(eligible, schema_to_filter(prefs))
        if not filtered:
            logger.debug(
                "Marketplace filter removed every lead; returning unfiltered list",
                extra={"vendor_id": str(vendor_id), "eligible": len(eligible)},
            )
            return eligible
        return filtered

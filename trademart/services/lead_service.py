"""Service layer for a vendor's own leads: listing, detail, lifecycle status and history."""

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from trademart.core.capabilities import SchemaCapabilities
from trademart.core.config import settings
from trademart.database.lead_repo import MARKETPLACE_STATUSES, LeadRepository
from trademart.models.lead_enums import HistorySource, LeadStatus, VendorLeadStatus
from trademart.models.models import Lead, LeadPurchase, LeadStatusHistory
from trademart.services.lead_consumption_service import serialize_purchase
from trademart.utils.clock import as_utc, utcnow
from trademart.utils.exceptions import FeatureUnavailableException, ForbiddenException, NotFoundException

logger = logging.getLogger("trademart.leads")

MAX_NOTE_LENGTH = 2000


@dataclass
class LeadAccess:
    lead: Lead
    purchase: Optional[LeadPurchase]
    is_direct: bool
    is_visible_marketplace_lead: bool

    @property
    def source(self) -> str:
        if self.is_direct:
            return "Direct"
        return "Purchased" if self.purchase is not None else "Marketplace"

    @property
    def owns_lead(self) -> bool:
        return self.is_direct or self.purchase is not None


def lead_to_dict(lead: Lead, include_contact: bool = True, **extra: Any) -> dict[str, Any]:
    """Serialize a lead for vendor responses; buyer contact is hidden until purchased."""
    data = {
        "id": str(lead.id),
        "title": lead.title,
        "product_name": lead.product_name,
        "category": lead.category,
        "sub_category": lead.sub_category,
        "service_name": lead.service_name,
        "description": lead.description,
        "message": lead.message,
        "location": lead.location,
        "city": lead.city,
        "state": lead.state,
        "budget": lead.budget,
        "price": lead.price,
        "status": lead.status,
        "buyer_name": lead.buyer_name if include_contact else None,
        "buyer_email": lead.buyer_email if include_contact else None,
        "buyer_phone": lead.buyer_phone if include_contact else None,
        "created_at": as_utc(lead.created_at),
    }
    data.update(extra)
    return data


def history_to_dict(entry: LeadStatusHistory) -> dict[str, Any]:
    return {
        "id": str(entry.id),
        "lead_id": str(entry.lead_id),
        "vendor_id": str(entry.vendor_id),
        "lead_purchase_id": str(entry.lead_purchase_id) if entry.lead_purchase_id else None,
        "status": entry.status,
        "note": entry.note,
        "source": entry.source,
        "created_by": str(entry.created_by) if entry.created_by else None,
        "created_at": as_utc(entry.created_at),
    }


def normalize_vendor_status(value: Any) -> Optional[str]:
    raw = str(value or "").strip().upper()
    try:
        return VendorLeadStatus(raw).value
    except ValueError:
        return None


def fallback_status(lead: Lead) -> str:
    """Lifecycle status for leads with no purchase row (direct leads)."""
    if str(lead.status or "").strip().upper() == LeadStatus.CLOSED.value:
        return VendorLeadStatus.CLOSED.value
    return VendorLeadStatus.ACTIVE.value


def _purchase_fields(purchase: Optional[LeadPurchase], lead: Lead) -> dict[str, Any]:
    return {
        "purchase_date": as_utc(purchase.purchase_datetime) if purchase else as_utc(lead.created_at),
        "lead_purchase_id": str(purchase.id) if purchase else None,
        "purchase_amount": purchase.amount if purchase else None,
        "payment_status": purchase.payment_status if purchase else None,
        "consumption_type": purchase.consumption_type if purchase else None,
        "lead_status": (purchase.lead_status if purchase else None) or fallback_status(lead),
    }


class LeadService:
    """Service for vendor lead workspace operations."""

    @staticmethod
    async def resolve_access(db: AsyncSession, vendor_id: uuid.UUID, lead_id: uuid.UUID) -> LeadAccess:
        """
        Decide how a vendor may see a lead.

        A vendor sees its direct leads, leads it purchased, and marketplace
        leads still below the purchaser cap. Anything else is reported as
        not found so lead ids of other vendors are not disclosed.
        """
        lead = await LeadRepository.get_lead(db, lead_id)
        if lead is None:
            raise NotFoundException("Lead not found", code="LEAD_NOT_FOUND")

        is_direct = lead.vendor_id == vendor_id
        purchase = await LeadRepository.get_purchase(db, vendor_id, lead_id)

        visible = False
        if not is_direct and purchase is None:
            status = str(lead.status or "").strip().upper()
            if lead.vendor_id is None and status in MARKETPLACE_STATUSES:
                visible = await LeadRepository.count_purchases(db, lead_id) < settings.MARKETPLACE_MAX_VENDORS_PER_LEAD

        if not is_direct and purchase is None and not visible:
            raise NotFoundException("Lead not found", code="LEAD_NOT_FOUND")

        return LeadAccess(lead=lead, purchase=purchase, is_direct=is_direct, is_visible_marketplace_lead=visible)

    @staticmethod
    async def list_my_leads(db: AsyncSession, vendor_id: uuid.UUID) -> list[dict[str, Any]]:
        """Purchased leads (newest purchase first) followed by direct leads not also purchased."""
        items: list[dict[str, Any]] = []
        seen: set[uuid.UUID] = set()

        for purchase, lead in await LeadRepository.list_vendor_purchases(db, vendor_id):
            if lead.id in seen:
                continue
            seen.add(lead.id)
            items.append(lead_to_dict(lead, source="Purchased", **_purchase_fields(purchase, lead)))

        for lead in await LeadRepository.list_direct_leads(db, vendor_id):
            if lead.id in seen:
                continue
            seen.add(lead.id)
            items.append(lead_to_dict(lead, source="Direct", **_purchase_fields(None, lead)))

        return items

    @staticmethod
    async def get_lead_detail(db: AsyncSession, vendor_id: uuid.UUID, lead_id: uuid.UUID) -> dict[str, Any]:
        access = await LeadService.resolve_access(db, vendor_id, lead_id)
        return lead_to_dict(
            access.lead,
            include_contact=access.owns_lead,
            source=access.source,
            **_purchase_fields(access.purchase, access.lead),
        )

    @staticmethod
    async def update_status(
        db: AsyncSession,
        vendor_id: uuid.UUID,
        lead_id: uuid.UUID,
        status: VendorLeadStatus,
        note: Optional[str],
        actor_user_id: Optional[uuid.UUID],
        capabilities: SchemaCapabilities,
    ) -> dict[str, Any]:
        """
        Move a purchased or direct lead to a new lifecycle status.

        Step 1: Check access; marketplace leads not yet bought are read-only.
        Step 2: Same status with no note is a no-op (`unchanged: true`).
        Step 3: Update the purchase row, or the lead row for direct leads.
        Step 4: Append a history entry.
        """
        if not capabilities.lead_status_history:
            raise FeatureUnavailableException(
                "lead_status_history",
                "Lead status history feature is unavailable. Please run the latest migration.",
            )

        # Step 1: Access
        access = await LeadService.resolve_access(db, vendor_id, lead_id)
        if not access.owns_lead:
            raise ForbiddenException("Lead status can be updated only for purchased or direct leads")

        new_status = status.value
        note = (note or "").strip()[:MAX_NOTE_LENGTH] or None
        purchase = access.purchase
        lead = access.lead

        # Step 2: No-op check
        current = (purchase.lead_status if purchase else None) or fallback_status(lead)
        if normalize_vendor_status(current) == new_status and not note:
            return {
                "lead_id": str(lead.id),
                "lead_status": new_status,
                "current_status": new_status,
                "purchase": serialize_purchase(purchase) if purchase else None,
                "history": [],
                "unchanged": True,
            }

        # Step 3: Apply
        now = utcnow()
        if purchase is not None:
            purchase.lead_status = new_status
            purchase.updated_at = now
        else:
            lead.status = LeadStatus.CLOSED.value if new_status == VendorLeadStatus.CLOSED.value else LeadStatus.AVAILABLE.value

        # Step 4: History
        entry = await LeadRepository.add_history(
            db,
            LeadStatusHistory(
                lead_id=lead.id,
                vendor_id=vendor_id,
                lead_purchase_id=purchase.id if purchase else None,
                status=new_status,
                note=note,
                source=(HistorySource.PURCHASE if purchase else HistorySource.DIRECT).value,
                created_by=actor_user_id,
                created_at=now,
            ),
        )

        response = {
            "lead_id": str(lead.id),
            "lead_status": new_status,
            "current_status": new_status,
            "purchase": serialize_purchase(purchase) if purchase else None,
            "history": [history_to_dict(entry)],
        }
        await db.commit()

        logger.info(
            "Lead status updated",
            extra={"vendor_id": str(vendor_id), "lead_id": str(lead_id), "status": new_status},
        )
        return response

    @staticmethod
    async def get_status_history(
        db: AsyncSession,
        vendor_id: uuid.UUID,
        lead_id: uuid.UUID,
        capabilities: SchemaCapabilities,
    ) -> dict[str, Any]:
        if not capabilities.lead_status_history:
            raise FeatureUnavailableException(
                "lead_status_history",
                "Lead status history feature is unavailable. Please run the latest migration.",
            )

        access = await LeadService.resolve_access(db, vendor_id, lead_id)
        if not access.owns_lead:
            raise ForbiddenException("Lead status history is available only for purchased or direct leads")

        rows = await LeadRepository.list_history(db, lead_id, vendor_id)
        history = [history_to_dict(row) for row in rows]
        current = (
            normalize_vendor_status(access.purchase.lead_status if access.purchase else None)
            or (normalize_vendor_status(rows[0].status) if rows else None)
            or fallback_status(access.lead)
        )
        return {
            "lead_id": str(lead_id),
            "current_status": current,
            "is_direct": access.is_direct,
            "is_purchased": access.purchase is not None,
            "history": history,
        }

"""Vendor portal routes: marketplace, purchases, my leads, quota and preferences."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from trademart.api.deps import DB, Capabilities, CurrentSession, CurrentVendor, require_roles
from trademart.models.lead_enums import INTERNAL_ROLES, UserRole
from trademart.schemas.leads import LeadStatusUpdateRequest, PurchaseRequest
from trademart.schemas.preferences import VendorPreferences
from trademart.services.lead_consumption_service import LeadConsumptionService
from trademart.services.lead_service import LeadService, lead_to_dict
from trademart.services.marketplace_service import MarketplaceService
from trademart.services.subscription_service import SubscriptionService
from trademart.utils.envelopes import api_error, api_success

router = APIRouter(
    tags=["vendors"],
    dependencies=[Depends(require_roles(UserRole.VENDOR.value, *(role.value for role in INTERNAL_ROLES)))],
)


@router.get("/vendors/me/marketplace-leads", response_model=dict)
async def list_marketplace_leads(vendor: CurrentVendor, db: DB, capabilities: Capabilities):
    """Marketplace leads this vendor can still buy, filtered by its preferences."""
    leads = await MarketplaceService.list_marketplace_leads(db, vendor.id, capabilities)
    return api_success({"leads": [lead_to_dict(lead, include_contact=False, source="Marketplace") for lead in leads]})


@router.post("/vendors/me/leads/{lead_id}/purchase")
async def purchase_lead(
    lead_id: uuid.UUID,
    vendor: CurrentVendor,
    session: CurrentSession,
    db: DB,
    capabilities: Capabilities,
    payload: Optional[PurchaseRequest] = None,
):
    """Claim a lead from plan quota, or pay for it with mode BUY_EXTRA / PAID."""
    payload = payload or PurchaseRequest()
    result = await LeadConsumptionService.consume(
        db,
        vendor_id=vendor.id,
        lead_id=lead_id,
        mode=payload.mode,
        purchase_price=payload.amount,
        capabilities=capabilities,
        actor_user_id=session.user.id,
    )
    if result.success:
        body = api_success(result.payload)
    else:
        body = api_error(result.code, result.message, result.payload or None)
    return JSONResponse(status_code=result.status_code, content=jsonable_encoder(body))


@router.get("/vendors/me/leads", response_model=dict)
async def list_my_leads(vendor: CurrentVendor, db: DB):
    """Purchased and direct leads of the vendor."""
    return api_success({"leads": await LeadService.list_my_leads(db, vendor.id)})


@router.get("/vendors/me/leads/{lead_id}", response_model=dict)
async def get_lead(lead_id: uuid.UUID, vendor: CurrentVendor, db: DB):
    return api_success({"lead": await LeadService.get_lead_detail(db, vendor.id, lead_id)})


@router.post("/vendors/me/leads/{lead_id}/status", response_model=dict)
async def update_lead_status(
    lead_id: uuid.UUID,
    payload: LeadStatusUpdateRequest,
    vendor: CurrentVendor,
    session: CurrentSession,
    db: DB,
    capabilities: Capabilities,
):
    data = await LeadService.update_status(
        db, vendor.id, lead_id, payload.status, payload.note, session.user.id, capabilities
    )
    return api_success(data)


@router.get("/vendors/me/leads/{lead_id}/status-history", response_model=dict)
async def get_lead_status_history(lead_id: uuid.UUID, vendor: CurrentVendor, db: DB, capabilities: Capabilities):
    return api_success(await LeadService.get_status_history(db, vendor.id, lead_id, capabilities))


@router.get("/vendors/me/quota", response_model=dict)
async def get_quota(vendor: CurrentVendor, db: DB):
    """Remaining daily/weekly/yearly leads and the current plan."""
    return api_success(await SubscriptionService.get_quota_summary(db, vendor.id))


@router.get("/vendors/me/preferences", response_model=dict)
async def get_preferences(vendor: CurrentVendor, db: DB, capabilities: Capabilities):
    prefs = await MarketplaceService.load_preferences(db, vendor.id, capabilities)
    return api_success(prefs.model_dump())


@router.put("/vendors/me/preferences", response_model=dict)
async def update_preferences(payload: VendorPreferences, vendor: CurrentVendor, db: DB, capabilities: Capabilities):
    prefs = await MarketplaceService.save_preferences(db, vendor.id, payload, capabilities)
    return api_success(prefs.model_dump())

"""Vendor lead schemas."""

from typing import Optional

from pydantic import BaseModel, Field

from trademart.models.lead_enums import VendorLeadStatus


class PurchaseRequest(BaseModel):
    """Request to claim a lead; `mode` falls back to AUTO when empty or unknown."""

    mode: Optional[str] = None
    amount: Optional[float] = Field(None, description="Price paid for PAID_EXTRA consumption")


class LeadStatusUpdateRequest(BaseModel):
    status: VendorLeadStatus
    note: Optional[str] = Field(None, max_length=2000)

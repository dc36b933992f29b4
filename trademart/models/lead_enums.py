"""Lead and quota enums.

Values are stored as plain strings so rows written by older deployments
(lower-case or padded values) can still be read and normalized:
- LeadStatus: marketplace status of a lead row
- VendorLeadStatus: a vendor's own lifecycle state for a lead they hold
- ConsumptionMode / ConsumptionType: how a purchase is requested and paid for
- HistorySource: who produced a lead_status_history entry
"""

import enum


class LeadStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    PURCHASED = "PURCHASED"
    CLOSED = "CLOSED"


class VendorLeadStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    VIEWED = "VIEWED"
    CLOSED = "CLOSED"


class ConsumptionMode(str, enum.Enum):
    AUTO = "AUTO"
    USE_WEEKLY = "USE_WEEKLY"
    BUY_EXTRA = "BUY_EXTRA"
    PAID = "PAID"


class ConsumptionType(str, enum.Enum):
    DAILY_INCLUDED = "DAILY_INCLUDED"
    WEEKLY_INCLUDED = "WEEKLY_INCLUDED"
    YEARLY_INCLUDED = "YEARLY_INCLUDED"
    PAID_EXTRA = "PAID_EXTRA"


class HistorySource(str, enum.Enum):
    MANUAL = "MANUAL"
    PURCHASE = "PURCHASE"
    DIRECT = "DIRECT"
    SYSTEM = "SYSTEM"


class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class UserRole(str, enum.Enum):
    USER = "USER"
    BUYER = "BUYER"
    VENDOR = "VENDOR"
    ADMIN = "ADMIN"
    HR = "HR"
    DATA_ENTRY = "DATA_ENTRY"
    SUPPORT = "SUPPORT"
    SALES = "SALES"
    FINANCE = "FINANCE"
    MANAGER = "MANAGER"
    VP = "VP"
    SUPERADMIN = "SUPERADMIN"


INTERNAL_ROLES = frozenset(
    {
        UserRole.ADMIN,
        UserRole.HR,
        UserRole.DATA_ENTRY,
        UserRole.SUPPORT,
        UserRole.SALES,
        UserRole.FINANCE,
        UserRole.MANAGER,
        UserRole.VP,
        UserRole.SUPERADMIN,
    }
)
PORTAL_ROLES = frozenset({UserRole.BUYER, UserRole.VENDOR})


def normalize_role(value: object) -> str:
    """Upper-case a role string and fix the legacy misspellings still found in old rows."""
    raw = str(value or "").strip().upper()
    if raw == "DATAENTRY":
        return UserRole.DATA_ENTRY.value
    if raw == "FINACE":
        return UserRole.FINANCE.value
    return raw

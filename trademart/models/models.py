from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    false,
    text,
    true,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func
from sqlalchemy.types import TIMESTAMP

from trademart.models.base import Base
from trademart.utils.clock import utcnow


class UUIDMixin:
    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)


class CreatedAtMixin:
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )


class TimestampMixin(CreatedAtMixin):
    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True))


class User(UUIDMixin, TimestampMixin, Base):
    """Local user row; created lazily on first session resolution."""
    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    full_name: Mapped[Optional[str]] = mapped_column(Text)
    phone: Mapped[Optional[str]] = mapped_column(String(32))
    role: Mapped[str] = mapped_column(String(32), nullable=False, default="USER", server_default=text("'USER'"))
    password_hash: Mapped[Optional[str]] = mapped_column(Text)

    notifications: Mapped[list["Notification"]] = relationship("Notification", back_populates="user")


class Employee(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "employees"
    __table_args__ = (Index("ix_employees_email", "email"),)

    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL")
    )
    email: Mapped[Optional[str]] = mapped_column(String(320))
    full_name: Mapped[Optional[str]] = mapped_column(Text)
    role: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="ACTIVE", server_default=text("'ACTIVE'"))


class Vendor(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "vendors"
    __table_args__ = (Index("ix_vendors_email", "email"), Index("ix_vendors_user", "user_id"))

    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL")
    )
    email: Mapped[Optional[str]] = mapped_column(String(320))
    company_name: Mapped[Optional[str]] = mapped_column(Text)
    phone: Mapped[Optional[str]] = mapped_column(String(32))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())

    subscriptions: Mapped[list["VendorPlanSubscription"]] = relationship(
        "VendorPlanSubscription", back_populates="vendor"
    )
    quota: Mapped[Optional["VendorLeadQuota"]] = relationship(
        "VendorLeadQuota", back_populates="vendor", uselist=False
    )
    preferences: Mapped[Optional["VendorPreference"]] = relationship(
        "VendorPreference", back_populates="vendor", uselist=False
    )


class Buyer(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "buyers"
    __table_args__ = (Index("ix_buyers_email", "email"),)

    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL")
    )
    email: Mapped[Optional[str]] = mapped_column(String(320))
    full_name: Mapped[Optional[str]] = mapped_column(Text)
    company_name: Mapped[Optional[str]] = mapped_column(Text)
    phone: Mapped[Optional[str]] = mapped_column(String(32))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())


class Lead(UUIDMixin, CreatedAtMixin, Base):
    """Buyer sourcing request. vendor_id NULL means a marketplace lead."""
    __tablename__ = "leads"
    __table_args__ = (
        Index("ix_leads_vendor", "vendor_id"),
        Index("ix_leads_status_created", "status", "created_at"),
    )

    vendor_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("vendors.id", ondelete="SET NULL")
    )
    buyer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("buyers.id", ondelete="SET NULL")
    )
    title: Mapped[Optional[str]] = mapped_column(Text)
    product_name: Mapped[Optional[str]] = mapped_column(Text)
    category: Mapped[Optional[str]] = mapped_column(Text)
    sub_category: Mapped[Optional[str]] = mapped_column(Text)
    service_name: Mapped[Optional[str]] = mapped_column(Text)
    description: Mapped[Optional[str]] = mapped_column(Text)
    message: Mapped[Optional[str]] = mapped_column(Text)
    location: Mapped[Optional[str]] = mapped_column(Text)
    city: Mapped[Optional[str]] = mapped_column(Text)
    state: Mapped[Optional[str]] = mapped_column(Text)
    # budget is free text in legacy rows ("50000", "50k-1L", ...)
    budget: Mapped[Optional[str]] = mapped_column(Text)
    price: Mapped[Optional[float]] = mapped_column(Numeric(12, 2, asdecimal=False))
    buyer_name: Mapped[Optional[str]] = mapped_column(Text)
    buyer_email: Mapped[Optional[str]] = mapped_column(Text)
    buyer_phone: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[Optional[str]] = mapped_column(String(32), default="AVAILABLE", server_default=text("'AVAILABLE'"))

    purchases: Mapped[list["LeadPurchase"]] = relationship("LeadPurchase", back_populates="lead")


class LeadPurchase(UUIDMixin, Base):
    __tablename__ = "lead_purchases"
    __table_args__ = (
        UniqueConstraint("vendor_id", "lead_id", name="uq_lead_purchases_vendor_lead"),
        Index("ix_lead_purchases_lead", "lead_id"),
        Index("ix_lead_purchases_vendor_datetime", "vendor_id", "purchase_datetime"),
    )

    vendor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False
    )
    lead_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("leads.id", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False, default=0, server_default=text("0"))
    payment_status: Mapped[str] = mapped_column(String(32), nullable=False, default="COMPLETED", server_default=text("'COMPLETED'"))
    consumption_type: Mapped[str] = mapped_column(String(32), nullable=False, default="PAID_EXTRA", server_default=text("'PAID_EXTRA'"))
    purchase_price: Mapped[float] = mapped_column(
        Numeric(12, 2, asdecimal=False), nullable=False, default=0, server_default=text("0")
    )
    purchase_datetime: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    subscription_plan_name: Mapped[Optional[str]] = mapped_column(Text)
    lead_status: Mapped[str] = mapped_column(String(16), nullable=False, default="ACTIVE", server_default=text("'ACTIVE'"))
    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True))

    lead: Mapped[Lead] = relationship("Lead", back_populates="purchases")


class VendorPlan(UUIDMixin, CreatedAtMixin, Base):
    __tablename__ = "vendor_plans"

    name: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False, default=0, server_default=text("0"))
    daily_limit: Mapped[Optional[int]] = mapped_column(Integer)
    weekly_limit: Mapped[Optional[int]] = mapped_column(Integer)
    yearly_limit: Mapped[Optional[int]] = mapped_column(Integer)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())

    subscriptions: Mapped[list["VendorPlanSubscription"]] = relationship(
        "VendorPlanSubscription", back_populates="plan"
    )


class VendorPlanSubscription(UUIDMixin, CreatedAtMixin, Base):
    """Time-bounded vendor/plan association.

    One ACTIVE row per vendor is expected but not enforced by a constraint;
    readers pick the active row with the latest end date.
    """
    __tablename__ = "vendor_plan_subscriptions"
    __table_args__ = (Index("ix_vendor_plan_subscriptions_vendor_status", "vendor_id", "status"),)

    vendor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False
    )
    plan_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("vendor_plans.id", ondelete="SET NULL")
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    start_date: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True))
    end_date: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True))

    vendor: Mapped[Vendor] = relationship("Vendor", back_populates="subscriptions")
    plan: Mapped[Optional[VendorPlan]] = relationship("VendorPlan", back_populates="subscriptions")


class VendorLeadQuota(UUIDMixin, Base):
    """Per-vendor quota counters for the active plan.

    Remaining = limit - used for each bucket, clamped at zero. Counters are
    reset lazily when their *_reset_at falls before the current period start.
    """
    __tablename__ = "vendor_lead_quota"

    vendor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("vendors.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    plan_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("vendor_plans.id", ondelete="SET NULL")
    )
    daily_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    weekly_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    yearly_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    daily_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    weekly_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    yearly_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    daily_reset_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True))
    weekly_reset_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True))
    yearly_reset_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True))
    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True))

    vendor: Mapped[Vendor] = relationship("Vendor", back_populates="quota")


class LeadStatusHistory(UUIDMixin, Base):
    """Append-only lifecycle log. Missing on deployments that predate it."""
    __tablename__ = "lead_status_history"
    __table_args__ = (
        Index("ix_lead_status_history_lead_vendor", "lead_id", "vendor_id", "created_at"),
    )

    lead_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("leads.id", ondelete="CASCADE"), nullable=False
    )
    vendor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False
    )
    lead_purchase_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("lead_purchases.id", ondelete="SET NULL")
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text)
    source: Mapped[str] = mapped_column(String(16), nullable=False, default="MANUAL", server_default=text("'MANUAL'"))
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True))
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), default=utcnow, server_default=func.now(), nullable=False)


class VendorPreference(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "vendor_preferences"

    vendor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("vendors.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    # list columns are TEXT in database, storing JSON arrays of names
    preferred_categories: Mapped[Optional[str]] = mapped_column(Text)
    preferred_states: Mapped[Optional[str]] = mapped_column(Text)
    preferred_cities: Mapped[Optional[str]] = mapped_column(Text)
    auto_lead_filter: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())
    min_budget: Mapped[Optional[float]] = mapped_column(Numeric(14, 2, asdecimal=False))
    max_budget: Mapped[Optional[float]] = mapped_column(Numeric(14, 2, asdecimal=False))

    vendor: Mapped[Vendor] = relationship("Vendor", back_populates="preferences")


class Notification(UUIDMixin, CreatedAtMixin, Base):
    __tablename__ = "notifications"
    __table_args__ = (Index("ix_notifications_user_type_created", "user_id", "type", "created_at"),)

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[Optional[str]] = mapped_column(Text)
    link: Mapped[Optional[str]] = mapped_column(Text)
    reference_id: Mapped[Optional[str]] = mapped_column(String(64))
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())

    user: Mapped[User] = relationship("User", back_populates="notifications")

"""Session and role resolution.

Turns a bearer token or session cookie into a local user plus one identity:

- EmployeeIdentity: an ACTIVE employee row with an internal role
- VendorIdentity:   a vendor row
- BuyerIdentity:    a buyer row
- PlainUserIdentity: none of the above

The lookup order is fixed (employee, vendor, buyer, plain) so a person who
is both an employee and a vendor always resolves to the employee role. The
resolved role is written back to `users.role` when it changed.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from trademart.core.security import AuthConfig, decode_access_token
from trademart.database.identity_repo import IdentityRepository, normalize_email
from trademart.integrations.auth_provider import AuthProviderClient, ProviderUser
from trademart.models.lead_enums import INTERNAL_ROLES, UserRole, normalize_role
from trademart.models.models import Buyer, Employee, User, Vendor

logger = logging.getLogger("trademart.auth")

BEARER = "bearer"
COOKIE = "cookie"


@dataclass(frozen=True)
class EmployeeIdentity:
    employee: Employee
    role: str
    kind: str = "employee"


@dataclass(frozen=True)
class VendorIdentity:
    vendor: Vendor
    role: str = UserRole.VENDOR.value
    kind: str = "vendor"


@dataclass(frozen=True)
class BuyerIdentity:
    buyer: Buyer
    role: str = UserRole.BUYER.value
    kind: str = "buyer"


@dataclass(frozen=True)
class PlainUserIdentity:
    role: str = UserRole.USER.value
    kind: str = "user"


Identity = Union[EmployeeIdentity, VendorIdentity, BuyerIdentity, PlainUserIdentity]


@dataclass
class ResolvedSession:
    user: User
    identity: Identity
    token: str
    token_source: str
    claims: dict[str, Any] = field(default_factory=dict)

    @property
    def role(self) -> str:
        return self.identity.role

    @property
    def is_bearer(self) -> bool:
        return self.token_source == BEARER


def _uuid_or_none(value: Any) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


class SessionService:
    """Service resolving request credentials into a ResolvedSession."""

    @staticmethod
    async def resolve_identity(db: AsyncSession, user: User) -> Identity:
        employee = await IdentityRepository.find_employee(db, user.id, user.email)
        if employee is not None:
            role = normalize_role(employee.role)
            status = normalize_role(employee.status or "ACTIVE")
            if status == "ACTIVE" and role in {r.value for r in INTERNAL_ROLES}:
                return EmployeeIdentity(employee=employee, role=role)

        vendor = await IdentityRepository.find_vendor(db, user.id, user.email)
        if vendor is not None:
            return VendorIdentity(vendor=vendor)

        buyer = await IdentityRepository.find_buyer(db, user.id, user.email)
        if buyer is not None:
            return BuyerIdentity(buyer=buyer)

        return PlainUserIdentity()

    @staticmethod
    async def upsert_user(
        db: AsyncSession,
        email: str,
        user_id: Optional[uuid.UUID] = None,
        full_name: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> User:
        """Load the local user by email, creating it on first sight."""
        user = await IdentityRepository.get_user_by_email(db, email)
        if user is None and user_id is not None:
            user = await IdentityRepository.get_user(db, user_id)
        if user is not None:
            if full_name and not user.full_name:
                user.full_name = full_name
            if phone and not user.phone:
                user.phone = phone
            return user

        logger.info("Creating local user on first sign-in", extra={"email": normalize_email(email)})
        return await IdentityRepository.create_user(
            db, email=email, full_name=full_name, phone=phone, user_id=user_id
        )

    @staticmethod
    async def attach_identity(db: AsyncSession, user: User) -> Identity:
        """Back-fill identity rows, resolve the identity and persist the resolved role."""
        linked = await IdentityRepository.backfill_user_id(db, user.id, user.email)
        if linked:
            logger.info("Linked identity rows to user", extra={"user_id": str(user.id), "rows": linked})

        identity = await SessionService.resolve_identity(db, user)
        if normalize_role(user.role) != identity.role:
            user.role = identity.role
        await db.commit()
        return identity

    @staticmethod
    async def _user_from_claims(db: AsyncSession, claims: dict[str, Any]) -> Optional[User]:
        user_id = _uuid_or_none(claims.get("sub"))
        if user_id is not None:
            user = await IdentityRepository.get_user(db, user_id)
            if user is not None:
                return user

        email = normalize_email(claims.get("email"))
        if not email:
            return None
        return await SessionService.upsert_user(db, email, user_id=user_id)

    @staticmethod
    async def resolve(
        db: AsyncSession,
        config: AuthConfig,
        provider: Optional[AuthProviderClient],
        bearer_token: Optional[str],
        cookie_token: Optional[str],
    ) -> Optional[ResolvedSession]:
        """
        Resolve request credentials.

        The bearer token wins when both carriers are present. A bearer token is
        accepted if it is a JWT signed by this service, otherwise it is checked
        with the hosted auth provider. The session cookie only ever holds a JWT
        signed by this service.

        Returns:
            ResolvedSession, or None when no carrier holds a valid token
        """
        if bearer_token:
            token, source = bearer_token, BEARER
        elif cookie_token:
            token, source = cookie_token, COOKIE
        else:
            return None

        user: Optional[User] = None
        claims = decode_access_token(token, config)
        if claims is not None:
            user = await SessionService._user_from_claims(db, claims)
        elif source == BEARER and provider is not None:
            provider_user: Optional[ProviderUser] = await provider.get_user(token)
            if provider_user is not None:
                user = await SessionService.upsert_user(
                    db,
                    provider_user.email,
                    user_id=provider_user.id,
                    full_name=provider_user.full_name,
                    phone=provider_user.phone,
                )
                claims = {"sub": str(user.id), "email": user.email, "provider": True}

        if user is None:
            return None

        identity = await SessionService.attach_identity(db, user)
        return ResolvedSession(user=user, identity=identity, token=token, token_source=source, claims=claims or {})

"""Authentication service for registration, password login and password changes."""

import logging
import uuid
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from trademart.core.security import (
    MIN_PASSWORD_LENGTH,
    AuthConfig,
    create_access_token,
    hash_password,
    needs_rehash,
    verify_password,
)
from trademart.database.identity_repo import IdentityRepository, normalize_email
from trademart.models.lead_enums import INTERNAL_ROLES, UserRole, normalize_role
from trademart.models.models import User
from trademart.services.session_service import (
    BuyerIdentity,
    EmployeeIdentity,
    Identity,
    SessionService,
    VendorIdentity,
)
from trademart.utils.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    UnauthorizedException,
    ValidationException,
)

logger = logging.getLogger("trademart.auth")

BUYER_NOT_REGISTERED = "This email is not registered as a buyer. Please register as a buyer first."
SELF_REGISTER_ROLES = {UserRole.USER.value, UserRole.BUYER.value, UserRole.VENDOR.value}


def build_user_payload(user: User, identity: Identity) -> dict[str, Any]:
    full_name = user.full_name or (user.email.split("@")[0] if user.email else "")
    payload = {
        "id": str(user.id),
        "email": user.email,
        "role": identity.role,
        "full_name": full_name,
        "phone": user.phone,
        "vendor_id": None,
        "buyer_id": None,
        "employee_id": None,
    }
    if isinstance(identity, VendorIdentity):
        payload["vendor_id"] = str(identity.vendor.id)
        payload["is_active"] = identity.vendor.is_active
    elif isinstance(identity, BuyerIdentity):
        payload["buyer_id"] = str(identity.buyer.id)
        payload["is_active"] = identity.buyer.is_active
    elif isinstance(identity, EmployeeIdentity):
        payload["employee_id"] = str(identity.employee.id)
    return payload


class AuthService:
    """Service for authentication operations."""

    @staticmethod
    def issue_token(user: User, identity: Identity, config: AuthConfig) -> str:
        return create_access_token({"sub": str(user.id), "email": user.email, "role": identity.role}, config)

    @staticmethod
    async def register(
        db: AsyncSession,
        email: str,
        password: str,
        full_name: Optional[str] = None,
        phone: Optional[str] = None,
        role: str = UserRole.USER.value,
        company_name: Optional[str] = None,
    ) -> tuple[User, Identity]:
        """
        Create a local account.

        BUYER and VENDOR registrations also create the matching identity row
        (unless one already exists for the email). Internal roles cannot be
        self-assigned.
        """
        email = normalize_email(email)
        role = normalize_role(role) or UserRole.USER.value
        if role not in SELF_REGISTER_ROLES:
            raise ValidationException(f"Role {role} cannot be self-registered", code="INVALID_ROLE")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise ValidationException(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")

        if await IdentityRepository.get_user_by_email(db, email) is not None:
            raise ConflictException("A user with this email address has already been registered", code="EMAIL_EXISTS")

        try:
            user = await IdentityRepository.create_user(
                db,
                email=email,
                full_name=(full_name or "").strip() or None,
                phone=(phone or "").strip() or None,
                role=role,
                password_hash=hash_password(password),
            )
            await IdentityRepository.backfill_user_id(db, user.id, email)

            if role == UserRole.BUYER.value and await IdentityRepository.find_buyer(db, user.id, email) is None:
                await IdentityRepository.create_buyer(
                    db, user.id, email, full_name=user.full_name, phone=user.phone, company_name=company_name
                )
            if role == UserRole.VENDOR.value and await IdentityRepository.find_vendor(db, user.id, email) is None:
                await IdentityRepository.create_vendor(
                    db, user.id, email, company_name=company_name or user.full_name, phone=user.phone
                )
        except IntegrityError:
            await db.rollback()
            raise ConflictException("A user with this email address has already been registered", code="EMAIL_EXISTS")

        identity = await SessionService.attach_identity(db, user)
        logger.info("User registered", extra={"user_id": str(user.id), "role": identity.role})
        return user, identity

    @staticmethod
    async def authenticate(
        db: AsyncSession,
        email: str,
        password: str,
        role_hint: Optional[str] = None,
    ) -> tuple[User, Identity]:
        """
        Verify email/password and resolve the caller's identity.

        Legacy bcrypt and plaintext hashes are accepted once and replaced by an
        Argon2 hash. `role_hint` enforces portal isolation: the vendor portal
        requires a vendor identity and the buyer portal rejects vendors.
        """
        user = await IdentityRepository.get_user_by_email(db, email)
        if user is None or not user.password_hash or not verify_password(password, user.password_hash):
            logger.info("Login failed", extra={"email": normalize_email(email)})
            raise UnauthorizedException("Invalid credentials", code="INVALID_CREDENTIALS")

        if needs_rehash(user.password_hash):
            user.password_hash = hash_password(password)
            logger.info("Upgraded legacy password hash", extra={"user_id": str(user.id)})

        identity = await SessionService.attach_identity(db, user)
        hint = normalize_role(role_hint) if role_hint else ""

        if hint == UserRole.VENDOR.value and not isinstance(identity, VendorIdentity):
            if await IdentityRepository.find_vendor(db, user.id, user.email) is None:
                raise ForbiddenException("Vendor profile not found", code="VENDOR_PROFILE_NOT_FOUND")

        if hint == UserRole.BUYER.value:
            has_vendor = await IdentityRepository.find_vendor(db, user.id, user.email) is not None
            if has_vendor or not isinstance(identity, BuyerIdentity):
                raise ForbiddenException(BUYER_NOT_REGISTERED, code="BUYER_NOT_REGISTERED")

        if isinstance(identity, (VendorIdentity, BuyerIdentity)):
            row = identity.vendor if isinstance(identity, VendorIdentity) else identity.buyer
            if row.is_active is False:
                raise ForbiddenException("Account inactive", code="ACCOUNT_INACTIVE")

        if hint and hint in {r.value for r in INTERNAL_ROLES} and not isinstance(identity, EmployeeIdentity):
            raise ForbiddenException("Employee account required", code="EMPLOYEE_REQUIRED")

        logger.info("Login succeeded", extra={"user_id": str(user.id), "role": identity.role})
        return user, identity

    @staticmethod
    async def change_password(
        db: AsyncSession,
        user_id: uuid.UUID,
        new_password: str,
        current_password: Optional[str] = None,
    ) -> None:
        """Set a new password; the current one must match when the account already has one."""
        if len(new_password or "") < MIN_PASSWORD_LENGTH:
            raise ValidationException(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")

        user = await IdentityRepository.get_user(db, user_id)
        if user is None:
            raise NotFoundException("User not found", code="USER_NOT_FOUND")

        if user.password_hash:
            if not current_password or not verify_password(current_password, user.password_hash):
                raise UnauthorizedException("Invalid current password", code="INVALID_CURRENT_PASSWORD")

        user.password_hash = hash_password(new_password)
        await db.commit()
        logger.info("Password changed", extra={"user_id": str(user.id)})

"""FastAPI dependencies for authentication, authorization and database sessions."""

import logging
from typing import Annotated, Callable, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from trademart.core.capabilities import SchemaCapabilities
from trademart.core.config import settings
from trademart.core.db import get_db
from trademart.core.security import AuthConfig, csrf_tokens_match
from trademart.database.identity_repo import IdentityRepository
from trademart.integrations.auth_provider import AuthProviderClient
from trademart.models.lead_enums import PORTAL_ROLES, UserRole
from trademart.models.models import Vendor
from trademart.services.session_service import ResolvedSession, SessionService, VendorIdentity
from trademart.utils.exceptions import ForbiddenException, UnauthorizedException

logger = logging.getLogger("trademart.auth")

bearer_scheme = HTTPBearer(auto_error=False)

SAFE_METHODS = {"GET", "HEAD", "OPTIONS"}
CSRF_HEADERS = ("x-csrf-token", "x-xsrf-token")

DB = Annotated[AsyncSession, Depends(get_db)]


def get_auth_config(request: Request) -> AuthConfig:
    """AuthConfig built at startup; built on first use when startup hooks did not run."""
    config = getattr(request.app.state, "auth_config", None)
    if config is None:
        config = AuthConfig.from_settings(settings, logging.getLogger("trademart.api"))
        request.app.state.auth_config = config
    return config


def get_capabilities(request: Request) -> SchemaCapabilities:
    return getattr(request.app.state, "capabilities", None) or SchemaCapabilities()


def get_auth_provider(request: Request, config: Annotated[AuthConfig, Depends(get_auth_config)]) -> AuthProviderClient:
    provider = getattr(request.app.state, "auth_provider", None)
    if provider is None:
        provider = AuthProviderClient(config)
    return provider


Auth = Annotated[AuthConfig, Depends(get_auth_config)]
Capabilities = Annotated[SchemaCapabilities, Depends(get_capabilities)]


def _bearer_token(credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if credentials is None or credentials.scheme.lower() != "bearer":
        return None
    return credentials.credentials.strip() or None


def check_csrf(request: Request, session: ResolvedSession, config: AuthConfig) -> None:
    """Cookie-authenticated unsafe requests must echo the CSRF cookie in a header."""
    if request.method.upper() in SAFE_METHODS or session.is_bearer:
        return
    header = next((request.headers.get(name) for name in CSRF_HEADERS if request.headers.get(name)), None)
    if not csrf_tokens_match(request.cookies.get(config.csrf_cookie_name), header):
        logger.warning("CSRF token mismatch", extra={"http.route": request.url.path, "user_id": str(session.user.id)})
        raise ForbiddenException("CSRF token mismatch", code="CSRF_MISMATCH")


async def get_optional_session(
    request: Request,
    db: DB,
    config: Auth,
    provider: Annotated[AuthProviderClient, Depends(get_auth_provider)],
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
) -> Optional[ResolvedSession]:
    """Resolve the caller if credentials are present and valid, otherwise None."""
    return await SessionService.resolve(
        db,
        config,
        provider,
        bearer_token=_bearer_token(credentials),
        cookie_token=request.cookies.get(config.cookie_name),
    )


async def get_current_session(
    request: Request,
    config: Auth,
    session: Annotated[Optional[ResolvedSession], Depends(get_optional_session)],
) -> ResolvedSession:
    if session is None:
        raise UnauthorizedException("Unauthorized")
    check_csrf(request, session, config)
    return session


CurrentSession = Annotated[ResolvedSession, Depends(get_current_session)]
OptionalSession = Annotated[Optional[ResolvedSession], Depends(get_optional_session)]


def require_roles(*roles: str) -> Callable:
    """Dependency factory allowing only the given roles.

    VENDOR-only routes reject BUYER sessions and BUYER-only routes reject
    VENDOR sessions with a portal-specific message.
    """
    allowed = {str(role).upper() for role in roles}

    async def _guard(session: CurrentSession) -> ResolvedSession:
        if session.role in allowed:
            return session
        if session.role in {r.value for r in PORTAL_ROLES} and allowed & {r.value for r in PORTAL_ROLES}:
            raise ForbiddenException(
                f"{session.role.title()} accounts cannot access this portal",
                code="PORTAL_MISMATCH",
            )
        raise ForbiddenException("Insufficient role for this action")

    return _guard


async def get_current_vendor(session: CurrentSession, db: DB) -> Vendor:
    """Vendor row of the caller.

    Callers whose highest identity is not the vendor one (employees who also
    sell) are accepted when a vendor row exists for them; buyers never are.
    """
    if isinstance(session.identity, VendorIdentity):
        return session.identity.vendor
    if session.role == UserRole.BUYER.value:
        raise ForbiddenException("Buyer accounts cannot access the vendor portal", code="PORTAL_MISMATCH")

    vendor = await IdentityRepository.find_vendor(db, session.user.id, session.user.email)
    if vendor is None:
        raise ForbiddenException("Vendor profile not found", code="VENDOR_PROFILE_NOT_FOUND")
    return vendor


CurrentVendor = Annotated[Vendor, Depends(get_current_vendor)]

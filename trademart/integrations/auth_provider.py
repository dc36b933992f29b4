import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from trademart.core.security import AuthConfig
from trademart.utils.exceptions import ServiceUnavailableException, UpstreamException

logger = logging.getLogger("trademart.auth")


@dataclass(frozen=True)
class ProviderUser:
    """User as reported by the hosted auth provider (`GET /auth/v1/user`)."""

    id: Optional[uuid.UUID]
    email: str
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def full_name(self) -> Optional[str]:
        value = self.metadata.get("full_name") or self.metadata.get("name")
        return str(value).strip() or None if value else None

    @property
    def phone(self) -> Optional[str]:
        value = self.metadata.get("phone")
        return str(value).strip() or None if value else None


class AuthProviderClient:
    """Verifies bearer tokens that were not issued by this service."""

    def __init__(self, config: AuthConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._config = config
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self._config.provider_url)

    async def get_user(self, access_token: str) -> Optional[ProviderUser]:
        """Return the provider's user for `access_token`, or None when the token is rejected.

        Timeouts and connection failures raise ServiceUnavailableException so
        callers answer 503 instead of treating the caller as logged out.
        """
        if not self.enabled or not access_token:
            return None

        headers = {"Authorization": f"Bearer {access_token}"}
        if self._config.provider_anon_key:
            headers["apikey"] = self._config.provider_anon_key

        try:
            async with httpx.AsyncClient(
                timeout=self._config.provider_timeout_seconds,
                transport=self._transport,
            ) as client:
                resp = await client.get(f"{self._config.provider_url}/auth/v1/user", headers=headers)
        except httpx.TimeoutException:
            logger.warning("Auth provider request timed out")
            raise ServiceUnavailableException("Auth service temporarily unavailable. Please retry.")
        except httpx.TransportError as exc:
            logger.warning("Auth provider connection failed", extra={"error": str(exc)})
            raise ServiceUnavailableException("Auth service temporarily unavailable. Please retry.")

        if resp.status_code in (401, 403, 404):
            return None
        if resp.status_code >= 500:
            logger.warning("Auth provider error", extra={"status_code": resp.status_code})
            raise ServiceUnavailableException("Auth service temporarily unavailable. Please retry.")
        if resp.status_code != 200:
            raise UpstreamException("Unexpected auth provider response", details={"status_code": resp.status_code})

        try:
            data = resp.json()
        except ValueError:
            raise UpstreamException("Auth provider returned invalid JSON")

        email = str(data.get("email") or "").strip().lower()
        if not email:
            return None

        try:
            provider_id = uuid.UUID(str(data.get("id")))
        except ValueError:
            provider_id = None

        metadata = data.get("user_metadata") if isinstance(data.get("user_metadata"), dict) else {}
        return ProviderUser(id=provider_id, email=email, metadata=metadata)

"""Security utilities for authentication and authorization."""

import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import bcrypt
import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from trademart.core.config import Settings

# Argon2 password hasher
ph = PasswordHasher()

MIN_PASSWORD_LENGTH = 6


@dataclass(frozen=True)
class AuthConfig:
    """Authentication settings resolved once at process start."""

    jwt_secret: str
    jwt_algorithm: str
    token_ttl: timedelta
    cookie_name: str
    csrf_cookie_name: str
    cookie_domain: Optional[str]
    cookie_max_age_seconds: int
    secure_cookies: bool
    provider_url: str
    provider_anon_key: str
    provider_timeout_seconds: float

    @classmethod
    def from_settings(cls, settings: Settings, logger: logging.Logger) -> "AuthConfig":
        """Pick the JWT secret, warning through `logger` when a fallback secret is used."""
        secret = settings.JWT_SECRET or settings.SUPABASE_JWT_SECRET or settings.SUPABASE_SERVICE_ROLE_KEY
        if not secret:
            raise RuntimeError("JWT_SECRET is not configured. Set it in the environment or .env file.")
        if not settings.JWT_SECRET:
            logger.warning("JWT_SECRET missing; falling back to a provider secret. Configure a dedicated JWT_SECRET.")

        return cls(
            jwt_secret=secret,
            jwt_algorithm=settings.JWT_ALGORITHM,
            token_ttl=timedelta(minutes=settings.AUTH_TOKEN_TTL_MINUTES),
            cookie_name=settings.AUTH_COOKIE_NAME,
            csrf_cookie_name=settings.AUTH_CSRF_COOKIE,
            cookie_domain=settings.AUTH_COOKIE_DOMAIN or None,
            cookie_max_age_seconds=max(1, settings.AUTH_COOKIE_MAX_AGE_DAYS) * 24 * 60 * 60,
            secure_cookies=settings.is_production,
            provider_url=settings.SUPABASE_URL.rstrip("/"),
            provider_anon_key=settings.SUPABASE_ANON_KEY,
            provider_timeout_seconds=settings.AUTH_PROVIDER_TIMEOUT_SECONDS,
        )


def hash_password(password: str) -> str:
    """Hash a password using Argon2."""
    return ph.hash(password)


def is_bcrypt_hash(value: Optional[str]) -> bool:
    return isinstance(value, str) and value.startswith("$2")


def is_argon2_hash(value: Optional[str]) -> bool:
    return isinstance(value, str) and value.startswith("$argon2")


def verify_password(password: str, hashed: Optional[str]) -> bool:
    """Verify a password against an Argon2, legacy bcrypt or legacy plaintext value."""
    if not password or not hashed:
        return False
    if is_argon2_hash(hashed):
        try:
            ph.verify(hashed, password)
            return True
        except (VerifyMismatchError, VerificationError, InvalidHashError):
            return False
    if is_bcrypt_hash(hashed):
        try:
            return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            return False
    return hmac.compare_digest(password.encode("utf-8"), hashed.encode("utf-8"))


def needs_rehash(hashed: Optional[str]) -> bool:
    """True for anything that is not a current Argon2 hash."""
    if not is_argon2_hash(hashed):
        return True
    try:
        return ph.check_needs_rehash(hashed)
    except InvalidHashError:
        return True


def create_access_token(data: dict[str, Any], config: AuthConfig, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token."""
    now = datetime.now(timezone.utc)
    to_encode = data.copy()
    to_encode.update({"exp": now + (expires_delta or config.token_ttl), "iat": now})
    return jwt.encode(to_encode, config.jwt_secret, algorithm=config.jwt_algorithm)


def decode_access_token(token: str, config: AuthConfig) -> Optional[dict[str, Any]]:
    """Decode and verify a JWT token."""
    try:
        return jwt.decode(token, config.jwt_secret, algorithms=[config.jwt_algorithm])
    except jwt.PyJWTError:
        return None


def create_csrf_token() -> str:
    return secrets.token_hex(24)


def csrf_tokens_match(cookie_value: Optional[str], header_value: Optional[str]) -> bool:
    if not cookie_value or not header_value:
        return False
    return hmac.compare_digest(cookie_value, header_value)

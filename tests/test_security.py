import logging
from datetime import timedelta

import bcrypt
import pytest

from trademart.core.config import Settings
from trademart.core.security import (
    AuthConfig,
    create_access_token,
    csrf_tokens_match,
    decode_access_token,
    hash_password,
    needs_rehash,
    verify_password,
)


def test_argon2_roundtrip():
    hashed = hash_password("s3cret-pass")
    assert hashed.startswith("$argon2")
    assert verify_password("s3cret-pass", hashed)
    assert not verify_password("wrong", hashed)
    assert not needs_rehash(hashed)


def test_legacy_bcrypt_and_plaintext_are_accepted_but_flagged():
    legacy = bcrypt.hashpw(b"old-pass", bcrypt.gensalt(rounds=4)).decode()
    assert verify_password("old-pass", legacy)
    assert not verify_password("other", legacy)
    assert needs_rehash(legacy)

    assert verify_password("plain-pass", "plain-pass")
    assert not verify_password("plain", "plain-pass")
    assert needs_rehash("plain-pass")


def test_empty_values_never_verify():
    assert not verify_password("", hash_password("x" * 8))
    assert not verify_password("anything", None)


def test_access_token_roundtrip_and_expiry(auth_config):
    token = create_access_token({"sub": "abc", "email": "a@trademart.in"}, auth_config)
    claims = decode_access_token(token, auth_config)
    assert claims["sub"] == "abc"
    assert "exp" in claims

    expired = create_access_token({"sub": "abc"}, auth_config, expires_delta=timedelta(seconds=-5))
    assert decode_access_token(expired, auth_config) is None
    assert decode_access_token("not-a-jwt", auth_config) is None


def test_csrf_comparison():
    assert csrf_tokens_match("abc", "abc")
    assert not csrf_tokens_match("abc", "abd")
    assert not csrf_tokens_match(None, "abc")
    assert not csrf_tokens_match("abc", "")


def test_auth_config_prefers_jwt_secret(caplog):
    settings = Settings(JWT_SECRET="primary", SUPABASE_JWT_SECRET="fallback", _env_file=None)
    with caplog.at_level(logging.WARNING):
        config = AuthConfig.from_settings(settings, logging.getLogger("tests.auth"))
    assert config.jwt_secret == "primary"
    assert not [r for r in caplog.records if r.name == "tests.auth"]


def test_auth_config_falls_back_with_one_warning(caplog):
    settings = Settings(JWT_SECRET="", SUPABASE_JWT_SECRET="", SUPABASE_SERVICE_ROLE_KEY="service-key", _env_file=None)
    with caplog.at_level(logging.WARNING):
        config = AuthConfig.from_settings(settings, logging.getLogger("tests.auth"))
    assert config.jwt_secret == "service-key"
    assert len([r for r in caplog.records if r.name == "tests.auth"]) == 1


def test_auth_config_requires_a_secret():
    settings = Settings(JWT_SECRET="", SUPABASE_JWT_SECRET="", SUPABASE_SERVICE_ROLE_KEY="", _env_file=None)
    with pytest.raises(RuntimeError):
        AuthConfig.from_settings(settings, logging.getLogger("tests.auth"))


def test_cookie_settings_follow_environment():
    prod = Settings(JWT_SECRET="x", ENVIRONMENT="production", AUTH_COOKIE_DOMAIN=".trademart.in", _env_file=None)
    config = AuthConfig.from_settings(prod, logging.getLogger("tests.auth"))
    assert config.secure_cookies is True
    assert config.cookie_domain == ".trademart.in"
    assert config.cookie_max_age_seconds == 7 * 24 * 60 * 60

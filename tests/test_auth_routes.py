import bcrypt
import pytest

from trademart.core.config import settings
from trademart.database.identity_repo import IdentityRepository

from conftest import API, PASSWORD, login

pytestmark = pytest.mark.anyio


async def test_register_buyer_sets_session_cookies(client):
    resp = await client.post(
        f"{API}/auth/register",
        json={"email": "Priya@Buyers.in", "password": "buyer-pass", "full_name": "Priya", "role": "buyer"},
    )

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["user"]["email"] == "priya@buyers.in"
    assert data["user"]["role"] == "BUYER"
    assert data["user"]["buyer_id"]
    assert client.cookies.get(settings.AUTH_COOKIE_NAME)
    assert client.cookies.get(settings.AUTH_CSRF_COOKIE) == data["csrf_token"]

    set_cookies = resp.headers.get_list("set-cookie")
    session_cookie = next(c for c in set_cookies if c.startswith(f"{settings.AUTH_COOKIE_NAME}="))
    csrf_cookie = next(c for c in set_cookies if c.startswith(f"{settings.AUTH_CSRF_COOKIE}="))
    assert "httponly" in session_cookie.lower()
    assert "httponly" not in csrf_cookie.lower()
    assert "samesite=lax" in session_cookie.lower()


async def test_register_rejects_duplicates_internal_roles_and_short_passwords(client, factory):
    await factory.user(email="taken@trademart.in")

    dup = await client.post(f"{API}/auth/register", json={"email": "TAKEN@trademart.in", "password": "long-enough"})
    assert dup.status_code == 409
    assert dup.json()["error"]["code"] == "EMAIL_EXISTS"

    admin = await client.post(f"{API}/auth/register", json={"email": "x@trademart.in", "password": "long-enough", "role": "ADMIN"})
    assert admin.status_code == 400
    assert admin.json()["error"]["code"] == "INVALID_ROLE"

    short = await client.post(f"{API}/auth/register", json={"email": "y@trademart.in", "password": "123"})
    assert short.status_code == 400
    assert short.json()["success"] is False
    assert short.json()["error"]["code"] == "VALIDATION_ERROR"


async def test_register_vendor_without_session(client):
    resp = await client.post(
        f"{API}/auth/register",
        json={"email": "shop@vendors.in", "password": "vendor-pass", "role": "VENDOR", "company_name": "Shop", "no_session": True},
    )

    data = resp.json()["data"]
    assert data["session_skipped"] is True
    assert data["user"]["role"] == "VENDOR"
    assert data["user"]["vendor_id"]
    assert client.cookies.get(settings.AUTH_COOKIE_NAME) is None


async def test_login_failures(client, factory):
    await factory.user(email="asha@trademart.in")

    resp = await client.post(f"{API}/auth/login", json={"email": "asha@trademart.in", "password": "wrong"})
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "INVALID_CREDENTIALS"

    resp = await client.post(f"{API}/auth/login", json={"email": "nobody@trademart.in", "password": "wrong"})
    assert resp.status_code == 401


async def test_login_upgrades_legacy_bcrypt_hash(client, factory, session_factory):
    legacy = bcrypt.hashpw(PASSWORD.encode(), bcrypt.gensalt(rounds=4)).decode()
    user = await factory.user(email="legacy@trademart.in", password_hash=legacy)

    await login(client, "legacy@trademart.in")

    async with session_factory() as session:
        stored = await IdentityRepository.get_user(session, user.id)
        assert stored.password_hash.startswith("$argon2")


async def test_portal_isolation_on_login(client, factory):
    buyer_user = await factory.user(email="buyer@trademart.in")
    await factory.buyer(user=buyer_user)
    vendor = await factory.vendor(email="seller@trademart.in")
    await factory.vendor(email="sleepy@trademart.in", is_active=False)

    resp = await client.post(f"{API}/auth/login", json={"email": "buyer@trademart.in", "password": PASSWORD, "role": "VENDOR"})
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "VENDOR_PROFILE_NOT_FOUND"

    resp = await client.post(f"{API}/auth/login", json={"email": "seller@trademart.in", "password": PASSWORD, "role": "BUYER"})
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "BUYER_NOT_REGISTERED"

    resp = await client.post(f"{API}/auth/login", json={"email": "seller@trademart.in", "password": PASSWORD, "role": "ADMIN"})
    assert resp.json()["error"]["code"] == "EMPLOYEE_REQUIRED"

    resp = await client.post(f"{API}/auth/login", json={"email": "sleepy@trademart.in", "password": PASSWORD})
    assert resp.json()["error"]["code"] == "ACCOUNT_INACTIVE"

    resp = await client.post(f"{API}/auth/login", json={"email": "seller@trademart.in", "password": PASSWORD, "role": "VENDOR"})
    assert resp.status_code == 200
    assert resp.json()["data"]["user"]["vendor_id"] == str(vendor.id)


async def test_me_logout_and_csrf_reissue(client, factory):
    await factory.user(email="meera@trademart.in", full_name="Meera")

    anonymous = await client.get(f"{API}/auth/me")
    assert anonymous.json()["data"] == {"user": None}

    await login(client, "meera@trademart.in")
    me = await client.get(f"{API}/auth/me")
    assert me.json()["data"]["user"]["full_name"] == "Meera"

    client.cookies.delete(settings.AUTH_CSRF_COOKIE)
    me = await client.get(f"{API}/auth/me")
    assert me.status_code == 200
    assert client.cookies.get(settings.AUTH_CSRF_COOKIE)

    out = await client.post(f"{API}/auth/logout")
    assert out.json()["data"] == {"logged_out": True}
    assert client.cookies.get(settings.AUTH_COOKIE_NAME) is None
    assert (await client.get(f"{API}/auth/me")).json()["data"] == {"user": None}


async def test_password_change_requires_csrf_and_current_password(client, factory):
    await factory.user(email="dev@trademart.in")
    csrf = await login(client, "dev@trademart.in")
    url = f"{API}/auth/password"

    missing_csrf = await client.patch(url, json={"current_password": PASSWORD, "new_password": "new-pass-1"})
    assert missing_csrf.status_code == 403
    assert missing_csrf.json()["error"]["code"] == "CSRF_MISMATCH"

    wrong = await client.patch(
        url, json={"current_password": "nope", "new_password": "new-pass-1"}, headers={"X-CSRF-Token": csrf}
    )
    assert wrong.status_code == 401
    assert wrong.json()["error"]["code"] == "INVALID_CURRENT_PASSWORD"

    ok = await client.patch(
        url, json={"current_password": PASSWORD, "new_password": "new-pass-1"}, headers={"X-XSRF-Token": csrf}
    )
    assert ok.status_code == 200

    await login(client, "dev@trademart.in", password="new-pass-1")


async def test_bearer_requests_skip_csrf(client, factory):
    await factory.user(email="api@trademart.in")
    resp = await client.post(f"{API}/auth/login", json={"email": "api@trademart.in", "password": PASSWORD})
    token = resp.json()["data"]["access_token"]
    client.cookies.clear()

    changed = await client.patch(
        f"{API}/auth/password",
        json={"current_password": PASSWORD, "new_password": "rotated-1"},
        headers={"Authorization": f"Bearer {token}"},
    )
    assert changed.status_code == 200


async def test_unauthenticated_write_is_401(client):
    resp = await client.patch(f"{API}/auth/password", json={"new_password": "whatever-1"})
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "UNAUTHORIZED"


async def test_oversized_body_is_rejected(client):
    resp = await client.post(
        f"{API}/auth/login",
        content=b"{" + b" " * settings.MAX_BODY_BYTES + b"}",
        headers={"content-type": "application/json"},
    )
    assert resp.status_code == 413
    assert resp.json()["error"]["code"] == "PAYLOAD_TOO_LARGE"

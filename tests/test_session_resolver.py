import dataclasses
import uuid

import httpx
import pytest

from trademart.core.security import create_access_token
from trademart.integrations.auth_provider import AuthProviderClient
from trademart.models.models import Buyer, User, Vendor
from trademart.services.session_service import (
    BuyerIdentity,
    EmployeeIdentity,
    PlainUserIdentity,
    SessionService,
    VendorIdentity,
)
from trademart.utils.exceptions import ServiceUnavailableException

pytestmark = pytest.mark.anyio


def token_for(user, auth_config):
    return create_access_token({"sub": str(user.id), "email": user.email}, auth_config)


async def resolve(session_factory, auth_config, bearer=None, cookie=None, provider=None):
    async with session_factory() as session:
        return await SessionService.resolve(session, auth_config, provider, bearer_token=bearer, cookie_token=cookie)


async def test_no_credentials_resolve_to_none(session_factory, auth_config):
    assert await resolve(session_factory, auth_config) is None
    assert await resolve(session_factory, auth_config, cookie="garbage") is None


async def test_employee_identity_wins_over_vendor_and_buyer(factory, session_factory, auth_config):
    user = await factory.user(email="ravi@trademart.in")
    await factory.vendor(user=user)
    await factory.buyer(user=user)
    await factory.employee("ravi@trademart.in", role="manager", user=user)

    session = await resolve(session_factory, auth_config, bearer=token_for(user, auth_config))

    assert isinstance(session.identity, EmployeeIdentity)
    assert session.role == "MANAGER"
    assert session.is_bearer


async def test_inactive_employee_falls_back_to_vendor(factory, session_factory, auth_config):
    user = await factory.user(email="meena@trademart.in")
    await factory.vendor(user=user)
    await factory.employee("meena@trademart.in", role="ADMIN", status="INACTIVE", user=user)

    session = await resolve(session_factory, auth_config, cookie=token_for(user, auth_config))

    assert isinstance(session.identity, VendorIdentity)
    assert session.role == "VENDOR"
    assert not session.is_bearer


async def test_legacy_role_spelling_is_normalized(factory, session_factory, auth_config):
    user = await factory.user(email="entry@trademart.in")
    await factory.employee("entry@trademart.in", role="dataentry", user=user)

    session = await resolve(session_factory, auth_config, bearer=token_for(user, auth_config))

    assert session.role == "DATA_ENTRY"


async def test_resolution_backfills_user_id_and_writes_role(factory, session_factory, auth_config):
    user = await factory.user(email="kiran@trademart.in", role="USER")
    vendor = await factory.vendor(email="kiran@trademart.in", link_user=False)
    buyer = await factory.buyer(email="kiran@trademart.in", link_user=False)

    session = await resolve(session_factory, auth_config, bearer=token_for(user, auth_config))

    assert isinstance(session.identity, VendorIdentity)
    async with session_factory() as check:
        assert (await check.get(Vendor, vendor.id)).user_id == user.id
        assert (await check.get(Buyer, buyer.id)).user_id == user.id
        assert (await check.get(User, user.id)).role == "VENDOR"


async def test_buyer_and_plain_identities(factory, session_factory, auth_config):
    buyer_user = await factory.user()
    await factory.buyer(user=buyer_user)
    plain_user = await factory.user()

    buyer_session = await resolve(session_factory, auth_config, bearer=token_for(buyer_user, auth_config))
    plain_session = await resolve(session_factory, auth_config, bearer=token_for(plain_user, auth_config))

    assert isinstance(buyer_session.identity, BuyerIdentity)
    assert isinstance(plain_session.identity, PlainUserIdentity)
    assert plain_session.role == "USER"


async def test_bearer_wins_over_cookie(factory, session_factory, auth_config):
    bearer_user = await factory.user()
    cookie_user = await factory.user()

    session = await resolve(
        session_factory,
        auth_config,
        bearer=token_for(bearer_user, auth_config),
        cookie=token_for(cookie_user, auth_config),
    )

    assert session.user.id == bearer_user.id
    assert session.token_source == "bearer"


async def test_unknown_subject_is_created_from_email_claim(session_factory, auth_config):
    token = create_access_token({"sub": str(uuid.uuid4()), "email": "New.Person@trademart.in"}, auth_config)

    session = await resolve(session_factory, auth_config, bearer=token)

    assert session.user.email == "new.person@trademart.in"
    assert isinstance(session.identity, PlainUserIdentity)


def _provider(auth_config, handler):
    config = dataclasses.replace(auth_config, provider_url="https://auth.trademart.test")
    return AuthProviderClient(config, transport=httpx.MockTransport(handler))


async def test_provider_token_creates_local_user(session_factory, auth_config):
    provider_id = uuid.uuid4()

    def handler(request):
        assert request.url.path == "/auth/v1/user"
        assert request.headers["authorization"] == "Bearer provider-token"
        return httpx.Response(
            200,
            json={"id": str(provider_id), "email": "Supa@Trademart.in", "user_metadata": {"full_name": "Supa User"}},
        )

    session = await resolve(session_factory, auth_config, bearer="provider-token", provider=_provider(auth_config, handler))

    assert session.user.id == provider_id
    assert session.user.email == "supa@trademart.in"
    assert session.user.full_name == "Supa User"


async def test_provider_rejection_and_outage(session_factory, auth_config):
    rejected = _provider(auth_config, lambda request: httpx.Response(401, json={"msg": "bad jwt"}))
    assert await resolve(session_factory, auth_config, bearer="expired", provider=rejected) is None

    down = _provider(auth_config, lambda request: httpx.Response(503))
    with pytest.raises(ServiceUnavailableException) as exc_info:
        await resolve(session_factory, auth_config, bearer="whatever", provider=down)
    assert exc_info.value.details["retryable"] is True


async def test_cookie_is_never_sent_to_provider(session_factory, auth_config):
    def handler(request):
        raise AssertionError("provider must not be called for cookies")

    provider = _provider(auth_config, handler)
    assert await resolve(session_factory, auth_config, cookie="not-a-local-jwt", provider=provider) is None

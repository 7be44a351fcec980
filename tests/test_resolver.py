from datetime import datetime, timedelta, timezone

import jwt
import pytest
from appwrite.exception import AppwriteException
from sqlalchemy import update
from sqlalchemy.exc import OperationalError

from crm.core import config
from crm.features.accounts.models import account_members
from crm.features.organizations.models import Organization
from crm.features.permissions.errors import IdentityLookupFailure
from crm.features.permissions.principal import Principal
from crm.features.permissions.roles import Role
from crm.features.users import auth
from crm.features.users.models import User
from crm.features.users.resolver import ClaimsResolver, principal_from_headers, session_token_from_request

from tests.doubles import ORG_A
from tests.doubles import FakeIdentityProvider, headers_for, make_request


SECRET = "test-secret"


@pytest.fixture
def signing_secret(monkeypatch):
    monkeypatch.setattr(config, "SESSION_JWT_SECRET", SECRET)
    return SECRET


def session_token(subject: str, expires_in: timedelta = timedelta(minutes=5), secret: str = SECRET) -> str:
    payload = {"userId": subject, "exp": datetime.now(timezone.utc) + expires_in}
    return jwt.encode(payload, secret, algorithm="HS256")


# ---------------------------
# Session evidence
# ---------------------------

def test_bearer_token_preferred_over_cookie():
    request = make_request(headers={"Authorization": "Bearer abc", "Cookie": "crm_session=xyz"})
    assert session_token_from_request(request) == "abc"


def test_cookie_used_without_bearer():
    assert session_token_from_request(make_request(headers={"Cookie": "crm_session=xyz"})) == "xyz"


def test_no_session_evidence():
    assert session_token_from_request(make_request()) is None
    assert session_token_from_request(make_request(headers={"Authorization": "Basic abc"})) is None


# ---------------------------
# Trusted headers
# ---------------------------

def test_principal_from_headers():
    principal = principal_from_headers({
        "x-user-id": "u1",
        "x-user-role": "admin",
        "x-organization-id": "orgA",
        "x-account-ids": "acc1, acc2,,",
    })
    assert principal == Principal("u1", "orgA", Role.ADMIN, frozenset({"acc1", "acc2"}))


@pytest.mark.parametrize("headers", [
    {"x-user-role": "ADMIN", "x-organization-id": "orgA"},
    {"x-user-id": "u1", "x-organization-id": "orgA"},
    {"x-user-id": "u1", "x-user-role": "ADMIN"},
    {"x-user-id": "u1", "x-user-role": "MANAGER", "x-organization-id": "orgA"},
])
def test_incomplete_or_invalid_headers_do_not_resolve(headers):
    assert principal_from_headers(headers) is None


async def test_headers_ignored_unless_trusted(db):
    request = make_request(headers={"x-user-id": "u1", "x-user-role": "ADMIN", "x-organization-id": "orgA"})
    assert await ClaimsResolver(db, trust_forwarded_headers=False).resolve(request) is None
    assert await ClaimsResolver(db, trust_forwarded_headers=True).resolve(request) is not None


# ---------------------------
# Database lookup
# ---------------------------

async def test_load_principal_includes_account_memberships(db, seed):
    principal = await ClaimsResolver(db).load_principal("aw-user-a")
    assert principal == Principal("user-a", ORG_A, Role.USER, frozenset({"acc-a1"}))


async def test_load_principal_reads_user_and_memberships_in_one_query(db, seed):
    await db.execute(account_members.insert().values(account_id="acc-a2", user_id="user-a"))
    await db.commit()

    class CountingSession:
        def __init__(self, session):
            self.session = session
            self.queries = 0

        async def execute(self, *args, **kwargs):
            self.queries += 1
            return await self.session.execute(*args, **kwargs)

    session = CountingSession(db)
    principal = await ClaimsResolver(session).load_principal("aw-user-a")
    assert principal.account_ids == frozenset({"acc-a1", "acc-a2"})
    assert session.queries == 1


async def test_user_without_memberships_has_no_accounts(db, seed):
    principal = await ClaimsResolver(db).load_principal("aw-admin-a")
    assert principal.account_ids == frozenset()


async def test_missing_user_does_not_resolve(db, seed):
    assert await ClaimsResolver(db).load_principal("aw-nobody") is None


async def test_inactive_user_does_not_resolve(db, seed):
    await db.execute(update(User).where(User.id == "user-a").values(is_active=False))
    await db.commit()
    assert await ClaimsResolver(db).load_principal("aw-user-a") is None


async def test_user_without_organization_does_not_resolve(db, seed):
    db.add(User(id="new", appwrite_id="aw-new", email="new@test", name="New", role="USER"))
    await db.commit()
    assert await ClaimsResolver(db).load_principal("aw-new") is None


async def test_inactive_organization_does_not_resolve(db, seed):
    await db.execute(update(Organization).where(Organization.id == ORG_A).values(is_active=False))
    await db.commit()
    assert await ClaimsResolver(db).load_principal("aw-owner-a") is None


async def test_unknown_role_does_not_resolve(db, seed):
    await db.execute(update(User).where(User.id == "user-a").values(role="MANAGER"))
    await db.commit()
    assert await ClaimsResolver(db).load_principal("aw-user-a") is None


async def test_database_fault_is_identity_lookup_failure():
    class BrokenSession:
        async def execute(self, *args, **kwargs):
            raise OperationalError("SELECT 1", {}, Exception("database is down"))

    with pytest.raises(IdentityLookupFailure):
        await ClaimsResolver(BrokenSession()).load_principal("aw-user-a")


# ---------------------------
# Session tokens
# ---------------------------

async def test_resolve_session_token(db, seed, signing_secret):
    request = make_request(headers={"Authorization": f"Bearer {session_token('aw-admin-a')}"})
    principal = await ClaimsResolver(db).resolve(request)
    assert principal == Principal("admin-a", ORG_A, Role.ADMIN)


async def test_expired_token_does_not_resolve(db, seed, signing_secret):
    token = session_token("aw-admin-a", expires_in=timedelta(minutes=-1))
    assert await ClaimsResolver(db).from_session_token(token) is None


async def test_wrongly_signed_token_does_not_resolve(db, seed, signing_secret):
    token = session_token("aw-admin-a", secret="someone-else")
    assert await ClaimsResolver(db).from_session_token(token) is None


async def test_garbage_token_does_not_resolve(db, seed, signing_secret):
    assert await ClaimsResolver(db).from_session_token("not-a-jwt") is None


async def test_identity_provider_confirms_user(db, seed, signing_secret):
    provider = FakeIdentityProvider(users={"aw-admin-a": {"$id": "aw-admin-a"}})
    principal = await ClaimsResolver(db, identity_provider=provider).from_session_token(session_token("aw-admin-a"))
    assert principal is not None
    assert provider.lookups == ["aw-admin-a"]


async def test_identity_provider_missing_user_does_not_resolve(db, seed, signing_secret):
    provider = FakeIdentityProvider()
    assert await ClaimsResolver(db, identity_provider=provider).from_session_token(session_token("aw-admin-a")) is None


async def test_identity_provider_fault_propagates(db, seed, signing_secret):
    provider = FakeIdentityProvider(error=IdentityLookupFailure("appwrite down"))
    with pytest.raises(IdentityLookupFailure):
        await ClaimsResolver(db, identity_provider=provider).from_session_token(session_token("aw-admin-a"))


async def test_header_and_session_principals_are_identical(db, seed, signing_secret):
    from_session = await ClaimsResolver(db).from_session_token(session_token("aw-user-a"))
    request = make_request(headers=headers_for(from_session))
    from_headers = await ClaimsResolver(db, trust_forwarded_headers=True).resolve(request)
    assert from_headers == from_session


# ---------------------------
# Session tokens without a signing secret
# ---------------------------

@pytest.fixture
def no_signing_secret(monkeypatch):
    monkeypatch.setattr(config, "SESSION_JWT_SECRET", None)


async def test_self_signed_token_rejected_without_any_verifier(db, seed, no_signing_secret):
    forged = session_token("aw-root", secret="attacker-key")
    assert await ClaimsResolver(db, trust_forwarded_headers=False).from_session_token(forged) is None


async def test_self_signed_token_rejected_by_identity_provider(db, seed, no_signing_secret):
    forged = session_token("aw-root", secret="attacker-key")
    provider = FakeIdentityProvider(users={"aw-root": {"$id": "aw-root"}})
    resolver = ClaimsResolver(db, identity_provider=provider, trust_forwarded_headers=False)
    assert await resolver.from_session_token(forged) is None
    assert provider.verified == [forged]
    assert provider.lookups == []


async def test_identity_provider_accepts_its_own_session(db, seed, no_signing_secret):
    provider = FakeIdentityProvider(sessions={"appwrite-jwt": {"$id": "aw-admin-a"}})
    principal = await ClaimsResolver(db, identity_provider=provider).from_session_token("appwrite-jwt")
    assert principal == Principal("admin-a", ORG_A, Role.ADMIN)


async def test_identity_provider_session_check_fault_propagates(db, seed, no_signing_secret):
    provider = FakeIdentityProvider(error=IdentityLookupFailure("appwrite down"))
    with pytest.raises(IdentityLookupFailure):
        await ClaimsResolver(db, identity_provider=provider).from_session_token("appwrite-jwt")


# ---------------------------
# Appwrite provider
# ---------------------------

class FakeUsers:
    error = None

    def __init__(self, client):
        self.client = client

    def get(self, user_id):
        if self.error is not None:
            raise self.error
        return {"$id": user_id}


async def test_appwrite_provider_returns_user(monkeypatch):
    monkeypatch.setattr(auth, "Users", FakeUsers)
    assert await auth.AppwriteIdentityProvider(client=object()).get_user("aw-1") == {"$id": "aw-1"}


async def test_appwrite_provider_not_found(monkeypatch):
    monkeypatch.setattr(FakeUsers, "error", AppwriteException("User not found", 404))
    monkeypatch.setattr(auth, "Users", FakeUsers)
    assert await auth.AppwriteIdentityProvider(client=object()).get_user("aw-1") is None


async def test_appwrite_provider_outage(monkeypatch):
    monkeypatch.setattr(FakeUsers, "error", AppwriteException("Server error", 500))
    monkeypatch.setattr(auth, "Users", FakeUsers)
    with pytest.raises(IdentityLookupFailure):
        await auth.AppwriteIdentityProvider(client=object()).get_user("aw-1")


class FakeAccount:
    error = None

    def __init__(self, client):
        self.client = client

    def get(self):
        if self.error is not None:
            raise self.error
        return {"$id": "aw-1"}


@pytest.fixture
def fake_account(monkeypatch):
    monkeypatch.setattr(auth, "session_client", lambda token: object())
    monkeypatch.setattr(auth, "Account", FakeAccount)
    return FakeAccount


async def test_appwrite_session_accepted(fake_account):
    assert await auth.AppwriteIdentityProvider(client=object()).verify_session("jwt") == {"$id": "aw-1"}


async def test_appwrite_session_rejected(monkeypatch, fake_account):
    monkeypatch.setattr(fake_account, "error", AppwriteException("Invalid token", 401))
    assert await auth.AppwriteIdentityProvider(client=object()).verify_session("jwt") is None


async def test_appwrite_session_check_outage(monkeypatch, fake_account):
    monkeypatch.setattr(fake_account, "error", AppwriteException("Server error", 503))
    with pytest.raises(IdentityLookupFailure):
        await auth.AppwriteIdentityProvider(client=object()).verify_session("jwt")


def test_unsigned_decode_refused_without_secret(monkeypatch):
    monkeypatch.setattr(config, "SESSION_JWT_SECRET", None)
    assert auth.decode_session_token(session_token("aw-admin-a", secret="attacker-key")) is None


def test_identity_provider_disabled_without_endpoint(monkeypatch):
    monkeypatch.setattr(config, "APPWRITE_ENDPOINT", None)
    assert auth.get_identity_provider() is None

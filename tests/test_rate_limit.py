import pytest

from crm.core import config
from crm.features.users.dependencies import rate_limit_key

from tests.doubles import make_request


@pytest.fixture
def trusted_headers(monkeypatch):
    monkeypatch.setattr(config, "TRUST_FORWARDED_HEADERS", True)


@pytest.fixture
def untrusted_headers(monkeypatch):
    monkeypatch.setattr(config, "TRUST_FORWARDED_HEADERS", False)


def test_cookie_sessions_get_separate_buckets(untrusted_headers):
    first = rate_limit_key(make_request(headers={"Cookie": "crm_session=session-a"}))
    second = rate_limit_key(make_request(headers={"Cookie": "crm_session=session-b"}))
    assert first != second
    assert first.startswith("session:")


def test_bearer_and_cookie_with_same_token_share_a_bucket(untrusted_headers):
    bearer = rate_limit_key(make_request(headers={"Authorization": "Bearer token-1"}))
    cookie = rate_limit_key(make_request(headers={"Cookie": "crm_session=token-1"}))
    assert bearer == cookie


def test_bucket_key_does_not_expose_the_token(untrusted_headers):
    key = rate_limit_key(make_request(headers={"Authorization": "Bearer secret-token"}))
    assert "secret-token" not in key


def test_forwarded_users_get_separate_buckets(trusted_headers):
    first = rate_limit_key(make_request(headers={"x-user-id": "admin-a", "Cookie": "crm_session=shared"}))
    second = rate_limit_key(make_request(headers={"x-user-id": "admin-b", "Cookie": "crm_session=shared"}))
    assert first == "user:admin-a"
    assert second == "user:admin-b"


def test_forwarded_user_ignored_unless_trusted(untrusted_headers):
    key = rate_limit_key(make_request(headers={"x-user-id": "admin-a"}, client=("10.0.0.7", 1234)))
    assert key == "10.0.0.7"


def test_anonymous_requests_keyed_by_client_address(untrusted_headers):
    first = rate_limit_key(make_request(client=("10.0.0.7", 1234)))
    second = rate_limit_key(make_request(client=("10.0.0.8", 1234)))
    assert (first, second) == ("10.0.0.7", "10.0.0.8")

from crm.core import config
from crm.features.permissions.dependencies import get_claims_resolver
from crm.main import app

from tests.doubles import FailingClaimsResolver, headers_for


async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "healthy"}


async def test_missing_session_is_401_json(client):
    resp = await client.get("/accounts")
    assert resp.status_code == 401
    assert resp.json() == {"success": False, "error": "Authentication required", "redirect": config.LOGIN_URL}


async def test_missing_session_redirects_browsers(client):
    resp = await client.get("/accounts", headers={"Accept": "text/html"})
    assert resp.status_code == 303
    assert resp.headers["location"] == config.LOGIN_URL


async def test_forbidden_is_403_json(client, principals):
    resp = await client.delete("/accounts/acc-a1", headers=headers_for(principals["user-a"]))
    assert resp.status_code == 403
    body = resp.json()
    assert body["success"] is False
    assert body["redirect"] == config.UNAUTHORIZED_URL


async def test_forbidden_redirects_browsers(client, principals):
    headers = {**headers_for(principals["user-a"]), "Accept": "text/html"}
    resp = await client.delete("/accounts/acc-a1", headers=headers)
    assert resp.status_code == 303
    assert resp.headers["location"] == config.UNAUTHORIZED_URL


async def test_denied_request_writes_nothing(client, principals):
    resp = await client.delete("/accounts/acc-a1", headers=headers_for(principals["user-a"]))
    assert resp.status_code == 403

    resp = await client.get("/accounts/acc-a1", headers=headers_for(principals["owner-a"]))
    assert resp.status_code == 200
    resp = await client.get("/activities", headers=headers_for(principals["owner-a"]))
    assert all(a["action"] != "delete" for a in resp.json())


async def test_identity_backend_outage_is_503(client):
    async def failing_resolver():
        return FailingClaimsResolver()

    app.dependency_overrides[get_claims_resolver] = failing_resolver
    resp = await client.get("/accounts")
    assert resp.status_code == 503
    assert resp.json()["success"] is False


async def test_validation_errors_are_400(client, principals):
    resp = await client.post("/accounts", json={"name": ""}, headers=headers_for(principals["admin-a"]))
    assert resp.status_code == 400
    assert "name" in resp.json()


async def test_unknown_row_is_404_after_authentication(client, principals):
    resp = await client.get("/accounts/missing")
    assert resp.status_code == 401
    resp = await client.get("/accounts/missing", headers=headers_for(principals["admin-a"]))
    assert resp.status_code == 404

from tests.doubles import ORG_A, ORG_B, headers_for


async def test_lists_are_confined_to_the_tenant(client, principals):
    resp = await client.get("/accounts", headers=headers_for(principals["admin-b"]))
    assert resp.status_code == 200
    assert [a["id"] for a in resp.json()] == ["acc-b1"]

    resp = await client.get("/accounts", headers=headers_for(principals["admin-a"]))
    assert sorted(a["id"] for a in resp.json()) == ["acc-a1", "acc-a2"]


async def test_foreign_organization_filter_is_forbidden(client, principals):
    resp = await client.get("/accounts", params={"organization_id": ORG_A}, headers=headers_for(principals["admin-b"]))
    assert resp.status_code == 403


async def test_cross_tenant_read_is_forbidden(client, principals):
    headers = headers_for(principals["admin-b"])
    for path in ("/accounts/acc-a1", "/deals/deal-a1", "/projects/proj-a1", "/tasks/task-a1"):
        resp = await client.get(path, headers=headers)
        assert resp.status_code == 403, path


async def test_cross_tenant_write_is_forbidden(client, principals):
    headers = headers_for(principals["admin-b"])
    resp = await client.patch("/accounts/acc-a1", json={"name": "Hijacked"}, headers=headers)
    assert resp.status_code == 403

    resp = await client.get("/accounts/acc-a1", headers=headers_for(principals["admin-a"]))
    assert resp.json()["name"] == "Acme"


async def test_owner_cannot_cross_tenants(client, principals):
    resp = await client.delete("/accounts/acc-b1", headers=headers_for(principals["owner-a"]))
    assert resp.status_code == 403


async def test_super_admin_crosses_tenants(client, principals):
    headers = headers_for(principals["root"])
    resp = await client.get("/accounts", headers=headers)
    assert sorted(a["id"] for a in resp.json()) == ["acc-a1", "acc-a2", "acc-b1"]

    resp = await client.get("/accounts", params={"organization_id": ORG_B}, headers=headers)
    assert [a["id"] for a in resp.json()] == ["acc-b1"]

    resp = await client.get("/accounts/acc-a1", headers=headers)
    assert resp.status_code == 200


async def test_created_rows_are_stamped_with_the_callers_organization(client, principals):
    resp = await client.post("/accounts", json={"name": "Umbrella"}, headers=headers_for(principals["admin-b"]))
    assert resp.status_code == 201
    assert resp.json()["organization_id"] == ORG_B
    account_id = resp.json()["id"]
    assert len(account_id) == 26

    resp = await client.get("/activities", headers=headers_for(principals["admin-b"]))
    assert any(a["entity_id"] == account_id for a in resp.json())


async def test_assignee_must_belong_to_the_tenant(client, principals):
    resp = await client.post(
        "/deals",
        json={"name": "Poach", "assigned_user_id": "user-a"},
        headers=headers_for(principals["admin-b"]),
    )
    assert resp.status_code == 400


async def test_users_list_is_confined_to_the_tenant(client, principals):
    resp = await client.get("/users/", headers=headers_for(principals["admin-b"]))
    assert [u["id"] for u in resp.json()] == ["admin-b"]

    resp = await client.get("/users/user-a", headers=headers_for(principals["admin-b"]))
    assert resp.status_code == 403


async def test_organizations(client, principals):
    resp = await client.get("/organizations/current", headers=headers_for(principals["user-a"]))
    assert resp.status_code == 200
    assert resp.json()["id"] == ORG_A
    assert resp.json()["member_count"] == 4

    resp = await client.get("/organizations/", headers=headers_for(principals["admin-a"]))
    assert [o["id"] for o in resp.json()] == [ORG_A]

    resp = await client.get(f"/organizations/{ORG_B}", headers=headers_for(principals["owner-a"]))
    assert resp.status_code == 403

    resp = await client.get("/organizations/", headers=headers_for(principals["root"]))
    assert len(resp.json()) == 3


async def test_only_super_admin_creates_organizations(client, principals):
    payload = {"name": "Gamma", "slug": "gamma"}
    resp = await client.post("/organizations/", json=payload, headers=headers_for(principals["owner-a"]))
    assert resp.status_code == 403

    resp = await client.post("/organizations/", json=payload, headers=headers_for(principals["root"]))
    assert resp.status_code == 201
    assert resp.json()["slug"] == "gamma"

    resp = await client.post("/organizations/", json=payload, headers=headers_for(principals["root"]))
    assert resp.status_code == 409


async def test_update_current_organization_requires_owner(client, principals):
    resp = await client.patch("/organizations/current", json={"industry": "Retail"}, headers=headers_for(principals["admin-a"]))
    assert resp.status_code == 403

    resp = await client.patch("/organizations/current", json={"industry": "Retail"}, headers=headers_for(principals["owner-a"]))
    assert resp.status_code == 200
    assert resp.json()["industry"] == "Retail"

from __future__ import annotations

import pytest

API = "/api/v1"


async def _admin(factory):
    role = await factory.role("admin", ["*:*"])
    return await factory.user("admin@example.com", roles=[role])


@pytest.mark.integration
@pytest.mark.asyncio
async def test_anonymous_request_is_401(client) -> None:
    response = await client.get(f"{API}/users")

    assert response.status_code == 401
    assert response.json() == {"detail": "Unauthorized", "code": "UNAUTHORIZED"}


@pytest.mark.integration
@pytest.mark.asyncio
async def test_health_needs_no_identity(client) -> None:
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.headers["X-Frame-Options"] == "DENY"


@pytest.mark.integration
@pytest.mark.asyncio
async def test_editor_role_scenario(client, factory, identity, resolver) -> None:
    identity.user = await _admin(factory)

    created = await client.post(
        f"{API}/roles",
        json={"name": "editor", "description": "Edits files", "permissions": ["files:read", "files:update"]},
    )
    assert created.status_code == 201
    role_id = created.json()["id"]
    assert [p["name"] for p in created.json()["permissions"]] == ["files:read", "files:update"]

    user = await factory.user("u@example.com")
    assigned = await client.post(f"{API}/users/{user.id}/roles", json={"role_id": role_id})
    assert assigned.status_code == 200
    assert [r["name"] for r in assigned.json()["roles"]] == ["editor"]

    assert await resolver.has_permission(user.id, "files", "read") is True
    assert await resolver.has_permission(user.id, "files", "delete") is False


@pytest.mark.integration
@pytest.mark.asyncio
async def test_direct_full_wildcard_scenario(client, factory, identity, resolver) -> None:
    identity.user = await _admin(factory)
    user = await factory.user("u@example.com")

    response = await client.post(f"{API}/users/{user.id}/permissions", json={"permission": "*:*"})

    assert response.status_code == 200
    assert response.json()["roles"] == []
    assert await resolver.has_permission(user.id, "users", "delete") is True


@pytest.mark.integration
@pytest.mark.asyncio
async def test_viewer_revocation_scenario(client, factory, identity, resolver) -> None:
    identity.user = await _admin(factory)
    viewer = await factory.role("viewer", ["files:*"])
    user = await factory.user("u@example.com", roles=[viewer])
    assert await resolver.has_permission(user.id, "files", "read") is True

    response = await client.delete(f"{API}/users/{user.id}/roles/{viewer.id}")

    assert response.status_code == 200
    assert response.json()["permissions"] == []
    assert await resolver.has_permission(user.id, "files", "read") is False


@pytest.mark.integration
@pytest.mark.asyncio
async def test_grant_edits_need_users_write_and_roles_permission(client, factory, identity) -> None:
    role = await factory.role("viewer", ["files:read"])
    target = await factory.user("target@example.com")

    identity.user = await factory.user("writer@example.com", permissions=["users:write"])
    response = await client.post(f"{API}/users/{target.id}/roles", json={"role_id": role.id})
    assert response.status_code == 403
    assert response.json()["code"] == "FORBIDDEN"

    identity.user = await factory.user("manager@example.com", permissions=["users:write", "roles:*"])
    response = await client.post(f"{API}/users/{target.id}/roles", json={"role_id": role.id})
    assert response.status_code == 200


@pytest.mark.integration
@pytest.mark.asyncio
async def test_system_account_is_protected_from_wildcard_admin(client, factory, identity) -> None:
    identity.user = await _admin(factory)
    system = await factory.user("system@example.com", is_system_account=True)

    deleted = await client.delete(f"{API}/users/{system.id}")
    assert deleted.status_code == 403
    assert deleted.json() == {"detail": "Cannot delete system accounts", "code": "CANNOT_DELETE_SYSTEM_ACCOUNT"}

    updated = await client.put(f"{API}/users/{system.id}", json={"name": "Renamed"})
    assert updated.status_code == 403
    assert updated.json()["code"] == "CANNOT_MODIFY_SYSTEM_ACCOUNT"


@pytest.mark.integration
@pytest.mark.asyncio
async def test_role_with_invalid_permission_is_400(client, factory, identity, store) -> None:
    identity.user = await _admin(factory)

    response = await client.post(f"{API}/roles", json={"name": "broken", "permissions": ["files read"]})

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_PERMISSION_FORMAT"
    assert await store.get_role_by_name("broken") is None


@pytest.mark.integration
@pytest.mark.asyncio
async def test_attaching_permissions_to_role_needs_permissions_write(client, factory, identity) -> None:
    identity.user = await factory.user("roles@example.com", permissions=["roles:write"])

    plain = await client.post(f"{API}/roles", json={"name": "plain"})
    assert plain.status_code == 201

    with_permissions = await client.post(f"{API}/roles", json={"name": "loaded", "permissions": ["files:read"]})
    assert with_permissions.status_code == 403


@pytest.mark.integration
@pytest.mark.asyncio
async def test_role_listing_allowed_for_user_writers(client, factory, identity) -> None:
    await factory.role("viewer", ["files:read"])
    identity.user = await factory.user("writer@example.com", permissions=["users:write"])

    response = await client.get(f"{API}/roles")

    assert response.status_code == 200
    assert [r["name"] for r in response.json()] == ["viewer"]


@pytest.mark.integration
@pytest.mark.asyncio
async def test_duplicate_role_is_409_and_missing_role_404(client, factory, identity) -> None:
    identity.user = await _admin(factory)

    duplicate = await client.post(f"{API}/roles", json={"name": "admin"})
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"] == "Role with this name already exists"

    missing = await client.get(f"{API}/roles/does-not-exist")
    assert missing.status_code == 404


@pytest.mark.integration
@pytest.mark.asyncio
async def test_me_lists_effective_permissions_with_labels(client, factory, identity) -> None:
    viewer = await factory.role("viewer", ["files:*"])
    identity.user = await factory.user("me@example.com", roles=[viewer], permissions=["dashboard:read"])

    response = await client.get(f"{API}/auth/me")

    assert response.status_code == 200
    body = response.json()
    assert body["authenticated"] is True
    assert body["user"]["email"] == "me@example.com"
    assert body["permissions"] == ["dashboard:read", "files:*"]
    assert [p["label"] for p in body["effective_permissions"]] == ["dashboard:read", "files:all actions"]


@pytest.mark.integration
@pytest.mark.asyncio
async def test_user_crud_through_api(client, factory, identity, auth_admin) -> None:
    identity.user = await _admin(factory)

    no_password = await client.post(f"{API}/users", json={"email": "new@example.com", "name": "New"})
    assert no_password.status_code == 422

    created = await client.post(
        f"{API}/users", json={"email": "new@example.com", "name": "New", "password": "secret-1"}
    )
    assert created.status_code == 201
    user_id = created.json()["id"]
    assert auth_admin.accounts[user_id]["email"] == "new@example.com"

    duplicate = await client.post(
        f"{API}/users", json={"email": "new@example.com", "name": "Again", "password": "secret-2"}
    )
    assert duplicate.status_code == 409

    listed = await client.get(f"{API}/users")
    assert {u["email"] for u in listed.json()} == {"admin@example.com", "new@example.com"}
    admin_row = next(u for u in listed.json() if u["email"] == "admin@example.com")
    assert [r["name"] for r in admin_row["roles"]] == ["admin"]
    assert admin_row["permissions"] == ["*:*"]

    access = await client.get(f"{API}/users/{user_id}/access")
    assert access.status_code == 200
    assert access.json()["permissions"] == []

    self_delete = await client.delete(f"{API}/users/{identity.user.id}")
    assert self_delete.status_code == 403

    deleted = await client.delete(f"{API}/users/{user_id}")
    assert deleted.status_code == 204
    assert user_id not in auth_admin.accounts
    assert (await client.get(f"{API}/users/{user_id}")).status_code == 404

from __future__ import annotations

import pytest

from docadmin.core.errors import (
    CannotDeleteSystemAccount,
    CannotModifySystemAccount,
    ConflictError,
    Forbidden,
    InvalidPermissionFormat,
    NotFoundError,
    StoreError,
)
from docadmin.modules.rbac.models import Active
from docadmin.modules.users.schemas import UserCreate, UserUpdate
from docadmin.modules.users.service import UserService


@pytest.fixture
def user_service(store, accounts, resolver) -> UserService:
    return UserService(store, accounts, resolver)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_create_user_rejects_duplicate_email(user_service, auth_admin) -> None:
    created = await user_service.create_user(UserCreate(email="a@example.com", name="A", password="secret-1"))
    assert created.is_system_account is False

    with pytest.raises(ConflictError):
        await user_service.create_user(UserCreate(email="a@example.com", name="Again", password="secret-2"))
    assert len(auth_admin.accounts) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_created_user_shares_id_with_its_login(user_service, auth_admin, store) -> None:
    created = await user_service.create_user(UserCreate(email="new@example.com", name="New", password="secret-1"))

    account = auth_admin.accounts[created.id]
    assert account["email"] == "new@example.com"
    assert account["password"] == "secret-1"
    assert account["email_confirm"] is True
    assert (await store.get_user(created.id)).email == "new@example.com"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_failed_row_insert_removes_the_login(user_service, auth_admin, store, monkeypatch) -> None:
    async def broken_create_user(*args, **kwargs):
        raise StoreError("insert failed")

    monkeypatch.setattr(store, "create_user", broken_create_user)

    with pytest.raises(StoreError):
        await user_service.create_user(UserCreate(email="new@example.com", name="New", password="secret-1"))
    assert auth_admin.accounts == {}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_email_change_and_delete_follow_the_login(user_service, auth_admin) -> None:
    created = await user_service.create_user(UserCreate(email="old@example.com", name="Old", password="secret-1"))

    await user_service.update_user(created.id, UserUpdate(email="renamed@example.com"))
    assert auth_admin.accounts[created.id]["email"] == "renamed@example.com"

    await user_service.delete_user(created.id, acting_user_id="someone-else")
    assert created.id not in auth_admin.accounts


@pytest.mark.unit
@pytest.mark.asyncio
async def test_system_account_cannot_be_edited_or_deleted(user_service, factory) -> None:
    system = await factory.user("system@example.com", is_system_account=True)
    role = await factory.role("viewer", ["files:read"])

    with pytest.raises(CannotModifySystemAccount):
        await user_service.update_user(system.id, UserUpdate(name="Renamed"))
    with pytest.raises(CannotDeleteSystemAccount):
        await user_service.delete_user(system.id, acting_user_id="someone-else")
    with pytest.raises(CannotModifySystemAccount) as exc_info:
        await user_service.assign_role(system.id, role.id)
    assert exc_info.value.message == "Cannot modify roles for system accounts"
    with pytest.raises(CannotModifySystemAccount) as exc_info:
        await user_service.assign_permission(system.id, permission_name="files:read")
    assert exc_info.value.message == "Cannot modify permissions for system accounts"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_user_cannot_delete_self(user_service, factory, store) -> None:
    user = await factory.user("me@example.com")

    with pytest.raises(Forbidden):
        await user_service.delete_user(user.id, acting_user_id=user.id)
    assert await store.get_user(user.id) is not None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_update_user_email_conflict_and_success(user_service, factory) -> None:
    await factory.user("taken@example.com")
    user = await factory.user("me@example.com")

    with pytest.raises(ConflictError):
        await user_service.update_user(user.id, UserUpdate(email="taken@example.com"))
    updated = await user_service.update_user(user.id, UserUpdate(name="New Name"))
    assert updated.name == "New Name"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_assign_role_records_actor(user_service, factory, store) -> None:
    role = await factory.role("editor", ["files:read", "files:update"])
    user = await factory.user("u@example.com")

    access = await user_service.assign_role(user.id, role.id, assigned_by="admin-id")

    assert [r.name for r in access.roles] == ["editor"]
    assert [p.name for p in access.permissions] == ["files:read", "files:update"]
    grant = await store.get_user_role(user.id, role.id)
    assert isinstance(grant.state, Active)
    assert grant.state.assigned_by == "admin-id"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_assign_unknown_role_is_not_found(user_service, factory) -> None:
    user = await factory.user("u@example.com")

    with pytest.raises(NotFoundError):
        await user_service.assign_role(user.id, "missing-role")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_remove_role_takes_effect_immediately(user_service, factory, resolver) -> None:
    viewer = await factory.role("viewer", ["files:*"])
    user = await factory.user("u@example.com", roles=[viewer])

    access = await user_service.remove_role(user.id, viewer.id)

    assert access.roles == []
    assert await resolver.has_permission(user.id, "files", "read") is False


@pytest.mark.unit
@pytest.mark.asyncio
async def test_replace_roles(user_service, factory, store) -> None:
    editor = await factory.role("editor", ["files:update"])
    viewer = await factory.role("viewer", ["files:read"])
    user = await factory.user("u@example.com", roles=[editor])

    access = await user_service.replace_roles(user.id, [viewer.id], assigned_by="admin-id")

    assert [r.name for r in access.roles] == ["viewer"]
    assert len(await store.list_user_roles(user.id, include_revoked=True)) == 2
    with pytest.raises(NotFoundError):
        await user_service.replace_roles(user.id, [viewer.id, "missing"])
    assert [r.role_id for r in await store.list_user_roles(user.id)] == [viewer.id]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_assign_permission_by_name_creates_catalog_entry(user_service, factory, store) -> None:
    user = await factory.user("u@example.com")

    access = await user_service.assign_permission(user.id, permission_name="*:*", assigned_by="admin-id")

    assert [p.label for p in access.permissions] == ["all permissions"]
    assert [p.name for p in access.direct_permissions] == ["*:*"]
    assert (await store.get_permission_by_name("*:*")) is not None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_assign_permission_by_unknown_id_is_not_found(user_service, factory) -> None:
    user = await factory.user("u@example.com")

    with pytest.raises(NotFoundError):
        await user_service.assign_permission(user.id, permission_id="missing")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_replace_permissions_validates_before_revoking(user_service, factory, resolver) -> None:
    user = await factory.user("u@example.com", permissions=["files:read"])

    with pytest.raises(InvalidPermissionFormat):
        await user_service.replace_permissions(user.id, ["files:write", "files read"])
    assert await resolver.has_permission(user.id, "files", "read") is True

    access = await user_service.replace_permissions(user.id, ["files:write"])
    assert [p.name for p in access.direct_permissions] == ["files:write"]
    assert await resolver.has_permission(user.id, "files", "read") is False


@pytest.mark.unit
@pytest.mark.asyncio
async def test_list_users_includes_roles_and_permissions(user_service, factory) -> None:
    role = await factory.role("viewer", ["files:read"])
    await factory.user("a@example.com", roles=[role])
    await factory.user("b@example.com", permissions=["dashboard:read"])

    listed = {u.email: u for u in await user_service.list_users()}

    assert {email: u.permissions for email, u in listed.items()} == {
        "a@example.com": ["files:read"],
        "b@example.com": ["dashboard:read"],
    }
    assert [r.name for r in listed["a@example.com"].roles] == ["viewer"]
    assert listed["a@example.com"].direct_permissions == []
    assert listed["b@example.com"].roles == []
    assert [p.name for p in listed["b@example.com"].direct_permissions] == ["dashboard:read"]

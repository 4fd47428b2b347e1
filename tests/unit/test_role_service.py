from __future__ import annotations

import pytest

from docadmin.core.errors import ConflictError, InvalidPermissionFormat, NotFoundError, ValidationError
from docadmin.modules.roles.schemas import PermissionCreate, PermissionUpdate, RoleCreate, RoleUpdate
from docadmin.modules.roles.service import PermissionService, RoleService


@pytest.fixture
def permission_service(store) -> PermissionService:
    return PermissionService(store)


@pytest.fixture
def role_service(store, permission_service) -> RoleService:
    return RoleService(store, permission_service)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_create_role_adds_missing_permissions_to_catalog(role_service, store) -> None:
    role = await role_service.create_role(RoleCreate(name="editor", permissions=["files:read", "files:update"]))

    assert role.name == "editor"
    assert [p.name for p in role.permissions] == ["files:read", "files:update"]
    catalog = await store.list_permissions()
    assert sorted(p.name for p in catalog) == ["files:read", "files:update"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_create_role_reuses_existing_catalog_entry(role_service, permission_service, store) -> None:
    existing = await permission_service.create_permission(PermissionCreate(name="files:read", description="Read files"))

    role = await role_service.create_role(RoleCreate(name="reader", permissions=["files:read"]))

    assert [p.id for p in role.permissions] == [existing.id]
    assert len(await store.list_permissions()) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_create_role_with_bad_permission_writes_nothing(role_service, store) -> None:
    with pytest.raises(InvalidPermissionFormat):
        await role_service.create_role(RoleCreate(name="broken", permissions=["files:read", "bad name"]))

    assert await store.get_role_by_name("broken") is None
    assert await store.list_permissions() == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_create_role_rejects_blank_and_duplicate_names(role_service) -> None:
    await role_service.create_role(RoleCreate(name="editor"))

    with pytest.raises(ValidationError) as exc_info:
        await role_service.create_role(RoleCreate(name="   "))
    assert exc_info.value.message == "Role name is required"
    with pytest.raises(ConflictError) as exc_info:
        await role_service.create_role(RoleCreate(name="editor"))
    assert exc_info.value.message == "Role with this name already exists"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_update_role_replaces_permissions(role_service, factory, resolver) -> None:
    created = await role_service.create_role(RoleCreate(name="editor", permissions=["files:read", "files:update"]))
    user = await factory.user("e@example.com", roles=[await role_service.store.get_role(created.id)])

    updated = await role_service.update_role(created.id, RoleUpdate(permissions=["files:*"]))

    assert [p.name for p in updated.permissions] == ["files:*"]
    assert await resolver.has_permission(user.id, "files", "delete") is True


@pytest.mark.unit
@pytest.mark.asyncio
async def test_update_role_with_bad_permission_keeps_old_links(role_service) -> None:
    created = await role_service.create_role(RoleCreate(name="editor", permissions=["files:read"]))

    with pytest.raises(InvalidPermissionFormat):
        await role_service.update_role(created.id, RoleUpdate(name="renamed", permissions=["files:read", "x:y:z"]))

    unchanged = await role_service.get_role_with_permissions(created.id)
    assert unchanged.name == "editor"
    assert [p.name for p in unchanged.permissions] == ["files:read"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_update_role_rename_conflict(role_service) -> None:
    await role_service.create_role(RoleCreate(name="editor"))
    viewer = await role_service.create_role(RoleCreate(name="viewer"))

    with pytest.raises(ConflictError):
        await role_service.update_role(viewer.id, RoleUpdate(name="editor"))


@pytest.mark.unit
@pytest.mark.asyncio
async def test_add_permission_to_role_twice_is_noop(role_service, store) -> None:
    created = await role_service.create_role(RoleCreate(name="editor"))

    await role_service.add_permission_to_role(created.id, "files:download")
    role = await role_service.add_permission_to_role(created.id, "files:download")

    assert [p.name for p in role.permissions] == ["files:download"]
    assert len(await store.list_permissions()) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_remove_permission_from_role(role_service) -> None:
    created = await role_service.create_role(RoleCreate(name="editor", permissions=["files:read", "files:update"]))
    update_id = next(p.id for p in created.permissions if p.name == "files:update")

    role = await role_service.remove_permission_from_role(created.id, update_id)

    assert [p.name for p in role.permissions] == ["files:read"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_delete_role_and_missing_role(role_service, store) -> None:
    created = await role_service.create_role(RoleCreate(name="temp", permissions=["files:read"]))

    assert await role_service.delete_role(created.id) is True
    assert await store.list_role_permissions([created.id]) == []
    with pytest.raises(NotFoundError):
        await role_service.get_role_with_permissions(created.id)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_permission_crud(permission_service) -> None:
    created = await permission_service.create_permission(PermissionCreate(name="reports:read"))
    assert (created.resource, created.action) == ("reports", "read")

    with pytest.raises(ConflictError):
        await permission_service.create_permission(PermissionCreate(name="reports:read"))
    with pytest.raises(InvalidPermissionFormat):
        await permission_service.create_permission(PermissionCreate(name="reports"))

    renamed = await permission_service.update_permission(created.id, PermissionUpdate(name="reports:*"))
    assert (renamed.name, renamed.resource, renamed.action) == ("reports:*", "reports", "*")

    assert [p.name for p in await permission_service.list_permissions(resource="reports")] == ["reports:*"]
    assert await permission_service.delete_permission(created.id) is True
    with pytest.raises(NotFoundError):
        await permission_service.get_permission_by_id(created.id)

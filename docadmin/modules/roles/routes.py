from fastapi import APIRouter, Depends
from docadmin.modules.rbac.gate import AuthorizationGate
from docadmin.modules.rbac.models import User
from docadmin.modules.rbac.store import GrantStore
from docadmin.modules.roles.schemas import (
    PermissionCreate, PermissionUpdate, PermissionResponse,
    RoleCreate, RoleUpdate, RoleWithPermissionsResponse,
    RolePermissionAssign,
)
from docadmin.modules.roles.service import RoleService, PermissionService
from docadmin.core.dependencies import (
    get_gate,
    get_store,
    require_permission,
    require_any_permission,
)
from typing import List, Optional

router = APIRouter(prefix="/roles", tags=["roles"])

# Who may browse roles and the catalog: role managers and anyone who assigns them to users
ROLE_READERS = ["roles:read", "roles:*", "users:write", "users:*", "*:*"]
PERMISSION_READERS = ["permissions:read", "permissions:*", "users:write", "users:*", "*:*"]
PERMISSION_EDITORS = ["permissions:*", "permissions:write"]


def get_permission_service(store: GrantStore = Depends(get_store)) -> PermissionService:
    return PermissionService(store)


def get_role_service(
    store: GrantStore = Depends(get_store),
    permission_service: PermissionService = Depends(get_permission_service),
) -> RoleService:
    return RoleService(store, permission_service)


# Permission catalog endpoints
@router.post("/permissions", response_model=PermissionResponse, status_code=201)
async def create_permission(
    permission_data: PermissionCreate,
    current_user: User = Depends(require_any_permission(PERMISSION_EDITORS)),
    service: PermissionService = Depends(get_permission_service)
):
    """Add a permission to the catalog"""
    return await service.create_permission(permission_data)


@router.get("/permissions", response_model=List[PermissionResponse])
async def list_permissions(
    resource: Optional[str] = None,
    current_user: User = Depends(require_any_permission(PERMISSION_READERS)),
    service: PermissionService = Depends(get_permission_service)
):
    """List the permission catalog"""
    return await service.list_permissions(resource=resource)


@router.get("/permissions/{permission_id}", response_model=PermissionResponse)
async def get_permission(
    permission_id: str,
    current_user: User = Depends(require_any_permission(PERMISSION_READERS)),
    service: PermissionService = Depends(get_permission_service)
):
    return await service.get_permission_by_id(permission_id)


@router.put("/permissions/{permission_id}", response_model=PermissionResponse)
async def update_permission(
    permission_id: str,
    permission_data: PermissionUpdate,
    current_user: User = Depends(require_any_permission(PERMISSION_EDITORS)),
    service: PermissionService = Depends(get_permission_service)
):
    return await service.update_permission(permission_id, permission_data)


@router.delete("/permissions/{permission_id}", status_code=204)
async def delete_permission(
    permission_id: str,
    current_user: User = Depends(require_any_permission(PERMISSION_EDITORS)),
    service: PermissionService = Depends(get_permission_service)
):
    """Delete permission; roles and users holding it lose it"""
    await service.delete_permission(permission_id)
    return None


# Role endpoints
@router.post("", response_model=RoleWithPermissionsResponse, status_code=201)
async def create_role(
    role_data: RoleCreate,
    current_user: User = Depends(require_permission("roles", "write")),
    gate: AuthorizationGate = Depends(get_gate),
    service: RoleService = Depends(get_role_service)
):
    """Create a new role. Attaching permissions also needs permissions:write"""
    if role_data.permissions:
        await gate.require_any_permission(PERMISSION_EDITORS)
    return await service.create_role(role_data)


@router.get("", response_model=List[RoleWithPermissionsResponse])
async def list_roles(
    current_user: User = Depends(require_any_permission(ROLE_READERS)),
    service: RoleService = Depends(get_role_service)
):
    """List roles with their permissions"""
    return await service.list_roles()


@router.get("/{role_id}", response_model=RoleWithPermissionsResponse)
async def get_role(
    role_id: str,
    current_user: User = Depends(require_permission("roles", "read")),
    service: RoleService = Depends(get_role_service)
):
    """Get role with all associated permissions"""
    return await service.get_role_with_permissions(role_id)


@router.put("/{role_id}", response_model=RoleWithPermissionsResponse)
async def update_role(
    role_id: str,
    role_data: RoleUpdate,
    current_user: User = Depends(require_permission("roles", "write")),
    gate: AuthorizationGate = Depends(get_gate),
    service: RoleService = Depends(get_role_service)
):
    """Update role. Replacing its permissions also needs permissions:write"""
    if role_data.permissions is not None:
        await gate.require_any_permission(PERMISSION_EDITORS)
    return await service.update_role(role_id, role_data)


@router.delete("/{role_id}", status_code=204)
async def delete_role(
    role_id: str,
    current_user: User = Depends(require_permission("roles", "write")),
    service: RoleService = Depends(get_role_service)
):
    await service.delete_role(role_id)
    return None


# Role-Permission association endpoints
@router.get("/{role_id}/permissions", response_model=List[PermissionResponse])
async def get_role_permissions(
    role_id: str,
    current_user: User = Depends(require_permission("roles", "read")),
    service: RoleService = Depends(get_role_service)
):
    role = await service.get_role_with_permissions(role_id)
    return role.permissions


@router.post("/{role_id}/permissions", response_model=RoleWithPermissionsResponse, status_code=201)
async def add_permission_to_role(
    role_id: str,
    permission_assign: RolePermissionAssign,
    current_user: User = Depends(require_permission("roles", "write")),
    gate: AuthorizationGate = Depends(get_gate),
    service: RoleService = Depends(get_role_service)
):
    """Attach a permission to a role by name, adding it to the catalog if needed"""
    await gate.require_any_permission(PERMISSION_EDITORS)
    return await service.add_permission_to_role(role_id, permission_assign.permission)


@router.delete("/{role_id}/permissions/{permission_id}", response_model=RoleWithPermissionsResponse)
async def remove_permission_from_role(
    role_id: str,
    permission_id: str,
    current_user: User = Depends(require_permission("roles", "write")),
    gate: AuthorizationGate = Depends(get_gate),
    service: RoleService = Depends(get_role_service)
):
    await gate.require_any_permission(PERMISSION_EDITORS)
    return await service.remove_permission_from_role(role_id, permission_id)

from fastapi import APIRouter, Depends
from docadmin.modules.auth.service import AuthAccounts
from docadmin.modules.rbac.models import User
from docadmin.modules.rbac.resolver import PermissionResolver
from docadmin.modules.rbac.store import GrantStore
from docadmin.modules.users.schemas import (
    UserCreate, UserUpdate, UserResponse, UserWithPermissionsResponse,
    UserAccessResponse, UserRoleAssign, UserRolesReplace,
    UserPermissionAssign, UserPermissionsReplace,
)
from docadmin.modules.users.service import UserService
from docadmin.core.dependencies import (
    get_auth_accounts,
    get_resolver,
    get_store,
    require_permission,
    require_any_permission,
    require_all_permissions,
)
from typing import List

router = APIRouter(prefix="/users", tags=["users"])

# Grant edits need users:write (enforced per route) plus one of these
ROLE_MANAGERS = ["roles:*", "roles:write"]
PERMISSION_MANAGERS = ["permissions:*", "permissions:write"]


def get_user_service(
    store: GrantStore = Depends(get_store),
    resolver: PermissionResolver = Depends(get_resolver),
    accounts: AuthAccounts = Depends(get_auth_accounts)
) -> UserService:
    return UserService(store, accounts, resolver)


@router.get("", response_model=List[UserWithPermissionsResponse])
async def list_users(
    limit: int = 50,
    offset: int = 0,
    current_user: User = Depends(require_permission("users", "read")),
    service: UserService = Depends(get_user_service)
):
    """List users with their roles, direct grants and effective permissions"""
    return await service.list_users(limit=limit, offset=offset)


@router.post("", response_model=UserResponse, status_code=201)
async def create_user(
    user_data: UserCreate,
    current_user: User = Depends(require_permission("users", "write")),
    service: UserService = Depends(get_user_service)
):
    """Create a user together with a Supabase Auth login"""
    return await service.create_user(user_data)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: str,
    current_user: User = Depends(require_permission("users", "read")),
    service: UserService = Depends(get_user_service)
):
    return await service.get_user_by_id(user_id)


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    user_data: UserUpdate,
    current_user: User = Depends(require_permission("users", "write")),
    service: UserService = Depends(get_user_service)
):
    """Update user (system accounts are rejected)"""
    return await service.update_user(user_id, user_data)


@router.delete("/{user_id}", status_code=204)
async def delete_user(
    user_id: str,
    current_user: User = Depends(require_permission("users", "delete")),
    service: UserService = Depends(get_user_service)
):
    """Delete user (system accounts and self-deletion are rejected)"""
    await service.delete_user(user_id, acting_user_id=current_user.id)
    return None


@router.get("/{user_id}/access", response_model=UserAccessResponse)
async def get_user_access(
    user_id: str,
    current_user: User = Depends(require_all_permissions(["users:read", "roles:read"])),
    service: UserService = Depends(get_user_service)
):
    """Roles, effective permissions and direct permissions of a user"""
    return await service.get_user_access(user_id)


# Role grants
@router.post("/{user_id}/roles", response_model=UserAccessResponse)
async def assign_role(
    user_id: str,
    role_assign: UserRoleAssign,
    current_user: User = Depends(require_permission("users", "write")),
    role_manager: User = Depends(require_any_permission(ROLE_MANAGERS)),
    service: UserService = Depends(get_user_service)
):
    return await service.assign_role(user_id, role_assign.role_id, assigned_by=current_user.id)


@router.put("/{user_id}/roles", response_model=UserAccessResponse)
async def replace_roles(
    user_id: str,
    roles_data: UserRolesReplace,
    current_user: User = Depends(require_permission("users", "write")),
    role_manager: User = Depends(require_any_permission(ROLE_MANAGERS)),
    service: UserService = Depends(get_user_service)
):
    """Replace the user's roles with exactly the given set"""
    return await service.replace_roles(user_id, roles_data.role_ids, assigned_by=current_user.id)


@router.delete("/{user_id}/roles/{role_id}", response_model=UserAccessResponse)
async def remove_role(
    user_id: str,
    role_id: str,
    current_user: User = Depends(require_permission("users", "write")),
    role_manager: User = Depends(require_any_permission(ROLE_MANAGERS)),
    service: UserService = Depends(get_user_service)
):
    return await service.remove_role(user_id, role_id)


# Direct permission grants
@router.post("/{user_id}/permissions", response_model=UserAccessResponse)
async def assign_permission(
    user_id: str,
    permission_assign: UserPermissionAssign,
    current_user: User = Depends(require_permission("users", "write")),
    permission_manager: User = Depends(require_any_permission(PERMISSION_MANAGERS)),
    service: UserService = Depends(get_user_service)
):
    """Grant a permission by id, or by name (created in the catalog if missing)"""
    return await service.assign_permission(
        user_id,
        permission_id=permission_assign.permission_id,
        permission_name=permission_assign.permission,
        assigned_by=current_user.id,
    )


@router.put("/{user_id}/permissions", response_model=UserAccessResponse)
async def replace_permissions(
    user_id: str,
    permissions_data: UserPermissionsReplace,
    current_user: User = Depends(require_permission("users", "write")),
    permission_manager: User = Depends(require_any_permission(PERMISSION_MANAGERS)),
    service: UserService = Depends(get_user_service)
):
    return await service.replace_permissions(user_id, permissions_data.permissions, assigned_by=current_user.id)


@router.delete("/{user_id}/permissions/{permission_id}", response_model=UserAccessResponse)
async def remove_permission(
    user_id: str,
    permission_id: str,
    current_user: User = Depends(require_permission("users", "write")),
    permission_manager: User = Depends(require_any_permission(PERMISSION_MANAGERS)),
    service: UserService = Depends(get_user_service)
):
    return await service.remove_permission(user_id, permission_id)

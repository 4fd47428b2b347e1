import asyncio
import logging
from typing import List, Optional, Tuple

from docadmin.core.errors import ConflictError, Forbidden, NotFoundError, StoreError
from docadmin.modules.auth.service import AuthAccounts
from docadmin.modules.rbac.guard import ensure_not_system_account
from docadmin.modules.rbac.models import User
from docadmin.modules.rbac.resolver import PermissionResolver, describe_permission
from docadmin.modules.rbac.store import GrantStore
from docadmin.modules.roles.schemas import PermissionResponse, RoleResponse
from docadmin.modules.roles.service import PermissionService
from docadmin.modules.users.schemas import (
    UserCreate, UserUpdate, UserResponse, UserWithPermissionsResponse,
    UserAccessResponse, EffectivePermissionResponse,
)

logger = logging.getLogger(__name__)

ROLES_LOCKED = "Cannot modify roles for system accounts"
PERMISSIONS_LOCKED = "Cannot modify permissions for system accounts"


class UserService:
    def __init__(
        self,
        store: GrantStore,
        accounts: AuthAccounts,
        resolver: Optional[PermissionResolver] = None,
        permission_service: Optional[PermissionService] = None,
    ):
        self.store = store
        self.accounts = accounts
        self.resolver = resolver or PermissionResolver(store)
        self.permission_service = permission_service or PermissionService(store)

    async def _get_user_or_404(self, user_id: str) -> User:
        user = await self.store.get_user(user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    async def _active_grants(self, user_id: str) -> Tuple[List[RoleResponse], List[PermissionResponse]]:
        """Active roles and active direct permissions, sorted for display"""
        user_roles, user_permissions = await asyncio.gather(
            self.store.list_user_roles(user_id),
            self.store.list_user_permissions(user_id),
        )
        roles = await self.store.get_roles([ur.role_id for ur in user_roles if ur.is_active])
        direct = await self.store.get_permissions([up.permission_id for up in user_permissions if up.is_active])
        return (
            [RoleResponse.model_validate(r) for r in sorted(roles, key=lambda r: r.name)],
            [PermissionResponse.model_validate(p) for p in sorted(direct, key=lambda p: (p.resource, p.action))],
        )

    async def get_user_by_id(self, user_id: str) -> UserResponse:
        """Get user by ID"""
        user = await self._get_user_or_404(user_id)
        return UserResponse.model_validate(user)

    async def list_users(self, limit: int = 50, offset: int = 0) -> List[UserWithPermissionsResponse]:
        """List users with their roles, direct grants and effective permission names"""
        users = await self.store.list_users(limit=limit, offset=offset)
        user_ids = [u.id for u in users]
        effective, grants = await asyncio.gather(
            self.resolver.effective_permissions_for_users(user_ids),
            asyncio.gather(*(self._active_grants(uid) for uid in user_ids)),
        )
        listed = []
        for user, (roles, direct) in zip(users, grants):
            listed.append(UserWithPermissionsResponse(
                **user.model_dump(),
                roles=roles,
                permissions=[p.name for p in effective.get(user.id, [])],
                direct_permissions=direct,
            ))
        return listed

    async def create_user(self, user_data: UserCreate, is_system_account: bool = False) -> UserResponse:
        """Create the Supabase Auth login and the users row sharing its id; email must be unique"""
        if await self.store.get_user_by_email(user_data.email):
            raise ConflictError("User with this email already exists")
        auth_user_id = await self.accounts.create_account(
            user_data.email, user_data.password, name=user_data.name
        )
        try:
            user = await self.store.create_user(
                email=user_data.email,
                name=user_data.name,
                is_system_account=is_system_account,
                user_id=auth_user_id,
            )
        except StoreError:
            # No users row means the login could never resolve; drop it
            await self.accounts.delete_account(auth_user_id)
            raise
        logger.info(f"Created user {user.email}")
        return UserResponse.model_validate(user)

    async def update_user(self, user_id: str, user_data: UserUpdate) -> UserResponse:
        """Update identity fields of a non-system user"""
        user = await self._get_user_or_404(user_id)
        ensure_not_system_account(user, "modify")

        update_data = {}
        if user_data.email is not None and user_data.email != user.email:
            if await self.store.get_user_by_email(user_data.email):
                raise ConflictError("User with this email already exists")
            update_data["email"] = user_data.email
        if user_data.name is not None:
            update_data["name"] = user_data.name
        if not update_data:
            return UserResponse.model_validate(user)

        if "email" in update_data:
            await self.accounts.update_email(user_id, update_data["email"])
        updated = await self.store.update_user(user_id, update_data)
        if not updated:
            raise NotFoundError("User not found")
        logger.info(f"Updated user {user_id}: {sorted(update_data)}")
        return UserResponse.model_validate(updated)

    async def delete_user(self, user_id: str, acting_user_id: Optional[str] = None) -> bool:
        """Delete a non-system user other than the caller, login included"""
        user = await self._get_user_or_404(user_id)
        ensure_not_system_account(user, "delete")
        if acting_user_id is not None and acting_user_id == user_id:
            raise Forbidden("You cannot delete your own account")
        await self.accounts.delete_account(user_id)
        deleted = await self.store.delete_user(user_id)
        logger.info(f"Deleted user {user.email}")
        return deleted

    async def get_user_access(self, user_id: str) -> UserAccessResponse:
        """Roles, effective permissions and direct permissions of a user"""
        await self._get_user_or_404(user_id)
        (roles, direct), effective = await asyncio.gather(
            self._active_grants(user_id),
            self.resolver.effective_permissions(user_id),
        )

        return UserAccessResponse(
            user_id=user_id,
            roles=roles,
            permissions=[
                EffectivePermissionResponse(**p.model_dump(), label=describe_permission(p))
                for p in effective
            ],
            direct_permissions=direct,
        )

    # Role grants

    async def assign_role(self, user_id: str, role_id: str, assigned_by: Optional[str] = None) -> UserAccessResponse:
        """Grant a role; re-granting a revoked role reactivates the same grant"""
        user = await self._get_user_or_404(user_id)
        ensure_not_system_account(user, "modify", ROLES_LOCKED)
        role = await self.store.get_role(role_id)
        if not role:
            raise NotFoundError("Role not found")
        await self.store.assign_role_to_user(user_id, role_id, assigned_by=assigned_by)
        logger.info(f"Assigned role {role.name} to user {user.email} by {assigned_by}")
        return await self.get_user_access(user_id)

    async def remove_role(self, user_id: str, role_id: str) -> UserAccessResponse:
        """Revoke a role; the grant row is kept with its revocation time"""
        user = await self._get_user_or_404(user_id)
        ensure_not_system_account(user, "modify", ROLES_LOCKED)
        await self.store.revoke_role_from_user(user_id, role_id)
        logger.info(f"Revoked role {role_id} from user {user.email}")
        return await self.get_user_access(user_id)

    async def replace_roles(self, user_id: str, role_ids: List[str], assigned_by: Optional[str] = None) -> UserAccessResponse:
        """Make role_ids the user's exact set of active roles"""
        user = await self._get_user_or_404(user_id)
        ensure_not_system_account(user, "modify", ROLES_LOCKED)
        wanted = list(dict.fromkeys(role_ids))
        roles = await self.store.get_roles(wanted)
        missing = set(wanted) - {r.id for r in roles}
        if missing:
            raise NotFoundError("Role not found", details={"role_ids": sorted(missing)})

        revoked = await self.store.clear_user_roles(user_id)
        for role_id in wanted:
            await self.store.assign_role_to_user(user_id, role_id, assigned_by=assigned_by)
        logger.info(f"Replaced roles of user {user.email}: revoked {revoked}, granted {len(wanted)}")
        return await self.get_user_access(user_id)

    # Direct permission grants

    async def assign_permission(
        self,
        user_id: str,
        permission_id: Optional[str] = None,
        permission_name: Optional[str] = None,
        assigned_by: Optional[str] = None,
    ) -> UserAccessResponse:
        """Grant a permission directly, by id or by name (names missing from the catalog are created)"""
        user = await self._get_user_or_404(user_id)
        ensure_not_system_account(user, "modify", PERMISSIONS_LOCKED)
        if permission_id:
            permission = await self.store.get_permission(permission_id)
            if not permission:
                raise NotFoundError("Permission not found")
        else:
            permission = await self.permission_service.ensure_permission(permission_name)
        await self.store.assign_permission_to_user(user_id, permission.id, assigned_by=assigned_by)
        logger.info(f"Granted {permission.name} to user {user.email} by {assigned_by}")
        return await self.get_user_access(user_id)

    async def remove_permission(self, user_id: str, permission_id: str) -> UserAccessResponse:
        """Revoke a direct permission grant"""
        user = await self._get_user_or_404(user_id)
        ensure_not_system_account(user, "modify", PERMISSIONS_LOCKED)
        await self.store.revoke_permission_from_user(user_id, permission_id)
        logger.info(f"Revoked permission {permission_id} from user {user.email}")
        return await self.get_user_access(user_id)

    async def replace_permissions(
        self, user_id: str, permission_names: List[str], assigned_by: Optional[str] = None
    ) -> UserAccessResponse:
        """Make permission_names the user's exact set of direct grants"""
        user = await self._get_user_or_404(user_id)
        ensure_not_system_account(user, "modify", PERMISSIONS_LOCKED)
        # Validate first so a bad name leaves the current grants untouched
        names = self.permission_service.validate_names(permission_names)

        revoked = await self.store.clear_user_permissions(user_id)
        for name in names:
            permission = await self.permission_service.ensure_permission(name)
            await self.store.assign_permission_to_user(user_id, permission.id, assigned_by=assigned_by)
        logger.info(f"Replaced direct permissions of user {user.email}: revoked {revoked}, granted {len(names)}")
        return await self.get_user_access(user_id)

import logging
from typing import List, Optional

from docadmin.core.errors import ConflictError, NotFoundError, ValidationError
from docadmin.modules.rbac.models import Permission, Role
from docadmin.modules.rbac.resolver import validate_permission_name
from docadmin.modules.rbac.store import GrantStore
from docadmin.modules.roles.schemas import (
    PermissionCreate, PermissionUpdate, PermissionResponse,
    RoleCreate, RoleUpdate, RoleWithPermissionsResponse,
)

logger = logging.getLogger(__name__)


class PermissionService:
    def __init__(self, store: GrantStore):
        self.store = store

    @staticmethod
    def validate_names(permission_names: List[str]) -> List[str]:
        """Check every name before anything is written; returns them deduplicated in order"""
        unique_names = list(dict.fromkeys(permission_names))
        for name in unique_names:
            validate_permission_name(name)
        return unique_names

    async def ensure_permission(self, permission_name: str, description: Optional[str] = None) -> Permission:
        """Return the catalog entry for permission_name, creating it if absent"""
        resource, action = validate_permission_name(permission_name)
        permission = await self.store.get_permission_by_name(permission_name)
        if permission is None:
            permission = await self.store.create_permission(
                name=permission_name,
                resource=resource,
                action=action,
                description=description,
            )
            logger.info(f"Created permission {permission_name}")
        return permission

    async def create_permission(self, permission_data: PermissionCreate) -> PermissionResponse:
        """Create a new permission"""
        resource, action = validate_permission_name(permission_data.name)
        if await self.store.get_permission_by_name(permission_data.name):
            raise ConflictError(f"Permission {permission_data.name} already exists")
        permission = await self.store.create_permission(
            name=permission_data.name,
            resource=resource,
            action=action,
            description=permission_data.description,
        )
        logger.info(f"Created permission {permission.name}")
        return PermissionResponse.model_validate(permission)

    async def get_permission_by_id(self, permission_id: str) -> PermissionResponse:
        """Get permission by ID"""
        permission = await self.store.get_permission(permission_id)
        if not permission:
            raise NotFoundError("Permission not found")
        return PermissionResponse.model_validate(permission)

    async def update_permission(self, permission_id: str, permission_data: PermissionUpdate) -> PermissionResponse:
        """Update permission; renaming re-derives resource and action from the new name"""
        existing = await self.store.get_permission(permission_id)
        if not existing:
            raise NotFoundError("Permission not found")

        update_data = {}
        if permission_data.name and permission_data.name != existing.name:
            resource, action = validate_permission_name(permission_data.name)
            if await self.store.get_permission_by_name(permission_data.name):
                raise ConflictError(f"Permission {permission_data.name} already exists")
            update_data.update({"name": permission_data.name, "resource": resource, "action": action})
        if permission_data.description is not None:
            update_data["description"] = permission_data.description
        if not update_data:
            return PermissionResponse.model_validate(existing)

        permission = await self.store.update_permission(permission_id, update_data)
        if not permission:
            raise NotFoundError("Permission not found")
        return PermissionResponse.model_validate(permission)

    async def list_permissions(self, resource: Optional[str] = None) -> List[PermissionResponse]:
        """List the permission catalog, optionally for one resource"""
        permissions = await self.store.list_permissions(resource=resource)
        return [PermissionResponse.model_validate(p) for p in permissions]

    async def delete_permission(self, permission_id: str) -> bool:
        """Delete permission together with its role and user links"""
        if not await self.store.get_permission(permission_id):
            raise NotFoundError("Permission not found")
        deleted = await self.store.delete_permission(permission_id)
        logger.info(f"Deleted permission {permission_id}")
        return deleted


class RoleService:
    def __init__(self, store: GrantStore, permission_service: Optional[PermissionService] = None):
        self.store = store
        self.permission_service = permission_service or PermissionService(store)

    @staticmethod
    def _clean_name(name: Optional[str]) -> str:
        cleaned = (name or "").strip()
        if not cleaned:
            raise ValidationError("Role name is required")
        return cleaned

    async def _get_role_or_404(self, role_id: str) -> Role:
        role = await self.store.get_role(role_id)
        if not role:
            raise NotFoundError("Role not found")
        return role

    async def _link_permissions(self, role_id: str, permission_names: List[str]) -> None:
        for name in permission_names:
            permission = await self.permission_service.ensure_permission(name)
            await self.store.add_permission_to_role(role_id, permission.id)

    async def _with_permissions(self, role: Role) -> RoleWithPermissionsResponse:
        permissions = await self.store.list_role_permissions([role.id])
        permissions = sorted(permissions, key=lambda p: (p.resource, p.action))
        return RoleWithPermissionsResponse(
            **role.model_dump(),
            permissions=[PermissionResponse.model_validate(p) for p in permissions],
        )

    async def create_role(self, role_data: RoleCreate) -> RoleWithPermissionsResponse:
        """Create a new role, creating any permissions it names that are not yet in the catalog"""
        name = self._clean_name(role_data.name)
        permission_names = self.permission_service.validate_names(role_data.permissions or [])

        if await self.store.get_role_by_name(name):
            raise ConflictError("Role with this name already exists")

        role = await self.store.create_role(name=name, description=role_data.description)
        await self._link_permissions(role.id, permission_names)
        logger.info(f"Created role {role.name} with {len(permission_names)} permissions")
        return await self._with_permissions(role)

    async def get_role_with_permissions(self, role_id: str) -> RoleWithPermissionsResponse:
        """Get role with all associated permissions"""
        role = await self._get_role_or_404(role_id)
        return await self._with_permissions(role)

    async def list_roles(self) -> List[RoleWithPermissionsResponse]:
        """List roles with their permissions"""
        roles = await self.store.list_roles()
        return [await self._with_permissions(role) for role in roles]

    async def update_role(self, role_id: str, role_data: RoleUpdate) -> RoleWithPermissionsResponse:
        """Update role; a permissions list replaces the role's current permissions"""
        existing = await self._get_role_or_404(role_id)

        update_data = {}
        if role_data.name is not None:
            name = self._clean_name(role_data.name)
            if name != existing.name:
                other = await self.store.get_role_by_name(name)
                if other and other.id != role_id:
                    raise ConflictError("Role with this name already exists")
                update_data["name"] = name
        if role_data.description is not None:
            update_data["description"] = role_data.description

        permission_names = None
        if role_data.permissions is not None:
            permission_names = self.permission_service.validate_names(role_data.permissions)

        role = existing
        if update_data:
            role = await self.store.update_role(role_id, update_data)
            if not role:
                raise NotFoundError("Role not found")

        if permission_names is not None:
            await self.store.clear_role_permissions(role_id)
            await self._link_permissions(role_id, permission_names)
            logger.info(f"Replaced permissions of role {role.name}: {permission_names}")

        return await self._with_permissions(role)

    async def delete_role(self, role_id: str) -> bool:
        """Delete role and its role-permission links"""
        role = await self._get_role_or_404(role_id)
        deleted = await self.store.delete_role(role_id)
        logger.info(f"Deleted role {role.name}")
        return deleted

    async def add_permission_to_role(self, role_id: str, permission_name: str) -> RoleWithPermissionsResponse:
        """Link a permission to a role; linking twice is a no-op"""
        role = await self._get_role_or_404(role_id)
        permission = await self.permission_service.ensure_permission(permission_name)
        await self.store.add_permission_to_role(role_id, permission.id)
        logger.info(f"Linked {permission.name} to role {role.name}")
        return await self._with_permissions(role)

    async def remove_permission_from_role(self, role_id: str, permission_id: str) -> RoleWithPermissionsResponse:
        """Remove a permission from a role"""
        role = await self._get_role_or_404(role_id)
        await self.store.remove_permission_from_role(role_id, permission_id)
        logger.info(f"Unlinked permission {permission_id} from role {role.name}")
        return await self._with_permissions(role)

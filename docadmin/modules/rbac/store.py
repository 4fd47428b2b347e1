"""
Grant store contract consumed by the resolver and the CRUD services.

Implementations live in docadmin.database (Supabase and in-memory). Every
method is a coroutine; infrastructure failures surface as StoreError.
"""

from typing import Any, Dict, List, Optional, Protocol, Sequence

from docadmin.modules.rbac.models import (
    Permission,
    Role,
    User,
    UserPermission,
    UserRole,
)


class GrantStore(Protocol):
    # Users
    async def get_user(self, user_id: str) -> Optional[User]: ...

    async def get_user_by_email(self, email: str) -> Optional[User]: ...

    async def list_users(self, limit: int = 50, offset: int = 0) -> List[User]: ...

    async def create_user(
        self, email: str, name: str, is_system_account: bool = False, user_id: Optional[str] = None
    ) -> User: ...

    async def update_user(self, user_id: str, changes: Dict[str, Any]) -> Optional[User]: ...

    async def delete_user(self, user_id: str) -> bool: ...

    # Roles
    async def get_role(self, role_id: str) -> Optional[Role]: ...

    async def get_role_by_name(self, name: str) -> Optional[Role]: ...

    async def get_roles(self, role_ids: Sequence[str]) -> List[Role]: ...

    async def list_roles(self) -> List[Role]: ...

    async def create_role(self, name: str, description: Optional[str] = None) -> Role: ...

    async def update_role(self, role_id: str, changes: Dict[str, Any]) -> Optional[Role]: ...

    async def delete_role(self, role_id: str) -> bool: ...

    # Permission catalog
    async def get_permission(self, permission_id: str) -> Optional[Permission]: ...

    async def get_permission_by_name(self, name: str) -> Optional[Permission]: ...

    async def get_permissions(self, permission_ids: Sequence[str]) -> List[Permission]: ...

    async def list_permissions(self, resource: Optional[str] = None) -> List[Permission]: ...

    async def create_permission(
        self, name: str, resource: str, action: str, description: Optional[str] = None
    ) -> Permission: ...

    async def update_permission(self, permission_id: str, changes: Dict[str, Any]) -> Optional[Permission]: ...

    async def delete_permission(self, permission_id: str) -> bool: ...

    # Role <-> Permission
    async def list_role_permissions(self, role_ids: Sequence[str]) -> List[Permission]: ...

    async def add_permission_to_role(self, role_id: str, permission_id: str) -> None: ...

    async def remove_permission_from_role(self, role_id: str, permission_id: str) -> None: ...

    async def clear_role_permissions(self, role_id: str) -> None: ...

    # User <-> Role (soft delete)
    async def get_user_role(self, user_id: str, role_id: str) -> Optional[UserRole]: ...

    async def list_user_roles(self, user_id: str, include_revoked: bool = False) -> List[UserRole]: ...

    async def assign_role_to_user(
        self, user_id: str, role_id: str, assigned_by: Optional[str] = None
    ) -> UserRole: ...

    async def revoke_role_from_user(self, user_id: str, role_id: str) -> None: ...

    async def clear_user_roles(self, user_id: str) -> int: ...

    # User <-> Permission (soft delete)
    async def get_user_permission(self, user_id: str, permission_id: str) -> Optional[UserPermission]: ...

    async def list_user_permissions(self, user_id: str, include_revoked: bool = False) -> List[UserPermission]: ...

    async def assign_permission_to_user(
        self, user_id: str, permission_id: str, assigned_by: Optional[str] = None
    ) -> UserPermission: ...

    async def revoke_permission_from_user(self, user_id: str, permission_id: str) -> None: ...

    async def clear_user_permissions(self, user_id: str) -> int: ...

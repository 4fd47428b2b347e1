"""
Grant store backed by Supabase (PostgREST) tables.

Table layout is documented in docadmin/modules/rbac/models.py. PostgREST and
transport failures are logged and re-raised as StoreError.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional, Sequence

import httpx
from postgrest.exceptions import APIError
from supabase import AsyncClient

from docadmin.core.errors import StoreError
from docadmin.modules.rbac.models import (
    Permission,
    Role,
    User,
    UserPermission,
    UserRole,
    utc_now,
)

logger = logging.getLogger(__name__)


class SupabaseGrantStore:
    def __init__(self, supabase: AsyncClient):
        self.supabase = supabase

    async def _execute(self, query, operation: str) -> List[Dict[str, Any]]:
        try:
            result = await query.execute()
        except (APIError, httpx.HTTPError) as e:
            logger.error(f"Grant store {operation} failed: {e}")
            raise StoreError(f"Grant store {operation} failed") from e
        return result.data or []

    async def _first(self, query, operation: str) -> Optional[Dict[str, Any]]:
        rows = await self._execute(query.limit(1), operation)
        return rows[0] if rows else None

    # Users

    async def get_user(self, user_id: str) -> Optional[User]:
        row = await self._first(
            self.supabase.table("users").select("*").eq("id", user_id), "get_user"
        )
        return User(**row) if row else None

    async def get_user_by_email(self, email: str) -> Optional[User]:
        row = await self._first(
            self.supabase.table("users").select("*").eq("email", email), "get_user_by_email"
        )
        return User(**row) if row else None

    async def list_users(self, limit: int = 50, offset: int = 0) -> List[User]:
        rows = await self._execute(
            self.supabase.table("users")
            .select("*")
            .order("created_at", desc=True)
            .limit(limit)
            .offset(offset),
            "list_users",
        )
        return [User(**row) for row in rows]

    async def create_user(
        self, email: str, name: str, is_system_account: bool = False, user_id: Optional[str] = None
    ) -> User:
        # user_id is the Supabase Auth id of the account's login
        rows = await self._execute(
            self.supabase.table("users").insert({
                "id": user_id or str(uuid.uuid4()),
                "email": email,
                "name": name,
                "is_system_account": is_system_account,
            }),
            "create_user",
        )
        if not rows:
            raise StoreError("Failed to create user")
        return User(**rows[0])

    async def update_user(self, user_id: str, changes: Dict[str, Any]) -> Optional[User]:
        update_data = {**changes, "updated_at": utc_now().isoformat()}
        rows = await self._execute(
            self.supabase.table("users").update(update_data).eq("id", user_id),
            "update_user",
        )
        return User(**rows[0]) if rows else None

    async def delete_user(self, user_id: str) -> bool:
        # user_roles / user_permissions rows go with the user via ON DELETE CASCADE
        rows = await self._execute(
            self.supabase.table("users").delete().eq("id", user_id), "delete_user"
        )
        return len(rows) > 0

    # Roles

    async def get_role(self, role_id: str) -> Optional[Role]:
        row = await self._first(
            self.supabase.table("roles").select("*").eq("id", role_id), "get_role"
        )
        return Role(**row) if row else None

    async def get_role_by_name(self, name: str) -> Optional[Role]:
        row = await self._first(
            self.supabase.table("roles").select("*").eq("name", name), "get_role_by_name"
        )
        return Role(**row) if row else None

    async def get_roles(self, role_ids: Sequence[str]) -> List[Role]:
        if not role_ids:
            return []
        rows = await self._execute(
            self.supabase.table("roles").select("*").in_("id", list(role_ids)), "get_roles"
        )
        return [Role(**row) for row in rows]

    async def list_roles(self) -> List[Role]:
        rows = await self._execute(
            self.supabase.table("roles").select("*").order("created_at", desc=True),
            "list_roles",
        )
        return [Role(**row) for row in rows]

    async def create_role(self, name: str, description: Optional[str] = None) -> Role:
        rows = await self._execute(
            self.supabase.table("roles").insert({"name": name, "description": description}),
            "create_role",
        )
        if not rows:
            raise StoreError("Failed to create role")
        return Role(**rows[0])

    async def update_role(self, role_id: str, changes: Dict[str, Any]) -> Optional[Role]:
        update_data = {**changes, "updated_at": utc_now().isoformat()}
        rows = await self._execute(
            self.supabase.table("roles").update(update_data).eq("id", role_id),
            "update_role",
        )
        return Role(**rows[0]) if rows else None

    async def delete_role(self, role_id: str) -> bool:
        # Remove role_permissions first
        await self.clear_role_permissions(role_id)
        rows = await self._execute(
            self.supabase.table("roles").delete().eq("id", role_id), "delete_role"
        )
        return len(rows) > 0

    # Permission catalog

    async def get_permission(self, permission_id: str) -> Optional[Permission]:
        row = await self._first(
            self.supabase.table("permissions").select("*").eq("id", permission_id),
            "get_permission",
        )
        return Permission(**row) if row else None

    async def get_permission_by_name(self, name: str) -> Optional[Permission]:
        row = await self._first(
            self.supabase.table("permissions").select("*").eq("name", name),
            "get_permission_by_name",
        )
        return Permission(**row) if row else None

    async def get_permissions(self, permission_ids: Sequence[str]) -> List[Permission]:
        if not permission_ids:
            return []
        rows = await self._execute(
            self.supabase.table("permissions").select("*").in_("id", list(permission_ids)),
            "get_permissions",
        )
        return [Permission(**row) for row in rows]

    async def list_permissions(self, resource: Optional[str] = None) -> List[Permission]:
        query = self.supabase.table("permissions").select("*")
        if resource:
            query = query.eq("resource", resource)
        rows = await self._execute(query.order("resource").order("action"), "list_permissions")
        return [Permission(**row) for row in rows]

    async def create_permission(
        self, name: str, resource: str, action: str, description: Optional[str] = None
    ) -> Permission:
        rows = await self._execute(
            self.supabase.table("permissions").insert({
                "name": name,
                "resource": resource,
                "action": action,
                "description": description,
            }),
            "create_permission",
        )
        if not rows:
            raise StoreError("Failed to create permission")
        return Permission(**rows[0])

    async def update_permission(self, permission_id: str, changes: Dict[str, Any]) -> Optional[Permission]:
        rows = await self._execute(
            self.supabase.table("permissions").update(changes).eq("id", permission_id),
            "update_permission",
        )
        return Permission(**rows[0]) if rows else None

    async def delete_permission(self, permission_id: str) -> bool:
        await self._execute(
            self.supabase.table("role_permissions").delete().eq("permission_id", permission_id),
            "delete_permission",
        )
        await self._execute(
            self.supabase.table("user_permissions").delete().eq("permission_id", permission_id),
            "delete_permission",
        )
        rows = await self._execute(
            self.supabase.table("permissions").delete().eq("id", permission_id),
            "delete_permission",
        )
        return len(rows) > 0

    # Role <-> Permission

    async def list_role_permissions(self, role_ids: Sequence[str]) -> List[Permission]:
        if not role_ids:
            return []
        rows = await self._execute(
            self.supabase.table("role_permissions")
            .select("permission_id, permissions(*)")
            .in_("role_id", list(role_ids)),
            "list_role_permissions",
        )
        return [Permission(**row["permissions"]) for row in rows if row.get("permissions")]

    async def add_permission_to_role(self, role_id: str, permission_id: str) -> None:
        await self._execute(
            self.supabase.table("role_permissions").upsert(
                {"role_id": role_id, "permission_id": permission_id},
                on_conflict="role_id,permission_id",
                ignore_duplicates=True,
            ),
            "add_permission_to_role",
        )

    async def remove_permission_from_role(self, role_id: str, permission_id: str) -> None:
        await self._execute(
            self.supabase.table("role_permissions")
            .delete()
            .eq("role_id", role_id)
            .eq("permission_id", permission_id),
            "remove_permission_from_role",
        )

    async def clear_role_permissions(self, role_id: str) -> None:
        await self._execute(
            self.supabase.table("role_permissions").delete().eq("role_id", role_id),
            "clear_role_permissions",
        )

    # User <-> Role

    async def get_user_role(self, user_id: str, role_id: str) -> Optional[UserRole]:
        row = await self._first(
            self.supabase.table("user_roles").select("*").eq("user_id", user_id).eq("role_id", role_id),
            "get_user_role",
        )
        return UserRole.from_row(row) if row else None

    async def list_user_roles(self, user_id: str, include_revoked: bool = False) -> List[UserRole]:
        query = self.supabase.table("user_roles").select("*").eq("user_id", user_id)
        if not include_revoked:
            query = query.is_("deleted_at", "null")
        rows = await self._execute(query.order("assigned_at", desc=True), "list_user_roles")
        return [UserRole.from_row(row) for row in rows]

    async def assign_role_to_user(
        self, user_id: str, role_id: str, assigned_by: Optional[str] = None
    ) -> UserRole:
        rows = await self._execute(
            self.supabase.table("user_roles").upsert(
                {
                    "user_id": user_id,
                    "role_id": role_id,
                    "assigned_by": assigned_by,
                    "assigned_at": utc_now().isoformat(),
                    "deleted_at": None,
                },
                on_conflict="user_id,role_id",
            ),
            "assign_role_to_user",
        )
        if not rows:
            raise StoreError("Failed to assign role")
        return UserRole.from_row(rows[0])

    async def revoke_role_from_user(self, user_id: str, role_id: str) -> None:
        await self._execute(
            self.supabase.table("user_roles")
            .update({"deleted_at": utc_now().isoformat()})
            .eq("user_id", user_id)
            .eq("role_id", role_id)
            .is_("deleted_at", "null"),
            "revoke_role_from_user",
        )

    async def clear_user_roles(self, user_id: str) -> int:
        rows = await self._execute(
            self.supabase.table("user_roles")
            .update({"deleted_at": utc_now().isoformat()})
            .eq("user_id", user_id)
            .is_("deleted_at", "null"),
            "clear_user_roles",
        )
        return len(rows)

    # User <-> Permission

    async def get_user_permission(self, user_id: str, permission_id: str) -> Optional[UserPermission]:
        row = await self._first(
            self.supabase.table("user_permissions")
            .select("*")
            .eq("user_id", user_id)
            .eq("permission_id", permission_id),
            "get_user_permission",
        )
        return UserPermission.from_row(row) if row else None

    async def list_user_permissions(self, user_id: str, include_revoked: bool = False) -> List[UserPermission]:
        query = self.supabase.table("user_permissions").select("*").eq("user_id", user_id)
        if not include_revoked:
            query = query.is_("deleted_at", "null")
        rows = await self._execute(query.order("assigned_at", desc=True), "list_user_permissions")
        return [UserPermission.from_row(row) for row in rows]

    async def assign_permission_to_user(
        self, user_id: str, permission_id: str, assigned_by: Optional[str] = None
    ) -> UserPermission:
        rows = await self._execute(
            self.supabase.table("user_permissions").upsert(
                {
                    "user_id": user_id,
                    "permission_id": permission_id,
                    "assigned_by": assigned_by,
                    "assigned_at": utc_now().isoformat(),
                    "deleted_at": None,
                },
                on_conflict="user_id,permission_id",
            ),
            "assign_permission_to_user",
        )
        if not rows:
            raise StoreError("Failed to assign permission")
        return UserPermission.from_row(rows[0])

    async def revoke_permission_from_user(self, user_id: str, permission_id: str) -> None:
        await self._execute(
            self.supabase.table("user_permissions")
            .update({"deleted_at": utc_now().isoformat()})
            .eq("user_id", user_id)
            .eq("permission_id", permission_id)
            .is_("deleted_at", "null"),
            "revoke_permission_from_user",
        )

    async def clear_user_permissions(self, user_id: str) -> int:
        rows = await self._execute(
            self.supabase.table("user_permissions")
            .update({"deleted_at": utc_now().isoformat()})
            .eq("user_id", user_id)
            .is_("deleted_at", "null"),
            "clear_user_permissions",
        )
        return len(rows)

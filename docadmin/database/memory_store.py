"""
In-memory grant store.

Keeps rows in dicts shaped like the Supabase tables so grant rows go through
the same UserRole/UserPermission.from_row conversion. Mutations hold a single
asyncio.Lock so a grant or revoke is never observed half-written. Unique
constraints raise StoreError the way a constraint violation from the database
would.
"""

import asyncio
import uuid
from typing import Any, Dict, List, Optional, Sequence, Tuple

from docadmin.core.errors import StoreError
from docadmin.modules.rbac.models import (
    Permission,
    Role,
    RolePermission,
    User,
    UserPermission,
    UserRole,
    utc_now,
)


def _new_id() -> str:
    return str(uuid.uuid4())


class InMemoryGrantStore:
    def __init__(self):
        self.users: Dict[str, User] = {}
        self.roles: Dict[str, Role] = {}
        self.permissions: Dict[str, Permission] = {}
        self.role_permissions: Dict[Tuple[str, str], RolePermission] = {}
        self.user_roles: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.user_permissions: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    # Users

    async def get_user(self, user_id: str) -> Optional[User]:
        return self.users.get(user_id)

    async def get_user_by_email(self, email: str) -> Optional[User]:
        return next((u for u in self.users.values() if u.email == email), None)

    async def list_users(self, limit: int = 50, offset: int = 0) -> List[User]:
        ordered = sorted(self.users.values(), key=lambda u: u.created_at, reverse=True)
        return ordered[offset:offset + limit]

    async def create_user(
        self, email: str, name: str, is_system_account: bool = False, user_id: Optional[str] = None
    ) -> User:
        async with self._lock:
            if any(u.email == email for u in self.users.values()):
                raise StoreError(f"users.email unique violation: {email}")
            user_id = user_id or _new_id()
            if user_id in self.users:
                raise StoreError(f"users.id unique violation: {user_id}")
            user = User(
                id=user_id,
                email=email,
                name=name,
                is_system_account=is_system_account,
                created_at=utc_now(),
            )
            self.users[user.id] = user
            return user

    async def update_user(self, user_id: str, changes: Dict[str, Any]) -> Optional[User]:
        async with self._lock:
            user = self.users.get(user_id)
            if user is None:
                return None
            email = changes.get("email")
            if email and any(u.email == email and u.id != user_id for u in self.users.values()):
                raise StoreError(f"users.email unique violation: {email}")
            updated = user.model_copy(update={**changes, "updated_at": utc_now()})
            self.users[user_id] = updated
            return updated

    async def delete_user(self, user_id: str) -> bool:
        async with self._lock:
            if self.users.pop(user_id, None) is None:
                return False
            for key in [k for k in self.user_roles if k[0] == user_id]:
                del self.user_roles[key]
            for key in [k for k in self.user_permissions if k[0] == user_id]:
                del self.user_permissions[key]
            return True

    # Roles

    async def get_role(self, role_id: str) -> Optional[Role]:
        return self.roles.get(role_id)

    async def get_role_by_name(self, name: str) -> Optional[Role]:
        return next((r for r in self.roles.values() if r.name == name), None)

    async def get_roles(self, role_ids: Sequence[str]) -> List[Role]:
        return [self.roles[rid] for rid in dict.fromkeys(role_ids) if rid in self.roles]

    async def list_roles(self) -> List[Role]:
        return sorted(self.roles.values(), key=lambda r: r.created_at, reverse=True)

    async def create_role(self, name: str, description: Optional[str] = None) -> Role:
        async with self._lock:
            if any(r.name == name for r in self.roles.values()):
                raise StoreError(f"roles.name unique violation: {name}")
            now = utc_now()
            role = Role(id=_new_id(), name=name, description=description, created_at=now, updated_at=now)
            self.roles[role.id] = role
            return role

    async def update_role(self, role_id: str, changes: Dict[str, Any]) -> Optional[Role]:
        async with self._lock:
            role = self.roles.get(role_id)
            if role is None:
                return None
            name = changes.get("name")
            if name and any(r.name == name and r.id != role_id for r in self.roles.values()):
                raise StoreError(f"roles.name unique violation: {name}")
            updated = role.model_copy(update={**changes, "updated_at": utc_now()})
            self.roles[role_id] = updated
            return updated

    async def delete_role(self, role_id: str) -> bool:
        async with self._lock:
            if self.roles.pop(role_id, None) is None:
                return False
            for key in [k for k in self.role_permissions if k[0] == role_id]:
                del self.role_permissions[key]
            for key in [k for k in self.user_roles if k[1] == role_id]:
                del self.user_roles[key]
            return True

    # Permission catalog

    async def get_permission(self, permission_id: str) -> Optional[Permission]:
        return self.permissions.get(permission_id)

    async def get_permission_by_name(self, name: str) -> Optional[Permission]:
        return next((p for p in self.permissions.values() if p.name == name), None)

    async def get_permissions(self, permission_ids: Sequence[str]) -> List[Permission]:
        return [self.permissions[pid] for pid in dict.fromkeys(permission_ids) if pid in self.permissions]

    async def list_permissions(self, resource: Optional[str] = None) -> List[Permission]:
        items = [p for p in self.permissions.values() if resource is None or p.resource == resource]
        return sorted(items, key=lambda p: (p.resource, p.action))

    async def create_permission(
        self, name: str, resource: str, action: str, description: Optional[str] = None
    ) -> Permission:
        async with self._lock:
            if any(p.name == name for p in self.permissions.values()):
                raise StoreError(f"permissions.name unique violation: {name}")
            permission = Permission(
                id=_new_id(),
                name=name,
                resource=resource,
                action=action,
                description=description,
                created_at=utc_now(),
            )
            self.permissions[permission.id] = permission
            return permission

    async def update_permission(self, permission_id: str, changes: Dict[str, Any]) -> Optional[Permission]:
        async with self._lock:
            permission = self.permissions.get(permission_id)
            if permission is None:
                return None
            data = {**permission.model_dump(), **changes}
            if any(p.name == data["name"] and p.id != permission_id for p in self.permissions.values()):
                raise StoreError(f"permissions.name unique violation: {data['name']}")
            updated = Permission(**data)
            self.permissions[permission_id] = updated
            return updated

    async def delete_permission(self, permission_id: str) -> bool:
        async with self._lock:
            if self.permissions.pop(permission_id, None) is None:
                return False
            for key in [k for k in self.role_permissions if k[1] == permission_id]:
                del self.role_permissions[key]
            for key in [k for k in self.user_permissions if k[1] == permission_id]:
                del self.user_permissions[key]
            return True

    # Role <-> Permission

    async def list_role_permissions(self, role_ids: Sequence[str]) -> List[Permission]:
        wanted = set(role_ids)
        return [
            self.permissions[pid]
            for (rid, pid) in self.role_permissions
            if rid in wanted and pid in self.permissions
        ]

    async def add_permission_to_role(self, role_id: str, permission_id: str) -> None:
        async with self._lock:
            key = (role_id, permission_id)
            if key not in self.role_permissions:
                self.role_permissions[key] = RolePermission(
                    role_id=role_id, permission_id=permission_id, created_at=utc_now()
                )

    async def remove_permission_from_role(self, role_id: str, permission_id: str) -> None:
        async with self._lock:
            self.role_permissions.pop((role_id, permission_id), None)

    async def clear_role_permissions(self, role_id: str) -> None:
        async with self._lock:
            for key in [k for k in self.role_permissions if k[0] == role_id]:
                del self.role_permissions[key]

    # Soft-delete grant tables share the same upsert/revoke mechanics

    async def _upsert_grant(
        self, table: Dict[Tuple[str, str], Dict[str, Any]], key: Tuple[str, str], row: Dict[str, Any], assigned_by: Optional[str]
    ) -> Dict[str, Any]:
        async with self._lock:
            existing = table.get(key)
            if existing is None:
                existing = dict(row)
                table[key] = existing
            existing.update({"assigned_at": utc_now(), "assigned_by": assigned_by, "deleted_at": None})
            return dict(existing)

    async def _revoke_grants(self, table: Dict[Tuple[str, str], Dict[str, Any]], user_id: str, other_id: Optional[str] = None) -> int:
        async with self._lock:
            now = utc_now()
            count = 0
            for (uid, oid), row in table.items():
                if uid != user_id or (other_id is not None and oid != other_id):
                    continue
                if row["deleted_at"] is None:
                    row["deleted_at"] = now
                    count += 1
            return count

    @staticmethod
    def _active_rows(table: Dict[Tuple[str, str], Dict[str, Any]], user_id: str, include_revoked: bool) -> List[Dict[str, Any]]:
        rows = [
            dict(row) for (uid, _), row in table.items()
            if uid == user_id and (include_revoked or row["deleted_at"] is None)
        ]
        return sorted(rows, key=lambda row: row["assigned_at"], reverse=True)

    # User <-> Role

    async def get_user_role(self, user_id: str, role_id: str) -> Optional[UserRole]:
        row = self.user_roles.get((user_id, role_id))
        return UserRole.from_row(row) if row else None

    async def list_user_roles(self, user_id: str, include_revoked: bool = False) -> List[UserRole]:
        return [UserRole.from_row(row) for row in self._active_rows(self.user_roles, user_id, include_revoked)]

    async def assign_role_to_user(
        self, user_id: str, role_id: str, assigned_by: Optional[str] = None
    ) -> UserRole:
        row = await self._upsert_grant(
            self.user_roles, (user_id, role_id), {"user_id": user_id, "role_id": role_id}, assigned_by
        )
        return UserRole.from_row(row)

    async def revoke_role_from_user(self, user_id: str, role_id: str) -> None:
        await self._revoke_grants(self.user_roles, user_id, role_id)

    async def clear_user_roles(self, user_id: str) -> int:
        return await self._revoke_grants(self.user_roles, user_id)

    # User <-> Permission

    async def get_user_permission(self, user_id: str, permission_id: str) -> Optional[UserPermission]:
        row = self.user_permissions.get((user_id, permission_id))
        return UserPermission.from_row(row) if row else None

    async def list_user_permissions(self, user_id: str, include_revoked: bool = False) -> List[UserPermission]:
        return [
            UserPermission.from_row(row)
            for row in self._active_rows(self.user_permissions, user_id, include_revoked)
        ]

    async def assign_permission_to_user(
        self, user_id: str, permission_id: str, assigned_by: Optional[str] = None
    ) -> UserPermission:
        row = await self._upsert_grant(
            self.user_permissions,
            (user_id, permission_id),
            {"user_id": user_id, "permission_id": permission_id},
            assigned_by,
        )
        return UserPermission.from_row(row)

    async def revoke_permission_from_user(self, user_id: str, permission_id: str) -> None:
        await self._revoke_grants(self.user_permissions, user_id, permission_id)

    async def clear_user_permissions(self, user_id: str) -> int:
        return await self._revoke_grants(self.user_permissions, user_id)

"""
Permission resolution.

A user's effective permissions are the deduplicated union of the permissions
reachable through their active roles and their active direct grants. A
stored permission satisfies a (resource, action) query when any of the four
flat rules holds:

    exact           p.name == "resource:action"
    resource:*      p.resource == resource and p.action == "*"
    *:action        p.resource == "*" and p.action == action
    *:*             p.resource == "*" and p.action == "*"

"*" is the only wildcard token and only when it is the whole segment.
Malformed names and unknown users resolve to "denied"; store failures
propagate to the caller.
"""

import asyncio
import logging
import re
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from docadmin.core.errors import InvalidPermissionFormat
from docadmin.modules.rbac.models import WILDCARD, Permission
from docadmin.modules.rbac.store import GrantStore

logger = logging.getLogger(__name__)

PERMISSION_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_*]+:[a-zA-Z0-9_*]+$")


def parse_permission_name(permission_name: str) -> Optional[Tuple[str, str]]:
    """Split "resource:action"; None unless there is exactly one colon with both sides non-empty."""
    if not isinstance(permission_name, str) or permission_name.count(":") != 1:
        return None
    resource, action = permission_name.split(":", 1)
    if not resource or not action:
        return None
    return resource, action


def validate_permission_name(permission_name: str) -> Tuple[str, str]:
    """Authoring-side check for caller supplied names. Raises InvalidPermissionFormat."""
    if not isinstance(permission_name, str) or not PERMISSION_NAME_PATTERN.match(permission_name):
        raise InvalidPermissionFormat(
            f'Invalid permission format: {permission_name}. Expected format: "resource:action" or "resource:*"'
        )
    resource, action = permission_name.split(":", 1)
    return resource, action


def permission_matches(permission: Permission, resource: str, action: str) -> bool:
    if permission.name == f"{resource}:{action}":
        return True
    if permission.resource == resource and permission.action == WILDCARD:
        return True
    if permission.resource == WILDCARD and permission.action == action:
        return True
    return permission.resource == WILDCARD and permission.action == WILDCARD


def any_permission_matches(permissions: Iterable[Permission], resource: str, action: str) -> bool:
    return any(permission_matches(p, resource, action) for p in permissions)


def describe_permission(permission: Permission) -> str:
    """Human readable label for the effective-permissions view."""
    if permission.resource == WILDCARD and permission.action == WILDCARD:
        return "all permissions"
    if permission.resource == WILDCARD:
        return f"all resources:{permission.action}"
    if permission.action == WILDCARD:
        return f"{permission.resource}:all actions"
    return permission.name


class PermissionResolver:
    def __init__(self, store: GrantStore):
        self.store = store

    async def effective_permissions(self, user_id: str) -> List[Permission]:
        """Active role permissions plus active direct permissions, deduplicated by id."""
        user_roles, user_permissions = await asyncio.gather(
            self.store.list_user_roles(user_id),
            self.store.list_user_permissions(user_id),
        )
        role_ids = [ur.role_id for ur in user_roles if ur.is_active]
        direct_ids = [up.permission_id for up in user_permissions if up.is_active]

        role_permissions, direct_permissions = await asyncio.gather(
            self.store.list_role_permissions(role_ids) if role_ids else _empty(),
            self.store.get_permissions(direct_ids) if direct_ids else _empty(),
        )

        by_id: Dict[str, Permission] = {}
        for permission in [*role_permissions, *direct_permissions]:
            by_id[permission.id] = permission
        return sorted(by_id.values(), key=lambda p: (p.resource, p.action))

    async def effective_permissions_for_users(self, user_ids: Sequence[str]) -> Dict[str, List[Permission]]:
        results = await asyncio.gather(*(self.effective_permissions(uid) for uid in user_ids))
        return dict(zip(user_ids, results))

    async def has_permission(self, user_id: str, resource: str, action: str) -> bool:
        if not resource or not action:
            return False
        permissions = await self.effective_permissions(user_id)
        granted = any_permission_matches(permissions, resource, action)
        if not granted:
            logger.debug(f"Permission {resource}:{action} not held by user {user_id}")
        return granted

    async def has_permission_by_name(self, user_id: str, permission_name: str) -> bool:
        parsed = parse_permission_name(permission_name)
        if parsed is None:
            logger.warning("Malformed permission name %r treated as denied", permission_name)
            return False
        resource, action = parsed
        return await self.has_permission(user_id, resource, action)


async def _empty() -> List[Permission]:
    return []

"""
Authorization gate called at the edge of every privileged operation.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence

from docadmin.core.errors import Forbidden, Unauthenticated
from docadmin.modules.rbac.models import User
from docadmin.modules.rbac.resolver import PermissionResolver

logger = logging.getLogger(__name__)

IdentityProvider = Callable[[], Awaitable[Optional[User]]]


class AuthorizationGate:
    def __init__(self, resolver: PermissionResolver, identity_provider: IdentityProvider):
        self.resolver = resolver
        self.identity_provider = identity_provider

    async def require_authenticated(self) -> User:
        user = await self.identity_provider()
        if user is None:
            raise Unauthenticated()
        return user

    async def require_permission(self, resource: str, action: str) -> User:
        """Authenticated user holding resource:action, else Unauthenticated / Forbidden."""
        user = await self.require_authenticated()
        if not await self.resolver.has_permission(user.id, resource, action):
            logger.info(f"Denied {resource}:{action} for user {user.id}")
            raise Forbidden()
        return user

    async def require_any_permission(self, permission_names: Sequence[str]) -> User:
        """
        Authenticated user holding at least one of permission_names.

        The checks are independent reads, so they run concurrently. Malformed
        names simply evaluate to False.
        """
        user = await self.require_authenticated()
        results = await asyncio.gather(
            *(self.resolver.has_permission_by_name(user.id, name) for name in permission_names)
        )
        if any(results):
            return user
        logger.info(f"Denied any of {list(permission_names)} for user {user.id}")
        raise Forbidden()

    async def require_all_permissions(self, permission_names: Sequence[str]) -> User:
        user = await self.require_authenticated()
        results = await asyncio.gather(
            *(self.resolver.has_permission_by_name(user.id, name) for name in permission_names)
        )
        if permission_names and all(results):
            return user
        logger.info(f"Denied all of {list(permission_names)} for user {user.id}")
        raise Forbidden()

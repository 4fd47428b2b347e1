"""
Core dependencies for route protection and permission checking
"""

from fastapi import Depends, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from docadmin.config import settings
from docadmin.core.errors import AppError
from docadmin.database import get_grant_store
from docadmin.database.supabase_client import SupabaseClient
from docadmin.modules.auth.service import AuthAccounts, AuthService
from docadmin.modules.rbac.gate import AuthorizationGate
from docadmin.modules.rbac.models import User
from docadmin.modules.rbac.resolver import PermissionResolver
from docadmin.modules.rbac.store import GrantStore
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)

# auto_error=False: a missing header must surface as our own 401 body, not FastAPI's 403
security = HTTPBearer(auto_error=False)


async def get_store() -> GrantStore:
    return await get_grant_store()


def get_resolver(store: GrantStore = Depends(get_store)) -> PermissionResolver:
    return PermissionResolver(store)


async def get_auth_service(store: GrantStore = Depends(get_store)) -> AuthService:
    return AuthService(await SupabaseClient.get_client(), store)


async def get_auth_accounts() -> AuthAccounts:
    """Supabase Auth account admin; requires the service role key"""
    if not settings.supabase_service_role_key:
        raise AppError("Service role key not configured. Cannot manage auth accounts.")
    return AuthAccounts(await SupabaseClient.get_service_client())


async def get_current_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security)
) -> Optional[str]:
    """Bearer token from the Authorization header, if any"""
    return credentials.credentials if credentials else None


async def get_current_user(
    token: Optional[str] = Depends(get_current_token),
    store: GrantStore = Depends(get_store)
) -> Optional[User]:
    """Resolve the calling user from the bearer token; None when anonymous or unknown"""
    if not token:
        return None
    auth_service = AuthService(await SupabaseClient.get_client(), store)
    return await auth_service.get_current_user(token)


def get_gate(
    resolver: PermissionResolver = Depends(get_resolver),
    current_user: Optional[User] = Depends(get_current_user)
) -> AuthorizationGate:
    async def identity() -> Optional[User]:
        return current_user
    return AuthorizationGate(resolver, identity)


async def require_authenticated(gate: AuthorizationGate = Depends(get_gate)) -> User:
    return await gate.require_authenticated()


def require_permission(resource: str, action: str):
    """Factory function to create permission check dependency"""
    async def check_permission(gate: AuthorizationGate = Depends(get_gate)) -> User:
        return await gate.require_permission(resource, action)
    return check_permission


def require_any_permission(permission_names: List[str]):
    """Dependency factory: caller must hold at least one of permission_names"""
    names = list(permission_names)

    async def check_any_permission(gate: AuthorizationGate = Depends(get_gate)) -> User:
        return await gate.require_any_permission(names)
    return check_any_permission


def require_all_permissions(permission_names: List[str]):
    """Dependency factory: caller must hold every one of permission_names"""
    names = list(permission_names)

    async def check_all_permissions(gate: AuthorizationGate = Depends(get_gate)) -> User:
        return await gate.require_all_permissions(names)
    return check_all_permissions

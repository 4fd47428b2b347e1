from __future__ import annotations

import uuid
from types import SimpleNamespace
from typing import Dict, Iterable, Optional

import httpx
import pytest
import pytest_asyncio

from docadmin.core.dependencies import get_auth_accounts, get_current_user, get_store
from docadmin.database.memory_store import InMemoryGrantStore
from docadmin.main import app
from docadmin.modules.auth.service import AuthAccounts
from docadmin.modules.rbac.models import Permission, Role, User
from docadmin.modules.rbac.resolver import PermissionResolver
from docadmin.modules.roles.schemas import RoleCreate
from docadmin.modules.roles.service import PermissionService, RoleService


class GrantFactory:
    """Builds users, roles and grants straight into a grant store."""

    def __init__(self, store: InMemoryGrantStore) -> None:
        self.store = store
        self.permissions = PermissionService(store)
        self.roles = RoleService(store, self.permissions)

    async def permission(self, name: str) -> Permission:
        return await self.permissions.ensure_permission(name)

    async def role(self, name: str, permissions: Iterable[str] = ()) -> Role:
        await self.roles.create_role(RoleCreate(name=name, permissions=list(permissions)))
        return await self.store.get_role_by_name(name)

    async def user(
        self,
        email: str,
        *,
        roles: Iterable[Role] = (),
        permissions: Iterable[str] = (),
        is_system_account: bool = False,
    ) -> User:
        user = await self.store.create_user(email, email.split("@")[0], is_system_account=is_system_account)
        for role in roles:
            await self.store.assign_role_to_user(user.id, role.id)
        for name in permissions:
            permission = await self.permission(name)
            await self.store.assign_permission_to_user(user.id, permission.id)
        return user


class FakeAuthAdmin:
    """Stands in for supabase AsyncClient.auth.admin; keeps accounts in a dict."""

    def __init__(self) -> None:
        self.accounts: Dict[str, dict] = {}

    async def create_user(self, attributes: dict):
        auth_id = str(uuid.uuid4())
        self.accounts[auth_id] = dict(attributes)
        return SimpleNamespace(user=SimpleNamespace(id=auth_id, email=attributes["email"]))

    async def update_user_by_id(self, uid: str, attributes: dict):
        self.accounts[uid].update(attributes)
        return SimpleNamespace(user=SimpleNamespace(id=uid, email=self.accounts[uid]["email"]))

    async def delete_user(self, uid: str) -> None:
        self.accounts.pop(uid, None)


class Identity:
    """Who the test client is signed in as; None means anonymous."""

    def __init__(self) -> None:
        self.user: Optional[User] = None


@pytest.fixture
def store() -> InMemoryGrantStore:
    return InMemoryGrantStore()


@pytest.fixture
def resolver(store: InMemoryGrantStore) -> PermissionResolver:
    return PermissionResolver(store)


@pytest.fixture
def factory(store: InMemoryGrantStore) -> GrantFactory:
    return GrantFactory(store)


@pytest.fixture
def auth_admin() -> FakeAuthAdmin:
    return FakeAuthAdmin()


@pytest.fixture
def accounts(auth_admin: FakeAuthAdmin) -> AuthAccounts:
    return AuthAccounts(SimpleNamespace(auth=SimpleNamespace(admin=auth_admin)))


@pytest.fixture
def identity() -> Identity:
    return Identity()


@pytest_asyncio.fixture
async def client(store: InMemoryGrantStore, identity: Identity, accounts: AuthAccounts):
    async def override_store() -> InMemoryGrantStore:
        return store

    async def override_current_user() -> Optional[User]:
        return identity.user

    async def override_accounts() -> AuthAccounts:
        return accounts

    app.dependency_overrides[get_store] = override_store
    app.dependency_overrides[get_current_user] = override_current_user
    app.dependency_overrides[get_auth_accounts] = override_accounts
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as test_client:
        yield test_client
    app.dependency_overrides.clear()

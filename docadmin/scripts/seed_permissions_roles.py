"""
Seed Permissions and Roles Script
This script populates the permission catalog, the default roles and the
system administrator account using the config.
Run with: python -m docadmin.scripts.seed_permissions_roles
"""

import asyncio
import logging
import sys
from typing import Dict

from docadmin.config import settings
from docadmin.config.permissions_config import PERMISSION_MATRIX, SYSTEM_ADMIN_ROLE
from docadmin.core.errors import AppError, ValidationError
from docadmin.database import get_grant_store
from docadmin.database.supabase_client import SupabaseClient
from docadmin.modules.auth.service import AuthAccounts
from docadmin.modules.rbac.models import User
from docadmin.modules.rbac.store import GrantStore
from docadmin.modules.roles.schemas import PermissionUpdate, RoleCreate, RoleUpdate
from docadmin.modules.roles.service import PermissionService, RoleService
from docadmin.modules.users.schemas import UserCreate
from docadmin.modules.users.service import UserService

logger = logging.getLogger(__name__)


async def seed_permissions(permission_service: PermissionService) -> int:
    """Seed permissions from config"""
    logger.info("Seeding permissions...")
    created_count = 0
    updated_count = 0

    for perm in PERMISSION_MATRIX["permissions"]:
        existing = await permission_service.store.get_permission_by_name(perm["name"])
        if existing is None:
            await permission_service.ensure_permission(perm["name"], description=perm["description"])
            created_count += 1
        elif existing.description != perm["description"]:
            await permission_service.update_permission(
                existing.id, PermissionUpdate(description=perm["description"])
            )
            updated_count += 1

    logger.info(f"Permissions seeded: {created_count} created, {updated_count} updated")
    return created_count + updated_count


async def seed_roles(role_service: RoleService) -> Dict[str, str]:
    """Seed roles from config; existing roles get their permission list replaced. Returns name -> id."""
    logger.info("Seeding roles...")
    role_ids = {}
    created_count = 0
    updated_count = 0

    for role in PERMISSION_MATRIX["roles"]:
        existing = await role_service.store.get_role_by_name(role["name"])
        if existing is None:
            seeded = await role_service.create_role(RoleCreate(**role))
            created_count += 1
        else:
            seeded = await role_service.update_role(
                existing.id,
                RoleUpdate(description=role["description"], permissions=role["permissions"])
            )
            updated_count += 1
        role_ids[seeded.name] = seeded.id

    logger.info(f"Roles seeded: {created_count} created, {updated_count} updated")
    return role_ids


async def seed_system_admin(store: GrantStore, user_service: UserService, admin_role_id: str) -> User:
    """Create the protected administrator account and give it the admin role"""
    admin = await store.get_user_by_email(settings.default_admin_email)
    if admin is None:
        if not settings.default_admin_password:
            raise ValidationError("DEFAULT_ADMIN_PASSWORD is required to create the system account")
        # users.id is the id of the Supabase Auth login created here
        created = await user_service.create_user(
            UserCreate(
                email=settings.default_admin_email,
                name=settings.default_admin_name,
                password=settings.default_admin_password,
            ),
            is_system_account=True,
        )
        admin = await store.get_user(created.id)
        logger.info(f"Created system account {admin.email}")
    elif not admin.is_system_account:
        admin = await store.update_user(admin.id, {"is_system_account": True})
        logger.info(f"Flagged {admin.email} as system account")

    # Written to the store directly: the service layer refuses grant edits on system accounts
    grant = await store.get_user_role(admin.id, admin_role_id)
    if grant is None or not grant.is_active:
        await store.assign_role_to_user(admin.id, admin_role_id, assigned_by=None)
        logger.info(f"Assigned {SYSTEM_ADMIN_ROLE} role to {admin.email}")
    return admin


async def seed(store: GrantStore, accounts: AuthAccounts) -> User:
    """Seed catalog, roles and system admin into the given store"""
    permission_service = PermissionService(store)
    role_service = RoleService(store, permission_service)
    user_service = UserService(store, accounts, permission_service=permission_service)

    perm_count = await seed_permissions(permission_service)
    role_ids = await seed_roles(role_service)
    admin = await seed_system_admin(store, user_service, role_ids[SYSTEM_ADMIN_ROLE])

    logger.info(f"Total: {perm_count} permissions changed, {len(role_ids)} roles processed")
    return admin


async def main():
    """Main function to seed permissions and roles"""
    logger.info("Starting permissions and roles seeding...")
    store = await get_grant_store()
    accounts = AuthAccounts(await SupabaseClient.get_service_client())
    await seed(store, accounts)
    logger.info("Seeding completed successfully!")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    try:
        asyncio.run(main())
    except AppError as e:
        logger.error(f"Error during seeding: {e.message}")
        sys.exit(1)

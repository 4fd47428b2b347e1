# Supabase tables: users, roles, permissions, role_permissions, user_roles, user_permissions
# The records below are the typed shapes the resolver and services work with.
# Rows coming back from the store are converted here and nowhere else.

"""
Expected Supabase table structure:

users:
- id: uuid (primary key, references auth.users.id)
- email: text (unique, not null)
- name: text (not null)
- is_system_account: boolean (default: false)
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

permissions:
- id: uuid (primary key)
- name: text (unique, not null) - always "resource:action", e.g. "files:read", "users:*", "*:*"
- resource: text (not null) - literal resource or "*"
- action: text (not null) - literal action or "*"
- description: text (nullable)
- created_at: timestamp (default: now())
- check constraint: name = resource || ':' || action

roles:
- id: uuid (primary key)
- name: text (unique, not null)
- description: text (nullable)
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

role_permissions:
- role_id: uuid (references roles.id on delete cascade)
- permission_id: uuid (references permissions.id on delete cascade)
- created_at: timestamp (default: now())
- primary key (role_id, permission_id)

user_roles / user_permissions:
- user_id: uuid (references users.id on delete cascade)
- role_id / permission_id: uuid
- assigned_at: timestamp (default: now())
- assigned_by: uuid (nullable, references users.id)
- deleted_at: timestamp (nullable) - set on revoke, cleared on re-grant
- primary key (user_id, role_id) / (user_id, permission_id)
"""

from datetime import datetime, timezone
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

WILDCARD = "*"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Permission(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    resource: str
    action: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _name_matches_parts(self) -> "Permission":
        if self.name != f"{self.resource}:{self.action}":
            raise ValueError(
                f"Permission name {self.name!r} does not match {self.resource}:{self.action}"
            )
        return self


class Role(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RolePermission(BaseModel):
    model_config = ConfigDict(frozen=True)

    role_id: str
    permission_id: str
    created_at: Optional[datetime] = None


class User(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    name: str
    is_system_account: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Active(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["active"] = "active"
    assigned_at: Optional[datetime] = None  # None when the row carries no timestamp
    assigned_by: Optional[str] = None


class Revoked(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["revoked"] = "revoked"
    revoked_at: datetime
    assigned_at: Optional[datetime] = None
    assigned_by: Optional[str] = None


GrantState = Annotated[Union[Active, Revoked], Field(discriminator="kind")]


def grant_state_from_row(row: Dict[str, Any]) -> Union[Active, Revoked]:
    """Translate the assigned_at/assigned_by/deleted_at columns into a grant state."""
    assigned_at = row.get("assigned_at")
    if row.get("deleted_at"):
        return Revoked(
            revoked_at=row["deleted_at"],
            assigned_at=assigned_at,
            assigned_by=row.get("assigned_by"),
        )
    return Active(assigned_at=assigned_at, assigned_by=row.get("assigned_by"))


class UserRole(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    role_id: str
    state: GrantState

    @property
    def is_active(self) -> bool:
        return isinstance(self.state, Active)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "UserRole":
        return cls(user_id=row["user_id"], role_id=row["role_id"], state=grant_state_from_row(row))


class UserPermission(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    permission_id: str
    state: GrantState

    @property
    def is_active(self) -> bool:
        return isinstance(self.state, Active)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "UserPermission":
        return cls(
            user_id=row["user_id"],
            permission_id=row["permission_id"],
            state=grant_state_from_row(row),
        )

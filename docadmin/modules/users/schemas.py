from pydantic import BaseModel, EmailStr, Field, model_validator
from typing import Optional, List
from datetime import datetime

from docadmin.modules.roles.schemas import PermissionResponse, RoleResponse


class UserCreate(BaseModel):
    email: EmailStr
    name: str
    password: str = Field(..., min_length=6)  # Supabase Auth minimum


class UserUpdate(BaseModel):
    email: Optional[EmailStr] = None
    name: Optional[str] = None


class UserResponse(BaseModel):
    id: str
    email: str
    name: str
    is_system_account: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class EffectivePermissionResponse(PermissionResponse):
    label: str  # e.g. "all permissions", "files:all actions"


class UserWithPermissionsResponse(UserResponse):
    roles: List[RoleResponse]
    permissions: List[str]  # effective permission names
    direct_permissions: List[PermissionResponse]


class UserAccessResponse(BaseModel):
    user_id: str
    roles: List[RoleResponse]
    permissions: List[EffectivePermissionResponse]  # effective: roles + direct grants
    direct_permissions: List[PermissionResponse]


class UserRoleAssign(BaseModel):
    role_id: str


class UserRolesReplace(BaseModel):
    role_ids: List[str]


class UserPermissionAssign(BaseModel):
    # Either an existing permission id or a "resource:action" name
    permission_id: Optional[str] = None
    permission: Optional[str] = None

    @model_validator(mode="after")
    def _one_of(self) -> "UserPermissionAssign":
        if bool(self.permission_id) == bool(self.permission):
            raise ValueError("Provide exactly one of permission_id or permission")
        return self


class UserPermissionsReplace(BaseModel):
    permissions: List[str]  # permission names

from pydantic import BaseModel, EmailStr
from typing import List

from docadmin.modules.users.schemas import EffectivePermissionResponse, UserResponse


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: str
    email: str


class MeResponse(BaseModel):
    authenticated: bool = True
    user: UserResponse
    permissions: List[str]  # effective permission names, for UI gating
    effective_permissions: List[EffectivePermissionResponse]

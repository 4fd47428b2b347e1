from fastapi import APIRouter, Depends
from docadmin.core.dependencies import (
    get_auth_service,
    get_current_token,
    get_resolver,
    require_authenticated,
)
from docadmin.modules.auth.schemas import LoginRequest, TokenResponse, MeResponse
from docadmin.modules.auth.service import AuthService
from docadmin.modules.rbac.models import User
from docadmin.modules.rbac.resolver import PermissionResolver, describe_permission
from docadmin.modules.users.schemas import EffectivePermissionResponse, UserResponse
from typing import Optional

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=TokenResponse)
async def login(
    login_data: LoginRequest,
    service: AuthService = Depends(get_auth_service)
):
    """Login and get access token"""
    return await service.login(login_data)


@router.post("/logout", status_code=200)
async def logout(
    current_user: User = Depends(require_authenticated),
    token: Optional[str] = Depends(get_current_token),
    service: AuthService = Depends(get_auth_service)
):
    """Logout and invalidate token"""
    await service.logout(token)
    return {"message": "Logged out successfully"}


@router.get("/me", response_model=MeResponse)
async def get_me(
    current_user: User = Depends(require_authenticated),
    resolver: PermissionResolver = Depends(get_resolver)
):
    """Current user and their effective permissions (for frontend UI)."""
    permissions = await resolver.effective_permissions(current_user.id)
    return MeResponse(
        user=UserResponse.model_validate(current_user),
        permissions=[p.name for p in permissions],
        effective_permissions=[
            EffectivePermissionResponse(**p.model_dump(), label=describe_permission(p))
            for p in permissions
        ],
    )

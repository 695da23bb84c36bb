# app/api/v1/routers/users.py
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from app.api.v1.deps import (
    api_rate_limit,
    get_auth_context,
    get_services,
    require_admin,
    require_permission,
)
from app.api.v1.routers.auth import clear_auth_cookies
from app.core.authorization import AuthContext
from app.schemas.user import (
    DeleteAccountIn,
    PreferencesIn,
    ProfileUpdateIn,
    RoleAssignIn,
    user_to_dict,
)
from app.services.container import Services

router = APIRouter(prefix="/users", tags=["users"], dependencies=[Depends(api_rate_limit)])


# ==============================================================================
# I. Self-service profile
#     Prefix: /api/v1/users/profile
# ==============================================================================
@router.get("/profile")
async def get_profile(ctx: AuthContext = Depends(get_auth_context)):
    return {"success": True, "data": {"user": user_to_dict(ctx.user)}}


@router.put("/profile")
async def update_profile(
    body: ProfileUpdateIn,
    ctx: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    """
    Update the caller's profile (names, phone number, bio, avatar URL).
    Email and role cannot be changed here.
    """
    user = await services.users.update_profile(ctx.user, body.to_changes())
    return {"success": True, "data": {"user": user_to_dict(user)}}


@router.put("/preferences")
async def update_preferences(
    body: PreferencesIn,
    ctx: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    prefs = await services.users.update_preferences(ctx.user, body.to_changes())
    return {"success": True, "data": {"preferences": prefs}}


@router.delete("/profile")
async def delete_account(
    response: Response,
    body: DeleteAccountIn | None = None,
    ctx: AuthContext = Depends(get_auth_context),
    services: Services = Depends(get_services),
):
    """
    Permanently delete the caller's account.

    Accounts with a password must send it as confirmation. All sessions,
    tokens and OAuth links are removed.

    Error codes:
        - INVALID_CURRENT_PASSWORD (401)
    """
    await services.users.delete_account(ctx.user, (body or DeleteAccountIn()).password)
    clear_auth_cookies(response)
    return {"success": True, "data": {"message": "Account deleted"}}


# ==============================================================================
# II. Directory and administration
# ==============================================================================
@router.get("/search", dependencies=[Depends(require_permission("users", "read"))])
async def search_users(
    q: str = Query(..., min_length=2),
    limit: int = Query(10, ge=1, le=100),
    services: Services = Depends(get_services),
):
    users = await services.users.search(q, limit)
    return {"success": True, "data": {"users": [user_to_dict(u) for u in users]}}


@router.get("/stats", dependencies=[Depends(require_admin)])
async def user_statistics(services: Services = Depends(get_services)):
    return {"success": True, "data": await services.users.statistics()}


@router.get("", dependencies=[Depends(require_permission("users", "read"))])
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    role: Optional[str] = Query(default=None, description="Filter by role name"),
    is_active: Optional[bool] = Query(default=None, alias="isActive"),
    q: Optional[str] = Query(default=None, description="Fuzzy search by name/email"),
    services: Services = Depends(get_services),
):
    """
    Get paginated list of users, newest first.

    Args:
        page: 1-based page number
        limit: Page size (1-100)
        role: Optional role name filter
        isActive: Optional status filter
        q: Optional fuzzy match on first name, last name or email
    """
    users, total = await services.users.list_users(page, limit, role, is_active, q)
    return {
        "success": True,
        "data": {
            "users": [user_to_dict(u) for u in users],
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit,
        },
    }


@router.get("/{user_id}", dependencies=[Depends(require_permission("users", "read"))])
async def get_user(user_id: uuid.UUID, services: Services = Depends(get_services)):
    user = await services.users.get(user_id)
    return {"success": True, "data": {"user": user_to_dict(user)}}


@router.put("/{user_id}/role")
async def update_user_role(
    user_id: uuid.UUID,
    body: RoleAssignIn,
    ctx: AuthContext = Depends(require_permission("users", "update")),
    services: Services = Depends(get_services),
):
    """
    Assign a role to a user. The user's sessions are revoked.

    Error codes:
        - SELF_ROLE_CHANGE (422): Changing your own role
        - INSUFFICIENT_LEVEL (403): Target user or new role ranks above the caller
    """
    user = await services.users.update_role(user_id, body.roleId, ctx.user)
    return {"success": True, "data": {"user": user_to_dict(user)}}


@router.put("/{user_id}/activate")
async def activate_user(
    user_id: uuid.UUID,
    ctx: AuthContext = Depends(require_permission("users", "update")),
    services: Services = Depends(get_services),
):
    user = await services.users.set_active(user_id, True, ctx.user)
    return {"success": True, "data": {"user": user_to_dict(user)}}


@router.put("/{user_id}/deactivate")
async def deactivate_user(
    user_id: uuid.UUID,
    ctx: AuthContext = Depends(require_permission("users", "update")),
    services: Services = Depends(get_services),
):
    """Deactivate a user and revoke all of their sessions."""
    user = await services.users.set_active(user_id, False, ctx.user)
    return {"success": True, "data": {"user": user_to_dict(user)}}


@router.put("/{user_id}/unlock")
async def unlock_user(
    user_id: uuid.UUID,
    ctx: AuthContext = Depends(require_permission("users", "update")),
    services: Services = Depends(get_services),
):
    """Clear a lockout and reset the failed-login counter."""
    user = await services.users.unlock(user_id, ctx.user)
    return {"success": True, "data": {"user": user_to_dict(user)}}

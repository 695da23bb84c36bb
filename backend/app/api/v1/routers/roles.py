# app/api/v1/routers/roles.py
import uuid

from fastapi import APIRouter, Depends, Query, status

from app.api.v1.deps import api_rate_limit, get_services, require_permission, require_roles
from app.core.permissions import SUPERADMIN_ROLE_NAME
from app.schemas.role import (
    PermissionIn,
    RoleCreateIn,
    RoleUpdateIn,
    permissions_to_data,
    role_to_dict,
)
from app.schemas.user import user_to_dict
from app.services.container import Services

router = APIRouter(prefix="/roles", tags=["roles"], dependencies=[Depends(api_rate_limit)])


# ==============================================================================
# I. System setup and overview
# ==============================================================================
@router.post("/initialize", dependencies=[Depends(require_roles(SUPERADMIN_ROLE_NAME))])
async def initialize_roles(services: Services = Depends(get_services)):
    """
    Re-run the canonical role bootstrap (superadmin only).
    System roles are reset to their canonical permissions and levels; custom
    roles are not touched.
    """
    roles = await services.roles.bootstrap()
    return {"success": True, "data": {"roles": [role_to_dict(r) for r in roles]}}


@router.get("/stats", dependencies=[Depends(require_permission("roles", "read"))])
async def role_statistics(services: Services = Depends(get_services)):
    """Role counts and the live number of users per role."""
    return {"success": True, "data": await services.roles.statistics()}


@router.get("/hierarchy", dependencies=[Depends(require_permission("roles", "read"))])
async def role_hierarchy(services: Services = Depends(get_services)):
    """All roles ordered from the highest level to the lowest."""
    roles = await services.roles.hierarchy()
    return {
        "success": True,
        "data": {"hierarchy": [
            {"id": str(r.id), "name": r.name, "displayName": r.display_name, "level": r.level}
            for r in roles
        ]},
    }


# ==============================================================================
# II. CRUD
# ==============================================================================
@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permission("roles", "create"))],
)
async def create_role(body: RoleCreateIn, services: Services = Depends(get_services)):
    """
    Create a custom role.

    Error codes:
        - ROLE_EXISTS (409): A role with this name already exists (case-insensitive)
        - INVALID_ROLE_NAME / INVALID_ROLE_LEVEL (400)
    """
    role = await services.roles.create(
        name=body.name,
        display_name=body.displayName,
        description=body.description,
        permissions=permissions_to_data(body.permissions),
        level=body.level,
        is_active=body.isActive,
    )
    return {"success": True, "data": {"role": role_to_dict(role)}}


@router.get("", dependencies=[Depends(require_permission("roles", "read"))])
async def list_roles(
    active_only: bool = Query(False, alias="activeOnly"),
    services: Services = Depends(get_services),
):
    """List roles, highest level first."""
    roles = await services.roles.list_roles(active_only=active_only)
    return {"success": True, "data": {"roles": [role_to_dict(r) for r in roles], "total": len(roles)}}


@router.get("/{role_id}", dependencies=[Depends(require_permission("roles", "read"))])
async def get_role(role_id: uuid.UUID, services: Services = Depends(get_services)):
    role = await services.roles.get(role_id)
    return {"success": True, "data": {"role": role_to_dict(role)}}


@router.put("/{role_id}", dependencies=[Depends(require_permission("roles", "update"))])
async def update_role(role_id: uuid.UUID, body: RoleUpdateIn, services: Services = Depends(get_services)):
    """
    Partially update a role.

    Error codes:
        - SYSTEM_ROLE_PROTECTED (422): Renaming a system role
        - ROLE_EXISTS (409): New name already taken
    """
    role = await services.roles.update(role_id, body.to_changes())
    return {"success": True, "data": {"role": role_to_dict(role)}}


@router.delete("/{role_id}", dependencies=[Depends(require_permission("roles", "delete"))])
async def delete_role(
    role_id: uuid.UUID,
    force: bool = Query(False),
    services: Services = Depends(get_services),
):
    """
    Delete a role.

    Error codes:
        - SYSTEM_ROLE_PROTECTED (422): System role without force=true
        - ROLE_IN_USE (422): Users still hold the role (force does not override)
    """
    await services.roles.delete(role_id, force=force)
    return {"success": True, "data": {"deleted": str(role_id)}}


# ==============================================================================
# III. Permissions and members
# ==============================================================================
@router.get("/{role_id}/permissions", dependencies=[Depends(require_permission("roles", "read"))])
async def get_permissions(role_id: uuid.UUID, services: Services = Depends(get_services)):
    permissions = await services.roles.get_permissions(role_id)
    return {"success": True, "data": {"permissions": permissions}}


@router.post("/{role_id}/permissions", dependencies=[Depends(require_permission("roles", "update"))])
async def add_permission(role_id: uuid.UUID, body: PermissionIn, services: Services = Depends(get_services)):
    """Grant one action on one resource; granting an existing action is a no-op."""
    role = await services.roles.add_permission(role_id, body.resource.value, body.action.value)
    return {"success": True, "data": {"role": role_to_dict(role)}}


@router.delete("/{role_id}/permissions", dependencies=[Depends(require_permission("roles", "update"))])
async def remove_permission(role_id: uuid.UUID, body: PermissionIn, services: Services = Depends(get_services)):
    """Revoke one action; removing a resource's last action removes the resource entry."""
    role = await services.roles.remove_permission(role_id, body.resource.value, body.action.value)
    return {"success": True, "data": {"role": role_to_dict(role)}}


@router.get("/{role_id}/users", dependencies=[Depends(require_permission("roles", "read"))])
async def users_by_role(
    role_id: uuid.UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    services: Services = Depends(get_services),
):
    users, total = await services.roles.users_by_role(role_id, page, limit)
    return {
        "success": True,
        "data": {"users": [user_to_dict(u) for u in users], "page": page, "limit": limit, "total": total},
    }

# app/schemas/role.py
"""
Pydantic schemas for role management endpoints, and the role serializer
shared by the role and user routers.
"""
from typing import List, Optional

from pydantic import BaseModel, Field

from app.core.permissions import Action, Resource
from app.models.role import Role


class PermissionEntryIn(BaseModel):
    resource: Resource
    actions: List[Action] = Field(min_length=1)


class RoleCreateIn(BaseModel):
    """Request model for creating a role. `name` is lowercase letters only."""
    name: str = Field(min_length=2, max_length=32, pattern=r"^[a-zA-Z]+$")
    displayName: str = Field(min_length=2, max_length=64)
    description: str = Field(default="", max_length=200)
    permissions: List[PermissionEntryIn] = Field(default_factory=list)
    level: int = Field(default=1, ge=1, le=10)
    isActive: bool = True


class RoleUpdateIn(BaseModel):
    """All fields optional; only provided fields are updated."""
    name: Optional[str] = Field(default=None, min_length=2, max_length=32, pattern=r"^[a-zA-Z]+$")
    displayName: Optional[str] = Field(default=None, min_length=2, max_length=64)
    description: Optional[str] = Field(default=None, max_length=200)
    permissions: Optional[List[PermissionEntryIn]] = None
    level: Optional[int] = Field(default=None, ge=1, le=10)
    isActive: Optional[bool] = None

    def to_changes(self) -> dict:
        changes = {
            "name": self.name,
            "display_name": self.displayName,
            "description": self.description,
            "level": self.level,
            "is_active": self.isActive,
        }
        if self.permissions is not None:
            changes["permissions"] = permissions_to_data(self.permissions)
        return changes


class PermissionIn(BaseModel):
    resource: Resource
    action: Action


def permissions_to_data(entries: List[PermissionEntryIn]) -> list:
    return [{"resource": e.resource.value, "actions": [a.value for a in e.actions]} for e in entries]


def role_to_dict(role: Role) -> dict:
    """Convert a Role model instance to the API representation."""
    return {
        "id": str(role.id),
        "name": role.name,
        "displayName": role.display_name,
        "description": role.description,
        "permissions": role.permissions or [],
        "level": role.level,
        "isActive": role.is_active,
        "isSystem": role.is_system,
        "userCount": role.user_count,
        "createdAt": role.created_at.isoformat() if role.created_at else None,
        "updatedAt": role.updated_at.isoformat() if role.updated_at else None,
    }


def role_summary(role: Role) -> dict:
    return {
        "id": str(role.id),
        "name": role.name,
        "displayName": role.display_name,
        "level": role.level,
    }

"""
Role Store

CRUD over roles plus permission editing, hierarchy, statistics and the
idempotent bootstrap of the canonical system roles.
"""
import copy
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from app.core import permissions as perms
from app.core.errors import conflict, constraint, not_found, validation
from app.models.role import Role
from app.models.user import User

ROLE_NAME_RE = re.compile(r"^[a-z]+$")
MIN_LEVEL, MAX_LEVEL = 1, 10

UPDATABLE_FIELDS = ("name", "display_name", "description", "permissions", "level", "is_active")


def _clean_name(name: Optional[str]) -> str:
    cleaned = (name or "").strip().lower()
    if not ROLE_NAME_RE.match(cleaned):
        raise validation("INVALID_ROLE_NAME", "Role name may only contain lowercase letters")
    return cleaned


def _check_level(level: int) -> int:
    if not isinstance(level, int) or not MIN_LEVEL <= level <= MAX_LEVEL:
        raise validation("INVALID_ROLE_LEVEL", f"Role level must be between {MIN_LEVEL} and {MAX_LEVEL}")
    return level


class RoleService:
    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("uvicorn.error")

    # -------- read --------
    async def get(self, role_id) -> Role:
        role = await Role.get_or_none(id=role_id)
        if role is None:
            raise not_found("ROLE_NOT_FOUND", "Role not found")
        return role

    async def get_by_name(self, name: str) -> Role:
        role = await Role.get_or_none(name=(name or "").strip().lower())
        if role is None:
            raise not_found("ROLE_NOT_FOUND", "Role not found")
        return role

    async def list_roles(self, active_only: bool = False) -> List[Role]:
        qs = Role.all()
        if active_only:
            qs = qs.filter(is_active=True)
        return await qs.order_by("-level", "name")

    async def hierarchy(self) -> List[Role]:
        return await Role.all().order_by("-level", "name")

    # -------- write --------
    async def create(
        self,
        name: str,
        display_name: str,
        description: str = "",
        permissions: Optional[list] = None,
        level: int = 1,
        is_active: bool = True,
    ) -> Role:
        """
        Raises:
            AppError (VALIDATION): bad name, level or permission entries
            AppError (CONFLICT): ROLE_EXISTS
        """
        name = _clean_name(name)
        level = _check_level(level)
        normalized = perms.normalize_permissions(permissions)
        if await Role.filter(name=name).exists():
            raise conflict("ROLE_EXISTS", f"Role '{name}' already exists")

        role = await Role.create(
            name=name,
            display_name=display_name.strip(),
            description=(description or "").strip(),
            permissions=normalized,
            level=level,
            is_active=is_active,
            is_system=False,
        )
        self.logger.info("Role created: %s (level %d)", role.name, role.level)
        return role

    async def update(self, role_id, changes: Dict[str, Any]) -> Role:
        """
        Apply a partial update. System roles keep their name; their
        permissions and other attributes may still be edited.

        Raises:
            AppError (CONSTRAINT): SYSTEM_ROLE_PROTECTED
            AppError (CONFLICT): ROLE_EXISTS
        """
        role = await self.get(role_id)
        changes = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS and v is not None}

        if "name" in changes:
            new_name = _clean_name(changes["name"])
            if new_name != role.name:
                if role.is_system:
                    raise constraint("SYSTEM_ROLE_PROTECTED", "System role names cannot be changed")
                if await Role.filter(name=new_name).exclude(id=role.id).exists():
                    raise conflict("ROLE_EXISTS", f"Role '{new_name}' already exists")
            changes["name"] = new_name
        if "level" in changes:
            _check_level(changes["level"])
        if "permissions" in changes:
            changes["permissions"] = perms.normalize_permissions(changes["permissions"])

        for key, value in changes.items():
            setattr(role, key, value)
        if changes:
            await role.save()
            self.logger.info("Role updated: %s (%s)", role.name, ", ".join(sorted(changes)))
        return role

    async def delete(self, role_id, force: bool = False) -> None:
        """
        Delete a role that no user references.

        `force` only lifts the system-role protection; a role in use can never
        be deleted because every user must keep a role.

        Raises:
            AppError (CONSTRAINT): SYSTEM_ROLE_PROTECTED, ROLE_IN_USE
        """
        role = await self.get(role_id)
        if role.is_system:
            if not force:
                raise constraint("SYSTEM_ROLE_PROTECTED", "System roles cannot be deleted")
            self.logger.warning("Forced deletion of system role requested: %s", role.name)

        in_use = await User.filter(role_id=role.id).count()
        if in_use:
            raise constraint("ROLE_IN_USE", f"Role is assigned to {in_use} user(s)", {"userCount": in_use})

        await role.delete()
        self.logger.info("Role deleted: %s", role.name)

    # -------- permissions --------
    async def get_permissions(self, role_id) -> list:
        role = await self.get(role_id)
        return role.permissions or []

    async def add_permission(self, role_id, resource: str, action: str) -> Role:
        role = await self.get(role_id)
        role.permissions = perms.add_permission(role.permissions or [], resource, action)
        await role.save(update_fields=["permissions", "updated_at"])
        self.logger.info("Permission added: %s %s:%s", role.name, resource, action)
        return role

    async def remove_permission(self, role_id, resource: str, action: str) -> Role:
        role = await self.get(role_id)
        role.permissions = perms.remove_permission(role.permissions or [], resource, action)
        await role.save(update_fields=["permissions", "updated_at"])
        self.logger.info("Permission removed: %s %s:%s", role.name, resource, action)
        return role

    async def check_user_permission(self, user_id, resource: str, action: str) -> bool:
        user = await User.filter(id=user_id).select_related("role").first()
        if user is None:
            raise not_found("USER_NOT_FOUND", "User not found")
        if not user.role.is_active:
            return False
        return perms.has_permission(user.role.permissions or [], resource, action)

    # -------- users / stats --------
    async def users_by_role(self, role_id, page: int = 1, limit: int = 10) -> Tuple[List[User], int]:
        role = await self.get(role_id)
        qs = User.filter(role_id=role.id)
        total = await qs.count()
        users = await qs.order_by("-created_at").offset((page - 1) * limit).limit(limit)
        return users, total

    async def statistics(self) -> Dict[str, Any]:
        """Live user count per role; the stored user_count is refreshed as a side effect."""
        roles = await Role.all().order_by("-level", "name")
        breakdown = []
        for role in roles:
            count = await User.filter(role_id=role.id).count()
            if count != role.user_count:
                await Role.filter(id=role.id).update(user_count=count)
                role.user_count = count
            breakdown.append({
                "id": str(role.id),
                "name": role.name,
                "displayName": role.display_name,
                "level": role.level,
                "userCount": count,
                "isActive": role.is_active,
                "isSystem": role.is_system,
            })
        return {
            "totalRoles": len(roles),
            "activeRoles": sum(1 for r in roles if r.is_active),
            "systemRoles": sum(1 for r in roles if r.is_system),
            "roles": breakdown,
        }

    # -------- bootstrap --------
    async def bootstrap(self) -> List[Role]:
        """
        Upsert the canonical roles. Safe to run repeatedly: system roles are
        reset to their canonical definition, other roles are left alone.
        """
        result = []
        for canonical in copy.deepcopy(perms.CANONICAL_ROLES):
            role = await Role.get_or_none(name=canonical["name"])
            if role is None:
                role = await Role.create(is_system=True, is_active=True, **canonical)
                self.logger.info("[bootstrap] Created role: %s", role.name)
            else:
                for key, value in canonical.items():
                    setattr(role, key, value)
                role.is_system = True
                role.is_active = True
                await role.save()
            result.append(role)
        return result

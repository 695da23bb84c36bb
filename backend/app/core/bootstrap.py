"""
Bootstrap module for application initialization.
Creates the canonical roles and a default superadmin on first startup.
"""
import logging
from typing import Optional

from app.core.permissions import SUPERADMIN_ROLE_NAME
from app.core.security import hash_password_async, utc_now
from app.models.role import Role
from app.models.user import User
from app.services.role_service import RoleService

logger = logging.getLogger("uvicorn.error")


async def ensure_default_roles(roles: Optional[RoleService] = None) -> None:
    """Upsert the canonical system roles (idempotent)."""
    created = await (roles or RoleService(logger)).bootstrap()
    logger.info("[bootstrap] Roles ready: %s", ", ".join(r.name for r in created))


async def ensure_default_superadmin(settings) -> None:
    """
    If no superadmin exists in the database, create one from settings.
    Only takes effect under the following conditions:
      - Currently no user holds the superadmin role
      - And SUPERADMIN_PASSWORD is set (to avoid a default weak password)
    Environment variables:
      SUPERADMIN_EMAIL    (default: "superadmin@example.com")
      SUPERADMIN_PASSWORD (required, otherwise won't create)
    """
    role = await Role.get_or_none(name=SUPERADMIN_ROLE_NAME)
    if role is None:
        logger.warning("[bootstrap] Superadmin role missing -> skip creating default superadmin.")
        return
    if await User.filter(role_id=role.id).exists():
        return

    if not settings.superadmin_password:
        logger.warning("[bootstrap] No superadmin present, but SUPERADMIN_PASSWORD not set -> skip.")
        return

    email = settings.superadmin_email.strip().lower()
    existing = await User.get_or_none(email=email)
    if existing is not None:
        # An account already uses the address; promote it instead of failing on the unique email
        await User.filter(id=existing.id).update(role_id=role.id)
        logger.warning("[bootstrap] Promoted existing user to superadmin -> email=%s id=%s", email, existing.id)
        return

    u = await User.create(
        first_name="Super",
        last_name="Admin",
        email=email,
        password_hash=await hash_password_async(settings.superadmin_password),
        role=role,
        is_email_verified=True,
        last_password_change=utc_now(),
    )
    logger.warning("[bootstrap] Created default superadmin -> email=%s id=%s", u.email, u.id)

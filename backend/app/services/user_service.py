"""
User directory: self-service profile operations and admin management
(role assignment, activation, unlock, listing and statistics).
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from tortoise.expressions import Q

from app.core.errors import constraint, forbidden, not_found, unauthorized, validation
from app.core.lockout import AccountLockoutPolicy
from app.core.security import utc_now, verify_password_async
from app.models.role import Role
from app.models.user import User
from app.services.token_service import RevokeReason, TokenService

PROFILE_FIELDS = ("first_name", "last_name", "avatar", "phone_number", "bio")
SUPPORTED_LANGUAGES = ("en", "es", "fr", "de", "zh", "ja")


class UserService:
    def __init__(
        self,
        tokens: TokenService,
        lockout: AccountLockoutPolicy,
        logger: Optional[logging.Logger] = None,
    ):
        self.tokens = tokens
        self.lockout = lockout
        self.logger = logger or logging.getLogger("uvicorn.error")

    @staticmethod
    def _check_rank(actor: User, level: int) -> None:
        """Admins cannot act above their own role level."""
        actor_level = actor.role.level if isinstance(actor.role, Role) else 0
        if level > actor_level:
            raise forbidden("INSUFFICIENT_LEVEL", "Cannot manage a role above your own level",
                            {"required": level, "current": actor_level})

    async def get(self, user_id) -> User:
        user = await User.filter(id=user_id).select_related("role").first()
        if user is None:
            raise not_found("USER_NOT_FOUND", "User not found")
        return user

    # ------------------------------------------------------------------ self-service
    async def update_profile(self, user: User, changes: Dict[str, Any]) -> User:
        changes = {k: v for k, v in changes.items() if k in PROFILE_FIELDS and v is not None}
        for key, value in changes.items():
            setattr(user, key, value.strip() if isinstance(value, str) else value)
        if changes:
            await user.save(update_fields=[*changes, "updated_at"])
            self.logger.info("Profile updated: %s", user.email)
        return user

    async def update_preferences(self, user: User, changes: Dict[str, Any]) -> dict:
        """Merge known preference keys into the stored preferences."""
        prefs = dict(user.preferences or {})
        if changes.get("language") is not None:
            if changes["language"] not in SUPPORTED_LANGUAGES:
                raise validation("INVALID_LANGUAGE", f"Unsupported language: {changes['language']}")
            prefs["language"] = changes["language"]
        if changes.get("timezone") is not None:
            prefs["timezone"] = changes["timezone"]
        notifications = changes.get("notifications")
        if notifications:
            merged = dict(prefs.get("notifications") or {})
            merged.update({k: bool(v) for k, v in notifications.items() if k in ("email", "push") and v is not None})
            prefs["notifications"] = merged

        user.preferences = prefs
        await user.save(update_fields=["preferences", "updated_at"])
        return prefs

    async def delete_account(self, user: User, password: Optional[str] = None) -> None:
        """
        Permanently delete the caller's account. Accounts with a password must
        confirm it. Sessions are revoked first; tokens and OAuth links cascade.
        """
        if user.password_hash and not await verify_password_async(password or "", user.password_hash):
            raise unauthorized("INVALID_CURRENT_PASSWORD", "Password is incorrect")
        await self.tokens.revoke_all_for_user(user.id, RevokeReason.ACCOUNT_DELETED)
        email = user.email
        await user.delete()
        self.logger.info("Account deleted: %s", email)

    # ------------------------------------------------------------------ listing
    async def list_users(
        self,
        page: int = 1,
        limit: int = 10,
        role: Optional[str] = None,
        is_active: Optional[bool] = None,
        q: Optional[str] = None,
    ) -> Tuple[List[User], int]:
        qs = User.all().select_related("role")
        if role:
            qs = qs.filter(role__name=role.lower())
        if is_active is not None:
            qs = qs.filter(is_active=is_active)
        if q:
            qs = qs.filter(Q(first_name__icontains=q) | Q(last_name__icontains=q) | Q(email__icontains=q))
        total = await qs.count()
        items = await qs.order_by("-created_at").offset((page - 1) * limit).limit(limit)
        return items, total

    async def search(self, q: str, limit: int = 10) -> List[User]:
        q = (q or "").strip()
        if len(q) < 2:
            raise validation("SEARCH_QUERY_TOO_SHORT", "Search query must be at least 2 characters")
        return await User.filter(
            Q(first_name__icontains=q) | Q(last_name__icontains=q) | Q(email__icontains=q)
        ).select_related("role").order_by("first_name").limit(limit)

    async def statistics(self) -> Dict[str, Any]:
        now = utc_now()
        by_role = {}
        for role in await Role.all().order_by("-level"):
            by_role[role.name] = await User.filter(role_id=role.id).count()
        by_provider = {}
        for provider in await User.all().distinct().values_list("provider", flat=True):
            by_provider[provider] = await User.filter(provider=provider).count()
        return {
            "total": await User.all().count(),
            "active": await User.filter(is_active=True).count(),
            "inactive": await User.filter(is_active=False).count(),
            "verified": await User.filter(is_email_verified=True).count(),
            "locked": await User.filter(is_locked=True, lock_until__gt=now).count(),
            "byRole": by_role,
            "byProvider": by_provider,
        }

    # ------------------------------------------------------------------ admin actions
    async def update_role(self, user_id, role_id, actor: User) -> User:
        """
        Assign a role. The user's sessions are revoked so the new role applies
        from the next login.

        Raises:
            AppError (CONSTRAINT): SELF_ROLE_CHANGE, ROLE_INACTIVE
            AppError (FORBIDDEN): INSUFFICIENT_LEVEL when the target or the new role outranks the actor
        """
        user = await self.get(user_id)
        if str(user.id) == str(actor.id):
            raise constraint("SELF_ROLE_CHANGE", "You cannot change your own role")
        role = await Role.get_or_none(id=role_id)
        if role is None:
            raise not_found("ROLE_NOT_FOUND", "Role not found")
        if not role.is_active:
            raise constraint("ROLE_INACTIVE", "Cannot assign an inactive role")
        self._check_rank(actor, max(role.level, user.role.level))
        if role.id == user.role_id:
            return user

        previous = user.role.name
        await User.filter(id=user.id).update(role_id=role.id)
        user.role = role
        await self.tokens.revoke_all_for_user(user.id, RevokeReason.ROLE_CHANGED)
        self.logger.info("Role changed: %s %s -> %s (by %s)", user.email, previous, role.name, actor.email)
        return user

    async def set_active(self, user_id, active: bool, actor: User) -> User:
        user = await self.get(user_id)
        if not active and str(user.id) == str(actor.id):
            raise constraint("SELF_DEACTIVATION", "You cannot deactivate your own account")
        self._check_rank(actor, user.role.level)
        if user.is_active == active:
            return user
        await User.filter(id=user.id).update(is_active=active)
        user.is_active = active
        if not active:
            await self.tokens.revoke_all_for_user(user.id, RevokeReason.ACCOUNT_DEACTIVATED)
        self.logger.info("User %s: %s (by %s)", "activated" if active else "deactivated", user.email, actor.email)
        return user

    async def unlock(self, user_id, actor: User) -> User:
        user = await self.get(user_id)
        await self.lockout.unlock(user)
        self.logger.info("User unlocked: %s (by %s)", user.email, actor.email)
        return user

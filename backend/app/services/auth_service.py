"""
Credential store operations: registration, login, logout, refresh,
email verification and password change / reset.

Every public method raises AppError on business failures and leaves
notification delivery to `send_safely`, so a mail outage never rolls back
the primary operation.
"""
import datetime as dt
import logging
from dataclasses import dataclass
from typing import List, Optional

from app.core.errors import AppError, ErrorKind, conflict, forbidden, unauthorized, validation
from app.core.lockout import AccountLockoutPolicy
from app.core.permissions import DEFAULT_ROLE_NAME
from app.core.security import hash_password_async, utc_now, verify_password_async
from app.models.role import Role
from app.models.token import Token
from app.models.user import LOCAL_PROVIDER, User
from app.services import account_tokens
from app.services.notifications import Notifier, Template, send_safely
from app.services.request_meta import RequestMeta
from app.services.token_service import RefreshResult, RevokeReason, TokenPair, TokenService


@dataclass
class AuthResult:
    """Login-result shape shared by register, login and the OAuth callback."""
    user: User
    tokens: TokenPair
    is_new_user: bool = False


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class AuthService:
    def __init__(
        self,
        settings,
        tokens: TokenService,
        notifier: Notifier,
        lockout: AccountLockoutPolicy,
        logger: Optional[logging.Logger] = None,
    ):
        self.settings = settings
        self.tokens = tokens
        self.notifier = notifier
        self.lockout = lockout
        self.logger = logger or logging.getLogger("uvicorn.error")

    # ---------------------------------------------------------------- helpers
    async def _notify(self, user: User, template: Template, **data) -> bool:
        data.setdefault("name", user.first_name)
        return await send_safely(self.notifier, self.logger, user.email, template, data)

    def _link(self, path: str, raw: str) -> str:
        return f"{self.settings.frontend_url.rstrip('/')}/{path}/{raw}"

    async def default_role(self) -> Role:
        role = await Role.get_or_none(name=DEFAULT_ROLE_NAME)
        if role is None:
            # Roles are created at startup; reaching this means bootstrap never ran
            self.logger.error("Default role '%s' is missing; run role bootstrap", DEFAULT_ROLE_NAME)
            raise AppError(ErrorKind.INTERNAL, "DEFAULT_ROLE_MISSING", "Registration is not available")
        return role

    async def send_verification(self, user: User) -> str:
        raw = await account_tokens.issue_token(
            user, account_tokens.VERIFICATION,
            dt.timedelta(hours=self.settings.email_verification_expire_hours),
        )
        await self._notify(user, Template.VERIFICATION, token=raw, url=self._link("verify-email", raw))
        return raw

    # ---------------------------------------------------------------- register / login
    async def register(
        self,
        first_name: str,
        last_name: str,
        email: str,
        password: str,
        meta: Optional[RequestMeta] = None,
    ) -> AuthResult:
        """
        Create a local account with the default role and sign it in.

        Raises:
            AppError (CONFLICT): EMAIL_EXISTS
            AppError (INTERNAL): default role missing
        """
        email = normalize_email(email)
        if await User.filter(email=email).exists():
            raise conflict("EMAIL_EXISTS", "Email already registered")

        role = await self.default_role()
        user = await User.create(
            first_name=first_name.strip(),
            last_name=(last_name or "").strip(),
            email=email,
            password_hash=await hash_password_async(password),
            role=role,
            provider=LOCAL_PROVIDER,
        )
        self.logger.info("User registered: %s", user.email)

        await self.send_verification(user)
        pair = await self.tokens.mint(user, meta)
        return AuthResult(user=user, tokens=pair, is_new_user=True)

    async def login(self, email: str, password: str, meta: Optional[RequestMeta] = None) -> AuthResult:
        """
        Verify credentials and mint a session.

        Unknown email and wrong password share one error so the response does
        not reveal whether an account exists. A locked account is rejected
        before the password is looked at.

        Raises:
            AppError (UNAUTHORIZED): AUTH_INVALID_CREDENTIALS
            AppError (FORBIDDEN): ACCOUNT_LOCKED (with lockUntil), ACCOUNT_INACTIVE
        """
        user = await User.filter(email=normalize_email(email)).select_related("role").first()
        if user is None:
            raise unauthorized("AUTH_INVALID_CREDENTIALS", "Invalid email or password")

        if self.lockout.is_locked(user):
            raise self._locked_error(user)

        if not await verify_password_async(password, user.password_hash):
            status = await self.lockout.record_failed_attempt(user)
            if status.locked:
                self.logger.warning("Account locked after %d failed attempts: %s", status.attempts, user.email)
                await self._notify(user, Template.ACCOUNT_LOCKED, lockUntil=status.lock_until.isoformat())
                raise self._locked_error(user)
            self.logger.info("Failed login for %s (%d/%d)", user.email, status.attempts, self.lockout.max_attempts)
            raise unauthorized("AUTH_INVALID_CREDENTIALS", "Invalid email or password")

        if not user.is_active:
            raise forbidden("ACCOUNT_INACTIVE", "Account is deactivated. Please contact support.")

        await self.lockout.record_successful_login(user)
        pair = await self.tokens.mint(user, meta)
        self.logger.info("User logged in: %s", user.email)
        return AuthResult(user=user, tokens=pair)

    def _locked_error(self, user: User) -> AppError:
        return forbidden("ACCOUNT_LOCKED", self.lockout.lockout_message(user),
                         {"lockUntil": user.lock_until.isoformat()})

    async def logout(self, user: User, refresh_token: Optional[str] = None, everywhere: bool = False) -> int:
        """
        Revoke one session (the presented refresh token) or all of them.
        A refresh token that does not belong to the caller is ignored.
        """
        if everywhere:
            return await self.tokens.revoke_all_for_user(user.id, RevokeReason.LOGOUT_ALL)
        if not refresh_token:
            return 0
        try:
            await self.tokens.revoke(refresh_token, RevokeReason.LOGOUT, user_id=user.id)
        except AppError as exc:
            if exc.code != "TOKEN_NOT_FOUND":
                raise
            self.logger.debug("Logout with unknown refresh token for %s", user.email)
            return 0
        return 1

    async def refresh(self, refresh_token: str, meta: Optional[RequestMeta] = None) -> RefreshResult:
        return await self.tokens.refresh(refresh_token, meta)

    # ---------------------------------------------------------------- email verification
    async def verify_email(self, raw: str) -> User:
        """
        Raises:
            AppError (VALIDATION): INVALID_OR_EXPIRED_TOKEN
        """
        user = await account_tokens.find_by_token(account_tokens.VERIFICATION, raw)
        if user is None or not await account_tokens.consume_token(
            user, account_tokens.VERIFICATION, is_email_verified=True,
        ):
            raise validation("INVALID_OR_EXPIRED_TOKEN", "Invalid or expired verification token")
        self.logger.info("Email verified: %s", user.email)
        await self._notify(user, Template.WELCOME)
        return user

    async def resend_verification(self, email: str) -> None:
        """Unknown email is a silent no-op; an already verified one is reported."""
        user = await User.get_or_none(email=normalize_email(email))
        if user is None:
            return
        if user.is_email_verified:
            raise conflict("EMAIL_ALREADY_VERIFIED", "Email is already verified")
        await self.send_verification(user)

    # ---------------------------------------------------------------- passwords
    async def change_password(self, user: User, current_password: str, new_password: str) -> None:
        """
        Raises:
            AppError (VALIDATION): NO_PASSWORD_SET, PASSWORD_UNCHANGED
            AppError (UNAUTHORIZED): INVALID_CURRENT_PASSWORD
        """
        if not user.password_hash:
            raise validation("NO_PASSWORD_SET",
                             "This account has no password. Use password reset to set one.")
        if not await verify_password_async(current_password, user.password_hash):
            raise unauthorized("INVALID_CURRENT_PASSWORD", "Current password is incorrect")
        if current_password == new_password:
            raise validation("PASSWORD_UNCHANGED", "New password must be different from the current password")

        now = utc_now()
        password_hash = await hash_password_async(new_password)
        await User.filter(id=user.id).update(password_hash=password_hash, last_password_change=now)
        user.password_hash = password_hash
        user.last_password_change = now

        await self.tokens.revoke_all_for_user(user.id, RevokeReason.PASSWORD_CHANGED)
        self.logger.info("Password changed: %s", user.email)
        await self._notify(user, Template.PASSWORD_CHANGED)

    async def forgot_password(self, email: str) -> None:
        """Issue a reset token if the account exists; the caller always answers the same way."""
        user = await User.get_or_none(email=normalize_email(email))
        if user is None:
            self.logger.info("Password reset requested for unknown email")
            return
        if not user.is_active:
            self.logger.info("Password reset requested for inactive account: %s", user.email)
            return
        raw = await account_tokens.issue_token(
            user, account_tokens.PASSWORD_RESET,
            dt.timedelta(minutes=self.settings.password_reset_expire_minutes),
        )
        await self._notify(user, Template.PASSWORD_RESET, token=raw, url=self._link("reset-password", raw))
        self.logger.info("Password reset token issued: %s", user.email)

    async def verify_reset_token(self, raw: str) -> str:
        """Return the account email for a usable reset token."""
        user = await account_tokens.find_by_token(account_tokens.PASSWORD_RESET, raw)
        if user is None:
            raise validation("INVALID_OR_EXPIRED_TOKEN", "Invalid or expired reset token")
        return user.email

    async def reset_password(self, raw: str, new_password: str) -> User:
        """
        Consume a reset token and set a new password. Also clears any lockout,
        and lets OAuth-only accounts set their first password.

        Raises:
            AppError (VALIDATION): INVALID_OR_EXPIRED_TOKEN
        """
        user = await account_tokens.find_by_token(account_tokens.PASSWORD_RESET, raw)
        if user is None:
            raise validation("INVALID_OR_EXPIRED_TOKEN", "Invalid or expired reset token")

        consumed = await account_tokens.consume_token(
            user, account_tokens.PASSWORD_RESET,
            password_hash=await hash_password_async(new_password),
            last_password_change=utc_now(),
            login_attempts=0,
            is_locked=False,
            lock_until=None,
        )
        if not consumed:
            raise validation("INVALID_OR_EXPIRED_TOKEN", "Invalid or expired reset token")

        await self.tokens.revoke_all_for_user(user.id, RevokeReason.PASSWORD_RESET)
        self.logger.info("Password reset: %s", user.email)
        await self._notify(user, Template.PASSWORD_CHANGED)
        return user

    # ---------------------------------------------------------------- sessions
    async def list_sessions(self, user: User) -> List[Token]:
        return await self.tokens.list_active_sessions(user.id)

    async def revoke_session(self, user: User, session_id) -> Token:
        return await self.tokens.revoke_session(user.id, session_id)

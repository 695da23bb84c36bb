"""
OAuth login and account linking.

The callback either signs in the user already linked to the provider
account, links the provider to an existing user with the same email, or
creates a new (password-less, email-verified) user. The authorize request
carries a short-lived signed `state` so the callback can tell a login from a
link request made by a signed-in user.
"""
import datetime as dt
import logging
import uuid
from typing import List, Optional

import jwt

from app.config import settings as default_settings
from app.core.errors import conflict, constraint, forbidden, not_found, validation
from app.core.security import utc_now
from app.models.oauth_link import OAuthLink
from app.models.user import User
from app.services.auth_service import AuthResult, AuthService, normalize_email
from app.services.oauth_client import OAuthClient, OAuthProfile, OAuthTokens
from app.services.request_meta import RequestMeta
from app.services.token_service import TokenService

STATE_TOKEN_TYPE = "oauth_state"
STATE_TTL_MINUTES = 10


class OAuthService:
    def __init__(
        self,
        tokens: TokenService,
        auth: AuthService,
        client: OAuthClient,
        settings=None,
        logger: Optional[logging.Logger] = None,
    ):
        self.tokens = tokens
        self.auth = auth
        self.client = client
        self.settings = settings or default_settings
        self.logger = logger or logging.getLogger("uvicorn.error")

    # -------- state --------
    def create_state(self, provider: str, link_user_id: Optional[str] = None) -> str:
        now = utc_now()
        payload = {
            "type": STATE_TOKEN_TYPE,
            "provider": provider,
            "nonce": uuid.uuid4().hex,
            "iat": now,
            "exp": now + dt.timedelta(minutes=STATE_TTL_MINUTES),
        }
        if link_user_id:
            payload["link"] = str(link_user_id)
        return jwt.encode(payload, self.settings.jwt_secret, algorithm=self.settings.jwt_algorithm)

    def decode_state(self, state: Optional[str], provider: str) -> dict:
        try:
            payload = jwt.decode(state or "", self.settings.jwt_secret, algorithms=[self.settings.jwt_algorithm])
        except jwt.InvalidTokenError:
            raise validation("OAUTH_INVALID_STATE", "Invalid or expired OAuth state")
        if payload.get("type") != STATE_TOKEN_TYPE or payload.get("provider") != provider:
            raise validation("OAUTH_INVALID_STATE", "Invalid or expired OAuth state")
        return payload

    def authorization_url(self, provider: str, link_user: Optional[User] = None) -> str:
        provider = provider.lower()
        state = self.create_state(provider, str(link_user.id) if link_user else None)
        return self.client.authorization_url(provider, state)

    def available_providers(self) -> List[str]:
        return self.client.configured_providers()

    # -------- callback --------
    async def handle_callback(
        self, provider: str, code: str, state: str, meta: Optional[RequestMeta] = None,
    ) -> AuthResult:
        provider = provider.lower()
        claims = self.decode_state(state, provider)
        provider_tokens = await self.client.exchange_code(provider, code)
        profile = await self.client.fetch_profile(provider, provider_tokens)

        link_user_id = claims.get("link")
        if link_user_id:
            user = await User.filter(id=link_user_id).select_related("role").first()
            if user is None:
                raise not_found("USER_NOT_FOUND", "User not found")
            await self.link_provider(user, profile, provider_tokens)
            await self._ensure_can_sign_in(user)
            return AuthResult(user=user, tokens=await self.tokens.mint(user, meta))

        return await self.handle_oauth_login(profile, provider_tokens, meta)

    async def handle_oauth_login(
        self,
        profile: OAuthProfile,
        provider_tokens: OAuthTokens,
        meta: Optional[RequestMeta] = None,
    ) -> AuthResult:
        """
        Sign in with a provider profile, creating or linking the user by email.

        Raises:
            AppError (VALIDATION): OAUTH_EMAIL_REQUIRED
            AppError (FORBIDDEN): ACCOUNT_INACTIVE, ACCOUNT_LOCKED
        """
        is_new = False
        link = await OAuthLink.filter(
            provider=profile.provider, provider_id=profile.provider_id, is_active=True,
        ).select_related("user").first()

        if link is not None:
            user = link.user
            await self._store_link(user, profile, provider_tokens)
        else:
            if not profile.email:
                raise validation("OAUTH_EMAIL_REQUIRED", "Email not provided by OAuth provider")
            email = normalize_email(profile.email)
            user = await User.get_or_none(email=email)
            if user is None:
                user = await User.create(
                    first_name=profile.first_name or "User",
                    last_name=profile.last_name or "",
                    email=email,
                    password_hash=None,
                    avatar=profile.avatar,
                    role=await self.auth.default_role(),
                    provider=profile.provider,
                    oauth_providers=[],
                    # The provider has verified the address
                    is_email_verified=True,
                )
                is_new = True
                self.logger.info("New user created via OAuth: %s via %s", email, profile.provider)
            else:
                self.logger.info("OAuth login for existing user: %s via %s", email, profile.provider)
            await self._store_link(user, profile, provider_tokens)

        user = await User.filter(id=user.id).select_related("role").first()
        await self._ensure_can_sign_in(user)
        await User.filter(id=user.id).update(last_login=utc_now())
        pair = await self.tokens.mint(user, meta)
        return AuthResult(user=user, tokens=pair, is_new_user=is_new)

    async def _ensure_can_sign_in(self, user: User) -> None:
        if not user.is_active:
            raise forbidden("ACCOUNT_INACTIVE", "Account is deactivated. Please contact support.")
        if user.is_account_locked:
            raise forbidden("ACCOUNT_LOCKED", self.auth.lockout.lockout_message(user),
                            {"lockUntil": user.lock_until.isoformat()})

    async def _store_link(self, user: User, profile: OAuthProfile, provider_tokens: OAuthTokens) -> OAuthLink:
        """Create, refresh or reactivate the (user, provider) link."""
        expiry = None
        if provider_tokens.expires_in:
            expiry = utc_now() + dt.timedelta(seconds=int(provider_tokens.expires_in))
        values = dict(
            provider_id=profile.provider_id,
            access_token=provider_tokens.access_token,
            refresh_token=provider_tokens.refresh_token,
            token_expiry=expiry,
            profile=profile.snapshot(),
            scope=provider_tokens.scope,
            is_active=True,
            last_sync=utc_now(),
        )
        link = await OAuthLink.get_or_none(user_id=user.id, provider=profile.provider)
        if link is None:
            link = await OAuthLink.create(user_id=user.id, provider=profile.provider, **values)
        else:
            await OAuthLink.filter(id=link.id).update(**values)

        if profile.provider not in (user.oauth_providers or []):
            user.oauth_providers = [*(user.oauth_providers or []), profile.provider]
            await User.filter(id=user.id).update(oauth_providers=user.oauth_providers)
        return link

    # -------- link management --------
    async def link_provider(self, user: User, profile: OAuthProfile, provider_tokens: OAuthTokens) -> OAuthLink:
        """
        Raises:
            AppError (CONFLICT): OAUTH_ALREADY_LINKED
        """
        taken = await OAuthLink.filter(
            provider=profile.provider, provider_id=profile.provider_id, is_active=True,
        ).exclude(user_id=user.id).exists()
        if taken:
            raise conflict("OAUTH_ALREADY_LINKED", "This provider account is linked to another user")
        if await OAuthLink.filter(user_id=user.id, provider=profile.provider, is_active=True).exists():
            raise conflict("OAUTH_ALREADY_LINKED", f"{profile.provider} is already linked")
        link = await self._store_link(user, profile, provider_tokens)
        self.logger.info("OAuth provider linked: %s for %s", profile.provider, user.email)
        return link

    async def unlink_provider(self, user: User, provider: str) -> None:
        """
        Raises:
            AppError (NOT_FOUND): OAUTH_NOT_LINKED
            AppError (CONSTRAINT): OAUTH_LAST_METHOD
        """
        provider = provider.lower()
        link = await OAuthLink.get_or_none(user_id=user.id, provider=provider, is_active=True)
        if link is None:
            raise not_found("OAUTH_NOT_LINKED", f"{provider} is not linked")

        others = await OAuthLink.filter(user_id=user.id, is_active=True).exclude(id=link.id).count()
        if not user.password_hash and others == 0:
            raise constraint("OAUTH_LAST_METHOD",
                             "Cannot unlink the only sign-in method without setting a password first")

        await OAuthLink.filter(id=link.id).update(is_active=False, access_token=None, refresh_token=None)
        user.oauth_providers = [p for p in (user.oauth_providers or []) if p != provider]
        await User.filter(id=user.id).update(oauth_providers=user.oauth_providers)
        self.logger.info("OAuth provider unlinked: %s for %s", provider, user.email)

    async def list_links(self, user: User) -> List[OAuthLink]:
        return await OAuthLink.filter(user_id=user.id, is_active=True).order_by("created_at")

"""
OAuth 2.0 authorization-code client for Google, GitHub and Facebook.

Builds authorize URLs, exchanges codes for provider tokens and fetches a
normalized profile. All HTTP goes through httpx; a custom transport can be
injected (tests use httpx.MockTransport).
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx

from app.core.errors import AppError, ErrorKind, unauthorized, validation


@dataclass(frozen=True)
class ProviderConfig:
    name: str
    authorize_url: str
    token_url: str
    profile_url: str
    scope: str
    client_id: Optional[str] = None
    client_secret: Optional[str] = None

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)


@dataclass
class OAuthTokens:
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    scope: List[str] = field(default_factory=list)


@dataclass
class OAuthProfile:
    provider: str
    provider_id: str
    email: Optional[str]
    first_name: str = ""
    last_name: str = ""
    display_name: str = ""
    avatar: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    def snapshot(self) -> dict:
        return {
            "email": self.email,
            "display_name": self.display_name,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "avatar": self.avatar,
        }


def _split_name(full: Optional[str]) -> tuple:
    parts = (full or "").strip().split(" ", 1)
    return parts[0], parts[1] if len(parts) > 1 else ""


def build_provider_configs(settings) -> Dict[str, ProviderConfig]:
    return {
        "google": ProviderConfig(
            name="google",
            authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
            token_url="https://oauth2.googleapis.com/token",
            profile_url="https://www.googleapis.com/oauth2/v3/userinfo",
            scope="openid email profile",
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
        ),
        "github": ProviderConfig(
            name="github",
            authorize_url="https://github.com/login/oauth/authorize",
            token_url="https://github.com/login/oauth/access_token",
            profile_url="https://api.github.com/user",
            scope="read:user user:email",
            client_id=settings.github_client_id,
            client_secret=settings.github_client_secret,
        ),
        "facebook": ProviderConfig(
            name="facebook",
            authorize_url="https://www.facebook.com/v18.0/dialog/oauth",
            token_url="https://graph.facebook.com/v18.0/oauth/access_token",
            profile_url="https://graph.facebook.com/me?fields=id,email,first_name,last_name,name,picture",
            scope="email,public_profile",
            client_id=settings.facebook_client_id,
            client_secret=settings.facebook_client_secret,
        ),
    }


class OAuthClient:
    def __init__(
        self,
        settings,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.settings = settings
        self.timeout = timeout
        self.transport = transport
        self.providers = build_provider_configs(settings)
        self.logger = logger or logging.getLogger("uvicorn.error")

    def configured_providers(self) -> List[str]:
        return [name for name, cfg in self.providers.items() if cfg.configured]

    def provider(self, name: str) -> ProviderConfig:
        cfg = self.providers.get((name or "").lower())
        if cfg is None or not cfg.configured:
            raise validation("OAUTH_PROVIDER_UNAVAILABLE", f"OAuth provider '{name}' is not available")
        return cfg

    def redirect_uri(self, name: str) -> str:
        return f"{self.settings.oauth_redirect_base.rstrip('/')}/{name}/callback"

    def authorization_url(self, name: str, state: str) -> str:
        cfg = self.provider(name)
        query = {
            "client_id": cfg.client_id,
            "redirect_uri": self.redirect_uri(name),
            "response_type": "code",
            "scope": cfg.scope,
            "state": state,
        }
        return f"{cfg.authorize_url}?{urlencode(query)}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def exchange_code(self, name: str, code: str) -> OAuthTokens:
        """
        Raises:
            AppError (UNAUTHORIZED): provider rejected the code
            AppError (UNAVAILABLE): provider unreachable
        """
        cfg = self.provider(name)
        data = {
            "client_id": cfg.client_id,
            "client_secret": cfg.client_secret,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": self.redirect_uri(name),
        }
        try:
            async with self._client() as client:
                resp = await client.post(cfg.token_url, data=data, headers={"Accept": "application/json"})
        except httpx.HTTPError as exc:
            self.logger.error("OAuth token exchange with %s failed: %s", name, exc)
            raise AppError(ErrorKind.UNAVAILABLE, "OAUTH_PROVIDER_ERROR", "OAuth provider unavailable")

        try:
            payload = resp.json() if resp.content else {}
        except ValueError:
            payload = None
        if not isinstance(payload, dict):
            self.logger.warning("OAuth token response from %s is not a JSON object (%s)", name, resp.status_code)
            raise unauthorized("OAUTH_EXCHANGE_FAILED", "OAuth authorization failed")
        if not resp.is_success or not payload.get("access_token"):
            self.logger.warning("OAuth code rejected by %s: %s", name, payload.get("error", resp.status_code))
            raise unauthorized("OAUTH_EXCHANGE_FAILED", "OAuth authorization failed")

        scope = payload.get("scope") or ""
        return OAuthTokens(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            expires_in=payload.get("expires_in"),
            scope=[s for s in scope.replace(",", " ").split() if s],
        )

    async def fetch_profile(self, name: str, tokens: OAuthTokens) -> OAuthProfile:
        cfg = self.provider(name)
        headers = {"Authorization": f"Bearer {tokens.access_token}", "Accept": "application/json"}
        try:
            async with self._client() as client:
                resp = await client.get(cfg.profile_url, headers=headers)
                if not resp.is_success:
                    raise unauthorized("OAUTH_PROFILE_FAILED", "Could not load OAuth profile")
                data = resp.json()
                if name == "github" and not data.get("email"):
                    data["email"] = await self._github_primary_email(client, headers)
        except httpx.HTTPError as exc:
            self.logger.error("OAuth profile fetch from %s failed: %s", name, exc)
            raise AppError(ErrorKind.UNAVAILABLE, "OAUTH_PROVIDER_ERROR", "OAuth provider unavailable")
        except ValueError:
            self.logger.warning("OAuth profile from %s is not valid JSON", name)
            raise unauthorized("OAUTH_PROFILE_FAILED", "Could not load OAuth profile")
        return self.normalize_profile(name, data)

    @staticmethod
    async def _github_primary_email(client: httpx.AsyncClient, headers: dict) -> Optional[str]:
        resp = await client.get("https://api.github.com/user/emails", headers=headers)
        if not resp.is_success:
            return None
        emails = resp.json()
        for item in emails:
            if item.get("primary") and item.get("verified"):
                return item.get("email")
        return None

    @staticmethod
    def normalize_profile(name: str, data: Dict[str, Any]) -> OAuthProfile:
        if name == "google":
            return OAuthProfile(
                provider=name,
                provider_id=str(data["sub"]),
                email=data.get("email"),
                first_name=data.get("given_name") or "",
                last_name=data.get("family_name") or "",
                display_name=data.get("name") or "",
                avatar=data.get("picture"),
                raw=data,
            )
        if name == "github":
            first, last = _split_name(data.get("name") or data.get("login"))
            return OAuthProfile(
                provider=name,
                provider_id=str(data["id"]),
                email=data.get("email"),
                first_name=first,
                last_name=last,
                display_name=data.get("name") or data.get("login") or "",
                avatar=data.get("avatar_url"),
                raw=data,
            )
        picture = (data.get("picture") or {}).get("data") or {}
        return OAuthProfile(
            provider=name,
            provider_id=str(data["id"]),
            email=data.get("email"),
            first_name=data.get("first_name") or "",
            last_name=data.get("last_name") or "",
            display_name=data.get("name") or "",
            avatar=picture.get("url"),
            raw=data,
        )

"""
Fake OAuth providers (google and github) served through an httpx MockTransport.
"""
import json
from urllib.parse import parse_qs

import httpx
import pytest

from app.config import settings
from app.services.oauth_client import OAuthClient

GOOGLE_PROFILE = {
    "sub": "g-123",
    "email": "Olive@Example.com",
    "given_name": "Olive",
    "family_name": "Auth",
    "name": "Olive Auth",
    "picture": "https://images.example.com/olive.png",
}


def provider_handler(request: httpx.Request) -> httpx.Response:
    url = str(request.url)
    if url.startswith("https://oauth2.googleapis.com/token"):
        form = parse_qs(request.content.decode())
        if form.get("code") != ["good-code"]:
            return httpx.Response(400, json={"error": "invalid_grant"})
        return httpx.Response(200, json={
            "access_token": "g-access", "refresh_token": "g-refresh",
            "expires_in": 3600, "scope": "openid email profile",
        })
    if url.startswith("https://www.googleapis.com/oauth2/v3/userinfo"):
        return httpx.Response(200, json=GOOGLE_PROFILE)
    if url.startswith("https://github.com/login/oauth/access_token"):
        return httpx.Response(200, json={"access_token": "gh-access", "scope": "read:user,user:email"})
    if url == "https://api.github.com/user":
        return httpx.Response(200, json={"id": 42, "login": "octo", "name": "Octo Cat", "email": None})
    if url == "https://api.github.com/user/emails":
        return httpx.Response(200, content=json.dumps([
            {"email": "other@example.com", "primary": False, "verified": True},
            {"email": "octo@example.com", "primary": True, "verified": True},
        ]))
    return httpx.Response(404)


@pytest.fixture
def oauth_settings():
    return settings.model_copy(update={
        "google_client_id": "google-id",
        "google_client_secret": "google-secret",
        "github_client_id": "github-id",
        "github_client_secret": "github-secret",
    })


@pytest.fixture
def oauth_client(oauth_settings):
    return OAuthClient(oauth_settings, transport=httpx.MockTransport(provider_handler))

# app/schemas/oauth.py
"""
Serializer for linked OAuth provider accounts.
Provider-issued tokens are never part of the output.
"""
from app.models.oauth_link import OAuthLink


def link_to_dict(link: OAuthLink) -> dict:
    profile = link.profile or {}
    return {
        "provider": link.provider,
        "linkedAt": link.created_at.isoformat() if link.created_at else None,
        "lastSync": link.last_sync.isoformat() if link.last_sync else None,
        "profile": {
            "displayName": profile.get("display_name"),
            "email": profile.get("email"),
            "avatar": profile.get("avatar"),
        },
    }

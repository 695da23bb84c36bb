# app/schemas/user.py
"""
Pydantic schemas for profile and user management endpoints, and the
serializers for users and their sessions.
"""
import uuid
from typing import Optional

from pydantic import BaseModel, Field

from app.models.role import Role
from app.models.token import Token
from app.models.user import User
from app.schemas.auth import NAME_PATTERN
from app.schemas.role import role_summary


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


class ProfileUpdateIn(BaseModel):
    """All fields optional; only provided fields are updated."""
    firstName: Optional[str] = Field(default=None, min_length=1, max_length=50, pattern=NAME_PATTERN)
    lastName: Optional[str] = Field(default=None, max_length=50)
    phoneNumber: Optional[str] = Field(default=None, max_length=20, pattern=r"^\+?[\d\s()-]{6,20}$")
    bio: Optional[str] = Field(default=None, max_length=500)
    avatar: Optional[str] = Field(default=None, max_length=1024, pattern=r"^https?://")

    def to_changes(self) -> dict:
        return {
            "first_name": self.firstName,
            "last_name": self.lastName,
            "phone_number": self.phoneNumber,
            "bio": self.bio,
            "avatar": self.avatar,
        }


class NotificationPrefsIn(BaseModel):
    email: Optional[bool] = None
    push: Optional[bool] = None


class PreferencesIn(BaseModel):
    language: Optional[str] = Field(default=None, min_length=2, max_length=5)
    timezone: Optional[str] = Field(default=None, max_length=64)
    notifications: Optional[NotificationPrefsIn] = None

    def to_changes(self) -> dict:
        return {
            "language": self.language,
            "timezone": self.timezone,
            "notifications": self.notifications.model_dump() if self.notifications else None,
        }


class DeleteAccountIn(BaseModel):
    password: Optional[str] = None  # Required for accounts that have a password


class RoleAssignIn(BaseModel):
    roleId: uuid.UUID


def user_to_dict(u: User) -> dict:
    """
    Convert a User model instance to the API representation.
    Never includes the password hash or any stored token hash.
    """
    role = u.role if isinstance(u.role, Role) else None
    return {
        "id": str(u.id),
        "firstName": u.first_name,
        "lastName": u.last_name,
        "fullName": u.full_name,
        "email": u.email,
        "role": role_summary(role) if role else None,
        "avatar": u.avatar,
        "phoneNumber": u.phone_number,
        "bio": u.bio,
        "provider": u.provider,
        "oauthProviders": u.oauth_providers or [],
        "hasPassword": bool(u.password_hash),
        "isEmailVerified": u.is_email_verified,
        "isActive": u.is_active,
        "isLocked": u.is_account_locked,
        "lockUntil": _iso(u.lock_until) if u.is_account_locked else None,
        "lastLogin": _iso(u.last_login),
        "preferences": u.preferences or {},
        "createdAt": _iso(u.created_at),
    }


def session_to_dict(t: Token, current_token_id: Optional[str] = None) -> dict:
    return {
        "id": str(t.id),
        "ipAddress": t.ip_address,
        "userAgent": t.user_agent,
        "deviceInfo": t.device_info or {},
        "createdAt": _iso(t.created_at),
        "lastUsedAt": _iso(t.last_used_at),
        "expiresAt": _iso(t.expires_at),
        "current": current_token_id is not None and str(t.id) == current_token_id,
    }

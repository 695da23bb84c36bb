# app/models/user.py
"""
Database model for users.
Represents an account: identity, hashed credential, role reference,
lockout state, email verification and password reset state.
"""
import uuid
from tortoise import fields, models

from app.core.security import utc_now

LOCAL_PROVIDER = "local"


def default_preferences() -> dict:
    return {
        "language": "en",
        "timezone": "UTC",
        "notifications": {"email": True, "push": True},
    }


class User(models.Model):
    """
    User database model.

    Relationships:
    - Belongs to one Role (many-to-one, role is required)
    - Has many Tokens (refresh-token sessions, via related_name="tokens")
    - Has many OAuthLinks (via related_name="oauth_links")

    Security:
    - Password is stored as an Argon2 hash; it may be null only for accounts
      whose provider is not "local"
    - Verification and reset tokens are stored as SHA-256 hashes
    - Email is stored lowercase and is unique
    """
    id = fields.UUIDField(pk=True, default=uuid.uuid4)
    first_name = fields.CharField(max_length=50)
    last_name = fields.CharField(max_length=50, default="")
    email = fields.CharField(max_length=256, unique=True, index=True)
    password_hash = fields.CharField(max_length=255, null=True)

    # Optional profile fields
    avatar = fields.CharField(max_length=1024, null=True)
    phone_number = fields.CharField(max_length=20, null=True)
    bio = fields.CharField(max_length=500, default="")

    role = fields.ForeignKeyField("models.Role", related_name="users", on_delete=fields.RESTRICT)

    provider = fields.CharField(max_length=16, default=LOCAL_PROVIDER)  # local / google / facebook / github
    oauth_providers = fields.JSONField(default=list)  # Linked provider names

    # Email verification (single-use, hashed)
    is_email_verified = fields.BooleanField(default=False)
    email_verification_token = fields.CharField(max_length=64, null=True, index=True)
    email_verification_expires = fields.DatetimeField(null=True)

    # Password reset (single-use, hashed)
    password_reset_token = fields.CharField(max_length=64, null=True, index=True)
    password_reset_expires = fields.DatetimeField(null=True)

    # Account status and lockout
    is_active = fields.BooleanField(default=True)
    is_locked = fields.BooleanField(default=False)
    lock_until = fields.DatetimeField(null=True)
    login_attempts = fields.IntField(default=0)

    last_login = fields.DatetimeField(null=True)
    last_password_change = fields.DatetimeField(null=True)

    preferences = fields.JSONField(default=default_preferences)

    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "users"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_account_locked(self) -> bool:
        """A lock only counts while lock_until is in the future; a past lock is stale."""
        return bool(self.is_locked and self.lock_until and self.lock_until > utc_now())

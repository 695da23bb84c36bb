import uuid
from tortoise import fields, models

from app.core.security import sha256_hex, utc_now


class Token(models.Model):
    """
    Refresh-token session record.
    - token_hash: sha256(refresh JWT) 64-character hex string, unique (the bearer value is not stored)
    - token_type: "refresh" (access tokens are stateless and never persisted)
    - expires_at: same expiry as the JWT
    - is_revoked / revoked_at / revoked_reason: revocation state ("logout", "password_changed", "rotated", ...)
    - ip_address / user_agent / device_info: request metadata captured at login
    - last_used_at: last successful refresh
    """
    id = fields.UUIDField(pk=True, default=uuid.uuid4)
    user = fields.ForeignKeyField("models.User", related_name="tokens", on_delete=fields.CASCADE)
    token_hash = fields.CharField(max_length=64, unique=True, index=True)
    token_type = fields.CharField(max_length=16, default="refresh")

    expires_at = fields.DatetimeField(index=True)

    is_revoked = fields.BooleanField(default=False, index=True)
    revoked_at = fields.DatetimeField(null=True)
    revoked_reason = fields.CharField(max_length=64, null=True)

    ip_address = fields.CharField(max_length=64, null=True)
    user_agent = fields.CharField(max_length=512, null=True)
    device_info = fields.JSONField(null=True)  # {"browser": ..., "os": ..., "device": ...}

    last_used_at = fields.DatetimeField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "tokens"
        indexes = (("user_id", "is_revoked", "expires_at"),)

    @staticmethod
    def hash_token(raw: str) -> str:
        return sha256_hex(raw)

    @property
    def is_expired(self) -> bool:
        return self.expires_at <= utc_now()

    @property
    def is_valid(self) -> bool:
        return not self.is_revoked and not self.is_expired

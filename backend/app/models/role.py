# app/models/role.py
"""
Database model for roles.
A role carries a list of resource/action permission entries and a numeric
level (1-10, higher is more privileged). System roles are the canonical
bootstrap set and cannot be renamed or deleted.
"""
import uuid
from tortoise import fields, models


class Role(models.Model):
    """
    Role database model.

    Relationships:
    - Has many Users (one-to-many, via related_name="users" on User.role)

    Permissions are stored as plain JSON:
        [{"resource": "posts", "actions": ["create", "read"]}, ...]
    and evaluated with app.core.permissions.has_permission.
    """
    id = fields.UUIDField(pk=True, default=uuid.uuid4)
    name = fields.CharField(max_length=32, unique=True, index=True)  # Lowercase letters only
    display_name = fields.CharField(max_length=64)
    description = fields.CharField(max_length=200, default="")
    permissions = fields.JSONField(default=list)
    level = fields.IntField(default=1, index=True)
    is_active = fields.BooleanField(default=True, index=True)
    is_system = fields.BooleanField(default=False)
    # Denormalized; refreshed by role statistics, not by every assignment path
    user_count = fields.IntField(default=0)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "roles"
        ordering = ["-level"]

    def __str__(self) -> str:
        return self.name

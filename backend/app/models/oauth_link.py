import uuid
from tortoise import fields, models

OAUTH_PROVIDERS = ("google", "facebook", "github", "linkedin", "twitter")


class OAuthLink(models.Model):
    """
    Link between a user and an external OAuth provider account.
    - (user, provider) is unique; (provider, provider_id) is indexed for reverse lookup
    - access_token / refresh_token: provider-issued tokens, never included in API output
    - profile: snapshot of the provider profile (email, display_name, first_name, last_name, avatar)
    - is_active: False once unlinked (soft removal)
    """
    id = fields.UUIDField(pk=True, default=uuid.uuid4)
    user = fields.ForeignKeyField("models.User", related_name="oauth_links", on_delete=fields.CASCADE)
    provider = fields.CharField(max_length=16)
    provider_id = fields.CharField(max_length=255)

    access_token = fields.TextField(null=True)
    refresh_token = fields.TextField(null=True)
    token_expiry = fields.DatetimeField(null=True)

    profile = fields.JSONField(default=dict)
    scope = fields.JSONField(default=list)

    is_active = fields.BooleanField(default=True)
    last_sync = fields.DatetimeField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "oauth_links"
        unique_together = (("user", "provider"),)
        indexes = (("provider", "provider_id"),)

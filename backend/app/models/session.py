"""
Database model for login sessions.
A session is created on every successful anonymous authentication.
"""
import uuid
from tortoise import fields, models

from .identity import IP_ADDRESS_MAX_LENGTH

USER_AGENT_MAX_LENGTH = 512
APP_VERSION_MAX_LENGTH = 64


class Session(models.Model):
    """
    Session database model.

    Sessions are only ever appended. The API shows the most recent few per
    identity; older rows stay for audit until the retention sweep removes
    sessions past the retention window.
    """
    id = fields.IntField(pk=True)
    session_id = fields.UUIDField(unique=True, default=uuid.uuid4)
    user = fields.ForeignKeyField(
        "models.Identity",
        related_name="sessions",
        on_delete=fields.CASCADE,
    )
    created_at = fields.DatetimeField(index=True)  # Indexed for the retention sweep
    ip_address = fields.CharField(max_length=IP_ADDRESS_MAX_LENGTH)
    user_agent = fields.CharField(max_length=USER_AGENT_MAX_LENGTH, default="unknown")
    app_version = fields.CharField(max_length=APP_VERSION_MAX_LENGTH, default="unknown")

    class Meta:
        table = "sessions"
        indexes = (("user_id", "created_at"),)

"""
Database model for the append-only usage log.
One row per processing attempt, successful or not. Feeds analytics.
"""
from tortoise import fields, models

from .identity import IP_ADDRESS_MAX_LENGTH

EVENT_COLORISE = "colorise"


class UsageEvent(models.Model):
    id = fields.IntField(pk=True)
    user = fields.ForeignKeyField(
        "models.Identity",
        related_name="usage_events",
        on_delete=fields.CASCADE,
    )
    event_type = fields.CharField(max_length=32, default=EVENT_COLORISE, index=True)
    created_at = fields.DatetimeField(index=True)  # Range scans for analytics and retention
    processing_time_ms = fields.IntField(null=True)
    model_used = fields.CharField(max_length=128, null=True)
    ip_address = fields.CharField(max_length=IP_ADDRESS_MAX_LENGTH, null=True)
    success = fields.BooleanField(default=True)

    class Meta:
        table = "usage_events"
        indexes = (("user_id", "created_at"),)

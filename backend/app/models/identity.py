"""
Database models for pseudonymous identities.
An identity is keyed by the device fingerprint the client sends at login;
there is no username, password or e-mail.
"""
from tortoise import fields, models

IP_ADDRESS_MAX_LENGTH = 64


class Identity(models.Model):
    """
    Identity database model.

    One row per device fingerprint. Re-authenticating with the same
    fingerprint reuses the row, so `created_at` and the lifetime counters
    survive across logins.

    Relationships:
    - Has many Sessions (related_name="sessions")
    - Has many IdentityIps (related_name="ip_addresses")
    - Has one QuotaState (related_name="quota")
    - Has many UsageEvents (related_name="usage_events")
    """
    user_id = fields.CharField(max_length=255, pk=True)  # Equal to the fingerprint at creation time
    device_fingerprint = fields.CharField(max_length=255)  # Re-checked on each login, mismatches only logged
    created_at = fields.DatetimeField(index=True)
    last_seen = fields.DatetimeField(index=True)
    request_count = fields.IntField(default=0)  # Successful processing requests, lifetime
    total_processing_time = fields.BigIntField(default=0)  # Milliseconds, lifetime
    average_processing_time = fields.FloatField(default=0.0)  # total_processing_time / request_count

    class Meta:
        table = "identities"

    def short_id(self) -> str:
        return self.user_id[:8] + "..."


class IdentityIp(models.Model):
    """
    An IP address an identity has authenticated from.
    Append-only: rows are never removed, so the set of known IPs only grows.
    """
    id = fields.IntField(pk=True)
    user = fields.ForeignKeyField(
        "models.Identity",
        related_name="ip_addresses",
        on_delete=fields.CASCADE,
    )
    ip_address = fields.CharField(max_length=IP_ADDRESS_MAX_LENGTH)
    first_seen = fields.DatetimeField()

    class Meta:
        table = "identity_ips"
        unique_together = (("user", "ip_address"),)

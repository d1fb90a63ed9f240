"""
Database model for per-identity quota windows.
"""
from tortoise import fields, models


class QuotaState(models.Model):
    """
    Usage counters for the current day and hour of one identity.

    Counters are reset lazily: QuotaTracker compares the stored markers with
    the current UTC date/hour whenever it reads the row. There is no scheduler.
    """
    id = fields.IntField(pk=True)
    user = fields.OneToOneField(
        "models.Identity",
        related_name="quota",
        on_delete=fields.CASCADE,
    )
    daily_requests = fields.IntField(default=0)
    last_reset_date = fields.DateField()  # UTC calendar date of the current daily window
    hourly_requests = fields.IntField(default=0)
    last_reset_hour = fields.SmallIntField()  # UTC hour (0-23) of the current hourly window

    class Meta:
        table = "quota_states"

"""
Usage Recorder

Append-only log of processing attempts plus the read-only aggregates built
on top of it (period totals, daily histogram, processing time, new vs.
returning identities). Aggregates only count successful colorise events.
"""
import datetime as dt
import logging
from dataclasses import asdict, dataclass
from typing import Optional

from app.core.timeutil import Clock, utc_now
from app.models.identity import IP_ADDRESS_MAX_LENGTH, Identity
from app.models.usage_event import EVENT_COLORISE, UsageEvent

logger = logging.getLogger("uvicorn.error")


@dataclass
class PeriodStats:
    total_requests: int
    unique_users: int
    average_requests_per_user: float

    def to_dict(self) -> dict:
        return {
            "totalRequests": self.total_requests,
            "uniqueUsers": self.unique_users,
            "averageRequestsPerUser": self.average_requests_per_user,
        }


@dataclass
class HistogramEntry:
    date: str  # YYYY-MM-DD, UTC
    requests: int
    users: int


@dataclass
class UserActivity:
    new_users: int
    returning_users: int

    def to_dict(self) -> dict:
        return {"newUsers": self.new_users, "returningUsers": self.returning_users}


class UsageRecorder:

    def __init__(self, clock: Clock = utc_now):
        self.clock = clock

    # -------- writes --------
    async def record(
        self,
        user_id: str,
        success: bool,
        processing_time_ms: Optional[int] = None,
        model_used: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> UsageEvent:
        return await UsageEvent.create(
            user_id=user_id,
            event_type=EVENT_COLORISE,
            created_at=self.clock(),
            processing_time_ms=processing_time_ms,
            model_used=model_used,
            ip_address=ip_address[:IP_ADDRESS_MAX_LENGTH] if ip_address else ip_address,
            success=success,
        )

    async def purge_older_than(self, cutoff: dt.datetime) -> int:
        deleted = await UsageEvent.filter(created_at__lt=cutoff).delete()
        if deleted:
            logger.info("[usage] purged %d events older than %s", deleted, cutoff.isoformat())
        return deleted

    # -------- analytics (read-only) --------
    def _successful(self):
        return UsageEvent.filter(event_type=EVENT_COLORISE, success=True)

    async def stats_for_period(self, start: dt.datetime, end: dt.datetime) -> PeriodStats:
        """Totals for successful events with start <= created_at <= end."""
        qs = self._successful().filter(created_at__gte=start, created_at__lte=end)
        total = await qs.count()
        unique_users = len(await qs.distinct().values_list("user_id", flat=True))
        average = round(total / unique_users, 2) if unique_users else 0
        return PeriodStats(
            total_requests=total,
            unique_users=unique_users,
            average_requests_per_user=average,
        )

    async def daily_histogram(self, days: int) -> list[HistogramEntry]:
        """One bucket per UTC day for the last `days` days, oldest first, today included."""
        today = self.clock().astimezone(dt.timezone.utc).date()
        histogram = []
        for offset in range(days - 1, -1, -1):
            day = today - dt.timedelta(days=offset)
            day_start = dt.datetime.combine(day, dt.time.min, tzinfo=dt.timezone.utc)
            day_end = day_start + dt.timedelta(days=1)
            qs = self._successful().filter(created_at__gte=day_start, created_at__lt=day_end)
            histogram.append(HistogramEntry(
                date=day.isoformat(),
                requests=await qs.count(),
                users=len(await qs.distinct().values_list("user_id", flat=True)),
            ))
        return histogram

    async def average_processing_time(self, days: int) -> int:
        """Mean processing time in ms over the trailing window, rounded."""
        since = self.clock() - dt.timedelta(days=days)
        times = await self._successful().filter(
            created_at__gte=since,
            processing_time_ms__isnull=False,
        ).values_list("processing_time_ms", flat=True)
        if not times:
            return 0
        return round(sum(times) / len(times))

    async def total_users(self) -> int:
        return await Identity.all().count()

    async def new_vs_returning(self, hours: int = 24) -> UserActivity:
        """
        Split of identities active in the trailing window: created inside it
        (new) vs. created earlier and seen inside it (returning).
        """
        since = self.clock() - dt.timedelta(hours=hours)
        new_users = await Identity.filter(created_at__gte=since).count()
        returning = await Identity.filter(created_at__lt=since, last_seen__gte=since).count()
        return UserActivity(new_users=new_users, returning_users=returning)

    async def summary(self, histogram_days: int = 7) -> dict:
        """Dashboard payload: aggregate figures only, no per-identity detail."""
        now = self.clock()
        day_start = dt.datetime.combine(
            now.astimezone(dt.timezone.utc).date(), dt.time.min, tzinfo=dt.timezone.utc
        )
        today = await self.stats_for_period(day_start, now)
        week = await self.stats_for_period(now - dt.timedelta(days=7), now)
        month = await self.stats_for_period(now - dt.timedelta(days=30), now)
        return {
            "totalUsers": await self.total_users(),
            "today": today.to_dict(),
            "last7Days": week.to_dict(),
            "last30Days": month.to_dict(),
            "averageProcessingTimeMs": await self.average_processing_time(7),
            "activity24h": (await self.new_vs_returning(24)).to_dict(),
            "dailyHistogram": [asdict(e) for e in await self.daily_histogram(histogram_days)],
        }

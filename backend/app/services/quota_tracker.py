"""
Quota Tracker

Dual-window (daily + hourly) request counters per identity.

Windows are reset lazily: every read compares the stored window markers with
the current UTC date and hour and zeroes the counters that belong to an
elapsed window. A day rollover resets both counters; an hour rollover within
the same day resets only the hourly counter.

Limits:
- daily:  `daily_limit_for(user_id)` (20 by default)
- hourly: max(daily // 4, 3)

Checking and consuming quota are available separately (`check`, `consume`),
but protected calls use `reserve`/`release`: the check and the increment
happen as one step under a per-identity lock, before the slow external call,
and the reservation is refunded if that call fails. The lock is never held
while the external call runs.
"""
import datetime as dt
import logging
from dataclasses import dataclass
from typing import Any, Optional

from app.core.errors import DailyLimitExceeded, HourlyLimitExceeded
from app.core.locks import KeyedLock
from app.core.timeutil import Clock, isoformat_z, next_utc_midnight, utc_now
from app.models.quota import QuotaState

logger = logging.getLogger("uvicorn.error")

MIN_HOURLY_LIMIT = 3


def hourly_limit_from_daily(daily_limit: int) -> int:
    """A quarter of the daily budget per hour, never less than 3."""
    return max(daily_limit // 4, MIN_HOURLY_LIMIT)


@dataclass
class QuotaSnapshot:
    """Point-in-time view of one identity's quota."""
    daily_limit: int
    hourly_limit: int
    daily_used: int
    hourly_used: int
    reset_at: dt.datetime  # Next UTC midnight

    @property
    def remaining(self) -> int:
        return max(self.daily_limit - self.daily_used, 0)

    @property
    def hourly_remaining(self) -> int:
        return max(self.hourly_limit - self.hourly_used, 0)

    def to_limits(self) -> dict[str, Any]:
        """The `limits` object returned by auth and processing responses."""
        return {
            "daily": self.daily_limit,
            "remaining": self.remaining,
            "resetAt": isoformat_z(self.reset_at),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.to_limits(),
            "used": self.daily_used,
            "hourly": self.hourly_limit,
            "hourlyUsed": self.hourly_used,
            "hourlyRemaining": self.hourly_remaining,
        }


@dataclass(frozen=True)
class Reservation:
    """One unit of quota taken by `reserve`, tagged with the windows it was taken in."""
    user_id: str
    window_date: dt.date
    window_hour: int


class QuotaTracker:

    def __init__(self, daily_limit: int = 20, clock: Clock = utc_now, locks: Optional[KeyedLock] = None):
        self.daily_limit = daily_limit
        self.clock = clock
        self.locks = locks if locks is not None else KeyedLock()

    # -------- limits --------
    def daily_limit_for(self, user_id: str) -> int:
        # Same budget for everyone for now; the per-identity signature leaves room for tiers
        return self.daily_limit

    def hourly_limit_for(self, user_id: str) -> int:
        return hourly_limit_from_daily(self.daily_limit_for(user_id))

    # -------- public operations --------
    async def ensure(self, user_id: str) -> QuotaState:
        """Create the quota row with zero counters if it does not exist yet."""
        async with self.locks.hold(user_id):
            return await self._load(user_id, self._now())

    async def check(self, user_id: str) -> QuotaSnapshot:
        """
        Apply lazy resets, then verify the identity is under both limits.

        Raises:
            DailyLimitExceeded: daily counter reached the daily limit
            HourlyLimitExceeded: hourly counter reached the hourly limit
        """
        async with self.locks.hold(user_id):
            now = self._now()
            state = await self._load_current(user_id, now)
            self._enforce(state, user_id, now)
            return self._snapshot(state, user_id, now)

    async def consume(self, user_id: str) -> QuotaSnapshot:
        """Count one request against both windows."""
        async with self.locks.hold(user_id):
            now = self._now()
            state = await self._load_current(user_id, now)
            await self._increment(state)
            return self._snapshot(state, user_id, now)

    async def reserve(self, user_id: str) -> Reservation:
        """
        Atomically check both limits and consume one request.

        Concurrent reservations for the same identity are serialised, so the
        number of granted reservations in a window never exceeds its limit.
        """
        async with self.locks.hold(user_id):
            now = self._now()
            state = await self._load_current(user_id, now)
            self._enforce(state, user_id, now)
            await self._increment(state)
            return Reservation(
                user_id=user_id,
                window_date=state.last_reset_date,
                window_hour=state.last_reset_hour,
            )

    async def release(self, reservation: Reservation) -> None:
        """
        Give back a reservation whose protected call did not succeed.

        Only counters of the windows the reservation was taken in are
        decremented; if a window has been reset since, there is nothing to refund.
        """
        user_id = reservation.user_id
        async with self.locks.hold(user_id):
            state = await QuotaState.get_or_none(user_id=user_id)
            if state is None or state.last_reset_date != reservation.window_date:
                return
            state.daily_requests = max(state.daily_requests - 1, 0)
            if state.last_reset_hour == reservation.window_hour:
                state.hourly_requests = max(state.hourly_requests - 1, 0)
            await state.save(update_fields=["daily_requests", "hourly_requests"])

    async def snapshot(self, user_id: str) -> QuotaSnapshot:
        """Current usage after lazy resets, without enforcing limits."""
        async with self.locks.hold(user_id):
            now = self._now()
            state = await self._load_current(user_id, now)
            return self._snapshot(state, user_id, now)

    async def reset(self, user_id: str) -> bool:
        """Zero both windows (admin tool). Returns False if no quota row exists."""
        async with self.locks.hold(user_id):
            state = await QuotaState.get_or_none(user_id=user_id)
            if state is None:
                return False
            now = self._now()
            state.daily_requests = 0
            state.hourly_requests = 0
            state.last_reset_date = now.date()
            state.last_reset_hour = now.hour
            await state.save()
            logger.info("[quota] manual reset for %s...", user_id[:8])
            return True

    # -------- internals (callers hold the identity lock) --------
    def _now(self) -> dt.datetime:
        return self.clock().astimezone(dt.timezone.utc)

    async def _load(self, user_id: str, now: dt.datetime) -> QuotaState:
        state = await QuotaState.get_or_none(user_id=user_id)
        if state is None:
            state = await QuotaState.create(
                user_id=user_id,
                daily_requests=0,
                last_reset_date=now.date(),
                hourly_requests=0,
                last_reset_hour=now.hour,
            )
        return state

    async def _load_current(self, user_id: str, now: dt.datetime) -> QuotaState:
        state = await self._load(user_id, now)
        if apply_lazy_reset(state, now):
            await state.save(update_fields=[
                "daily_requests",
                "last_reset_date",
                "hourly_requests",
                "last_reset_hour",
            ])
        return state

    async def _increment(self, state: QuotaState) -> None:
        state.daily_requests += 1
        state.hourly_requests += 1
        await state.save(update_fields=["daily_requests", "hourly_requests"])

    def _enforce(self, state: QuotaState, user_id: str, now: dt.datetime) -> None:
        daily_limit = self.daily_limit_for(user_id)
        hourly_limit = hourly_limit_from_daily(daily_limit)

        if state.daily_requests >= daily_limit:
            logger.warning("[quota] daily limit reached for %s...", user_id[:8])
            raise DailyLimitExceeded(
                f"Daily limit of {daily_limit} requests exceeded. Resets at midnight.",
                extra={"limits": {
                    "daily": daily_limit,
                    "remaining": 0,
                    "resetAt": isoformat_z(next_utc_midnight(now)),
                }},
            )

        if state.hourly_requests >= hourly_limit:
            logger.warning("[quota] hourly limit reached for %s...", user_id[:8])
            # Wall-clock hour from now, not the next hour boundary
            raise HourlyLimitExceeded(
                f"Hourly limit of {hourly_limit} requests exceeded. Try again in an hour.",
                extra={"limits": {
                    "hourly": hourly_limit,
                    "remaining": 0,
                    "resetAt": isoformat_z(now + dt.timedelta(hours=1)),
                }},
            )

    def _snapshot(self, state: QuotaState, user_id: str, now: dt.datetime) -> QuotaSnapshot:
        daily_limit = self.daily_limit_for(user_id)
        return QuotaSnapshot(
            daily_limit=daily_limit,
            hourly_limit=hourly_limit_from_daily(daily_limit),
            daily_used=state.daily_requests,
            hourly_used=state.hourly_requests,
            reset_at=next_utc_midnight(now),
        )


def apply_lazy_reset(state: QuotaState, now: dt.datetime) -> bool:
    """
    Reset counters whose window has elapsed. Returns True if `state` changed.

    A new day resets both windows (the hour rolls over with it); a new hour
    on the same day resets only the hourly window.
    """
    today = now.date()
    current_hour = now.hour
    if state.last_reset_date != today:
        state.daily_requests = 0
        state.hourly_requests = 0
        state.last_reset_date = today
        state.last_reset_hour = current_hour
        return True
    if state.last_reset_hour != current_hour:
        state.hourly_requests = 0
        state.last_reset_hour = current_hour
        return True
    return False

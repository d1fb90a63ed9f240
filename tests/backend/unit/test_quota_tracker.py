"""
Unit tests for services.quota_tracker module.
Tests lazy window resets, limit enforcement and concurrent reservations.
"""
import asyncio
import datetime as dt

import pytest

from app.core.errors import DailyLimitExceeded, HourlyLimitExceeded
from app.models.quota import QuotaState
from app.services.quota_tracker import QuotaTracker, apply_lazy_reset, hourly_limit_from_daily

from conftest import MutableClock


NOON = dt.datetime(2024, 5, 1, 12, 30, tzinfo=dt.timezone.utc)


@pytest.fixture
def noon_clock():
    return MutableClock(NOON)


@pytest.fixture
def tracker(noon_clock):
    return QuotaTracker(daily_limit=20, clock=noon_clock)


class TestLimits:

    def test_hourly_limit_is_quarter_of_daily(self):
        assert hourly_limit_from_daily(20) == 5
        assert hourly_limit_from_daily(100) == 25
        assert hourly_limit_from_daily(23) == 5

    def test_hourly_limit_has_floor_of_three(self):
        assert hourly_limit_from_daily(8) == 3
        assert hourly_limit_from_daily(4) == 3
        assert hourly_limit_from_daily(0) == 3

    def test_default_limits(self, tracker):
        assert tracker.daily_limit_for("dev-A") == 20
        assert tracker.hourly_limit_for("dev-A") == 5


@pytest.mark.asyncio
class TestLazyReset:
    """apply_lazy_reset on unsaved model instances."""

    def _state(self, **kwargs):
        fields = dict(daily_requests=7, last_reset_date=NOON.date(), hourly_requests=2, last_reset_hour=12)
        fields.update(kwargs)
        return QuotaState(**fields)

    async def test_new_day_resets_both_windows(self, db):
        state = self._state(last_reset_date=NOON.date() - dt.timedelta(days=1), last_reset_hour=23)
        assert apply_lazy_reset(state, NOON) is True
        assert (state.daily_requests, state.hourly_requests) == (0, 0)
        assert state.last_reset_date == NOON.date()
        assert state.last_reset_hour == 12

    async def test_new_day_same_hour_number_still_resets(self, db):
        state = self._state(last_reset_date=NOON.date() - dt.timedelta(days=1), last_reset_hour=12)
        assert apply_lazy_reset(state, NOON) is True
        assert (state.daily_requests, state.hourly_requests) == (0, 0)

    async def test_new_hour_resets_only_hourly(self, db):
        state = self._state(last_reset_hour=9)
        assert apply_lazy_reset(state, NOON) is True
        assert state.daily_requests == 7
        assert state.hourly_requests == 0
        assert state.last_reset_hour == 12

    async def test_same_window_is_untouched(self, db):
        state = self._state()
        assert apply_lazy_reset(state, NOON) is False
        assert (state.daily_requests, state.hourly_requests) == (7, 2)


@pytest.mark.asyncio
class TestCheckAndConsume:

    async def test_ensure_creates_zeroed_row_once(self, db, make_identity, tracker):
        await make_identity("dev-A")
        first = await tracker.ensure("dev-A")
        second = await tracker.ensure("dev-A")
        assert first.id == second.id
        assert await QuotaState.filter(user_id="dev-A").count() == 1
        assert first.daily_requests == 0
        assert first.last_reset_date == NOON.date()
        assert first.last_reset_hour == 12

    async def test_yesterday_state_resets_before_comparison(self, db, make_identity, tracker):
        await make_identity("dev-A")
        await QuotaState.create(
            user_id="dev-A",
            daily_requests=15,
            last_reset_date=NOON.date() - dt.timedelta(days=1),
            hourly_requests=4,
            last_reset_hour=12,
        )
        snapshot = await tracker.check("dev-A")
        state = await QuotaState.get(user_id="dev-A")
        assert (state.daily_requests, state.hourly_requests) == (0, 0)
        assert state.last_reset_date == NOON.date()
        assert snapshot.remaining == 20

    async def test_yesterday_full_quota_does_not_block_today(self, db, make_identity, tracker):
        await make_identity("dev-A")
        await QuotaState.create(
            user_id="dev-A",
            daily_requests=20,
            last_reset_date=NOON.date() - dt.timedelta(days=1),
            hourly_requests=5,
            last_reset_hour=23,
        )
        await tracker.check("dev-A")

    async def test_stale_hour_resets_hourly_only(self, db, make_identity, tracker):
        await make_identity("dev-A")
        await QuotaState.create(
            user_id="dev-A",
            daily_requests=9,
            last_reset_date=NOON.date(),
            hourly_requests=5,
            last_reset_hour=9,
        )
        await tracker.check("dev-A")
        state = await QuotaState.get(user_id="dev-A")
        assert state.hourly_requests == 0
        assert state.daily_requests == 9
        assert state.last_reset_hour == 12

    async def test_daily_limit_exceeded(self, db, make_identity, tracker):
        await make_identity("dev-A")
        await QuotaState.create(
            user_id="dev-A", daily_requests=20, last_reset_date=NOON.date(),
            hourly_requests=0, last_reset_hour=12,
        )
        with pytest.raises(DailyLimitExceeded) as exc_info:
            await tracker.check("dev-A")
        limits = exc_info.value.extra["limits"]
        assert exc_info.value.status_code == 429
        assert limits["remaining"] == 0
        assert limits["daily"] == 20
        assert limits["resetAt"] == "2024-05-02T00:00:00.000Z"

    async def test_hourly_limit_exceeded_resets_in_an_hour(self, db, make_identity, tracker):
        await make_identity("dev-A")
        await QuotaState.create(
            user_id="dev-A", daily_requests=5, last_reset_date=NOON.date(),
            hourly_requests=5, last_reset_hour=12,
        )
        with pytest.raises(HourlyLimitExceeded) as exc_info:
            await tracker.check("dev-A")
        limits = exc_info.value.extra["limits"]
        assert limits["hourly"] == 5
        assert limits["remaining"] == 0
        # Not aligned to 13:00
        assert limits["resetAt"] == "2024-05-01T13:30:00.000Z"

    async def test_daily_limit_reported_before_hourly(self, db, make_identity, tracker):
        await make_identity("dev-A")
        await QuotaState.create(
            user_id="dev-A", daily_requests=20, last_reset_date=NOON.date(),
            hourly_requests=5, last_reset_hour=12,
        )
        with pytest.raises(DailyLimitExceeded):
            await tracker.check("dev-A")

    async def test_consume_increments_both_windows(self, db, make_identity, tracker):
        await make_identity("dev-A")
        await tracker.consume("dev-A")
        snapshot = await tracker.consume("dev-A")
        assert snapshot.daily_used == 2
        assert snapshot.hourly_used == 2
        assert snapshot.remaining == 18
        assert snapshot.hourly_remaining == 3

    async def test_snapshot_limits_payload(self, db, make_identity, tracker):
        await make_identity("dev-A")
        snapshot = await tracker.snapshot("dev-A")
        assert snapshot.to_limits() == {
            "daily": 20,
            "remaining": 20,
            "resetAt": "2024-05-02T00:00:00.000Z",
        }

    async def test_reset_zeroes_counters(self, db, make_identity, tracker):
        await make_identity("dev-A")
        for _ in range(3):
            await tracker.consume("dev-A")
        assert await tracker.reset("dev-A") is True
        snapshot = await tracker.snapshot("dev-A")
        assert (snapshot.daily_used, snapshot.hourly_used) == (0, 0)
        assert await tracker.reset("unknown") is False


@pytest.mark.asyncio
class TestReservations:

    async def test_reserve_consumes_one_request(self, db, make_identity, tracker):
        await make_identity("dev-A")
        reservation = await tracker.reserve("dev-A")
        assert reservation.window_date == NOON.date()
        assert reservation.window_hour == 12
        snapshot = await tracker.snapshot("dev-A")
        assert snapshot.daily_used == 1

    async def test_release_refunds_reservation(self, db, make_identity, tracker):
        await make_identity("dev-A")
        reservation = await tracker.reserve("dev-A")
        await tracker.release(reservation)
        snapshot = await tracker.snapshot("dev-A")
        assert (snapshot.daily_used, snapshot.hourly_used) == (0, 0)

    async def test_release_after_hour_change_refunds_daily_only(self, db, make_identity, tracker, noon_clock):
        await make_identity("dev-A")
        reservation = await tracker.reserve("dev-A")
        noon_clock.advance(hours=1)
        await tracker.reserve("dev-A")  # moves the hourly window to 13:00
        await tracker.release(reservation)
        state = await QuotaState.get(user_id="dev-A")
        assert state.daily_requests == 1
        assert state.hourly_requests == 1

    async def test_release_after_day_change_is_noop(self, db, make_identity, tracker, noon_clock):
        await make_identity("dev-A")
        reservation = await tracker.reserve("dev-A")
        noon_clock.advance(days=1)
        await tracker.reserve("dev-A")
        await tracker.release(reservation)
        state = await QuotaState.get(user_id="dev-A")
        assert state.daily_requests == 1

    async def test_concurrent_reservations_never_exceed_hourly_limit(self, db, make_identity, tracker):
        await make_identity("dev-A")
        results = await asyncio.gather(
            *(tracker.reserve("dev-A") for _ in range(12)),
            return_exceptions=True,
        )
        granted = [r for r in results if not isinstance(r, Exception)]
        denied = [r for r in results if isinstance(r, HourlyLimitExceeded)]
        assert len(granted) == 5
        assert len(denied) == 7
        state = await QuotaState.get(user_id="dev-A")
        assert state.hourly_requests == 5
        assert state.daily_requests == 5

    async def test_concurrent_reservations_never_exceed_daily_limit(self, db, make_identity, tracker, noon_clock):
        await make_identity("dev-A")
        granted = 0
        for _ in range(6):
            results = await asyncio.gather(
                *(tracker.reserve("dev-A") for _ in range(8)),
                return_exceptions=True,
            )
            granted += sum(1 for r in results if not isinstance(r, Exception))
            state = await QuotaState.get(user_id="dev-A")
            assert state.daily_requests <= 20
            noon_clock.advance(hours=1)
        assert granted == 20

    async def test_identities_do_not_share_quota(self, db, make_identity, tracker):
        await make_identity("dev-A")
        await make_identity("dev-B")
        for _ in range(5):
            await tracker.reserve("dev-A")
        with pytest.raises(HourlyLimitExceeded):
            await tracker.reserve("dev-A")
        await tracker.reserve("dev-B")

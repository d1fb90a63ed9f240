# app/core/maintenance.py
"""
Background retention sweep.
Periodically deletes sessions and usage events older than their retention
windows. Runs as an asyncio task next to the request handlers and never
holds the per-identity locks used by the request path.
"""
import asyncio
import datetime as dt
import logging
from dataclasses import dataclass
from typing import Optional

from app.core.timeutil import Clock, utc_now
from app.services.session_ledger import SessionLedger
from app.services.usage_recorder import UsageRecorder

logger = logging.getLogger("uvicorn.error")


@dataclass
class SweepResult:
    sessions_deleted: int
    events_deleted: int


class RetentionSweeper:

    def __init__(
        self,
        sessions: SessionLedger,
        usage: UsageRecorder,
        session_retention_days: int = 7,
        event_retention_days: int = 90,
        interval_sec: float = 3600,
        clock: Clock = utc_now,
    ):
        self.sessions = sessions
        self.usage = usage
        self.session_retention = dt.timedelta(days=session_retention_days)
        self.event_retention = dt.timedelta(days=event_retention_days)
        self.interval_sec = interval_sec
        self.clock = clock
        self._task: Optional[asyncio.Task] = None

    async def run_once(self) -> SweepResult:
        """Delete everything past its retention window once."""
        now = self.clock()
        sessions_deleted = await self.sessions.purge_older_than(now - self.session_retention)
        events_deleted = await self.usage.purge_older_than(now - self.event_retention)
        if sessions_deleted or events_deleted:
            logger.info("[cleanup] removed %d sessions, %d usage events", sessions_deleted, events_deleted)
        return SweepResult(sessions_deleted=sessions_deleted, events_deleted=events_deleted)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop(), name="retention-sweeper")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_sec)
            try:
                await self.run_once()
            except Exception:
                # A failed sweep is retried on the next tick
                logger.exception("[cleanup] retention sweep failed")

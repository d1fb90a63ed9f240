"""
Session Ledger

Append-only history of login sessions. The "recent" view is bounded to the
newest few sessions per identity; older rows persist until the retention
sweep removes them.
"""
import datetime as dt
import logging
import uuid
from typing import Optional

from app.core.locks import KeyedLock
from app.core.timeutil import Clock, utc_now
from app.models.identity import IP_ADDRESS_MAX_LENGTH
from app.models.session import APP_VERSION_MAX_LENGTH, USER_AGENT_MAX_LENGTH, Session

logger = logging.getLogger("uvicorn.error")


class SessionLedger:

    def __init__(self, recent_limit: int = 5, clock: Clock = utc_now, locks: Optional[KeyedLock] = None):
        self.recent_limit = recent_limit
        self.clock = clock
        self.locks = locks if locks is not None else KeyedLock()

    async def append(
        self,
        user_id: str,
        ip_address: str,
        user_agent: Optional[str] = None,
        app_version: Optional[str] = None,
    ) -> Session:
        """
        Create a new session with a fresh UUID for `user_id`.

        Client-supplied strings are cut to their column lengths.
        """
        async with self.locks.hold(user_id):
            return await Session.create(
                session_id=uuid.uuid4(),
                user_id=user_id,
                created_at=self.clock(),
                ip_address=ip_address[:IP_ADDRESS_MAX_LENGTH],
                user_agent=(user_agent or "unknown")[:USER_AGENT_MAX_LENGTH],
                app_version=(app_version or "unknown")[:APP_VERSION_MAX_LENGTH],
            )

    async def recent(self, user_id: str, limit: Optional[int] = None) -> list[Session]:
        """Newest sessions first, never more than `recent_limit`."""
        limit = min(limit or self.recent_limit, self.recent_limit)
        return await Session.filter(user_id=user_id).order_by("-created_at", "-id").limit(limit)

    async def count(self, user_id: str) -> int:
        """All retained sessions of an identity, not just the recent view."""
        return await Session.filter(user_id=user_id).count()

    async def purge_older_than(self, cutoff: dt.datetime) -> int:
        deleted = await Session.filter(created_at__lt=cutoff).delete()
        if deleted:
            logger.info("[sessions] purged %d sessions older than %s", deleted, cutoff.isoformat())
        return deleted

"""
Identity Store

Durable record of pseudonymous identities: creation on first login,
last-seen/IP bookkeeping on every login, and lifetime processing counters.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from app.core.locks import KeyedLock
from app.core.timeutil import Clock, utc_now
from app.models.identity import IP_ADDRESS_MAX_LENGTH, Identity, IdentityIp

logger = logging.getLogger("uvicorn.error")


@dataclass
class LoginResult:
    identity: Identity
    created: bool
    fingerprint_mismatch: bool


class IdentityStore:
    """Create-or-update access to Identity rows, serialised per identity."""

    def __init__(self, clock: Clock = utc_now, locks: Optional[KeyedLock] = None):
        self.clock = clock
        self.locks = locks if locks is not None else KeyedLock()

    async def get(self, user_id: str) -> Optional[Identity]:
        return await Identity.get_or_none(user_id=user_id)

    async def upsert_on_login(self, device_fingerprint: str, ip_address: str) -> LoginResult:
        """
        Find or create the identity for a fingerprint and record the login.

        The user id is the fingerprint, so a second login never creates a
        second row; `created_at` and the counters of an existing row are kept.
        A stored fingerprint that differs from the supplied one is logged and
        tolerated.
        """
        user_id = device_fingerprint
        now = self.clock()
        async with self.locks.hold(user_id):
            identity = await Identity.get_or_none(user_id=user_id)
            created = identity is None
            mismatch = False
            if identity is None:
                identity = await Identity.create(
                    user_id=user_id,
                    device_fingerprint=device_fingerprint,
                    created_at=now,
                    last_seen=now,
                )
                logger.info("[identity] new user %s...", user_id[:8])
            else:
                identity.last_seen = now
                await identity.save(update_fields=["last_seen"])
                if identity.device_fingerprint != device_fingerprint:
                    mismatch = True
                    logger.warning("[identity] device mismatch for %s...", user_id[:8])
            await self._remember_ip(identity, ip_address, now)
        return LoginResult(identity=identity, created=created, fingerprint_mismatch=mismatch)

    async def record_request(self, user_id: str, processing_time_ms: int) -> Optional[Identity]:
        """
        Count one successful processing request and fold its duration into
        the running average. Returns None if the identity does not exist.
        """
        async with self.locks.hold(user_id):
            identity = await Identity.get_or_none(user_id=user_id)
            if identity is None:
                return None
            identity.request_count += 1
            identity.total_processing_time += max(int(processing_time_ms), 0)
            identity.average_processing_time = identity.total_processing_time / identity.request_count
            identity.last_seen = self.clock()
            await identity.save(update_fields=[
                "request_count",
                "total_processing_time",
                "average_processing_time",
                "last_seen",
            ])
            return identity

    async def known_ips(self, user_id: str) -> set[str]:
        rows = await IdentityIp.filter(user_id=user_id).values_list("ip_address", flat=True)
        return set(rows)

    async def list_recent(self, limit: int = 20) -> list[Identity]:
        return await Identity.all().order_by("-last_seen").limit(limit)

    async def count(self) -> int:
        return await Identity.all().count()

    async def _remember_ip(self, identity: Identity, ip_address: str, now) -> None:
        # Set semantics: the (user, ip) pair is unique, existing rows are left alone
        await IdentityIp.get_or_create(
            user=identity,
            ip_address=ip_address[:IP_ADDRESS_MAX_LENGTH],
            defaults={"first_seen": now},
        )

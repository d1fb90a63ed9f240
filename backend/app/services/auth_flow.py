"""
Anonymous Authentication Flow

Turns a device fingerprint into an identity, a new session and a signed
credential, plus the caller's current quota.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from tortoise.transactions import in_transaction

from app.core.errors import MissingFingerprint
from app.core.security import TokenIssuer
from .identity_store import IdentityStore
from .quota_tracker import QuotaSnapshot, QuotaTracker
from .session_ledger import SessionLedger

logger = logging.getLogger("uvicorn.error")

MAX_FINGERPRINT_LENGTH = 255


@dataclass
class AuthResult:
    token: str
    user_id: str
    session_id: str
    is_new_user: bool
    quota: QuotaSnapshot

    def to_dict(self) -> dict:
        return {
            "success": True,
            "token": self.token,
            "userId": self.user_id,
            "sessionId": self.session_id,
            "limits": self.quota.to_limits(),
        }


class AuthenticationFlow:

    def __init__(
        self,
        identities: IdentityStore,
        sessions: SessionLedger,
        quota: QuotaTracker,
        tokens: TokenIssuer,
    ):
        self.identities = identities
        self.sessions = sessions
        self.quota = quota
        self.tokens = tokens

    async def authenticate(
        self,
        device_fingerprint: Optional[str],
        ip_address: str,
        app_version: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AuthResult:
        """
        Log in anonymously.

        Steps:
        1. Upsert the identity (user id = fingerprint) and remember the caller IP
        2. Append a new session
        3. Make sure the identity has a quota row
        4. Sign a credential for (user id, session id)

        Steps 1-3 run in one database transaction, so a failing write leaves
        no partial login behind. The identity's locks are taken before the
        transaction opens and released after it commits.

        The fingerprint is opaque: it is used exactly as sent, surrounding
        whitespace included.

        Raises:
            MissingFingerprint: no usable fingerprint; nothing is written
        """
        fingerprint = device_fingerprint or ""
        if not fingerprint.strip():
            raise MissingFingerprint()
        if len(fingerprint) > MAX_FINGERPRINT_LENGTH:
            raise MissingFingerprint(
                f"deviceFingerprint must be at most {MAX_FINGERPRINT_LENGTH} characters",
                code="INVALID_FINGERPRINT",
            )

        logger.info("[auth] request %s... from %s", fingerprint[:8], ip_address)

        async with self.identities.locks.hold(fingerprint), \
                self.sessions.locks.hold(fingerprint), \
                self.quota.locks.hold(fingerprint):
            async with in_transaction():
                login = await self.identities.upsert_on_login(fingerprint, ip_address)
                user_id = login.identity.user_id
                session = await self.sessions.append(
                    user_id,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    app_version=app_version,
                )
                await self.quota.ensure(user_id)
            snapshot = await self.quota.snapshot(user_id)

        session_id = str(session.session_id)
        token = self.tokens.issue(user_id, session_id)

        return AuthResult(
            token=token,
            user_id=user_id,
            session_id=session_id,
            is_new_user=login.created,
            quota=snapshot,
        )

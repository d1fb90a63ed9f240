"""
Protected Request Authorization

Wraps a colorise request: credential verification, image validation, quota
reservation, the (slow) provider call with ordered fallback, and the
bookkeeping that follows success or failure.
"""
import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from typing import List, Optional

from app.core.errors import InvalidCredential, InvalidImageFormat
from app.core.security import TokenClaims, TokenIssuer
from .identity_store import IdentityStore
from .quota_tracker import QuotaSnapshot, QuotaTracker
from .restoration_base import ImagePayload, RestorationResult, RestorationService
from .restoration_factory import classify_failure
from .usage_recorder import UsageRecorder

logger = logging.getLogger("uvicorn.error")

ALLOWED_CONTENT_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/webp")


@dataclass
class ProcessingOutcome:
    result_url: str
    request_id: str
    processing_time_ms: int
    model_used: str
    quota: QuotaSnapshot

    def to_dict(self) -> dict:
        return {
            "success": True,
            "result": self.result_url,
            "requestId": self.request_id,
            "processingTimeMs": self.processing_time_ms,
            "modelUsed": self.model_used,
            "limits": self.quota.to_limits(),
        }


class RequestAuthorization:
    """
    Orchestrates one protected processing call.

    Quota is reserved (checked and consumed in one step) before the provider
    runs and handed back if every provider fails or times out, so failed
    requests never cost the caller quota. No lock is held during the call.
    """

    def __init__(
        self,
        tokens: TokenIssuer,
        identities: IdentityStore,
        quota: QuotaTracker,
        usage: UsageRecorder,
        providers: List[RestorationService],
        timeout_sec: float = 120,
        max_image_bytes: int = 10 * 1024 * 1024,
        expose_error_details: bool = False,
    ):
        self.tokens = tokens
        self.identities = identities
        self.quota = quota
        self.usage = usage
        self.providers = providers
        self.timeout_sec = timeout_sec
        self.max_image_bytes = max_image_bytes
        self.expose_error_details = expose_error_details

    def authenticate(self, token: Optional[str]) -> TokenClaims:
        if not token:
            raise InvalidCredential("Authentication required", code="AUTH_REQUIRED")
        return self.tokens.verify(token)

    def validate_image(self, image: Optional[ImagePayload]) -> ImagePayload:
        if image is None or not image.data:
            raise InvalidImageFormat("Image required", code="IMAGE_REQUIRED")
        if image.size > self.max_image_bytes:
            raise InvalidImageFormat(
                f"Image too large (max {self.max_image_bytes // (1024 * 1024)}MB)",
                code="IMAGE_TOO_LARGE",
            )
        if (image.content_type or "").lower() not in ALLOWED_CONTENT_TYPES:
            raise InvalidImageFormat()
        return image

    async def process(
        self,
        claims: TokenClaims,
        image: Optional[ImagePayload],
        ip_address: Optional[str] = None,
    ) -> ProcessingOutcome:
        """
        Run the restoration for an authenticated caller.

        Raises:
            InvalidImageFormat: missing, oversized or unsupported image (no quota used)
            DailyLimitExceeded / HourlyLimitExceeded: caller is out of quota
            UpstreamTimeout / UpstreamUnavailable / UpstreamQuotaExceeded /
            InvalidImageFormat / Unclassified: every provider failed
        """
        user_id = claims.user_id
        image = self.validate_image(image)
        reservation = await self.quota.reserve(user_id)

        started = time.monotonic()
        try:
            result = await self._run_providers(user_id, image, ip_address)
        except asyncio.CancelledError:
            await asyncio.shield(self.quota.release(reservation))
            raise
        except Exception as exc:
            await self.quota.release(reservation)
            raise classify_failure(exc, expose_details=self.expose_error_details) from exc
        total_ms = int((time.monotonic() - started) * 1000)

        await self.identities.record_request(user_id, total_ms)
        await self.usage.record(
            user_id,
            success=True,
            processing_time_ms=total_ms,
            model_used=result.model_id,
            ip_address=ip_address,
        )
        snapshot = await self.quota.snapshot(user_id)
        logger.info("[colorise] completed %s... in %dms with %s", user_id[:8], total_ms, result.model_id)

        return ProcessingOutcome(
            result_url=result.result_url,
            request_id=str(uuid.uuid4()),
            processing_time_ms=total_ms,
            model_used=result.model_id,
            quota=snapshot,
        )

    async def trial_run(self, image: Optional[ImagePayload]) -> dict:
        """
        Send an image through the provider chain for diagnostics.

        No credential, no quota and no usage events: only the provider
        round-trip is exercised. Failures are mapped like in `process`.
        """
        image = self.validate_image(image)
        started = time.monotonic()
        try:
            result = await self._run_providers(None, image, None)
        except Exception as exc:
            raise classify_failure(exc, expose_details=self.expose_error_details) from exc
        total_ms = int((time.monotonic() - started) * 1000)
        logger.info("[colorise] trial run completed in %dms with %s", total_ms, result.model_id)
        return {
            "success": True,
            "result": result.result_url,
            "modelUsed": result.model_id,
            "processingTimeMs": total_ms,
        }

    async def _run_providers(
        self,
        user_id: Optional[str],
        image: ImagePayload,
        ip_address: Optional[str],
    ) -> RestorationResult:
        """
        Try providers in order; each failed attempt is logged and recorded as
        an unsuccessful usage event before moving on (trial runs, with no user,
        record nothing). Re-raises the last failure.
        """
        if not self.providers:
            raise RuntimeError("No restoration provider configured")

        last_error: Optional[Exception] = None
        for provider in self.providers:
            attempt_started = time.monotonic()
            try:
                return await asyncio.wait_for(provider.restore(image), timeout=self.timeout_sec)
            except Exception as exc:
                last_error = exc
                elapsed_ms = int((time.monotonic() - attempt_started) * 1000)
                logger.warning(
                    "[colorise] provider %s failed for %s... after %dms: %s",
                    provider.name, (user_id or "trial")[:8], elapsed_ms, exc.__class__.__name__ if not str(exc) else exc,
                )
                if user_id is None:
                    continue
                await self.usage.record(
                    user_id,
                    success=False,
                    processing_time_ms=elapsed_ms,
                    model_used=provider.name,
                    ip_address=ip_address,
                )
        raise last_error

"""
Image Restoration Service Factory

Builds the ordered provider list and classifies provider failures into API errors.
"""
import asyncio
from typing import List

import httpx

from app.core.errors import (
    AppError,
    InvalidImageFormat,
    Unclassified,
    UpstreamQuotaExceeded,
    UpstreamTimeout,
    UpstreamUnavailable,
)
from .restoration_base import RestorationService
from .restoration_replicate import ReplicateRestorationService
from ..config import settings


def get_restoration_services() -> List[RestorationService]:
    """
    Get restoration services in fallback order

    Returns:
    - List[RestorationService]: one Replicate adapter per configured model

    Note:
    - Need to configure REPLICATE_API_TOKEN in .env
    - RESTORATION_MODELS sets the order (comma separated)
    """
    return [ReplicateRestorationService(model_id) for model_id in settings.restoration_models]


def classify_failure(exc: BaseException, expose_details: bool = False) -> AppError:
    """
    Map a provider failure to an API error by its textual category.

    - rate limit / quota      -> 429
    - invalid / format        -> 400
    - timeout / timed out     -> 408
    - unavailable / busy      -> 429
    - anything else           -> 500 (details only when expose_details)
    """
    if isinstance(exc, AppError):
        return exc
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return UpstreamTimeout()

    text = str(exc).lower()
    if "rate limit" in text or "quota" in text:
        return UpstreamQuotaExceeded()
    if "invalid" in text or "format" in text:
        return InvalidImageFormat()
    if "timeout" in text or "timed out" in text:
        return UpstreamTimeout()
    if "unavailable" in text or "busy" in text:
        return UpstreamUnavailable()

    extra = {"details": str(exc) or exc.__class__.__name__} if expose_details else None
    return Unclassified(extra=extra)

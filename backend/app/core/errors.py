# app/core/errors.py
"""
Application error taxonomy.

Every failure that reaches a client is an AppError carrying an HTTP status,
a stable error code and an optional extra payload (e.g. quota limits).
The FastAPI exception handler in app.main renders them as:

    {"success": false, "error": {"code": ..., "message": ...}, **extra}
"""
from typing import Any, Optional


class AppError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    message: str = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        code: Optional[str] = None,
        extra: Optional[dict[str, Any]] = None,
    ):
        self.message = message or self.message
        self.code = code or self.code
        self.extra = extra or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "success": False,
            "error": {"code": self.code, "message": self.message},
        }
        body.update(self.extra)
        return body


# ---------- 400 ----------
class MissingInput(AppError):
    status_code = 400
    code = "MISSING_INPUT"
    message = "Missing required fields"


class MissingFingerprint(MissingInput):
    code = "MISSING_FINGERPRINT"
    message = "deviceFingerprint is required"


class InvalidImageFormat(AppError):
    status_code = 400
    code = "INVALID_IMAGE"
    message = "Invalid image format. Please use JPEG or PNG."


# ---------- 401 ----------
class InvalidCredential(AppError):
    status_code = 401
    code = "AUTH_INVALID_TOKEN"
    message = "Invalid or expired token"


# ---------- 404 ----------
class NotFound(AppError):
    status_code = 404
    code = "NOT_FOUND"
    message = "Not found"


# ---------- 408 ----------
class UpstreamTimeout(AppError):
    status_code = 408
    code = "UPSTREAM_TIMEOUT"
    message = "Request timed out. Please try with a smaller image or try again later."


# ---------- 429 ----------
class QuotaExceeded(AppError):
    status_code = 429
    code = "QUOTA_EXCEEDED"


class DailyLimitExceeded(QuotaExceeded):
    code = "DAILY_LIMIT_EXCEEDED"


class HourlyLimitExceeded(QuotaExceeded):
    code = "HOURLY_LIMIT_EXCEEDED"


class UpstreamUnavailable(AppError):
    status_code = 429
    code = "UPSTREAM_UNAVAILABLE"
    message = "Service temporarily busy. Please try again in a few minutes."


class UpstreamQuotaExceeded(UpstreamUnavailable):
    code = "UPSTREAM_QUOTA_EXCEEDED"


# ---------- 500 ----------
class Unclassified(AppError):
    status_code = 500
    code = "PROCESSING_FAILED"
    message = "Processing failed. Please try again."

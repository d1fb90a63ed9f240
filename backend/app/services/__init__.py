"""
Services Module

Domain services of the colorise backend:
- Identity / session / quota / usage bookkeeping (Tortoise ORM)
- Authentication and protected-request orchestration
- Image restoration providers (Replicate API)
"""

# Bookkeeping services
from .identity_store import IdentityStore
from .session_ledger import SessionLedger
from .quota_tracker import QuotaTracker, QuotaSnapshot, Reservation
from .usage_recorder import UsageRecorder

# Orchestration
from .auth_flow import AuthenticationFlow, AuthResult
from .authorization import RequestAuthorization, ProcessingOutcome

# Image restoration providers
from .restoration_base import (
    ImagePayload,
    RestorationError,
    RestorationResult,
    RestorationService,
)
from .restoration_factory import classify_failure, get_restoration_services
from .restoration_replicate import ReplicateRestorationService

__all__ = [
    "IdentityStore",
    "SessionLedger",
    "QuotaTracker",
    "QuotaSnapshot",
    "Reservation",
    "UsageRecorder",
    "AuthenticationFlow",
    "AuthResult",
    "RequestAuthorization",
    "ProcessingOutcome",
    "ImagePayload",
    "RestorationError",
    "RestorationResult",
    "RestorationService",
    "classify_failure",
    "get_restoration_services",
    "ReplicateRestorationService",
]

"""
Database models module initialization.
Exports all database models for convenient imports throughout the application.

Models exported:
- Identity: Pseudonymous user keyed by device fingerprint
- IdentityIp: Known IP address of an identity (append-only)
- Session: Login session (one per authentication)
- QuotaState: Daily/hourly request counters (one per identity)
- UsageEvent: Processing attempt log entry (append-only)
"""
from .identity import Identity, IdentityIp
from .session import Session
from .quota import QuotaState
from .usage_event import UsageEvent, EVENT_COLORISE

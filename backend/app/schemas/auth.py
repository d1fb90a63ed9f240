"""
Pydantic schemas for anonymous authentication.
Defines request/response models for the login endpoint.
"""
from typing import Optional
from pydantic import AliasChoices, BaseModel, Field


class LimitsOut(BaseModel):
    """
    Quota summary returned with auth and processing responses.
    """
    daily: int  # Daily request limit
    remaining: int  # Requests left today
    resetAt: str  # Next UTC midnight (ISO timestamp with Z suffix)


class AnonymousAuthIn(BaseModel):
    """
    Request model for anonymous login.
    Both fields are optional at the schema level so a missing fingerprint is
    answered with our own 400 instead of a 422 validation error.
    The older client field names (device_info / app_version) are accepted too.
    """
    deviceFingerprint: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("deviceFingerprint", "device_info"),
    )
    appVersion: Optional[str] = Field(
        default=None,
        max_length=64,
        validation_alias=AliasChoices("appVersion", "app_version"),
    )


class AnonymousAuthOut(BaseModel):
    """
    Response model for successful anonymous login.
    """
    success: bool = True
    token: str  # Signed bearer credential, valid for 24h
    userId: str  # Pseudonymous identity (the device fingerprint)
    sessionId: str  # UUID of the session created by this login
    limits: LimitsOut

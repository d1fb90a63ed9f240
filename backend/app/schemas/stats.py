"""
Pydantic schemas for per-identity usage statistics.
"""
from typing import List
from pydantic import BaseModel


class QuotaOut(BaseModel):
    daily: int
    remaining: int
    resetAt: str
    used: int
    hourly: int
    hourlyUsed: int
    hourlyRemaining: int


class SessionOut(BaseModel):
    sessionId: str  # Truncated for display
    createdAt: str
    appVersion: str


class UserStatsOut(BaseModel):
    userId: str  # Truncated for display
    sessionId: str  # Truncated for display
    memberSince: str
    lastSeen: str
    totalRequests: int
    averageProcessingTime: int  # Milliseconds, rounded
    sessionsCount: int  # Retained sessions (all, not just the recent view)
    recentSessions: List[SessionOut]  # Newest first, at most 5
    limits: QuotaOut


class UserStatsResponse(BaseModel):
    success: bool = True
    stats: UserStatsOut

from fastapi import APIRouter, Depends, Request

from app.api.v1.deps import get_current_claims
from app.core.errors import NotFound
from app.core.security import TokenClaims
from app.core.timeutil import isoformat_z
from app.schemas.stats import UserStatsResponse

router = APIRouter(tags=["stats"])


def _short(value: str) -> str:
    return value[:8] + "..."


@router.get("/stats", response_model=UserStatsResponse)
async def user_stats(request: Request, claims: TokenClaims = Depends(get_current_claims)):
    """
    Lifetime counters and current quota of the calling identity.

    Identifiers are truncated; the full fingerprint is never echoed back.

    Raises:
        InvalidCredential (401): missing/invalid token
        NotFound (404): identity row missing for a valid token
    """
    state = request.app.state
    identity = await state.identities.get(claims.user_id)
    if identity is None:
        raise NotFound("User not found", code="USER_NOT_FOUND")

    recent = await state.sessions.recent(claims.user_id)
    quota = await state.quota.snapshot(claims.user_id)

    return {
        "success": True,
        "stats": {
            "userId": _short(identity.user_id),
            "sessionId": _short(claims.session_id),
            "memberSince": isoformat_z(identity.created_at),
            "lastSeen": isoformat_z(identity.last_seen),
            "totalRequests": identity.request_count,
            "averageProcessingTime": round(identity.average_processing_time or 0),
            "sessionsCount": await state.sessions.count(claims.user_id),
            "recentSessions": [
                {
                    "sessionId": _short(str(s.session_id)),
                    "createdAt": isoformat_z(s.created_at),
                    "appVersion": s.app_version,
                }
                for s in recent
            ],
            "limits": quota.to_dict(),
        },
    }

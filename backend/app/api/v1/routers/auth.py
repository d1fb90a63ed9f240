from fastapi import APIRouter, Depends, Header, Request

from app.api.v1.deps import get_auth_flow, get_client_ip
from app.schemas.auth import AnonymousAuthIn, AnonymousAuthOut
from app.services.auth_flow import AuthenticationFlow

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/anonymous", response_model=AnonymousAuthOut)
async def authenticate_anonymous(
    request: Request,
    body: AnonymousAuthIn | None = None,
    user_agent: str | None = Header(default=None),
    flow: AuthenticationFlow = Depends(get_auth_flow),
):
    """
    Anonymous login with a device fingerprint.

    Creates the identity on first use (the fingerprint is the user id),
    records a new session and returns a 24h bearer token together with the
    caller's daily quota.

    Args:
        body: Request body containing:
            - deviceFingerprint: str (required)
            - appVersion: str | None
        user_agent: User-Agent header, stored with the session

    Returns:
        dict: success, token, userId, sessionId, limits {daily, remaining, resetAt}

    Error codes:
        - MISSING_FINGERPRINT (400): no fingerprint in the body
    """
    body = body or AnonymousAuthIn()
    result = await flow.authenticate(
        body.deviceFingerprint,
        ip_address=get_client_ip(request),
        app_version=body.appVersion,
        user_agent=user_agent,
    )
    return result.to_dict()

from fastapi import Depends, Header, Request

from app.core.security import TokenClaims
from app.services.auth_flow import AuthenticationFlow
from app.services.authorization import RequestAuthorization


def get_auth_flow(request: Request) -> AuthenticationFlow:
    return request.app.state.auth_flow


def get_authorization(request: Request) -> RequestAuthorization:
    return request.app.state.authorization


def get_client_ip(request: Request) -> str:
    """
    Best-effort caller IP.

    Prefers the first hop of X-Forwarded-For, then X-Real-IP (the service
    runs behind a proxy), then the socket peer.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or "unknown"
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


async def get_current_claims(
    authorization: str | None = Header(default=None),
    guard: RequestAuthorization = Depends(get_authorization),
) -> TokenClaims:
    """
    FastAPI dependency returning the verified claims of the caller.

    Extracts the token from `Authorization: Bearer <token>`.

    Raises:
        InvalidCredential (401): no token (AUTH_REQUIRED), or the token is
            invalid, expired or of the wrong type

    Usage:
        @router.get("/protected")
        async def protected_route(claims: TokenClaims = Depends(get_current_claims)):
            return {"user_id": claims.user_id}
    """
    token = None
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization.split(" ", 1)[1].strip()
    return guard.authenticate(token)

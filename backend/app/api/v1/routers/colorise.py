from fastapi import APIRouter, Depends, File, Request, UploadFile

from app.api.v1.deps import get_authorization, get_client_ip, get_current_claims
from app.core.security import TokenClaims
from app.schemas.colorise import ColoriseOut
from app.services.authorization import RequestAuthorization
from app.services.restoration_base import ImagePayload

router = APIRouter(tags=["colorise"])


@router.post("/colorise", response_model=ColoriseOut)
async def colorise(
    request: Request,
    image: UploadFile | None = File(default=None),
    claims: TokenClaims = Depends(get_current_claims),
    guard: RequestAuthorization = Depends(get_authorization),
):
    """
    Restore/colorise an uploaded photo.

    Args:
        image: multipart file field "image" (JPEG/PNG/WebP, at most 10MB)
        claims: Verified credential (from dependency)

    Returns:
        dict: success, result (URL), requestId, processingTimeMs, modelUsed, limits

    Error codes:
        - 401 AUTH_REQUIRED / AUTH_INVALID_TOKEN / AUTH_TOKEN_EXPIRED
        - 429 DAILY_LIMIT_EXCEEDED / HOURLY_LIMIT_EXCEEDED (with limits payload)
        - 429 UPSTREAM_UNAVAILABLE / UPSTREAM_QUOTA_EXCEEDED
        - 400 IMAGE_REQUIRED / IMAGE_TOO_LARGE / INVALID_IMAGE
        - 408 UPSTREAM_TIMEOUT
        - 500 PROCESSING_FAILED
    """
    payload = None
    if image is not None:
        # Read one byte past the limit so oversized uploads are detected without buffering them whole
        data = await image.read(guard.max_image_bytes + 1)
        payload = ImagePayload(
            data=data,
            content_type=image.content_type or "",
            filename=image.filename or "image",
        )
    outcome = await guard.process(claims, payload, ip_address=get_client_ip(request))
    return outcome.to_dict()

"""
Development-only admin endpoints.
Mounted by create_app only when the development capability flag is set.
"""
import asyncio
import mimetypes
from pathlib import Path

from fastapi import APIRouter, File, Request, UploadFile

from app.core.errors import InvalidImageFormat, NotFound
from app.core.timeutil import isoformat_z
from app.services.restoration_base import ImagePayload

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/users")
async def list_users(request: Request):
    """
    Most recently seen identities (first 20), with truncated ids.
    """
    identities = request.app.state.identities
    rows = await identities.list_recent(limit=20)
    users = [
        {
            "userId": u.short_id(),
            "createdAt": isoformat_z(u.created_at),
            "lastSeen": isoformat_z(u.last_seen),
            "requestCount": u.request_count,
            "sessionsCount": await request.app.state.sessions.count(u.user_id),
        }
        for u in rows
    ]
    return {"success": True, "totalUsers": await identities.count(), "users": users}


@router.post("/reset/{user_id}")
async def reset_quota(user_id: str, request: Request):
    """
    Zero the daily and hourly counters of one identity.

    Raises:
        NotFound (404): unknown identity
    """
    if await request.app.state.identities.get(user_id) is None:
        raise NotFound("User not found", code="USER_NOT_FOUND")
    quota = request.app.state.quota
    if not await quota.reset(user_id):
        await quota.ensure(user_id)
    return {"success": True, "message": "Rate limit reset"}


@router.post("/test-restore")
async def test_restore(request: Request, image: UploadFile | None = File(default=None)):
    """
    Run the provider chain once and report how long it took.

    Uses the uploaded "image" field, or the file at SAMPLE_IMAGE_PATH when
    nothing is uploaded. Consumes no quota and records no usage.

    Raises:
        InvalidImageFormat (400): no image and no sample configured, or the image is rejected
        NotFound (404): the configured sample image does not exist
    """
    guard = request.app.state.authorization
    if image is not None:
        data = await image.read(guard.max_image_bytes + 1)
        payload = ImagePayload(
            data=data,
            content_type=image.content_type or "",
            filename=image.filename or "image",
        )
    else:
        sample = request.app.state.settings.sample_image_path
        if not sample:
            raise InvalidImageFormat("Image required", code="IMAGE_REQUIRED")
        path = Path(sample)
        if not path.is_file():
            raise NotFound("Sample image not found", code="SAMPLE_NOT_FOUND")
        data = await asyncio.to_thread(path.read_bytes)
        payload = ImagePayload(
            data=data,
            content_type=mimetypes.guess_type(path.name)[0] or "",
            filename=path.name,
        )
    return await guard.trial_run(payload)

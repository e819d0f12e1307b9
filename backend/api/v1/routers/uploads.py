"""
Uploads Router — store a single inline payload and report media limits.
"""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from pydantic.alias_generators import to_camel

from api.deps import get_current_user, get_sheet_service
from media.blob_store import BlobStoreError
from media.validation import MediaKind, MediaValidationError
from sheets.service import SheetService

router = APIRouter(prefix="/api/v1/uploads", tags=["uploads"])

_CAMEL_CONFIG = {"alias_generator": to_camel, "populate_by_name": True}


# ─── Schemas ────────────────────────────────────────────────────────────────


class UploadRequest(BaseModel):
    data_url: str | None = None
    file_name: str | None = None
    kind: MediaKind = MediaKind.IMAGE

    model_config = _CAMEL_CONFIG


class UploadResponse(BaseModel):
    url: str


class MediaLimitsResponse(BaseModel):
    max_image_bytes: int
    max_attachment_bytes: int
    image_mime_types: list[str]
    attachment_mime_types: list[str]
    min_image_short_side_px: int | None

    model_config = _CAMEL_CONFIG


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.post("/", response_model=UploadResponse)
async def upload_media(
    body: UploadRequest,
    service: SheetService = Depends(get_sheet_service),
    user: dict = Depends(get_current_user),
):
    """Validate and store one data URL; returns its durable URL."""
    if not body.data_url or not body.file_name:
        raise HTTPException(status_code=400, detail="dataUrl and fileName are required")
    try:
        url = await service.upload_data_url(body.data_url, body.file_name, body.kind, user)
    except MediaValidationError as exc:
        raise HTTPException(status_code=400, detail={"reason": exc.reason.value, "message": str(exc)})
    except BlobStoreError:
        raise HTTPException(status_code=502, detail="Upload failed")
    return UploadResponse(url=url)


@router.get("/limits", response_model=MediaLimitsResponse)
async def media_limits(
    service: SheetService = Depends(get_sheet_service),
    user: dict = Depends(get_current_user),
):
    """Configured media ceilings, allowlists and resolution floor."""
    policy = service.policy
    return MediaLimitsResponse(
        max_image_bytes=policy.image.max_bytes,
        max_attachment_bytes=policy.attachment.max_bytes,
        image_mime_types=sorted(policy.image.allowed_mime_types),
        attachment_mime_types=sorted(policy.attachment.allowed_mime_types),
        min_image_short_side_px=policy.image.min_short_side_px,
    )

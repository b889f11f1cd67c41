"""
Video library API endpoints.

1. POST   /videos/upload          Upload a procedure video
2. GET    /videos                 List the catalog
3. GET    /videos/{id}            Get one video
4. GET    /videos/{id}/signed-url Temporary playback URL
5. PATCH  /videos/{id}            Update title/description
6. DELETE /videos/{id}            Delete record and stored file

Design notes:
- Routers are THIN: they parse HTTP input, call VideoService and wrap the
  result in the {statusCode, message, data} envelope
- Workflow errors are raised as VideotecaError and turned into envelopes by
  the app's exception handlers
- A lookup miss is a successful response with data=null and the message
  "Video not found"; ids that aren't UUIDs are treated as misses
- Every route requires a bearer token
"""

import os
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from videoteca.auth import require_bearer_token
from videoteca.database import get_db
from videoteca.responses import envelope
from videoteca.schemas.videos import VideoResponse, VideoUpdate
from videoteca.services.repository import VideoRepository
from videoteca.services.validation import UploadRequest
from videoteca.services.videos import VideoService

router = APIRouter(
    prefix="/videos",
    tags=["videos"],
    dependencies=[Depends(require_bearer_token)],
)

NOT_FOUND_MESSAGE = "Video not found"


def get_video_service(request: Request, db: AsyncSession = Depends(get_db)) -> VideoService:
    settings = request.app.state.settings
    return VideoService(
        repository=VideoRepository(db),
        storage=request.app.state.storage,
        max_upload_bytes=settings.MAX_UPLOAD_BYTES,
        signed_url_ttl=settings.SIGNED_URL_TTL_SECONDS,
    )


def parse_video_id(value: str) -> Optional[UUID]:
    try:
        return UUID(value)
    except ValueError:
        return None


def measure(file: UploadFile) -> int:
    """Size of the received body. Falls back to seeking when size is unset."""
    if file.size is not None:
        return file.size
    file.file.seek(0, os.SEEK_END)
    size = file.file.tell()
    file.file.seek(0)
    return size


@router.post("/upload")
async def upload_video(
    file: UploadFile = File(...),
    title: str = Form(""),
    description: str = Form(""),
    service: VideoService = Depends(get_video_service),
):
    """Upload a procedure video (any video/* type, up to 2 GiB).

    The file is stored first and the catalog record second; see
    VideoService.upload for the failure handling.
    """
    upload = UploadRequest(
        file=file.file,
        content_type=file.content_type or "",
        filename=file.filename or "",
        size=measure(file),
        title=title,
        description=description,
    )
    video = await service.upload(upload)
    return envelope(201, "Video uploaded successfully", VideoResponse.model_validate(video))


@router.get("")
async def list_videos(service: VideoService = Depends(get_video_service)):
    videos = await service.list()
    return envelope(
        200,
        "Videos retrieved successfully",
        [VideoResponse.model_validate(v) for v in videos],
    )


@router.get("/{video_id}")
async def get_video(video_id: str, service: VideoService = Depends(get_video_service)):
    parsed = parse_video_id(video_id)
    video = await service.get(parsed) if parsed else None
    if video is None:
        return envelope(200, NOT_FOUND_MESSAGE)
    return envelope(200, "Video retrieved successfully", VideoResponse.model_validate(video))


@router.get("/{video_id}/signed-url")
async def get_signed_url(video_id: str, service: VideoService = Depends(get_video_service)):
    """Temporary URL for playback, valid for SIGNED_URL_TTL_SECONDS."""
    parsed = parse_video_id(video_id)
    url = await service.signed_url(parsed) if parsed else None
    if url is None:
        return envelope(200, NOT_FOUND_MESSAGE)
    return envelope(200, "Signed URL generated successfully", url)


@router.patch("/{video_id}")
async def update_video(
    video_id: str,
    changes: VideoUpdate,
    service: VideoService = Depends(get_video_service),
):
    parsed = parse_video_id(video_id)
    video = None
    if parsed:
        video = await service.update(parsed, title=changes.title, description=changes.description)
    if video is None:
        return envelope(200, NOT_FOUND_MESSAGE)
    return envelope(200, "Video updated successfully", VideoResponse.model_validate(video))


@router.delete("/{video_id}")
async def delete_video(video_id: str, service: VideoService = Depends(get_video_service)):
    parsed = parse_video_id(video_id)
    deleted = await service.delete(parsed) if parsed else False
    if not deleted:
        return envelope(200, NOT_FOUND_MESSAGE)
    return envelope(200, "Video deleted successfully")

"""
Video workflows.

VideoService ties the record store and the storage gateway together:

    upload      validate -> new key -> put object -> create record
    list/get    record store pass-through
    update      title/description only
    delete      record first, then best-effort object delete
    signed_url  record -> file_key -> temporary read URL

Upload ordering matters. The object is written before the record, so a
persisted record always has a real object behind it. If the record cannot
be saved, the object is deleted again (once). A failed cleanup leaves an
untracked orphan object, which is logged for operators; the caller still
gets the original error.
"""

import logging
from pathlib import PurePosixPath
from typing import Optional
from uuid import UUID, uuid4

from videoteca.errors import NotFoundError, StorageError
from videoteca.models import Video
from videoteca.services.repository import VideoRepository
from videoteca.services.storage import StorageGateway
from videoteca.services.validation import UploadRequest, validate_upload

logger = logging.getLogger(__name__)


def build_storage_key(filename: str) -> str:
    """Fresh key for every upload: videos/<random hex><.ext>."""
    suffix = PurePosixPath(filename or "").suffix.lower()
    if not suffix[1:].isalnum():
        suffix = ""
    return f"videos/{uuid4().hex}{suffix}"


class VideoService:
    def __init__(self, repository: VideoRepository, storage: StorageGateway,
                 max_upload_bytes: int, signed_url_ttl: int):
        self.repository = repository
        self.storage = storage
        self.max_upload_bytes = max_upload_bytes
        self.signed_url_ttl = signed_url_ttl

    async def upload(self, request: UploadRequest) -> Video:
        error = validate_upload(request, self.max_upload_bytes)
        if error is not None:
            raise error

        file_key = build_storage_key(request.filename)
        await self.storage.put(file_key, request.file, request.content_type)
        logger.info("Stored video object", extra={"file_key": file_key, "size": request.size})

        try:
            video = await self.repository.create(
                title=request.title.strip(),
                description=request.description or "",
                file_key=file_key,
                original_name=request.filename,
                size=request.size,
                mime_type=request.content_type,
            )
        except Exception:
            await self._discard_object(file_key)
            raise

        logger.info("Video uploaded", extra={"video_id": str(video.id), "file_key": file_key})
        return video

    async def _discard_object(self, file_key: str) -> None:
        """Compensating delete after a failed record insert. Never raises."""
        try:
            await self.storage.delete(file_key)
            logger.warning("Removed object after failed record insert",
                           extra={"file_key": file_key})
        except Exception as e:
            logger.error("Orphan object left in storage",
                         extra={"file_key": file_key, "error": str(e)})

    async def list(self) -> list[Video]:
        return await self.repository.list_all()

    async def get(self, video_id: UUID) -> Optional[Video]:
        return await self.repository.get(video_id)

    async def update(self, video_id: UUID, title: Optional[str] = None,
                     description: Optional[str] = None) -> Optional[Video]:
        try:
            return await self.repository.update(video_id, title=title, description=description)
        except NotFoundError:
            return None

    async def delete(self, video_id: UUID) -> bool:
        """Delete the record, then try to delete its object.

        Returns False when no such record exists. Storage failures are logged
        and ignored so an unavailable store never blocks catalog cleanup.
        """
        try:
            video = await self.repository.delete(video_id)
        except NotFoundError:
            return False

        try:
            await self.storage.delete(video.file_key)
        except StorageError as e:
            logger.warning("Could not delete stored object",
                           extra={"file_key": video.file_key, "error": str(e)})
        return True

    async def signed_url(self, video_id: UUID) -> Optional[str]:
        """Temporary playback URL, or None when the record doesn't exist.

        A record whose object is missing raises NotFoundError from the gateway.
        """
        video = await self.repository.get(video_id)
        if video is None or not video.file_key:
            return None
        return await self.storage.signed_url(video.file_key, self.signed_url_ttl)

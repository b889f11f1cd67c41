"""
Video record store.

Thin data-access layer over the videos table. It owns the catalog rules
that live in the database: file_key uniqueness and the immutability of
file_key, size and mime_type after creation.

Database failures are translated into the app's error taxonomy here, so the
workflows above never see SQLAlchemy exceptions:
- duplicate file_key        -> ConflictError
- missing id on update/del  -> NotFoundError
- anything else             -> InternalError

Nothing touches the database after a successful commit. Sessions keep
their attributes on commit and every column default is computed in
Python, so the returned Video is already complete.
"""

from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from videoteca.errors import ConflictError, InternalError, NotFoundError
from videoteca.models import Video


class VideoRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, *, title: str, description: str, file_key: str,
                     original_name: str, size: int, mime_type: str) -> Video:
        video = Video(
            title=title,
            description=description,
            file_key=file_key,
            original_name=original_name,
            size=size,
            mime_type=mime_type,
        )
        self.db.add(video)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictError(f"Storage key already in use: {file_key}") from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise InternalError(f"Failed to save video record: {e}") from e
        return video

    async def get(self, video_id: UUID) -> Optional[Video]:
        try:
            result = await self.db.execute(select(Video).where(Video.id == video_id))
        except SQLAlchemyError as e:
            raise InternalError(f"Failed to load video: {e}") from e
        return result.scalar_one_or_none()

    async def list_all(self) -> list[Video]:
        try:
            result = await self.db.execute(
                select(Video).order_by(Video.created_at.desc())
            )
        except SQLAlchemyError as e:
            raise InternalError(f"Failed to list videos: {e}") from e
        return list(result.scalars().all())

    async def find_by_storage_key(self, file_key: str) -> Optional[Video]:
        try:
            result = await self.db.execute(select(Video).where(Video.file_key == file_key))
        except SQLAlchemyError as e:
            raise InternalError(f"Failed to load video: {e}") from e
        return result.scalar_one_or_none()

    async def update(self, video_id: UUID, *, title: Optional[str] = None,
                     description: Optional[str] = None) -> Video:
        """Change title and/or description. Nothing else is writable."""
        video = await self.get(video_id)
        if video is None:
            raise NotFoundError(f"Video {video_id} not found")

        if title is not None:
            video.title = title
        if description is not None:
            video.description = description

        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise InternalError(f"Failed to update video: {e}") from e
        return video

    async def delete(self, video_id: UUID) -> Video:
        """Remove the record and return it (the caller needs its file_key)."""
        video = await self.get(video_id)
        if video is None:
            raise NotFoundError(f"Video {video_id} not found")

        try:
            await self.db.delete(video)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise InternalError(f"Failed to delete video: {e}") from e
        return video

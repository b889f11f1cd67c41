"""
Upload validation.

validate_upload() checks an UploadRequest against the library's rules and
returns the first problem as a ValidationError (or None when the request is
acceptable). It performs no I/O, so a rejected upload never touches storage
or the database.
"""

import re
from dataclasses import dataclass
from typing import BinaryIO, Optional

from videoteca.errors import ValidationError

# Any video media type: video/mp4, video/quicktime, video/x-msvideo, ...
VIDEO_MIME_PATTERN = re.compile(r"^video/[\w.+-]+$", re.IGNORECASE)
MAX_TITLE_LENGTH = 255


@dataclass
class UploadRequest:
    """One incoming upload, already received in full by the transport."""
    file: BinaryIO
    content_type: str
    filename: str
    size: int
    title: str
    description: str = ""


def validate_upload(request: UploadRequest, max_bytes: int) -> Optional[ValidationError]:
    if request.size <= 0:
        return ValidationError("File is empty")
    if request.size > max_bytes:
        return ValidationError(
            f"File is too large ({request.size} bytes). Maximum is {max_bytes} bytes"
        )
    if not VIDEO_MIME_PATTERN.match(request.content_type or ""):
        return ValidationError(
            f"Invalid file type '{request.content_type}'. Expected a video/* media type"
        )
    title = (request.title or "").strip()
    if not title:
        return ValidationError("Title is required")
    if len(title) > MAX_TITLE_LENGTH:
        return ValidationError(f"Title must be at most {MAX_TITLE_LENGTH} characters")
    return None

"""
Pydantic schemas for the Video API.

Schemas define the shape of data flowing through the API:
- Request schemas: what the client sends us
- Response schemas: what we send back

These are SEPARATE from SQLAlchemy models on purpose.
Models = database shape. Schemas = API shape.
The API speaks camelCase (fileKey, createdAt) while the ORM uses
snake_case columns; the alias generator bridges the two.
"""

from datetime import datetime
from typing import Generic, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


# --- Envelope ---

class ApiResponse(BaseModel, Generic[T]):
    """Uniform wrapper for every response. HTTP status mirrors statusCode."""
    status_code: int
    message: str
    data: Optional[T] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Response Schemas ---

class VideoResponse(BaseModel):
    """What we return when a client asks about a video."""
    id: UUID
    title: str
    description: str
    file_key: str
    original_name: str
    size: int
    mime_type: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


# --- Request Schemas ---

class VideoUpdate(BaseModel):
    """Partial metadata update.

    Only title and description can change. Unknown fields (fileKey, size,
    mimeType, ...) are rejected rather than silently dropped.
    """
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

from videoteca.models.models import Base, Video

__all__ = [
    "Base",
    "Video",
]

"""
Error taxonomy for the video library.

Services raise these; the app's exception handlers turn them into the
response envelope. The class decides the statusCode, so callers never pick
HTTP codes themselves.
"""


class VideotecaError(Exception):
    """Base class. Unclassified failures map to a generic server error."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str = ""):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(VideotecaError):
    """Bad input. Raised before any storage or database I/O."""
    status_code = 422
    default_message = "Validation failed"


class UnauthorizedError(VideotecaError):
    status_code = 401
    default_message = "Not authenticated"


class NotFoundError(VideotecaError):
    """Entity or storage object is absent."""
    status_code = 404
    default_message = "Not found"


class ConflictError(VideotecaError):
    """Duplicate storage key."""
    status_code = 409
    default_message = "Resource already exists"


class StorageError(VideotecaError):
    """Object store I/O failure."""
    status_code = 502
    default_message = "Object storage failure"


class InternalError(VideotecaError):
    status_code = 500
    default_message = "Internal server error"

"""
Response envelope helpers.

Every endpoint answers with {statusCode, message, data} and the HTTP status
mirrors statusCode. Routers, exception handlers and middleware all build
responses through envelope() so the shape never drifts.
"""

from typing import Any

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from videoteca.schemas.videos import ApiResponse


def envelope(status_code: int, message: str, data: Any = None) -> JSONResponse:
    body = ApiResponse[Any](status_code=status_code, message=message, data=jsonable_encoder(data))
    return JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True))

from __future__ import annotations

from uuid import uuid4

from fastapi import Request
from fastapi.responses import JSONResponse

# error_code -> (HTTP status, user-facing copy)
STREAK_ERRORS = {
    "AUTH_REQUIRED": (401, "Sign in to keep your learning streak going."),
    "INVALID_REQUEST": (422, "Duration and lesson count must be non-negative numbers."),
}


def streak_error_response(request: Request, error_code: str) -> JSONResponse:
    status_code, message = STREAK_ERRORS[error_code]
    request_id = getattr(request.state, "request_id", None) or str(uuid4())
    return JSONResponse(
        status_code=status_code,
        content={"error_code": error_code, "message": message, "request_id": request_id},
    )

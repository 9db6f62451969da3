"""Unified API response envelope.

All API endpoints return this format:
{
    "code": 0,           // 0=success, else the AppError code (1xxx-9xxx)
    "message": "success",
    "data": { ... },     // null on error
    "retryable": false,  // true only for transient failures (contention)
    "timestamp": "...",
    "request_id": "..."  // same id as the X-Request-ID header
}
"""

import uuid
from typing import Any

from pydantic import BaseModel, Field
from starlette.requests import Request

from src.tv_common.datetime_utils import utc_now
from src.tv_common.errors import AppError


def _new_request_id() -> str:
    return f"req_{uuid.uuid4().hex[:12]}"


class ApiResponse(BaseModel):
    code: int = 0
    message: str = "success"
    data: Any = None
    retryable: bool = False
    timestamp: str = Field(default_factory=lambda: utc_now().isoformat())
    request_id: str = Field(default_factory=_new_request_id)


def _request_id(request: Request | None) -> str:
    if request is None:
        return _new_request_id()
    return getattr(request.state, "request_id", None) or _new_request_id()


def success_response(data: Any = None, request: Request | None = None) -> ApiResponse:
    return ApiResponse(data=data, request_id=_request_id(request))


def error_response(exc: AppError, request: Request | None = None) -> ApiResponse:
    return ApiResponse(
        code=exc.code,
        message=exc.message,
        retryable=exc.retryable,
        request_id=_request_id(request),
    )

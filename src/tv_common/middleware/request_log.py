"""Request logging middleware.

Every request gets a request id in request.state (routers copy it into the
ApiResponse envelope) and in the X-Request-ID response header. A caller that
already sends a well-formed X-Request-ID, such as the fixture feed retrying a
settlement, keeps it, so both attempts correlate in the log.

Log format:
    INFO [POST] /api/v1/matches/settle → 200 (23ms) req_a1b2c3d4e5f6
Server errors and requests slower than SLOW_REQUEST_MS log at WARNING.
"""

import logging
import re
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from config.settings import settings

logger = logging.getLogger("tv.request")

_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9_.:-]{1,64}$")


def _request_id(request: Request) -> str:
    incoming = request.headers.get("X-Request-ID", "")
    if _REQUEST_ID_RE.match(incoming):
        return incoming
    return f"req_{uuid.uuid4().hex[:12]}"


class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = _request_id(request)
        request.state.request_id = request_id

        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000

        response.headers["X-Request-ID"] = request_id
        slow = elapsed_ms > settings.SLOW_REQUEST_MS
        level = logging.WARNING if response.status_code >= 500 or slow else logging.INFO
        logger.log(
            level,
            "[%s] %s → %d (%.0fms) %s%s",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            request_id,
            " SLOW" if slow else "",
        )
        return response

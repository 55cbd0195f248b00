"""
Request correlation middleware.

Every request carries an X-Request-ID: the caller's, when it is a sane
token, otherwise a fresh UUID. The id is exposed on request.state, echoed on
the response and bound to the logging context, so log lines and the audit
records a request produces can be joined on it.
"""

import re
import time
import uuid
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from rolekeeper.config import get_settings
from rolekeeper.logging_config import get_logger, request_id_var

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Upstream ids end up in audit context; keep them short and printable
_ACCEPTED_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


def resolve_request_id(incoming: Optional[str]) -> str:
    if incoming and _ACCEPTED_ID.match(incoming):
        return incoming
    return str(uuid.uuid4())


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind a correlation id to the request and report slow requests."""

    def __init__(self, app, slow_request_ms: Optional[int] = None):
        super().__init__(app)
        if slow_request_ms is None:
            slow_request_ms = get_settings().slow_request_ms
        self.slow_request_ms = slow_request_ms

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        token = request_id_var.set(request_id)

        start = time.perf_counter()
        try:
            response = await call_next(request)
            elapsed_ms = round((time.perf_counter() - start) * 1000, 1)
            response.headers[REQUEST_ID_HEADER] = request_id
            if elapsed_ms > self.slow_request_ms:
                logger.warning(
                    "Slow request",
                    extra={
                        "method": request.method,
                        "path": request.url.path,
                        "status_code": response.status_code,
                        "duration_ms": elapsed_ms,
                    },
                )
            return response
        finally:
            request_id_var.reset(token)

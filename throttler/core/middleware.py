"""HTTP middleware for request ID propagation and correlation.

- Accepts incoming X-Request-ID header or generates a UUID
- Stores request_id in contextvars so throttle logs can be correlated
- Injects request_id and total duration into response headers

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import time
import uuid

from fastapi import Request, Response

from throttler.core.config import settings
from throttler.core.logging import clear_request_id, set_request_id


async def request_id_middleware(request: Request, call_next) -> Response:
    """Generate or propagate the request correlation id.

    Rejections produced by the throttle middleware pass through here too, so
    they carry the same X-Request-ID as the log line that explains them.
    """

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    finally:
        clear_request_id()

    duration_ms = (time.perf_counter() - start) * 1000
    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response

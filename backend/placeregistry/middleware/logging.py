"""
Place Registry Backend — Access Log Middleware
================================================

What:  One log line per request: method, path, status, duration, caller.
How:   Logged on the "placeregistry.access" logger; the level follows the
       status class (5xx ERROR, 4xx WARNING, else INFO).

    POST /api/places 201 48.3ms [a1b2c3d4] actor=u_42 from 10.0.0.7

Never logged: request bodies (contact details, e-mail addresses) and
uploaded file contents.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from placeregistry.middleware.request_id import request_id_var

logger = logging.getLogger("placeregistry.access")

QUIET_PATHS = {"/health"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in QUIET_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"
        actor_id = request.headers.get("X-Actor-Id") or "-"
        rid = request_id_var.get("")

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] actor=%s from %s",
            request.method,
            path,
            status,
            duration_ms,
            rid,
            actor_id,
            client_ip,
            extra={
                "request_id": rid,
                "method": request.method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "actor_id": actor_id,
                "client_ip": client_ip,
            },
        )
        return response

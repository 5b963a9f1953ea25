"""
RecipeShare Backend: Request Logging Middleware
================================================

What:  One access-log line per request with status and duration.
How:   Wraps the downstream app, measures wall time with perf_counter and
       logs on the `recipeshare.access` logger at a level chosen by status:

           5xx → ERROR    4xx → WARNING    otherwise → INFO

    POST /api/recipes 201 38.4ms [a1b2c3d4] from 10.0.0.7

Request bodies and Authorization headers are never logged: bodies carry
user content and the header carries a bearer token.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from recipe_api.middleware.request_id import request_id_var

logger = logging.getLogger("recipeshare.access")

# Polled by container health checks every few seconds
QUIET_PATHS = {"/api/health"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in QUIET_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        client_ip = getattr(request.client, "host", "unknown") if request.client else "unknown"
        method = request.method

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        rid = request_id_var.get("")
        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] from %s",
            method,
            path,
            status,
            duration_ms,
            rid,
            client_ip,
            extra={
                "request_id": rid,
                "method": method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
            },
        )
        return response

"""
Request middleware: correlation ids, access logging and response headers.

Guest traffic carries share tokens in the path (/shared/{token}) or in a
``token`` query parameter, so neither may end up in logs, referrers or caches.
"""

import time
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.logging import log_request, log_response, set_correlation_id, get_correlation_id


def carries_share_token(request: Request) -> bool:
    return "/shared/" in request.url.path or "token" in request.query_params


class LoggingMiddleware(BaseHTTPMiddleware):
    """Assigns a correlation id and logs each request with its latency."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = set_correlation_id(request.headers.get("X-Correlation-ID"))
        log_request(request, request.method, request.url.path, correlation_id=correlation_id)

        started = time.perf_counter()
        response = None
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            log_response(status_code, (time.perf_counter() - started) * 1000, correlation_id)
            if response is not None:
                response.headers["X-Correlation-ID"] = correlation_id

        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Hardening headers; token-bearing responses are never cached."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        if carries_share_token(request):
            # Bodies hold signed URLs and capability flags
            response.headers["Cache-Control"] = "no-store"

        correlation_id = get_correlation_id()
        if correlation_id:
            response.headers["X-Correlation-ID"] = correlation_id

        return response

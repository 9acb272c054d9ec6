# ai_searcher/api/middleware.py
"""
Custom middleware for the FastAPI application
"""
import re
import time
import uuid
import logging
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from typing import Callable

logger = logging.getLogger(__name__)

# Caller-supplied request ids are echoed into logs and headers
REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,64}$")

# Routes that return a user's searches, feedback or learned preferences
PRIVATE_PATH_MARKERS = ("/history", "/analytics", "/learning/", "/feedback")

def resolve_request_id(header_value: str) -> str:
    if header_value and REQUEST_ID_PATTERN.match(header_value):
        return header_value
    return str(uuid.uuid4())

class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Assigns a request id and logs method, path, status, timing and caller.
    Health checks log at debug.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()
        request.state.request_id = resolve_request_id(request.headers.get("X-Request-ID", ""))

        method = request.method
        path = request.url.path
        caller = request.headers.get("X-User-ID") or (request.client.host if request.client else "unknown")
        extra = {"request_id": request.state.request_id}

        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.perf_counter() - start_time
            logger.error(f"{method} {path} - ERROR: {e} - {process_time:.3f}s - caller: {caller}", extra=extra)
            raise

        process_time = time.perf_counter() - start_time
        message = f"{method} {path} - {response.status_code} - {process_time:.3f}s - caller: {caller}"
        if response.status_code >= 500:
            logger.warning(message, extra=extra)
        elif path.endswith("/health"):
            logger.debug(message, extra=extra)
        else:
            logger.info(message, extra=extra)

        response.headers["X-Request-ID"] = request.state.request_id
        response.headers["X-Process-Time"] = f"{process_time:.3f}"
        return response

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Security headers on every response; per-user data is never cached
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if any(marker in request.url.path for marker in PRIVATE_PATH_MARKERS):
            response.headers["Cache-Control"] = "no-store"

        return response

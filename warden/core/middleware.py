"""CORS, request correlation, and access logging middleware."""

import logging
import time
import uuid

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from warden.core.config import settings

logger = logging.getLogger("warden")

REQUEST_ID_HEADER = "X-Request-Id"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id, time it, and keep token responses out of caches.

    An incoming ``X-Request-Id`` from a trusted proxy is kept so log lines
    can be correlated across hops.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()

        response: Response = await call_next(request)

        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Response-Time-Ms"] = str(elapsed_ms)
        if request.url.path.startswith(settings.REFRESH_COOKIE_PATH):
            # Responses here carry access tokens or set the refresh cookie
            response.headers["Cache-Control"] = "no-store"
            response.headers["Pragma"] = "no-cache"

        logger.info(
            "%s %s %s %sms client=%s request_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            request.client.host if request.client else "-",
            request_id,
        )
        return response


def setup_middleware(app: FastAPI) -> None:
    """Configure all middleware for the application."""
    # Credentials must be allowed for the browser to send the refresh cookie
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT"],
        allow_headers=["Authorization", "Content-Type", REQUEST_ID_HEADER],
        expose_headers=[REQUEST_ID_HEADER],
    )

    app.add_middleware(RequestContextMiddleware)

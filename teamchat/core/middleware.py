"""CORS, security headers, global rate limit, and request logging middleware."""

import uuid
import time
import logging

from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

from teamchat.core.config import settings
from teamchat.core.rate_limiter import api_limiter, format_reset_time

logger = logging.getLogger("teamchat")

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
}


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id, apply the per-client API budget, and log it."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        request.state.request_id = request_id
        start_time = time.time()

        client_id = get_remote_address(request)
        if request.url.path.startswith("/api/"):
            result = api_limiter.hit(client_id)
            if not result.allowed:
                logger.warning("Rate limit exceeded for %s on %s", client_id, request.url.path)
                response = JSONResponse(
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    content={"detail": {
                        "error": "Too many requests",
                        "reset_time": format_reset_time(result.reset_at),
                    }},
                )
                response.headers["X-Request-Id"] = request_id
                return response

        response: Response = await call_next(request)

        duration = round((time.time() - start_time) * 1000, 2)
        response.headers["X-Request-Id"] = request_id
        response.headers["X-Response-Time-Ms"] = str(duration)
        for header, value in SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)

        logger.info(
            "%s %s %s %sms [%s]",
            request.method,
            request.url.path,
            response.status_code,
            duration,
            request_id,
        )
        return response


def setup_middleware(app: FastAPI) -> None:
    """Configure all middleware for the application."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestContextMiddleware)

"""Middleware for client identification, rate limiting and error handling."""
import logging

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from hero_wheel.config import settings
from hero_wheel.errors import ErrorCode, WheelError
from hero_wheel.rate_limit import get_client_key
from hero_wheel.redis_service import redis_service
from hero_wheel.telemetry import RateLimitedEvent, telemetry_service


logger = logging.getLogger(__name__)

RATE_LIMIT_HEADER = "X-RateLimit-Remaining"


class ClientKeyMiddleware(BaseHTTPMiddleware):
    """Derive the client key from proxy headers and store it on request.state."""

    async def dispatch(self, request: Request, call_next):
        request.state.client_key = get_client_key(request.headers)
        return await call_next(request)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Fixed-window rate limit on the expensive endpoints.

    Uses `app.state.rate_limiter` (in-process) or the Redis backend, depending on
    settings.rate_limit_backend. Sets X-RateLimit-Remaining on every limited path.
    """

    # Paths that count against the quota
    LIMITED_PATHS = {"/upload", "/spin", "/generate"}

    async def dispatch(self, request: Request, call_next):
        if request.url.path not in self.LIMITED_PATHS or request.method != "POST":
            return await call_next(request)

        client_key = request.state.client_key
        backend = settings.rate_limit_backend
        if backend == "redis":
            decision = await redis_service.check_rate_limit(
                client_key,
                settings.rate_limit_max_requests,
                settings.rate_limit_window_ms,
            )
        else:
            decision = request.app.state.rate_limiter.check(client_key)

        remaining = {RATE_LIMIT_HEADER: str(decision.remaining)}
        if not decision.allowed:
            telemetry_service.emit_rate_limited(
                RateLimitedEvent(client_key=client_key, path=request.url.path, backend=backend)
            )
            return WheelError(
                ErrorCode.RATE_LIMIT_EXCEEDED,
                "Too many requests. Please try again later.",
                headers=remaining,
            ).to_response()

        try:
            response = await call_next(request)
        except WheelError as e:
            # Admitted requests that fail still report the quota
            response = e.to_response()
        response.headers[RATE_LIMIT_HEADER] = remaining[RATE_LIMIT_HEADER]
        return response


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Convert WheelError exceptions to protocol-compliant responses."""

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except WheelError as e:
            return e.to_response()
        except Exception as e:
            logger.exception("Unhandled error on %s %s", request.method, request.url.path)
            error = WheelError(
                ErrorCode.INTERNAL_ERROR,
                "Internal server error. Please try again.",
                details=str(e) if settings.debug else None,
            )
            return error.to_response()

"""
Global rate limiting.

A fixed-window request budget per client address, applied to every route by
slowapi's middleware. Responses carry the X-RateLimit-* headers, 429s
included.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from config import Settings
from errors import ErrorCode, error_body

logger = logging.getLogger(__name__)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning(f"Rate limit exceeded for {get_remote_address(request)} on {request.url.path}: {exc.detail}")
    response = JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=error_body("Too many requests, please try again later", ErrorCode.RATE_LIMIT_EXCEEDED),
    )
    return request.app.state.limiter._inject_headers(response, getattr(request.state, "view_rate_limit", None))


def setup_rate_limiting(app: FastAPI, settings: Settings) -> Limiter:
    """Attach a per-app limiter so each app instance counts independently."""
    limiter = Limiter(
        key_func=get_remote_address,
        default_limits=[settings.rate_limit],
        enabled=settings.rate_limit_enabled,
        headers_enabled=True,
    )
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)
    logger.debug(f"Rate limiting {'enabled' if settings.rate_limit_enabled else 'disabled'}: {settings.rate_limit}")
    return limiter

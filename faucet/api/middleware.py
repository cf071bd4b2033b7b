"""API middleware for rate limiting and idempotency keys."""

from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Request, status
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from ..config import settings
from ..utils.idempotency import IdempotencyKey

logger = logging.getLogger(__name__)


def create_limiter() -> Limiter:
    """Create the limiter used by rate-limited routes."""
    return Limiter(
        key_func=get_remote_address,
        enabled=True,
        swallow_errors=False,
        headers_enabled=True,
    )


# Module-level limiter so routes can decorate at import time
limiter = create_limiter()


def setup_rate_limiting(app: FastAPI) -> None:
    """Attach the limiter to the app and render 429s as JSON."""
    app.state.limiter = limiter

    def rate_limit_handler(_request: Request, exc: Exception) -> JSONResponse:
        """Handle rate limit exceeded errors."""
        rate_exc = exc if isinstance(exc, RateLimitExceeded) else None
        limit_detail = (
            str(rate_exc.limit) if rate_exc and hasattr(rate_exc, "limit") else "Unknown limit"
        )

        return JSONResponse(
            status_code=429,
            content={
                "error": "rate_limit_exceeded",
                "detail": f"Too many requests. {limit_detail}",
            },
            headers={"Retry-After": "60"},
        )

    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)


def rate_limit_requests() -> str:
    """Rate limit for the disbursement endpoint."""
    return settings.REQUEST_RATE_LIMIT


def get_idempotency_key(request: Request) -> str | None:
    """Extract and validate the Idempotency-Key header."""
    key = request.headers.get("Idempotency-Key")
    if key is None:
        return None

    if not IdempotencyKey.validate(key):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid Idempotency-Key: 8-255 characters of letters, digits, '-' or '_'",
        )
    return key

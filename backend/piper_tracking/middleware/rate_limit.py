"""
Rate limiting middleware using slowapi.

Only routes decorated with ``limiter.limit`` are limited; the tracking pixel
and click redirect are never limited.
"""

from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import HTTPException, Request

from piper_tracking.core.config import settings
from piper_tracking.core.security import decode_token


def _get_user_key(request: Request) -> str:
    """Extract user ID from JWT for per-user rate limiting."""
    # Try to get user from auth header
    auth = request.headers.get("Authorization", "")
    if auth.startswith("Bearer "):
        try:
            token_data = decode_token(auth[7:])
            return f"user:{token_data.user_id}"
        except HTTPException:
            pass
    return get_remote_address(request)


# Create limiter with user-based key
limiter = Limiter(
    key_func=_get_user_key,
    default_limits=[settings.rate_limit_default],
    storage_uri="memory://",
    enabled=settings.rate_limit_enabled,
)


def setup_rate_limiting(app):
    """Configure rate limiting for the FastAPI app."""
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

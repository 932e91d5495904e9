"""
Per-client rate limiting for the upload endpoints.

Example usage:
    @router.post("/upload")
    @get_rate_limit_decorator()
    async def upload(request: Request, ...):
        ...
"""

import os

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from core import config
from core.errors import error_response
from core.logging import get_logger, log_with_context

logger = get_logger(__name__)

limiter = Limiter(key_func=get_remote_address)


def get_rate_limit_decorator():
    """
    Get rate limit decorator, with option to disable for testing.

    Returns:
        Decorator function for rate limiting
    """
    # Check if rate limiting is disabled for testing
    if os.environ.get("BH_TEST_DISABLE_RATELIMIT", "").lower() in ["1", "true"]:
        def no_limit_decorator(func):
            return func
        return no_limit_decorator
    return limiter.limit(f"{config.RATE_LIMIT_PER_MIN}/minute")


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    log_with_context(logger, "warning", f"Rate limit exceeded: {exc.detail}", request=request)
    return error_response(f"Rate limit exceeded: {exc.detail}", 429)

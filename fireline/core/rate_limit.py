"""
rate_limit.py — Global rate limiter for the region service.

Uses slowapi (a Starlette-compatible wrapper around the `limits` library).
Requests are keyed by client IP address. Write routes opt in with
@limiter.limit("N/minute") and a `request: Request` parameter.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from fireline.core.config import settings

WRITE_LIMIT = "60/minute"

limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)

"""
Rate Limiting Configuration

This module provides rate limiting functionality for API endpoints.
Rate limiting prevents abuse and ensures fair usage.

Design Decisions:
- Uses slowapi for rate limiting (lightweight, FastAPI-compatible)
- Different limits for different endpoints
- IP-based limiting (can be extended to owner-based)
- Can be switched off through RATE_LIMIT_ENABLED (tests, internal deployments)
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from shortlinks.core.setting import settings

limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)

# Format: "count/period" (e.g., "10/minute" means 10 requests per minute)
RATE_LIMITS = {
    "create": "10/minute",  # Link creation: 10 per minute per IP
    "redirect": "100/minute",  # Redirects: 100 per minute per IP
    "verify": "20/minute",  # Password checks: keeps guessing slow
    "analytics": "30/minute",  # Reporting queries: 30 per minute per IP
}

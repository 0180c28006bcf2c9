"""
Input Validators and Sanitizers

This module provides validation and sanitization functions for user inputs.
These functions help prevent security issues and ensure data integrity.

Security Considerations:
- Input validation prevents injection attacks
- Handles share one restricted charset, so they are safe in paths and queries
- Length limits prevent DoS attacks
"""

import re
from typing import Optional
from urllib.parse import urlparse

HANDLE_PATTERN = re.compile(r'[A-Za-z0-9_-]+')

MAX_URL_LENGTH = 2048
MAX_HANDLE_LENGTH = 64


def sanitize_handle(handle: str) -> Optional[str]:
    """
    Sanitize and validate a public handle (token or alias).

    Handles only contain letters, digits, hyphens and underscores. Tokens are
    base62 and aliases are user-chosen from the same charset.

    Args:
        handle: The handle taken from the request path

    Returns:
        Sanitized handle if valid, None otherwise
    """
    if not handle or not isinstance(handle, str):
        return None

    handle = handle.strip()

    if len(handle) > MAX_HANDLE_LENGTH:
        return None

    if not HANDLE_PATTERN.fullmatch(handle):
        return None

    return handle


def is_valid_alias(alias: str, max_length: int = 50) -> bool:
    """Check an alias against the handle charset and the configured length."""
    if not alias or not isinstance(alias, str):
        return False
    return len(alias) <= max_length and bool(HANDLE_PATTERN.fullmatch(alias))


def validate_url_length(url: str, max_length: int = MAX_URL_LENGTH) -> bool:
    """
    Validate URL length to prevent DoS attacks.

    Args:
        url: The URL to validate
        max_length: Maximum allowed length (default: 2048 per RFC 7230)

    Returns:
        True if URL length is valid, False otherwise
    """
    return bool(url) and len(url) <= max_length


def is_valid_url(url: str) -> bool:
    """
    Validate that a destination is an absolute http(s) URL.

    Any syntactically valid absolute http(s) URL with a host is accepted;
    the scheme allow-list keeps out javascript:, data:, file: and the like.

    Args:
        url: The URL string to validate

    Returns:
        True if valid and safe, False otherwise
    """
    if not isinstance(url, str) or not validate_url_length(url):
        return False

    try:
        result = urlparse(url)
    except ValueError:
        return False

    if not result.scheme or not result.netloc:
        return False

    if result.scheme.lower() not in {'http', 'https'}:
        return False

    try:
        result.port  # raises on a non-numeric or out-of-range port
    except ValueError:
        return False

    return bool(result.hostname)

"""
Custom Exceptions

This module defines the error taxonomy shared by the registry, resolution
and analytics services. The API layer maps each family to one HTTP status:

- ValidationError: 400, never retried
- ConflictError: 409, caller may retry with different input
- LinkNotFoundError: 404
- GateError: 410 (expired) or 401 (password gate)
- TransientStorageError: 503, retryable
"""

from typing import Optional


class LinkShortenerException(Exception):
    """Base exception for the link shortener service."""
    pass


class ValidationError(LinkShortenerException):
    """Raised when caller input is malformed."""
    pass


class InvalidURLError(ValidationError):
    """Raised when URL validation fails."""

    def __init__(self, url: str, reason: str = "Invalid URL format"):
        self.url = url
        self.reason = reason
        super().__init__(f"{reason}: {url}")


class InvalidAliasError(ValidationError):
    """Raised when a custom alias uses characters outside [A-Za-z0-9_-]."""

    def __init__(self, alias: str, reason: str = "Alias may only contain letters, numbers, hyphens and underscores"):
        self.alias = alias
        self.reason = reason
        super().__init__(f"{reason}: '{alias}'")


class PasswordNotProvidedError(ValidationError):
    """Raised when password protection is requested without a password."""

    def __init__(self):
        super().__init__("Password is required when password protection is enabled")


class NotPasswordProtectedError(ValidationError):
    """Raised by the verify-password flow for links without a password."""

    def __init__(self, handle: str):
        self.handle = handle
        super().__init__(f"Link '{handle}' is not password protected")


class ConflictError(LinkShortenerException):
    """Raised when a write would break a uniqueness rule."""
    pass


class AliasTakenError(ConflictError):
    """Raised when an alias collides with an existing token or alias."""

    def __init__(self, alias: str):
        self.alias = alias
        super().__init__(f"Alias '{alias}' is already taken")


class LinkNotFoundError(LinkShortenerException):
    """Raised when a handle or link id does not resolve (or is not owned by the caller)."""

    def __init__(self, handle: str):
        self.handle = handle
        super().__init__(f"Link '{handle}' not found")


class GateError(LinkShortenerException):
    """Raised when a link exists but a resolution-time gate blocks it."""

    def __init__(self, handle: str, message: str):
        self.handle = handle
        super().__init__(message)


class LinkExpiredError(GateError):
    """Raised when a link's expiry instant has passed."""

    def __init__(self, handle: str):
        super().__init__(handle, f"Link '{handle}' has expired")


class PasswordRequiredError(GateError):
    """Raised when a protected link is resolved without a password."""

    def __init__(self, handle: str):
        super().__init__(handle, "Password required")


class PasswordIncorrectError(GateError):
    """Raised when the supplied password does not match."""

    def __init__(self, handle: str):
        super().__init__(handle, "Incorrect password")


class TransientStorageError(LinkShortenerException):
    """Raised when storage times out or the connection fails."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        self.original_error = original_error
        super().__init__(f"Storage unavailable: {message}")

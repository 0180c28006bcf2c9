"""
Token Generation

Tokens are random base62 strings of fixed length drawn from the OS CSPRNG.
At 8 characters the space holds 62**8 (about 2.2e14) values, so collisions
are rare enough that the registry simply retries with a fresh token.

Why Base62?
- URL-safe (no special characters)
- Case-sensitive (more combinations per character)
- Subset of the alias charset, so tokens and aliases share one namespace
"""

import secrets

BASE62_CHARS = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"
BASE62_LENGTH = len(BASE62_CHARS)


def encode_base62(number: int, min_length: int = 8) -> str:
    """
    Encode a number to base62 string with fixed length.

    Args:
        number: The number to convert
        min_length: Minimum length of the code (default: 8)

    Returns:
        Base62 encoded string, left-padded with '0' to min_length

    Example:
        encode_base62(0) -> "00000000"
        encode_base62(62) -> "00000010"
    """
    if number == 0:
        return BASE62_CHARS[0] * min_length

    digits = []
    while number > 0:
        remainder = number % BASE62_LENGTH
        digits.append(BASE62_CHARS[remainder])
        number //= BASE62_LENGTH

    code = ''.join(reversed(digits))

    if len(code) < min_length:
        code = BASE62_CHARS[0] * (min_length - len(code)) + code

    return code


def generate_token(length: int = 8) -> str:
    """Return a fresh random token of exactly ``length`` characters."""
    return encode_base62(secrets.randbelow(BASE62_LENGTH ** length), min_length=length)

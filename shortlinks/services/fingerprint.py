"""
Visitor Fingerprinting

A visitor key is a best-effort pseudo-identity for a device/browser/network
combination: 64-bit FNV-1a over ``remote_address|user_agent|accept_language``
rendered in base36. No salt is involved, so the same inputs give the same key
in every process.

Same human on a different network gets a different key, and different humans
behind one NAT with identical browsers share a key. Both are accepted.
"""

from typing import Optional

FNV_OFFSET_BASIS = 0xCBF29CE484222325
FNV_PRIME = 0x100000001B3
MASK_64 = 0xFFFFFFFFFFFFFFFF

SEPARATOR = "|"
BASE36_CHARS = "0123456789abcdefghijklmnopqrstuvwxyz"


def _fnv1a_64(data: bytes) -> int:
    value = FNV_OFFSET_BASIS
    for byte in data:
        value ^= byte
        value = (value * FNV_PRIME) & MASK_64
    return value


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(BASE36_CHARS[remainder])
    return "".join(reversed(digits))


def compute_visitor_key(
    remote_address: Optional[str],
    user_agent: Optional[str],
    accept_language: Optional[str],
) -> str:
    """
    Derive the visitor key for a request.

    Never raises: missing inputs count as empty strings.

    Args:
        remote_address: Client IP as seen by the service
        user_agent: Raw User-Agent header
        accept_language: Raw Accept-Language header

    Returns:
        Short lowercase alphanumeric key (at most 13 characters)
    """
    parts = [str(value) if value is not None else "" for value in (remote_address, user_agent, accept_language)]
    combined = SEPARATOR.join(parts)
    return _to_base36(_fnv1a_64(combined.encode("utf-8", errors="replace")))

"""
Client Metadata Extraction

Turns raw request attributes into the labels stored on a visit:
- parse_user_agent: browser, OS and device family from the User-Agent
- lookup_geo: coarse location for an IP address

User agents are parsed with the user-agents library (ua-parser regexes).
Geo lookups read a MaxMind GeoIP2/GeoLite2 City database named by
GEOIP_DATABASE_PATH; without one every lookup misses. Labels that cannot be
determined stay None and the analytics breakdowns substitute their
placeholders ("Unknown", "desktop").
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Optional

import geoip2.database
import geoip2.errors
import maxminddb
from user_agents import parse as parse_ua

from shortlinks.core.setting import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VisitContext:
    """Raw request attributes needed to fingerprint and describe a visit."""
    remote_address: Optional[str] = None
    user_agent: Optional[str] = None
    accept_language: Optional[str] = None
    referrer: Optional[str] = None


@dataclass(frozen=True)
class ClientMeta:
    browser_name: Optional[str] = None
    browser_version: Optional[str] = None
    os_name: Optional[str] = None
    os_version: Optional[str] = None
    device_type: Optional[str] = None


@dataclass(frozen=True)
class GeoInfo:
    country: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None
    time_zone: Optional[str] = None


GeoLookup = Callable[[Optional[str]], Optional[GeoInfo]]

# ua-parser's label for anything it cannot identify
UNKNOWN_FAMILY = "Other"


def _label(value: Optional[str]) -> Optional[str]:
    return value if value and value != UNKNOWN_FAMILY else None


def parse_user_agent(user_agent: Optional[str]) -> ClientMeta:
    """
    Extract browser, OS and device family from a User-Agent string.

    Families and versions are the user-agents library's labels
    (e.g. "Mobile Safari", "Mac OS X"). Unidentified values stay None.
    Returns an empty ClientMeta when the header is missing.
    """
    if not user_agent:
        return ClientMeta()

    parsed = parse_ua(user_agent)
    if parsed.is_tablet:
        device_type = "tablet"
    elif parsed.is_mobile:
        device_type = "mobile"
    else:
        device_type = "desktop"

    browser_name = _label(parsed.browser.family)
    os_name = _label(parsed.os.family)
    return ClientMeta(
        browser_name=browser_name,
        browser_version=(parsed.browser.version_string or None) if browser_name else None,
        os_name=os_name,
        os_version=(parsed.os.version_string or None) if os_name else None,
        device_type=device_type,
    )


@lru_cache(maxsize=None)
def _geoip_reader(database_path: str) -> Optional[geoip2.database.Reader]:
    """Open the GeoIP database once per path; None when it cannot be read."""
    try:
        return geoip2.database.Reader(database_path)
    except (OSError, maxminddb.InvalidDatabaseError):
        logger.error(f"GeoIP database unusable at {database_path}, geo lookup disabled", exc_info=True)
        return None


def lookup_geo(remote_address: Optional[str]) -> Optional[GeoInfo]:
    """
    Coarse location for an IP address from the configured GeoIP database.

    Returns None when no database is configured, the address is not a valid
    IP, or the database has no entry for it.
    """
    if not remote_address or not settings.GEOIP_DATABASE_PATH:
        return None

    reader = _geoip_reader(settings.GEOIP_DATABASE_PATH)
    if reader is None:
        return None

    try:
        response = reader.city(remote_address)
    except (geoip2.errors.GeoIP2Error, ValueError):
        return None

    return GeoInfo(
        country=response.country.iso_code,
        region=response.subdivisions.most_specific.iso_code,
        city=response.city.name,
        time_zone=response.location.time_zone,
    )

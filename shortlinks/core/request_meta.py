"""
Request Attribute Extraction

Helpers shared by the endpoints and the logging middleware for pulling
client attributes out of a Starlette request.
"""

from starlette.requests import Request

from shortlinks.services.client_meta import VisitContext


def get_client_ip(request: Request) -> str:
    """
    Extract client IP address from request.

    Handles proxies and load balancers by checking X-Forwarded-For header.

    Args:
        request: FastAPI Request object

    Returns:
        IP address as string
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # X-Forwarded-For can contain multiple IPs, take the first one
        return forwarded_for.split(",")[0].strip()

    return request.client.host if request.client else "unknown"


def build_visit_context(request: Request) -> VisitContext:
    """Collect the attributes the fingerprint and visit recorder consume."""
    return VisitContext(
        remote_address=get_client_ip(request),
        user_agent=request.headers.get("User-Agent"),
        accept_language=request.headers.get("Accept-Language"),
        referrer=request.headers.get("Referer"),
    )

"""
FastAPI Endpoints for the Link Shortener Service

This module defines all REST API endpoints with minimal logic.
Endpoints only handle:
- Request validation (Pydantic models)
- Rate limiting
- Owner identity from the authentication layer
- Translating service exceptions into HTTP responses

All business logic is in services.

Owner identity arrives as the opaque X-Owner-Id header set by the
authentication proxy in front of this service.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, Response, status
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shortlinks.api.schemas import (
    CreateLinkRequest,
    DashboardResponse,
    LinkAnalyticsResponse,
    LinkListResponse,
    LinkResponse,
    UpdateLinkRequest,
    VerifyPasswordRequest,
    VerifyPasswordResponse,
)
from shortlinks.core.exceptions import (
    ConflictError,
    LinkExpiredError,
    LinkNotFoundError,
    LinkShortenerException,
    PasswordIncorrectError,
    PasswordRequiredError,
    TransientStorageError,
    ValidationError,
)
from shortlinks.core.rate_limit import RATE_LIMITS, limiter
from shortlinks.core.request_meta import build_visit_context
from shortlinks.core.setting import settings
from shortlinks.core.validators import sanitize_handle
from shortlinks.db.models import Link
from shortlinks.db.session import get_session, get_session_factory
from shortlinks.services.analytics_service import AnalyticsService, Period
from shortlinks.services.link_registry import LinkRegistry
from shortlinks.services.resolution_service import ResolutionService
from shortlinks.services.visit_recorder import VisitRecorder

router = APIRouter()


def get_owner_id(x_owner_id: Optional[str] = Header(default=None)) -> Optional[str]:
    """Caller identity, None for anonymous callers."""
    return x_owner_id or None


def require_owner_id(owner_id: Optional[str] = Depends(get_owner_id)) -> str:
    if owner_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required"
        )
    return owner_id


def get_visit_recorder(
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> VisitRecorder:
    return VisitRecorder(session_factory)


def to_http_exception(exc: LinkShortenerException) -> HTTPException:
    """
    Map a service exception onto its HTTP status.

    PasswordRequired carries a machine-readable flag and the handle so the
    client can prompt and retry.
    """
    if isinstance(exc, PasswordRequiredError):
        return HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": str(exc), "requires_password": True, "handle": exc.handle},
        )
    if isinstance(exc, PasswordIncorrectError):
        return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc))
    if isinstance(exc, LinkExpiredError):
        return HTTPException(status_code=status.HTTP_410_GONE, detail=str(exc))
    if isinstance(exc, LinkNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, TransientStorageError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def to_link_response(link: Link) -> LinkResponse:
    return LinkResponse(
        id=link.id,
        token=link.token,
        alias=link.alias,
        short_handle=link.short_handle,
        short_url=f"{settings.BASE_URL}/{link.short_handle}",
        destination=link.destination,
        owner_id=link.owner_id,
        created_at=link.created_at,
        expires_at=link.expires_at,
        password_protected=link.password_protected,
        active=link.active,
        click_count=link.click_count,
        unique_visitor_count=link.unique_visitor_count,
        last_accessed_at=link.last_accessed_at,
    )


def checked_handle(handle: str) -> str:
    sanitized = sanitize_handle(handle)
    if not sanitized:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid handle format: '{handle}'. Handles may only contain letters, digits, '-' and '_'."
        )
    return sanitized


@router.post(
    "/api/links",
    response_model=LinkResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a short link",
)
@limiter.limit(RATE_LIMITS["create"])
async def create_link(
    request: Request,  # Required for rate limiting (slowapi expects parameter named 'request')
    body: CreateLinkRequest,
    owner_id: Optional[str] = Depends(get_owner_id),
    session: AsyncSession = Depends(get_session),
) -> LinkResponse:
    """Create a link with a generated token and optional alias, expiry and password."""
    try:
        link = await LinkRegistry(session).create(
            destination=body.destination,
            alias=body.alias,
            expires_at=body.expires_at,
            password=body.password,
            password_protected=body.password_protected,
            owner_id=owner_id,
        )
    except LinkShortenerException as e:
        raise to_http_exception(e)
    return to_link_response(link)


@router.get("/api/links", response_model=LinkListResponse, summary="List the caller's links")
async def list_links(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    search: Optional[str] = Query(default=None, max_length=200),
    owner_id: str = Depends(require_owner_id),
    session: AsyncSession = Depends(get_session),
) -> LinkListResponse:
    links, pagination = await LinkRegistry(session).list_owned(owner_id, page=page, limit=limit, search=search)
    return LinkListResponse(links=[to_link_response(link) for link in links], pagination=pagination)


@router.get("/api/links/{link_id}", response_model=LinkResponse, summary="Get one of the caller's links")
async def get_link(
    link_id: int,
    owner_id: str = Depends(require_owner_id),
    session: AsyncSession = Depends(get_session),
) -> LinkResponse:
    try:
        link = await LinkRegistry(session).get_owned(link_id, owner_id)
    except LinkShortenerException as e:
        raise to_http_exception(e)
    return to_link_response(link)


@router.patch("/api/links/{link_id}", response_model=LinkResponse, summary="Edit a link")
async def update_link(
    link_id: int,
    body: UpdateLinkRequest,
    owner_id: str = Depends(require_owner_id),
    session: AsyncSession = Depends(get_session),
) -> LinkResponse:
    """Change destination, alias, expiry, password or active flag. Only sent fields change."""
    try:
        link = await LinkRegistry(session).update(link_id, owner_id, body.model_dump(exclude_unset=True))
    except LinkShortenerException as e:
        raise to_http_exception(e)
    return to_link_response(link)


@router.delete("/api/links/{link_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a link")
async def delete_link(
    link_id: int,
    owner_id: str = Depends(require_owner_id),
    session: AsyncSession = Depends(get_session),
) -> Response:
    try:
        await LinkRegistry(session).delete(link_id, owner_id)
    except LinkShortenerException as e:
        raise to_http_exception(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/api/analytics/links/{link_id}",
    response_model=LinkAnalyticsResponse,
    summary="Analytics for one link",
)
@limiter.limit(RATE_LIMITS["analytics"])
async def link_analytics(
    request: Request,
    link_id: int,
    period: Period = Query(default=Period.LAST_7D),
    owner_id: str = Depends(require_owner_id),
    session: AsyncSession = Depends(get_session),
) -> LinkAnalyticsResponse:
    try:
        report = await AnalyticsService(session).summarize(link_id, period, owner_id=owner_id)
    except LinkShortenerException as e:
        raise to_http_exception(e)
    return LinkAnalyticsResponse(**report)


@router.get(
    "/api/analytics/dashboard",
    response_model=DashboardResponse,
    summary="Rollup across the caller's links",
)
@limiter.limit(RATE_LIMITS["analytics"])
async def dashboard(
    request: Request,
    period: Period = Query(default=Period.LAST_7D),
    owner_id: str = Depends(require_owner_id),
    session: AsyncSession = Depends(get_session),
) -> DashboardResponse:
    try:
        report = await AnalyticsService(session).dashboard(owner_id, period)
    except LinkShortenerException as e:
        raise to_http_exception(e)
    return DashboardResponse(**report)


@router.get(
    "/{handle}",
    status_code=status.HTTP_302_FOUND,
    summary="Redirect to the destination",
    description="Resolves a token or alias, applies expiry and password gates, records the visit and redirects",
)
@limiter.limit(RATE_LIMITS["redirect"])
async def redirect_to_destination(
    handle: str,
    request: Request,
    password: Optional[str] = Query(default=None),
    session: AsyncSession = Depends(get_session),
    recorder: VisitRecorder = Depends(get_visit_recorder),
) -> RedirectResponse:
    """
    Redirect to the destination for a handle.

    Raises:
        HTTPException 400: malformed handle
        HTTPException 401: password required or incorrect
        HTTPException 404: unknown or inactive handle
        HTTPException 410: expired link
        HTTPException 503: storage unavailable
    """
    handle = checked_handle(handle)
    try:
        resolution = await ResolutionService(session, recorder).resolve(
            handle, password=password, context=build_visit_context(request)
        )
    except LinkShortenerException as e:
        raise to_http_exception(e)

    return RedirectResponse(url=resolution.destination, status_code=status.HTTP_302_FOUND)


@router.post(
    "/{handle}/verify-password",
    response_model=VerifyPasswordResponse,
    summary="Check a link password without redirecting",
)
@limiter.limit(RATE_LIMITS["verify"])
async def verify_link_password(
    handle: str,
    request: Request,
    body: VerifyPasswordRequest,
    session: AsyncSession = Depends(get_session),
    recorder: VisitRecorder = Depends(get_visit_recorder),
) -> VerifyPasswordResponse:
    handle = checked_handle(handle)
    try:
        resolution = await ResolutionService(session, recorder).verify_password(
            handle, body.password, context=build_visit_context(request)
        )
    except LinkShortenerException as e:
        raise to_http_exception(e)

    return VerifyPasswordResponse(success=True, destination=resolution.destination)

"""
API Request and Response Schemas

This module defines all Pydantic models for API requests and responses.
Separated from endpoints to keep concerns separated and enable reuse.

Design Principles:
- Request models: Define input shape; business validation stays in services
- Response models: Define output structure, never expose password hashes
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CreateLinkRequest(BaseModel):
    """Request model for link creation."""
    destination: str = Field(..., description="Absolute http(s) URL to shorten")
    alias: Optional[str] = Field(default=None, description="Custom handle (letters, digits, '-', '_')")
    expires_at: Optional[datetime] = Field(default=None, description="Instant after which the link stops resolving")
    password_protected: Optional[bool] = Field(default=None, description="Require a password at resolution")
    password: Optional[str] = Field(default=None, description="Password for protected links")


class UpdateLinkRequest(BaseModel):
    """Request model for owner edits. Only fields sent are changed."""
    destination: Optional[str] = None
    alias: Optional[str] = None
    expires_at: Optional[datetime] = None
    password_protected: Optional[bool] = None
    password: Optional[str] = None
    active: Optional[bool] = None


class LinkResponse(BaseModel):
    """Public view of a link."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    token: str
    alias: Optional[str] = None
    short_handle: str
    short_url: str
    destination: str
    owner_id: Optional[str] = None
    created_at: datetime
    expires_at: Optional[datetime] = None
    password_protected: bool
    active: bool
    click_count: int
    unique_visitor_count: int
    last_accessed_at: Optional[datetime] = None


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_links: int
    has_next: bool
    has_prev: bool


class LinkListResponse(BaseModel):
    links: list[LinkResponse]
    pagination: Pagination


class VerifyPasswordRequest(BaseModel):
    password: Optional[str] = None


class VerifyPasswordResponse(BaseModel):
    success: bool = True
    destination: str


class LinkInfo(BaseModel):
    id: int
    destination: str
    short_handle: str
    created_at: datetime


class SummaryStats(BaseModel):
    total_clicks: int
    total_unique_visitors: int
    period_clicks: int
    period_unique_visitors: int
    average_clicks_per_day: float


class TimeSeriesPoint(BaseModel):
    date: str
    clicks: int
    unique_visitors: int


class DeviceCount(BaseModel):
    device: str
    count: int


class BrowserCount(BaseModel):
    browser: str
    count: int


class CountryCount(BaseModel):
    country: str
    count: int


class ReferrerCount(BaseModel):
    referrer: str
    count: int


class Charts(BaseModel):
    time_series: list[TimeSeriesPoint]
    devices: list[DeviceCount]
    browsers: list[BrowserCount]
    locations: list[CountryCount]
    referrers: list[ReferrerCount]


class PeriodInfo(BaseModel):
    start: datetime
    end: datetime
    type: str


class LinkAnalyticsResponse(BaseModel):
    """Response model for per-link analytics."""
    link: LinkInfo
    summary: SummaryStats
    charts: Charts
    period: PeriodInfo


class DashboardStats(BaseModel):
    total_links: int
    total_clicks: int
    total_unique_visitors: int
    period_clicks: int
    period_unique_visitors: int
    active_links: int
    expired_links: int


class TopLink(BaseModel):
    id: int
    short_handle: str
    destination: str
    clicks: int
    unique_visitors: int


class RecentVisit(BaseModel):
    id: int
    link_id: int
    short_handle: str
    destination: str
    timestamp: datetime
    visitor_key: str
    country: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None
    device_type: str
    browser: str


class DashboardResponse(BaseModel):
    """Response model for the owner dashboard."""
    stats: DashboardStats
    top_links: list[TopLink]
    recent_activity: list[RecentVisit]

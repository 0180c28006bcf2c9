"""
Analytics Service

Read-only reporting over recorded visits:
- summarize: per-link summary, daily time series and four breakdowns
- dashboard: rollup across every link an owner has

Design Decisions:
- Lifetime totals come from the link counters, so they survive event pruning
- Period figures are computed on demand from visit_events; no background jobs
- Breakdown helpers are pure functions over a list of events
"""

import asyncio
import logging
from collections import Counter
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Callable, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from shortlinks.core.exceptions import LinkNotFoundError, TransientStorageError
from shortlinks.core.setting import settings
from shortlinks.db.models import Link, VisitEvent, utcnow

logger = logging.getLogger(__name__)


class Period(str, Enum):
    """Reporting windows, each ending at query time."""
    LAST_24H = "24h"
    LAST_7D = "7d"
    LAST_30D = "30d"
    LAST_90D = "90d"

    @property
    def window(self) -> timedelta:
        return {
            Period.LAST_24H: timedelta(days=1),
            Period.LAST_7D: timedelta(days=7),
            Period.LAST_30D: timedelta(days=30),
            Period.LAST_90D: timedelta(days=90),
        }[self]

    def bounds(self, now: Optional[datetime] = None) -> tuple[datetime, datetime]:
        end = now or utcnow()
        return end - self.window, end


def build_time_series(events: list[VisitEvent], start: datetime, end: datetime) -> list[dict[str, Any]]:
    """
    One bucket per UTC calendar day from start to end, both inclusive.

    Days without visits are present with zero counts.
    """
    clicks: Counter = Counter()
    uniques: Counter = Counter()
    for event in events:
        day = event.timestamp.date()
        clicks[day] += 1
        if event.is_unique_for_link:
            uniques[day] += 1

    series = []
    day: date = start.date()
    while day <= end.date():
        series.append({
            "date": day.isoformat(),
            "clicks": clicks[day],
            "unique_visitors": uniques[day],
        })
        day += timedelta(days=1)
    return series


def count_by(
    events: list[VisitEvent],
    label_of: Callable[[VisitEvent], Optional[str]],
    placeholder: str,
    key: str,
) -> list[dict[str, Any]]:
    """
    Group events by a label, substituting ``placeholder`` for missing ones.

    Returns rows ``{key: label, "count": n}``, most frequent first.
    """
    counts = Counter(label_of(event) or placeholder for event in events)
    return [
        {key: label, "count": count}
        for label, count in sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    ]


def device_breakdown(events: list[VisitEvent]) -> list[dict[str, Any]]:
    return count_by(events, lambda e: e.device_type, "desktop", "device")


def browser_breakdown(events: list[VisitEvent]) -> list[dict[str, Any]]:
    return count_by(events, lambda e: e.browser_name, "Unknown", "browser")


def location_breakdown(events: list[VisitEvent]) -> list[dict[str, Any]]:
    return count_by(events, lambda e: e.country, "Unknown", "country")


def referrer_breakdown(events: list[VisitEvent]) -> list[dict[str, Any]]:
    return count_by(events, lambda e: e.referrer, "Direct", "referrer")


class AnalyticsService:
    """
    Service for analytics queries.

    Ownership is enforced when an owner is given; storage trouble surfaces
    as TransientStorageError so callers can retry.
    """

    def __init__(self, session: AsyncSession, timeout: Optional[float] = None):
        self.session = session
        self.timeout = timeout if timeout is not None else settings.REQUEST_TIMEOUT_SECONDS

    async def _bounded(self, coro):
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise TransientStorageError("analytics query timed out", original_error=e)
        except SQLAlchemyError as e:
            raise TransientStorageError("analytics query failed", original_error=e)

    async def _events_between(self, link_ids: list[int], start: datetime, end: datetime) -> list[VisitEvent]:
        if not link_ids:
            return []
        statement = (
            select(VisitEvent)
            .where(
                VisitEvent.link_id.in_(link_ids),
                VisitEvent.timestamp >= start,
                VisitEvent.timestamp <= end,
            )
            .order_by(VisitEvent.timestamp.asc(), VisitEvent.id.asc())
        )
        result = await self.session.execute(statement)
        return list(result.scalars().all())

    async def _load_summary(self, link_id: int, owner_id: Optional[str], period: Period, now: Optional[datetime]):
        link = await self.session.get(Link, link_id)
        if link is None or (owner_id is not None and link.owner_id != owner_id):
            raise LinkNotFoundError(str(link_id))
        start, end = period.bounds(now)
        events = await self._events_between([link.id], start, end)
        return link, events, start, end

    async def summarize(
        self,
        link_id: int,
        period: Period = Period.LAST_7D,
        owner_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """
        Summary, time series and breakdowns for one link.

        Args:
            link_id: Link to report on
            period: Reporting window
            owner_id: When given, the link must belong to this owner
            now: Window end (defaults to the current time)

        Returns:
            Dictionary with ``link``, ``summary``, ``charts`` and ``period``

        Raises:
            LinkNotFoundError: unknown link or not owned by owner_id
            TransientStorageError: query failed or timed out
        """
        link, events, start, end = await self._bounded(self._load_summary(link_id, owner_id, period, now))

        period_clicks = len(events)
        window_days = period.window.total_seconds() / 86400

        return {
            "link": {
                "id": link.id,
                "destination": link.destination,
                "short_handle": link.short_handle,
                "created_at": link.created_at,
            },
            "summary": {
                "total_clicks": link.click_count,
                "total_unique_visitors": link.unique_visitor_count,
                "period_clicks": period_clicks,
                "period_unique_visitors": sum(1 for e in events if e.is_unique_for_link),
                "average_clicks_per_day": round(period_clicks / window_days, 2),
            },
            "charts": {
                "time_series": build_time_series(events, start, end),
                "devices": device_breakdown(events),
                "browsers": browser_breakdown(events),
                "locations": location_breakdown(events),
                "referrers": referrer_breakdown(events),
            },
            "period": {"start": start, "end": end, "type": period.value},
        }

    async def _load_dashboard(self, owner_id: str, period: Period, now: Optional[datetime]):
        links = list((await self.session.execute(
            select(Link).where(Link.owner_id == owner_id).order_by(Link.id.asc())
        )).scalars().all())
        link_ids = [link.id for link in links]

        start, end = period.bounds(now)
        events = await self._events_between(link_ids, start, end)

        recent = []
        if link_ids:
            recent = list((await self.session.execute(
                select(VisitEvent)
                .where(VisitEvent.link_id.in_(link_ids))
                .order_by(VisitEvent.timestamp.desc(), VisitEvent.id.desc())
                .limit(settings.DASHBOARD_RECENT_EVENTS)
            )).scalars().all())
        return links, events, recent, end

    async def dashboard(
        self,
        owner_id: str,
        period: Period = Period.LAST_7D,
        now: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """
        Rollup across all links owned by ``owner_id``.

        Expired means expires_at has passed at query time, whatever the
        active flag says; active means active and not expired.

        Returns:
            Dictionary with ``stats``, ``top_links`` and ``recent_activity``
        """
        links, events, recent, end = await self._bounded(self._load_dashboard(owner_id, period, now))
        by_id = {link.id: link for link in links}

        stats = {
            "total_links": len(links),
            "total_clicks": sum(link.click_count for link in links),
            "total_unique_visitors": sum(link.unique_visitor_count for link in links),
            "period_clicks": len(events),
            "period_unique_visitors": sum(1 for e in events if e.is_unique_for_link),
            "active_links": sum(1 for link in links if link.active and not link.is_expired(end)),
            "expired_links": sum(1 for link in links if link.is_expired(end)),
        }

        # sorted() is stable and links are in id order, so ties keep id order
        top = sorted(links, key=lambda link: link.click_count, reverse=True)[:settings.DASHBOARD_TOP_LINKS]
        top_links = [
            {
                "id": link.id,
                "short_handle": link.short_handle,
                "destination": link.destination,
                "clicks": link.click_count,
                "unique_visitors": link.unique_visitor_count,
            }
            for link in top
        ]

        recent_activity = [
            {
                "id": event.id,
                "link_id": event.link_id,
                "short_handle": by_id[event.link_id].short_handle,
                "destination": by_id[event.link_id].destination,
                "timestamp": event.timestamp,
                "visitor_key": event.visitor_key,
                "country": event.country,
                "region": event.region,
                "city": event.city,
                "device_type": event.device_type or "desktop",
                "browser": event.browser_name or "Unknown",
            }
            for event in recent
        ]

        return {"stats": stats, "top_links": top_links, "recent_activity": recent_activity}

"""
Visit Recorder

This service persists one VisitEvent per successful resolution and keeps
the link counters in step with it.

Design Decisions:
- Runs in its own session: analytics must never poison or block the
  resolution request's transaction
- Unique-visitor decision is an insert-if-absent on seen_visitors, a single
  statement backed by a uniqueness constraint, so N concurrent first visits
  from one fingerprint produce exactly one unique event
- Event insert, counter increment and last_accessed_at update commit together
- Failures are logged and swallowed (record_safely); the redirect wins
"""

import asyncio
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from shortlinks.core.setting import settings
from shortlinks.db.adapters import get_database_adapter
from shortlinks.db.interface import DatabaseAdapter
from shortlinks.db.models import SeenVisitor, VisitEvent, utcnow
from shortlinks.services.client_meta import ClientMeta, GeoInfo, GeoLookup, VisitContext, lookup_geo, parse_user_agent
from shortlinks.services.fingerprint import compute_visitor_key
from shortlinks.services.link_registry import LinkRegistry

logger = logging.getLogger(__name__)


class VisitRecorder:
    """
    Service for recording visits.

    Designed to be called after the gate checks pass; takes a session
    factory rather than a session so each recording is its own unit of work.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        adapter: Optional[DatabaseAdapter] = None,
        geo_lookup: GeoLookup = lookup_geo,
        timeout: Optional[float] = None,
    ):
        self.session_factory = session_factory
        self.adapter = adapter or get_database_adapter(settings.DATABASE_URL)
        self.geo_lookup = geo_lookup
        self.timeout = timeout if timeout is not None else settings.REQUEST_TIMEOUT_SECONDS

    async def record(
        self,
        link_id: int,
        visitor_key: str,
        client_meta: ClientMeta,
        geo: Optional[GeoInfo] = None,
        referrer: Optional[str] = None,
        remote_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> VisitEvent:
        """
        Persist one visit and update the link counters.

        Args:
            link_id: Visited link
            visitor_key: Fingerprint from compute_visitor_key
            client_meta: Parsed user-agent labels
            geo: Coarse location, None when the lookup failed
            referrer: Referer header, None for direct visits
            remote_address: Raw client IP (kept on the event)
            user_agent: Raw User-Agent (kept on the event)

        Returns:
            The stored VisitEvent with is_unique_for_link decided

        Raises:
            Any storage error; callers on the redirect path use record_safely
        """
        geo = geo or GeoInfo()
        now = utcnow()

        async with self.session_factory() as session:
            try:
                is_unique = await self.adapter.insert_if_absent(
                    session,
                    SeenVisitor.__table__,
                    {"link_id": link_id, "visitor_key": visitor_key, "first_seen_at": now},
                    conflict_columns=["link_id", "visitor_key"],
                )

                event = VisitEvent(
                    link_id=link_id,
                    visitor_key=visitor_key,
                    timestamp=now,
                    ip_address=remote_address,
                    user_agent=user_agent[:500] if user_agent else None,
                    browser_name=client_meta.browser_name,
                    browser_version=client_meta.browser_version,
                    os_name=client_meta.os_name,
                    os_version=client_meta.os_version,
                    device_type=client_meta.device_type,
                    country=geo.country,
                    region=geo.region,
                    city=geo.city,
                    time_zone=geo.time_zone,
                    referrer=referrer,
                    is_unique_for_link=is_unique,
                )
                session.add(event)

                await LinkRegistry(session).increment_counters(
                    link_id, click=True, unique_visitor=is_unique, accessed_at=now
                )
                await session.commit()
            except Exception:
                await session.rollback()
                raise

        return event

    async def record_visit(self, link_id: int, context: VisitContext) -> VisitEvent:
        """Fingerprint and describe a request, then record it."""
        visitor_key = compute_visitor_key(
            context.remote_address, context.user_agent, context.accept_language
        )
        return await self.record(
            link_id,
            visitor_key,
            parse_user_agent(context.user_agent),
            geo=self.geo_lookup(context.remote_address),
            referrer=context.referrer or None,
            remote_address=context.remote_address,
            user_agent=context.user_agent,
        )

    async def record_safely(self, link_id: int, context: VisitContext) -> Optional[VisitEvent]:
        """
        Best-effort recording for the redirect path.

        Bounded by the request timeout. Any failure is logged and None is
        returned; the caller still serves the redirect.
        """
        try:
            return await asyncio.wait_for(self.record_visit(link_id, context), timeout=self.timeout)
        except Exception as e:
            logger.error(
                f"Failed to record visit for link {link_id}: {str(e) or type(e).__name__}",
                exc_info=True
            )
            return None

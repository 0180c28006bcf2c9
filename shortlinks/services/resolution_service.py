"""
Resolution Service

This service handles a redirect request end to end:
1. Look the handle up among active links
2. Expiry gate
3. Password gate
4. Record the visit (best effort) and hand back the destination

verify_password shares steps 1-4 for the non-redirecting password form.

Lookups are bounded by the request timeout and surface storage trouble as
TransientStorageError. Recording never turns a passed gate into a failure.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from shortlinks.core.exceptions import (
    LinkExpiredError,
    LinkNotFoundError,
    NotPasswordProtectedError,
    PasswordIncorrectError,
    PasswordRequiredError,
    TransientStorageError,
)
from shortlinks.core.passwords import verify_password
from shortlinks.core.setting import settings
from shortlinks.db.models import Link, VisitEvent
from shortlinks.services.client_meta import VisitContext
from shortlinks.services.link_registry import LinkRegistry
from shortlinks.services.visit_recorder import VisitRecorder

logger = logging.getLogger(__name__)


@dataclass
class Resolution:
    """Outcome of a passed gate."""
    destination: str
    link: Link
    visit: Optional[VisitEvent] = None


class ResolutionService:
    """
    Service for resolving handles to destinations.
    """

    def __init__(
        self,
        session: AsyncSession,
        recorder: VisitRecorder,
        timeout: Optional[float] = None,
    ):
        """
        Args:
            session: Session used for the read-only lookup
            recorder: Visit recorder (opens its own sessions)
            timeout: Seconds allowed for the lookup
        """
        self.session = session
        self.registry = LinkRegistry(session)
        self.recorder = recorder
        self.timeout = timeout if timeout is not None else settings.REQUEST_TIMEOUT_SECONDS

    async def _lookup(self, handle: str) -> Link:
        try:
            link = await asyncio.wait_for(
                self.registry.find_by_handle(handle, active_only=False), timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            raise TransientStorageError(f"lookup of '{handle}' timed out", original_error=e)
        except SQLAlchemyError as e:
            raise TransientStorageError(f"lookup of '{handle}' failed", original_error=e)

        # An expired link reports Expired even when deactivated.
        if link is not None and link.is_expired():
            raise LinkExpiredError(handle)
        if link is None or not link.active:
            raise LinkNotFoundError(handle)
        return link

    def _check_password(self, link: Link, supplied: Optional[str]) -> None:
        if not link.password_protected:
            return
        if not supplied:
            raise PasswordRequiredError(link.short_handle)
        if not verify_password(supplied, link.password_hash):
            logger.info(f"Incorrect password for link id={link.id}")
            raise PasswordIncorrectError(link.short_handle)

    async def _pass(self, link: Link, context: VisitContext) -> Resolution:
        visit = await self.recorder.record_safely(link.id, context)
        return Resolution(destination=link.destination, link=link, visit=visit)

    async def resolve(
        self,
        handle: str,
        password: Optional[str] = None,
        context: Optional[VisitContext] = None,
    ) -> Resolution:
        """
        Resolve a handle for redirection.

        Args:
            handle: Token or alias
            password: Supplied password, if any
            context: Request attributes for fingerprinting and analytics

        Returns:
            Resolution with the destination

        Raises:
            LinkNotFoundError: no active link with this handle
            LinkExpiredError: link exists but its expiry has passed
            PasswordRequiredError / PasswordIncorrectError: password gate
            TransientStorageError: lookup timed out or storage failed
        """
        link = await self._lookup(handle)
        self._check_password(link, password)
        return await self._pass(link, context or VisitContext())

    async def verify_password(
        self,
        handle: str,
        password: Optional[str],
        context: Optional[VisitContext] = None,
    ) -> Resolution:
        """
        Check a password without redirecting.

        Same gates and recording as resolve(); links without a password are
        rejected so the form cannot be used as a second redirect route.

        Raises:
            NotPasswordProtectedError: the link has no password
            plus everything resolve() raises
        """
        link = await self._lookup(handle)
        if not link.password_protected:
            raise NotPasswordProtectedError(handle)
        self._check_password(link, password)
        return await self._pass(link, context or VisitContext())

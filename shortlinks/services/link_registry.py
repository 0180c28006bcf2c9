"""
Link Registry

This service owns the handle -> destination mapping:
- Creating links with a generated token and an optional alias
- Looking links up by handle (token or alias, one namespace)
- Owner edits and deletion
- Atomic counter increments for visits

Design Decisions:
- Tokens are random base62 (see shortcode.py); a colliding token is retried,
  never reported to the caller
- Aliases are checked against both the token and alias columns before insert,
  and the unique indexes on both columns catch concurrent inserts
- Counters are bumped with a single UPDATE ... SET x = x + 1, never
  read-modify-write
"""

import logging
import math
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shortlinks.core.exceptions import (
    AliasTakenError,
    InvalidAliasError,
    InvalidURLError,
    LinkNotFoundError,
    PasswordNotProvidedError,
    TransientStorageError,
)
from shortlinks.core.passwords import hash_password
from shortlinks.core.setting import settings
from shortlinks.core.validators import is_valid_alias, is_valid_url
from shortlinks.db.models import Link, SeenVisitor, VisitEvent, utcnow
from shortlinks.services.shortcode import generate_token

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {"destination", "alias", "expires_at", "password_protected", "password", "active"}
LIKE_ESCAPE = "\\"


def escape_like(term: str) -> str:
    """Make LIKE wildcards in a search term match literally."""
    return (
        term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


class LinkRegistry:
    """
    Core business logic for link storage.

    Separated from the API layer for testability. Every public write commits
    except increment_counters, which joins the caller's transaction.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    def _validate_destination(self, destination: str) -> None:
        if not is_valid_url(destination):
            raise InvalidURLError(
                destination,
                reason="Invalid URL format. URL must use http:// or https:// and have a valid domain"
            )

    def _validate_alias(self, alias: str) -> None:
        if not is_valid_alias(alias, max_length=settings.ALIAS_MAX_LENGTH):
            raise InvalidAliasError(alias)

    async def handle_exists(self, handle: str, exclude_id: Optional[int] = None) -> bool:
        """
        Check whether a string is taken as a token or alias by any link.

        Inactive links still hold their handles.
        """
        statement = select(Link.id).where(or_(Link.token == handle, Link.alias == handle))
        if exclude_id is not None:
            statement = statement.where(Link.id != exclude_id)
        result = await self.session.execute(statement.limit(1))
        return result.first() is not None

    async def _new_token(self) -> str:
        for _ in range(settings.TOKEN_MAX_ATTEMPTS):
            token = generate_token(settings.TOKEN_LENGTH)
            if not await self.handle_exists(token):
                return token
            logger.warning(f"Generated token {token} already in use, retrying")
        raise TransientStorageError(
            f"could not allocate a free token after {settings.TOKEN_MAX_ATTEMPTS} attempts"
        )

    async def create(
        self,
        destination: str,
        alias: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        password: Optional[str] = None,
        password_protected: Optional[bool] = None,
        owner_id: Optional[str] = None,
    ) -> Link:
        """
        Create a new link.

        Args:
            destination: Absolute http(s) URL
            alias: Optional custom handle
            expires_at: Optional expiry instant
            password: Password for protected links
            password_protected: Explicit protection flag; defaults to
                "protected iff a password was passed"
            owner_id: Identity of the creating caller, None for guests

        Returns:
            The persisted Link (short_handle is its public handle)

        Raises:
            InvalidURLError, InvalidAliasError: malformed input
            PasswordNotProvidedError: protection requested without a password
            AliasTakenError: alias collides with a token or alias
        """
        self._validate_destination(destination)

        if alias is not None:
            self._validate_alias(alias)
            if await self.handle_exists(alias):
                raise AliasTakenError(alias)

        if password_protected is None:
            password_protected = password is not None
        if password_protected and not password:
            raise PasswordNotProvidedError()

        password_hash = hash_password(password) if password_protected else None

        for attempt in range(settings.TOKEN_MAX_ATTEMPTS):
            link = Link(
                token=await self._new_token(),
                alias=alias,
                destination=destination,
                owner_id=owner_id,
                expires_at=expires_at,
                password_protected=password_protected,
                password_hash=password_hash,
            )
            try:
                self.session.add(link)
                await self.session.flush()
                await self.session.commit()
            except IntegrityError:
                await self.session.rollback()
                if alias is not None and await self.handle_exists(alias):
                    raise AliasTakenError(alias)
                logger.warning(f"Token collision on insert (attempt {attempt + 1}), retrying")
                continue

            await self.session.refresh(link)
            logger.info(f"Created link id={link.id} handle={link.short_handle}")
            return link

        raise TransientStorageError("could not insert link after repeated token collisions")

    async def find_by_handle(self, handle: str, active_only: bool = True) -> Optional[Link]:
        """
        Look a link up by exact token or alias match.

        Args:
            handle: Token or alias
            active_only: Restrict to active links (resolution path)

        Returns:
            Link if found, None otherwise
        """
        statement = select(Link).where(or_(Link.token == handle, Link.alias == handle))
        if active_only:
            statement = statement.where(Link.active.is_(True))
        result = await self.session.execute(statement.limit(1))
        return result.scalars().first()

    async def get(self, link_id: int) -> Optional[Link]:
        return await self.session.get(Link, link_id)

    async def get_owned(self, link_id: int, owner_id: Optional[str]) -> Link:
        """
        Fetch a link that belongs to ``owner_id``.

        Guest links (no owner) are never returned.

        Raises:
            LinkNotFoundError: missing or owned by someone else
        """
        link = await self.get(link_id)
        if link is None or owner_id is None or link.owner_id != owner_id:
            raise LinkNotFoundError(str(link_id))
        return link

    async def list_owned(
        self,
        owner_id: str,
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
    ) -> tuple[list[Link], dict[str, Any]]:
        """
        List an owner's links, newest first.

        Args:
            owner_id: Owning identity
            page: 1-based page number
            limit: Page size
            search: Case-insensitive substring over destination, token, alias

        Returns:
            (links on the page, pagination metadata)
        """
        conditions = [Link.owner_id == owner_id]
        if search:
            pattern = f"%{escape_like(search.lower())}%"
            conditions.append(or_(
                func.lower(Link.destination).like(pattern, escape=LIKE_ESCAPE),
                func.lower(Link.token).like(pattern, escape=LIKE_ESCAPE),
                func.lower(Link.alias).like(pattern, escape=LIKE_ESCAPE),
            ))

        total = (await self.session.execute(
            select(func.count()).select_from(Link).where(*conditions)
        )).scalar_one()

        statement = (
            select(Link)
            .where(*conditions)
            .order_by(Link.created_at.desc(), Link.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        links = list((await self.session.execute(statement)).scalars().all())

        pagination = {
            "current_page": page,
            "total_pages": math.ceil(total / limit) if limit else 0,
            "total_links": total,
            "has_next": page * limit < total,
            "has_prev": page > 1,
        }
        return links, pagination

    async def update(self, link_id: int, owner_id: Optional[str], fields: dict[str, Any]) -> Link:
        """
        Apply owner edits.

        Only keys present in ``fields`` change. Passing ``alias=None`` or
        ``expires_at=None`` clears them. Clearing password_protected clears
        the stored hash; setting it requires a password in the same call.
        A bare ``password`` implies protection.

        Raises:
            LinkNotFoundError: not owned by the caller
            InvalidURLError, InvalidAliasError, PasswordNotProvidedError
            AliasTakenError: alias collides with another link's handle
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unsupported link fields: {sorted(unknown)}")

        link = await self.get_owned(link_id, owner_id)

        if "destination" in fields:
            self._validate_destination(fields["destination"])
            link.destination = fields["destination"]

        if "alias" in fields:
            alias = fields["alias"]
            if alias is not None and alias != link.alias:
                self._validate_alias(alias)
                if await self.handle_exists(alias, exclude_id=link.id):
                    raise AliasTakenError(alias)
            link.alias = alias

        if "expires_at" in fields:
            link.expires_at = fields["expires_at"]

        if "active" in fields:
            link.active = bool(fields["active"])

        password = fields.get("password")
        protect = fields.get("password_protected")
        if protect is None and password is not None:
            protect = True
        if protect is True:
            if not password:
                raise PasswordNotProvidedError()
            link.password_protected = True
            link.password_hash = hash_password(password)
        elif protect is False:
            link.password_protected = False
            link.password_hash = None

        try:
            self.session.add(link)
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            raise AliasTakenError(fields.get("alias") or "")

        await self.session.refresh(link)
        logger.info(f"Updated link id={link.id} fields={sorted(fields)}")
        return link

    async def delete(self, link_id: int, owner_id: Optional[str]) -> None:
        """
        Hard-delete an owned link together with its visit history.

        Raises:
            LinkNotFoundError: not owned by the caller
        """
        link = await self.get_owned(link_id, owner_id)
        await self.session.execute(delete(VisitEvent).where(VisitEvent.link_id == link.id))
        await self.session.execute(delete(SeenVisitor).where(SeenVisitor.link_id == link.id))
        await self.session.delete(link)
        await self.session.commit()
        logger.info(f"Deleted link id={link_id}")

    async def increment_counters(
        self,
        link_id: int,
        click: bool = True,
        unique_visitor: bool = False,
        accessed_at: Optional[datetime] = None,
    ) -> None:
        """
        Bump the lifetime counters of a link atomically.

        Uses a database-level UPDATE so concurrent redirects on the same link
        never lose an increment. Commit is handled by the caller.

        Args:
            link_id: Link to update
            click: Increment click_count
            unique_visitor: Increment unique_visitor_count
            accessed_at: New last_accessed_at (defaults to now)
        """
        values: dict[str, Any] = {"last_accessed_at": accessed_at or utcnow()}
        if click:
            values["click_count"] = Link.click_count + 1
        if unique_visitor:
            values["unique_visitor_count"] = Link.unique_visitor_count + 1

        await self.session.execute(
            update(Link).where(Link.id == link_id).values(**values)
        )

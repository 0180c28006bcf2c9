"""Tests for handle resolution and its gates."""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select

from shortlinks.core.exceptions import (
    LinkExpiredError,
    LinkNotFoundError,
    NotPasswordProtectedError,
    PasswordIncorrectError,
    PasswordRequiredError,
    TransientStorageError,
)
from shortlinks.db.models import VisitEvent, utcnow
from shortlinks.services.client_meta import VisitContext
from shortlinks.services.resolution_service import ResolutionService


async def events_for(session, link_id):
    result = await session.execute(
        select(VisitEvent).where(VisitEvent.link_id == link_id).order_by(VisitEvent.id)
    )
    return list(result.scalars().all())


@pytest.mark.asyncio
class TestResolve:

    async def test_resolves_token_and_counts_click(self, registry, resolver, session, visit_context):
        link = await registry.create("https://example.com/a")

        resolution = await resolver.resolve(link.token, context=visit_context)

        assert resolution.destination == "https://example.com/a"
        assert resolution.visit is not None
        await session.refresh(link)
        assert link.click_count == 1
        assert link.unique_visitor_count == 1

    async def test_resolves_alias(self, registry, resolver):
        await registry.create("https://example.com/promo", alias="promo")
        resolution = await resolver.resolve("promo")
        assert resolution.destination == "https://example.com/promo"

    async def test_unknown_handle(self, resolver):
        with pytest.raises(LinkNotFoundError):
            await resolver.resolve("missing")

    async def test_inactive_link_is_not_found(self, registry, resolver):
        link = await registry.create("https://example.com/a", owner_id="owner-1")
        await registry.update(link.id, "owner-1", {"active": False})
        with pytest.raises(LinkNotFoundError):
            await resolver.resolve(link.token)

    async def test_expired_link(self, registry, resolver, session):
        link = await registry.create("https://example.com/a", expires_at=utcnow() - timedelta(seconds=1))
        with pytest.raises(LinkExpiredError):
            await resolver.resolve(link.token)
        assert await events_for(session, link.id) == []

    async def test_expired_wins_over_inactive(self, registry, resolver):
        link = await registry.create(
            "https://example.com/a", owner_id="owner-1", expires_at=utcnow() - timedelta(minutes=5)
        )
        await registry.update(link.id, "owner-1", {"active": False})
        with pytest.raises(LinkExpiredError):
            await resolver.resolve(link.token)

    async def test_future_expiry_resolves(self, registry, resolver):
        link = await registry.create("https://example.com/a", expires_at=utcnow() + timedelta(hours=1))
        assert (await resolver.resolve(link.token)).destination == "https://example.com/a"

    async def test_repeat_visits_from_same_request(self, registry, resolver, session, visit_context):
        link = await registry.create("https://example.com/a")

        await resolver.resolve(link.token, context=visit_context)
        await resolver.resolve(link.token, context=visit_context)

        events = await events_for(session, link.id)
        assert [e.is_unique_for_link for e in events] == [True, False]
        await session.refresh(link)
        assert link.click_count == 2
        assert link.unique_visitor_count == 1

    async def test_recording_failure_does_not_block_redirect(self, registry, resolver, session, monkeypatch):
        link = await registry.create("https://example.com/a")

        async def broken(*args, **kwargs):
            raise ConnectionError("analytics store down")

        monkeypatch.setattr(resolver.recorder, "record_visit", broken)

        resolution = await resolver.resolve(link.token)
        assert resolution.destination == "https://example.com/a"
        assert resolution.visit is None

    async def test_lookup_timeout_is_transient(self, registry, resolver, monkeypatch):
        link = await registry.create("https://example.com/a")

        async def slow(*args, **kwargs):
            await asyncio.sleep(1)

        monkeypatch.setattr(resolver.registry, "find_by_handle", slow)
        resolver.timeout = 0.01
        with pytest.raises(TransientStorageError):
            await resolver.resolve(link.token)


@pytest.mark.asyncio
class TestPasswordGate:

    async def test_password_required(self, registry, resolver):
        link = await registry.create("https://example.com/a", alias="secret-doc", password="pw")
        with pytest.raises(PasswordRequiredError) as exc_info:
            await resolver.resolve(link.token)
        assert exc_info.value.handle == "secret-doc"

    async def test_password_incorrect(self, registry, resolver, session):
        link = await registry.create("https://example.com/a", password="pw")
        with pytest.raises(PasswordIncorrectError):
            await resolver.resolve(link.token, password="nope")
        assert await events_for(session, link.id) == []

    async def test_password_correct_records_visit(self, registry, resolver, session):
        link = await registry.create("https://example.com/a", password="pw")
        resolution = await resolver.resolve(link.token, password="pw")
        assert resolution.destination == "https://example.com/a"
        assert len(await events_for(session, link.id)) == 1

    async def test_expiry_checked_before_password(self, registry, resolver):
        link = await registry.create(
            "https://example.com/a", password="pw", expires_at=utcnow() - timedelta(seconds=1)
        )
        with pytest.raises(LinkExpiredError):
            await resolver.resolve(link.token)


@pytest.mark.asyncio
class TestVerifyPassword:

    async def test_verify_success_counts_click(self, registry, resolver, session):
        link = await registry.create("https://example.com/a", password="pw")
        resolution = await resolver.verify_password(link.token, "pw")
        assert resolution.destination == "https://example.com/a"
        await session.refresh(link)
        assert link.click_count == 1

    async def test_verify_wrong_and_missing(self, registry, resolver):
        link = await registry.create("https://example.com/a", password="pw")
        with pytest.raises(PasswordIncorrectError):
            await resolver.verify_password(link.token, "bad")
        with pytest.raises(PasswordRequiredError):
            await resolver.verify_password(link.token, None)

    async def test_verify_unprotected_link(self, registry, resolver):
        link = await registry.create("https://example.com/a")
        with pytest.raises(NotPasswordProtectedError):
            await resolver.verify_password(link.token, "anything")


@pytest.mark.asyncio
class TestConcurrentResolution:

    async def test_every_click_counted(self, registry, recorder, session, session_factory, visit_context):
        link = await registry.create("https://example.com/a")

        async def resolve_once(i):
            context = VisitContext(remote_address=f"192.0.2.{i % 4}", user_agent="bench", accept_language="en")
            async with session_factory() as own:
                return await ResolutionService(own, recorder).resolve(link.token, context=context)

        results = await asyncio.gather(*(resolve_once(i) for i in range(20)))

        assert all(r.visit is not None for r in results)
        await session.refresh(link)
        assert link.click_count == 20
        assert link.unique_visitor_count == 4
        events = await events_for(session, link.id)
        assert sum(1 for e in events if e.is_unique_for_link) == 4

"""End-to-end tests through the HTTP layer."""

import pytest
from httpx import ASGITransport, AsyncClient

from shortlinks.db.session import get_session, get_session_factory
from shortlinks.main import app

from sample_agents import CHROME_DESKTOP_UA, SAFARI_IPHONE_UA

OWNER = {"X-Owner-Id": "owner-1"}


@pytest.fixture
async def client(session_factory):
    async def override_get_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    transport = ASGITransport(app=app, client=("198.51.100.4", 4000))
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


async def create(client, headers=OWNER, **body):
    body.setdefault("destination", "https://example.com/landing")
    response = await client.post("/api/links", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
class TestHealth:

    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "database": "ok"}

    async def test_root(self, client):
        response = await client.get("/")
        assert response.json()["message"] == "Link Shortener Service"


@pytest.mark.asyncio
class TestCreate:

    async def test_create_returns_short_url(self, client):
        link = await create(client)
        assert len(link["token"]) == 8
        assert link["short_handle"] == link["token"]
        assert link["short_url"].endswith("/" + link["token"])
        assert link["owner_id"] == "owner-1"
        assert link["click_count"] == 0
        assert "password_hash" not in link

    async def test_guest_create(self, client):
        link = await create(client, headers={})
        assert link["owner_id"] is None

    async def test_alias_becomes_handle(self, client):
        link = await create(client, alias="spring-sale")
        assert link["short_handle"] == "spring-sale"

    async def test_alias_conflict(self, client):
        await create(client, alias="taken")
        response = await client.post(
            "/api/links", json={"destination": "https://example.org", "alias": "taken"}, headers=OWNER
        )
        assert response.status_code == 409

    async def test_invalid_destination(self, client):
        response = await client.post("/api/links", json={"destination": "javascript:alert(1)"})
        assert response.status_code == 400

    async def test_invalid_alias(self, client):
        response = await client.post(
            "/api/links", json={"destination": "https://example.com", "alias": "no spaces"}
        )
        assert response.status_code == 400

    async def test_protected_without_password(self, client):
        response = await client.post(
            "/api/links", json={"destination": "https://example.com", "password_protected": True}
        )
        assert response.status_code == 400


@pytest.mark.asyncio
class TestRedirect:

    async def test_redirect_counts_click(self, client):
        link = await create(client)

        response = await client.get(f"/{link['token']}", headers={"User-Agent": CHROME_DESKTOP_UA})
        assert response.status_code == 302
        assert response.headers["location"] == "https://example.com/landing"

        stored = (await client.get(f"/api/links/{link['id']}", headers=OWNER)).json()
        assert stored["click_count"] == 1
        assert stored["unique_visitor_count"] == 1
        assert stored["last_accessed_at"] is not None

    async def test_repeat_visitor_not_unique_twice(self, client):
        link = await create(client)
        headers = {"User-Agent": CHROME_DESKTOP_UA, "Accept-Language": "en-US"}
        await client.get(f"/{link['token']}", headers=headers)
        await client.get(f"/{link['token']}", headers=headers)
        await client.get(f"/{link['token']}", headers={"User-Agent": SAFARI_IPHONE_UA})

        stored = (await client.get(f"/api/links/{link['id']}", headers=OWNER)).json()
        assert stored["click_count"] == 3
        assert stored["unique_visitor_count"] == 2

    async def test_alias_and_token_both_resolve(self, client):
        link = await create(client, alias="both")
        assert (await client.get("/both")).status_code == 302
        assert (await client.get(f"/{link['token']}")).status_code == 302

    async def test_unknown_handle(self, client):
        assert (await client.get("/doesNotExist")).status_code == 404

    async def test_malformed_handle(self, client):
        assert (await client.get("/bad.handle")).status_code == 400

    async def test_expired(self, client):
        link = await create(client, expires_at="2020-01-01T00:00:00Z")
        assert (await client.get(f"/{link['token']}")).status_code == 410

    async def test_inactive(self, client):
        link = await create(client)
        await client.patch(f"/api/links/{link['id']}", json={"active": False}, headers=OWNER)
        assert (await client.get(f"/{link['token']}")).status_code == 404

    async def test_password_required(self, client):
        link = await create(client, password="s3cret")

        response = await client.get(f"/{link['token']}")
        assert response.status_code == 401
        detail = response.json()["detail"]
        assert detail["requires_password"] is True
        assert detail["handle"] == link["token"]

    async def test_password_incorrect_and_correct(self, client):
        link = await create(client, password="s3cret")

        wrong = await client.get(f"/{link['token']}", params={"password": "nope"})
        assert wrong.status_code == 401
        right = await client.get(f"/{link['token']}", params={"password": "s3cret"})
        assert right.status_code == 302

        stored = (await client.get(f"/api/links/{link['id']}", headers=OWNER)).json()
        assert stored["click_count"] == 1


@pytest.mark.asyncio
class TestVerifyPassword:

    async def test_success_records_visit(self, client):
        link = await create(client, alias="locked", password="s3cret")

        response = await client.post("/locked/verify-password", json={"password": "s3cret"})
        assert response.status_code == 200
        assert response.json() == {"success": True, "destination": "https://example.com/landing"}

        stored = (await client.get(f"/api/links/{link['id']}", headers=OWNER)).json()
        assert stored["click_count"] == 1

    async def test_failure_records_nothing(self, client):
        link = await create(client, alias="locked", password="s3cret")

        response = await client.post("/locked/verify-password", json={"password": "wrong"})
        assert response.status_code == 401

        stored = (await client.get(f"/api/links/{link['id']}", headers=OWNER)).json()
        assert stored["click_count"] == 0

    async def test_unprotected_link(self, client):
        await create(client, alias="open")
        response = await client.post("/open/verify-password", json={"password": "x"})
        assert response.status_code == 400


@pytest.mark.asyncio
class TestOwnerEndpoints:

    async def test_requires_owner(self, client):
        assert (await client.get("/api/links")).status_code == 401
        assert (await client.get("/api/analytics/dashboard")).status_code == 401

    async def test_list_and_search(self, client):
        await create(client, destination="https://docs.example.com/guide")
        await create(client, destination="https://shop.example.com/cart")
        await create(client, destination="https://other.example.com", headers={"X-Owner-Id": "owner-2"})

        listing = (await client.get("/api/links", headers=OWNER)).json()
        assert listing["pagination"]["total_links"] == 2
        assert [link["destination"] for link in listing["links"]] == [
            "https://shop.example.com/cart",
            "https://docs.example.com/guide",
        ]

        searched = (await client.get("/api/links", params={"search": "DOCS"}, headers=OWNER)).json()
        assert len(searched["links"]) == 1

    async def test_pagination(self, client):
        for n in range(3):
            await create(client, destination=f"https://example.com/{n}")
        page = (await client.get("/api/links", params={"page": 2, "limit": 2}, headers=OWNER)).json()
        assert len(page["links"]) == 1
        assert page["pagination"] == {
            "current_page": 2,
            "total_pages": 2,
            "total_links": 3,
            "has_next": False,
            "has_prev": True,
        }

    async def test_other_owner_gets_404(self, client):
        link = await create(client)
        response = await client.get(f"/api/links/{link['id']}", headers={"X-Owner-Id": "owner-2"})
        assert response.status_code == 404

    async def test_patch(self, client):
        link = await create(client)
        response = await client.patch(
            f"/api/links/{link['id']}",
            json={"destination": "https://example.com/new", "alias": "fresh"},
            headers=OWNER,
        )
        assert response.status_code == 200
        assert response.json()["short_handle"] == "fresh"

        redirect = await client.get("/fresh")
        assert redirect.headers["location"] == "https://example.com/new"

    async def test_delete(self, client):
        link = await create(client)
        await client.get(f"/{link['token']}")

        response = await client.delete(f"/api/links/{link['id']}", headers=OWNER)
        assert response.status_code == 204
        assert (await client.get(f"/{link['token']}")).status_code == 404
        assert (await client.get(f"/api/links/{link['id']}", headers=OWNER)).status_code == 404


@pytest.mark.asyncio
class TestAnalyticsEndpoints:

    async def test_link_analytics(self, client):
        link = await create(client)
        await client.get(
            f"/{link['token']}",
            headers={"User-Agent": SAFARI_IPHONE_UA, "Referer": "https://news.example.net/"},
        )

        response = await client.get(
            f"/api/analytics/links/{link['id']}", params={"period": "24h"}, headers=OWNER
        )
        assert response.status_code == 200
        report = response.json()
        assert report["summary"]["total_clicks"] == 1
        assert report["summary"]["period_clicks"] == 1
        assert report["summary"]["average_clicks_per_day"] == 1.0
        assert report["period"]["type"] == "24h"
        assert report["charts"]["devices"] == [{"device": "mobile", "count": 1}]
        assert report["charts"]["browsers"] == [{"browser": "Mobile Safari", "count": 1}]
        assert report["charts"]["referrers"] == [{"referrer": "https://news.example.net/", "count": 1}]
        assert report["charts"]["locations"] == [{"country": "Unknown", "count": 1}]
        assert len(report["charts"]["time_series"]) == 2

    async def test_invalid_period(self, client):
        link = await create(client)
        response = await client.get(
            f"/api/analytics/links/{link['id']}", params={"period": "1y"}, headers=OWNER
        )
        assert response.status_code == 422

    async def test_analytics_of_foreign_link(self, client):
        link = await create(client)
        response = await client.get(f"/api/analytics/links/{link['id']}", headers={"X-Owner-Id": "owner-2"})
        assert response.status_code == 404

    async def test_dashboard(self, client):
        busy = await create(client)
        await create(client)
        for _ in range(2):
            await client.get(f"/{busy['token']}")

        report = (await client.get("/api/analytics/dashboard", headers=OWNER)).json()
        assert report["stats"]["total_links"] == 2
        assert report["stats"]["total_clicks"] == 2
        assert report["stats"]["total_unique_visitors"] == 1
        assert report["stats"]["active_links"] == 2
        assert report["top_links"][0]["id"] == busy["id"]
        assert len(report["recent_activity"]) == 2
        assert report["recent_activity"][0]["short_handle"] == busy["token"]

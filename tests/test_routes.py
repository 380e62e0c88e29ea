"""HTTP API behaviour tests."""

import pytest
from httpx import AsyncClient

from bookmarker.enums import HealthStatus
from bookmarker.keys import generate_key_candidates
from bookmarker.models import Bookmark

URL_A = "https://example.com/a"


@pytest.mark.asyncio
async def test_add_bookmark_creates(client: AsyncClient, store) -> None:
    response = await client.post("/api/bookmarks", json={"url": URL_A})

    assert response.status_code == 201
    assert response.json() == {"id": "Lc4", "short_url": "http://bm.test/Lc4"}
    assert store.rows["Lc4"].url == URL_A


@pytest.mark.asyncio
async def test_add_bookmark_twice_returns_same_id(client: AsyncClient, store) -> None:
    first = await client.post("/api/bookmarks", json={"url": URL_A})
    second = await client.post("/api/bookmarks", json={"url": URL_A})

    assert second.status_code == 200
    assert second.json()["id"] == first.json()["id"]
    assert len(store.rows) == 1


@pytest.mark.asyncio
async def test_add_bookmark_invalid_url(client: AsyncClient, store) -> None:
    response = await client.post("/api/bookmarks", json={"url": "not-a-url"})

    assert response.status_code == 400
    assert store.rows == {}


@pytest.mark.asyncio
async def test_add_bookmark_missing_body_field(client: AsyncClient) -> None:
    response = await client.post("/api/bookmarks", json={})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_add_bookmark_exhausted_ladder(client: AsyncClient, store) -> None:
    store.seed(*(Bookmark(id=c, url=f"https://other.example/{c}") for c in generate_key_candidates(URL_A)))

    response = await client.post("/api/bookmarks", json={"url": URL_A})

    assert response.status_code == 500


@pytest.mark.asyncio
async def test_get_bookmark(client: AsyncClient, store) -> None:
    store.seed(Bookmark(id="Lc4", url=URL_A, title="A", type="article"))

    response = await client.get("/api/bookmarks/Lc4")

    assert response.status_code == 200
    assert response.json() == {
        "id": "Lc4",
        "url": URL_A,
        "title": "A",
        "description": None,
        "image_url": None,
        "type": "article",
    }


@pytest.mark.asyncio
async def test_get_bookmark_not_found(client: AsyncClient) -> None:
    response = await client.get("/api/bookmarks/missing")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_list_bookmarks_and_filter_by_type(client: AsyncClient, store) -> None:
    store.seed(
        Bookmark(id="a", url="https://a.test", type="article"),
        Bookmark(id="b", url="https://b.test", type="video"),
        Bookmark(id="c", url="https://c.test"),
    )

    everything = await client.get("/api/bookmarks")
    articles = await client.get("/api/bookmarks", params={"type": "article"})

    assert [b["id"] for b in everything.json()["bookmarks"]] == ["a", "b", "c"]
    assert [b["id"] for b in articles.json()["bookmarks"]] == ["a"]


@pytest.mark.asyncio
async def test_list_bookmark_types(client: AsyncClient, store) -> None:
    store.seed(
        Bookmark(id="a", url="https://a.test", type="video"),
        Bookmark(id="b", url="https://b.test", type="article"),
        Bookmark(id="c", url="https://c.test", type="video"),
        Bookmark(id="d", url="https://d.test"),
    )

    response = await client.get("/api/bookmarks/types")

    assert response.json() == {"types": ["article", "video"]}


@pytest.mark.asyncio
async def test_delete_bookmark(client: AsyncClient, store) -> None:
    store.seed(Bookmark(id="Lc4", url=URL_A))

    first = await client.delete("/api/bookmarks/Lc4")
    second = await client.delete("/api/bookmarks/Lc4")

    assert first.json() == {"deleted": True}
    assert second.json() == {"deleted": False}


@pytest.mark.asyncio
async def test_preview_bookmark(client: AsyncClient, store) -> None:
    store.seed(Bookmark(id="Lc4", url=URL_A, title="Tom & Jerry", description="Cartoon"))

    response = await client.get("/preview/Lc4")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/html")
    assert '<meta property="og:title" content="Tom &amp; Jerry">' in response.text
    assert '<meta property="og:site_name" content="example.com">' in response.text


@pytest.mark.asyncio
async def test_preview_not_found(client: AsyncClient) -> None:
    response = await client.get("/preview/missing")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_redirect(client: AsyncClient, store) -> None:
    store.seed(Bookmark(id="Lc4", url=URL_A))

    response = await client.get("/Lc4", follow_redirects=False)

    assert response.status_code == 302
    assert response.headers["location"] == URL_A


@pytest.mark.asyncio
async def test_redirect_not_found(client: AsyncClient) -> None:
    response = await client.get("/missing", follow_redirects=False)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient) -> None:
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {
        "status": HealthStatus.HEALTHY.value,
        "database": HealthStatus.HEALTHY.value,
        "cache": HealthStatus.HEALTHY.value,
    }


@pytest.mark.asyncio
async def test_health_check_cache_down(client: AsyncClient, services) -> None:
    services.cache_writer.ping.side_effect = ConnectionError("redis down")

    response = await client.get("/health")

    data = response.json()
    assert data["status"] == HealthStatus.UNHEALTHY.value
    assert data["database"] == HealthStatus.HEALTHY.value
    assert data["cache"] == HealthStatus.UNHEALTHY.value

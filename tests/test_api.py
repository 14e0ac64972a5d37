"""
HTTP surface tests: content endpoints, cache admin and monitoring.
"""
import pytest
from fastapi.testclient import TestClient

from blogview.cache import get_orchestrator
from blogview.exceptions import TransportError
from blogview.main import app
from blogview.telemetry import get_metrics
from config.settings import settings

from conftest import FALLBACK_URL, PRIMARY_URL, FakeGraphQLClient


POSTS = {
    "postsConnection": {
        "edges": [
            {"node": {"slug": "first", "featuredImage": {"url": "https://media.test/1.jpg"}}},
            {"node": {"slug": "second", "featuredImage": None}},
        ]
    }
}


@pytest.fixture
def upstream():
    return FakeGraphQLClient({
        PRIMARY_URL: TransportError("cdn down", endpoint=PRIMARY_URL),
        FALLBACK_URL: POSTS,
    })


@pytest.fixture
def client(upstream, make_orchestrator, metrics):
    orchestrator = make_orchestrator(upstream)
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_metrics] = lambda: metrics
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestContentEndpoints:

    def test_posts_served_through_fallback(self, client, upstream):
        response = client.get("/api/posts", params={"limit": 5})

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 2
        assert data["posts"][0]["featuredImage"]["url"] == "https://media.test/1.jpg?q=80"
        assert upstream.calls_to(FALLBACK_URL)[0]["variables"] == {"limit": 5}

    def test_second_request_is_a_cache_hit(self, client, upstream):
        client.get("/api/posts")
        client.get("/api/posts")

        assert len(upstream.calls) == 2  # primary + fallback, once
        report = client.get("/monitoring").json()
        assert report["cache"]["hits"] == 1
        assert report["cache"]["misses"] == 1

    def test_limit_validated(self, client):
        assert client.get("/api/posts", params={"limit": 0}).status_code == 422
        assert client.get("/api/posts", params={"limit": 51}).status_code == 422

    def test_categories_default_on_outage(self, client, upstream):
        upstream.responses[FALLBACK_URL] = TransportError("content api down")

        response = client.get("/api/categories")

        assert response.status_code == 200
        slugs = [c["slug"] for c in response.json()["categories"]]
        assert slugs == ["technology", "web-development", "programming"]

    def test_missing_post_is_503(self, client, upstream):
        upstream.responses[FALLBACK_URL] = {"post": None}

        response = client.get("/api/posts/nope")

        assert response.status_code == 503
        assert response.json()["operation"] == "post"

    def test_search_requires_term(self, client):
        assert client.get("/api/search", params={"q": "a"}).status_code == 422


class TestCacheAdmin:

    def test_stats(self, client):
        client.get("/api/posts")
        stats = client.get("/cache/stats").json()

        assert stats["cache"]["totalEntries"] == 1
        assert stats["coalescer"]["pendingCount"] == 0

    def test_clear_action(self, client):
        client.get("/api/posts")
        data = client.get("/cache/stats", params={"action": "clear"}).json()

        assert data["removed"] == 1
        assert data["stats"]["cache"]["totalEntries"] == 0

    def test_prune_with_nothing_expired(self, client):
        client.get("/api/posts")
        data = client.post("/cache/prune").json()

        assert data["removed"] == 0
        assert data["stats"]["cache"]["validEntries"] == 1

    def test_unknown_action_rejected(self, client):
        assert client.get("/cache/stats", params={"action": "drop"}).status_code == 422


class TestMonitoring:

    def test_json_report(self, client):
        client.get("/api/posts")
        report = client.get("/monitoring").json()

        assert report["api"]["requests"]["total"] == 1
        assert report["api"]["requests"]["successful"] == 1
        assert len(report["recentErrors"]) == 1
        assert "deduplication" in report
        assert report["cache"]["cacheStats"]["totalEntries"] == 1

    def test_prometheus_format(self, client):
        client.get("/api/posts")
        response = client.get("/monitoring", params={"format": "prometheus"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert 'hygraph_api_requests_total{status="successful"} 1.0' in response.text

    def test_quick_action(self, client):
        assert client.get("/monitoring", params={"action": "quick"}).json()["status"] == "unknown"

    def test_reset_requires_admin_key(self, client, monkeypatch, metrics):
        monkeypatch.setattr(settings, "admin_key", "s3cret")
        metrics.record_cache_hit()

        assert client.post("/monitoring/reset").status_code == 403
        assert client.post("/monitoring/reset", headers={"X-Admin-Key": "wrong"}).status_code == 403

        response = client.post("/monitoring/reset", headers={"X-Admin-Key": "s3cret"})
        assert response.status_code == 200
        assert metrics.snapshot()["cache"]["total"] == 0


class TestMutations:

    def test_mutation_clears_cached_reads(self, client, upstream, monkeypatch):
        monkeypatch.setattr(settings, "admin_key", None)
        client.get("/api/posts")
        upstream.responses[FALLBACK_URL] = {"publishPost": {"id": "p1"}}

        response = client.post(
            "/admin/mutate",
            json={"query": "mutation { publishPost { id } }", "variables": {"id": "p1"}},
        )

        assert response.status_code == 200
        assert response.json() == {"data": {"publishPost": {"id": "p1"}}}
        assert upstream.calls[-1]["authenticated"] is True
        assert client.get("/cache/stats").json()["cache"]["totalEntries"] == 0

    def test_upstream_failure_is_502(self, client, upstream, monkeypatch):
        monkeypatch.setattr(settings, "admin_key", None)
        upstream.responses[FALLBACK_URL] = TransportError("forbidden", status_code=403)

        response = client.post("/admin/mutate", json={"query": "mutation { x }"})

        assert response.status_code == 502

    def test_requires_admin_key(self, client, monkeypatch):
        monkeypatch.setattr(settings, "admin_key", "s3cret")

        response = client.post("/admin/mutate", json={"query": "mutation { x }"})

        assert response.status_code == 403

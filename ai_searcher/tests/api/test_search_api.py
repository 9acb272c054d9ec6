# tests/api/test_search_api.py
from unittest.mock import AsyncMock

from ai_searcher.config.settings import settings
from ai_searcher.core.exceptions import ContentExtractionException, ScholarRateLimitedException
from ai_searcher.services.scholar_client import _FetchError

SEARCH_URL = "/api/ai-searcher/search"

class TestSearchEndpoint:
    """POST /search"""

    async def test_search_with_query(self, api_client):
        response = await api_client.post(SEARCH_URL, json={
            "query": '"deep learning" AND "healthcare"',
            "conversationId": "conv-1"
        })

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["totalResults"] == 2
        assert data["sessionId"]
        assert data["degraded"] is False
        assert "qualityScore" in data["results"][0]
        assert response.headers["X-Request-ID"]

    async def test_ideas_source_down(self, api_client, content_api):
        content_api.get_idea.side_effect = ContentExtractionException("Ideas API unavailable", "ideas", "idea-9")

        response = await api_client.post(SEARCH_URL, json={
            "query": "",
            "conversationId": "conv-1",
            "contentSources": [{"source": "ideas", "id": "idea-9"}]
        })

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert "Research Topic" in data["extractedContent"][0]["title"]
        assert 0 < data["extractedContent"][0]["confidence"] <= 0.5
        assert data["failedSources"][0]["source"] == "ideas"

    async def test_empty_query_without_sources(self, api_client):
        response = await api_client.post(SEARCH_URL, json={
            "query": "",
            "conversationId": "c",
            "contentSources": []
        })

        assert response.status_code == 400
        data = response.json()
        assert data["success"] is False
        assert "Query is required" in data["error"]
        assert data["error_code"] == "INVALID_REQUEST"
        assert data["request_id"] == response.headers["X-Request-ID"]

    async def test_missing_conversation_id(self, api_client):
        response = await api_client.post(SEARCH_URL, json={"query": "ai"})

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_REQUEST"

    async def test_unknown_content_source(self, api_client):
        response = await api_client.post(SEARCH_URL, json={
            "conversationId": "c",
            "contentSources": [{"source": "email", "id": "1"}]
        })
        assert response.status_code == 400

    async def test_rate_limited_scholar_degrades(self, api_client, scholar_client):
        scholar_client._fetch = AsyncMock(side_effect=ScholarRateLimitedException("slow down", retry_after=30))

        response = await api_client.post(SEARCH_URL, json={"query": "ai", "conversationId": "c"})

        assert response.status_code == 200
        data = response.json()
        assert data["degraded"] is True
        assert data["results"] == []
        assert data["fallbackUrl"].startswith("https://scholar.google.com/")

    async def test_scholar_unavailable(self, api_client, scholar_client):
        scholar_client._fetch = AsyncMock(side_effect=_FetchError("captcha", "blocked", 403))

        response = await api_client.post(SEARCH_URL, json={"query": "ai", "conversationId": "c"})

        assert response.status_code == 503
        data = response.json()
        assert data["success"] is False
        assert data["error_code"] == "SERVICE_UNAVAILABLE"
        assert data["fallback_url"].startswith("https://scholar.google.com/")

    async def test_request_rate_limit(self, api_client, monkeypatch):
        monkeypatch.setattr(settings, "RATE_LIMIT_PER_MINUTE", 2)
        body = {"query": "ai", "conversationId": "c"}

        statuses = [(await api_client.post(SEARCH_URL, json=body)).status_code for _ in range(3)]
        limited = await api_client.post(SEARCH_URL, json=body)

        assert statuses == [200, 200, 429]
        assert limited.status_code == 429
        assert limited.headers["Retry-After"] == "60"
        assert limited.json()["error_code"] == "RATE_LIMIT_EXCEEDED"

    async def test_rate_limit_is_per_user(self, api_client, monkeypatch):
        monkeypatch.setattr(settings, "RATE_LIMIT_PER_MINUTE", 1)
        body = {"query": "ai", "conversationId": "c"}

        first = await api_client.post(SEARCH_URL, json=body, headers={"X-User-ID": "alice"})
        second = await api_client.post(SEARCH_URL, json=body, headers={"X-User-ID": "bob"})

        assert (first.status_code, second.status_code) == (200, 200)

    async def test_scholar_budget_status(self, api_client):
        response = await api_client.get(f"{SEARCH_URL}/rate-limit-status")

        assert response.status_code == 200
        assert response.json()["rateLimit"]["can_make_request"] is True

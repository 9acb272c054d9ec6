# tests/api/test_query_api.py
PREFIX = "/api/ai-searcher"

class TestQueryEndpoints:
    """Query generation, validation, combination and refinement"""

    async def test_generate_query(self, api_client):
        response = await api_client.post(f"{PREFIX}/generate-query", json={
            "conversationId": "conv-1",
            "contentSources": [{"source": "ideas", "id": "idea-1"}]
        })

        assert response.status_code == 200
        data = response.json()
        assert data["queries"][0]["query"]
        assert data["queries"][0]["keywords"]
        assert data["extractedContent"][0]["id"] == "idea-1"

    async def test_generate_query_requires_sources(self, api_client):
        response = await api_client.post(f"{PREFIX}/generate-query", json={
            "conversationId": "conv-1",
            "contentSources": []
        })
        assert response.status_code == 400

    async def test_validate_query(self, api_client):
        response = await api_client.post(f"{PREFIX}/validate-query", json={
            "query": '"machine learning" AND "healthcare"'
        })

        assert response.status_code == 200
        assert response.json()["validation"]["isValid"] is True

    async def test_validate_broken_query(self, api_client):
        response = await api_client.post(f"{PREFIX}/validate-query", json={"query": '"unclosed AND ('})

        validation = response.json()["validation"]
        assert validation["isValid"] is False
        assert validation["issues"]

    async def test_combine_queries(self, api_client):
        response = await api_client.post(f"{PREFIX}/combine-queries", json={"queries": [
            {"id": "q1", "query": '"machine learning"', "keywords": ["machine learning"], "confidence": 0.9},
            {"id": "q2", "query": '"education"', "keywords": ["education"], "confidence": 0.6},
        ]})

        assert response.status_code == 200
        combined = response.json()["combinedQuery"]
        assert combined["query"] == '"machine learning" OR "education"'
        assert combined["queryType"] == "combined"

    async def test_combine_requires_queries(self, api_client):
        response = await api_client.post(f"{PREFIX}/combine-queries", json={"queries": []})
        assert response.status_code == 400

    async def test_refine_query(self, api_client):
        response = await api_client.post(f"{PREFIX}/refine-query", json={
            "query": "blockchain",
            "conversationId": "conv-1"
        })

        assert response.status_code == 200
        refinement = response.json()["refinement"]
        assert refinement["breadthAnalysis"]["classification"] == "too_narrow"
        assert refinement["refinedQueries"]

    async def test_extract_content(self, api_client):
        response = await api_client.post(f"{PREFIX}/extract-content", json={
            "conversationId": "conv-1",
            "source": "builder",
            "id": "doc-1"
        })

        assert response.status_code == 200
        content = response.json()["extractedContent"]
        assert content["source"] == "builder"
        assert content["isFallback"] is False

# ai_searcher/tests/conftest.py
import pytest
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from ai_searcher.database.connection import Base
from ai_searcher.database import models  # noqa: F401
from ai_searcher.models.internal import ContentSourceType, ExtractedContent, SearchResult
from ai_searcher.services.cache_service import CacheService
from ai_searcher.services.content_extractor import ContentExtractionService
from ai_searcher.services.history_store import SearchHistoryStore
from ai_searcher.services.rate_limiter import RateLimiter
from ai_searcher.services.scholar_client import GoogleScholarClient, ScholarSearchProvider
from ai_searcher.core.pipeline import SearchOrchestrator

# In-memory database shared across one test through StaticPool
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

SCHOLAR_HTML = """
<html><body><div id="gs_res_ccl_mid">
<div class="gs_r gs_or gs_scl" data-cid="abc123">
  <div class="gs_ri">
    <h3 class="gs_rt">
      <span class="gs_ctg2">[PDF]</span>
      <a href="https://doi.org/10.1038/s41591-019-0548-6">Deep learning in healthcare: a review</a>
    </h3>
    <div class="gs_a">A Esteva, A Robicquet, B Ramsundar - Nature medicine, 2019 - nature.com</div>
    <div class="gs_rs">We review how deep learning methods for computer vision, natural language
      processing and reinforcement learning are being applied to clinical medicine.</div>
    <div class="gs_fl"><a href="/scholar?cites=1">Cited by 2345</a> <a href="/related">Related articles</a></div>
  </div>
</div>
<div class="gs_r gs_or gs_scl" data-cid="def456">
  <div class="gs_ri">
    <h3 class="gs_rt"><span class="gs_ct1">[CITATION]</span> Machine learning for clinical decision support</h3>
    <div class="gs_a">J Smith, K Lee - Journal of Medical Systems, 2021</div>
  </div>
</div>
</div></body></html>
"""

SAMPLE_TITLES = [
    "Deep learning for retinal imaging",
    "Soil carbon dynamics in grasslands",
    "Blockchain consensus under network partitions",
    "Urban heat islands and public health",
    "Protein structure prediction with attention models",
    "Microfinance and rural entrepreneurship",
]

IDEA_PAYLOAD = {
    "title": "Machine learning for early diagnosis in healthcare",
    "description": (
        "This idea explores machine learning models for early diagnosis in healthcare. "
        "Machine learning can support clinical decision making by analysing patient records, "
        "medical imaging and laboratory results. The research will compare deep learning "
        "approaches for diagnosis and evaluate their accuracy in hospital settings."
    ),
    "tags": ["machine learning", "healthcare"],
}

@pytest.fixture
async def test_engine():
    """Create test database engine"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False}
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()

@pytest.fixture
async def test_session(test_engine):
    """Create test database session"""
    async_session = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    async with async_session() as session:
        yield session
        await session.rollback()

@pytest.fixture
def session_factory(test_engine):
    """Commit-or-rollback session context, shaped like DatabaseManager.get_session_context"""
    async_session = async_sessionmaker(bind=test_engine, class_=AsyncSession, expire_on_commit=False)

    @asynccontextmanager
    async def factory():
        session = async_session()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    return factory

@pytest.fixture
def history_store(session_factory):
    return SearchHistoryStore(session_factory)

@pytest.fixture
def memory_cache():
    """Cache with Redis disabled"""
    return CacheService(redis_url="")

@pytest.fixture
def scholar_html():
    return SCHOLAR_HTML

@pytest.fixture
def idea_payload():
    return dict(IDEA_PAYLOAD)

@pytest.fixture
def content_api(idea_payload):
    """Stand-in for the ideas/builder content API"""
    api = AsyncMock()
    api.get_idea.return_value = idea_payload
    api.get_builder.return_value = {
        "title": "Thesis: AI in clinical practice",
        "sections": [
            {"title": "Introduction", "content": "Artificial intelligence is changing clinical practice."},
            {"title": "Methods", "content": "We survey machine learning studies in hospitals."},
        ],
    }
    api.health_check.return_value = "healthy"
    return api

@pytest.fixture
def content_extractor(content_api, memory_cache):
    return ContentExtractionService(content_api, memory_cache)

@pytest.fixture
def scholar_client(memory_cache, scholar_html):
    """Scholar client whose HTTP fetch returns the fixture page"""
    client = GoogleScholarClient(
        base_delay=0,
        max_delay=0,
        rate_limiter=RateLimiter(requests_per_minute=100, requests_per_hour=1000),
        cache=memory_cache
    )
    client._fetch = AsyncMock(return_value=scholar_html)
    return client

@pytest.fixture
def orchestrator(content_extractor, scholar_client, history_store, memory_cache):
    return SearchOrchestrator(
        content_extractor=content_extractor,
        search_provider=ScholarSearchProvider(scholar_client),
        history_store=history_store,
        cache=memory_cache
    )

@pytest.fixture
async def api_client(orchestrator):
    """HTTP client against the app with the test orchestrator injected"""
    from ai_searcher.main import app
    from ai_searcher.api.dependencies import get_orchestrator, reset_rate_limits

    reset_rate_limits()
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
    reset_rate_limits()

@pytest.fixture
def sample_content():
    return ExtractedContent(
        id="idea-1",
        source=ContentSourceType.IDEAS,
        title="ML in healthcare",
        content="Machine learning applied to healthcare diagnosis.",
        keywords=["machine learning", "healthcare"],
        topics=[],
        confidence=0.8
    )

@pytest.fixture
def make_result():
    """Factory for scored results with sensible defaults"""
    counter = {"n": 0}

    def factory(**overrides):
        counter["n"] += 1
        values = {
            "id": f"result_{counter['n']:016x}",
            "title": SAMPLE_TITLES[(counter["n"] - 1) % len(SAMPLE_TITLES)],
            "authors": ["A Author"],
            "journal": "Journal of Testing",
            "year": 2020,
            "confidence": 0.8,
            "relevance_score": 0.6,
            "citation_count": 10,
            "quality_score": 0.6,
        }
        values.update(overrides)
        return SearchResult(**values)

    return factory

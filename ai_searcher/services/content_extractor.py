# ai_searcher/services/content_extractor.py
import asyncio
import aiohttp
import logging
import time
from typing import List, Dict, Optional, Tuple, Any

from ai_searcher.config.settings import settings
from ai_searcher.core.exceptions import ContentExtractionException
from ai_searcher.core.outcome import Outcome, Failure, FailureKind
from ai_searcher.models.internal import ContentSourceType, ExtractedContent, dedupe_case_insensitive
from ai_searcher.services.cache_service import CacheService, build_cache_key
from ai_searcher.services.text_analysis import (
    analyze_text, calculate_content_confidence, MAX_KEYWORDS
)

logger = logging.getLogger(__name__)

FALLBACK_CONFIDENCE = 0.2

class ContentApiClient:
    """HTTP client for the ideas and builder document endpoints"""

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None):
        self.base_url = (base_url or settings.CONTENT_API_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.CONTENT_FETCH_TIMEOUT
        self.session = None

    async def _get_session(self):
        """Lazy initialization of HTTP session"""
        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self.session

    async def _get_json(self, path: str, label: str) -> Dict[str, Any]:
        session = await self._get_session()
        url = f"{self.base_url}{path}"
        async with session.get(url, headers={"Accept": "application/json"}) as response:
            if response.status == 404:
                raise ContentExtractionException(f"{label} not found", not_found=True)
            if response.status != 200:
                raise ContentExtractionException(f"{label} request returned status {response.status}")
            data = await response.json(content_type=None)

        if not isinstance(data, dict):
            raise ContentExtractionException(f"{label} response was not a JSON object")
        if data.get("success") is False:
            raise ContentExtractionException(
                data.get("error") or f"{label} not found", not_found=True
            )
        return data

    async def get_idea(self, idea_id: str) -> Dict[str, Any]:
        data = await self._get_json(f"/api/ideas/{idea_id}", f"Idea {idea_id}")
        return data.get("idea") or data

    async def get_builder(self, conversation_id: str) -> Dict[str, Any]:
        data = await self._get_json(
            f"/api/builder-content/{conversation_id}", f"Builder document {conversation_id}"
        )
        return data.get("document") or data

    async def health_check(self) -> str:
        return "healthy" if self.base_url else "unhealthy"

    async def close(self):
        if self.session:
            await self.session.close()
            self.session = None

def idea_to_text(idea: Dict[str, Any]) -> Tuple[str, str]:
    title = (idea.get("title") or "").strip()
    body = idea.get("description") or idea.get("content") or ""
    return title, f"{title}\n\n{body}".strip()

def builder_to_text(document: Dict[str, Any]) -> Tuple[str, str]:
    title = (document.get("title") or "Thesis Document").strip()
    parts = [title]
    for section in document.get("sections") or []:
        if not isinstance(section, dict):
            continue
        if section.get("title"):
            parts.append(section["title"])
        if section.get("content"):
            parts.append(section["content"])
    if document.get("content"):
        parts.append(document["content"])
    return title, "\n\n".join(p for p in parts if p).strip()

class ContentExtractionService:
    """
    Turns an idea or builder document into an ExtractedContent record.
    Upstream failures degrade to a labelled low-confidence fallback record.
    """

    def __init__(self, api_client: Optional[ContentApiClient] = None, cache: Optional[CacheService] = None):
        self.api = api_client or ContentApiClient()
        self.cache = cache or CacheService()

    async def extract(
        self,
        source: ContentSourceType,
        source_id: str,
        conversation_id: str
    ) -> Outcome[ExtractedContent]:
        source = ContentSourceType(source)
        start_time = time.time()
        cache_key = build_cache_key(conversation_id, source.value, source_id)

        cached = await self.cache.get(cache_key, "extraction")
        if cached:
            logger.info(f"Cache hit for content extraction: {source.value}:{source_id}")
            return Outcome.success(ExtractedContent.model_validate(cached))

        try:
            if source == ContentSourceType.IDEAS:
                idea = await self.api.get_idea(source_id)
                title, text = idea_to_text(idea)
                tags = idea.get("tags") or []
            else:
                document = await self.api.get_builder(conversation_id)
                title, text = builder_to_text(document)
                tags = document.get("tags") or []
        except (ContentExtractionException, aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            reason = str(e) or e.__class__.__name__
            kind = FailureKind.NOT_FOUND if getattr(e, "not_found", False) else FailureKind.UPSTREAM_UNAVAILABLE
            if isinstance(e, asyncio.TimeoutError):
                kind = FailureKind.TIMEOUT
            logger.warning(f"Content extraction from {source.value}:{source_id} failed, using fallback: {reason}")
            return Outcome.failed(
                Failure(kind=kind, message=reason, source=f"{source.value}:{source_id}"),
                fallback=self.fallback_content(source, source_id, conversation_id)
            )

        if not text.strip():
            logger.warning(f"No content found in {source.value}:{source_id}, using fallback")
            return Outcome.failed(
                Failure(
                    kind=FailureKind.INVALID_RESPONSE,
                    message="Source has no extractable content",
                    source=f"{source.value}:{source_id}"
                ),
                fallback=self.fallback_content(source, source_id, conversation_id)
            )

        content = self._build_content(source, source_id, title, text, tags)
        await self.cache.set(
            cache_key,
            content.model_dump(mode="json"),
            ttl=settings.CACHE_TTL_CONTENT_EXTRACTION,
            namespace="extraction"
        )

        logger.info(
            f"Content extraction completed for {source.value}:{source_id} in "
            f"{time.time() - start_time:.2f}s ({len(content.keywords)} keywords)"
        )
        return Outcome.success(content)

    async def extract_content(
        self,
        source: ContentSourceType,
        source_id: str,
        conversation_id: str
    ) -> ExtractedContent:
        """Never raises for upstream failures; returns the fallback record instead"""
        outcome = await self.extract(source, source_id, conversation_id)
        return outcome.unwrap_or(self.fallback_content(ContentSourceType(source), source_id, conversation_id))

    async def extract_many(
        self,
        sources: List[Tuple[ContentSourceType, str]],
        conversation_id: str
    ) -> Tuple[List[ExtractedContent], List[Failure]]:
        """Extract concurrently; output keeps input order"""
        outcomes = await asyncio.gather(
            *(self.extract(source, source_id, conversation_id) for source, source_id in sources)
        )

        contents = []
        failures = []
        for (source, source_id), outcome in zip(sources, outcomes):
            contents.append(outcome.unwrap_or(
                self.fallback_content(ContentSourceType(source), source_id, conversation_id)
            ))
            if not outcome.ok:
                failures.append(outcome.failure)

        logger.info(f"Extracted {len(contents) - len(failures)}/{len(contents)} content sources")
        return contents, failures

    def _build_content(
        self,
        source: ContentSourceType,
        source_id: str,
        title: str,
        text: str,
        tags: List[str]
    ) -> ExtractedContent:
        analysis = analyze_text(text)
        tag_terms = [
            tag.lower() for tag in tags
            if isinstance(tag, str) and any(ch.isalnum() for ch in tag)
        ]
        keywords = dedupe_case_insensitive(tag_terms + analysis.keywords)[:MAX_KEYWORDS]

        return ExtractedContent(
            id=source_id,
            source=source,
            title=title,
            content=analysis.content,
            keywords=keywords,
            key_phrases=analysis.key_phrases,
            topics=analysis.topics,
            confidence=calculate_content_confidence(analysis.content, keywords, title)
        )

    def fallback_content(self, source: ContentSourceType, source_id: str, conversation_id: str) -> ExtractedContent:
        if source == ContentSourceType.IDEAS:
            title = f"Research Topic {source_id}"
            text = f"Research Topic {source_id}. Content could not be extracted from the ideas source."
        else:
            title = f"Extraction Failed: Document {conversation_id}"
            text = f"Document {conversation_id}. Content could not be extracted from the builder source."

        analysis = analyze_text(text)
        return ExtractedContent(
            id=source_id,
            source=source,
            title=title,
            content=analysis.content,
            keywords=analysis.keywords,
            key_phrases=analysis.key_phrases,
            topics=analysis.topics,
            confidence=FALLBACK_CONFIDENCE,
            is_fallback=True
        )

    def combine_contents(self, contents: List[ExtractedContent]) -> Optional[ExtractedContent]:
        """Merge several records into one, unioning terms in order"""
        if not contents:
            return None
        if len(contents) == 1:
            return contents[0]

        return ExtractedContent(
            id="combined_" + "_".join(c.id for c in contents),
            source=contents[0].source,
            title=" + ".join(c.title for c in contents if c.title),
            content="\n\n".join(c.content for c in contents if c.content),
            keywords=dedupe_case_insensitive([k for c in contents for k in c.keywords]),
            key_phrases=list(dict.fromkeys(p for c in contents for p in c.key_phrases)),
            topics=dedupe_case_insensitive([t for c in contents for t in c.topics]),
            confidence=round(sum(c.confidence for c in contents) / len(contents), 4),
            is_fallback=all(c.is_fallback for c in contents)
        )

    async def health_check(self) -> str:
        try:
            return await self.api.health_check()
        except Exception as e:
            logger.error(f"Content extractor health check failed: {e}")
            return "unhealthy"

    async def close(self):
        await self.api.close()

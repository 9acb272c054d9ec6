# ai_searcher/core/pipeline.py
import asyncio
import json
import time
import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from ai_searcher.config.settings import settings
from ai_searcher.core.exceptions import (
    CustomHTTPException, PipelineException, QueryGenerationException, ServiceUnavailableException,
    ValidationException
)
from ai_searcher.core.outcome import Failure, FailureKind, Outcome
from ai_searcher.database.connection import db_manager
from ai_searcher.models.internal import (
    ContentSourceType, ExtractedContent, HistoryStatistics, LearningMetrics, QueryRefinement,
    SearchHistoryItem, SearchQuery, SearchResult, ValidationResult
)
from ai_searcher.models.requests import (
    ExtractContentRequest, FeedbackRequest, GenerateQueryRequest, RefineQueryRequest,
    ResultActionRequest, SearchFilters, SearchRequest, SessionFeedbackRequest
)
from ai_searcher.models.responses import (
    ActionResponse, AnalyticsResponse, FailedSource, GenerateQueryResponse, SearchResponse
)
from ai_searcher.services.cache_service import CacheService
from ai_searcher.services.content_extractor import ContentApiClient, ContentExtractionService
from ai_searcher.services.duplicate_detector import DuplicateDetector
from ai_searcher.services.feedback_learning import FeedbackLearningSystem
from ai_searcher.services.history_store import SearchHistoryStore, history_to_csv
from ai_searcher.services.query_engine import QueryGenerationEngine
from ai_searcher.services.result_scorer import ResultScorer
from ai_searcher.services.scholar_client import GoogleScholarClient, ScholarSearchProvider

logger = logging.getLogger(__name__)

QUERY_REQUIRED_MESSAGE = "Query is required (either directly or via content sources)"
MERGE_STRATEGY = "keep_most_complete"
HEALTH_CHECK_TTL = 30

class PipelineState(str, Enum):
    IDLE = "idle"
    CONTENT_EXTRACTED = "content_extracted"
    QUERY_GENERATED = "query_generated"
    RESULTS_FETCHED = "results_fetched"
    SCORED = "scored"
    DEDUPLICATED = "deduplicated"
    RANKED = "ranked"
    RESPONDED = "responded"
    ERRORED = "errored"

class SearchRun:
    """Per-request state tracker; stages only move forward or to ERRORED"""

    ORDER = [
        PipelineState.IDLE,
        PipelineState.CONTENT_EXTRACTED,
        PipelineState.QUERY_GENERATED,
        PipelineState.RESULTS_FETCHED,
        PipelineState.SCORED,
        PipelineState.DEDUPLICATED,
        PipelineState.RANKED,
        PipelineState.RESPONDED,
    ]

    def __init__(self, request_id: Optional[str] = None):
        self.request_id = request_id or str(uuid4())
        self.state = PipelineState.IDLE
        self.history: List[PipelineState] = [PipelineState.IDLE]
        self.failures: List[Failure] = []
        self.started_at = time.time()

    def advance(self, state: PipelineState):
        if self.state == PipelineState.ERRORED:
            raise PipelineException(f"Search run {self.request_id} already errored")
        if state != PipelineState.ERRORED and self.ORDER.index(state) <= self.ORDER.index(self.state):
            raise PipelineException(f"Invalid pipeline transition {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)
        logger.debug(f"Pipeline state: {state.value}", extra={"request_id": self.request_id})

    def degrade(self, failure: Failure):
        self.failures.append(failure)
        logger.warning(
            f"Degraded stage after {self.state.value}: {failure.kind.value} {failure.message}",
            extra={"request_id": self.request_id}
        )

    @property
    def elapsed(self) -> float:
        return time.time() - self.started_at

def failed_source(failure: Failure) -> FailedSource:
    source, _, source_id = (failure.source or "unknown").partition(":")
    return FailedSource(source=source, id=source_id, reason=failure.message)

def apply_result_filters(results: List[SearchResult], filters: Optional[SearchFilters]) -> List[SearchResult]:
    """Post-scoring filters; year range and sort order are handled by the provider"""
    if filters is None:
        return list(results)

    wanted_authors = [a.strip().lower() for a in filters.authors if a.strip()]
    wanted_journals = [j.strip().lower() for j in filters.journals if j.strip()]
    min_citations = filters.min_citations
    citation_range = filters.citation_count

    kept = []
    for result in results:
        if wanted_authors:
            authors = [a.lower() for a in result.authors]
            if not any(w in a for w in wanted_authors for a in authors):
                continue
        if wanted_journals:
            journal = (result.journal or "").lower()
            if not any(w in journal for w in wanted_journals):
                continue
        if min_citations is not None and result.citation_count < min_citations:
            continue
        if citation_range is not None:
            if citation_range.min is not None and result.citation_count < citation_range.min:
                continue
            if citation_range.max is not None and result.citation_count > citation_range.max:
                continue
        kept.append(result)
    return kept

class SearchOrchestrator:
    """
    Runs a search request through extraction, query generation, scholar
    search, scoring, deduplication and feedback ranking.

    Every stage degrades to partial or fallback data instead of aborting.
    The only hard failures are a request with no usable query and a
    scholar provider that stays unavailable after its retries.
    """

    def __init__(
        self,
        content_extractor: Optional[ContentExtractionService] = None,
        query_engine: Optional[QueryGenerationEngine] = None,
        search_provider: Optional[ScholarSearchProvider] = None,
        scorer: Optional[ResultScorer] = None,
        duplicate_detector: Optional[DuplicateDetector] = None,
        history_store: Optional[SearchHistoryStore] = None,
        learning: Optional[FeedbackLearningSystem] = None,
        cache: Optional[CacheService] = None
    ):
        self.cache = cache or CacheService()
        self.content_extractor = content_extractor or ContentExtractionService(ContentApiClient(), self.cache)
        self.query_engine = query_engine or QueryGenerationEngine()
        self.search_provider = search_provider or ScholarSearchProvider(GoogleScholarClient(cache=self.cache))
        self.scorer = scorer or ResultScorer()
        self.duplicate_detector = duplicate_detector or DuplicateDetector()
        self.history_store = history_store or SearchHistoryStore(db_manager.get_session_context)
        self.learning = learning or FeedbackLearningSystem(self.history_store)

        self.is_healthy = True
        self.last_health_check = 0
        self._health_snapshot: Dict[str, Any] = {}

    async def _run_with_timeout(self, coro, timeout: float, stage_name: str):
        try:
            return await asyncio.wait_for(coro, timeout=timeout)
        except asyncio.TimeoutError:
            logger.error(f"Stage '{stage_name}' timed out after {timeout}s")
            raise asyncio.TimeoutError(f"Stage '{stage_name}' timed out")

    # Content

    async def _extract_sources(
        self, request_sources, conversation_id: str, run: SearchRun
    ) -> Tuple[List[ExtractedContent], List[Failure]]:
        sources = [(ref.source, ref.id) for ref in request_sources]
        if not sources:
            return [], []

        try:
            contents, failures = await self._run_with_timeout(
                self.content_extractor.extract_many(sources, conversation_id),
                timeout=settings.EXTRACTION_TIMEOUT,
                stage_name="content_extraction"
            )
        except asyncio.TimeoutError:
            contents = [
                self.content_extractor.fallback_content(ContentSourceType(source), source_id, conversation_id)
                for source, source_id in sources
            ]
            failures = [
                Failure(
                    kind=FailureKind.TIMEOUT,
                    message="Content extraction timed out",
                    source=f"{ContentSourceType(source).value}:{source_id}"
                )
                for source, source_id in sources
            ]

        for failure in failures:
            run.degrade(failure)
        return contents, failures

    def _generate(self, contents: List[ExtractedContent], options=None) -> List[SearchQuery]:
        try:
            return self.query_engine.generate_queries(contents, options)
        except QueryGenerationException as e:
            logger.warning(f"Query generation failed: {e}")
            return []

    # Search

    async def _fetch_results(self, query: str, filters: SearchFilters, run: SearchRun) -> Outcome:
        date_range = filters.date_range
        try:
            return await self._run_with_timeout(
                self.search_provider.search(
                    query,
                    max_results=filters.max_results,
                    year_start=date_range.start if date_range else None,
                    year_end=date_range.end if date_range else None,
                    sort_by=filters.sort_by
                ),
                timeout=settings.SEARCH_TIMEOUT,
                stage_name="scholar_search"
            )
        except asyncio.TimeoutError:
            return Outcome.failed(Failure(
                kind=FailureKind.TIMEOUT,
                message="Scholar search timed out",
                source="scholar",
                fallback_url=self.search_provider.manual_search_url(
                    query,
                    date_range.start if date_range else None,
                    date_range.end if date_range else None
                )
            ), fallback=[])

    async def _rank(self, user_id: Optional[str], results: List[SearchResult], run: SearchRun) -> List[SearchResult]:
        if not user_id:
            return results
        try:
            return await self._run_with_timeout(
                self.learning.apply_feedback_based_ranking(user_id, results),
                timeout=settings.LEARNING_TIMEOUT,
                stage_name="feedback_ranking"
            )
        except asyncio.TimeoutError:
            run.degrade(Failure(kind=FailureKind.TIMEOUT, message="Feedback ranking timed out", source="history"))
            return results

    async def _record_session(self, request: SearchRequest, query: str, results: List[SearchResult],
                              contents: List[ExtractedContent], success: bool, run: SearchRun,
                              error_message: Optional[str] = None) -> Optional[str]:
        filters = request.filters.model_dump(mode="json", by_alias=True) if request.filters else None
        outcome = await self.history_store.record_search_session(
            conversation_id=request.conversation_id,
            user_id=request.user_id or "anonymous",
            query=query,
            content_sources=[ref.model_dump(mode="json") for ref in request.content_sources],
            filters=filters,
            results_count=len(results),
            success=success,
            processing_time_ms=int(run.elapsed * 1000),
            error_message=error_message
        )
        if not outcome.ok:
            logger.warning(f"Search session not recorded: {outcome.failure.message}",
                           extra={"request_id": run.request_id})
            return None

        if results:
            combined = self.content_extractor.combine_contents(contents)
            topics = combined.topics if combined else None
            stored = await self.history_store.record_search_results(outcome.value, results, topics or None)
            if not stored.ok:
                logger.warning(f"Search results not recorded: {stored.failure.message}",
                               extra={"request_id": run.request_id})
        return outcome.value

    async def search(self, request: SearchRequest, request_id: Optional[str] = None) -> SearchResponse:
        run = SearchRun(request_id)
        filters = request.filters or SearchFilters()
        query = (request.query or "").strip()

        logger.info(f"Starting search pipeline for conversation {request.conversation_id}",
                    extra={"request_id": run.request_id})

        contents, extraction_failures = await self._extract_sources(
            request.content_sources, request.conversation_id, run
        )
        run.advance(PipelineState.CONTENT_EXTRACTED)

        generated: List[SearchQuery] = []
        if not query and contents:
            generated = self._generate(contents, request.query_options)
            if generated:
                query = generated[0].query

        if not query:
            run.advance(PipelineState.ERRORED)
            logger.warning(QUERY_REQUIRED_MESSAGE, extra={"request_id": run.request_id})
            raise ValidationException(QUERY_REQUIRED_MESSAGE)
        run.advance(PipelineState.QUERY_GENERATED)

        outcome = await self._fetch_results(query, filters, run)
        degraded = bool(extraction_failures)
        fallback_url = None
        message = None

        if not outcome.ok:
            failure = outcome.failure
            run.degrade(failure)
            fallback_url = failure.fallback_url
            if failure.kind == FailureKind.UPSTREAM_UNAVAILABLE:
                run.advance(PipelineState.ERRORED)
                await self._record_session(request, query, [], contents, False, run, failure.message)
                logger.error(f"Scholar search unavailable: {failure.message}", extra={"request_id": run.request_id})
                raise ServiceUnavailableException(
                    f"{failure.message}. You can search Google Scholar directly instead.",
                    fallback_url=fallback_url
                )

            degraded = True
            if failure.kind == FailureKind.RATE_LIMITED:
                wait = int(failure.retry_after or 60)
                message = f"Google Scholar rate limit reached. Try again in {wait} seconds or search manually."
            else:
                message = "Google Scholar search timed out. Try again or search manually."

        raw_results = outcome.unwrap_or([])
        run.advance(PipelineState.RESULTS_FETCHED)

        scored = apply_result_filters(self.scorer.score_all(raw_results, query), filters)
        run.advance(PipelineState.SCORED)

        unique, groups = self.duplicate_detector.remove_duplicates(scored, merge_strategy=MERGE_STRATEGY)
        duplicates_removed = len(scored) - len(unique)
        run.advance(PipelineState.DEDUPLICATED)

        ranked = await self._rank(request.user_id, unique, run)
        results = ranked[:filters.max_results]
        run.advance(PipelineState.RANKED)

        session_id = await self._record_session(request, query, results, contents, True, run)

        response = SearchResponse(
            success=True,
            results=results,
            total_results=len(results),
            query=query,
            original_query=request.query or None,
            generated_queries=generated or None,
            extracted_content=contents or None,
            failed_sources=[failed_source(f) for f in extraction_failures],
            filters=request.filters,
            session_id=session_id,
            processing_time=round(run.elapsed, 3),
            duplicates_removed=duplicates_removed,
            degraded=degraded,
            fallback_url=fallback_url,
            message=message
        )
        run.advance(PipelineState.RESPONDED)

        logger.info(
            f"Search completed in {response.processing_time:.2f}s with {len(results)} results "
            f"({duplicates_removed} duplicates removed)",
            extra={"request_id": run.request_id}
        )
        return response

    # Query tooling

    async def generate_query(self, request: GenerateQueryRequest) -> GenerateQueryResponse:
        run = SearchRun()
        contents, failures = await self._extract_sources(request.content_sources, request.conversation_id, run)
        try:
            queries = self.query_engine.generate_queries(contents, request.options)
        except QueryGenerationException as e:
            raise ValidationException(str(e))

        return GenerateQueryResponse(
            queries=queries,
            extracted_content=contents,
            failed_sources=[failed_source(f) for f in failures],
            processing_time=round(run.elapsed, 3)
        )

    async def extract_content(self, request: ExtractContentRequest) -> ExtractedContent:
        return await self.content_extractor.extract_content(request.source, request.id, request.conversation_id)

    def validate_query(self, query: str) -> ValidationResult:
        return self.query_engine.validate_query(query)

    def combine_queries(self, queries: List[SearchQuery]) -> SearchQuery:
        if not queries:
            raise ValidationException("At least one query is required")
        return self.query_engine.combine_queries(queries)

    def refine_query(self, request: RefineQueryRequest) -> QueryRefinement:
        return self.query_engine.refine_query(request.query, request.original_content)

    # Feedback

    async def record_result_action(self, request: ResultActionRequest) -> ActionResponse:
        outcome = await self.history_store.record_result_action(
            request.session_id, request.result_id, request.action
        )
        if not outcome.ok:
            if outcome.failure.kind == FailureKind.NOT_FOUND:
                raise CustomHTTPException(404, outcome.failure.message, "NOT_FOUND")
            raise ServiceUnavailableException("Result action could not be recorded")

        entry = outcome.value
        if entry is not None and request.user_id:
            learned = await self.learning.learn_from_action(request.user_id, entry)
            if not learned.ok:
                logger.warning(f"Action recorded but learning update failed: {learned.failure.message}")

        return ActionResponse(success=True, message=f"Action '{request.action.value}' recorded")

    async def record_feedback(self, request: FeedbackRequest) -> ActionResponse:
        outcome = await self.learning.record_feedback(
            user_id=request.user_id,
            session_id=request.session_id,
            result=request.result,
            is_relevant=request.is_relevant,
            quality_rating=request.quality_rating,
            comments=request.comments
        )
        if not outcome.ok and outcome.fallback is None:
            raise ServiceUnavailableException("Feedback could not be stored")
        return ActionResponse(success=True, message="Feedback recorded")

    async def get_learning_metrics(self, user_id: str) -> LearningMetrics:
        return await self.learning.get_learning_metrics(user_id)

    async def get_preferences(self, user_id: str):
        pattern = await self.learning.get_user_preferences(user_id)
        filters = await self.learning.generate_adaptive_filters(user_id, pattern)
        return pattern, filters

    async def clear_learning_data(self, user_id: str) -> int:
        outcome = await self.learning.clear_user_learning_data(user_id)
        if not outcome.ok:
            raise ServiceUnavailableException("Learning data could not be cleared")
        return outcome.value

    # History and analytics

    @staticmethod
    def _history_value(outcome: Outcome, message: str):
        if outcome.ok:
            return outcome.value
        if outcome.failure.kind == FailureKind.NOT_FOUND:
            raise CustomHTTPException(404, outcome.failure.message, "NOT_FOUND")
        raise ServiceUnavailableException(message)

    async def get_history(self, user_id: str, limit: int = 50,
                          conversation_id: Optional[str] = None) -> List[SearchHistoryItem]:
        outcome = await self.history_store.get_search_history(user_id, limit, conversation_id)
        return self._history_value(outcome, "Search history is unavailable")

    async def get_history_statistics(self, user_id: str) -> HistoryStatistics:
        outcome = await self.history_store.get_statistics(user_id)
        return self._history_value(outcome, "Search statistics are unavailable")

    async def export_history(self, user_id: str, export_format: str = "json") -> Tuple[str, str]:
        """Full history as (body, media type)"""
        outcome = await self.history_store.get_search_history(user_id, limit=None)
        items = self._history_value(outcome, "Search history is unavailable")
        if export_format == "csv":
            return history_to_csv(items), "text/csv"
        body = json.dumps([item.model_dump(mode="json", by_alias=True) for item in items], indent=2)
        return body, "application/json"

    async def get_analytics(self, user_id: str, conversation_id: Optional[str] = None,
                            days: int = 30) -> AnalyticsResponse:
        analytics, conversion, satisfaction = await asyncio.gather(
            self.history_store.get_search_analytics(user_id, conversation_id, days),
            self.history_store.get_conversion_metrics(user_id, conversation_id, days),
            self.history_store.get_satisfaction_metrics(user_id, conversation_id, days)
        )
        return AnalyticsResponse(
            user_id=user_id,
            conversation_id=conversation_id,
            days=days,
            analytics=self._history_value(analytics, "Search analytics are unavailable"),
            conversion=self._history_value(conversion, "Search analytics are unavailable"),
            satisfaction=self._history_value(satisfaction, "Search analytics are unavailable")
        )

    async def record_session_feedback(self, request: SessionFeedbackRequest) -> ActionResponse:
        outcome = await self.history_store.record_session_feedback(
            session_id=request.session_id,
            user_id=request.user_id,
            overall_satisfaction=request.overall_satisfaction,
            relevance_rating=request.relevance_rating,
            quality_rating=request.quality_rating,
            ease_of_use_rating=request.ease_of_use_rating,
            would_recommend=request.would_recommend,
            feedback_comments=request.feedback_comments,
            improvement_suggestions=request.improvement_suggestions
        )
        self._history_value(outcome, "Session feedback could not be stored")
        return ActionResponse(success=True, message="Session feedback recorded")

    # Lifecycle

    async def health_check(self) -> Dict[str, Any]:
        current_time = time.time()
        if current_time - self.last_health_check < HEALTH_CHECK_TTL and self._health_snapshot:
            return {**self._health_snapshot, "cached": True}

        health_tasks = {
            "content_extractor": self.content_extractor.health_check(),
            "query_engine": self.query_engine.health_check(),
            "scholar": self.search_provider.health_check(),
            "history_store": self.history_store.health_check(),
            "cache": self.cache.health_check(),
        }
        results = await asyncio.gather(
            *(self._check_component_health(coro, name) for name, coro in health_tasks.items())
        )
        checks = dict(zip(health_tasks.keys(), results))

        unhealthy = [k for k, v in checks.items() if v not in ("healthy", "degraded")]
        self.is_healthy = len(unhealthy) <= 1
        overall = "healthy" if not unhealthy else "degraded" if len(unhealthy) == 1 else "unhealthy"
        if not unhealthy and any(v == "degraded" for v in checks.values()):
            overall = "degraded"

        self.last_health_check = current_time
        self._health_snapshot = {"overall": overall, **checks}
        return dict(self._health_snapshot)

    async def _check_component_health(self, health_coro, component_name: str, timeout: float = 5.0) -> str:
        try:
            return await asyncio.wait_for(health_coro, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Health check timeout for {component_name}")
            return "timeout"
        except Exception as e:
            logger.error(f"Health check error for {component_name}: {e}")
            return "unhealthy"

    def get_rate_limit_status(self) -> dict:
        return self.search_provider.get_rate_limit_status()

    async def shutdown(self):
        logger.info("Shutting down search pipeline components...")
        results = await asyncio.gather(
            self.content_extractor.close(),
            self.query_engine.close(),
            self.search_provider.close(),
            self.learning.close(),
            self.history_store.close(),
            self.cache.close(),
            return_exceptions=True
        )
        for result in results:
            if isinstance(result, Exception):
                logger.error(f"Error during pipeline shutdown: {result}")
        logger.info("Pipeline shutdown completed")

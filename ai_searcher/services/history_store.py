# ai_searcher/services/history_store.py
import csv
import io
import logging
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncContextManager, Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ai_searcher.core.exceptions import HistoryStoreException
from ai_searcher.core.outcome import Outcome, Failure, FailureKind
from ai_searcher.database.repositories import (
    SearchSessionRepository, SearchResultRepository, SessionFeedbackRepository, FeedbackRepository,
    PreferencePatternRepository
)
from ai_searcher.models.internal import (
    ConversionMetrics, FeedbackEntry, HistoryStatistics, RejectionPatterns, SatisfactionMetrics,
    SearchAnalytics, SearchHistoryItem, SearchResult, UserAction, UserPreferencePattern, YearRange
)
from ai_searcher.services.query_terms import parse_query

logger = logging.getLogger(__name__)

T = TypeVar("T")

SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]

# result action -> (is_relevant, implied rating)
ACTION_SIGNALS = {
    UserAction.ADDED: (True, 4),
    UserAction.BOOKMARKED: (True, 4),
    UserAction.REJECTED: (False, 2),
}

def action_to_entry(action: UserAction, record) -> Optional[FeedbackEntry]:
    signal = ACTION_SIGNALS.get(UserAction(action))
    if signal is None:
        return None
    is_relevant, rating = signal
    return FeedbackEntry(
        is_relevant=is_relevant,
        quality_rating=rating,
        authors=list(record.result_authors or []),
        journal=record.result_journal,
        year=record.result_year,
        citation_count=record.citation_count or 0,
        topics=list(record.result_topics or [])
    )

GENERIC_TOPIC_TERMS = {"research", "study", "analysis", "method", "system", "model"}
POPULAR_LIMIT = 10
EXPORT_COLUMNS = ["id", "timestamp", "query", "sources", "total_results", "accepted", "rejected"]

def query_topics(query: str) -> List[str]:
    """Distinct terms of a stored query, minus generic academic words"""
    return [t for t in parse_query(query).terms if len(t) > 2 and t not in GENERIC_TOPIC_TERMS]

def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive UTC, PostgreSQL aware datetimes
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)

def _ratio(part: float, whole: float) -> float:
    return round(part / whole, 4) if whole else 0.0

def session_sources(record) -> List[str]:
    sources: List[str] = []
    for ref in record.content_sources or []:
        source = ref.get("source") if isinstance(ref, dict) else ref
        if source and str(source) not in sources:
            sources.append(str(source))
    return sources

def to_history_item(record) -> SearchHistoryItem:
    return SearchHistoryItem(
        id=record.id,
        conversation_id=record.conversation_id,
        user_id=record.user_id,
        query=record.search_query,
        sources=session_sources(record),
        results_count=record.results_count or 0,
        results_accepted=record.results_accepted or 0,
        results_rejected=record.results_rejected or 0,
        success=bool(record.search_success),
        processing_time_ms=record.processing_time_ms or 0,
        created_at=_naive_utc(record.created_at)
    )

def build_statistics(totals: Tuple[int, float, int], recent: List[SearchHistoryItem],
                     now: datetime) -> HistoryStatistics:
    total, average, successful = totals
    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
    week_ago = now - timedelta(days=7)

    def since(cutoff):
        return sum(1 for item in recent if item.created_at and item.created_at >= cutoff)

    return HistoryStatistics(
        total_searches=total,
        searches_today=since(start_of_day),
        searches_this_week=since(week_ago),
        searches_this_month=len(recent),
        average_results=round(average, 2),
        success_rate=_ratio(successful, total)
    )

def build_search_analytics(items: List[SearchHistoryItem], period_start: datetime,
                           period_end: datetime) -> SearchAnalytics:
    topics = Counter(topic for item in items for topic in query_topics(item.query))
    sources = Counter(source for item in items for source in item.sources)
    total = len(items)
    successful = sum(1 for item in items if item.success)

    return SearchAnalytics(
        total_searches=total,
        successful_searches=successful,
        success_rate=_ratio(successful, total),
        average_results=round(sum(i.results_count for i in items) / total, 2) if total else 0.0,
        average_processing_time_ms=round(sum(i.processing_time_ms for i in items) / total, 2) if total else 0.0,
        popular_topics=[topic for topic, _ in topics.most_common(POPULAR_LIMIT)],
        popular_sources=[source for source, _ in sources.most_common()],
        period_start=period_start,
        period_end=period_end
    )

def build_conversion_metrics(items: List[SearchHistoryItem], action_counts: Dict[str, int]) -> ConversionMetrics:
    total_results = sum(item.results_count for item in items)
    viewed = action_counts.get(UserAction.VIEWED.value, 0)
    added = action_counts.get(UserAction.ADDED.value, 0)
    rejected = action_counts.get(UserAction.REJECTED.value, 0)

    return ConversionMetrics(
        total_searches=len(items),
        total_results=total_results,
        results_viewed=viewed,
        results_added=added,
        results_rejected=rejected,
        conversion_rate=_ratio(added, total_results),
        view_rate=_ratio(viewed, total_results),
        rejection_rate=_ratio(rejected, total_results)
    )

def build_satisfaction_metrics(rows) -> SatisfactionMetrics:
    count = len(rows)
    if not count:
        return SatisfactionMetrics()

    def mean(field):
        return round(sum(getattr(row, field) or 0 for row in rows) / count, 2)

    return SatisfactionMetrics(
        average_overall_satisfaction=mean("overall_satisfaction"),
        average_relevance_rating=mean("relevance_rating"),
        average_quality_rating=mean("quality_rating"),
        average_ease_of_use_rating=mean("ease_of_use_rating"),
        recommendation_rate=round(100.0 * sum(1 for row in rows if row.would_recommend) / count, 2),
        total_feedback_count=count
    )

def history_to_csv(items: List[SearchHistoryItem]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(EXPORT_COLUMNS)
    for item in items:
        writer.writerow([
            item.id,
            item.created_at.isoformat() if item.created_at else "",
            item.query,
            ";".join(item.sources),
            item.results_count,
            item.results_accepted,
            item.results_rejected,
        ])
    return buffer.getvalue()

class SearchHistoryStore:
    """
    Analytics and learning persistence. Every call returns an Outcome so
    callers degrade to "no history" instead of failing the search.
    """

    def __init__(self, session_factory: Optional[SessionFactory] = None):
        self.session_factory = session_factory

    async def _run(self, label: str, operation: Callable[[AsyncSession], Awaitable[T]]) -> Outcome[T]:
        if self.session_factory is None:
            return Outcome.failed(Failure(
                kind=FailureKind.UPSTREAM_UNAVAILABLE,
                message="History store is not configured",
                source="history"
            ))
        try:
            async with self.session_factory() as session:
                value = await operation(session)
            return Outcome.success(value)
        except (SQLAlchemyError, RuntimeError, OSError) as e:
            logger.warning(f"History store {label} failed: {e}")
            return Outcome.failed(Failure(
                kind=FailureKind.UPSTREAM_UNAVAILABLE,
                message=f"History store {label} failed",
                source="history"
            ))

    async def record_search_session(
        self,
        conversation_id: str,
        user_id: str,
        query: str,
        content_sources: List[Dict[str, Any]],
        filters: Optional[Dict[str, Any]] = None,
        results_count: int = 0,
        success: bool = True,
        processing_time_ms: int = 0,
        error_message: Optional[str] = None
    ) -> Outcome[str]:
        async def operation(session):
            record = await SearchSessionRepository(session).create_session(
                conversation_id=conversation_id,
                user_id=user_id,
                search_query=query,
                content_sources=content_sources,
                search_filters=filters,
                results_count=results_count,
                search_success=success,
                processing_time_ms=processing_time_ms,
                error_message=error_message
            )
            return record.id

        return await self._run("record_search_session", operation)

    async def record_search_results(self, session_id: str, results: List[SearchResult],
                                    topics: Optional[List[str]] = None) -> Outcome[int]:
        records = [
            {
                "result_key": result.id,
                "result_title": result.title,
                "result_authors": list(result.authors),
                "result_journal": result.journal,
                "result_year": result.year,
                "result_doi": result.doi,
                "result_url": result.url,
                "result_topics": list(topics or result.keywords),
                "relevance_score": result.relevance_score,
                "confidence_score": result.confidence,
                "quality_score": result.quality_score,
                "citation_count": result.citation_count,
            }
            for result in results
        ]

        async def operation(session):
            return await SearchResultRepository(session).add_results(session_id, records)

        return await self._run("record_search_results", operation)

    async def record_result_action(self, session_id: str, result_id: str,
                                   action: UserAction) -> Outcome[Optional[FeedbackEntry]]:
        """Store the action and return the learning signal it implies, if any"""
        action = UserAction(action)

        async def operation(session):
            results = SearchResultRepository(session)
            record = await results.get_result(session_id, result_id)
            if record is None:
                raise HistoryStoreException(f"Result {result_id} not found in session {session_id}")

            previous = UserAction(record.user_action or "none")
            await results.set_action(record, action.value)

            accepted = int(action in (UserAction.ADDED, UserAction.BOOKMARKED)) - \
                int(previous in (UserAction.ADDED, UserAction.BOOKMARKED))
            rejected = int(action == UserAction.REJECTED) - int(previous == UserAction.REJECTED)
            if accepted or rejected:
                await SearchSessionRepository(session).increment_counters(session_id, accepted, rejected)
            return action_to_entry(action, record)

        try:
            return await self._run("record_result_action", operation)
        except HistoryStoreException as e:
            return Outcome.failed(Failure(kind=FailureKind.NOT_FOUND, message=str(e), source="history"))

    async def add_feedback(self, user_id: str, session_id: Optional[str], result: SearchResult,
                           is_relevant: bool, quality_rating: int, comments: Optional[str] = None,
                           topics: Optional[List[str]] = None) -> Outcome[str]:
        async def operation(session):
            record = await FeedbackRepository(session).create_feedback(
                user_id=user_id,
                search_session_id=session_id,
                result_id=result.id,
                is_relevant=is_relevant,
                quality_rating=quality_rating,
                comments=comments,
                result_title=result.title,
                result_authors=list(result.authors),
                result_journal=result.journal,
                result_year=result.year,
                citation_count=result.citation_count,
                result_topics=list(topics or result.keywords)
            )
            return record.id

        return await self._run("add_feedback", operation)

    async def get_feedback_history(self, user_id: str, limit: int = 100) -> Outcome[List[FeedbackEntry]]:
        """Explicit feedback followed by signals implied by result actions, newest first"""
        async def operation(session):
            explicit = await FeedbackRepository(session).get_user_feedback(user_id, limit=limit)
            actions = await SearchResultRepository(session).get_user_actions(user_id, limit=limit)

            entries = [
                FeedbackEntry(
                    is_relevant=row.is_relevant,
                    quality_rating=row.quality_rating,
                    authors=list(row.result_authors or []),
                    journal=row.result_journal,
                    year=row.result_year,
                    citation_count=row.citation_count or 0,
                    topics=list(row.result_topics or [])
                )
                for row in explicit
            ]
            for row in actions:
                entry = action_to_entry(UserAction(row.user_action), row)
                if entry is not None:
                    entries.append(entry)
            return entries[:limit]

        return await self._run("get_feedback_history", operation)

    async def get_pattern(self, user_id: str) -> Outcome[Optional[UserPreferencePattern]]:
        async def operation(session):
            record = await PreferencePatternRepository(session).get_pattern(user_id)
            if record is None:
                return None
            return UserPreferencePattern(
                user_id=record.user_id,
                preferred_authors=record.preferred_authors or [],
                preferred_journals=record.preferred_journals or [],
                preferred_year_range=YearRange(**record.preferred_year_range) if record.preferred_year_range
                else YearRange(min=2010, max=datetime.utcnow().year),
                preferred_citation_range=YearRange(**record.preferred_citation_range)
                if record.preferred_citation_range else YearRange(min=0, max=10000),
                topic_preferences=record.topic_preferences or {},
                quality_threshold=record.quality_threshold if record.quality_threshold is not None else 0.5,
                relevance_threshold=record.relevance_threshold if record.relevance_threshold is not None else 0.5,
                rejection_patterns=RejectionPatterns(**(record.rejection_patterns or {})),
                last_updated=record.last_updated or datetime.utcnow()
            )

        return await self._run("get_pattern", operation)

    async def save_pattern(self, pattern: UserPreferencePattern) -> Outcome[bool]:
        values = pattern.model_dump(mode="json", exclude={"user_id", "last_updated"})

        async def operation(session):
            await PreferencePatternRepository(session).upsert_pattern(
                pattern.user_id, last_updated=datetime.utcnow(), **values
            )
            return True

        return await self._run("save_pattern", operation)

    async def clear_user_data(self, user_id: str) -> Outcome[int]:
        """Delete the user's feedback and learned patterns"""
        async def operation(session):
            removed = await FeedbackRepository(session).delete_user_feedback(user_id)
            removed += await PreferencePatternRepository(session).delete_pattern(user_id)
            return removed

        return await self._run("clear_user_data", operation)

    # History, analytics and session feedback

    async def get_search_history(self, user_id: str, limit: Optional[int] = 50,
                                 conversation_id: Optional[str] = None) -> Outcome[List[SearchHistoryItem]]:
        async def operation(session):
            records = await SearchSessionRepository(session).get_user_sessions(
                user_id, limit=limit, conversation_id=conversation_id
            )
            return [to_history_item(record) for record in records]

        return await self._run("get_search_history", operation)

    async def get_statistics(self, user_id: str, now: Optional[datetime] = None) -> Outcome[HistoryStatistics]:
        now = now or datetime.utcnow()

        async def operation(session):
            sessions = SearchSessionRepository(session)
            totals = await sessions.get_session_totals(user_id)
            recent = await sessions.get_user_sessions(user_id, limit=None, since=now - timedelta(days=30))
            return build_statistics(totals, [to_history_item(r) for r in recent], now)

        return await self._run("get_statistics", operation)

    async def get_search_analytics(self, user_id: str, conversation_id: Optional[str] = None,
                                   days: int = 30) -> Outcome[SearchAnalytics]:
        period_end = datetime.utcnow()
        period_start = period_end - timedelta(days=days)

        async def operation(session):
            records = await SearchSessionRepository(session).get_user_sessions(
                user_id, limit=None, conversation_id=conversation_id, since=period_start
            )
            return build_search_analytics([to_history_item(r) for r in records], period_start, period_end)

        return await self._run("get_search_analytics", operation)

    async def get_conversion_metrics(self, user_id: str, conversation_id: Optional[str] = None,
                                     days: int = 30) -> Outcome[ConversionMetrics]:
        since = datetime.utcnow() - timedelta(days=days)

        async def operation(session):
            records = await SearchSessionRepository(session).get_user_sessions(
                user_id, limit=None, conversation_id=conversation_id, since=since
            )
            counts = await SearchResultRepository(session).count_actions([r.id for r in records])
            return build_conversion_metrics([to_history_item(r) for r in records], counts)

        return await self._run("get_conversion_metrics", operation)

    async def get_satisfaction_metrics(self, user_id: str, conversation_id: Optional[str] = None,
                                       days: int = 30) -> Outcome[SatisfactionMetrics]:
        since = datetime.utcnow() - timedelta(days=days)

        async def operation(session):
            rows = await SessionFeedbackRepository(session).get_user_feedback(
                user_id, conversation_id=conversation_id, since=since
            )
            return build_satisfaction_metrics(rows)

        return await self._run("get_satisfaction_metrics", operation)

    async def record_session_feedback(
        self,
        session_id: str,
        overall_satisfaction: int,
        relevance_rating: int,
        quality_rating: int,
        ease_of_use_rating: int,
        would_recommend: bool,
        user_id: Optional[str] = None,
        feedback_comments: Optional[str] = None,
        improvement_suggestions: Optional[str] = None
    ) -> Outcome[str]:
        """Store overall ratings for a session; the session's own user is used when none is given"""
        async def operation(session):
            search_session = await SearchSessionRepository(session).get_session(session_id)
            if search_session is None:
                raise HistoryStoreException(f"Search session {session_id} not found")

            record = await SessionFeedbackRepository(session).create_feedback(
                search_session_id=session_id,
                user_id=user_id or search_session.user_id,
                overall_satisfaction=overall_satisfaction,
                relevance_rating=relevance_rating,
                quality_rating=quality_rating,
                ease_of_use_rating=ease_of_use_rating,
                would_recommend=would_recommend,
                feedback_comments=feedback_comments,
                improvement_suggestions=improvement_suggestions
            )
            return record.id

        try:
            return await self._run("record_session_feedback", operation)
        except HistoryStoreException as e:
            return Outcome.failed(Failure(kind=FailureKind.NOT_FOUND, message=str(e), source="history"))

    async def health_check(self) -> str:
        if self.session_factory is None:
            return "degraded"
        outcome = await self._run("health_check", self._ping)
        return "healthy" if outcome.ok else "unhealthy"

    @staticmethod
    async def _ping(session: AsyncSession) -> bool:
        await session.execute(text("SELECT 1"))
        return True

    async def close(self):
        pass

# ai_searcher/services/feedback_learning.py
import logging
from datetime import datetime
from typing import Dict, List, Optional

from ai_searcher.core.outcome import Outcome
from ai_searcher.models.internal import (
    AdaptiveFilter, FeedbackEntry, LearningAdjustments, LearningMetrics,
    RejectionPatterns, SearchResult, UserPreferencePattern, YearRange
)
from ai_searcher.services.history_store import SearchHistoryStore

logger = logging.getLogger(__name__)

LEARNING_RATE = 0.1

PREFERRED_AUTHOR_LIMIT = 50
PREFERRED_JOURNAL_LIMIT = 30
REJECTED_AUTHOR_LIMIT = 20
REJECTED_JOURNAL_LIMIT = 10
REJECTED_KEYWORD_LIMIT = 30

# signal weights applied to relevance
AUTHOR_WEIGHT = 0.2
JOURNAL_WEIGHT = 0.15
TOPIC_WEIGHT = 0.25
FILTER_WEIGHT = 0.1
LOW_QUALITY_PENALTY = 0.7

DEFAULT_YEAR_FLOOR = 2010

def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))

def _append_unique(values: List[str], additions: List[str]) -> List[str]:
    merged = list(values)
    for item in additions:
        if item and item not in merged:
            merged.append(item)
    return merged

def default_pattern(user_id: str) -> UserPreferencePattern:
    return UserPreferencePattern(user_id=user_id)

def is_positive(entry: FeedbackEntry) -> bool:
    return entry.is_relevant and entry.quality_rating >= 4

def is_negative(entry: FeedbackEntry) -> bool:
    return not entry.is_relevant or entry.quality_rating <= 2

def update_pattern(pattern: UserPreferencePattern, entry: FeedbackEntry) -> UserPreferencePattern:
    """
    Fold one piece of feedback into a preference pattern.

    Positive feedback promotes the result's authors and journal, negative
    feedback adds them to the rejection lists. Topic scores and the quality
    and relevance thresholds drift toward the feedback at LEARNING_RATE.
    Returns a new pattern; the input is left untouched.
    """
    journal = [entry.journal] if entry.journal else []

    preferred_authors = list(pattern.preferred_authors)
    preferred_journals = list(pattern.preferred_journals)
    if is_positive(entry):
        preferred_authors = _append_unique(preferred_authors, entry.authors)
        preferred_journals = _append_unique(preferred_journals, journal)

    rejections = pattern.rejection_patterns
    rejected_authors = list(rejections.authors)
    rejected_journals = list(rejections.journals)
    if is_negative(entry):
        rejected_authors = _append_unique(rejected_authors, entry.authors)
        rejected_journals = _append_unique(rejected_journals, journal)

    topic_preferences: Dict[str, float] = dict(pattern.topic_preferences)
    signal = entry.quality_rating / 5
    if not entry.is_relevant:
        signal = -signal
    for topic in entry.topics:
        current = topic_preferences.get(topic, 0.0)
        topic_preferences[topic] = _clamp(current + LEARNING_RATE * signal, -1.0, 1.0)

    quality_threshold = pattern.quality_threshold + \
        LEARNING_RATE * (entry.quality_rating / 5 - pattern.quality_threshold)
    relevance_target = 1.0 if entry.is_relevant else 0.0
    relevance_threshold = pattern.relevance_threshold + \
        LEARNING_RATE * (relevance_target - pattern.relevance_threshold)

    year_range = pattern.preferred_year_range
    if is_positive(entry) and entry.year:
        year_range = YearRange(min=min(year_range.min, entry.year), max=max(year_range.max, entry.year))

    return pattern.model_copy(update={
        "preferred_authors": preferred_authors[-PREFERRED_AUTHOR_LIMIT:],
        "preferred_journals": preferred_journals[-PREFERRED_JOURNAL_LIMIT:],
        "preferred_year_range": year_range,
        "topic_preferences": topic_preferences,
        "quality_threshold": _clamp(quality_threshold, 0.1, 0.9),
        "relevance_threshold": _clamp(relevance_threshold, 0.1, 0.9),
        "rejection_patterns": RejectionPatterns(
            authors=rejected_authors[-REJECTED_AUTHOR_LIMIT:],
            journals=rejected_journals[-REJECTED_JOURNAL_LIMIT:],
            keywords=list(rejections.keywords)[-REJECTED_KEYWORD_LIMIT:]
        ),
        "last_updated": datetime.utcnow(),
    })

def author_boost(authors: List[str], pattern: UserPreferencePattern) -> float:
    boost = 0.0
    for author in authors:
        if author in pattern.preferred_authors:
            boost += 0.3
        if author in pattern.rejection_patterns.authors:
            boost -= 0.4
    return _clamp(boost, -0.5, 0.5)

def journal_boost(journal: Optional[str], pattern: UserPreferencePattern) -> float:
    if not journal:
        return 0.0
    if journal in pattern.preferred_journals:
        return 0.2
    if journal in pattern.rejection_patterns.journals:
        return -0.3
    return 0.0

def topic_boost(result: SearchResult, pattern: UserPreferencePattern) -> float:
    text = " ".join([
        result.title, result.journal or "", result.abstract or "", " ".join(result.keywords)
    ]).lower()
    boost = sum(
        preference * 0.2
        for topic, preference in pattern.topic_preferences.items()
        if topic and topic.lower() in text
    )
    return _clamp(boost, -0.3, 0.3)

def evaluate_filter(result: SearchResult, adaptive_filter: AdaptiveFilter) -> float:
    """+1 when the filter favours the result, -1 when it counts against it, else 0"""
    direction = 1.0 if adaptive_filter.condition in ("boost", "include") else -1.0

    if adaptive_filter.type == "author" and isinstance(adaptive_filter.value, list):
        return direction if any(a in adaptive_filter.value for a in result.authors) else 0.0

    if adaptive_filter.type == "journal" and isinstance(adaptive_filter.value, list):
        return direction if result.journal and result.journal in adaptive_filter.value else 0.0

    if adaptive_filter.type == "year" and isinstance(adaptive_filter.value, YearRange) and result.year:
        in_range = adaptive_filter.value.min <= result.year <= adaptive_filter.value.max
        if in_range:
            return 1.0
        return -1.0 if adaptive_filter.condition == "include" else 0.0

    return 0.0

def filter_adjustment(result: SearchResult, filters: List[AdaptiveFilter]) -> float:
    adjustment = sum(
        evaluate_filter(result, f) * f.weight * f.confidence
        for f in filters
    )
    return _clamp(adjustment, -0.2, 0.2)

def calculate_metrics(entries: List[FeedbackEntry]) -> LearningMetrics:
    total = len(entries)
    if total == 0:
        return LearningMetrics()

    positive = sum(1 for e in entries if is_positive(e))
    negative = sum(1 for e in entries if is_negative(e))
    average = sum(e.quality_rating for e in entries) / total

    # entries arrive newest first; compare the recent half against the older half
    if total >= 4:
        half = total // 2
        recent = sum(e.quality_rating for e in entries[:half]) / half
        older = sum(e.quality_rating for e in entries[half:]) / (total - half)
        trend = _clamp((recent - older) / 4, -1.0, 1.0)
    else:
        trend = 0.1 if average > 3 else -0.1

    return LearningMetrics(
        total_feedback_count=total,
        positive_ratings=positive,
        negative_ratings=negative,
        average_rating=round(average, 3),
        improvement_trend=round(trend, 3),
        confidence_level=_clamp(min(1.0, total / 20) * (positive / total), 0.0, 1.0)
    )

def build_adaptive_filters(pattern: UserPreferencePattern, metrics: LearningMetrics,
                           current_year: Optional[int] = None) -> List[AdaptiveFilter]:
    confidence = metrics.confidence_level
    current_year = current_year or datetime.utcnow().year
    filters: List[AdaptiveFilter] = []

    if pattern.preferred_authors:
        filters.append(AdaptiveFilter(
            type="author", condition="boost", value=list(pattern.preferred_authors),
            weight=min(0.8, confidence), confidence=confidence, source="pattern_recognition"
        ))
    if pattern.preferred_journals:
        filters.append(AdaptiveFilter(
            type="journal", condition="boost", value=list(pattern.preferred_journals),
            weight=min(0.7, confidence), confidence=confidence, source="pattern_recognition"
        ))

    year_range = pattern.preferred_year_range
    if year_range.min > DEFAULT_YEAR_FLOOR or year_range.max < current_year:
        filters.append(AdaptiveFilter(
            type="year", condition="include", value=year_range,
            weight=0.5, confidence=confidence, source="pattern_recognition"
        ))

    rejections = pattern.rejection_patterns
    if rejections.authors:
        filters.append(AdaptiveFilter(
            type="author", condition="penalize", value=list(rejections.authors),
            weight=0.6, confidence=confidence, source="explicit_feedback"
        ))
    if rejections.journals:
        filters.append(AdaptiveFilter(
            type="journal", condition="penalize", value=list(rejections.journals),
            weight=0.5, confidence=confidence, source="explicit_feedback"
        ))
    return filters

def combined_score(result: SearchResult) -> float:
    return result.relevance_score * 0.6 + result.quality_score * 0.4

class FeedbackLearningSystem:
    """
    Learns per-user preferences from explicit feedback and result actions,
    and re-ranks search results with them.

    Ranking only reads history. When the history store is unavailable or the
    user has no stored pattern, results are returned unchanged.
    """

    def __init__(self, history_store: Optional[SearchHistoryStore] = None):
        self.history_store = history_store or SearchHistoryStore()

    async def _load_pattern(self, user_id: str) -> Outcome[Optional[UserPreferencePattern]]:
        return await self.history_store.get_pattern(user_id)

    async def get_user_preferences(self, user_id: str) -> UserPreferencePattern:
        """Stored pattern, or the default pattern for new users"""
        outcome = await self._load_pattern(user_id)
        if outcome.ok and outcome.value is not None:
            return outcome.value
        return default_pattern(user_id)

    async def learn_from_action(self, user_id: str, entry: FeedbackEntry) -> Outcome[UserPreferencePattern]:
        """Update the user's pattern with a single feedback signal and persist it"""
        current = await self._load_pattern(user_id)
        if not current.ok:
            return Outcome.failed(current.failure)

        pattern = update_pattern(current.value or default_pattern(user_id), entry)
        saved = await self.history_store.save_pattern(pattern)
        if not saved.ok:
            return Outcome.failed(saved.failure, fallback=pattern)

        logger.debug(f"Updated preference pattern for user {user_id}")
        return Outcome.success(pattern)

    async def record_feedback(
        self,
        user_id: str,
        session_id: Optional[str],
        result: SearchResult,
        is_relevant: bool,
        quality_rating: int,
        comments: Optional[str] = None,
        topics: Optional[List[str]] = None
    ) -> Outcome[UserPreferencePattern]:
        if not 1 <= quality_rating <= 5:
            raise ValueError("quality_rating must be between 1 and 5")

        stored = await self.history_store.add_feedback(
            user_id, session_id, result, is_relevant, quality_rating, comments, topics
        )
        if not stored.ok:
            logger.warning(f"Feedback for user {user_id} not stored: {stored.failure.message}")
            return Outcome.failed(stored.failure)

        entry = FeedbackEntry(
            is_relevant=is_relevant,
            quality_rating=quality_rating,
            authors=list(result.authors),
            journal=result.journal,
            year=result.year,
            citation_count=result.citation_count,
            topics=list(topics or result.keywords)
        )
        return await self.learn_from_action(user_id, entry)

    async def get_learning_metrics(self, user_id: str) -> LearningMetrics:
        history = await self.history_store.get_feedback_history(user_id)
        if not history.ok:
            return LearningMetrics()
        return calculate_metrics(history.value)

    async def generate_adaptive_filters(self, user_id: str,
                                        pattern: Optional[UserPreferencePattern] = None) -> List[AdaptiveFilter]:
        pattern = pattern or await self.get_user_preferences(user_id)
        metrics = await self.get_learning_metrics(user_id)
        return build_adaptive_filters(pattern, metrics)

    def rank_with_pattern(self, results: List[SearchResult], pattern: UserPreferencePattern,
                          filters: List[AdaptiveFilter]) -> List[SearchResult]:
        ranked = []
        for result in results:
            a_boost = author_boost(result.authors, pattern)
            j_boost = journal_boost(result.journal, pattern)
            t_boost = topic_boost(result, pattern)
            f_adjust = filter_adjustment(result, filters)

            relevance = result.relevance_score + a_boost * AUTHOR_WEIGHT + j_boost * JOURNAL_WEIGHT + \
                t_boost * TOPIC_WEIGHT + f_adjust * FILTER_WEIGHT
            quality = result.quality_score
            if quality < pattern.quality_threshold:
                quality *= LOW_QUALITY_PENALTY

            ranked.append(result.model_copy(update={
                "relevance_score": round(_clamp(relevance, 0.0, 1.0), 4),
                "quality_score": round(_clamp(quality, 0.0, 1.0), 4),
                "learning_adjustments": LearningAdjustments(
                    author_boost=a_boost,
                    journal_boost=j_boost,
                    topic_boost=t_boost,
                    filter_adjustment=f_adjust,
                    original_relevance_score=result.relevance_score,
                    original_quality_score=result.quality_score
                )
            }))

        # sorted() is stable, so ties keep their scored order
        return sorted(ranked, key=combined_score, reverse=True)

    async def apply_feedback_based_ranking(self, user_id: Optional[str],
                                           results: List[SearchResult]) -> List[SearchResult]:
        if not user_id or not results:
            return list(results)

        outcome = await self._load_pattern(user_id)
        if not outcome.ok:
            logger.warning(f"Learning history unavailable, ranking unchanged: {outcome.failure.message}")
            return list(results)
        if outcome.value is None:
            return list(results)

        pattern = outcome.value
        filters = await self.generate_adaptive_filters(user_id, pattern)
        return self.rank_with_pattern(results, pattern, filters)

    async def clear_user_learning_data(self, user_id: str) -> Outcome[int]:
        outcome = await self.history_store.clear_user_data(user_id)
        if outcome.ok:
            logger.info(f"Learning data cleared for user: {user_id}")
        return outcome

    async def health_check(self) -> str:
        return await self.history_store.health_check()

    async def close(self):
        pass

__all__ = [
    "FeedbackLearningSystem",
    "update_pattern",
    "calculate_metrics",
    "build_adaptive_filters",
    "author_boost",
    "journal_boost",
    "topic_boost",
    "filter_adjustment",
]

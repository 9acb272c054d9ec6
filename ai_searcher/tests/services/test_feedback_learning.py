# tests/services/test_feedback_learning.py
from datetime import datetime

import pytest

from ai_searcher.models.internal import FeedbackEntry, LearningMetrics, UserPreferencePattern, YearRange
from ai_searcher.services.feedback_learning import (
    FeedbackLearningSystem, author_boost, build_adaptive_filters, calculate_metrics,
    journal_boost, topic_boost, update_pattern
)
from ai_searcher.services.history_store import SearchHistoryStore

def entry(is_relevant=True, rating=5, **overrides):
    values = {
        "is_relevant": is_relevant,
        "quality_rating": rating,
        "authors": ["A Esteva"],
        "journal": "Nature",
        "year": 2019,
        "topics": ["imaging"],
    }
    values.update(overrides)
    return FeedbackEntry(**values)

@pytest.fixture
def pattern():
    return UserPreferencePattern(user_id="user-1")

@pytest.fixture
def learning(history_store):
    return FeedbackLearningSystem(history_store)

class TestUpdatePattern:
    """Folding feedback into preferences"""

    def test_positive_feedback(self, pattern):
        updated = update_pattern(pattern, entry())

        assert updated.preferred_authors == ["A Esteva"]
        assert updated.preferred_journals == ["Nature"]
        assert updated.topic_preferences == {"imaging": pytest.approx(0.1)}
        assert updated.quality_threshold == pytest.approx(0.55)
        assert updated.relevance_threshold == pytest.approx(0.55)
        assert updated.rejection_patterns.authors == []

    def test_negative_feedback(self, pattern):
        updated = update_pattern(pattern, entry(is_relevant=False, rating=1))

        assert updated.preferred_authors == []
        assert updated.rejection_patterns.authors == ["A Esteva"]
        assert updated.rejection_patterns.journals == ["Nature"]
        assert updated.topic_preferences["imaging"] == pytest.approx(-0.02)
        assert updated.relevance_threshold == pytest.approx(0.45)

    def test_input_untouched(self, pattern):
        update_pattern(pattern, entry())
        assert pattern.preferred_authors == []
        assert pattern.topic_preferences == {}

    def test_thresholds_stay_bounded(self, pattern):
        for _ in range(100):
            pattern = update_pattern(pattern, entry(is_relevant=False, rating=1))
        assert pattern.quality_threshold == pytest.approx(0.2, abs=0.01)
        assert pattern.relevance_threshold == 0.1
        assert pattern.topic_preferences["imaging"] >= -1.0

    def test_positive_year_widens_range(self, pattern):
        updated = update_pattern(pattern, entry(year=2001))
        assert updated.preferred_year_range.min == 2001

class TestBoosts:
    """Per-signal adjustments"""

    def test_author_boost(self, pattern):
        liked = pattern.model_copy(update={"preferred_authors": ["A", "B"]})
        assert author_boost(["A"], liked) == pytest.approx(0.3)
        assert author_boost(["A", "B"], liked) == 0.5
        assert author_boost(["Z"], liked) == 0.0

        disliked = update_pattern(pattern, entry(is_relevant=False, rating=1, authors=["Z"]))
        assert author_boost(["Z"], disliked) == pytest.approx(-0.4)

    def test_journal_boost(self, pattern):
        liked = update_pattern(pattern, entry(journal="Nature"))
        assert journal_boost("Nature", liked) == 0.2
        assert journal_boost(None, liked) == 0.0

        disliked = update_pattern(pattern, entry(is_relevant=False, rating=1, journal="Spam Letters"))
        assert journal_boost("Spam Letters", disliked) == -0.3

    def test_topic_boost(self, pattern, make_result):
        liked = pattern.model_copy(update={"topic_preferences": {"retinal": 1.0, "soil": -1.0}})
        assert topic_boost(make_result(title="Deep learning for retinal imaging"), liked) == pytest.approx(0.2)
        assert topic_boost(make_result(title="Soil carbon dynamics"), liked) == pytest.approx(-0.2)

class TestMetricsAndFilters:
    """Aggregates over feedback history"""

    def test_empty_history(self):
        assert calculate_metrics([]) == LearningMetrics()

    def test_metrics(self):
        history = [entry(rating=5), entry(rating=5), entry(is_relevant=False, rating=1), entry(rating=1)]

        metrics = calculate_metrics(history)

        assert metrics.total_feedback_count == 4
        assert metrics.positive_ratings == 2
        assert metrics.negative_ratings == 2
        assert metrics.average_rating == 3.0
        assert metrics.improvement_trend == 1.0
        assert 0.0 <= metrics.confidence_level <= 1.0

    def test_filters_from_pattern(self, pattern):
        liked = update_pattern(pattern, entry(year=2001))
        metrics = LearningMetrics(confidence_level=0.5)

        filters = build_adaptive_filters(liked, metrics, current_year=datetime.utcnow().year)
        types = {(f.type, f.condition) for f in filters}

        assert ("author", "boost") in types
        assert ("journal", "boost") in types
        assert ("year", "include") not in types

    def test_narrow_year_range_adds_filter(self, pattern):
        narrowed = pattern.model_copy(update={"preferred_year_range": YearRange(min=2018, max=2020)})
        filters = build_adaptive_filters(narrowed, LearningMetrics(), current_year=2025)
        assert [f.type for f in filters] == ["year"]

class TestRanking:
    """Re-ranking with a learned pattern"""

    def test_preferred_author_moves_up(self, learning, pattern, make_result):
        plain = make_result()
        favourite = make_result(authors=["Fav Author"])
        liked = pattern.model_copy(update={"preferred_authors": ["Fav Author"]})

        ranked = learning.rank_with_pattern([plain, favourite], liked, [])

        assert [r.id for r in ranked] == [favourite.id, plain.id]
        assert ranked[0].relevance_score == pytest.approx(0.66)
        assert ranked[0].learning_adjustments.author_boost == pytest.approx(0.3)
        assert ranked[0].learning_adjustments.original_relevance_score == 0.6

    def test_low_quality_penalized(self, learning, pattern, make_result):
        ranked = learning.rank_with_pattern([make_result(quality_score=0.4)], pattern, [])
        assert ranked[0].quality_score == pytest.approx(0.28)

    def test_ties_keep_order(self, learning, pattern, make_result):
        results = [make_result(), make_result(), make_result()]
        ranked = learning.rank_with_pattern(results, pattern, [])
        assert [r.id for r in ranked] == [r.id for r in results]

    async def test_no_user_returns_input(self, learning, make_result):
        results = [make_result(), make_result()]
        assert await learning.apply_feedback_based_ranking(None, results) == results

    async def test_no_pattern_returns_input(self, learning, make_result):
        results = [make_result(relevance_score=0.2), make_result(relevance_score=0.9)]

        ranked = await learning.apply_feedback_based_ranking("new-user", results)

        assert ranked == results
        assert all(r.learning_adjustments is None for r in ranked)

    async def test_store_unavailable_returns_input(self, make_result):
        learning = FeedbackLearningSystem(SearchHistoryStore())
        results = [make_result(relevance_score=0.2), make_result(relevance_score=0.9)]

        assert await learning.apply_feedback_based_ranking("user-1", results) == results
        assert (await learning.get_user_preferences("user-1")).preferred_authors == []

class TestLearningSystem:
    """Feedback recorded through the history store"""

    async def test_record_feedback_learns(self, learning, make_result):
        result = make_result(authors=["Fav Author"], journal="Nature", keywords=["imaging"])

        outcome = await learning.record_feedback("user-1", None, result, True, 5)

        assert outcome.ok
        stored = await learning.get_user_preferences("user-1")
        assert stored.preferred_authors == ["Fav Author"]
        assert stored.topic_preferences["imaging"] == pytest.approx(0.1)

    async def test_feedback_changes_ranking(self, learning, make_result):
        await learning.record_feedback("user-1", None, make_result(authors=["Fav Author"]), True, 5)
        plain = make_result(relevance_score=0.62)
        favourite = make_result(authors=["Fav Author"], relevance_score=0.6)

        ranked = await learning.apply_feedback_based_ranking("user-1", [plain, favourite])

        assert ranked[0].id == favourite.id
        assert ranked[0].learning_adjustments is not None

    async def test_invalid_rating(self, learning, make_result):
        with pytest.raises(ValueError):
            await learning.record_feedback("user-1", None, make_result(), True, 6)

    async def test_metrics_from_history(self, learning, make_result):
        await learning.record_feedback("user-1", None, make_result(), True, 5)
        await learning.record_feedback("user-1", None, make_result(), False, 2)

        metrics = await learning.get_learning_metrics("user-1")

        assert metrics.total_feedback_count == 2
        assert metrics.positive_ratings == 1
        assert metrics.negative_ratings == 1

    async def test_clear(self, learning, make_result):
        await learning.record_feedback("user-1", None, make_result(), True, 5)

        outcome = await learning.clear_user_learning_data("user-1")

        assert outcome.value == 2
        assert (await learning.get_user_preferences("user-1")).preferred_authors == []

    async def test_health(self, learning):
        assert await learning.health_check() == "healthy"

# tests/services/test_history_store.py
from contextlib import asynccontextmanager
from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import OperationalError

from ai_searcher.core.outcome import FailureKind
from ai_searcher.database.repositories import SearchSessionRepository
from ai_searcher.models.internal import UserAction, UserPreferencePattern
from ai_searcher.services.history_store import SearchHistoryStore, history_to_csv, query_topics

async def record_session(store, results, user_id="user-1"):
    session_id = (await store.record_search_session(
        conversation_id="conv-1",
        user_id=user_id,
        query='"machine learning"',
        content_sources=[{"source": "ideas", "id": "idea-1"}],
        results_count=len(results)
    )).value
    await store.record_search_results(session_id, results)
    return session_id

async def record_plain_session(store, query, user_id="user-1", conversation_id="conv-1",
                               sources=("ideas",), results_count=2, success=True, processing_time_ms=100):
    return (await store.record_search_session(
        conversation_id=conversation_id,
        user_id=user_id,
        query=query,
        content_sources=[{"source": s, "id": f"{s}-1"} for s in sources],
        results_count=results_count,
        success=success,
        processing_time_ms=processing_time_ms
    )).value

def failing_factory():
    @asynccontextmanager
    async def factory():
        raise OperationalError("SELECT 1", {}, Exception("database is locked"))
        yield  # pragma: no cover

    return factory

class TestSessions:
    """Session and result persistence"""

    async def test_record_session_and_results(self, history_store, make_result, test_session):
        results = [make_result(), make_result()]

        session_id = await record_session(history_store, results)

        assert session_id
        record = await SearchSessionRepository(test_session).get_session(session_id)
        assert record.results_count == 2
        assert record.search_success is True

    async def test_result_action_updates_counters(self, history_store, make_result, test_session):
        result = make_result(authors=["A Esteva"], journal="Nature", keywords=["imaging"])
        session_id = await record_session(history_store, [result])

        outcome = await history_store.record_result_action(session_id, result.id, UserAction.ADDED)

        assert outcome.ok
        assert outcome.value.is_relevant is True
        assert outcome.value.quality_rating == 4
        assert outcome.value.authors == ["A Esteva"]
        assert outcome.value.topics == ["imaging"]

        record = await SearchSessionRepository(test_session).get_session(session_id)
        assert record.results_accepted == 1
        assert record.results_rejected == 0

    async def test_changing_action_moves_counters(self, history_store, make_result, test_session):
        result = make_result()
        session_id = await record_session(history_store, [result])

        await history_store.record_result_action(session_id, result.id, UserAction.ADDED)
        outcome = await history_store.record_result_action(session_id, result.id, UserAction.REJECTED)

        assert outcome.value.is_relevant is False
        record = await SearchSessionRepository(test_session).get_session(session_id)
        assert record.results_accepted == 0
        assert record.results_rejected == 1

    async def test_viewed_implies_no_signal(self, history_store, make_result):
        result = make_result()
        session_id = await record_session(history_store, [result])

        outcome = await history_store.record_result_action(session_id, result.id, "viewed")

        assert outcome.ok
        assert outcome.value is None

    async def test_unknown_result_is_not_found(self, history_store, make_result):
        session_id = await record_session(history_store, [make_result()])

        outcome = await history_store.record_result_action(session_id, "result_missing", UserAction.ADDED)

        assert not outcome.ok
        assert outcome.failure.kind == FailureKind.NOT_FOUND

class TestFeedbackAndPatterns:
    """Learning history"""

    async def test_feedback_history_includes_actions(self, history_store, make_result):
        rated = make_result(journal="Nature")
        acted = make_result(journal="Science")
        session_id = await record_session(history_store, [rated, acted])

        await history_store.add_feedback("user-1", session_id, rated, True, 5, comments="great")
        await history_store.record_result_action(session_id, acted.id, UserAction.REJECTED)

        history = await history_store.get_feedback_history("user-1")

        assert history.ok
        assert len(history.value) == 2
        assert history.value[0].quality_rating == 5
        assert history.value[1].is_relevant is False
        assert history.value[1].journal == "Science"

    async def test_history_is_per_user(self, history_store, make_result):
        result = make_result()
        await history_store.add_feedback("someone-else", None, result, True, 4)

        history = await history_store.get_feedback_history("user-1")

        assert history.value == []

    async def test_missing_pattern(self, history_store):
        outcome = await history_store.get_pattern("nobody")
        assert outcome.ok
        assert outcome.value is None

    async def test_pattern_round_trip(self, history_store):
        pattern = UserPreferencePattern(
            user_id="user-1",
            preferred_authors=["A Esteva"],
            topic_preferences={"imaging": 0.4},
            quality_threshold=0.6
        )

        assert (await history_store.save_pattern(pattern)).ok
        loaded = (await history_store.get_pattern("user-1")).value

        assert loaded.preferred_authors == ["A Esteva"]
        assert loaded.topic_preferences == {"imaging": 0.4}
        assert loaded.quality_threshold == 0.6
        assert loaded.preferred_year_range == pattern.preferred_year_range

    async def test_save_pattern_overwrites(self, history_store):
        await history_store.save_pattern(UserPreferencePattern(user_id="user-1", preferred_journals=["Nature"]))
        await history_store.save_pattern(UserPreferencePattern(user_id="user-1", preferred_journals=["Cell"]))

        loaded = (await history_store.get_pattern("user-1")).value

        assert loaded.preferred_journals == ["Cell"]

    async def test_clear_user_data(self, history_store, make_result):
        await history_store.add_feedback("user-1", None, make_result(), True, 4)
        await history_store.add_feedback("user-1", None, make_result(), False, 1)
        await history_store.save_pattern(UserPreferencePattern(user_id="user-1"))

        outcome = await history_store.clear_user_data("user-1")

        assert outcome.value == 3
        assert (await history_store.get_pattern("user-1")).value is None
        assert (await history_store.get_feedback_history("user-1")).value == []

class TestHistoryReads:
    """Search history, statistics and analytics"""

    async def test_history_items(self, history_store):
        await record_plain_session(history_store, '"soil carbon"', sources=("ideas", "builder"))
        await record_plain_session(history_store, '"urban heat"', results_count=0, success=False)
        await record_plain_session(history_store, '"other user"', user_id="user-2")

        outcome = await history_store.get_search_history("user-1")

        assert outcome.ok
        by_query = {item.query: item for item in outcome.value}
        assert set(by_query) == {'"soil carbon"', '"urban heat"'}
        assert by_query['"soil carbon"'].sources == ["ideas", "builder"]
        assert by_query['"urban heat"'].success is False
        assert all(item.created_at is not None for item in outcome.value)

    async def test_history_limit_and_conversation(self, history_store):
        for i in range(3):
            await record_plain_session(history_store, f"query{i}", conversation_id=f"conv-{i % 2}")

        assert len((await history_store.get_search_history("user-1", limit=2)).value) == 2
        in_conversation = (await history_store.get_search_history("user-1", conversation_id="conv-0")).value
        assert {item.query for item in in_conversation} == {"query0", "query2"}

    async def test_statistics_windows(self, history_store):
        await record_plain_session(history_store, "a1", results_count=4)
        await record_plain_session(history_store, "b2", results_count=0, success=False)

        two_days_on = (await history_store.get_statistics("user-1", now=datetime.utcnow() + timedelta(days=2))).value
        ten_days_on = (await history_store.get_statistics("user-1", now=datetime.utcnow() + timedelta(days=10))).value

        assert two_days_on.total_searches == 2
        assert two_days_on.searches_today == 0
        assert two_days_on.searches_this_week == 2
        assert two_days_on.searches_this_month == 2
        assert two_days_on.average_results == 2.0
        assert two_days_on.success_rate == 0.5
        assert ten_days_on.searches_this_week == 0
        assert ten_days_on.searches_this_month == 2

    async def test_statistics_without_history(self, history_store):
        stats = (await history_store.get_statistics("nobody")).value
        assert stats.total_searches == 0
        assert stats.success_rate == 0.0

    async def test_search_analytics(self, history_store):
        await record_plain_session(history_store, '"machine learning" AND "healthcare"', processing_time_ms=200)
        await record_plain_session(history_store, '"machine learning" AND research', sources=("builder",),
                                   results_count=0, success=False, processing_time_ms=400)

        analytics = (await history_store.get_search_analytics("user-1", days=7)).value

        assert analytics.total_searches == 2
        assert analytics.successful_searches == 1
        assert analytics.success_rate == 0.5
        assert analytics.average_results == 1.0
        assert analytics.average_processing_time_ms == 300.0
        assert analytics.popular_topics[0] == "machine learning"
        assert "research" not in analytics.popular_topics
        assert set(analytics.popular_sources) == {"ideas", "builder"}
        assert analytics.period_end - analytics.period_start == timedelta(days=7)

    async def test_conversion_metrics(self, history_store, make_result):
        results = [make_result() for _ in range(4)]
        session_id = await record_session(history_store, results)
        await history_store.record_result_action(session_id, results[0].id, UserAction.ADDED)
        await history_store.record_result_action(session_id, results[1].id, UserAction.REJECTED)
        await history_store.record_result_action(session_id, results[2].id, UserAction.VIEWED)

        conversion = (await history_store.get_conversion_metrics("user-1")).value

        assert conversion.total_searches == 1
        assert conversion.total_results == 4
        assert (conversion.results_added, conversion.results_rejected, conversion.results_viewed) == (1, 1, 1)
        assert conversion.conversion_rate == 0.25
        assert conversion.rejection_rate == 0.25
        assert conversion.view_rate == 0.25

    async def test_conversion_without_searches(self, history_store):
        conversion = (await history_store.get_conversion_metrics("nobody")).value
        assert conversion.total_results == 0
        assert conversion.conversion_rate == 0.0

class TestSessionFeedback:
    """Overall ratings per search session"""

    async def test_satisfaction_metrics(self, history_store):
        session_id = await record_plain_session(history_store, "genomics")
        await history_store.record_session_feedback(session_id, 5, 4, 4, 5, True, user_id="user-1")
        await history_store.record_session_feedback(session_id, 3, 2, 3, 4, False, user_id="user-1")

        satisfaction = (await history_store.get_satisfaction_metrics("user-1")).value

        assert satisfaction.total_feedback_count == 2
        assert satisfaction.average_overall_satisfaction == 4.0
        assert satisfaction.average_relevance_rating == 3.0
        assert satisfaction.average_ease_of_use_rating == 4.5
        assert satisfaction.recommendation_rate == 50.0

    async def test_defaults_to_session_user(self, history_store):
        session_id = await record_plain_session(history_store, "genomics", user_id="owner")

        outcome = await history_store.record_session_feedback(session_id, 4, 4, 4, 4, True)

        assert outcome.ok
        assert (await history_store.get_satisfaction_metrics("owner")).value.total_feedback_count == 1

    async def test_filtered_by_conversation(self, history_store):
        first = await record_plain_session(history_store, "a1", conversation_id="conv-a")
        second = await record_plain_session(history_store, "b2", conversation_id="conv-b")
        await history_store.record_session_feedback(first, 5, 5, 5, 5, True)
        await history_store.record_session_feedback(second, 1, 1, 1, 1, False)

        satisfaction = (await history_store.get_satisfaction_metrics("user-1", conversation_id="conv-b")).value

        assert satisfaction.total_feedback_count == 1
        assert satisfaction.average_overall_satisfaction == 1.0

    async def test_unknown_session(self, history_store):
        outcome = await history_store.record_session_feedback("missing", 4, 4, 4, 4, True)

        assert outcome.failure.kind == FailureKind.NOT_FOUND

    async def test_no_feedback(self, history_store):
        satisfaction = (await history_store.get_satisfaction_metrics("nobody")).value
        assert satisfaction.total_feedback_count == 0
        assert satisfaction.recommendation_rate == 0.0

class TestHistoryHelpers:
    def test_query_topics_skip_generic_and_short_terms(self):
        topics = query_topics('"machine learning" AND research AND (ai OR "health care")')
        assert set(topics) == {"machine learning", "health care"}

    async def test_csv_export_quotes_queries(self, history_store):
        await record_plain_session(history_store, '"soil carbon"', sources=("ideas", "builder"))
        items = (await history_store.get_search_history("user-1")).value

        lines = history_to_csv(items).splitlines()

        assert lines[0] == "id,timestamp,query,sources,total_results,accepted,rejected"
        assert '"""soil carbon"""' in lines[1]
        assert lines[1].endswith(",ideas;builder,2,0,0")

class TestUnavailableStore:
    """Failures surface as outcomes"""

    async def test_unconfigured_store(self, make_result):
        store = SearchHistoryStore()

        outcome = await store.record_search_results("s", [make_result()])

        assert outcome.failure.kind == FailureKind.UPSTREAM_UNAVAILABLE
        assert await store.health_check() == "degraded"

    async def test_history_reads_degrade(self):
        outcome = await SearchHistoryStore().get_search_history("user-1")
        assert outcome.failure.kind == FailureKind.UPSTREAM_UNAVAILABLE

    async def test_database_error(self):
        store = SearchHistoryStore(failing_factory())

        outcome = await store.get_pattern("user-1")

        assert not outcome.ok
        assert outcome.failure.kind == FailureKind.UPSTREAM_UNAVAILABLE
        assert outcome.failure.source == "history"
        assert await store.health_check() == "unhealthy"

    async def test_healthy(self, history_store):
        assert await history_store.health_check() == "healthy"

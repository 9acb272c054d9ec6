# tests/database/test_db_repositories.py
import pytest

from ai_searcher.database.repositories import (
    FeedbackRepository, PreferencePatternRepository, SearchResultRepository, SearchSessionRepository,
    SessionFeedbackRepository
)

@pytest.fixture
async def search_session(test_session):
    return await SearchSessionRepository(test_session).create_session(
        conversation_id="conv-1",
        user_id="user-1",
        search_query='"machine learning"',
        content_sources=[{"source": "ideas", "id": "idea-1"}],
        results_count=2,
        search_success=True
    )

def result_record(key, **overrides):
    values = {"result_key": key, "result_title": f"Paper {key}", "result_authors": ["A Author"]}
    values.update(overrides)
    return values

class TestSearchSessionRepository:
    async def test_create_and_get(self, test_session, search_session):
        repo = SearchSessionRepository(test_session)

        fetched = await repo.get_session(search_session.id)

        assert fetched.search_query == '"machine learning"'
        assert fetched.content_sources == [{"source": "ideas", "id": "idea-1"}]
        assert await repo.get_session("missing") is None

    async def test_increment_counters(self, test_session, search_session):
        repo = SearchSessionRepository(test_session)

        await repo.increment_counters(search_session.id, accepted=2, rejected=1)
        await repo.increment_counters(search_session.id, accepted=-1)
        await test_session.refresh(search_session)

        assert search_session.results_accepted == 1
        assert search_session.results_rejected == 1

    async def test_user_sessions(self, test_session, search_session):
        repo = SearchSessionRepository(test_session)
        await repo.create_session("conv-2", "someone-else", "q", [])

        sessions = await repo.get_user_sessions("user-1")

        assert [s.id for s in sessions] == [search_session.id]

    async def test_user_sessions_by_conversation(self, test_session, search_session):
        repo = SearchSessionRepository(test_session)
        other = await repo.create_session("conv-2", "user-1", "q", [])

        sessions = await repo.get_user_sessions("user-1", limit=None, conversation_id="conv-2")

        assert [s.id for s in sessions] == [other.id]

    async def test_session_totals(self, test_session, search_session):
        repo = SearchSessionRepository(test_session)
        await repo.create_session("conv-1", "user-1", "q", [], results_count=0, search_success=False)

        assert await repo.get_session_totals("user-1") == (2, 1.0, 1)
        assert await repo.get_session_totals("nobody") == (0, 0.0, 0)

class TestSearchResultRepository:
    async def test_add_and_get(self, test_session, search_session):
        repo = SearchResultRepository(test_session)

        added = await repo.add_results(search_session.id, [result_record("a"), result_record("b")])
        record = await repo.get_result(search_session.id, "b")

        assert added == 2
        assert record.result_title == "Paper b"
        assert record.user_action == "none"
        assert await repo.get_result(search_session.id, "zzz") is None

    async def test_added_action_marks_library(self, test_session, search_session):
        repo = SearchResultRepository(test_session)
        await repo.add_results(search_session.id, [result_record("a")])
        record = await repo.get_result(search_session.id, "a")

        await repo.set_action(record, "added")

        assert record.added_to_library is True
        assert record.added_at is not None

    async def test_user_actions_only_learning_actions(self, test_session, search_session):
        repo = SearchResultRepository(test_session)
        await repo.add_results(search_session.id, [result_record("a"), result_record("b"), result_record("c")])
        await repo.set_action(await repo.get_result(search_session.id, "a"), "added")
        await repo.set_action(await repo.get_result(search_session.id, "b"), "viewed")
        await repo.set_action(await repo.get_result(search_session.id, "c"), "rejected")

        actions = await repo.get_user_actions("user-1")

        assert {r.result_key for r in actions} == {"a", "c"}
        assert await repo.get_user_actions("someone-else") == []

    async def test_count_actions(self, test_session, search_session):
        repo = SearchResultRepository(test_session)
        await repo.add_results(search_session.id, [result_record("a"), result_record("b"), result_record("c")])
        await repo.set_action(await repo.get_result(search_session.id, "a"), "added")
        await repo.set_action(await repo.get_result(search_session.id, "b"), "added")

        counts = await repo.count_actions([search_session.id])

        assert counts == {"added": 2, "none": 1}
        assert await repo.count_actions([]) == {}

class TestFeedbackRepository:
    async def test_create_list_delete(self, test_session):
        repo = FeedbackRepository(test_session)
        for rating in (5, 2):
            await repo.create_feedback(
                user_id="user-1", result_id="r", is_relevant=rating > 3,
                quality_rating=rating, result_title="Paper"
            )
        await repo.create_feedback(
            user_id="user-2", result_id="r", is_relevant=True, quality_rating=4, result_title="Paper"
        )

        feedback = await repo.get_user_feedback("user-1")
        removed = await repo.delete_user_feedback("user-1")

        assert {f.quality_rating for f in feedback} == {5, 2}
        assert removed == 2
        assert len(await repo.get_user_feedback("user-2")) == 1

class TestPreferencePatternRepository:
    async def test_upsert(self, test_session):
        repo = PreferencePatternRepository(test_session)

        await repo.upsert_pattern("user-1", preferred_authors=["A"], quality_threshold=0.4)
        updated = await repo.upsert_pattern("user-1", preferred_authors=["B"])

        assert updated.preferred_authors == ["B"]
        assert updated.quality_threshold == 0.4
        assert (await repo.get_pattern("user-1")).preferred_authors == ["B"]

    async def test_delete(self, test_session):
        repo = PreferencePatternRepository(test_session)
        await repo.upsert_pattern("user-1")

        assert await repo.delete_pattern("user-1") == 1
        assert await repo.delete_pattern("user-1") == 0
        assert await repo.get_pattern("user-1") is None

class TestSessionFeedbackRepository:
    async def test_create_and_filter(self, test_session, search_session):
        sessions = SearchSessionRepository(test_session)
        other = await sessions.create_session("conv-2", "user-1", "q", [])
        repo = SessionFeedbackRepository(test_session)
        for session_id, rating in ((search_session.id, 5), (other.id, 2)):
            await repo.create_feedback(
                search_session_id=session_id, user_id="user-1", overall_satisfaction=rating,
                relevance_rating=rating, quality_rating=rating, ease_of_use_rating=rating,
                would_recommend=rating > 3
            )

        everything = await repo.get_user_feedback("user-1")
        in_conversation = await repo.get_user_feedback("user-1", conversation_id="conv-2")

        assert {f.overall_satisfaction for f in everything} == {5, 2}
        assert [f.overall_satisfaction for f in in_conversation] == [2]
        assert await repo.get_user_feedback("user-2") == []

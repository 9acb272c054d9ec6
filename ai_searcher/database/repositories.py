# ai_searcher/database/repositories.py
from typing import List, Optional, Dict, Any, Tuple
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, desc, func, case
import logging

from ai_searcher.database.models import (
    SearchSession, SearchResultRecord, SearchFeedback, UserFeedbackLearning, UserPreferencePatternRecord
)

logger = logging.getLogger(__name__)

LEARNING_ACTIONS = ("added", "bookmarked", "rejected")

class BaseRepository:
    """Base repository with common database operations"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def commit(self):
        """Commit the session"""
        await self.session.commit()

    async def rollback(self):
        """Rollback the session"""
        await self.session.rollback()

class SearchSessionRepository(BaseRepository):
    """Repository for SearchSession operations"""

    async def create_session(self, conversation_id: str, user_id: str, search_query: str,
                             content_sources: List[Any], search_filters: Optional[Dict[str, Any]] = None,
                             results_count: int = 0, search_success: bool = False,
                             processing_time_ms: int = 0,
                             error_message: Optional[str] = None) -> SearchSession:
        search_session = SearchSession(
            conversation_id=conversation_id,
            user_id=user_id,
            search_query=search_query,
            content_sources=content_sources,
            search_filters=search_filters or {},
            results_count=results_count,
            search_success=search_success,
            processing_time_ms=processing_time_ms,
            error_message=error_message
        )
        self.session.add(search_session)
        await self.session.flush()
        return search_session

    async def get_session(self, session_id: str) -> Optional[SearchSession]:
        result = await self.session.execute(
            select(SearchSession).where(SearchSession.id == session_id)
        )
        return result.scalar_one_or_none()

    async def increment_counters(self, session_id: str, accepted: int = 0, rejected: int = 0) -> None:
        """Adjust accepted/rejected counters in place"""
        await self.session.execute(
            update(SearchSession)
            .where(SearchSession.id == session_id)
            .values(
                results_accepted=SearchSession.results_accepted + accepted,
                results_rejected=SearchSession.results_rejected + rejected
            )
        )

    async def get_user_sessions(self, user_id: str, limit: Optional[int] = 50,
                                conversation_id: Optional[str] = None,
                                since: Optional[datetime] = None) -> List[SearchSession]:
        """Newest first; `limit=None` returns every match"""
        query = select(SearchSession).where(SearchSession.user_id == user_id)
        if conversation_id:
            query = query.where(SearchSession.conversation_id == conversation_id)
        if since is not None:
            query = query.where(SearchSession.created_at >= since)
        query = query.order_by(desc(SearchSession.created_at))
        if limit is not None:
            query = query.limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_session_totals(self, user_id: str) -> Tuple[int, float, int]:
        """(sessions, mean results per session, successful sessions) over all time"""
        result = await self.session.execute(
            select(
                func.count(SearchSession.id),
                func.avg(SearchSession.results_count),
                func.sum(case((SearchSession.search_success.is_(True), 1), else_=0))
            ).where(SearchSession.user_id == user_id)
        )
        total, average, successful = result.one()
        return total or 0, float(average or 0.0), int(successful or 0)

class SearchResultRepository(BaseRepository):
    """Repository for per-session result records"""

    async def add_results(self, session_id: str, records: List[Dict[str, Any]]) -> int:
        for record in records:
            self.session.add(SearchResultRecord(search_session_id=session_id, **record))
        await self.session.flush()
        return len(records)

    async def get_result(self, session_id: str, result_key: str) -> Optional[SearchResultRecord]:
        result = await self.session.execute(
            select(SearchResultRecord)
            .where(
                SearchResultRecord.search_session_id == session_id,
                SearchResultRecord.result_key == result_key
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def set_action(self, record: SearchResultRecord, action: str) -> None:
        record.user_action = action
        if action == "added":
            record.added_to_library = True
            record.added_at = datetime.utcnow()
        await self.session.flush()

    async def get_user_actions(self, user_id: str, limit: int = 200) -> List[SearchResultRecord]:
        """Results the user added, bookmarked or rejected, newest first"""
        result = await self.session.execute(
            select(SearchResultRecord)
            .join(SearchSession, SearchSession.id == SearchResultRecord.search_session_id)
            .where(
                SearchSession.user_id == user_id,
                SearchResultRecord.user_action.in_(LEARNING_ACTIONS)
            )
            .order_by(desc(SearchResultRecord.created_at))
            .limit(limit)
        )
        return list(result.scalars().all())

    async def count_actions(self, session_ids: List[str]) -> Dict[str, int]:
        """user_action -> number of results, across the given sessions"""
        if not session_ids:
            return {}
        result = await self.session.execute(
            select(SearchResultRecord.user_action, func.count(SearchResultRecord.id))
            .where(SearchResultRecord.search_session_id.in_(session_ids))
            .group_by(SearchResultRecord.user_action)
        )
        return {action: count for action, count in result.all()}

class SessionFeedbackRepository(BaseRepository):
    """Repository for per-session satisfaction feedback"""

    async def create_feedback(self, **values) -> SearchFeedback:
        feedback = SearchFeedback(**values)
        self.session.add(feedback)
        await self.session.flush()
        return feedback

    async def get_user_feedback(self, user_id: str, conversation_id: Optional[str] = None,
                                since: Optional[datetime] = None) -> List[SearchFeedback]:
        query = select(SearchFeedback).where(SearchFeedback.user_id == user_id)
        if conversation_id:
            query = query.join(SearchSession, SearchSession.id == SearchFeedback.search_session_id)
            query = query.where(SearchSession.conversation_id == conversation_id)
        if since is not None:
            query = query.where(SearchFeedback.created_at >= since)
        result = await self.session.execute(query.order_by(desc(SearchFeedback.created_at)))
        return list(result.scalars().all())

class FeedbackRepository(BaseRepository):
    """Repository for explicit user feedback"""

    async def create_feedback(self, **values) -> UserFeedbackLearning:
        feedback = UserFeedbackLearning(**values)
        self.session.add(feedback)
        await self.session.flush()
        return feedback

    async def get_user_feedback(self, user_id: str, limit: int = 100,
                                since: Optional[datetime] = None) -> List[UserFeedbackLearning]:
        query = select(UserFeedbackLearning).where(UserFeedbackLearning.user_id == user_id)
        if since is not None:
            query = query.where(UserFeedbackLearning.created_at >= since)
        result = await self.session.execute(
            query.order_by(desc(UserFeedbackLearning.created_at)).limit(limit)
        )
        return list(result.scalars().all())

    async def delete_user_feedback(self, user_id: str) -> int:
        result = await self.session.execute(
            delete(UserFeedbackLearning).where(UserFeedbackLearning.user_id == user_id)
        )
        return result.rowcount or 0

class PreferencePatternRepository(BaseRepository):
    """Repository for learned user preference patterns"""

    async def get_pattern(self, user_id: str) -> Optional[UserPreferencePatternRecord]:
        result = await self.session.execute(
            select(UserPreferencePatternRecord).where(UserPreferencePatternRecord.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def upsert_pattern(self, user_id: str, **values) -> UserPreferencePatternRecord:
        record = await self.get_pattern(user_id)
        if record is None:
            record = UserPreferencePatternRecord(user_id=user_id, **values)
            self.session.add(record)
        else:
            for key, value in values.items():
                setattr(record, key, value)
        await self.session.flush()
        return record

    async def delete_pattern(self, user_id: str) -> int:
        result = await self.session.execute(
            delete(UserPreferencePatternRecord).where(UserPreferencePatternRecord.user_id == user_id)
        )
        return result.rowcount or 0

# ai_searcher/database/models.py
from sqlalchemy import (
    Column, Integer, String, Text, Float, Boolean, DateTime, JSON,
    ForeignKey, Index, CheckConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from ai_searcher.database.connection import Base

def _uuid() -> str:
    return str(uuid.uuid4())

USER_ACTIONS = ("none", "viewed", "added", "rejected", "bookmarked", "ignored")

class SearchSession(Base):
    """One search invocation and its outcome"""
    __tablename__ = "search_sessions"

    id = Column(String(36), primary_key=True, default=_uuid)
    conversation_id = Column(String(255), nullable=False, index=True)
    user_id = Column(String(255), nullable=False, index=True)
    search_query = Column(Text, nullable=False)
    content_sources = Column(JSON, nullable=False, default=list)
    search_filters = Column(JSON, nullable=True, default=dict)

    results_count = Column(Integer, default=0)
    results_accepted = Column(Integer, default=0)
    results_rejected = Column(Integer, default=0)
    search_success = Column(Boolean, default=False)
    processing_time_ms = Column(Integer, default=0)
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    results = relationship("SearchResultRecord", back_populates="session", cascade="all, delete-orphan")
    feedback = relationship("SearchFeedback", back_populates="session", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_search_sessions_created_at", "created_at"),
        Index("ix_search_sessions_user_created", "user_id", "created_at"),
    )

class SearchResultRecord(Base):
    """A result returned within a session and what the user did with it"""
    __tablename__ = "search_results"

    id = Column(String(36), primary_key=True, default=_uuid)
    search_session_id = Column(
        String(36), ForeignKey("search_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    result_key = Column(String(64), nullable=False, index=True)

    result_title = Column(Text, nullable=False)
    result_authors = Column(JSON, nullable=False, default=list)
    result_journal = Column(Text, nullable=True)
    result_year = Column(Integer, nullable=True)
    result_doi = Column(String(255), nullable=True)
    result_url = Column(Text, nullable=True)
    result_topics = Column(JSON, nullable=False, default=list)

    relevance_score = Column(Float, default=0.0)
    confidence_score = Column(Float, default=0.0)
    quality_score = Column(Float, default=0.0)
    citation_count = Column(Integer, default=0)

    user_action = Column(String(20), nullable=False, default="none")
    user_feedback_rating = Column(Integer, nullable=True)
    user_feedback_comments = Column(Text, nullable=True)
    added_to_library = Column(Boolean, default=False)
    added_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    session = relationship("SearchSession", back_populates="results")

    __table_args__ = (
        CheckConstraint(
            "user_action IN ('none', 'viewed', 'added', 'rejected', 'bookmarked', 'ignored')",
            name="ck_search_results_user_action"
        ),
        CheckConstraint(
            "user_feedback_rating IS NULL OR (user_feedback_rating >= 1 AND user_feedback_rating <= 5)",
            name="ck_search_results_rating"
        ),
        Index("ix_search_results_session_key", "search_session_id", "result_key"),
    )

class SearchFeedback(Base):
    """Overall ratings a user gave one search session"""
    __tablename__ = "search_feedback"

    id = Column(String(36), primary_key=True, default=_uuid)
    search_session_id = Column(
        String(36), ForeignKey("search_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(String(255), nullable=False, index=True)

    overall_satisfaction = Column(Integer, nullable=False)
    relevance_rating = Column(Integer, nullable=False)
    quality_rating = Column(Integer, nullable=False)
    ease_of_use_rating = Column(Integer, nullable=False)
    would_recommend = Column(Boolean, nullable=False, default=False)
    feedback_comments = Column(Text, nullable=True)
    improvement_suggestions = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    session = relationship("SearchSession", back_populates="feedback")

    __table_args__ = (
        CheckConstraint(
            "overall_satisfaction BETWEEN 1 AND 5 AND relevance_rating BETWEEN 1 AND 5 "
            "AND quality_rating BETWEEN 1 AND 5 AND ease_of_use_rating BETWEEN 1 AND 5",
            name="ck_search_feedback_ratings"
        ),
        Index("ix_search_feedback_user_created", "user_id", "created_at"),
    )

class UserFeedbackLearning(Base):
    """Explicit relevance feedback on a single result"""
    __tablename__ = "user_feedback_learning"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(255), nullable=False, index=True)
    search_session_id = Column(String(36), nullable=True, index=True)
    result_id = Column(String(64), nullable=False)

    is_relevant = Column(Boolean, nullable=False)
    quality_rating = Column(Integer, nullable=False)
    comments = Column(Text, nullable=True)

    result_title = Column(Text, nullable=False)
    result_authors = Column(JSON, nullable=False, default=list)
    result_journal = Column(Text, nullable=True)
    result_year = Column(Integer, nullable=True)
    citation_count = Column(Integer, default=0)
    result_topics = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint("quality_rating >= 1 AND quality_rating <= 5", name="ck_feedback_quality_rating"),
        Index("ix_feedback_user_created", "user_id", "created_at"),
    )

class UserPreferencePatternRecord(Base):
    """Learned per-user preferences, one row per user"""
    __tablename__ = "user_preference_patterns"

    user_id = Column(String(255), primary_key=True)
    preferred_authors = Column(JSON, nullable=False, default=list)
    preferred_journals = Column(JSON, nullable=False, default=list)
    preferred_year_range = Column(JSON, nullable=False, default=dict)
    preferred_citation_range = Column(JSON, nullable=False, default=dict)
    topic_preferences = Column(JSON, nullable=False, default=dict)
    quality_threshold = Column(Float, default=0.5)
    relevance_threshold = Column(Float, default=0.5)
    rejection_patterns = Column(JSON, nullable=False, default=dict)
    last_updated = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("quality_threshold >= 0 AND quality_threshold <= 1", name="ck_patterns_quality"),
        CheckConstraint("relevance_threshold >= 0 AND relevance_threshold <= 1", name="ck_patterns_relevance"),
    )

# ai_searcher/database/__init__.py
"""Database module initialization"""

from .connection import (
    Base, DatabaseManager, db_manager, init_database, close_database,
    check_database_health
)
from .models import (
    SearchSession, SearchResultRecord, SearchFeedback, UserFeedbackLearning, UserPreferencePatternRecord
)
from .repositories import (
    SearchSessionRepository, SearchResultRepository, SessionFeedbackRepository, FeedbackRepository,
    PreferencePatternRepository
)

__all__ = [
    # Connection
    "Base", "DatabaseManager", "db_manager", "init_database",
    "close_database", "check_database_health",

    # Models
    "SearchSession", "SearchResultRecord", "SearchFeedback", "UserFeedbackLearning",
    "UserPreferencePatternRecord",

    # Repositories
    "SearchSessionRepository", "SearchResultRepository", "SessionFeedbackRepository", "FeedbackRepository",
    "PreferencePatternRepository"
]

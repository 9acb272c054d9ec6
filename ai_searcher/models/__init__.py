# ai_searcher/models/__init__.py
"""Data models"""

from .requests import (
    SearchRequest,
    GenerateQueryRequest,
    ValidateQueryRequest,
    CombineQueriesRequest,
    RefineQueryRequest,
    ExtractContentRequest,
    ResultActionRequest,
    FeedbackRequest,
    SessionFeedbackRequest
)
from .responses import SearchResponse, HealthResponse, ErrorResponse
from .internal import (
    ContentSourceType,
    ExtractedContent,
    SearchQuery,
    QueryRefinement,
    ScholarSearchResult,
    SearchResult
)

__all__ = [
    "SearchRequest",
    "GenerateQueryRequest",
    "ValidateQueryRequest",
    "CombineQueriesRequest",
    "RefineQueryRequest",
    "ExtractContentRequest",
    "ResultActionRequest",
    "FeedbackRequest",
    "SessionFeedbackRequest",
    "SearchResponse",
    "HealthResponse",
    "ErrorResponse",
    "ContentSourceType",
    "ExtractedContent",
    "SearchQuery",
    "QueryRefinement",
    "ScholarSearchResult",
    "SearchResult"
]

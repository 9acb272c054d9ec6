# ai_searcher/models/requests.py
from pydantic import Field, field_validator
from typing import List, Literal, Optional

from ai_searcher.models.internal import (
    CamelModel, ContentSourceType, ExtractedContent, QueryType,
    SearchQuery, SearchResult, UserAction
)

class ContentSourceRef(CamelModel):
    source: ContentSourceType
    id: str = Field(..., min_length=1, max_length=255)

class DateRange(CamelModel):
    start: Optional[int] = Field(default=None, ge=1800, le=2100)
    end: Optional[int] = Field(default=None, ge=1800, le=2100)

class CitationRange(CamelModel):
    min: Optional[int] = Field(default=None, ge=0)
    max: Optional[int] = Field(default=None, ge=0)

class SearchFilters(CamelModel):
    date_range: Optional[DateRange] = None
    authors: List[str] = Field(default_factory=list)
    journals: List[str] = Field(default_factory=list)
    min_citations: Optional[int] = Field(default=None, ge=0)
    citation_count: Optional[CitationRange] = None
    max_results: int = Field(default=20, ge=1, le=100)
    sort_by: Literal["relevance", "date"] = "relevance"

class QueryGenerationOptions(CamelModel):
    max_keywords: int = Field(default=8, ge=1, le=20)
    max_topics: int = Field(default=5, ge=0, le=10)
    include_alternatives: bool = False
    combine_content: bool = True
    combination_strategy: Literal["union", "intersection", "weighted"] = "weighted"
    optimize_for_academic: bool = True
    query_type: Optional[QueryType] = None

class SearchRequest(CamelModel):
    query: Optional[str] = Field(
        default=None,
        max_length=2000,
        description="Search query; generated from content sources when omitted"
    )
    conversation_id: str = Field(..., min_length=1, max_length=255)
    content_sources: List[ContentSourceRef] = Field(default_factory=list, max_length=20)
    filters: Optional[SearchFilters] = None
    user_id: Optional[str] = Field(default=None, max_length=255)
    query_options: Optional[QueryGenerationOptions] = None

    @field_validator("query")
    @classmethod
    def strip_query(cls, v):
        return v.strip() if v is not None else v

class GenerateQueryRequest(CamelModel):
    conversation_id: str = Field(..., min_length=1, max_length=255)
    content_sources: List[ContentSourceRef] = Field(..., min_length=1, max_length=20)
    options: Optional[QueryGenerationOptions] = None

class ValidateQueryRequest(CamelModel):
    query: str = Field(default="", max_length=5000)

class CombineQueriesRequest(CamelModel):
    queries: List[SearchQuery] = Field(..., min_length=1, max_length=20)

class RefineQueryRequest(CamelModel):
    query: str = Field(default="", max_length=5000)
    conversation_id: str = Field(..., min_length=1, max_length=255)
    original_content: List[ExtractedContent] = Field(default_factory=list)

class ExtractContentRequest(CamelModel):
    conversation_id: str = Field(..., min_length=1, max_length=255)
    source: ContentSourceType
    id: str = Field(..., min_length=1, max_length=255)

class ResultActionRequest(CamelModel):
    session_id: str = Field(..., min_length=1)
    result_id: str = Field(..., min_length=1)
    action: UserAction
    user_id: Optional[str] = None

class FeedbackRequest(CamelModel):
    user_id: str = Field(..., min_length=1)
    session_id: Optional[str] = None
    result: SearchResult
    is_relevant: bool
    quality_rating: int = Field(..., ge=1, le=5)
    comments: Optional[str] = Field(default=None, max_length=2000)

class SessionFeedbackRequest(CamelModel):
    """Overall ratings for one search session"""
    session_id: str = Field(..., min_length=1)
    user_id: Optional[str] = None
    overall_satisfaction: int = Field(..., ge=1, le=5)
    relevance_rating: int = Field(..., ge=1, le=5)
    quality_rating: int = Field(..., ge=1, le=5)
    ease_of_use_rating: int = Field(..., ge=1, le=5)
    would_recommend: bool
    feedback_comments: Optional[str] = Field(default=None, max_length=2000)
    improvement_suggestions: Optional[str] = Field(default=None, max_length=2000)

# ai_searcher/models/responses.py
from pydantic import Field
from typing import List, Optional, Dict, Any
from datetime import datetime

from ai_searcher.models.internal import (
    CamelModel, ExtractedContent, SearchQuery, SearchResult,
    ValidationResult, QueryRefinement, UserPreferencePattern,
    LearningMetrics, AdaptiveFilter, SearchHistoryItem, HistoryStatistics,
    SearchAnalytics, ConversionMetrics, SatisfactionMetrics
)
from ai_searcher.models.requests import SearchFilters

class FailedSource(CamelModel):
    source: str
    id: str
    reason: str

class SearchResponse(CamelModel):
    success: bool = True
    results: List[SearchResult] = Field(default_factory=list)
    total_results: int = 0
    query: str = ""
    original_query: Optional[str] = None
    generated_queries: Optional[List[SearchQuery]] = None
    extracted_content: Optional[List[ExtractedContent]] = None
    failed_sources: List[FailedSource] = Field(default_factory=list)
    filters: Optional[SearchFilters] = None
    session_id: Optional[str] = None
    processing_time: float = Field(default=0.0, description="Processing time in seconds")
    duplicates_removed: int = 0
    degraded: bool = False
    fallback_url: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

class GenerateQueryResponse(CamelModel):
    success: bool = True
    queries: List[SearchQuery] = Field(default_factory=list)
    extracted_content: List[ExtractedContent] = Field(default_factory=list)
    failed_sources: List[FailedSource] = Field(default_factory=list)
    processing_time: float = 0.0

class ValidateQueryResponse(CamelModel):
    success: bool = True
    validation: ValidationResult

class CombineQueriesResponse(CamelModel):
    success: bool = True
    combined_query: SearchQuery

class RefineQueryResponse(CamelModel):
    success: bool = True
    refinement: QueryRefinement
    processing_time: float = 0.0

class ExtractContentResponse(CamelModel):
    success: bool = True
    extracted_content: ExtractedContent

class ActionResponse(CamelModel):
    success: bool
    message: str

class LearningMetricsResponse(CamelModel):
    success: bool = True
    user_id: str
    metrics: LearningMetrics

class PreferencesResponse(CamelModel):
    success: bool = True
    user_id: str
    preferences: UserPreferencePattern
    adaptive_filters: List[AdaptiveFilter] = Field(default_factory=list)

class HealthResponse(CamelModel):
    status: str = Field(..., description="Overall system status")
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    services: Dict[str, Any] = Field(..., description="Individual service statuses")
    response_time_ms: Optional[float] = Field(None, description="Health check response time")

class ErrorResponse(CamelModel):
    success: bool = False
    error: str = Field(..., description="Error message")
    error_code: Optional[str] = Field(None, description="Error code")
    request_id: Optional[str] = Field(None, description="Request ID for tracking")
    fallback_url: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)

class HistoryResponse(CamelModel):
    success: bool = True
    user_id: str
    history: List[SearchHistoryItem] = Field(default_factory=list)
    total: int = 0

class HistoryStatsResponse(CamelModel):
    success: bool = True
    user_id: str
    statistics: HistoryStatistics

class AnalyticsResponse(CamelModel):
    success: bool = True
    user_id: str
    conversation_id: Optional[str] = None
    days: int
    analytics: SearchAnalytics
    conversion: ConversionMetrics
    satisfaction: SatisfactionMetrics

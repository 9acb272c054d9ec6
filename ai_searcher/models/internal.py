# ai_searcher/models/internal.py
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import List, Optional, Dict, Union
from datetime import datetime
from enum import Enum

class CamelModel(BaseModel):
    """Base model serialised with camelCase keys, populated by either name"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

class ContentSourceType(str, Enum):
    IDEAS = "ideas"
    BUILDER = "builder"

class QueryType(str, Enum):
    BASIC = "basic"
    ACADEMIC = "academic"
    COMBINED = "combined"

class BreadthClassification(str, Enum):
    TOO_NARROW = "too_narrow"
    TOO_BROAD = "too_broad"
    OPTIMAL = "optimal"

class ExpectedResults(str, Enum):
    FEWER = "fewer"
    SIMILAR = "similar"
    MORE = "more"

class UserAction(str, Enum):
    NONE = "none"
    VIEWED = "viewed"
    ADDED = "added"
    REJECTED = "rejected"
    BOOKMARKED = "bookmarked"
    IGNORED = "ignored"

def dedupe_case_insensitive(values: List[str]) -> List[str]:
    """Drop blank and case-insensitive duplicate entries, keeping first occurrence"""
    seen = set()
    unique = []
    for value in values:
        cleaned = value.strip()
        key = cleaned.lower()
        if cleaned and key not in seen:
            seen.add(key)
            unique.append(cleaned)
    return unique

# Content

class ExtractedContent(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    source: ContentSourceType
    title: str = ""
    content: str = ""
    keywords: List[str] = Field(default_factory=list)
    key_phrases: List[str] = Field(default_factory=list)
    topics: List[str] = Field(default_factory=list)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    extracted_at: datetime = Field(default_factory=datetime.utcnow)
    is_fallback: bool = False

    @field_validator("keywords", "topics")
    @classmethod
    def unique_terms(cls, v):
        return dedupe_case_insensitive(v)

# Queries

class QueryOptimization(CamelModel):
    breadth_score: float = Field(default=0.5, ge=0.0, le=1.0)
    specificity_score: float = Field(default=0.5, ge=0.0, le=1.0)
    academic_relevance: float = Field(default=0.0, ge=0.0, le=1.0)
    suggestions: List[str] = Field(default_factory=list)
    alternative_queries: List[str] = Field(default_factory=list)

class SearchQuery(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    query: str
    original_content: List[ExtractedContent] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)
    topics: List[str] = Field(default_factory=list)
    query_type: QueryType = QueryType.BASIC
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    optimization: QueryOptimization = Field(default_factory=QueryOptimization)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("keywords", "topics")
    @classmethod
    def unique_terms(cls, v):
        return dedupe_case_insensitive(v)

class BreadthSuggestion(CamelModel):
    type: str
    suggestion: str
    expected_effect: ExpectedResults

class BreadthAnalysis(CamelModel):
    breadth_score: float = Field(ge=0.0, le=1.0)
    classification: BreadthClassification
    reasoning: str
    term_count: int
    operator_count: int
    specificity_level: str
    suggestions: List[BreadthSuggestion] = Field(default_factory=list)

class AlternativeTerms(CamelModel):
    synonyms: List[str] = Field(default_factory=list)
    related_terms: List[str] = Field(default_factory=list)
    broader_terms: List[str] = Field(default_factory=list)
    narrower_terms: List[str] = Field(default_factory=list)
    academic_variants: List[str] = Field(default_factory=list)

class ValidationIssue(CamelModel):
    type: str
    severity: str  # error | warning | info
    message: str

class ValidationResult(CamelModel):
    is_valid: bool
    issues: List[ValidationIssue] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)
    confidence: float = Field(ge=0.0, le=1.0)

class OptimizationRecommendation(CamelModel):
    type: str  # add_term | remove_term | replace_term | add_operator | restructure
    title: str
    description: str
    before_query: str
    after_query: str
    impact: str  # low | medium | high
    priority: int = Field(ge=1, le=5)

class QueryChange(CamelModel):
    type: str  # added | removed | replaced | operator_changed | restructured
    description: str
    reason: str

class RefinedQuery(CamelModel):
    id: str
    query: str
    description: str
    expected_results: ExpectedResults
    refinement_type: str
    changes: List[QueryChange] = Field(default_factory=list)
    confidence: float = Field(ge=0.0, le=1.0)

class QueryRefinement(CamelModel):
    original_query: str
    breadth_analysis: BreadthAnalysis
    alternative_terms: AlternativeTerms
    validation_results: ValidationResult
    optimization_recommendations: List[OptimizationRecommendation] = Field(default_factory=list)
    refined_queries: List[RefinedQuery] = Field(default_factory=list)

# Results

class ScholarSearchResult(BaseModel):
    """Raw record produced by the scholar provider"""
    model_config = ConfigDict(populate_by_name=True)

    title: str
    authors: List[str] = Field(default_factory=list)
    journal: Optional[str] = None
    year: Optional[int] = None
    citations: Optional[int] = None
    doi: Optional[str] = None
    url: Optional[str] = None
    abstract: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)

class LearningAdjustments(CamelModel):
    author_boost: float = 0.0
    journal_boost: float = 0.0
    topic_boost: float = 0.0
    filter_adjustment: float = 0.0
    original_relevance_score: float = 0.0
    original_quality_score: float = 0.0

class SearchResult(ScholarSearchResult):
    """Scholar record enriched with scores"""

    id: str
    confidence: float = Field(ge=0.0, le=1.0)
    relevance_score: float = Field(ge=0.0, le=1.0)
    citation_count: int = Field(default=0, ge=0)
    quality_score: float = Field(default=0.5, ge=0.0, le=1.0, alias="qualityScore")
    learning_adjustments: Optional[LearningAdjustments] = Field(default=None, alias="learningAdjustments")

class DuplicateGroup(CamelModel):
    primary: SearchResult
    duplicates: List[SearchResult]
    primary_index: int
    duplicate_indices: List[int]
    confidence: float = Field(ge=0.0, le=1.0)
    match_type: str  # doi | url | title_author | fuzzy
    merge_strategy: str = "keep_highest_quality"

# Learning

class YearRange(CamelModel):
    min: int
    max: int

class RejectionPatterns(CamelModel):
    authors: List[str] = Field(default_factory=list)
    journals: List[str] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)

class UserPreferencePattern(CamelModel):
    user_id: str
    preferred_authors: List[str] = Field(default_factory=list)
    preferred_journals: List[str] = Field(default_factory=list)
    preferred_year_range: YearRange = Field(default_factory=lambda: YearRange(min=2010, max=datetime.utcnow().year))
    preferred_citation_range: YearRange = Field(default_factory=lambda: YearRange(min=0, max=10000))
    topic_preferences: Dict[str, float] = Field(default_factory=dict)
    quality_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    relevance_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    rejection_patterns: RejectionPatterns = Field(default_factory=RejectionPatterns)
    last_updated: datetime = Field(default_factory=datetime.utcnow)

class AdaptiveFilter(CamelModel):
    type: str  # author | journal | year | citation | topic | quality
    condition: str  # include | exclude | boost | penalize
    value: Union[YearRange, List[str]]
    weight: float = Field(ge=0.0, le=1.0)
    confidence: float = Field(ge=0.0, le=1.0)
    source: str  # explicit_feedback | implicit_behavior | pattern_recognition

class LearningMetrics(CamelModel):
    total_feedback_count: int = 0
    positive_ratings: int = 0
    negative_ratings: int = 0
    average_rating: float = 0.0
    improvement_trend: float = 0.0
    confidence_level: float = Field(default=0.0, ge=0.0, le=1.0)

class FeedbackEntry(CamelModel):
    """One historical accept/reject signal for a result"""
    is_relevant: bool
    quality_rating: int = Field(ge=1, le=5)
    authors: List[str] = Field(default_factory=list)
    journal: Optional[str] = None
    year: Optional[int] = None
    citation_count: int = 0
    topics: List[str] = Field(default_factory=list)

# History and analytics read models

class SearchHistoryItem(CamelModel):
    id: str
    conversation_id: str
    user_id: str
    query: str
    sources: List[str] = Field(default_factory=list)
    results_count: int = 0
    results_accepted: int = 0
    results_rejected: int = 0
    success: bool = False
    processing_time_ms: int = 0
    created_at: Optional[datetime] = None

class HistoryStatistics(CamelModel):
    total_searches: int = 0
    searches_today: int = 0
    searches_this_week: int = 0
    searches_this_month: int = 0
    average_results: float = 0.0
    success_rate: float = 0.0

class SearchAnalytics(CamelModel):
    """Search volume and outcome summary over a trailing window"""
    total_searches: int = 0
    successful_searches: int = 0
    success_rate: float = 0.0
    average_results: float = 0.0
    average_processing_time_ms: float = 0.0
    popular_topics: List[str] = Field(default_factory=list)
    popular_sources: List[str] = Field(default_factory=list)
    period_start: datetime
    period_end: datetime

class ConversionMetrics(CamelModel):
    total_searches: int = 0
    total_results: int = 0
    results_viewed: int = 0
    results_added: int = 0
    results_rejected: int = 0
    conversion_rate: float = 0.0
    view_rate: float = 0.0
    rejection_rate: float = 0.0

class SatisfactionMetrics(CamelModel):
    average_overall_satisfaction: float = 0.0
    average_relevance_rating: float = 0.0
    average_quality_rating: float = 0.0
    average_ease_of_use_rating: float = 0.0
    recommendation_rate: float = 0.0  # percent
    total_feedback_count: int = 0

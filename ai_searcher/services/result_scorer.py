# ai_searcher/services/result_scorer.py
import logging
import math
import re
from datetime import datetime
from typing import Iterable, List, Optional

from ai_searcher.config.settings import settings
from ai_searcher.models.internal import ScholarSearchResult, SearchResult
from ai_searcher.services.cache_service import build_cache_key
from ai_searcher.services.query_terms import parse_query

logger = logging.getLogger(__name__)

HIGH_IMPACT_JOURNALS = frozenset({
    "nature", "science", "cell", "the lancet", "lancet",
    "new england journal of medicine", "jama",
    "proceedings of the national academy of sciences",
    "journal of the american chemical society", "physical review letters",
    "nature medicine", "nature biotechnology", "nature genetics",
    "cell metabolism", "immunity", "neuron",
})

# (substring, quality) checked in order
JOURNAL_TIERS = (
    ("ieee", 0.85),
    ("acm", 0.85),
    ("springer", 0.75),
    ("wiley", 0.75),
    ("elsevier", 0.75),
    ("university", 0.65),
    ("society", 0.65),
    ("proceedings", 0.6),
    ("conference", 0.6),
    ("journal", 0.5),
    ("review", 0.5),
    ("arxiv", 0.4),
    ("preprint", 0.4),
)

def journal_quality(journal: Optional[str]) -> float:
    """Heuristic venue quality in [0.3, 1.0]"""
    if not journal:
        return 0.3
    name = journal.strip().lower()
    if name in HIGH_IMPACT_JOURNALS:
        return 1.0
    if name.startswith("nature "):
        return 0.95
    for marker, quality in JOURNAL_TIERS:
        if marker in name:
            return quality
    return 0.3

def recency_score(year: Optional[int], current_year: Optional[int] = None) -> float:
    if not year:
        return 0.3
    age = (current_year or datetime.utcnow().year) - year
    if age <= 1:
        return 1.0
    if age <= 3:
        return 0.9
    if age <= 5:
        return 0.8
    if age <= 10:
        return 0.6
    if age <= 15:
        return 0.4
    if age <= 25:
        return 0.3
    return 0.2

def result_id(result: ScholarSearchResult) -> str:
    return "result_" + build_cache_key(result.title.lower(), result.authors, result.year, result.doi)[:16]

class ResultScorer:
    """Scores raw scholar records against the query that produced them"""

    def __init__(self, citation_ceiling: Optional[int] = None):
        self.citation_ceiling = citation_ceiling or settings.CITATION_ESTIMATE_CEILING

    def calculate_confidence(self, result: ScholarSearchResult) -> float:
        confidence = 0.3
        if len(result.title or "") > 10:
            confidence += 0.2
        if result.authors:
            confidence += 0.2
        if result.journal and len(result.journal) > 3:
            confidence += 0.2
        if result.year and result.year > 1900:
            confidence += 0.1
        return round(min(max(confidence, 0.0), 1.0), 4)

    def calculate_relevance(self, result: ScholarSearchResult, query: str) -> float:
        terms = parse_query(query).terms
        haystack = " ".join(filter(None, [result.title, result.abstract, result.journal, " ".join(result.keywords)])).lower()

        overlap = 0.0
        if terms:
            matched = 0.0
            for term in terms:
                if re.search(r"\b" + re.escape(term) + r"\b", haystack):
                    matched += 1.0
                else:
                    words = term.split()
                    if len(words) > 1:
                        matched += 0.5 * sum(1 for w in words if w in haystack) / len(words)
            overlap = matched / len(terms)

        relevance = 0.3 + 0.5 * overlap
        if len(result.title or "") > 20:
            relevance += 0.1
        if len(result.abstract or "") > 100:
            relevance += 0.1
        return round(min(max(relevance, 0.0), 1.0), 4)

    def calculate_citations(self, result: ScholarSearchResult, confidence: Optional[float] = None) -> int:
        """
        Provider-reported counts win when positive. Otherwise estimate from
        age (log-damped), venue quality and record confidence, capped at
        the configured ceiling.
        """
        if result.citations is not None and result.citations > 0:
            return int(result.citations)

        if confidence is None:
            confidence = self.calculate_confidence(result)

        if result.year:
            age = max(datetime.utcnow().year - result.year, 0)
            base = 20.0 * math.log1p(age)
        else:
            base = 5.0

        venue_factor = 1.0 + 4.0 * max(journal_quality(result.journal) - 0.3, 0.0) / 0.7
        estimate = base * venue_factor * max(confidence, 0.0)
        return int(min(max(estimate, 0.0), self.citation_ceiling))

    def calculate_quality(self, result: ScholarSearchResult) -> float:
        quality = 0.3 * recency_score(result.year)
        if result.doi:
            quality += 0.25
        if result.journal:
            quality += 0.25 * journal_quality(result.journal)
        quality += 0.2 * min(len(result.authors), 4) / 4
        return round(min(max(quality, 0.0), 1.0), 4)

    def score(self, result: ScholarSearchResult, query: str) -> SearchResult:
        confidence = self.calculate_confidence(result)
        return SearchResult(
            **result.model_dump(),
            id=result_id(result),
            confidence=confidence,
            relevance_score=self.calculate_relevance(result, query),
            citation_count=self.calculate_citations(result, confidence),
            quality_score=self.calculate_quality(result)
        )

    def score_all(self, results: Iterable[ScholarSearchResult], query: str) -> List[SearchResult]:
        scored = []
        for result in results:
            try:
                scored.append(self.score(result, query))
            except ValueError as e:
                logger.warning(f"Skipping unscorable result '{result.title[:50]}': {e}")
        return scored

# ai_searcher/services/duplicate_detector.py
import logging
import re
from collections import Counter
from datetime import datetime
from difflib import SequenceMatcher
from typing import List, Optional, Sequence, Tuple

from ai_searcher.config.settings import settings
from ai_searcher.models.internal import DuplicateGroup, SearchResult

logger = logging.getLogger(__name__)

MERGE_STRATEGIES = ("keep_highest_quality", "keep_most_complete", "manual_review")
COMPARED_FIELDS = ("title", "authors", "journal", "year", "doi", "url", "abstract", "citations")

def normalize_doi(doi: Optional[str]) -> str:
    value = (doi or "").strip().lower()
    value = re.sub(r"^https?://(dx\.)?doi\.org/", "", value)
    value = re.sub(r"^doi:\s*", "", value)
    return value

def normalize_url(url: Optional[str]) -> str:
    value = (url or "").strip().lower()
    value = re.sub(r"^https?://", "", value)
    value = re.sub(r"^www\.", "", value)
    value = value.split("?", 1)[0].split("#", 1)[0]
    return value.rstrip("/")

def normalize_text(text: Optional[str]) -> str:
    """Lowercase, punctuation stripped, whitespace collapsed"""
    return re.sub(r"\s+", " ", re.sub(r"[^\w\s]", " ", (text or "").lower())).strip()

def string_similarity(a: str, b: str) -> float:
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    return SequenceMatcher(None, a, b).ratio()

def title_similarity(a: Optional[str], b: Optional[str]) -> float:
    return string_similarity(normalize_text(a), normalize_text(b))

def author_similarity(a: Sequence[str], b: Sequence[str]) -> float:
    """Jaccard overlap of normalized author names"""
    if not a or not b:
        return 1.0 if len(a) == len(b) else 0.5
    set_a = {normalize_text(x) for x in a}
    set_b = {normalize_text(x) for x in b}
    return len(set_a & set_b) / len(set_a | set_b)

class DuplicateDetector:
    """
    Groups near-duplicate results. DOI equality decides outright, then URL
    equality, then title similarity combined with author overlap, then a
    weighted fuzzy score. Inputs are never mutated or reordered.
    """

    def __init__(
        self,
        title_threshold: Optional[float] = None,
        author_threshold: Optional[float] = None,
        fuzzy_threshold: Optional[float] = None,
        enable_fuzzy: bool = True
    ):
        self.title_threshold = title_threshold or settings.DUPLICATE_TITLE_THRESHOLD
        self.author_threshold = author_threshold or settings.DUPLICATE_AUTHOR_THRESHOLD
        self.fuzzy_threshold = fuzzy_threshold or settings.DUPLICATE_FUZZY_THRESHOLD
        self.enable_fuzzy = enable_fuzzy

    def compare(self, a: SearchResult, b: SearchResult) -> Tuple[bool, float, str]:
        """Return (is_duplicate, confidence, match_type)"""
        if a.doi and b.doi:
            doi_a, doi_b = normalize_doi(a.doi), normalize_doi(b.doi)
            if doi_a and doi_a == doi_b:
                return True, 1.0, "doi"

        if a.url and b.url and normalize_url(a.url) == normalize_url(b.url):
            return True, 0.95, "url"

        titles = title_similarity(a.title, b.title)
        authors = author_similarity(a.authors, b.authors)
        if titles >= self.title_threshold and authors >= self.author_threshold:
            return True, round((titles + authors) / 2, 4), "title_author"

        if self.enable_fuzzy and titles >= 0.7:
            score = self.fuzzy_score(a, b, titles, authors)
            if score >= self.fuzzy_threshold:
                return True, round(score, 4), "fuzzy"

        return False, 0.0, "none"

    def fuzzy_score(self, a: SearchResult, b: SearchResult,
                    titles: Optional[float] = None, authors: Optional[float] = None) -> float:
        titles = title_similarity(a.title, b.title) if titles is None else titles
        authors = author_similarity(a.authors, b.authors) if authors is None else authors

        years = 1.0
        if a.year and b.year:
            years = max(0.0, 1 - abs(a.year - b.year) / 5)

        journals = 0.5
        if a.journal and b.journal:
            journals = string_similarity(a.journal.lower(), b.journal.lower())

        return titles * 0.4 + authors * 0.3 + years * 0.2 + journals * 0.1

    def detect_duplicates(self, results: Sequence[SearchResult]) -> List[DuplicateGroup]:
        groups = []
        processed = set()

        for i, primary in enumerate(results):
            if i in processed:
                continue

            indices = []
            best_confidence = 0.0
            match_type = "fuzzy"
            for j in range(i + 1, len(results)):
                if j in processed:
                    continue
                is_duplicate, confidence, kind = self.compare(primary, results[j])
                if not is_duplicate:
                    continue
                indices.append(j)
                processed.add(j)
                if confidence > best_confidence:
                    best_confidence, match_type = confidence, kind

            if indices:
                processed.add(i)
                groups.append(DuplicateGroup(
                    primary=primary,
                    duplicates=[results[j] for j in indices],
                    primary_index=i,
                    duplicate_indices=indices,
                    confidence=best_confidence,
                    match_type=match_type
                ))

        if groups:
            logger.info(f"Detected {len(groups)} duplicate group(s) across {len(results)} results")
        return groups

    def merge_group(self, group: DuplicateGroup, strategy: str = "keep_highest_quality") -> Tuple[SearchResult, List[str]]:
        """Merge one group into a single record; returns it with the conflicting field names"""
        if strategy not in MERGE_STRATEGIES:
            raise ValueError(f"Unknown merge strategy: {strategy}")

        members = [group.primary] + list(group.duplicates)
        conflicts = self._conflicting_fields(members)

        if strategy == "manual_review":
            return group.primary, conflicts

        merged = group.primary.model_dump()
        merged["authors"] = _merge_authors(m.authors for m in members)
        merged["keywords"] = list(dict.fromkeys(k for m in members for k in m.keywords))
        citations = [m.citations for m in members if m.citations is not None]
        if citations:
            merged["citations"] = max(citations)
        merged["citation_count"] = max(m.citation_count for m in members)

        if strategy == "keep_highest_quality":
            dois = [m.doi for m in members if m.doi and normalize_doi(m.doi).startswith("10.")]
            if dois:
                merged["doi"] = dois[0]
            years = [m.year for m in members if m.year]
            if years:
                merged["year"] = _best_year(years)
            abstracts = [m.abstract for m in members if m.abstract and m.abstract.strip()]
            if abstracts:
                merged["abstract"] = max(abstracts, key=len)
            journals = [m.journal for m in members if m.journal and m.journal.strip()]
            if journals:
                merged["journal"] = journals[0]
            merged["confidence"] = round(sum(m.confidence for m in members) / len(members), 4)
            merged["relevance_score"] = round(sum(m.relevance_score for m in members) / len(members), 4)
            merged["quality_score"] = max(m.quality_score for m in members)
        else:
            for field in ("doi", "url", "abstract", "journal", "year"):
                if not merged.get(field):
                    merged[field] = next((getattr(m, field) for m in members if getattr(m, field)), None)

        return SearchResult.model_validate(merged), conflicts

    def merge_duplicates(self, groups: Sequence[DuplicateGroup],
                         strategy: str = "keep_highest_quality") -> List[SearchResult]:
        return [self.merge_group(group, strategy)[0] for group in groups]

    def remove_duplicates(
        self,
        results: Sequence[SearchResult],
        merge_strategy: Optional[str] = None
    ) -> Tuple[List[SearchResult], List[DuplicateGroup]]:
        """
        Keep the first member of each group in input order. With a merge
        strategy, the kept member is replaced by the merged record.
        """
        groups = self.detect_duplicates(results)
        dropped = {j for group in groups for j in group.duplicate_indices}
        replacements = {}
        if merge_strategy:
            for group in groups:
                replacements[group.primary_index] = self.merge_group(group, merge_strategy)[0]

        unique = [
            replacements.get(i, result)
            for i, result in enumerate(results)
            if i not in dropped
        ]
        return unique, groups

    def _conflicting_fields(self, members: List[SearchResult]) -> List[str]:
        conflicts = []
        for field in COMPARED_FIELDS:
            values = set()
            for member in members:
                value = getattr(member, field)
                if value in (None, "", []):
                    continue
                if field == "title":
                    value = normalize_text(value)
                elif field == "authors":
                    value = tuple(sorted(normalize_text(a) for a in value))
                elif isinstance(value, str):
                    value = value.strip().lower()
                values.add(value)
            if len(values) > 1:
                conflicts.append(field)
        return conflicts

def _merge_authors(author_lists) -> List[str]:
    merged = {}
    for authors in author_lists:
        for author in authors:
            if author and author.strip():
                merged.setdefault(normalize_text(author), author.strip())
    return list(merged.values())

def _best_year(years: List[int]) -> int:
    """Most common plausible year; ties go to the most recent"""
    current = datetime.utcnow().year
    valid = [y for y in years if 1900 <= y <= current + 1]
    if not valid:
        return years[0]
    counts = Counter(valid)
    top = max(counts.values())
    return max(y for y, c in counts.items() if c == top)

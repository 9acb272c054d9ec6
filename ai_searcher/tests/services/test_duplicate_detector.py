# tests/services/test_duplicate_detector.py
import pytest

from ai_searcher.services.duplicate_detector import (
    DuplicateDetector, author_similarity, normalize_doi, normalize_url, title_similarity
)

@pytest.fixture
def detector():
    return DuplicateDetector()

class TestNormalization:
    """Identifier and text normalization"""

    def test_doi_prefixes_removed(self):
        assert normalize_doi("https://doi.org/10.1/ABC") == "10.1/abc"
        assert normalize_doi("doi: 10.1/abc") == "10.1/abc"
        assert normalize_doi(None) == ""

    def test_url_normalized(self):
        assert normalize_url("https://www.Example.org/paper/1?ref=x#top") == "example.org/paper/1"
        assert normalize_url("http://example.org/paper/1/") == "example.org/paper/1"

    def test_title_similarity_ignores_punctuation(self):
        assert title_similarity("Deep Learning: A Review", "deep learning - a review") == 1.0
        assert title_similarity("", "anything") == 0.0

    def test_author_similarity(self):
        assert author_similarity(["A Smith", "B Jones"], ["a smith", "b jones"]) == 1.0
        assert author_similarity(["A Smith"], ["A Smith", "B Jones"]) == 0.5
        assert author_similarity([], []) == 1.0
        assert author_similarity([], ["A Smith"]) == 0.5

class TestCompare:
    """Pairwise duplicate decisions"""

    def test_doi_match(self, detector, make_result):
        a = make_result(doi="https://doi.org/10.1/ABC")
        b = make_result(doi="10.1/abc")
        assert detector.compare(a, b) == (True, 1.0, "doi")

    def test_url_match(self, detector, make_result):
        a = make_result(url="https://www.example.org/paper/1?ref=x")
        b = make_result(url="http://example.org/paper/1/")
        assert detector.compare(a, b) == (True, 0.95, "url")

    def test_title_and_authors(self, detector, make_result):
        a = make_result(title="Deep Learning in Healthcare: A Review", authors=["A Esteva", "B Ramsundar"])
        b = make_result(title="deep learning in healthcare - a review", authors=["a esteva", "b ramsundar"])
        assert detector.compare(a, b) == (True, 1.0, "title_author")

    def test_fuzzy_when_authors_partly_overlap(self, detector, make_result):
        a = make_result(title="Coral bleaching under ocean warming", authors=["A Esteva"])
        b = make_result(title="Coral bleaching under ocean warming", authors=["A Esteva", "B Other"])

        is_duplicate, confidence, kind = detector.compare(a, b)

        assert is_duplicate
        assert kind == "fuzzy"
        assert confidence == pytest.approx(0.85)

    def test_fuzzy_can_be_disabled(self, make_result):
        detector = DuplicateDetector(enable_fuzzy=False)
        a = make_result(title="Coral bleaching under ocean warming", authors=["A Esteva"])
        b = make_result(title="Coral bleaching under ocean warming", authors=["A Esteva", "B Other"])
        assert detector.compare(a, b) == (False, 0.0, "none")

    def test_distinct_records(self, detector, make_result):
        assert detector.compare(make_result(), make_result()) == (False, 0.0, "none")

class TestDetectAndMerge:
    """Grouping, merging and removal"""

    def test_detect_groups_without_mutating_input(self, detector, make_result):
        a = make_result(doi="10.1/abc")
        b = make_result()
        c = make_result(doi="10.1/ABC")
        results = [a, b, c]
        snapshot = [r.model_dump() for r in results]

        groups = detector.detect_duplicates(results)

        assert len(groups) == 1
        assert groups[0].primary_index == 0
        assert groups[0].duplicate_indices == [2]
        assert groups[0].match_type == "doi"
        assert [r.model_dump() for r in results] == snapshot

    def test_no_duplicates(self, detector, make_result):
        assert detector.detect_duplicates([make_result(), make_result(), make_result()]) == []

    def test_keep_most_complete_fills_gaps(self, detector, make_result):
        primary = make_result(url="https://example.org/p", authors=["A Smith"], citations=5)
        other = make_result(url="https://example.org/p", authors=["B Jones"], doi="10.1/xyz",
                            abstract="An abstract.", citations=40, citation_count=40)
        group = detector.detect_duplicates([primary, other])[0]

        merged, _ = detector.merge_group(group, "keep_most_complete")

        assert merged.id == primary.id
        assert merged.doi == "10.1/xyz"
        assert merged.abstract == "An abstract."
        assert merged.authors == ["A Smith", "B Jones"]
        assert merged.citations == 40
        assert merged.citation_count == 40

    def test_keep_highest_quality(self, detector, make_result):
        primary = make_result(doi="10.1/q", confidence=0.6, quality_score=0.4, abstract="Short.")
        other = make_result(doi="10.1/Q", confidence=1.0, quality_score=0.9, abstract="A much longer abstract.")
        group = detector.detect_duplicates([primary, other])[0]

        merged, _ = detector.merge_group(group, "keep_highest_quality")

        assert merged.confidence == pytest.approx(0.8)
        assert merged.quality_score == 0.9
        assert merged.abstract == "A much longer abstract."

    def test_manual_review_reports_conflicts(self, detector, make_result):
        primary = make_result(doi="10.1/m", year=2019)
        other = make_result(doi="10.1/m", year=2020)
        group = detector.detect_duplicates([primary, other])[0]

        kept, conflicts = detector.merge_group(group, "manual_review")

        assert kept == primary
        assert "year" in conflicts
        assert "title" in conflicts
        assert "doi" not in conflicts

    def test_unknown_strategy(self, detector, make_result):
        group = detector.detect_duplicates([make_result(doi="10.1/u"), make_result(doi="10.1/u")])[0]
        with pytest.raises(ValueError):
            detector.merge_group(group, "bogus")

    def test_remove_duplicates_keeps_first_position(self, detector, make_result):
        a = make_result(doi="10.1/r")
        b = make_result()
        c = make_result(doi="10.1/r", abstract="Filled in later.")

        unique, groups = detector.remove_duplicates([a, b, c], merge_strategy="keep_most_complete")

        assert [r.id for r in unique] == [a.id, b.id]
        assert unique[0].abstract == "Filled in later."
        assert len(groups) == 1

    def test_remove_duplicates_without_merge(self, detector, make_result):
        a = make_result(doi="10.1/r")
        c = make_result(doi="10.1/r", abstract="Dropped.")

        unique, _ = detector.remove_duplicates([a, c])

        assert unique == [a]

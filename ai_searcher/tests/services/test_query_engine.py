# tests/services/test_query_engine.py
import pytest

from ai_searcher.core.exceptions import QueryGenerationException
from ai_searcher.models.internal import (
    BreadthClassification, ContentSourceType, ExpectedResults, ExtractedContent, QueryType, SearchQuery
)
from ai_searcher.models.requests import QueryGenerationOptions
from ai_searcher.services.query_engine import (
    QueryGenerationEngine, normalize_operators, remove_operand, replace_term
)

VALID_QUERY = '"machine learning" AND "healthcare"'
BROAD_QUERY = "education OR learning OR teaching OR pedagogy OR curriculum OR instruction"

@pytest.fixture
def engine():
    return QueryGenerationEngine()

def make_content(content_id, keywords, confidence=0.8, topics=(), key_phrases=()):
    return ExtractedContent(
        id=content_id,
        source=ContentSourceType.IDEAS,
        title=f"Content {content_id}",
        keywords=list(keywords),
        topics=list(topics),
        key_phrases=list(key_phrases),
        confidence=confidence
    )

class TestGenerateQueries:
    """Boolean query synthesis from extracted content"""

    def test_two_keywords_joined_with_and(self, engine, sample_content):
        queries = engine.generate_queries([sample_content])

        assert len(queries) == 1
        assert queries[0].query == VALID_QUERY
        assert queries[0].keywords == ["machine learning", "healthcare"]
        assert queries[0].confidence == 0.8

    def test_requires_content(self, engine):
        with pytest.raises(QueryGenerationException):
            engine.generate_queries([])

    def test_at_most_one_or_group(self, engine):
        content = make_content("big", [f"concept{i}" for i in range(10)])
        options = QueryGenerationOptions(max_keywords=7)

        query = engine.generate_queries([content], options)[0]

        assert len(query.keywords) == 7
        assert query.query.count("(") == 1
        assert query.query.startswith('"concept0" AND "concept1" AND "concept2" AND (')

    def test_pools_keywords_when_combining(self, engine):
        first = make_content("a", ["robotics", "surgery"], confidence=0.9)
        second = make_content("b", ["surgery", "outcomes"], confidence=0.5)

        queries = engine.generate_queries([first, second])

        assert len(queries) == 1
        assert queries[0].query_type == QueryType.COMBINED
        assert set(queries[0].keywords) == {"robotics", "surgery", "outcomes"}
        assert queries[0].query.startswith('"surgery"')

    def test_one_query_per_source_sorted_by_confidence(self, engine):
        low = make_content("low", ["soil", "erosion"], confidence=0.3)
        high = make_content("high", ["coral", "bleaching"], confidence=0.9)

        queries = engine.generate_queries([low, high], QueryGenerationOptions(combine_content=False))

        assert [q.original_content[0].id for q in queries] == ["high", "low"]

    def test_phrase_replaces_its_words(self, engine):
        content = make_content(
            "p", ["climate", "change", "adaptation"], key_phrases=["climate change"]
        )

        query = engine.generate_queries([content])[0]

        assert "climate change" in query.keywords
        assert "climate" not in query.keywords
        assert '"climate change"' in query.query

    def test_academic_type_detected(self, engine):
        content = make_content("r", ["survey", "research", "methods"])
        assert engine.generate_queries([content])[0].query_type == QueryType.ACADEMIC

class TestValidateQuery:
    """Syntax validation never raises"""

    def test_empty_query_invalid(self, engine):
        result = engine.validate_query("")
        assert result.is_valid is False
        assert result.issues
        assert result.confidence == 0.0
        assert result.suggestions

    def test_valid_query(self, engine):
        result = engine.validate_query(VALID_QUERY)
        assert result.is_valid is True
        assert result.issues == []
        assert result.confidence == 1.0

    def test_invalid_query_still_has_confidence(self, engine):
        result = engine.validate_query('"unclosed AND (group')
        assert result.is_valid is False
        assert 0.0 <= result.confidence < 1.0

    def test_very_long_query(self, engine):
        query = " AND ".join(f"term{i}" for i in range(300))
        result = engine.validate_query(query)

        assert result.is_valid is True
        assert {"query_too_long", "too_many_terms"} <= {i.type for i in result.issues}
        assert 0.0 <= result.confidence <= 1.0

class TestCombineQueries:
    """Union of several queries into one broader query"""

    def test_confidence_and_keyword_union(self, engine):
        q1 = SearchQuery(id="q1", query=VALID_QUERY, keywords=["machine learning", "healthcare"], confidence=0.9)
        q2 = SearchQuery(id="q2", query='"education" AND "technology"', keywords=["education", "technology"],
                         confidence=0.8)

        combined = engine.combine_queries([q1, q2])

        assert combined.confidence >= 0.8
        assert set(q1.keywords) | set(q2.keywords) <= set(combined.keywords)
        assert combined.query == f'({VALID_QUERY}) OR ("education" AND "technology")'
        assert combined.query_type == QueryType.COMBINED

    def test_invalid_member_rebuilt_from_keywords(self, engine):
        broken = SearchQuery(id="b", query='"oops AND', keywords=["oceans", "plastic"], confidence=0.4)

        combined = engine.combine_queries([broken])

        assert combined.query == '"oceans" AND "plastic"'

    def test_requires_queries(self, engine):
        with pytest.raises(QueryGenerationException):
            engine.combine_queries([])

class TestRefineQuery:
    """Breadth analysis, alternatives, recommendations and variants"""

    def test_single_word_too_narrow(self, engine):
        refinement = engine.refine_query("blockchain")
        assert refinement.breadth_analysis.classification == BreadthClassification.TOO_NARROW
        assert refinement.breadth_analysis.suggestions[0].expected_effect == ExpectedResults.MORE

    def test_or_joined_terms_too_broad(self, engine):
        refinement = engine.refine_query(BROAD_QUERY)
        assert refinement.breadth_analysis.classification == BreadthClassification.TOO_BROAD
        assert refinement.breadth_analysis.term_count == 6

    def test_variants_cover_fewer_similar_more(self, engine):
        refinement = engine.refine_query(VALID_QUERY)
        by_effect = {r.expected_results: r for r in refinement.refined_queries}

        assert by_effect[ExpectedResults.FEWER].query == f'{VALID_QUERY} AND "deep learning"'
        assert by_effect[ExpectedResults.SIMILAR].query == '"statistical learning" AND "healthcare"'
        assert by_effect[ExpectedResults.MORE].query == '"machine learning" OR "healthcare"'
        assert all(r.changes for r in refinement.refined_queries)

    def test_more_variant_extends_or_group(self, engine):
        refinement = engine.refine_query('("machine learning" OR "healthcare")')
        more = next(r for r in refinement.refined_queries if r.expected_results == ExpectedResults.MORE)

        assert more.query.startswith('("machine learning" OR "healthcare" OR "')
        assert more.query.endswith(")")
        assert engine.validate_query(more.query).is_valid

    def test_syntax_fix_shows_submitted_query(self, engine):
        broken = '"machine learning AND (healthcare'
        refinement = engine.refine_query(broken)
        fix = refinement.optimization_recommendations[0]

        assert fix.title == "Fix query syntax"
        assert fix.before_query == broken
        assert engine.validate_query(fix.after_query).is_valid

    def test_validation_reused(self, engine):
        refinement = engine.refine_query(VALID_QUERY)
        assert refinement.validation_results.is_valid
        assert refinement.original_query == VALID_QUERY

    def test_alternatives_from_context(self, engine, sample_content):
        context = [sample_content.model_copy(update={"keywords": ["diagnosis", "radiology"]})]
        refinement = engine.refine_query("blockchain", context)
        assert "diagnosis" in refinement.alternative_terms.related_terms

    def test_recommendations_sorted_by_priority(self, engine):
        refinement = engine.refine_query(BROAD_QUERY)
        priorities = [r.priority for r in refinement.optimization_recommendations]
        assert priorities
        assert priorities == sorted(priorities)
        assert all(r.impact in ("low", "medium", "high") for r in refinement.optimization_recommendations)

    def test_empty_query_and_context(self, engine):
        refinement = engine.refine_query("   ")
        assert refinement.validation_results.is_valid is False
        assert refinement.refined_queries == []

    def test_empty_query_uses_context_keywords(self, engine, sample_content):
        refinement = engine.refine_query("", [sample_content])
        assert refinement.refined_queries
        assert any("machine learning" in r.query for r in refinement.refined_queries)

class TestQueryHelpers:
    """String rewriting helpers"""

    def test_replace_quoted_term(self):
        assert replace_term(VALID_QUERY, "healthcare", "medicine") == '"machine learning" AND "medicine"'

    def test_replace_bare_term(self):
        assert replace_term("health AND care", "care", "nursing") == 'health AND "nursing"'

    def test_normalize_operators(self):
        assert normalize_operators("health and care policy") == "health AND care AND policy"

    def test_remove_operand(self):
        assert remove_operand('"a1" AND "study" AND "c3"', "study") == '"a1" AND "c3"'

    async def test_health_check(self, engine):
        assert await engine.health_check() == "healthy"

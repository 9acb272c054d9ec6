# ai_searcher/services/query_engine.py
import logging
import re
import time
from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import uuid4

from ai_searcher.config.settings import settings
from ai_searcher.core.exceptions import QueryGenerationException
from ai_searcher.models.internal import (
    AlternativeTerms, BreadthAnalysis, BreadthClassification, BreadthSuggestion,
    ExpectedResults, ExtractedContent, OptimizationRecommendation, QueryChange,
    QueryOptimization, QueryRefinement, QueryType, RefinedQuery, SearchQuery,
    ValidationIssue, ValidationResult, dedupe_case_insensitive
)
from ai_searcher.models.requests import QueryGenerationOptions
from ai_searcher.services.query_terms import (
    ACADEMIC_TERMS, ACADEMIC_VARIANTS, SYNONYMS, OPERATORS, QueryStructure,
    academic_ratio, breadth_score, bucket_terms, build_query_string, check_syntax,
    classify_breadth, join_top_level, parse_query, quote_term, specificity_level,
    split_top_level, syntax_confidence, tokenize_query
)

logger = logging.getLogger(__name__)

ISSUE_SUGGESTIONS = {
    "empty_query": "Start with two or three key concepts from your topic.",
    "unbalanced_quotes": "Close every quoted phrase with a matching double quote.",
    "unbalanced_parentheses": "Make sure each '(' has a matching ')'.",
    "empty_phrase": "Remove empty quotes or put a phrase inside them.",
    "empty_group": "Remove the empty parentheses.",
    "dangling_operator": "Remove the trailing or repeated operator, or add the missing term.",
    "no_meaningful_terms": "Add a descriptive term of three or more characters.",
    "lowercase_operator": "Write boolean operators in uppercase: AND, OR, NOT.",
    "query_too_long": "Shorten the query to its most important concepts.",
    "too_many_terms": "Split the query into several focused searches.",
    "single_term": "Add a second concept with AND to focus the results.",
}

def new_query_id(prefix: str = "query") -> str:
    return f"{prefix}_{int(time.time() * 1000)}_{uuid4().hex[:9]}"

def replace_term(query: str, term: str, replacement: str) -> str:
    """Swap one quoted or bare occurrence of term for a quoted replacement"""
    quoted = re.compile(r'"\s*' + re.escape(term) + r'\s*"', re.IGNORECASE)
    if quoted.search(query):
        return quoted.sub(quote_term(replacement), query, count=1)
    bare = re.compile(r'(?<![\w"])' + re.escape(term) + r'(?![\w"])', re.IGNORECASE)
    return bare.sub(quote_term(replacement), query, count=1)

def normalize_operators(query: str) -> str:
    """Uppercase and/or and make implicit ANDs explicit"""
    output: List[str] = []
    for token in tokenize_query(query):
        if token in ("and", "or"):
            token = token.upper()
        is_start = token not in OPERATORS and token != ")"
        if output and is_start and output[-1] not in OPERATORS and output[-1] != "(":
            output.append("AND")
        output.append(token)
    return " ".join(output).replace("( ", "(").replace(" )", ")")

def _strip_or_group(operand: str) -> str:
    if operand.startswith("(") and operand.endswith(")"):
        inner = operand[1:-1].strip()
        _, connectors = split_top_level(inner)
        if connectors and all(c == "OR" for c in connectors):
            return inner
    return operand

def remove_operand(query: str, term: str) -> str:
    operands, connectors = split_top_level(query)
    kept_operands = []
    kept_connectors = []
    for index, operand in enumerate(operands):
        if parse_query(operand).terms == (term,):
            continue
        if kept_operands:
            kept_connectors.append(connectors[index - 1] if index > 0 else "AND")
        kept_operands.append(operand)
    return join_top_level(kept_operands, kept_connectors)

class QueryGenerationEngine:
    """
    Turns extracted content into boolean scholar queries and analyses,
    validates, combines and refines query strings. Stateless; all
    thresholds come from settings at construction.
    """

    def __init__(
        self,
        max_keywords: Optional[int] = None,
        max_topics: Optional[int] = None,
        term_ceiling: Optional[int] = None
    ):
        self.max_keywords = max_keywords or settings.QUERY_MAX_KEYWORDS
        self.max_topics = max_topics or settings.QUERY_MAX_TOPICS
        self.term_ceiling = term_ceiling or settings.QUERY_TERM_CEILING
        self.narrow_threshold = settings.BREADTH_NARROW_THRESHOLD
        self.broad_threshold = settings.BREADTH_BROAD_THRESHOLD
        self.max_or_terms = settings.BREADTH_MAX_OR_TERMS
        self.min_length = settings.QUERY_MIN_LENGTH

    # Generation

    def generate_queries(
        self,
        contents: Sequence[ExtractedContent],
        options: Optional[QueryGenerationOptions] = None
    ) -> List[SearchQuery]:
        if not contents:
            raise QueryGenerationException("At least one content source is required to generate queries")

        options = options or QueryGenerationOptions(
            max_keywords=self.max_keywords, max_topics=self.max_topics
        )

        candidates: List[Optional[SearchQuery]] = []
        if len(contents) > 1 and options.combine_content:
            candidates.append(self._build_query(list(contents), options, QueryType.COMBINED))
            if options.include_alternatives:
                candidates.extend(self._build_query([c], options) for c in contents)
        else:
            candidates.extend(self._build_query([c], options) for c in contents)

        queries = []
        seen = set()
        for query in candidates:
            if query is None or query.query in seen:
                continue
            seen.add(query.query)
            queries.append(query)

        queries.sort(key=lambda q: q.confidence, reverse=True)
        logger.info(f"Generated {len(queries)} queries from {len(contents)} content source(s)")
        return queries

    def _select_terms(
        self,
        contents: Sequence[ExtractedContent],
        options: QueryGenerationOptions
    ) -> Tuple[List[str], List[str]]:
        weights: Dict[str, float] = defaultdict(float)
        sources: Dict[str, set] = defaultdict(set)
        first_seen: Dict[str, int] = {}
        topic_weights: Dict[str, float] = defaultdict(float)

        def note(term: str, weight: float, index: int):
            key = term.strip().lower()
            if not key:
                return
            weights[key] += weight
            sources[key].add(index)
            first_seen.setdefault(key, len(first_seen))

        for index, content in enumerate(contents):
            total = len(content.keywords)
            top_keywords = {k.lower() for k in content.keywords[:5]}
            for rank, keyword in enumerate(content.keywords):
                note(keyword, content.confidence * (1.0 - rank / (total + 1)), index)
            phrases = [
                p for p in content.key_phrases
                if len(p.split()) > 1 and any(w in top_keywords for w in p.lower().split())
            ][:2]
            for phrase in phrases:
                note(phrase, content.confidence * 1.1, index)
            for topic in content.topics:
                topic_weights[topic.lower()] += content.confidence * 0.5

        for topic, weight in topic_weights.items():
            if topic not in weights:
                note(topic, weight, -1)

        ranked = list(first_seen)
        if options.combination_strategy == "weighted":
            ranked.sort(key=lambda t: (-weights[t], first_seen[t]))
        elif options.combination_strategy == "intersection" and len(contents) > 1:
            shared = [t for t in ranked if len(sources[t] - {-1}) > 1]
            if len(shared) >= 2:
                ranked = shared

        # A selected phrase makes its single-word parts redundant
        selected: List[str] = []
        covered = set()
        for term in ranked:
            if term in covered:
                continue
            selected.append(term)
            if " " in term:
                covered.update(term.split())
            if len(selected) >= options.max_keywords:
                break
        selected = [t for t in selected if " " in t or t not in covered]

        topics = sorted(topic_weights, key=lambda t: -topic_weights[t])[:options.max_topics]
        return selected, topics

    def _build_query(
        self,
        contents: List[ExtractedContent],
        options: QueryGenerationOptions,
        query_type: Optional[QueryType] = None
    ) -> Optional[SearchQuery]:
        keywords, topics = self._select_terms(contents, options)
        if not keywords:
            return None

        n = len(keywords)
        and_count = n if n <= 3 else (2 if n == 4 else 3)
        and_terms = keywords[:and_count]
        or_terms = keywords[and_count:and_count + 4]

        requested = options.query_type or query_type
        if requested == QueryType.ACADEMIC and not or_terms and not any(t in ACADEMIC_TERMS for t in keywords):
            or_terms = ["research", "study"]

        query_string = build_query_string(and_terms, or_terms)
        has_academic = any(word in ACADEMIC_TERMS for t in keywords for word in t.split())
        if requested is None:
            requested = QueryType.ACADEMIC if options.optimize_for_academic and has_academic else QueryType.BASIC

        weight_total = sum(1 + len(c.keywords) for c in contents)
        confidence = sum(c.confidence * (1 + len(c.keywords)) for c in contents) / weight_total
        if len(keywords) >= 3:
            confidence += 0.1
        if len(topics) >= 2:
            confidence += 0.1
        if has_academic:
            confidence += 0.1

        return SearchQuery(
            id=new_query_id(),
            query=query_string,
            original_content=contents,
            keywords=keywords,
            topics=topics,
            query_type=requested,
            confidence=round(min(max(confidence, 0.0), 1.0), 4),
            optimization=self.optimize_query(query_string, keywords)
        )

    def optimize_query(self, query: str, keywords: Sequence[str] = ()) -> QueryOptimization:
        structure = parse_query(query, self.term_ceiling)
        classification, score, _ = classify_breadth(
            structure, self.narrow_threshold, self.broad_threshold, self.max_or_terms, self.min_length
        )

        specificity = 0.3
        if structure.quoted_count:
            specificity += 0.3
        if structure.operator_count:
            specificity += 0.2
        if len(query) > 50:
            specificity += 0.2

        suggestions = []
        if classification == BreadthClassification.TOO_NARROW:
            suggestions.append("Add related terms with OR to widen the search.")
        elif classification == BreadthClassification.TOO_BROAD:
            suggestions.append("Combine key concepts with AND to focus the search.")
        if not structure.quoted_count and structure.term_count > 1:
            suggestions.append("Quote multi-word concepts to match exact phrases.")
        if not any(word in ACADEMIC_TERMS for t in structure.terms for word in t.split()):
            suggestions.append("Add an academic term such as \"study\" or \"analysis\".")

        terms = list(keywords) or list(structure.terms)
        alternatives = []
        if len(terms) >= 2:
            alternatives.append(build_query_string(terms[:2]))
            alternatives.append(build_query_string([], terms[:4]))
            alternatives.append(build_query_string(terms[:2], ["research", "study"]))
        elif terms:
            alternatives.append(build_query_string(terms[:1], ["research", "study"]))
        alternatives = [a for a in dict.fromkeys(alternatives) if a and a != query][:3]

        return QueryOptimization(
            breadth_score=score,
            specificity_score=round(min(specificity, 1.0), 4),
            academic_relevance=round(academic_ratio(structure.terms), 4),
            suggestions=suggestions,
            alternative_queries=alternatives
        )

    # Validation

    def validate_query(self, query: str) -> ValidationResult:
        issues = check_syntax(query, self.term_ceiling)
        suggestions = list(dict.fromkeys(
            ISSUE_SUGGESTIONS[issue_type] for issue_type, _, _ in issues if issue_type in ISSUE_SUGGESTIONS
        ))
        return ValidationResult(
            is_valid=not any(severity == "error" for _, severity, _ in issues),
            issues=[ValidationIssue(type=t, severity=s, message=m) for t, s, m in issues],
            suggestions=suggestions,
            confidence=syntax_confidence(issues, query)
        )

    # Combination

    def combine_queries(self, queries: Sequence[SearchQuery]) -> SearchQuery:
        if not queries:
            raise QueryGenerationException("At least one query is required to combine")

        parts = []
        for query in queries:
            text = query.query
            if not self.validate_query(text).is_valid:
                text = build_query_string(query.keywords[:3], query.keywords[3:7])
            if not text:
                continue
            _, connectors = split_top_level(text)
            parts.append(f"({text})" if connectors and len(queries) > 1 else text)

        combined = " OR ".join(dict.fromkeys(parts))
        keywords = dedupe_case_insensitive([k for q in queries for k in q.keywords])
        topics = dedupe_case_insensitive([t for q in queries for t in q.topics])
        if not combined:
            combined = build_query_string([], keywords[:6])

        contents = list({c.id: c for q in queries for c in q.original_content}.values())

        return SearchQuery(
            id=new_query_id("combined"),
            query=combined,
            original_content=contents,
            keywords=keywords,
            topics=topics,
            query_type=QueryType.COMBINED,
            confidence=max(q.confidence for q in queries),
            optimization=self.optimize_query(combined, keywords)
        )

    # Refinement

    def analyze_breadth(self, query: str) -> BreadthAnalysis:
        structure = parse_query(query, self.term_ceiling)
        classification, score, reasoning = classify_breadth(
            structure, self.narrow_threshold, self.broad_threshold, self.max_or_terms, self.min_length
        )

        suggestions = []
        if classification == BreadthClassification.TOO_NARROW:
            suggestions.append(BreadthSuggestion(
                type="add_terms", suggestion="Add related concepts joined with OR.",
                expected_effect=ExpectedResults.MORE
            ))
            if structure.quoted_count:
                suggestions.append(BreadthSuggestion(
                    type="remove_quotes", suggestion="Relax exact-phrase quotes on secondary terms.",
                    expected_effect=ExpectedResults.MORE
                ))
        elif classification == BreadthClassification.TOO_BROAD:
            suggestions.append(BreadthSuggestion(
                type="add_and_terms", suggestion="Require a specific concept with AND.",
                expected_effect=ExpectedResults.FEWER
            ))
            if structure.is_pure_or:
                suggestions.append(BreadthSuggestion(
                    type="reduce_or_terms", suggestion="Keep the two or three most central OR alternatives.",
                    expected_effect=ExpectedResults.FEWER
                ))
        else:
            suggestions.append(BreadthSuggestion(
                type="fine_tune", suggestion="Swap a term for a synonym to explore adjacent literature.",
                expected_effect=ExpectedResults.SIMILAR
            ))

        return BreadthAnalysis(
            breadth_score=score,
            classification=classification,
            reasoning=reasoning,
            term_count=structure.term_count,
            operator_count=structure.operator_count,
            specificity_level=specificity_level(score),
            suggestions=suggestions
        )

    def suggest_alternative_terms(
        self,
        query: str,
        context: Sequence[ExtractedContent] = ()
    ) -> AlternativeTerms:
        structure = parse_query(query, self.term_ceiling)
        buckets = bucket_terms(
            structure.terms,
            keywords=[k for c in context for k in c.keywords],
            topics=[t for c in context for t in c.topics],
            key_phrases=[p for c in context for p in c.key_phrases]
        )
        return AlternativeTerms(**buckets)

    def refine_query(self, query: str, context: Optional[Sequence[ExtractedContent]] = None) -> QueryRefinement:
        query = (query or "").strip()
        context = list(context or [])

        validation = self.validate_query(query)
        breadth = self.analyze_breadth(query)
        alternatives = self.suggest_alternative_terms(query, context)
        structure = parse_query(query, self.term_ceiling)

        base = query if validation.is_valid else build_query_string(structure.terms[:3], structure.terms[3:7])
        recommendations = self.generate_recommendations(
            query, base, structure, breadth, alternatives, validation
        )
        refined = self.generate_refined_queries(base, structure, alternatives, context, validation.confidence)

        return QueryRefinement(
            original_query=query,
            breadth_analysis=breadth,
            alternative_terms=alternatives,
            validation_results=validation,
            optimization_recommendations=recommendations,
            refined_queries=refined
        )

    def _pick_new_term(self, structure: QueryStructure, alternatives: AlternativeTerms,
                       context: Sequence[ExtractedContent]) -> Optional[str]:
        present = set(structure.terms)
        pools = [
            alternatives.narrower_terms,
            alternatives.related_terms,
            [k.lower() for c in context for k in c.keywords],
        ]
        for pool in pools:
            for term in pool:
                if term not in present and not any(term in p or p in term for p in present):
                    return term
        return None

    def _broaden(self, base: str, structure: QueryStructure,
                 alternatives: AlternativeTerms) -> Tuple[str, List[QueryChange]]:
        operands, connectors = split_top_level(base)
        and_positions = [i for i, c in enumerate(connectors) if c == "AND"]

        if and_positions:
            i = and_positions[-1]
            left, right = _strip_or_group(operands[i]), _strip_or_group(operands[i + 1])
            merged = f"{left} OR {right}"
            if len(operands) > 2:
                merged = f"({merged})"
            new_operands = operands[:i] + [merged] + operands[i + 2:]
            new_connectors = connectors[:i] + connectors[i + 1:]
            return join_top_level(new_operands, new_connectors), [QueryChange(
                type="operator_changed",
                description=f"Changed AND to OR between {operands[i]} and {operands[i + 1]}",
                reason="Either concept is now enough for a document to match"
            )]

        term = structure.terms[0]
        wider = next(iter(
            alternatives.broader_terms + alternatives.synonyms + alternatives.related_terms
        ), f"{term} research")
        if connectors:
            broadened = f"{base} OR {quote_term(wider)}"
        elif _strip_or_group(operands[0]) != operands[0]:
            broadened = f"({_strip_or_group(operands[0])} OR {quote_term(wider)})"
        elif operands[0].startswith("("):
            broadened = f"{operands[0]} OR {quote_term(wider)}"
        else:
            broadened = f"{quote_term(term)} OR {quote_term(wider)}"
        return broadened, [QueryChange(
            type="added",
            description=f'Added alternative term "{wider}" with OR',
            reason="An OR alternative admits documents that use different wording"
        )]

    def generate_refined_queries(
        self,
        base: str,
        structure: QueryStructure,
        alternatives: AlternativeTerms,
        context: Sequence[ExtractedContent],
        base_confidence: float
    ) -> List[RefinedQuery]:
        context_keywords = dedupe_case_insensitive([k for c in context for k in c.keywords])
        if not structure.terms:
            if not context_keywords:
                return []
            base = build_query_string(context_keywords[:2])
            structure = parse_query(base, self.term_ceiling)

        confidence = max(base_confidence, 0.5)
        refined: List[RefinedQuery] = []
        _, connectors = split_top_level(base)

        # fewer
        new_term = self._pick_new_term(structure, alternatives, context) or "empirical study"
        prefix = f"({base})" if "OR" in connectors else base
        refined.append(RefinedQuery(
            id=new_query_id("refined"),
            query=f"{prefix} AND {quote_term(new_term)}",
            description=f'Require "{new_term}" to focus the results',
            expected_results=ExpectedResults.FEWER,
            refinement_type="narrowed",
            changes=[QueryChange(
                type="added",
                description=f'Added required term "{new_term}" with AND',
                reason="Documents must now also cover this concept"
            )],
            confidence=round(min(confidence * 0.9, 1.0), 4)
        ))

        # similar
        similar = None
        for term in structure.terms:
            candidates = SYNONYMS.get(term) or ACADEMIC_VARIANTS.get(term)
            if candidates:
                replacement = candidates[0]
                similar = (replace_term(base, term, replacement), term, replacement)
                break
        if similar is None and alternatives.synonyms:
            term = structure.terms[0]
            similar = (replace_term(base, term, alternatives.synonyms[0]), term, alternatives.synonyms[0])
        if similar is not None and similar[0] != base:
            text, term, replacement = similar
            refined.append(RefinedQuery(
                id=new_query_id("refined"),
                query=text,
                description=f'Use "{replacement}" in place of "{term}"',
                expected_results=ExpectedResults.SIMILAR,
                refinement_type="refocused",
                changes=[QueryChange(
                    type="replaced",
                    description=f'Replaced "{term}" with "{replacement}"',
                    reason="A synonym reaches literature using different terminology"
                )],
                confidence=round(min(confidence * 0.85, 1.0), 4)
            ))
        else:
            operands, connectors = split_top_level(base)
            reordered = join_top_level(list(reversed(operands)), list(reversed(connectors))) \
                if len(operands) > 1 else normalize_operators(base)
            refined.append(RefinedQuery(
                id=new_query_id("refined"),
                query=reordered if reordered != base else build_query_string(structure.terms[:3], structure.terms[3:7]),
                description="Restate the query with explicit quoting and operators",
                expected_results=ExpectedResults.SIMILAR,
                refinement_type="operator_optimized",
                changes=[QueryChange(
                    type="restructured",
                    description="Reordered terms and made operators explicit",
                    reason="Same concepts, clearer structure for the search provider"
                )],
                confidence=round(min(confidence * 0.85, 1.0), 4)
            ))

        # more
        broadened, changes = self._broaden(base, structure, alternatives)
        refined.append(RefinedQuery(
            id=new_query_id("refined"),
            query=broadened,
            description="Loosen the query to capture more results",
            expected_results=ExpectedResults.MORE,
            refinement_type="broadened",
            changes=changes,
            confidence=round(min(confidence * 0.8, 1.0), 4)
        ))

        # optional extras
        for term in structure.terms:
            variants = ACADEMIC_VARIANTS.get(term)
            if variants and variants[0] not in structure.terms:
                text = replace_term(base, term, variants[0])
                if text not in {r.query for r in refined}:
                    refined.append(RefinedQuery(
                        id=new_query_id("refined"),
                        query=text,
                        description=f'Use the academic phrasing "{variants[0]}"',
                        expected_results=ExpectedResults.SIMILAR,
                        refinement_type="academic_enhanced",
                        changes=[QueryChange(
                            type="replaced",
                            description=f'Replaced "{term}" with "{variants[0]}"',
                            reason="Scholarly texts favour formal terminology"
                        )],
                        confidence=round(min(confidence * 0.8, 1.0), 4)
                    ))
                break

        normalized = normalize_operators(base)
        if normalized != base and normalized not in {r.query for r in refined}:
            refined.append(RefinedQuery(
                id=new_query_id("refined"),
                query=normalized,
                description="Make boolean operators explicit",
                expected_results=ExpectedResults.SIMILAR,
                refinement_type="operator_optimized",
                changes=[QueryChange(
                    type="operator_changed",
                    description="Uppercased operators and added explicit AND between adjacent terms",
                    reason="Lowercase operators are treated as ordinary words"
                )],
                confidence=round(min(confidence * 0.85, 1.0), 4)
            ))

        return refined

    def generate_recommendations(
        self,
        query: str,
        base: str,
        structure: QueryStructure,
        breadth: BreadthAnalysis,
        alternatives: AlternativeTerms,
        validation: ValidationResult
    ) -> List[OptimizationRecommendation]:
        recommendations: List[OptimizationRecommendation] = []
        if not structure.terms:
            return recommendations

        if not validation.is_valid:
            recommendations.append(OptimizationRecommendation(
                type="restructure",
                title="Fix query syntax",
                description="Rebuild the query from its terms with balanced quotes and operators.",
                before_query=query,
                after_query=base,
                impact="high",
                priority=1
            ))

        if breadth.classification == BreadthClassification.TOO_NARROW:
            broadened, _ = self._broaden(base, structure, alternatives)
            recommendations.append(OptimizationRecommendation(
                type="add_operator",
                title="Broaden with OR",
                description="Allow alternative terms so more relevant papers match.",
                before_query=base,
                after_query=broadened,
                impact="high",
                priority=2
            ))
        elif breadth.classification == BreadthClassification.TOO_BROAD:
            new_term = next(iter(alternatives.narrower_terms + alternatives.related_terms), None)
            if new_term:
                prefix = f"({base})" if structure.or_count else base
                recommendations.append(OptimizationRecommendation(
                    type="add_term",
                    title=f'Require "{new_term}"',
                    description="Add a specific concept with AND to cut unrelated results.",
                    before_query=base,
                    after_query=f"{prefix} AND {quote_term(new_term)}",
                    impact="high",
                    priority=2
                ))
            if structure.is_pure_or:
                recommendations.append(OptimizationRecommendation(
                    type="restructure",
                    title="Anchor the query on core concepts",
                    description="Require the two central terms and keep the rest as alternatives.",
                    before_query=base,
                    after_query=build_query_string(structure.terms[:2], structure.terms[2:6]),
                    impact="high",
                    priority=2
                ))

        if not structure.quoted_count and structure.term_count >= 2:
            recommendations.append(OptimizationRecommendation(
                type="add_operator",
                title="Quote key phrases",
                description="Exact-phrase quotes keep multi-word concepts together.",
                before_query=base,
                after_query=build_query_string(structure.terms[:3], structure.terms[3:7]),
                impact="medium",
                priority=3
            ))

        generic = [t for t in structure.terms if t in ACADEMIC_TERMS]
        if generic and structure.term_count > 2:
            trimmed = remove_operand(base, generic[0])
            if trimmed and trimmed != base:
                recommendations.append(OptimizationRecommendation(
                    type="remove_term",
                    title=f'Drop generic term "{generic[0]}"',
                    description="Generic academic words add little filtering power.",
                    before_query=base,
                    after_query=trimmed,
                    impact="low",
                    priority=4
                ))

        for term in structure.terms:
            synonyms = SYNONYMS.get(term)
            if synonyms:
                recommendations.append(OptimizationRecommendation(
                    type="replace_term",
                    title=f'Try "{synonyms[0]}" for "{term}"',
                    description="A synonym can surface papers that use different terminology.",
                    before_query=base,
                    after_query=replace_term(base, term, synonyms[0]),
                    impact="low",
                    priority=5
                ))
                break

        if not recommendations:
            extra = next(iter(alternatives.related_terms + alternatives.narrower_terms), None)
            if extra:
                recommendations.append(OptimizationRecommendation(
                    type="add_term",
                    title=f'Consider adding "{extra}"',
                    description="A related concept from your content can sharpen the results.",
                    before_query=base,
                    after_query=f"{base} AND {quote_term(extra)}",
                    impact="medium",
                    priority=3
                ))

        recommendations.sort(key=lambda r: r.priority)
        return recommendations

    async def health_check(self) -> str:
        try:
            validation = self.validate_query('"health" AND "check"')
            return "healthy" if validation.is_valid else "degraded"
        except Exception as e:
            logger.error(f"Query engine health check failed: {e}")
            return "unhealthy"

    async def close(self):
        pass

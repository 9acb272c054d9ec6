# ai_searcher/services/query_terms.py
"""
Pure helpers over boolean search strings: tokenising, syntax checks,
breadth scoring and term bucketing. No I/O; every function here is
deterministic and safe to call from any request.
"""
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ai_searcher.models.internal import BreadthClassification
from ai_searcher.services.text_analysis import STOPWORDS

OPERATORS = ("AND", "OR", "NOT")
LOWERCASE_OPERATORS = ("and", "or")

ACADEMIC_TERMS = frozenset({
    "research", "study", "analysis", "methodology", "framework", "approach",
    "theory", "model", "system", "process", "development", "implementation",
    "evaluation", "assessment", "investigation", "examination", "exploration",
    "findings", "results", "conclusion", "evidence", "data", "empirical",
    "systematic", "comprehensive", "comparative", "experimental", "qualitative",
    "quantitative", "statistical", "analytical", "theoretical", "practical",
})

SYNONYMS: Dict[str, List[str]] = {
    "research": ["study", "investigation", "inquiry"],
    "study": ["research", "investigation", "analysis"],
    "analysis": ["examination", "evaluation", "assessment"],
    "method": ["approach", "technique", "procedure"],
    "methods": ["approaches", "techniques", "procedures"],
    "framework": ["model", "structure", "paradigm"],
    "development": ["advancement", "growth", "evolution"],
    "implementation": ["deployment", "application", "execution"],
    "evaluation": ["assessment", "appraisal", "review"],
    "system": ["platform", "architecture", "infrastructure"],
    "impact": ["effect", "influence", "consequence"],
    "effect": ["impact", "influence", "outcome"],
    "healthcare": ["health care", "medical care", "clinical care"],
    "machine learning": ["statistical learning", "predictive modeling"],
    "education": ["learning", "instruction", "teaching"],
    "students": ["learners", "pupils"],
    "climate change": ["global warming", "climate crisis"],
    "performance": ["efficiency", "effectiveness"],
}

BROADER: Dict[str, List[str]] = {
    "algorithm": ["computation", "computer science"],
    "database": ["data management", "information systems"],
    "neural network": ["machine learning", "artificial intelligence"],
    "neural networks": ["machine learning", "artificial intelligence"],
    "deep learning": ["machine learning", "artificial intelligence"],
    "machine learning": ["artificial intelligence", "data science"],
    "regression": ["statistical analysis", "statistics"],
    "optimization": ["operations research", "mathematical programming"],
    "healthcare": ["public health", "health sciences"],
    "telemedicine": ["healthcare", "digital health"],
}

NARROWER: Dict[str, List[str]] = {
    "machine learning": ["deep learning", "supervised learning", "reinforcement learning"],
    "artificial intelligence": ["machine learning", "natural language processing", "computer vision"],
    "analysis": ["regression analysis", "thematic analysis", "meta-analysis"],
    "system": ["distributed system", "embedded system", "information system"],
    "method": ["mixed methods", "case study method"],
    "learning": ["online learning", "transfer learning", "collaborative learning"],
    "research": ["empirical research", "qualitative research", "longitudinal research"],
    "study": ["case study", "cohort study", "longitudinal study"],
    "healthcare": ["primary care", "telemedicine", "clinical decision support"],
    "education": ["higher education", "online education", "early childhood education"],
}

ACADEMIC_VARIANTS: Dict[str, List[str]] = {
    "study": ["empirical study", "systematic study"],
    "method": ["methodology", "methodological approach"],
    "result": ["findings", "outcomes"],
    "results": ["findings", "outcomes"],
    "problem": ["research problem", "research question"],
    "solution": ["proposed approach", "intervention"],
    "use": ["utilization", "application"],
    "effect": ["impact", "influence"],
    "help": ["facilitate", "support"],
    "show": ["demonstrate", "indicate"],
    "look": ["examine", "investigate"],
    "big": ["substantial", "significant"],
}

BUCKET_LIMITS = {
    "synonyms": 10,
    "related_terms": 10,
    "broader_terms": 8,
    "narrower_terms": 8,
    "academic_variants": 6,
}

_TOKEN_RE = re.compile(r'"[^"]*"?|\(|\)|[^\s()"]+')
_QUOTED_RE = re.compile(r'"[^"]*"')

@dataclass(frozen=True)
class QueryStructure:
    terms: Tuple[str, ...]
    and_count: int = 0
    or_count: int = 0
    not_count: int = 0
    implicit_and_count: int = 0
    quoted_count: int = 0
    group_count: int = 0
    length: int = 0
    truncated: bool = False

    @property
    def term_count(self) -> int:
        return len(self.terms)

    @property
    def operator_count(self) -> int:
        return self.and_count + self.or_count + self.not_count

    @property
    def is_pure_or(self) -> bool:
        return self.or_count > 0 and self.and_count == 0 and self.implicit_and_count == 0

def tokenize_query(query: str) -> List[str]:
    return _TOKEN_RE.findall(query or "")

def normalize_term(token: str) -> str:
    term = token.replace('"', " ").strip().lower()
    term = " ".join(term.split())
    return term.strip(".,;:!?")

def is_meaningful_term(term: str, quoted: bool = False) -> bool:
    if not term:
        return False
    if quoted:
        return any(ch.isalnum() for ch in term)
    return len(term) > 1 and term not in STOPWORDS

def parse_query(query: str, ceiling: int = 50) -> QueryStructure:
    """Count operators and collect distinct terms, considering at most `ceiling` terms"""
    counts = {"AND": 0, "OR": 0, "NOT": 0}
    implicit_and = 0
    quoted = 0
    groups = 0
    terms: List[str] = []
    seen = set()
    truncated = False
    prev_is_operand = False

    for token in tokenize_query(query):
        operator = token if token in OPERATORS else token.upper() if token in LOWERCASE_OPERATORS else None
        if operator:
            counts[operator] += 1
            prev_is_operand = False
            continue
        if token == "(":
            groups += 1
            if prev_is_operand:
                implicit_and += 1
            prev_is_operand = False
            continue
        if token == ")":
            prev_is_operand = True
            continue

        if prev_is_operand:
            implicit_and += 1
        prev_is_operand = True

        is_quoted = token.startswith('"')
        if is_quoted:
            quoted += 1
        term = normalize_term(token)
        if not is_meaningful_term(term, is_quoted) or term in seen:
            continue
        if len(terms) >= ceiling:
            truncated = True
            continue
        seen.add(term)
        terms.append(term)

    return QueryStructure(
        terms=tuple(terms),
        and_count=counts["AND"],
        or_count=counts["OR"],
        not_count=counts["NOT"],
        implicit_and_count=implicit_and,
        quoted_count=quoted,
        group_count=groups,
        length=len((query or "").strip()),
        truncated=truncated
    )

def check_syntax(query: str, ceiling: int = 50) -> List[Tuple[str, str, str]]:
    """Return (type, severity, message) issues; severity is error, warning or info"""
    if not query or not query.strip():
        return [("empty_query", "error", "Query is empty. Enter at least one search term.")]

    issues = []
    if query.count('"') % 2:
        issues.append(("unbalanced_quotes", "error", "Query has an unmatched double quote."))

    depth = 0
    unbalanced = False
    for ch in _QUOTED_RE.sub('""', query):
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth < 0:
                unbalanced = True
                depth = 0
    if unbalanced or depth != 0:
        issues.append(("unbalanced_parentheses", "error", "Query has unmatched parentheses."))

    tokens = tokenize_query(query)
    if any(t.startswith('"') and not normalize_term(t) for t in tokens):
        issues.append(("empty_phrase", "error", "Query contains an empty quoted phrase."))
    if re.search(r"\(\s*\)", _QUOTED_RE.sub('""', query)):
        issues.append(("empty_group", "error", "Query contains an empty group '()'."))

    kinds = [
        "op" if t in OPERATORS else "open" if t == "(" else "close" if t == ")" else "term"
        for t in tokens
    ]
    dangling = False
    for i, (token, kind) in enumerate(zip(tokens, kinds)):
        if kind != "op":
            continue
        prev_kind = kinds[i - 1] if i > 0 else None
        next_kind = kinds[i + 1] if i + 1 < len(kinds) else None
        if token != "NOT" and prev_kind in (None, "open", "op"):
            dangling = True
        if next_kind in (None, "close") or (next_kind == "op" and tokens[i + 1] != "NOT"):
            dangling = True
    if dangling:
        issues.append((
            "dangling_operator", "error",
            "Boolean operators (AND, OR, NOT) must sit between two search terms."
        ))

    structure = parse_query(query, ceiling)
    if not any(len(term) > 2 for term in structure.terms):
        issues.append((
            "no_meaningful_terms", "error",
            "Query needs at least one search term longer than two characters."
        ))

    if re.search(r"\s(and|or)\s", _QUOTED_RE.sub('""', query)):
        issues.append((
            "lowercase_operator", "warning",
            "Lowercase 'and'/'or' are treated as words; use uppercase AND/OR."
        ))
    if len(query) > 256:
        issues.append(("query_too_long", "warning", "Scholar search truncates queries longer than 256 characters."))
    if structure.truncated:
        issues.append(("too_many_terms", "warning", f"Only the first {ceiling} distinct terms were considered."))
    if structure.term_count == 1 and not any(i[1] == "error" for i in issues):
        issues.append(("single_term", "info", "Single-term queries usually return very general results."))

    return issues

def syntax_confidence(issues: Sequence[Tuple[str, str, str]], query: str) -> float:
    if not query or not query.strip():
        return 0.0
    confidence = 1.0
    for _, severity, _ in issues:
        if severity == "error":
            confidence -= 0.3
        elif severity == "warning":
            confidence -= 0.1
    return round(min(max(confidence, 0.0), 1.0), 4)

def academic_ratio(terms: Iterable[str]) -> float:
    terms = list(terms)
    if not terms:
        return 0.0
    academic = sum(1 for t in terms if any(word in ACADEMIC_TERMS for word in t.split()))
    return academic / len(terms)

def breadth_score(structure: QueryStructure) -> float:
    """0 = very narrow, 1 = very broad"""
    score = 0.5
    n = structure.term_count
    if n <= 1:
        score -= 0.35
    elif n >= 5:
        score += min(0.3, 0.05 * (n - 4))

    connectors = structure.and_count + structure.implicit_and_count + structure.or_count
    if connectors:
        score += 0.3 * (structure.or_count / connectors)
        score -= 0.1 * ((structure.and_count + structure.implicit_and_count) / connectors)

    score -= min(0.1, 0.03 * structure.quoted_count)
    score -= min(0.1, 0.05 * structure.not_count)
    if academic_ratio(structure.terms) > 0.5:
        score -= 0.05
    return round(min(max(score, 0.0), 1.0), 4)

def specificity_level(score: float) -> str:
    if score < 0.2:
        return "very_specific"
    if score < 0.4:
        return "specific"
    if score < 0.6:
        return "moderate"
    if score < 0.8:
        return "broad"
    return "very_broad"

def classify_breadth(
    structure: QueryStructure,
    narrow_threshold: float = 0.3,
    broad_threshold: float = 0.7,
    max_or_terms: int = 6,
    min_length: int = 3
) -> Tuple[BreadthClassification, float, str]:
    score = breadth_score(structure)

    if structure.term_count <= 1 or structure.length < min_length:
        return (
            BreadthClassification.TOO_NARROW, min(score, narrow_threshold - 0.01),
            f"Query has {structure.term_count} effective term(s); results will be thin or unfocused."
        )
    if structure.is_pure_or and structure.term_count >= max_or_terms:
        return (
            BreadthClassification.TOO_BROAD, max(score, broad_threshold + 0.01),
            f"{structure.term_count} terms joined only by OR will match too many documents."
        )
    if score < narrow_threshold:
        return BreadthClassification.TOO_NARROW, score, "Operator mix and quoting restrict the query heavily."
    if score > broad_threshold:
        return BreadthClassification.TOO_BROAD, score, "Many loosely combined terms make the query very broad."
    return (
        BreadthClassification.OPTIMAL, score,
        f"{structure.term_count} terms with {structure.operator_count} operator(s) give a balanced query."
    )

# Query string construction

def quote_term(term: str) -> str:
    cleaned = " ".join(term.replace('"', " ").split())
    return f'"{cleaned}"'

def build_query_string(and_terms: Sequence[str], or_terms: Sequence[str] = ()) -> str:
    """`"a" AND "b" AND ("c" OR "d")`; at most one OR group"""
    parts = [quote_term(t) for t in and_terms if t and normalize_term(t)]
    or_terms = [t for t in or_terms if t and normalize_term(t)]
    if len(or_terms) == 1:
        parts.append(quote_term(or_terms[0]))
    elif or_terms:
        group = " OR ".join(quote_term(t) for t in or_terms)
        parts.append(f"({group})" if parts else group)
    return " AND ".join(parts)

def _render(tokens: Sequence[str]) -> str:
    return " ".join(tokens).replace("( ", "(").replace(" )", ")")

def split_top_level(query: str) -> Tuple[List[str], List[str]]:
    """Split into depth-0 operands and the connectors between them (implicit AND included)"""
    operands: List[str] = []
    connectors: List[str] = []
    current: List[str] = []
    pending: Optional[str] = None
    depth = 0

    for token in tokenize_query(query):
        if depth == 0 and token in OPERATORS:
            if not operands and not current:
                current.append(token)
                continue
            if current:
                operands.append(_render(current))
                current = []
            pending = f"{pending} {token}" if pending else token
            continue
        if depth == 0 and current and current[-1] not in OPERATORS and token != ")":
            operands.append(_render(current))
            current = []
            pending = pending or "AND"
        if pending and operands and not current:
            connectors.append(pending)
            pending = None
        current.append(token)
        if token == "(":
            depth += 1
        elif token == ")":
            depth = max(0, depth - 1)

    if current:
        operands.append(_render(current))
    return operands, connectors[:max(0, len(operands) - 1)]

def join_top_level(operands: Sequence[str], connectors: Sequence[str]) -> str:
    if not operands:
        return ""
    parts = [operands[0]]
    for operand, connector in zip(operands[1:], list(connectors) + ["AND"] * len(operands)):
        parts.append(f"{connector} {operand}")
    return " ".join(parts)

def bucket_terms(
    query_terms: Sequence[str],
    keywords: Sequence[str] = (),
    topics: Sequence[str] = (),
    key_phrases: Sequence[str] = ()
) -> Dict[str, List[str]]:
    """Heuristic synonym/related/broader/narrower/academic-variant buckets"""
    present = {t.lower() for t in query_terms}
    buckets: Dict[str, List[str]] = {name: [] for name in BUCKET_LIMITS}

    def add(bucket: str, term: str):
        term = term.strip().lower()
        if term and term not in present and term not in buckets[bucket]:
            buckets[bucket].append(term)

    for term in query_terms:
        words = term.split()
        for candidate in SYNONYMS.get(term, []):
            add("synonyms", candidate)
        for candidate in BROADER.get(term, []):
            add("broader_terms", candidate)
        for candidate in NARROWER.get(term, []):
            add("narrower_terms", candidate)
        for word in words:
            for candidate in ACADEMIC_VARIANTS.get(word, []):
                add("academic_variants", term.replace(word, candidate) if len(words) > 1 else candidate)
        if len(words) == 1 and term not in ACADEMIC_TERMS:
            add("academic_variants", f"{term} research")

    for keyword in keywords:
        kw = keyword.lower()
        if kw in present:
            continue
        # Shared stem with a query term reads as a synonym, otherwise as related
        if any(len(kw) > 4 and len(t) > 4 and kw[:5] == t[:5] for t in present):
            add("synonyms", kw)
        else:
            add("related_terms", kw)

    for topic in topics:
        add("broader_terms", topic)

    for phrase in key_phrases:
        lowered = phrase.lower()
        if any(t in lowered.split() or t in lowered for t in present) and lowered not in present:
            add("narrower_terms", lowered)
        else:
            add("related_terms", lowered)

    return {name: terms[:BUCKET_LIMITS[name]] for name, terms in buckets.items()}

# ai_searcher/services/text_analysis.py
"""
Pure text-analysis helpers used by content extraction and query generation:
tokenisation, frequency keywords, n-gram key phrases and taxonomy topics.
"""
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

STOPWORDS = frozenset({
    "a", "about", "above", "after", "again", "against", "all", "also", "am", "an",
    "and", "any", "are", "as", "at", "be", "because", "been", "before", "being",
    "below", "between", "both", "but", "by", "can", "could", "did", "do", "does",
    "doing", "down", "during", "each", "either", "etc", "few", "for", "from",
    "further", "had", "has", "have", "having", "he", "her", "here", "hers", "him",
    "his", "how", "however", "i", "if", "in", "into", "is", "it", "its", "itself",
    "just", "may", "me", "might", "more", "most", "much", "must", "my", "no",
    "nor", "not", "now", "of", "off", "on", "once", "only", "or", "other", "our",
    "ours", "out", "over", "own", "same", "shall", "she", "should", "so", "some",
    "such", "than", "that", "the", "their", "theirs", "them", "then", "there",
    "these", "they", "this", "those", "through", "thus", "to", "too", "under",
    "until", "up", "upon", "us", "use", "used", "using", "very", "via", "was",
    "we", "were", "what", "when", "where", "whether", "which", "while", "who",
    "whom", "why", "will", "with", "within", "without", "would", "yet", "you",
    "your", "yours",
})

# topic -> trigger terms (single words or bigrams)
TOPIC_TAXONOMY: Dict[str, frozenset] = {
    "artificial intelligence": frozenset({
        "artificial intelligence", "ai", "machine learning", "deep learning",
        "neural network", "neural networks", "natural language", "nlp",
    }),
    "machine learning": frozenset({
        "machine learning", "deep learning", "neural", "classification",
        "regression", "supervised", "unsupervised", "reinforcement", "prediction",
    }),
    "healthcare": frozenset({
        "health", "healthcare", "medical", "medicine", "clinical", "patient",
        "patients", "hospital", "disease", "diagnosis", "treatment",
    }),
    "education": frozenset({
        "education", "educational", "students", "student", "teaching", "learners",
        "curriculum", "school", "schools", "university", "pedagogy",
    }),
    "environment": frozenset({
        "climate", "environment", "environmental", "sustainability", "sustainable",
        "carbon", "emissions", "renewable", "pollution", "biodiversity",
    }),
    "economics": frozenset({
        "economic", "economics", "economy", "market", "markets", "finance",
        "financial", "trade", "labor", "labour", "investment",
    }),
    "psychology": frozenset({
        "psychology", "psychological", "behavior", "behaviour", "cognitive",
        "mental", "emotion", "emotional", "wellbeing", "motivation",
    }),
    "social sciences": frozenset({
        "social", "society", "community", "communities", "culture", "cultural",
        "policy", "political", "sociology", "gender",
    }),
    "computer science": frozenset({
        "software", "computing", "computer", "algorithm", "algorithms", "database",
        "databases", "cybersecurity", "security", "programming", "distributed",
    }),
    "engineering": frozenset({
        "engineering", "manufacturing", "mechanical", "electrical", "materials",
        "robotics", "robot", "sensors", "energy",
    }),
    "biology": frozenset({
        "biology", "biological", "gene", "genes", "genetic", "genomics", "protein",
        "proteins", "cell", "cells", "species", "ecology",
    }),
    "research methods": frozenset({
        "methodology", "qualitative", "quantitative", "survey", "experiment",
        "experimental", "empirical", "systematic review", "meta-analysis",
        "case study", "interviews",
    }),
}

MAX_KEYWORDS = 20
MAX_KEY_PHRASES = 15
MAX_TOPICS = 10

_TOKEN_RE = re.compile(r"[a-z0-9]+(?:[-'][a-z0-9]+)*")
_SENTENCE_RE = re.compile(r"[.!?]+")

@dataclass
class TextAnalysis:
    content: str
    keywords: List[str] = field(default_factory=list)
    key_phrases: List[str] = field(default_factory=list)
    topics: List[str] = field(default_factory=list)
    word_count: int = 0
    sentence_count: int = 0

def clean_text(content: str) -> str:
    """Collapse whitespace and drop markup characters"""
    content = re.sub(r"[#*_`>|\[\]{}<>]+", " ", content or "")
    return re.sub(r"\s+", " ", content).strip()

def tokenize(content: str) -> List[str]:
    return _TOKEN_RE.findall((content or "").lower())

def is_content_token(token: str) -> bool:
    return len(token) > 2 and token not in STOPWORDS and not token.isdigit()

def extract_keywords(tokens: Sequence[str], limit: int = MAX_KEYWORDS) -> List[str]:
    """Most frequent content tokens; ties keep first-seen order"""
    counts = Counter(token for token in tokens if is_content_token(token))
    return [term for term, _ in counts.most_common(limit)]

def _is_meaningful_ngram(words: Sequence[str]) -> bool:
    if words[0] in STOPWORDS or words[-1] in STOPWORDS:
        return False
    if any(word.isdigit() or len(word) < 2 for word in words):
        return False
    return any(is_content_token(word) for word in words)

def extract_key_phrases(
    tokens: Sequence[str],
    min_frequency: Optional[int] = None,
    limit: int = MAX_KEY_PHRASES
) -> List[str]:
    """
    Bigrams and trigrams whose frequency reaches min_frequency. Short texts
    rarely repeat a phrase, so the default threshold is 1 below 100 tokens.
    """
    if min_frequency is None:
        min_frequency = 2 if len(tokens) >= 100 else 1

    counts: Counter = Counter()
    for size in (2, 3):
        for i in range(len(tokens) - size + 1):
            window = tokens[i:i + size]
            if _is_meaningful_ngram(window):
                counts[" ".join(window)] += 1

    phrases = [phrase for phrase, count in counts.most_common() if count >= min_frequency]
    return phrases[:limit]

def extract_topics(tokens: Sequence[str], limit: int = MAX_TOPICS) -> List[str]:
    """Match unigrams and bigrams against the fixed topic taxonomy"""
    terms = Counter(tokens)
    terms.update(f"{a} {b}" for a, b in zip(tokens, tokens[1:]))

    scored = []
    for position, (topic, triggers) in enumerate(TOPIC_TAXONOMY.items()):
        hits = sum(terms[trigger] for trigger in triggers if trigger in terms)
        if hits:
            scored.append((-hits, position, topic))

    return [topic for _, _, topic in sorted(scored)[:limit]]

def analyze_text(content: str) -> TextAnalysis:
    cleaned = clean_text(content)
    tokens = tokenize(cleaned)
    sentences = [s for s in _SENTENCE_RE.split(cleaned) if s.strip()]
    return TextAnalysis(
        content=cleaned,
        keywords=extract_keywords(tokens),
        key_phrases=extract_key_phrases(tokens),
        topics=extract_topics(tokens),
        word_count=len(tokens),
        sentence_count=len(sentences)
    )

def calculate_content_confidence(content: str, keywords: Iterable[str], title: Optional[str]) -> float:
    """Base 0.5, +0.2 long content, +0.2 for three or more keywords, +0.1 titled"""
    confidence = 0.5
    if len(content or "") > 200:
        confidence += 0.2
    if len(list(keywords)) >= 3:
        confidence += 0.2
    if title and title.strip():
        confidence += 0.1
    return round(min(max(confidence, 0.0), 1.0), 4)

# ai_searcher/services/__init__.py
"""Service layer modules"""

# Services are imported directly where needed; the orchestrator wires them together.

__all__ = [
    "cache_service",
    "content_extractor",
    "duplicate_detector",
    "feedback_learning",
    "history_store",
    "query_engine",
    "query_terms",
    "rate_limiter",
    "result_scorer",
    "scholar_client",
    "text_analysis",
]

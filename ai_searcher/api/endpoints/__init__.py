# ai_searcher/api/endpoints/__init__.py
"""API endpoints"""

from . import search, query, feedback, history, health

__all__ = ["search", "query", "feedback", "history", "health"]

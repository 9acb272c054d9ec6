# ai_searcher/core/__init__.py
# Pipeline is not imported here; it pulls in every service.

from .exceptions import (
    PipelineException,
    ContentExtractionException,
    QueryGenerationException,
    SearchEngineException,
    ScholarRateLimitedException,
    ScholarUnavailableException,
    HistoryStoreException
)
from .outcome import Outcome, Failure, FailureKind

__all__ = [
    "PipelineException",
    "ContentExtractionException",
    "QueryGenerationException",
    "SearchEngineException",
    "ScholarRateLimitedException",
    "ScholarUnavailableException",
    "HistoryStoreException",
    "Outcome",
    "Failure",
    "FailureKind"
]

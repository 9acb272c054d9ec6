# ai_searcher/core/exceptions.py
from typing import Optional

from fastapi import HTTPException

class CustomHTTPException(HTTPException):
    def __init__(self, status_code: int, detail: str, error_code: str = None):
        super().__init__(status_code=status_code, detail=detail)
        self.error_code = error_code

class PipelineException(Exception):
    """Exception raised during search orchestration"""
    pass

class ContentExtractionException(Exception):
    """Exception raised when a content source cannot be read"""

    def __init__(self, message: str, source: str = None, source_id: str = None, not_found: bool = False):
        super().__init__(message)
        self.source = source
        self.source_id = source_id
        self.not_found = not_found

class QueryGenerationException(Exception):
    """Exception raised during query generation"""
    pass

class SearchEngineException(Exception):
    """Exception raised during scholar search operations"""
    pass

class ScholarRateLimitedException(SearchEngineException):
    """The per-process scholar request budget is spent"""

    def __init__(self, message: str, retry_after: float = 60.0):
        super().__init__(message)
        self.retry_after = retry_after

class ScholarUnavailableException(SearchEngineException):
    """Scholar requests failed after all retry attempts"""

    def __init__(self, message: str, error_type: str = "network", attempts: int = 1):
        super().__init__(message)
        self.error_type = error_type
        self.attempts = attempts

class HistoryStoreException(Exception):
    """Exception raised by the analytics/history store"""
    pass

class RateLimitException(CustomHTTPException):
    def __init__(self, detail: str = "Rate limit exceeded"):
        super().__init__(status_code=429, detail=detail, error_code="RATE_LIMIT_EXCEEDED")

class ValidationException(CustomHTTPException):
    def __init__(self, detail: str = "Invalid request"):
        super().__init__(status_code=400, detail=detail, error_code="INVALID_REQUEST")

class ServiceUnavailableException(CustomHTTPException):
    def __init__(self, detail: str = "Service temporarily unavailable", fallback_url: Optional[str] = None):
        super().__init__(status_code=503, detail=detail, error_code="SERVICE_UNAVAILABLE")
        self.fallback_url = fallback_url

# ai_searcher/config/settings.py
from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import List, Union
import logging

logger = logging.getLogger(__name__)

class Settings(BaseSettings):
    # API Configuration
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    DEBUG: bool = False
    # Union keeps comma-separated env values from being JSON-decoded
    ALLOWED_ORIGINS: Union[List[str], str] = ["*"]
    RATE_LIMIT_PER_MINUTE: int = 60

    # Content provider (ideas / builder documents)
    CONTENT_API_BASE_URL: str = "http://localhost:8787"
    CONTENT_FETCH_TIMEOUT: int = 10

    # Scholar provider
    SCHOLAR_BASE_URL: str = "https://scholar.google.com/scholar"
    SCHOLAR_TIMEOUT: int = 15
    SCHOLAR_MAX_RESULTS: int = 20
    SCHOLAR_REQUESTS_PER_MINUTE: int = 10
    SCHOLAR_REQUESTS_PER_HOUR: int = 100
    SCHOLAR_MAX_RETRIES: int = 3
    SCHOLAR_BASE_DELAY: float = 1.0
    SCHOLAR_MAX_DELAY: float = 30.0
    SCHOLAR_USER_AGENT: str = (
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0 Safari/537.36"
    )

    # Query heuristics
    QUERY_MAX_KEYWORDS: int = 8
    QUERY_MAX_TOPICS: int = 5
    QUERY_TERM_CEILING: int = 50
    QUERY_MIN_LENGTH: int = 3
    BREADTH_NARROW_THRESHOLD: float = 0.3
    BREADTH_BROAD_THRESHOLD: float = 0.7
    BREADTH_MAX_OR_TERMS: int = 6

    # Duplicate detection
    DUPLICATE_TITLE_THRESHOLD: float = 0.85
    DUPLICATE_AUTHOR_THRESHOLD: float = 0.8
    DUPLICATE_FUZZY_THRESHOLD: float = 0.8

    # Scoring
    CITATION_ESTIMATE_CEILING: int = 5000

    # Cache Configuration
    REDIS_URL: str = "redis://localhost:6379"
    MEMORY_CACHE_SIZE: int = 1000
    CACHE_TTL_CONTENT_EXTRACTION: int = 3600
    CACHE_TTL_SEARCH_RESULTS: int = 1800

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./ai_searcher.db"

    # Pipeline stage timeouts (seconds)
    EXTRACTION_TIMEOUT: float = 20.0
    SEARCH_TIMEOUT: float = 60.0
    LEARNING_TIMEOUT: float = 5.0

    # Monitoring
    LOG_LEVEL: str = "INFO"

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @field_validator("DEBUG", mode="before")
    @classmethod
    def parse_debug(cls, v):
        if isinstance(v, str):
            return v.lower() in ("true", "1", "yes", "on")
        return v

    model_config = {
        "env_file": ".env",
        "case_sensitive": True,
        "extra": "ignore"
    }

settings = Settings()
logger.debug(f"Settings loaded (debug={settings.DEBUG}, database={settings.DATABASE_URL.split('@')[-1]})")

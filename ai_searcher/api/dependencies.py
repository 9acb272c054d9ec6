# ai_searcher/api/dependencies.py
import time
import logging
from typing import Optional, Dict
from fastapi import Depends, Request
from functools import lru_cache

from ai_searcher.core.pipeline import SearchOrchestrator
from ai_searcher.config.settings import settings
from ai_searcher.core.exceptions import RateLimitException

logger = logging.getLogger(__name__)

# Global orchestrator instance
_orchestrator_instance: Optional[SearchOrchestrator] = None

@lru_cache()
def get_orchestrator() -> SearchOrchestrator:
    """Get or create the orchestrator (one per process)"""
    global _orchestrator_instance

    if _orchestrator_instance is None:
        _orchestrator_instance = SearchOrchestrator()
        logger.info("Search orchestrator instance created")

    return _orchestrator_instance

async def get_current_user(request: Request) -> Optional[str]:
    """
    Identify the caller for rate limiting and learning.
    X-User-ID wins, then the client address.
    """
    user_id = request.headers.get("X-User-ID")
    if user_id:
        return user_id

    if request.client and request.client.host:
        return f"ip_{request.client.host.replace('.', '_')}"
    return None

# Rate limiting storage
_rate_limit_cache: Dict[str, Dict] = {}

def reset_rate_limits():
    _rate_limit_cache.clear()

async def rate_limit(request: Request, current_user: Optional[str] = Depends(get_current_user)):
    """Fixed one-minute window per user/IP, kept in process memory"""
    identifier = current_user or "anonymous"
    current_time = time.time()

    # Prevent memory bloat
    if len(_rate_limit_cache) > 10000:
        cutoff_time = current_time - 3600
        expired_keys = [k for k, v in _rate_limit_cache.items()
                        if v.get('last_reset', 0) < cutoff_time]
        for key in expired_keys:
            del _rate_limit_cache[key]

    if identifier not in _rate_limit_cache:
        _rate_limit_cache[identifier] = {
            'requests': 0,
            'last_reset': current_time
        }

    rate_data = _rate_limit_cache[identifier]

    if current_time - rate_data['last_reset'] >= 60:
        rate_data['requests'] = 0
        rate_data['last_reset'] = current_time

    if rate_data['requests'] >= settings.RATE_LIMIT_PER_MINUTE:
        logger.warning(f"Rate limit exceeded for {identifier}")
        raise RateLimitException(
            detail=f"Rate limit exceeded. Maximum {settings.RATE_LIMIT_PER_MINUTE} requests per minute."
        )

    rate_data['requests'] += 1
    return True

async def get_request_id(request: Request) -> str:
    """Request id set by the middleware, or a fresh one"""
    request_id = getattr(request.state, 'request_id', None)
    if not request_id:
        request_id = f"req_{int(time.time() * 1000)}"
        request.state.request_id = request_id
    return request_id

async def shutdown_handler():
    """Release orchestrator resources on application shutdown"""
    global _orchestrator_instance
    try:
        if _orchestrator_instance:
            await _orchestrator_instance.shutdown()
            _orchestrator_instance = None
            get_orchestrator.cache_clear()
    except Exception as e:
        logger.error(f"Shutdown error: {e}")

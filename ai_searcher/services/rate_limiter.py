# ai_searcher/services/rate_limiter.py
import logging
import time
from collections import deque
from typing import Callable, Deque, Dict, Optional

from ai_searcher.config.settings import settings

logger = logging.getLogger(__name__)

MINUTE = 60.0
HOUR = 3600.0

class RateLimiter:
    """
    Per-process sliding-window budget for outbound scholar requests.
    Tracks a minute window and an hour window; a request is allowed only
    when both have room.
    """

    def __init__(
        self,
        requests_per_minute: Optional[int] = None,
        requests_per_hour: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.requests_per_minute = requests_per_minute or settings.SCHOLAR_REQUESTS_PER_MINUTE
        self.requests_per_hour = requests_per_hour or settings.SCHOLAR_REQUESTS_PER_HOUR
        self._clock = clock
        self._minute: Deque[float] = deque()
        self._hour: Deque[float] = deque()
        self._blocked_until = 0.0

    def _prune(self, now: float):
        while self._minute and now - self._minute[0] >= MINUTE:
            self._minute.popleft()
        while self._hour and now - self._hour[0] >= HOUR:
            self._hour.popleft()

    def block(self, seconds: float):
        """Refuse all requests for the given number of seconds"""
        self._blocked_until = max(self._blocked_until, self._clock() + seconds)
        logger.warning(f"Scholar requests blocked for {seconds:.0f}s")

    @property
    def is_blocked(self) -> bool:
        return self._clock() < self._blocked_until

    def can_make_request(self) -> bool:
        self._prune(self._clock())
        if self.is_blocked:
            return False
        return len(self._minute) < self.requests_per_minute and len(self._hour) < self.requests_per_hour

    def record_request(self):
        now = self._clock()
        self._prune(now)
        self._minute.append(now)
        self._hour.append(now)

    def try_acquire(self) -> bool:
        """Record a request if the budget allows it"""
        if not self.can_make_request():
            return False
        self.record_request()
        return True

    def time_until_available(self) -> float:
        now = self._clock()
        self._prune(now)
        wait = max(self._blocked_until - now, 0.0)
        if len(self._minute) >= self.requests_per_minute:
            wait = max(wait, MINUTE - (now - self._minute[0]))
        if len(self._hour) >= self.requests_per_hour:
            wait = max(wait, HOUR - (now - self._hour[0]))
        return round(max(wait, 0.0), 2)

    def get_status(self) -> Dict[str, float]:
        now = self._clock()
        self._prune(now)
        return {
            "requests_this_minute": len(self._minute),
            "requests_this_hour": len(self._hour),
            "remaining_minute": max(self.requests_per_minute - len(self._minute), 0),
            "remaining_hour": max(self.requests_per_hour - len(self._hour), 0),
            "minute_resets_in": round(MINUTE - (now - self._minute[0]), 2) if self._minute else 0.0,
            "hour_resets_in": round(HOUR - (now - self._hour[0]), 2) if self._hour else 0.0,
            "is_blocked": self.is_blocked,
            "can_make_request": self.can_make_request(),
        }

    def reset(self):
        self._minute.clear()
        self._hour.clear()
        self._blocked_until = 0.0

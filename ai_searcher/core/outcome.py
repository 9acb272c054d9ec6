# ai_searcher/core/outcome.py
"""
Uniform success/failure wrapper returned by every external collaborator
(content provider, scholar provider, history store). The orchestrator
inspects an Outcome instead of catching collaborator-specific exceptions.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")

class FailureKind(str, Enum):
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    NOT_FOUND = "not_found"
    INVALID_RESPONSE = "invalid_response"

@dataclass(frozen=True)
class Failure:
    kind: FailureKind
    message: str
    source: Optional[str] = None
    retry_after: Optional[float] = None
    fallback_url: Optional[str] = None

    def to_dict(self) -> dict:
        data = {"kind": self.kind.value, "message": self.message}
        if self.source:
            data["source"] = self.source
        if self.retry_after is not None:
            data["retryAfter"] = self.retry_after
        if self.fallback_url:
            data["fallbackUrl"] = self.fallback_url
        return data

@dataclass(frozen=True)
class Outcome(Generic[T]):
    value: Optional[T] = None
    failure: Optional[Failure] = None
    # Degraded-but-usable value returned alongside a failure
    fallback: Optional[T] = field(default=None)

    @property
    def ok(self) -> bool:
        return self.failure is None

    def unwrap_or(self, default: T) -> T:
        if self.ok:
            return self.value
        return self.fallback if self.fallback is not None else default

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failed(cls, failure: Failure, fallback: Optional[T] = None) -> "Outcome[T]":
        return cls(failure=failure, fallback=fallback)

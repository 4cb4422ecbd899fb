"""Domain Events related to backend calls and resilience.

Examples include events for when calls are deferred by the rate limiter,
retried, fail, succeed, or are served from the cache.
"""

from dataclasses import dataclass, field
import time
from typing import Any, Optional


@dataclass
class DomainEvent:
    """Base class for domain events."""
    pass


# --- Specific API Events ---

@dataclass
class ApiCallInitiated(DomainEvent):
    """Event triggered when a backend call is about to be made."""
    provider: str
    endpoint: str
    attempt_number: int = 1
    request_id: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class ApiCallSucceeded(DomainEvent):
    """Event triggered when a backend call succeeds."""
    provider: str
    endpoint: str
    latency_ms: float
    request_id: Optional[str] = None
    response_summary: Optional[Any] = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class ApiCallFailed(DomainEvent):
    """Event triggered when a backend call fails definitively (after retries)."""
    provider: str
    endpoint: str
    error_type: str
    error_message: str
    attempts: int = 1
    request_id: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class ApiCallDeferred(DomainEvent):
    """Event triggered when a backend call waited on the rate limiter."""
    provider: str
    endpoint: str
    wait_time_seconds: float
    request_id: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class RetryScheduled(DomainEvent):
    """Event triggered when a retry is scheduled for a failed call."""
    endpoint: str
    attempt_number: int
    delay_seconds: float
    error_type: str
    error_message: str
    provider: Optional[str] = None
    request_id: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class CacheHit(DomainEvent):
    """Event triggered when an analysis is answered from the response cache."""
    cache_key: str
    request_id: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

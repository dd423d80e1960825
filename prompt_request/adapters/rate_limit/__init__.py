"""Rate limiting adapters.

Fixed-window limiters behind a small abstraction. The API layer only sees
``AbstractRateLimiter``; the in-memory implementation keeps per-process state,
so each worker enforces its own limits.
"""

from prompt_request.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from prompt_request.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter

__all__ = [
    "AbstractRateLimiter",
    "InMemoryFixedWindowRateLimiter",
    "RateLimitResult",
]

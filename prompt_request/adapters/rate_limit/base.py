"""Rate limiter interfaces.

The API should depend on this abstraction (not the concrete implementation)
so we can swap storage backends later (e.g., Redis) with minimal changes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit check.

    Attributes:
        allowed: Whether the call is allowed to proceed.
        window_seconds: Length of the fixed window.
        retry_after_seconds: Whole seconds to wait when blocked (>= 1), else None.
    """

    allowed: bool
    window_seconds: float
    retry_after_seconds: int | None


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    @property
    @abstractmethod
    def window_seconds(self) -> float:
        """Length of the window this limiter enforces."""
        raise NotImplementedError

    @abstractmethod
    def check(self, key: str) -> RateLimitResult:
        """Admit or reject one call for a given key.

        Args:
            key: Unique identifier (e.g., account id, client IP).

        Returns:
            RateLimitResult describing whether it was allowed.
        """
        raise NotImplementedError

"""Rate limiting dependencies for FastAPI routes.

This module wires the rate limiting adapters into the HTTP layer.

Three independent fixed-window limiters exist, all owned by the service
container:
- per account: every authenticated call (enforced by the auth gate)
- per client IP: public reads (GET / and GET /{id})
- per client IP: account creation (one per hour by default)
"""

from __future__ import annotations

import ipaddress
import logging

from fastapi import Request

from prompt_request.adapters.rate_limit.base import AbstractRateLimiter
from prompt_request.core.dependencies import get_container
from prompt_request.core.errors import RateLimitedAppError, ValidationAppError
from prompt_request.core.logging import hash_for_log

logger = logging.getLogger(__name__)


def check_rate_limit(limiter: AbstractRateLimiter, key: str, *, key_type: str) -> None:
    """Admit one call for ``key`` or raise.

    Raises:
        RateLimitedAppError: With the whole seconds to wait (>= 1).
    """
    result = limiter.check(key)
    if result.allowed:
        return

    retry_after = result.retry_after_seconds or 1
    logger.warning(
        "rate_limit.exceeded",
        extra={
            "key_type": key_type,
            "key_hash": hash_for_log(key),
            "window_s": result.window_seconds,
            "retry_after_s": retry_after,
        },
    )
    raise RateLimitedAppError(
        code="rate_limited",
        message="Rate limit exceeded. Try again later.",
        details={"retry_after": retry_after},
        retry_after_seconds=retry_after,
    )


def client_ip(request: Request, *, trust_forwarded_for: bool = True) -> str:
    """Resolve the caller's IP address.

    Uses the first parseable entry of X-Forwarded-For when trusted, otherwise
    the socket peer.

    Raises:
        ValidationAppError: If no address can be determined.
    """
    if trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            first = forwarded.split(",", 1)[0].strip()
            try:
                return str(ipaddress.ip_address(first))
            except ValueError:
                logger.debug("rate_limit.bad_forwarded_for", extra={"value": first})

    if request.client and request.client.host:
        return request.client.host

    raise ValidationAppError(code="bad_request", message="missing client ip")


async def enforce_public_read_limit(request: Request) -> None:
    """FastAPI dependency throttling public reads per client IP."""
    container = get_container(request)
    ip = client_ip(request, trust_forwarded_for=container.settings.app.trust_forwarded_for)
    check_rate_limit(container.public_read_limiter, ip, key_type="ip")


async def enforce_account_create_limit(request: Request) -> None:
    """FastAPI dependency throttling account creation per client IP."""
    container = get_container(request)
    ip = client_ip(request, trust_forwarded_for=container.settings.app.trust_forwarded_for)
    check_rate_limit(container.account_create_limiter, ip, key_type="ip")

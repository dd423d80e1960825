"""API key authentication.

Accounts authenticate with ``Authorization: Bearer <key>``. Only a peppered
SHA-256 digest of each key is stored; lookups compare digests.

Flow for every authenticated call:
1. Parse the bearer credential (missing/malformed/blank -> 401)
2. Look up the account by digest (unknown -> 401)
3. Apply the per-account rate limiter (rejected -> 429, not 401)
4. Best-effort update of ``last_used_at`` (failure is logged only)
"""

from __future__ import annotations

import base64
import hashlib
import logging
import secrets
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Header, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from prompt_request.adapters.rate_limit.base import AbstractRateLimiter
from prompt_request.core.dependencies import get_container
from prompt_request.core.errors import AuthenticationAppError, DatabaseAppError
from prompt_request.core.logging import hash_for_log
from prompt_request.core.rate_limit import check_rate_limit
from prompt_request.db.repositories.accounts import AccountRepository

logger = logging.getLogger(__name__)

API_KEY_PREFIX = "prq_"
_BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class AuthContext:
    account_id: int


def generate_api_key() -> str:
    """Mint a new key: ``prq_`` + URL-safe base64 of 32 random bytes."""
    encoded = base64.urlsafe_b64encode(secrets.token_bytes(32)).rstrip(b"=").decode()
    return f"{API_KEY_PREFIX}{encoded}"


def hash_api_key(api_key: str, pepper: str | None = None) -> str:
    """Peppered one-way digest of an API key (lowercase hex).

    Examples:
        >>> len(hash_api_key("prq_abc"))
        64
        >>> hash_api_key("k", "p") == hash_api_key("pk")
        True
    """
    digest = hashlib.sha256()
    if pepper:
        digest.update(pepper.encode())
    digest.update(api_key.encode())
    return digest.hexdigest()


def _unauthorized(reason: str) -> AuthenticationAppError:
    return AuthenticationAppError(
        code="unauthorized",
        message="Invalid or missing API key",
        details={"hint": "Send Authorization: Bearer <api_key>"} if reason == "missing" else None,
    )


def extract_bearer_token(authorization: str | None) -> str:
    """Return the key from an ``Authorization: Bearer <key>`` header value.

    Raises:
        AuthenticationAppError: If the header is missing, uses another
            scheme, or carries a blank key.
    """
    if not authorization:
        raise _unauthorized("missing")
    if not authorization.startswith(_BEARER_PREFIX):
        raise _unauthorized("malformed")
    key = authorization[len(_BEARER_PREFIX):]
    if not key.strip():
        raise _unauthorized("malformed")
    return key


class AuthGate:
    """Turns a bearer credential into an account identity."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        limiter: AbstractRateLimiter,
        api_key_pepper: str | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.limiter = limiter
        self.api_key_pepper = api_key_pepper

    async def _lookup(self, digest: str) -> int | None:
        try:
            async with self.session_factory() as session:
                return await AccountRepository(session).get_id_by_hash(digest)
        except SQLAlchemyError as exc:
            logger.error("auth.lookup_failed", extra={"error_msg": str(exc)})
            raise DatabaseAppError(
                code="database",
                message="metadata store authenticate failed",
                details={"operation": "authenticate"},
            ) from exc

    async def _touch(self, account_id: int) -> None:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    await AccountRepository(session).touch_last_used(account_id)
        except SQLAlchemyError as exc:
            logger.warning(
                "auth.touch_failed",
                extra={"account_id": account_id, "error_msg": str(exc)},
            )

    async def authenticate(self, authorization: str | None) -> AuthContext:
        """Authenticate and rate-limit one call.

        Raises:
            AuthenticationAppError: Missing, malformed or unknown credential.
            RateLimitedAppError: The account already made a call this window.
            DatabaseAppError: The account lookup itself failed.
        """
        try:
            api_key = extract_bearer_token(authorization)
        except AuthenticationAppError:
            logger.warning(
                "auth.missing_key" if not authorization else "auth.malformed_header",
                extra={"authorization_present": bool(authorization)},
            )
            raise

        account_id = await self._lookup(hash_api_key(api_key, self.api_key_pepper))
        if account_id is None:
            logger.warning("auth.invalid_key", extra={"api_key_hash": hash_for_log(api_key)})
            raise _unauthorized("unknown")

        check_rate_limit(self.limiter, str(account_id), key_type="account")
        await self._touch(account_id)

        logger.debug("auth.success", extra={"account_id": account_id})
        return AuthContext(account_id=account_id)


async def require_account(
    request: Request,
    authorization: Annotated[str | None, Header()] = None,
) -> AuthContext:
    """FastAPI dependency for bearer authentication.

    Usage:
        @router.get("/protected")
        async def protected(auth: Annotated[AuthContext, Depends(require_account)]):
            ...
    """
    return await get_container(request).auth_gate.authenticate(authorization)


CurrentAccount = Annotated[AuthContext, Depends(require_account)]

"""Account creation: mints a one-time API key and stores only its digest."""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from prompt_request.core.auth import generate_api_key, hash_api_key
from prompt_request.core.errors import DatabaseAppError
from prompt_request.core.logging import hash_for_log
from prompt_request.db.repositories.accounts import AccountRepository
from prompt_request.schemas.accounts import CreateAccountResponse

logger = logging.getLogger(__name__)


class AccountService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        api_key_pepper: str | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.api_key_pepper = api_key_pepper

    async def create_account(self) -> CreateAccountResponse:
        """Create an account and return its API key.

        The plaintext key exists only in this response; a lost key cannot be
        recovered.

        Raises:
            DatabaseAppError: If the account row cannot be written.
        """
        api_key = generate_api_key()
        digest = hash_api_key(api_key, self.api_key_pepper)

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    account = await AccountRepository(session).create(digest)
                    account_id = account.id
        except SQLAlchemyError as exc:
            logger.error(
                "account.create_failed",
                extra={"error_type": type(exc).__name__, "error_msg": str(exc)},
            )
            raise DatabaseAppError(
                code="database",
                message="metadata store create_account failed",
                details={"operation": "create_account"},
            ) from exc

        logger.info(
            "account.created",
            extra={"account_id": account_id, "api_key_hash": hash_for_log(api_key)},
        )
        return CreateAccountResponse(api_key=api_key)

from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from prompt_request.db.models import Account, utcnow


class AccountRepository:
    """Account rows, looked up only by API key digest."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, api_key_hash: str) -> Account:
        account = Account(api_key_hash=api_key_hash, created_at=utcnow())
        self.session.add(account)
        await self.session.flush()
        return account

    async def get_id_by_hash(self, api_key_hash: str) -> Optional[int]:
        result = await self.session.execute(
            select(Account.id).where(Account.api_key_hash == api_key_hash)
        )
        return result.scalar_one_or_none()

    async def touch_last_used(self, account_id: int) -> None:
        await self.session.execute(
            update(Account).where(Account.id == account_id).values(last_used_at=utcnow())
        )

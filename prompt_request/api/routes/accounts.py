from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status

from prompt_request.core.dependencies import get_container
from prompt_request.core.rate_limit import enforce_account_create_limit
from prompt_request.schemas.accounts import CreateAccountResponse

router = APIRouter(tags=["Accounts"])


@router.post(
    "/accounts",
    status_code=status.HTTP_201_CREATED,
    response_model=CreateAccountResponse,
    dependencies=[Depends(enforce_account_create_limit)],
)
async def create_account(request: Request) -> CreateAccountResponse:
    """Create an anonymous account.

    The API key in the response is shown exactly once; only its digest is
    stored. Limited to one account per client IP per window (an hour by
    default).
    """
    return await get_container(request).accounts.create_account()

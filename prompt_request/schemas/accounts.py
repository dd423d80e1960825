"""Pydantic schemas for account creation."""

from pydantic import BaseModel, Field


class CreateAccountResponse(BaseModel):
    api_key: str = Field(
        ...,
        description="Bearer credential for the new account. Shown once; it cannot be recovered.",
    )

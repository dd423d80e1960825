from prompt_request.db.repositories.accounts import AccountRepository
from prompt_request.db.repositories.requests import RequestRepository

__all__ = [
    "AccountRepository",
    "RequestRepository",
]

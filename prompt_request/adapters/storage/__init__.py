"""Object store adapter layer - abstracts over blob backends."""

from prompt_request.adapters.storage.base import AbstractObjectStore
from prompt_request.adapters.storage.factory import create_object_store
from prompt_request.adapters.storage.in_memory import InMemoryObjectStore
from prompt_request.adapters.storage.s3_client import S3ObjectStore

__all__ = [
    "AbstractObjectStore",
    "InMemoryObjectStore",
    "S3ObjectStore",
    "create_object_store",
]

"""Factory pattern for creating object store instances."""

from prompt_request.adapters.storage.base import AbstractObjectStore
from prompt_request.adapters.storage.in_memory import InMemoryObjectStore
from prompt_request.adapters.storage.s3_client import S3ObjectStore
from prompt_request.core.config import StorageSettings, settings
from prompt_request.core.errors import ValidationAppError


def create_object_store(storage: StorageSettings | None = None) -> AbstractObjectStore:
    """Factory function to instantiate the configured blob backend.

    Reads configuration from prompt_request.core.config.settings unless an
    explicit StorageSettings is given.

    Returns:
        AbstractObjectStore: Configured object store instance.

    Raises:
        ValidationAppError: If the backend name is unknown.
    """
    cfg = storage or settings.storage
    backend = cfg.backend.lower()

    if backend == "s3":
        return S3ObjectStore.from_settings(cfg)

    # Process-local only: blobs vanish on restart
    if backend == "memory":
        return InMemoryObjectStore()

    raise ValidationAppError(
        code="storage_unknown_backend",
        message=f"Unknown storage backend: '{backend}'. Supported backends: s3, memory",
    )

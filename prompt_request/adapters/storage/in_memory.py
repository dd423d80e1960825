"""Dict-backed object store for tests and local development."""

from __future__ import annotations

import threading

from prompt_request.adapters.storage.base import AbstractObjectStore
from prompt_request.core.errors import StorageAppError


class InMemoryObjectStore(AbstractObjectStore):
    """Keeps blobs in a process-local dict.

    Attributes:
        objects: Mapping of key -> (bytes, content type). Exposed for assertions.
    """

    def __init__(self) -> None:
        self.objects: dict[str, tuple[bytes, str]] = {}
        self._lock = threading.Lock()

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        with self._lock:
            self.objects[key] = (bytes(data), content_type)

    async def get(self, key: str) -> bytes:
        with self._lock:
            entry = self.objects.get(key)
        if entry is None:
            raise StorageAppError(
                code="storage",
                message="object not found",
                details={"object_key": key},
            )
        return entry[0]

    async def delete(self, key: str) -> None:
        with self._lock:
            self.objects.pop(key, None)

    def __contains__(self, key: object) -> bool:
        return key in self.objects

    def __len__(self) -> int:
        return len(self.objects)

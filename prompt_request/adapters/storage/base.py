from abc import ABC, abstractmethod


class AbstractObjectStore(ABC):
	"""Interface for blob backends holding revision payloads.

	Implementations map every transport/protocol failure to
	``StorageAppError`` and never retry inside put/get/delete.
	"""

	@abstractmethod
	async def put(self, key: str, data: bytes, content_type: str) -> None:
		"""Store ``data`` under ``key``, overwriting any previous object.

		Raises:
			StorageAppError: If the backend rejects or fails the write.
		"""
		...

	@abstractmethod
	async def get(self, key: str) -> bytes:
		"""Return the bytes stored under ``key``.

		Raises:
			StorageAppError: If the object is missing or the read fails.
		"""
		...

	@abstractmethod
	async def delete(self, key: str) -> None:
		"""Remove ``key``. Deleting a missing key is not an error.

		Raises:
			StorageAppError: If the backend fails the delete.
		"""
		...

	async def ensure_bucket(self) -> None:
		"""Provision the backing container if the backend has one."""
		return None

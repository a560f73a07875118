"""
File Storage Service
Abstraction for object-store operations, supporting Local and S3 (MinIO).

FileService is the synchronous facade; ObjectStore wraps it for the asyncio
pipelines so every storage call runs off the event loop with a timeout.
"""

import asyncio
import io
import logging
from typing import Any, BinaryIO, Callable, Dict, Optional, TypeVar

from fabquote.backoffice.storage.local_storage import LocalStorageProvider
from fabquote.backoffice.storage.s3_storage import S3StorageProvider
from fabquote.backoffice.storage.storage_interface import StorageProvider
from fabquote.config import get_settings
from fabquote.config.settings import Settings
from fabquote.exceptions.handlers import ConfigurationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def get_storage_provider(settings: Optional[Settings] = None) -> StorageProvider:
    """Factory function to get the configured StorageProvider."""
    settings = settings or get_settings()
    if settings.STORAGE_TYPE == "local":
        return LocalStorageProvider(settings)
    elif settings.STORAGE_TYPE == "s3":
        return S3StorageProvider(settings)
    else:
        raise ConfigurationError(
            f"Unsupported STORAGE_TYPE: {settings.STORAGE_TYPE}", config_key="STORAGE_TYPE"
        )


class ObjectStoreError(RuntimeError):
    """An object-store call failed or exceeded its time budget."""

    def __init__(self, message: str, *, key: Optional[str] = None, missing: bool = False):
        super().__init__(message)
        self.key = key
        self.missing = missing


class FileService:
    def __init__(self, storage_provider: Optional[StorageProvider] = None):
        self.storage_provider = storage_provider or get_storage_provider()

    def upload_file(
        self,
        file_obj: BinaryIO,
        file_path: str,
        metadata: Optional[Dict[str, str]] = None,
        content_type: Optional[str] = None,
    ) -> str:
        """Uploads a file and returns its stored key."""
        return self.storage_provider.upload_file(file_path, file_obj, metadata, content_type)

    def put_bytes(self, file_path: str, content: bytes, content_type: Optional[str] = None) -> str:
        return self.upload_file(io.BytesIO(content), file_path, content_type=content_type)

    def get_bytes(self, file_path: str) -> bytes:
        buf = io.BytesIO()
        self.storage_provider.download_file(file_path, buf)
        return buf.getvalue()

    def download_file(self, file_path: str, output_file_obj: BinaryIO) -> None:
        self.storage_provider.download_file(file_path, output_file_obj)

    def copy_file(self, source_path: str, dest_path: str) -> str:
        return self.storage_provider.copy_file(source_path, dest_path)

    def delete_file(self, file_path: str) -> None:
        self.storage_provider.delete_file(file_path)

    def file_exists(self, file_path: str) -> bool:
        return self.storage_provider.file_exists(file_path)

    def get_presigned_url(
        self, file_path: str, expiration: int = 3600, http_method: str = "GET"
    ) -> str:
        return self.storage_provider.get_presigned_url(file_path, expiration, http_method)


class ObjectStore:
    """Awaitable object store with an explicit per-call timeout."""

    def __init__(
        self,
        file_service: Optional[FileService] = None,
        *,
        timeout_s: Optional[float] = None,
    ):
        self.file_service = file_service or FileService()
        self.timeout_s = timeout_s or get_settings().OBJECT_STORE_TIMEOUT_SECONDS

    async def _call(self, op: str, key: str, fn: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args), self.timeout_s)
        except asyncio.TimeoutError as exc:
            raise ObjectStoreError(
                f"Object store {op} timed out after {self.timeout_s}s: {key}", key=key
            ) from exc
        except FileNotFoundError as exc:
            raise ObjectStoreError(f"Object not found: {key}", key=key, missing=True) from exc
        except Exception as exc:
            logger.warning("Object store %s failed for %s: %s", op, key, exc)
            raise ObjectStoreError(f"Object store {op} failed for {key}: {exc}", key=key) from exc

    async def get(self, key: str) -> bytes:
        return await self._call("get", key, self.file_service.get_bytes, key)

    async def put(self, key: str, content: bytes, content_type: Optional[str] = None) -> str:
        return await self._call("put", key, self.file_service.put_bytes, key, content, content_type)

    async def copy(self, source_key: str, dest_key: str) -> str:
        return await self._call("copy", source_key, self.file_service.copy_file, source_key, dest_key)

    async def delete(self, key: str) -> None:
        await self._call("delete", key, self.file_service.delete_file, key)

    async def exists(self, key: str) -> bool:
        return await self._call("exists", key, self.file_service.file_exists, key)

    async def presigned_url(self, key: str, expiration: int = 3600) -> str:
        return await self._call(
            "presign", key, self.file_service.get_presigned_url, key, expiration
        )

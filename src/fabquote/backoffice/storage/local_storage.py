"""
Local Storage Provider
Implements StorageProvider for local filesystem storage.
"""

import os
import shutil
from pathlib import Path
from typing import BinaryIO, Dict, Optional

from fabquote.backoffice.storage.storage_interface import StorageProvider
from fabquote.config.settings import Settings


class LocalStorageProvider(StorageProvider):
    def __init__(self, settings: Settings):
        self.base_path = Path(settings.LOCAL_STORAGE_PATH)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.public_url_prefix = settings.LOCAL_STORAGE_PUBLIC_URL_PREFIX.rstrip("/")

    def _full_path(self, file_path: str) -> Path:
        """Returns the absolute path for a key, refusing traversal outside base_path."""
        relative = Path(str(file_path).lstrip("/"))
        full = (self.base_path / relative).resolve()
        if not full.is_relative_to(self.base_path.resolve()):
            raise ValueError(f"Storage key escapes storage root: {file_path}")
        return full

    def upload_file(
        self,
        file_path: str,
        file_obj: BinaryIO,
        metadata: Optional[Dict[str, str]] = None,
        content_type: Optional[str] = None,
    ) -> str:
        full_path = self._full_path(file_path)
        full_path.parent.mkdir(parents=True, exist_ok=True)
        with open(full_path, "wb") as f:
            shutil.copyfileobj(file_obj, f)
        return file_path

    def download_file(self, file_path: str, output_file_obj: BinaryIO) -> None:
        full_path = self._full_path(file_path)
        if not full_path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")
        with open(full_path, "rb") as f:
            shutil.copyfileobj(f, output_file_obj)

    def copy_file(self, source_path: str, dest_path: str) -> str:
        source = self._full_path(source_path)
        if not source.exists():
            raise FileNotFoundError(f"File not found: {source_path}")
        dest = self._full_path(dest_path)
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, dest)
        return dest_path

    def delete_file(self, file_path: str) -> None:
        full_path = self._full_path(file_path)
        if full_path.exists():
            os.remove(full_path)

    def file_exists(self, file_path: str) -> bool:
        return self._full_path(file_path).exists()

    def get_presigned_url(
        self, file_path: str, expiration: int = 3600, http_method: str = "GET"
    ) -> str:
        if self.public_url_prefix:
            return f"{self.public_url_prefix}/{file_path}"
        raise NotImplementedError(
            "Public URL prefix not configured for local storage, cannot generate presigned URL."
        )

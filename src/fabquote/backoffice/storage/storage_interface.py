"""
Storage Service Interface
Abstract base class for object-store providers.
"""

from abc import ABC, abstractmethod
from typing import BinaryIO, Dict, Optional


class StorageProvider(ABC):
    """Abstract base class for file storage providers."""

    @abstractmethod
    def upload_file(
        self,
        file_path: str,
        file_obj: BinaryIO,
        metadata: Optional[Dict[str, str]] = None,
        content_type: Optional[str] = None,
    ) -> str:
        """
        Uploads a file.
        Args:
            file_path: The desired key for the file in storage.
            file_obj: A file-like object to upload.
            metadata: Optional metadata to associate with the object.
            content_type: Optional MIME type stored with the object.
        Returns:
            The stored key.
        """

    @abstractmethod
    def download_file(self, file_path: str, output_file_obj: BinaryIO) -> None:
        """
        Downloads a file into a writable file-like object.
        Raises FileNotFoundError when the key does not exist.
        """

    @abstractmethod
    def copy_file(self, source_path: str, dest_path: str) -> str:
        """
        Server-side copy of one object to a new key.
        Returns:
            The destination key.
        """

    @abstractmethod
    def delete_file(self, file_path: str) -> None:
        """Deletes a file; deleting a missing key is not an error."""

    @abstractmethod
    def file_exists(self, file_path: str) -> bool:
        """Checks if a file exists in storage."""

    @abstractmethod
    def get_presigned_url(
        self, file_path: str, expiration: int = 3600, http_method: str = "GET"
    ) -> str:
        """
        Generates a presigned URL for direct access to a file.
        Args:
            file_path: The key of the file in storage.
            expiration: URL expiration time in seconds.
            http_method: HTTP method (e.g., 'GET', 'PUT').
        """

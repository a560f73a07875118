"""
S3 Storage Provider
Implements StorageProvider for AWS S3 compatible storage (e.g., MinIO).
"""

import logging
from typing import BinaryIO, Dict, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from fabquote.backoffice.storage.storage_interface import StorageProvider
from fabquote.config.settings import Settings

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


class S3StorageProvider(StorageProvider):
    def __init__(self, settings: Settings):
        self.bucket_name = settings.S3_BUCKET_NAME
        self._endpoint_url = settings.S3_ENDPOINT_URL or None
        self._public_endpoint_url = (
            settings.S3_PUBLIC_ENDPOINT_URL.strip() or self._endpoint_url
        )
        client_config = Config(
            connect_timeout=settings.S3_CONNECT_TIMEOUT_SECONDS,
            read_timeout=settings.S3_READ_TIMEOUT_SECONDS,
            retries={"max_attempts": 3, "mode": "standard"},
        )

        self.s3_client = self._build_client(settings, self._endpoint_url, client_config)
        self._presign_client = (
            self.s3_client
            if self._public_endpoint_url == self._endpoint_url
            else self._build_client(settings, self._public_endpoint_url, client_config)
        )

    @staticmethod
    def _build_client(settings: Settings, endpoint_url: Optional[str], config: Config):
        return boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=settings.S3_ACCESS_KEY_ID,
            aws_secret_access_key=settings.S3_SECRET_ACCESS_KEY,
            region_name=settings.S3_REGION_NAME,
            config=config,
        )

    def upload_file(
        self,
        file_path: str,
        file_obj: BinaryIO,
        metadata: Optional[Dict[str, str]] = None,
        content_type: Optional[str] = None,
    ) -> str:
        extra_args: Dict[str, object] = {}
        if metadata:
            extra_args["Metadata"] = metadata
        if content_type:
            extra_args["ContentType"] = content_type
        try:
            self.s3_client.upload_fileobj(
                file_obj, self.bucket_name, file_path, ExtraArgs=extra_args
            )
            logger.info(f"File {file_path} uploaded to S3 bucket {self.bucket_name}")
            return file_path
        except ClientError as e:
            logger.error(f"Failed to upload {file_path} to S3: {e}")
            raise

    def download_file(self, file_path: str, output_file_obj: BinaryIO) -> None:
        try:
            self.s3_client.download_fileobj(self.bucket_name, file_path, output_file_obj)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _NOT_FOUND_CODES:
                raise FileNotFoundError(f"File not found: {file_path}") from e
            logger.error(f"Failed to download {file_path} from S3: {e}")
            raise

    def copy_file(self, source_path: str, dest_path: str) -> str:
        try:
            self.s3_client.copy_object(
                Bucket=self.bucket_name,
                Key=dest_path,
                CopySource={"Bucket": self.bucket_name, "Key": source_path},
            )
            logger.info(f"Copied {source_path} -> {dest_path} in bucket {self.bucket_name}")
            return dest_path
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _NOT_FOUND_CODES:
                raise FileNotFoundError(f"File not found: {source_path}") from e
            logger.error(f"Failed to copy {source_path} to {dest_path}: {e}")
            raise

    def delete_file(self, file_path: str) -> None:
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=file_path)
            logger.info(f"File {file_path} deleted from S3 bucket {self.bucket_name}")
        except ClientError as e:
            logger.error(f"Failed to delete {file_path} from S3: {e}")
            raise

    def file_exists(self, file_path: str) -> bool:
        try:
            self.s3_client.head_object(Bucket=self.bucket_name, Key=file_path)
            return True
        except ClientError as e:
            if e.response["Error"]["Code"] in _NOT_FOUND_CODES:
                return False
            logger.error(f"Error checking existence of {file_path} in S3: {e}")
            raise

    def get_presigned_url(
        self, file_path: str, expiration: int = 3600, http_method: str = "GET"
    ) -> str:
        try:
            return self._presign_client.generate_presigned_url(
                ClientMethod="get_object" if http_method == "GET" else "put_object",
                Params={"Bucket": self.bucket_name, "Key": file_path},
                ExpiresIn=expiration,
                HttpMethod=http_method,
            )
        except ClientError as e:
            logger.error(f"Failed to generate presigned URL for {file_path}: {e}")
            raise

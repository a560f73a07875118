from __future__ import annotations

import asyncio
import io
import time
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from fabquote.backoffice.models.conversion import EntityKind
from fabquote.backoffice.services import storage_keys
from fabquote.backoffice.services.file_service import (
    FileService,
    ObjectStore,
    ObjectStoreError,
    get_storage_provider,
)
from fabquote.backoffice.storage.local_storage import LocalStorageProvider
from fabquote.backoffice.storage.s3_storage import S3StorageProvider
from fabquote.config.settings import Settings
from fabquote.exceptions.handlers import ConfigurationError


def _client_error(code: str, op: str = "GetObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, op)


def test_storage_key_layout():
    assert storage_keys.source_prefix(EntityKind.PART, "p1") == "parts/p1/source"
    assert storage_keys.source_prefix(EntityKind.QUOTE_PART, "q1", 2) == "quote-parts/q1/source/v2"
    assert storage_keys.mesh_prefix(EntityKind.PART, "p1") == "parts/p1/mesh"
    assert storage_keys.thumbnail_prefix(EntityKind.QUOTE_PART, "q1") == "quote-parts/q1/thumbnails"


@pytest.mark.parametrize(
    "ref,expected",
    [
        ("parts/p1/mesh/a.glb", "parts/p1/mesh/a.glb"),
        ("/quote-parts/q1/source/a.step", "quote-parts/q1/source/a.step"),
        ("https://s3.test/fabquote/parts/p1/mesh/a%20b.glb?X-Amz-Expires=60", "parts/p1/mesh/a b.glb"),
        ("https://s3.test/fabquote/quote-parts/q1/thumbnails/t.png", "quote-parts/q1/thumbnails/t.png"),
        ("legacy/file.step", "legacy/file.step"),
        (None, None),
    ],
)
def test_storage_key_from_reference(ref, expected):
    assert storage_keys.storage_key(ref) == expected


def test_local_storage_round_trip_and_copy(tmp_path):
    provider = LocalStorageProvider(Settings(LOCAL_STORAGE_PATH=str(tmp_path)))
    service = FileService(provider)

    service.put_bytes("parts/p1/source/a.step", b"data")
    assert service.copy_file("parts/p1/source/a.step", "parts/p2/source/a.step") == "parts/p2/source/a.step"
    assert service.get_bytes("parts/p2/source/a.step") == b"data"

    service.delete_file("parts/p1/source/a.step")
    service.delete_file("parts/p1/source/a.step")
    assert not service.file_exists("parts/p1/source/a.step")

    with pytest.raises(FileNotFoundError):
        service.get_bytes("parts/p1/source/a.step")
    with pytest.raises(NotImplementedError):
        service.get_presigned_url("parts/p2/source/a.step")


def test_local_storage_refuses_traversal(tmp_path):
    provider = LocalStorageProvider(Settings(LOCAL_STORAGE_PATH=str(tmp_path / "root")))

    with pytest.raises(ValueError):
        provider.upload_file("../escape.txt", io.BytesIO(b"x"))


def test_unknown_storage_type():
    with pytest.raises(ConfigurationError):
        get_storage_provider(Settings(STORAGE_TYPE="ftp"))


def test_object_store_maps_missing_objects(object_store):
    with pytest.raises(ObjectStoreError) as excinfo:
        asyncio.run(object_store.get("parts/p1/source/none.step"))

    assert excinfo.value.missing is True
    assert excinfo.value.key == "parts/p1/source/none.step"


def test_object_store_enforces_timeout():
    file_service = MagicMock()
    file_service.get_bytes.side_effect = lambda key: time.sleep(0.5)
    store = ObjectStore(file_service, timeout_s=0.05)

    with pytest.raises(ObjectStoreError, match="timed out"):
        asyncio.run(store.get("parts/p1/source/slow.step"))


def test_object_store_wraps_provider_errors():
    file_service = MagicMock()
    file_service.copy_file.side_effect = PermissionError("denied")
    store = ObjectStore(file_service, timeout_s=1)

    with pytest.raises(ObjectStoreError) as excinfo:
        asyncio.run(store.copy("a/b.step", "c/b.step"))
    assert excinfo.value.missing is False


def test_s3_provider_maps_not_found_and_presigns_with_public_endpoint():
    settings = Settings(
        STORAGE_TYPE="s3",
        S3_ENDPOINT_URL="http://minio:9000",
        S3_PUBLIC_ENDPOINT_URL="https://files.example.com",
    )
    internal, public = MagicMock(), MagicMock()
    with patch("fabquote.backoffice.storage.s3_storage.boto3.client", side_effect=[internal, public]):
        provider = get_storage_provider(settings)

    assert isinstance(provider, S3StorageProvider)

    internal.download_fileobj.side_effect = _client_error("NoSuchKey")
    with pytest.raises(FileNotFoundError):
        provider.download_file("parts/p1/a.step", io.BytesIO())

    internal.copy_object.side_effect = _client_error("404", "CopyObject")
    with pytest.raises(FileNotFoundError):
        provider.copy_file("parts/p1/a.step", "parts/p2/a.step")

    internal.head_object.side_effect = _client_error("404", "HeadObject")
    assert provider.file_exists("parts/p1/a.step") is False

    public.generate_presigned_url.return_value = "https://files.example.com/fabquote/parts/p1/a.glb?sig"
    assert provider.get_presigned_url("parts/p1/a.glb", 600).startswith("https://files.example.com/")
    internal.generate_presigned_url.assert_not_called()

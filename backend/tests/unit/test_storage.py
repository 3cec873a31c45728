"""
Unit Tests — File Storage Backends
══════════════════════════════════
  ✅ validate_key rejects traversal / absolute / empty keys
  ✅ LocalStorage put → get → delete on a temporary directory
  ✅ S3Storage with a mocked aioboto3 session (no AWS calls)
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from botocore.exceptions import ClientError

from readmate.core.errors import StorageError
from readmate.storage.base import validate_key
from readmate.storage.local import LocalStorage
from readmate.storage.s3 import S3Storage


def _client_error(code: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, "Operation")


def _s3_with(client: MagicMock) -> S3Storage:
    context = MagicMock()
    context.__aenter__.return_value = client
    context.__aexit__.return_value = False
    session = MagicMock()
    session.client.return_value = context
    return S3Storage(bucket="test-bucket", region="us-east-1", session=session)


@pytest.mark.unit
class TestValidateKey:

    @pytest.mark.parametrize("key", ["1/abc_book.pdf", "42/deadbeef_notes.txt"])
    def test_accepts_server_built_keys(self, key):
        assert validate_key(key) == key

    @pytest.mark.parametrize("key", ["", "/etc/passwd", "../secret", "1/../../x", "1//x", "./x"])
    def test_rejects_unsafe_keys(self, key):
        with pytest.raises(ValueError):
            validate_key(key)


@pytest.mark.unit
class TestLocalStorage:

    @pytest.mark.asyncio
    async def test_put_get_delete(self, tmp_path):
        storage = LocalStorage(tmp_path)

        url = await storage.put("1/abc_book.txt", b"hello", "text/plain")

        assert url.startswith("file://")
        assert (tmp_path / "1" / "abc_book.txt").read_bytes() == b"hello"
        assert await storage.get("1/abc_book.txt") == b"hello"

        await storage.delete("1/abc_book.txt")
        assert await storage.get("1/abc_book.txt") is None

    @pytest.mark.asyncio
    async def test_missing_key_and_double_delete(self, tmp_path):
        storage = LocalStorage(tmp_path)

        assert await storage.get("1/nothing.txt") is None
        await storage.delete("1/nothing.txt")

    @pytest.mark.asyncio
    async def test_write_failure_is_storage_error(self, tmp_path):
        blocker = tmp_path / "1"
        blocker.write_text("a file where a directory should be")
        storage = LocalStorage(tmp_path)

        with pytest.raises(StorageError):
            await storage.put("1/abc_book.txt", b"x", "text/plain")


@pytest.mark.unit
class TestS3Storage:

    @pytest.mark.asyncio
    async def test_put_returns_object_url(self):
        client = MagicMock()
        client.put_object = AsyncMock()
        storage = _s3_with(client)

        url = await storage.put("1/abc_book.pdf", b"%PDF", "application/pdf")

        assert url == "https://test-bucket.s3.us-east-1.amazonaws.com/1/abc_book.pdf"
        client.put_object.assert_awaited_once_with(
            Bucket="test-bucket", Key="1/abc_book.pdf", Body=b"%PDF", ContentType="application/pdf",
        )

    @pytest.mark.asyncio
    async def test_put_failure_is_storage_error(self):
        client = MagicMock()
        client.put_object = AsyncMock(side_effect=_client_error("AccessDenied"))

        with pytest.raises(StorageError):
            await _s3_with(client).put("1/abc_book.pdf", b"%PDF", "application/pdf")

    @pytest.mark.asyncio
    async def test_get_reads_body(self):
        body = MagicMock()
        body.read = AsyncMock(return_value=b"content")
        client = MagicMock()
        client.get_object = AsyncMock(return_value={"Body": body})

        assert await _s3_with(client).get("1/abc_book.txt") == b"content"

    @pytest.mark.asyncio
    async def test_get_missing_key_returns_none(self):
        client = MagicMock()
        client.get_object = AsyncMock(side_effect=_client_error("NoSuchKey"))

        assert await _s3_with(client).get("1/abc_book.txt") is None

    @pytest.mark.asyncio
    async def test_get_other_error_raises(self):
        client = MagicMock()
        client.get_object = AsyncMock(side_effect=_client_error("InternalError"))

        with pytest.raises(StorageError):
            await _s3_with(client).get("1/abc_book.txt")

    @pytest.mark.asyncio
    async def test_delete(self):
        client = MagicMock()
        client.delete_object = AsyncMock()

        await _s3_with(client).delete("1/abc_book.txt")

        client.delete_object.assert_awaited_once_with(Bucket="test-bucket", Key="1/abc_book.txt")

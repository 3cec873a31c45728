"""
S3 Storage Backend

Objects live under:
    s3://<BUCKET>/<user_id>/<random>_<filename>

The key is constructed server-side by the ingestion service, never taken
from the client. Credentials come from the environment (IAM role in
production, AWS_ACCESS_KEY_ID / AWS_SECRET_ACCESS_KEY locally).
"""

from __future__ import annotations

import logging

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from readmate.core.errors import StorageError
from readmate.storage.base import StorageBackend, validate_key

logger = logging.getLogger(__name__)

_MISSING_CODES = ("NoSuchKey", "404", "NotFound")


class S3Storage(StorageBackend):
    """Async S3 operations against a single bucket."""

    def __init__(self, bucket: str, region: str, session: aioboto3.Session | None = None) -> None:
        self._bucket  = bucket
        self._region  = region
        self._session = session or aioboto3.Session()

    def _client(self):
        """Return a scoped async S3 client context manager."""
        return self._session.client("s3", region_name=self._region)

    def url_for(self, key: str) -> str:
        return f"https://{self._bucket}.s3.{self._region}.amazonaws.com/{key}"

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        validate_key(key)
        try:
            async with self._client() as s3:
                await s3.put_object(
                    Bucket=self._bucket,
                    Key=key,
                    Body=data,
                    ContentType=content_type,
                )
        except (ClientError, BotoCoreError) as exc:
            logger.error("S3 upload failed | key=%s error=%s", key, exc)
            raise StorageError(f"Failed to upload {key}: {exc}") from exc

        logger.info("S3 upload ok | bucket=%s key=%s size=%d", self._bucket, key, len(data))
        return self.url_for(key)

    async def get(self, key: str) -> bytes | None:
        validate_key(key)
        async with self._client() as s3:
            try:
                resp = await s3.get_object(Bucket=self._bucket, Key=key)
                return await resp["Body"].read()
            except ClientError as exc:
                code = exc.response.get("Error", {}).get("Code")
                if code in _MISSING_CODES:
                    return None
                raise StorageError(f"Failed to download {key}: {exc}") from exc

    async def delete(self, key: str) -> None:
        validate_key(key)
        try:
            async with self._client() as s3:
                await s3.delete_object(Bucket=self._bucket, Key=key)
        except ClientError as exc:
            raise StorageError(f"Failed to delete {key}: {exc}") from exc
        logger.info("S3 delete | bucket=%s key=%s", self._bucket, key)

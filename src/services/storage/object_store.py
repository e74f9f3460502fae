"""
Object storage for session audio (Cloudflare R2 through the S3 API).

The boto3 client is built lazily on first use and memoized for the life of
the process, so the service can start without storage credentials and
report the missing variable only when audio is actually touched. boto3 is
blocking; every call is pushed to a worker thread with ``asyncio.to_thread``.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from src.core.config import Settings, get_settings
from src.core.exceptions import AudioNotFoundError, MissingCredentialsError, StorageError

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}


class BaseObjectStore(ABC):
    """Interface for binary blob storage keyed by string."""

    @abstractmethod
    async def put(self, key: str, data: bytes, content_type: str) -> str:
        """Store *data* under *key* and return the key."""

    @abstractmethod
    async def get(self, key: str) -> bytes:
        """Return the bytes at *key*.

        Raises:
            AudioNotFoundError: If nothing is stored under *key*.
        """

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove *key*. Deleting an absent key succeeds."""


class R2ObjectStore(BaseObjectStore):
    """S3-compatible store pointed at an R2 bucket.

    Args:
        settings: Optional Settings instance (defaults to get_settings()).
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._client: Any = None
        self._bucket: str | None = None

    def _require(self, value: str, name: str) -> str:
        if not value:
            raise MissingCredentialsError(name, "audio storage")
        return value

    def _get_client(self) -> tuple[Any, str]:
        """Return ``(client, bucket)``, constructing the client on first call."""
        if self._client is not None and self._bucket is not None:
            return self._client, self._bucket

        s = self._settings
        access_key = self._require(s.r2_access_key_id, "R2_ACCESS_KEY_ID")
        secret_key = self._require(s.r2_secret_access_key, "R2_SECRET_ACCESS_KEY")
        bucket = self._require(s.r2_bucket_name, "R2_BUCKET_NAME")
        if s.r2_endpoint_url:
            endpoint = s.r2_endpoint_url
        else:
            account_id = self._require(s.r2_account_id, "R2_ACCOUNT_ID")
            endpoint = f"https://{account_id}.r2.cloudflarestorage.com"

        logger.info("Initializing object store client (endpoint=%s, bucket=%s)", endpoint, bucket)
        self._client = boto3.client(
            "s3",
            region_name="auto",
            endpoint_url=endpoint,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
        )
        self._bucket = bucket
        return self._client, self._bucket

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        client, bucket = self._get_client()
        try:
            await asyncio.to_thread(
                client.put_object,
                Bucket=bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to upload audio {key}: {exc}") from exc
        return key

    async def get(self, key: str) -> bytes:
        client, bucket = self._get_client()
        try:
            response = await asyncio.to_thread(client.get_object, Bucket=bucket, Key=key)
            body = response.get("Body")
            if body is None:
                raise AudioNotFoundError(key)
            return await asyncio.to_thread(body.read)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            if code in _NOT_FOUND_CODES:
                raise AudioNotFoundError(key) from exc
            raise StorageError(f"Failed to fetch audio {key}: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"Failed to fetch audio {key}: {exc}") from exc

    async def delete(self, key: str) -> None:
        client, bucket = self._get_client()
        try:
            await asyncio.to_thread(client.delete_object, Bucket=bucket, Key=key)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            if code in _NOT_FOUND_CODES:
                logger.debug("Audio %s already absent", key)
                return
            raise StorageError(f"Failed to delete audio {key}: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"Failed to delete audio {key}: {exc}") from exc


_default_store: BaseObjectStore | None = None


def get_object_store() -> BaseObjectStore:
    """Return the process-wide object store."""
    global _default_store
    if _default_store is None:
        _default_store = R2ObjectStore()
    return _default_store

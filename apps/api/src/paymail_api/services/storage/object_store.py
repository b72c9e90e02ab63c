"""Object store access for templates and brand assets."""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from typing import Any, Callable, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from paymail_api.core.settings import Settings, get_settings

_SCHEME_PREFIX = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)
_NOT_FOUND_CODES = {"NoSuchKey", "NoSuchBucket", "NotFound", "404"}


class ObjectStoreError(RuntimeError):
    """Raised when the object store cannot be reached or refuses the request."""


class ObjectNotFoundError(ObjectStoreError):
    """Raised when the requested object does not exist."""

    def __init__(self, container: str, path: str) -> None:
        super().__init__(f"Object not found: {container}/{path}")
        self.container = container
        self.path = path


@dataclass(frozen=True, slots=True)
class ContainerRef:
    """Bucket name plus an optional key prefix."""

    bucket: str
    prefix: str = ""

    def key_for(self, path: str) -> str:
        clean = path.lstrip("/")
        return f"{self.prefix}/{clean}" if self.prefix else clean

    def qualified(self, path: str) -> str:
        return f"{self.bucket}/{self.key_for(path)}"


def normalize_container(container: str) -> ContainerRef:
    """Accept ``bucket``, ``bucket/prefix`` or ``s3://``/``gs://`` forms of either."""

    if not container or not container.strip():
        raise ValueError("Object store container is empty")
    cleaned = _SCHEME_PREFIX.sub("", container.strip()).strip("/")
    if not cleaned:
        raise ValueError(f"Object store container '{container}' has no bucket name")
    bucket, _, prefix = cleaned.partition("/")
    return ContainerRef(bucket=bucket, prefix=prefix.strip("/"))


class ObjectStore(Protocol):
    async def download(self, container: str, path: str) -> bytes:
        """Return the object bytes or raise ``ObjectNotFoundError``."""


class S3ObjectStore:
    """boto3-backed store; works with S3 and S3-compatible endpoints."""

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        client_factory: Callable[[], Any] | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._client_factory = client_factory
        self._client: Any | None = None

    async def download(self, container: str, path: str) -> bytes:
        ref = normalize_container(container)
        key = ref.key_for(path)
        client = self._get_client()
        try:
            response = await asyncio.to_thread(client.get_object, Bucket=ref.bucket, Key=key)
            body = response["Body"]
            if isinstance(body, (bytes, bytearray)):
                return bytes(body)
            return await asyncio.to_thread(body.read)
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in _NOT_FOUND_CODES:
                raise ObjectNotFoundError(ref.bucket, key) from exc
            raise ObjectStoreError(f"Object store request failed ({code or 'unknown'}) for {ref.qualified(path)}") from exc
        except BotoCoreError as exc:
            raise ObjectStoreError(f"Object store request failed ({exc}) for {ref.qualified(path)}") from exc

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = self._build_client()
        return self._client

    def _build_client(self) -> Any:
        if self._client_factory is not None:
            return self._client_factory()
        config = Config(connect_timeout=5, read_timeout=10, retries={"max_attempts": 2})
        if self._settings.object_store_force_path_style:
            config = config.merge(Config(s3={"addressing_style": "path"}))
        return boto3.client(
            "s3",
            region_name=self._settings.object_store_region,
            endpoint_url=self._settings.object_store_endpoint_url or None,
            config=config,
        )


__all__ = [
    "ContainerRef",
    "ObjectNotFoundError",
    "ObjectStore",
    "ObjectStoreError",
    "S3ObjectStore",
    "normalize_container",
]

"""
Blob Store - binary objects addressed by id, retrieved through expiring URLs.
"""
import hashlib
import hmac
import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import parse_qs, quote, unquote, urlparse

import aiofiles

from storyframe.providers.exceptions import PersistenceFailed, ValidationFailed

logger = logging.getLogger(__name__)

BLOB_SCHEME = "blob://"


def is_blob_ref(value: str) -> bool:
    return isinstance(value, str) and value.startswith(BLOB_SCHEME)


def blob_id_from_ref(value: str) -> str:
    return value[len(BLOB_SCHEME):]


class BlobStore(ABC):
    """Abstract blob store: put bytes, get a time-limited retrieval URL."""

    @abstractmethod
    async def put(self, path: str, data: bytes) -> str:
        """Store bytes under a logical path and return the blob id."""

    @abstractmethod
    async def get_temp_url(self, blob_id: str) -> str:
        """Return a URL that can fetch the blob until it expires."""


class LocalBlobStore(BlobStore):
    """
    Filesystem blob store.

    Blob ids are the relative paths under root_dir. Temporary URLs carry an
    `expires` timestamp and an HMAC-SHA256 signature over "<blob_id>:<expires>".
    """

    def __init__(
        self,
        root_dir: Path,
        url_base: str,
        secret: str,
        ttl: int = 3600,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.root_dir = Path(root_dir)
        self.url_base = url_base.rstrip("/")
        self.secret = secret
        self.ttl = ttl
        self.clock = clock or time.time

    def _resolve(self, blob_id: str) -> Path:
        path = (self.root_dir / blob_id).resolve()
        root = self.root_dir.resolve()
        if root != path and root not in path.parents:
            raise ValidationFailed(f"非法的文件路径: {blob_id}")
        return path

    def _signature(self, blob_id: str, expires: int) -> str:
        message = f"{blob_id}:{expires}".encode("utf-8")
        return hmac.new(self.secret.encode("utf-8"), message, hashlib.sha256).hexdigest()

    async def put(self, path: str, data: bytes) -> str:
        blob_id = path.lstrip("/")
        target = self._resolve(blob_id)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(target, "wb") as f:
                await f.write(data)
        except OSError as e:
            logger.error(f"[BLOB] Write failed for {blob_id}: {e}")
            raise PersistenceFailed(f"文件上传失败: {e}") from e

        logger.debug(f"[BLOB] Stored {len(data)} bytes as {blob_id}")
        return blob_id

    async def read(self, blob_id: str) -> bytes:
        async with aiofiles.open(self._resolve(blob_id), "rb") as f:
            return await f.read()

    async def get_temp_url(self, blob_id: str) -> str:
        if not self._resolve(blob_id).exists():
            raise ValidationFailed(f"文件不存在: {blob_id}")

        expires = int(self.clock()) + self.ttl
        signature = self._signature(blob_id, expires)
        return f"{self.url_base}/{quote(blob_id)}?expires={expires}&signature={signature}"

    def verify_temp_url(self, url: str) -> bool:
        """True when the URL was issued by this store and has not expired."""
        parsed = urlparse(url)
        prefix = urlparse(self.url_base).path.rstrip("/") + "/"
        if not parsed.path.startswith(prefix):
            return False

        blob_id = unquote(parsed.path[len(prefix):])
        params = parse_qs(parsed.query)
        try:
            expires = int(params["expires"][0])
            signature = params["signature"][0]
        except (KeyError, IndexError, ValueError):
            return False

        if expires < self.clock():
            return False
        expected = self._signature(blob_id, expires)
        return hmac.compare_digest(expected, signature)

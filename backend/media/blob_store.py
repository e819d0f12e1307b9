"""
Blob Store — durable object storage for uploaded media.

BlobStore is the seam the normalizer and reclaimer talk to.
VercelBlobStore implements it against the Vercel Blob REST API; tests
substitute an in-memory store.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from functools import lru_cache

import httpx
import structlog
from tenacity import retry, stop_after_attempt, wait_exponential

from core.config import get_settings

logger = structlog.get_logger()

BLOB_API_VERSION = "7"


class BlobStoreError(RuntimeError):
    """The object store could not complete a put or delete."""


@dataclass(frozen=True)
class StoredBlob:
    url: str
    pathname: str
    content_type: str


class BlobStore(ABC):
    @abstractmethod
    async def put(self, path: str, data: bytes, content_type: str) -> StoredBlob:
        """Store `data` under `path`; the store appends a random suffix."""
        ...

    @abstractmethod
    async def delete(self, urls: str | Sequence[str]) -> None:
        """Delete one or more blobs by their public URL."""
        ...


class VercelBlobStore(BlobStore):
    """Client for the Vercel Blob REST API."""

    def __init__(
        self,
        token: str,
        api_url: str = "https://blob.vercel-storage.com",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.transport = transport
        self.headers = {
            "Authorization": f"Bearer {token}",
            "x-api-version": BLOB_API_VERSION,
        }

    @retry(stop=stop_after_attempt(3), wait=wait_exponential(min=1, max=10), reraise=True)
    async def _put(self, path: str, data: bytes, content_type: str) -> dict:
        async with httpx.AsyncClient(transport=self.transport) as client:
            response = await client.put(
                f"{self.api_url}/{path.lstrip('/')}",
                headers={
                    **self.headers,
                    "x-content-type": content_type,
                    "x-add-random-suffix": "1",
                },
                content=data,
            )
            response.raise_for_status()
            return response.json()

    async def put(self, path: str, data: bytes, content_type: str) -> StoredBlob:
        try:
            body = await self._put(path, data, content_type)
        except httpx.HTTPError as exc:
            logger.error("blobs.put.failed", path=path, error=str(exc))
            raise BlobStoreError(f"Upload failed for {path}") from exc
        return StoredBlob(
            url=body["url"],
            pathname=body.get("pathname", path),
            content_type=body.get("contentType", content_type),
        )

    async def delete(self, urls: str | Sequence[str]) -> None:
        url_list = [urls] if isinstance(urls, str) else list(urls)
        if not url_list:
            return
        try:
            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.post(
                    f"{self.api_url}/delete",
                    headers=self.headers,
                    json={"urls": url_list},
                )
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise BlobStoreError(f"Delete failed for {len(url_list)} blob(s)") from exc


@lru_cache
def get_blob_store() -> BlobStore:
    """Process-wide blob client (stateless; safe to share)."""
    settings = get_settings()
    return VercelBlobStore(token=settings.blob_read_write_token, api_url=settings.blob_api_url)

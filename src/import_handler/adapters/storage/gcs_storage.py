"""Google Cloud Storage reader."""

import tempfile
from typing import BinaryIO, Optional
from urllib.parse import quote

import httpx

from import_handler.core import ObjectStorage, StorageError


class GCSStorage(ObjectStorage):
    """Download uploaded objects through the GCS JSON API."""

    def __init__(
        self,
        access_token: Optional[str] = None,
        api_base_url: str = "https://storage.googleapis.com",
        spool_max_bytes: int = 8 * 1024 * 1024,
        timeout: float = 60.0,
    ) -> None:
        """Initialize storage reader.

        Args:
            access_token: OAuth bearer token. If None, requests are anonymous.
            api_base_url: JSON API root (overridable for emulators)
            spool_max_bytes: Download size kept in memory before spilling to disk
            timeout: Per-request timeout in seconds
        """
        self.access_token = access_token
        self.api_base_url = api_base_url.rstrip("/")
        self.spool_max_bytes = spool_max_bytes
        self.timeout = timeout

    def object_url(self, bucket: str, name: str) -> str:
        return f"{self.api_base_url}/storage/v1/b/{quote(bucket, safe='')}/o/{quote(name, safe='')}"

    async def open(self, bucket: str, name: str) -> BinaryIO:
        """Stream the object into a spooled temporary file.

        Raises:
            StorageError: if the object cannot be downloaded.
        """
        headers = {}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"

        spool = tempfile.SpooledTemporaryFile(max_size=self.spool_max_bytes)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                async with client.stream(
                    "GET", self.object_url(bucket, name), params={"alt": "media"}, headers=headers
                ) as response:
                    response.raise_for_status()
                    async for chunk in response.aiter_bytes():
                        spool.write(chunk)
        except httpx.HTTPError as e:
            spool.close()
            raise StorageError(f"Could not read gs://{bucket}/{name}: {e}") from e

        spool.seek(0)
        return spool

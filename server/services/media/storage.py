"""Supabase Storage client for the durable image buckets.

Talks to the Storage REST API directly over a shared ``httpx.AsyncClient``:

    POST   /storage/v1/object/list/{bucket}       list / search
    POST   /storage/v1/object/{bucket}/{path}     upload (x-upsert)
    DELETE /storage/v1/object/{bucket}            remove
    GET    /storage/v1/object/public/{bucket}/{path}  public URL
"""

import asyncio
import time
from typing import Dict, List, Optional
from urllib.parse import quote

import httpx

from core.logging import get_logger, log_api_call
from services.media.exceptions import StorageError, StoragePermissionError, UploadError
from services.media.models import StoredObject

logger = get_logger(__name__)

LIST_LIMIT = 100


class SupabaseStorage:
    """Object store operations scoped to a single bucket."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        bucket: str,
        api_key: Optional[str] = None,
        timeout: float = 15.0,
    ):
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket
        self.api_key = api_key
        self.timeout = timeout
        self._access_confirmed = False

    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            return {}
        return {"apikey": self.api_key, "Authorization": f"Bearer {self.api_key}"}

    def _object_url(self, filename: str) -> str:
        return f"{self.base_url}/storage/v1/object/{quote(self.bucket)}/{quote(filename)}"

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or response.reason_phrase
        if isinstance(body, dict):
            return str(body.get("message") or body.get("error") or body)
        return str(body)

    def _raise_for_status(self, response: httpx.Response, operation: str, error_cls=StorageError) -> None:
        if response.status_code < 400:
            return
        message = self._error_message(response)
        if response.status_code in (401, 403):
            raise StoragePermissionError(
                f"{operation} forbidden for bucket '{self.bucket}': {message}",
                status_code=response.status_code,
            )
        raise error_cls(
            f"{operation} failed for bucket '{self.bucket}' ({response.status_code}): {message}",
            status_code=response.status_code,
        )

    async def _send(self, operation: str, error_cls, method: str, url: str, **kwargs) -> httpx.Response:
        """Issue one request bounded end to end by ``self.timeout``.

        The httpx timeout only bounds each connect/read/write phase; a
        server trickling bytes never trips it.
        """
        try:
            return await asyncio.wait_for(
                self.client.request(method, url, timeout=self.timeout, **kwargs),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise error_cls(
                f"{operation} timed out for bucket '{self.bucket}' after {self.timeout}s"
            ) from e

    async def list(self, search: str = "", prefix: str = "", limit: int = LIST_LIMIT) -> List[StoredObject]:
        """List objects under ``prefix`` whose names contain ``search``."""
        start = time.time()
        response = await self._send(
            "List", StorageError, "POST",
            f"{self.base_url}/storage/v1/object/list/{quote(self.bucket)}",
            json={
                "prefix": prefix,
                "search": search,
                "limit": limit,
                "offset": 0,
                "sortBy": {"column": "name", "order": "asc"},
            },
            headers=self._headers(),
        )
        log_api_call(logger, "storage", "list", response.status_code < 400,
                     status_code=response.status_code, bucket=self.bucket,
                     search=search, duration=round(time.time() - start, 3))
        self._raise_for_status(response, "List")

        try:
            rows = response.json()
        except ValueError as e:
            raise StorageError(f"Malformed listing for bucket '{self.bucket}'") from e
        if not isinstance(rows, list):
            raise StorageError(f"Unexpected listing payload for bucket '{self.bucket}'")
        return [StoredObject(**row) for row in rows if isinstance(row, dict) and row.get("name")]

    async def upload(
        self,
        filename: str,
        data: bytes,
        content_type: str,
        upsert: bool = True,
    ) -> None:
        """Upload ``data`` under ``filename``. Raises UploadError on rejection."""
        headers = {
            **self._headers(),
            "Content-Type": content_type,
            "x-upsert": "true" if upsert else "false",
            "cache-control": "max-age=3600",
        }
        start = time.time()
        response = await self._send(
            "Upload", UploadError, "POST", self._object_url(filename),
            content=data,
            headers=headers,
        )
        log_api_call(logger, "storage", "upload", response.status_code < 400,
                     status_code=response.status_code, bucket=self.bucket,
                     filename=filename, size_bytes=len(data),
                     duration=round(time.time() - start, 3))
        self._raise_for_status(response, "Upload", error_cls=UploadError)

    async def remove(self, filenames: List[str]) -> None:
        response = await self._send(
            "Remove", StorageError, "DELETE",
            f"{self.base_url}/storage/v1/object/{quote(self.bucket)}",
            json={"prefixes": filenames},
            headers=self._headers(),
        )
        self._raise_for_status(response, "Remove")

    def get_public_url(self, filename: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{quote(self.bucket)}/{quote(filename)}"

    async def exists(self, filename: str) -> bool:
        """Exact-name lookup via a search listing."""
        objects = await self.list(search=filename)
        return any(obj.name == filename for obj in objects)

    async def check_access(self) -> bool:
        """Confirm the bucket is readable and writable.

        Lists the bucket, writes a tiny marker object and removes it again.
        A successful check is remembered for the life of the client; a failed
        one is retried on the next call.
        """
        if self._access_confirmed:
            return True

        try:
            await self.list(limit=1)
        except Exception as e:
            logger.error("Bucket not readable", bucket=self.bucket, error=str(e))
            return False

        marker = f".access-check-{int(time.time() * 1000)}.txt"
        try:
            await self.upload(marker, b"test", "text/plain")
        except Exception as e:
            logger.error("Bucket not writable", bucket=self.bucket, error=str(e))
            return False

        try:
            await self.remove([marker])
        except Exception as e:
            logger.warning("Failed to remove access marker", bucket=self.bucket,
                           marker=marker, error=str(e))

        self._access_confirmed = True
        logger.info("Bucket accessible", bucket=self.bucket)
        return True

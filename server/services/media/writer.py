"""Persist generated images into durable storage with bounded retry."""

import asyncio
from typing import Awaitable, Callable, Optional

import httpx

from core.logging import get_logger
from services.media.compressor import OUTPUT_CONTENT_TYPE, ImageCompressor
from services.media.exceptions import (
    CompressionError,
    StorageError,
    StoragePermissionError,
    StoreWriteError,
    UploadError,
)
from services.media.storage import SupabaseStorage

logger = get_logger(__name__)

PERMISSION_MARKERS = ("permission", "unauthorized", "forbidden")


def is_permission_error(error: BaseException) -> bool:
    """Auth failures are not fixed by waiting; retrying only burns budget."""
    if isinstance(error, StoragePermissionError):
        return True
    message = str(error).lower()
    return any(marker in message for marker in PERMISSION_MARKERS)


class DurableStoreWriter:
    """Compress, upload and resolve the permanent URL for one image.

    Each attempt downloads and recompresses from the source URL so a
    truncated read never carries over. Backoff doubles from ``base_delay``
    before attempts 2..N.
    """

    def __init__(
        self,
        storage: SupabaseStorage,
        compressor: ImageCompressor,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.storage = storage
        self.compressor = compressor
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._sleep = sleep

    def backoff_delay(self, attempt: int) -> float:
        """Delay before ``attempt`` (1-indexed); zero for the first attempt."""
        if attempt <= 1:
            return 0.0
        return self.base_delay * (2 ** (attempt - 2))

    async def _upload_reconciled(self, filename: str, data: bytes) -> None:
        """Upload, treating a reported failure as success if the object landed anyway."""
        try:
            await self.storage.upload(filename, data, OUTPUT_CONTENT_TYPE, upsert=True)
        except (StorageError, httpx.HTTPError) as upload_error:
            try:
                landed = await self.storage.exists(filename)
            except (StorageError, httpx.HTTPError) as e:
                logger.warning("Upload re-check failed", filename=filename, error=str(e))
                landed = False
            if landed:
                logger.info("Upload reported an error but object exists",
                            filename=filename, error=str(upload_error))
                return
            raise upload_error

    async def _attempt(self, source_url: str, filename: str) -> str:
        data = await self.compressor.compress(source_url)
        await self._upload_reconciled(filename, data)
        public_url = self.storage.get_public_url(filename)
        if not public_url:
            raise UploadError(f"No public URL for {filename}")
        return public_url

    async def store(self, source_url: str, filename: str) -> str:
        """Persist the image at ``source_url`` as ``filename``.

        Returns:
            Permanent public URL of the stored object.

        Raises:
            StoreWriteError: budget exhausted, or aborted on a permission error.
        """
        last_error: Optional[BaseException] = None
        attempt = 0

        for attempt in range(1, self.max_attempts + 1):
            delay = self.backoff_delay(attempt)
            if delay:
                logger.info("Retrying upload", filename=filename, attempt=attempt,
                            max_attempts=self.max_attempts, delay_seconds=delay)
                await self._sleep(delay)

            try:
                url = await self._attempt(source_url, filename)
            except (CompressionError, StorageError, httpx.HTTPError) as e:
                last_error = e
                logger.warning("Upload attempt failed", filename=filename, attempt=attempt,
                               max_attempts=self.max_attempts, error=str(e),
                               error_type=type(e).__name__)
                if is_permission_error(e):
                    logger.error("Permission error, aborting retries",
                                 bucket=self.storage.bucket, filename=filename)
                    break
                continue

            logger.info("Image stored", bucket=self.storage.bucket, filename=filename,
                        attempt=attempt)
            return url

        raise StoreWriteError(filename, attempt, last_error)

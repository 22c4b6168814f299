"""Durable store lookup for previously persisted images."""

from typing import List, Optional, Sequence

import httpx

from core.logging import get_logger
from services.media.exceptions import ProbeUnavailableError, StorageError
from services.media.models import StoredObject
from services.media.naming import build_filename
from services.media.storage import SupabaseStorage

logger = get_logger(__name__)

# Current writes are JPEG; older objects were stored as PNG.
DEFAULT_EXTENSIONS = ("jpg", "png")


class DurableStoreProbe:
    """Best-effort check for an existing image under any known extension."""

    def __init__(self, storage: SupabaseStorage, extensions: Sequence[str] = DEFAULT_EXTENSIONS):
        self.storage = storage
        self.extensions = tuple(extensions)

    async def _search(self, filename: str) -> List[StoredObject]:
        try:
            return await self.storage.list(search=filename)
        except (StorageError, httpx.HTTPError, ValueError) as e:
            raise ProbeUnavailableError(str(e)) from e

    async def find(self, key: str) -> Optional[str]:
        """Return the public URL for ``key`` or None when it is absent.

        Each extension is searched by its full filename, never the bare
        key: ``<key>-*`` neighbours sort ahead of ``<key>.jpg`` and fill
        the listing limit. Listing failures degrade to None so the caller
        falls back to generation.
        """
        for extension in self.extensions:
            filename = build_filename(key, extension)
            try:
                objects = await self._search(filename)
            except ProbeUnavailableError as e:
                logger.warning("Store probe unavailable, treating as miss",
                               bucket=self.storage.bucket, cache_key=key, error=str(e))
                return None

            if any(obj.name == filename for obj in objects):
                logger.info("Found existing image", bucket=self.storage.bucket, filename=filename)
                return self.storage.get_public_url(filename)
        return None

"""Get-or-generate image resolution with caching and request deduplication.

Resolution order for a name:

    memory cache -> in-flight join -> durable store -> generate -> store

Each catalog (meals, pantry items) gets one ``ImageResolver`` built by the
container at startup; it is the only owner of its memory cache and
in-flight table.
"""

import asyncio
import time
from typing import Callable, Dict, Iterable, List, Optional, Set

from core.logging import get_logger, log_cache_operation, log_execution_time
from services.media.compressor import OUTPUT_EXTENSION
from services.media.exceptions import GenerationError, StoreWriteError
from services.media.generator import ImageGenerator
from services.media.models import CacheEntry, CacheStats, Failed, ImageCatalog, ResolvedUrl
from services.media.naming import build_filename, initials, normalize_name
from services.media.probe import DurableStoreProbe
from services.media.writer import DurableStoreWriter

logger = get_logger(__name__)

DEFAULT_COOLDOWN_SECONDS = 10 * 60


class ImageResolver:
    """Resolve a free-text name to an image URL, generating at most once.

    Returns a permanent durable-store URL, or None when no image could be
    produced. If generation succeeded but persisting failed, the callers of
    that resolution get the provider URL for one-time use while the key is
    recorded as failed so a later call retries the write.

    A resolution is never cancelled by its callers: callers await it through
    ``asyncio.shield`` so an abandoned request still finishes and populates
    the cache for everyone else.
    """

    def __init__(
        self,
        catalog: ImageCatalog,
        probe: DurableStoreProbe,
        generator: ImageGenerator,
        writer: DurableStoreWriter,
        cooldown: float = DEFAULT_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.catalog = catalog
        self.probe = probe
        self.generator = generator
        self.writer = writer
        self.cooldown = cooldown
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._in_flight: Dict[str, "asyncio.Task[Optional[str]]"] = {}
        self._background: Set[asyncio.Task] = set()

    # =========================================================================
    # CACHE BOOKKEEPING
    # =========================================================================

    def _resolved(self, key: str, url: str) -> str:
        self._entries[key] = CacheEntry(key, ResolvedUrl(url))
        log_cache_operation(logger, "set", key, catalog=self.catalog.name, state="resolved")
        return url

    def _failed(self, key: str) -> None:
        self._entries[key] = CacheEntry(key, Failed(self._clock()))
        log_cache_operation(logger, "set", key, catalog=self.catalog.name, state="failed")

    def _lookup(self, key: str):
        """Return (hit, url) from the memory cache.

        A hit with url None means the key is cooling down after a failure.
        """
        entry = self._entries.get(key)
        if entry is None:
            return False, None
        if isinstance(entry.resolution, ResolvedUrl):
            log_cache_operation(logger, "get", key, hit=True, catalog=self.catalog.name)
            return True, entry.resolution.url
        if entry.resolution.in_cooldown(self._clock(), self.cooldown):
            return True, None
        return False, None

    # =========================================================================
    # RESOLUTION
    # =========================================================================

    async def get_image(self, name: str) -> Optional[str]:
        """Resolve ``name`` to an image URL or None."""
        if not name or not name.strip():
            logger.warning("Empty item name provided", catalog=self.catalog.name)
            return None

        key = normalize_name(name)

        hit, url = self._lookup(key)
        if hit:
            if url is None:
                logger.info("Skipping retry during failure cooldown",
                            catalog=self.catalog.name, cache_key=key)
            return url

        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.create_task(self._resolve(key, name))
            self._in_flight[key] = task
        else:
            logger.debug("Joining in-flight request", catalog=self.catalog.name, cache_key=key)

        return await asyncio.shield(task)

    async def _resolve(self, key: str, name: str) -> Optional[str]:
        filename = build_filename(key, OUTPUT_EXTENSION)
        try:
            existing = await self.probe.find(key)
            if existing:
                return self._resolved(key, existing)

            logger.info("No stored image, generating", catalog=self.catalog.name, cache_key=key)
            started = time.time()
            try:
                generated = await self.generator.generate(self.catalog, name)
            except GenerationError as e:
                logger.error("Image generation failed", catalog=self.catalog.name,
                             cache_key=key, error=str(e), status_code=e.status_code)
                self._failed(key)
                return None

            try:
                permanent = await self.writer.store(generated, filename)
            except StoreWriteError as e:
                # Provider URLs expire: hand it out once, never cache it
                logger.warning("Could not persist generated image, will retry later",
                               catalog=self.catalog.name, cache_key=key,
                               attempts=e.attempts, error=str(e.last_error))
                self._failed(key)
                return generated

            log_execution_time(logger, "generate_and_store", started, time.time(),
                               catalog=self.catalog.name, cache_key=key)
            return self._resolved(key, permanent)

        except Exception as e:
            logger.error("Image resolution failed", catalog=self.catalog.name,
                         cache_key=key, error=str(e), exc_info=True)
            self._failed(key)
            return None
        finally:
            self._in_flight.pop(key, None)

    async def get_images_batch(self, names: Iterable[str]) -> Dict[str, Optional[str]]:
        """Resolve many names concurrently; one failure never fails the batch."""
        names = list(names)
        logger.info("Batch fetching images", catalog=self.catalog.name, count=len(names))

        results = await asyncio.gather(
            *(self.get_image(name) for name in names),
            return_exceptions=True,
        )

        images: Dict[str, Optional[str]] = {}
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                logger.error("Failed to fetch image", catalog=self.catalog.name,
                             item=name, error=str(result))
                images[name] = None
            else:
                images[name] = result
        return images

    def preload(self, names: Iterable[str]) -> Optional[asyncio.Task]:
        """Warm the cache in the background for names not cached or in flight.

        Returns the background task, or None when there is nothing to do.
        """
        pending: List[str] = []
        seen: Set[str] = set()
        for name in names:
            if not name or not name.strip():
                continue
            key = normalize_name(name)
            if key in seen or key in self._in_flight or self._lookup(key)[0]:
                continue
            seen.add(key)
            pending.append(name)

        if not pending:
            return None

        logger.info("Preloading images in background", catalog=self.catalog.name,
                    count=len(pending))
        task = asyncio.create_task(self._preload(pending))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _preload(self, names: List[str]) -> None:
        try:
            await self.get_images_batch(names)
        except Exception as e:
            logger.error("Preload failed", catalog=self.catalog.name, error=str(e))

    # =========================================================================
    # DIAGNOSTICS
    # =========================================================================

    def mark_failed(self, name: str) -> str:
        """Put ``name`` into failure cooldown, e.g. after its URL turned out broken."""
        key = normalize_name(name)
        self._failed(key)
        return key

    def clear_cache(self) -> int:
        """Drop every memory cache entry. In-flight work keeps running."""
        cleared = len(self._entries)
        self._entries.clear()
        logger.info("Cleared image cache", catalog=self.catalog.name, cleared=cleared)
        return cleared

    def get_entry(self, name: str) -> Optional[CacheEntry]:
        return self._entries.get(normalize_name(name))

    def stats(self) -> CacheStats:
        resolved = sum(1 for e in self._entries.values() if isinstance(e.resolution, ResolvedUrl))
        return CacheStats(
            catalog=self.catalog.name,
            size=len(self._entries),
            entries=list(self._entries),
            pending=list(self._in_flight),
            resolved=resolved,
            failed=len(self._entries) - resolved,
        )

    @staticmethod
    def initials(name: str) -> str:
        return initials(name)

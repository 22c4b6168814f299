"""Download-and-recompress step for generated images.

Generated images arrive as large PNGs on provider-hosted URLs. Before they
go to durable storage they are shrunk to a bounded size and re-encoded as
JPEG. Work happens in a per-call scratch directory that is removed on
every exit path.
"""

import asyncio
import shutil
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

import httpx
from PIL import Image, UnidentifiedImageError

from core.logging import get_logger
from services.media.exceptions import CompressionError

logger = get_logger(__name__)

OUTPUT_CONTENT_TYPE = "image/jpeg"
OUTPUT_EXTENSION = "jpg"
DOWNLOAD_CHUNK_SIZE = 64 * 1024


@asynccontextmanager
async def scratch_directory(root: Optional[str] = None) -> AsyncIterator[Path]:
    """Temporary working directory, deleted with everything in it on exit."""
    path = Path(tempfile.mkdtemp(prefix="img-", dir=root))
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)


def _reencode(source: Path, target: Path, max_dimension: int, quality: int) -> None:
    with Image.open(source) as img:
        img.load()
        if img.mode in ("RGBA", "LA", "P"):
            # JPEG has no alpha; flatten onto white like a plated photo
            img = img.convert("RGBA")
            background = Image.new("RGB", img.size, (255, 255, 255))
            background.paste(img, mask=img.getchannel("A"))
            img = background
        elif img.mode != "RGB":
            img = img.convert("RGB")
        img.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)
        img.save(target, format="JPEG", quality=quality, optimize=True)


class ImageCompressor:
    """Fetches a source image and returns bounded-size JPEG bytes."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        max_dimension: int = 768,
        quality: int = 80,
        scratch_root: Optional[str] = None,
        timeout: float = 30.0,
    ):
        self.client = client
        self.max_dimension = max_dimension
        self.quality = quality
        self.scratch_root = scratch_root
        self.timeout = timeout

    async def _download(self, url: str, target: Path) -> int:
        written = 0
        async with self.client.stream("GET", url, timeout=self.timeout) as response:
            if not response.is_success:
                raise CompressionError(
                    f"Failed to download image: {response.status_code} {response.reason_phrase}"
                )
            with target.open("wb") as fh:
                async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_SIZE):
                    fh.write(chunk)
                    written += len(chunk)
        return written

    async def compress(self, url: str) -> bytes:
        """Download ``url`` and return it re-encoded as JPEG.

        Raises:
            CompressionError: download failed or timed out, source empty or undecodable.
        """
        async with scratch_directory(self.scratch_root) as workdir:
            source = workdir / "source"
            target = workdir / f"compressed.{OUTPUT_EXTENSION}"

            try:
                size = await asyncio.wait_for(self._download(url, source), timeout=self.timeout)
            except asyncio.TimeoutError as e:
                raise CompressionError(f"Download timed out after {self.timeout}s") from e
            except httpx.HTTPError as e:
                raise CompressionError(f"Failed to download image: {e}") from e
            if size == 0:
                raise CompressionError("Downloaded image is empty")

            try:
                await asyncio.to_thread(_reencode, source, target,
                                        self.max_dimension, self.quality)
                data = target.read_bytes()
            except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
                raise CompressionError(f"Failed to re-encode image: {e}") from e

            logger.debug("Image compressed", source_bytes=size, output_bytes=len(data),
                         max_dimension=self.max_dimension, quality=self.quality)
            return data

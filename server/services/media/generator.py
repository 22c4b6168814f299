"""Client for the backend image generation endpoint."""

import asyncio
import time
from typing import Any, Dict

import httpx

from core.logging import get_logger, log_api_call
from services.auth import TokenProvider
from services.media.exceptions import GenerationError
from services.media.models import ImageCatalog

logger = get_logger(__name__)

GENERATE_PATH = "/chat/generate-image"


class ImageGenerator:
    """One-shot generation calls. Never retries: every call costs money."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        token_provider: TokenProvider,
        backend_url: str,
        size: str = "1024x1024",
        quality: str = "standard",
        timeout: float = 90.0,
    ):
        self.client = client
        self.token_provider = token_provider
        self.backend_url = backend_url.rstrip("/")
        self.size = size
        self.quality = quality
        self.timeout = timeout

    def build_payload(self, catalog: ImageCatalog, item_name: str) -> Dict[str, Any]:
        return {
            "prompt": catalog.build_prompt(item_name),
            "size": self.size,
            "quality": self.quality,
            "style": catalog.style,
        }

    async def generate(self, catalog: ImageCatalog, item_name: str) -> str:
        """Generate an image and return its provider-hosted URL.

        The URL is not guaranteed to outlive the provider's retention window.

        Raises:
            GenerationError: non-2xx status, malformed body or missing image_url.
        """
        headers = {"Content-Type": "application/json"}
        token = await self.token_provider.get_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"

        logger.info("Generating image", catalog=catalog.name, item=item_name)
        start = time.time()
        try:
            response = await asyncio.wait_for(
                self.client.post(
                    f"{self.backend_url}{GENERATE_PATH}",
                    json=self.build_payload(catalog, item_name),
                    headers=headers,
                    timeout=self.timeout,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            log_api_call(logger, "generator", "generate", False, catalog=catalog.name, error="timeout")
            raise GenerationError(f"Generation timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            log_api_call(logger, "generator", "generate", False, catalog=catalog.name, error=str(e))
            raise GenerationError(f"Generation request failed: {e}") from e

        log_api_call(logger, "generator", "generate", response.is_success,
                     status_code=response.status_code, catalog=catalog.name,
                     duration=round(time.time() - start, 3))

        if not response.is_success:
            raise GenerationError(
                f"Generation failed ({response.status_code}): {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise GenerationError("Generation response is not valid JSON",
                                  status_code=response.status_code) from e

        image_url = data.get("image_url") if isinstance(data, dict) else None
        if not image_url or not isinstance(image_url, str):
            raise GenerationError("No image_url in generation response",
                                  status_code=response.status_code)
        return image_url

"""Dependency injection container for the application."""

from typing import Dict, Optional

import httpx
from dependency_injector import containers, providers

from constants import (
    MEALS_CATALOG,
    MEAL_IMAGE_STYLE,
    MEAL_PROMPT_TEMPLATE,
    PANTRY_CATALOG,
    PANTRY_IMAGE_STYLE,
    PANTRY_PROMPT_TEMPLATE,
)
from core.config import Settings
from services.auth import TokenProvider
from services.media.compressor import ImageCompressor
from services.media.generator import ImageGenerator
from services.media.models import ImageCatalog
from services.media.probe import DurableStoreProbe
from services.media.service import ImageResolver
from services.media.storage import SupabaseStorage
from services.media.writer import DurableStoreWriter


class Container(containers.DeclarativeContainer):
    """Application dependency injection container."""

    # Settings
    settings = providers.Singleton(
        Settings,
    )

    # Shared HTTP client (closed on shutdown)
    http_client = providers.Singleton(
        httpx.AsyncClient,
        follow_redirects=True,
        timeout=settings.provided.storage_timeout,
    )

    token_provider = providers.Singleton(
        TokenProvider,
        settings=settings
    )

    # Shared pipeline stages
    generator = providers.Singleton(
        ImageGenerator,
        client=http_client,
        token_provider=token_provider,
        backend_url=settings.provided.backend_url,
        size=settings.provided.image_size,
        quality=settings.provided.image_quality,
        timeout=settings.provided.generation_timeout,
    )

    compressor = providers.Singleton(
        ImageCompressor,
        client=http_client,
        max_dimension=settings.provided.compress_max_dimension,
        quality=settings.provided.compress_jpeg_quality,
        scratch_root=settings.provided.scratch_dir,
        timeout=settings.provided.download_timeout,
    )

    # Meals catalog
    meals_catalog = providers.Singleton(
        ImageCatalog,
        name=MEALS_CATALOG,
        bucket=settings.provided.meals_bucket,
        prompt_template=MEAL_PROMPT_TEMPLATE,
        style=MEAL_IMAGE_STYLE,
    )

    meals_storage = providers.Singleton(
        SupabaseStorage,
        client=http_client,
        base_url=settings.provided.supabase_url,
        bucket=settings.provided.meals_bucket,
        api_key=settings.provided.supabase_key,
        timeout=settings.provided.storage_timeout,
    )

    meal_images = providers.Singleton(
        ImageResolver,
        catalog=meals_catalog,
        probe=providers.Singleton(DurableStoreProbe, storage=meals_storage),
        generator=generator,
        writer=providers.Singleton(
            DurableStoreWriter,
            storage=meals_storage,
            compressor=compressor,
            max_attempts=settings.provided.upload_max_attempts,
            base_delay=settings.provided.upload_base_delay,
        ),
        cooldown=settings.provided.failure_cooldown_seconds,
    )

    # Pantry items catalog
    pantry_catalog = providers.Singleton(
        ImageCatalog,
        name=PANTRY_CATALOG,
        bucket=settings.provided.pantry_bucket,
        prompt_template=PANTRY_PROMPT_TEMPLATE,
        style=PANTRY_IMAGE_STYLE,
    )

    pantry_storage = providers.Singleton(
        SupabaseStorage,
        client=http_client,
        base_url=settings.provided.supabase_url,
        bucket=settings.provided.pantry_bucket,
        api_key=settings.provided.supabase_key,
        timeout=settings.provided.storage_timeout,
    )

    pantry_images = providers.Singleton(
        ImageResolver,
        catalog=pantry_catalog,
        probe=providers.Singleton(DurableStoreProbe, storage=pantry_storage),
        generator=generator,
        writer=providers.Singleton(
            DurableStoreWriter,
            storage=pantry_storage,
            compressor=compressor,
            max_attempts=settings.provided.upload_max_attempts,
            base_delay=settings.provided.upload_base_delay,
        ),
        cooldown=settings.provided.failure_cooldown_seconds,
    )


# Global container instance
container = Container()


def get_resolver(catalog: str) -> Optional[ImageResolver]:
    """Resolver for a catalog name, or None if the catalog is unknown."""
    resolvers: Dict[str, providers.Provider] = {
        MEALS_CATALOG: container.meal_images,
        PANTRY_CATALOG: container.pantry_images,
    }
    provider = resolvers.get(catalog)
    return provider() if provider is not None else None


def get_storage(catalog: str) -> Optional[SupabaseStorage]:
    storages: Dict[str, providers.Provider] = {
        MEALS_CATALOG: container.meals_storage,
        PANTRY_CATALOG: container.pantry_storage,
    }
    provider = storages.get(catalog)
    return provider() if provider is not None else None

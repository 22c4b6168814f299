"""Image acquisition and caching pipeline for meal and pantry item photos.

Three tiers: in-process memory cache, durable object storage, and AI
generation as a last resort, with in-flight deduplication per name.
"""

from services.media.models import CacheEntry, CacheStats, Failed, ImageCatalog, ResolvedUrl
from services.media.naming import initials, normalize_name
from services.media.service import ImageResolver

__all__ = [
    "CacheEntry",
    "CacheStats",
    "Failed",
    "ImageCatalog",
    "ImageResolver",
    "ResolvedUrl",
    "initials",
    "normalize_name",
]

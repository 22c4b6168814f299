"""Image pipeline state models.

Cache entries are plain dataclasses owned by the resolver. Catalog
configuration, store listings and diagnostics are Pydantic v2 models so
they serialize straight into API responses.
"""

from dataclasses import dataclass
from typing import List, Optional, Union
from pydantic import BaseModel, Field


@dataclass(frozen=True)
class ResolvedUrl:
    """Permanent public URL in durable storage."""
    url: str


@dataclass(frozen=True)
class Failed:
    """Last resolution attempt failed at ``failed_at`` (monotonic seconds)."""
    failed_at: float

    def in_cooldown(self, now: float, cooldown: float) -> bool:
        return now - self.failed_at < cooldown


Resolution = Union[ResolvedUrl, Failed]


@dataclass(frozen=True)
class CacheEntry:
    """Resolved state for one canonical key.

    Overwritten on every resolution attempt for the key. ``Failed`` entries
    only gate retries for the cooldown window.
    """
    key: str
    resolution: Resolution

    @property
    def url(self):
        if isinstance(self.resolution, ResolvedUrl):
            return self.resolution.url
        return None


class ImageCatalog(BaseModel):
    """One image family backed by its own bucket and prompt."""
    name: str
    bucket: str
    prompt_template: str = Field(description="str.format template with a {name} field")
    style: str = "natural"

    def build_prompt(self, item_name: str) -> str:
        return self.prompt_template.format(name=item_name.strip())


class StoredObject(BaseModel):
    """Object listing row returned by the durable store."""
    name: str
    id: Optional[str] = None
    updated_at: Optional[str] = None


class CacheStats(BaseModel):
    """Read-only snapshot of the memory cache and in-flight table."""
    catalog: str
    size: int
    entries: List[str] = Field(default_factory=list)
    pending: List[str] = Field(default_factory=list)
    resolved: int = 0
    failed: int = 0

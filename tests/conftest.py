"""Shared fakes for the image pipeline tests."""

import asyncio
from typing import Dict, List, Optional

import pytest

from constants import MEAL_IMAGE_STYLE, MEAL_PROMPT_TEMPLATE, MEALS_CATALOG
from services.media.models import ImageCatalog, StoredObject
from services.media.probe import DurableStoreProbe
from services.media.service import ImageResolver
from services.media.writer import DurableStoreWriter

STORE_BASE = "https://store.example/storage/v1/object/public/Meals"


class FakeStorage:
    """In-memory bucket with scriptable upload failures."""

    def __init__(self, bucket: str = "Meals"):
        self.bucket = bucket
        self.objects: Dict[str, bytes] = {}
        self.upload_errors: List[BaseException] = []
        self.land_despite_error = False
        self.list_error: Optional[BaseException] = None
        self.list_calls = 0
        self.upload_calls = 0
        self.accessible = True

    async def list(self, search: str = "", prefix: str = "", limit: int = 100) -> List[StoredObject]:
        self.list_calls += 1
        await asyncio.sleep(0)
        if self.list_error is not None:
            raise self.list_error
        return [StoredObject(name=name) for name in sorted(self.objects) if search in name][:limit]

    async def upload(self, filename: str, data: bytes, content_type: str, upsert: bool = True) -> None:
        self.upload_calls += 1
        await asyncio.sleep(0)
        if self.upload_errors:
            error = self.upload_errors.pop(0)
            if self.land_despite_error:
                self.objects[filename] = data
            raise error
        self.objects[filename] = data

    async def exists(self, filename: str) -> bool:
        objects = await self.list(search=filename)
        return any(obj.name == filename for obj in objects)

    def get_public_url(self, filename: str) -> str:
        return f"{STORE_BASE}/{filename}"

    async def check_access(self) -> bool:
        return self.accessible


class FakeCompressor:
    def __init__(self):
        self.calls: List[str] = []
        self.errors: List[BaseException] = []

    async def compress(self, url: str) -> bytes:
        self.calls.append(url)
        await asyncio.sleep(0)
        if self.errors:
            raise self.errors.pop(0)
        return b"\xff\xd8jpeg-bytes"


class FakeGenerator:
    """Returns a provider URL per name; can fail or block on demand."""

    def __init__(self):
        self.calls: List[str] = []
        self.fail_for: Dict[str, BaseException] = {}
        self.gate: Optional[asyncio.Event] = None

    async def generate(self, catalog: ImageCatalog, item_name: str) -> str:
        self.calls.append(item_name)
        if self.gate is not None:
            await self.gate.wait()
        await asyncio.sleep(0)
        if item_name in self.fail_for:
            raise self.fail_for[item_name]
        slug = item_name.lower().replace(" ", "_")
        return f"https://provider.example/tmp/{slug}.png"


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SleepRecorder:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def meals_catalog():
    return ImageCatalog(
        name=MEALS_CATALOG,
        bucket="Meals",
        prompt_template=MEAL_PROMPT_TEMPLATE,
        style=MEAL_IMAGE_STYLE,
    )


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def compressor():
    return FakeCompressor()


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleeps():
    return SleepRecorder()


@pytest.fixture
def writer(storage, compressor, sleeps):
    return DurableStoreWriter(storage, compressor, max_attempts=3, base_delay=1.0, sleep=sleeps)


@pytest.fixture
def resolver(meals_catalog, storage, generator, writer, clock):
    return ImageResolver(
        catalog=meals_catalog,
        probe=DurableStoreProbe(storage),
        generator=generator,
        writer=writer,
        cooldown=600,
        clock=clock,
    )

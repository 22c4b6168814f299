"""Get-or-generate resolution: caching, dedup, cooldown and fallbacks."""

import asyncio

from services.media.exceptions import GenerationError, UploadError
from services.media.models import Failed, ResolvedUrl

from conftest import STORE_BASE


async def settle(rounds: int = 20):
    for _ in range(rounds):
        await asyncio.sleep(0)


async def test_generates_stores_and_returns_permanent_url(resolver, storage, generator):
    url = await resolver.get_image("Grilled Salmon!!")

    assert url == f"{STORE_BASE}/grilled-salmon.jpg"
    assert "grilled-salmon.jpg" in storage.objects
    assert generator.calls == ["Grilled Salmon!!"]
    entry = resolver.get_entry("grilled salmon")
    assert entry.resolution == ResolvedUrl(url)


async def test_concurrent_requests_share_one_generation(resolver, storage, compressor, generator):
    generator.gate = asyncio.Event()
    names = ["Grilled Salmon", "grilled   salmon", "GRILLED SALMON!", "grilled-salmon"]

    tasks = [asyncio.create_task(resolver.get_image(name)) for name in names]
    await settle()
    assert len(generator.calls) == 1
    assert resolver.stats().pending == ["grilled-salmon"]

    generator.gate.set()
    results = await asyncio.gather(*tasks)

    assert len(set(results)) == 1
    assert results[0] == f"{STORE_BASE}/grilled-salmon.jpg"
    assert len(generator.calls) == 1
    assert len(compressor.calls) == 1
    assert storage.upload_calls == 1


async def test_cache_hit_touches_nothing(resolver, storage, generator):
    first = await resolver.get_image("Soup")
    list_calls, upload_calls = storage.list_calls, storage.upload_calls

    second = await resolver.get_image("  SOUP ")

    assert second == first
    assert storage.list_calls == list_calls
    assert storage.upload_calls == upload_calls
    assert generator.calls == ["Soup"]


async def test_existing_stored_image_is_reused(resolver, storage, generator):
    storage.objects["lasagna.png"] = b"old"

    url = await resolver.get_image("Lasagna")

    assert url == f"{STORE_BASE}/lasagna.png"
    assert generator.calls == []
    assert storage.upload_calls == 0


async def test_stored_image_crowded_by_neighbours_is_not_regenerated(resolver, storage, generator):
    for n in range(120):
        storage.objects[f"soup-{n:03d}.jpg"] = b"x"
    storage.objects["soup.jpg"] = b"old"

    url = await resolver.get_image("Soup")

    assert url == f"{STORE_BASE}/soup.jpg"
    assert generator.calls == []
    assert storage.objects["soup.jpg"] == b"old"


async def test_generation_failure_enters_cooldown(resolver, generator, clock):
    generator.fail_for["Soup"] = GenerationError("Backend returned 500", status_code=500)

    assert await resolver.get_image("Soup") is None
    assert isinstance(resolver.get_entry("Soup").resolution, Failed)

    clock.advance(599)
    assert await resolver.get_image("Soup") is None
    assert generator.calls == ["Soup"]

    del generator.fail_for["Soup"]
    clock.advance(2)
    url = await resolver.get_image("Soup")

    assert url == f"{STORE_BASE}/soup.jpg"
    assert generator.calls == ["Soup", "Soup"]


async def test_write_failure_returns_generated_url_once(resolver, storage, generator):
    storage.upload_errors = [UploadError("e1"), UploadError("e2"), UploadError("e3")]

    url = await resolver.get_image("Soup")

    assert url == "https://provider.example/tmp/soup.png"
    entry = resolver.get_entry("Soup")
    assert isinstance(entry.resolution, Failed)
    assert entry.url is None

    # cooldown applies to the ephemeral case too
    assert await resolver.get_image("Soup") is None
    assert generator.calls == ["Soup"]


async def test_unexpected_generator_error_is_contained(resolver, generator):
    generator.fail_for["Soup"] = RuntimeError("provider SDK bug")

    assert await resolver.get_image("Soup") is None
    assert isinstance(resolver.get_entry("Soup").resolution, Failed)
    assert resolver.stats().pending == []


async def test_blank_names_resolve_to_none_without_caching(resolver, storage, generator):
    assert await resolver.get_image("") is None
    assert await resolver.get_image("   ") is None

    assert resolver.stats().size == 0
    assert storage.list_calls == 0
    assert generator.calls == []


async def test_in_flight_entry_removed_after_completion(resolver):
    await resolver.get_image("Soup")
    stats = resolver.stats()
    assert stats.pending == []
    assert stats.entries == ["soup"]


async def test_batch_isolates_failures(resolver, generator):
    generator.fail_for["Broken Dish"] = RuntimeError("boom")

    images = await resolver.get_images_batch(["Soup", "Broken Dish", "Salad"])

    assert images == {
        "Soup": f"{STORE_BASE}/soup.jpg",
        "Broken Dish": None,
        "Salad": f"{STORE_BASE}/salad.jpg",
    }


async def test_batch_deduplicates_equivalent_names(resolver, generator):
    images = await resolver.get_images_batch(["Soup", "soup!", "SOUP"])

    assert len(set(images.values())) == 1
    assert len(generator.calls) == 1


async def test_abandoned_caller_does_not_cancel_shared_work(resolver, generator):
    generator.gate = asyncio.Event()

    impatient = asyncio.create_task(resolver.get_image("Soup"))
    patient = asyncio.create_task(resolver.get_image("soup"))
    await settle()

    impatient.cancel()
    await settle()
    assert impatient.cancelled()

    generator.gate.set()
    assert await patient == f"{STORE_BASE}/soup.jpg"
    assert resolver.get_entry("Soup").url == f"{STORE_BASE}/soup.jpg"


async def test_abandoned_sole_caller_still_populates_cache(resolver, generator, storage):
    generator.gate = asyncio.Event()

    caller = asyncio.create_task(resolver.get_image("Soup"))
    await settle()
    caller.cancel()
    await settle()

    generator.gate.set()
    await settle(50)

    assert resolver.get_entry("Soup").url == f"{STORE_BASE}/soup.jpg"
    assert "soup.jpg" in storage.objects


async def test_preload_skips_cached_and_duplicate_names(resolver, generator):
    await resolver.get_image("Soup")

    task = resolver.preload(["Soup", "Salad", "salad!", "", "Stew"])
    await task

    assert sorted(generator.calls) == ["Salad", "Soup", "Stew"]
    assert resolver.get_entry("Salad").url == f"{STORE_BASE}/salad.jpg"
    assert resolver.get_entry("Stew").url == f"{STORE_BASE}/stew.jpg"


async def test_preload_with_nothing_to_do_returns_none(resolver):
    await resolver.get_image("Soup")
    assert resolver.preload(["soup", "  "]) is None


async def test_mark_failed_suppresses_resolution(resolver, generator, clock):
    await resolver.get_image("Soup")

    assert resolver.mark_failed("SOUP") == "soup"
    assert await resolver.get_image("Soup") is None

    clock.advance(601)
    assert await resolver.get_image("Soup") == f"{STORE_BASE}/soup.jpg"


async def test_clear_cache_and_stats(resolver, generator):
    generator.fail_for["Broken"] = GenerationError("bad")
    await resolver.get_images_batch(["Soup", "Salad", "Broken"])

    stats = resolver.stats()
    assert stats.catalog == "meals"
    assert stats.size == 3
    assert stats.resolved == 2
    assert stats.failed == 1
    assert sorted(stats.entries) == ["broken", "salad", "soup"]

    assert resolver.clear_cache() == 3
    assert resolver.stats().size == 0


def test_initials_placeholder(resolver):
    assert resolver.initials("Grilled Salmon") == "GS"
    assert resolver.initials("soup") == "SO"

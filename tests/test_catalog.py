"""Tests for the catalog cache."""

import asyncio

from iracing_setup_sync.catalog import CatalogCache
from iracing_setup_sync.models import Catalog, CatalogEntry


def make_catalog(generation: int) -> Catalog:
    """Build a catalog whose car and track names carry a generation marker."""
    return Catalog(
        cars={"1": CatalogEntry(id=1, display_name=f"car-gen{generation}")},
        tracks={"1": CatalogEntry(id=1, display_name=f"track-gen{generation}")},
    )


class TestCatalogCache:
    """Tests for CatalogCache."""

    def test_initially_empty(self):
        """Test a new cache has no catalog."""
        cache = CatalogCache()
        assert cache.get() is None
        assert cache.loaded is False

    async def test_replace(self, sample_catalog):
        """Test replace installs the catalog."""
        cache = CatalogCache()

        await cache.replace(sample_catalog)

        assert cache.get() is sample_catalog
        assert cache.loaded is True

    async def test_replace_swaps_whole_catalog(self):
        """Test the previous catalog is replaced as a unit."""
        cache = CatalogCache(make_catalog(0))
        old = cache.get()

        await cache.replace(make_catalog(1))

        assert cache.get().car(1).display_name == "car-gen1"
        assert cache.get().track(1).display_name == "track-gen1"
        assert old.car(1).display_name == "car-gen0"

    async def test_concurrent_get_never_mixes(self):
        """Test readers racing with replace see one complete catalog."""
        cache = CatalogCache(make_catalog(0))
        seen: list[Catalog] = []

        async def writer():
            for generation in range(1, 30):
                await cache.replace(make_catalog(generation))
                await asyncio.sleep(0)

        async def reader():
            for _ in range(60):
                seen.append(cache.get())
                await asyncio.sleep(0)

        await asyncio.gather(writer(), reader())

        for catalog in seen:
            car_gen = catalog.car(1).display_name.removeprefix("car-")
            track_gen = catalog.track(1).display_name.removeprefix("track-")
            assert car_gen == track_gen

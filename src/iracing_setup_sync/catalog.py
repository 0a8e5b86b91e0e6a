"""In-memory cache of the most recently fetched car/track catalog."""

import asyncio
import logging

from iracing_setup_sync.models import Catalog

logger = logging.getLogger(__name__)


class CatalogCache:
    """Holds the latest complete Catalog.

    The catalog is replaced as a unit. Readers get either the previous
    catalog or the new one, never a mix of old and new car/track maps.
    """

    def __init__(self, catalog: Catalog | None = None) -> None:
        """Initialize the cache.

        Args:
            catalog: Initial catalog, or None for "not loaded yet"
        """
        self._catalog = catalog
        self._lock = asyncio.Lock()

    def get(self) -> Catalog | None:
        """Return the current catalog, or None if none has been loaded."""
        return self._catalog

    async def replace(self, catalog: Catalog) -> None:
        """Install a newly fetched catalog.

        Args:
            catalog: Complete catalog to install
        """
        async with self._lock:
            self._catalog = catalog
        logger.debug(
            f"Catalog replaced: {len(catalog.cars)} cars, {len(catalog.tracks)} tracks"
        )

    @property
    def loaded(self) -> bool:
        """Whether a catalog has been loaded."""
        return self._catalog is not None

"""
InventorySession - One application session: shared cache, ledger and facades.

Build it once at startup and hand the facades to the UI:

    async with InventorySession() as session:
        materials = await session.materials.list()
"""

from datetime import datetime
from typing import Any, Callable

from loguru import logger

from stockkeeper.models import (
    Category,
    CategoryCreate,
    CategoryUpdate,
    Presentation,
    PresentationCreate,
    PresentationUpdate,
)
from stockkeeper.services.cache import CacheStore
from stockkeeper.services.error_patterns import ErrorClassifier
from stockkeeper.services.facade import EntityFacade, MaterialFacade
from stockkeeper.services.ledger import OptimisticLedger
from stockkeeper.services.sweeper import CacheSweeper
from stockkeeper.settings import Settings, global_settings
from stockkeeper.transport.base import BaseTransport
from stockkeeper.transport.http import HttpTransport
from stockkeeper.transport.memory import SAMPLE_MATERIALS, MemoryTransport

MATERIALS = "materiaPrima"
CATEGORIES = "categoria"
PRESENTATIONS = "presentacion"


def build_transports(settings: Settings) -> dict[str, BaseTransport]:
    """Create one transport per collection according to settings."""
    if settings.transport == "memory":
        return {
            MATERIALS: MemoryTransport(MATERIALS, SAMPLE_MATERIALS),
            CATEGORIES: MemoryTransport(
                CATEGORIES, entity_label="Categoría", status_field="activo"
            ),
            PRESENTATIONS: MemoryTransport(
                PRESENTATIONS, entity_label="Presentación", status_field="activo"
            ),
        }

    return {
        resource: HttpTransport(resource, settings.api_url, settings.request_timeout)
        for resource in (MATERIALS, CATEGORIES, PRESENTATIONS)
    }


class InventorySession:
    """Composition root owning the shared cache, ledger, classifier and sweeper."""

    def __init__(
        self,
        settings: Settings | None = None,
        transports: dict[str, BaseTransport] | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.settings = settings or global_settings
        self.cache = CacheStore(
            max_size=self.settings.cache_max_size,
            default_ttl=self.settings.cache_default_ttl,
            clock=clock,
            debug=self.settings.debug,
        )
        self.ledger = OptimisticLedger(
            grace=self.settings.optimistic_grace,
            clock=clock,
            debug=self.settings.debug,
        )
        self.classifier = ErrorClassifier()
        self._transports = transports or build_transports(self.settings)

        shared = {
            "cache": self.cache,
            "ledger": self.ledger,
            "classifier": self.classifier,
            "settings": self.settings,
        }
        self.materials = MaterialFacade(self._transports[MATERIALS], **shared)
        self.categories: EntityFacade[Category] = EntityFacade(
            self._transports[CATEGORIES], Category, CategoryCreate, CategoryUpdate, **shared
        )
        self.presentations: EntityFacade[Presentation] = EntityFacade(
            self._transports[PRESENTATIONS],
            Presentation,
            PresentationCreate,
            PresentationUpdate,
            **shared,
        )
        self.sweeper = CacheSweeper(
            self.cache,
            self.ledger,
            interval=self.settings.cache_sweep_interval,
        )

    async def start(self) -> None:
        """Start background sweeping. Must be called from the running loop."""
        self.sweeper.start()
        logger.info(f"Inventory session started ({self.settings.transport} transport)")

    async def close(self) -> None:
        """Stop the sweeper and release transports."""
        self.sweeper.stop()
        for transport in self._transports.values():
            await transport.close()
        logger.info("Inventory session closed")

    async def __aenter__(self) -> "InventorySession":
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    def get_health_status(self) -> dict[str, Any]:
        """Cache statistics and per-collection status."""
        return {
            "cache": self.cache.get_stats().to_dict(),
            "pending_updates": self.ledger.pending_count(),
            "sweeper_running": self.sweeper.is_running(),
            MATERIALS: self.materials.cache_status(),
            CATEGORIES: self.categories.cache_status(),
            PRESENTATIONS: self.presentations.cache_status(),
        }

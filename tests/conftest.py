import asyncio
from datetime import datetime, timedelta
from typing import Any

import pytest

from stockkeeper.services.cache import CacheStore
from stockkeeper.services.error_patterns import ErrorClassifier
from stockkeeper.services.facade import MaterialFacade
from stockkeeper.services.ledger import OptimisticLedger
from stockkeeper.settings import Settings
from stockkeeper.transport.base import TransportError
from stockkeeper.transport.memory import MemoryTransport

MATERIALS: list[dict[str, Any]] = [
    {
        "id": "m1",
        "nombre": "Cemento Gris",
        "categoria": "Construcción",
        "stock_actual": 25,
        "stock_minimo": 10,
        "costo_unitario": 100.0,
        "estatus": "ACTIVO",
    },
    {
        "id": "m2",
        "nombre": "Ladrillo Rojo",
        "categoria": "Construcción",
        "stock_actual": 0,
        "stock_minimo": 50,
        "costo_unitario": 2.0,
        "estatus": "ACTIVO",
    },
    {
        "id": "m3",
        "nombre": "Pintura Blanca",
        "categoria": "Pinturas",
        "stock_actual": 4,
        "stock_minimo": 5,
        "costo_unitario": 10.0,
        "estatus": "ACTIVO",
    },
]


class FakeClock:
    """Controllable replacement for datetime.now."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, 0)) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class RecordingTransport(MemoryTransport):
    """MemoryTransport that records calls, can fail on demand and hold calls open."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.calls: list[str] = []
        self.failures: dict[str, str] = {}
        self.holds: dict[str, asyncio.Event] = {}
        self.entered: dict[str, asyncio.Event] = {}

    def hold(self, operation: str) -> asyncio.Event:
        """Block ``operation`` until the returned event is set."""
        self.holds[operation] = asyncio.Event()
        self.entered[operation] = asyncio.Event()
        return self.holds[operation]

    async def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.entered:
            self.entered[operation].set()
        if operation in self.holds:
            await self.holds[operation].wait()
        if operation in self.failures:
            raise TransportError(self.failures[operation], self.resource)

    async def list(self, filters=None, include_inactive=False):
        await self._enter("list")
        return await super().list(filters, include_inactive)

    async def get(self, id, include_inactive=False):
        await self._enter("get")
        return await super().get(id, include_inactive)

    async def create(self, data, actor_id=None):
        await self._enter("create")
        return await super().create(data, actor_id)

    async def update(self, id, data, actor_id=None):
        await self._enter("update")
        return await super().update(id, data, actor_id)

    async def delete(self, id, actor_id=None):
        await self._enter("delete")
        return await super().delete(id, actor_id)

    async def search(self, term, limit=50):
        await self._enter("search")
        return await super().search(term, limit)

    async def low_stock(self):
        await self._enter("low_stock")
        return await super().low_stock()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def cache(clock: FakeClock) -> CacheStore:
    return CacheStore(default_ttl=timedelta(minutes=5), clock=clock)


@pytest.fixture
def ledger(clock: FakeClock) -> OptimisticLedger:
    return OptimisticLedger(grace=timedelta(seconds=2), clock=clock)


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport("materiaPrima", [dict(m) for m in MATERIALS])


@pytest.fixture
def facade(
    transport: RecordingTransport,
    cache: CacheStore,
    ledger: OptimisticLedger,
    settings: Settings,
) -> MaterialFacade:
    return MaterialFacade(
        transport,
        cache=cache,
        ledger=ledger,
        classifier=ErrorClassifier(),
        settings=settings,
    )

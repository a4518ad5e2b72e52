import asyncio

import pytest
from pydantic import ValidationError

from stockkeeper.models import MaterialCreate, MaterialUpdate
from stockkeeper.services.errors import (
    ConnectionFailureError,
    EntityNotFoundError,
    InventoryError,
    StockAvailableError,
    ValidationFailureError,
)


def _names(items):
    return [item.name for item in items]


class TestReads:
    @pytest.mark.asyncio
    async def test_list_is_cached(self, facade, transport):
        first = await facade.list()
        second = await facade.list()

        assert _names(first) == ["Cemento Gris", "Ladrillo Rojo", "Pintura Blanca"]
        assert second == first
        assert transport.calls.count("list") == 1

    @pytest.mark.asyncio
    async def test_entities_are_immutable(self, facade):
        material = (await facade.list())[0]
        with pytest.raises(ValidationError):
            material.name = "Otro"

    @pytest.mark.asyncio
    async def test_cache_refreshes_after_ttl(self, facade, transport, clock):
        await facade.list()
        clock.advance(minutes=6)
        await facade.list()
        assert transport.calls.count("list") == 2

    @pytest.mark.asyncio
    async def test_stale_cache_used_when_transport_fails(self, facade, transport, clock):
        cached = await facade.list()
        clock.advance(minutes=6)
        transport.failures["list"] = "connect ECONNREFUSED 127.0.0.1:3001"

        assert await facade.list() == cached

    @pytest.mark.asyncio
    async def test_transport_failure_without_cache_is_classified(self, facade, transport):
        transport.failures["list"] = "connect ECONNREFUSED 127.0.0.1:3001"

        with pytest.raises(ConnectionFailureError) as exc_info:
            await facade.list()

        assert exc_info.value.correlation_id.startswith("err_")

    @pytest.mark.asyncio
    async def test_get_missing_entity(self, facade):
        with pytest.raises(EntityNotFoundError) as exc_info:
            await facade.get("m9")
        assert exc_info.value.entity_id == "m9"

    @pytest.mark.asyncio
    async def test_search(self, facade, transport):
        found = await facade.search("pintura")
        await facade.search("pintura")

        assert _names(found) == ["Pintura Blanca"]
        assert transport.calls.count("search") == 1

    @pytest.mark.asyncio
    async def test_low_stock_uses_short_ttl(self, facade, transport, clock):
        low = await facade.low_stock()
        await facade.list()
        clock.advance(seconds=31)
        await facade.low_stock()
        await facade.list()

        assert {m.id for m in low} == {"m2", "m3"}
        assert transport.calls.count("low_stock") == 2
        assert transport.calls.count("list") == 1

    @pytest.mark.asyncio
    async def test_statistics(self, facade):
        stats = await facade.statistics()

        assert stats.total_materials == 3
        assert stats.total_inventory_value == pytest.approx(2540.0)
        assert stats.low_stock_count == 1
        assert stats.out_of_stock_count == 1
        assert stats.category_count == 2


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_visible_while_in_flight(self, facade, transport):
        await facade.list()
        release = transport.hold("create")

        task = asyncio.create_task(facade.create(MaterialCreate(name="Yeso", stock=10)))
        await transport.entered["create"].wait()

        during = await facade.list()
        assert _names(during).count("Yeso") == 1
        assert next(m for m in during if m.name == "Yeso").id.startswith("temp_")

        release.set()
        created = await task

        after = await facade.list()
        assert _names(after).count("Yeso") == 1
        assert next(m for m in after if m.name == "Yeso").id == created.id

    @pytest.mark.asyncio
    async def test_failed_create_leaves_no_row(self, facade, ledger):
        with pytest.raises(ValidationFailureError):
            await facade.create({"nombre": ""})

        assert len(ledger) == 0
        assert len(await facade.list()) == 3

    @pytest.mark.asyncio
    async def test_invalid_payload_is_typed(self, facade, transport, ledger):
        with pytest.raises(ValidationFailureError) as exc_info:
            await facade.create({"stock_actual": 3})

        assert exc_info.value.field == "nombre"
        assert "create" not in transport.calls
        assert len(ledger) == 0

    @pytest.mark.asyncio
    async def test_get_returns_pending_create(self, facade, transport):
        release = transport.hold("create")
        task = asyncio.create_task(facade.create(MaterialCreate(name="Yeso")))
        await transport.entered["create"].wait()

        temp_id = next(m.id for m in await facade.list() if m.name == "Yeso")
        pending = await facade.get(temp_id)

        assert pending.name == "Yeso"
        release.set()
        await task


class TestUpdate:
    @pytest.mark.asyncio
    async def test_update_invalidates_detail(self, facade):
        assert (await facade.get("m1")).name == "Cemento Gris"

        updated = await facade.update("m1", MaterialUpdate(name="Cemento Blanco"))

        assert updated.name == "Cemento Blanco"
        assert (await facade.get("m1")).name == "Cemento Blanco"

    @pytest.mark.asyncio
    async def test_unknown_field_is_typed(self, facade, transport, ledger):
        with pytest.raises(ValidationFailureError) as exc_info:
            await facade.update("m1", {"bogus": 1})

        error = exc_info.value
        assert error.field == "bogus"
        assert error.value == 1
        assert isinstance(error, InventoryError)
        assert "update" not in transport.calls
        assert not ledger.has_pending()

    @pytest.mark.asyncio
    async def test_failed_update_rolls_back(self, facade, transport):
        transport.failures["update"] = "Se perdió la conexión: connection lost"

        with pytest.raises(ConnectionFailureError):
            await facade.update("m1", {"nombre": "Cemento Blanco"})

        previous = facade.take_rollback("m1")
        assert previous.name == "Cemento Gris"
        assert facade.take_rollback("m1") is None
        assert "Cemento Gris" in _names(await facade.list())

    @pytest.mark.asyncio
    async def test_update_visible_while_in_flight(self, facade, transport):
        release = transport.hold("update")
        task = asyncio.create_task(facade.update("m3", MaterialUpdate(stock=40)))
        await transport.entered["update"].wait()

        during = {m.id: m for m in await facade.list()}
        assert during["m3"].stock == 40

        release.set()
        await task

    @pytest.mark.asyncio
    async def test_late_success_after_cancel_does_not_commit(
        self, facade, transport, ledger
    ):
        release = transport.hold("update")
        task = asyncio.create_task(facade.update("m1", MaterialUpdate(stock=1)))
        await transport.entered["update"].wait()

        cancelled = facade.rollback_pending_updates()
        release.set()
        await task

        assert [u.id for u in cancelled] == ["m1"]
        assert ledger.get("m1", facade.resource).error == "Operación cancelada"
        assert facade.take_rollback("m1").stock == 25


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete_blocked_by_stock(self, facade, transport, ledger):
        with pytest.raises(StockAvailableError) as exc_info:
            await facade.delete("m1")

        error = exc_info.value
        assert error.stock_actual == 25
        assert error.entity_id == "m1"
        assert error.entity_name == "Cemento Gris"
        assert "delete" not in transport.calls
        assert not ledger.has_pending()

    @pytest.mark.asyncio
    async def test_delete_without_stock(self, facade):
        await facade.list()

        assert await facade.delete("m2") is True

        assert "m2" not in [m.id for m in await facade.list()]
        assert [m.id for m in await facade.list_inactive()] == ["m2"]

    @pytest.mark.asyncio
    async def test_backend_stock_refusal_is_classified(self, facade, transport):
        # Stock changed on the backend after the snapshot was cached
        await facade.get("m2")
        transport._records["m2"]["stock_actual"] = 4

        with pytest.raises(StockAvailableError) as exc_info:
            await facade.delete("m2")

        assert exc_info.value.stock_actual == 4
        assert facade.take_rollback("m2").name == "Ladrillo Rojo"


class TestCacheManagement:
    @pytest.mark.asyncio
    async def test_pending_mutation_bypasses_cache(self, facade, transport):
        await facade.list()
        release = transport.hold("update")
        task = asyncio.create_task(facade.update("m3", MaterialUpdate(stock=40)))
        await transport.entered["update"].wait()

        await facade.search("Cemento")
        await facade.search("Cemento")

        assert transport.calls.count("search") == 2
        release.set()
        await task

    @pytest.mark.asyncio
    async def test_clear_cache(self, facade, transport):
        await facade.list()
        await facade.get("m1")

        assert facade.clear_cache() == 2
        await facade.list()
        assert transport.calls.count("list") == 2

    @pytest.mark.asyncio
    async def test_cache_status(self, facade):
        await facade.list()
        status = facade.cache_status()

        assert status["cache_size"] == 1
        assert status["pending_updates"] == 0
        assert status["cache_keys"][0].startswith("materiaPrima_list_")

    @pytest.mark.asyncio
    async def test_every_failure_is_typed(self, facade, transport):
        for operation in ("list", "get", "update", "search"):
            transport.failures[operation] = "kaboom"

        for call in (
            facade.list(),
            facade.get("m1"),
            facade.update("m1", {"nombre": "x"}),
            facade.search("x"),
        ):
            with pytest.raises(InventoryError):
                await call

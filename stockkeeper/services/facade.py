"""
Data access facades - the API the UI talks to.

Combines:
- CacheStore for query results
- OptimisticLedger for in-flight mutations
- ErrorClassifier for typed failures
- A transport for the backend
"""

from __future__ import annotations

import uuid
from datetime import timedelta
from typing import Any, Awaitable, Callable, Generic, TypeVar

from loguru import logger
from pydantic import BaseModel, ValidationError

from stockkeeper.models import (
    Entity,
    InventoryStatistics,
    Material,
    MaterialCreate,
    MaterialUpdate,
    UpdateModel,
)
from stockkeeper.services.cache import CacheStore
from stockkeeper.services.error_patterns import ErrorClassifier, ErrorContext
from stockkeeper.services.errors import (
    InventoryError,
    Layer,
    StockAvailableError,
    ValidationFailureError,
)
from stockkeeper.services.ledger import OptimisticLedger, OptimisticUpdate, Operation
from stockkeeper.settings import Settings, global_settings
from stockkeeper.transport.base import BaseTransport

E = TypeVar("E", bound=Entity)

# Key families holding views of a collection
VIEW_OPERATIONS = ("list", "inactive", "search", "low_stock")


class EntityFacade(Generic[E]):
    """
    Cached, optimistic access to one entity collection.

    Usage:
        facade = EntityFacade(transport, Category, CategoryCreate, CategoryUpdate,
                              cache=cache, ledger=ledger, classifier=classifier)

        categories = await facade.list()
        try:
            await facade.update("c1", CategoryUpdate(name="Pinturas"))
        except InventoryError as e:
            show(e.user_message, e.suggested_action)
            previous = facade.take_rollback("c1")
    """

    def __init__(
        self,
        transport: BaseTransport,
        model: type[E],
        create_model: type[BaseModel],
        update_model: type[UpdateModel],
        cache: CacheStore,
        ledger: OptimisticLedger,
        classifier: ErrorClassifier,
        settings: Settings | None = None,
    ):
        self._transport = transport
        self._model = model
        self._create_model = create_model
        self._update_model = update_model
        self._cache = cache
        self._ledger = ledger
        self._classifier = classifier
        self._settings = settings or global_settings
        self._rollbacks: dict[str, E] = {}
        self.resource = transport.resource

    # Reads

    async def list(
        self,
        filters: dict[str, Any] | None = None,
        include_inactive: bool = False,
    ) -> list[E]:
        """List entities; inactive ones only when include_inactive is set."""
        scope = "all" if include_inactive else "active"
        key = self._key("list", {"filters": filters or {}, "scope": scope})
        return await self._read(
            key,
            lambda: self._transport.list(filters, include_inactive=include_inactive),
            self._parse_many,
            self._overlay_many,
        )

    async def list_inactive(self, filters: dict[str, Any] | None = None) -> list[E]:
        """List only inactive entities."""
        key = self._key("inactive", {"filters": filters or {}})

        async def fetch() -> list[dict[str, Any]]:
            return await self._transport.list(filters, include_inactive=True)

        def parse(raw: Any) -> list[E]:
            return [item for item in self._parse_many(raw) if not item.is_active]

        return await self._read(key, fetch, parse, self._overlay_many)

    async def get(self, id: str, include_inactive: bool = False) -> E:
        """Get one entity by id."""
        pending = self._ledger.get(id, self.resource)
        if (
            pending is not None
            and pending.operation == Operation.CREATE
            and pending.pending
            and pending.data is not None
        ):
            return pending.data

        scope = "all" if include_inactive else "active"
        key = self._key("get", f"{id}_{scope}")
        return await self._read(
            key,
            lambda: self._transport.get(id, include_inactive=include_inactive),
            self._model.model_validate,
            lambda item: self._ledger.overlay(item, self.resource),
            context=ErrorContext(entity_id=id),
        )

    async def search(self, term: str, limit: int = 50) -> list[E]:
        """Search entities by free text."""
        key = self._key("search", {"term": term, "limit": limit})
        return await self._read(
            key,
            lambda: self._transport.search(term, limit),
            self._parse_many,
            self._overlay_many,
        )

    # Writes

    async def create(self, data: BaseModel | dict[str, Any], actor_id: str | None = None) -> E:
        """Create an entity, showing it optimistically until confirmed."""
        payload = self._create_payload(data)
        temp_id = f"temp_{uuid.uuid4().hex}"
        optimistic = self._optimistic_entity(temp_id, payload)

        update = self._ledger.begin(
            temp_id, Operation.CREATE, data=optimistic, resource=self.resource
        )
        self._invalidate_views()

        try:
            raw = await self._transport.create(payload, actor_id)
            result = self._model.model_validate(raw)
        except Exception as e:
            self._ledger.fail(temp_id, str(e), resource=self.resource, update=update)
            raise self._classify(
                "create", e, ErrorContext(entity_name=_name_of(payload))
            ) from e
        finally:
            self._invalidate_views()

        self._ledger.rekey(temp_id, result.id, data=result, resource=self.resource)
        self._ledger.commit(result.id, resource=self.resource, update=update)
        logger.info(f"[{self.resource}] created {result.id}")
        return result

    async def update(
        self,
        id: str,
        data: UpdateModel | dict[str, Any],
        actor_id: str | None = None,
    ) -> E:
        """Update an entity, merging the change optimistically until confirmed."""
        patch = self._as_patch(data)
        previous = await self._snapshot(id)

        update = self._ledger.begin(
            id,
            Operation.UPDATE,
            data=patch,
            previous_data=previous,
            resource=self.resource,
        )
        self._invalidate_views(id)

        try:
            raw = await self._transport.update(
                id, patch.model_dump(by_alias=True, exclude_unset=True), actor_id
            )
            result = self._model.model_validate(raw)
        except Exception as e:
            self._settle_failure(id, e, update)
            raise self._classify("update", e, self._context(id, previous)) from e
        finally:
            self._invalidate_views(id)

        self._ledger.commit(id, resource=self.resource, update=update)
        logger.info(f"[{self.resource}] updated {id}")
        return result

    async def delete(self, id: str, actor_id: str | None = None) -> bool:
        """Delete an entity, hiding it optimistically until confirmed."""
        previous = await self._snapshot(id)
        self._check_deletable(id, previous)

        update = self._ledger.begin(
            id, Operation.DELETE, previous_data=previous, resource=self.resource
        )
        self._invalidate_views(id)

        try:
            deleted = await self._transport.delete(id, actor_id)
        except Exception as e:
            self._settle_failure(id, e, update)
            raise self._classify("delete", e, self._context(id, previous)) from e
        finally:
            self._invalidate_views(id)

        self._ledger.commit(id, resource=self.resource, update=update)
        logger.info(f"[{self.resource}] deleted {id}")
        return bool(deleted)

    # Rollback state

    def take_rollback(self, id: str) -> E | None:
        """Pop the pre-mutation value of a failed update/delete."""
        return self._rollbacks.pop(id, None)

    def rollback_pending_updates(self, reason: str = "Operación cancelada") -> list[OptimisticUpdate[Any]]:
        """Fail every pending mutation of this collection."""
        cancelled = self._ledger.cancel_pending(reason, resource=self.resource)
        for update in cancelled:
            self._remember_rollback(update)
        if cancelled:
            logger.warning(f"[{self.resource}] rolled back {len(cancelled)} pending updates")
        return cancelled

    # Cache management

    def clear_cache(self) -> int:
        """Drop every cached view of this collection."""
        return self._cache.invalidate(f"{self.resource}_")

    def invalidate_all(self) -> int:
        """Drop all key families of this collection, views and details."""
        removed = sum(
            self._cache.invalidate(self._key(operation))
            for operation in (*VIEW_OPERATIONS, "get")
        )
        logger.info(f"[{self.resource}] invalidated {removed} cache entries")
        return removed

    def cache_status(self) -> dict[str, Any]:
        keys = [k for k in self._cache.keys() if k.startswith(f"{self.resource}_")]
        return {
            "cache_size": len(keys),
            "pending_updates": self._ledger.pending_count(self.resource),
            "cache_keys": keys,
        }

    # Internals

    async def _read(
        self,
        key: str,
        fetch: Callable[[], Awaitable[Any]],
        parse: Callable[[Any], Any],
        overlay: Callable[[Any], Any],
        ttl: timedelta | None = None,
        context: ErrorContext | None = None,
    ) -> Any:
        fallback = self._cache.get_stale(key)

        if self._ledger.has_pending(self.resource):
            self._log(f"pending updates, bypassing cache for {key[:50]}")
        else:
            cached = self._cache.get(key, ttl)
            if cached is not None:
                return overlay(cached)

        try:
            data = parse(await fetch())
        except Exception as e:
            if fallback is not None:
                logger.warning(f"[{self.resource}] transport failed, using cached data: {e}")
                return overlay(fallback)
            raise self._classify("read", e, context) from e

        self._cache.set(key, data, ttl)
        return overlay(data)

    def _key(self, operation: str, params: Any = None) -> str:
        return self._cache.generate_key(self.resource, operation, params)

    def _invalidate_views(self, id: str | None = None) -> None:
        for operation in VIEW_OPERATIONS:
            self._cache.invalidate(self._key(operation))
        if id is not None:
            self._cache.invalidate(self._key("get", f"{id}_"))

    def _parse_many(self, raw: Any) -> list[E]:
        return [self._model.model_validate(item) for item in raw or []]

    def _overlay_many(self, items: list[E]) -> list[E]:
        return self._ledger.apply_to(items, self.resource)

    async def _snapshot(self, id: str) -> E | None:
        """Best-effort read of the current value, used for rollback."""
        try:
            return await self.get(id)
        except InventoryError as e:
            logger.warning(
                f"[{self.resource}] snapshot of {id} unavailable "
                f"({e.type.value}, {e.correlation_id})"
            )
            return None

    def _check_deletable(self, id: str, previous: E | None) -> None:
        """Hook for collection-specific delete guards."""
        return None

    def _settle_failure(
        self, id: str, error: Exception, update: OptimisticUpdate[Any]
    ) -> None:
        failed = self._ledger.fail(id, str(error), resource=self.resource, update=update)
        self._remember_rollback(failed)

    def _remember_rollback(self, failed: OptimisticUpdate[Any] | None) -> None:
        if failed is None or failed.operation == Operation.CREATE:
            return
        if failed.previous_data is not None:
            self._rollbacks[failed.id] = failed.previous_data

    def _context(self, id: str, previous: E | None) -> ErrorContext:
        if previous is None:
            return ErrorContext(entity_id=id)
        return ErrorContext(entity_id=id, entity_name=previous.display_name)

    def _classify(
        self, operation: str, error: Exception, context: ErrorContext | None
    ) -> InventoryError:
        classified = self._classifier.classify(error, context, Layer.SERVICE)
        logger.error(
            f"[{self.resource}] {operation} failed "
            f"({classified.type.value}, {classified.correlation_id}): {classified.message}"
        )
        return classified

    def _create_payload(self, data: BaseModel | dict[str, Any]) -> dict[str, Any]:
        if isinstance(data, dict):
            try:
                data = self._create_model.model_validate(data)
            except ValidationError as e:
                raise self._invalid_input("create", e) from e
        return data.model_dump(by_alias=True, exclude_none=True)

    def _as_patch(self, data: UpdateModel | dict[str, Any]) -> UpdateModel:
        if isinstance(data, dict):
            try:
                return self._update_model.model_validate(data)
            except ValidationError as e:
                raise self._invalid_input("update", e) from e
        return data

    def _invalid_input(self, operation: str, error: ValidationError) -> InventoryError:
        """Turn a rejected payload into a classified ValidationFailureError."""
        details = error.errors()
        first = details[0] if details else {}
        field = ".".join(str(part) for part in first.get("loc", ())) or "desconocido"
        failure = ValidationFailureError(
            field=field,
            value=first.get("input"),
            message=first.get("msg") or str(error),
            layer=Layer.SERVICE,
        )
        return self._classify(operation, failure, ErrorContext(details=str(error)))

    def _optimistic_entity(self, temp_id: str, payload: dict[str, Any]) -> E | None:
        try:
            return self._model.model_validate({**payload, "id": temp_id})
        except ValueError as e:
            self._log(f"no optimistic row for {temp_id}: {e}")
            return None

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._settings.debug:
            logger.debug(f"[{self.resource}] {message}")


class MaterialFacade(EntityFacade[Material]):
    """Materials: adds stock queries, statistics and the stock delete guard."""

    def __init__(
        self,
        transport: BaseTransport,
        cache: CacheStore,
        ledger: OptimisticLedger,
        classifier: ErrorClassifier,
        settings: Settings | None = None,
    ):
        super().__init__(
            transport,
            Material,
            MaterialCreate,
            MaterialUpdate,
            cache=cache,
            ledger=ledger,
            classifier=classifier,
            settings=settings,
        )

    async def list_active(self, filters: dict[str, Any] | None = None) -> list[Material]:
        return await self.list(filters, include_inactive=False)

    async def low_stock(self) -> list[Material]:
        """Materials at or below their minimum stock. Cached briefly."""
        return await self._read(
            self._key("low_stock"),
            self._transport.low_stock,
            self._parse_many,
            self._overlay_many,
            ttl=self._settings.cache_low_stock_ttl,
        )

    async def statistics(self) -> InventoryStatistics:
        """Inventory summary over active materials."""
        materials = await self.list_active()
        stats = InventoryStatistics(
            total_materials=len(materials),
            total_inventory_value=sum((m.unit_cost or 0) * m.stock for m in materials),
            low_stock_count=sum(1 for m in materials if 0 < m.stock <= m.min_stock),
            out_of_stock_count=sum(1 for m in materials if m.stock == 0),
            category_count=len({m.category for m in materials}),
        )
        self._log(f"statistics over {stats.total_materials} active materials")
        return stats

    def _check_deletable(self, id: str, previous: Material | None) -> None:
        if previous is None or previous.stock <= 0:
            return
        stock = int(previous.stock) if float(previous.stock).is_integer() else previous.stock
        logger.warning(
            f"[{self.resource}] delete of {id} blocked: {stock} units in stock"
        )
        raise StockAvailableError(
            stock_actual=stock,
            entity_id=id,
            entity_name=previous.name,
            layer=Layer.SERVICE,
        )

    def _context(self, id: str, previous: Material | None) -> ErrorContext:
        context = super()._context(id, previous)
        # Zero stock is unknown here; the backend message may carry the real count
        if previous is None or previous.stock <= 0:
            return context
        return ErrorContext(
            entity_id=context.entity_id,
            entity_name=context.entity_name,
            stock_actual=int(previous.stock),
        )


def _name_of(payload: dict[str, Any]) -> str | None:
    name = payload.get("nombre")
    return name if isinstance(name, str) and name else None

"""
OptimisticLedger - Tracks in-flight mutations so the UI can show them early.

Lifecycle of an entry:
- begin  → pending
- commit → confirmed, kept for a short grace window, then evicted
- fail   → error set; creates are dropped, updates/deletes keep previous_data
           for the caller's rollback until the grace window ends

Entries are keyed by (resource, id); a later begin() for the same key
replaces the earlier one (last writer wins).
"""

import itertools
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Generic, Iterable, TypeVar

from loguru import logger

T = TypeVar("T")


class Operation(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class OptimisticUpdate(Generic[T]):
    """A locally applied mutation awaiting (or just past) confirmation."""

    id: str
    operation: Operation
    timestamp: datetime
    data: Any = None
    previous_data: T | None = None
    pending: bool = True
    error: str | None = None
    resource: str = ""
    sequence: int = 0
    expires_at: datetime | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class OptimisticLedger:
    """
    Registry of optimistic updates shared by every facade of a session.

    Usage:
        ledger = OptimisticLedger()
        update = ledger.begin("m1", Operation.UPDATE, data=patch, previous_data=item)
        try:
            await transport.update("m1", patch)
            ledger.commit("m1", update=update)
        except Exception as e:
            failed = ledger.fail("m1", str(e), update=update)
            restore(failed.previous_data)
    """

    def __init__(
        self,
        grace: timedelta = timedelta(seconds=2),
        clock: Callable[[], datetime] = datetime.now,
        debug: bool = False,
    ):
        self._entries: dict[tuple[str, str], OptimisticUpdate[Any]] = {}
        self._grace = grace
        self._clock = clock
        self._debug = debug
        self._sequence = itertools.count(1)

    def begin(
        self,
        id: str,
        operation: Operation,
        data: Any = None,
        previous_data: Any = None,
        resource: str = "",
    ) -> OptimisticUpdate[Any]:
        """Register a pending mutation, replacing any entry for the same id."""
        update = OptimisticUpdate(
            id=id,
            operation=Operation(operation),
            timestamp=self._clock(),
            data=data,
            previous_data=previous_data,
            resource=resource,
            sequence=next(self._sequence),
        )
        if (resource, id) in self._entries:
            self._log(f"REPLACE: {resource}/{id} ({operation.value})")
        else:
            self._log(f"BEGIN: {resource}/{id} ({operation.value})")
        self._entries[(resource, id)] = update
        return update

    def commit(
        self,
        id: str,
        resource: str = "",
        update: OptimisticUpdate[Any] | None = None,
    ) -> OptimisticUpdate[Any] | None:
        """
        Mark a mutation as confirmed.

        When ``update`` is given and the ledger no longer holds that exact
        pending entry (superseded or already failed), nothing changes and
        None is returned.
        """
        current = self._current(id, resource, update)
        if current is None:
            self._log(f"STALE COMMIT IGNORED: {resource}/{id}")
            return None

        committed = replace(
            current, pending=False, expires_at=self._clock() + self._grace
        )
        self._entries[(resource, id)] = committed
        self._log(f"COMMIT: {resource}/{id}")
        return committed

    def fail(
        self,
        id: str,
        error_message: str,
        resource: str = "",
        update: OptimisticUpdate[Any] | None = None,
    ) -> OptimisticUpdate[Any] | None:
        """
        Mark a mutation as failed.

        Returns the failed entry so the caller can restore ``previous_data``.
        A failed create is removed right away since it never reached the
        backend.
        """
        current = self._current(id, resource, update)
        if current is None:
            self._log(f"STALE FAILURE IGNORED: {resource}/{id}")
            return None

        failed = replace(
            current,
            pending=False,
            error=error_message,
            expires_at=self._clock() + self._grace,
        )
        if failed.operation == Operation.CREATE:
            del self._entries[(resource, id)]
        else:
            self._entries[(resource, id)] = failed

        logger.warning(
            f"[OptimisticLedger] {failed.operation.value} of {resource}/{id} failed: "
            f"{error_message}"
        )
        return failed

    def rekey(
        self,
        old_id: str,
        new_id: str,
        data: Any = None,
        resource: str = "",
    ) -> OptimisticUpdate[Any] | None:
        """Move an entry (typically a create under a temporary id) to its real id."""
        current = self._entries.pop((resource, old_id), None)
        if current is None:
            return None

        moved = replace(current, id=new_id, data=data if data is not None else current.data)
        self._entries[(resource, new_id)] = moved
        self._log(f"REKEY: {resource}/{old_id} -> {new_id}")
        return moved

    def get(self, id: str, resource: str = "") -> OptimisticUpdate[Any] | None:
        self.prune()
        return self._entries.get((resource, id))

    def has_pending(self, resource: str | None = None) -> bool:
        return any(u.pending for u in self._iter(resource))

    def pending_count(self, resource: str | None = None) -> int:
        return sum(1 for u in self._iter(resource) if u.pending)

    def apply_to(self, collection: Iterable[T], resource: str = "") -> list[T]:
        """
        Overlay live optimistic updates on an authoritative collection.

        Pending creates are appended (once), updates are merged by id and
        pending deletes are removed, in that order. The input is not modified.
        """
        self.prune()
        result = list(collection)
        updates = [u for u in self._iter(resource) if not u.failed]

        for update in updates:
            if update.operation != Operation.CREATE or not update.pending:
                continue
            if update.data is None:
                continue
            if any(_item_id(item) == update.id for item in result):
                continue
            result.append(update.data)

        for update in updates:
            if update.operation != Operation.UPDATE or update.data is None:
                continue
            result = [
                _merge(item, update.data) if _item_id(item) == update.id else item
                for item in result
            ]

        for update in updates:
            if update.operation != Operation.DELETE or not update.pending:
                continue
            result = [item for item in result if _item_id(item) != update.id]

        return result

    def overlay(self, item: T, resource: str = "") -> T:
        """Merge a live update for item's id into item, if there is one."""
        update = self.get(_item_id(item), resource)
        if (
            update is None
            or update.failed
            or update.operation != Operation.UPDATE
            or update.data is None
        ):
            return item
        return _merge(item, update.data)

    def cancel_pending(
        self, reason: str = "Operación cancelada", resource: str | None = None
    ) -> list[OptimisticUpdate[Any]]:
        """Fail every pending entry. Returns the failed entries."""
        cancelled = []
        for update in [u for u in self._iter(resource) if u.pending]:
            failed = self.fail(update.id, reason, resource=update.resource)
            if failed is not None:
                cancelled.append(failed)
        return cancelled

    def prune(self) -> int:
        """Drop entries whose grace window has ended."""
        now = self._clock()
        expired = [
            key
            for key, u in self._entries.items()
            if not u.pending and u.expires_at is not None and now >= u.expires_at
        ]
        for key in expired:
            del self._entries[key]
        if expired:
            self._log(f"PRUNE: {len(expired)} settled entries removed")
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def _current(
        self,
        id: str,
        resource: str,
        update: OptimisticUpdate[Any] | None,
    ) -> OptimisticUpdate[Any] | None:
        current = self._entries.get((resource, id))
        if current is None:
            return None
        if update is not None and (
            current.sequence != update.sequence or not current.pending
        ):
            return None
        return current

    def _iter(self, resource: str | None) -> list[OptimisticUpdate[Any]]:
        return [
            u for u in self._entries.values() if resource is None or u.resource == resource
        ]

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[OptimisticLedger] {message}")


def _item_id(item: Any) -> Any:
    if isinstance(item, dict):
        return item.get("id")
    return getattr(item, "id", None)


def _merge(item: Any, patch: Any) -> Any:
    if hasattr(patch, "apply"):
        return patch.apply(item)
    if isinstance(item, dict) and isinstance(patch, dict):
        return {**item, **patch}
    raise TypeError(
        f"Cannot merge {type(patch).__name__} into {type(item).__name__}"
    )

"""
Base transport interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class TransportError(Exception):
    """Backend failure. Only the human-readable message is meaningful."""

    def __init__(self, message: str, resource: str | None = None):
        self.resource = resource
        super().__init__(message)


class BaseTransport(ABC):
    """
    Abstract bridge to the backend for one entity collection.

    All transports should:
    - Return plain JSON-like dicts (wire field names)
    - Raise TransportError carrying the backend's message on failure
    """

    @property
    @abstractmethod
    def resource(self) -> str:
        """Collection name, also used as cache key namespace."""
        ...

    @abstractmethod
    async def list(
        self, filters: dict[str, Any] | None = None, include_inactive: bool = False
    ) -> list[dict[str, Any]]: ...

    @abstractmethod
    async def get(self, id: str, include_inactive: bool = False) -> dict[str, Any]: ...

    @abstractmethod
    async def create(
        self, data: dict[str, Any], actor_id: str | None = None
    ) -> dict[str, Any]: ...

    @abstractmethod
    async def update(
        self, id: str, data: dict[str, Any], actor_id: str | None = None
    ) -> dict[str, Any]: ...

    @abstractmethod
    async def delete(self, id: str, actor_id: str | None = None) -> bool: ...

    @abstractmethod
    async def search(self, term: str, limit: int = 50) -> list[dict[str, Any]]: ...

    @abstractmethod
    async def low_stock(self) -> list[dict[str, Any]]: ...

    async def close(self) -> None:
        """Release transport resources."""
        return None

"""
Service layer - client-side data consistency for the inventory UI.

Provides:
- CacheStore: TTL cache for query results
- OptimisticLedger: In-flight mutations with rollback data
- ErrorClassifier: Opaque backend messages to typed errors
- EntityFacade / MaterialFacade: Cached, optimistic data access
- CacheSweeper: Periodic eviction of expired entries
"""

from stockkeeper.services.errors import (
    ConnectionFailureError,
    EntityNotFoundError,
    ErrorType,
    GenericError,
    InventoryError,
    Layer,
    Severity,
    StockAvailableError,
    ValidationFailureError,
    is_inventory_error,
)
from stockkeeper.services.cache import CacheEntry, CacheStats, CacheStore
from stockkeeper.services.error_patterns import (
    DEFAULT_PATTERNS,
    ErrorClassifier,
    ErrorContext,
    ErrorPattern,
    extract_context,
)
from stockkeeper.services.ledger import Operation, OptimisticLedger, OptimisticUpdate
from stockkeeper.services.facade import EntityFacade, MaterialFacade
from stockkeeper.services.sweeper import CacheSweeper

__all__ = [
    # Errors
    "InventoryError",
    "StockAvailableError",
    "EntityNotFoundError",
    "ConnectionFailureError",
    "ValidationFailureError",
    "GenericError",
    "ErrorType",
    "Layer",
    "Severity",
    "is_inventory_error",
    # Cache
    "CacheStore",
    "CacheEntry",
    "CacheStats",
    # Classification
    "DEFAULT_PATTERNS",
    "ErrorClassifier",
    "ErrorContext",
    "ErrorPattern",
    "extract_context",
    # Ledger
    "Operation",
    "OptimisticLedger",
    "OptimisticUpdate",
    # Facades
    "EntityFacade",
    "MaterialFacade",
    # Sweeper
    "CacheSweeper",
]

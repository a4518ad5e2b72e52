"""Client-side data consistency layer for the inventory desktop app."""

from stockkeeper.session import InventorySession

__all__ = ["InventorySession"]

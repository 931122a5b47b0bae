"""Inventory stores for berth."""

from berth.inventory.base import InventoryStore
from berth.inventory.memory import MemoryInventory
from berth.inventory.sqlite import SqliteInventory
from berth.models.config import InventoryConfig

__all__ = [
    "InventoryStore",
    "MemoryInventory",
    "SqliteInventory",
    "create_store",
]


def create_store(config: InventoryConfig) -> InventoryStore:
    """Build the store selected by configuration."""
    if config.backend == "memory":
        return MemoryInventory()
    return SqliteInventory(config.path)

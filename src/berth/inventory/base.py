"""Base inventory store interface."""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import List

from berth.models.container import InventoryRecord


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class InventoryStore(ABC):
    """Keyed repository of inventory records.

    Records are keyed by logical name; at most one record exists per name.
    The store owns record ids and timestamps.
    """

    async def initialize(self) -> None:
        """Prepare the backing storage."""
        return None

    @abstractmethod
    async def find_all(self) -> List[InventoryRecord]:
        """Return every record."""
        pass

    @abstractmethod
    async def find_by_key(self, name: str) -> InventoryRecord:
        """Return the record for name or raise RecordNotFound."""
        pass

    @abstractmethod
    async def create(self, record: InventoryRecord) -> InventoryRecord:
        """Insert a new record, raising DuplicateRecord if the name is taken."""
        pass

    @abstractmethod
    async def save(self, record: InventoryRecord) -> InventoryRecord:
        """Persist changes to an existing record."""
        pass

    @abstractmethod
    async def delete(self, record: InventoryRecord) -> None:
        """Delete a record."""
        pass

    async def close(self) -> None:
        """Release the backing storage."""
        return None

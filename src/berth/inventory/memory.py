"""
In memory inventory store.

Useful for tests and for running the agent without persistence. Records are
copied in and out so callers never share state with the store.
"""

import asyncio
import itertools
from dataclasses import replace
from typing import Dict, List

from berth.errors import DuplicateRecord, RecordNotFound
from berth.inventory.base import InventoryStore, utc_now
from berth.models.container import InventoryRecord


class MemoryInventory(InventoryStore):
    """Inventory records kept in a dict keyed by name."""

    def __init__(self):
        self._records: Dict[str, InventoryRecord] = {}
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    async def find_all(self) -> List[InventoryRecord]:
        return [replace(r) for r in sorted(self._records.values(), key=lambda r: r.id)]

    async def find_by_key(self, name: str) -> InventoryRecord:
        record = self._records.get(name)
        if record is None:
            raise RecordNotFound(name)
        return replace(record)

    async def create(self, record: InventoryRecord) -> InventoryRecord:
        async with self._lock:
            if record.name in self._records:
                raise DuplicateRecord(record.name)
            now = utc_now()
            record.id = next(self._ids)
            record.created_at = now
            record.updated_at = now
            self._records[record.name] = replace(record)
        return record

    async def save(self, record: InventoryRecord) -> InventoryRecord:
        async with self._lock:
            current = self._find_by_id(record.id)
            other = self._records.get(record.name)
            if other is not None and other.id != record.id:
                raise DuplicateRecord(record.name)
            if current.name != record.name:
                del self._records[current.name]
            record.created_at = current.created_at
            record.updated_at = utc_now()
            self._records[record.name] = replace(record)
        return record

    async def delete(self, record: InventoryRecord) -> None:
        async with self._lock:
            current = self._find_by_id(record.id)
            del self._records[current.name]

    def _find_by_id(self, record_id) -> InventoryRecord:
        for r in self._records.values():
            if r.id == record_id:
                return r
        raise RecordNotFound(record_id)

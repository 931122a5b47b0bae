"""SQLite backed inventory store."""

import asyncio
import logging
import os
import sqlite3
from datetime import datetime
from typing import List, Optional

from berth.errors import DuplicateRecord, RecordNotFound, StoreFailure
from berth.inventory.base import InventoryStore, utc_now
from berth.models.container import InventoryRecord


logger = logging.getLogger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS containers (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  name TEXT NOT NULL UNIQUE,
  image TEXT NOT NULL,
  runtime_id TEXT NOT NULL DEFAULT '',
  ports TEXT NOT NULL DEFAULT '',
  status TEXT NOT NULL,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL
);
"""


def resolve_db_path(path: str) -> str:
    """Return a file path usable by sqlite.

    A directory (for example a bind mount created by docker for a missing
    file) gets the database placed inside it.
    """
    if path == ":memory:":
        return path

    p = os.path.abspath(path)
    if os.path.isdir(p):
        p = os.path.join(p, "berth.db")

    parent = os.path.dirname(p)
    if parent and not os.path.exists(parent):
        os.makedirs(parent, exist_ok=True)

    return p


def _row_to_record(row: sqlite3.Row) -> InventoryRecord:
    return InventoryRecord(
        id=row["id"],
        name=row["name"],
        image=row["image"],
        runtime_id=row["runtime_id"],
        ports=row["ports"],
        status=row["status"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


class SqliteInventory(InventoryStore):
    """Inventory records in a single sqlite table.

    One connection is shared; sqlite calls run in worker threads and are
    serialized by a lock.
    """

    def __init__(self, path: str):
        self.path = resolve_db_path(path)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = asyncio.Lock()

    def _connect(self) -> sqlite3.Connection:
        if self._conn is None:
            conn = sqlite3.connect(self.path, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            self._conn = conn
        return self._conn

    async def _run(self, operation: str, fn, *args):
        async with self._lock:
            try:
                return await asyncio.to_thread(fn, *args)
            except sqlite3.Error as e:
                raise StoreFailure(operation, e) from e

    async def initialize(self) -> None:
        """Create the table if it does not exist."""

        def _init():
            with self._connect() as conn:
                conn.executescript(SCHEMA)

        await self._run("initialize", _init)
        logger.debug(f"Inventory database ready at {self.path}")

    async def find_all(self) -> List[InventoryRecord]:
        def _find_all():
            rows = self._connect().execute("SELECT * FROM containers ORDER BY id").fetchall()
            return [_row_to_record(r) for r in rows]

        return await self._run("find_all", _find_all)

    async def find_by_key(self, name: str) -> InventoryRecord:
        def _find():
            return self._connect().execute("SELECT * FROM containers WHERE name=?", (name,)).fetchone()

        row = await self._run("find", _find)
        if row is None:
            raise RecordNotFound(name)
        return _row_to_record(row)

    async def create(self, record: InventoryRecord) -> InventoryRecord:
        now = utc_now()

        def _insert():
            with self._connect() as conn:
                cur = conn.execute(
                    """
                    INSERT INTO containers (name, image, runtime_id, ports, status, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record.name,
                        record.image,
                        record.runtime_id,
                        record.ports,
                        record.status.value,
                        now.isoformat(),
                        now.isoformat(),
                    ),
                )
                return cur.lastrowid

        try:
            record_id = await self._run("create", _insert)
        except StoreFailure as e:
            if isinstance(e.cause, sqlite3.IntegrityError):
                raise DuplicateRecord(record.name) from e
            raise

        record.id = record_id
        record.created_at = now
        record.updated_at = now
        return record

    async def save(self, record: InventoryRecord) -> InventoryRecord:
        now = utc_now()

        def _update():
            with self._connect() as conn:
                cur = conn.execute(
                    """
                    UPDATE containers
                    SET name=?, image=?, runtime_id=?, ports=?, status=?, updated_at=?
                    WHERE id=?
                    """,
                    (
                        record.name,
                        record.image,
                        record.runtime_id,
                        record.ports,
                        record.status.value,
                        now.isoformat(),
                        record.id,
                    ),
                )
                return cur.rowcount

        try:
            updated = await self._run("save", _update)
        except StoreFailure as e:
            if isinstance(e.cause, sqlite3.IntegrityError):
                raise DuplicateRecord(record.name) from e
            raise

        if not updated:
            raise RecordNotFound(record.id)
        record.updated_at = now
        return record

    async def delete(self, record: InventoryRecord) -> None:
        def _delete():
            with self._connect() as conn:
                return conn.execute("DELETE FROM containers WHERE id=?", (record.id,)).rowcount

        if not await self._run("delete", _delete):
            raise RecordNotFound(record.id)

    async def close(self) -> None:
        if self._conn is not None:
            conn, self._conn = self._conn, None
            await asyncio.to_thread(conn.close)

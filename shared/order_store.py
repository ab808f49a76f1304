"""
Insert-only order store.

Orders are appended as JSON lines to a single file, one record per confirmed
order. Without a path the store keeps records in memory only (tests, demos).

Design decisions:
- Append-only: there is no update or delete, an order is immutable once written
- Writes are serialized with an asyncio.Lock and run in a worker thread so
  file I/O never blocks the event loop
- Every failure surfaces as PersistenceError so the orchestrator can abort
  before any notification is attempted
- One instance per process, owned by the API service container
- Money is stored as decimal strings ("500", "12.50") so amounts read back
  exactly; convert with Decimal(record["total"])
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional
from uuid import uuid4

from shared.errors import PersistenceError

logger = logging.getLogger("order_store")


class OrderStore:
    """
    Persistence boundary for confirmed orders.

    `insert_order` returns the generated record id (a 24-char hex string,
    like a document-store object id).
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path is not None else None
        self._records: Optional[dict[str, dict]] = None
        self._lock = asyncio.Lock()

    # =========================================================================
    # Loading (lazy)
    # =========================================================================

    def _read_file(self) -> dict[str, dict]:
        records: dict[str, dict] = {}
        if self.path is None or not self.path.exists():
            return records
        with open(self.path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line:
                    record = json.loads(line)
                    records[record["_id"]] = record
        return records

    def _ensure_loaded(self) -> dict[str, dict]:
        if self._records is None:
            self._records = self._read_file()
        return self._records

    def _append_line(self, record: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(json.dumps(record, ensure_ascii=False) + "\n")

    # =========================================================================
    # Operations
    # =========================================================================

    async def insert_order(self, record: dict) -> str:
        """
        Append an order record and return its id.

        Raises:
            PersistenceError: If the record cannot be serialized or written.
        """
        order_id = uuid4().hex[:24]
        stored = {"_id": order_id, **record}

        async with self._lock:
            try:
                records = await asyncio.to_thread(self._ensure_loaded)
                if self.path is not None:
                    await asyncio.to_thread(self._append_line, stored)
            except (OSError, TypeError, ValueError) as e:
                logger.error(f"Failed to persist order: {e}")
                raise PersistenceError(f"Failed to save order: {e}") from e
            records[order_id] = stored

        logger.info(f"Order {order_id} persisted")
        return order_id

    def get_order(self, order_id: str) -> Optional[dict]:
        """Get an order record by id."""
        return self._ensure_loaded().get(order_id)

    def list_orders(self) -> list[dict]:
        """All stored records, oldest first."""
        return list(self._ensure_loaded().values())

    def count(self) -> int:
        return len(self._ensure_loaded())


"""Process-local record store for tests and dry runs."""
import copy
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .base import (
    PRIMARY_KEY,
    Operation,
    PutOperation,
    RecordStore,
    StoreWriteError,
)

logger = logging.getLogger(__name__)

Tables = Dict[str, Dict[str, Dict[str, Any]]]


class InMemoryRecordStore(RecordStore):
    """Keeps each table as an insertion-ordered dict of items by id."""

    def __init__(self, tables: Optional[Tables] = None):
        self._tables: Tables = copy.deepcopy(tables) if tables else {}

    def load(self, table: str, items: Iterable[Dict[str, Any]]) -> None:
        """Seed ``table`` without going through the async API."""
        rows = self._tables.setdefault(table, {})
        for item in items:
            rows[item[PRIMARY_KEY]] = dict(item)

    def items(self, table: str) -> List[Dict[str, Any]]:
        return [dict(item) for item in self._tables.get(table, {}).values()]

    async def query_by_partition(
        self, table: str, index_name: str, key_name: str, key_value: str
    ) -> List[Dict[str, Any]]:
        return [
            dict(item)
            for item in self._tables.get(table, {}).values()
            if item.get(key_name) == key_value
        ]

    async def put(self, table: str, item: Dict[str, Any]) -> None:
        _apply_put(self._tables, table, item)

    async def update(
        self, table: str, key: str, status: str, actor: str, timestamp: str
    ) -> None:
        _apply_update(self._tables, table, key, status, actor, timestamp)

    async def transact(self, operations: Sequence[Operation]) -> None:
        staged = copy.deepcopy(self._tables)
        for operation in operations:
            if isinstance(operation, PutOperation):
                _apply_put(staged, operation.table, operation.item)
            else:
                _apply_update(
                    staged,
                    operation.table,
                    operation.key,
                    operation.status,
                    operation.actor,
                    operation.timestamp,
                )
        self._tables = staged
        logger.debug(f"Committed {len(operations)} operation(s)")


def _apply_put(tables: Tables, table: str, item: Dict[str, Any]) -> None:
    key = item.get(PRIMARY_KEY)
    if not key:
        raise StoreWriteError(f"Could not put record into {table}: item has no {PRIMARY_KEY}")
    tables.setdefault(table, {})[key] = dict(item)


def _apply_update(
    tables: Tables, table: str, key: str, status: str, actor: str, timestamp: str
) -> None:
    existing = tables.get(table, {}).get(key)
    if existing is None:
        raise StoreWriteError(f"Could not update record {key} in {table}: record does not exist")
    existing.update({"status": status, "modifiedDate": timestamp, "modifiedBy": actor})

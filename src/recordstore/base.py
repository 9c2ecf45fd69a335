"""Record store contract shared by every backend.

Two flat tables are kept by the manifest, both keyed by a string ``id``:

- deployable: ``{version}|{deployable}`` with a status and audit fields
- deployed: ``{env}|{deployable}`` pointing at the version last deployed there

Secondary lookups go through named indexes so that a backend which needs
them (DynamoDB global secondary indexes) can route the query.
"""
import abc
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Union

PRIMARY_KEY = "id"

VERSION_INDEX = "version-index"
DEPLOYABLE_INDEX = "deployable-index"
ENV_INDEX = "env-index"


class StoreError(Exception):
    """Base class for backend failures."""


class StoreReadError(StoreError):
    """A query against the backend failed."""


class StoreWriteError(StoreError):
    """A put or update was rejected by the backend."""


@dataclass(frozen=True)
class PutOperation:
    """Unconditional upsert of ``item`` keyed by its ``id``."""

    table: str
    item: Dict[str, Any]


@dataclass(frozen=True)
class UpdateOperation:
    """Status change on an existing item; fails if ``key`` is missing."""

    table: str
    key: str
    status: str
    actor: str
    timestamp: str

    def fields(self) -> Dict[str, str]:
        return {
            "status": self.status,
            "modifiedDate": self.timestamp,
            "modifiedBy": self.actor,
        }


Operation = Union[PutOperation, UpdateOperation]


class RecordStore(abc.ABC):
    """Async key-value table abstraction used by the manifest."""

    @abc.abstractmethod
    async def query_by_partition(
        self, table: str, index_name: str, key_name: str, key_value: str
    ) -> List[Dict[str, Any]]:
        """Return every item whose ``key_name`` equals ``key_value``.

        Implementations page through the whole result set; callers never
        see a partial page.
        """

    @abc.abstractmethod
    async def put(self, table: str, item: Dict[str, Any]) -> None:
        """Upsert ``item`` by primary key."""

    @abc.abstractmethod
    async def update(
        self, table: str, key: str, status: str, actor: str, timestamp: str
    ) -> None:
        """Set status and audit fields on an existing item."""

    async def transact(self, operations: Sequence[Operation]) -> None:
        """Apply ``operations`` in order.

        Backends with native multi-item transactions override this so the
        whole batch commits or fails together. This fallback is sequential.
        """
        for operation in operations:
            if isinstance(operation, PutOperation):
                await self.put(operation.table, operation.item)
            else:
                await self.update(
                    operation.table,
                    operation.key,
                    operation.status,
                    operation.actor,
                    operation.timestamp,
                )

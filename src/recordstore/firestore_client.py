"""
Firestore-based record store.

Each table is a collection and the record id is the document ID:
- deployable: {version}|{deployable} -> version, deployable, status,
  modifiedDate, modifiedBy
- deployed: {env}|{deployable} -> env, deployable, version, deployedDate,
  deployedBy

Firestore indexes single fields automatically, so index names are only
carried into log context.
"""

import logging
import os
from typing import Any, Dict, List, Optional, Sequence

from google.api_core import exceptions as gcp_exceptions
from google.cloud.firestore_v1.base_query import FieldFilter

from .base import (
    PRIMARY_KEY,
    Operation,
    PutOperation,
    RecordStore,
    StoreError,
    StoreReadError,
    StoreWriteError,
)

logger = logging.getLogger(__name__)


class FirestoreRecordStore(RecordStore):
    """Record store over the Firestore async client."""

    def __init__(self, client=None, project: Optional[str] = None):
        self._client = client
        self._project = project

    def _get_client(self):
        """Get Firestore client, initializing if needed."""
        if self._client is None:
            try:
                from google.cloud import firestore

                project = (
                    self._project
                    or os.getenv("GOOGLE_CLOUD_PROJECT")
                    or os.getenv("GCP_PROJECT")
                )
                if project:
                    self._client = firestore.AsyncClient(project=project)
                else:
                    self._client = firestore.AsyncClient()
            except Exception as e:
                logger.error(f"Failed to initialize Firestore: {e}")
                raise StoreError(f"Failed to initialize Firestore: {e}") from e
        return self._client

    async def query_by_partition(
        self, table: str, index_name: str, key_name: str, key_value: str
    ) -> List[Dict[str, Any]]:
        db = self._get_client()
        query = db.collection(table).where(filter=FieldFilter(key_name, "==", key_value))

        records = []
        try:
            async for doc in query.stream():
                data = doc.to_dict()
                data.setdefault(PRIMARY_KEY, doc.id)
                records.append(data)
        except gcp_exceptions.GoogleAPICallError as e:
            raise StoreReadError(
                f"Could not query {table} ({index_name}) for {key_name}: {key_value}; error: {e}"
            ) from e

        logger.debug(
            f"Queried {table}: {len(records)} record(s)",
            extra={"table": table, "index": index_name, key_name: key_value},
        )
        return records

    async def put(self, table: str, item: Dict[str, Any]) -> None:
        db = self._get_client()
        doc_ref = db.collection(table).document(item[PRIMARY_KEY])
        try:
            await doc_ref.set(item)
        except gcp_exceptions.GoogleAPICallError as e:
            raise StoreWriteError(f"Could not put record {item[PRIMARY_KEY]} into {table}; error: {e}") from e

    async def update(
        self, table: str, key: str, status: str, actor: str, timestamp: str
    ) -> None:
        db = self._get_client()
        doc_ref = db.collection(table).document(key)
        try:
            await doc_ref.update(
                {"status": status, "modifiedDate": timestamp, "modifiedBy": actor}
            )
        except gcp_exceptions.NotFound as e:
            raise StoreWriteError(f"Could not update record {key} in {table}: record does not exist") from e
        except gcp_exceptions.GoogleAPICallError as e:
            raise StoreWriteError(f"Could not update record {key} in {table}; error: {e}") from e

    async def transact(self, operations: Sequence[Operation]) -> None:
        """Commit all operations in a single write batch (all or nothing)."""
        db = self._get_client()
        batch = db.batch()
        for operation in operations:
            if isinstance(operation, PutOperation):
                doc_ref = db.collection(operation.table).document(operation.item[PRIMARY_KEY])
                batch.set(doc_ref, operation.item)
            else:
                doc_ref = db.collection(operation.table).document(operation.key)
                batch.update(doc_ref, operation.fields())

        try:
            await batch.commit()
        except gcp_exceptions.NotFound as e:
            raise StoreWriteError(f"Could not commit batch: a record to update does not exist; error: {e}") from e
        except gcp_exceptions.GoogleAPICallError as e:
            raise StoreWriteError(f"Could not commit batch of {len(operations)} operation(s); error: {e}") from e

        logger.info(
            f"Committed batch of {len(operations)} operation(s)",
            extra={"operations": len(operations)},
        )

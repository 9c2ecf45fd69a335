"""
DynamoDB-based record store.

Tables are keyed by ``id`` and expose one global secondary index per
lookup attribute (``version-index``, ``deployable-index``,
``env-index``). boto3 is blocking, so every call runs in a worker thread.
"""

import asyncio
import logging
import os
from typing import Any, Dict, List, Optional, Sequence

import boto3
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .base import (
    PRIMARY_KEY,
    Operation,
    PutOperation,
    RecordStore,
    StoreReadError,
    StoreWriteError,
    UpdateOperation,
)

logger = logging.getLogger(__name__)

DYNAMODB_REGION: str = os.environ.get("AWS_REGION", "us-east-1")

# TransactWriteItems accepts at most this many actions per call.
MAX_TRANSACT_ITEMS = 100

_SER = TypeSerializer()
_DESER = TypeDeserializer()

_UPDATE_EXPRESSION = "SET #status = :status, modifiedDate = :modifiedDate, modifiedBy = :modifiedBy"


def _to_attributes(item: Dict[str, Any]) -> Dict[str, Any]:
    return {name: _SER.serialize(value) for name, value in item.items()}


def _from_attributes(raw: Dict[str, Any]) -> Dict[str, Any]:
    # Manifest items only hold string attributes.
    return {name: _DESER.deserialize(value) for name, value in raw.items()}


def _error_code(err: Exception) -> str:
    if isinstance(err, ClientError):
        return err.response.get("Error", {}).get("Code", "")
    return ""


class DynamoDBRecordStore(RecordStore):
    """Record store over the low-level boto3 DynamoDB client."""

    def __init__(
        self,
        client=None,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
    ):
        self._ddb = client
        self._region = region
        self._endpoint_url = endpoint_url

    def _get_ddb(self):
        """Get (or create) the DynamoDB client."""
        if self._ddb is None:
            self._ddb = boto3.client(
                "dynamodb",
                region_name=self._region or DYNAMODB_REGION,
                endpoint_url=self._endpoint_url,
                config=Config(retries={"max_attempts": 5, "mode": "standard"}),
            )
        return self._ddb

    def _query_all(
        self, table: str, index_name: str, key_name: str, key_value: str
    ) -> List[Dict[str, Any]]:
        ddb = self._get_ddb()
        kwargs: Dict[str, Any] = {
            "TableName": table,
            "IndexName": index_name,
            "KeyConditionExpression": "#key = :value",
            "ExpressionAttributeNames": {"#key": key_name},
            "ExpressionAttributeValues": {":value": _SER.serialize(key_value)},
        }
        items: List[Dict[str, Any]] = []
        while True:
            resp = ddb.query(**kwargs)
            items.extend(_from_attributes(raw) for raw in resp.get("Items", []))
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                return items
            kwargs["ExclusiveStartKey"] = last_key

    async def query_by_partition(
        self, table: str, index_name: str, key_name: str, key_value: str
    ) -> List[Dict[str, Any]]:
        try:
            return await asyncio.to_thread(self._query_all, table, index_name, key_name, key_value)
        except (ClientError, BotoCoreError) as e:
            raise StoreReadError(
                f"Could not query {table} ({index_name}) for {key_name}: {key_value}; error: {e}"
            ) from e

    async def put(self, table: str, item: Dict[str, Any]) -> None:
        ddb = self._get_ddb()
        try:
            await asyncio.to_thread(
                ddb.put_item,
                TableName=table,
                Item=_to_attributes(item),
            )
        except (ClientError, BotoCoreError) as e:
            raise StoreWriteError(f"Could not put record {item.get(PRIMARY_KEY)} into {table}; error: {e}") from e

    async def update(
        self, table: str, key: str, status: str, actor: str, timestamp: str
    ) -> None:
        operation = UpdateOperation(table, key, status, actor, timestamp)
        ddb = self._get_ddb()
        try:
            await asyncio.to_thread(ddb.update_item, **self._update_params(operation))
        except ClientError as e:
            if _error_code(e) == "ConditionalCheckFailedException":
                raise StoreWriteError(f"Could not update record {key} in {table}: record does not exist") from e
            raise StoreWriteError(f"Could not update record {key} in {table}; error: {e}") from e
        except BotoCoreError as e:
            raise StoreWriteError(f"Could not update record {key} in {table}; error: {e}") from e

    async def transact(self, operations: Sequence[Operation]) -> None:
        actions = [self._transact_action(operation) for operation in operations]
        chunks = [
            actions[i:i + MAX_TRANSACT_ITEMS]
            for i in range(0, len(actions), MAX_TRANSACT_ITEMS)
        ]
        if len(chunks) > 1:
            logger.warning(
                f"Batch of {len(actions)} operations exceeds {MAX_TRANSACT_ITEMS}; "
                f"committing as {len(chunks)} separate transactions"
            )

        ddb = self._get_ddb()
        for chunk in chunks:
            try:
                await asyncio.to_thread(ddb.transact_write_items, TransactItems=chunk)
            except (ClientError, BotoCoreError) as e:
                raise StoreWriteError(
                    f"Could not commit transaction of {len(chunk)} operation(s); error: {e}"
                ) from e

    def _update_params(self, operation: UpdateOperation) -> Dict[str, Any]:
        return {
            "TableName": operation.table,
            "Key": {PRIMARY_KEY: _SER.serialize(operation.key)},
            "UpdateExpression": _UPDATE_EXPRESSION,
            "ConditionExpression": "attribute_exists(#id)",
            "ExpressionAttributeNames": {"#status": "status", "#id": PRIMARY_KEY},
            "ExpressionAttributeValues": {
                ":status": _SER.serialize(operation.status),
                ":modifiedDate": _SER.serialize(operation.timestamp),
                ":modifiedBy": _SER.serialize(operation.actor),
            },
        }

    def _transact_action(self, operation: Operation) -> Dict[str, Any]:
        if isinstance(operation, PutOperation):
            return {
                "Put": {
                    "TableName": operation.table,
                    "Item": _to_attributes(operation.item),
                }
            }
        return {"Update": self._update_params(operation)}

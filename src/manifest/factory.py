"""Builds a DeploymentManifest wired to a concrete record store."""
import logging
from typing import Optional

from recordstore import InMemoryRecordStore, RecordStore

from .config import STORE_BACKENDS, Config
from .errors import ValidationError
from .service import DeploymentManifest

logger = logging.getLogger(__name__)


def build_record_store(
    backend: Optional[str] = None,
    project: Optional[str] = None,
    region: Optional[str] = None,
    endpoint_url: Optional[str] = None,
) -> RecordStore:
    backend = (backend or Config.STORE_BACKEND).lower()
    if backend == "firestore":
        from recordstore.firestore_client import FirestoreRecordStore

        return FirestoreRecordStore(project=project or Config.GOOGLE_CLOUD_PROJECT)
    if backend == "dynamodb":
        from recordstore.dynamodb_client import DynamoDBRecordStore

        return DynamoDBRecordStore(
            region=region or Config.AWS_REGION,
            endpoint_url=endpoint_url or Config.DYNAMODB_ENDPOINT_URL,
        )
    if backend == "memory":
        logger.warning("Using in-memory record store; nothing will be persisted")
        return InMemoryRecordStore()
    raise ValidationError(
        f"Unknown store backend: {backend}; expected one of {', '.join(STORE_BACKENDS)}"
    )


def build_manifest_service(
    deployable_table: Optional[str] = None,
    deployed_table: Optional[str] = None,
    backend: Optional[str] = None,
    store: Optional[RecordStore] = None,
    project: Optional[str] = None,
    region: Optional[str] = None,
    endpoint_url: Optional[str] = None,
) -> DeploymentManifest:
    """Create the manifest service; explicit arguments win over Config."""
    if store is None:
        store = build_record_store(backend, project=project, region=region, endpoint_url=endpoint_url)

    deployable_table = deployable_table or Config.DEPLOYABLE_TABLE
    deployed_table = deployed_table or Config.DEPLOYED_TABLE
    logger.info(
        f"Using {type(store).__name__} with tables {deployable_table} / {deployed_table}",
        extra={"deployable_table": deployable_table, "deployed_table": deployed_table},
    )
    return DeploymentManifest(store, deployable_table, deployed_table)

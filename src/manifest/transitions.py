"""Status transitions applied when a deployable is marked deployed.

Per deployable the lifecycle runs:
available -> pending -> prod -> rollback -> decommissioned
with rejected set only by mark_rejected. Rejected is terminal: a rejected
version cannot be deployed anywhere.

A production deployment cycles three records in a fixed order: the current
rollback holder is decommissioned, the current prod holder becomes
rollback, and the target version becomes prod. Any other deployment only
moves the target version to pending, whatever its current status.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from recordstore import DEPLOYABLE_INDEX, RecordStore, UpdateOperation

from .errors import CorruptedStateError, InvariantViolation
from .models import DeployableRecord, DeploymentStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatusChange:
    record_id: str
    deployable: str
    version: str
    from_status: DeploymentStatus
    to_status: DeploymentStatus


def relevant_records(records: Sequence[DeployableRecord], version: str) -> List[DeployableRecord]:
    """Keep records matching ``version`` or currently holding rollback or prod."""
    return [
        record
        for record in records
        if record.version == version
        or record.status in (DeploymentStatus.ROLLBACK, DeploymentStatus.PROD)
    ]


def _single(records: List[DeployableRecord], deployable: str, subset: str) -> Optional[DeployableRecord]:
    if len(records) > 1:
        message = (
            f"plan_transitions error: multiple {subset} records ({len(records)}) found "
            f"for deployable {deployable} when only one expected: "
            f"{', '.join(record.id for record in records)}"
        )
        logger.error(message, extra={"deployable": deployable, "subset": subset})
        raise CorruptedStateError(message, deployable=deployable, count=len(records))
    return records[0] if records else None


def plan_transitions(
    deployable: str,
    version: str,
    records: Sequence[DeployableRecord],
    deployed_to_prod: bool,
) -> List[StatusChange]:
    """Work out the status changes for one deployable, without writing.

    Every subset is checked before anything is planned, so a corrupted
    deployable yields an error and no changes at all. Changes are collapsed
    per record: when a record falls in two subsets (re-promoting the
    rollback version) only its final status is kept.
    """
    relevant = relevant_records(records, version)
    rollback = _single(
        [r for r in relevant if r.status == DeploymentStatus.ROLLBACK], deployable, "rollback"
    )
    prod = _single([r for r in relevant if r.status == DeploymentStatus.PROD], deployable, "prod")
    target = _single([r for r in relevant if r.version == version], deployable, "version")

    if target is None:
        message = f"plan_transitions error: no record found for deployable {deployable} / version {version}"
        logger.error(message, extra={"deployable": deployable, "version": version})
        raise InvariantViolation(message, partition=f"version: {version}", names=[deployable])

    if target.status == DeploymentStatus.REJECTED:
        message = f"plan_transitions error: deployable {deployable} / version {version} is rejected and cannot be deployed"
        logger.error(message, extra={"deployable": deployable, "version": version})
        raise InvariantViolation(message, partition=f"version: {version}", names=[deployable])

    changes: Dict[str, StatusChange] = {}

    def move(record: DeployableRecord, status: DeploymentStatus) -> None:
        changes[record.id] = StatusChange(
            record_id=record.id,
            deployable=deployable,
            version=record.version,
            from_status=record.status,
            to_status=status,
        )

    if not deployed_to_prod:
        move(target, DeploymentStatus.PENDING)
        return list(changes.values())

    if target.status == DeploymentStatus.PROD:
        logger.info(
            f"{deployable}@{version} is already prod; nothing to cycle",
            extra={"deployable": deployable, "version": version},
        )
        return []

    if rollback is not None:
        move(rollback, DeploymentStatus.DECOMMISSIONED)
    if prod is not None:
        move(prod, DeploymentStatus.ROLLBACK)
    move(target, DeploymentStatus.PROD)
    return list(changes.values())


class StatusTransitionEngine:
    """Fetches a deployable's relevant records and turns plans into updates."""

    def __init__(self, store: RecordStore, deployable_table: str):
        self.store = store
        self.deployable_table = deployable_table

    async def fetch_records(self, deployable: str) -> List[DeployableRecord]:
        items = await self.store.query_by_partition(
            self.deployable_table, DEPLOYABLE_INDEX, "deployable", deployable
        )
        return [DeployableRecord.from_item(item) for item in items]

    async def plan(
        self, deployable: str, version: str, deployed_to_prod: bool
    ) -> List[StatusChange]:
        records = await self.fetch_records(deployable)
        return plan_transitions(deployable, version, records, deployed_to_prod)

    def operations(
        self, changes: Sequence[StatusChange], actor: str, timestamp: str
    ) -> List[UpdateOperation]:
        return [
            UpdateOperation(
                table=self.deployable_table,
                key=change.record_id,
                status=change.to_status.value,
                actor=actor,
                timestamp=timestamp,
            )
            for change in changes
        ]

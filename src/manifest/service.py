"""Deployment manifest operations.

The only code path that mutates the deployable and deployed tables. Each
operation logs the request, reads the partition it touches, checks the
cardinality invariants, and only then writes.

Reads and writes are not atomic with each other: two pipeline runs acting on
the same version at the same time can both pass a check before either
writes. Callers are expected to serialise runs per version.
"""
import logging
from typing import Callable, Dict, Iterable, List, Optional

from recordstore import (
    ENV_INDEX,
    VERSION_INDEX,
    PutOperation,
    RecordStore,
    StoreError,
    StoreReadError,
    StoreWriteError,
    UpdateOperation,
)

from . import invariants
from .errors import InvariantViolation, ValidationError
from .models import (
    DeployableRecord,
    DeployedRecord,
    DeploymentStatus,
    is_semver,
    utc_now,
)
from .transitions import StatusTransitionEngine

logger = logging.getLogger(__name__)

# Only versions that never reached prod can be rejected.
REJECTABLE = (DeploymentStatus.AVAILABLE, DeploymentStatus.PENDING)


def _normalize(names: Optional[Iterable[str]]) -> List[str]:
    """Strip blanks and duplicates, keeping first-seen order."""
    cleaned = (name.strip() for name in names or [])
    return list(dict.fromkeys(name for name in cleaned if name))


def _scope(names: List[str]) -> str:
    return f" restricting to deployables: {', '.join(names)}" if names else " (all deployables)"


class DeploymentManifest:
    """Registers deployables, records deployments and answers list queries."""

    def __init__(
        self,
        store: RecordStore,
        deployable_table: str,
        deployed_table: str,
        clock: Callable[[], str] = utc_now,
    ):
        self.store = store
        self.deployable_table = deployable_table
        self.deployed_table = deployed_table
        self.clock = clock
        self.transitions = StatusTransitionEngine(store, deployable_table)

    async def _deployables_by_version(self, operation: str, version: str) -> List[DeployableRecord]:
        try:
            items = await self.store.query_by_partition(
                self.deployable_table, VERSION_INDEX, "version", version
            )
        except StoreError as err:
            raise StoreReadError(
                f"{operation} (table: {self.deployable_table}):: could not get data for version: {version}; error: {err}"
            ) from err
        return [DeployableRecord.from_item(item) for item in items]

    async def _deployed_by_env(self, operation: str, env: str) -> List[DeployedRecord]:
        try:
            items = await self.store.query_by_partition(self.deployed_table, ENV_INDEX, "env", env)
        except StoreError as err:
            raise StoreReadError(
                f"{operation} (table: {self.deployed_table}):: could not get data for env: {env}; error: {err}"
            ) from err
        return [DeployedRecord.from_item(item) for item in items]

    async def _commit(self, operation: str, context: str, operations: List) -> None:
        try:
            await self.store.transact(operations)
        except StoreError as err:
            raise StoreWriteError(f"{operation} failure:: {context}; error: {err}") from err

    async def add_new_deployable(
        self, version: str, deployables: Iterable[str], actor: str
    ) -> List[DeployableRecord]:
        """Register ``deployables`` at ``version`` with status available.

        Every record is written in one batch, so either all names are
        registered or none are.
        """
        names = _normalize(deployables)
        logger.info(
            f"Adding new deployable version {version} for deployables: {', '.join(names)} by actor {actor}",
            extra={"version": version, "deployables": names, "actor": actor},
        )
        if not names:
            raise ValidationError("add_new_deployable:: at least one deployable is required")
        if not version or not actor:
            raise ValidationError("add_new_deployable:: version and actor are required")

        existing = await self._deployables_by_version("add_new_deployable", version)
        invariants.assert_none_exist(self.deployable_table, existing, f"version: {version}", names)

        now = self.clock()
        records = [DeployableRecord.create(version, name, actor, now) for name in names]
        await self._commit(
            "add_new_deployable",
            f"table: {self.deployable_table}, version: {version}, deployables: {', '.join(names)}",
            [PutOperation(self.deployable_table, record.to_item()) for record in records],
        )
        logger.info(
            f"Registered {len(records)} deployable(s) at version {version}",
            extra={"version": version, "deployables": names},
        )
        return records

    async def get_deployable_list(
        self, version: str, deployables: Optional[Iterable[str]] = None
    ) -> List[Dict[str, str]]:
        """List ``{version, deployable}`` pairs for a version or an environment.

        A ``version`` starting with #.#.# is a literal version and returns
        every non-rejected deployable registered at it. Anything else is an
        environment name and returns what is currently deployed there.
        """
        names = _normalize(deployables)
        logger.info(
            f"Getting deployable list for version {version}{_scope(names)}",
            extra={"version": version, "deployables": names},
        )
        if not version:
            raise ValidationError("get_deployable_list:: version is required")

        if is_semver(version):
            records = await self._deployables_by_version("get_deployable_list", version)
            records = [r for r in records if r.status != DeploymentStatus.REJECTED]
            invariants.assert_exactly_one_each(
                self.deployable_table, records, f"version: {version}", names
            )
            pairs = [{"version": r.version, "deployable": r.deployable} for r in records]
        else:
            deployed = await self._deployed_by_env("get_deployable_list", version)
            pairs = [{"version": r.version, "deployable": r.deployable} for r in deployed]

        if names:
            wanted = set(names)
            pairs = [pair for pair in pairs if pair["deployable"] in wanted]
        return pairs

    async def mark_deployed(
        self,
        version: str,
        env: str,
        deployables: Iterable[str],
        actor: str,
        deployed_to_prod: bool = False,
    ) -> List[DeployedRecord]:
        """Point ``env`` at ``version`` for each deployable and move statuses.

        Each deployable commits atomically (deployed pointer plus status
        updates). Names are processed in order; if one fails, earlier names
        stay committed and re-running the same call picks up where it
        stopped.
        """
        names = _normalize(deployables)
        logger.info(
            f"Marking deployable as deployed for version {version} to env {env} "
            f"(deployedToProd: {deployed_to_prod}) by actor {actor}{_scope(names)}",
            extra={
                "version": version,
                "env": env,
                "deployables": names,
                "deployed_to_prod": deployed_to_prod,
            },
        )
        if not names:
            raise ValidationError("mark_deployed:: at least one deployable is required")
        if not version or not env or not actor:
            raise ValidationError("mark_deployed:: version, env and actor are required")

        registered = await self._deployables_by_version("mark_deployed", version)
        invariants.assert_exactly_one_each(
            self.deployable_table, registered, f"version: {version}", names
        )
        rejected = [
            r.deployable
            for r in registered
            if r.deployable in names and r.status == DeploymentStatus.REJECTED
        ]
        if rejected:
            message = (
                f"mark_deployed (table: {self.deployable_table}):: rejected records cannot be deployed "
                f"for version: {version} and deployables: {', '.join(rejected)}"
            )
            logger.error(message, extra={"version": version, "deployables": rejected})
            raise InvariantViolation(
                message, table=self.deployable_table, partition=f"version: {version}", names=rejected
            )
        deployed = await self._deployed_by_env("mark_deployed", env)
        invariants.assert_at_most_one_each(self.deployed_table, deployed, f"env: {env}", names)

        results = []
        for name in names:
            try:
                changes = await self.transitions.plan(name, version, deployed_to_prod)
            except StoreError as err:
                raise StoreReadError(
                    f"mark_deployed (table: {self.deployable_table}):: could not get data for deployable: {name}; error: {err}"
                ) from err

            now = self.clock()
            record = DeployedRecord.create(env, name, version, actor, now)
            operations = [PutOperation(self.deployed_table, record.to_item())]
            operations.extend(self.transitions.operations(changes, actor, now))
            await self._commit(
                "mark_deployed",
                f"env: {env}, version: {version}, deployable: {name}",
                operations,
            )

            for change in changes:
                logger.info(
                    f"{name}@{change.version}: {change.from_status.value} -> {change.to_status.value}",
                    extra={
                        "deployable": name,
                        "version": change.version,
                        "status": change.to_status.value,
                    },
                )
            results.append(record)
        return results

    async def mark_rejected(
        self, version: str, actor: str, deployables: Optional[Iterable[str]] = None
    ) -> List[DeployableRecord]:
        """Set status rejected for the listed deployables, or all of ``version``."""
        names = _normalize(deployables)
        logger.info(
            f"Marking deployable as rejected for version {version} by actor {actor}{_scope(names)}",
            extra={"version": version, "deployables": names, "actor": actor},
        )
        if not version or not actor:
            raise ValidationError("mark_rejected:: version and actor are required")

        records = await self._deployables_by_version("mark_rejected", version)
        targets = names or list(dict.fromkeys(r.deployable for r in records))
        invariants.assert_at_most_one_each(
            self.deployable_table, records, f"version: {version}", targets
        )

        by_name = {r.deployable: r for r in records}
        now = self.clock()
        rejected = []
        for name in targets:
            record = by_name.get(name)
            if record is None:
                logger.warning(
                    f"mark_rejected:: no record for {name} at version {version}; skipping",
                    extra={"version": version, "deployable": name},
                )
                continue
            if record.status not in REJECTABLE:
                logger.warning(
                    f"mark_rejected:: {name} at version {version} is {record.status.value}; skipping",
                    extra={"version": version, "deployable": name, "status": record.status.value},
                )
                continue
            record.status = DeploymentStatus.REJECTED
            record.modified_date = now
            record.modified_by = actor
            rejected.append(record)

        if rejected:
            await self._commit(
                "mark_rejected",
                f"table: {self.deployable_table}, version: {version}",
                [
                    UpdateOperation(self.deployable_table, r.id, r.status.value, actor, now)
                    for r in rejected
                ],
            )
        logger.info(
            f"Rejected {len(rejected)} deployable(s) at version {version}",
            extra={"version": version, "deployables": [r.deployable for r in rejected]},
        )
        return rejected

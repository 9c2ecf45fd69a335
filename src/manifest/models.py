"""Record types for the deployable and deployed tables."""
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

# A version that starts with #.#.# is a literal version; anything else passed
# to a list query is an environment name.
SEMVER_PATTERN = re.compile(r"^\d+\.\d+\.\d+")


class DeploymentStatus(str, Enum):
    AVAILABLE = "available"
    DECOMMISSIONED = "decommissioned"
    PENDING = "pending"
    PROD = "prod"
    REJECTED = "rejected"
    ROLLBACK = "rollback"


def is_semver(value: str) -> bool:
    return bool(SEMVER_PATTERN.match(value or ""))


def build_deployable_key(version: str, deployable: str) -> str:
    return f"{version}|{deployable}"


def build_deployed_key(env: str, deployable: str) -> str:
    return f"{env}|{deployable}"


def utc_now() -> str:
    """Current UTC time as ISO 8601 with millisecond precision and Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class DeployableRecord:
    """Lifecycle state of one (version, deployable) pair."""

    id: str
    version: str
    deployable: str
    status: DeploymentStatus
    modified_date: str
    modified_by: str

    @classmethod
    def create(
        cls,
        version: str,
        deployable: str,
        actor: str,
        timestamp: str,
        status: DeploymentStatus = DeploymentStatus.AVAILABLE,
    ) -> "DeployableRecord":
        return cls(
            id=build_deployable_key(version, deployable),
            version=version,
            deployable=deployable,
            status=status,
            modified_date=timestamp,
            modified_by=actor,
        )

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "DeployableRecord":
        return cls(
            id=item["id"],
            version=item["version"],
            deployable=item["deployable"],
            status=DeploymentStatus(item["status"]),
            modified_date=item.get("modifiedDate", ""),
            modified_by=item.get("modifiedBy", ""),
        )

    def to_item(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "version": self.version,
            "deployable": self.deployable,
            "status": self.status.value,
            "modifiedDate": self.modified_date,
            "modifiedBy": self.modified_by,
        }


@dataclass
class DeployedRecord:
    """The version an environment currently runs for one deployable."""

    id: str
    env: str
    deployable: str
    version: str
    deployed_date: str
    deployed_by: str

    @classmethod
    def create(
        cls, env: str, deployable: str, version: str, actor: str, timestamp: str
    ) -> "DeployedRecord":
        return cls(
            id=build_deployed_key(env, deployable),
            env=env,
            deployable=deployable,
            version=version,
            deployed_date=timestamp,
            deployed_by=actor,
        )

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "DeployedRecord":
        return cls(
            id=item["id"],
            env=item["env"],
            deployable=item["deployable"],
            version=item["version"],
            deployed_date=item.get("deployedDate", ""),
            deployed_by=item.get("deployedBy", ""),
        )

    def to_item(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "env": self.env,
            "deployable": self.deployable,
            "version": self.version,
            "deployedDate": self.deployed_date,
            "deployedBy": self.deployed_by,
        }

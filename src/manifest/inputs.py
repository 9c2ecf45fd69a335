"""GitHub Action input parsing and validation."""
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Mapping, Optional

from .errors import ValidationError

logger = logging.getLogger(__name__)


class DeploymentManifestCommand(str, Enum):
    ADD_NEW_DEPLOYABLE = "addNewDeployable"
    GET_DEPLOYABLE_LIST = "getDeployableList"
    MARK_DEPLOYED = "markDeployed"
    MARK_REJECTED = "markRejected"


@dataclass
class ActionInputs:
    command: DeploymentManifestCommand
    version: str
    actor: str
    deployable_table: str
    deployed_table: str
    deployables: List[str] = field(default_factory=list)
    env: str = ""
    deployed_to_prod: bool = False
    store_backend: Optional[str] = None
    aws_region: str = "us-east-1"
    endpoint_url: Optional[str] = None


class InputParser:
    """Reads action inputs the way the Actions runner passes them (INPUT_*)."""

    @staticmethod
    def get_input(name: str, environ: Mapping[str, str], required: bool = False) -> str:
        """Return the trimmed value of input ``name``; blank when unset."""
        key = "INPUT_" + name.replace(" ", "_").upper()
        value = environ.get(key, "").strip()
        if required and not value:
            raise ValidationError(f"Input required and not supplied: {name}")
        return value

    @staticmethod
    def parse_list(raw: str) -> List[str]:
        """Split a comma-delimited list, dropping empty entries."""
        return [item.strip() for item in raw.split(",") if item.strip()]

    @staticmethod
    def parse_command(raw: str) -> DeploymentManifestCommand:
        try:
            return DeploymentManifestCommand(raw)
        except ValueError:
            expected = ", ".join(command.value for command in DeploymentManifestCommand)
            raise ValidationError(f"Invalid command input: {raw}; expected one of {expected}") from None

    @classmethod
    def parse(cls, environ: Optional[Mapping[str, str]] = None) -> ActionInputs:
        environ = os.environ if environ is None else environ
        get = cls.get_input

        command = cls.parse_command(get("command", environ, required=True))
        inputs = ActionInputs(
            command=command,
            version=get("version", environ, required=True),
            actor=get("actor", environ, required=True),
            deployable_table=get("deployableTable", environ, required=True),
            deployed_table=get("deployedTable", environ, required=True),
            deployables=cls.parse_list(get("deployables", environ)),
            env=get("env", environ),
            deployed_to_prod=get("deployedToProd", environ) == "true",
            store_backend=get("storeBackend", environ) or None,
            aws_region=get("awsRegion", environ) or "us-east-1",
            endpoint_url=get("endpointUrl", environ) or None,
        )
        if command == DeploymentManifestCommand.MARK_DEPLOYED and not inputs.env:
            raise ValidationError("Input required and not supplied: env")

        logger.debug(f"Parsed action inputs for command {command.value}")
        return inputs

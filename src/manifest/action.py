"""GitHub Action entrypoint for the deployment manifest.

Reads INPUT_* variables, runs one command, and writes the ``deployables``,
``records`` and ``hasResults`` outputs to the file named by GITHUB_OUTPUT.
"""
import asyncio
import json
import logging
import os
import sys
from typing import Any, Dict, List, Mapping, Optional

from recordstore import StoreError

from .config import Config
from .errors import ManifestError
from .factory import build_manifest_service
from .inputs import ActionInputs, DeploymentManifestCommand, InputParser
from .service import DeploymentManifest

logger = logging.getLogger(__name__)


def _outputs(names: List[str], records: List[Dict[str, Any]]) -> Dict[str, str]:
    return {
        "deployables": ",".join(names),
        "records": json.dumps(records),
        "hasResults": "true" if records else "false",
    }


async def run_command(service: DeploymentManifest, inputs: ActionInputs) -> Dict[str, str]:
    """Dispatch ``inputs.command`` and return the action outputs."""
    command = inputs.command
    if command == DeploymentManifestCommand.ADD_NEW_DEPLOYABLE:
        created = await service.add_new_deployable(inputs.version, inputs.deployables, inputs.actor)
        return _outputs([r.deployable for r in created], [r.to_item() for r in created])

    if command == DeploymentManifestCommand.GET_DEPLOYABLE_LIST:
        pairs = await service.get_deployable_list(inputs.version, inputs.deployables)
        return _outputs([pair["deployable"] for pair in pairs], pairs)

    if command == DeploymentManifestCommand.MARK_DEPLOYED:
        deployed = await service.mark_deployed(
            inputs.version,
            inputs.env,
            inputs.deployables,
            inputs.actor,
            deployed_to_prod=inputs.deployed_to_prod,
        )
        return _outputs([r.deployable for r in deployed], [r.to_item() for r in deployed])

    rejected = await service.mark_rejected(inputs.version, inputs.actor, inputs.deployables)
    return _outputs([r.deployable for r in rejected], [r.to_item() for r in rejected])


def set_outputs(outputs: Dict[str, str], environ: Mapping[str, str]) -> None:
    """Append outputs to $GITHUB_OUTPUT, or log them when running locally."""
    output_path = environ.get("GITHUB_OUTPUT")
    if not output_path:
        for name, value in outputs.items():
            logger.info(f"output {name}={value}")
        return

    with open(output_path, "a", encoding="utf-8") as fh:
        for name, value in outputs.items():
            fh.write(f"{name}={value}\n")


def _escape_data(message: str) -> str:
    return message.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


def main(environ: Optional[Mapping[str, str]] = None) -> int:
    """Run the action; returns the process exit code."""
    environ = os.environ if environ is None else environ
    logging.basicConfig(level=Config.LOG_LEVEL)

    try:
        inputs = InputParser.parse(environ)
        service = build_manifest_service(
            deployable_table=inputs.deployable_table,
            deployed_table=inputs.deployed_table,
            backend=inputs.store_backend,
            region=inputs.aws_region,
            endpoint_url=inputs.endpoint_url,
        )
        outputs = asyncio.run(run_command(service, inputs))
    except (ManifestError, StoreError) as e:
        logger.error(f"Deployment manifest command failed: {e}")
        print(f"::error::{_escape_data(str(e))}")
        return 1

    set_outputs(outputs, environ)
    return 0


if __name__ == "__main__":
    sys.exit(main())

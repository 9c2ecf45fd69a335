"""Shared fixtures for manifest tests."""

import pytest

from manifest.service import DeploymentManifest
from recordstore import InMemoryRecordStore

DEPLOYABLE_TABLE = "deployable"
DEPLOYED_TABLE = "deployed"
NOW = "2024-01-01T00:00:00.000Z"


def deployable_item(version, deployable, status="available", actor="seed"):
    return {
        "id": f"{version}|{deployable}",
        "version": version,
        "deployable": deployable,
        "status": status,
        "modifiedDate": NOW,
        "modifiedBy": actor,
    }


def deployed_item(env, deployable, version, actor="seed"):
    return {
        "id": f"{env}|{deployable}",
        "env": env,
        "deployable": deployable,
        "version": version,
        "deployedDate": NOW,
        "deployedBy": actor,
    }


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def manifest(store):
    return DeploymentManifest(store, DEPLOYABLE_TABLE, DEPLOYED_TABLE, clock=lambda: NOW)


@pytest.fixture
def statuses(store):
    """Map of record id -> status in the deployable table."""

    def _statuses():
        return {item["id"]: item["status"] for item in store.items(DEPLOYABLE_TABLE)}

    return _statuses

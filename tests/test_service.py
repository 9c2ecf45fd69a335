"""Tests for DeploymentManifest operations against the in-memory store."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from manifest.errors import CorruptedStateError, InvariantViolation, ValidationError
from recordstore import StoreError, StoreReadError, StoreWriteError

from .conftest import DEPLOYABLE_TABLE, DEPLOYED_TABLE, NOW, deployable_item, deployed_item


def run(coro):
    return asyncio.run(coro)


class TestAddNewDeployable:
    """Tests for add_new_deployable."""

    def test_creates_available_records(self, manifest, store):
        created = run(manifest.add_new_deployable("1.0.0", ["app1", "app2"], "test-user"))

        assert [r.id for r in created] == ["1.0.0|app1", "1.0.0|app2"]
        assert store.items(DEPLOYABLE_TABLE) == [
            {
                "id": "1.0.0|app1",
                "version": "1.0.0",
                "deployable": "app1",
                "status": "available",
                "modifiedDate": NOW,
                "modifiedBy": "test-user",
            },
            {
                "id": "1.0.0|app2",
                "version": "1.0.0",
                "deployable": "app2",
                "status": "available",
                "modifiedDate": NOW,
                "modifiedBy": "test-user",
            },
        ]

    def test_second_registration_fails_without_new_record(self, manifest, store):
        run(manifest.add_new_deployable("1.0.0", ["app1"], "test-user"))

        with pytest.raises(InvariantViolation, match="already exist"):
            run(manifest.add_new_deployable("1.0.0", ["app1"], "other-user"))

        items = store.items(DEPLOYABLE_TABLE)
        assert len(items) == 1
        assert items[0]["modifiedBy"] == "test-user"

    def test_conflict_on_one_name_writes_nothing(self, manifest, store):
        run(manifest.add_new_deployable("1.0.0", ["app2"], "test-user"))

        with pytest.raises(InvariantViolation) as exc_info:
            run(manifest.add_new_deployable("1.0.0", ["app1", "app2", "app3"], "test-user"))

        assert exc_info.value.names == ["app2"]
        assert [item["id"] for item in store.items(DEPLOYABLE_TABLE)] == ["1.0.0|app2"]

    def test_same_name_other_version_is_allowed(self, manifest, store):
        run(manifest.add_new_deployable("1.0.0", ["app1"], "test-user"))
        run(manifest.add_new_deployable("1.1.0", ["app1"], "test-user"))

        assert len(store.items(DEPLOYABLE_TABLE)) == 2

    @pytest.mark.parametrize("deployables", [[], ["", "  "]])
    def test_empty_list_is_rejected(self, manifest, store, deployables):
        with pytest.raises(ValidationError):
            run(manifest.add_new_deployable("1.0.0", deployables, "test-user"))
        assert store.items(DEPLOYABLE_TABLE) == []

    def test_duplicate_names_in_request_are_collapsed(self, manifest, store):
        created = run(manifest.add_new_deployable("1.0.0", ["app1", "app1"], "test-user"))

        assert len(created) == 1

    def test_store_write_failure_is_wrapped(self, manifest, store):
        store.transact = AsyncMock(side_effect=StoreWriteError("throttled"))

        with pytest.raises(StoreWriteError, match="add_new_deployable failure.*version: 1.0.0.*throttled"):
            run(manifest.add_new_deployable("1.0.0", ["app1"], "test-user"))

    def test_store_read_failure_is_wrapped(self, manifest, store):
        store.query_by_partition = AsyncMock(side_effect=StoreReadError("unavailable"))

        with pytest.raises(StoreReadError, match=r"add_new_deployable \(table: deployable\).*1.0.0"):
            run(manifest.add_new_deployable("1.0.0", ["app1"], "test-user"))


class TestGetDeployableList:
    """Tests for get_deployable_list."""

    def test_version_excludes_rejected(self, manifest, store):
        store.load(DEPLOYABLE_TABLE, [
            deployable_item("1.2.0", "app1"),
            deployable_item("1.2.0", "app2", "rejected"),
            deployable_item("1.2.0", "app3", "prod"),
            deployable_item("1.3.0", "app1"),
        ])

        pairs = run(manifest.get_deployable_list("1.2.0"))

        assert pairs == [
            {"version": "1.2.0", "deployable": "app1"},
            {"version": "1.2.0", "deployable": "app3"},
        ]

    def test_version_filter_narrows_to_requested(self, manifest, store):
        store.load(DEPLOYABLE_TABLE, [deployable_item("1.2.0", name) for name in ("app1", "app2", "app3")])

        pairs = run(manifest.get_deployable_list("1.2.0", ["app3", "app1"]))

        assert {pair["deployable"] for pair in pairs} == {"app1", "app3"}

    def test_version_filter_requires_each_name_registered(self, manifest, store):
        store.load(DEPLOYABLE_TABLE, [
            deployable_item("1.2.0", "app1"),
            deployable_item("1.2.0", "app2", "rejected"),
        ])

        with pytest.raises(InvariantViolation) as exc_info:
            run(manifest.get_deployable_list("1.2.0", ["app1", "app2"]))
        assert exc_info.value.names == ["app2"]

    def test_non_semver_is_treated_as_env(self, manifest, store):
        store.load(DEPLOYED_TABLE, [
            deployed_item("qa", "app1", "1.1.0"),
            deployed_item("qa", "app2", "1.0.0"),
            deployed_item("dev", "app1", "1.2.0"),
        ])

        pairs = run(manifest.get_deployable_list("qa"))

        assert pairs == [
            {"version": "1.1.0", "deployable": "app1"},
            {"version": "1.0.0", "deployable": "app2"},
        ]

    def test_env_filter(self, manifest, store):
        store.load(DEPLOYED_TABLE, [
            deployed_item("qa", "app1", "1.1.0"),
            deployed_item("qa", "app2", "1.0.0"),
        ])

        pairs = run(manifest.get_deployable_list("qa", ["app2", "app9"]))

        assert pairs == [{"version": "1.0.0", "deployable": "app2"}]

    def test_unknown_version_returns_empty(self, manifest):
        assert run(manifest.get_deployable_list("9.9.9")) == []


class TestMarkDeployed:
    """Tests for mark_deployed."""

    def test_non_prod_moves_only_target_to_pending(self, manifest, store, statuses):
        store.load(DEPLOYABLE_TABLE, [
            deployable_item("1.0.0", "app1", "prod"),
            deployable_item("0.9.0", "app1", "rollback"),
            deployable_item("1.1.0", "app1"),
        ])

        run(manifest.mark_deployed("1.1.0", "dev", ["app1"], "ci", deployed_to_prod=False))

        assert statuses() == {
            "1.0.0|app1": "prod",
            "0.9.0|app1": "rollback",
            "1.1.0|app1": "pending",
        }

    def test_missing_registration_fails_without_writes(self, manifest, store):
        store.load(DEPLOYABLE_TABLE, [deployable_item("1.0.0", "app1")])

        with pytest.raises(InvariantViolation, match="no record found"):
            run(manifest.mark_deployed("1.0.0", "dev", ["app1", "app2"], "ci"))

        assert store.items(DEPLOYED_TABLE) == []
        assert store.items(DEPLOYABLE_TABLE)[0]["status"] == "available"

    def test_duplicate_registration_fails_without_writes(self, manifest, store):
        duplicate = deployable_item("1.0.0", "app1")
        duplicate["id"] = "1.0.0|app1#legacy"
        store.load(DEPLOYABLE_TABLE, [deployable_item("1.0.0", "app1"), duplicate])

        with pytest.raises(InvariantViolation, match="multiple records"):
            run(manifest.mark_deployed("1.0.0", "dev", ["app1"], "ci"))

        assert store.items(DEPLOYED_TABLE) == []

    def test_duplicate_deployed_pointer_fails(self, manifest, store):
        store.load(DEPLOYABLE_TABLE, [deployable_item("1.0.0", "app1")])
        duplicate = deployed_item("dev", "app1", "0.9.0")
        duplicate["id"] = "dev|app1#legacy"
        store.load(DEPLOYED_TABLE, [deployed_item("dev", "app1", "0.8.0"), duplicate])

        with pytest.raises(InvariantViolation) as exc_info:
            run(manifest.mark_deployed("1.0.0", "dev", ["app1"], "ci"))

        assert exc_info.value.table == DEPLOYED_TABLE
        assert store.items(DEPLOYABLE_TABLE)[0]["status"] == "available"

    def test_deployed_pointer_is_overwritten(self, manifest, store):
        run(manifest.add_new_deployable("1.0.0", ["app1"], "ci"))
        run(manifest.add_new_deployable("1.1.0", ["app1"], "ci"))

        run(manifest.mark_deployed("1.0.0", "dev", ["app1"], "ci"))
        run(manifest.mark_deployed("1.1.0", "dev", ["app1"], "ci"))

        assert store.items(DEPLOYED_TABLE) == [deployed_item("dev", "app1", "1.1.0", actor="ci")]

    def test_corrupted_prod_state_blocks_that_deployable(self, manifest, store, statuses):
        store.load(DEPLOYABLE_TABLE, [
            deployable_item("1.0.0", "app1", "prod"),
            deployable_item("1.1.0", "app1", "prod"),
            deployable_item("1.2.0", "app1"),
        ])

        with pytest.raises(CorruptedStateError):
            run(manifest.mark_deployed("1.2.0", "prod", ["app1"], "ci", deployed_to_prod=True))

        assert statuses()["1.2.0|app1"] == "available"
        assert store.items(DEPLOYED_TABLE) == []

    def test_partial_failure_keeps_earlier_names_and_can_resume(self, manifest, store, statuses):
        run(manifest.add_new_deployable("1.0.0", ["app1", "app2"], "ci"))
        real_transact = store.transact
        calls = []

        async def flaky(operations):
            calls.append(operations)
            if len(calls) == 2:
                raise StoreWriteError("throttled")
            await real_transact(operations)

        store.transact = flaky
        with pytest.raises(StoreWriteError, match="deployable: app2"):
            run(manifest.mark_deployed("1.0.0", "prod", ["app1", "app2"], "ci", deployed_to_prod=True))

        assert statuses() == {"1.0.0|app1": "prod", "1.0.0|app2": "available"}

        store.transact = real_transact
        run(manifest.mark_deployed("1.0.0", "prod", ["app1", "app2"], "ci", deployed_to_prod=True))

        assert statuses() == {"1.0.0|app1": "prod", "1.0.0|app2": "prod"}

    @pytest.mark.parametrize("deployed_to_prod,env", [(True, "prod"), (False, "dev")])
    def test_rejected_version_cannot_be_deployed(self, manifest, store, statuses, deployed_to_prod, env):
        store.load(DEPLOYABLE_TABLE, [
            deployable_item("1.0.0", "app1", "prod"),
            deployable_item("1.1.0", "app1", "rejected"),
        ])

        with pytest.raises(InvariantViolation, match="rejected") as exc_info:
            run(manifest.mark_deployed("1.1.0", env, ["app1"], "ci", deployed_to_prod=deployed_to_prod))

        assert exc_info.value.names == ["app1"]
        assert statuses() == {"1.0.0|app1": "prod", "1.1.0|app1": "rejected"}
        assert store.items(DEPLOYED_TABLE) == []

    def test_one_rejected_name_blocks_the_whole_call(self, manifest, store, statuses):
        store.load(DEPLOYABLE_TABLE, [
            deployable_item("1.1.0", "app1"),
            deployable_item("1.1.0", "app2", "rejected"),
        ])

        with pytest.raises(InvariantViolation, match="deployables: app2"):
            run(manifest.mark_deployed("1.1.0", "prod", ["app1", "app2"], "ci", deployed_to_prod=True))

        assert statuses() == {"1.1.0|app1": "available", "1.1.0|app2": "rejected"}
        assert store.items(DEPLOYED_TABLE) == []

    def test_non_prod_deploy_of_prod_version_moves_it_to_pending(self, manifest, store, statuses):
        store.load(DEPLOYABLE_TABLE, [deployable_item("1.0.0", "app1", "prod")])

        run(manifest.mark_deployed("1.0.0", "dev", ["app1"], "ci", deployed_to_prod=False))

        assert statuses() == {"1.0.0|app1": "pending"}
        assert store.items(DEPLOYED_TABLE) == [deployed_item("dev", "app1", "1.0.0", actor="ci")]

    def test_store_init_failure_gets_operation_context(self, manifest, store):
        store.load(DEPLOYABLE_TABLE, [deployable_item("1.0.0", "app1")])
        store.query_by_partition = AsyncMock(side_effect=StoreError("Failed to initialize Firestore"))

        with pytest.raises(StoreReadError, match=r"mark_deployed \(table: deployable\).*version: 1.0.0"):
            run(manifest.mark_deployed("1.0.0", "dev", ["app1"], "ci"))

    @pytest.mark.parametrize("env,deployables", [("", ["app1"]), ("dev", [])])
    def test_requires_env_and_deployables(self, manifest, env, deployables):
        with pytest.raises(ValidationError):
            run(manifest.mark_deployed("1.0.0", env, deployables, "ci"))


class TestMarkRejected:
    """Tests for mark_rejected."""

    def test_rejects_all_deployables_of_version(self, manifest, store, statuses):
        store.load(DEPLOYABLE_TABLE, [
            deployable_item("1.2.0", "app1"),
            deployable_item("1.2.0", "app2", "pending"),
            deployable_item("1.1.0", "app1"),
        ])

        rejected = run(manifest.mark_rejected("1.2.0", "qa-lead"))

        assert [r.deployable for r in rejected] == ["app1", "app2"]
        assert statuses() == {
            "1.2.0|app1": "rejected",
            "1.2.0|app2": "rejected",
            "1.1.0|app1": "available",
        }
        assert store.items(DEPLOYABLE_TABLE)[0]["modifiedBy"] == "qa-lead"

    def test_rejects_only_listed(self, manifest, store, statuses):
        store.load(DEPLOYABLE_TABLE, [deployable_item("1.2.0", "app1"), deployable_item("1.2.0", "app2")])

        run(manifest.mark_rejected("1.2.0", "qa-lead", ["app2", "app9"]))

        assert statuses() == {"1.2.0|app1": "available", "1.2.0|app2": "rejected"}

    @pytest.mark.parametrize("status", ["prod", "rollback", "decommissioned", "rejected"])
    def test_released_records_are_skipped(self, manifest, store, statuses, status):
        store.load(DEPLOYABLE_TABLE, [deployable_item("1.0.0", "app1", status), deployable_item("1.0.0", "app2")])

        rejected = run(manifest.mark_rejected("1.0.0", "qa-lead"))

        assert [r.deployable for r in rejected] == ["app2"]
        assert statuses() == {"1.0.0|app1": status, "1.0.0|app2": "rejected"}
        assert store.items(DEPLOYABLE_TABLE)[0]["modifiedBy"] == "seed"

    def test_nothing_rejectable_writes_nothing(self, manifest, store, statuses):
        store.load(DEPLOYABLE_TABLE, [deployable_item("1.0.0", "app1", "prod")])
        store.transact = AsyncMock()

        assert run(manifest.mark_rejected("1.0.0", "qa-lead", ["app1"])) == []
        store.transact.assert_not_awaited()

    def test_duplicate_records_fail(self, manifest, store, statuses):
        duplicate = deployable_item("1.2.0", "app1")
        duplicate["id"] = "1.2.0|app1#legacy"
        store.load(DEPLOYABLE_TABLE, [deployable_item("1.2.0", "app1"), duplicate])

        with pytest.raises(InvariantViolation):
            run(manifest.mark_rejected("1.2.0", "qa-lead"))

        assert set(statuses().values()) == {"available"}

    def test_rejected_version_disappears_from_list(self, manifest, store):
        run(manifest.add_new_deployable("1.2.0", ["app1", "app2"], "ci"))
        run(manifest.mark_rejected("1.2.0", "qa-lead", ["app1"]))

        assert run(manifest.get_deployable_list("1.2.0")) == [{"version": "1.2.0", "deployable": "app2"}]


class TestPromotionScenarios:
    """End-to-end promotion flows."""

    def test_first_version_through_dev_to_prod(self, manifest, store, statuses):
        run(manifest.add_new_deployable("1.0.0", ["app1"], "ci"))
        assert statuses() == {"1.0.0|app1": "available"}

        run(manifest.mark_deployed("1.0.0", "dev", ["app1"], "ci", deployed_to_prod=False))
        assert statuses() == {"1.0.0|app1": "pending"}
        assert store.items(DEPLOYED_TABLE) == [deployed_item("dev", "app1", "1.0.0", actor="ci")]

        run(manifest.mark_deployed("1.0.0", "prod", ["app1"], "ci", deployed_to_prod=True))
        assert statuses() == {"1.0.0|app1": "prod"}

    def test_three_versions_cycle_prod_rollback_decommissioned(self, manifest, statuses):
        for version in ("1.0.0", "1.1.0", "1.2.0"):
            run(manifest.add_new_deployable(version, ["app1"], "ci"))

        run(manifest.mark_deployed("1.0.0", "prod", ["app1"], "ci", deployed_to_prod=True))
        run(manifest.mark_deployed("1.1.0", "prod", ["app1"], "ci", deployed_to_prod=True))
        assert statuses() == {
            "1.0.0|app1": "rollback",
            "1.1.0|app1": "prod",
            "1.2.0|app1": "available",
        }

        run(manifest.mark_deployed("1.2.0", "prod", ["app1"], "ci", deployed_to_prod=True))
        assert statuses() == {
            "1.0.0|app1": "decommissioned",
            "1.1.0|app1": "rollback",
            "1.2.0|app1": "prod",
        }

    def test_prod_singularity_across_many_promotions(self, manifest, statuses):
        versions = [f"2.{minor}.0" for minor in range(6)]
        for version in versions:
            run(manifest.add_new_deployable(version, ["app1", "app2"], "ci"))

        for version in versions + ["2.1.0", "2.5.0", "2.5.0"]:
            run(manifest.mark_deployed(version, "prod", ["app1", "app2"], "ci", deployed_to_prod=True))
            values = list(statuses().values())
            assert values.count("prod") <= 2
            assert values.count("rollback") <= 2

        final = statuses()
        assert final["2.5.0|app1"] == "prod"
        assert final["2.5.0|app2"] == "prod"
        assert final["2.1.0|app1"] == "rollback"

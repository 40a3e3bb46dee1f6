"""
Unit tests for the sync executor.

Tests write intent resolution for every status/flip combination and the
per-diff isolation of failures in SyncExecutor.apply().
"""

from unittest.mock import MagicMock, patch

import pytest

from permsync.config.connection import DatabaseConfig
from permsync.storage.gateway import (
    ConnectivityError,
    PermissionGateway,
    PermissionStatements,
    WriteError,
)
from permsync.sync.executor import (
    NoOpError,
    PreconditionError,
    SyncExecutor,
    SyncItemResult,
    SyncReport,
    resolve_write_intent,
)
from permsync.sync.permission import (
    DiffStatus,
    Permission,
    PermissionDiff,
    WriteOperation,
)

# ==============================================================================
# Fixtures
# ==============================================================================


def perm(id=1, policy="p1", collection="articles", action="read", **kwargs):
    kwargs.setdefault("policy_name", "Editors")
    return Permission(
        id=id, policy=policy, collection=collection, action=action, **kwargs
    )


def make_gateway(label, policy_ids=("p1",)):
    gateway = MagicMock(spec=PermissionGateway)
    gateway.label = label
    gateway.statements = PermissionStatements(
        "directus_permissions", "directus_policies"
    )
    gateway.fetch_policy_ids.return_value = set(policy_ids)
    return gateway


@pytest.fixture
def source():
    return make_gateway("source")


@pytest.fixture
def target():
    return make_gateway("target")


@pytest.fixture
def executor(source, target):
    return SyncExecutor(source, target)


@pytest.fixture
def added_diff():
    return PermissionDiff.between(
        perm(id=2, action="create", fields="title, body"), None
    )


@pytest.fixture
def removed_diff():
    return PermissionDiff.between(None, perm(id=11, action="delete"))


@pytest.fixture
def modified_diff():
    return PermissionDiff.between(
        perm(id=1, fields="title", permissions='{"a":1}'),
        perm(id=10, fields="title,body", permissions="{}"),
    )


@pytest.fixture
def identical_diff():
    return PermissionDiff.between(perm(id=1), perm(id=10))


# ==============================================================================
# resolve_write_intent Tests
# ==============================================================================


class TestResolveWriteIntent:
    """Tests for mapping a diff and the flip toggle to a write."""

    def test_added_not_flipped_creates_in_target(self, added_diff):
        intent = resolve_write_intent(added_diff, flipped=False)

        assert intent.operation == WriteOperation.CREATE
        assert intent.content is added_diff.source
        assert intent.identity is None

    def test_removed_not_flipped_deletes_target_row(self, removed_diff):
        intent = resolve_write_intent(removed_diff, flipped=False)

        assert intent.operation == WriteOperation.DELETE
        assert intent.identity == 11
        assert intent.identity_side == "target"

    def test_modified_not_flipped_updates_target_row(self, modified_diff):
        intent = resolve_write_intent(modified_diff, flipped=False)

        assert intent.operation == WriteOperation.UPDATE
        assert intent.identity == 10
        assert intent.identity_side == "target"
        assert intent.content is modified_diff.source

    def test_added_flipped_deletes_source_row(self, added_diff):
        intent = resolve_write_intent(added_diff, flipped=True)

        assert intent.operation == WriteOperation.DELETE
        assert intent.identity == 2
        assert intent.identity_side == "source"

    def test_removed_flipped_creates_in_source(self, removed_diff):
        intent = resolve_write_intent(removed_diff, flipped=True)

        assert intent.operation == WriteOperation.CREATE
        assert intent.content is removed_diff.target

    def test_modified_flipped_updates_source_row(self, modified_diff):
        intent = resolve_write_intent(modified_diff, flipped=True)

        assert intent.operation == WriteOperation.UPDATE
        assert intent.identity == 1
        assert intent.identity_side == "source"
        assert intent.content is modified_diff.target

    def test_identical_is_noop(self, identical_diff):
        with pytest.raises(NoOpError):
            resolve_write_intent(identical_diff, flipped=False)

    def test_noop_is_precondition_error(self):
        assert issubclass(NoOpError, PreconditionError)

    def test_empty_diff_rejected(self):
        diff = PermissionDiff(
            key="a:read:p1",
            collection="a",
            action="read",
            policy="p1",
            policy_name="Editors",
            source=None,
            target=None,
            status=DiffStatus.MODIFIED,
        )
        with pytest.raises(PreconditionError):
            resolve_write_intent(diff, flipped=False)


# ==============================================================================
# SyncReport Tests
# ==============================================================================


class TestSyncReport:
    """Tests for SyncReport."""

    def test_empty_report(self):
        report = SyncReport()
        assert report.total == 0
        assert report.success is True
        assert report.message() == "Sync completed: 0 successful, 0 failed"

    def test_counts(self):
        report = SyncReport(
            results=[
                SyncItemResult("a", True, "ok"),
                SyncItemResult("b", False, "boom"),
                SyncItemResult("c", True, "ok"),
            ]
        )

        assert report.summary() == {"total": 3, "successful": 2, "failed": 1}
        assert report.success is False
        assert [r.key for r in report.failures] == ["b"]

    def test_to_dict(self):
        report = SyncReport(results=[SyncItemResult("a", True, "ok")])
        data = report.to_dict()

        assert data["success"] is True
        assert data["message"] == "Sync completed: 1 successful, 0 failed"
        assert data["results"] == [{"key": "a", "success": True, "message": "ok"}]


# ==============================================================================
# SyncExecutor Tests
# ==============================================================================


class TestSyncExecutorWrites:
    """Tests for the statements issued by SyncExecutor."""

    def test_create_in_target(self, executor, source, target, added_diff):
        report = executor.apply([added_diff])

        assert report.success
        source.execute.assert_not_called()
        statement, params = target.execute.call_args.args
        assert statement == target.statements.insert
        assert params["policy"] == "p1"
        assert params["collection"] == "articles"
        assert params["action"] == "create"

    def test_create_stores_normalized_fields(self, executor, target, added_diff):
        executor.apply([added_diff])

        params = target.execute.call_args.args[1]
        assert params["fields"] == "body,title"

    def test_update_in_target(self, executor, target, modified_diff):
        executor.apply([modified_diff])

        statement, params = target.execute.call_args.args
        assert statement == target.statements.update
        assert params["id"] == 10
        assert params["permissions"] == '{"a":1}'
        assert params["fields"] == "title"

    def test_delete_in_target(self, executor, target, removed_diff):
        executor.apply([removed_diff])

        statement, params = target.execute.call_args.args
        assert statement == target.statements.delete
        assert params == {"id": 11}

    def test_flipped_writes_source(self, executor, source, target, modified_diff):
        report = executor.apply([modified_diff], flipped=True)

        assert report.flipped is True
        target.execute.assert_not_called()
        statement, params = source.execute.call_args.args
        assert statement == source.statements.update
        assert params["id"] == 1
        assert params["permissions"] == "{}"
        assert params["fields"] == "body,title"

    def test_flipped_removed_creates_in_source(self, executor, source, removed_diff):
        executor.apply([removed_diff], flipped=True)

        statement, params = source.execute.call_args.args
        assert statement == source.statements.insert
        assert params["action"] == "delete"
        source.fetch_policy_ids.assert_called_once()

    def test_success_message(self, executor, added_diff):
        report = executor.apply([added_diff])

        assert report.results[0].message == (
            "Successfully synced articles:create for policy Editors"
        )


class TestSyncExecutorFailures:
    """Tests for failure isolation in SyncExecutor."""

    def test_identical_recorded_and_batch_continues(
        self, executor, target, identical_diff, removed_diff
    ):
        report = executor.apply([identical_diff, removed_diff])

        assert [r.success for r in report.results] == [False, True]
        assert "identical" in report.results[0].message
        target.execute.assert_called_once()

    def test_write_error_isolated(
        self, executor, target, added_diff, modified_diff, removed_diff
    ):
        target.execute.side_effect = [None, WriteError("constraint"), None]

        report = executor.apply([added_diff, modified_diff, removed_diff])

        assert [r.success for r in report.results] == [True, False, True]
        assert report.results[1].message.startswith("Failed to sync")
        assert "constraint" in report.results[1].message
        assert report.message() == "Sync completed: 2 successful, 1 failed"

    def test_connectivity_error_isolated(self, executor, target, removed_diff):
        target.execute.side_effect = ConnectivityError("lost")

        report = executor.apply([removed_diff])

        assert report.failed == 1

    def test_unexpected_error_isolated(
        self, executor, target, removed_diff, added_diff
    ):
        target.execute.side_effect = [TypeError("bad argument"), None]

        report = executor.apply([removed_diff, added_diff])

        assert [r.success for r in report.results] == [False, True]
        assert "bad argument" in report.results[0].message

    def test_unreachable_write_side_reports_every_item(
        self, source, removed_diff, modified_diff
    ):
        config = DatabaseConfig.from_value("postgresql+psycopg2://sync:pw@db/cms")
        target = PermissionGateway(config, label="target")
        executor = SyncExecutor(source, target)

        with patch(
            "permsync.storage.gateway.create_engine",
            side_effect=ModuleNotFoundError("No module named 'psycopg2'"),
        ):
            report = executor.apply([removed_diff, modified_diff])

        assert report.failed == 2
        assert all("psycopg2" in r.message for r in report.results)

    def test_create_requires_policy_on_write_side(self, source, added_diff):
        target = make_gateway("target", policy_ids=("p9",))
        executor = SyncExecutor(source, target)

        report = executor.apply([added_diff])

        assert report.failed == 1
        assert "policy p1 does not exist" in report.results[0].message
        target.execute.assert_not_called()

    def test_policy_ids_fetched_once_per_batch(self, executor, target):
        diffs = [
            PermissionDiff.between(perm(id=1, collection="a"), None),
            PermissionDiff.between(perm(id=2, collection="b"), None),
        ]

        executor.apply(diffs)

        target.fetch_policy_ids.assert_called_once()
        assert target.execute.call_count == 2

    def test_results_in_submission_order(
        self, executor, removed_diff, added_diff, modified_diff
    ):
        diffs = [removed_diff, added_diff, modified_diff]

        report = executor.apply(diffs)

        assert [r.key for r in report.results] == [d.key for d in diffs]

    def test_write_side(self, executor, source, target):
        assert executor.write_side(False) is target
        assert executor.write_side(True) is source

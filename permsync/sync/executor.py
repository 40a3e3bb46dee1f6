"""
Sync executor for replaying permission diffs.

Turns accepted diffs into create, update and delete statements against
whichever database currently plays target. Diffs are replayed one at a
time in the order given; a failing diff is recorded and the batch moves
on to the next one.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional, cast

from permsync.storage.gateway import GatewayError
from permsync.sync.permission import (
    DiffStatus,
    Permission,
    PermissionDiff,
    WriteOperation,
)
from permsync.utils.logging import get_audit_logger

if TYPE_CHECKING:
    from permsync.storage.gateway import PermissionGateway

logger = logging.getLogger(__name__)

SOURCE_SIDE = "source"
TARGET_SIDE = "target"


class PreconditionError(Exception):
    """Raised when a diff cannot be replayed as given."""

    pass


class NoOpError(PreconditionError):
    """Raised when an identical diff is submitted for sync."""

    pass


@dataclass(frozen=True)
class WriteIntent:
    """
    Write resolved from a diff and the flip toggle.

    Attributes:
        operation: create, update or delete
        identity: Row id on the write side (update and delete only)
        identity_side: Half of the diff the id was taken from
        content: Permission whose rule is written (create and update only)
    """

    operation: WriteOperation
    identity: Any = None
    identity_side: Optional[str] = None
    content: Optional[Permission] = None


def resolve_write_intent(diff: PermissionDiff, flipped: bool) -> WriteIntent:
    """
    Decide which write replays a diff.

    Without flip the target database is written from the source half of the
    diff. With flip the roles invert: the source database is written from
    the target half, and the ids of existing rows come from the source half.

    Raises:
        NoOpError: If the diff is identical
        PreconditionError: If the diff has no permission on either side
    """
    if diff.status == DiffStatus.IDENTICAL:
        raise NoOpError(f"{diff.key} is identical on both sides; nothing to sync")
    if diff.source is None and diff.target is None:
        raise PreconditionError(f"{diff.key} has no permission on either side")

    if flipped:
        written, origin = diff.source, diff.target
        written_side = SOURCE_SIDE
    else:
        written, origin = diff.target, diff.source
        written_side = TARGET_SIDE

    if written is None:
        return WriteIntent(operation=WriteOperation.CREATE, content=origin)
    if origin is None:
        return WriteIntent(
            operation=WriteOperation.DELETE,
            identity=written.id,
            identity_side=written_side,
        )
    return WriteIntent(
        operation=WriteOperation.UPDATE,
        identity=written.id,
        identity_side=written_side,
        content=origin,
    )


@dataclass
class SyncItemResult:
    """Outcome of replaying a single diff."""

    key: str
    success: bool
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"key": self.key, "success": self.success, "message": self.message}


@dataclass
class SyncReport:
    """
    Result of a sync batch.

    Contains one SyncItemResult per submitted diff, in submission order.
    """

    results: list[SyncItemResult] = field(default_factory=list)
    flipped: bool = False

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def successful(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return self.total - self.successful

    @property
    def success(self) -> bool:
        return self.failed == 0

    @property
    def failures(self) -> list[SyncItemResult]:
        return [r for r in self.results if not r.success]

    def summary(self) -> dict[str, int]:
        return {
            "total": self.total,
            "successful": self.successful,
            "failed": self.failed,
        }

    def message(self) -> str:
        return f"Sync completed: {self.successful} successful, {self.failed} failed"

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message(),
            "results": [r.to_dict() for r in self.results],
            "summary": self.summary(),
        }


class SyncExecutor:
    """
    Replays permission diffs against the database playing target.

    Usage:
        executor = SyncExecutor(source_gateway, target_gateway)
        report = executor.apply(selected_diffs, flipped=False)
        print(report.message())
    """

    def __init__(self, source: PermissionGateway, target: PermissionGateway):
        """
        Initialize the executor.

        Args:
            source: Gateway of the nominal source database
            target: Gateway of the nominal target database
        """
        self.source = source
        self.target = target
        self._write_policies: Optional[set[str]] = None

    def write_side(self, flipped: bool) -> PermissionGateway:
        """Gateway currently playing target."""
        return self.source if flipped else self.target

    def apply(
        self, diffs: Iterable[PermissionDiff], flipped: bool = False
    ) -> SyncReport:
        """
        Replay diffs one at a time.

        Failures of individual diffs (precondition violations, failed
        statements, unexpected driver errors) are recorded in the report
        and never abort the batch.

        Args:
            diffs: Diffs to replay, in the order they should be applied
            flipped: Whether the source database plays target

        Returns:
            SyncReport with a result per diff
        """
        gateway = self.write_side(flipped)
        self._write_policies = None
        report = SyncReport(flipped=flipped)

        diffs = list(diffs)
        logger.info(f"Syncing {len(diffs)} permissions into {gateway.label}")

        for diff in diffs:
            try:
                self._apply_one(diff, flipped, gateway)
            except Exception as e:
                if isinstance(e, (PreconditionError, GatewayError)):
                    logger.error(f"Failed to sync {diff.key}: {e}")
                else:
                    logger.exception(f"Unexpected error syncing {diff.key}: {e}")
                report.results.append(
                    SyncItemResult(
                        key=diff.key,
                        success=False,
                        message=f"Failed to sync {diff.describe()}: {e}",
                    )
                )
                continue

            report.results.append(
                SyncItemResult(
                    key=diff.key,
                    success=True,
                    message=f"Successfully synced {diff.describe()}",
                )
            )

        logger.info(report.message())
        return report

    def _apply_one(
        self, diff: PermissionDiff, flipped: bool, gateway: PermissionGateway
    ) -> None:
        intent = resolve_write_intent(diff, flipped)
        statements = gateway.statements
        audit = get_audit_logger()

        if intent.operation == WriteOperation.DELETE:
            statement = statements.delete
            params = {"id": intent.identity}
        else:
            content = cast(Permission, intent.content)
            params = self._rule_params(content)
            if intent.operation == WriteOperation.CREATE:
                self._check_policy_exists(content.policy, gateway)
                statement = statements.insert
                params.update(
                    policy=content.policy,
                    collection=content.collection,
                    action=content.action,
                )
            else:
                statement = statements.update
                params["id"] = intent.identity

        logger.debug(
            f"{intent.operation.value} {diff.key} in {gateway.label} "
            f"(id={intent.identity})"
        )
        try:
            gateway.execute(statement, params)
        except GatewayError as e:
            audit.error(
                f"{gateway.label} {intent.operation.value} {diff.key} "
                f"id={intent.identity} FAILED: {e}"
            )
            raise
        audit.info(
            f"{gateway.label} {intent.operation.value} {diff.key} id={intent.identity}"
        )

    @staticmethod
    def _rule_params(permission: Permission) -> dict[str, Any]:
        # Field lists are stored normalized, not just compared normalized
        return {
            "permissions": permission.permissions,
            "validation": permission.validation,
            "presets": permission.presets,
            "fields": permission.normalized_fields,
        }

    def _check_policy_exists(self, policy: str, gateway: PermissionGateway) -> None:
        if self._write_policies is None:
            self._write_policies = gateway.fetch_policy_ids()
        if policy not in self._write_policies:
            raise PreconditionError(
                f"policy {policy} does not exist in the {gateway.label} database"
            )

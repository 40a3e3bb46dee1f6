"""
Sync engine for permission reconciliation between two databases.

Orchestrates comparison and replay: the reconciler produces an ordered
diff list, the caller selects diffs, the executor replays them and a
fresh comparison confirms convergence.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Optional

from permsync.storage.gateway import PermissionGateway
from permsync.sync.executor import SyncExecutor, SyncReport
from permsync.sync.permission import (
    UNKNOWN_POLICY_NAME,
    DiffStatus,
    PermissionDiff,
)
from permsync.sync.reconciler import Reconciler

logger = logging.getLogger(__name__)


@dataclass
class ComparisonResult:
    """
    Result of a comparison.

    ``diffs`` are in display order. ``flipped`` records which database
    would be written by a sync of these diffs; it does not change the
    diffs themselves.
    """

    diffs: list[PermissionDiff] = field(default_factory=list)
    flipped: bool = False

    def count(self, status: DiffStatus) -> int:
        return sum(1 for d in self.diffs if d.status == status)

    def summary(self) -> dict[str, int]:
        """Counts per status."""
        return {
            "total": len(self.diffs),
            "added": self.count(DiffStatus.ADDED),
            "removed": self.count(DiffStatus.REMOVED),
            "modified": self.count(DiffStatus.MODIFIED),
            "identical": self.count(DiffStatus.IDENTICAL),
        }

    def has_changes(self) -> bool:
        return any(d.status != DiffStatus.IDENTICAL for d in self.diffs)

    def policy_names(self) -> list[str]:
        """Sorted distinct policy names, without the unknown label."""
        return sorted(
            {d.policy_name for d in self.diffs if d.policy_name != UNKNOWN_POLICY_NAME}
        )

    def filter(
        self,
        policy_names: Optional[Iterable[str]] = None,
        statuses: Optional[Iterable[str]] = None,
        keys: Optional[Iterable[str]] = None,
    ) -> "ComparisonResult":
        """
        Narrow the result, keeping the order.

        Each filter left as None (or empty) matches everything.
        """
        policy_set = set(policy_names or ())
        status_set = {DiffStatus(s) for s in statuses or ()}
        key_set = set(keys or ())

        diffs = [
            d
            for d in self.diffs
            if (not policy_set or d.policy_name in policy_set)
            and (not status_set or d.status in status_set)
            and (not key_set or d.key in key_set)
        ]
        return ComparisonResult(diffs=diffs, flipped=self.flipped)

    def selectable(self) -> list[PermissionDiff]:
        """Diffs a sync can act on (everything but identical)."""
        return [d for d in self.diffs if d.status != DiffStatus.IDENTICAL]

    def to_dict(self) -> dict[str, Any]:
        return {
            "flipped": self.flipped,
            "data": [d.to_dict() for d in self.diffs],
            "summary": self.summary(),
        }


class SyncEngine:
    """
    Permission sync engine for a source and a target database.

    Features:
    - Comparison restricted to policies present in both databases
    - Order- and whitespace-insensitive field list comparison
    - Per-diff replay with isolated failures
    - Flip toggle to replay from target into source

    Usage:
        engine = SyncEngine(source=source_gateway, target=target_gateway)

        result = engine.compare()
        print(result.summary())

        report = engine.apply(result.selectable())
        print(report.message())
    """

    def __init__(self, source: PermissionGateway, target: PermissionGateway):
        """
        Initialize the sync engine.

        Args:
            source: Gateway for the nominal source database
            target: Gateway for the nominal target database
        """
        self.source = source
        self.target = target
        self.reconciler = Reconciler(source, target)
        self.executor = SyncExecutor(source, target)

    def side_labels(self, flipped: bool = False) -> tuple[str, str]:
        """Labels of the databases playing (source, target)."""
        if flipped:
            return self.target.label, self.source.label
        return self.source.label, self.target.label

    def compare(self, flipped: bool = False) -> ComparisonResult:
        """
        Compare both databases.

        Raises:
            ConnectivityError: If either database cannot be read
        """
        logger.info(f"Comparing permissions (flipped={flipped})")
        diffs = self.reconciler.compare()
        result = ComparisonResult(diffs=diffs, flipped=flipped)
        logger.info(f"Comparison summary: {result.summary()}")
        return result

    def apply(
        self, diffs: Iterable[PermissionDiff], flipped: bool = False
    ) -> SyncReport:
        """
        Replay selected diffs into the database playing target.

        Never raises for individual diff failures; see SyncReport.
        """
        return self.executor.apply(diffs, flipped=flipped)

    def test_connections(self) -> dict[str, dict[str, Any]]:
        """
        Check both databases.

        Returns:
            Mapping of 'source' and 'target' to
            {connected, error, server, database}
        """
        results: dict[str, dict[str, Any]] = {}
        for side, gateway in (("source", self.source), ("target", self.target)):
            info: dict[str, Any] = {"connected": False, "error": None}
            info.update(gateway.connection_info())
            info["connected"] = gateway.test_connection()
            if not info["connected"]:
                info["error"] = "Connection test failed"
            results[side] = info
        return results

    def close(self) -> None:
        self.source.close()
        self.target.close()

    def __repr__(self) -> str:
        return f"SyncEngine(source={self.source!r}, target={self.target!r})"

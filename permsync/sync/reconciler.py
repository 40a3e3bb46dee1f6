"""
Permission reconciler.

Compares the permission tables of two databases and classifies every
matching key as added, removed, modified or identical. Only permissions
belonging to policies present in both databases are compared; a policy
that exists on one side only would otherwise flood the result with rows
nobody can act on.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from permsync.sync.permission import Permission, PermissionDiff

if TYPE_CHECKING:
    from permsync.storage.gateway import PermissionGateway

logger = logging.getLogger(__name__)

# Display order for the standard actions; anything else sorts after these
ACTION_ORDER = ("read", "create", "update", "delete")


def common_policies(
    source: Iterable[Permission], target: Iterable[Permission]
) -> set[str]:
    """Policy ids referenced by permissions on both sides."""
    return {p.policy for p in source} & {p.policy for p in target}


def build_permission_index(
    permissions: Iterable[Permission], side: str = "database"
) -> dict[str, Permission]:
    """
    Index permissions by matching key.

    Keys are unique per database by schema constraint. If that is ever
    violated the last permission read wins and a warning is logged.
    """
    index: dict[str, Permission] = {}
    for permission in permissions:
        key = permission.matching_key()
        if key in index:
            logger.warning(
                f"Duplicate permission key {key} in {side} "
                f"(ids {index[key].id} and {permission.id}); keeping id {permission.id}"
            )
        index[key] = permission
    return index


def action_rank(action: str) -> int:
    try:
        return ACTION_ORDER.index(action.lower())
    except ValueError:
        return len(ACTION_ORDER)


def diff_sort_key(diff: PermissionDiff) -> tuple[str, str, int, str, str, str]:
    """
    Sort key: policy name, collection, action order, then ids for a total order.

    Unknown actions share the rank after ``delete`` and are ordered by name.
    """
    return (
        diff.policy_name,
        diff.collection,
        action_rank(diff.action),
        diff.action,
        diff.policy,
        diff.key,
    )


def reconcile(
    source_permissions: Iterable[Permission],
    target_permissions: Iterable[Permission],
) -> list[PermissionDiff]:
    """
    Classify permissions of two databases by matching key.

    Args:
        source_permissions: Permissions read from the source database
        target_permissions: Permissions read from the target database

    Returns:
        Diffs for every key of the filtered union, sorted by policy name,
        collection and action
    """
    source_permissions = list(source_permissions)
    target_permissions = list(target_permissions)

    policies = common_policies(source_permissions, target_permissions)
    filtered_source = [p for p in source_permissions if p.policy in policies]
    filtered_target = [p for p in target_permissions if p.policy in policies]

    logger.debug(
        f"Policy filter: {len(policies)} common policies, "
        f"source {len(source_permissions)} -> {len(filtered_source)}, "
        f"target {len(target_permissions)} -> {len(filtered_target)}"
    )

    source_index = build_permission_index(filtered_source, side="source")
    target_index = build_permission_index(filtered_target, side="target")

    # dict.fromkeys keeps the union ordered and free of duplicates
    keys = dict.fromkeys([*source_index, *target_index])
    diffs = [
        PermissionDiff.between(source_index.get(key), target_index.get(key))
        for key in keys
    ]
    diffs.sort(key=diff_sort_key)
    return diffs


class Reconciler:
    """
    Compares the permissions of a source and a target database.

    Usage:
        reconciler = Reconciler(source_gateway, target_gateway)
        diffs = reconciler.compare()
    """

    def __init__(self, source: PermissionGateway, target: PermissionGateway):
        self.source = source
        self.target = target

    def compare(self) -> list[PermissionDiff]:
        """
        Fetch both sides and reconcile them.

        Both permission sets are read fresh on every call.

        Returns:
            Ordered list of diffs

        Raises:
            ConnectivityError: If either side cannot be read; no partial
                result is returned
        """
        source_permissions = self.source.fetch_permissions()
        target_permissions = self.target.fetch_permissions()

        diffs = reconcile(source_permissions, target_permissions)
        logger.info(
            f"Compared {len(source_permissions)} source and "
            f"{len(target_permissions)} target permissions: {len(diffs)} keys"
        )
        return diffs

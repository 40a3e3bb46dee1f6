"""
Permission data model for cross-database permission reconciliation.

Provides a normalized Permission representation with methods for:
- Converting from database rows and JSON payloads
- Generating matching keys for cross-database identification
- Comparing the rule content of two permissions

and the PermissionDiff describing the reconciliation outcome of one key.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, cast

from permsync.utils import normalize_fields

# Label used when neither side resolved a policy name
UNKNOWN_POLICY_NAME = "Unknown Policy"

# Separator for the collection:action:policy matching key
KEY_SEPARATOR = ":"


class DiffStatus(str, Enum):
    """Classification of a matching key across the two databases."""

    ADDED = "added"  # Only in source
    REMOVED = "removed"  # Only in target
    MODIFIED = "modified"  # In both, rule content differs
    IDENTICAL = "identical"  # In both, rule content equal after normalization


VALID_STATUSES = {status.value for status in DiffStatus}


class WriteOperation(str, Enum):
    """Write a sync replays against the database playing target."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


def make_permission_key(collection: str, action: str, policy: str) -> str:
    """
    Build the composite key identifying a permission across databases.

    Row ids are local to each database and never compared; the
    (collection, action, policy) triple is unique per database.
    """
    return KEY_SEPARATOR.join((collection, action, policy))


def _as_text(value: Any) -> str | None:
    """
    Coerce an opaque rule column to a string.

    Some drivers decode JSON columns into Python objects; those are
    re-encoded so rule bodies are always compared as strings.
    """
    if value is None or isinstance(value, str):
        return value
    return json.dumps(value)


@dataclass(frozen=True)
class Permission:
    """
    One access-control rule as stored in a permissions table.

    Attributes:
        id: Row id, local to the database it was read from
        policy: Owning policy id
        policy_name: Display name of the policy, resolved by a join (may be None)
        collection: Protected collection name
        action: Operation the rule governs (read, create, update, delete, ...)
        permissions: Filter rule body (opaque JSON string)
        validation: Validation rule body (opaque JSON string)
        presets: Default values body (opaque JSON string)
        fields: Comma-separated list of governed fields, or None

    Usage:
        permission = Permission.from_row(row)
        key = permission.matching_key()
        permission.has_same_rule(other)
    """

    id: Any
    policy: str
    collection: str
    action: str
    policy_name: str | None = None
    permissions: str | None = None
    validation: str | None = None
    presets: str | None = None
    fields: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Permission:
        """
        Create a Permission from a database row mapping.

        Args:
            row: Mapping with the columns of the fetch query

        Returns:
            Permission populated from the row
        """
        policy = row["policy"]
        return cls(
            id=row["id"],
            policy=str(policy) if policy is not None else "",
            collection=row["collection"],
            action=row["action"],
            policy_name=row.get("policy_name"),
            permissions=_as_text(row.get("permissions")),
            validation=_as_text(row.get("validation")),
            presets=_as_text(row.get("presets")),
            fields=row.get("fields"),
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Permission:
        """Create a Permission from its to_dict() representation."""
        return cls.from_row(data)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "policy": self.policy,
            "policy_name": self.policy_name,
            "collection": self.collection,
            "action": self.action,
            "permissions": self.permissions,
            "validation": self.validation,
            "presets": self.presets,
            "fields": self.fields,
        }

    def matching_key(self) -> str:
        """Composite key ``collection:action:policy``."""
        return make_permission_key(self.collection, self.action, self.policy)

    @property
    def normalized_fields(self) -> str | None:
        return normalize_fields(self.fields)

    def rule_content(self) -> tuple[str | None, ...]:
        """
        Content compared between databases.

        Rule bodies are compared as opaque strings; only the field list is
        normalized.
        """
        return (
            self.permissions,
            self.validation,
            self.presets,
            self.normalized_fields,
        )

    def has_same_rule(self, other: Permission) -> bool:
        return self.rule_content() == other.rule_content()


@dataclass(frozen=True)
class PermissionDiff:
    """
    Reconciliation outcome for one matching key.

    ``source`` and ``target`` always hold the records read from the nominal
    source and target databases. Exactly one of these holds:
    ``added`` (target is None), ``removed`` (source is None),
    ``modified``/``identical`` (both present).
    """

    key: str
    collection: str
    action: str
    policy: str
    policy_name: str
    source: Permission | None
    target: Permission | None
    status: DiffStatus

    @classmethod
    def between(
        cls, source: Permission | None, target: Permission | None
    ) -> PermissionDiff:
        """
        Classify a source/target pair sharing one matching key.

        Raises:
            ValueError: If both records are None
        """
        if source is None and target is None:
            raise ValueError("A diff needs at least one permission")

        if target is None:
            status = DiffStatus.ADDED
        elif source is None:
            status = DiffStatus.REMOVED
        elif source.has_same_rule(target):
            status = DiffStatus.IDENTICAL
        else:
            status = DiffStatus.MODIFIED

        reference = cast(Permission, source if source is not None else target)
        policy_name = (
            (source.policy_name if source else None)
            or (target.policy_name if target else None)
            or UNKNOWN_POLICY_NAME
        )

        return cls(
            key=reference.matching_key(),
            collection=reference.collection,
            action=reference.action,
            policy=reference.policy,
            policy_name=policy_name,
            source=source,
            target=target,
            status=status,
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PermissionDiff:
        """
        Rebuild a diff from its to_dict() representation.

        Raises:
            ValueError: If the status is unknown
        """
        status = data.get("status")
        if status not in VALID_STATUSES:
            raise ValueError(
                f"Invalid diff status {status!r}. "
                f"Must be one of: {', '.join(sorted(VALID_STATUSES))}"
            )

        source_data = data.get("source")
        target_data = data.get("target")
        return cls(
            key=data["key"],
            collection=data["collection"],
            action=data["action"],
            policy=str(data["policy"]),
            policy_name=data.get("policy_name") or UNKNOWN_POLICY_NAME,
            source=Permission.from_dict(source_data) if source_data else None,
            target=Permission.from_dict(target_data) if target_data else None,
            status=DiffStatus(status),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "collection": self.collection,
            "action": self.action,
            "policy": self.policy,
            "policy_name": self.policy_name,
            "source": self.source.to_dict() if self.source else None,
            "target": self.target.to_dict() if self.target else None,
            "status": self.status.value,
        }

    def planned_operation(self, flipped: bool = False) -> WriteOperation | None:
        """
        Write a sync of this diff would perform, or None for identical diffs.

        Without flip the target database is written: a record only in source
        is created there and a record only in target is deleted. With flip the
        source database plays target, so create and delete swap.
        """
        if self.status == DiffStatus.IDENTICAL:
            return None
        if self.status == DiffStatus.MODIFIED:
            return WriteOperation.UPDATE
        only_in_source = self.status == DiffStatus.ADDED
        if only_in_source != flipped:
            return WriteOperation.CREATE
        return WriteOperation.DELETE

    def describe(self) -> str:
        return f"{self.collection}:{self.action} for policy {self.policy_name}"

"""
Field list normalization utilities for permission comparison.

Permission rules store the fields they govern as a comma-separated list
whose order and spacing vary between instances. These helpers produce the
canonical form used both for comparison and for the value written back
on sync.
"""

from __future__ import annotations

from dataclasses import dataclass, field


def split_fields(value: str | None) -> list[str]:
    """
    Split a comma-separated field list into sorted, non-empty tokens.

    Args:
        value: Raw field list (e.g. "title, body,,id") or None

    Returns:
        Sorted list of stripped field names, empty for None or ""
    """
    if not value:
        return []
    return sorted(token.strip() for token in value.split(",") if token.strip())


def normalize_fields(value: str | None) -> str | None:
    """
    Normalize a comma-separated field list.

    Splits on commas, strips whitespace, drops empty tokens, sorts the
    remaining names and joins them back with a bare comma. None and the
    empty string are returned unchanged.

    Args:
        value: Raw field list or None

    Returns:
        Canonical field list, or the input if it was None or empty
    """
    if not value:
        return value
    return ",".join(split_fields(value))


@dataclass
class FieldListChanges:
    """Field-level difference between a source and a target field list."""

    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    common: list[str] = field(default_factory=list)

    def has_changes(self) -> bool:
        return bool(self.added or self.removed)


def compare_field_lists(source: str | None, target: str | None) -> FieldListChanges:
    """
    Compare two field lists as the sync would apply them to the target.

    Args:
        source: Field list of the record being copied
        target: Field list of the record being overwritten

    Returns:
        FieldListChanges where ``added`` are fields only in source (they will
        appear in the target) and ``removed`` are fields only in target
    """
    source_fields = split_fields(source)
    target_fields = split_fields(target)
    target_set = set(target_fields)
    source_set = set(source_fields)

    return FieldListChanges(
        added=[name for name in source_fields if name not in target_set],
        removed=[name for name in target_fields if name not in source_set],
        common=[name for name in source_fields if name in target_set],
    )

"""CLI output formatting functions.

This module contains functions for displaying comparison results, diff
details, sync reports and connection checks on the command line.
"""

import json
from typing import TYPE_CHECKING, Any

import click

from permsync.sync.permission import DiffStatus, Permission, WriteOperation
from permsync.utils import compare_field_lists

if TYPE_CHECKING:
    from permsync.sync.engine import ComparisonResult
    from permsync.sync.executor import SyncReport
    from permsync.sync.permission import PermissionDiff

STATUS_COLORS = {
    DiffStatus.ADDED: "green",
    DiffStatus.REMOVED: "red",
    DiffStatus.MODIFIED: "yellow",
    DiffStatus.IDENTICAL: None,
}

OPERATION_SYMBOLS = {
    WriteOperation.CREATE: "+",
    WriteOperation.UPDATE: "~",
    WriteOperation.DELETE: "-",
}


def show_summary(
    result: "ComparisonResult", source_label: str, target_label: str
) -> None:
    """
    Display per-status counts of a comparison.

    Args:
        result: ComparisonResult to summarize
        source_label: Label of the database playing source
        target_label: Label of the database playing target
    """
    summary = result.summary()
    click.echo(f"Comparison: {source_label} -> {target_label}")
    click.echo(f"  Total:     {summary['total']}")
    for status in DiffStatus:
        label = f"{status.value.capitalize()}:"
        click.echo(
            click.style(
                f"  {label:<10} {summary[status.value]}", fg=STATUS_COLORS[status]
            )
        )


def format_diff_line(diff: "PermissionDiff", flipped: bool = False) -> str:
    """Format one diff as a single table line."""
    operation = diff.planned_operation(flipped)
    symbol = OPERATION_SYMBOLS[operation] if operation else "="
    planned = operation.value if operation else "none"
    return (
        f"  {symbol} [{diff.status.value.upper():<9}] {diff.policy_name} | "
        f"{diff.collection}:{diff.action} ({planned})"
    )


def show_diff_table(result: "ComparisonResult", limit: int = 0) -> None:
    """
    Display the diffs of a comparison, one per line.

    Args:
        result: ComparisonResult to display
        limit: Maximum number of lines (0 for all)
    """
    diffs = result.diffs if limit <= 0 else result.diffs[:limit]
    for diff in diffs:
        click.echo(
            click.style(
                format_diff_line(diff, result.flipped), fg=STATUS_COLORS[diff.status]
            )
        )
    if 0 < limit < len(result.diffs):
        click.echo(f"  ... and {len(result.diffs) - limit} more")


def _rule_view(permission: Permission | None) -> str:
    if permission is None:
        return "None"
    return json.dumps(
        {
            "permissions": permission.permissions,
            "validation": permission.validation,
            "presets": permission.presets,
            "fields": permission.normalized_fields,
        },
        indent=2,
    )


def show_diff_details(
    diff: "PermissionDiff",
    source_label: str = "source",
    target_label: str = "target",
    flipped: bool = False,
) -> None:
    """
    Display the rule content of both sides of a diff.

    Field lists are shown normalized. For modified diffs the field-level
    change the sync would make is listed as well.
    """
    click.echo(f"\n--- {diff.collection} -> {diff.action} -> {diff.policy_name} ---")
    click.echo(f"Key: {diff.key}  Status: {diff.status.value}")

    click.echo(f"\n{source_label}:")
    click.echo(_rule_view(diff.source))
    click.echo(f"\n{target_label}:")
    click.echo(_rule_view(diff.target))

    if diff.source is None or diff.target is None:
        return

    # Changes as seen by the database being written
    if flipped:
        origin, written = diff.target, diff.source
    else:
        origin, written = diff.source, diff.target
    changes = compare_field_lists(origin.fields, written.fields)
    if changes.has_changes():
        click.echo("\nField changes:")
        for name in changes.added:
            click.echo(click.style(f"  + {name}", fg="green"))
        for name in changes.removed:
            click.echo(click.style(f"  - {name}", fg="red"))
        click.echo(f"  ({len(changes.common)} unchanged)")

    for column in ("permissions", "validation", "presets"):
        if getattr(origin, column) != getattr(written, column):
            click.echo(f"  {column} differs")


def show_sync_report(report: "SyncReport") -> None:
    """Display per-diff results and the totals of a sync."""
    for item in report.results:
        if item.success:
            click.echo(click.style(f"  OK   {item.message}", fg="green"))
        else:
            click.echo(click.style(f"  FAIL {item.message}", fg="red"))

    color = "green" if report.success else "yellow"
    click.echo(click.style(f"\n{report.message()}", fg=color))


def show_connection_results(results: dict[str, dict[str, Any]]) -> None:
    """Display the outcome of a connection test for both databases."""
    for side, info in results.items():
        location = f"{info.get('server') or '?'}/{info.get('database') or '?'}"
        if info.get("connected"):
            click.echo(click.style(f"  {side}: connected ({location})", fg="green"))
        else:
            error = info.get("error") or "unknown error"
            click.echo(click.style(f"  {side}: FAILED ({location}): {error}", fg="red"))

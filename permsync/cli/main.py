"""
Command-line interface for permsync.

Provides CLI commands for checking connections, comparing permissions and
replaying differences between a source and a target database.

Usage:
    # Show help
    permsync --help

    # Check both databases
    permsync test-connection

    # Compare
    permsync compare
    permsync compare --status modified --details
    permsync compare --json --output diffs.json

    # Replay differences
    permsync sync --dry-run
    permsync sync --policy Editors --yes
    permsync sync --flip --from-file diffs.json
"""

import json
import sys
from pathlib import Path
from typing import Any

import click
from click.core import ParameterSource

from permsync import __version__
from permsync.cli.formatters import (
    show_connection_results,
    show_diff_details,
    show_diff_table,
    show_summary,
    show_sync_report,
)
from permsync.config.connection import (
    SOURCE_ENV_VAR,
    TARGET_ENV_VAR,
    ConnectionStringError,
)
from permsync.config.loader import ConfigError, ConfigLoader, build_database_config
from permsync.storage.gateway import ConnectivityError, PermissionGateway
from permsync.sync.engine import ComparisonResult, SyncEngine
from permsync.sync.permission import DiffStatus, PermissionDiff
from permsync.utils import DEFAULT_CONFIG_DIR, resolve_config_dir
from permsync.utils.logging import (
    cleanup_old_logs,
    get_logger,
    setup_audit_logger,
    setup_logging,
)

# Default configuration file
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"

# Status names accepted by --status
STATUS_CHOICES = [status.value for status in DiffStatus]

# Statuses a sync can act on
SYNCABLE_STATUS_CHOICES = [
    status.value for status in DiffStatus if status != DiffStatus.IDENTICAL
]

# Exit code when a sync finished but some diffs failed
EXIT_PARTIAL_FAILURE = 2


def get_config_dir(config_dir: str | None) -> Path:
    """Get the configuration directory path."""
    return resolve_config_dir(config_dir)


def get_config_file(config_file: str | None, config_dir: Path) -> Path:
    """Get the configuration file path."""
    if config_file:
        return Path(config_file)
    return config_dir / "config.yaml"


def create_sync_engine(ctx: click.Context) -> SyncEngine:
    """
    Build the sync engine from CLI options and the config file.

    Raises:
        ConfigError: If a side has no connection configured
        ConnectionStringError: If a connection value cannot be parsed
    """
    config = ctx.obj["config"]
    source = PermissionGateway(
        build_database_config(ctx.obj.get("source"), config, "source"),
        label="source",
    )
    target = PermissionGateway(
        build_database_config(ctx.obj.get("target"), config, "target"),
        label="target",
    )
    return SyncEngine(source=source, target=target)


def resolve_flipped(ctx: click.Context, flip: bool) -> bool:
    """--flip/--no-flip when given, else 'flipped' from the config file."""
    if ctx.get_parameter_source("flip") != ParameterSource.DEFAULT:
        return flip
    return bool(ctx.obj["config"].get("flipped", False))


def load_diffs_file(path: str) -> list[PermissionDiff]:
    """
    Load diffs exported with ``compare --json``.

    Accepts either the full export ({"data": [...]}) or a bare list.

    Raises:
        click.BadParameter: If the file is not a valid export
    """
    try:
        with open(path, encoding="utf-8") as f:
            payload = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise click.BadParameter(f"Cannot read diffs file: {e}") from e

    items = payload.get("data") if isinstance(payload, dict) else payload
    if not isinstance(items, list):
        raise click.BadParameter("Diffs file must contain a list of diffs")

    try:
        return [PermissionDiff.from_dict(item) for item in items]
    except (KeyError, TypeError, ValueError) as e:
        raise click.BadParameter(f"Invalid diff in file: {e}") from e


def _fail(message: str) -> None:
    click.echo(click.style(message, fg="red"), err=True)
    sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="permsync")
@click.option(
    "--verbose", "-v", is_flag=True, help="Enable verbose output with detailed logging."
)
@click.option(
    "--config-dir",
    "-c",
    type=click.Path(exists=False, file_okay=False, dir_okay=True),
    envvar="PERMSYNC_CONFIG_DIR",
    help="Configuration directory path (default: ~/.permsync).",
)
@click.option(
    "--config-file",
    "-f",
    type=click.Path(exists=False, file_okay=True, dir_okay=False),
    envvar="PERMSYNC_CONFIG_FILE",
    help="Configuration file path (default: <config-dir>/config.yaml).",
)
@click.option(
    "--source",
    "-s",
    envvar=SOURCE_ENV_VAR,
    help=f"Source database URL or connection string (env: {SOURCE_ENV_VAR}).",
)
@click.option(
    "--target",
    "-t",
    envvar=TARGET_ENV_VAR,
    help=f"Target database URL or connection string (env: {TARGET_ENV_VAR}).",
)
@click.option("--permissions-table", help="Permissions table name.")
@click.option("--policies-table", help="Policies table name.")
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    config_dir: str | None,
    config_file: str | None,
    source: str | None,
    target: str | None,
    permissions_table: str | None,
    policies_table: str | None,
) -> None:
    """
    Directus Permission Sync.

    Compares the permission rules of two databases and replays selected
    differences from the source onto the target (or the reverse with
    --flip).
    """
    ctx.ensure_object(dict)

    resolved_config_dir = get_config_dir(config_dir)
    resolved_config_file = get_config_file(config_file, resolved_config_dir)
    ctx.obj["config_dir"] = resolved_config_dir
    ctx.obj["config_file"] = resolved_config_file

    config: dict[str, Any] = {}
    try:
        loader = ConfigLoader(config_dir=resolved_config_dir)
        config = loader.load_from_file(resolved_config_file)
        if config:
            loader.validate(config)
    except ConfigError as e:
        # Show error but don't fail - allow CLI to work from options alone
        click.echo(
            click.style(f"Warning: Configuration error: {e}", fg="yellow"), err=True
        )
        config = {}

    # CLI options take precedence over the config file
    if permissions_table:
        config["permissions_table"] = permissions_table
    if policies_table:
        config["policies_table"] = policies_table

    ctx.obj["config"] = config
    ctx.obj["source"] = source
    ctx.obj["target"] = target

    effective_verbose = verbose or config.get("verbose", False)
    ctx.obj["verbose"] = effective_verbose

    log_dir = Path(config["log_dir"]).expanduser() if config.get("log_dir") else None
    ctx.obj["log_dir"] = log_dir

    setup_logging(verbose=effective_verbose, log_dir=log_dir, enable_file_logging=True)

    log_retention = config.get("log_retention_count", 10)
    if log_retention > 0:
        cleanup_old_logs(log_dir=log_dir, keep_count=log_retention)


# =============================================================================
# Test Connection Command
# =============================================================================


@cli.command("test-connection")
@click.pass_context
def test_connection_command(ctx: click.Context) -> None:
    """
    Check that both databases can be reached.

    Examples:

        permsync test-connection
        permsync --source sqlite:///a.db --target sqlite:///b.db test-connection
    """
    try:
        engine = create_sync_engine(ctx)
    except (ConfigError, ConnectionStringError) as e:
        _fail(f"Error: {e}")
        return

    try:
        click.echo("Testing database connections...")
        results = engine.test_connections()
    finally:
        engine.close()

    show_connection_results(results)

    if all(info["connected"] for info in results.values()):
        click.echo(click.style("\nAll connections successful", fg="green"))
    else:
        click.echo(click.style("\nSome connections failed", fg="red"), err=True)
        sys.exit(1)


# =============================================================================
# Compare Command
# =============================================================================


@cli.command("compare")
@click.option(
    "--flip/--no-flip",
    default=False,
    help="Treat the target database as source (sync would write the source). "
    "Overrides 'flipped' in the config file.",
)
@click.option(
    "--policy", "policies", multiple=True, help="Only show this policy (repeatable)."
)
@click.option(
    "--status",
    "statuses",
    multiple=True,
    type=click.Choice(STATUS_CHOICES, case_sensitive=False),
    help="Only show this status (repeatable).",
)
@click.option(
    "--details", "-d", is_flag=True, help="Show rule content for changed permissions."
)
@click.option("--json", "as_json", is_flag=True, help="Output the diffs as JSON.")
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, writable=True),
    help="Write JSON output to this file instead of stdout.",
)
@click.pass_context
def compare_command(
    ctx: click.Context,
    flip: bool,
    policies: tuple[str, ...],
    statuses: tuple[str, ...],
    details: bool,
    as_json: bool,
    output: str | None,
) -> None:
    """
    Compare the permissions of both databases.

    Only permissions of policies present in both databases are compared.
    Field lists are compared regardless of order and spacing.

    Examples:

        # Everything that differs
        permsync compare --status added --status removed --status modified

        # Export for a later sync
        permsync compare --json --output diffs.json
    """
    logger = get_logger(__name__)
    flipped = resolve_flipped(ctx, flip)

    try:
        engine = create_sync_engine(ctx)
    except (ConfigError, ConnectionStringError) as e:
        _fail(f"Error: {e}")
        return

    try:
        result = engine.compare(flipped=flipped).filter(
            policy_names=policies, statuses=[s.lower() for s in statuses]
        )
    except ConnectivityError as e:
        logger.error(f"Comparison failed: {e}")
        _fail(f"Failed to compare permissions: {e}")
        return
    finally:
        engine.close()

    if as_json:
        payload = json.dumps(result.to_dict(), indent=2, default=str)
        if output:
            Path(output).write_text(payload + "\n", encoding="utf-8")
            click.echo(f"Wrote {len(result.diffs)} diffs to {output}")
        else:
            click.echo(payload)
        return

    source_label, target_label = engine.side_labels(flipped)
    show_summary(result, source_label, target_label)

    if not result.diffs:
        click.echo("\nNo permissions to show.")
        return

    click.echo("")
    show_diff_table(result)

    if details:
        for diff in result.selectable():
            show_diff_details(diff, engine.source.label, engine.target.label, flipped)


# =============================================================================
# Sync Command
# =============================================================================


@cli.command("sync")
@click.option(
    "--flip/--no-flip",
    default=False,
    help="Write the source database from the target instead. "
    "Overrides 'flipped' in the config file.",
)
@click.option(
    "--policy", "policies", multiple=True, help="Only sync this policy (repeatable)."
)
@click.option(
    "--status",
    "statuses",
    multiple=True,
    type=click.Choice(SYNCABLE_STATUS_CHOICES, case_sensitive=False),
    help="Only sync this status (repeatable).",
)
@click.option(
    "--key", "keys", multiple=True, help="Only sync this permission key (repeatable)."
)
@click.option(
    "--from-file",
    type=click.Path(exists=True, dir_okay=False),
    help="Sync diffs exported with 'compare --json' instead of comparing now.",
)
@click.option(
    "--dry-run", "-n", is_flag=True, help="Preview changes without applying them."
)
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt.")
@click.pass_context
def sync_command(
    ctx: click.Context,
    flip: bool,
    policies: tuple[str, ...],
    statuses: tuple[str, ...],
    keys: tuple[str, ...],
    from_file: str | None,
    dry_run: bool,
    yes: bool,
) -> None:
    """
    Replay permission differences into the target database.

    Identical permissions are never synced. Each permission is written on
    its own; a failure is reported and the remaining permissions are still
    synced. Afterwards both databases are compared again to confirm the
    synced permissions converged.

    Examples:

        # Preview
        permsync sync --dry-run

        # Only modified rules of one policy, no prompt
        permsync sync --status modified --policy Editors --yes

        # Copy from target back into source
        permsync sync --flip
    """
    logger = get_logger(__name__)
    flipped = resolve_flipped(ctx, flip)

    try:
        engine = create_sync_engine(ctx)
    except (ConfigError, ConnectionStringError) as e:
        _fail(f"Error: {e}")
        return

    try:
        if from_file:
            result = ComparisonResult(diffs=load_diffs_file(from_file), flipped=flipped)
        else:
            click.echo("Comparing permissions...")
            result = engine.compare(flipped=flipped)

        selected = result.filter(
            policy_names=policies,
            statuses=[s.lower() for s in statuses],
            keys=keys,
        )
        diffs = selected.selectable()
        source_label, target_label = engine.side_labels(flipped)

        if not diffs:
            click.echo(
                click.style(
                    "\nDatabases are already in sync. No changes needed.", fg="green"
                )
            )
            return

        click.echo(
            f"\n{len(diffs)} permissions to sync "
            f"from {source_label} into {target_label}:"
        )
        show_diff_table(ComparisonResult(diffs=diffs, flipped=flipped))

        if dry_run:
            click.echo(
                click.style("\nDry run complete. No changes were made.", fg="yellow")
            )
            click.echo("Run without --dry-run to apply these changes.")
            return

        if not yes:
            click.confirm(
                f"\nApply {len(diffs)} changes to the {target_label} database?",
                abort=True,
            )

        setup_audit_logger(log_dir=ctx.obj.get("log_dir"))
        click.echo("\nSynchronizing...")
        report = engine.apply(diffs, flipped=flipped)
        show_sync_report(report)

        # Confirm convergence of what was synced successfully
        synced_keys = [r.key for r in report.results if r.success]
        if synced_keys:
            recheck = engine.compare(flipped=flipped).filter(keys=synced_keys)
            remaining = recheck.selectable()
            if remaining:
                click.echo(
                    click.style(
                        f"Warning: {len(remaining)} synced permissions still differ.",
                        fg="yellow",
                    )
                )
            else:
                click.echo("All synced permissions now match.")
    except ConnectivityError as e:
        logger.error(f"Sync failed: {e}")
        _fail(f"\nSync failed: {e}")
        return
    finally:
        engine.close()

    if not report.success:
        sys.exit(EXIT_PARTIAL_FAILURE)

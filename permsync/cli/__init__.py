"""CLI package for permsync."""

from permsync.cli.formatters import (
    format_diff_line,
    show_connection_results,
    show_diff_details,
    show_diff_table,
    show_summary,
    show_sync_report,
)
from permsync.cli.main import (
    DEFAULT_CONFIG_FILE,
    cli,
    create_sync_engine,
    get_config_dir,
    load_diffs_file,
)
from permsync.utils import DEFAULT_CONFIG_DIR

__all__ = [
    "DEFAULT_CONFIG_DIR",
    "DEFAULT_CONFIG_FILE",
    "cli",
    "create_sync_engine",
    "format_diff_line",
    "get_config_dir",
    "load_diffs_file",
    "show_connection_results",
    "show_diff_details",
    "show_diff_table",
    "show_summary",
    "show_sync_report",
]

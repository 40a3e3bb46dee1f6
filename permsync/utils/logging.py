"""
Logging configuration module for permsync.

Provides centralized logging configuration with support for:
- Console and file logging
- Configurable log levels via environment variables
- Verbose mode for detailed output
- Colored output for better readability (when supported)
- A dedicated audit log recording every write replayed by a sync
"""

import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

# Default log format
DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Simplified format for console (less verbose)
CONSOLE_FORMAT = "%(levelname)s: %(message)s"

# Verbose format (includes more details)
VERBOSE_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
)

# Date format for log timestamps
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Environment variable names
ENV_LOG_LEVEL = "PERMSYNC_LOG_LEVEL"
ENV_DEBUG = "PERMSYNC_DEBUG"
ENV_LOG_FILE = "PERMSYNC_LOG_FILE"

# Root logger name for the package
ROOT_LOGGER_NAME = "permsync"

# Audit logger records each create/update/delete issued against a database
AUDIT_LOGGER_NAME = "permsync.audit"
AUDIT_LOG_FORMAT = "%(asctime)s.%(msecs)03d - %(levelname)s - %(message)s"
AUDIT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _get_default_log_dir() -> Path:
    """Get the default logs directory under the user's config directory."""
    from permsync.utils.paths import resolve_config_dir

    return resolve_config_dir() / "logs"


DEFAULT_LOG_DIR = _get_default_log_dir()


class ColoredFormatter(logging.Formatter):
    """
    A logging formatter that adds ANSI color codes to log messages.

    Colors are only applied when output is to a terminal that supports them.
    """

    # ANSI color codes
    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(
        self,
        fmt: Optional[str] = None,
        datefmt: Optional[str] = None,
        use_colors: bool = True,
    ):
        super().__init__(fmt, datefmt)
        self.use_colors = use_colors and self._supports_color()

    def _supports_color(self) -> bool:
        """Check if the terminal supports colors."""
        if not hasattr(sys.stdout, "isatty") or not sys.stdout.isatty():
            return False

        # https://no-color.org/
        if os.environ.get("NO_COLOR"):
            return False

        term = os.environ.get("TERM", "")
        return term != "dumb"

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record with optional colors."""
        # Copy so other handlers see the uncolored record
        record = logging.makeLogRecord(record.__dict__)

        if self.use_colors and record.levelname in self.COLORS:
            color = self.COLORS[record.levelname]
            record.levelname = f"{color}{record.levelname}{self.RESET}"
            record.msg = f"{color}{record.msg}{self.RESET}"

        return super().format(record)


def get_log_level_from_env() -> int:
    """
    Get the logging level from environment variables.

    Checks PERMSYNC_DEBUG and PERMSYNC_LOG_LEVEL to determine the
    appropriate log level.

    Returns:
        Logging level constant (e.g., logging.DEBUG, logging.INFO)
    """
    if os.environ.get(ENV_DEBUG, "").lower() in ("1", "true", "yes"):
        return logging.DEBUG

    level_str = os.environ.get(ENV_LOG_LEVEL, "INFO").upper()

    level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "WARN": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }

    return level_map.get(level_str, logging.INFO)


def get_log_file_path(log_dir: Optional[Path] = None) -> Optional[Path]:
    """
    Get the log file path from environment or default location.

    Args:
        log_dir: Directory to use instead of the default logs directory

    Returns:
        Path to log file, or None if file logging is disabled
    """
    log_file = os.environ.get(ENV_LOG_FILE)
    if log_file:
        if log_file.lower() in ("none", "disabled"):
            return None
        return Path(log_file)

    logs_dir = log_dir or DEFAULT_LOG_DIR
    return logs_dir / f"permsync_{datetime.now().strftime('%Y%m%d')}.log"


def setup_logging(
    level: Optional[int] = None,
    verbose: bool = False,
    log_dir: Optional[Path] = None,
    log_file: Optional[Path] = None,
    enable_file_logging: bool = True,
    use_colors: bool = True,
) -> logging.Logger:
    """
    Configure logging for the permsync application.

    Sets up both console and file logging handlers with appropriate
    formatters and levels.

    Args:
        level: Logging level. If None, determined from environment variables.
        verbose: If True, use verbose format and DEBUG level.
        log_dir: Directory for log files. If provided, overrides default.
        log_file: Path to log file. If None, uses log_dir or default.
        enable_file_logging: If False, disable file logging entirely.
        use_colors: If True, use colored output for console (when supported).

    Returns:
        The root logger for permsync

    Example:
        # Verbose mode for CLI
        setup_logging(verbose=True)

        # Console only
        setup_logging(enable_file_logging=False)
    """
    if level is None:
        level = get_log_level_from_env()
    if verbose:
        level = logging.DEBUG

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()

    # Prevent propagation to root logger to avoid duplicate messages
    logger.propagate = False

    console_format = VERBOSE_FORMAT if verbose else CONSOLE_FORMAT

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)

    console_formatter: logging.Formatter
    if use_colors:
        console_formatter = ColoredFormatter(console_format, DATE_FORMAT)
    else:
        console_formatter = logging.Formatter(console_format, DATE_FORMAT)

    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    if enable_file_logging:
        file_path = log_file if log_file else get_log_file_path(log_dir)

        if file_path:
            try:
                file_path.parent.mkdir(parents=True, exist_ok=True)

                file_handler = logging.FileHandler(file_path, encoding="utf-8")
                file_handler.setLevel(logging.DEBUG)  # Always capture debug in file
                file_handler.setFormatter(
                    logging.Formatter(VERBOSE_FORMAT, DATE_FORMAT)
                )
                logger.addHandler(file_handler)

                logger.debug(f"Log file: {file_path}")
            except OSError as e:
                logger.warning(f"Could not create log file {file_path}: {e}")

    return logger


def cleanup_old_logs(log_dir: Optional[Path] = None, keep_count: int = 10) -> int:
    """
    Clean up old log files, keeping only the most recent ones.

    Removes old permsync_*.log and audit_*.log files from the log directory,
    keeping only the specified number of most recent files of each type.

    Args:
        log_dir: Directory containing log files. If None, uses the default.
        keep_count: Number of log files to keep for each type. 0 disables
                    cleanup.

    Returns:
        Number of files deleted.
    """
    if keep_count <= 0:
        return 0

    logs_dir = log_dir or DEFAULT_LOG_DIR
    if not logs_dir.exists():
        return 0

    deleted_count = 0
    for pattern in ("permsync_*.log", "audit_*.log"):
        logs = sorted(
            logs_dir.glob(pattern),
            key=lambda p: p.stat().st_mtime,
            reverse=True,
        )
        for old_log in logs[keep_count:]:
            try:
                old_log.unlink()
                deleted_count += 1
            except OSError:
                pass  # Ignore errors deleting old logs

    return deleted_count


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a specific module.

    Returns a child logger of the permsync logger hierarchy.

    Args:
        name: Name of the module (typically __name__)

    Returns:
        Logger instance for the module
    """
    if not name.startswith(ROOT_LOGGER_NAME):
        name = f"{ROOT_LOGGER_NAME}.{name}"

    return logging.getLogger(name)


def get_audit_log_path(log_dir: Optional[Path] = None) -> Path:
    """
    Get a timestamped path for a sync session's audit log.

    Args:
        log_dir: Optional directory for log files. Defaults to the logs
                 directory under the config directory.

    Returns:
        Path to the audit log file
    """
    logs_dir = log_dir or DEFAULT_LOG_DIR
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return logs_dir / f"audit_{timestamp}.log"


def setup_audit_logger(
    log_file: Optional[Path] = None,
    log_dir: Optional[Path] = None,
) -> logging.Logger:
    """
    Set up the audit logger for one sync session.

    The audit log records every statement replayed against a database
    together with the permission key and the outcome, so that a sync can
    be reviewed or reverted by hand afterwards.

    Args:
        log_file: Optional explicit path for the audit file
        log_dir: Optional directory used when log_file is not given

    Returns:
        Logger instance for audit records
    """
    logger = logging.getLogger(AUDIT_LOGGER_NAME)
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    logger.propagate = False

    file_path = log_file if log_file else get_audit_log_path(log_dir)

    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(file_path, encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter(AUDIT_LOG_FORMAT, AUDIT_DATE_FORMAT)
        )
        logger.addHandler(file_handler)
        logger.info(f"Audit session started at {datetime.now().isoformat()}")
    except OSError as e:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(
            logging.Formatter(AUDIT_LOG_FORMAT, AUDIT_DATE_FORMAT)
        )
        logger.addHandler(console_handler)
        logger.warning(f"Could not create audit log file {file_path}: {e}")

    return logger


def get_audit_logger() -> logging.Logger:
    """
    Get the audit logger instance.

    If setup_audit_logger() has not been called the logger has no handlers
    of its own and records propagate to the permsync logger.
    """
    return logging.getLogger(AUDIT_LOGGER_NAME)


__all__ = [
    "setup_logging",
    "get_logger",
    "cleanup_old_logs",
    "ColoredFormatter",
    "get_log_level_from_env",
    "get_log_file_path",
    "setup_audit_logger",
    "get_audit_logger",
    "get_audit_log_path",
    "DEFAULT_LOG_DIR",
    "DEFAULT_FORMAT",
    "CONSOLE_FORMAT",
    "VERBOSE_FORMAT",
    "DATE_FORMAT",
    "AUDIT_LOG_FORMAT",
    "AUDIT_DATE_FORMAT",
]

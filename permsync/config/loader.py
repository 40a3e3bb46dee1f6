"""
Configuration loader module for permission synchronization.

Provides YAML-based configuration file loading with support for:
- Loading configuration from default or custom paths
- Graceful handling of missing configuration files
- Basic validation of configuration structure
- Building the per-side DatabaseConfig objects

Example config.yaml:

    source: postgresql+psycopg2://directus@staging-db/directus
    target: "Server=prod-db,1433;Database=directus;User Id=sync;Password=..."
    permissions_table: directus_permissions
    policies_table: directus_policies
    verbose: false
    log_dir: ~/.permsync/logs
    log_retention_count: 10
"""

import logging
from pathlib import Path
from typing import Any, Optional

import yaml

from permsync.config.connection import (
    DEFAULT_PERMISSIONS_TABLE,
    DEFAULT_POLICIES_TABLE,
    DatabaseConfig,
)
from permsync.utils.paths import resolve_config_dir

# Default configuration file name
DEFAULT_CONFIG_FILE = "config.yaml"

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when configuration loading or validation fails."""

    pass


# Valid configuration keys and their expected types
VALID_KEYS: dict[str, type[Any] | tuple[type[Any], ...]] = {
    # Connections
    "source": str,
    "target": str,
    "permissions_table": str,
    "policies_table": str,
    "engine_options": dict,
    # Behaviour
    "flipped": bool,
    "verbose": bool,
    # Logging options
    "log_dir": str,
    "log_retention_count": int,
}


class ConfigLoader:
    """
    YAML configuration file loader.

    Attributes:
        config_dir: Directory containing the configuration file
        config_file: Name of the configuration file

    Usage:
        loader = ConfigLoader()
        config = loader.load()

        # Load from specific file
        config = loader.load_from_file("/path/to/config.yaml")
    """

    def __init__(
        self, config_dir: Path | None = None, config_file: str = DEFAULT_CONFIG_FILE
    ):
        """
        Initialize the configuration loader.

        Args:
            config_dir: Directory containing the configuration file.
                       Defaults to ~/.permsync/ or $PERMSYNC_CONFIG_DIR
            config_file: Name of the configuration file (default: config.yaml)
        """
        self.config_dir = resolve_config_dir(config_dir)
        self.config_file = config_file

    def _get_config_path(self) -> Path:
        return self.config_dir / self.config_file

    def load(self) -> dict[str, Any]:
        """
        Load configuration from the default configuration file.

        Returns:
            Dictionary containing configuration values, or empty dict if file
            doesn't exist

        Raises:
            ConfigError: If the configuration file exists but cannot be parsed
        """
        return self.load_from_file(self._get_config_path())

    def load_from_file(self, path: Path | str) -> dict[str, Any]:
        """
        Load configuration from a specific file.

        Returns an empty dict if the file doesn't exist, allowing
        graceful operation with CLI defaults.

        Raises:
            ConfigError: If the configuration file exists but cannot be parsed
        """
        path = Path(path)

        if not path.exists():
            logger.debug(f"Configuration file not found: {path}")
            return {}

        try:
            with open(path, encoding="utf-8") as f:
                config = yaml.safe_load(f)

            if config is None:
                logger.debug(f"Configuration file is empty: {path}")
                return {}

            if not isinstance(config, dict):
                raise ConfigError(
                    f"Configuration file must contain a YAML dictionary, "
                    f"got {type(config).__name__}"
                )

            logger.debug(f"Loaded configuration from {path}")
            return config

        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse YAML configuration file: {e}") from e
        except OSError as e:
            raise ConfigError(f"Failed to read configuration file: {e}") from e

    def validate(self, config: dict[str, Any]) -> None:
        """
        Validate configuration structure and values.

        Unknown keys are ignored.

        Raises:
            ConfigError: If configuration is invalid
        """
        if not isinstance(config, dict):
            raise ConfigError(
                f"Configuration must be a dictionary, got {type(config).__name__}"
            )

        for key, value in config.items():
            if key not in VALID_KEYS:
                continue
            expected_type = VALID_KEYS[key]
            # bool is an int subclass; reject it where a count is expected
            if not isinstance(value, expected_type) or (
                expected_type is int and isinstance(value, bool)
            ):
                if isinstance(expected_type, tuple):
                    type_name = " or ".join(t.__name__ for t in expected_type)
                else:
                    type_name = expected_type.__name__
                raise ConfigError(
                    f"Invalid type for '{key}': expected {type_name}, "
                    f"got {type(value).__name__}"
                )

        if "log_retention_count" in config and config["log_retention_count"] < 0:
            raise ConfigError(
                f"log_retention_count must be >= 0, "
                f"got {config['log_retention_count']}"
            )

        for key in ("source", "target", "permissions_table", "policies_table"):
            if key in config and not config[key].strip():
                raise ConfigError(f"{key} cannot be empty")


def build_database_config(
    value: Optional[str],
    config: dict[str, Any],
    side: str,
) -> DatabaseConfig:
    """
    Build the DatabaseConfig for one side.

    Args:
        value: Connection value from the CLI or environment, taking
               precedence over the config file
        config: Loaded configuration dictionary
        side: 'source' or 'target'

    Returns:
        DatabaseConfig for the side

    Raises:
        ConfigError: If no connection is configured for the side
        ConnectionStringError: If the connection value cannot be parsed
    """
    connection = value or config.get(side)
    if not connection:
        raise ConfigError(
            f"No {side} database configured. Set --{side}, the "
            f"{side.upper()}_DB_CONNECTION_STRING environment variable, "
            f"or '{side}' in the config file."
        )

    return DatabaseConfig.from_value(
        connection,
        permissions_table=config.get("permissions_table", DEFAULT_PERMISSIONS_TABLE),
        policies_table=config.get("policies_table", DEFAULT_POLICIES_TABLE),
        engine_options=config.get("engine_options"),
    )

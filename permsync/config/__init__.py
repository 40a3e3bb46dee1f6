"""
permsync.config - Configuration management module

Contains configuration loading, validation, and database connection settings.
"""

from permsync.config.connection import (
    ConnectionStringError,
    DatabaseConfig,
)
from permsync.config.loader import (
    ConfigError,
    ConfigLoader,
    build_database_config,
)

__all__ = [
    "ConfigError",
    "ConfigLoader",
    "ConnectionStringError",
    "DatabaseConfig",
    "build_database_config",
]

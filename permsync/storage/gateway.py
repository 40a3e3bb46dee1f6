"""
SQLAlchemy gateway for reading and writing permission tables.

Provides a single access point to one side's database so that the
reconciler and the sync executor never open connections themselves.
Works with any relational engine SQLAlchemy has a dialect for.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from permsync.config.connection import DatabaseConfig
from permsync.sync.permission import Permission

logger = logging.getLogger(__name__)

# Failures raised while creating an engine or connecting: SQLAlchemy errors,
# a missing driver package, and driver connect() rejecting its arguments
# or failing at the socket level
_DATABASE_ERRORS = (SQLAlchemyError, ImportError, TypeError, OSError)


class GatewayError(Exception):
    """Base error for database access failures."""

    pass


class ConnectivityError(GatewayError):
    """Raised when the database cannot be reached or a read query fails."""

    pass


class WriteError(GatewayError):
    """Raised when a single insert, update or delete statement fails."""

    pass


@dataclass(frozen=True)
class PermissionStatements:
    """
    SQL text for the permission queries, bound to concrete table names.

    Table names are validated identifiers (see DatabaseConfig); values are
    always passed as bound parameters.
    """

    permissions_table: str
    policies_table: str

    @property
    def select(self) -> str:
        return (
            "SELECT p.id, p.policy, pol.name AS policy_name, p.collection, "
            "p.action, p.permissions, p.validation, p.presets, p.fields "
            f"FROM {self.permissions_table} p "
            f"LEFT JOIN {self.policies_table} pol ON p.policy = pol.id "
            "ORDER BY p.collection, p.action, pol.name"
        )

    @property
    def policy_ids(self) -> str:
        return f"SELECT id FROM {self.policies_table}"

    @property
    def insert(self) -> str:
        return (
            f"INSERT INTO {self.permissions_table} "
            "(policy, collection, action, permissions, validation, presets, fields) "
            "VALUES (:policy, :collection, :action, :permissions, :validation, "
            ":presets, :fields)"
        )

    @property
    def update(self) -> str:
        return (
            f"UPDATE {self.permissions_table} "
            "SET permissions = :permissions, validation = :validation, "
            "presets = :presets, fields = :fields "
            "WHERE id = :id"
        )

    @property
    def delete(self) -> str:
        return f"DELETE FROM {self.permissions_table} WHERE id = :id"


class PermissionGateway:
    """
    Database gateway for one side of a comparison.

    The SQLAlchemy engine is created lazily from the explicit config and
    disposed by close(); the gateway can be used as a context manager.

    Usage:
        config = DatabaseConfig.from_value("sqlite:///source.db")
        with PermissionGateway(config, label="source") as gateway:
            permissions = gateway.fetch_permissions()
    """

    def __init__(
        self,
        config: DatabaseConfig,
        engine: Optional[Engine] = None,
        label: str = "database",
    ):
        """
        Initialize the gateway.

        Args:
            config: Connection configuration for this side
            engine: Pre-built engine to use instead of creating one
            label: Name used in log and error messages (e.g. 'source')
        """
        self.config = config
        self.label = label
        self.statements = PermissionStatements(
            permissions_table=config.permissions_table,
            policies_table=config.policies_table,
        )
        self._engine = engine

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            logger.debug(
                f"Creating engine for {self.label}: {self.config.display_url()}"
            )
            self._engine = create_engine(self.config.url, **self.config.engine_options)
        return self._engine

    def close(self) -> None:
        """Dispose of the engine and its connection pool."""
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None

    def __enter__(self) -> PermissionGateway:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def fetch(
        self, statement: str, params: Optional[Mapping[str, Any]] = None
    ) -> list[dict[str, Any]]:
        """
        Run a read query and return its rows as dictionaries.

        Raises:
            ConnectivityError: If the database is unreachable or the query fails
        """
        try:
            with self.engine.connect() as conn:
                result = conn.execute(text(statement), dict(params or {}))
                return [dict(row._mapping) for row in result]
        except _DATABASE_ERRORS as e:
            raise ConnectivityError(
                f"Query against {self.label} database failed: {e}"
            ) from e

    def execute(self, statement: str, params: Mapping[str, Any]) -> None:
        """
        Run a single write statement in its own transaction.

        Raises:
            WriteError: If the statement fails (constraint violation,
                lost connection, ...)
        """
        try:
            with self.engine.begin() as conn:
                conn.execute(text(statement), dict(params))
        except _DATABASE_ERRORS as e:
            raise WriteError(
                f"Write to {self.label} database failed: {e}"
            ) from e

    def fetch_permissions(self) -> list[Permission]:
        """
        Fetch every permission joined with its policy name.

        Rows come back ordered by collection, action and policy name; callers
        must not rely on that order.
        """
        rows = self.fetch(self.statements.select)
        logger.debug(f"Fetched {len(rows)} permissions from {self.label}")
        return [Permission.from_row(row) for row in rows]

    def fetch_policy_ids(self) -> set[str]:
        """Fetch the ids of all policies defined in this database."""
        rows = self.fetch(self.statements.policy_ids)
        return {str(row["id"]) for row in rows}

    def test_connection(self) -> bool:
        """
        Check that the database answers a trivial query.

        Returns:
            True if the query returned a row, False on any failure
        """
        try:
            return len(self.fetch("SELECT 1 AS test")) > 0
        except ConnectivityError as e:
            logger.error(f"Connection test for {self.label} failed: {e}")
            return False

    def connection_info(self) -> dict[str, Any]:
        return {
            "server": self.config.server,
            "database": self.config.database,
        }

    def __repr__(self) -> str:
        url = self.config.display_url()
        return f"PermissionGateway(label={self.label!r}, url={url!r})"

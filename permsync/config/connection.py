"""
Database connection configuration.

Accepts either an SQLAlchemy URL (``postgresql+psycopg2://user@host/db``)
or an ADO-style connection string as used by SQL Server tooling::

    Server=db.example.com,1433;Database=directus;User Id=sa;Password=secret

and turns it into an explicit DatabaseConfig passed to the gateway. There
are no module-level connection singletons; callers own the config and the
gateway built from it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError

# Dialect used for ADO-style connection strings without a Dialect key
DEFAULT_ADO_DIALECT = "mssql+pymssql"

# Default Directus table names
DEFAULT_PERMISSIONS_TABLE = "directus_permissions"
DEFAULT_POLICIES_TABLE = "directus_policies"

# Environment variables read by the CLI for each side
SOURCE_ENV_VAR = "SOURCE_DB_CONNECTION_STRING"
TARGET_ENV_VAR = "TARGET_DB_CONNECTION_STRING"

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")

_TRUE_VALUES = ("true", "yes", "sspi", "1")


class ConnectionStringError(ValueError):
    """Raised when a connection string cannot be parsed."""

    pass


def validate_identifier(name: str) -> str:
    """
    Validate a (optionally schema-qualified) table name.

    Table names are interpolated into SQL text, so only plain identifiers
    are accepted.

    Raises:
        ConnectionStringError: If the name is not a plain identifier
    """
    if not isinstance(name, str) or not _IDENTIFIER_RE.match(name):
        raise ConnectionStringError(f"Invalid table name: {name!r}")
    return name


def parse_ado_connection_string(value: str) -> dict[str, str]:
    """
    Split an ADO-style connection string into lowercase keys and values.

    Parts without ``=`` or with an empty key or value are ignored.
    """
    params: dict[str, str] = {}
    for part in value.split(";"):
        part = part.strip()
        if not part:
            continue
        key, sep, raw = part.partition("=")
        key = key.strip().lower()
        raw = raw.strip()
        if sep and key and raw:
            params[key] = raw
    return params


def _driver_options(dialect: str, params: dict[str, str]) -> dict[str, str]:
    """
    Translate ADO encryption keys into URL query options for the driver.

    URL query keys reach the DBAPI connect() call unchanged, so each driver
    only gets options it accepts: pymssql takes ``encryption``
    (require/off) and has no certificate trust switch, pyodbc takes the
    ODBC keywords as they are, and other drivers get neither.
    """
    encrypt = params.get("encrypt")
    trust = params.get("trustservercertificate")
    driver = dialect.partition("+")[2].lower()

    if driver == "pymssql":
        if encrypt is None:
            return {}
        return {"encryption": "require" if encrypt.lower() in _TRUE_VALUES else "off"}

    if driver == "pyodbc":
        query: dict[str, str] = {}
        if encrypt is not None:
            query["Encrypt"] = "yes" if encrypt.lower() in _TRUE_VALUES else "no"
        if trust is not None:
            query["TrustServerCertificate"] = (
                "yes" if trust.lower() in _TRUE_VALUES else "no"
            )
        return query

    return {}


def ado_to_url(value: str) -> URL:
    """
    Convert an ADO-style connection string to an SQLAlchemy URL.

    Recognized keys (case-insensitive):
        server / data source / host  -- host, optionally "host,port"
        database / initial catalog
        user id / uid / username
        password / pwd
        port
        integrated security / trusted_connection -- drop credentials
        encrypt / trustservercertificate -- translated for the driver
        dialect -- SQLAlchemy dialect+driver (default mssql+pymssql)

    Raises:
        ConnectionStringError: If no server is present
    """
    params = parse_ado_connection_string(value)

    server = params.get("server") or params.get("data source") or params.get("host")
    if not server:
        available = ", ".join(params) or "none"
        raise ConnectionStringError(
            f"Server/Data Source not found in connection string. "
            f"Available keys: {available}"
        )

    host, _, port_text = server.partition(",")
    port_text = port_text.strip() or params.get("port", "")
    port: int | None = None
    if port_text:
        try:
            port = int(port_text)
        except ValueError as e:
            raise ConnectionStringError(f"Invalid port: {port_text!r}") from e

    username = params.get("user id") or params.get("uid") or params.get("username")
    password = params.get("password") or params.get("pwd")
    integrated = (
        params.get("integrated security", "").lower() in _TRUE_VALUES
        or params.get("trusted_connection", "").lower() in _TRUE_VALUES
    )
    if integrated:
        username = password = None

    dialect = params.get("dialect", DEFAULT_ADO_DIALECT)

    return URL.create(
        dialect,
        username=username,
        password=password,
        host=host.strip(),
        port=port,
        database=params.get("database") or params.get("initial catalog"),
        query=_driver_options(dialect, params),
    )


def to_url(value: str) -> URL:
    """
    Interpret a connection value as an SQLAlchemy URL or ADO string.

    Raises:
        ConnectionStringError: If the value is empty or cannot be parsed
    """
    if not value or not isinstance(value, str):
        raise ConnectionStringError(f"Invalid connection string: {value!r}")

    if "://" in value:
        try:
            return make_url(value)
        except ArgumentError as e:
            raise ConnectionStringError(f"Invalid database URL: {e}") from e

    return ado_to_url(value)


@dataclass
class DatabaseConfig:
    """
    Explicit configuration for one side's database.

    Attributes:
        url: SQLAlchemy URL of the database
        permissions_table: Table holding permission rules
        policies_table: Table holding policy names
        engine_options: Extra keyword arguments for sqlalchemy.create_engine

    Usage:
        config = DatabaseConfig.from_value("sqlite:///source.db")
        config = DatabaseConfig.from_value(
            "Server=db;Database=cms;User Id=sa;Password=x",
            permissions_table="directus_permissions",
        )
    """

    url: URL
    permissions_table: str = DEFAULT_PERMISSIONS_TABLE
    policies_table: str = DEFAULT_POLICIES_TABLE
    engine_options: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        validate_identifier(self.permissions_table)
        validate_identifier(self.policies_table)

    @classmethod
    def from_value(
        cls,
        value: str,
        permissions_table: str = DEFAULT_PERMISSIONS_TABLE,
        policies_table: str = DEFAULT_POLICIES_TABLE,
        engine_options: dict[str, Any] | None = None,
    ) -> DatabaseConfig:
        """
        Build a config from a URL or ADO-style connection string.

        Raises:
            ConnectionStringError: If the value or a table name is invalid
        """
        return cls(
            url=to_url(value),
            permissions_table=permissions_table,
            policies_table=policies_table,
            engine_options=dict(engine_options or {}),
        )

    @property
    def server(self) -> str | None:
        """Host (or file path for SQLite) shown in connection reports."""
        return self.url.host or (
            self.url.database if self.url.get_backend_name() == "sqlite" else None
        )

    @property
    def database(self) -> str | None:
        return self.url.database

    def display_url(self) -> str:
        """URL with the password masked."""
        return self.url.render_as_string(hide_password=True)

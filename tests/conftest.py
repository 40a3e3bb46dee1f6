"""Shared fixtures: file-backed SQLite databases with a Directus-like schema."""

import sqlite3

import pytest

SCHEMA = """
CREATE TABLE directus_policies (
    id TEXT PRIMARY KEY,
    name TEXT
);

CREATE TABLE directus_permissions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    policy TEXT REFERENCES directus_policies(id),
    collection TEXT NOT NULL,
    action TEXT NOT NULL,
    permissions TEXT,
    validation TEXT,
    presets TEXT,
    fields TEXT,
    UNIQUE(collection, action, policy)
);
"""


def create_database(path, policies=(), permissions=()):
    """
    Create a SQLite database with policies and permissions.

    Args:
        path: Database file path
        policies: (id, name) tuples
        permissions: dicts with policy, collection, action and optional
            permissions, validation, presets, fields

    Returns:
        SQLAlchemy URL of the database
    """
    conn = sqlite3.connect(str(path))
    try:
        conn.executescript(SCHEMA)
        conn.executemany(
            "INSERT INTO directus_policies (id, name) VALUES (?, ?)", policies
        )
        for perm in permissions:
            conn.execute(
                "INSERT INTO directus_permissions (policy, collection, action, "
                "permissions, validation, presets, fields) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    perm["policy"],
                    perm["collection"],
                    perm["action"],
                    perm.get("permissions"),
                    perm.get("validation"),
                    perm.get("presets"),
                    perm.get("fields"),
                ),
            )
        conn.commit()
    finally:
        conn.close()
    return f"sqlite:///{path}"


def read_permissions(path):
    """Return all permission rows of a SQLite database as dicts."""
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    try:
        rows = conn.execute(
            "SELECT * FROM directus_permissions ORDER BY collection, action, policy"
        ).fetchall()
        return [dict(row) for row in rows]
    finally:
        conn.close()


@pytest.fixture
def database_factory(tmp_path):
    """Factory creating named SQLite databases inside tmp_path."""

    def factory(name, policies=(), permissions=()):
        return create_database(tmp_path / f"{name}.db", policies, permissions)

    return factory


@pytest.fixture
def database_rows(tmp_path):
    """Read back the permission rows of a database created by database_factory."""

    def reader(name):
        return read_permissions(tmp_path / f"{name}.db")

    return reader

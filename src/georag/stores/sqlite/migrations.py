"""Forward-only migration runner for the GeoRAG SQLite schema."""

from __future__ import annotations

import sqlite3

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

_V1_SQL = """
CREATE TABLE IF NOT EXISTS workspaces (
    id                  TEXT PRIMARY KEY,
    name                TEXT NOT NULL UNIQUE,
    crs                 INTEGER NOT NULL,
    distance_unit       TEXT NOT NULL,
    geometry_validity   TEXT NOT NULL,
    created_at          DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS generations (
    workspace_id    TEXT NOT NULL REFERENCES workspaces(id) ON DELETE CASCADE,
    generation      INTEGER NOT NULL,
    namespace       TEXT NOT NULL,
    state           TEXT NOT NULL,
    is_current      INTEGER NOT NULL DEFAULT 0,
    created_at      DATETIME NOT NULL DEFAULT (datetime('now')),
    PRIMARY KEY (workspace_id, generation)
);

CREATE TABLE IF NOT EXISTS datasets (
    workspace_id    TEXT NOT NULL REFERENCES workspaces(id) ON DELETE CASCADE,
    id              TEXT NOT NULL,
    name            TEXT NOT NULL,
    crs             INTEGER NOT NULL,
    source          TEXT NOT NULL DEFAULT '',
    bbox            TEXT,
    document_count  INTEGER NOT NULL DEFAULT 0,
    added_at        DATETIME NOT NULL DEFAULT (datetime('now')),
    PRIMARY KEY (workspace_id, id)
);

CREATE TABLE IF NOT EXISTS documents (
    workspace_id    TEXT NOT NULL,
    dataset_id      TEXT NOT NULL,
    seq             INTEGER NOT NULL,
    id              TEXT NOT NULL,
    text            TEXT NOT NULL,
    geometry        TEXT,
    properties      TEXT NOT NULL DEFAULT '{}',
    source          TEXT NOT NULL DEFAULT '',
    page            INTEGER,
    PRIMARY KEY (workspace_id, dataset_id, id),
    FOREIGN KEY (workspace_id, dataset_id)
        REFERENCES datasets(workspace_id, id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS chunks (
    namespace       TEXT NOT NULL,
    chunk_key       TEXT NOT NULL,
    dataset_id      TEXT NOT NULL,
    id              TEXT NOT NULL,
    document_id     TEXT NOT NULL,
    text            TEXT NOT NULL,
    geometry        TEXT NOT NULL,
    crs             INTEGER NOT NULL,
    source          TEXT NOT NULL DEFAULT '',
    page            INTEGER,
    char_offset     INTEGER NOT NULL DEFAULT 0,
    properties      TEXT NOT NULL DEFAULT '{}',
    PRIMARY KEY (namespace, chunk_key)
);

CREATE TABLE IF NOT EXISTS embeddings (
    namespace       TEXT NOT NULL,
    chunk_key       TEXT NOT NULL,
    model           TEXT NOT NULL,
    dimension       INTEGER NOT NULL,
    vector          BLOB NOT NULL,
    PRIMARY KEY (namespace, chunk_key)
);

CREATE TABLE IF NOT EXISTS geometries (
    namespace       TEXT NOT NULL,
    chunk_key       TEXT NOT NULL,
    geometry        TEXT NOT NULL,
    min_x           REAL NOT NULL,
    min_y           REAL NOT NULL,
    max_x           REAL NOT NULL,
    max_y           REAL NOT NULL,
    PRIMARY KEY (namespace, chunk_key)
);

CREATE INDEX IF NOT EXISTS idx_geometries_bbox ON geometries (namespace, min_x, max_x);
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
]


def run_migrations(conn: sqlite3.Connection) -> None:
    """Apply all pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version.
    """
    conn.execute(_CREATE_SCHEMA_VERSION)
    conn.commit()

    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    current = row[0] if row[0] is not None else 0

    for version, sql in MIGRATIONS:
        if version > current:
            conn.executescript(sql)
            conn.execute("INSERT INTO schema_version (version) VALUES (?)", (version,))
            conn.commit()


def schema_version(conn: sqlite3.Connection) -> int:
    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    return row[0] if row and row[0] is not None else 0

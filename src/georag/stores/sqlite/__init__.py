"""GeoRAG SQLite store backend (sqlite-vec)."""

from georag.stores.sqlite.connection import Database
from georag.stores.sqlite.migrations import MIGRATIONS, run_migrations
from georag.stores.sqlite.stores import (
    SqliteDocumentStore,
    SqliteSpatialStore,
    SqliteStores,
    SqliteVectorStore,
    SqliteWorkspaceStore,
)

__all__ = [
    "Database",
    "MIGRATIONS",
    "run_migrations",
    "SqliteStores",
    "SqliteDocumentStore",
    "SqliteSpatialStore",
    "SqliteVectorStore",
    "SqliteWorkspaceStore",
]

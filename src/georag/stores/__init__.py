"""GeoRAG store layer: ports plus in-memory and SQLite backends."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from georag.stores.memory import (
    MemoryDocumentStore,
    MemorySpatialStore,
    MemoryVectorStore,
    MemoryWorkspaceStore,
)
from georag.stores.ports import DocumentStore, SpatialStore, VectorStore, WorkspaceStore


@dataclass
class StoreBundle:
    """The four store ports an engine runs against.

    Attributes:
        documents: Chunk records.
        vectors: Embeddings and similarity search.
        spatial: Dataset registrations and indexed geometries.
        workspaces: Workspace records and generation pointers.
        close: Releases backend resources (no-op for memory stores).
    """

    documents: DocumentStore
    vectors: VectorStore
    spatial: SpatialStore
    workspaces: WorkspaceStore
    close: Callable[[], None] = lambda: None

    def drop_namespace(self, namespace: str) -> None:
        self.documents.drop_namespace(namespace)
        self.vectors.drop_namespace(namespace)
        self.spatial.drop_namespace(namespace)


def memory_stores() -> StoreBundle:
    return StoreBundle(
        documents=MemoryDocumentStore(),
        vectors=MemoryVectorStore(),
        spatial=MemorySpatialStore(),
        workspaces=MemoryWorkspaceStore(),
    )


def sqlite_stores(db_path: Path | str) -> StoreBundle:
    from georag.stores.sqlite import SqliteStores

    db = SqliteStores(db_path)
    return StoreBundle(
        documents=db.documents,
        vectors=db.vectors,
        spatial=db.spatial,
        workspaces=db.workspaces,
        close=db.close,
    )


__all__ = [
    "DocumentStore",
    "SpatialStore",
    "StoreBundle",
    "VectorStore",
    "WorkspaceStore",
    "memory_stores",
    "sqlite_stores",
]

"""SQLite implementations of the four store ports over one shared connection.

Embeddings are stored as float32 BLOBs (``sqlite_vec.serialize_float32``) and
scored in SQL with sqlite-vec's ``vec_distance_cosine``. Every operation runs
under one connection-wide lock and commits before returning; backend errors
are wrapped into ``StoreUnavailable``.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator, Sequence

import numpy as np
import sqlite_vec

from georag.errors import StoreUnavailable, WorkspaceExists
from georag.models import (
    BBox,
    Dataset,
    Embedding,
    IndexedGeometry,
    IndexState,
    RawDocument,
    ScoredResult,
    TextChunk,
    Workspace,
    WorkspaceConfig,
)
from georag.stores.ports import (
    DocumentStore,
    SpatialStore,
    VectorStore,
    WorkspaceStore,
    workspace_of,
)
from georag.stores.sqlite.connection import Database
from georag.stores.sqlite.migrations import run_migrations


class SqliteStores:
    """Owns the connection and hands out the four store ports.

    Args:
        db_path: Database file (created and migrated if missing).
    """

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)
        self.lock = threading.RLock()
        self.closed = False
        try:
            self.conn = Database(db_path).connect()
            run_migrations(self.conn)
        except (sqlite3.Error, OSError) as exc:
            raise StoreUnavailable("open", str(exc)) from exc
        self.documents = SqliteDocumentStore(self)
        self.vectors = SqliteVectorStore(self)
        self.spatial = SqliteSpatialStore(self)
        self.workspaces = SqliteWorkspaceStore(self)

    @contextmanager
    def guard(
        self, operation: str, workspace: str | None = None, dataset: str | None = None
    ) -> Iterator[sqlite3.Connection]:
        """Serialise access, commit on success, roll back and wrap on failure."""
        with self.lock:
            if self.closed:
                raise StoreUnavailable(operation, "database is closed", workspace=workspace, dataset=dataset)
            try:
                yield self.conn
                self.conn.commit()
            except (sqlite3.Error, OSError) as exc:
                self.conn.rollback()
                raise StoreUnavailable(operation, str(exc), workspace=workspace, dataset=dataset) from exc

    def close(self) -> None:
        with self.lock:
            self.conn.close()
            self.closed = True


class _NamespacedTable:
    """copy/drop shared by the three per-generation tables."""

    _table = ""
    _columns = ""

    def __init__(self, db: SqliteStores) -> None:
        self._db = db

    def copy_namespace(self, source: str, target: str, exclude_datasets: Iterable[str] = ()) -> int:
        excluded = json.dumps(sorted(set(exclude_datasets)))
        with self._db.guard(f"copy_{self._table}", workspace=workspace_of(source)) as conn:
            cur = conn.execute(
                f"""
                INSERT OR REPLACE INTO {self._table} (namespace, {self._columns})
                SELECT ?, {self._columns} FROM {self._table}
                WHERE namespace = ?
                  AND substr(chunk_key, 1, instr(chunk_key, '/') - 1)
                      NOT IN (SELECT value FROM json_each(?))
                """,
                (target, source, excluded),
            )
            return cur.rowcount

    def drop_namespace(self, namespace: str) -> None:
        with self._db.guard(f"drop_{self._table}", workspace=workspace_of(namespace)) as conn:
            conn.execute(f"DELETE FROM {self._table} WHERE namespace = ?", (namespace,))

    def namespaces(self) -> list[str]:
        with self._db.guard(f"list_{self._table}_namespaces") as conn:
            rows = conn.execute(
                f"SELECT DISTINCT namespace FROM {self._table} ORDER BY namespace"
            ).fetchall()
        return [r["namespace"] for r in rows]


# ---------------------------------------------------------------------------
# Document store
# ---------------------------------------------------------------------------


class SqliteDocumentStore(_NamespacedTable, DocumentStore):
    _table = "chunks"
    _columns = (
        "chunk_key, dataset_id, id, document_id, text, geometry, crs, source, page, char_offset, properties"
    )

    def store_chunks(self, namespace: str, chunks: Iterable[TextChunk]) -> int:
        rows = [
            (
                namespace,
                c.key,
                c.dataset_id,
                c.id,
                c.document_id,
                c.text,
                json.dumps(c.geometry),
                c.crs,
                c.source,
                c.page,
                c.offset,
                json.dumps(c.properties),
            )
            for c in chunks
        ]
        with self._db.guard("store_chunks", workspace=workspace_of(namespace)) as conn:
            conn.executemany(
                f"INSERT OR REPLACE INTO chunks (namespace, {self._columns}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                rows,
            )
        return len(rows)

    def get_chunks(self, namespace: str, keys: Sequence[str]) -> list[TextChunk]:
        if not keys:
            return []
        with self._db.guard("get_chunks", workspace=workspace_of(namespace)) as conn:
            rows = conn.execute(
                f"SELECT {self._columns} FROM chunks "
                "WHERE namespace = ? AND chunk_key IN (SELECT value FROM json_each(?))",
                (namespace, json.dumps(list(keys))),
            ).fetchall()
        by_key = {r["chunk_key"]: _row_to_chunk(r) for r in rows}
        return [by_key[k] for k in keys if k in by_key]

    def list_chunk_keys(self, namespace: str) -> list[str]:
        with self._db.guard("list_chunk_keys", workspace=workspace_of(namespace)) as conn:
            rows = conn.execute(
                "SELECT chunk_key FROM chunks WHERE namespace = ? ORDER BY chunk_key",
                (namespace,),
            ).fetchall()
        return [r["chunk_key"] for r in rows]


# ---------------------------------------------------------------------------
# Vector store
# ---------------------------------------------------------------------------


class SqliteVectorStore(_NamespacedTable, VectorStore):
    _table = "embeddings"
    _columns = "chunk_key, model, dimension, vector"

    def store_embeddings(self, namespace: str, embeddings: Iterable[Embedding]) -> int:
        rows = [
            (namespace, e.chunk_key, e.model, e.dimension, sqlite_vec.serialize_float32(list(e.vector)))
            for e in embeddings
        ]
        with self._db.guard("store_embeddings", workspace=workspace_of(namespace)) as conn:
            conn.executemany(
                f"INSERT OR REPLACE INTO embeddings (namespace, {self._columns}) VALUES (?, ?, ?, ?, ?)",
                rows,
            )
        return len(rows)

    def similarity_search(
        self,
        namespace: str,
        vector: Sequence[float],
        k: int,
        candidates: set[str] | None = None,
    ) -> list[ScoredResult]:
        if k <= 0 or (candidates is not None and not candidates):
            return []
        sql = (
            "SELECT chunk_key, COALESCE(1.0 - vec_distance_cosine(vector, ?), 0.0) AS score "
            "FROM embeddings WHERE namespace = ?"
        )
        params: list[object] = [sqlite_vec.serialize_float32(list(vector)), namespace]
        if candidates is not None:
            sql += " AND chunk_key IN (SELECT value FROM json_each(?))"
            params.append(json.dumps(sorted(candidates)))
        sql += " ORDER BY score DESC, chunk_key ASC LIMIT ?"
        params.append(k)

        with self._db.guard("similarity_search", workspace=workspace_of(namespace)) as conn:
            rows = conn.execute(sql, params).fetchall()
        return [
            ScoredResult(chunk_key=r["chunk_key"], score=float(r["score"]), rank=i + 1)
            for i, r in enumerate(rows)
        ]

    def get_embeddings(self, namespace: str, keys: Sequence[str] | None = None) -> list[Embedding]:
        sql = f"SELECT {self._columns} FROM embeddings WHERE namespace = ?"
        params: list[object] = [namespace]
        if keys is not None:
            sql += " AND chunk_key IN (SELECT value FROM json_each(?))"
            params.append(json.dumps(list(keys)))
        sql += " ORDER BY chunk_key"
        with self._db.guard("get_embeddings", workspace=workspace_of(namespace)) as conn:
            rows = conn.execute(sql, params).fetchall()
        return [_row_to_embedding(r) for r in rows]


# ---------------------------------------------------------------------------
# Spatial store
# ---------------------------------------------------------------------------


class SqliteSpatialStore(_NamespacedTable, SpatialStore):
    _table = "geometries"
    _columns = "chunk_key, geometry, min_x, min_y, max_x, max_y"

    def store_dataset(self, dataset: Dataset) -> None:
        with self._db.guard("store_dataset", workspace=dataset.workspace_id, dataset=dataset.id) as conn:
            conn.execute(
                "DELETE FROM datasets WHERE workspace_id = ? AND id = ?",
                (dataset.workspace_id, dataset.id),
            )
            conn.execute(
                """
                INSERT INTO datasets (workspace_id, id, name, crs, source, bbox, document_count, added_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, COALESCE(?, datetime('now')))
                """,
                (
                    dataset.workspace_id,
                    dataset.id,
                    dataset.name,
                    dataset.crs,
                    dataset.source,
                    json.dumps(list(dataset.bbox)) if dataset.bbox else None,
                    len(dataset.documents) or dataset.document_count,
                    dataset.added_at,
                ),
            )
            conn.executemany(
                """
                INSERT INTO documents
                    (workspace_id, dataset_id, seq, id, text, geometry, properties, source, page)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        dataset.workspace_id,
                        dataset.id,
                        seq,
                        doc.id,
                        doc.text,
                        json.dumps(doc.geometry) if doc.geometry is not None else None,
                        json.dumps(doc.properties),
                        doc.source,
                        doc.page,
                    )
                    for seq, doc in enumerate(dataset.documents)
                ],
            )

    def get_dataset(self, workspace_id: str, dataset_id: str) -> Dataset | None:
        with self._db.guard("get_dataset", workspace=workspace_id, dataset=dataset_id) as conn:
            row = conn.execute(
                "SELECT * FROM datasets WHERE workspace_id = ? AND id = ?",
                (workspace_id, dataset_id),
            ).fetchone()
            if row is None:
                return None
            docs = conn.execute(
                "SELECT * FROM documents WHERE workspace_id = ? AND dataset_id = ? ORDER BY seq",
                (workspace_id, dataset_id),
            ).fetchall()
        dataset = _row_to_dataset(row)
        dataset.documents = [_row_to_document(d) for d in docs]
        return dataset

    def list_datasets(self, workspace_id: str) -> list[Dataset]:
        with self._db.guard("list_datasets", workspace=workspace_id) as conn:
            rows = conn.execute(
                "SELECT * FROM datasets WHERE workspace_id = ? ORDER BY id", (workspace_id,)
            ).fetchall()
        return [_row_to_dataset(r) for r in rows]

    def delete_dataset(self, workspace_id: str, dataset_id: str) -> bool:
        with self._db.guard("delete_dataset", workspace=workspace_id, dataset=dataset_id) as conn:
            cur = conn.execute(
                "DELETE FROM datasets WHERE workspace_id = ? AND id = ?", (workspace_id, dataset_id)
            )
            return cur.rowcount > 0

    def store_geometries(self, namespace: str, geometries: Iterable[IndexedGeometry]) -> int:
        rows = [
            (namespace, g.chunk_key, json.dumps(g.geometry), *g.bbox)
            for g in geometries
        ]
        with self._db.guard("store_geometries", workspace=workspace_of(namespace)) as conn:
            conn.executemany(
                f"INSERT OR REPLACE INTO geometries (namespace, {self._columns}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                rows,
            )
        return len(rows)

    def spatial_query(self, namespace: str, bbox: BBox | None = None) -> list[IndexedGeometry]:
        sql = f"SELECT {self._columns} FROM geometries WHERE namespace = ?"
        params: list[object] = [namespace]
        if bbox is not None:
            sql += " AND max_x >= ? AND min_x <= ? AND max_y >= ? AND min_y <= ?"
            params.extend([bbox.min_x, bbox.max_x, bbox.min_y, bbox.max_y])
        sql += " ORDER BY chunk_key"
        with self._db.guard("spatial_query", workspace=workspace_of(namespace)) as conn:
            rows = conn.execute(sql, params).fetchall()
        return [
            IndexedGeometry(
                chunk_key=r["chunk_key"],
                geometry=json.loads(r["geometry"]),
                bbox=(r["min_x"], r["min_y"], r["max_x"], r["max_y"]),
            )
            for r in rows
        ]


# ---------------------------------------------------------------------------
# Workspace store
# ---------------------------------------------------------------------------


class SqliteWorkspaceStore(WorkspaceStore):
    def __init__(self, db: SqliteStores) -> None:
        self._db = db

    def create_workspace(self, workspace: Workspace) -> None:
        with self._db.lock:
            if self.find_workspace(workspace.name) or self.get_workspace(workspace.id):
                raise WorkspaceExists(workspace.name)
            with self._db.guard("create_workspace", workspace=workspace.id) as conn:
                conn.execute(
                    """
                    INSERT INTO workspaces (id, name, crs, distance_unit, geometry_validity, created_at)
                    VALUES (?, ?, ?, ?, ?, COALESCE(?, datetime('now')))
                    """,
                    (
                        workspace.id,
                        workspace.name,
                        workspace.config.crs,
                        workspace.config.distance_unit,
                        workspace.config.geometry_validity,
                        workspace.created_at,
                    ),
                )

    def get_workspace(self, workspace_id: str) -> Workspace | None:
        with self._db.guard("get_workspace", workspace=workspace_id) as conn:
            row = conn.execute("SELECT * FROM workspaces WHERE id = ?", (workspace_id,)).fetchone()
        return _row_to_workspace(row) if row else None

    def find_workspace(self, name: str) -> Workspace | None:
        with self._db.guard("find_workspace", workspace=name) as conn:
            row = conn.execute("SELECT * FROM workspaces WHERE name = ?", (name,)).fetchone()
        return _row_to_workspace(row) if row else None

    def list_workspaces(self) -> list[Workspace]:
        with self._db.guard("list_workspaces") as conn:
            rows = conn.execute("SELECT * FROM workspaces ORDER BY name").fetchall()
        return [_row_to_workspace(r) for r in rows]

    def update_workspace(self, workspace: Workspace) -> None:
        with self._db.guard("update_workspace", workspace=workspace.id) as conn:
            conn.execute(
                """
                UPDATE workspaces SET name = ?, crs = ?, distance_unit = ?, geometry_validity = ?
                WHERE id = ?
                """,
                (
                    workspace.name,
                    workspace.config.crs,
                    workspace.config.distance_unit,
                    workspace.config.geometry_validity,
                    workspace.id,
                ),
            )

    def save_generation(self, workspace_id: str, namespace: str, state: IndexState) -> None:
        with self._db.guard("save_generation", workspace=workspace_id) as conn:
            conn.execute(
                "UPDATE generations SET is_current = 0 WHERE workspace_id = ?", (workspace_id,)
            )
            conn.execute(
                """
                INSERT OR REPLACE INTO generations (workspace_id, generation, namespace, state, is_current)
                VALUES (?, ?, ?, ?, 1)
                """,
                (workspace_id, state.generation, namespace, json.dumps(state.to_dict())),
            )

    def current_generation(self, workspace_id: str) -> tuple[str, IndexState] | None:
        with self._db.guard("current_generation", workspace=workspace_id) as conn:
            row = conn.execute(
                "SELECT namespace, state FROM generations WHERE workspace_id = ? AND is_current = 1",
                (workspace_id,),
            ).fetchone()
        if row is None:
            return None
        return row["namespace"], IndexState.from_dict(json.loads(row["state"]))

    def latest_generation_number(self, workspace_id: str) -> int:
        with self._db.guard("latest_generation_number", workspace=workspace_id) as conn:
            row = conn.execute(
                "SELECT MAX(generation) FROM generations WHERE workspace_id = ?", (workspace_id,)
            ).fetchone()
        return row[0] if row[0] is not None else 0


# ---------------------------------------------------------------------------
# Row helpers
# ---------------------------------------------------------------------------


def _row_to_workspace(row: sqlite3.Row) -> Workspace:
    return Workspace(
        id=row["id"],
        name=row["name"],
        config=WorkspaceConfig(
            crs=row["crs"],
            distance_unit=row["distance_unit"],
            geometry_validity=row["geometry_validity"],
        ),
        created_at=row["created_at"],
    )


def _row_to_dataset(row: sqlite3.Row) -> Dataset:
    bbox = json.loads(row["bbox"]) if row["bbox"] else None
    return Dataset(
        id=row["id"],
        workspace_id=row["workspace_id"],
        name=row["name"],
        crs=row["crs"],
        source=row["source"],
        bbox=tuple(bbox) if bbox else None,
        document_count=row["document_count"],
        added_at=row["added_at"],
    )


def _row_to_document(row: sqlite3.Row) -> RawDocument:
    return RawDocument(
        id=row["id"],
        text=row["text"],
        geometry=json.loads(row["geometry"]) if row["geometry"] else None,
        properties=json.loads(row["properties"]),
        source=row["source"],
        page=row["page"],
    )


def _row_to_chunk(row: sqlite3.Row) -> TextChunk:
    return TextChunk(
        id=row["id"],
        dataset_id=row["dataset_id"],
        document_id=row["document_id"],
        text=row["text"],
        geometry=json.loads(row["geometry"]),
        crs=row["crs"],
        source=row["source"],
        page=row["page"],
        offset=row["char_offset"],
        properties=json.loads(row["properties"]),
    )


def _row_to_embedding(row: sqlite3.Row) -> Embedding:
    vector = np.frombuffer(row["vector"], dtype="<f4")
    return Embedding(
        chunk_key=row["chunk_key"],
        vector=tuple(float(v) for v in vector),
        model=row["model"],
    )

"""In-memory store implementations (tests, embedding in other apps, throwaway workspaces)."""

from __future__ import annotations

import copy
import threading
from typing import Iterable, Sequence

import numpy as np

from georag.errors import WorkspaceExists
from georag.models import (
    BBox,
    Dataset,
    Embedding,
    IndexedGeometry,
    IndexState,
    ScoredResult,
    TextChunk,
    Workspace,
)
from georag.stores.ports import (
    DocumentStore,
    SpatialStore,
    VectorStore,
    WorkspaceStore,
    dataset_of,
)


class _NamespacedMap:
    """namespace -> {chunk key -> record}, guarded by one lock."""

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.data: dict[str, dict[str, object]] = {}

    def put(self, namespace: str, items: Iterable[tuple[str, object]]) -> int:
        with self.lock:
            bucket = self.data.setdefault(namespace, {})
            count = 0
            for key, value in items:
                bucket[key] = value
                count += 1
            return count

    def bucket(self, namespace: str) -> dict[str, object]:
        with self.lock:
            return dict(self.data.get(namespace, {}))

    def copy(self, source: str, target: str, exclude_datasets: Iterable[str]) -> int:
        excluded = set(exclude_datasets)
        with self.lock:
            src = self.data.get(source, {})
            kept = {k: v for k, v in src.items() if dataset_of(k) not in excluded}
            self.data.setdefault(target, {}).update(kept)
            return len(kept)

    def drop(self, namespace: str) -> None:
        with self.lock:
            self.data.pop(namespace, None)

    def namespaces(self) -> list[str]:
        with self.lock:
            return sorted(self.data)


class MemoryDocumentStore(DocumentStore):
    def __init__(self) -> None:
        self._chunks = _NamespacedMap()

    def store_chunks(self, namespace: str, chunks: Iterable[TextChunk]) -> int:
        return self._chunks.put(namespace, ((c.key, c) for c in chunks))

    def get_chunks(self, namespace: str, keys: Sequence[str]) -> list[TextChunk]:
        bucket = self._chunks.bucket(namespace)
        return [bucket[k] for k in keys if k in bucket]  # type: ignore[misc]

    def list_chunk_keys(self, namespace: str) -> list[str]:
        return sorted(self._chunks.bucket(namespace))

    def copy_namespace(self, source: str, target: str, exclude_datasets: Iterable[str] = ()) -> int:
        return self._chunks.copy(source, target, exclude_datasets)

    def drop_namespace(self, namespace: str) -> None:
        self._chunks.drop(namespace)

    def namespaces(self) -> list[str]:
        return self._chunks.namespaces()


class MemoryVectorStore(VectorStore):
    """Brute-force cosine similarity with numpy."""

    def __init__(self) -> None:
        self._vectors = _NamespacedMap()

    def store_embeddings(self, namespace: str, embeddings: Iterable[Embedding]) -> int:
        return self._vectors.put(namespace, ((e.chunk_key, e) for e in embeddings))

    def similarity_search(
        self,
        namespace: str,
        vector: Sequence[float],
        k: int,
        candidates: set[str] | None = None,
    ) -> list[ScoredResult]:
        bucket = self._vectors.bucket(namespace)
        keys = sorted(bucket if candidates is None else (k_ for k_ in candidates if k_ in bucket))
        if not keys or k <= 0:
            return []

        matrix = np.array([bucket[key].vector for key in keys], dtype=np.float32)  # type: ignore[attr-defined]
        query = np.asarray(vector, dtype=np.float32)
        norms = np.linalg.norm(matrix, axis=1) * float(np.linalg.norm(query))
        dots = matrix @ query
        scores = np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0)

        ranked = sorted(zip(keys, scores.tolist()), key=lambda kv: (-kv[1], kv[0]))[:k]
        return [ScoredResult(chunk_key=key, score=float(score), rank=i + 1) for i, (key, score) in enumerate(ranked)]

    def get_embeddings(self, namespace: str, keys: Sequence[str] | None = None) -> list[Embedding]:
        bucket = self._vectors.bucket(namespace)
        wanted = sorted(bucket) if keys is None else sorted(k for k in set(keys) if k in bucket)
        return [bucket[k] for k in wanted]  # type: ignore[misc]

    def copy_namespace(self, source: str, target: str, exclude_datasets: Iterable[str] = ()) -> int:
        return self._vectors.copy(source, target, exclude_datasets)

    def drop_namespace(self, namespace: str) -> None:
        self._vectors.drop(namespace)

    def namespaces(self) -> list[str]:
        return self._vectors.namespaces()


class MemorySpatialStore(SpatialStore):
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._datasets: dict[tuple[str, str], Dataset] = {}
        self._geometries = _NamespacedMap()

    def store_dataset(self, dataset: Dataset) -> None:
        with self._lock:
            self._datasets[(dataset.workspace_id, dataset.id)] = copy.deepcopy(dataset)

    def get_dataset(self, workspace_id: str, dataset_id: str) -> Dataset | None:
        with self._lock:
            dataset = self._datasets.get((workspace_id, dataset_id))
            return copy.deepcopy(dataset) if dataset is not None else None

    def list_datasets(self, workspace_id: str) -> list[Dataset]:
        with self._lock:
            found = [d for (ws, _), d in self._datasets.items() if ws == workspace_id]
        listed = []
        for d in sorted(found, key=lambda d: d.id):
            summary = copy.copy(d)
            summary.documents = []
            listed.append(summary)
        return listed

    def delete_dataset(self, workspace_id: str, dataset_id: str) -> bool:
        with self._lock:
            return self._datasets.pop((workspace_id, dataset_id), None) is not None

    def store_geometries(self, namespace: str, geometries: Iterable[IndexedGeometry]) -> int:
        return self._geometries.put(namespace, ((g.chunk_key, g) for g in geometries))

    def spatial_query(self, namespace: str, bbox: BBox | None = None) -> list[IndexedGeometry]:
        bucket = self._geometries.bucket(namespace)
        return [
            g  # type: ignore[misc]
            for key, g in sorted(bucket.items())
            if bbox is None or bbox.intersects(g.bbox)  # type: ignore[attr-defined]
        ]

    def copy_namespace(self, source: str, target: str, exclude_datasets: Iterable[str] = ()) -> int:
        return self._geometries.copy(source, target, exclude_datasets)

    def drop_namespace(self, namespace: str) -> None:
        self._geometries.drop(namespace)

    def namespaces(self) -> list[str]:
        return self._geometries.namespaces()


class MemoryWorkspaceStore(WorkspaceStore):
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._workspaces: dict[str, Workspace] = {}
        self._current: dict[str, tuple[str, IndexState]] = {}
        self._latest: dict[str, int] = {}

    def create_workspace(self, workspace: Workspace) -> None:
        with self._lock:
            if workspace.id in self._workspaces or self.find_workspace(workspace.name):
                raise WorkspaceExists(workspace.name)
            self._workspaces[workspace.id] = copy.copy(workspace)

    def get_workspace(self, workspace_id: str) -> Workspace | None:
        with self._lock:
            ws = self._workspaces.get(workspace_id)
            return copy.copy(ws) if ws else None

    def find_workspace(self, name: str) -> Workspace | None:
        with self._lock:
            for ws in self._workspaces.values():
                if ws.name == name:
                    return copy.copy(ws)
            return None

    def list_workspaces(self) -> list[Workspace]:
        with self._lock:
            return [copy.copy(ws) for ws in sorted(self._workspaces.values(), key=lambda w: w.name)]

    def update_workspace(self, workspace: Workspace) -> None:
        with self._lock:
            self._workspaces[workspace.id] = copy.copy(workspace)

    def save_generation(self, workspace_id: str, namespace: str, state: IndexState) -> None:
        with self._lock:
            self._current[workspace_id] = (namespace, state)
            self._latest[workspace_id] = max(self._latest.get(workspace_id, 0), state.generation)

    def current_generation(self, workspace_id: str) -> tuple[str, IndexState] | None:
        with self._lock:
            return self._current.get(workspace_id)

    def latest_generation_number(self, workspace_id: str) -> int:
        with self._lock:
            return self._latest.get(workspace_id, 0)

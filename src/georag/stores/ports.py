"""Store ports consumed by the index builder, the retrieval pipeline and integrity.

Index data (chunks, embeddings, indexed geometries) lives in *namespaces*.
A namespace is one index generation, named ``"<workspace id>@<generation>"``.
Builds write into a fresh namespace and never touch a published one, so the
ports only need whole-namespace copy and drop on top of plain reads and
writes. Dataset registrations and workspace records are not namespaced.

Implementations wrap backend failures into ``StoreUnavailable``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, Sequence

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


def namespace_for(workspace_id: str, generation: int) -> str:
    return f"{workspace_id}@{generation}"


def workspace_of(namespace: str) -> str:
    return namespace.split("@", 1)[0]


def dataset_of(key: str) -> str:
    """Dataset id encoded in a chunk key (``"<dataset>/<chunk id>"``)."""
    return key.split("/", 1)[0]


class DocumentStore(ABC):
    """Chunk records keyed by chunk key."""

    @abstractmethod
    def store_chunks(self, namespace: str, chunks: Iterable[TextChunk]) -> int:
        """Persist *chunks*; returns the number written."""

    @abstractmethod
    def get_chunks(self, namespace: str, keys: Sequence[str]) -> list[TextChunk]:
        """Return the chunks for *keys* in the order given; unknown keys are omitted."""

    @abstractmethod
    def list_chunk_keys(self, namespace: str) -> list[str]:
        """All chunk keys in *namespace*, ascending."""

    @abstractmethod
    def copy_namespace(self, source: str, target: str, exclude_datasets: Iterable[str] = ()) -> int:
        """Copy every entry of *source* into *target* except those of *exclude_datasets*."""

    @abstractmethod
    def drop_namespace(self, namespace: str) -> None:
        """Delete every entry of *namespace*. Dropping an unknown namespace is a no-op."""


class VectorStore(ABC):
    """Embeddings keyed by chunk key, with cosine similarity search."""

    @abstractmethod
    def store_embeddings(self, namespace: str, embeddings: Iterable[Embedding]) -> int:
        """Persist *embeddings*; returns the number written."""

    @abstractmethod
    def similarity_search(
        self,
        namespace: str,
        vector: Sequence[float],
        k: int,
        candidates: set[str] | None = None,
    ) -> list[ScoredResult]:
        """Top-*k* by cosine similarity, optionally restricted to *candidates*.

        Results are ordered by descending score, ties by ascending chunk key.
        """

    @abstractmethod
    def get_embeddings(self, namespace: str, keys: Sequence[str] | None = None) -> list[Embedding]:
        """Embeddings for *keys* (all when None), ascending by chunk key."""

    @abstractmethod
    def copy_namespace(self, source: str, target: str, exclude_datasets: Iterable[str] = ()) -> int:
        ...

    @abstractmethod
    def drop_namespace(self, namespace: str) -> None:
        ...


class SpatialStore(ABC):
    """Registered datasets (raw documents) and per-generation indexed geometries."""

    @abstractmethod
    def store_dataset(self, dataset: Dataset) -> None:
        """Register *dataset* with its raw documents (insert or replace)."""

    @abstractmethod
    def get_dataset(self, workspace_id: str, dataset_id: str) -> Dataset | None:
        """Return the dataset with its documents, or None."""

    @abstractmethod
    def list_datasets(self, workspace_id: str) -> list[Dataset]:
        """Datasets of a workspace without their documents, ordered by id."""

    @abstractmethod
    def delete_dataset(self, workspace_id: str, dataset_id: str) -> bool:
        """Remove a dataset registration. Returns False if it did not exist."""

    @abstractmethod
    def store_geometries(self, namespace: str, geometries: Iterable[IndexedGeometry]) -> int:
        ...

    @abstractmethod
    def spatial_query(self, namespace: str, bbox: BBox | None = None) -> list[IndexedGeometry]:
        """Indexed geometries whose bbox intersects *bbox* (all when None), ascending by key."""

    @abstractmethod
    def copy_namespace(self, source: str, target: str, exclude_datasets: Iterable[str] = ()) -> int:
        ...

    @abstractmethod
    def drop_namespace(self, namespace: str) -> None:
        ...


class WorkspaceStore(ABC):
    """Workspace records and the published-generation pointer per workspace."""

    @abstractmethod
    def create_workspace(self, workspace: Workspace) -> None:
        """Insert *workspace*. Raises WorkspaceExists on a duplicate name or id."""

    @abstractmethod
    def get_workspace(self, workspace_id: str) -> Workspace | None:
        ...

    @abstractmethod
    def find_workspace(self, name: str) -> Workspace | None:
        ...

    @abstractmethod
    def list_workspaces(self) -> list[Workspace]:
        ...

    @abstractmethod
    def update_workspace(self, workspace: Workspace) -> None:
        ...

    @abstractmethod
    def save_generation(self, workspace_id: str, namespace: str, state: IndexState) -> None:
        """Record *state* as the current generation of *workspace_id*."""

    @abstractmethod
    def current_generation(self, workspace_id: str) -> tuple[str, IndexState] | None:
        """Return ``(namespace, state)`` of the current generation, or None."""

    @abstractmethod
    def latest_generation_number(self, workspace_id: str) -> int:
        """Highest generation number ever recorded (0 if none)."""

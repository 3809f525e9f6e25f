"""GeoRAG engine: the boundary operations over one set of stores.

Every operation takes the workspace explicitly (id, name or Workspace); there
is no implicit "current workspace". An engine is safe to share between
threads: queries lease generations, builds take per-workspace locks.
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Sequence, Union

from georag.embedding import Embedder
from georag.errors import DatasetExists, DatasetNotFound, InvalidDataset, WorkspaceNotFound
from georag.geo.adapter import GeometryAdapter, ShapelyGeometryAdapter
from georag.index.builder import IndexBuilder
from georag.index.generations import GenerationRegistry, StoreGenerationLoader
from georag.index.integrity import IndexIntegrity
from georag.ingest.chunker import BaseChunker
from georag.models import (
    BBox,
    BuildReport,
    Dataset,
    IndexState,
    RawDocument,
    VerifyReport,
    Workspace,
    WorkspaceConfig,
)
from georag.retrieval.models import QueryResponse
from georag.retrieval.pipeline import NearSpec, RetrievalPipeline
from georag.stores import StoreBundle, memory_stores, sqlite_stores

logger = logging.getLogger(__name__)

_DATASET_ID_RE = re.compile(r"^[A-Za-z0-9._-]+$")

WorkspaceRef = Union[str, Workspace]


class GeoRAG:
    """Hybrid spatial + semantic retrieval over geocoded document collections.

    Args:
        stores: Store ports (see georag.stores.memory_stores / sqlite_stores).
        embedder: Embedder for builds and queries.
        adapter: Geometry primitives (default: ShapelyGeometryAdapter).
        chunker: Document splitter used by builds.
        batch_size: Texts per embedder call during builds.
    """

    def __init__(
        self,
        stores: StoreBundle,
        embedder: Embedder,
        adapter: GeometryAdapter | None = None,
        chunker: BaseChunker | None = None,
        batch_size: int = 64,
    ) -> None:
        self.stores = stores
        self.embedder = embedder
        self.adapter = adapter or ShapelyGeometryAdapter()
        self.registry = GenerationRegistry(
            loader=StoreGenerationLoader(stores, self.adapter),
            purge=stores.drop_namespace,
        )
        self.builder = IndexBuilder(
            stores, embedder, self.adapter, self.registry, chunker=chunker, batch_size=batch_size
        )
        self.pipeline = RetrievalPipeline(stores, embedder, self.registry)
        self.integrity = IndexIntegrity(stores, self.adapter, self.registry)

    @classmethod
    def in_memory(cls, embedder: Embedder, **kwargs: Any) -> GeoRAG:
        return cls(memory_stores(), embedder, **kwargs)

    @classmethod
    def open(cls, db_path: Path | str, embedder: Embedder, **kwargs: Any) -> GeoRAG:
        """Engine over a SQLite database (created and migrated if missing)."""
        return cls(sqlite_stores(db_path), embedder, **kwargs)

    def close(self) -> None:
        self.stores.close()

    def __enter__(self) -> GeoRAG:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Workspaces
    # ------------------------------------------------------------------

    def create_workspace(
        self,
        name: str,
        crs: int = 4326,
        distance_unit: str | None = None,
        geometry_validity: str | None = None,
    ) -> Workspace:
        """Create a workspace with an immutable configuration.

        Raises:
            WorkspaceExists: A workspace with *name* already exists.
            ValueError: Blank name or invalid configuration value.
        """
        if not name or not name.strip():
            raise ValueError("Workspace name must not be empty")
        config = WorkspaceConfig(
            crs=crs,
            distance_unit=distance_unit or "meters",
            geometry_validity=geometry_validity or "lenient",
        )
        workspace = Workspace(id=uuid.uuid4().hex, name=name.strip(), config=config, created_at=_now())
        self.stores.workspaces.create_workspace(workspace)
        logger.info("Created workspace %s (%s)", workspace.name, config.fingerprint())
        return workspace

    def workspace(self, ref: WorkspaceRef) -> Workspace:
        """Resolve a workspace by id, name or (stale) Workspace object.

        Raises:
            WorkspaceNotFound: Nothing matches *ref*.
        """
        if isinstance(ref, Workspace):
            ref = ref.id
        found = self.stores.workspaces.get_workspace(ref) or self.stores.workspaces.find_workspace(ref)
        if found is None:
            raise WorkspaceNotFound(ref)
        return found

    def list_workspaces(self) -> list[Workspace]:
        return self.stores.workspaces.list_workspaces()

    def migrate_workspace_config(
        self,
        ref: WorkspaceRef,
        crs: int | None = None,
        distance_unit: str | None = None,
        geometry_validity: str | None = None,
    ) -> Workspace:
        """Change a workspace's configuration.

        The published generation is left in place but no longer verifies;
        rebuild the workspace to index under the new configuration.
        """
        workspace = self.workspace(ref)
        changes: dict[str, Any] = {}
        if crs is not None:
            changes["crs"] = crs
        if distance_unit is not None:
            changes["distance_unit"] = distance_unit
        if geometry_validity is not None:
            changes["geometry_validity"] = geometry_validity
        migrated = replace(workspace, config=replace(workspace.config, **changes))
        self.stores.workspaces.update_workspace(migrated)
        if migrated.config != workspace.config:
            logger.warning(
                "Workspace %s configuration changed to %s; rebuild required",
                workspace.name,
                migrated.config.fingerprint(),
            )
        return migrated

    # ------------------------------------------------------------------
    # Datasets
    # ------------------------------------------------------------------

    def add_dataset(
        self,
        ref: WorkspaceRef,
        name: str,
        documents: Iterable[RawDocument],
        crs: int = 4326,
        source: str = "",
        dataset_id: str | None = None,
    ) -> Dataset:
        """Register raw documents as a dataset. Nothing is indexed until build().

        Raises:
            DatasetExists: The dataset id is taken in this workspace.
            InvalidDataset: Invalid dataset id or duplicate document ids.
        """
        workspace = self.workspace(ref)
        dataset_id = dataset_id or slugify(name)
        if not _DATASET_ID_RE.match(dataset_id):
            raise InvalidDataset(
                f"Invalid dataset id '{dataset_id}': use letters, digits, '.', '_' or '-'", dataset_id
            )
        if self.stores.spatial.get_dataset(workspace.id, dataset_id) is not None:
            raise DatasetExists(dataset_id, workspace.name)

        docs = list(documents)
        seen: set[str] = set()
        for doc in docs:
            if doc.id in seen:
                raise InvalidDataset(f"Duplicate document id '{doc.id}' in dataset '{dataset_id}'", dataset_id)
            seen.add(doc.id)

        dataset = Dataset(
            id=dataset_id,
            workspace_id=workspace.id,
            name=name,
            crs=int(crs),
            source=source,
            documents=docs,
            bbox=self._dataset_bbox(docs),
            document_count=len(docs),
            added_at=_now(),
        )
        self.stores.spatial.store_dataset(dataset)
        logger.info("Added dataset %s to workspace %s (%d documents)", dataset_id, workspace.name, len(docs))
        return dataset

    def _dataset_bbox(self, documents: Sequence[RawDocument]) -> tuple[float, float, float, float] | None:
        bounds = [
            self.adapter.bounds(d.geometry)
            for d in documents
            if d.geometry is not None and self.adapter.validate(d.geometry)
        ]
        if not bounds:
            return None
        return (
            min(b[0] for b in bounds),
            min(b[1] for b in bounds),
            max(b[2] for b in bounds),
            max(b[3] for b in bounds),
        )

    def get_dataset(self, ref: WorkspaceRef, dataset_id: str) -> Dataset:
        workspace = self.workspace(ref)
        dataset = self.stores.spatial.get_dataset(workspace.id, dataset_id)
        if dataset is None:
            raise DatasetNotFound(dataset_id, workspace.name)
        return dataset

    def list_datasets(self, ref: WorkspaceRef) -> list[Dataset]:
        return self.stores.spatial.list_datasets(self.workspace(ref).id)

    def delete_dataset(self, ref: WorkspaceRef, dataset_id: str) -> IndexState | None:
        """Remove a dataset and publish a generation without its entries."""
        return self.builder.remove_dataset(self.workspace(ref), dataset_id)

    # ------------------------------------------------------------------
    # Index
    # ------------------------------------------------------------------

    def build(self, ref: WorkspaceRef, dataset_id: str) -> BuildReport:
        return self.builder.build(self.workspace(ref), dataset_id)

    def rebuild(self, ref: WorkspaceRef) -> list[BuildReport]:
        return self.builder.rebuild(self.workspace(ref))

    def query(
        self,
        ref: WorkspaceRef,
        text: str,
        bbox: BBox | Sequence[float] | None = None,
        top_k: int = 10,
        explain: bool = False,
        near: NearSpec | None = None,
    ) -> QueryResponse:
        return self.pipeline.execute(self.workspace(ref), text, bbox=bbox, top_k=top_k, explain=explain, near=near)

    def get_index_state(self, ref: WorkspaceRef) -> IndexState:
        return self.integrity.get_index_state(self.workspace(ref))

    def compute_index_hash(self, ref: WorkspaceRef) -> str:
        return self.integrity.compute_index_hash(self.workspace(ref))

    def verify(self, ref: WorkspaceRef) -> VerifyReport:
        return self.integrity.verify(self.workspace(ref))


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9._-]+", "-", name.lower()).strip("-")
    return slug or "dataset"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")

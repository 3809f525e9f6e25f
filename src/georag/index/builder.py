"""Index builder: raw documents -> chunks, embeddings and geometries -> published generation.

Every build writes a fresh namespace. Datasets that are not being re-indexed
are copied over from the current generation, so a single-dataset build costs
one dataset's worth of embedding calls. The new generation is published only
after all three stores are written, the spatial index is built and the
content hash is computed; any failure drops the namespace instead.
"""

from __future__ import annotations

import logging
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from georag.embedding import Embedder
from georag.errors import (
    DatasetNotFound,
    DimensionMismatch,
    EmbedderUnavailable,
    GeometryInvalid,
    IndexConsistencyError,
    StoreUnavailable,
)
from georag.geo.adapter import GeometryAdapter
from georag.geo.spatial_index import SpatialIndex
from georag.index.generations import Generation, GenerationRegistry
from georag.index.hashing import hash_namespace
from georag.ingest.chunker import BaseChunker, FixedWindowChunker
from georag.models import (
    BuildReport,
    Dataset,
    Embedding,
    IndexedGeometry,
    IndexState,
    RawDocument,
    TextChunk,
    Workspace,
    WorkspaceConfig,
)
from georag.stores import StoreBundle
from georag.stores.ports import namespace_for

logger = logging.getLogger(__name__)


class IndexBuilder:
    """Builds and publishes index generations for workspaces.

    Args:
        stores: Store ports to read datasets from and write generations into.
        embedder: Embedder used for every chunk of a generation.
        adapter: Geometry primitives (validation, reprojection, hashing bytes).
        registry: Generation registry providing build locks and publication.
        chunker: Document splitter (default: FixedWindowChunker()).
        batch_size: Texts per embedder call.
    """

    def __init__(
        self,
        stores: StoreBundle,
        embedder: Embedder,
        adapter: GeometryAdapter,
        registry: GenerationRegistry,
        chunker: BaseChunker | None = None,
        batch_size: int = 64,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._stores = stores
        self._embedder = embedder
        self._adapter = adapter
        self._registry = registry
        self._chunker = chunker or FixedWindowChunker()
        self._batch_size = batch_size

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def build(self, workspace: Workspace, dataset_id: str) -> BuildReport:
        """(Re)index one dataset and publish a new generation.

        Raises:
            DatasetNotFound: Unknown dataset.
            GeometryInvalid: No document geometry of the dataset survived.
            DimensionMismatch: The embedder returned a vector of the wrong size.
            BuildInProgress: Another build of the workspace is running.
        """
        if self._stores.spatial.get_dataset(workspace.id, dataset_id) is None:
            raise DatasetNotFound(dataset_id, workspace.name)
        with self._registry.build_lock(workspace.id):
            reports = self._publish(workspace, reindex=[dataset_id])
        for report in reports:
            if report.dataset_id == dataset_id:
                return report
        raise IndexConsistencyError(f"Build produced no report for dataset '{dataset_id}'")

    def rebuild(self, workspace: Workspace) -> list[BuildReport]:
        """Re-index every dataset of *workspace* into a new generation."""
        with self._registry.build_lock(workspace.id):
            return self._publish(workspace, reindex=None)

    def remove_dataset(self, workspace: Workspace, dataset_id: str) -> IndexState | None:
        """Unregister a dataset and publish a generation without its entries.

        Returns the new IndexState, or None when the workspace was never built.
        """
        with self._registry.build_lock(workspace.id):
            if self._stores.spatial.get_dataset(workspace.id, dataset_id) is None:
                raise DatasetNotFound(dataset_id, workspace.name)
            state = None
            if self._registry.current(workspace.id) is not None:
                # The registration goes only once a generation without it is live.
                self._publish(workspace, reindex=[], drop={dataset_id})
                generation = self._registry.current(workspace.id)
                state = generation.state if generation else None
            self._stores.spatial.delete_dataset(workspace.id, dataset_id)
            return state

    # ------------------------------------------------------------------
    # Generation assembly
    # ------------------------------------------------------------------

    def _publish(
        self,
        workspace: Workspace,
        reindex: list[str] | None,
        drop: set[str] | None = None,
    ) -> list[BuildReport]:
        drop = drop or set()
        current = self._registry.current(workspace.id)
        registered = [d.id for d in self._stores.spatial.list_datasets(workspace.id) if d.id not in drop]

        full = reindex is None or (
            current is not None and self._needs_full_rebuild(current.state, workspace.config)
        )
        targets = registered if full else list(reindex or [])
        carry = current is not None and not full
        if current is not None and full and reindex is not None:
            logger.info(
                "Embedder or workspace configuration changed since generation %d; re-indexing all datasets",
                current.number,
            )

        number = self._registry.allocate(
            workspace.id, self._stores.workspaces.latest_generation_number(workspace.id)
        )
        namespace = namespace_for(workspace.id, number)
        started = time.perf_counter()
        logger.info(
            "Building generation %d for workspace %s (%d dataset(s) to index)",
            number,
            workspace.name,
            len(targets),
        )

        try:
            if carry and current is not None:
                excluded = set(targets) | drop
                for store in (self._stores.documents, self._stores.vectors, self._stores.spatial):
                    store.copy_namespace(current.namespace, namespace, excluded)

            reports = [self._index_dataset(workspace, dataset_id, namespace) for dataset_id in targets]

            geometries = self._stores.spatial.spatial_query(namespace)
            self._check_consistency(namespace, geometries)
            spatial_index = SpatialIndex.build(geometries, self._adapter, workspace.config.crs)
            digest = hash_namespace(
                namespace,
                self._stores.spatial,
                self._stores.vectors,
                self._adapter,
                self._embedder.model_name(),
                workspace.config.fingerprint(),
            )
            state = IndexState(
                hash=digest,
                built_at=datetime.now(timezone.utc).isoformat(timespec="seconds"),
                embedder=self._embedder.model_name(),
                chunk_count=len(geometries),
                embedding_dim=self._embedder.dimensions(),
                generation=number,
                config_fingerprint=workspace.config.fingerprint(),
            )
            self._stores.workspaces.save_generation(workspace.id, namespace, state)
        except BaseException:
            logger.warning("Build of generation %d for workspace %s failed; discarding it", number, workspace.name)
            self._discard(namespace)
            raise

        self._registry.publish(
            Generation(
                workspace_id=workspace.id,
                number=number,
                namespace=namespace,
                state=state,
                spatial_index=spatial_index,
                crs=workspace.config.crs,
            )
        )
        logger.info(
            "Generation %d: %d chunks, dim %d, hash %s (%.1f ms)",
            number,
            state.chunk_count,
            state.embedding_dim,
            state.hash[:12],
            (time.perf_counter() - started) * 1000,
        )
        for report in reports:
            report.state = state
        return reports

    def _needs_full_rebuild(self, state: IndexState, config: WorkspaceConfig) -> bool:
        return (
            state.embedder != self._embedder.model_name()
            or state.embedding_dim != self._embedder.dimensions()
            or state.config_fingerprint != config.fingerprint()
        )

    def _check_consistency(self, namespace: str, geometries: list[IndexedGeometry]) -> None:
        geometry_keys = [g.chunk_key for g in geometries]
        chunk_keys = self._stores.documents.list_chunk_keys(namespace)
        vector_keys = [e.chunk_key for e in self._stores.vectors.get_embeddings(namespace)]
        if not (geometry_keys == chunk_keys == vector_keys):
            raise IndexConsistencyError(
                f"Namespace {namespace} is inconsistent: {len(chunk_keys)} chunks, "
                f"{len(vector_keys)} embeddings, {len(geometry_keys)} geometries"
            )

    def _discard(self, namespace: str) -> None:
        try:
            self._stores.drop_namespace(namespace)
        except StoreUnavailable:
            logger.warning("Could not drop namespace %s of failed build", namespace, exc_info=True)

    # ------------------------------------------------------------------
    # Per-dataset pipeline
    # ------------------------------------------------------------------

    def _index_dataset(self, workspace: Workspace, dataset_id: str, namespace: str) -> BuildReport:
        dataset = self._stores.spatial.get_dataset(workspace.id, dataset_id)
        if dataset is None:
            raise DatasetNotFound(dataset_id, workspace.name)

        survivors, failures = self._normalize(workspace.config, dataset)
        for document_id, reason in failures:
            logger.warning("Skipping document %s of dataset %s: %s", document_id, dataset.id, reason)
        if not survivors:
            raise GeometryInvalid(
                f"No valid geometries in dataset '{dataset.id}' "
                f"({len(failures)} document(s) skipped)",
                failures,
            )

        chunks = self._chunk(workspace.config, dataset, survivors)
        embeddings = self._embed(chunks)

        self._stores.documents.store_chunks(namespace, chunks)
        self._stores.vectors.store_embeddings(namespace, embeddings)
        self._stores.spatial.store_geometries(
            namespace,
            [IndexedGeometry(c.key, c.geometry, self._adapter.bounds(c.geometry)) for c in chunks],
        )
        logger.info(
            "Indexed dataset %s: %d documents, %d chunks, %d skipped",
            dataset.id,
            len(survivors),
            len(chunks),
            len(failures),
        )
        return BuildReport(
            dataset_id=dataset.id,
            chunk_count=len(chunks),
            skipped_count=len(failures),
            failures=failures,
        )

    def _normalize(
        self, config: WorkspaceConfig, dataset: Dataset
    ) -> tuple[list[RawDocument], list[tuple[str, str]]]:
        survivors: list[RawDocument] = []
        failures: list[tuple[str, str]] = []
        for document in dataset.documents:
            try:
                geometry = self._normalize_geometry(document.geometry, dataset.crs, config)
            except ValueError as exc:
                failures.append((document.id, str(exc)))
                continue
            survivors.append(replace(document, geometry=geometry))
        return survivors, failures

    def _normalize_geometry(
        self, geometry: dict[str, Any] | None, source_crs: int, config: WorkspaceConfig
    ) -> dict[str, Any]:
        """Validate (and in lenient mode fix), reproject and normalize one geometry.

        Raises:
            ValueError: The geometry must be skipped; the message is the reason.
        """
        if geometry is None:
            raise ValueError("Document has no geometry")
        geometry = self._ensure_valid(geometry, config)
        geometry = self._adapter.reproject(geometry, source_crs, config.crs)
        geometry = self._ensure_valid(geometry, config)
        return self._adapter.normalize(geometry)

    def _ensure_valid(self, geometry: dict[str, Any], config: WorkspaceConfig) -> dict[str, Any]:
        if self._adapter.validate(geometry):
            return geometry
        reason = self._adapter.validation_reason(geometry)
        if config.geometry_validity == "strict":
            raise ValueError(reason)
        fixed = self._adapter.fix(geometry)
        if not self._adapter.validate(fixed):
            raise ValueError(f"{reason} (could not be fixed)")
        return fixed

    def _chunk(
        self, config: WorkspaceConfig, dataset: Dataset, documents: list[RawDocument]
    ) -> list[TextChunk]:
        chunks: list[TextChunk] = []
        seen: set[str] = set()
        for document in documents:
            for n, draft in enumerate(self._chunker.split(document)):
                geometry = document.geometry
                if draft.geometry is not None:
                    geometry = self._normalize_geometry(draft.geometry, config.crs, config)
                chunk = TextChunk(
                    id=f"{document.id}#{n}",
                    dataset_id=dataset.id,
                    document_id=document.id,
                    text=draft.text,
                    geometry=geometry,  # type: ignore[arg-type]
                    crs=config.crs,
                    source=document.source or dataset.source,
                    page=document.page,
                    offset=draft.offset,
                    properties=dict(document.properties),
                )
                if chunk.key in seen:
                    raise IndexConsistencyError(f"Duplicate chunk key '{chunk.key}' in dataset '{dataset.id}'")
                seen.add(chunk.key)
                chunks.append(chunk)
        return chunks

    def _embed(self, chunks: list[TextChunk]) -> list[Embedding]:
        expected = self._embedder.dimensions()
        model = self._embedder.model_name()
        embeddings: list[Embedding] = []
        for start in range(0, len(chunks), self._batch_size):
            batch = chunks[start : start + self._batch_size]
            vectors = self._embedder.embed([c.text for c in batch])
            if len(vectors) != len(batch):
                raise EmbedderUnavailable(
                    f"Embedder '{model}' returned {len(vectors)} vectors for {len(batch)} texts"
                )
            for chunk, vector in zip(batch, vectors):
                if len(vector) != expected:
                    raise DimensionMismatch(expected, len(vector), f"chunk {chunk.key}")
                embeddings.append(Embedding(chunk.key, tuple(float(v) for v in vector), model))
        logger.debug("Embedded %d chunks with %s", len(embeddings), model)
        return embeddings

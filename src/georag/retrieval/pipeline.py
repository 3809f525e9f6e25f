"""Hybrid retrieval: spatial pre-filter -> cosine similarity -> GeoJSON features.

  1. validate the query (text, top_k, bbox, distance predicate)
  2. lease the current generation
  3. spatial filter through the generation's STR-tree (empty -> empty result)
  4. embed the query; dimension must match the generation
  5. top_k similarity search restricted to the spatial candidates
  6. fetch chunks and assemble features (+ explanation when asked)

Ordering is score descending, ties broken by ascending chunk key.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Any, Sequence, Union

import numpy as np

from georag.embedding import Embedder
from georag.errors import DimensionMismatch, EmbedderUnavailable, IndexConsistencyError, InvalidQuery
from georag.index.generations import Generation, GenerationRegistry
from georag.models import (
    BBox,
    DistanceFilter,
    Feature,
    ScoredResult,
    SpatialFilter,
    TextChunk,
    Workspace,
)
from georag.retrieval.models import (
    QueryExplanation,
    QueryPlan,
    QueryResponse,
    RankingDetail,
    SemanticPhase,
    SpatialPhase,
)
from georag.stores import StoreBundle

logger = logging.getLogger(__name__)

_EXCERPT_CHARS = 200

NearSpec = Union[DistanceFilter, Sequence[Any], dict]


class RetrievalPipeline:
    """Executes queries against leased generations.

    Args:
        stores: Store ports holding the generations.
        embedder: Must be the embedder the generation was built with.
        registry: Generation registry providing leases.
    """

    def __init__(self, stores: StoreBundle, embedder: Embedder, registry: GenerationRegistry) -> None:
        self._stores = stores
        self._embedder = embedder
        self._registry = registry

    def execute(
        self,
        workspace: Workspace,
        text: str,
        bbox: BBox | Sequence[float] | None = None,
        top_k: int = 10,
        explain: bool = False,
        near: NearSpec | None = None,
    ) -> QueryResponse:
        """Run one hybrid query.

        Raises:
            InvalidQuery: Blank text or non-positive top_k.
            InvalidBBox: Malformed bbox or distance predicate.
            IndexNotBuilt: The workspace has no published generation.
            DimensionMismatch: Query embedding dimension differs from the index.
            IndexConsistencyError: The stores returned inconsistent results.
        """
        text = _validate_text(text)
        top_k = _validate_top_k(top_k)
        spatial_filter = SpatialFilter(
            bbox=_to_bbox(bbox),
            near=_to_distance(near, workspace.config.distance_unit),
        )

        with self._registry.lease(workspace.id) as generation:
            plan = _plan(text, top_k, spatial_filter, generation)
            candidates, spatial_phase = self._spatial_phase(spatial_filter, generation)
            if candidates is not None and not candidates:
                logger.debug("Spatial filter matched nothing; skipping semantic phase")
                return QueryResponse(
                    features=[],
                    state=generation.state,
                    explanation=QueryExplanation(plan, spatial_phase, None) if explain else None,
                )

            results, semantic_phase = self._semantic_phase(text, top_k, candidates, generation)
            chunks = self._fetch_chunks(generation, results)

        features = [_to_feature(result, chunk) for result, chunk in zip(results, chunks)]
        explanation = None
        if explain:
            explanation = QueryExplanation(
                plan=plan,
                spatial=spatial_phase,
                semantic=semantic_phase,
                ranking=[_ranking_detail(r, spatial_filter) for r in results],
            )
        return QueryResponse(features=features, state=generation.state, explanation=explanation)

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _spatial_phase(
        self, spatial_filter: SpatialFilter, generation: Generation
    ) -> tuple[set[str] | None, SpatialPhase | None]:
        if spatial_filter.is_empty:
            return None, None
        started = time.perf_counter()
        candidates = generation.spatial_index.query(spatial_filter)
        phase = SpatialPhase(
            predicate=spatial_filter.predicate,
            crs=f"EPSG:{generation.crs}",
            features_evaluated=len(generation.spatial_index),
            features_matched=len(candidates),
            distance_threshold=spatial_filter.near.meters if spatial_filter.near else None,
            elapsed_ms=(time.perf_counter() - started) * 1000,
        )
        logger.debug("Spatial phase: %d of %d features matched", phase.features_matched, phase.features_evaluated)
        return candidates, phase

    def _semantic_phase(
        self,
        text: str,
        top_k: int,
        candidates: set[str] | None,
        generation: Generation,
    ) -> tuple[list[ScoredResult], SemanticPhase]:
        started = time.perf_counter()
        vectors = self._embedder.embed([text])
        if len(vectors) != 1:
            raise EmbedderUnavailable(f"Embedder returned {len(vectors)} vectors for one query")
        query_vector = vectors[0]
        if len(query_vector) != generation.state.embedding_dim:
            raise DimensionMismatch(generation.state.embedding_dim, len(query_vector), "query embedding")

        raw = self._stores.vectors.similarity_search(generation.namespace, query_vector, top_k, candidates)
        results = _rank(raw, top_k, candidates)
        phase = SemanticPhase(
            embedder_model=generation.state.embedder,
            embedding_dim=generation.state.embedding_dim,
            candidates_reranked=len(candidates) if candidates is not None else generation.state.chunk_count,
            query_norm=float(np.linalg.norm(np.asarray(query_vector, dtype=np.float64))),
            elapsed_ms=(time.perf_counter() - started) * 1000,
        )
        logger.debug("Semantic phase: %d results from %d candidates", len(results), phase.candidates_reranked)
        return results, phase

    def _fetch_chunks(self, generation: Generation, results: list[ScoredResult]) -> list[TextChunk]:
        keys = [r.chunk_key for r in results]
        chunks = self._stores.documents.get_chunks(generation.namespace, keys)
        by_key = {c.key: c for c in chunks}
        missing = [k for k in keys if k not in by_key]
        if missing:
            raise IndexConsistencyError(
                f"Vector store returned chunk keys missing from the document store: {missing}"
            )
        return [by_key[k] for k in keys]


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _validate_text(text: str) -> str:
    if not isinstance(text, str) or not text.strip():
        raise InvalidQuery("Query text must be a non-empty string")
    return text.strip()


def _validate_top_k(top_k: int) -> int:
    if isinstance(top_k, bool) or not isinstance(top_k, int) or top_k <= 0:
        raise InvalidQuery(f"top_k must be a positive integer, got {top_k!r}")
    return top_k


def _to_bbox(bbox: BBox | Sequence[float] | None) -> BBox | None:
    if bbox is None:
        return None
    if isinstance(bbox, BBox):
        bbox.validate()
        return bbox
    return BBox.from_sequence(bbox)


def _to_distance(near: NearSpec | None, default_unit: str) -> DistanceFilter | None:
    """Accept a DistanceFilter, ``(x, y, distance[, unit])`` or a mapping."""
    if near is None or isinstance(near, DistanceFilter):
        return near
    try:
        if isinstance(near, dict):
            return DistanceFilter(
                x=float(near["x"]),
                y=float(near["y"]),
                distance=float(near["distance"]),
                unit=near.get("unit") or default_unit,
            )
        values = list(near)
        if len(values) not in (3, 4):
            raise InvalidQuery(f"near must be (x, y, distance[, unit]), got {near!r}")
        unit = values[3] if len(values) == 4 else default_unit
        return DistanceFilter(float(values[0]), float(values[1]), float(values[2]), unit)
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidQuery(f"Invalid distance predicate {near!r}: {exc}") from exc


# ---------------------------------------------------------------------------
# Ranking and assembly
# ---------------------------------------------------------------------------


def _rank(raw: list[ScoredResult], top_k: int, candidates: set[str] | None) -> list[ScoredResult]:
    seen: set[str] = set()
    for result in raw:
        if result.chunk_key in seen:
            raise IndexConsistencyError(f"Vector store returned duplicate chunk key '{result.chunk_key}'")
        if candidates is not None and result.chunk_key not in candidates:
            raise IndexConsistencyError(
                f"Vector store returned chunk key '{result.chunk_key}' outside the spatial candidates"
            )
        if math.isnan(result.score):
            raise IndexConsistencyError(f"Vector store returned a NaN score for '{result.chunk_key}'")
        seen.add(result.chunk_key)
    ordered = sorted(raw, key=lambda r: (-r.score, r.chunk_key))[:top_k]
    return [ScoredResult(r.chunk_key, r.score, rank=i + 1) for i, r in enumerate(ordered)]


def _plan(text: str, top_k: int, spatial_filter: SpatialFilter, generation: Generation) -> QueryPlan:
    near = spatial_filter.near
    return QueryPlan(
        text=text,
        top_k=top_k,
        predicate=spatial_filter.predicate,
        bbox=list(spatial_filter.bbox.as_tuple()) if spatial_filter.bbox else None,
        near=(
            {"x": near.x, "y": near.y, "distance": near.distance, "unit": near.unit, "meters": near.meters}
            if near
            else None
        ),
        generation=generation.number,
    )


def _to_feature(result: ScoredResult, chunk: TextChunk) -> Feature:
    excerpt = chunk.text if len(chunk.text) <= _EXCERPT_CHARS else chunk.text[:_EXCERPT_CHARS].rstrip() + "…"
    return Feature(
        id=chunk.key,
        geometry=chunk.geometry,
        properties={
            "chunk_id": chunk.key,
            "dataset_id": chunk.dataset_id,
            "document_id": chunk.document_id,
            "score": result.score,
            "rank": result.rank,
            "text": chunk.text,
            "excerpt": excerpt,
            "source": chunk.source,
            "page": chunk.page,
            "offset": chunk.offset,
            "properties": chunk.properties,
        },
    )


def _ranking_detail(result: ScoredResult, spatial_filter: SpatialFilter) -> RankingDetail:
    spatial_score = None if spatial_filter.is_empty else 1.0
    if spatial_score is None:
        explanation = f"cosine similarity {result.score:.4f}; no spatial filter"
    else:
        explanation = f"passed {spatial_filter.predicate} filter; cosine similarity {result.score:.4f}"
    return RankingDetail(
        chunk_id=result.chunk_key,
        rank=result.rank,
        spatial_score=spatial_score,
        semantic_score=result.score,
        final_score=result.score,
        score_explanation=explanation,
    )

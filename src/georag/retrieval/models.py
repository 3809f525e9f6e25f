"""Query response and explanation structures."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from georag.models import Feature, IndexState


@dataclass
class QueryPlan:
    """What the pipeline was asked to do, after validation.

    Attributes:
        text: Query text.
        top_k: Maximum number of results.
        predicate: 'bbox', 'distance', 'bbox+distance' or 'none'.
        bbox: Query bbox as ``[min_x, min_y, max_x, max_y]`` (workspace CRS).
        near: ``{"x", "y", "distance", "unit", "meters"}`` for a distance predicate.
        generation: Index generation the query ran against.
    """

    text: str
    top_k: int
    predicate: str = "none"
    bbox: list[float] | None = None
    near: dict[str, Any] | None = None
    generation: int = 0


@dataclass
class SpatialPhase:
    predicate: str
    crs: str
    features_evaluated: int
    features_matched: int
    distance_threshold: float | None = None
    elapsed_ms: float = 0.0


@dataclass
class SemanticPhase:
    embedder_model: str
    embedding_dim: int
    candidates_reranked: int
    query_norm: float
    elapsed_ms: float = 0.0


@dataclass
class RankingDetail:
    """Why one result landed where it did.

    ``spatial_score`` is 1.0 when the result passed a spatial filter and None
    when the query had none; the final score is the cosine similarity.
    """

    chunk_id: str
    rank: int
    spatial_score: float | None
    semantic_score: float
    final_score: float
    score_explanation: str


@dataclass
class QueryExplanation:
    plan: QueryPlan
    spatial: SpatialPhase | None
    semantic: SemanticPhase | None
    ranking: list[RankingDetail] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class QueryResponse:
    """Ranked features plus optional explanation.

    Attributes:
        features: Result features, best first.
        state: IndexState of the generation the query ran against.
        explanation: Present when the query was run with ``explain=True``.
    """

    features: list[Feature] = field(default_factory=list)
    state: IndexState | None = None
    explanation: QueryExplanation | None = None

    def __len__(self) -> int:
        return len(self.features)

    @property
    def chunk_keys(self) -> list[str]:
        return [f.properties["chunk_id"] for f in self.features]

    def to_geojson(self) -> dict[str, Any]:
        collection: dict[str, Any] = {
            "type": "FeatureCollection",
            "features": [f.to_geojson() for f in self.features],
        }
        if self.explanation is not None:
            collection["explanation"] = self.explanation.to_dict()
        return collection

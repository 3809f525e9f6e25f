"""Domain models for GeoRAG workspaces, datasets and index generations."""

from __future__ import annotations

import math
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Sequence

from georag.errors import InvalidBBox

# Meters per unit for the supported workspace distance units.
DISTANCE_UNITS: dict[str, float] = {
    "meters": 1.0,
    "kilometers": 1_000.0,
    "miles": 1_609.344,
    "feet": 0.3048,
}

_UNIT_ALIASES: dict[str, str] = {
    "m": "meters",
    "meter": "meters",
    "km": "kilometers",
    "kilometer": "kilometers",
    "mi": "miles",
    "mile": "miles",
    "ft": "feet",
    "foot": "feet",
}

VALIDITY_MODES: tuple[str, ...] = ("lenient", "strict")


def normalize_unit(unit: str) -> str:
    """Return the canonical distance unit name for *unit* (e.g. "km" -> "kilometers").

    Raises:
        ValueError: If *unit* is not a known distance unit.
    """
    key = unit.strip().lower()
    key = _UNIT_ALIASES.get(key, key)
    if key not in DISTANCE_UNITS:
        raise ValueError(
            f"Unknown distance unit '{unit}'. Use one of: {', '.join(DISTANCE_UNITS)}"
        )
    return key


_DISTANCE_RE = re.compile(r"^\s*([0-9]*\.?[0-9]+(?:[eE][-+]?[0-9]+)?)\s*([a-zA-Z]*)\s*$")


def parse_distance(value: str, default_unit: str = "meters") -> tuple[float, str]:
    """Parse "5km", "100 m", "2.5mi" or a bare number into ``(distance, unit)``.

    Raises:
        ValueError: Unparseable value or unknown unit.
    """
    match = _DISTANCE_RE.match(value)
    if not match:
        raise ValueError(f"Invalid distance '{value}'. Use e.g. '500m', '5km' or '2mi'")
    number, unit = match.groups()
    return float(number), normalize_unit(unit or default_unit)


# ---------------------------------------------------------------------------
# Workspace
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WorkspaceConfig:
    """Immutable workspace configuration.

    Attributes:
        crs: EPSG code every stored geometry is normalized to.
        distance_unit: Default unit for distance predicates.
        geometry_validity: 'lenient' fixes invalid geometries before giving up;
            'strict' skips them outright.
    """

    crs: int = 4326
    distance_unit: str = "meters"
    geometry_validity: str = "lenient"

    def __post_init__(self) -> None:
        if int(self.crs) <= 0:
            raise ValueError(f"crs must be a positive EPSG code, got {self.crs}")
        object.__setattr__(self, "crs", int(self.crs))
        object.__setattr__(self, "distance_unit", normalize_unit(self.distance_unit))
        mode = self.geometry_validity.strip().lower()
        if mode not in VALIDITY_MODES:
            raise ValueError(
                f"geometry_validity must be one of {VALIDITY_MODES}, got '{self.geometry_validity}'"
            )
        object.__setattr__(self, "geometry_validity", mode)

    def fingerprint(self) -> str:
        """Canonical string folded into the index hash."""
        return (
            f"crs=EPSG:{self.crs};"
            f"distance_unit={self.distance_unit};"
            f"geometry_validity={self.geometry_validity}"
        )

    @classmethod
    def from_fingerprint(cls, fingerprint: str) -> WorkspaceConfig:
        """Inverse of fingerprint(); missing fields take their defaults."""
        values = dict(part.split("=", 1) for part in fingerprint.split(";") if "=" in part)
        kwargs: dict[str, Any] = {}
        if "crs" in values:
            kwargs["crs"] = int(values["crs"].removeprefix("EPSG:"))
        if "distance_unit" in values:
            kwargs["distance_unit"] = values["distance_unit"]
        if "geometry_validity" in values:
            kwargs["geometry_validity"] = values["geometry_validity"]
        return cls(**kwargs)


@dataclass
class Workspace:
    id: str
    name: str
    config: WorkspaceConfig = field(default_factory=WorkspaceConfig)
    created_at: str | None = None


# ---------------------------------------------------------------------------
# Datasets and documents
# ---------------------------------------------------------------------------


@dataclass
class RawDocument:
    """One geocoded input record before normalization and chunking.

    Attributes:
        id: Identifier unique within the dataset.
        text: Document text (may be empty; such documents yield no chunks).
        geometry: GeoJSON geometry mapping in the dataset CRS.
        properties: Arbitrary JSON-serialisable properties carried to results.
        source: Provenance (file path, URL, feature reference).
        page: Page number for paged documents (PDF), else None.
    """

    id: str
    text: str
    geometry: dict[str, Any] | None
    properties: dict[str, Any] = field(default_factory=dict)
    source: str = ""
    page: int | None = None


@dataclass
class Dataset:
    id: str
    workspace_id: str
    name: str
    crs: int = 4326
    source: str = ""
    documents: list[RawDocument] = field(default_factory=list)
    bbox: tuple[float, float, float, float] | None = None
    document_count: int = 0
    added_at: str | None = None


@dataclass
class TextChunk:
    """The atomic retrieval unit: a bounded piece of text plus its geometry.

    ``geometry`` is always normalized and expressed in the workspace CRS.
    """

    id: str
    dataset_id: str
    document_id: str
    text: str
    geometry: dict[str, Any]
    crs: int
    source: str = ""
    page: int | None = None
    offset: int = 0
    properties: dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> str:
        """Workspace-unique key: chunk ids are only unique within a dataset."""
        return chunk_key(self.dataset_id, self.id)


def chunk_key(dataset_id: str, chunk_id: str) -> str:
    return f"{dataset_id}/{chunk_id}"


@dataclass(frozen=True)
class Embedding:
    chunk_key: str
    vector: tuple[float, ...]
    model: str

    @property
    def dimension(self) -> int:
        return len(self.vector)


@dataclass(frozen=True)
class IndexedGeometry:
    chunk_key: str
    geometry: dict[str, Any]
    bbox: tuple[float, float, float, float]


@dataclass(frozen=True)
class IndexState:
    """Published description of one index generation.

    Attributes:
        hash: Hex SHA-256 content hash (see georag.index.hashing).
        built_at: UTC ISO-8601 build timestamp.
        embedder: Embedder model identifier used for the generation.
        chunk_count: Total chunks in the generation.
        embedding_dim: Uniform embedding dimension of the generation.
        generation: Monotonic generation number within the workspace.
        config_fingerprint: Workspace configuration the hash was computed with.
    """

    hash: str
    built_at: str
    embedder: str
    chunk_count: int
    embedding_dim: int
    generation: int = 0
    config_fingerprint: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IndexState:
        return cls(
            hash=str(data["hash"]),
            built_at=str(data["built_at"]),
            embedder=str(data["embedder"]),
            chunk_count=int(data["chunk_count"]),
            embedding_dim=int(data["embedding_dim"]),
            generation=int(data.get("generation", 0)),
            config_fingerprint=str(data.get("config_fingerprint", "")),
        )


# ---------------------------------------------------------------------------
# Spatial filters
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BBox:
    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @classmethod
    def from_sequence(cls, values: Sequence[float]) -> BBox:
        """Build a bbox from ``[min_x, min_y, max_x, max_y]``.

        Raises:
            InvalidBBox: Wrong arity, non-numeric or non-finite values, or
                min > max on either axis.
        """
        if values is None or len(values) != 4:
            raise InvalidBBox(f"bbox must have exactly 4 values [min_x, min_y, max_x, max_y], got {values!r}")
        try:
            min_x, min_y, max_x, max_y = (float(v) for v in values)
        except (TypeError, ValueError) as exc:
            raise InvalidBBox(f"bbox values must be numbers, got {values!r}") from exc
        bbox = cls(min_x, min_y, max_x, max_y)
        bbox.validate()
        return bbox

    def validate(self) -> None:
        coords = (self.min_x, self.min_y, self.max_x, self.max_y)
        if not all(math.isfinite(c) for c in coords):
            raise InvalidBBox(f"bbox values must be finite, got {list(coords)}")
        if self.min_x > self.max_x:
            raise InvalidBBox(f"bbox min_x ({self.min_x}) is greater than max_x ({self.max_x})")
        if self.min_y > self.max_y:
            raise InvalidBBox(f"bbox min_y ({self.min_y}) is greater than max_y ({self.max_y})")

    def intersects(self, other: tuple[float, float, float, float]) -> bool:
        o_min_x, o_min_y, o_max_x, o_max_y = other
        return not (
            o_max_x < self.min_x
            or o_min_x > self.max_x
            or o_max_y < self.min_y
            or o_min_y > self.max_y
        )

    def as_tuple(self) -> tuple[float, float, float, float]:
        return (self.min_x, self.min_y, self.max_x, self.max_y)


@dataclass(frozen=True)
class DistanceFilter:
    """``within distance of (x, y)``; x/y are in the workspace CRS."""

    x: float
    y: float
    distance: float
    unit: str = "meters"

    def __post_init__(self) -> None:
        if not (math.isfinite(self.x) and math.isfinite(self.y)):
            raise InvalidBBox(f"distance filter point must be finite, got ({self.x}, {self.y})")
        if not math.isfinite(self.distance) or self.distance < 0:
            raise InvalidBBox(f"distance must be a finite non-negative number, got {self.distance}")
        object.__setattr__(self, "unit", normalize_unit(self.unit))

    @property
    def meters(self) -> float:
        return self.distance * DISTANCE_UNITS[self.unit]


@dataclass(frozen=True)
class SpatialFilter:
    bbox: BBox | None = None
    near: DistanceFilter | None = None

    @property
    def is_empty(self) -> bool:
        return self.bbox is None and self.near is None

    @property
    def predicate(self) -> str:
        if self.bbox is not None and self.near is not None:
            return "bbox+distance"
        if self.bbox is not None:
            return "bbox"
        if self.near is not None:
            return "distance"
        return "none"


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScoredResult:
    chunk_key: str
    score: float
    rank: int = 0


@dataclass
class Feature:
    """A GeoJSON feature returned by a query."""

    geometry: dict[str, Any]
    properties: dict[str, Any] = field(default_factory=dict)
    id: str | None = None

    def to_geojson(self) -> dict[str, Any]:
        feature: dict[str, Any] = {
            "type": "Feature",
            "geometry": self.geometry,
            "properties": self.properties,
        }
        if self.id is not None:
            feature["id"] = self.id
        return feature


@dataclass
class BuildReport:
    """Aggregated outcome of indexing one dataset.

    Attributes:
        dataset_id: Dataset that was (re)indexed.
        chunk_count: Chunks produced for this dataset.
        skipped_count: Documents skipped for unfixable geometry.
        failures: ``(document id, reason)`` for every skipped document.
        state: The newly published IndexState.
    """

    dataset_id: str
    chunk_count: int
    skipped_count: int
    failures: list[tuple[str, str]] = field(default_factory=list)
    state: IndexState | None = None


@dataclass(frozen=True)
class VerifyReport:
    stored_hash: str
    computed_hash: str
    matches: bool

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

"""GeoRAG error taxonomy.

Input validation errors (InvalidQuery, InvalidBBox) are raised immediately and
never retried. Store failures are wrapped into StoreUnavailable at the store
boundary with the operation, workspace and dataset that were involved; the
original exception is kept as ``__cause__``.
"""

from __future__ import annotations


class GeoragError(Exception):
    """Base class for every error raised by the GeoRAG core."""


class InvalidQuery(GeoragError):
    """Empty query text or non-positive top_k."""


class InvalidBBox(GeoragError):
    """Malformed bounding box (wrong arity, non-finite, or min > max)."""


class DimensionMismatch(GeoragError):
    """Embedder output dimension differs from the expected dimension."""

    def __init__(self, expected: int, actual: int, context: str = "") -> None:
        self.expected = expected
        self.actual = actual
        where = f" ({context})" if context else ""
        super().__init__(
            f"Embedding dimension mismatch{where}: expected {expected}, got {actual}."
        )


class GeometryInvalid(GeoragError):
    """No geometry in an ingestion survived validation and fixing."""

    def __init__(self, message: str, failures: list[tuple[str, str]] | None = None) -> None:
        self.failures = failures or []
        super().__init__(message)


class IndexNotBuilt(GeoragError):
    """The workspace has no published index generation."""

    def __init__(self, workspace: str) -> None:
        self.workspace = workspace
        super().__init__(f"Index not built for workspace '{workspace}'. Run 'georag build' first.")


class StoreUnavailable(GeoragError):
    """An underlying store port failed."""

    def __init__(
        self,
        operation: str,
        reason: str,
        workspace: str | None = None,
        dataset: str | None = None,
    ) -> None:
        self.operation = operation
        self.reason = reason
        self.workspace = workspace
        self.dataset = dataset
        parts = [f"operation={operation}"]
        if workspace:
            parts.append(f"workspace={workspace}")
        if dataset:
            parts.append(f"dataset={dataset}")
        super().__init__(f"Store unavailable ({', '.join(parts)}): {reason}")


class IndexConsistencyError(GeoragError):
    """The stores returned data that violates an index invariant."""


class BuildInProgress(GeoragError):
    """Another build already holds the workspace build lock."""

    def __init__(self, workspace: str) -> None:
        self.workspace = workspace
        super().__init__(f"A build is already running for workspace '{workspace}'.")


class WorkspaceNotFound(GeoragError):
    def __init__(self, workspace: str) -> None:
        self.workspace = workspace
        super().__init__(f"Workspace not found: '{workspace}'.")


class WorkspaceExists(GeoragError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Workspace already exists: '{name}'.")


class DatasetNotFound(GeoragError):
    def __init__(self, dataset: str, workspace: str | None = None) -> None:
        self.dataset = dataset
        self.workspace = workspace
        where = f" in workspace '{workspace}'" if workspace else ""
        super().__init__(f"Dataset not found: '{dataset}'{where}.")


class InvalidDataset(GeoragError, ValueError):
    """Dataset input rejected at registration: bad dataset id or duplicate document ids."""

    def __init__(self, message: str, dataset: str) -> None:
        self.dataset = dataset
        super().__init__(message)


class DatasetExists(GeoragError):
    def __init__(self, dataset: str, workspace: str) -> None:
        self.dataset = dataset
        self.workspace = workspace
        super().__init__(f"Dataset '{dataset}' already exists in workspace '{workspace}'.")


class EmbedderUnavailable(GeoragError):
    """The embedding backend could not produce vectors."""

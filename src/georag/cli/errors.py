"""GeoRAG rich error messages: actionable feedback for the CLI.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from georag.cli.errors import err_no_db
    console.print(err_no_db(".georag.db"))
    raise typer.Exit(1)
"""

from __future__ import annotations

from georag.errors import (
    BuildInProgress,
    DatasetExists,
    DatasetNotFound,
    DimensionMismatch,
    EmbedderUnavailable,
    GeometryInvalid,
    GeoragError,
    IndexConsistencyError,
    IndexNotBuilt,
    InvalidBBox,
    InvalidDataset,
    InvalidQuery,
    StoreUnavailable,
    WorkspaceExists,
    WorkspaceNotFound,
)

_PROVIDER_ENV = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "azure": "AZURE_API_KEY",
    "voyage": "VOYAGE_API_KEY",
}


def err_no_api_key(model: str) -> str:
    """No API key for the provider of *model*.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    provider = model.split("/", 1)[0] if "/" in model else "openai"
    env_var = _PROVIDER_ENV.get(provider.lower(), f"{provider.upper()}_API_KEY")
    return (
        f"[red]Error:[/] No API key for '{provider}' (embedding model '{model}').\n"
        f"  Set:  export {env_var}=sk-...\n"
        "  Or use the offline embedder:  embedding.model: hashing  in georag.yaml"
    )


def err_no_db(db_path: str = ".georag.db") -> str:
    """No .georag.db found."""
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  georag init"
    )


def err_config(reason: str) -> str:
    return (
        f"[red]Error:[/] Invalid configuration: {reason}\n"
        "  Fix georag.yaml (or the GEORAG_* environment variables) and retry."
    )


def err_workspace_not_found(workspace: str) -> str:
    return (
        f"[red]Error:[/] Workspace '{workspace}' not found.\n"
        "  Run:  georag init --workspace " + workspace
    )


def err_workspace_exists(workspace: str) -> str:
    return (
        f"[red]Error:[/] Workspace '{workspace}' already exists.\n"
        "  Use it with:  --workspace " + workspace
    )


def err_dataset_not_found(dataset: str) -> str:
    return (
        f"[red]Error:[/] Dataset '{dataset}' not found.\n"
        "  Run:  georag datasets   (list registered datasets)"
    )


def err_dataset_exists(dataset: str) -> str:
    return (
        f"[red]Error:[/] Dataset '{dataset}' already exists.\n"
        f"  Remove it first:  georag remove {dataset}\n"
        "  Or pick another id:  georag add FILE --id NEW_ID"
    )


def err_invalid_dataset(reason: str) -> str:
    return (
        f"[red]Error:[/] {reason}.\n"
        "  Pick a valid id:  georag add FILE --id my-dataset\n"
        "  Document ids come from the feature 'id' members and must be unique within a file."
    )


def err_index_not_built(workspace: str) -> str:
    return (
        f"[red]Error:[/] Workspace '{workspace}' has no index yet.\n"
        "  Run:  georag build"
    )


def err_build_in_progress(workspace: str) -> str:
    return (
        f"[red]Error:[/] A build is already running for workspace '{workspace}'.\n"
        "  Wait for it to finish, then retry."
    )


def err_invalid_bbox(reason: str) -> str:
    return (
        f"[red]Error:[/] Invalid bounding box: {reason}\n"
        "  Use:  --bbox MIN_X,MIN_Y,MAX_X,MAX_Y  (min <= max, finite numbers)"
    )


def err_invalid_query(reason: str) -> str:
    return (
        f"[red]Error:[/] Invalid query: {reason}\n"
        "  Example:  georag query \"flood risk\" --near 4.9,52.37 --distance 5km --top-k 5"
    )


def err_dimension_mismatch(exc: DimensionMismatch) -> str:
    return (
        f"[red]Error:[/] {exc}\n"
        "  The embedding model changed since the last build.\n"
        "  Run:  georag build   (re-embeds every dataset)"
    )


def err_geometry_invalid(exc: GeometryInvalid) -> str:
    lines = [f"[red]Error:[/] {exc}"]
    for doc_id, reason in exc.failures[:10]:
        lines.append(f"  {doc_id}: {reason}")
    if len(exc.failures) > 10:
        lines.append(f"  ... and {len(exc.failures) - 10} more")
    lines.append("  Fix the geometries, or set workspace.geometry_validity: lenient")
    return "\n".join(lines)


def err_store_unavailable(exc: StoreUnavailable) -> str:
    return (
        f"[red]Error:[/] {exc}\n"
        "  Check that the database file is readable and not locked by another process."
    )


def err_embedder_unavailable(reason: str) -> str:
    return (
        f"[red]Error:[/] Embedding model unavailable: {reason}\n"
        "  Check network access and your API key, then retry."
    )


def err_index_inconsistent(reason: str) -> str:
    return (
        f"[red]Error:[/] Index is inconsistent: {reason}\n"
        "  Run:  georag build   (rebuilds every dataset)"
    )


def describe(exc: GeoragError, workspace: str | None = None) -> str:
    """Map a GeoRAG exception to its actionable message.

    *workspace* is the name shown to the user; the core reports workspace ids.
    """
    if isinstance(exc, WorkspaceNotFound):
        return err_workspace_not_found(exc.workspace)
    if isinstance(exc, WorkspaceExists):
        return err_workspace_exists(exc.name)
    if isinstance(exc, DatasetNotFound):
        return err_dataset_not_found(exc.dataset)
    if isinstance(exc, DatasetExists):
        return err_dataset_exists(exc.dataset)
    if isinstance(exc, InvalidDataset):
        return err_invalid_dataset(str(exc))
    if isinstance(exc, IndexNotBuilt):
        return err_index_not_built(workspace or exc.workspace)
    if isinstance(exc, BuildInProgress):
        return err_build_in_progress(workspace or exc.workspace)
    if isinstance(exc, InvalidBBox):
        return err_invalid_bbox(str(exc))
    if isinstance(exc, InvalidQuery):
        return err_invalid_query(str(exc))
    if isinstance(exc, DimensionMismatch):
        return err_dimension_mismatch(exc)
    if isinstance(exc, GeometryInvalid):
        return err_geometry_invalid(exc)
    if isinstance(exc, StoreUnavailable):
        return err_store_unavailable(exc)
    if isinstance(exc, EmbedderUnavailable):
        return err_embedder_unavailable(str(exc))
    if isinstance(exc, IndexConsistencyError):
        return err_index_inconsistent(str(exc))
    return f"[red]Error:[/] {exc}"

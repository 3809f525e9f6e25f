"""GeoRAG configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (GEORAG_CRS, GEORAG_EMBEDDING_MODEL,
                             GEORAG_EMBEDDING_DIMENSIONS, GEORAG_LOG_LEVEL)
  3. Per-project georag.yaml  (next to .georag.db)
  4. Global ~/.georag/config.yaml  (model defaults only, no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load(), never yaml.load().
"""

from __future__ import annotations

import logging
import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from georag.embedding import DEFAULT_DIMENSIONS, DEFAULT_MODEL
from georag.models import VALIDITY_MODES, normalize_unit

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".georag"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
PROJECT_CONFIG_NAME: str = "georag.yaml"
DEFAULT_DB_NAME: str = ".georag.db"

# Fields that suggest an API key are forbidden in global config.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

# Known top-level sections; unknown keys produce a warning
_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["workspace", "embedding", "chunking", "retrieval", "storage", "logging"]
)

_STORAGE_BACKENDS: tuple[str, ...] = ("sqlite", "memory")
_LOG_LEVELS: tuple[str, ...] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class WorkspaceCfg:
    """Workspace defaults (georag.yaml: workspace:).

    Attributes:
        name: Workspace the CLI operates on.
        crs: EPSG code geometries are normalized to.
        distance_unit: Default unit for distance predicates.
        geometry_validity: 'lenient' (fix, then skip) or 'strict' (skip).
    """

    name: str = "default"
    crs: int = 4326
    distance_unit: str = "meters"
    geometry_validity: str = "lenient"


@dataclass
class EmbeddingCfg:
    """Embedding model configuration (georag.yaml: embedding:)."""

    model: str = DEFAULT_MODEL
    dimensions: int = DEFAULT_DIMENSIONS
    batch_size: int = 64


@dataclass
class ChunkingCfg:
    """Chunk size (tokens, 4 chars each) and overlap fraction (georag.yaml: chunking:)."""

    chunk_size: int = 512
    overlap: float = 0.10


@dataclass
class RetrievalCfg:
    top_k: int = 10


@dataclass
class StorageCfg:
    """Store backend (georag.yaml: storage:). ``path`` is relative to the project dir."""

    backend: str = "sqlite"
    path: str = DEFAULT_DB_NAME


@dataclass
class LoggingCfg:
    level: str = "WARNING"


@dataclass
class GeoragConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    workspace: WorkspaceCfg = field(default_factory=WorkspaceCfg)
    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    storage: StorageCfg = field(default_factory=StorageCfg)
    logging: LoggingCfg = field(default_factory=LoggingCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' (ignored).",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: GeoragConfig) -> GeoragConfig:
    if cfg.workspace.crs <= 0:
        raise ConfigError(f"workspace.crs must be a positive EPSG code, got {cfg.workspace.crs}")
    try:
        cfg.workspace.distance_unit = normalize_unit(cfg.workspace.distance_unit)
    except ValueError as exc:
        raise ConfigError(f"workspace.distance_unit: {exc}") from exc
    if cfg.workspace.geometry_validity not in VALIDITY_MODES:
        raise ConfigError(
            f"workspace.geometry_validity must be one of {', '.join(VALIDITY_MODES)}, "
            f"got '{cfg.workspace.geometry_validity}'"
        )
    if cfg.embedding.dimensions < 1:
        raise ConfigError(f"embedding.dimensions must be >= 1, got {cfg.embedding.dimensions}")
    if cfg.embedding.batch_size < 1:
        raise ConfigError(f"embedding.batch_size must be >= 1, got {cfg.embedding.batch_size}")
    if cfg.chunking.chunk_size < 1:
        raise ConfigError(f"chunking.chunk_size must be >= 1, got {cfg.chunking.chunk_size}")
    if not 0.0 <= cfg.chunking.overlap < 1.0:
        raise ConfigError(f"chunking.overlap must be in [0.0, 1.0), got {cfg.chunking.overlap}")
    if cfg.retrieval.top_k < 1:
        raise ConfigError(f"retrieval.top_k must be >= 1, got {cfg.retrieval.top_k}")
    if cfg.storage.backend not in _STORAGE_BACKENDS:
        raise ConfigError(
            f"storage.backend must be one of {', '.join(_STORAGE_BACKENDS)}, got '{cfg.storage.backend}'"
        )
    cfg.logging.level = cfg.logging.level.upper()
    if cfg.logging.level not in _LOG_LEVELS:
        raise ConfigError(f"logging.level must be one of {', '.join(_LOG_LEVELS)}, got '{cfg.logging.level}'")
    return cfg


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping, got {type(value).__name__}")
    return value


def _cfg_from_dict(data: dict[str, Any]) -> GeoragConfig:
    """Build a *GeoragConfig* from a merged raw YAML dict."""
    cfg = GeoragConfig()
    try:
        if "workspace" in data:
            w = _section(data, "workspace")
            cfg.workspace = WorkspaceCfg(
                name=str(w.get("name", cfg.workspace.name)),
                crs=int(w.get("crs", cfg.workspace.crs)),
                distance_unit=str(w.get("distance_unit", cfg.workspace.distance_unit)),
                geometry_validity=str(w.get("geometry_validity", cfg.workspace.geometry_validity)).lower(),
            )

        if "embedding" in data:
            e = _section(data, "embedding")
            cfg.embedding = EmbeddingCfg(
                model=str(e.get("model", cfg.embedding.model)),
                dimensions=int(e.get("dimensions", cfg.embedding.dimensions)),
                batch_size=int(e.get("batch_size", cfg.embedding.batch_size)),
            )

        if "chunking" in data:
            c = _section(data, "chunking")
            cfg.chunking = ChunkingCfg(
                chunk_size=int(c.get("chunk_size", cfg.chunking.chunk_size)),
                overlap=float(c.get("overlap", cfg.chunking.overlap)),
            )

        if "retrieval" in data:
            r = _section(data, "retrieval")
            cfg.retrieval = RetrievalCfg(top_k=int(r.get("top_k", cfg.retrieval.top_k)))

        if "storage" in data:
            s = _section(data, "storage")
            cfg.storage = StorageCfg(
                backend=str(s.get("backend", cfg.storage.backend)).lower(),
                path=str(s.get("path", cfg.storage.path)),
            )

        if "logging" in data:
            lg = _section(data, "logging")
            cfg.logging = LoggingCfg(level=str(lg.get("level", cfg.logging.level)))
    except ConfigError:
        raise
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc
    return cfg


def _apply_env_overrides(cfg: GeoragConfig) -> GeoragConfig:
    """Apply GEORAG_* environment variable overrides (layer 2)."""
    if crs := os.environ.get("GEORAG_CRS"):
        try:
            cfg.workspace.crs = int(crs.upper().removeprefix("EPSG:"))
        except ValueError as exc:
            raise ConfigError(f"GEORAG_CRS must be an EPSG code, got '{crs}'") from exc
    if model := os.environ.get("GEORAG_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if dims := os.environ.get("GEORAG_EMBEDDING_DIMENSIONS"):
        try:
            cfg.embedding.dimensions = int(dims)
        except ValueError as exc:
            raise ConfigError(f"GEORAG_EMBEDDING_DIMENSIONS must be an integer, got '{dims}'") from exc
    if level := os.environ.get("GEORAG_LOG_LEVEL"):
        cfg.logging.level = level
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> GeoragConfig:
    """Load and return a merged *GeoragConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *georag.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields or any
            value is invalid.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = _read_yaml(global_path)
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = _read_yaml(project_cfg_path)
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)
    cfg = _apply_env_overrides(cfg)
    return _validate(cfg)


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Cannot parse '{path}': {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"'{path}' must contain a YAML mapping at the top level")
    return data


def write_project_config(project_dir: Path, cfg: GeoragConfig) -> Path:
    """Write *cfg* as ``georag.yaml`` in *project_dir* (overwrites)."""
    target = project_dir / PROJECT_CONFIG_NAME
    data = {
        "workspace": {
            "name": cfg.workspace.name,
            "crs": cfg.workspace.crs,
            "distance_unit": cfg.workspace.distance_unit,
            "geometry_validity": cfg.workspace.geometry_validity,
        },
        "embedding": {
            "model": cfg.embedding.model,
            "dimensions": cfg.embedding.dimensions,
            "batch_size": cfg.embedding.batch_size,
        },
        "chunking": {"chunk_size": cfg.chunking.chunk_size, "overlap": cfg.chunking.overlap},
        "retrieval": {"top_k": cfg.retrieval.top_k},
        "storage": {"backend": cfg.storage.backend, "path": cfg.storage.path},
    }
    target.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
    return target


def ensure_global_config(global_config_path: Path | None = None) -> Path:
    """Create ``~/.georag/config.yaml`` with defaults if it does not exist.

    Creates parent directory with mode 0o700 and the config file with
    mode 0o600 (owner-readable only).
    """
    target = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    if not target.exists():
        content = (
            "# GeoRAG global configuration: model defaults only.\n"
            "# NEVER store API keys here. Use environment variables:\n"
            "#   export OPENAI_API_KEY=sk-...\n"
            "\n"
            "embedding:\n"
            f"  model: {DEFAULT_MODEL}\n"
            f"  dimensions: {DEFAULT_DIMENSIONS}\n"
        )
        target.write_text(content, encoding="utf-8")
        target.chmod(0o600)
        logging.getLogger(__name__).info("Created global config %s", target)

    return target

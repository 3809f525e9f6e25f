"""Index integrity: published state, hash recomputation and verification."""

from __future__ import annotations

import logging

from georag.geo.adapter import GeometryAdapter
from georag.index.generations import GenerationRegistry
from georag.index.hashing import hash_namespace
from georag.models import IndexState, VerifyReport, Workspace
from georag.stores import StoreBundle

logger = logging.getLogger(__name__)


class IndexIntegrity:
    """Read-only checks against a workspace's current generation.

    The hash is recomputed from the stores (not from the in-memory spatial
    index), using the stored state's embedder identifier and the workspace's
    *current* configuration, so a configuration migration shows up as a
    mismatch until the workspace is rebuilt.
    """

    def __init__(self, stores: StoreBundle, adapter: GeometryAdapter, registry: GenerationRegistry) -> None:
        self._stores = stores
        self._adapter = adapter
        self._registry = registry

    def get_index_state(self, workspace: Workspace) -> IndexState:
        """Raises IndexNotBuilt if the workspace has no published generation."""
        with self._registry.lease(workspace.id) as generation:
            return generation.state

    def compute_index_hash(self, workspace: Workspace) -> str:
        with self._registry.lease(workspace.id) as generation:
            return hash_namespace(
                generation.namespace,
                self._stores.spatial,
                self._stores.vectors,
                self._adapter,
                generation.state.embedder,
                workspace.config.fingerprint(),
            )

    def verify(self, workspace: Workspace) -> VerifyReport:
        with self._registry.lease(workspace.id) as generation:
            stored = generation.state.hash
            computed = hash_namespace(
                generation.namespace,
                self._stores.spatial,
                self._stores.vectors,
                self._adapter,
                generation.state.embedder,
                workspace.config.fingerprint(),
            )
        matches = stored == computed
        if matches:
            logger.info("Index of workspace %s verified (hash %s)", workspace.name, stored[:12])
        else:
            logger.warning(
                "Index of workspace %s does not verify: stored %s, computed %s",
                workspace.name,
                stored[:12],
                computed[:12],
            )
        return VerifyReport(stored_hash=stored, computed_hash=computed, matches=matches)

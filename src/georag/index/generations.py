"""Index generations: the published-pointer swap, reader leases and build locks.

A workspace has at most one *current* generation. Readers lease it for the
duration of one query or integrity check; builds write a fresh namespace and
publish it with a single pointer swap. A superseded generation is retired and
its store namespace purged once its last lease is released.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator

from georag.errors import BuildInProgress, IndexNotBuilt, StoreUnavailable
from georag.geo.adapter import GeometryAdapter
from georag.geo.spatial_index import SpatialIndex
from georag.models import IndexState, WorkspaceConfig
from georag.stores import StoreBundle

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Generation:
    """One immutable, published index snapshot.

    Attributes:
        workspace_id: Owning workspace.
        number: Monotonic generation number.
        namespace: Store namespace holding the generation's entries.
        state: The published IndexState.
        spatial_index: STR-tree over the generation's geometries.
        crs: CRS the generation's geometries are stored in.
        leases: Active readers (guarded by the registry lock).
        retired: Set once a newer generation has been published.
    """

    workspace_id: str
    number: int
    namespace: str
    state: IndexState
    spatial_index: SpatialIndex
    crs: int = 4326
    leases: int = 0
    retired: bool = False


class GenerationRegistry:
    """Process-wide registry of current generations, one per workspace.

    Args:
        loader: Returns the persisted current generation of a workspace (or
            None); called once per workspace, outside the registry lock.
        purge: Deletes a retired generation's namespace from the stores.
    """

    def __init__(
        self,
        loader: Callable[[str], Generation | None],
        purge: Callable[[str], None],
    ) -> None:
        self._loader = loader
        self._purge = purge
        self._lock = threading.Lock()
        self._current: dict[str, Generation] = {}
        self._loaded: set[str] = set()
        self._build_locks: dict[str, threading.Lock] = {}
        self._counters: dict[str, int] = {}

    def current(self, workspace_id: str) -> Generation | None:
        with self._lock:
            if workspace_id in self._loaded:
                return self._current.get(workspace_id)
        loaded = self._loader(workspace_id)
        with self._lock:
            self._loaded.add(workspace_id)
            # A publish may have happened while the loader ran; it wins.
            if loaded is not None and workspace_id not in self._current:
                self._current[workspace_id] = loaded
            return self._current.get(workspace_id)

    @contextmanager
    def lease(self, workspace_id: str) -> Iterator[Generation]:
        """Pin the current generation for the duration of the block.

        Raises:
            IndexNotBuilt: If the workspace has never been built.
        """
        self.current(workspace_id)
        with self._lock:
            generation = self._current.get(workspace_id)
            if generation is None:
                raise IndexNotBuilt(workspace_id)
            generation.leases += 1
        try:
            yield generation
        finally:
            self._release(generation)

    def _release(self, generation: Generation) -> None:
        with self._lock:
            generation.leases -= 1
            purge = generation.retired and generation.leases == 0
        if purge:
            self._purge_retired(generation)

    def publish(self, generation: Generation) -> None:
        """Atomically make *generation* current and retire its predecessor."""
        with self._lock:
            previous = self._current.get(generation.workspace_id)
            self._current[generation.workspace_id] = generation
            self._loaded.add(generation.workspace_id)
            purge = False
            if previous is not None and previous is not generation:
                previous.retired = True
                purge = previous.leases == 0
        logger.info(
            "Published generation %d for workspace %s (hash %s)",
            generation.number,
            generation.workspace_id,
            generation.state.hash[:12],
        )
        if purge and previous is not None:
            self._purge_retired(previous)

    def _purge_retired(self, generation: Generation) -> None:
        try:
            self._purge(generation.namespace)
        except StoreUnavailable:
            logger.warning("Failed to purge retired namespace %s", generation.namespace, exc_info=True)
        else:
            logger.debug("Purged retired namespace %s", generation.namespace)

    def allocate(self, workspace_id: str, persisted_latest: int = 0) -> int:
        """Reserve the next generation number for *workspace_id*."""
        with self._lock:
            current = self._current.get(workspace_id)
            number = max(
                self._counters.get(workspace_id, 0),
                persisted_latest,
                current.number if current else 0,
            ) + 1
            self._counters[workspace_id] = number
            return number

    @contextmanager
    def build_lock(self, workspace_id: str) -> Iterator[None]:
        """Exclusive per-workspace build lock; never waits.

        Raises:
            BuildInProgress: If another build holds the lock.
        """
        with self._lock:
            lock = self._build_locks.setdefault(workspace_id, threading.Lock())
        if not lock.acquire(blocking=False):
            raise BuildInProgress(workspace_id)
        try:
            yield
        finally:
            lock.release()


class StoreGenerationLoader:
    """Rehydrates a workspace's persisted current generation from the stores."""

    def __init__(self, stores: StoreBundle, adapter: GeometryAdapter) -> None:
        self._stores = stores
        self._adapter = adapter

    def __call__(self, workspace_id: str) -> Generation | None:
        found = self._stores.workspaces.current_generation(workspace_id)
        if found is None:
            return None
        namespace, state = found
        crs = WorkspaceConfig.from_fingerprint(state.config_fingerprint).crs
        index = SpatialIndex.build(self._stores.spatial.spatial_query(namespace), self._adapter, crs)
        logger.debug("Loaded generation %d for workspace %s", state.generation, workspace_id)
        return Generation(
            workspace_id=workspace_id,
            number=state.generation,
            namespace=namespace,
            state=state,
            spatial_index=index,
            crs=crs,
        )

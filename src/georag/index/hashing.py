"""Canonical encoding and content hash of an index generation.

The hash is SHA-256 over, in ascending chunk-key order, one record per chunk:

    len(key) key  len(wkb) wkb  len(vec) vec

where every length is a 4-byte little-endian unsigned int, ``wkb`` is the
2D little-endian WKB of the normalized geometry and ``vec`` the embedding as
float32 little-endian. The embedder identifier and the workspace
configuration fingerprint are appended last, each length-prefixed.

Builder and integrity check both call ``hash_namespace`` so they share one
procedure over the persisted store contents.
"""

from __future__ import annotations

import hashlib
import struct
from typing import Iterable, Sequence

import numpy as np

from georag.geo.adapter import GeometryAdapter
from georag.stores.ports import SpatialStore, VectorStore

_DOMAIN = b"georag-index-v1"


def vector_bytes(vector: Sequence[float]) -> bytes:
    return np.asarray(vector, dtype="<f4").tobytes()


def _field(data: bytes) -> bytes:
    return struct.pack("<I", len(data)) + data


def encode_entry(key: str, geometry_wkb: bytes, embedding: bytes) -> bytes:
    return _field(key.encode("utf-8")) + _field(geometry_wkb) + _field(embedding)


def content_hash(
    entries: Iterable[tuple[str, bytes, bytes]],
    embedder: str,
    config_fingerprint: str,
) -> str:
    """Hash ``(chunk key, geometry wkb, embedding bytes)`` entries in key order."""
    digest = hashlib.sha256(_DOMAIN)
    for key, wkb, vec in sorted(entries, key=lambda e: e[0]):
        digest.update(encode_entry(key, wkb, vec))
    digest.update(_field(embedder.encode("utf-8")))
    digest.update(_field(config_fingerprint.encode("utf-8")))
    return digest.hexdigest()


def hash_namespace(
    namespace: str,
    spatial_store: SpatialStore,
    vector_store: VectorStore,
    adapter: GeometryAdapter,
    embedder: str,
    config_fingerprint: str,
) -> str:
    """Recompute the content hash from what the stores hold for *namespace*.

    A key present in only one store contributes empty bytes for the missing
    side, so drift between stores changes the hash instead of raising.
    """
    geometries = {g.chunk_key: g.geometry for g in spatial_store.spatial_query(namespace)}
    vectors = {e.chunk_key: e.vector for e in vector_store.get_embeddings(namespace)}
    entries = []
    for key in set(geometries) | set(vectors):
        wkb = adapter.canonical_bytes(geometries[key]) if key in geometries else b""
        vec = vector_bytes(vectors[key]) if key in vectors else b""
        entries.append((key, wkb, vec))
    return content_hash(entries, embedder, config_fingerprint)

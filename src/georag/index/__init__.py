"""GeoRAG index layer: generations, hashing, builder and integrity."""

from georag.index.builder import IndexBuilder
from georag.index.generations import Generation, GenerationRegistry, StoreGenerationLoader
from georag.index.hashing import content_hash, hash_namespace
from georag.index.integrity import IndexIntegrity

__all__ = [
    "Generation",
    "GenerationRegistry",
    "IndexBuilder",
    "IndexIntegrity",
    "StoreGenerationLoader",
    "content_hash",
    "hash_namespace",
]

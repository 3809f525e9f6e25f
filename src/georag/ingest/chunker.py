"""Chunkers: split one geocoded document into ordered chunk drafts."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from georag.models import RawDocument


@dataclass
class ChunkDraft:
    """A chunk before it is keyed, embedded and persisted.

    Attributes:
        text: Chunk text (stripped, non-empty).
        offset: Character offset of the window in the document text.
        geometry: Geometry of the chunk; None inherits the document geometry.
    """

    text: str
    offset: int = 0
    geometry: dict[str, Any] | None = None


class BaseChunker(ABC):
    """Abstract base for all chunkers.

    Subclasses implement ``split()`` and may use ``_split_fixed_window()``.

    Token counting uses a 4-chars-per-token approximation; no external
    tokenizer dependency is required.
    """

    def __init__(self, chunk_size: int = 512, overlap: float = 0.10) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        if not 0.0 <= overlap < 1.0:
            raise ValueError("overlap must be in [0.0, 1.0)")
        self.chunk_size = chunk_size
        self.overlap = overlap

    @abstractmethod
    def split(self, document: RawDocument) -> list[ChunkDraft]:
        """Split *document* into ordered drafts. Empty text yields no drafts."""

    @staticmethod
    def count_tokens(text: str) -> int:
        """Approximate token count: 4 characters ≈ 1 token."""
        return max(1, len(text) // 4)

    def _split_fixed_window(self, text: str) -> list[tuple[int, str]]:
        """Split *text* into ``(offset, segment)`` windows with overlap.

        Window size = ``self.chunk_size * 4`` characters.
        Overlap     = ``self.overlap`` fraction of window size.
        Segments are stripped; empty segments are omitted.
        """
        if not text.strip():
            return []

        char_size = self.chunk_size * 4
        overlap_chars = int(char_size * self.overlap)
        step = max(1, char_size - overlap_chars)

        segments: list[tuple[int, str]] = []
        pos = 0
        length = len(text)

        while pos < length:
            end = min(pos + char_size, length)
            segment = text[pos:end].strip()
            if segment:
                segments.append((pos, segment))
            if end >= length:
                break
            pos += step

        return segments


class FixedWindowChunker(BaseChunker):
    """Fixed-size windows with overlap; every chunk inherits the document geometry.

    Default: 512 tokens / 10 % overlap.
    """

    def split(self, document: RawDocument) -> list[ChunkDraft]:
        return [ChunkDraft(text=segment, offset=pos) for pos, segment in self._split_fixed_window(document.text)]

"""Embedder port and its variants.

``LiteLLMEmbedder`` routes through ``litellm.embedding()`` with LiteLLM's
built-in retry; ``HashingEmbedder`` is a deterministic offline feature-hashing
embedder for tests, demos and air-gapped builds.
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
from abc import ABC, abstractmethod
from typing import Sequence

import litellm
import numpy as np

from georag.errors import EmbedderUnavailable

logger = logging.getLogger(__name__)

litellm.suppress_debug_info = True

DEFAULT_MODEL = "openai/text-embedding-3-small"
DEFAULT_DIMENSIONS = 1536

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)

# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "ollama": None,  # Local, no key required
}


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    env_var = _PROVIDER_ENV.get(provider)
    if env_var is None:
        return
    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


class Embedder(ABC):
    """Maps texts to fixed-dimension vectors."""

    @abstractmethod
    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        """Return one vector per input text, in input order."""

    @abstractmethod
    def dimensions(self) -> int:
        """Declared output dimension."""

    @abstractmethod
    def model_name(self) -> str:
        """Identifier recorded in IndexState and folded into the index hash."""


class LiteLLMEmbedder(Embedder):
    """Embedder backed by any LiteLLM embedding provider.

    Args:
        model: LiteLLM model string in 'provider/model' format.
        dimensions: Expected vector dimension for the model.
        num_retries: Retries on transient provider errors.
    """

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        dimensions: int = DEFAULT_DIMENSIONS,
        num_retries: int = 3,
    ) -> None:
        if dimensions < 1:
            raise ValueError("dimensions must be >= 1")
        self._model = model
        self._dimensions = dimensions
        self._num_retries = num_retries

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        try:
            response = litellm.embedding(
                model=self._model,
                input=list(texts),
                num_retries=self._num_retries,
            )
        except Exception as exc:
            raise EmbedderUnavailable(f"Embedding call to '{self._model}' failed: {exc}") from exc

        data = list(response.data)
        if len(data) != len(texts):
            raise EmbedderUnavailable(
                f"Embedding model '{self._model}' returned {len(data)} vectors for {len(texts)} texts"
            )
        return [list(item["embedding"]) for item in data]

    def dimensions(self) -> int:
        return self._dimensions

    def model_name(self) -> str:
        return self._model


class HashingEmbedder(Embedder):
    """Deterministic signed feature-hashing embedder (bag of words, L2-normalized).

    Texts sharing vocabulary get positive cosine similarity, so it is usable for
    offline retrieval without any model download.
    """

    def __init__(self, dimensions: int = 256) -> None:
        if dimensions < 1:
            raise ValueError("dimensions must be >= 1")
        self._dimensions = dimensions

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        return [self._embed_one(t) for t in texts]

    def _embed_one(self, text: str) -> list[float]:
        vector = np.zeros(self._dimensions, dtype=np.float64)
        tokens = _TOKEN_RE.findall(text.lower()) or [text]
        for token in tokens:
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            bucket = int.from_bytes(digest[:8], "little") % self._dimensions
            sign = 1.0 if digest[8] & 1 else -1.0
            vector[bucket] += sign
        norm = float(np.linalg.norm(vector))
        if norm > 0:
            vector /= norm
        return vector.tolist()

    def dimensions(self) -> int:
        return self._dimensions

    def model_name(self) -> str:
        return f"hashing-{self._dimensions}"


def create_embedder(model: str, dimensions: int) -> Embedder:
    """Return the embedder for a configured model string.

    ``"hashing"`` selects the offline HashingEmbedder; anything else is treated
    as a LiteLLM model string.
    """
    if model == "hashing" or model.startswith("hashing-"):
        return HashingEmbedder(dimensions)
    return LiteLLMEmbedder(model=model, dimensions=dimensions)

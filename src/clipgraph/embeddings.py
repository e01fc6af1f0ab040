"""Embedding providers: turn clipped text into a fixed-length vector.

The provider is an external collaborator. Any failure it has is reported
as UpstreamProviderError; the clip workflow turns that into "no embedding".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from .constants import DEFAULT_EMBEDDING_MODEL
from .errors import UpstreamProviderError

logger = logging.getLogger(__name__)


class Embedder(Protocol):
    """Anything that can embed a piece of text."""

    def embed(self, text: str) -> list[float]: ...


class EmbedderStatus(Enum):
    """Status of the embedding provider."""

    READY = "ready"
    DEGRADED = "degraded"  # Not loaded yet, or last encode failed
    UNAVAILABLE = "unavailable"  # Model could not be loaded


@dataclass
class EmbedderHealth:
    """Health status of the embedding provider."""

    status: EmbedderStatus
    error: str | None = None
    model: str | None = None
    dimension: int | None = None


class SentenceTransformerEmbedder:
    """Local embeddings via sentence-transformers.

    The model loads lazily on the first embed() call to avoid the multi-second
    cold start when embeddings are never needed.
    """

    def __init__(self, model_name: str = DEFAULT_EMBEDDING_MODEL):
        self._model_name = model_name
        self._model = None
        self._dims: int | None = None
        self.health = EmbedderHealth(
            status=EmbedderStatus.DEGRADED,
            error="Embedding model loads on first use",
        )

    def _load_model(self):
        if self._model is not None:
            return self._model
        if self.health.status == EmbedderStatus.UNAVAILABLE:
            raise UpstreamProviderError(self.health.error or "Embedding model unavailable")

        try:
            from sentence_transformers import SentenceTransformer

            self._model = SentenceTransformer(self._model_name)
            self._dims = self._model.get_sentence_embedding_dimension()
        except (ImportError, OSError, RuntimeError, ValueError) as e:
            self.health = EmbedderHealth(
                status=EmbedderStatus.UNAVAILABLE,
                error=f"Embedding model failed: {e}",
            )
            logger.warning(f"Embedding model unavailable: {e}")
            raise UpstreamProviderError(f"Embedding model failed: {e}") from e

        self.health = EmbedderHealth(
            status=EmbedderStatus.READY,
            model=self._model_name,
            dimension=self._dims,
        )
        return self._model

    @property
    def dims(self) -> int | None:
        return self._dims

    def embed(self, text: str) -> list[float]:
        """Embed text.

        Raises:
            UpstreamProviderError: If the model cannot load or encoding fails.
        """
        model = self._load_model()
        try:
            return [float(x) for x in model.encode(text)]
        except (RuntimeError, ValueError, TypeError) as e:
            self.health = EmbedderHealth(
                status=EmbedderStatus.DEGRADED,
                error=f"Encoding failed: {e}",
                model=self._model_name,
                dimension=self._dims,
            )
            raise UpstreamProviderError(f"Encoding failed: {e}") from e

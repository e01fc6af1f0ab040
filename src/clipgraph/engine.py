"""Clip graph - orchestrates store, embeddings, maintenance and queries.

This is the caller-facing workflow. Build one ClipGraph per process and
hand it to whatever serves requests (CLI, MCP server, web handlers).
"""

from __future__ import annotations

import logging

from .config import Settings
from .constants import DEFAULT_PROVENANCE, DEFAULT_SIMILARITY_THRESHOLD
from .embeddings import Embedder, SentenceTransformerEmbedder
from .errors import NotFoundError, UpstreamProviderError, ValidationError
from .maintenance import connect_item
from .models import AnalysisReport, ClipResult, GraphData, GraphEdge, MemoryItem
from .query import GraphQueries
from .similarity import validate_threshold
from .storage import SQLiteBackend
from .store import MemoryStore

logger = logging.getLogger(__name__)


class ClipGraph:
    """Main entry point for memory graph operations.

    Thread-safety: designed for single-process, run-to-completion use. No
    per-owner locking is done, so concurrent clips for one owner may miss
    the edge between them (see maintenance.connect_item).
    """

    def __init__(
        self,
        store: MemoryStore,
        embedder: Embedder | None = None,
        threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    ):
        self.store = store
        self.embedder = embedder
        self.threshold = validate_threshold(threshold)
        self._queries = GraphQueries(store)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ClipGraph":
        """Open the SQLite-backed graph described by settings."""
        backend = SQLiteBackend(settings.db_path)
        embedder = (
            SentenceTransformerEmbedder(settings.embedding_model)
            if settings.embeddings_enabled
            else None
        )
        return cls(MemoryStore(backend), embedder=embedder, threshold=settings.threshold)

    def _threshold(self, threshold: float | None) -> float:
        return self.threshold if threshold is None else validate_threshold(threshold)

    def _embed(self, text: str) -> list[float] | None:
        """Ask the provider for an embedding; None if there is none to be had."""
        if self.embedder is None:
            return None
        try:
            return self.embedder.embed(text)
        except UpstreamProviderError as e:
            logger.warning(f"Embedding failed, storing clip without one: {e}")
            return None

    # --- Mutations ---

    def clip(
        self,
        owner_id: str,
        source_doc_id: str,
        text: str,
        provenance: str = DEFAULT_PROVENANCE,
        embedding: list[float] | None = None,
        title: str | None = None,
        threshold: float | None = None,
    ) -> ClipResult:
        """Store clipped text and link it to similar clips.

        Repeating a clip (same text up to case and whitespace, same owner and
        document) returns the existing item with deduplicated=True and
        creates nothing.

        Raises:
            ValidationError: Empty text, malformed embedding or bad threshold.
            PersistenceError: If the item or an edge cannot be written.
        """
        threshold = self._threshold(threshold)
        if not text or not text.strip():
            raise ValidationError("text must not be empty")

        existing = self.store.find_duplicate(owner_id, source_doc_id, text)
        if existing is not None:
            logger.info(f"Duplicate clip on {source_doc_id}, returning {existing.id}")
            return ClipResult(item=existing, deduplicated=True)

        if embedding is None:
            embedding = self._embed(text)

        item = self.store.create_item(
            owner_id=owner_id,
            source_doc_id=source_doc_id,
            text=text,
            provenance=provenance,
            embedding=embedding,
            title=title,
        )
        edges = connect_item(self.store, item, threshold) if item.has_embedding else []
        return ClipResult(item=item, new_edges=edges)

    def delete(self, item_id: str) -> bool:
        """Delete an item and its edges.

        Raises:
            NotFoundError: If the item does not exist.
        """
        if not self.store.delete_item(item_id):
            raise NotFoundError("Item", item_id)
        return True

    def attach_note(self, item_id: str, note: str | None) -> MemoryItem:
        return self.store.attach_note(item_id, note)

    def backfill_embedding(
        self,
        item_id: str,
        embedding: list[float] | None = None,
        threshold: float | None = None,
    ) -> list[GraphEdge]:
        """Give an item a (new) embedding and link it.

        Unlike clip(), a provider failure here is raised: the caller asked
        for the embedding explicitly.

        Raises:
            NotFoundError: If the item does not exist.
            UpstreamProviderError: If no embedding was given and the provider fails.
        """
        threshold = self._threshold(threshold)
        item = self.store.get_item(item_id)
        if embedding is None:
            if self.embedder is None:
                raise UpstreamProviderError("No embedding provider configured")
            embedding = self.embedder.embed(item.text)
        item = self.store.set_embedding(item_id, embedding)
        return connect_item(self.store, item, threshold)

    def recalculate(self, owner_id: str, threshold: float | None = None) -> list[GraphEdge]:
        """Rebuild the owner's edges at a new threshold."""
        return self._queries.recalculate(owner_id, self._threshold(threshold))

    # --- Queries ---

    def get_item(self, item_id: str) -> MemoryItem:
        return self.store.get_item(item_id)

    def list_items(self, owner_id: str) -> list[MemoryItem]:
        return self._queries.list_items(owner_id)

    def graph(self, owner_id: str) -> GraphData:
        return self._queries.get_graph(owner_id)

    def analyze(self, owner_id: str, threshold: float | None = None) -> AnalysisReport:
        return self._queries.analyze_all_pairs(owner_id, self._threshold(threshold))

    def stats(self) -> dict:
        items, edges = self.store.counts()
        return {
            "items": items,
            "edges": edges,
            "threshold": self.threshold,
            "embeddings": self.embedder is not None,
        }

    def close(self) -> None:
        self.store.close()

"""Read views and full recomputes over an owner's memory graph.

analyze_all_pairs() and recalculate() are O(n^2) in the owner's embedded
items; they are diagnostics and explicit user actions, never run on insert.
"""

from __future__ import annotations

import logging
from itertools import combinations

from .errors import DimensionMismatch
from .models import AnalysisReport, GraphData, GraphEdge, MemoryItem, PairAnalysis
from .similarity import cosine_similarity, exceeds_threshold, validate_threshold
from .store import MemoryStore

logger = logging.getLogger(__name__)


class GraphQueries:
    """Projection layer over a MemoryStore."""

    def __init__(self, store: MemoryStore):
        self._store = store

    def get_graph(self, owner_id: str) -> GraphData:
        return self._store.get_graph(owner_id)

    def list_items(self, owner_id: str) -> list[MemoryItem]:
        return self._store.list_items(owner_id)

    def _embedded_pairs(self, owner_id: str):
        """Yield (a, b, similarity) for every pair of embedded items, oldest first."""
        embedded = [
            i for i in self._store.items_oldest_first(owner_id)
            if i.embedding is not None
        ]
        for a, b in combinations(embedded, 2):
            try:
                yield a, b, cosine_similarity(a.embedding, b.embedding)
            except DimensionMismatch as e:
                logger.warning(f"Skipping pair {a.id}/{b.id}: {e}")

    def analyze_all_pairs(self, owner_id: str, threshold: float) -> AnalysisReport:
        """Similarity of every embedded pair, highest first.

        Read-only: stored edges are not touched.
        """
        threshold = validate_threshold(threshold)
        pairs = [
            PairAnalysis(
                source_id=a.id,
                target_id=b.id,
                source_text=a.text,
                target_text=b.text,
                similarity=sim,
                connected=exceeds_threshold(sim, threshold),
                threshold=threshold,
            )
            for a, b, sim in self._embedded_pairs(owner_id)
        ]
        report = AnalysisReport.from_pairs(pairs, threshold)
        logger.info(
            f"Analyzed {report.total_pairs} pairs for {owner_id}: "
            f"{report.connected_pairs} above {threshold}"
        )
        return report

    def recalculate(self, owner_id: str, threshold: float) -> list[GraphEdge]:
        """Rebuild the owner's edges from scratch at a new threshold.

        The old edge set is replaced atomically.
        """
        threshold = validate_threshold(threshold)
        edges = [
            GraphEdge.between(a.id, b.id, sim)
            for a, b, sim in self._embedded_pairs(owner_id)
            if exceeds_threshold(sim, threshold)
        ]
        self._store.replace_owner_edges(owner_id, edges)
        logger.info(f"Recalculated {owner_id} at {threshold}: {len(edges)} edge(s)")
        return edges

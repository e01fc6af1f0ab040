"""Incremental edge maintenance for newly inserted items.

One pass over the owner's existing items per insert: O(n) similarity
computations against the owner's item count. Fine for a personal clip
collection; there is no index, so very large collections will slow down
linearly.

Known gap: two inserts for the same owner running concurrently can each
read a snapshot without the other and miss the edge between them. A later
recalculate() repairs it.
"""

from __future__ import annotations

import logging
from typing import Iterable

from .constants import DEFAULT_SIMILARITY_THRESHOLD
from .errors import DimensionMismatch
from .models import GraphEdge, MemoryItem
from .similarity import cosine_similarity, exceeds_threshold, validate_threshold
from .store import MemoryStore

logger = logging.getLogger(__name__)


def connect_item(
    store: MemoryStore,
    item: MemoryItem,
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    candidates: Iterable[MemoryItem] | None = None,
) -> list[GraphEdge]:
    """Create or refresh edges between item and similar existing items.

    Args:
        store: Store holding the item and its neighbours
        item: Newly created (or re-embedded) item
        threshold: Edges form when similarity is strictly above this
        candidates: Snapshot of existing items to compare against. Defaults
            to the owner's current items, oldest first.

    Returns:
        Upserted edges in candidate order. Empty if item has no embedding.

    Raises:
        ValidationError: If threshold is outside (0, 1).
    """
    threshold = validate_threshold(threshold)
    if item.embedding is None:
        logger.debug(f"Item {item.id} has no embedding, skipping maintenance")
        return []

    if candidates is None:
        candidates = store.items_oldest_first(item.owner_id)

    edges: list[GraphEdge] = []
    for other in candidates:
        if other.id == item.id or other.embedding is None:
            continue
        try:
            similarity = cosine_similarity(item.embedding, other.embedding)
        except DimensionMismatch as e:
            logger.warning(f"Skipping {other.id} while linking {item.id}: {e}")
            continue

        logger.debug(f"{item.id} ~ {other.id}: {similarity:.4f}")
        if exceeds_threshold(similarity, threshold):
            edges.append(store.upsert_edge(item.id, other.id, similarity))

    logger.info(
        f"Linked item {item.id}: {len(edges)} edge(s) above threshold {threshold}"
    )
    return edges

"""Memory store: owner-scoped CRUD over items and similarity edges.

Owns all mutation logic and the failure policy: read failures degrade to
empty results with a warning so callers stay usable, write failures
propagate as PersistenceError.
"""

from __future__ import annotations

import logging

from pydantic import ValidationError as PydanticValidationError

from .constants import DEFAULT_PROVENANCE
from .errors import NotFoundError, PersistenceError, ValidationError
from .models import GraphData, GraphEdge, MemoryItem, normalize_text
from .storage import Backend

logger = logging.getLogger(__name__)


def _validation_message(error: PydanticValidationError) -> str:
    parts = []
    for err in error.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "value"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


class MemoryStore:
    """Durable record of memory items and graph edges.

    Creating an item never triggers graph maintenance on its own; see
    maintenance.connect_item().
    """

    def __init__(self, backend: Backend):
        self.backend = backend

    # --- Items ---

    def create_item(
        self,
        owner_id: str,
        source_doc_id: str,
        text: str,
        provenance: str = DEFAULT_PROVENANCE,
        embedding: list[float] | None = None,
        title: str | None = None,
    ) -> MemoryItem:
        """Persist a new item with a fresh ID and creation timestamp.

        Raises:
            ValidationError: If text is empty or the embedding is malformed.
            PersistenceError: If the write fails.
        """
        try:
            item = MemoryItem(
                owner_id=owner_id,
                source_doc_id=source_doc_id,
                text=text,
                provenance=provenance,
                embedding=embedding,
                title=title,
            )
        except PydanticValidationError as e:
            raise ValidationError(_validation_message(e)) from e

        self.backend.insert_item(item)
        logger.info(
            f"Created item {item.id} for {owner_id} "
            f"(doc={source_doc_id}, embedding={item.has_embedding})"
        )
        return item

    def get_item(self, item_id: str) -> MemoryItem:
        """Fetch one item.

        Raises:
            NotFoundError: If no item has this ID.
        """
        item = self.backend.get_item(item_id)
        if item is None:
            raise NotFoundError("Item", item_id)
        return item

    def list_items(self, owner_id: str) -> list[MemoryItem]:
        """Owner's items, most recently created first."""
        return list(reversed(self._read_items(owner_id)))

    def items_oldest_first(self, owner_id: str) -> list[MemoryItem]:
        return self._read_items(owner_id)

    def _read_items(self, owner_id: str) -> list[MemoryItem]:
        try:
            return self.backend.read_items(owner_id)
        except PersistenceError as e:
            logger.warning(f"Could not read items for {owner_id}, returning none: {e}")
            return []

    def find_duplicate(
        self, owner_id: str, source_doc_id: str, text: str
    ) -> MemoryItem | None:
        """Existing item with the same normalized text on the same document."""
        wanted = normalize_text(text)
        for item in self._read_items(owner_id):
            if item.source_doc_id == source_doc_id and normalize_text(item.text) == wanted:
                return item
        return None

    def attach_note(self, item_id: str, note: str | None) -> MemoryItem:
        """Set or clear the free-form note on an item."""
        item = self.get_item(item_id)
        if note is not None:
            note = note.strip() or None
        item.note = note
        self.backend.update_item(item)
        logger.info(f"Updated note on item {item_id}")
        return item

    def set_embedding(self, item_id: str, embedding: list[float]) -> MemoryItem:
        """Replace an item's embedding (e.g. backfill after a provider failure).

        Every edge touching the item is dropped in the same write, since its
        weight described the old embedding. Run maintenance afterwards to
        relink the item.
        """
        item = self.get_item(item_id)
        try:
            updated = MemoryItem.model_validate(
                {**item.model_dump(), "embedding": embedding}
            )
        except PydanticValidationError as e:
            raise ValidationError(_validation_message(e)) from e
        self.backend.update_embedding(updated)
        logger.info(
            f"Stored {len(embedding)}-dim embedding on item {item_id}, cleared its edges"
        )
        return updated

    def delete_item(self, item_id: str) -> bool:
        """Remove an item and, atomically, every edge touching it.

        Returns False if the item does not exist.
        """
        deleted = self.backend.delete_item(item_id)
        if deleted:
            logger.info(f"Deleted item {item_id} and its edges")
        else:
            logger.debug(f"Delete requested for unknown item {item_id}")
        return deleted

    # --- Edges ---

    def upsert_edge(self, source_id: str, target_id: str, weight: float) -> GraphEdge:
        """Insert the edge for this pair or refresh its weight and timestamp.

        Idempotent: the pair-derived ID guarantees one edge per unordered pair.
        A refreshed edge keeps the orientation it was first stored with, and
        the edge is returned as stored.

        Raises:
            ValidationError: On a self-loop or a weight outside [-1, 1].
            NotFoundError: If either endpoint does not exist.
        """
        if source_id == target_id:
            raise ValidationError(f"Edge endpoints must differ: {source_id}")
        for endpoint in (source_id, target_id):
            if self.backend.get_item(endpoint) is None:
                raise NotFoundError("Item", endpoint)

        try:
            edge = GraphEdge.between(source_id, target_id, weight)
        except PydanticValidationError as e:
            raise ValidationError(_validation_message(e)) from e

        stored = self.backend.upsert_edge(edge)
        logger.debug(f"Upserted edge {source_id} <-> {target_id} weight={weight:.4f}")
        return stored

    def replace_owner_edges(self, owner_id: str, edges: list[GraphEdge]) -> None:
        """Atomically swap the owner's whole edge set."""
        self.backend.replace_owner_edges(owner_id, edges)

    # --- Projection ---

    def get_graph(self, owner_id: str) -> GraphData:
        """Owner's nodes plus the edges whose both endpoints are among them.

        Edges to deleted or foreign items are filtered here, not cleaned eagerly.
        """
        nodes = self.list_items(owner_id)
        node_ids = {n.id for n in nodes}
        try:
            edges = self.backend.read_edges(owner_id)
        except PersistenceError as e:
            logger.warning(f"Could not read edges for {owner_id}, returning none: {e}")
            edges = []
        return GraphData(
            nodes=nodes,
            edges=[
                e for e in edges
                if e.source_id in node_ids and e.target_id in node_ids
            ],
        )

    def counts(self) -> tuple[int, int]:
        """Total (items, edges) in the store, or (0, 0) if unreadable."""
        try:
            return self.backend.counts()
        except PersistenceError as e:
            logger.warning(f"Could not count store contents: {e}")
            return 0, 0

    def close(self) -> None:
        self.backend.close()


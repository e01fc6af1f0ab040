"""Core data models for the memory graph.

Uses Pydantic v2 for validation, ULID for sortable unique IDs.
"""

import hashlib
import math
from datetime import datetime, timezone

from pydantic import BaseModel, Field, field_validator
from ulid import ULID

from .constants import DEFAULT_PROVENANCE, MAX_TITLE_LENGTH, TEXT_PREVIEW_CHARS


def generate_id() -> str:
    """Generate a ULID (sortable, unique identifier)."""
    return str(ULID())


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(timezone.utc)


def edge_id(a: str, b: str) -> str:
    """Canonical edge ID for the unordered pair (a, b).

    Uses SHA-256 over the sorted pair so the result is stable across
    processes and independent of argument order.
    """
    low, high = sorted((a, b))
    digest = hashlib.sha256(f"{low}\x1f{high}".encode("utf-8")).hexdigest()
    return f"edge-{digest[:32]}"


def normalize_text(text: str) -> str:
    """Normalize clip text for duplicate detection.

    Trims, collapses internal whitespace and casefolds.
    """
    return " ".join(text.split()).casefold()


def preview(text: str, width: int = TEXT_PREVIEW_CHARS) -> str:
    """Single-line preview of text, cut to width with a trailing ellipsis."""
    text = " ".join(text.split())
    if len(text) <= width:
        return text
    return text[: width - 3] + "..."


class MemoryItem(BaseModel):
    """A node in the memory graph: one clipped piece of text."""

    id: str = Field(default_factory=generate_id)
    owner_id: str
    source_doc_id: str
    title: str | None = Field(default=None, max_length=MAX_TITLE_LENGTH)
    text: str
    provenance: str = DEFAULT_PROVENANCE  # how it was captured: "clip", "extract", ...
    embedding: list[float] | None = None
    note: str | None = None
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("text")
    @classmethod
    def _text_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("text must not be empty")
        return value

    @field_validator("owner_id", "source_doc_id")
    @classmethod
    def _ident_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("identifier must not be empty")
        return value

    @field_validator("embedding")
    @classmethod
    def _embedding_finite(cls, value: list[float] | None) -> list[float] | None:
        if value is None:
            return None
        if not value:
            raise ValueError("embedding must not be empty")
        if not all(math.isfinite(x) for x in value):
            raise ValueError("embedding must contain only finite numbers")
        return value

    @property
    def has_embedding(self) -> bool:
        return self.embedding is not None

    def to_summary(self) -> dict:
        """Return a compact summary of this item (no embedding payload)."""
        return {
            "id": self.id,
            "source_doc_id": self.source_doc_id,
            "title": self.title,
            "text": preview(self.text),
            "provenance": self.provenance,
            "has_embedding": self.has_embedding,
            "created_at": self.created_at.isoformat(),
        }


class GraphEdge(BaseModel):
    """An undirected similarity edge between two memory items.

    The ID is derived from the endpoint pair, so A-B and B-A are the same edge.
    """

    id: str
    source_id: str
    target_id: str
    weight: float = Field(ge=-1.0, le=1.0)  # cosine similarity
    updated_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def between(cls, source_id: str, target_id: str, weight: float) -> "GraphEdge":
        """Build an edge with its canonical pair ID."""
        return cls(
            id=edge_id(source_id, target_id),
            source_id=source_id,
            target_id=target_id,
            weight=weight,
        )

    def touches(self, item_id: str) -> bool:
        return item_id in (self.source_id, self.target_id)

    def other_end(self, item_id: str) -> str:
        """Return the item on the other end of this edge."""
        return self.target_id if self.source_id == item_id else self.source_id

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "source_id": self.source_id,
            "target_id": self.target_id,
            "weight": round(self.weight, 4),
        }


class GraphData(BaseModel):
    """Read projection: an owner's nodes and the edges among them."""

    nodes: list[MemoryItem] = Field(default_factory=list)
    edges: list[GraphEdge] = Field(default_factory=list)


class PairAnalysis(BaseModel):
    """Similarity of one item pair, for the all-pairs diagnostic."""

    source_id: str
    target_id: str
    source_text: str
    target_text: str
    similarity: float
    connected: bool
    threshold: float


class AnalysisReport(BaseModel):
    """All-pairs similarity report with a summary."""

    pairs: list[PairAnalysis] = Field(default_factory=list)
    threshold: float
    total_pairs: int = 0
    connected_pairs: int = 0
    highest_similarity: float = 0.0
    lowest_similarity: float = 0.0

    @classmethod
    def from_pairs(cls, pairs: list[PairAnalysis], threshold: float) -> "AnalysisReport":
        """Sort pairs by similarity (highest first) and compute the summary."""
        ordered = sorted(pairs, key=lambda p: p.similarity, reverse=True)
        return cls(
            pairs=ordered,
            threshold=threshold,
            total_pairs=len(ordered),
            connected_pairs=sum(1 for p in ordered if p.connected),
            highest_similarity=ordered[0].similarity if ordered else 0.0,
            lowest_similarity=ordered[-1].similarity if ordered else 0.0,
        )


class ClipResult(BaseModel):
    """Outcome of clipping text into the memory graph."""

    item: MemoryItem
    new_edges: list[GraphEdge] = Field(default_factory=list)
    deduplicated: bool = False

    @property
    def has_embedding(self) -> bool:
        return self.item.has_embedding

    def to_dict(self) -> dict:
        return {
            "item": self.item.model_dump(mode="json"),
            "new_edges": [e.model_dump(mode="json") for e in self.new_edges],
            "deduplicated": self.deduplicated,
            "has_embedding": self.has_embedding,
        }

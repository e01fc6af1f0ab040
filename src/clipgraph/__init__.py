"""Clipgraph - semantic memory graph of clipped text.

Public API:
- ClipGraph: caller-facing workflow (clip, delete, graph, analyze, recalculate)
- MemoryStore: owner-scoped persistence of items and edges
- cosine_similarity: the similarity engine
"""

from .engine import ClipGraph
from .errors import (
    ClipGraphError,
    DimensionMismatch,
    NotFoundError,
    PersistenceError,
    UpstreamProviderError,
    ValidationError,
)
from .models import ClipResult, GraphData, GraphEdge, MemoryItem
from .similarity import cosine_similarity
from .storage import InMemoryBackend, SQLiteBackend
from .store import MemoryStore

__all__ = [
    "ClipGraph",
    "ClipGraphError",
    "ClipResult",
    "DimensionMismatch",
    "GraphData",
    "GraphEdge",
    "InMemoryBackend",
    "MemoryItem",
    "MemoryStore",
    "NotFoundError",
    "PersistenceError",
    "SQLiteBackend",
    "UpstreamProviderError",
    "ValidationError",
    "cosine_similarity",
]

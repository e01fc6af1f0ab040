"""Test helpers shared across suites (vectors, fake embedder, failing backend)."""

import math

from clipgraph.errors import PersistenceError, UpstreamProviderError
from clipgraph.storage import InMemoryBackend


def vec_at(similarity: float) -> list[float]:
    """Unit vector whose cosine similarity with [1, 0] is exactly `similarity`."""
    return [similarity, math.sqrt(1.0 - similarity * similarity)]


BASE = [1.0, 0.0]


class FakeEmbedder:
    """Deterministic embedder: looks text up in a table, records calls."""

    def __init__(self, table: dict[str, list[float]] | None = None, fail: bool = False):
        self.table = table or {}
        self.fail = fail
        self.calls: list[str] = []

    def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail:
            raise UpstreamProviderError("provider timed out")
        if text not in self.table:
            raise UpstreamProviderError(f"no embedding for {text!r}")
        return self.table[text]


class FlakyBackend(InMemoryBackend):
    """In-memory backend whose reads or writes can be switched to fail."""

    def __init__(self):
        super().__init__()
        self.fail_reads = False
        self.fail_writes = False

    def _check_read(self):
        if self.fail_reads:
            raise PersistenceError("disk unreadable")

    def _check_write(self):
        if self.fail_writes:
            raise PersistenceError("disk full")

    def read_items(self, owner_id):
        self._check_read()
        return super().read_items(owner_id)

    def read_edges(self, owner_id):
        self._check_read()
        return super().read_edges(owner_id)

    def counts(self):
        self._check_read()
        return super().counts()

    def insert_item(self, item):
        self._check_write()
        super().insert_item(item)

    def update_embedding(self, item):
        self._check_write()
        super().update_embedding(item)

    def upsert_edge(self, edge):
        self._check_write()
        return super().upsert_edge(edge)

    def delete_item(self, item_id):
        self._check_write()
        return super().delete_item(item_id)

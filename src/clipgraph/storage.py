"""Persistence backends for memory items and graph edges.

Two durable collections (items, edges) behind one small interface so the
store never knows what it is talking to. SQLiteBackend is the durable
default; InMemoryBackend serves tests and embedded callers.

Every backend reports its own failures as PersistenceError. Each mutating
call is a single transaction: callers never observe half-applied writes.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Protocol

from .constants import SCHEMA_VERSION, SQLITE_BUSY_TIMEOUT_MS
from .errors import PersistenceError
from .models import GraphEdge, MemoryItem

logger = logging.getLogger(__name__)


class Backend(Protocol):
    """Storage contract consumed by MemoryStore."""

    def read_items(self, owner_id: str) -> list[MemoryItem]:
        """Owner's items, oldest first."""
        ...

    def get_item(self, item_id: str) -> MemoryItem | None: ...

    def insert_item(self, item: MemoryItem) -> None: ...

    def update_item(self, item: MemoryItem) -> None: ...

    def update_embedding(self, item: MemoryItem) -> None:
        """Store the item's new embedding and drop every edge touching it."""
        ...

    def delete_item(self, item_id: str) -> bool:
        """Remove the item and every edge touching it. False if absent."""
        ...

    def read_edges(self, owner_id: str) -> list[GraphEdge]:
        """Edges with at least one endpoint among the owner's items."""
        ...

    def upsert_edge(self, edge: GraphEdge) -> GraphEdge:
        """Insert, or refresh weight and timestamp keeping the stored orientation.

        Returns the edge as stored.
        """
        ...

    def replace_owner_edges(self, owner_id: str, edges: list[GraphEdge]) -> None:
        """Drop every edge touching the owner's items, then write edges."""
        ...

    def counts(self) -> tuple[int, int]:
        """Total (items, edges) across all owners."""
        ...

    def close(self) -> None: ...


class SQLiteBackend:
    """Items and edges in a single SQLite database file."""

    def __init__(self, db_path: Path):
        """Open (or create) the database.

        Args:
            db_path: Path to clipgraph.db

        Raises:
            PersistenceError: If the database cannot be opened or initialized.
        """
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._init_db()
        except (OSError, sqlite3.Error) as e:
            raise PersistenceError(f"Cannot open database {db_path}: {e}") from e

    def _get_conn(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path), timeout=SQLITE_BUSY_TIMEOUT_MS / 1000
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
            self._conn.execute("PRAGMA foreign_keys=ON")
        return self._conn

    def _init_db(self) -> None:
        """Initialize database schema."""
        conn = self._get_conn()

        conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                created_at TEXT DEFAULT (datetime('now'))
            )
        """)
        version = conn.execute("SELECT version FROM schema_version").fetchone()
        if version is None:
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,)
            )
        elif version[0] != SCHEMA_VERSION:
            logger.warning(
                f"Schema version {version[0]} detected, expected {SCHEMA_VERSION}"
            )

        conn.executescript("""
            CREATE TABLE IF NOT EXISTS items (
                id TEXT PRIMARY KEY,
                owner_id TEXT NOT NULL,
                source_doc_id TEXT NOT NULL,
                title TEXT,
                text TEXT NOT NULL,
                provenance TEXT NOT NULL,
                embedding TEXT,
                note TEXT,
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_items_owner ON items(owner_id, created_at);

            CREATE TABLE IF NOT EXISTS edges (
                id TEXT PRIMARY KEY,
                source_id TEXT NOT NULL REFERENCES items(id) ON DELETE CASCADE,
                target_id TEXT NOT NULL REFERENCES items(id) ON DELETE CASCADE,
                weight REAL NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_edges_source ON edges(source_id);
            CREATE INDEX IF NOT EXISTS idx_edges_target ON edges(target_id);
        """)
        conn.commit()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Commit on success, roll back and raise PersistenceError on failure."""
        try:
            conn = self._get_conn()
        except sqlite3.Error as e:
            raise PersistenceError(f"Database unavailable: {e}") from e
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(f"Write failed: {e}") from e
        except Exception:
            conn.rollback()
            raise

    def _query(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        try:
            return self._get_conn().execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"Read failed: {e}") from e

    @staticmethod
    def _row_to_item(row: sqlite3.Row) -> MemoryItem:
        embedding = row["embedding"]
        return MemoryItem(
            id=row["id"],
            owner_id=row["owner_id"],
            source_doc_id=row["source_doc_id"],
            title=row["title"],
            text=row["text"],
            provenance=row["provenance"],
            embedding=json.loads(embedding) if embedding is not None else None,
            note=row["note"],
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_edge(row: sqlite3.Row) -> GraphEdge:
        return GraphEdge(
            id=row["id"],
            source_id=row["source_id"],
            target_id=row["target_id"],
            weight=row["weight"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _item_params(item: MemoryItem) -> tuple:
        return (
            item.id,
            item.owner_id,
            item.source_doc_id,
            item.title,
            item.text,
            item.provenance,
            json.dumps(item.embedding) if item.embedding is not None else None,
            item.note,
            item.created_at.isoformat(),
        )

    @staticmethod
    def _edge_params(edge: GraphEdge) -> tuple:
        return (
            edge.id,
            edge.source_id,
            edge.target_id,
            edge.weight,
            edge.updated_at.isoformat(),
        )

    def read_items(self, owner_id: str) -> list[MemoryItem]:
        rows = self._query(
            "SELECT * FROM items WHERE owner_id = ? ORDER BY created_at, id",
            (owner_id,),
        )
        items = []
        for row in rows:
            try:
                items.append(self._row_to_item(row))
            except (json.JSONDecodeError, ValueError) as e:
                logger.warning(f"Skipping malformed item {row['id']}: {e}")
        return items

    def get_item(self, item_id: str) -> MemoryItem | None:
        rows = self._query("SELECT * FROM items WHERE id = ?", (item_id,))
        if not rows:
            return None
        try:
            return self._row_to_item(rows[0])
        except (json.JSONDecodeError, ValueError) as e:
            raise PersistenceError(f"Malformed item {item_id}: {e}") from e

    def insert_item(self, item: MemoryItem) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO items (id, owner_id, source_doc_id, title, text,
                                   provenance, embedding, note, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                self._item_params(item),
            )

    def update_item(self, item: MemoryItem) -> None:
        with self._transaction() as conn:
            cursor = conn.execute(
                "UPDATE items SET title = ?, embedding = ?, note = ? WHERE id = ?",
                (
                    item.title,
                    json.dumps(item.embedding) if item.embedding is not None else None,
                    item.note,
                    item.id,
                ),
            )
            if cursor.rowcount == 0:
                raise PersistenceError(f"Item vanished during update: {item.id}")

    def update_embedding(self, item: MemoryItem) -> None:
        with self._transaction() as conn:
            cursor = conn.execute(
                "UPDATE items SET embedding = ? WHERE id = ?",
                (
                    json.dumps(item.embedding) if item.embedding is not None else None,
                    item.id,
                ),
            )
            if cursor.rowcount == 0:
                raise PersistenceError(f"Item vanished during update: {item.id}")
            conn.execute(
                "DELETE FROM edges WHERE source_id = ? OR target_id = ?",
                (item.id, item.id),
            )

    def delete_item(self, item_id: str) -> bool:
        with self._transaction() as conn:
            conn.execute(
                "DELETE FROM edges WHERE source_id = ? OR target_id = ?",
                (item_id, item_id),
            )
            cursor = conn.execute("DELETE FROM items WHERE id = ?", (item_id,))
            return cursor.rowcount > 0

    def read_edges(self, owner_id: str) -> list[GraphEdge]:
        rows = self._query(
            """
            SELECT * FROM edges
            WHERE source_id IN (SELECT id FROM items WHERE owner_id = ?)
               OR target_id IN (SELECT id FROM items WHERE owner_id = ?)
            ORDER BY updated_at, id
            """,
            (owner_id, owner_id),
        )
        return [self._row_to_edge(row) for row in rows]

    def upsert_edge(self, edge: GraphEdge) -> GraphEdge:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO edges (id, source_id, target_id, weight, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    weight = excluded.weight,
                    updated_at = excluded.updated_at
                """,
                self._edge_params(edge),
            )
            row = conn.execute("SELECT * FROM edges WHERE id = ?", (edge.id,)).fetchone()
        return self._row_to_edge(row)

    def replace_owner_edges(self, owner_id: str, edges: list[GraphEdge]) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                DELETE FROM edges
                WHERE source_id IN (SELECT id FROM items WHERE owner_id = ?)
                   OR target_id IN (SELECT id FROM items WHERE owner_id = ?)
                """,
                (owner_id, owner_id),
            )
            conn.executemany(
                """
                INSERT INTO edges (id, source_id, target_id, weight, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                [self._edge_params(e) for e in edges],
            )

    def counts(self) -> tuple[int, int]:
        """Total (items, edges) across all owners."""
        items = self._query("SELECT COUNT(*) FROM items")[0][0]
        edges = self._query("SELECT COUNT(*) FROM edges")[0][0]
        return items, edges

    def close(self) -> None:
        """Close database connection.

        Forces a WAL checkpoint before closing so the main file is complete.
        """
        if self._conn is not None:
            self._conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
            self._conn.close()
            self._conn = None


class InMemoryBackend:
    """Dict-backed storage with the same contract as SQLiteBackend.

    Stored models are copied on the way in and out so callers never hold
    references into the collections.
    """

    def __init__(self) -> None:
        self._items: dict[str, MemoryItem] = {}
        self._edges: dict[str, GraphEdge] = {}

    def _owner_ids(self, owner_id: str) -> set[str]:
        return {iid for iid, item in self._items.items() if item.owner_id == owner_id}

    def read_items(self, owner_id: str) -> list[MemoryItem]:
        items = [i for i in self._items.values() if i.owner_id == owner_id]
        items.sort(key=lambda i: (i.created_at, i.id))
        return [i.model_copy(deep=True) for i in items]

    def get_item(self, item_id: str) -> MemoryItem | None:
        item = self._items.get(item_id)
        return item.model_copy(deep=True) if item is not None else None

    def insert_item(self, item: MemoryItem) -> None:
        if item.id in self._items:
            raise PersistenceError(f"Duplicate item id: {item.id}")
        self._items[item.id] = item.model_copy(deep=True)

    def update_item(self, item: MemoryItem) -> None:
        if item.id not in self._items:
            raise PersistenceError(f"Item vanished during update: {item.id}")
        self._items[item.id] = item.model_copy(deep=True)

    def update_embedding(self, item: MemoryItem) -> None:
        stored = self._items.get(item.id)
        if stored is None:
            raise PersistenceError(f"Item vanished during update: {item.id}")
        self._items[item.id] = stored.model_copy(
            update={"embedding": list(item.embedding) if item.embedding is not None else None}
        )
        self._edges = {
            eid: e for eid, e in self._edges.items() if not e.touches(item.id)
        }

    def delete_item(self, item_id: str) -> bool:
        if item_id not in self._items:
            return False
        # Single synchronous step: no read can interleave between these
        self._edges = {
            eid: e for eid, e in self._edges.items() if not e.touches(item_id)
        }
        del self._items[item_id]
        return True

    def read_edges(self, owner_id: str) -> list[GraphEdge]:
        ids = self._owner_ids(owner_id)
        edges = [
            e for e in self._edges.values()
            if e.source_id in ids or e.target_id in ids
        ]
        edges.sort(key=lambda e: (e.updated_at, e.id))
        return [e.model_copy() for e in edges]

    def upsert_edge(self, edge: GraphEdge) -> GraphEdge:
        existing = self._edges.get(edge.id)
        if existing is not None:
            edge = existing.model_copy(
                update={"weight": edge.weight, "updated_at": edge.updated_at}
            )
        self._edges[edge.id] = edge.model_copy()
        return edge.model_copy()

    def replace_owner_edges(self, owner_id: str, edges: list[GraphEdge]) -> None:
        ids = self._owner_ids(owner_id)
        kept = {
            eid: e for eid, e in self._edges.items()
            if e.source_id not in ids and e.target_id not in ids
        }
        for edge in edges:
            kept[edge.id] = edge.model_copy()
        self._edges = kept

    def counts(self) -> tuple[int, int]:
        return len(self._items), len(self._edges)

    def close(self) -> None:
        pass

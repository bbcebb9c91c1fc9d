"""GraphStore — persisted node/tag/edge tables in SQLite.

The store has exactly one writer connection (owned by :class:`GraphStore`)
and any number of read-only connections (:class:`GraphReader`), one per
worker thread.  Mutating methods do not open transactions themselves; the
sync consumer wraps a whole pass in :meth:`GraphStore.transaction`.

Usage::

    store = GraphStore(root / ".zettel" / "index.db")

    with store.transaction():
        store.upsert_node("a", "a.md", digest, "Alpha")
        store.set_tag("a", "idea")
        store.add_edge("a", "b")

    store.count_nodes()          # 1
    store.edges_from("a")        # [EdgeRecord("a", "b", "wiki_link")]
"""

from __future__ import annotations

import contextlib
import sqlite3
from collections.abc import Iterable, Iterator
from pathlib import Path

from zettel.errors import StoreError
from zettel.note import WIKI_LINK, EdgeRecord, NodeRecord

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS nodes (
        id       TEXT PRIMARY KEY,
        path     TEXT NOT NULL UNIQUE,
        hash     TEXT NOT NULL,
        last_mod INTEGER NOT NULL DEFAULT 0,
        title    TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS tags (
        node_id TEXT NOT NULL REFERENCES nodes(id) ON DELETE CASCADE,
        tag     TEXT NOT NULL,
        PRIMARY KEY (node_id, tag)
    );

    -- target_id has no foreign key: links may point at notes that do not exist yet
    CREATE TABLE IF NOT EXISTS edges (
        source_id TEXT NOT NULL REFERENCES nodes(id) ON DELETE CASCADE,
        target_id TEXT NOT NULL,
        type      TEXT NOT NULL DEFAULT 'wiki_link',
        UNIQUE (source_id, target_id, type)
    );

    CREATE INDEX IF NOT EXISTS edges_target ON edges(target_id);
"""

_NODE_COLUMNS = "id, path, hash, title, last_mod"


class _Queries:
    """Read-only query surface shared by the writer and the readers."""

    _conn: sqlite3.Connection

    def count_nodes(self) -> int:
        return self._conn.execute("SELECT COUNT(*) FROM nodes").fetchone()[0]

    def get_node(self, node_id: str) -> NodeRecord | None:
        row = self._conn.execute(f"SELECT {_NODE_COLUMNS} FROM nodes WHERE id = ?", (node_id,)).fetchone()
        return NodeRecord(*row) if row else None

    def node_for_path(self, path: str) -> NodeRecord | None:
        row = self._conn.execute(f"SELECT {_NODE_COLUMNS} FROM nodes WHERE path = ?", (path,)).fetchone()
        return NodeRecord(*row) if row else None

    def hash_for(self, path: str) -> str | None:
        """Stored content hash for *path*, or ``None`` when the path is not indexed."""
        row = self._conn.execute("SELECT hash FROM nodes WHERE path = ?", (path,)).fetchone()
        return row[0] if row else None

    def nodes(self) -> list[NodeRecord]:
        rows = self._conn.execute(f"SELECT {_NODE_COLUMNS} FROM nodes ORDER BY id").fetchall()
        return [NodeRecord(*r) for r in rows]

    def paths(self) -> set[str]:
        return {r[0] for r in self._conn.execute("SELECT path FROM nodes")}

    def edges(self) -> list[EdgeRecord]:
        rows = self._conn.execute(
            "SELECT source_id, target_id, type FROM edges ORDER BY source_id, target_id, type"
        ).fetchall()
        return [EdgeRecord(*r) for r in rows]

    def edges_from(self, source_id: str) -> list[EdgeRecord]:
        rows = self._conn.execute(
            "SELECT source_id, target_id, type FROM edges WHERE source_id = ? ORDER BY target_id, type",
            (source_id,),
        ).fetchall()
        return [EdgeRecord(*r) for r in rows]

    def edges_to(self, target_id: str) -> list[EdgeRecord]:
        rows = self._conn.execute(
            "SELECT source_id, target_id, type FROM edges WHERE target_id = ? ORDER BY source_id, type",
            (target_id,),
        ).fetchall()
        return [EdgeRecord(*r) for r in rows]

    def tags_for(self, node_id: str) -> list[str]:
        rows = self._conn.execute("SELECT tag FROM tags WHERE node_id = ? ORDER BY tag", (node_id,)).fetchall()
        return [r[0] for r in rows]

    def tags(self) -> list[tuple[str, str]]:
        """All ``(node_id, tag)`` pairs."""
        return self._conn.execute("SELECT node_id, tag FROM tags ORDER BY node_id, tag").fetchall()


class GraphReader(_Queries):
    """A read-only connection to an existing store, safe to use from a worker thread."""

    def __init__(self, db_path: Path) -> None:
        try:
            self._conn = sqlite3.connect(
                f"{Path(db_path).resolve().as_uri()}?mode=ro",
                uri=True,
                check_same_thread=False,
            )
        except sqlite3.Error as exc:
            raise StoreError(f"cannot open read-only connection to {db_path}: {exc}") from exc

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "GraphReader":
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


class GraphStore(_Queries):
    """The single writer over the ``nodes``/``tags``/``edges`` tables."""

    def __init__(self, db_path: Path | str, *, busy_timeout: int = 5000) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            # isolation_level=None: transactions are issued explicitly
            self._conn = sqlite3.connect(str(self.db_path), isolation_level=None, check_same_thread=False)
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA foreign_keys=ON")
            self._conn.execute(f"PRAGMA busy_timeout={int(busy_timeout)}")
            self._conn.executescript(_SCHEMA)
        except sqlite3.Error as exc:
            raise StoreError(f"cannot open graph store {self.db_path}: {exc}") from exc

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextlib.contextmanager
    def transaction(self) -> Iterator["GraphStore"]:
        """Run the block in one write transaction; all of it commits or none does."""
        try:
            self._conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as exc:
            raise StoreError(f"cannot begin transaction: {exc}") from exc
        try:
            yield self
        except BaseException:
            self._rollback()
            raise
        try:
            self._conn.execute("COMMIT")
        except sqlite3.Error as exc:
            self._rollback()
            raise StoreError(f"cannot commit transaction: {exc}") from exc

    @contextlib.contextmanager
    def savepoint(self, name: str = "item") -> Iterator[None]:
        """Nested scope inside a transaction; an error undoes only this scope."""
        self._conn.execute(f"SAVEPOINT {name}")
        try:
            yield
        except BaseException:
            self._conn.execute(f"ROLLBACK TO {name}")
            self._conn.execute(f"RELEASE {name}")
            raise
        self._conn.execute(f"RELEASE {name}")

    def _rollback(self) -> None:
        if self._conn.in_transaction:
            self._conn.execute("ROLLBACK")

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def upsert_node(self, node_id: str, path: str, content_hash: str, title: str, last_mod: int = 0) -> None:
        """Replace the row for *path*; its old tags and edges go with it."""
        self._conn.execute("DELETE FROM nodes WHERE path = ?", (path,))
        self._conn.execute(
            "INSERT INTO nodes (id, path, hash, last_mod, title) VALUES (?, ?, ?, ?, ?)",
            (node_id, path, content_hash, last_mod, title),
        )

    def delete_node(self, node_id: str) -> None:
        """Remove the node with *node_id* along with its tags and outgoing edges."""
        self._conn.execute("DELETE FROM nodes WHERE id = ?", (node_id,))

    def set_tag(self, node_id: str, tag: str) -> None:
        """Make *tag* the node's only tag (an empty tag clears it)."""
        self._conn.execute("DELETE FROM tags WHERE node_id = ?", (node_id,))
        if tag:
            self._conn.execute("INSERT INTO tags (node_id, tag) VALUES (?, ?)", (node_id, tag))

    def add_edge(self, source_id: str, target_id: str, edge_type: str = WIKI_LINK) -> None:
        """Insert the edge unless the same ``(source, target, type)`` already exists."""
        self._conn.execute(
            "INSERT OR IGNORE INTO edges (source_id, target_id, type) VALUES (?, ?, ?)",
            (source_id, target_id, edge_type),
        )

    def prune(self, keep_paths: Iterable[str]) -> list[str]:
        """Delete every node whose path is not in *keep_paths*; return the removed paths."""
        try:
            stale = sorted(self.paths() - set(keep_paths))
            if stale:
                self._conn.executemany("DELETE FROM nodes WHERE path = ?", [(p,) for p in stale])
        except sqlite3.Error as exc:
            raise StoreError(f"cannot prune stale nodes: {exc}") from exc
        return stale

    def reset(self) -> None:
        """Drop and recreate every table (a full rebuild follows on the next sync)."""
        self._conn.executescript("""
            DROP TABLE IF EXISTS edges;
            DROP TABLE IF EXISTS tags;
            DROP TABLE IF EXISTS nodes;
        """)
        self._conn.executescript(_SCHEMA)

    # ------------------------------------------------------------------
    # Readers / lifecycle
    # ------------------------------------------------------------------

    def reader(self) -> GraphReader:
        """Open a new read-only connection for a worker thread."""
        return GraphReader(self.db_path)

    @property
    def total_changes(self) -> int:
        """Rows inserted, updated or deleted through the writer since it was opened."""
        return self._conn.total_changes

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "GraphStore":
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

"""GraphDB — an in-memory DuckDB copy of the graph store for ad-hoc analysis.

The SQLite store stays the system of record; :class:`GraphDB` snapshots its
``nodes``/``tags``/``edges`` tables into DuckDB and returns :mod:`polars`
DataFrames.

Usage::

    db = GraphDB(store)

    df = db.query("SELECT id, title FROM nodes WHERE id LIKE '2024%'")

    db.tag_counts()       # tag | note_count
    db.degree_table()     # id | title | out_degree | in_degree
    db.dangling_edges()   # edges whose target note does not exist (yet)
    db.orphans()          # notes with no links in or out

    db.refresh(store)     # after the next sync pass
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import duckdb
import polars as pl

if TYPE_CHECKING:
    from zettel.store import _Queries


class GraphDB:
    """In-memory DuckDB database over a snapshot of the graph store."""

    def __init__(self, store: "_Queries") -> None:
        self.conn: duckdb.DuckDBPyConnection = duckdb.connect(":memory:")
        self.refresh(store)

    # ------------------------------------------------------------------
    # Build / refresh
    # ------------------------------------------------------------------

    def refresh(self, store: "_Queries") -> None:
        """(Re-)load every table from *store*."""
        self._create_schema()
        nodes = [(n.id, n.path, n.hash, n.title, n.last_mod) for n in store.nodes()]
        if nodes:
            self.conn.executemany("INSERT INTO nodes VALUES (?,?,?,?,?)", nodes)
        tags = store.tags()
        if tags:
            self.conn.executemany("INSERT INTO tags VALUES (?,?)", tags)
        edges = [(e.source_id, e.target_id, e.type) for e in store.edges()]
        if edges:
            self.conn.executemany("INSERT INTO edges VALUES (?,?,?)", edges)

    def _create_schema(self) -> None:
        self.conn.execute("""
            CREATE OR REPLACE TABLE nodes (
                id       VARCHAR PRIMARY KEY,
                path     VARCHAR,
                hash     VARCHAR,
                title    VARCHAR,
                last_mod BIGINT
            )
        """)
        self.conn.execute("CREATE OR REPLACE TABLE tags (node_id VARCHAR, tag VARCHAR)")
        self.conn.execute("CREATE OR REPLACE TABLE edges (source_id VARCHAR, target_id VARCHAR, type VARCHAR)")

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    def query(self, sql: str) -> pl.DataFrame:
        """Run a raw SQL query and return a Polars DataFrame."""
        return self.conn.execute(sql).pl()

    # ------------------------------------------------------------------
    # Pre-built views
    # ------------------------------------------------------------------

    def tag_counts(self) -> pl.DataFrame:
        """Return a tag → count table sorted by frequency."""
        return self.conn.execute(
            """
            SELECT tag, COUNT(*) AS note_count
            FROM tags
            GROUP BY tag
            ORDER BY note_count DESC, tag
            """
        ).pl()

    def degree_table(self) -> pl.DataFrame:
        """Out- and in-degree of every note; edges to missing notes count as outgoing."""
        return self.conn.execute(
            """
            SELECT
                n.id,
                n.title,
                (SELECT COUNT(*) FROM edges e WHERE e.source_id = n.id) AS out_degree,
                (SELECT COUNT(*) FROM edges e WHERE e.target_id = n.id) AS in_degree
            FROM nodes n
            ORDER BY in_degree DESC, out_degree DESC, n.id
            """
        ).pl()

    def dangling_edges(self) -> pl.DataFrame:
        return self.conn.execute(
            """
            SELECT e.source_id, e.target_id, e.type
            FROM edges e
            LEFT JOIN nodes n ON n.id = e.target_id
            WHERE n.id IS NULL
            ORDER BY e.target_id, e.source_id
            """
        ).pl()

    def orphans(self) -> pl.DataFrame:
        """Notes that neither link anywhere nor are linked to."""
        return self.conn.execute(
            """
            SELECT n.id, n.title, n.path
            FROM nodes n
            WHERE NOT EXISTS (SELECT 1 FROM edges e WHERE e.source_id = n.id)
              AND NOT EXISTS (SELECT 1 FROM edges e WHERE e.target_id = n.id)
            ORDER BY n.id
            """
        ).pl()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        self.conn.close()

    def __enter__(self) -> "GraphDB":
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

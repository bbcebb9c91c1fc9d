"""Unit tests for zettel.store.GraphStore / GraphReader."""

import sqlite3
from pathlib import Path

import pytest

from zettel.errors import StoreError
from zettel.note import EdgeRecord, NodeRecord
from zettel.store import GraphStore


def _add(store: GraphStore, node_id: str, *, links=(), tag="idea", digest="h") -> None:
    with store.transaction():
        store.upsert_node(node_id, f"{node_id}.md", digest, node_id.title(), 1)
        store.set_tag(node_id, tag)
        for target in links:
            store.add_edge(node_id, target)


# ---------------------------------------------------------------------------
# Nodes / tags / edges
# ---------------------------------------------------------------------------


class TestGraphStoreRows:
    def test_upsert_and_get(self, store: GraphStore):
        _add(store, "alpha", digest="abc")
        assert store.get_node("alpha") == NodeRecord("alpha", "alpha.md", "abc", "Alpha", 1)
        assert store.count_nodes() == 1

    def test_hash_for_unknown_path(self, store: GraphStore):
        assert store.hash_for("missing.md") is None

    def test_node_for_path(self, store: GraphStore):
        _add(store, "alpha")
        node = store.node_for_path("alpha.md")
        assert node is not None and node.id == "alpha"

    def test_upsert_replaces_row_and_children(self, store: GraphStore):
        _add(store, "alpha", links=["beta", "gamma"], digest="v1")
        _add(store, "alpha", links=["delta"], digest="v2")
        assert store.count_nodes() == 1
        assert store.hash_for("alpha.md") == "v2"
        assert [e.target_id for e in store.edges_from("alpha")] == ["delta"]

    def test_set_tag_replaces(self, store: GraphStore):
        _add(store, "alpha", tag="idea")
        with store.transaction():
            store.set_tag("alpha", "concepto")
        assert store.tags_for("alpha") == ["concepto"]

    def test_empty_tag_clears(self, store: GraphStore):
        _add(store, "alpha", tag="idea")
        with store.transaction():
            store.set_tag("alpha", "")
        assert store.tags_for("alpha") == []

    def test_duplicate_edge_ignored(self, store: GraphStore):
        _add(store, "alpha", links=["beta", "beta"])
        assert store.edges_from("alpha") == [EdgeRecord("alpha", "beta", "wiki_link")]

    def test_dangling_edge_allowed(self, store: GraphStore):
        _add(store, "alpha", links=["not-written-yet"])
        assert store.edges_to("not-written-yet") == [EdgeRecord("alpha", "not-written-yet")]

    def test_edge_needs_existing_source(self, store: GraphStore):
        with pytest.raises(sqlite3.IntegrityError):
            with store.transaction():
                store.add_edge("ghost", "alpha")

    def test_tags_listing(self, store: GraphStore):
        _add(store, "alpha", tag="idea")
        _add(store, "beta", tag="concepto")
        assert store.tags() == [("alpha", "idea"), ("beta", "concepto")]


# ---------------------------------------------------------------------------
# prune() / reset()
# ---------------------------------------------------------------------------


class TestGraphStorePrune:
    def test_prune_cascades(self, store: GraphStore):
        _add(store, "alpha", links=["beta"])
        _add(store, "beta", links=["alpha"])
        with store.transaction():
            removed = store.prune({"beta.md"})
        assert removed == ["alpha.md"]
        assert store.get_node("alpha") is None
        assert store.tags_for("alpha") == []
        assert store.edges_from("alpha") == []
        # the edge pointing at the removed note stays, now dangling
        assert store.edges_to("alpha") == [EdgeRecord("beta", "alpha")]

    def test_prune_nothing(self, store: GraphStore):
        _add(store, "alpha")
        with store.transaction():
            assert store.prune({"alpha.md"}) == []

    def test_delete_node_cascades(self, store: GraphStore):
        _add(store, "alpha", links=["beta"])
        with store.transaction():
            store.delete_node("alpha")
        assert store.get_node("alpha") is None
        assert store.tags_for("alpha") == []
        assert store.edges_from("alpha") == []

    def test_prune_error_is_store_error(self, store: GraphStore):
        _add(store, "alpha")
        store.close()
        with pytest.raises(StoreError):
            store.prune(set())

    def test_reset_empties_tables(self, store: GraphStore):
        _add(store, "alpha", links=["beta"])
        store.reset()
        assert store.count_nodes() == 0
        assert store.edges() == []


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


class TestGraphStoreTransactions:
    def test_rollback_on_error(self, store: GraphStore):
        with pytest.raises(RuntimeError):
            with store.transaction():
                store.upsert_node("alpha", "alpha.md", "h", "Alpha")
                raise RuntimeError("boom")
        assert store.count_nodes() == 0

    def test_savepoint_undoes_only_its_scope(self, store: GraphStore):
        with store.transaction():
            store.upsert_node("alpha", "alpha.md", "h", "Alpha")
            with pytest.raises(sqlite3.IntegrityError):
                with store.savepoint():
                    store.upsert_node("beta", "beta.md", "h", "Beta")
                    store.add_edge("ghost", "beta")
        assert [n.id for n in store.nodes()] == ["alpha"]

    def test_nested_transaction_is_store_error(self, store: GraphStore):
        with store.transaction():
            with pytest.raises(StoreError):
                with store.transaction():
                    pass

    def test_busy_writer_is_store_error(self, tmp_path: Path):
        path = tmp_path / "graph.db"
        with GraphStore(path, busy_timeout=50) as impatient:
            locker = sqlite3.connect(path, isolation_level=None)
            try:
                locker.execute("BEGIN IMMEDIATE")
                with pytest.raises(StoreError, match="cannot begin"):
                    with impatient.transaction():
                        pass
            finally:
                locker.execute("ROLLBACK")
                locker.close()

    def test_total_changes_counts_writes(self, store: GraphStore):
        before = store.total_changes
        _add(store, "alpha", links=["beta"])
        assert store.total_changes > before


# ---------------------------------------------------------------------------
# Readers
# ---------------------------------------------------------------------------


class TestGraphReader:
    def test_reader_sees_committed_rows(self, store: GraphStore):
        _add(store, "alpha", digest="abc")
        with store.reader() as reader:
            assert reader.hash_for("alpha.md") == "abc"
            assert reader.paths() == {"alpha.md"}

    def test_reader_is_read_only(self, store: GraphStore):
        with store.reader() as reader:
            with pytest.raises(sqlite3.OperationalError):
                reader._conn.execute("DELETE FROM nodes")

    def test_reader_usable_from_another_thread(self, store: GraphStore):
        import threading

        _add(store, "alpha")
        seen: list[int] = []
        with store.reader() as reader:
            t = threading.Thread(target=lambda: seen.append(reader.count_nodes()))
            t.start()
            t.join()
        assert seen == [1]


class TestGraphStoreOpen:
    def test_unopenable_path_is_store_error(self, tmp_path: Path):
        (tmp_path / "dir.db").mkdir()
        with pytest.raises(StoreError):
            GraphStore(tmp_path / "dir.db")

    def test_context_manager_closes(self, tmp_path: Path):
        with GraphStore(tmp_path / "g.db") as s:
            assert s.count_nodes() == 0
        with pytest.raises(sqlite3.ProgrammingError):
            s.count_nodes()

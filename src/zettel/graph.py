"""Link graph of the indexed notes as a :mod:`networkx` digraph.

Every edge in the store becomes a graph edge, including edges whose target
note does not exist yet.  Such targets are still added as nodes, with
``exists=False``, so they can be listed and later picked up by a new note.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import networkx as nx

if TYPE_CHECKING:
    from zettel.store import _Queries


def build_graph(store: "_Queries") -> nx.DiGraph:
    """Return a DiGraph with one node per note and one edge per stored link.

    Node attributes: ``title``, ``path``, ``tags`` and ``exists``.
    Edge attribute: ``type``.
    """
    tags: dict[str, list[str]] = {}
    for node_id, tag in store.tags():
        tags.setdefault(node_id, []).append(tag)

    G: nx.DiGraph = nx.DiGraph()
    for node in store.nodes():
        G.add_node(node.id, title=node.title, path=node.path, tags=tags.get(node.id, []), exists=True)
    for edge in store.edges():
        if edge.target_id not in G:
            G.add_node(edge.target_id, title=edge.target_id, path=None, tags=[], exists=False)
        G.add_edge(edge.source_id, edge.target_id, type=edge.type)
    return G


def backlinks(G: nx.DiGraph, node_id: str) -> list[str]:
    """Ids of the notes linking to *node_id*, sorted."""
    if node_id not in G:
        return []
    return sorted(G.predecessors(node_id))


def dangling_targets(G: nx.DiGraph) -> list[str]:
    """Link targets with no note behind them."""
    return sorted(n for n, exists in G.nodes(data="exists") if not exists)


def orphans(G: nx.DiGraph) -> list[str]:
    return sorted(n for n, exists in G.nodes(data="exists") if exists and G.degree(n) == 0)

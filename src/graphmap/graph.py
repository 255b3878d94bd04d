"""Graph model — node arena, links, adjacency index, and a networkx mirror.

Nodes live in a flat list (the arena) and are addressed by id through
``GraphData.index``. Children reference their parent by id only; the parent
node is resolved through the arena when needed, never stored on the child.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import networkx as nx

from graphmap.colors import DEFAULT_FALLBACK, TextClass


class NodeType(str, Enum):
    PARENT = "parent"
    CHILD = "child"


# ─── Records ────────────────────────────────────────────────────────────────


@dataclass
class Node:
    """One node of the graph.

    The preprocessor owns the color fields, the simulator owns the position
    fields (``x``, ``y``, ``vx``, ``vy``, ``fx``, ``fy``), and template
    metadata is carried through untouched.
    """

    id: str
    label: str
    type: NodeType = NodeType.CHILD
    layer: int = 0
    parent_id: str | None = None

    # color / size (preprocessor)
    color_variant_index: int = 0
    calculated_hex: str = DEFAULT_FALLBACK
    text_color_class: TextClass = TextClass.DARK
    fill_hex: str | None = None
    node_radius: float | None = None

    # position (simulator)
    x: float = 0.0
    y: float = 0.0
    vx: float = 0.0
    vy: float = 0.0
    fx: float | None = None
    fy: float | None = None

    # template metadata
    template_type: str | None = None
    priority: str | None = None
    estimated_hours: float | None = None
    status: str | None = None
    tour_marker: bool = False
    tour_step: dict[str, Any] | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_parent(self) -> bool:
        return self.type == NodeType.PARENT


@dataclass
class Link:
    source: str
    target: str
    type: str = "RELATES_TO"

    @property
    def key(self) -> str:
        return adjacency_key(self.source, self.target)


def adjacency_key(a: str, b: str) -> str:
    return f"{a},{b}"


# ─── GraphData ──────────────────────────────────────────────────────────────


class GraphData:
    """Validated nodes and links with constant-time lookups.

    Attributes:
        nodes: The node arena, in input order.
        links: Links whose endpoints both exist.
        index: Maps node id → position in ``nodes``.
        adjacency: Symmetric adjacency keys, ``"a,b"`` and ``"b,a"`` per link.
        digraph: networkx mirror of the links (node ids only).
    """

    def __init__(self, nodes: list[Node], links: list[Link]) -> None:
        self.nodes = nodes
        self.links = links
        self.index: dict[str, int] = {n.id: i for i, n in enumerate(nodes)}
        self.adjacency: set[str] = set()
        self.digraph: nx.DiGraph = nx.DiGraph()
        self.digraph.add_nodes_from(self.index)
        for link in links:
            self.adjacency.add(adjacency_key(link.source, link.target))
            self.adjacency.add(adjacency_key(link.target, link.source))
            self.digraph.add_edge(link.source, link.target, type=link.type)

    def __len__(self) -> int:
        return len(self.nodes)

    def __iter__(self) -> Iterator[Node]:
        return iter(self.nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.index

    def node(self, node_id: str) -> Node | None:
        i = self.index.get(node_id)
        return None if i is None else self.nodes[i]

    def parent_of(self, node: Node) -> Node | None:
        """Resolve a child's parent through the arena."""
        if not node.parent_id:
            return None
        return self.node(node.parent_id)

    def children_of(self, node_id: str) -> list[Node]:
        return [n for n in self.nodes if n.parent_id == node_id]

    def is_connected(self, a: str, b: str) -> bool:
        """True if a link joins ``a`` and ``b`` in either direction."""
        return adjacency_key(a, b) in self.adjacency

    def neighbors(self, node_id: str) -> set[str]:
        if node_id not in self.digraph:
            return set()
        return set(nx.all_neighbors(self.digraph, node_id)) - {node_id}

    def connected_links(self, node_id: str) -> list[Link]:
        return [link for link in self.links if node_id in (link.source, link.target)]

    def roots(self) -> list[str]:
        """Node ids without incoming links, in arena order."""
        return [n.id for n in self.nodes if self.digraph.in_degree(n.id) == 0]

    @property
    def max_layer(self) -> int:
        return max((n.layer for n in self.nodes), default=0)

    @property
    def num_bands(self) -> int:
        """Two vertical bands per layer: one for parents, one for children."""
        return (self.max_layer + 1) * 2

    def layers(self) -> dict[int, list[Node]]:
        by_layer: dict[int, list[Node]] = {}
        for n in self.nodes:
            by_layer.setdefault(n.layer, []).append(n)
        return by_layer

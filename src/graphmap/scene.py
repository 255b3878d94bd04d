"""Scene — a render-ready snapshot of one view.

Renderers never read the graph, the interaction machine or the camera
directly; ``build_scene`` flattens them into plain records with pixel
positions, fills and CSS class lists. Nodes appear in draw order, so a raised
node comes last and paints on top.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from graphmap.camera import ZoomTransform
from graphmap.graph import GraphData, Node
from graphmap.interaction import InteractionMachine, LinkState, NodeState, SearchMark

# ─── Records ────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class SceneNode:
    id: str
    label: str
    x: float
    y: float
    radius: float
    fill: str
    text_class: str
    classes: tuple[str, ...]
    show_label: bool


@dataclass(frozen=True)
class SceneLink:
    source: str
    target: str
    type: str
    x1: float
    y1: float
    x2: float
    y2: float
    classes: tuple[str, ...]


@dataclass
class Scene:
    """Everything a renderer needs for one frame.

    ``cursor`` is the world position of the tour's simulated pointer, if any.
    ``highlighted`` lists UI selectors the tour is pointing at.
    """

    width: float
    height: float
    transform: ZoomTransform = field(default_factory=ZoomTransform.identity)
    nodes: list[SceneNode] = field(default_factory=list)
    links: list[SceneLink] = field(default_factory=list)
    cursor: tuple[float, float] | None = None
    highlighted: tuple[str, ...] = ()

    def node(self, node_id: str) -> SceneNode | None:
        return next((n for n in self.nodes if n.id == node_id), None)


# ─── Construction ───────────────────────────────────────────────────────────


def node_classes(node: Node, machine: InteractionMachine) -> tuple[str, ...]:
    base = [
        "node",
        f"node-type-{node.type.value}",
        f"layer-{node.layer}",
        f"color-variant-{node.color_variant_index}",
    ]
    return tuple(base + machine.visual(node.id).classes())


def label_visible(node: Node, machine: InteractionMachine) -> bool:
    """Parents always show their label; children only while emphasised."""
    if node.is_parent:
        return True
    v = machine.visual(node.id)
    return v.state != NodeState.NEUTRAL or v.search == SearchMark.MATCH or v.focus_highlight or v.tour_target


def build_scene(
    graph: GraphData,
    machine: InteractionMachine,
    radius_of: dict[str, float],
    width: float,
    height: float,
    transform: ZoomTransform | None = None,
    *,
    cursor_node: str | None = None,
    highlighted: tuple[str, ...] = (),
) -> Scene:
    """Snapshot ``graph`` with the visual state held by ``machine``."""
    nodes = []
    for node_id in machine.draw_order:
        node = graph.node(node_id)
        if node is None:
            continue
        nodes.append(
            SceneNode(
                id=node.id,
                label=node.label or node.id,
                x=node.x,
                y=node.y,
                radius=radius_of[node.id],
                fill=node.fill_hex or node.calculated_hex,
                text_class=node.text_color_class.value,
                classes=node_classes(node, machine),
                show_label=label_visible(node, machine),
            )
        )

    links = []
    for i, link in enumerate(graph.links):
        source = graph.node(link.source)
        target = graph.node(link.target)
        if source is None or target is None:
            continue
        state = machine.link_state(i)
        classes = ("link",) if state == LinkState.NORMAL else ("link", state.value)
        links.append(
            SceneLink(link.source, link.target, link.type, source.x, source.y, target.x, target.y, classes)
        )

    cursor = None
    if cursor_node is not None:
        node = graph.node(cursor_node)
        if node is not None:
            cursor = (node.x, node.y)

    return Scene(
        width=width,
        height=height,
        transform=transform or ZoomTransform.identity(),
        nodes=nodes,
        links=links,
        cursor=cursor,
        highlighted=highlighted,
    )

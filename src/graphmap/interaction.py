"""Interaction state machine — hover, focus, pin, drag and search.

Every node carries a ``NodeVisual``: one ``NodeState`` plus orthogonal flags
(dragging, faded, search mark, focus highlight, tour target). Every link
carries a ``LinkState``. All changes go through ``InteractionMachine.dispatch``,
which takes one of the event dataclasses below:

    machine.dispatch(PointerEnter("task-3", x=120, y=80))
    machine.dispatch(Activate("task-3"))
    machine.dispatch(Search("deploy"))

Rules:

- At most one node is ``PINNED``; pinning another releases the first.
- While a node is pinned, hover and focus highlights are suppressed.
- States are assigned, never accumulated, so repeating an event is a no-op.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Protocol, Union

from graphmap.config import GraphConfig
from graphmap.graph import GraphData, Node
from graphmap.scheduler import Scheduler
from graphmap.simulator import DRAG_ALPHA_TARGET, LayoutSimulator

logger = logging.getLogger(__name__)

# ─── Constants ──────────────────────────────────────────────────────────────

TAP_MAX_DISTANCE = 5.0  # px
TAP_MAX_DURATION = 0.3  # s
CLICK_BLOCK_WINDOW = 0.1  # s after a drag during which a click is swallowed
CLICK_BLOCK_CLEAR = 0.15  # s after which the block flag is dropped
NO_RESULTS = "No results found."
CLICK_HINT = "Click/Tap for details"
DETAILS_UNAVAILABLE = "Details unavailable."
NO_SPECIFIC_DETAILS = "No specific details provided."

_PLACEHOLDER_RE = re.compile(r"unavailable|placeholder|no details", re.IGNORECASE)


class NodeState(str, Enum):
    NEUTRAL = "neutral"
    HOVER = "hover"
    NEIGHBOR = "neighbor"
    PINNED = "pinned"


class SearchMark(str, Enum):
    NONE = "none"
    MATCH = "match"
    NON_MATCH = "non-match"


class LinkState(str, Enum):
    NORMAL = "normal"
    HIGHLIGHTED = "highlighted"
    FADED = "faded"


_STATE_CLASSES = {
    NodeState.NEUTRAL: None,
    NodeState.HOVER: "is-interacted",
    NodeState.NEIGHBOR: "is-neighbor",
    NodeState.PINNED: "details-shown-for",
}


@dataclass
class NodeVisual:
    state: NodeState = NodeState.NEUTRAL
    dragging: bool = False
    faded: bool = False
    search: SearchMark = SearchMark.NONE
    focus_highlight: bool = False
    tour_target: bool = False

    def classes(self) -> list[str]:
        """CSS class names for this visual state, in a stable order."""
        out = []
        state_class = _STATE_CLASSES[self.state]
        if state_class:
            out.append(state_class)
        if self.dragging:
            out.append("dragging")
        if self.faded:
            out.append("faded")
        if self.search == SearchMark.MATCH:
            out.append("search-match")
        elif self.search == SearchMark.NON_MATCH:
            out.append("search-non-match")
        if self.focus_highlight:
            out.append("focus-highlight")
        if self.tour_target:
            out.append("walkthrough-target")
        return out


# ─── Events ─────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class PointerEnter:
    node_id: str
    x: float | None = None
    y: float | None = None


@dataclass(frozen=True)
class PointerMove:
    node_id: str
    x: float
    y: float


@dataclass(frozen=True)
class PointerLeave:
    node_id: str


@dataclass(frozen=True)
class FocusIn:
    node_id: str


@dataclass(frozen=True)
class FocusOut:
    node_id: str


@dataclass(frozen=True)
class Activate:
    """Click, Enter/Space or tap-end: pin the node and open its details."""

    node_id: str


@dataclass(frozen=True)
class Click:
    """A raw pointer click; swallowed when it trails a real drag."""

    node_id: str


@dataclass(frozen=True)
class DragStart:
    node_id: str
    x: float
    y: float


@dataclass(frozen=True)
class DragMove:
    node_id: str
    x: float
    y: float


@dataclass(frozen=True)
class DragEnd:
    node_id: str
    x: float
    y: float


@dataclass(frozen=True)
class Search:
    query: str


@dataclass(frozen=True)
class Reset:
    pass


Event = Union[
    PointerEnter, PointerMove, PointerLeave, FocusIn, FocusOut,
    Activate, Click, DragStart, DragMove, DragEnd, Search, Reset,
]  # fmt: skip


# ─── UI Models ──────────────────────────────────────────────────────────────


@dataclass
class Tooltip:
    visible: bool = False
    node_id: str | None = None
    title: str = ""
    kind: str = ""
    hint: str | None = None
    indicator_classes: tuple[str, ...] = ()
    x: float = 0.0
    y: float = 0.0


@dataclass
class DetailContent:
    node_id: str
    title: str
    items: list[str] = field(default_factory=list)
    message: str | None = None
    photo_url: str | None = None
    title_classes: tuple[str, ...] = ()
    fill_hex: str | None = None


@dataclass
class SearchResult:
    query: str
    matches: list[str] = field(default_factory=list)
    message: str = ""


def node_kind(node: Node) -> str:
    if node.is_parent:
        return "Profile" if node.layer == 0 else "Category"
    return "Detail"


def has_real_details(record: Mapping[str, Any] | None) -> bool:
    items = (record or {}).get("items") or []
    if not items:
        return False
    return not (len(items) == 1 and _PLACEHOLDER_RE.search(str(items[0])))


class CameraHost(Protocol):
    """Camera operations the machine triggers but does not own."""

    def focus_on_node(self, node_id: str) -> None: ...

    def reset_camera(self) -> None: ...

    def relax_zoom(self) -> None: ...


Listener = Callable[[Event], None]


# ─── Machine ────────────────────────────────────────────────────────────────


class InteractionMachine:
    """Owns the visual state of every node and link of one view.

    Args:
        graph: The preprocessed graph.
        details: Detail records by node id.
        config: Graph configuration (tooltip offsets).
        simulator: Receives fix/release and re-heat requests during drags.
        scheduler: Clock for tap detection and click blocking.
        host: Camera operations for search focus and reset.
    """

    def __init__(
        self,
        graph: GraphData,
        details: Mapping[str, Mapping[str, Any]],
        config: GraphConfig,
        simulator: LayoutSimulator,
        scheduler: Scheduler,
        host: CameraHost | None = None,
    ) -> None:
        self.graph = graph
        self.details = details
        self.config = config
        self.simulator = simulator
        self.scheduler = scheduler
        self.host = host

        self.visuals: dict[str, NodeVisual] = {n.id: NodeVisual() for n in graph.nodes}
        self.link_states: list[LinkState] = [LinkState.NORMAL] * len(graph.links)
        self.draw_order: list[str] = [n.id for n in graph.nodes]
        self.hovered: str | None = None
        self.pinned: str | None = None
        self.tooltip = Tooltip()
        self.detail: DetailContent | None = None
        self.last_search = SearchResult(query="")

        self._drag_starts: dict[str, tuple[float, float, float]] = {}
        self._click_blocks: dict[str, float] = {}
        self._listeners: list[Listener] = []
        self._handlers: dict[type, Callable[[Any], Any]] = {
            PointerEnter: self._on_pointer_enter,
            PointerMove: self._on_pointer_move,
            PointerLeave: self._on_pointer_leave,
            FocusIn: self._on_focus_in,
            FocusOut: self._on_focus_out,
            Activate: self._on_activate,
            Click: self._on_click,
            DragStart: self._on_drag_start,
            DragMove: self._on_drag_move,
            DragEnd: self._on_drag_end,
            Search: self._on_search,
            Reset: self._on_reset,
        }

    # ─── Dispatch ───────────────────────────────────────────────────────────

    def dispatch(self, event: Event) -> Any:
        """Apply one event. Listeners are told only when something changed."""
        handler = self._handlers.get(type(event))
        if handler is None:
            raise TypeError(f"Unsupported interaction event: {event!r}")
        before = self._snapshot()
        result = handler(event)
        if self._snapshot() != before:
            logger.debug("Interaction %s changed visual state", event)
            for listener in list(self._listeners):
                listener(event)
        return result

    def subscribe(self, listener: Listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _snapshot(self) -> tuple[Any, ...]:
        return (
            tuple(replace(v) for v in self.visuals.values()),
            tuple(self.link_states),
            tuple(self.draw_order),
            replace(self.tooltip),
            None if self.detail is None else replace(self.detail),
            self.hovered,
            self.pinned,
        )

    # ─── Queries ────────────────────────────────────────────────────────────

    def visual(self, node_id: str) -> NodeVisual:
        return self.visuals[node_id]

    def state_of(self, node_id: str) -> NodeState:
        return self.visuals[node_id].state

    def link_state(self, index: int) -> LinkState:
        return self.link_states[index]

    @property
    def details_open(self) -> bool:
        return self.detail is not None

    # ─── Shared Transitions ─────────────────────────────────────────────────

    def raise_node(self, node_id: str) -> None:
        """Move a node to the end of the draw order (drawn on top)."""
        if node_id in self.visuals and self.draw_order[-1:] != [node_id]:
            self.draw_order.remove(node_id)
            self.draw_order.append(node_id)

    def _emphasise(self, center: str, state: NodeState) -> None:
        """Mark ``center`` and its neighbours, fade the rest, light its links."""
        keep = self.graph.neighbors(center) | {center}
        for node_id, v in self.visuals.items():
            if node_id == center:
                v.state = state
            elif node_id in keep and v.state != NodeState.PINNED:
                v.state = NodeState.NEIGHBOR
            v.faded = node_id not in keep
        for i, link in enumerate(self.graph.links):
            touching = center in (link.source, link.target)
            self.link_states[i] = LinkState.HIGHLIGHTED if touching else LinkState.FADED

    def _clear_emphasis(self) -> None:
        for v in self.visuals.values():
            v.faded = False
        self.link_states = [LinkState.NORMAL] * len(self.graph.links)

    def _clear_temporary(self) -> None:
        """Drop hover highlights; a pinned node keeps its neighbours."""
        if self.pinned is None:
            for v in self.visuals.values():
                if v.state in (NodeState.HOVER, NodeState.NEIGHBOR):
                    v.state = NodeState.NEUTRAL
        self.hovered = None

    def _clear_all(self, *, search: bool = False) -> None:
        for v in self.visuals.values():
            v.state = NodeState.NEUTRAL
            v.faded = False
            if search:
                v.search = SearchMark.NONE
                v.focus_highlight = False
        self.link_states = [LinkState.NORMAL] * len(self.graph.links)
        self.hovered = None
        self.pinned = None

    # ─── Tooltip ────────────────────────────────────────────────────────────

    def show_tooltip(self, node_id: str, x: float | None, y: float | None) -> None:
        node = self.graph.node(node_id)
        if node is None or self.pinned is not None or x is None or y is None:
            self.hide_tooltip()
            return
        self.tooltip = Tooltip(
            visible=True,
            node_id=node.id,
            title=node.label or node.id,
            kind=node_kind(node),
            hint=CLICK_HINT if has_real_details(self.details.get(node.id)) else None,
            indicator_classes=(f"layer-{node.layer}", f"color-variant-{node.color_variant_index}"),
            x=x + self.config.tooltip.offset_x,
            y=y + self.config.tooltip.offset_y,
        )

    def move_tooltip(self, x: float, y: float) -> None:
        if self.tooltip.visible:
            self.tooltip.x = x + self.config.tooltip.offset_x
            self.tooltip.y = y + self.config.tooltip.offset_y

    def hide_tooltip(self) -> None:
        if self.tooltip.visible:
            self.tooltip = Tooltip()

    # ─── Details ────────────────────────────────────────────────────────────

    def detail_content(self, node: Node) -> DetailContent:
        """Build the detail panel model for ``node``."""
        title_classes = (
            f"title-layer-{node.layer}",
            f"color-variant-{node.color_variant_index}",
            node.text_color_class.value,
        )
        record = self.details.get(node.id)
        if not record:
            return DetailContent(
                node_id=node.id,
                title=node.label or node.id,
                message=DETAILS_UNAVAILABLE,
                title_classes=title_classes,
                fill_hex=node.fill_hex,
            )
        items = [str(item) for item in record.get("items") or []]
        photo = record.get("photoUrl") or record.get("photo_url")
        return DetailContent(
            node_id=node.id,
            title=str(record.get("title") or node.label or node.id),
            items=items,
            message=None if items else NO_SPECIFIC_DETAILS,
            photo_url=photo if node.layer == 0 and photo else None,
            title_classes=title_classes,
            fill_hex=node.fill_hex,
        )

    def hide_details(self) -> None:
        """Close the detail panel and release the pin. No-op when closed."""
        if self.detail is None:
            return
        if self.pinned is not None:
            pinned = self.pinned
            for node_id in self.graph.neighbors(pinned) | {pinned}:
                self.visuals[node_id].state = NodeState.NEUTRAL
            if self.hovered == pinned:
                self.hovered = None
            self.pinned = None
        self._clear_emphasis()
        self.detail = None

    def set_focus_highlight(self, node_id: str, on: bool) -> None:
        if node_id in self.visuals:
            self.visuals[node_id].focus_highlight = on
            if on:
                self.raise_node(node_id)

    def set_tour_target(self, node_id: str | None, on: bool) -> None:
        if node_id is None:
            for v in self.visuals.values():
                v.tour_target = False
        elif node_id in self.visuals:
            self.visuals[node_id].tour_target = on

    # ─── Handlers ───────────────────────────────────────────────────────────

    def _hover_in(self, node_id: str, x: float | None, y: float | None, *, keyboard: bool) -> None:
        if node_id not in self.visuals or self.pinned is not None:
            return
        if self.visuals[node_id].dragging and not keyboard:
            return
        if self.hovered is not None and self.hovered != node_id:
            self._clear_temporary()
        self.hovered = node_id
        self._emphasise(node_id, NodeState.HOVER)
        self.raise_node(node_id)
        if keyboard:
            self.hide_tooltip()
        else:
            self.show_tooltip(node_id, x, y)

    def _on_pointer_enter(self, event: PointerEnter) -> None:
        self._hover_in(event.node_id, event.x, event.y, keyboard=False)

    def _on_focus_in(self, event: FocusIn) -> None:
        self._hover_in(event.node_id, None, None, keyboard=True)

    def _on_pointer_move(self, event: PointerMove) -> None:
        v = self.visuals.get(event.node_id)
        if v is None or v.dragging or self.pinned is not None:
            self.hide_tooltip()
            return
        self.move_tooltip(event.x, event.y)

    def _on_pointer_leave(self, event: PointerLeave) -> None:
        v = self.visuals.get(event.node_id)
        if v is None or v.dragging or self.pinned is not None:
            return
        if self.hovered != event.node_id:
            return
        self._clear_temporary()
        self.hide_tooltip()
        self._clear_emphasis()

    def _on_focus_out(self, event: FocusOut) -> None:
        if event.node_id not in self.visuals:
            return
        if self.pinned is None:
            self._clear_temporary()
            self._clear_emphasis()
        self.hide_tooltip()

    def _on_activate(self, event: Activate) -> None:
        node = self.graph.node(event.node_id)
        if node is None:
            logger.warning("Cannot show details for unknown node %r", event.node_id)
            return
        self._clear_all()
        self.pinned = node.id
        self._emphasise(node.id, NodeState.PINNED)
        self.raise_node(node.id)
        self.detail = self.detail_content(node)
        self.hide_tooltip()

    def _on_click(self, event: Click) -> bool:
        blocked_at = self._click_blocks.pop(event.node_id, None)
        if blocked_at is not None and self.scheduler.now() - blocked_at < CLICK_BLOCK_WINDOW:
            logger.debug("Click on %s ignored, drag just ended", event.node_id)
            return False
        self._on_activate(Activate(event.node_id))
        return True

    def _on_drag_start(self, event: DragStart) -> None:
        node = self.graph.node(event.node_id)
        if node is None:
            return
        self.hide_details()
        self.simulator.set_alpha_target(DRAG_ALPHA_TARGET)
        self.simulator.fix(node.id, node.x, node.y)
        self.visuals[node.id].dragging = True
        self.raise_node(node.id)
        if self.hovered is not None and self.hovered != node.id:
            self._clear_temporary()
        self.hovered = node.id
        self._emphasise(node.id, NodeState.HOVER)
        self.show_tooltip(node.id, event.x, event.y)
        self._drag_starts[node.id] = (event.x, event.y, self.scheduler.now())

    def _on_drag_move(self, event: DragMove) -> None:
        if event.node_id not in self.visuals:
            return
        self.simulator.fix(event.node_id, event.x, event.y)
        self.move_tooltip(event.x, event.y)

    def _on_drag_end(self, event: DragEnd) -> bool:
        """Finish a drag. Returns True when the gesture was a tap."""
        if event.node_id not in self.visuals:
            return False
        self.simulator.set_alpha_target(0.0)
        self.simulator.release(event.node_id)
        self.visuals[event.node_id].dragging = False
        if self.hovered == event.node_id:
            self._clear_temporary()
        self._clear_emphasis()
        self.hide_tooltip()

        now = self.scheduler.now()
        start_x, start_y, started = self._drag_starts.pop(event.node_id, (event.x, event.y, now))
        distance = math.hypot(event.x - start_x, event.y - start_y)
        is_tap = distance < TAP_MAX_DISTANCE and now - started < TAP_MAX_DURATION
        if not is_tap:
            node_id = event.node_id
            self._click_blocks[node_id] = now
            self.scheduler.call_later(CLICK_BLOCK_CLEAR, lambda: self._click_blocks.pop(node_id, None))
        return is_tap

    def _on_search(self, event: Search) -> SearchResult:
        term = event.query.lower().strip()
        self.hide_details()
        self._clear_all(search=True)
        matches: list[str] = []
        if term:
            for node in self.graph.nodes:
                record = self.details.get(node.id) or {}
                items = " ".join(str(item) for item in record.get("items") or []).lower()
                label = (node.label or node.id).lower()
                v = self.visuals[node.id]
                if term in label or term in items:
                    v.search = SearchMark.MATCH
                    matches.append(node.id)
                    self.raise_node(node.id)
                else:
                    v.search = SearchMark.NON_MATCH

        result = SearchResult(query=term, matches=matches, message=NO_RESULTS if term and not matches else "")
        self.last_search = result
        if term and self.host is not None:
            if len(matches) == 1:
                self.host.focus_on_node(matches[0])
            else:
                self.host.relax_zoom()
        return result

    def _on_reset(self, event: Reset) -> None:
        self.hide_details()
        self._clear_all(search=True)
        self.hide_tooltip()
        self.last_search = SearchResult(query="")
        if self.host is not None:
            self.host.reset_camera()
        self.simulator.nudge()

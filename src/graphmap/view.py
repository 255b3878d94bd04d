"""Graph view — wires preprocessing, layout, camera, interaction and tour.

``GraphView`` is the object a host application talks to. It owns one
``LayoutSimulator``, one ``Camera``, one ``InteractionMachine`` and one
``Tour`` for a single ``Canvas``, and implements the host protocols those
components call back into.

A typical headless run:

    view = GraphView(Canvas(960, 640), nodes, links, details, scheduler=ManualScheduler())
    view.run_until_stable()
    svg = view.render()
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from graphmap.camera import Camera, ZoomTransform, focus_transform
from graphmap.config import ColorMode, GraphConfig
from graphmap.errors import GraphSetupError
from graphmap.interaction import Activate, Event, InteractionMachine, Reset, Search, SearchResult
from graphmap.links import CREATES, DEPENDS_ON, DEVELOPS, HAS_FOUNDATION, HAS_SUBCATEGORY, HAS_TASK, LEADS_TO
from graphmap.preprocess import preprocess
from graphmap.renderers import Renderer, SvgRenderer
from graphmap.scene import Scene, build_scene
from graphmap.scheduler import Debouncer, Scheduler
from graphmap.simulator import LayoutSimulator
from graphmap.templates import TemplateKind
from graphmap.tour import ESCAPE_KEYS, Tour, TourStep, resolve_steps

logger = logging.getLogger(__name__)

# ─── Constants ──────────────────────────────────────────────────────────────

SEARCH_DEBOUNCE = 0.3
RESIZE_DEBOUNCE = 0.25
RELAX_ABOVE_SCALE = 1.2
LAYER_NAMES = ("Profile", "Foundations", "Skills", "Impact", "Outcome")


@dataclass
class Canvas:
    """The surface a view draws into, plus the UI chrome around it."""

    width: float = 960.0
    height: float = 640.0
    content: str = ""
    menu_open: bool = False
    legend_open: bool = False
    search_text: str = ""


@dataclass(frozen=True)
class LegendEntry:
    label: str
    color: str | None = None
    kind: str = "swatch"
    link_type: str | None = None


@dataclass
class LegendSection:
    title: str
    entries: list[LegendEntry] = field(default_factory=list)


# ─── View ───────────────────────────────────────────────────────────────────


class GraphView:
    """One interactive graph on one canvas.

    Args:
        canvas: Target surface; None raises ``GraphSetupError``.
        nodes: Raw node records.
        links: Raw link records.
        details: Detail records by node id.
        config: Graph configuration; defaults when omitted.
        scheduler: Clock for animations, debouncing and tour timers.
        template_kind: Selects default tour steps and legend layout.
        meta: Template meta (tour settings, profile node id).
        tour_steps: Explicit tour steps, bypassing step resolution.
        skip_tour: Never auto-start the tour.
        base_dir: Directory that relative tour step files resolve against.
        seed: Simulation seed.
        renderer: Output renderer (SVG by default).
    """

    def __init__(
        self,
        canvas: Canvas | None,
        nodes: Iterable[Any],
        links: Iterable[Any],
        details: Mapping[str, Any] | None,
        config: GraphConfig | None = None,
        *,
        scheduler: Scheduler,
        template_kind: TemplateKind | str | None = None,
        meta: Mapping[str, Any] | None = None,
        tour_steps: Iterable[TourStep] | None = None,
        skip_tour: bool = False,
        base_dir: Path | None = None,
        seed: int = 0,
        renderer: Renderer | None = None,
    ) -> None:
        if canvas is None:
            raise GraphSetupError("Graph container not found")
        nodes = list(nodes or [])
        if not nodes:
            raise GraphSetupError("No nodes to display")
        if details is not None and not isinstance(details, Mapping):
            raise GraphSetupError("Node details must be a mapping of node id to record")

        self.canvas = canvas
        self.config = config or GraphConfig()
        self.scheduler = scheduler
        self.template_kind = template_kind
        self.meta = dict(meta or {})
        self.renderer = renderer or SvgRenderer()

        result = preprocess(nodes, links or [], details, self.config)
        if not result.graph.nodes:
            raise GraphSetupError("No valid nodes to display")
        self.graph = result.graph
        self.details = result.details

        self.simulator = LayoutSimulator(self.graph, self.config, canvas.width, canvas.height, seed=seed)
        self.camera = Camera(scheduler)
        self.machine = InteractionMachine(self.graph, self.details, self.config, self.simulator, scheduler, host=self)
        self._highlighted: str | None = None
        self._search = Debouncer(scheduler, SEARCH_DEBOUNCE, self.search_now)
        self._resize = Debouncer(scheduler, RESIZE_DEBOUNCE, self._apply_resize)

        if tour_steps is None:
            tour_steps = resolve_steps(template_kind, self.graph.nodes, self.details, self.meta, base_dir=base_dir)
        self.tour = Tour(self, scheduler, self.config, tour_steps, skip=skip_tour)
        if self.meta.get("walkthroughEnabled") is False:
            logger.info("Tour disabled by template")
        elif not skip_tour:
            self.on_stable(self.tour.start)

        logger.info(
            "Graph view ready: %d nodes, %d links on %.0fx%.0f",
            len(self.graph.nodes),
            len(self.graph.links),
            canvas.width,
            canvas.height,
        )

    # ─── Animation Seconds ──────────────────────────────────────────────────

    @property
    def duration(self) -> float:
        return self.config.animation.duration / 1000

    # ─── Layout ─────────────────────────────────────────────────────────────

    def on_stable(self, callback: Callable[[], Any]) -> None:
        self.simulator.on_stable(callback)

    def has_node(self, node_id: str) -> bool:
        return node_id in self.graph

    def run_until_stable(self, max_ticks: int = 1000) -> int:
        return self.simulator.run_until_stable(max_ticks)

    def frame(self) -> str:
        """Render-loop callback: advance the layout one tick and redraw."""
        self.simulator.tick()
        return self.render()

    def resize(self, width: float, height: float) -> None:
        """Adopt a new canvas size once resizing has been quiet for a moment."""
        self._resize(width, height)

    def _apply_resize(self, width: float, height: float) -> None:
        self.canvas.width = float(width)
        self.canvas.height = float(height)
        self.simulator.resize(width, height)

    # ─── Camera ─────────────────────────────────────────────────────────────

    def focus_on_node(self, node_id: str) -> None:
        """Centre and zoom on a node once the layout is stable, then flash it."""
        node = self.graph.node(node_id)
        if node is None:
            logger.warning("Node to focus not found: %s", node_id)
            return

        def focus() -> None:
            if not (math.isfinite(node.x) and math.isfinite(node.y)):
                logger.warning("Node %s has no valid position, cannot focus", node_id)
                return
            target = focus_transform(
                node.x, node.y, self.canvas.width, self.canvas.height, self.config.animation.focus_scale
            )
            self.machine.raise_node(node_id)
            self.camera.animate_to(target, self.duration, on_end=lambda: self._flash(node_id))

        self.on_stable(focus)

    def _flash(self, node_id: str) -> None:
        if self._highlighted is not None and self._highlighted != node_id:
            self.machine.set_focus_highlight(self._highlighted, False)
        self._highlighted = node_id
        self.machine.set_focus_highlight(node_id, True)

        def clear() -> None:
            if self._highlighted == node_id:
                self.machine.set_focus_highlight(node_id, False)
                self._highlighted = None

        self.scheduler.call_later(self.config.animation.highlight_duration / 1000, clear)

    def relax_zoom(self) -> None:
        """Zoom back out to scale 1 when searching from a close-up."""
        if self.camera.scale > RELAX_ABOVE_SCALE:
            self.camera.animate_to(ZoomTransform.identity(), self.duration / 2)

    def reset_camera(self) -> None:
        self.camera.reset(self.duration)

    def when_camera_settled(self, callback: Callable[[], Any]) -> None:
        self.camera.on_settled(callback)

    # ─── Panels ─────────────────────────────────────────────────────────────

    @property
    def menu_open(self) -> bool:
        return self.canvas.menu_open

    @property
    def details_open(self) -> bool:
        return self.machine.details_open

    @property
    def pinned_node(self) -> str | None:
        return self.machine.pinned

    def open_menu(self) -> None:
        self.canvas.menu_open = True

    def close_menu(self) -> None:
        self.canvas.menu_open = False

    def open_legend(self) -> None:
        self.canvas.legend_open = True
        self.canvas.menu_open = False

    def close_legend(self) -> None:
        self.canvas.legend_open = False

    def show_node_details(self, node_id: str) -> None:
        self.machine.dispatch(Activate(node_id))

    def hide_node_details(self) -> None:
        self.machine.hide_details()

    def reset_view(self) -> None:
        """Close every panel, clear the search, and reset highlights and zoom."""
        self.close_legend()
        self.close_menu()
        self._search.cancel()
        self.canvas.search_text = ""
        self.machine.dispatch(Reset())

    def handle_escape(self) -> str | None:
        """Close the topmost open thing: tour, details, legend, then menu."""
        if self.tour.is_active:
            self.tour.end()
            return "tour"
        if self.details_open:
            self.hide_node_details()
            return "details"
        if self.canvas.legend_open:
            self.close_legend()
            return "legend"
        if self.canvas.menu_open:
            self.close_menu()
            return "menu"
        return None

    def handle_key(self, key: str) -> str | None:
        if key in ESCAPE_KEYS:
            return self.handle_escape()
        return None

    # ─── Interaction ────────────────────────────────────────────────────────

    def dispatch(self, event: Event) -> Any:
        return self.machine.dispatch(event)

    def set_tour_target(self, node_id: str | None, on: bool) -> None:
        self.machine.set_tour_target(node_id, on)

    def set_search_text(self, text: str) -> None:
        self.search(text)

    def search(self, text: str) -> None:
        """Update the search box; the search itself runs after typing pauses."""
        self.canvas.search_text = text
        self._search(text)

    def search_now(self, text: str) -> SearchResult:
        return self.machine.dispatch(Search(text))

    # ─── Output ─────────────────────────────────────────────────────────────

    def scene(self) -> Scene:
        artifacts = self.tour.artifacts
        return build_scene(
            self.graph,
            self.machine,
            {n.id: self.simulator.node_radius(n) for n in self.graph.nodes},
            self.canvas.width,
            self.canvas.height,
            self.camera.transform,
            cursor_node=artifacts.cursor_node,
            highlighted=tuple(sorted(artifacts.highlighted)),
        )

    def render(self) -> str:
        self.canvas.content = self.renderer.render(self.scene())
        return self.canvas.content

    def render_error(self, message: str) -> str:
        self.canvas.content = self.renderer.render_error(message, self.canvas.width, self.canvas.height)
        return self.canvas.content

    def legend(self) -> list[LegendSection]:
        """Legend for the current color mode: priorities or layers."""
        if self.template_kind == TemplateKind.TASK_MANAGEMENT or self.config.color_mode == ColorMode.PRIORITY:
            return [
                LegendSection(
                    "Task Priority (Node Color)",
                    [LegendEntry(p, hex_) for p, hex_ in self.config.priority_colors_hex.items()],
                ),
                LegendSection(
                    "Dependency Layers (Vertical)",
                    [
                        LegendEntry(
                            "Layer 1 = tasks with no dependencies. Layer N depends on earlier layers. "
                            f"Current max layer: {self.graph.max_layer}",
                            kind="note",
                        )
                    ],
                ),
                LegendSection(
                    "Connection Types",
                    [
                        LegendEntry("Project anchors first-layer tasks", kind="line", link_type=HAS_TASK),
                        LegendEntry("Dependency (FS/SS/FF/SF)", kind="line", link_type=DEPENDS_ON),
                    ],
                ),
            ]

        layers = []
        for layer, base in sorted(self.config.base_layer_colors_hex.items()):
            name = LAYER_NAMES[layer] if layer < len(LAYER_NAMES) else f"Layer {layer}"
            parents = sum(1 for n in self.graph.nodes if n.layer == layer and n.is_parent)
            suffix = " (Colors vary by category)" if layer > 0 and parents > 1 else ""
            layers.append(LegendEntry(f"Layer {layer}: {name}{suffix}", base))
        layers.append(LegendEntry("Detail Node (inherits category color)", kind="detail"))
        return [
            LegendSection("Nodes by Layer", layers),
            LegendSection(
                "Connection Types",
                [
                    LegendEntry("Profile builds Foundation", kind="line", link_type=HAS_FOUNDATION),
                    LegendEntry("Category has Detail", kind="line", link_type=HAS_SUBCATEGORY),
                    LegendEntry("Foundation develops Skills", kind="line", link_type=DEVELOPS),
                    LegendEntry("Skills create Impact", kind="line", link_type=CREATES),
                    LegendEntry("Impact leads to Outcome", kind="line", link_type=LEADS_TO),
                ],
            ),
        ]

"""Guided tour — a linear sequence of steps that drives the view.

A step may focus the camera on a node (or reset it), highlight a UI element
by selector, and then demonstrate an interaction: a simulated hover, a
simulated click that opens the node's details, or simulated typing into the
search box. Demonstrations run on a chain of timers that start once the
camera has settled.

Every timer registered by a step is cancelled when the user moves on, and
every timer callback re-checks that the tour is still active on the same
step, so nothing from an abandoned step can touch the view.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from graphmap.config import GraphConfig
from graphmap.graph import Node
from graphmap.interaction import Event, PointerEnter, PointerLeave
from graphmap.scheduler import Handle, Scheduler
from graphmap.templates import PROJECT_END_ID, PROJECT_START_ID, TemplateKind, read_json

logger = logging.getLogger(__name__)

# ─── Constants ──────────────────────────────────────────────────────────────

MENU_PANEL = "#menu-panel"
ESCAPE_KEYS = ("Escape", "Esc")

FOCUS_DELAY = 0.05  # s before demos when the camera does not move
NODE_SETTLE = 0.15  # s added to the camera duration after focusing a node
RESET_SETTLE = 0.1  # s added to the camera duration after a reset
MENU_OPEN_DELAY = 0.35
HOVER_HOLD = 2.5
CLICK_DETAILS_DELAY = 0.3
CURSOR_HOLD = 0.5
DETAILS_HOLD = 3.5
SEARCH_MENU_DELAY = 0.3
TYPE_INTERVAL = 0.15
SEARCH_HOLD = 2.5

START_LABEL = "Start Tour"
NEXT_LABEL = "Next"
FINISH_LABEL = "Finish & Explore"
SKIP_LABEL = "Skip Tour"

_DEPENDENCY_GRAPH_RE = re.compile(r"dependency graph", re.IGNORECASE)


# ─── Steps ──────────────────────────────────────────────────────────────────


@dataclass
class TourStep:
    title: str
    content: str = ""
    node_id: str | None = None
    target: str | None = None
    position: str = "bottom"
    focus: bool = False
    hover_node: bool = False
    click_node: bool = False
    search_demo: str | None = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> TourStep:
        """Build a step from authored JSON (camelCase or snake_case keys)."""

        def get(camel: str, snake: str, default: Any = None) -> Any:
            return raw.get(camel, raw.get(snake, default))

        return cls(
            title=str(raw.get("title") or ""),
            content=str(raw.get("content") or ""),
            node_id=get("nodeId", "node_id"),
            target=raw.get("target"),
            position=raw.get("position") or "bottom",
            focus=bool(raw.get("focus", False)),
            hover_node=bool(get("hoverNode", "hover_node", False)),
            click_node=bool(get("clickNode", "click_node", False)),
            search_demo=get("searchDemo", "search_demo") or None,
        )


def node_step(node_id: str, title: str, content: str, *, hover: bool = False, click: bool = False) -> TourStep:
    return TourStep(title=title, content=content, node_id=node_id, focus=True, hover_node=hover, click_node=click)


EMPTY_STEP = TourStep(title="Empty Tour", content="No steps available.")


@dataclass
class TourCard:
    """What the tour overlay shows for the current step."""

    title: str
    content: str
    position: str
    next_label: str
    skip_label: str = SKIP_LABEL
    step: int = 0
    total: int = 1


# ─── Step Resolution ────────────────────────────────────────────────────────


def steps_from_markers(nodes: Iterable[Node], details: Mapping[str, Any]) -> list[TourStep]:
    """One hover step per node flagged with ``tour_marker`` or ``tour_step``, in node order."""
    steps = []
    for node in nodes:
        if not (node.tour_marker or node.tour_step):
            continue
        authored = node.tour_step or {}
        record = details.get(node.id) or {}
        items = record.get("items") or []
        steps.append(
            TourStep(
                title=str(authored.get("title") or record.get("title") or node.label or node.id),
                content=str(authored.get("content") or (items[0] if items else "")),
                node_id=node.id,
                position=authored.get("position") or "bottom",
                focus=True,
                hover_node=True,
            )
        )
    return steps


def _task_steps(nodes: list[Node]) -> list[TourStep]:
    start = next((n for n in nodes if n.template_type == "project-start" or n.id == PROJECT_START_ID), None)
    end = next((n for n in nodes if n.template_type == "project-end" or n.id == PROJECT_END_ID), None)
    criticals = [n for n in nodes if n.priority == "Critical"][:2]
    graph_task = next((n for n in nodes if n.label and _DEPENDENCY_GRAPH_RE.search(n.label)), None)

    steps = [
        TourStep(
            title="Welcome to Project View",
            content="This view visualizes tasks as layers computed from dependencies. "
            "Color shows priority; size indicates estimated hours.",
            position="center-bottom",
        ),
        node_step(start.id, f"Project Start: {start.label}", "The project start anchors layer 1 tasks.")
        if start
        else TourStep(title="Project Start", content="Layer 1 tasks have no prerequisites."),
        TourStep(
            title="Dependency Layers",
            content="Tasks are layered by dependency depth. Use this view to understand critical paths and blockers.",
            position="center-bottom",
        ),
    ]
    for task in criticals:
        steps.append(
            node_step(task.id, f"Critical Task: {task.label}", f"Priority: {task.priority}", hover=True, click=True)
        )
    if graph_task is not None:
        steps.append(
            node_step(graph_task.id, graph_task.label, "This task is about rendering the dependency graph.", click=True)
        )
    if end is not None:
        steps.append(node_step(end.id, f"Project Milestone: {end.label}", "Terminal tasks flow into this milestone."))
    steps.append(
        TourStep(
            title="Explore & Filter",
            content="Use the menu to search, filter by priority, or export views.",
            target=MENU_PANEL,
            position="bottom-left",
        )
    )
    return steps


def _career_steps(nodes: list[Node], meta: Mapping[str, Any]) -> list[TourStep]:
    by_id = {n.id: n for n in nodes}
    profile = by_id.get(meta.get("profileNodeId") or "profile")
    foundations = by_id.get("education") or by_id.get("experience")
    core = by_id.get(meta.get("coreNodeId") or "core-expertise")
    impact = by_id.get("business-impact")
    outcomes = by_id.get("positive-outcome")

    def pick(node: Node | None, step: Callable[[Node], TourStep], fallback: TourStep) -> TourStep:
        return step(node) if node is not None else fallback

    return [
        TourStep(
            title="Welcome!",
            content="This interactive graph is a template for showing your career journey.",
            position="center-bottom",
        ),
        pick(
            profile,
            lambda n: node_step(n.id, "Profile", "Start here to view summary and links.", click=True),
            TourStep(title="Profile", content="Profile node is the top of the graph."),
        ),
        pick(
            foundations,
            lambda n: node_step(n.id, "Foundations", "Education, experience, and community form the foundations."),
            TourStep(title="Foundations", content="Foundation nodes show origins."),
        ),
        pick(
            core,
            lambda n: node_step(
                n.id, "Core Expertise & Skills", "Highlight what you are good at and how it connects to outcomes."
            ),
            TourStep(title="Skills", content="Skills nodes show your expertise."),
        ),
        pick(
            impact,
            lambda n: node_step(n.id, "Impact", "Concrete examples of work that produced change."),
            TourStep(title="Impact", content="Impact shows measurable results."),
        ),
        pick(
            outcomes,
            lambda n: node_step(n.id, "Outcomes", "The results your impact led to."),
            TourStep(title="Outcomes", content="Outcomes are the end results."),
        ),
        TourStep(
            title="Controls & Search",
            content="Use the menu for search and the legend.",
            target=MENU_PANEL,
            position="bottom-left",
        ),
        TourStep(title="Start Exploring", content="Edit the template data and reload to see your changes."),
    ]


def default_steps(
    kind: TemplateKind | str | None,
    nodes: Iterable[Node],
    details: Mapping[str, Any],
    meta: Mapping[str, Any] | None = None,
) -> list[TourStep]:
    """Generated steps: node markers first, else the defaults for the template kind."""
    nodes = list(nodes)
    meta = meta or {}
    marked = steps_from_markers(nodes, details)
    if marked:
        return marked
    if kind == TemplateKind.TASK_MANAGEMENT:
        return _task_steps(nodes)
    return _career_steps(nodes, meta)


def _parse_steps(raw: Iterable[Any]) -> list[TourStep]:
    steps = []
    for entry in raw:
        if isinstance(entry, Mapping):
            steps.append(TourStep.from_mapping(entry))
        else:
            logger.warning("Skipping tour step that is not an object: %r", entry)
    return steps


def resolve_steps(
    kind: TemplateKind | str | None,
    nodes: Iterable[Node],
    details: Mapping[str, Any],
    meta: Mapping[str, Any] | None = None,
    *,
    base_dir: Path | None = None,
    loader: Callable[[Path], Any] = read_json,
) -> list[TourStep]:
    """Pick the steps of a tour.

    Order of precedence: inline ``walkthroughSteps`` in the template meta, a
    step file named by ``walkthroughStepsPath`` (relative paths resolve
    against ``base_dir``), then generated steps. A step file that cannot be
    loaded, or that is not a list, is logged and skipped.
    """
    meta = meta or {}
    inline = meta.get("walkthroughSteps")
    if isinstance(inline, list) and inline:
        return _parse_steps(inline)

    steps_path = str(meta.get("walkthroughStepsPath") or "").strip()
    if steps_path:
        path = Path(steps_path)
        if not path.is_absolute() and base_dir is not None:
            path = base_dir / path
        try:
            data = loader(path)
        except Exception as exc:
            logger.warning("Could not load tour steps from %s: %s", path, exc)
        else:
            if isinstance(data, list):
                return _parse_steps(data)
            logger.warning("Tour steps file %s is not a list", path)

    return default_steps(kind, nodes, details, meta)


# ─── Host ───────────────────────────────────────────────────────────────────


class TourHost(Protocol):
    """View operations a tour drives."""

    @property
    def menu_open(self) -> bool: ...

    @property
    def details_open(self) -> bool: ...

    @property
    def pinned_node(self) -> str | None: ...

    def has_node(self, node_id: str) -> bool: ...

    def focus_on_node(self, node_id: str) -> None: ...

    def reset_camera(self) -> None: ...

    def when_camera_settled(self, callback: Callable[[], Any]) -> None: ...

    def open_menu(self) -> None: ...

    def close_menu(self) -> None: ...

    def close_legend(self) -> None: ...

    def reset_view(self) -> None: ...

    def show_node_details(self, node_id: str) -> None: ...

    def hide_node_details(self) -> None: ...

    def dispatch(self, event: Event) -> Any: ...

    def set_search_text(self, text: str) -> None: ...

    def set_tour_target(self, node_id: str | None, on: bool) -> None: ...


# ─── Tour ───────────────────────────────────────────────────────────────────


@dataclass
class _Artifacts:
    """Everything a step's demonstrations left on the view."""

    cursor_node: str | None = None
    clicked: str | None = None
    hovered: str | None = None
    search_text: str | None = None
    targets: set[str] = field(default_factory=set)
    highlighted: set[str] = field(default_factory=set)


class Tour:
    """Linear walkthrough over a list of ``TourStep``.

    Step 0 is the welcome card; ``next()`` advances one step and executes its
    actions, and moving past the last step ends the tour. Only user input
    advances the tour.

    Args:
        host: The view the tour drives.
        scheduler: Clock for the demonstration timers.
        config: Graph configuration (animation duration).
        skip: Mark the tour completed without showing it.
    """

    def __init__(
        self,
        host: TourHost,
        scheduler: Scheduler,
        config: GraphConfig,
        steps: Iterable[TourStep] | None = None,
        *,
        skip: bool = False,
    ) -> None:
        self.host = host
        self.scheduler = scheduler
        self.config = config
        self.steps: list[TourStep] = [EMPTY_STEP]
        self.current = 0
        self.is_active = False
        self.completed = False
        self.skip_requested = skip
        self.artifacts = _Artifacts()
        self._handles: list[Handle] = []
        self._token = 0
        if steps is not None:
            self.set_steps(steps)

    @property
    def step(self) -> TourStep:
        return self.steps[self.current]

    @property
    def card(self) -> TourCard | None:
        if not self.is_active:
            return None
        step = self.step
        if self.current == 0:
            label = START_LABEL
        elif self.current == len(self.steps) - 1:
            label = FINISH_LABEL
        else:
            label = NEXT_LABEL
        return TourCard(
            title=step.title,
            content=step.content,
            position=step.position,
            next_label=label,
            step=self.current,
            total=len(self.steps),
        )

    def set_steps(self, steps: Iterable[TourStep]) -> None:
        """Replace the steps and rewind to the first one."""
        self.steps = list(steps) or [EMPTY_STEP]
        self.current = 0

    # ─── Lifecycle ──────────────────────────────────────────────────────────

    def start(self) -> bool:
        """Show the welcome card. Returns False when the tour does not start."""
        if self.is_active:
            logger.debug("Tour already active")
            return False
        if self.skip_requested:
            logger.info("Tour skipped by settings")
            self.completed = True
            return False
        if self.completed:
            logger.info("Tour previously completed, not starting")
            return False

        self.is_active = True
        self.current = 0
        self.host.hide_node_details()
        self.host.close_legend()
        if self.host.menu_open:
            self.host.close_menu()
        self.host.reset_view()
        logger.info("Starting tour with %d steps", len(self.steps))
        return True

    def next(self) -> None:
        """Advance one step, or end the tour from the last one."""
        if not self.is_active:
            return
        self._strip()
        if self.current < len(self.steps) - 1:
            self.current += 1
            self._execute(self.step)
        else:
            self.end()

    def end(self) -> None:
        if not self.is_active:
            return
        last = self.step
        self.is_active = False
        self._strip()
        if last.target == MENU_PANEL and self.host.menu_open:
            self.host.close_menu()
        self.completed = True
        logger.info("Tour ended at step %d of %d", self.current, len(self.steps))

    def skip(self) -> None:
        self.end()

    def handle_key(self, key: str) -> bool:
        """End the tour on Escape. Returns True when the key was consumed."""
        if key in ESCAPE_KEYS and self.is_active:
            self.end()
            return True
        return False

    # ─── Timers ─────────────────────────────────────────────────────────────

    def _guard(self, func: Callable[[], Any]) -> Callable[[], None]:
        token = self._token

        def run() -> None:
            if self.is_active and self._token == token:
                func()

        return run

    def _later(self, delay: float, func: Callable[[], Any]) -> None:
        self._handles.append(self.scheduler.call_later(delay, self._guard(func)))

    def _strip(self) -> None:
        """Cancel this step's timers and undo its demonstrations."""
        self._token += 1
        for handle in self._handles:
            handle.cancel()
        self._handles.clear()

        a = self.artifacts
        if a.targets:
            self.host.set_tour_target(None, False)
        if a.hovered is not None:
            self.host.dispatch(PointerLeave(a.hovered))
        if a.search_text is not None:
            self.host.set_search_text("")
        if a.clicked is not None and self.host.pinned_node == a.clicked:
            self.host.hide_node_details()
        self.artifacts = _Artifacts()

    # ─── Step Actions ───────────────────────────────────────────────────────

    def _execute(self, step: TourStep) -> None:
        duration = self.config.animation.duration / 1000
        delay = FOCUS_DELAY

        if step.focus:
            if step.node_id:
                self.host.focus_on_node(step.node_id)
                delay = duration + NODE_SETTLE
            else:
                self.host.reset_camera()
                delay = duration + RESET_SETTLE

        if step.target:
            self.artifacts.highlighted.add(step.target)
            if step.target == MENU_PANEL and step.search_demo and not self.host.menu_open:
                self.host.open_menu()
                delay = max(delay, MENU_OPEN_DELAY)

        if step.node_id:
            if self.host.has_node(step.node_id):
                self.host.set_tour_target(step.node_id, True)
                self.artifacts.targets.add(step.node_id)
            else:
                logger.warning("Tour target node not found: %s", step.node_id)

        self._later(delay, lambda: self.host.when_camera_settled(self._guard(lambda: self._demonstrate(step))))

    def _demonstrate(self, step: TourStep) -> None:
        present = step.node_id is not None and self.host.has_node(step.node_id)
        if step.hover_node and present:
            self._simulate_hover(step.node_id)
        if step.click_node and present:
            self._simulate_click(step.node_id)
        if step.search_demo:
            self._simulate_search(step.search_demo)

    def _simulate_hover(self, node_id: str) -> None:
        logger.debug("Simulating hover on %s", node_id)
        self.host.dispatch(PointerEnter(node_id))
        self.artifacts.hovered = node_id

        def leave() -> None:
            self.host.dispatch(PointerLeave(node_id))
            self.artifacts.hovered = None

        self._later(HOVER_HOLD, leave)

    def _simulate_click(self, node_id: str) -> None:
        logger.debug("Simulating click on %s", node_id)
        self.artifacts.cursor_node = node_id

        def close_details() -> None:
            if self.host.details_open:
                self.host.hide_node_details()
            self.artifacts.clicked = None

        def remove_cursor() -> None:
            self.artifacts.cursor_node = None
            self._later(DETAILS_HOLD, close_details)

        def show_details() -> None:
            self.host.show_node_details(node_id)
            self.artifacts.clicked = node_id
            self._later(CURSOR_HOLD, remove_cursor)

        self._later(CLICK_DETAILS_DELAY, show_details)

    def _simulate_search(self, term: str) -> None:
        logger.debug("Simulating search for %r", term)

        def type_from(i: int) -> None:
            text = term[: i + 1]
            self.artifacts.search_text = text
            self.host.set_search_text(text)
            if i + 1 < len(term):
                self._later(TYPE_INTERVAL, lambda: type_from(i + 1))
            else:
                self._later(SEARCH_HOLD, clear)

        def clear() -> None:
            self.host.set_search_text("")
            self.artifacts.search_text = None

        def begin() -> None:
            self.host.set_search_text("")
            self.artifacts.search_text = ""
            if term:
                self._later(TYPE_INTERVAL, lambda: type_from(0))

        if self.host.menu_open:
            begin()
        else:
            self.host.open_menu()
            self._later(SEARCH_MENU_DELAY, begin)

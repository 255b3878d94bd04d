"""Tests for tour.py — step resolution and the timed tour engine.

The tour drives a FakeHost that records every call; demonstrations are
stepped through on a ManualScheduler.
"""

from __future__ import annotations

import json
import logging

from graphmap.config import GraphConfig
from graphmap.interaction import PointerEnter, PointerLeave
from graphmap.preprocess import sanitize
from graphmap.scheduler import ManualScheduler
from graphmap.templates import PROJECT_START_ID, TemplateKind, build_task_template
from graphmap.tour import (
    EMPTY_STEP,
    FINISH_LABEL,
    MENU_PANEL,
    NEXT_LABEL,
    START_LABEL,
    Tour,
    TourStep,
    default_steps,
    node_step,
    resolve_steps,
    steps_from_markers,
)

# ─── Helpers ──────────────────────────────────────────────────────────────────


class FakeHost:
    """In-memory view: records calls, settles the camera immediately."""

    def __init__(self, nodes=("a", "b")):
        self.nodes = set(nodes)
        self.menu_open = False
        self.details_open = False
        self.pinned_node = None
        self.calls = []
        self.events = []
        self.search_texts = []

    def has_node(self, node_id):
        return node_id in self.nodes

    def focus_on_node(self, node_id):
        self.calls.append(("focus", node_id))

    def reset_camera(self):
        self.calls.append(("reset_camera",))

    def when_camera_settled(self, callback):
        callback()

    def open_menu(self):
        self.menu_open = True
        self.calls.append(("open_menu",))

    def close_menu(self):
        self.menu_open = False
        self.calls.append(("close_menu",))

    def close_legend(self):
        self.calls.append(("close_legend",))

    def reset_view(self):
        self.calls.append(("reset_view",))

    def show_node_details(self, node_id):
        self.details_open = True
        self.pinned_node = node_id
        self.calls.append(("show_details", node_id))

    def hide_node_details(self):
        self.details_open = False
        self.pinned_node = None
        self.calls.append(("hide_details",))

    def dispatch(self, event):
        self.events.append(event)

    def set_search_text(self, text):
        self.search_texts.append(text)

    def set_tour_target(self, node_id, on):
        self.calls.append(("target", node_id, on))


def make_tour(*steps: TourStep, host: FakeHost | None = None, skip: bool = False):
    """A started tour over a welcome step plus ``steps``; returns (tour, host, scheduler)."""
    host = host or FakeHost()
    scheduler = ManualScheduler()
    tour = Tour(host, scheduler, GraphConfig(), [TourStep(title="Welcome")] + list(steps), skip=skip)
    tour.start()
    return tour, host, scheduler


def make_nodes(*raw: dict):
    return sanitize(list(raw), []).nodes


# ─── Step Model Tests ─────────────────────────────────────────────────────────


class TestTourStep:
    def test_from_mapping_camel_case(self):
        """Authored camelCase keys map onto the step."""
        step = TourStep.from_mapping(
            {"title": "T", "nodeId": "a", "hoverNode": True, "searchDemo": "py", "target": MENU_PANEL}
        )
        assert step.node_id == "a"
        assert step.hover_node
        assert step.search_demo == "py"
        assert step.position == "bottom"

    def test_from_mapping_snake_case(self):
        """snake_case keys work too."""
        step = TourStep.from_mapping({"title": "T", "node_id": "b", "click_node": True, "focus": True})
        assert step.node_id == "b"
        assert step.click_node
        assert step.focus

    def test_node_step_focuses(self):
        """node_step always focuses its node."""
        step = node_step("a", "A", "text", hover=True)
        assert step.focus and step.hover_node and not step.click_node


# ─── Step Resolution Tests ────────────────────────────────────────────────────


class TestResolveSteps:
    def test_inline_steps_win(self):
        """Inline walkthroughSteps are used as-is, skipping non-objects."""
        meta = {"walkthroughSteps": [{"title": "Inline", "nodeId": "x"}, "junk"]}
        steps = resolve_steps(TemplateKind.CAREER, [], {}, meta)
        assert [s.title for s in steps] == ["Inline"]

    def test_steps_file_relative_to_base_dir(self, tmp_path):
        """walkthroughStepsPath resolves against base_dir."""
        (tmp_path / "steps.json").write_text(json.dumps([{"title": "From file"}]), encoding="utf-8")
        steps = resolve_steps(TemplateKind.CAREER, [], {}, {"walkthroughStepsPath": "steps.json"}, base_dir=tmp_path)
        assert [s.title for s in steps] == ["From file"]

    def test_missing_file_falls_back(self, tmp_path, caplog):
        """An unreadable steps file is logged and generated steps are used."""
        with caplog.at_level(logging.WARNING, logger="graphmap.tour"):
            steps = resolve_steps(
                TemplateKind.CAREER, [], {}, {"walkthroughStepsPath": "nope.json"}, base_dir=tmp_path
            )
        assert steps[0].title == "Welcome!"
        assert "nope.json" in caplog.text

    def test_non_list_file_falls_back(self):
        """A steps file holding an object is ignored."""
        steps = resolve_steps(
            TemplateKind.CAREER, [], {}, {"walkthroughStepsPath": "/steps.json"}, loader=lambda path: {"a": 1}
        )
        assert steps[0].title == "Welcome!"

    def test_markers(self):
        """Flagged nodes become hover steps titled from their tour step or details."""
        nodes = make_nodes(
            {"id": "a", "label": "Alpha", "tourMarker": True},
            {"id": "b", "label": "Beta"},
            {"id": "c", "label": "Gamma", "tourStep": {"title": "Look here", "content": "Custom"}},
        )
        steps = steps_from_markers(nodes, {"a": {"title": "Alpha Area", "items": ["First item"]}})
        assert [(s.node_id, s.title, s.content) for s in steps] == [
            ("a", "Alpha Area", "First item"),
            ("c", "Look here", "Custom"),
        ]
        assert all(s.hover_node and s.focus for s in steps)

    def test_markers_take_precedence(self):
        """Marked nodes replace the kind's default steps."""
        nodes = make_nodes({"id": "a", "tourMarker": True})
        assert len(default_steps(TemplateKind.TASK_MANAGEMENT, nodes, {})) == 1

    def test_career_defaults(self):
        """Eight career steps; the profile step focuses and clicks the profile."""
        nodes = make_nodes({"id": "profile", "type": "parent"}, {"id": "core-expertise", "type": "parent"})
        steps = default_steps(TemplateKind.CAREER, nodes, {})
        assert len(steps) == 8
        assert steps[1].node_id == "profile" and steps[1].click_node
        assert steps[2].node_id is None, "No foundations node → generic step"
        assert steps[3].title == "Core Expertise & Skills"
        assert steps[6].target == MENU_PANEL

    def test_task_defaults(self):
        """Task steps visit the start, critical tasks, the graph task and the end."""
        template = build_task_template(
            "t",
            "T",
            {
                "project": {"name": "Launch"},
                "tasks": [
                    {"task_id": 1, "task_name": "Design", "priority": "Critical"},
                    {"task_id": 2, "task_name": "Render dependency graph", "requisites": [1]},
                ],
            },
        )
        nodes = sanitize(template.nodes, template.links).nodes
        steps = default_steps(TemplateKind.TASK_MANAGEMENT, nodes, template.details, template.meta)
        titles = [s.title for s in steps]
        assert titles[0] == "Welcome to Project View"
        assert titles[1] == "Project Start: Start: Launch"
        assert "Critical Task: Design" in titles
        assert "Render dependency graph" in titles
        assert titles[-2] == "Project Milestone: End: Launch"
        assert steps[-1].target == MENU_PANEL
        assert steps[1].node_id == PROJECT_START_ID


# ─── Tour Lifecycle Tests ─────────────────────────────────────────────────────


class TestTourLifecycle:
    def test_start_prepares_view(self):
        """Starting closes details and legend, resets the view and shows the welcome card."""
        tour, host, _ = make_tour(TourStep(title="One"))
        assert tour.is_active
        assert ("hide_details",) in host.calls
        assert ("close_legend",) in host.calls
        assert ("reset_view",) in host.calls
        assert ("close_menu",) not in host.calls, "Menu was closed already"
        assert tour.card.next_label == START_LABEL
        assert tour.card.total == 2

    def test_start_closes_open_menu(self):
        """An open menu is closed on start."""
        host = FakeHost()
        host.menu_open = True
        make_tour(host=host)
        assert not host.menu_open

    def test_skip_setting(self):
        """skip=True marks the tour completed without showing it."""
        tour, host, _ = make_tour(TourStep(title="One"), skip=True)
        assert not tour.is_active
        assert tour.completed
        assert host.calls == []

    def test_start_twice(self):
        """A running tour does not restart."""
        tour, _, _ = make_tour(TourStep(title="One"))
        assert tour.start() is False

    def test_completed_not_restarted(self):
        """After ending, start() refuses."""
        tour, _, _ = make_tour(TourStep(title="One"))
        tour.end()
        assert tour.completed
        assert tour.start() is False

    def test_labels(self):
        """Start → Next → Finish labels across three steps."""
        tour, _, _ = make_tour(TourStep(title="One"), TourStep(title="Two"))
        assert tour.card.next_label == START_LABEL
        tour.next()
        assert tour.card.next_label == NEXT_LABEL
        tour.next()
        assert tour.card.next_label == FINISH_LABEL
        tour.next()
        assert tour.card is None
        assert tour.completed

    def test_escape_ends(self):
        """Escape ends an active tour; other keys are ignored."""
        tour, _, _ = make_tour(TourStep(title="One"))
        assert tour.handle_key("x") is False
        assert tour.handle_key("Escape") is True
        assert not tour.is_active
        assert tour.handle_key("Escape") is False

    def test_empty_steps(self):
        """An empty step list shows the placeholder card."""
        tour = Tour(FakeHost(), ManualScheduler(), GraphConfig(), [])
        assert tour.steps == [EMPTY_STEP]

    def test_end_closes_menu_from_menu_step(self):
        """Ending on a menu step closes the menu it opened."""
        tour, host, _ = make_tour(TourStep(title="Menu", target=MENU_PANEL, search_demo="a"))
        tour.next()
        assert host.menu_open
        tour.end()
        assert not host.menu_open


# ─── Demonstration Tests ──────────────────────────────────────────────────────


class TestDemonstrations:
    def test_focus_and_target(self):
        """A node step focuses the camera and marks the node as tour target."""
        tour, host, _ = make_tour(node_step("a", "A", ""))
        tour.next()
        assert ("focus", "a") in host.calls
        assert ("target", "a", True) in host.calls

    def test_missing_target_node(self, caplog):
        """A step naming an unknown node logs a warning and sets no target."""
        tour, host, _ = make_tour(node_step("ghost", "Ghost", ""))
        with caplog.at_level(logging.WARNING, logger="graphmap.tour"):
            tour.next()
        assert not any(c[0] == "target" for c in host.calls)
        assert "ghost" in caplog.text

    def test_focus_without_node_resets(self):
        """focus without a node resets the camera."""
        tour, host, _ = make_tour(TourStep(title="Overview", focus=True))
        tour.next()
        assert ("reset_camera",) in host.calls

    def test_hover_after_camera_settles(self):
        """Hover fires after duration + 0.15 s and ends 2.5 s later."""
        tour, host, scheduler = make_tour(node_step("a", "A", "", hover=True))
        tour.next()
        scheduler.advance(0.74)
        assert host.events == []
        scheduler.advance(0.02)
        assert host.events == [PointerEnter("a")]
        scheduler.advance(2.5)
        assert host.events == [PointerEnter("a"), PointerLeave("a")]

    def test_click_opens_then_closes_details(self):
        """Details open 0.3 s after the camera settles and close 4 s later."""
        tour, host, scheduler = make_tour(node_step("b", "B", "", click=True))
        tour.next()
        scheduler.advance(0.75 + 0.31)
        assert host.details_open
        assert tour.artifacts.cursor_node == "b"
        scheduler.advance(0.5)
        assert tour.artifacts.cursor_node is None
        scheduler.advance(3.5)
        assert not host.details_open

    def test_next_closes_clicked_details(self):
        """Moving on while a simulated click still has details open closes them."""
        tour, host, scheduler = make_tour(node_step("a", "A", "", click=True), node_step("b", "B", "", hover=True))
        tour.next()
        scheduler.advance(0.75 + 0.31)
        assert host.pinned_node == "a"
        tour.next()
        assert not host.details_open, "Details from the previous step must close"
        assert host.pinned_node is None
        scheduler.advance(0.76)
        assert host.events == [PointerEnter("b")]

    def test_next_keeps_details_the_user_opened(self):
        """Details opened on another node after the simulated click are left alone."""
        tour, host, scheduler = make_tour(node_step("a", "A", "", click=True), TourStep(title="Plain"))
        tour.next()
        scheduler.advance(0.75 + 0.31)
        host.show_node_details("b")
        tour.next()
        assert host.pinned_node == "b"

    def test_search_types_then_clears(self):
        """Search demo opens the menu, types one character per tick, then clears."""
        tour, host, scheduler = make_tour(TourStep(title="Search", target=MENU_PANEL, search_demo="ab"))
        tour.next()
        assert host.menu_open
        scheduler.advance(0.36)
        assert host.search_texts == [""]
        scheduler.advance(0.3)
        assert host.search_texts == ["", "a", "ab"]
        scheduler.advance(2.5)
        assert host.search_texts == ["", "a", "ab", ""]

    def test_next_strips_pending_demos(self):
        """Moving on mid-hover leaves the node, clears the target and cancels timers."""
        tour, host, scheduler = make_tour(node_step("a", "A", "", hover=True), TourStep(title="Plain"))
        tour.next()
        scheduler.advance(1.0)
        assert host.events == [PointerEnter("a")]
        tour.next()
        assert host.events == [PointerEnter("a"), PointerLeave("a")]
        assert ("target", None, False) in host.calls
        scheduler.advance(10)
        assert host.events == [PointerEnter("a"), PointerLeave("a")], "No timers from the old step may fire"

    def test_end_before_demo_cancels(self):
        """Ending before the camera settles means the demo never runs."""
        tour, host, scheduler = make_tour(node_step("a", "A", "", hover=True, click=True))
        tour.next()
        tour.skip()
        scheduler.advance(10)
        assert host.events == []
        assert not host.details_open

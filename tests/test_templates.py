"""Tests for templates.py — payload validation, career/task builders and the template store."""

from __future__ import annotations

import json
import logging

import pytest

from graphmap.errors import TemplateError
from graphmap.templates import (
    PROJECT_END_ID,
    PROJECT_START_ID,
    TemplateKind,
    TemplateStore,
    build_task_template,
    build_template,
    convert_raw_graph,
    dependency_link_type,
    normalize_priority,
    read_json,
    validate_payload,
)

# ─── Helpers ──────────────────────────────────────────────────────────────────


def make_career_payload() -> dict:
    """Graph-database export: two domains, one skill, one node without a layer."""
    return {
        "rawNodes": [
            {"id": "profile", "labels": ["Domain"], "properties": {"name": "Jane Doe", "layer": 0}},
            {"id": "education", "labels": ["Domain"], "properties": {"name": "Education", "layer": 1}},
            {"id": "degree", "labels": ["Skill"], "properties": {"name": "BSc", "layer": "1", "parent": "education"}},
            {"id": "nolayer", "labels": [], "properties": {}},
        ],
        "rawRelationships": [
            {"source": "profile", "target": "education", "type": "HAS_FOUNDATION"},
            {"source": {"id": "education"}, "target": {"id": "degree"}},
            {"source": "profile", "target": "ghost", "type": "LEADS_TO"},
        ],
        "details": {"profile": {"title": "Jane", "items": ["Engineer"]}},
    }


def make_task_payload() -> dict:
    """Design → Build dependency graph → Test, with mixed predecessor shapes."""
    return {
        "project": {"name": "Launch", "description": "Ship it"},
        "tasks": [
            {"task_id": 1, "task_name": "Design", "priority": "critical", "estimated_hours": 10},
            {
                "task_id": 2,
                "task_name": "Build dependency graph",
                "priority": "High",
                "estimated_hours": 30,
                "requisites": [1],
                "category_name": "Frontend",
            },
            {
                "task_id": 3,
                "task_name": "Test",
                "estimated_hours": "abc",
                "dependencies": [{"predecessor_task_id": 2, "type": "ss"}],
            },
        ],
    }


def write_json(path, data) -> None:
    path.write_text(json.dumps(data), encoding="utf-8")


def link_triples(template) -> list[tuple[str, str, str]]:
    return [(link["source"], link["target"], link["type"]) for link in template.links]


# ─── Validation Tests ─────────────────────────────────────────────────────────


class TestValidatePayload:
    def test_career_shape(self):
        """rawNodes + rawRelationships + details → career."""
        assert validate_payload(make_career_payload()) == TemplateKind.CAREER

    def test_task_shape(self):
        """project + tasks → task-management."""
        assert validate_payload(make_task_payload()) == TemplateKind.TASK_MANAGEMENT

    def test_empty_details_rejected(self):
        """A career export with empty details matches neither shape."""
        with pytest.raises(TemplateError):
            validate_payload({"rawNodes": [], "rawRelationships": [], "details": {}})

    def test_non_object_rejected(self):
        """Lists and scalars are not payloads."""
        with pytest.raises(TemplateError):
            validate_payload([])
        with pytest.raises(TemplateError):
            validate_payload({"tasks": []})


# ─── Career Template Tests ────────────────────────────────────────────────────


class TestConvertRawGraph:
    def test_nodes(self):
        """Domain → parent; missing name → 'Node <id>'; layer strings parsed; bad layer → 0."""
        payload = make_career_payload()
        nodes, _ = convert_raw_graph(payload["rawNodes"], payload["rawRelationships"])
        by_id = {n["id"]: n for n in nodes}
        assert by_id["profile"]["type"] == "parent"
        assert by_id["degree"]["type"] == "child"
        assert by_id["degree"]["layer"] == 1
        assert by_id["degree"]["parentId"] == "education"
        assert by_id["nolayer"]["layer"] == 0
        assert by_id["nolayer"]["label"] == "Node nolayer"

    def test_links(self, caplog):
        """Object endpoints unwrap, missing type → RELATES_TO, unknown endpoints dropped."""
        payload = make_career_payload()
        with caplog.at_level(logging.WARNING, logger="graphmap.templates"):
            _, links = convert_raw_graph(payload["rawNodes"], payload["rawRelationships"])
        assert [(link["source"], link["target"], link["type"]) for link in links] == [
            ("profile", "education", "HAS_FOUNDATION"),
            ("education", "degree", "RELATES_TO"),
        ]
        assert "ghost" in caplog.text

    def test_duplicate_ids(self):
        """The first node with an id wins."""
        nodes, _ = convert_raw_graph(
            [{"id": "a", "properties": {"name": "First"}}, {"id": "a", "properties": {"name": "Second"}}], []
        )
        assert [n["label"] for n in nodes] == ["First"]

    def test_build_career(self):
        """build_template carries details and defaults the description to the name."""
        template = build_template("career", "Career", make_career_payload())
        assert template.kind == TemplateKind.CAREER
        assert template.details["profile"]["title"] == "Jane"
        assert template.description == "Career"
        assert template.tasks == []


# ─── Task Template Tests ──────────────────────────────────────────────────────


class TestTaskHelpers:
    def test_normalize_priority(self):
        """Case-insensitive match; anything else → Medium."""
        assert normalize_priority("critical") == "Critical"
        assert normalize_priority(" LOW ") == "Low"
        assert normalize_priority("urgent") == "Medium"
        assert normalize_priority(None) == "Medium"

    def test_dependency_link_type(self):
        """Structured dependency types become DEPENDS_<TYPE>."""
        assert dependency_link_type({"type": "ss"}) == "DEPENDS_SS"
        assert dependency_link_type({"predecessor_task_id": 1}) == "DEPENDS_ON"
        assert dependency_link_type(None) == "DEPENDS_ON"


class TestBuildTaskTemplate:
    def test_nodes_and_layers(self):
        """Start, end, then tasks; the end sits one layer below the deepest task."""
        template = build_task_template("tasks", "Tasks", make_task_payload())
        by_id = {n["id"]: n for n in template.nodes}
        assert [n["id"] for n in template.nodes] == [PROJECT_START_ID, PROJECT_END_ID, "task-1", "task-2", "task-3"]
        assert by_id[PROJECT_START_ID]["layer"] == 0
        assert [by_id[f"task-{i}"]["layer"] for i in (1, 2, 3)] == [1, 2, 3]
        assert by_id[PROJECT_END_ID]["layer"] == 4
        assert by_id["task-1"]["priority"] == "Critical"
        assert by_id["task-3"]["priority"] == "Medium"
        assert by_id["task-3"]["estimatedHours"] == 0.0
        assert by_id["task-3"]["status"] == "Not Started"

    def test_links(self):
        """Roots hang off the start, predecessors become DEPENDS_*, terminals feed the end."""
        template = build_task_template("tasks", "Tasks", make_task_payload())
        assert link_triples(template) == [
            (PROJECT_START_ID, "task-1", "HAS_TASK"),
            ("task-1", "task-2", "DEPENDS_ON"),
            ("task-2", "task-3", "DEPENDS_SS"),
            ("task-3", PROJECT_END_ID, "DEPENDS_FS"),
        ]

    def test_details(self):
        """Task details summarise priority, hours, layer, category and predecessors."""
        template = build_task_template("tasks", "Tasks", make_task_payload())
        items = template.details["task-2"]["items"]
        assert items[0] == "Priority: High | Status: Not Started"
        assert "Estimated hours: 30" in items
        assert "Dependency layer: 2" in items
        assert "Category: Frontend" in items
        assert items[-1] == "Depends on: Design"
        assert template.details["task-1"]["items"][-1] == "Depends on: none"
        assert "Ship it" in template.details[PROJECT_START_ID]["items"]

    def test_defaults(self):
        """Priority coloring, hour sizing and tour meta are filled in."""
        template = build_task_template("tasks", "Tasks", make_task_payload())
        assert template.config_overrides["colorMode"] == "priority"
        assert template.config_overrides["sizeMode"] == "hours"
        assert template.config_overrides["taskSizing"]["minHours"] == 2
        assert template.config_overrides["taskSizing"]["maxHours"] == 40
        assert template.meta["walkthroughEnabled"] is True
        assert template.meta["profileNodeId"] == PROJECT_START_ID
        assert "walkthroughStepsPath" not in template.meta

    def test_sizing_follows_hours(self):
        """Hours beyond the defaults widen the sizing range."""
        payload = {"project": {"name": "P"}, "tasks": [{"task_id": 1, "estimated_hours": 120}]}
        template = build_task_template("t", "T", payload)
        assert template.config_overrides["taskSizing"]["maxHours"] == 120

    def test_cycle(self):
        """A ⇄ B — both in layer 1, flagged in details, no start or end links."""
        payload = {
            "project": {"name": "Loop"},
            "tasks": [{"task_id": 1, "requisites": [2]}, {"task_id": 2, "requisites": [1]}],
        }
        template = build_task_template("loop", "Loop", payload)
        by_id = {n["id"]: n for n in template.nodes}
        assert by_id["task-1"]["layer"] == 1
        assert by_id["task-2"]["layer"] == 1
        assert by_id[PROJECT_END_ID]["layer"] == 2
        assert "Warning: dependency cycle detected." in template.details["task-1"]["items"]
        assert all(t[2].startswith("DEPENDS_ON") for t in link_triples(template))

    def test_tour_file_beside_source(self, tmp_path):
        """A tour/graph-tour.json next to the source is picked up."""
        (tmp_path / "tour").mkdir()
        write_json(tmp_path / "tour" / "graph-tour.json", [])
        template = build_task_template("tasks", "Tasks", make_task_payload(), source=tmp_path / "tasks.json")
        assert template.meta["walkthroughStepsPath"].endswith("graph-tour.json")


class TestBuildTemplate:
    def test_kind_mismatch(self):
        """Declaring task-management for a career payload fails."""
        with pytest.raises(TemplateError):
            build_template("c", "C", make_career_payload(), kind="task-management")

    def test_unknown_kind(self):
        """An unknown kind string is a ValueError."""
        with pytest.raises(ValueError):
            build_template("c", "C", make_career_payload(), kind="bogus")

    def test_embedded_graph_template(self):
        """A task payload embedding a career graph is built as that graph."""
        payload = make_task_payload()
        payload["graphTemplate"] = make_career_payload()
        template = build_template("mixed", "Mixed", payload)
        assert template.kind == TemplateKind.CAREER
        assert {n["id"] for n in template.nodes} >= {"profile", "education"}


# ─── TemplateStore Tests ──────────────────────────────────────────────────────


class TestTemplateStore:
    def make_store(self, tmp_path):
        write_json(tmp_path / "tasks.json", make_task_payload())
        write_json(tmp_path / "career.json", make_career_payload())
        write_json(
            tmp_path / "registry.json",
            [
                {"id": "tasks", "name": "Tasks", "type": "task-management", "path": "tasks.json"},
                {"id": "career", "name": "Career", "type": "career", "path": "career.json"},
                {"id": "broken", "path": "missing.json"},
                {"name": "no id"},
                {"id": "wrong", "type": "career", "path": "tasks.json"},
            ],
        )
        store = TemplateStore()
        loaded = store.load_registry(tmp_path / "registry.json")
        return store, loaded

    def test_registry_skips_bad_entries(self, tmp_path):
        """Missing files, malformed entries and kind mismatches are skipped."""
        store, loaded = self.make_store(tmp_path)
        assert [t.id for t in loaded] == ["tasks", "career"]
        assert len(store) == 2
        assert "broken" not in store

    def test_default_prefers_career(self, tmp_path):
        """The first career template is the default even when listed second."""
        store, _ = self.make_store(tmp_path)
        assert store.default_id() == "career"
        assert store.resolve().id == "career"

    def test_resolve_unknown_falls_back(self, tmp_path, caplog):
        """An unknown id resolves to the default with a warning."""
        store, _ = self.make_store(tmp_path)
        with caplog.at_level(logging.WARNING, logger="graphmap.templates"):
            assert store.resolve("nope").id == "career"
        assert "nope" in caplog.text

    def test_layers_cached(self, tmp_path):
        """layers_for computes once per template; career templates have none."""
        store, _ = self.make_store(tmp_path)
        first = store.layers_for("tasks")
        assert first.layer_of(3) == 3
        assert store.layers_for("tasks") is first
        with pytest.raises(TemplateError):
            store.layers_for("career")
        with pytest.raises(TemplateError):
            store.layers_for("missing")

    def test_clear(self, tmp_path):
        """clear empties the store; resolving then fails."""
        store, _ = self.make_store(tmp_path)
        store.clear()
        assert len(store) == 0
        with pytest.raises(TemplateError):
            store.resolve()

    def test_load_file_id_from_stem(self, tmp_path):
        """Without an explicit id the file stem is used."""
        write_json(tmp_path / "my-graph.json", make_career_payload())
        template = TemplateStore().load_file(tmp_path / "my-graph.json")
        assert template.id == "my-graph"
        assert template.name == "my-graph"

    def test_registry_not_a_list(self, tmp_path):
        """A registry that is not a list is an error."""
        write_json(tmp_path / "registry.json", {"id": "x"})
        with pytest.raises(TemplateError):
            TemplateStore().load_registry(tmp_path / "registry.json")

    def test_read_json_errors(self, tmp_path):
        """Unreadable or invalid JSON raises TemplateError."""
        (tmp_path / "bad.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(TemplateError):
            read_json(tmp_path / "bad.json")
        with pytest.raises(TemplateError):
            read_json(tmp_path / "absent.json")

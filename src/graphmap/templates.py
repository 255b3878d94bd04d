"""Graph templates — loading, building, and a registry of named graphs.

Two payload shapes are understood:

- career exports: ``rawNodes`` + ``rawRelationships`` + ``details``, as
  written by a graph database dump (nodes carry ``labels`` and
  ``properties``).
- task databases: ``project`` + ``tasks``. Tasks are layered by their
  predecessors and wrapped between a project start and a project end
  milestone.

Both are turned into a ``Template`` holding raw node/link records that the
preprocessor consumes.
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from graphmap.errors import TemplateError
from graphmap.layering import LayerAssignment, index_tasks, predecessor_ids
from graphmap.links import DEPENDS_FS, DEPENDS_ON, DEPENDS_PREFIX, HAS_TASK, RELATES_TO

logger = logging.getLogger(__name__)

PROJECT_START_ID = "project-start"
PROJECT_END_ID = "project-end"
PRIORITIES = ("Critical", "High", "Medium", "Low")
DEFAULT_PRIORITY = "Medium"
DEFAULT_STATUS = "Not Started"
TOUR_FILE = Path("tour") / "graph-tour.json"


class TemplateKind(str, Enum):
    CAREER = "career"
    TASK_MANAGEMENT = "task-management"


@dataclass
class Template:
    """A named graph ready for preprocessing.

    ``nodes`` and ``links`` are raw mappings in the camelCase shape the
    preprocessor reads. ``tasks`` keeps the source tasks of a task template so
    its layering can be recomputed.
    """

    id: str
    name: str
    kind: TemplateKind
    nodes: list[dict[str, Any]] = field(default_factory=list)
    links: list[dict[str, Any]] = field(default_factory=list)
    details: dict[str, Any] = field(default_factory=dict)
    meta: dict[str, Any] = field(default_factory=dict)
    config_overrides: dict[str, Any] = field(default_factory=dict)
    description: str = ""
    tasks: list[dict[str, Any]] = field(default_factory=list)


# ─── Validation ─────────────────────────────────────────────────────────────


def validate_payload(data: Any) -> TemplateKind:
    """Return the payload's kind, or raise ``TemplateError`` if it has neither shape."""
    if not isinstance(data, Mapping):
        raise TemplateError("Template payload is not an object")
    if (
        isinstance(data.get("rawNodes"), list)
        and isinstance(data.get("rawRelationships"), list)
        and data.get("details")
    ):
        return TemplateKind.CAREER
    if data.get("project") and isinstance(data.get("tasks"), list):
        return TemplateKind.TASK_MANAGEMENT
    raise TemplateError("Payload does not match the career or task-management template shape")


# ─── Career Exports ─────────────────────────────────────────────────────────


def _endpoint_id(value: Any) -> Any:
    return value.get("id") if isinstance(value, Mapping) else value


def convert_raw_graph(
    raw_nodes: Iterable[Any], raw_relationships: Iterable[Any]
) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    """Convert a graph database export into node and link records.

    Nodes labelled ``Domain`` become parents; everything else is a child.
    Entries with missing ids, duplicate ids, or unknown endpoints are skipped
    with a warning.
    """
    nodes: list[dict[str, Any]] = []
    seen: set[str] = set()

    for raw in raw_nodes:
        node_id = raw.get("id") if isinstance(raw, Mapping) else None
        if not isinstance(node_id, str) or not node_id:
            logger.warning("Skipping raw node without a string id: %r", raw)
            continue
        if node_id in seen:
            logger.warning("Skipping duplicate raw node id %s", node_id)
            continue
        props = raw.get("properties") or {}
        labels = raw.get("labels") or []
        try:
            layer = int(props.get("layer"))
        except (TypeError, ValueError):
            logger.warning("Node %s has invalid or missing layer, using 0", node_id)
            layer = 0
        nodes.append(
            {
                "id": node_id,
                "label": props.get("name") or f"Node {node_id}",
                "type": "parent" if "Domain" in labels else "child",
                "layer": layer,
                "parentId": props.get("parent") or None,
            }
        )
        seen.add(node_id)

    links: list[dict[str, Any]] = []
    for i, rel in enumerate(raw_relationships):
        if not isinstance(rel, Mapping):
            logger.warning("Skipping invalid raw relationship at index %d: %r", i, rel)
            continue
        source = _endpoint_id(rel.get("source"))
        target = _endpoint_id(rel.get("target"))
        if not (isinstance(source, str) and source and isinstance(target, str) and target):
            logger.warning("Skipping relationship with missing source/target at index %d", i)
            continue
        if source not in seen or target not in seen:
            logger.warning("Skipping relationship %s -> %s: endpoint not in node list", source, target)
            continue
        links.append({"source": source, "target": target, "type": rel.get("type") or RELATES_TO})

    logger.debug("Converted raw graph: %d nodes, %d links", len(nodes), len(links))
    return nodes, links


def build_career_template(template_id: str, name: str, payload: Mapping[str, Any]) -> Template:
    nodes, links = convert_raw_graph(payload.get("rawNodes") or [], payload.get("rawRelationships") or [])
    return Template(
        id=template_id,
        name=name,
        kind=TemplateKind.CAREER,
        nodes=nodes,
        links=links,
        details=dict(payload.get("details") or {}),
        meta=dict(payload.get("meta") or {}),
        config_overrides=dict(payload.get("configOverrides") or {}),
        description=payload.get("description") or name,
    )


# ─── Task Databases ─────────────────────────────────────────────────────────


def normalize_priority(priority: Any) -> str:
    """Map a free-form priority onto Critical/High/Medium/Low (default Medium)."""
    text = str(priority or "").strip().lower()
    for p in PRIORITIES:
        if text == p.lower():
            return p
    return DEFAULT_PRIORITY


def dependency_link_type(dependency: Any) -> str:
    """``DEPENDS_<TYPE>`` for a structured dependency with a type, else ``DEPENDS_ON``."""
    if isinstance(dependency, Mapping) and dependency.get("type"):
        return f"{DEPENDS_PREFIX}{str(dependency['type']).upper()}"
    return DEPENDS_ON


def task_node_id(task_id: int) -> str:
    return f"task-{task_id}"


def _hours(task: Mapping[str, Any]) -> float:
    try:
        value = float(task.get("estimated_hours") or 0)
    except (TypeError, ValueError):
        return 0.0
    return value if math.isfinite(value) else 0.0


def _structured_dependencies(task: Mapping[str, Any]) -> dict[Any, Mapping[str, Any]]:
    deps = task.get("dependencies")
    if not isinstance(deps, list):
        return {}
    return {d.get("predecessor_task_id"): d for d in deps if isinstance(d, Mapping)}


def build_task_template(
    template_id: str,
    name: str,
    payload: Mapping[str, Any],
    *,
    source: Path | None = None,
) -> Template:
    """Build a layered task graph from a ``{project, tasks}`` payload.

    Every task becomes a parent node at its dependency layer. Tasks without
    predecessors hang off the project start, tasks without successors feed the
    project end, and each predecessor edge becomes a ``DEPENDS_*`` link.
    """
    project = payload.get("project") or {"name": name, "description": ""}
    project_name = project.get("name") or name
    tasks = [t for t in payload.get("tasks") or [] if isinstance(t, Mapping)]
    by_id = index_tasks(tasks)
    valid_ids = set(by_id)
    layering = LayerAssignment.resolve(tasks)

    positive_hours = [h for h in (_hours(t) for t in by_id.values()) if h > 0]
    min_hours = min([*positive_hours, 2])
    max_hours = max([*positive_hours, 40])
    end_layer = layering.max_layer + 1

    nodes: list[dict[str, Any]] = [
        {
            "id": PROJECT_START_ID,
            "label": f"Start: {project_name}",
            "type": "parent",
            "layer": 0,
            "parentId": None,
            "templateType": "project-start",
        },
        {
            "id": PROJECT_END_ID,
            "label": f"End: {project_name}",
            "type": "parent",
            "layer": end_layer,
            "parentId": None,
            "templateType": "project-end",
        },
    ]
    links: list[dict[str, Any]] = []
    details: dict[str, Any] = {
        PROJECT_START_ID: {
            "title": f"Start: {project_name}",
            "items": [
                item
                for item in (
                    project.get("description") or "",
                    "How layers work: Layer 1 = tasks with no prerequisites. Layer N depends on earlier layers.",
                    "Visual encoding: color = priority, size = estimated hours.",
                )
                if item
            ],
        },
        PROJECT_END_ID: {
            "title": f"End: {project_name}",
            "items": ["All terminal tasks flow into this final milestone."],
        },
    }

    preds_by_id = {tid: predecessor_ids(task, valid_ids) for tid, task in by_id.items()}
    has_successor = {p for preds in preds_by_id.values() for p in preds}

    for task_id, task in by_id.items():
        node_id = task_node_id(task_id)
        label = task.get("task_name") or f"Task {task_id}"
        layer = layering.layer_of(task_id)
        priority = normalize_priority(task.get("priority"))
        status = task.get("status") or DEFAULT_STATUS
        hours = _hours(task)
        preds = preds_by_id[task_id]

        nodes.append(
            {
                "id": node_id,
                "label": label,
                "type": "parent",
                "layer": layer,
                "parentId": PROJECT_START_ID,
                "templateType": "task",
                "priority": priority,
                "estimatedHours": hours,
                "status": status,
            }
        )
        if not preds:
            links.append({"source": PROJECT_START_ID, "target": node_id, "type": HAS_TASK})

        pred_names = [by_id[p].get("task_name") for p in preds if by_id[p].get("task_name")]
        items = [
            f"Priority: {priority} | Status: {status}",
            f"Estimated hours: {hours:g}",
            f"Dependency layer: {layer}",
        ]
        if task.get("category_name"):
            items.append(f"Category: {task['category_name']}")
        if task.get("description"):
            items.append(f"Description: {task['description']}")
        items.append(f"Depends on: {' · '.join(pred_names)}" if pred_names else "Depends on: none")
        if layering.is_cyclic(task_id):
            items.append("Warning: dependency cycle detected.")
        details[node_id] = {"title": label, "items": items}

        structured = _structured_dependencies(task)
        for pred in preds:
            links.append(
                {"source": task_node_id(pred), "target": node_id, "type": dependency_link_type(structured.get(pred))}
            )
        if task_id not in has_successor:
            links.append({"source": node_id, "target": PROJECT_END_ID, "type": DEPENDS_FS})

    meta = dict(payload.get("meta") or {}) if isinstance(payload.get("meta"), Mapping) else {}
    if not isinstance(meta.get("walkthroughEnabled"), bool):
        meta["walkthroughEnabled"] = True
    if not meta.get("walkthroughStepsPath") and source is not None:
        tour_file = source.parent / TOUR_FILE
        if tour_file.is_file():
            meta["walkthroughStepsPath"] = str(tour_file)
    meta.setdefault("legendMode", TemplateKind.TASK_MANAGEMENT.value)
    meta.setdefault("profileNodeId", PROJECT_START_ID)

    overrides = payload.get("configOverrides") or {
        "colorMode": "priority",
        "sizeMode": "hours",
        "taskSizing": {"minHours": min_hours, "maxHours": max_hours, "minRadius": 16, "maxRadius": 44},
    }

    logger.info(
        "Built task template %s: %d tasks over %d layers%s",
        template_id,
        len(by_id),
        layering.max_layer,
        f", {len(layering.cycle_nodes)} on cycles" if layering.cycle_nodes else "",
    )
    return Template(
        id=template_id,
        name=name,
        kind=TemplateKind.TASK_MANAGEMENT,
        nodes=nodes,
        links=links,
        details=details,
        meta=meta,
        config_overrides=dict(overrides),
        description=payload.get("description") or name,
        tasks=[dict(t) for t in tasks],
    )


def build_template(
    template_id: str,
    name: str,
    payload: Any,
    *,
    kind: TemplateKind | str | None = None,
    source: Path | None = None,
) -> Template:
    """Validate ``payload`` and build the matching kind of template.

    A task database carrying an embedded career-style ``graphTemplate`` is
    built from that graph instead of its task flow.
    """
    detected = validate_payload(payload)
    declared = TemplateKind(kind) if kind is not None else None
    if declared is not None and declared != detected:
        raise TemplateError(f"Template {template_id} declares kind {declared.value} but holds {detected.value}")

    embedded = payload.get("graphTemplate")
    if (
        detected == TemplateKind.TASK_MANAGEMENT
        and isinstance(embedded, Mapping)
        and isinstance(embedded.get("rawNodes"), list)
        and isinstance(embedded.get("rawRelationships"), list)
    ):
        merged = dict(embedded)
        merged.setdefault("description", payload.get("description"))
        return build_career_template(template_id, name, merged)

    if detected == TemplateKind.CAREER:
        return build_career_template(template_id, name, payload)
    return build_task_template(template_id, name, payload, source=source)


def read_json(path: Path) -> Any:
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise TemplateError(f"Cannot read {path}: {exc}") from exc


# ─── Store ──────────────────────────────────────────────────────────────────


class TemplateStore:
    """Registry of templates with explicit loading and clearing.

    Example::

        store = TemplateStore()
        store.load_registry(Path("templates/registry.json"))
        template = store.resolve("career")
    """

    def __init__(self) -> None:
        self._templates: dict[str, Template] = {}
        self._layers: dict[str, LayerAssignment] = {}

    def __len__(self) -> int:
        return len(self._templates)

    def __contains__(self, template_id: object) -> bool:
        return template_id in self._templates

    def add(self, template: Template) -> None:
        if template.id in self._templates:
            logger.debug("Replacing template %s", template.id)
        self._templates[template.id] = template
        self._layers.pop(template.id, None)

    def get(self, template_id: str) -> Template | None:
        return self._templates.get(template_id)

    def available(self) -> list[Template]:
        return list(self._templates.values())

    def clear(self) -> None:
        self._templates.clear()
        self._layers.clear()

    def load_file(
        self,
        path: str | Path,
        *,
        template_id: str | None = None,
        name: str | None = None,
        kind: TemplateKind | str | None = None,
    ) -> Template:
        """Load one template file and register it (id defaults to the file stem)."""
        path = Path(path)
        template_id = template_id or path.stem
        template = build_template(template_id, name or template_id, read_json(path), kind=kind, source=path)
        self.add(template)
        return template

    def load_registry(self, path: str | Path) -> list[Template]:
        """Load every entry of a registry file.

        The registry is a JSON list of ``{id, name, type, path}`` entries with
        paths relative to the registry's directory. Entries that fail to load
        are skipped with a warning.
        """
        path = Path(path)
        entries = read_json(path)
        if not isinstance(entries, list):
            raise TemplateError(f"Registry {path} is not a list")

        loaded: list[Template] = []
        for entry in entries:
            if not isinstance(entry, Mapping) or not entry.get("id") or not entry.get("path"):
                logger.warning("Skipping malformed registry entry: %r", entry)
                continue
            try:
                template = self.load_file(
                    path.parent / entry["path"],
                    template_id=entry["id"],
                    name=entry.get("name") or entry["id"],
                    kind=entry.get("type"),
                )
            except (TemplateError, ValueError) as exc:
                logger.warning("Skipping template %s: %s", entry["id"], exc)
                continue
            loaded.append(template)
        logger.info("Loaded %d of %d templates from %s", len(loaded), len(entries), path)
        return loaded

    def default_id(self) -> str | None:
        """First career template, else the first template, else None."""
        for template in self._templates.values():
            if template.kind == TemplateKind.CAREER:
                return template.id
        return next(iter(self._templates), None)

    def resolve(self, template_id: str | None = None) -> Template:
        """Return the requested template, falling back to the default one."""
        if template_id and template_id in self._templates:
            return self._templates[template_id]
        if template_id:
            logger.warning("Template %s not found, using the default", template_id)
        default = self.default_id()
        if default is None:
            raise TemplateError("No templates are loaded")
        return self._templates[default]

    def layers_for(self, template_id: str) -> LayerAssignment:
        """Dependency layering of a task template, computed once per template."""
        if template_id in self._layers:
            return self._layers[template_id]
        template = self._templates.get(template_id)
        if template is None:
            raise TemplateError(f"Unknown template {template_id}")
        if template.kind != TemplateKind.TASK_MANAGEMENT:
            raise TemplateError(f"Template {template_id} has no task layering")
        self._layers[template_id] = LayerAssignment.resolve(template.tasks)
        return self._layers[template_id]

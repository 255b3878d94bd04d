"""Graph preprocessing — validation, adjacency, colors, radii and details.

Raw template records are sanitised into a ``GraphData`` (bad entries dropped
with a warning), then a color policy assigns every parent its color, variant
and text class. Children inherit those from their parent, which is looked up
through the node arena.

Color policy is a tagged variant chosen from ``GraphConfig.color_mode``:

- ``LayerColorPolicy``: tone ramp per layer, assigned round-robin to the
  layer's parents sorted by id.
- ``PriorityColorPolicy``: fixed color per priority, optionally with a radius
  derived from estimated hours.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Union

from graphmap.colors import TextClass, color_tones, contrasting_text_class
from graphmap.config import ColorMode, GraphConfig, SizeMode, TaskSizing
from graphmap.graph import GraphData, Link, Node, NodeType

logger = logging.getLogger(__name__)

PLACEHOLDER_ITEM = "No details."

_KNOWN_NODE_KEYS = frozenset(
    {
        "id", "label", "type", "layer", "parentId", "parent_id", "templateType", "template_type",
        "priority", "estimatedHours", "estimated_hours", "status", "tourMarker", "tour_marker",
        "tourStep", "tour_step",
    }
)  # fmt: skip

# ─── Color Policies ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class LayerColorPolicy:
    base_colors: dict[int, str]
    max_variants: int = 5
    step: float = 0.7
    direction: str = "brighter"


@dataclass(frozen=True)
class PriorityColorPolicy:
    colors: dict[str, str]
    sizing: TaskSizing | None = None


ColorPolicy = Union[LayerColorPolicy, PriorityColorPolicy]


def policy_from_config(config: GraphConfig) -> ColorPolicy:
    if config.color_mode == ColorMode.PRIORITY:
        sizing = config.task_sizing if config.size_mode == SizeMode.HOURS else None
        return PriorityColorPolicy(colors=dict(config.priority_colors_hex), sizing=sizing)
    return LayerColorPolicy(
        base_colors=dict(config.base_layer_colors_hex),
        max_variants=config.max_color_variants,
        step=config.tone_generation.step,
        direction=config.tone_generation.direction.value,
    )


def hours_to_radius(hours: Any, sizing: TaskSizing) -> float | None:
    """Map estimated hours onto ``[min_radius, max_radius]`` with a sqrt ease.

    Hours are clamped into ``[min_hours, max_hours]`` first. Missing,
    non-numeric and non-positive values give None (keep the default size).
    """
    try:
        h = float(hours)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(h) or h <= 0:
        return None
    clamped = max(sizing.min_hours, min(sizing.max_hours, h))
    t = (clamped - sizing.min_hours) / max(1e-6, sizing.max_hours - sizing.min_hours)
    return sizing.min_radius + (sizing.max_radius - sizing.min_radius) * math.sqrt(t)


# ─── Sanitising ─────────────────────────────────────────────────────────────


def _get(raw: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return default


def _endpoint(value: Any) -> str | None:
    if isinstance(value, Mapping):
        value = value.get("id")
    if isinstance(value, (str, int)) and not isinstance(value, bool) and str(value):
        return str(value)
    return None


def node_from_mapping(raw: Mapping[str, Any]) -> Node | None:
    """Build a ``Node`` from a raw record, or None when it has no usable id."""
    node_id = raw.get("id")
    if not isinstance(node_id, str) or not node_id:
        return None

    layer = raw.get("layer")
    if isinstance(layer, bool) or not isinstance(layer, (int, float)) or not math.isfinite(layer):
        if layer is not None:
            logger.warning("Node %s has invalid layer %r, using 0", node_id, layer)
        layer = 0
    layer = max(0, int(layer))

    node_type = NodeType.PARENT if raw.get("type") == NodeType.PARENT.value else NodeType.CHILD
    hours = _get(raw, "estimatedHours", "estimated_hours")
    tour_step = _get(raw, "tourStep", "tour_step")

    return Node(
        id=node_id,
        label=str(raw.get("label") or node_id),
        type=node_type,
        layer=layer,
        parent_id=_get(raw, "parentId", "parent_id"),
        template_type=_get(raw, "templateType", "template_type"),
        priority=_get(raw, "priority"),
        estimated_hours=hours if isinstance(hours, (int, float)) and not isinstance(hours, bool) else None,
        status=_get(raw, "status"),
        tour_marker=bool(_get(raw, "tourMarker", "tour_marker", default=False)),
        tour_step=dict(tour_step) if isinstance(tour_step, Mapping) else None,
        extra={k: v for k, v in raw.items() if k not in _KNOWN_NODE_KEYS},
    )


def sanitize(raw_nodes: Iterable[Any], raw_links: Iterable[Any]) -> GraphData:
    """Validate raw records into a ``GraphData``.

    Nodes without a string id and duplicate ids are dropped, as are links with
    a missing or unknown endpoint. Every drop is logged; none is fatal.
    """
    nodes: list[Node] = []
    seen: set[str] = set()
    for raw in raw_nodes:
        node = node_from_mapping(raw) if isinstance(raw, Mapping) else None
        if node is None:
            logger.warning("Skipping invalid node: %r", raw)
            continue
        if node.id in seen:
            logger.warning("Skipping duplicate node id: %s", node.id)
            continue
        seen.add(node.id)
        nodes.append(node)

    links: list[Link] = []
    for raw in raw_links:
        if not isinstance(raw, Mapping):
            logger.warning("Skipping invalid link: %r", raw)
            continue
        source = _endpoint(raw.get("source"))
        target = _endpoint(raw.get("target"))
        if source is None or target is None:
            logger.warning("Skipping link with missing endpoint: %r", raw)
            continue
        if source not in seen or target not in seen:
            logger.warning("Skipping link %s -> %s: unknown endpoint", source, target)
            continue
        links.append(Link(source=source, target=target, type=str(raw.get("type") or "RELATES_TO")))

    return GraphData(nodes, links)


# ─── Color Assignment ───────────────────────────────────────────────────────


def assign_colors(graph: GraphData, policy: ColorPolicy, config: GraphConfig) -> None:
    """Reset color fields on every node, then apply ``policy`` to them."""
    light = config.text_colors_hex.light
    dark = config.text_colors_hex.dark
    fallback = config.fallback_color_hex

    for node in graph:
        node.color_variant_index = 0
        node.calculated_hex = fallback
        node.text_color_class = TextClass.DARK
        node.fill_hex = None
        node.node_radius = None

    if isinstance(policy, LayerColorPolicy):
        for layer in range(graph.max_layer + 1):
            parents = sorted((n for n in graph if n.layer == layer and n.is_parent), key=lambda n: n.id)
            if not parents:
                continue
            if layer not in policy.base_colors:
                logger.warning(
                    "Layer %d has no base color, parents %s use the fallback",
                    layer,
                    ", ".join(n.id for n in parents),
                )
            base = policy.base_colors.get(layer, fallback)
            tones = color_tones(base, min(len(parents), policy.max_variants), policy.step, policy.direction, fallback)
            for i, node in enumerate(parents):
                variant = i % policy.max_variants
                node.color_variant_index = variant
                node.calculated_hex = tones[variant] if variant < len(tones) else (tones[-1] if tones else fallback)
                node.text_color_class = contrasting_text_class(node.calculated_hex, light, dark)
    elif isinstance(policy, PriorityColorPolicy):
        for node in graph:
            color = policy.colors.get(str(node.priority or "").strip(), fallback)
            node.fill_hex = color
            node.calculated_hex = color
            node.text_color_class = contrasting_text_class(color, light, dark)
            if policy.sizing is not None:
                node.node_radius = hours_to_radius(node.estimated_hours, policy.sizing)
    else:
        raise TypeError(f"Unknown color policy: {policy!r}")


def propagate_to_children(graph: GraphData, policy: ColorPolicy, config: GraphConfig) -> None:
    """Copy each parent's color, variant and radius onto its children.

    Call again after recoloring a parent; children hold copies, not
    references. Parents that no policy colored fall back to their layer's
    base color when one exists.
    """
    light = config.text_colors_hex.light
    dark = config.text_colors_hex.dark
    fallback = config.fallback_color_hex

    if isinstance(policy, LayerColorPolicy):
        for node in graph:
            if not node.is_parent or node.calculated_hex != fallback:
                continue
            base = policy.base_colors.get(node.layer)
            if base is None:
                continue
            node.color_variant_index = 0
            node.calculated_hex = base
            node.text_color_class = contrasting_text_class(base, light, dark)

    for node in graph:
        if node.type == NodeType.CHILD:
            parent = graph.parent_of(node)
            if parent is None:
                if node.parent_id:
                    logger.warning("Parent node %r not found for child node %r", node.parent_id, node.id)
                node.color_variant_index = 0
                node.calculated_hex = fallback
                node.text_color_class = TextClass.DARK
                continue
            node.color_variant_index = parent.color_variant_index
            node.calculated_hex = parent.fill_hex or parent.calculated_hex
            if parent.fill_hex:
                node.fill_hex = parent.fill_hex
            node.text_color_class = contrasting_text_class(node.calculated_hex, light, dark)
            if isinstance(policy, PriorityColorPolicy) and policy.sizing is not None and parent.node_radius:
                node.node_radius = parent.node_radius


# ─── Details ────────────────────────────────────────────────────────────────


def ensure_details(graph: GraphData, details: Mapping[str, Any] | None) -> dict[str, dict[str, Any]]:
    """Return a details map with a placeholder for every node lacking a record."""
    result: dict[str, dict[str, Any]] = dict(details or {})
    for node in graph:
        if not result.get(node.id):
            logger.warning("Details missing for node %s, using label", node.id)
            result[node.id] = {"title": node.label or node.id, "items": [PLACEHOLDER_ITEM]}
    return result


def is_placeholder(record: Mapping[str, Any] | None) -> bool:
    items = (record or {}).get("items") or []
    return not items or items == [PLACEHOLDER_ITEM]


# ─── Pipeline ───────────────────────────────────────────────────────────────


@dataclass
class PreprocessResult:
    graph: GraphData
    details: dict[str, dict[str, Any]]
    policy: ColorPolicy


def preprocess(
    raw_nodes: Iterable[Any],
    raw_links: Iterable[Any],
    details: Mapping[str, Any] | None,
    config: GraphConfig,
) -> PreprocessResult:
    """Run the whole preprocessing pipeline on raw template records."""
    graph = sanitize(raw_nodes, raw_links)
    detail_map = ensure_details(graph, details)
    policy = policy_from_config(config)
    assign_colors(graph, policy, config)
    propagate_to_children(graph, policy, config)
    logger.debug(
        "Preprocessed %d nodes, %d links, %d layers", len(graph.nodes), len(graph.links), graph.max_layer + 1
    )
    return PreprocessResult(graph=graph, details=detail_map, policy=policy)

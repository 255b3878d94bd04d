"""Visual and physics configuration for a graph view.

Every template may carry ``configOverrides``; they are deep-merged over the
defaults below and validated. Templates use camelCase keys, so every model
accepts both the camelCase alias and the Python field name.
"""

from __future__ import annotations

import copy
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _ConfigModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


# ─── Modes ──────────────────────────────────────────────────────────────────


class ColorMode(str, Enum):
    LAYER = "layer"
    PRIORITY = "priority"


class SizeMode(str, Enum):
    FIXED = "fixed"
    HOURS = "hours"


class ToneDirection(str, Enum):
    BRIGHTER = "brighter"
    DARKER = "darker"


# ─── Sections ───────────────────────────────────────────────────────────────


class NodeSizes(_ConfigModel):
    main: float = 30
    sub: float = 18


class TaskSizing(_ConfigModel):
    """Maps estimated hours onto a radius range (square-root easing)."""

    min_hours: float = 2
    max_hours: float = 40
    min_radius: float = 16
    max_radius: float = 44


class Forces(_ConfigModel):
    link_distance: float = 80
    link_distance_subcategory: float = 60
    link_distance_layer: float = 120
    charge: float = -700
    charge_mobile_multiplier: float = 1.2
    collide_padding: float = 12
    layer_strength_y: float = 0.95
    layout_strength_x: float = 0.2


class Animation(_ConfigModel):
    """Durations in milliseconds."""

    duration: float = 600
    focus_scale: float = 1.5
    highlight_duration: float = 2500


class LayoutPadding(_ConfigModel):
    horizontal_padding: float = 80
    vertical_padding: float = 50
    boundary_padding: float = 10


class TooltipConfig(_ConfigModel):
    offset_x: float = 15
    offset_y: float = -20


class SimulationConfig(_ConfigModel):
    alpha_threshold: float = 0.01


class ToneGeneration(_ConfigModel):
    step: float = 0.7
    direction: ToneDirection = ToneDirection.BRIGHTER


class TextColors(_ConfigModel):
    light: str = "#f0f0f0"
    dark: str = "#333333"


def _default_priority_colors() -> dict[str, str]:
    return {
        "Critical": "#d62728",
        "High": "#ff7f0e",
        "Medium": "#1f77b4",
        "Low": "#2ca02c",
    }


def _default_layer_colors() -> dict[int, str]:
    return {
        0: "#b07aa1",
        1: "#4e79a7",
        2: "#f28e2c",
        3: "#59a14f",
        4: "#9c65ab",
    }


# ─── GraphConfig ────────────────────────────────────────────────────────────


class GraphConfig(_ConfigModel):
    """Complete configuration of one graph view."""

    node_sizes: NodeSizes = Field(default_factory=NodeSizes)
    color_mode: ColorMode = ColorMode.LAYER
    size_mode: SizeMode = SizeMode.FIXED
    priority_colors_hex: dict[str, str] = Field(default_factory=_default_priority_colors)
    task_sizing: TaskSizing = Field(default_factory=TaskSizing)
    forces: Forces = Field(default_factory=Forces)
    animation: Animation = Field(default_factory=Animation)
    layout: LayoutPadding = Field(default_factory=LayoutPadding)
    tooltip: TooltipConfig = Field(default_factory=TooltipConfig)
    simulation: SimulationConfig = Field(default_factory=SimulationConfig)
    mobile_breakpoint: float = 768
    base_layer_colors_hex: dict[int, str] = Field(default_factory=_default_layer_colors)
    fallback_color_hex: str = "#aabbc8"
    tone_generation: ToneGeneration = Field(default_factory=ToneGeneration)
    text_colors_hex: TextColors = Field(default_factory=TextColors)
    max_color_variants: int = Field(default=5, ge=1)

    @classmethod
    def from_overrides(cls, overrides: dict[str, Any] | None = None) -> GraphConfig:
        """Build a config from defaults with ``overrides`` deep-merged on top."""
        return cls().with_overrides(overrides)

    def with_overrides(self, overrides: dict[str, Any] | None) -> GraphConfig:
        """Return a new config with ``overrides`` deep-merged over this one.

        Nested mappings merge key by key; any other value replaces the
        current one. Keys may be camelCase or snake_case.
        """
        if not overrides:
            return self.model_copy(deep=True)
        merged = deep_merge(self.model_dump(by_alias=True, mode="json"), overrides)
        return type(self).model_validate(merged)


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``.

    A snake_case key in ``override`` lands on its camelCase counterpart when
    only the latter exists in ``base``.
    """
    result = copy.deepcopy(base)
    for key, value in override.items():
        target = key
        if key not in result and isinstance(key, str) and to_camel(key) in result:
            target = to_camel(key)
        current = result.get(target)
        if isinstance(current, dict) and isinstance(value, dict):
            result[target] = deep_merge(current, value)
        else:
            result[target] = copy.deepcopy(value)
    return result

"""Link-type tags and the force parameters derived from them."""

from __future__ import annotations

from graphmap.config import Forces

# ─── Link Types ─────────────────────────────────────────────────────────────

HAS_FOUNDATION = "HAS_FOUNDATION"
HAS_SUBCATEGORY = "HAS_SUBCATEGORY"
DEVELOPS = "DEVELOPS"
CREATES = "CREATES"
LEADS_TO = "LEADS_TO"
RELATES_TO = "RELATES_TO"

HAS_TASK = "HAS_TASK"
DEPENDS_PREFIX = "DEPENDS_"
DEPENDS_ON = "DEPENDS_ON"
DEPENDS_FS = "DEPENDS_FS"

COMMON_LINK_TYPES = (HAS_FOUNDATION, HAS_SUBCATEGORY, DEVELOPS, CREATES, LEADS_TO)
TASK_LINK_TYPES = (HAS_TASK, f"{DEPENDS_PREFIX}*")

_STRONG_COHESION = {HAS_FOUNDATION, HAS_SUBCATEGORY, HAS_TASK}
_LAYER_SPACING = {DEVELOPS, CREATES, LEADS_TO, HAS_FOUNDATION, HAS_TASK}

STRONG_LINK_STRENGTH = 0.6
WEAK_LINK_STRENGTH = 0.4


def is_depends(link_type: str | None) -> bool:
    return str(link_type or "").startswith(DEPENDS_PREFIX)


def is_subcategory(link_type: str | None) -> bool:
    return link_type == HAS_SUBCATEGORY


def is_strong_cohesion(link_type: str | None) -> bool:
    return link_type in _STRONG_COHESION or is_depends(link_type)


def is_layer_spacing(link_type: str | None) -> bool:
    """Link types that join nodes of different layers and need a long rest length."""
    return link_type in _LAYER_SPACING or is_depends(link_type)


# ─── Force Parameters ───────────────────────────────────────────────────────


def link_distance(link_type: str | None, forces: Forces) -> float:
    if is_subcategory(link_type):
        return forces.link_distance_subcategory
    if is_layer_spacing(link_type):
        return forces.link_distance_layer
    return forces.link_distance


def link_strength(link_type: str | None) -> float:
    return STRONG_LINK_STRENGTH if is_strong_cohesion(link_type) else WEAK_LINK_STRENGTH

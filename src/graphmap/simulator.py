"""Layout simulator — layered force layout of a ``GraphData``.

Nodes are pulled toward horizontal bands by layer (two bands per layer:
parents in the upper one, children in the lower) and toward a cluster column
derived from their parent. Links, charge and collision forces act on top,
and every tick clamps positions into the viewport.

The simulator owns the position fields of every node. Once the simulation
cools below ``simulation.alpha_threshold`` it is "stable" and the one-shot
callbacks queued with ``on_stable`` run in order.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import numpy as np

from graphmap.config import GraphConfig
from graphmap.forces import CollideForce, LinkForce, ManyBodyForce, PositionXForce, PositionYForce, Simulation
from graphmap.graph import GraphData, Node
from graphmap.links import link_distance, link_strength
from graphmap.scheduler import run_guarded

logger = logging.getLogger(__name__)

# ─── Constants ──────────────────────────────────────────────────────────────

PARENT_CHARGE_FACTOR = 1.1
PARENT_BAND_OFFSET = 0.8
CHILD_BAND_OFFSET = 1.2
COLLIDE_STRENGTH = 0.8
RESIZE_ALPHA = 0.3
DRAG_ALPHA_TARGET = 0.3
NUDGE_BELOW_ALPHA = 0.05
NUDGE_ALPHA = 0.1


class LayoutSimulator:
    """Drives the force simulation for one graph and viewport.

    Args:
        graph: Preprocessed graph; node positions are written back each tick.
        config: Graph configuration (forces, padding, sizes).
        width: Viewport width in pixels.
        height: Viewport height in pixels.
        seed: Seed for the jiggle generator.
    """

    def __init__(self, graph: GraphData, config: GraphConfig, width: float, height: float, *, seed: int = 0) -> None:
        self.graph = graph
        self.config = config
        self.width = float(width)
        self.height = float(height)
        self.is_stable = False
        self.running = True
        self.ticks = 0
        self._stable_callbacks: list[Callable[[], Any]] = []
        self.parent_target_x: dict[str, float] = {}

        self.sim = Simulation(len(graph.nodes), seed=seed, center=(self.width / 2, self.height / 2))
        self.compute_parent_targets()
        self._build_forces()
        self._write_back()

    # ─── Geometry ───────────────────────────────────────────────────────────

    @property
    def is_mobile(self) -> bool:
        return self.width < self.config.mobile_breakpoint

    def node_radius(self, node: Node) -> float:
        if node.node_radius is not None and np.isfinite(node.node_radius):
            return float(node.node_radius)
        return self.config.node_sizes.main if node.is_parent else self.config.node_sizes.sub

    def band_y(self, node: Node) -> float:
        """Target y of a node: its band centre, parents above children."""
        if not isinstance(node.layer, int):
            return self.height / 2
        v_pad = self.config.layout.vertical_padding
        usable = self.height - 2 * v_pad
        bands = self.graph.num_bands
        if bands <= 0 or usable <= 0:
            return self.height / 2
        band_height = usable / bands
        offset = PARENT_BAND_OFFSET if node.is_parent else CHILD_BAND_OFFSET
        index = max(0.5, min(node.layer * 2 + offset, bands - 0.5))
        return v_pad + index * band_height

    def compute_parent_targets(self) -> None:
        """Spread each layer's parents (sorted by id) evenly across the width.

        A lone parent in layer 0 is centred instead.
        """
        h_pad = self.config.layout.horizontal_padding
        available = self.width - 2 * h_pad
        self.parent_target_x = {}
        for layer, nodes in sorted(self.graph.layers().items()):
            parents = sorted((n for n in nodes if n.is_parent), key=lambda n: n.id)
            if not parents:
                continue
            if layer == 0 and len(parents) == 1:
                self.parent_target_x[parents[0].id] = self.width / 2
                continue
            spacing = available / max(1, len(parents))
            for i, node in enumerate(parents):
                self.parent_target_x[node.id] = h_pad + i * spacing + spacing / 2

    def target_x(self, node: Node) -> float:
        if node.is_parent and node.id in self.parent_target_x:
            return self.parent_target_x[node.id]
        parent = self.graph.parent_of(node)
        if parent is not None and parent.id in self.parent_target_x:
            return self.parent_target_x[parent.id]
        return self.width / 2

    def _charge_strengths(self) -> np.ndarray:
        f = self.config.forces
        mobile = f.charge_mobile_multiplier if self.is_mobile else 1.0
        return np.array(
            [f.charge * (PARENT_CHARGE_FACTOR if n.is_parent else 1.0) * mobile for n in self.graph.nodes], dtype=float
        )

    def _build_forces(self) -> None:
        f = self.config.forces
        nodes = self.graph.nodes
        index = self.graph.index
        links = self.graph.links
        self.sim.force(
            "link",
            LinkForce(
                sources=np.array([index[link.source] for link in links], dtype=int),
                targets=np.array([index[link.target] for link in links], dtype=int),
                distances=np.array([link_distance(link.type, f) for link in links], dtype=float),
                strengths=np.array([link_strength(link.type) for link in links], dtype=float),
            ),
        )
        self.sim.force("charge", ManyBodyForce(self._charge_strengths()))
        self.sim.force("y", PositionYForce(np.array([self.band_y(n) for n in nodes]), f.layer_strength_y))
        self.sim.force("x", PositionXForce(np.array([self.target_x(n) for n in nodes]), f.layout_strength_x))
        self.sim.force(
            "collision",
            CollideForce(np.array([self.node_radius(n) + f.collide_padding for n in nodes]), COLLIDE_STRENGTH),
        )

    # ─── Ticking ────────────────────────────────────────────────────────────

    def tick(self) -> bool:
        """Advance one tick if the simulation is running. Returns True if it moved."""
        if not self.running:
            return False
        self.sim.step()
        self.ticks += 1
        self._clamp()
        self._write_back()
        if self.sim.cooled and self.sim.alpha_target < self.sim.alpha_min:
            self.running = False
            logger.debug("Simulation cooled after %d ticks", self.ticks)
        self._check_stable()
        return True

    def run_until_stable(self, max_ticks: int = 1000) -> int:
        """Tick until stable (or stopped, or ``max_ticks``). Returns ticks run."""
        ran = 0
        while ran < max_ticks and not self.is_stable and self.running:
            self.tick()
            ran += 1
        if not self.is_stable:
            logger.warning("Layout did not stabilise within %d ticks (alpha=%.4f)", max_ticks, self.sim.alpha)
        return ran

    def _clamp(self) -> None:
        pad = self.config.layout.boundary_padding
        radii = np.array([self.node_radius(n) for n in self.graph.nodes], dtype=float)
        x, y = self.sim.x, self.sim.y
        x[~np.isfinite(x)] = self.width / 2
        y[~np.isfinite(y)] = self.height / 2
        self.sim.x = np.minimum(np.maximum(x, radii + pad), self.width - radii - pad)
        self.sim.y = np.minimum(np.maximum(y, radii + pad), self.height - radii - pad)

    def _write_back(self) -> None:
        sim = self.sim
        for i, node in enumerate(self.graph.nodes):
            node.x = float(sim.x[i])
            node.y = float(sim.y[i])
            node.vx = float(sim.vx[i])
            node.vy = float(sim.vy[i])

    # ─── Stability ──────────────────────────────────────────────────────────

    def on_stable(self, callback: Callable[[], Any]) -> None:
        """Run ``callback`` once the layout is stable (immediately if it already is)."""
        if self.is_stable:
            run_guarded(callback, "stable callback")
        else:
            self._stable_callbacks.append(callback)

    def _check_stable(self) -> None:
        if self.is_stable or self.sim.alpha >= self.config.simulation.alpha_threshold:
            return
        self.is_stable = True
        logger.info("Layout stable after %d ticks", self.ticks)
        pending, self._stable_callbacks = self._stable_callbacks, []
        for callback in pending:
            run_guarded(callback, "stable callback")

    # ─── Reheating / Dragging ───────────────────────────────────────────────

    def reheat(self, alpha: float) -> None:
        self.sim.alpha = alpha
        self.running = True
        self.is_stable = False

    def nudge(self) -> None:
        """Warm a nearly frozen simulation slightly so nodes settle again."""
        if self.sim.alpha < NUDGE_BELOW_ALPHA:
            self.reheat(NUDGE_ALPHA)

    def set_alpha_target(self, value: float) -> None:
        self.sim.alpha_target = value
        if value > 0:
            self.running = True
            self.is_stable = False

    def resize(self, width: float, height: float) -> None:
        """Adopt a new viewport: recompute targets and charge, then re-heat."""
        self.width = float(width)
        self.height = float(height)
        self.compute_parent_targets()
        self._build_forces()
        self.reheat(RESIZE_ALPHA)
        logger.debug("Resized layout to %.0fx%.0f (mobile=%s)", self.width, self.height, self.is_mobile)

    def fix(self, node_id: str, x: float, y: float) -> None:
        """Pin a node's position (during a drag)."""
        i = self.graph.index.get(node_id)
        if i is None:
            return
        self.sim.fx[i] = x
        self.sim.fy[i] = y
        node = self.graph.nodes[i]
        node.fx, node.fy = x, y

    def release(self, node_id: str) -> None:
        i = self.graph.index.get(node_id)
        if i is None:
            return
        self.sim.fx[i] = np.nan
        self.sim.fy[i] = np.nan
        node = self.graph.nodes[i]
        node.fx = node.fy = None

"""Velocity-Verlet force simulation on numpy arrays.

A small re-implementation of the d3-force model: a cooling ``alpha`` scales
every force, forces add to node velocities, velocities decay, and positions
integrate. Fixed positions (``fx``/``fy``, NaN when free) override the
integration for dragged nodes.

Forces are callables ``force(alpha)`` bound to one ``Simulation`` via
``initialize``. Pairwise forces are computed exactly (O(n²)); graphs shown
by a view are small enough that no quadtree is needed.
"""

from __future__ import annotations

import math

import numpy as np

# ─── Constants ──────────────────────────────────────────────────────────────

INITIAL_RADIUS = 10.0
INITIAL_ANGLE = math.pi * (3 - math.sqrt(5))
ALPHA_MIN = 0.001
VELOCITY_DECAY = 0.4
JIGGLE_SCALE = 1e-6


class Force:
    """Base class: subclasses add velocity deltas in ``__call__``."""

    sim: Simulation

    def initialize(self, sim: Simulation) -> None:
        self.sim = sim

    def __call__(self, alpha: float) -> None:
        raise NotImplementedError


# ─── Simulation ─────────────────────────────────────────────────────────────


class Simulation:
    """State of ``n`` particles plus the registered forces.

    Attributes:
        x, y: Positions.
        vx, vy: Velocities.
        fx, fy: Fixed positions, NaN where a node is free.
        alpha: Current heat; forces are scaled by it.
        alpha_target: Value alpha decays toward (raised while dragging).
    """

    def __init__(
        self,
        n: int,
        *,
        seed: int = 0,
        alpha_min: float = ALPHA_MIN,
        velocity_decay: float = VELOCITY_DECAY,
        center: tuple[float, float] = (0.0, 0.0),
    ) -> None:
        self.n = n
        self.alpha = 1.0
        self.alpha_min = alpha_min
        self.alpha_decay = 1 - alpha_min ** (1 / 300)
        self.alpha_target = 0.0
        self.velocity_decay = velocity_decay
        self.rng = np.random.default_rng(seed)
        self.forces: dict[str, Force] = {}

        # phyllotaxis placement, the same spiral d3 starts from
        i = np.arange(n, dtype=float)
        radius = INITIAL_RADIUS * np.sqrt(0.5 + i)
        angle = i * INITIAL_ANGLE
        self.x = center[0] + radius * np.cos(angle)
        self.y = center[1] + radius * np.sin(angle)
        self.vx = np.zeros(n)
        self.vy = np.zeros(n)
        self.fx = np.full(n, np.nan)
        self.fy = np.full(n, np.nan)

    def force(self, name: str, force: Force | None) -> None:
        """Register (or, with None, remove) a named force."""
        if force is None:
            self.forces.pop(name, None)
            return
        force.initialize(self)
        self.forces[name] = force

    def jiggle(self, size: int) -> np.ndarray:
        return (self.rng.random(size) - 0.5) * JIGGLE_SCALE

    def step(self) -> None:
        """Advance one tick: cool, apply forces, integrate."""
        self.alpha += (self.alpha_target - self.alpha) * self.alpha_decay
        for force in self.forces.values():
            force(self.alpha)

        keep = 1 - self.velocity_decay
        self.vx *= keep
        self.vy *= keep

        fixed_x = ~np.isnan(self.fx)
        fixed_y = ~np.isnan(self.fy)
        self.x = np.where(fixed_x, self.fx, self.x + self.vx)
        self.y = np.where(fixed_y, self.fy, self.y + self.vy)
        self.vx[fixed_x] = 0.0
        self.vy[fixed_y] = 0.0

    @property
    def cooled(self) -> bool:
        return self.alpha < self.alpha_min


# ─── Forces ─────────────────────────────────────────────────────────────────


class LinkForce(Force):
    """Spring between linked nodes with per-link rest length and stiffness.

    The correction is split between both ends in proportion to degree, so
    well-connected nodes move less.
    """

    def __init__(self, sources: np.ndarray, targets: np.ndarray, distances: np.ndarray, strengths: np.ndarray) -> None:
        self.sources = np.asarray(sources, dtype=int)
        self.targets = np.asarray(targets, dtype=int)
        self.distances = np.asarray(distances, dtype=float)
        self.strengths = np.asarray(strengths, dtype=float)

    def initialize(self, sim: Simulation) -> None:
        super().initialize(sim)
        count = np.bincount(np.concatenate([self.sources, self.targets]), minlength=sim.n).astype(float)
        cs = count[self.sources]
        ct = count[self.targets]
        self.bias = cs / np.maximum(cs + ct, 1.0)

    def __call__(self, alpha: float) -> None:
        if self.sources.size == 0:
            return
        s, t, sim = self.sources, self.targets, self.sim
        dx = sim.x[t] + sim.vx[t] - sim.x[s] - sim.vx[s]
        dy = sim.y[t] + sim.vy[t] - sim.y[s] - sim.vy[s]
        dx = np.where(dx == 0, sim.jiggle(dx.size), dx)
        dy = np.where(dy == 0, sim.jiggle(dy.size), dy)
        length = np.sqrt(dx * dx + dy * dy)
        scale = (length - self.distances) / length * alpha * self.strengths
        dx *= scale
        dy *= scale
        np.subtract.at(sim.vx, t, dx * self.bias)
        np.subtract.at(sim.vy, t, dy * self.bias)
        np.add.at(sim.vx, s, dx * (1 - self.bias))
        np.add.at(sim.vy, s, dy * (1 - self.bias))


class ManyBodyForce(Force):
    """Pairwise charge; negative strengths repel.

    Each node is pushed by every other node in proportion to the *other*
    node's strength over squared distance. Distances below 1 are softened.
    """

    def __init__(self, strengths: np.ndarray) -> None:
        self.strengths = np.asarray(strengths, dtype=float)

    def __call__(self, alpha: float) -> None:
        sim = self.sim
        if sim.n < 2:
            return
        dx = sim.x[None, :] - sim.x[:, None]
        dy = sim.y[None, :] - sim.y[:, None]
        off_diag = ~np.eye(sim.n, dtype=bool)
        same = off_diag & (dx == 0) & (dy == 0)
        if same.any():
            dx[same] = sim.jiggle(int(same.sum()))
            dy[same] = sim.jiggle(int(same.sum()))
        dist2 = dx * dx + dy * dy
        dist2 = np.where(dist2 < 1.0, np.sqrt(dist2), dist2)
        dist2[~off_diag] = 1.0
        w = self.strengths[None, :] * alpha / dist2
        w[~off_diag] = 0.0
        sim.vx += (dx * w).sum(axis=1)
        sim.vy += (dy * w).sum(axis=1)


class PositionXForce(Force):
    def __init__(self, targets: np.ndarray, strength: float) -> None:
        self.targets = np.asarray(targets, dtype=float)
        self.strength = strength

    def __call__(self, alpha: float) -> None:
        self.sim.vx += (self.targets - self.sim.x) * self.strength * alpha


class PositionYForce(Force):
    def __init__(self, targets: np.ndarray, strength: float) -> None:
        self.targets = np.asarray(targets, dtype=float)
        self.strength = strength

    def __call__(self, alpha: float) -> None:
        self.sim.vy += (self.targets - self.sim.y) * self.strength * alpha


class CollideForce(Force):
    """Push overlapping circles apart using their predicted positions.

    The overlap correction is shared by squared radius: a small node moves
    more than a large one.
    """

    def __init__(self, radii: np.ndarray, strength: float = 0.8) -> None:
        self.radii = np.asarray(radii, dtype=float)
        self.strength = strength

    def __call__(self, alpha: float) -> None:
        sim = self.sim
        if sim.n < 2:
            return
        px = sim.x + sim.vx
        py = sim.y + sim.vy
        dx = px[:, None] - px[None, :]
        dy = py[:, None] - py[None, :]
        reach = self.radii[:, None] + self.radii[None, :]
        upper = np.triu(np.ones((sim.n, sim.n), dtype=bool), k=1)
        dist2 = dx * dx + dy * dy
        overlap = upper & (dist2 < reach * reach)
        if not overlap.any():
            return

        same = overlap & (dx == 0)
        if same.any():
            dx[same] = sim.jiggle(int(same.sum()))
        same = overlap & (dy == 0)
        if same.any():
            dy[same] = sim.jiggle(int(same.sum()))
        dist = np.sqrt(dx * dx + dy * dy)
        dist[~overlap] = 1.0

        scale = np.where(overlap, (reach - dist) / dist * self.strength, 0.0)
        dx *= scale
        dy *= scale
        r2 = self.radii * self.radii
        share = r2[None, :] / np.maximum(r2[:, None] + r2[None, :], 1e-12)

        sim.vx += (dx * share).sum(axis=1)
        sim.vy += (dy * share).sum(axis=1)
        sim.vx -= (dx * (1 - share)).sum(axis=0)
        sim.vy -= (dy * (1 - share)).sum(axis=0)

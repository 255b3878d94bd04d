"""Zoom/pan camera with timed transitions."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from graphmap.scheduler import Handle, Scheduler, run_guarded

logger = logging.getLogger(__name__)

MIN_SCALE = 0.15
MAX_SCALE = 4.0


@dataclass(frozen=True)
class ZoomTransform:
    """Screen = world * k + (x, y)."""

    x: float = 0.0
    y: float = 0.0
    k: float = 1.0

    @classmethod
    def identity(cls) -> ZoomTransform:
        return cls()

    def apply(self, px: float, py: float) -> tuple[float, float]:
        return px * self.k + self.x, py * self.k + self.y

    def invert(self, sx: float, sy: float) -> tuple[float, float]:
        return (sx - self.x) / self.k, (sy - self.y) / self.k

    def to_svg(self) -> str:
        return f"translate({self.x:g},{self.y:g}) scale({self.k:g})"


def clamp_scale(k: float) -> float:
    return max(MIN_SCALE, min(MAX_SCALE, k))


def interpolate(a: ZoomTransform, b: ZoomTransform, t: float) -> ZoomTransform:
    return ZoomTransform(a.x + (b.x - a.x) * t, a.y + (b.y - a.y) * t, a.k + (b.k - a.k) * t)


def focus_transform(x: float, y: float, width: float, height: float, scale: float) -> ZoomTransform:
    """Transform that centres world point (x, y) in the viewport at ``scale``."""
    k = clamp_scale(scale)
    return ZoomTransform(width / 2 - x * k, height / 2 - y * k, k)


class Camera:
    """Current transform plus at most one running transition.

    While a transition runs, ``transform`` interpolates linearly from where
    the camera was to the target according to the scheduler clock, and lands
    exactly on the target when the duration elapses. Starting a new transition
    supersedes the running one from its current position; the superseded end
    callback is dropped.
    """

    def __init__(self, scheduler: Scheduler) -> None:
        self.scheduler = scheduler
        self.target: ZoomTransform | None = None
        self._transform = ZoomTransform.identity()
        self._started_at = 0.0
        self._duration = 0.0
        self._handle: Handle | None = None
        self._on_end: Callable[[], Any] | None = None
        self._settled_callbacks: list[Callable[[], Any]] = []

    @property
    def is_moving(self) -> bool:
        return self._handle is not None

    @property
    def transform(self) -> ZoomTransform:
        if self.target is None or self._duration <= 0:
            return self._transform
        t = (self.scheduler.now() - self._started_at) / self._duration
        return interpolate(self._transform, self.target, max(0.0, min(1.0, t)))

    @property
    def scale(self) -> float:
        return self.transform.k

    def set(self, transform: ZoomTransform) -> None:
        """Jump to ``transform`` immediately (user zoom or pan)."""
        self.cancel()
        self._transform = ZoomTransform(transform.x, transform.y, clamp_scale(transform.k))
        self._settle()

    def animate_to(
        self,
        transform: ZoomTransform,
        duration: float,
        on_end: Callable[[], Any] | None = None,
    ) -> None:
        """Move to ``transform`` over ``duration`` seconds."""
        self.cancel()
        self.target = ZoomTransform(transform.x, transform.y, clamp_scale(transform.k))
        self._on_end = on_end
        if duration <= 0:
            self._finish()
            return
        self._started_at = self.scheduler.now()
        self._duration = duration
        self._handle = self.scheduler.call_later(duration, self._finish)

    def reset(self, duration: float) -> None:
        self.animate_to(ZoomTransform.identity(), duration)

    def cancel(self) -> None:
        """Stop the running transition where it is."""
        self._transform = self.transform
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self.target = None
        self._duration = 0.0
        self._on_end = None

    def on_settled(self, callback: Callable[[], Any]) -> None:
        """Run ``callback`` once no transition is running (immediately if none is)."""
        if self.is_moving:
            self._settled_callbacks.append(callback)
        else:
            run_guarded(callback, "camera callback")

    def _finish(self) -> None:
        self._handle = None
        if self.target is not None:
            self._transform = self.target
        self.target = None
        self._duration = 0.0
        on_end, self._on_end = self._on_end, None
        if on_end is not None:
            run_guarded(on_end, "camera transition end")
        if not self.is_moving:
            self._settle()

    def _settle(self) -> None:
        pending, self._settled_callbacks = self._settled_callbacks, []
        for callback in pending:
            run_guarded(callback, "camera callback")

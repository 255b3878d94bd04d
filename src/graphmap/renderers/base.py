"""Renderer protocol shared by the graph view and the headless entry points."""

from __future__ import annotations

from typing import Protocol

from graphmap.scene import Scene


class Renderer(Protocol):
    """Turns scene snapshots, or a setup failure, into canvas content."""

    def render(self, scene: Scene) -> str: ...

    def render_error(self, message: str, width: float, height: float) -> str:
        """Content shown in place of the graph when it cannot be drawn."""
        ...

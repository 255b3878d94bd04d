"""Renderers that turn a ``Scene`` into text output."""

from graphmap.renderers.base import Renderer
from graphmap.renderers.svg import SvgRenderer, render_error

__all__ = ["Renderer", "SvgRenderer", "render_error"]

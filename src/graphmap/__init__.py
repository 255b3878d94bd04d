"""graphmap — layered, force-directed node/edge graphs with guided tours."""

from graphmap.api import load_template, mount, render_svg
from graphmap.config import GraphConfig
from graphmap.errors import GraphmapError, GraphSetupError, TemplateError
from graphmap.layering import LayerAssignment, resolve_layers
from graphmap.templates import Template, TemplateKind, TemplateStore
from graphmap.view import Canvas, GraphView

__version__ = "0.1.0"

__all__ = [
    "Canvas",
    "GraphConfig",
    "GraphSetupError",
    "GraphView",
    "GraphmapError",
    "LayerAssignment",
    "Template",
    "TemplateError",
    "TemplateKind",
    "TemplateStore",
    "load_template",
    "mount",
    "render_svg",
    "resolve_layers",
]

"""Exception types raised by graphmap.

Malformed graph data is never fatal: it is dropped with a logged warning.
Only setup preconditions and unreadable template payloads raise.
"""

from __future__ import annotations


class GraphmapError(Exception):
    """Base class for all graphmap errors."""


class GraphSetupError(GraphmapError):
    """A graph view cannot be constructed (missing container, no nodes, bad details)."""


class TemplateError(GraphmapError):
    """A template payload or registry could not be read or has the wrong shape."""

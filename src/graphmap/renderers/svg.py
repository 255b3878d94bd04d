"""SVG renderer — renders a Scene to an SVG string."""

from __future__ import annotations

from graphmap.scene import Scene, SceneLink, SceneNode

# ─── Constants ──────────────────────────────────────────────────────────────

FONT_SIZE = 12
FONT_FAMILY = "sans-serif"
BACKGROUND = "#ffffff"
LINK_STROKE = "#999999"
LINK_WIDTH = 1.5
NODE_STROKE = "#ffffff"
CURSOR_RADIUS = 12
ERROR_FILL = "#b00020"

_TEXT_FILLS = {"text-light": "#f0f0f0", "text-dark": "#333333"}
_LINK_OPACITY = {"highlighted": "1", "faded": "0.15"}


def _escape(s: str) -> str:
    return s.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;").replace('"', "&quot;")


def _font(size: int = FONT_SIZE) -> str:
    return f'font-family="{FONT_FAMILY}" font-size="{size}"'


def _num(v: float) -> str:
    return f"{v:.2f}".rstrip("0").rstrip(".")


# ─── Element Rendering ──────────────────────────────────────────────────────


def _render_link(link: SceneLink) -> str:
    classes = _escape(" ".join(link.classes))
    opacity = _LINK_OPACITY.get(link.classes[-1], "0.6")
    return (
        f'<line class="{classes}" data-type="{_escape(link.type)}" '
        f'x1="{_num(link.x1)}" y1="{_num(link.y1)}" x2="{_num(link.x2)}" y2="{_num(link.y2)}" '
        f'stroke="{LINK_STROKE}" stroke-width="{LINK_WIDTH}" stroke-opacity="{opacity}"/>'
    )


def _render_node(node: SceneNode) -> str:
    label = _escape(node.label)
    parts = [
        f'<g class="{_escape(" ".join(node.classes))}" data-id="{_escape(node.id)}" '
        f'transform="translate({_num(node.x)},{_num(node.y)})" tabindex="0" role="button" '
        f'aria-label="{label}. Press Enter or Tap for details.">',
        f'  <circle r="{_num(node.radius)}" fill="{_escape(node.fill)}" stroke="{NODE_STROKE}" stroke-width="1.5"/>',
    ]
    if node.show_label:
        fill = _TEXT_FILLS.get(node.text_class, _TEXT_FILLS["text-dark"])
        parts.append(
            f'  <text class="{node.text_class}" text-anchor="middle" dominant-baseline="central" '
            f'{_font()} fill="{fill}">{label}</text>'
        )
    parts.append(f"  <title>{label}</title>")
    parts.append("</g>")
    return "\n".join(parts)


def _render_cursor(x: float, y: float) -> str:
    return (
        f'<circle class="walkthrough-cursor" cx="{_num(x)}" cy="{_num(y)}" r="{CURSOR_RADIUS}" '
        f'fill="none" stroke="#000000" stroke-width="2" stroke-dasharray="3 2" aria-hidden="true"/>'
    )


def _header(width: float, height: float) -> str:
    w, h = _num(width), _num(height)
    return f'<svg xmlns="http://www.w3.org/2000/svg" width="{w}" height="{h}" viewBox="0 0 {w} {h}">'


# ─── Public Renderer ────────────────────────────────────────────────────────


class SvgRenderer:
    """SVG renderer — consumes a Scene, produces an SVG string."""

    def render(self, scene: Scene) -> str:
        if not scene.nodes:
            return ""

        parts = [
            _header(scene.width, scene.height),
            f'<rect width="100%" height="100%" fill="{BACKGROUND}"/>',
            f'<g class="viewport" transform="{scene.transform.to_svg()}">',
            '<g class="links">',
        ]
        # links sorted for deterministic output
        for link in sorted(scene.links, key=lambda s: (s.source, s.target, s.type)):
            parts.append(_render_link(link))
        parts.append("</g>")

        # nodes in draw order, raised nodes last
        parts.append('<g class="nodes">')
        for node in scene.nodes:
            parts.append(_render_node(node))
        parts.append("</g>")

        if scene.cursor is not None:
            parts.append(_render_cursor(*scene.cursor))

        parts.append("</g>")
        parts.append("</svg>")
        return "\n".join(parts)

    def render_error(self, message: str, width: float, height: float) -> str:
        return render_error(message, width, height)


def render_error(message: str, width: float = 480, height: float = 120) -> str:
    """A standalone SVG that shows ``message`` in place of a graph."""
    return "\n".join(
        [
            _header(width, height),
            f'<rect width="100%" height="100%" fill="{BACKGROUND}"/>',
            f'<text class="error-message" x="{_num(width / 2)}" y="{_num(height / 2)}" text-anchor="middle" '
            f'dominant-baseline="central" {_font(FONT_SIZE + 2)} fill="{ERROR_FILL}">{_escape(message)}</text>',
            "</svg>",
        ]
    )

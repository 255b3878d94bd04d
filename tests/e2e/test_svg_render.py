"""Tests that every example template lays out and renders to well-formed SVG."""

import math
import re
import xml.etree.ElementTree as ET
from pathlib import Path

import pytest

from graphmap.api import load_template, render_svg
from graphmap.settings import Settings

EXAMPLES_DIR = Path(__file__).parent.parent.parent / "examples"
TRANSLATE = re.compile(r"translate\(([-\d.]+),([-\d.]+)\)")


def find_templates() -> list[tuple[str, Path]]:
    """Every template file in the examples directory, skipping the registry."""
    return [(p.stem, p) for p in sorted(EXAMPLES_DIR.glob("*.json")) if p.stem != "registry"]


TEMPLATES = find_templates()


@pytest.mark.parametrize("name,path", TEMPLATES, ids=[t[0] for t in TEMPLATES])
def test_svg_is_well_formed(name: str, path: Path) -> None:
    """Render a template file and check the SVG holds one group per node at a finite position."""
    template = load_template(path)
    svg = render_svg(template, width=960, height=640, settings=Settings(_env_file=None))

    root = ET.fromstring(svg)
    groups = [el for el in root.iter() if "data-id" in el.attrib]
    ids = sorted(el.attrib["data-id"] for el in groups)
    assert ids == sorted(n["id"] for n in template.nodes), f"{name}: rendered nodes differ from template nodes"

    for el in groups:
        match = TRANSLATE.fullmatch(el.attrib["transform"])
        assert match, f"{name}: node {el.attrib['data-id']} has no translate transform"
        assert all(math.isfinite(float(v)) for v in match.groups()), f"{name}: node position is not finite"


@pytest.mark.parametrize("name,path", TEMPLATES, ids=[t[0] for t in TEMPLATES])
def test_svg_is_deterministic(name: str, path: Path) -> None:
    """Two renders with the same seed produce identical SVG."""
    settings = Settings(_env_file=None)
    first = render_svg(load_template(path), settings=settings)
    second = render_svg(load_template(path), settings=settings)
    assert first == second, f"SVG output for {name} differs between runs"

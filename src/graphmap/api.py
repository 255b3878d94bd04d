"""Public entry points: mount a template on a canvas, or render it headless."""

from __future__ import annotations

import logging
from pathlib import Path

from graphmap.config import GraphConfig
from graphmap.errors import GraphSetupError
from graphmap.renderers import render_error
from graphmap.scheduler import ManualScheduler, Scheduler
from graphmap.settings import Settings, get_settings
from graphmap.templates import Template, TemplateStore
from graphmap.view import Canvas, GraphView

logger = logging.getLogger(__name__)


def template_config(template: Template, config: GraphConfig | None = None) -> GraphConfig:
    """``config`` (or the defaults) with the template's overrides merged on top."""
    base = config or GraphConfig()
    return base.with_overrides(template.config_overrides)


def mount(
    container: Canvas | None,
    template: Template,
    *,
    scheduler: Scheduler,
    config: GraphConfig | None = None,
    settings: Settings | None = None,
    base_dir: Path | None = None,
) -> GraphView | None:
    """Build a ``GraphView`` for ``template`` inside ``container``.

    Setup failures are not raised: the error message is drawn into the
    container instead and None is returned.
    """
    settings = settings or get_settings()
    try:
        view = GraphView(
            container,
            template.nodes,
            template.links,
            template.details,
            template_config(template, config),
            scheduler=scheduler,
            template_kind=template.kind,
            meta=template.meta,
            skip_tour=settings.skip_tour,
            base_dir=base_dir,
            seed=settings.seed,
        )
    except GraphSetupError as exc:
        logger.error("Cannot display template %s: %s", template.id, exc)
        if container is not None:
            container.content = render_error(f"Error: {exc}", container.width, container.height)
        return None
    logger.debug("Mounted template %s", template.id)
    return view


def render_svg(
    template: Template,
    *,
    width: float | None = None,
    height: float | None = None,
    config: GraphConfig | None = None,
    settings: Settings | None = None,
) -> str:
    """Lay ``template`` out until stable and return the SVG of the final frame."""
    settings = settings or get_settings()
    canvas = Canvas(width or settings.viewport_width, height or settings.viewport_height)
    view = GraphView(
        canvas,
        template.nodes,
        template.links,
        template.details,
        template_config(template, config),
        scheduler=ManualScheduler(),
        template_kind=template.kind,
        meta=template.meta,
        skip_tour=True,
        seed=settings.seed,
    )
    view.run_until_stable(settings.max_ticks)
    return view.render()


def load_template(path: str | Path, template_id: str | None = None) -> Template:
    """Read one template file (career export or task database)."""
    return TemplateStore().load_file(path, template_id=template_id)

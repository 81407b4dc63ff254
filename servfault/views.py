"""Jinja2 backed error views."""

import logging
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, TemplateNotFound, select_autoescape

logger = logging.getLogger(__name__)

BUNDLED_TEMPLATES = Path(__file__).parent / "templates"


class Jinja2TemplateResolver:
    """Resolves error views from a list of template directories.

    Project directories are searched before the templates bundled with
    servfault, so an application can override ``errors/error.html`` or add
    pages for specific status codes such as ``errors/404.html``.
    """

    def __init__(
        self,
        directories: list[str | Path] | None = None,
        include_bundled: bool = True,
    ):
        self.directories = [Path(directory) for directory in directories or []]
        if include_bundled:
            self.directories.append(BUNDLED_TEMPLATES)

        self.environment = Environment(
            loader=FileSystemLoader(self.directories),
            autoescape=select_autoescape(["html", "xml"]),
        )

    def exists(self, name: str) -> bool:
        try:
            self.environment.get_template(name)
        except TemplateNotFound:
            return False

        return True

    def render(self, name: str, context: dict[str, Any]) -> str:
        logger.debug("Rendering error template %s", name)
        return self.environment.get_template(name).render(**context)

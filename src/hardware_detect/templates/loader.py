"""
Template Loader

Loads Jinja2 templates from the packaged directory, with system and user
directories layered on top so an operator can override the wording.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, List

from jinja2 import ChoiceLoader, Environment, FileSystemLoader, TemplateError, TemplateNotFound

from common.exceptions import TemplateNotFoundError, TemplateRenderError

logger = logging.getLogger(__name__)


class TemplateLoader:
    """
    Loads text templates from multiple locations.

    Search order:
    1. User templates (~/.config/tenpod/templates)
    2. System templates (/usr/share/tenpod/templates)
    3. Packaged templates (this directory)
    """

    TEMPLATE_PATHS = [
        Path.home() / ".config/tenpod/templates",
        Path("/usr/share/tenpod/templates"),
        Path(__file__).parent,
    ]

    def __init__(self, additional_paths: Optional[List[Path]] = None):
        self._paths = list(additional_paths or []) + list(self.TEMPLATE_PATHS)
        self._env = self._create_environment()

    def _create_environment(self) -> Environment:
        """Create Jinja2 environment with all existing template paths."""
        loaders = []

        for path in self._paths:
            if path.exists() and path.is_dir():
                loaders.append(FileSystemLoader(str(path)))
                logger.debug(f"Added template path: {path}")

        return Environment(
            loader=ChoiceLoader(loaders),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )

    def render(self, name: str, **variables) -> str:
        """
        Render a template with variables.

        Raises:
            TemplateNotFoundError: if no search path has the template
            TemplateRenderError: if rendering fails
        """
        try:
            template = self._env.get_template(name)
        except TemplateNotFound as e:
            raise TemplateNotFoundError(name) from e

        try:
            return template.render(**variables)
        except TemplateError as e:
            raise TemplateRenderError(name, str(e)) from e

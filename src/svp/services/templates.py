"""Jinja2 environment shared by the services that render config files."""

import os

from jinja2 import Environment, FileSystemLoader, StrictUndefined

TEMPLATE_DIR = os.path.join(os.path.dirname(__file__), "..", "templates")


def template_environment(template_dir: str | None = None) -> Environment:
    """Environment for nginx and PHP-FPM config templates.

    Config files are not HTML, so autoescaping stays off. A missing
    variable raises instead of rendering as an empty string.
    """
    return Environment(
        loader=FileSystemLoader(template_dir or TEMPLATE_DIR),
        undefined=StrictUndefined,
        keep_trailing_newline=True,
        autoescape=False,
    )

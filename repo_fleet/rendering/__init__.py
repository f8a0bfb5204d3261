"""Template rendering for task definitions."""

from repo_fleet.rendering.engine import TemplateRenderer, slugify

__all__ = ["TemplateRenderer", "slugify"]

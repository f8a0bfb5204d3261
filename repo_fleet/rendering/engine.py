"""Sandboxed Jinja2 rendering for task templates.

Branch names, start points, commit messages, pull request fields and file
contents in task definitions are Jinja2 templates rendered against the
repository being processed.

Security Features:
    - Sandboxed environment prevents arbitrary code execution
    - StrictUndefined catches missing variables early (fail-fast)

Template context:
    repository: RepositoryContext.template_fields()
    task: {"name": ...} while a task runs
    variables: runtime variables passed with --var
    captured: values recorded by capture blocks for this repository

Example:
    >>> renderer = TemplateRenderer()
    >>> renderer.render("automation/{{ repository.name }}", {"repository": {"name": "api"}})
    'automation/api'
"""

import re
from typing import Any

from jinja2 import StrictUndefined, TemplateSyntaxError, UndefinedError
from jinja2.sandbox import SandboxedEnvironment, SecurityError

from repo_fleet.exceptions import TemplateError

SLUG_PATTERN = re.compile(r"[^A-Za-z0-9._-]+")


def slugify(value: str) -> str:
    """Make a value safe for branch names and step identifiers."""
    slug = SLUG_PATTERN.sub("-", value.strip()).strip("-.").lower()
    return slug or "task"


class TemplateRenderer:
    """Render string templates in a hardened Jinja2 sandbox.

    Thread Safety:
        Instances are safe to share between concurrent workers. The Jinja2
        environment is immutable after initialization.
    """

    def __init__(self) -> None:
        self.env = SandboxedEnvironment(
            undefined=StrictUndefined,
            autoescape=False,
            keep_trailing_newline=True,
        )
        self.env.filters["slugify"] = slugify

    def render(self, template: str, context: dict[str, Any]) -> str:
        """Render ``template`` with ``context``.

        Strings without template markers are returned unchanged.

        Raises:
            TemplateError: On syntax errors, undefined variables or sandbox
                violations
        """
        if "{{" not in template and "{%" not in template:
            return template
        try:
            return self.env.from_string(template).render(**context)
        except (TemplateSyntaxError, UndefinedError, SecurityError) as e:
            raise TemplateError(f"Failed to render template: {e}", template=template) from e

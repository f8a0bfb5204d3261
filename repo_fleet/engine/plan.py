"""Workflow plan loading and normalization.

A plan document is YAML::

    workflow:
      - step:
          name: rename
          command: ["folder", "rename"]
          safeguards:
            hard_stop: {require_clean: true}
      - step:
          name: gitignore
          after: [rename]
          command: ["tasks", "apply"]
          with:
            tasks: [...]

Loading happens in three passes, each of which can fail with a PlanError
before any repository is touched:

1. ``${name}`` / ``${name:-default}`` substitution from runtime variables,
   then the environment (comment lines are left alone).
2. Parsing into StepDefinition records.
3. Normalization (``normalize_plan``): default names, trimmed and
   deduplicated dependencies, the implicit "after the previous step" edge,
   command alias resolution and option validation against the registry.

Graph checks (unknown references, cycles) belong to the scheduler.
"""

from __future__ import annotations

import os
import re
from collections import ChainMap
from collections.abc import Mapping, Sequence
from importlib import resources
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from repo_fleet.config.settings import interpolate_variables
from repo_fleet.engine.safeguards import SafeguardSpec
from repo_fleet.exceptions import CyclicDependencyError, DuplicateStepError, InvalidStepOptionsError, PlanError
from repo_fleet.rendering.engine import slugify

if TYPE_CHECKING:
    from repo_fleet.engine.registry import OperationRegistry

log = structlog.get_logger(__name__)

PLAN_VARIABLE_PATTERN = re.compile(r"\$\{([A-Za-z0-9_.-]+)(?::-([^}]*))?\}")
PRESET_PACKAGE = "repo_fleet.presets"
PRESET_SUFFIX = ".yaml"


class StepDefinition(BaseModel):
    """A step exactly as written in the plan document."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    name: str | None = None
    after: list[str] | None = None
    command: list[str]
    safeguards: dict[str, Any] | None = None
    options: dict[str, Any] = Field(default_factory=dict, alias="with")

    @field_validator("command", mode="before")
    @classmethod
    def split_command(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.split()
        if isinstance(value, list):
            parts = [str(part).strip() for part in value if str(part).strip()]
            if not parts:
                raise ValueError("command must not be empty")
            return parts
        return value

    @field_validator("after", mode="before")
    @classmethod
    def wrap_after(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [value]
        return value

    @field_validator("options", mode="before")
    @classmethod
    def default_options(cls, value: Any) -> Any:
        return {} if value is None else value


class Step(BaseModel):
    """A normalized, immutable workflow step.

    Attributes:
        name: Unique step name
        command: Canonical command path key (``tasks apply``)
        after: Names of the steps this one depends on
        options: Option bag consumed by the operation
        safeguards: Step-level gate evaluated before the operation runs
        index: Declaration position
    """

    model_config = ConfigDict(frozen=True)

    name: str
    command: str
    after: tuple[str, ...] = ()
    options: dict[str, Any] = Field(default_factory=dict)
    safeguards: SafeguardSpec = Field(default_factory=SafeguardSpec)
    index: int = 0


class WorkflowPlan(BaseModel):
    """Ordered collection of normalized steps."""

    model_config = ConfigDict(frozen=True)

    steps: tuple[Step, ...] = ()

    @property
    def names(self) -> list[str]:
        return [step.name for step in self.steps]

    def step(self, name: str) -> Step:
        for step in self.steps:
            if step.name == name:
                return step
        raise KeyError(name)

    def __len__(self) -> int:
        return len(self.steps)


def substitute_variables(text: str, variables: Mapping[str, str] | None = None) -> str:
    """Apply runtime variables, falling back to the environment.

    Raises:
        PlanError: If a referenced name has no value and no default
    """
    values = ChainMap(dict(variables or {}), dict(os.environ))
    try:
        return interpolate_variables(text, values, PLAN_VARIABLE_PATTERN)
    except ValueError as e:
        raise PlanError(f"Unresolved plan variable: {e}") from e


def parse_plan_document(
    text: str,
    variables: Mapping[str, str] | None = None,
    source: str = "<plan>",
) -> list[StepDefinition]:
    """Parse plan YAML into step definitions.

    Accepts a mapping with a ``workflow`` (or ``steps``) list, or a bare list.
    Each item may be wrapped in ``step:``.

    Raises:
        PlanError: On unresolved variables, invalid YAML or malformed steps
    """
    text = substitute_variables(text, variables)
    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise PlanError(f"Invalid YAML syntax in {source}: {e}") from e

    if isinstance(document, dict):
        items = document.get("workflow", document.get("steps"))
    else:
        items = document
    if not isinstance(items, list) or not items:
        raise PlanError(f"{source} must define a non-empty 'workflow' list")

    definitions = []
    for position, item in enumerate(items, start=1):
        if isinstance(item, dict) and set(item) == {"step"}:
            item = item["step"]
        if not isinstance(item, dict):
            raise PlanError(f"{source}: workflow item {position} must be a mapping")
        try:
            definitions.append(StepDefinition.model_validate(item))
        except ValidationError as e:
            raise PlanError(f"{source}: workflow item {position} is invalid: {e}") from e
    return definitions


def normalize_plan(
    definitions: Sequence[StepDefinition],
    registry: OperationRegistry | None = None,
) -> WorkflowPlan:
    """Turn parsed definitions into a WorkflowPlan.

    - A missing name becomes ``<command-slug>-<position>``.
    - ``after`` entries are trimmed and deduplicated, keeping order.
    - A missing ``after`` depends on the previous step; an explicit empty
      list means no dependencies.
    - With a registry, aliases resolve to canonical command keys and options
      are validated against each operation's options model.

    Raises:
        DuplicateStepError: Two steps share a name
        CyclicDependencyError: A step depends on itself
        UnknownCommandError: Command path is not registered
        InvalidStepOptionsError: Options or safeguards fail validation
    """
    steps: list[Step] = []
    seen: set[str] = set()

    for index, definition in enumerate(definitions):
        command = " ".join(definition.command)
        if registry is not None:
            command = registry.resolve(command).key

        name = (definition.name or "").strip() or f"{slugify(command)}-{index + 1}"
        if name in seen:
            raise DuplicateStepError(name)
        seen.add(name)

        if definition.after is None:
            after: tuple[str, ...] = (steps[-1].name,) if steps else ()
        else:
            after = tuple(dict.fromkeys(ref.strip() for ref in definition.after if ref and ref.strip()))
        if name in after:
            raise CyclicDependencyError([name])

        if registry is not None:
            registry.validate_options(command, name, definition.options)

        try:
            safeguards = SafeguardSpec.from_mapping(definition.safeguards)
        except (ValidationError, ValueError) as e:
            raise InvalidStepOptionsError(name, f"safeguards: {e}") from e

        steps.append(
            Step(
                name=name,
                command=command,
                after=after,
                options=dict(definition.options),
                safeguards=safeguards,
                index=index,
            )
        )

    return WorkflowPlan(steps=tuple(steps))


def list_presets() -> list[str]:
    """Names of the embedded plan presets."""
    package = resources.files(PRESET_PACKAGE)
    return sorted(
        entry.name.removesuffix(PRESET_SUFFIX) for entry in package.iterdir() if entry.name.endswith(PRESET_SUFFIX)
    )


def read_plan_source(source: str | Path) -> tuple[str, str]:
    """Read plan text from a file path or an embedded preset name.

    Returns:
        (text, description of the source)

    Raises:
        PlanError: If neither a readable file nor a known preset
    """
    path = Path(source).expanduser()
    if path.is_file():
        try:
            return path.read_text(encoding="utf-8"), str(path)
        except OSError as e:
            raise PlanError(f"Cannot read plan file: {path}") from e

    name = str(source)
    if name in list_presets():
        preset = resources.files(PRESET_PACKAGE).joinpath(f"{name}{PRESET_SUFFIX}")
        return preset.read_text(encoding="utf-8"), f"preset:{name}"

    raise PlanError(f"Plan not found: {source} is neither a file nor a preset ({', '.join(list_presets())})")


def load_plan(
    source: str | Path,
    variables: Mapping[str, str] | None = None,
    registry: OperationRegistry | None = None,
) -> WorkflowPlan:
    """Read, substitute, parse and normalize a plan."""
    text, description = read_plan_source(source)
    plan = normalize_plan(parse_plan_document(text, variables, description), registry)
    log.info("plan_loaded", source=description, steps=plan.names)
    return plan

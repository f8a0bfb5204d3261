"""Safeguard evaluation.

A safeguard specification has two disjoint condition sets:

- ``hard_stop``: a violation ends all remaining work for the repository in
  this run (the repository is reported as skipped, not failed)
- ``soft_skip``: a violation skips only the current action or step

A legacy map without ``hard_stop``/``soft_skip`` keys is treated entirely as
hard-stop.

Conditions:
    require_clean: true | {enabled, ignore_dirty_paths: [...]}
    require_changes: true
    branch: main
    branch_in: [main, master]
    paths: [README.md]          (alias: file_exists)

Evaluation is pure: ``evaluate_safeguards`` takes an already collected
RepositoryObservation. ``observe_repository`` gathers only what a
specification needs, and ``check_safeguards`` combines both.

Example:
    >>> spec = SafeguardSpec.from_mapping({"hard_stop": {"require_clean": True}})
    >>> verdicts = evaluate_safeguards(spec, RepositoryObservation())
    >>> first_violation(verdicts) is None
    True
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from repo_fleet.enums import SafeguardClass
from repo_fleet.git.client import GitClient
from repo_fleet.git.status import StatusEntry, describe_dirty_entries, filter_status_entries

NAMESPACE_KEYS = {SafeguardClass.HARD_STOP.value, SafeguardClass.SOFT_SKIP.value}


class CleanRequirement(BaseModel):
    """Worktree cleanliness requirement."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    enabled: bool = True
    ignore_dirty_paths: tuple[str, ...] = ()


class SafeguardConditions(BaseModel):
    """One classification's set of conditions."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    require_clean: CleanRequirement | None = None
    require_changes: bool = False
    branch: str | None = None
    branch_in: tuple[str, ...] = ()
    paths: tuple[str, ...] = ()

    @model_validator(mode="before")
    @classmethod
    def normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)

        require_clean = data.get("require_clean")
        if isinstance(require_clean, bool):
            data["require_clean"] = {"enabled": True} if require_clean else None
        ignore = data.pop("ignore_dirty_paths", None)
        if ignore:
            clean = dict(data.get("require_clean") or {"enabled": True})
            clean["ignore_dirty_paths"] = list(clean.get("ignore_dirty_paths") or []) + _as_list(ignore)
            data["require_clean"] = clean

        paths = _as_list(data.get("paths")) + _as_list(data.pop("file_exists", None))
        data["paths"] = [path.strip() for path in paths if path and path.strip()]
        data["branch_in"] = [name.strip() for name in _as_list(data.get("branch_in")) if name and name.strip()]
        if isinstance(data.get("branch"), str):
            data["branch"] = data["branch"].strip() or None
        return data

    @property
    def is_empty(self) -> bool:
        return not (
            (self.require_clean and self.require_clean.enabled)
            or self.require_changes
            or self.branch
            or self.branch_in
            or self.paths
        )


class SafeguardSpec(BaseModel):
    """Hard-stop and soft-skip condition sets."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    hard_stop: SafeguardConditions = Field(default_factory=SafeguardConditions)
    soft_skip: SafeguardConditions = Field(default_factory=SafeguardConditions)

    @model_validator(mode="before")
    @classmethod
    def split_legacy(cls, data: Any) -> Any:
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError("safeguards must be a mapping")
        if data and not NAMESPACE_KEYS.intersection(data):
            return {"hard_stop": data}
        return {key: (value or {}) for key, value in data.items()}

    @classmethod
    def from_mapping(cls, raw: dict[str, Any] | None) -> "SafeguardSpec":
        return cls.model_validate(raw or {})

    @property
    def is_empty(self) -> bool:
        return self.hard_stop.is_empty and self.soft_skip.is_empty

    def _any(self, predicate: Any) -> bool:
        return bool(predicate(self.hard_stop) or predicate(self.soft_skip))

    @property
    def needs_status(self) -> bool:
        return self._any(lambda c: (c.require_clean and c.require_clean.enabled) or c.require_changes)

    @property
    def needs_branch(self) -> bool:
        return self._any(lambda c: c.branch or c.branch_in)

    @property
    def required_paths(self) -> list[str]:
        return list(dict.fromkeys(self.hard_stop.paths + self.soft_skip.paths))


@dataclass(frozen=True)
class RepositoryObservation:
    """Repository state a safeguard specification is evaluated against.

    Attributes:
        status_entries: Porcelain status entries
        current_branch: Checked-out branch name
        existing_paths: Required paths that exist
        staged_paths: Paths staged in the index
    """

    status_entries: tuple[StatusEntry, ...] = ()
    current_branch: str | None = None
    existing_paths: frozenset[str] = frozenset()
    staged_paths: tuple[str, ...] = ()


@dataclass(frozen=True)
class SafeguardVerdict:
    """Result of one condition."""

    condition: str
    classification: SafeguardClass
    satisfied: bool
    reason: str = ""

    @property
    def hard_stop(self) -> bool:
        return self.classification == SafeguardClass.HARD_STOP


def evaluate_conditions(
    conditions: SafeguardConditions,
    classification: SafeguardClass,
    observation: RepositoryObservation,
) -> list[SafeguardVerdict]:
    """Evaluate one condition set; one verdict per condition (per path)."""
    verdicts = []

    def verdict(condition: str, satisfied: bool, reason: str) -> None:
        verdicts.append(SafeguardVerdict(condition, classification, satisfied, "" if satisfied else reason))

    if conditions.require_clean and conditions.require_clean.enabled:
        dirty = filter_status_entries(observation.status_entries, conditions.require_clean.ignore_dirty_paths)
        verdict("require_clean", not dirty, describe_dirty_entries(dirty) if dirty else "")

    if conditions.require_changes:
        changed = bool(observation.staged_paths) or bool(filter_status_entries(observation.status_entries))
        verdict("require_changes", changed, "requires changes")

    if conditions.branch:
        verdict("branch", observation.current_branch == conditions.branch, f"requires branch {conditions.branch}")

    if conditions.branch_in:
        verdict(
            "branch_in",
            observation.current_branch in conditions.branch_in,
            f"requires branch in {', '.join(conditions.branch_in)}",
        )

    for path in conditions.paths:
        verdict("paths", path in observation.existing_paths, f"missing required path {path}")

    return verdicts


def evaluate_safeguards(spec: SafeguardSpec, observation: RepositoryObservation) -> list[SafeguardVerdict]:
    """Evaluate hard-stop conditions, then soft-skip conditions."""
    return evaluate_conditions(spec.hard_stop, SafeguardClass.HARD_STOP, observation) + evaluate_conditions(
        spec.soft_skip, SafeguardClass.SOFT_SKIP, observation
    )


def first_violation(verdicts: list[SafeguardVerdict]) -> SafeguardVerdict | None:
    """First violated hard-stop verdict, else first violated soft-skip verdict."""
    violated = [v for v in verdicts if not v.satisfied]
    for candidate in violated:
        if candidate.hard_stop:
            return candidate
    return violated[0] if violated else None


async def observe_repository(git: GitClient, path: Path, spec: SafeguardSpec) -> RepositoryObservation:
    """Collect only the state ``spec`` needs."""
    status_entries: tuple[StatusEntry, ...] = ()
    current_branch = None
    if spec.needs_status:
        status_entries = tuple(await git.status(path))
    if spec.needs_branch:
        current_branch = await git.current_branch(path)
    existing = frozenset(p for p in spec.required_paths if (path / p).exists())
    return RepositoryObservation(
        status_entries=status_entries,
        current_branch=current_branch,
        existing_paths=existing,
    )


async def check_safeguards(git: GitClient, path: Path, spec: SafeguardSpec) -> SafeguardVerdict | None:
    """Observe and evaluate; returns the deciding violation, if any."""
    if spec.is_empty:
        return None
    observation = await observe_repository(git, path, spec)
    return first_violation(evaluate_safeguards(spec, observation))


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(item) for item in value]

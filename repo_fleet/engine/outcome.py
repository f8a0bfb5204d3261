"""Step outcomes and run summaries.

An ExecutionOutcome is the uniform record for one step against one
repository (or one global step). Its ``status`` tag is applied, skipped or
failed; skips are values, never exceptions, so every caller has to look at
the tag.

A skipped outcome with ``halt_repository`` set is the repository skip
sentinel: it comes from a hard-stop safeguard, and the coordinator runs no
later step against that repository.
"""

import time
from dataclasses import dataclass, field
from typing import Any

from repo_fleet.enums import OutcomeStatus
from repo_fleet.exceptions import WorkflowRunError


@dataclass(frozen=True)
class ExecutionOutcome:
    """Result of one (repository, step) execution.

    Attributes:
        step: Step name
        repository: Repository label, None for global steps
        status: applied, skipped or failed
        reason: Human-readable explanation, never blank for skips and failures
        code: Machine-readable code
        halt_repository: Repository skip sentinel (hard-stop safeguard)
        error: The wrapped error for failed outcomes
        details: Extra structured data (action outcomes, new paths, urls)
        repository_key: Discovery path of the repository; two clones of one
            remote share a label but never a key
    """

    step: str
    repository: str | None
    status: OutcomeStatus
    reason: str = ""
    code: str = ""
    halt_repository: bool = False
    error: BaseException | None = None
    details: dict[str, Any] = field(default_factory=dict)
    repository_key: str | None = None

    @classmethod
    def applied(
        cls,
        step: str,
        repository: str | None,
        reason: str = "applied",
        code: str = "applied",
        details: dict[str, Any] | None = None,
    ) -> "ExecutionOutcome":
        return cls(step, repository, OutcomeStatus.APPLIED, reason, code, details=details or {})

    @classmethod
    def skipped(
        cls,
        step: str,
        repository: str | None,
        reason: str,
        code: str = "skipped",
        details: dict[str, Any] | None = None,
    ) -> "ExecutionOutcome":
        return cls(step, repository, OutcomeStatus.SKIPPED, reason or "skipped", code, details=details or {})

    @classmethod
    def repository_skip(cls, step: str, repository: str | None, reason: str) -> "ExecutionOutcome":
        """Skip produced by a hard-stop safeguard; halts the repository."""
        return cls(step, repository, OutcomeStatus.SKIPPED, reason or "hard-stop safeguard", "hard_stop", True)

    @classmethod
    def failed(
        cls,
        step: str,
        repository: str | None,
        error: BaseException,
        code: str = "failed",
        details: dict[str, Any] | None = None,
    ) -> "ExecutionOutcome":
        message = getattr(error, "message", None) or str(error) or type(error).__name__
        return cls(step, repository, OutcomeStatus.FAILED, message, code, error=error, details=details or {})

    @property
    def is_applied(self) -> bool:
        return self.status == OutcomeStatus.APPLIED

    @property
    def is_skipped(self) -> bool:
        return self.status == OutcomeStatus.SKIPPED

    @property
    def is_failed(self) -> bool:
        return self.status == OutcomeStatus.FAILED

    @property
    def key(self) -> str:
        """``step@repository`` identifier used in summaries."""
        return f"{self.step}@{self.repository}" if self.repository else self.step

    def to_event(self) -> dict[str, Any]:
        event: dict[str, Any] = {
            "step": self.step,
            "repository": self.repository,
            "status": self.status.value,
            "reason": self.reason,
            "code": self.code,
        }
        if self.repository_key is not None:
            event["repository_path"] = self.repository_key
        if self.halt_repository:
            event["halt_repository"] = True
        if self.details:
            event["details"] = self.details
        return event


@dataclass
class RunSummary:
    """Aggregate of every outcome recorded during one run."""

    outcomes: list[ExecutionOutcome] = field(default_factory=list)
    started_at: float = field(default_factory=time.monotonic)
    finished_at: float | None = None

    def record(self, outcome: ExecutionOutcome) -> None:
        self.outcomes.append(outcome)

    def finish(self) -> None:
        self.finished_at = time.monotonic()

    @property
    def duration(self) -> float:
        end = self.finished_at if self.finished_at is not None else time.monotonic()
        return round(end - self.started_at, 3)

    @property
    def counts(self) -> dict[str, int]:
        counts = {status.value: 0 for status in OutcomeStatus}
        for outcome in self.outcomes:
            counts[outcome.status.value] += 1
        return counts

    @property
    def failures(self) -> list[ExecutionOutcome]:
        return [outcome for outcome in self.outcomes if outcome.is_failed]

    @property
    def succeeded(self) -> bool:
        return not self.failures

    def outcome(self, step: str, repository: str | None) -> ExecutionOutcome | None:
        """Last recorded outcome for (step, repository).

        ``repository`` is matched against the repository key (its discovery
        path) first, then against the label.
        """
        steps = [outcome for outcome in reversed(self.outcomes) if outcome.step == step]
        for outcome in steps:
            if repository is not None and outcome.repository_key == repository:
                return outcome
        for outcome in steps:
            if outcome.repository == repository:
                return outcome
        return None

    def raise_for_failures(self) -> None:
        """Raise the aggregate WorkflowRunError when any step failed."""
        failures = self.failures
        if failures:
            raise WorkflowRunError(self, [f"{outcome.key}: {outcome.reason}" for outcome in failures])

    def format_counts(self) -> str:
        """``applied=4, skipped=2, failed=0``"""
        return ", ".join(f"{status}={count}" for status, count in self.counts.items())

    def to_event(self) -> dict[str, Any]:
        return {**self.counts, "total": len(self.outcomes), "duration_seconds": self.duration}

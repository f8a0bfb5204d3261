"""Tests for the repo-fleet exception hierarchy."""

import pytest

from repo_fleet.engine.outcome import ExecutionOutcome, RunSummary
from repo_fleet.exceptions import (
    CommandExecutionError,
    CyclicDependencyError,
    DiscoveryError,
    DuplicateStepError,
    GitOperationError,
    InvalidStepOptionsError,
    PlanError,
    RepoFleetError,
    StepExecutionError,
    TemplateError,
    UnknownCommandError,
    UnknownStepReferenceError,
    WorkflowRunError,
)
from repo_fleet.git.exceptions import DiscoveryRootError, InvalidRemoteUrlError, NotGitRepositoryError


class TestHierarchy:
    """Test exception inheritance."""

    @pytest.mark.parametrize(
        "error",
        [
            DuplicateStepError("a"),
            UnknownStepReferenceError("a", "b"),
            CyclicDependencyError(["a", "b"]),
            UnknownCommandError("x y"),
            InvalidStepOptionsError("a", "bad"),
        ],
    )
    def test_plan_errors(self, error):
        """Test every graph and option error is a PlanError."""
        assert isinstance(error, PlanError)
        assert isinstance(error, RepoFleetError)

    def test_discovery_errors(self):
        """Test discovery errors share a base and render their hint."""
        error = NotGitRepositoryError("/tmp/x")

        assert isinstance(error, DiscoveryError)
        assert isinstance(DiscoveryRootError("/nope"), DiscoveryError)
        assert "Hint:" in str(error)
        assert error.message == "Not a Git repository: /tmp/x"

    def test_git_operation_error(self):
        """Test git failures carry operation, repository and stderr."""
        error = GitOperationError("push", "/src/api", ["git", "push"], 128, "  rejected\n")

        assert isinstance(error, CommandExecutionError)
        assert error.stderr == "rejected"
        assert error.message == "git push failed in /src/api: rejected"

    def test_invalid_remote_url(self):
        """Test URL errors keep the URL and reason."""
        error = InvalidRemoteUrlError("nope", "unrecognized format")

        assert error.url == "nope"
        assert "unrecognized format" in error.message


class TestMessages:
    """Test error messages."""

    def test_cycle_lists_steps(self):
        """Test the cycle message names the steps involved."""
        assert CyclicDependencyError(["a", "b"]).message == "workflow steps contain a dependency cycle: a, b"

    def test_unknown_reference(self):
        """Test unknown references name both steps."""
        error = UnknownStepReferenceError("deploy", "build")

        assert error.message == "step 'deploy' depends on unknown step 'build'"


class TestStepExecutionError:
    """Test the per-repository failure wrapper."""

    def test_message_and_cause(self):
        """Test the message combines operation, path and the cause's message."""
        cause = TemplateError("Failed to render template: 'x' is undefined")

        error = StepExecutionError("tasks apply", "/src/api", cause)

        assert error.message == "tasks apply in /src/api: Failed to render template: 'x' is undefined"
        assert error.__cause__ is cause
        assert error.caused_by(TemplateError)
        assert not error.caused_by(GitOperationError)

    def test_global_step(self):
        """Test global steps have no location."""
        error = StepExecutionError("audit report", None, OSError("disk full"))

        assert error.message == "audit report: disk full"

    def test_nested_cause(self):
        """Test the whole cause chain is searched."""
        inner = GitOperationError("commit", "/src/api")
        outer = RepoFleetError("wrapped")
        outer.__cause__ = inner

        assert StepExecutionError("tasks apply", "/src/api", outer).caused_by(GitOperationError)


class TestWorkflowRunError:
    """Test the aggregate run error."""

    def test_counts_further_failures(self):
        """Test the message names the first failure and counts the rest."""
        summary = RunSummary()
        for name in ("api", "web"):
            summary.record(ExecutionOutcome.failed("rename", f"acme/{name}", RepoFleetError("boom")))
        summary.record(ExecutionOutcome.applied("rename", "acme/cli"))

        with pytest.raises(WorkflowRunError) as exc_info:
            summary.raise_for_failures()

        error = exc_info.value
        assert error.message == "rename@acme/api: boom (and 1 more failures)"
        assert error.details()["counts"] == {"applied": 1, "skipped": 0, "failed": 2}

    def test_no_failures(self):
        """Test a clean summary does not raise."""
        summary = RunSummary()
        summary.record(ExecutionOutcome.skipped("rename", "acme/api", "already named api"))

        summary.raise_for_failures()

        assert summary.succeeded is True
        assert summary.format_counts() == "applied=0, skipped=1, failed=0"

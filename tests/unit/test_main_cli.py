"""Unit tests for the repo_fleet.main CLI module.

- presets / plan / run commands
- --var parsing and settings overrides
- Error handling for configuration, plan and run failures
"""

from unittest.mock import AsyncMock, MagicMock, patch

import click
import pytest
from click.testing import CliRunner

from repo_fleet.engine.outcome import ExecutionOutcome, RunSummary
from repo_fleet.exceptions import DiscoveryError, RepoFleetError
from repo_fleet.main import cli, parse_variables


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def quiet_logging():
    with patch("repo_fleet.main.configure_logging") as configure:
        yield configure


@pytest.fixture
def mock_engine():
    """Patch WorkflowEngine with a mock returning a one-outcome summary."""
    summary = RunSummary()
    summary.record(ExecutionOutcome.applied("rename", "acme/api", "renamed api-old to api"))
    summary.finish()

    with patch("repo_fleet.main.WorkflowEngine") as engine_class:
        engine = engine_class.return_value
        engine.load_plan = MagicMock(return_value=MagicMock())
        engine.discover = MagicMock(return_value=[])
        engine.run = AsyncMock(return_value=summary)
        engine.summary = summary
        yield engine_class


class TestParseVariables:
    """Test --var parsing."""

    def test_pairs(self):
        """Test name=value pairs, keeping '=' inside values."""
        assert parse_variables(("branch=fix/env", "query=a=b", "empty=")) == {
            "branch": "fix/env",
            "query": "a=b",
            "empty": "",
        }

    @pytest.mark.parametrize("value", ["novalue", "=x", " =x"])
    def test_invalid(self, value):
        """Test entries without a name or separator are rejected."""
        with pytest.raises(click.BadParameter):
            parse_variables((value,))


class TestCLIHelpText:
    """Test CLI help text generation."""

    def test_main_help(self, cli_runner):
        """Test the group lists every command."""
        result = cli_runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        for command in ("run", "plan", "presets"):
            assert command in result.output


class TestPresetsCommand:
    """Test the presets command."""

    def test_lists_presets(self, cli_runner):
        """Test every embedded preset is listed."""
        result = cli_runner.invoke(cli, ["presets"])

        assert result.exit_code == 0
        assert result.output.split() == ["audit", "default-branch", "folder-rename", "gitignore-env", "remote-ssh"]


class TestPlanCommand:
    """Test the plan command."""

    def test_preset_stages(self, cli_runner):
        """Test a preset prints its stages."""
        result = cli_runner.invoke(cli, ["plan", "folder-rename"])

        assert result.exit_code == 0
        assert result.output == "Stage 1:\n  - rename: folder rename\n"

    def test_branch_preset_stages(self, cli_runner):
        """Test the default-branch preset moves the default after the canonical remote update."""
        result = cli_runner.invoke(cli, ["plan", "default-branch", "--var", "target=trunk"])

        assert result.exit_code == 0
        assert result.output.splitlines() == [
            "Stage 1:",
            "  - canonical: remote update-to-canonical",
            "Stage 2:",
            "  - default: branch default (after canonical)",
        ]

    def test_dependencies_printed(self, cli_runner, tmp_path):
        """Test steps sharing a stage and their dependencies."""
        plan_file = tmp_path / "plan.yaml"
        plan_file.write_text(
            "workflow:\n"
            "  - step: {name: rename, command: [folder, rename]}\n"
            "  - step: {name: ssh, command: [remote, update-protocol], after: [rename], with: {from: https, to: ssh}}\n"
            "  - step: {name: audit, command: [audit, report], after: [rename]}\n"
        )

        result = cli_runner.invoke(cli, ["plan", str(plan_file)])

        assert result.exit_code == 0
        assert result.output.splitlines() == [
            "Stage 1:",
            "  - rename: folder rename",
            "Stage 2:",
            "  - ssh: remote update-protocol (after rename)",
            "  - audit: audit report (after rename)",
        ]

    def test_variables(self, cli_runner):
        """Test --var values reach the plan."""
        result = cli_runner.invoke(cli, ["plan", "folder-rename", "--var", "include_owner=true"])

        assert result.exit_code == 0

    def test_cycle(self, cli_runner, tmp_path):
        """Test a cyclic plan is reported with exit code 1."""
        plan_file = tmp_path / "plan.yaml"
        plan_file.write_text(
            "workflow:\n"
            "  - step: {name: a, command: [folder, rename], after: [b]}\n"
            "  - step: {name: b, command: [folder, rename], after: [a]}\n"
        )

        result = cli_runner.invoke(cli, ["plan", str(plan_file)])

        assert result.exit_code == 1
        assert "dependency cycle" in result.output

    def test_unknown_plan(self, cli_runner):
        """Test an unknown plan source is reported."""
        result = cli_runner.invoke(cli, ["plan", "no-such-preset"])

        assert result.exit_code == 1
        assert "Plan not found" in result.output

    def test_unknown_command(self, cli_runner, tmp_path):
        """Test unregistered commands fail planning."""
        plan_file = tmp_path / "plan.yaml"
        plan_file.write_text("workflow:\n  - step: {command: [repo, explode]}\n")

        result = cli_runner.invoke(cli, ["plan", str(plan_file)])

        assert result.exit_code == 1
        assert "unknown workflow command" in result.output


class TestRunCommand:
    """Test the run command."""

    def test_success(self, cli_runner, mock_engine, tmp_path):
        """Test a successful run prints the counts."""
        result = cli_runner.invoke(cli, ["run", "folder-rename", "--root", str(tmp_path)])

        assert result.exit_code == 0
        assert "Run finished: applied=1, skipped=0, failed=0" in result.output
        engine = mock_engine.return_value
        engine.load_plan.assert_called_once_with("folder-rename", {})
        engine.discover.assert_called_once_with([tmp_path])

    def test_overrides(self, cli_runner, mock_engine):
        """Test --workers, --yes and --var reach the engine."""
        result = cli_runner.invoke(
            cli, ["run", "gitignore-env", "--workers", "4", "--yes", "--var", "branch=fix/env"]
        )

        assert result.exit_code == 0
        settings = mock_engine.call_args.args[0]
        assert settings.execution.workers == 4
        assert settings.execution.assume_yes is True
        engine = mock_engine.return_value
        engine.load_plan.assert_called_once_with("gitignore-env", {"branch": "fix/env"})
        engine.discover.assert_called_once_with(None)
        assert engine.run.await_args.args[2] == {"branch": "fix/env"}

    def test_failures_exit_1(self, cli_runner, mock_engine):
        """Test a run with failed steps exits 1 after printing counts."""
        summary = mock_engine.return_value.summary
        summary.record(ExecutionOutcome.failed("rename", "acme/web", RepoFleetError("target exists: /src/web")))

        result = cli_runner.invoke(cli, ["run", "folder-rename"])

        assert result.exit_code == 1
        assert "failed=1" in result.output
        assert "Error: rename@acme/web: target exists: /src/web" in result.output

    def test_discovery_error(self, cli_runner, mock_engine):
        """Test errors raised before the run are reported."""
        mock_engine.return_value.discover.side_effect = DiscoveryError("Discovery root is not a directory: /nope")

        result = cli_runner.invoke(cli, ["run", "folder-rename"])

        assert result.exit_code == 1
        assert "Error: Discovery root is not a directory" in result.output

    def test_unexpected_error(self, cli_runner, mock_engine):
        """Test unexpected exceptions exit 1 with a message."""
        mock_engine.return_value.run.side_effect = RuntimeError("boom")

        result = cli_runner.invoke(cli, ["run", "folder-rename"])

        assert result.exit_code == 1
        assert "Unexpected error: boom" in result.output

    def test_bad_variable(self, cli_runner, mock_engine):
        """Test malformed --var values are usage errors."""
        result = cli_runner.invoke(cli, ["run", "folder-rename", "--var", "nonsense"])

        assert result.exit_code == 2
        mock_engine.assert_not_called()

    def test_workers_out_of_range(self, cli_runner, mock_engine):
        """Test --workers is bounded."""
        result = cli_runner.invoke(cli, ["run", "folder-rename", "--workers", "0"])

        assert result.exit_code == 2


class TestConfigOption:
    """Test --config handling."""

    def test_missing_config(self, cli_runner):
        """Test a missing config file exits 1."""
        result = cli_runner.invoke(cli, ["--config", "/nonexistent/fleet.yaml", "presets"])

        assert result.exit_code == 1
        assert "Configuration file not found" in result.output

    def test_config_log_level(self, cli_runner, tmp_path, quiet_logging):
        """Test the configured log level is applied unless overridden."""
        config = tmp_path / "fleet.yaml"
        config.write_text("log_level: warning\njson_logs: false\n")

        cli_runner.invoke(cli, ["--config", str(config), "presets"])
        cli_runner.invoke(cli, ["--config", str(config), "--log-level", "DEBUG", "presets"])

        assert quiet_logging.call_args_list[0].args == ("WARNING",)
        assert quiet_logging.call_args_list[0].kwargs == {"json_output": False}
        assert quiet_logging.call_args_list[1].args == ("DEBUG",)

"""Tests for repo_fleet.engine.scheduler."""

import pytest

from repo_fleet.engine.plan import StepDefinition, WorkflowPlan, normalize_plan
from repo_fleet.engine.scheduler import plan_stages, validate_references
from repo_fleet.exceptions import CyclicDependencyError, UnknownStepReferenceError


def build_plan(*steps: dict) -> WorkflowPlan:
    return normalize_plan([StepDefinition.model_validate(step) for step in steps])


class TestPlanStages:
    """Tests for stage partitioning."""

    def test_implicit_chain_runs_one_step_per_stage(self):
        """Test steps without 'after' each depend on the previous step."""
        plan = build_plan(
            {"name": "a", "command": "audit report"},
            {"name": "b", "command": "audit report"},
            {"name": "c", "command": "audit report"},
        )

        stages = plan_stages(plan)

        assert [stage.names for stage in stages] == [["a"], ["b"], ["c"]]

    def test_independent_steps_share_a_stage(self):
        """Test steps with empty 'after' all land in the first stage."""
        plan = build_plan(
            {"name": "a", "command": "audit report", "after": []},
            {"name": "b", "command": "audit report", "after": []},
        )

        stages = plan_stages(plan)

        assert len(stages) == 1
        assert stages[0].names == ["a", "b"]

    def test_diamond(self):
        """Test a diamond dependency graph produces three stages."""
        plan = build_plan(
            {"name": "rename", "command": "folder rename"},
            {"name": "gitignore", "command": "tasks apply", "after": ["rename"]},
            {"name": "license", "command": "tasks apply", "after": ["rename"]},
            {"name": "audit", "command": "audit report", "after": ["gitignore", "license"]},
        )

        stages = plan_stages(plan)

        assert [stage.names for stage in stages] == [["rename"], ["gitignore", "license"], ["audit"]]
        assert [stage.index for stage in stages] == [0, 1, 2]

    def test_stage_membership_keeps_declaration_order(self):
        """Test steps within a stage keep the order they were declared in."""
        plan = build_plan(
            {"name": "zeta", "command": "audit report", "after": []},
            {"name": "alpha", "command": "audit report", "after": []},
            {"name": "mid", "command": "audit report", "after": []},
        )

        assert plan_stages(plan)[0].names == ["zeta", "alpha", "mid"]

    def test_every_dependency_is_in_an_earlier_stage(self):
        """Test each step's dependencies appear in strictly earlier stages."""
        plan = build_plan(
            {"name": "a", "command": "audit report", "after": []},
            {"name": "b", "command": "audit report", "after": ["a"]},
            {"name": "c", "command": "audit report", "after": []},
            {"name": "d", "command": "audit report", "after": ["b", "c"]},
            {"name": "e", "command": "audit report", "after": ["a"]},
        )

        stages = plan_stages(plan)
        position = {name: stage.index for stage in stages for name in stage.names}

        assert sorted(position) == ["a", "b", "c", "d", "e"]
        for step in plan.steps:
            for dependency in step.after:
                assert position[dependency] < position[step.name]

    def test_forward_reference_is_allowed(self):
        """Test a step may depend on one declared after it."""
        plan = build_plan(
            {"name": "late", "command": "audit report", "after": ["early"]},
            {"name": "early", "command": "audit report", "after": []},
        )

        assert [stage.names for stage in plan_stages(plan)] == [["early"], ["late"]]

    def test_unknown_reference(self):
        """Test a dependency on a missing step is rejected."""
        plan = build_plan({"name": "a", "command": "audit report", "after": ["ghost"]})

        with pytest.raises(UnknownStepReferenceError) as exc_info:
            plan_stages(plan)

        assert exc_info.value.reference == "ghost"
        assert "ghost" in exc_info.value.message

    def test_cycle_is_rejected(self):
        """Test a two-step cycle yields CyclicDependencyError naming both steps."""
        plan = build_plan(
            {"name": "a", "command": "audit report", "after": ["b"]},
            {"name": "b", "command": "audit report", "after": ["a"]},
            {"name": "c", "command": "audit report", "after": []},
        )

        with pytest.raises(CyclicDependencyError) as exc_info:
            plan_stages(plan)

        assert exc_info.value.steps == ["a", "b"]

    def test_cycle_downstream_steps_reported(self):
        """Test steps blocked behind a cycle are listed too."""
        plan = build_plan(
            {"name": "a", "command": "audit report", "after": ["c"]},
            {"name": "b", "command": "audit report", "after": ["a"]},
            {"name": "c", "command": "audit report", "after": ["b"]},
            {"name": "d", "command": "audit report", "after": ["c"]},
        )

        with pytest.raises(CyclicDependencyError) as exc_info:
            plan_stages(plan)

        assert exc_info.value.steps == ["a", "b", "c", "d"]

    def test_empty_plan(self):
        """Test an empty plan has no stages."""
        assert plan_stages(WorkflowPlan()) == []


class TestValidateReferences:
    """Tests for reference validation."""

    def test_valid_references(self):
        """Test a plan with known references passes."""
        plan = build_plan(
            {"name": "a", "command": "audit report"},
            {"name": "b", "command": "audit report", "after": ["a"]},
        )

        validate_references(plan)

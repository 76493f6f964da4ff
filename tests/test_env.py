"""Tests for environment scope resolution."""

from ciflow.dsl import job, on, sh, wf
from ciflow.env import resolve_environment, step_environment


class TestResolveEnvironment:
    def test_step_override_wins_over_workflow(self) -> None:
        env = resolve_environment({}, {"COLOR": "always"}, {}, {"COLOR": "never"})
        assert env["COLOR"] == "never"

    def test_precedence_base_workflow_job_step(self) -> None:
        env = resolve_environment(
            {"A": "base", "B": "base", "C": "base", "D": "base"},
            {"B": "wf", "C": "wf", "D": "wf"},
            {"C": "job", "D": "job"},
            {"D": "step"},
        )
        assert env == {"A": "base", "B": "wf", "C": "job", "D": "step"}

    def test_returns_fresh_mapping_and_leaves_layers_alone(self) -> None:
        base = {"PATH": "/bin"}
        workflow = {"COLOR": "always"}
        first = resolve_environment(base, workflow, {}, {})
        first["COLOR"] = "mutated"
        second = resolve_environment(base, workflow, {}, {})
        assert second["COLOR"] == "always"
        assert workflow == {"COLOR": "always"}
        assert base == {"PATH": "/bin"}
        assert first is not second


def test_step_environment_uses_definition_scopes() -> None:
    step = sh("fmt", "cargo fmt", env={"CARGO_TERM_COLOR": "never"})
    definition = wf(
        "ci",
        job("lints", step, env={"JOB": "1"}),
        triggers=[on("push")],
        env={"CARGO_TERM_COLOR": "always"},
    )
    lints = definition.job("lints")
    env = step_environment(definition, lints, lints.steps[0], base={"HOME": "/root"})
    assert env == {"HOME": "/root", "JOB": "1", "CARGO_TERM_COLOR": "never"}

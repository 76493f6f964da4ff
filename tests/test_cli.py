"""Tests for the ciflow CLI."""

import json
import os
from pathlib import Path

import pytest
from click.testing import CliRunner

from ciflow.cli import cli, find_workflow_files

pytestmark = pytest.mark.skipif(os.name != "posix", reason="steps run through sh")

PASSING = """
name: demo
on:
  - event: push
    branches: [main]
env:
  GREETING: hello
jobs:
  build:
    steps:
      - run: echo "$GREETING" > built.txt
  test:
    needs: build
    steps:
      - run: test -f built.txt
"""

FAILING = """
on: push
jobs:
  build:
    steps:
      - run: exit 3
      - run: touch never.txt
"""


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def _write(root: Path, text: str, name: str = "ciflow.yml") -> Path:
    path = root / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


class TestRun:
    def test_successful_run_exits_zero(self, runner: CliRunner, tmp_path: Path) -> None:
        workflow = _write(tmp_path, PASSING)
        result = runner.invoke(
            cli,
            ["run", "--workflow", str(workflow), "--branch", "main", "--workspace", str(tmp_path)],
        )
        assert result.exit_code == 0, result.output
        assert (tmp_path / "built.txt").read_text() == "hello\n"
        assert "Run: SUCCEEDED" in result.output

    def test_failing_step_exits_one_and_stops_job(self, runner: CliRunner, tmp_path: Path) -> None:
        workflow = _write(tmp_path, FAILING)
        result = runner.invoke(
            cli,
            ["run", "--workflow", str(workflow), "--branch", "main", "--workspace", str(tmp_path)],
        )
        assert result.exit_code == 1
        assert not (tmp_path / "never.txt").exists()

    def test_non_matching_branch_is_neutral(self, runner: CliRunner, tmp_path: Path) -> None:
        workflow = _write(tmp_path, PASSING)
        result = runner.invoke(
            cli,
            ["run", "--workflow", str(workflow), "--branch", "dev", "--workspace", str(tmp_path)],
        )
        assert result.exit_code == 0
        assert "RUN SKIPPED" in result.output
        assert not (tmp_path / "built.txt").exists()

    def test_neutral_exit_code_from_environment(self, runner: CliRunner, tmp_path: Path) -> None:
        workflow = _write(tmp_path, PASSING)
        result = runner.invoke(
            cli,
            ["run", "--workflow", str(workflow), "--branch", "dev", "--workspace", str(tmp_path)],
            env={"CIFLOW_NEUTRAL_EXIT_CODE": "78"},
        )
        assert result.exit_code == 78

    def test_summary_file(self, runner: CliRunner, tmp_path: Path) -> None:
        workflow = _write(tmp_path, FAILING)
        summary_path = tmp_path / "out" / "summary.json"
        runner.invoke(
            cli,
            [
                "--quiet",
                "run",
                "--workflow", str(workflow),
                "--branch", "main",
                "--workspace", str(tmp_path),
                "--summary", str(summary_path),
                "--log-dir", str(tmp_path / "logs"),
            ],
        )
        summary = json.loads(summary_path.read_text())
        assert summary["status"] == "failed"
        steps = summary["jobs"][0]["steps"]
        assert [s["status"] for s in steps] == ["failed", "not_attempted"]
        assert steps[0]["exit_code"] == 3
        assert Path(steps[0]["log_path"]).exists()

    def test_malformed_workflow_exits_one(self, runner: CliRunner, tmp_path: Path) -> None:
        workflow = _write(tmp_path, "on: push\njobs:\n  a:\n    steps: []\n")
        result = runner.invoke(cli, ["run", "--workflow", str(workflow), "--branch", "main"])
        assert result.exit_code == 1
        assert "Invalid workflow" in result.output
        assert "jobs.a.steps" in result.output


class TestValidateAndShow:
    def test_validate(self, runner: CliRunner, tmp_path: Path) -> None:
        workflow = _write(tmp_path, PASSING)
        result = runner.invoke(cli, ["validate", "--workflow", str(workflow)])
        assert result.exit_code == 0
        assert "'demo' with 2 job(s)" in result.output

    def test_missing_file(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(cli, ["validate", "--workflow", str(tmp_path / "nope.yml")])
        assert result.exit_code == 1
        assert "Workflow file not found" in result.output

    def test_show_prints_normalized_document_and_plan(self, runner: CliRunner, tmp_path: Path) -> None:
        workflow = _write(tmp_path, PASSING)
        result = runner.invoke(cli, ["show", "--workflow", str(workflow)])
        assert result.exit_code == 0
        assert "name: demo" in result.output
        assert "stage 1: build" in result.output
        assert "stage 2: test" in result.output


class TestDiscovery:
    def test_prefers_ciflow_yml(self, tmp_path: Path) -> None:
        _write(tmp_path, PASSING)
        _write(tmp_path, PASSING, ".github/workflows/ci.yml")
        assert find_workflow_files(tmp_path) == [tmp_path / "ciflow.yml"]

    def test_falls_back_to_hosted_workflows(self, tmp_path: Path) -> None:
        _write(tmp_path, PASSING, ".github/workflows/b.yaml")
        _write(tmp_path, PASSING, ".github/workflows/a.yml")
        _write(tmp_path, "notes", ".github/workflows/README.md")
        assert find_workflow_files(tmp_path) == [
            tmp_path / ".github/workflows/a.yml",
            tmp_path / ".github/workflows/b.yaml",
        ]

    def test_run_discovers_single_workflow(self, runner: CliRunner, tmp_path: Path) -> None:
        with runner.isolated_filesystem(temp_dir=tmp_path):
            _write(Path("."), PASSING, ".github/workflows/ci.yml")
            result = runner.invoke(cli, ["validate"])
            assert result.exit_code == 0, result.output

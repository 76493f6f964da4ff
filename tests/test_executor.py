"""Tests for the step executor (fail-stop lane of one job)."""

from pathlib import Path

import pytest

from ciflow.dsl import checkout, job, on, sh, toolchain, wf
from ciflow.executor import StepExecutor
from ciflow.model import JobStatus, StepStatus, ToolchainInstall
from ciflow.step_workflows import toolchain as toolchain_steps
from ciflow.step_workflows.checkout import checkout_command

from conftest import FakeRunner


def _rust_ci(**env):
    return wf(
        "CI checks",
        job(
            "lints",
            checkout("Checkout sources", recursive=True),
            toolchain("Install Rust", "rust", "nightly", components=["rustfmt"]),
            sh("Cargo fmt check", "cargo fmt --all -- --check"),
            sh("Run tests", "cargo test --all-features"),
        ),
        triggers=[on("push", "main")],
        env=env or {"CARGO_TERM_COLOR": "always"},
    )


def _executor(definition, runner, tmp_path: Path, console, **kwargs) -> StepExecutor:
    return StepExecutor(
        definition,
        workspace=tmp_path,
        base_env={"PATH": "/usr/bin", "CARGO_TERM_COLOR": "auto"},
        runner=runner,
        console=console,
        **kwargs,
    )


class TestFailStop:
    def test_all_steps_run_in_declaration_order(self, tmp_path: Path, console) -> None:
        runner = FakeRunner()
        definition = _rust_ci()
        result = _executor(definition, runner, tmp_path, console).run_job(definition.job("lints"))

        assert result.status == JobStatus.SUCCEEDED
        assert runner.lines == [
            "git submodule update --init --recursive",
            "rustup toolchain install nightly --profile minimal --component rustfmt",
            "sh -e -c cargo fmt --all -- --check",
            "sh -e -c cargo test --all-features",
        ]
        assert [s.status for s in result.steps] == [StepStatus.SUCCEEDED] * 4
        assert result.started_at is not None and result.finished_at >= result.started_at

    def test_failing_step_stops_the_job(self, tmp_path: Path, console) -> None:
        runner = FakeRunner(exit_codes={"cargo fmt": 1})
        definition = _rust_ci()
        result = _executor(definition, runner, tmp_path, console).run_job(definition.job("lints"))

        assert result.status == JobStatus.FAILED
        assert len(runner.calls) == 3
        assert not any("cargo test" in line for line in runner.lines)
        assert [s.status for s in result.steps] == [
            StepStatus.SUCCEEDED,
            StepStatus.SUCCEEDED,
            StepStatus.FAILED,
            StepStatus.NOT_ATTEMPTED,
        ]
        failed = result.steps[2]
        assert failed.exit_code == 1
        assert "exited with 1" in failed.error
        assert result.steps[3].exit_code is None
        assert result.reason == "step 'Cargo fmt check' failed"

    def test_missing_git_is_checkout_failure(self, tmp_path: Path, console) -> None:
        runner = FakeRunner(missing=("git",))
        definition = _rust_ci()
        result = _executor(definition, runner, tmp_path, console).run_job(definition.job("lints"))

        assert result.status == JobStatus.FAILED
        assert result.steps[0].status == StepStatus.FAILED
        assert result.steps[0].error == "git is not available"
        assert len(runner.calls) == 1

    def test_unknown_toolchain_fails_without_running_anything(self, tmp_path: Path, console) -> None:
        runner = FakeRunner()
        definition = wf("wf", job("a", toolchain("Install zig", "zig", "0.12"), sh("build", "zig build")), triggers=[on("push")])
        result = _executor(definition, runner, tmp_path, console).run_job(definition.job("a"))

        assert result.status == JobStatus.FAILED
        assert runner.calls == []
        assert "no installer for toolchain 'zig'" in result.steps[0].error

    def test_installer_failure_is_toolchain_unavailable(self, tmp_path: Path, console) -> None:
        runner = FakeRunner(exit_codes={"rustup": 1})
        definition = _rust_ci()
        result = _executor(definition, runner, tmp_path, console).run_job(definition.job("lints"))
        assert result.steps[1].status == StepStatus.FAILED
        assert result.steps[1].error == "installing rust-nightly+rustfmt exited with 1"

    def test_missing_working_directory(self, tmp_path: Path, console) -> None:
        runner = FakeRunner()
        definition = wf("wf", job("a", sh("build", "make", cwd="nope")), triggers=[on("push")])
        result = _executor(definition, runner, tmp_path, console).run_job(definition.job("a"))
        assert result.status == JobStatus.FAILED
        assert result.steps[0].exit_code == 127
        assert runner.calls == []


class TestEnvironment:
    def test_step_sees_merged_scopes(self, tmp_path: Path, console) -> None:
        runner = FakeRunner()
        definition = wf(
            "wf",
            job(
                "a",
                sh("plain", "echo one"),
                sh("override", "echo two", env={"CARGO_TERM_COLOR": "never"}),
                env={"JOB_LEVEL": "yes"},
            ),
            triggers=[on("push")],
            env={"CARGO_TERM_COLOR": "always"},
        )
        _executor(definition, runner, tmp_path, console).run_job(definition.job("a"))

        first, second = runner.calls
        assert first.env["CARGO_TERM_COLOR"] == "always"
        assert second.env["CARGO_TERM_COLOR"] == "never"
        assert first.env["PATH"] == "/usr/bin"
        assert first.env["JOB_LEVEL"] == "yes"
        assert first.env is not second.env

    def test_toolchain_exports_reach_later_steps(self, tmp_path: Path, console) -> None:
        runner = FakeRunner()
        definition = _rust_ci()
        _executor(definition, runner, tmp_path, console).run_job(definition.job("lints"))
        assert "RUSTUP_TOOLCHAIN" not in runner.calls[0].env
        assert runner.calls[2].env["RUSTUP_TOOLCHAIN"] == "nightly"
        assert runner.calls[3].env["RUSTUP_TOOLCHAIN"] == "nightly"

    def test_working_directory_and_timeout_are_passed(self, tmp_path: Path, console) -> None:
        (tmp_path / "sub").mkdir()
        runner = FakeRunner()
        definition = wf("wf", job("a", sh("build", "make", cwd="sub", timeout=30)), triggers=[on("push")])
        _executor(definition, runner, tmp_path, console).run_job(definition.job("a"))
        assert runner.calls[0].cwd == (tmp_path / "sub").resolve()
        assert runner.calls[0].timeout == 30


def test_step_output_is_logged_to_file(tmp_path: Path, console) -> None:
    runner = FakeRunner()
    definition = wf("wf", job("Build It", sh("Compile All", "make")), triggers=[on("push")])
    result = _executor(definition, runner, tmp_path, console, log_dir=tmp_path / "logs").run_job(
        definition.job("Build It")
    )
    log = Path(result.steps[0].log_path)
    assert log == tmp_path / "logs" / "01-build-it" / "01-compile-all.log"
    assert log.read_text() == "ran sh -e -c make\n"
    assert result.steps[0].output == "ran sh -e -c make\n"


def test_jobs_with_alike_names_log_to_separate_files(tmp_path: Path, console) -> None:
    definition = wf(
        "wf",
        job("Build It", sh("s", "make one")),
        job("build-it", sh("s", "make two")),
        triggers=[on("push")],
    )
    executor = _executor(definition, FakeRunner(), tmp_path, console, log_dir=tmp_path / "logs")
    first = executor.run_job(definition.job("Build It")).steps[0].log_path
    second = executor.run_job(definition.job("build-it")).steps[0].log_path

    assert first != second
    assert Path(first).read_text() == "ran sh -e -c make one\n"
    assert Path(second).read_text() == "ran sh -e -c make two\n"


class TestCheckoutCommand:
    @pytest.mark.parametrize(
        "kwargs, expected",
        [
            ({"repository": "https://x/r.git", "recursive_submodules": True, "ref": "main"},
             ["git", "clone", "--recurse-submodules", "--branch", "main", "https://x/r.git", "."]),
            ({"ref": "v1.0", "recursive_submodules": True}, ["git", "checkout", "--recurse-submodules", "v1.0"]),
            ({"recursive_submodules": True}, ["git", "submodule", "update", "--init", "--recursive"]),
            ({}, ["git", "rev-parse", "--verify", "HEAD"]),
        ],
    )
    def test_one_git_invocation_per_form(self, kwargs, expected) -> None:
        from ciflow.model import Checkout

        assert checkout_command(Checkout(**kwargs)) == expected


def test_registered_installer_is_used(tmp_path: Path, console, monkeypatch) -> None:
    monkeypatch.setattr(toolchain_steps, "INSTALLERS", dict(toolchain_steps.INSTALLERS))
    toolchain_steps.register_installer(
        "zig",
        lambda action: toolchain_steps.Installation(["zigup", action.channel], {"ZIG_VERSION": action.channel}),
    )
    runner = FakeRunner()
    definition = wf(
        "wf",
        job("a", toolchain("Install zig", "zig", "0.12"), sh("Version", "zig version")),
        triggers=[on("push")],
    )
    result = _executor(definition, runner, tmp_path, console).run_job(definition.job("a"))
    assert result.status == JobStatus.SUCCEEDED
    assert runner.lines == ["zigup 0.12", "sh -e -c zig version"]
    assert runner.calls[1].env["ZIG_VERSION"] == "0.12"
    assert ToolchainInstall("zig", "0.12").spec == "zig-0.12"

# parser.py
"""
Workflow document <-> WorkflowDefinition.

Accepted shape (YAML):

    name: CI checks
    on:
      - event: push
        branches: [main]
    env:
      CARGO_TERM_COLOR: always
    jobs:
      lints:
        runs-on: ubuntu-latest
        steps:
          - checkout: {submodules: recursive}
          - toolchain-install: rust-nightly+rustfmt
          - run: cargo fmt --all -- --check

The hosted-CI spelling (`on: {push: {branches: [...]}}`, `uses:` steps for
checkout and the Rust toolchain) is understood as well.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .dsl import JobBuilder, WorkflowBuilder
from .errors import MalformedDefinition
from .model import (
    Checkout,
    Command,
    EventKind,
    JobDefinition,
    StepDefinition,
    ToolchainInstall,
    TriggerRule,
    WorkflowDefinition,
)


TOP_LEVEL_KEYS = {"name", "on", "env", "jobs"}
JOB_KEYS = {"name", "runs-on", "steps", "needs", "env"}
STEP_ACTIONS = ("checkout", "toolchain-install", "run", "uses")
STEP_KEYS = {"name", "env", "working-directory", "shell", "with", "timeout-minutes", *STEP_ACTIONS}

EVENT_KINDS = {k.value: k for k in EventKind}


class _UniqueKeyLoader(yaml.SafeLoader):
    """SafeLoader that rejects duplicate mapping keys instead of silently keeping the last."""

    def construct_mapping(self, node, deep=False):
        seen = set()
        for key_node, _value_node in node.value:
            if key_node.tag == "tag:yaml.org,2002:merge":
                continue
            key = self.construct_object(key_node, deep=deep)
            if not isinstance(key, (str, int, float, bool)):
                continue
            if key in seen:
                kind = "job name" if node is getattr(self, "_jobs_node", None) else "key"
                raise MalformedDefinition(
                    str(key),
                    f"duplicate {kind} {key!r} (line {key_node.start_mark.line + 1})",
                )
            seen.add(key)
        return super().construct_mapping(node, deep=deep)

    def get_single_node(self):
        root = super().get_single_node()
        self._jobs_node = None
        if isinstance(root, yaml.MappingNode):
            for k, v in root.value:
                if isinstance(k, yaml.ScalarNode) and k.value == "jobs":
                    self._jobs_node = v
        return root


# ----------------------------------------------------------------------
# Loading
# ----------------------------------------------------------------------

def load_workflow(path: str | Path) -> WorkflowDefinition:
    """Read and parse a workflow file. The file stem is the default name."""
    wf_path = Path(path).expanduser()
    if not wf_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {wf_path}")
    return parse_workflow(wf_path.read_text(encoding="utf-8"), default_name=wf_path.stem)


def parse_workflow(text: str, *, default_name: str = "workflow") -> WorkflowDefinition:
    try:
        doc = yaml.load(text, Loader=_UniqueKeyLoader)
    except yaml.YAMLError as e:
        raise MalformedDefinition("<document>", f"invalid YAML: {e}") from e
    return parse_document(doc, default_name=default_name)


def parse_document(doc: Any, *, default_name: str = "workflow") -> WorkflowDefinition:
    """Build a validated WorkflowDefinition from an already-loaded mapping."""
    if not isinstance(doc, dict):
        raise MalformedDefinition("<document>", "workflow document must be a mapping")

    # YAML 1.1 reads a bare `on` key as boolean True
    if True in doc:
        if "on" in doc:
            raise MalformedDefinition("on", "trigger list given twice")
        doc = {("on" if k is True else k): v for k, v in doc.items()}

    unknown = [k for k in doc if k not in TOP_LEVEL_KEYS]
    if unknown:
        raise MalformedDefinition(str(unknown[0]), f"unknown top-level key {unknown[0]!r}")

    name = doc.get("name", default_name)
    if not isinstance(name, str) or not name:
        raise MalformedDefinition("name", "workflow name must be a non-empty string")

    builder = WorkflowBuilder(name)
    for rule in _parse_triggers(doc.get("on")):
        builder.trigger(rule.event, *rule.branches)
    builder.with_env(**_parse_env(doc.get("env"), "env"))

    jobs = doc.get("jobs")
    if not isinstance(jobs, dict) or not jobs:
        raise MalformedDefinition("jobs", "jobs must be a non-empty mapping of job name -> job")
    for job_name, raw_job in jobs.items():
        builder.add_job(_parse_job(job_name, raw_job))

    return builder.build()


# ----------------------------------------------------------------------
# Triggers
# ----------------------------------------------------------------------

def _event(value: Any, field: str) -> EventKind:
    if not isinstance(value, str) or value not in EVENT_KINDS:
        raise MalformedDefinition(
            field, f"unknown trigger kind {value!r}. Expected one of: {sorted(EVENT_KINDS)}"
        )
    return EVENT_KINDS[value]


def _branches(value: Any, field: str) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        raise MalformedDefinition(field, "branches must be a list of strings")
    for i, pattern in enumerate(value):
        if not isinstance(pattern, str) or not pattern.strip():
            raise MalformedDefinition(f"{field}[{i}]", "branch filters must be non-empty strings")
    return tuple(value)


def _parse_triggers(raw: Any) -> List[TriggerRule]:
    if raw is None:
        raise MalformedDefinition("on", "missing trigger list")

    if isinstance(raw, str):
        return [TriggerRule(_event(raw, "on"))]

    rules: List[TriggerRule] = []
    if isinstance(raw, list):
        if not raw:
            raise MalformedDefinition("on", "trigger list is empty")
        for i, item in enumerate(raw):
            field = f"on[{i}]"
            if isinstance(item, str):
                rules.append(TriggerRule(_event(item, field)))
                continue
            if not isinstance(item, dict) or "event" not in item:
                raise MalformedDefinition(field, "trigger must be an event name or {event, branches}")
            extra = set(item) - {"event", "branches"}
            if extra:
                raise MalformedDefinition(field, f"unknown trigger key {sorted(map(str, extra))[0]!r}")
            rules.append(
                TriggerRule(
                    _event(item["event"], f"{field}.event"),
                    _branches(item.get("branches"), f"{field}.branches"),
                )
            )
        return rules

    if isinstance(raw, dict):
        if not raw:
            raise MalformedDefinition("on", "trigger list is empty")
        for kind, opts in raw.items():
            field = f"on.{kind}"
            event = _event(kind, field)
            if opts is None:
                rules.append(TriggerRule(event))
                continue
            if not isinstance(opts, dict):
                raise MalformedDefinition(field, "trigger options must be a mapping")
            extra = set(opts) - {"branches"}
            if extra:
                raise MalformedDefinition(field, f"unknown trigger key {sorted(map(str, extra))[0]!r}")
            rules.append(TriggerRule(event, _branches(opts.get("branches"), f"{field}.branches")))
        return rules

    raise MalformedDefinition("on", "triggers must be a string, list or mapping")


# ----------------------------------------------------------------------
# Environment
# ----------------------------------------------------------------------

def _parse_env(raw: Any, field: str) -> Dict[str, str]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise MalformedDefinition(field, "env must be a mapping")
    env: Dict[str, str] = {}
    for key, value in raw.items():
        if not isinstance(key, str) or not key:
            raise MalformedDefinition(field, f"env key {key!r} must be a non-empty string")
        if value is None:
            value = ""
        elif isinstance(value, bool):
            value = "true" if value else "false"
        elif isinstance(value, (int, float)):
            value = str(value)
        elif not isinstance(value, str):
            raise MalformedDefinition(f"{field}.{key}", "env values must be scalars")
        env[key] = value
    return env


# ----------------------------------------------------------------------
# Jobs & steps
# ----------------------------------------------------------------------

def _parse_job(name: Any, raw: Any) -> JobDefinition:
    field = f"jobs.{name}"
    if not isinstance(name, str) or not name:
        raise MalformedDefinition("jobs", f"job name {name!r} must be a non-empty string")
    if not isinstance(raw, dict):
        raise MalformedDefinition(field, "job must be a mapping")
    unknown = set(raw) - JOB_KEYS
    if unknown:
        raise MalformedDefinition(field, f"unknown job key {sorted(map(str, unknown))[0]!r}")

    builder = JobBuilder(name)

    runs_on = raw.get("runs-on", "local")
    if not isinstance(runs_on, str) or not runs_on:
        raise MalformedDefinition(f"{field}.runs-on", "runs-on must be a non-empty string")
    builder.runs_on(runs_on)

    display = raw.get("name")
    if display is not None and not isinstance(display, str):
        raise MalformedDefinition(f"{field}.name", "job name must be a string")
    builder.named(display)

    needs = raw.get("needs") or []
    if isinstance(needs, str):
        needs = [needs]
    if not isinstance(needs, list) or not all(isinstance(n, str) and n for n in needs):
        raise MalformedDefinition(f"{field}.needs", "needs must be a job name or list of job names")
    builder.depends_on(*needs)

    builder.with_env(**_parse_env(raw.get("env"), f"{field}.env"))

    steps = raw.get("steps")
    if not isinstance(steps, list) or not steps:
        raise MalformedDefinition(f"{field}.steps", f"job {name!r} has an empty step list")
    builder.steps(*(_parse_step(s, f"{field}.steps[{i}]") for i, s in enumerate(steps)))

    return builder.build()


def _parse_step(raw: Any, field: str) -> StepDefinition:
    if not isinstance(raw, dict):
        raise MalformedDefinition(field, "step must be a mapping")
    unknown = set(raw) - STEP_KEYS
    if unknown:
        raise MalformedDefinition(field, f"unknown step key {sorted(map(str, unknown))[0]!r}")

    actions = [a for a in STEP_ACTIONS if a in raw]
    if not actions:
        raise MalformedDefinition(field, f"step must declare one of {list(STEP_ACTIONS)}")
    if len(actions) > 1:
        raise MalformedDefinition(field, f"step declares more than one action: {actions}")
    kind = actions[0]

    if "with" in raw and kind != "uses":
        raise MalformedDefinition(f"{field}.with", "`with` is only valid together with `uses`")
    for key in ("working-directory", "shell"):
        if key in raw and kind != "run":
            raise MalformedDefinition(f"{field}.{key}", f"`{key}` is only valid together with `run`")

    if kind == "checkout":
        action = _parse_checkout(raw["checkout"], f"{field}.checkout")
    elif kind == "toolchain-install":
        action = _parse_toolchain(raw["toolchain-install"], f"{field}.toolchain-install")
    elif kind == "uses":
        action = _parse_uses(raw["uses"], raw.get("with"), field)
    else:
        action = _parse_command(raw, field)

    name = raw.get("name")
    if name is None:
        name = _default_step_name(action)
    elif not isinstance(name, str) or not name:
        raise MalformedDefinition(f"{field}.name", "step name must be a non-empty string")

    timeout = None
    if "timeout-minutes" in raw:
        minutes = raw["timeout-minutes"]
        if isinstance(minutes, bool) or not isinstance(minutes, (int, float)) or minutes <= 0:
            raise MalformedDefinition(f"{field}.timeout-minutes", "timeout-minutes must be a positive number")
        timeout = float(minutes) * 60

    return StepDefinition(
        name=name,
        action=action,
        env=_parse_env(raw.get("env"), f"{field}.env"),
        timeout=timeout,
    )


def _recursive_flag(value: Any, field: str) -> bool:
    if value in (None, False, "false"):
        return False
    if value in (True, "true", "recursive"):
        return True
    raise MalformedDefinition(field, "submodules must be true, false or 'recursive'")


def _optional_str(raw: Dict[str, Any], key: str, field: str) -> Optional[str]:
    value = raw.get(key)
    if value is not None and (not isinstance(value, str) or not value):
        raise MalformedDefinition(f"{field}.{key}", f"{key} must be a non-empty string")
    return value


def _parse_checkout(raw: Any, field: str) -> Checkout:
    if raw is None or raw is True:
        return Checkout()
    if raw == "recursive":
        return Checkout(recursive_submodules=True)
    if not isinstance(raw, dict):
        raise MalformedDefinition(field, "checkout must be true, 'recursive' or a mapping")
    extra = set(raw) - {"submodules", "repository", "ref", "path"}
    if extra:
        raise MalformedDefinition(field, f"unknown checkout key {sorted(map(str, extra))[0]!r}")
    return Checkout(
        recursive_submodules=_recursive_flag(raw.get("submodules"), f"{field}.submodules"),
        repository=_optional_str(raw, "repository", field),
        ref=_optional_str(raw, "ref", field),
        path=_optional_str(raw, "path", field),
    )


def _components(raw: Any, field: str) -> Tuple[str, ...]:
    if raw is None:
        return ()
    if isinstance(raw, str):
        raw = [c.strip() for c in raw.split(",")]
    if not isinstance(raw, list) or not all(isinstance(c, str) and c for c in raw):
        raise MalformedDefinition(field, "components must be a list or comma-separated string")
    return tuple(raw)


def toolchain_from_spec(spec: str) -> ToolchainInstall:
    """'rust-nightly+rustfmt+clippy' -> ToolchainInstall('rust', 'nightly', ('rustfmt', 'clippy'))"""
    base, *components = spec.split("+")
    toolchain, _, channel = base.partition("-")
    return ToolchainInstall(toolchain=toolchain, channel=channel or None, components=tuple(components))


def _parse_toolchain(raw: Any, field: str) -> ToolchainInstall:
    if isinstance(raw, str):
        action = toolchain_from_spec(raw.strip())
        if not action.toolchain or not all(action.components):
            raise MalformedDefinition(field, f"cannot read toolchain spec {raw!r}")
        return action
    if not isinstance(raw, dict):
        raise MalformedDefinition(field, "toolchain-install must be a spec string or a mapping")
    extra = set(raw) - {"toolchain", "channel", "components"}
    if extra:
        raise MalformedDefinition(field, f"unknown toolchain key {sorted(map(str, extra))[0]!r}")
    toolchain = raw.get("toolchain")
    if not isinstance(toolchain, str) or not toolchain:
        raise MalformedDefinition(f"{field}.toolchain", "toolchain must be a non-empty string")
    channel = raw.get("channel")
    if channel is not None:
        channel = str(channel)
    return ToolchainInstall(
        toolchain=toolchain,
        channel=channel,
        components=_components(raw.get("components"), f"{field}.components"),
    )


def _parse_uses(uses: Any, with_: Any, field: str):
    if not isinstance(uses, str) or "@" not in uses:
        raise MalformedDefinition(f"{field}.uses", "uses must look like 'owner/action@ref'")
    if with_ is None:
        with_ = {}
    if not isinstance(with_, dict):
        raise MalformedDefinition(f"{field}.with", "with must be a mapping")
    action, _, ref = uses.partition("@")

    if action == "actions/checkout":
        return Checkout(
            recursive_submodules=_recursive_flag(with_.get("submodules"), f"{field}.with.submodules"),
            repository=_optional_str(with_, "repository", f"{field}.with"),
            ref=_optional_str(with_, "ref", f"{field}.with"),
            path=_optional_str(with_, "path", f"{field}.with"),
        )

    if action == "dtolnay/rust-toolchain":
        # the action's git ref names the channel unless `toolchain` is given
        channel = with_.get("toolchain", ref)
        return ToolchainInstall(
            toolchain="rust",
            channel=str(channel) if channel else None,
            components=_components(with_.get("components"), f"{field}.with.components"),
        )

    raise MalformedDefinition(f"{field}.uses", f"unsupported action {uses!r}")


def _parse_command(raw: Dict[str, Any], field: str) -> Command:
    run = raw["run"]
    if not isinstance(run, str) or not run.strip():
        raise MalformedDefinition(f"{field}.run", "run must be a non-empty command string")
    return Command(
        run=run,
        working_directory=_optional_str(raw, "working-directory", field),
        shell=_optional_str(raw, "shell", field),
    )


def _default_step_name(action) -> str:
    if isinstance(action, Checkout):
        return "Checkout"
    if isinstance(action, ToolchainInstall):
        return f"Install {action.spec}"
    return action.run.strip().splitlines()[0]


# ----------------------------------------------------------------------
# Serialization (canonical list form)
# ----------------------------------------------------------------------

def _step_to_dict(step: StepDefinition) -> Dict[str, Any]:
    out: Dict[str, Any] = {"name": step.name}
    action = step.action
    if isinstance(action, Checkout):
        co: Dict[str, Any] = {}
        if action.recursive_submodules:
            co["submodules"] = "recursive"
        for key in ("repository", "ref", "path"):
            if getattr(action, key) is not None:
                co[key] = getattr(action, key)
        out["checkout"] = co
    elif isinstance(action, ToolchainInstall):
        tc: Dict[str, Any] = {"toolchain": action.toolchain}
        if action.channel is not None:
            tc["channel"] = action.channel
        if action.components:
            tc["components"] = list(action.components)
        out["toolchain-install"] = tc
    else:
        out["run"] = action.run
        if action.working_directory is not None:
            out["working-directory"] = action.working_directory
        if action.shell is not None:
            out["shell"] = action.shell
    if step.env:
        out["env"] = dict(step.env)
    if step.timeout is not None:
        out["timeout-minutes"] = step.timeout / 60
    return out


def to_document(definition: WorkflowDefinition) -> Dict[str, Any]:
    """Inverse of parse_document: job order, step order and triggers are kept as declared."""
    triggers: List[Dict[str, Any]] = []
    for rule in definition.triggers:
        entry: Dict[str, Any] = {"event": rule.event.value}
        if rule.branches:
            entry["branches"] = list(rule.branches)
        triggers.append(entry)

    doc: Dict[str, Any] = {"name": definition.name, "on": triggers}
    if definition.env:
        doc["env"] = dict(definition.env)

    jobs: Dict[str, Any] = {}
    for job in definition.jobs:
        j: Dict[str, Any] = {}
        if job.display_name is not None:
            j["name"] = job.display_name
        j["runs-on"] = job.runs_on
        if job.needs:
            j["needs"] = list(job.needs)
        if job.env:
            j["env"] = dict(job.env)
        j["steps"] = [_step_to_dict(s) for s in job.steps]
        jobs[job.name] = j
    doc["jobs"] = jobs
    return doc


def dump_workflow(definition: WorkflowDefinition) -> str:
    return yaml.safe_dump(to_document(definition), sort_keys=False, default_flow_style=False)

# triggers.py
from __future__ import annotations

from typing import Iterable

from .model import Event, EventKind, TriggerRule


EVENT_ALIASES = {
    "push": EventKind.PUSH,
    "pull_request": EventKind.PULL_REQUEST,
    "pull-request": EventKind.PULL_REQUEST,
    "pr": EventKind.PULL_REQUEST,
}


def event_kind(value: str) -> EventKind:
    """Map a user-facing event name to an EventKind. Raises ValueError."""
    try:
        return EVENT_ALIASES[value.strip().lower()]
    except KeyError:
        raise ValueError(
            f"Unknown event kind {value!r}. Expected one of: {sorted(EVENT_ALIASES)}"
        ) from None


def parse_event(kind: str, branch: str) -> Event:
    if not branch:
        raise ValueError("Event branch must be a non-empty string")
    return Event(kind=event_kind(kind), branch=branch)


def branch_matches(pattern: str, branch: str) -> bool:
    # Literal equality only. Glob support would plug in here.
    return pattern == branch


def rule_matches(rule: TriggerRule, event: Event) -> bool:
    if rule.event != event.kind:
        return False
    if not rule.branches:
        return True
    return any(branch_matches(p, event.branch) for p in rule.branches)


def matches(rules: Iterable[TriggerRule], event: Event) -> bool:
    """True if at least one rule accepts the event."""
    return any(rule_matches(r, event) for r in rules)

"""
Trigger detection for the collaborative router.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Protocol

from .roles import DEFAULT_ROLE_CONFIG, Role, task_tags_for_role


@dataclass(frozen=True)
class TriggerRule:
    """A collaboration-intent phrase and the roles it hands work to."""

    name: str
    pattern: re.Pattern[str]
    roles: tuple[str, ...]


def _rule(name: str, pattern: str, *roles: Role) -> TriggerRule:
    return TriggerRule(name, re.compile(pattern, re.IGNORECASE), tuple(r.value for r in roles))


_ALL_TEAM = (Role.COORDINATOR, Role.DESIGNER, Role.FRONTEND_DEVELOPER, Role.BACKEND_DEVELOPER)

# Evaluated in order; the first rule yielding an available agent wins.
COLLABORATION_RULES: tuple[TriggerRule, ...] = (
    _rule("coordinate", r"\bcoordinate with\b", *_ALL_TEAM),
    _rule("work-together", r"\bwork together\b", *_ALL_TEAM),
    _rule("collaborate", r"\bcollaborat(?:e|ion|ing)\b", *_ALL_TEAM),
    _rule("team-up", r"\bteam up\b", *_ALL_TEAM),
    _rule("work-with", r"\blet me work with\b", *_ALL_TEAM),
    _rule("need-help", r"\bneed help from\b", *_ALL_TEAM),
)

MENTION_RE = re.compile(r"@([\w-]+)")
TASK_TAG_RE = re.compile(r"#([\w-]+)")


@dataclass
class TriggerScan:
    collaboration: list[TriggerRule] = field(default_factory=list)
    mentions: list[str] = field(default_factory=list)
    tasks: list[str] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not (self.collaboration or self.mentions or self.tasks)


class TriggerDetector(Protocol):
    def scan(self, text: str) -> TriggerScan: ...

    def roles_for_task(self, tag: str) -> list[str]: ...


def _unique(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


class PatternTriggerDetector:
    """Table-driven detector: regex rules for intent, ``@`` and ``#`` for routing."""

    def __init__(self, rules: tuple[TriggerRule, ...] = COLLABORATION_RULES) -> None:
        self.rules = rules

    def scan(self, text: str) -> TriggerScan:
        return TriggerScan(
            collaboration=[rule for rule in self.rules if rule.pattern.search(text)],
            mentions=_unique([m.lower() for m in MENTION_RE.findall(text)]),
            tasks=_unique([t.lower() for t in TASK_TAG_RE.findall(text)]),
        )

    def roles_for_task(self, tag: str) -> list[str]:
        tag = tag.lower()
        return [role for role in DEFAULT_ROLE_CONFIG if tag in task_tags_for_role(role)]

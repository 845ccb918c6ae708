"""
Per-conversation build workspace and the role-specific extraction rules that fill it.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any

from ..roles import Role, normalize_role

DECISION_PREVIEW_CHARS = 100

_MENTION_RE = re.compile(r"@([\w-]+)")


@dataclass
class ProjectBrief:
    name: str = ""
    type: str = ""
    requirements: list[str] = field(default_factory=list)
    status: str = "planning"


@dataclass
class DesignState:
    wireframes: str = ""
    components: list[str] = field(default_factory=list)
    design_system: dict[str, Any] = field(default_factory=dict)
    approved: bool = False


@dataclass
class FrontendState:
    implementation: str = ""
    dependencies: list[str] = field(default_factory=list)
    completed: bool = False


@dataclass
class BackendState:
    apis: list[Any] = field(default_factory=list)
    database: dict[str, Any] = field(default_factory=dict)
    authentication: dict[str, Any] = field(default_factory=dict)
    completed: bool = False


@dataclass
class DecisionEntry:
    decision: str
    rationale: str
    decided_by: str
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())


@dataclass
class RoundRecord:
    round: int
    phase: str
    role: str
    agent_id: str | None = None
    output: str | None = None
    error: str | None = None


@dataclass
class Workspace:
    """Shared state the team builds up during a structured run."""

    project: ProjectBrief = field(default_factory=ProjectBrief)
    design: DesignState = field(default_factory=DesignState)
    frontend: FrontendState = field(default_factory=FrontendState)
    backend: BackendState = field(default_factory=BackendState)
    decisions: list[DecisionEntry] = field(default_factory=list)
    rounds: list[RoundRecord] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def snapshot(self) -> dict[str, Any]:
        """The parts of the workspace shown to agents."""
        data = self.to_dict()
        data.pop("rounds")
        return data


def _preview(text: str) -> str:
    return text[:DECISION_PREVIEW_CHARS] + "..."


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _as_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    if value is None:
        return {}
    return {"summary": value}


# =============================================================================
# Role Context
# =============================================================================


def build_role_context(role: str, workspace: Workspace, phase: str) -> str:
    """One-paragraph status summary tailored to what a role needs to know."""
    role = normalize_role(role)
    project = workspace.project
    lines = [
        f"Project: {project.name or 'unnamed'} ({project.type or 'website'})",
        f"Requirements: {', '.join(project.requirements) or 'none recorded'}",
    ]
    if role == Role.COORDINATOR:
        lines.append(f"Current phase: {phase}")
        lines.append(f"Design approved: {workspace.design.approved}")
        lines.append(f"Frontend completed: {workspace.frontend.completed}")
        lines.append(f"Backend completed: {workspace.backend.completed}")
    elif role == Role.DESIGNER:
        lines.append(f"Previous wireframes: {workspace.design.wireframes or 'none yet'}")
    elif role == Role.FRONTEND_DEVELOPER:
        lines.append(f"Design approved: {workspace.design.approved}")
        lines.append(f"Components: {', '.join(workspace.design.components) or 'none yet'}")
    elif role == Role.BACKEND_DEVELOPER:
        lines.append(f"Frontend ready: {workspace.frontend.completed}")
        deps = ", ".join(workspace.frontend.dependencies) or "none"
        lines.append(f"Frontend dependencies: {deps}")
    return "\n".join(lines)


# =============================================================================
# Extraction
# =============================================================================


def _extract_coordinator(workspace: Workspace, text: str, parsed: dict[str, Any]) -> list[str]:
    """Return new pending tasks raised by ``@role`` delegations."""
    del workspace
    tasks: list[str] = []
    for handle in _MENTION_RE.findall(text):
        role = normalize_role(handle)
        if role in (Role.DESIGNER, Role.FRONTEND_DEVELOPER, Role.BACKEND_DEVELOPER):
            tasks.append(role)
    for task in _as_list(parsed.get("tasks")):
        if isinstance(task, dict) and task.get("assignee"):
            tasks.append(normalize_role(str(task["assignee"])))
    return tasks


def _extract_designer(workspace: Workspace, text: str, parsed: dict[str, Any]) -> None:
    lowered = text.lower()
    design = workspace.design
    if "wireframe" in lowered or "design" in lowered or parsed.get("wireframes"):
        design.approved = True
        wireframes = parsed.get("wireframes")
        design.wireframes = wireframes if isinstance(wireframes, str) else text
    screens = parsed.get("keyScreens") or parsed.get("key_screens") or parsed.get("components")
    if screens:
        design.components = [str(s) for s in _as_list(screens)]
    design_system = parsed.get("designSystem") or parsed.get("design_system")
    if design_system:
        design.design_system = _as_dict(design_system)


def _extract_frontend(workspace: Workspace, text: str, parsed: dict[str, Any]) -> None:
    lowered = text.lower()
    frontend = workspace.frontend
    if "completed" in lowered or "implemented" in lowered:
        frontend.completed = True
        frontend.implementation = text
    stack = parsed.get("techStack") or parsed.get("tech_stack") or parsed.get("dependencies")
    if stack:
        frontend.dependencies = [str(s) for s in _as_list(stack)]


def _extract_backend(workspace: Workspace, text: str, parsed: dict[str, Any]) -> None:
    backend = workspace.backend
    if "API" in text and "ready" in text.lower():
        backend.completed = True
    apis = parsed.get("apiDesign") or parsed.get("api_design") or parsed.get("apis")
    if apis:
        backend.apis = _as_list(apis)
    schema = parsed.get("databaseSchema") or parsed.get("database_schema")
    if schema:
        backend.database = _as_dict(schema)
    security = parsed.get("security") or parsed.get("authentication")
    if security:
        backend.authentication = _as_dict(security)


def apply_role_output(
    workspace: Workspace,
    *,
    role: str,
    phase: str,
    agent_id: str,
    text: str,
    parsed: dict[str, Any] | None = None,
) -> list[str]:
    """Fold one agent reply into the workspace.

    Returns pending tasks raised by the reply (only the coordinator delegates).
    """
    parsed = parsed or {}
    role = normalize_role(role)
    pending: list[str] = []

    if role == Role.COORDINATOR:
        pending = _extract_coordinator(workspace, text, parsed)
    elif role == Role.DESIGNER:
        _extract_designer(workspace, text, parsed)
    elif role == Role.FRONTEND_DEVELOPER:
        _extract_frontend(workspace, text, parsed)
    elif role == Role.BACKEND_DEVELOPER:
        _extract_backend(workspace, text, parsed)

    workspace.decisions.append(
        DecisionEntry(
            decision=_preview(text),
            rationale=f"{role} in {phase} phase",
            decided_by=agent_id,
        )
    )
    return pending

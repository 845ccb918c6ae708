"""
Phase/role state machine for the structured build workflow.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from ..roles import Role, normalize_role
from .workspace import Workspace

logger = logging.getLogger(__name__)


class Phase(StrEnum):
    REQUIREMENTS = "requirements"
    DESIGN = "design"
    FRONTEND = "frontend"
    BACKEND = "backend"
    INTEGRATION = "integration"
    COMPLETE = "complete"


PHASE_ORDER: tuple[Phase, ...] = tuple(Phase)

INITIAL_ROLE = Role.COORDINATOR.value

# (phase, active role) -> (next phase, next role)
TRANSITIONS: dict[tuple[Phase, str], tuple[Phase, str]] = {
    (Phase.REQUIREMENTS, Role.COORDINATOR): (Phase.DESIGN, Role.DESIGNER),
    (Phase.DESIGN, Role.DESIGNER): (Phase.FRONTEND, Role.FRONTEND_DEVELOPER),
    (Phase.DESIGN, Role.COORDINATOR): (Phase.FRONTEND, Role.FRONTEND_DEVELOPER),
    (Phase.FRONTEND, Role.FRONTEND_DEVELOPER): (Phase.BACKEND, Role.BACKEND_DEVELOPER),
    (Phase.FRONTEND, Role.COORDINATOR): (Phase.BACKEND, Role.BACKEND_DEVELOPER),
    (Phase.BACKEND, Role.BACKEND_DEVELOPER): (Phase.INTEGRATION, Role.COORDINATOR),
    (Phase.BACKEND, Role.COORDINATOR): (Phase.INTEGRATION, Role.FRONTEND_DEVELOPER),
    (Phase.INTEGRATION, Role.COORDINATOR): (Phase.COMPLETE, Role.COORDINATOR),
    (Phase.INTEGRATION, Role.FRONTEND_DEVELOPER): (Phase.COMPLETE, Role.COORDINATOR),
}

# Conditions a phase must meet on the workspace before it may be left.
PHASE_CRITERIA: dict[Phase, Callable[[Workspace], bool]] = {
    Phase.REQUIREMENTS: lambda ws: bool(ws.project.type),
    Phase.DESIGN: lambda ws: ws.design.approved,
    Phase.FRONTEND: lambda ws: ws.frontend.completed,
    Phase.BACKEND: lambda ws: ws.backend.completed,
    Phase.INTEGRATION: lambda ws: True,
}

PHASE_INSTRUCTIONS: dict[tuple[str, Phase], str] = {
    (Role.COORDINATOR, Phase.REQUIREMENTS): (
        "Analyze the user request and coordinate initial planning. "
        "Delegate specific tasks to team members. Limit response to 3-4 sentences."
    ),
    (Role.COORDINATOR, Phase.DESIGN): (
        "Review the design proposal and coordinate frontend planning. "
        "Make decisions and move forward. Limit response to 2-3 sentences."
    ),
    (Role.COORDINATOR, Phase.FRONTEND): (
        "Monitor frontend progress and coordinate backend integration. "
        "Check for blockers. Limit response to 2-3 sentences."
    ),
    (Role.COORDINATOR, Phase.BACKEND): (
        "Oversee backend development and prepare for integration testing. "
        "Limit response to 2-3 sentences."
    ),
    (Role.COORDINATOR, Phase.INTEGRATION): (
        "Coordinate final integration and testing. Limit response to 2-3 sentences."
    ),
    (Role.DESIGNER, Phase.REQUIREMENTS): (
        "Create wireframes and a design system based on the requirements. "
        "Be specific and actionable. Limit response to 4-5 sentences."
    ),
    (Role.DESIGNER, Phase.DESIGN): (
        "Create the wireframes and design system for this project, list the key screens "
        "and finalize component specifications. Limit response to 4-5 sentences."
    ),
    (Role.FRONTEND_DEVELOPER, Phase.DESIGN): (
        "Review the design specifications and plan the implementation. "
        "Identify technical requirements for the backend. Limit response to 4-5 sentences."
    ),
    (Role.FRONTEND_DEVELOPER, Phase.FRONTEND): (
        "Implement the frontend based on the approved design. "
        "Document API requirements. Limit response to 4-5 sentences."
    ),
    (Role.FRONTEND_DEVELOPER, Phase.INTEGRATION): (
        "Complete frontend integration with the backend APIs and test functionality. "
        "Limit response to 3-4 sentences."
    ),
    (Role.BACKEND_DEVELOPER, Phase.FRONTEND): (
        "Design APIs and the database schema based on the frontend requirements. "
        "Limit response to 4-5 sentences."
    ),
    (Role.BACKEND_DEVELOPER, Phase.BACKEND): (
        "Implement backend services and APIs and prepare for frontend integration. "
        "Limit response to 4-5 sentences."
    ),
    (Role.BACKEND_DEVELOPER, Phase.INTEGRATION): (
        "Complete the API implementation and test it with the frontend. "
        "Limit response to 3-4 sentences."
    ),
}


def instruction_for(role: str, phase: Phase | str) -> str:
    phase = Phase(phase)
    instruction = PHASE_INSTRUCTIONS.get((normalize_role(role), phase))
    if instruction is None:
        return f"Continue working on {phase.value} phase. Keep response brief and actionable."
    return instruction


def next_transition(phase: Phase | str, role: str) -> tuple[Phase, str]:
    """Look up the successor of ``(phase, role)``; unknown pairs end the run."""
    phase = Phase(phase)
    key = (phase, normalize_role(role))
    if key not in TRANSITIONS:
        logger.warning("No transition for %s/%s, completing workflow", phase.value, role)
        return Phase.COMPLETE, INITIAL_ROLE
    next_phase, next_role = TRANSITIONS[key]
    return next_phase, str(next_role)


def criterion_met(phase: Phase | str, workspace: Workspace) -> bool:
    check = PHASE_CRITERIA.get(Phase(phase))
    return True if check is None else check(workspace)


def phase_index(phase: Phase | str) -> int:
    return PHASE_ORDER.index(Phase(phase))


@dataclass
class ConversationWorkflowState:
    """Where a conversation's structured run currently stands."""

    conversation_id: str
    phase: Phase = Phase.REQUIREMENTS
    active_role: str = INITIAL_ROLE
    completed_tasks: list[str] = field(default_factory=list)
    pending_tasks: list[str] = field(default_factory=list)
    round: int = 0
    max_rounds: int = 8
    retry_count: int = 0
    error: str | None = None
    history: list[Phase] = field(default_factory=lambda: [Phase.REQUIREMENTS])

    @property
    def is_complete(self) -> bool:
        return self.phase == Phase.COMPLETE

    def advance(self, next_phase: Phase, next_role: str) -> None:
        if phase_index(next_phase) < phase_index(self.phase):
            raise ValueError(f"Phase cannot move backwards: {self.phase} -> {next_phase}")
        self.completed_tasks.append(f"{self.active_role}:{self.phase.value}")
        self.phase = next_phase
        self.active_role = next_role
        self.retry_count = 0
        self.history.append(next_phase)

    def complete(self, error: str | None = None) -> None:
        if error:
            self.error = error
        if self.phase != Phase.COMPLETE:
            self.phase = Phase.COMPLETE
            self.history.append(Phase.COMPLETE)

    def to_dict(self) -> dict[str, Any]:
        return {
            "conversation_id": self.conversation_id,
            "phase": self.phase.value,
            "active_role": self.active_role,
            "completed_tasks": list(self.completed_tasks),
            "pending_tasks": list(self.pending_tasks),
            "round": self.round,
            "max_rounds": self.max_rounds,
            "retry_count": self.retry_count,
            "error": self.error,
            "history": [p.value for p in self.history],
        }

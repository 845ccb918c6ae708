"""
Structured build workflow composed from team rounds.
"""

from __future__ import annotations

import asyncio
import logging
from copy import deepcopy
from typing import Any

from ..completion import CompletionGateway
from ..config import settings
from ..entities import Message
from ..events import Publisher
from ..registry import AgentRegistry
from ..repository import MemoryScope, Repository
from ..state import OrchestratorState
from ..triage import ProjectTriager, Triager
from .base import RoundLoop, WorkflowContext
from .phases import ConversationWorkflowState
from .team_steps import Sleep, TeamRoundStep
from .workspace import Workspace

logger = logging.getLogger(__name__)


def create_team_workflow(step: TeamRoundStep) -> RoundLoop:
    return RoundLoop(name="team_build", step=step)


class StructuredWorkflowEngine:
    """Drives requirements -> design -> frontend -> backend -> integration -> complete."""

    def __init__(
        self,
        state: OrchestratorState,
        registry: AgentRegistry,
        repository: Repository,
        publisher: Publisher,
        gateway: CompletionGateway,
        triager: Triager | None = None,
        *,
        max_rounds: int | None = None,
        round_delay: float | None = None,
        max_retries: int | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._state = state
        self._repository = repository
        self.triager = triager or ProjectTriager()
        self.max_rounds = settings.max_rounds if max_rounds is None else max_rounds
        self._step = TeamRoundStep(
            registry,
            repository,
            publisher,
            gateway,
            max_retries=settings.max_round_retries if max_retries is None else max_retries,
            round_delay=settings.round_delay_seconds if round_delay is None else round_delay,
            sleep=sleep,
        )

    async def run(
        self, message: Message, *, project_id: str | None = None
    ) -> ConversationWorkflowState:
        """Start a fresh run for a build request and drive it to a terminal state."""
        conversation_id = message.conversation_id
        wf = ConversationWorkflowState(conversation_id=conversation_id, max_rounds=self.max_rounds)
        workspace = Workspace()
        self._state.workflows[conversation_id] = wf
        self._state.workspaces[conversation_id] = workspace

        triage = self.triager.classify(message.content)
        workspace.project = triage.to_brief()
        logger.info(
            "Structured run in %s: %s, requirements=%s",
            conversation_id,
            triage.project_type,
            triage.requirements,
        )
        await self._repository.update_memory(
            MemoryScope.PROJECT,
            project_id or conversation_id,
            {"project": workspace.to_dict()["project"], "request": message.content},
        )

        ctx = WorkflowContext(
            conversation_id=conversation_id, workflow=wf, workspace=workspace, trigger=message
        )
        summary = await create_team_workflow(self._step).run(ctx)
        logger.info(
            "Structured run in %s stopped at %s after %d rounds (%s)",
            conversation_id,
            wf.phase.value,
            wf.round,
            summary.stop_reason.value,
        )
        return wf

    def get_workflow_status(self, conversation_id: str) -> dict[str, Any] | None:
        wf = self._state.workflows.get(conversation_id)
        return wf.to_dict() if wf else None

    def get_workspace_status(self, conversation_id: str) -> dict[str, Any] | None:
        workspace = self._state.workspaces.get(conversation_id)
        return deepcopy(workspace.to_dict()) if workspace else None

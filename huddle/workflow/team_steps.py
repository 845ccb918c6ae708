"""
Structured-workflow steps: one round of the active role's agent.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from ..completion import CompletionGateway
from ..entities import Agent, Message
from ..errors import AgentNotFoundError, CompletionGatewayError
from ..events import EventType, Publisher
from ..parsing import parse_agent_output
from ..prompts import build_workflow_prompt
from ..registry import AgentRegistry
from ..repository import MemoryScope, Repository
from .base import RoundResult, RoundStatus, RoundStep, WorkflowContext
from .phases import criterion_met, instruction_for, next_transition
from .workspace import RoundRecord, apply_role_output, build_role_context

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class TeamRoundStep(RoundStep):
    """Run the agent for the active role, fold its reply in, then move the phase on."""

    name = "team_round"

    def __init__(
        self,
        registry: AgentRegistry,
        repository: Repository,
        publisher: Publisher,
        gateway: CompletionGateway,
        *,
        max_retries: int,
        round_delay: float,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._registry = registry
        self._repository = repository
        self._publisher = publisher
        self._gateway = gateway
        self.max_retries = max_retries
        self.round_delay = round_delay
        self._sleep = sleep

    async def execute(self, ctx: WorkflowContext) -> RoundResult:
        wf = ctx.workflow
        try:
            agent = self._resolve_agent(wf.active_role)
        except AgentNotFoundError as exc:
            logger.warning("Workflow in %s halted: %s", ctx.conversation_id, exc)
            wf.complete(error=str(exc))
            return RoundResult(RoundStatus.HALTED, wf.round, wf.phase.value, error=str(exc))

        wf.round += 1
        phase = wf.phase
        record = RoundRecord(
            round=wf.round, phase=phase.value, role=wf.active_role, agent_id=agent.id
        )
        ctx.workspace.rounds.append(record)

        prompt = build_workflow_prompt(
            agent,
            instruction=instruction_for(wf.active_role, phase),
            role_context=build_role_context(wf.active_role, ctx.workspace, phase.value),
            workspace=ctx.workspace.snapshot(),
            phase=phase.value,
            round_number=wf.round,
        )

        try:
            content = await self._stream(ctx.conversation_id, agent, prompt)
        except CompletionGatewayError as exc:
            record.error = str(exc)
            wf.retry_count += 1
            logger.warning(
                "Round %d (%s/%s) failed in %s, retry %d/%d: %s",
                wf.round,
                phase.value,
                wf.active_role,
                ctx.conversation_id,
                wf.retry_count,
                self.max_retries,
                exc,
            )
            status = RoundStatus.FAILED
            if wf.retry_count >= self.max_retries:
                wf.complete(error="Max retries exceeded")
                status = RoundStatus.HALTED
            await self._sleep(self.round_delay)
            return RoundResult(status, wf.round, phase.value, error=str(exc))

        record.output = content
        await self._publish_reply(ctx, agent, content)

        parsed = parse_agent_output(wf.active_role, content)
        pending = apply_role_output(
            ctx.workspace,
            role=wf.active_role,
            phase=phase.value,
            agent_id=agent.id,
            text=content,
            parsed=parsed,
        )
        for task in pending:
            if task not in wf.pending_tasks:
                wf.pending_tasks.append(task)

        status = RoundStatus.REPEAT
        if criterion_met(phase, ctx.workspace):
            status = RoundStatus.ADVANCED
            next_phase, next_role = next_transition(phase, wf.active_role)
            if next_role in wf.pending_tasks:
                wf.pending_tasks.remove(next_role)
            wf.advance(next_phase, next_role)
            logger.info(
                "Workflow %s: %s -> %s (%s)",
                ctx.conversation_id,
                phase.value,
                next_phase.value,
                next_role,
            )
        else:
            logger.info("Workflow %s: %s not finished yet", ctx.conversation_id, phase.value)

        await self._repository.update_memory(
            MemoryScope.CONVERSATION,
            ctx.conversation_id,
            {"workspace": ctx.workspace.to_dict(), "workflow": wf.to_dict()},
        )

        await self._sleep(self.round_delay)
        return RoundResult(status, wf.round, phase.value)

    def _resolve_agent(self, role: str) -> Agent:
        agent = self._registry.find_by_role(role)
        if agent is None:
            raise AgentNotFoundError(role)
        return agent

    async def _stream(self, conversation_id: str, agent: Agent, prompt: str) -> str:
        chunks: list[str] = []

        async def on_chunk(chunk: str) -> None:
            chunks.append(chunk)
            await self._publisher.emit_to_room(
                conversation_id,
                EventType.AGENT_STREAMING,
                {"agent_id": agent.id, "chunk": chunk, "content": "".join(chunks)},
            )

        await self._set_typing(conversation_id, agent.id, True)
        try:
            content = await self._gateway.stream(prompt, agent.config, on_chunk)
        finally:
            await self._set_typing(conversation_id, agent.id, False)
        return content or "".join(chunks)

    async def _publish_reply(self, ctx: WorkflowContext, agent: Agent, content: str) -> Message:
        wf = ctx.workflow
        reply = await self._repository.create_message(
            Message(
                conversation_id=ctx.conversation_id,
                sender_id=agent.id,
                content=content,
                metadata={
                    "model": agent.config.resolved_model,
                    "provider": agent.config.provider,
                    "workflowPhase": wf.phase.value,
                    "workflowRound": wf.round,
                },
            )
        )
        await self._publisher.emit_to_room(
            ctx.conversation_id, EventType.NEW_MESSAGE, reply.to_dict()
        )
        return reply

    async def _set_typing(self, conversation_id: str, agent_id: str, is_typing: bool) -> None:
        await self._publisher.emit_to_room(
            conversation_id,
            EventType.TYPING_INDICATOR,
            {"agent_id": agent_id, "is_typing": is_typing},
        )

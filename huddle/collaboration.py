"""
Trigger-driven router for free-form team conversations.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from .completion import CompletionGateway
from .config import settings
from .entities import Agent, Message
from .errors import CompletionGatewayError
from .events import EventType, Publisher
from .prompts import build_collaboration_prompt
from .registry import AgentRegistry
from .repository import MemoryScope, Repository
from .roles import Role, normalize_role
from .state import CollaborationCycleState, OrchestratorState
from .triggers import PatternTriggerDetector, TriggerDetector, TriggerRule

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class CollaborativeRouter:
    """Invokes agents named or implied by a message, within cooldown and cycle limits."""

    def __init__(
        self,
        state: OrchestratorState,
        registry: AgentRegistry,
        repository: Repository,
        publisher: Publisher,
        gateway: CompletionGateway,
        detector: TriggerDetector | None = None,
        *,
        max_cycles: int | None = None,
        cooldown_delay: float | None = None,
        cooldown_window: float | None = None,
        history_window: int | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._state = state
        self._registry = registry
        self._repository = repository
        self._publisher = publisher
        self._gateway = gateway
        self.detector = detector or PatternTriggerDetector()
        self.max_cycles = settings.max_collaboration_cycles if max_cycles is None else max_cycles
        self.cooldown_delay = (
            settings.cooldown_delay_seconds if cooldown_delay is None else cooldown_delay
        )
        self.cooldown_window = (
            settings.cooldown_window_seconds if cooldown_window is None else cooldown_window
        )
        self.history_window = (
            settings.recent_message_window if history_window is None else history_window
        )
        self._sleep = sleep

    # =========================================================================
    # Routing
    # =========================================================================

    async def handle(self, message: Message, roster: list[Agent]) -> list[Message]:
        """Route one message; returns the agent replies it produced."""
        conversation_id = message.conversation_id
        cycle = self._state.cycle(conversation_id)
        from_user = self._registry.is_user_sender(message.sender_id)

        if from_user:
            cycle.reset()
        if cycle.cycle_count >= self.max_cycles:
            logger.info(
                "Collaboration cap reached in %s (%d cycles)", conversation_id, cycle.cycle_count
            )
            return []

        candidates = [a for a in self._registry.invocable(roster) if a.id != message.sender_id]
        scan = self.detector.scan(message.content)
        produced: list[Message] = []

        async def invoke(agent: Agent, reason: str) -> None:
            reply = await self._invoke(agent, message, cycle, reason=reason)
            if reply is not None:
                produced.append(reply)

        for rule in scan.collaboration:
            agent = self._pick_collaborator(rule, candidates, message, cycle)
            if agent is not None:
                await invoke(agent, f"collaboration request ({rule.name})")
                break

        for handle in scan.mentions:
            agent = self._resolve_mention(handle, candidates)
            if agent is None:
                logger.debug("Mention @%s matches no invocable agent", handle)
                continue
            await invoke(agent, f"mentioned as @{handle}")

        for tag in scan.tasks:
            agent = self._resolve_task(tag, candidates, cycle)
            if agent is not None:
                await invoke(agent, f"task #{tag}")

        if scan.empty and from_user:
            agent = self._initial_agent(candidates, cycle)
            if agent is not None:
                await invoke(agent, "initial collaboration")

        return produced

    def _available(self, agent: Agent, cycle: CollaborationCycleState) -> bool:
        if not agent.is_active:
            return False
        if cycle.cycle_count >= self.max_cycles:
            return False
        return not cycle.is_recent(agent.id, self._state.now())

    def _pick_collaborator(
        self,
        rule: TriggerRule,
        candidates: list[Agent],
        message: Message,
        cycle: CollaborationCycleState,
    ) -> Agent | None:
        text = message.content.lower()
        eligible = [
            a
            for a in candidates
            if normalize_role(a.role) in rule.roles and self._available(a, cycle)
        ]
        named = [a for a in eligible if a.name.lower() in text or a.role.lower() in text]
        if named:
            return named[0]
        return eligible[0] if eligible else None

    def _resolve_mention(self, handle: str, candidates: list[Agent]) -> Agent | None:
        agent = self._registry.find_by_handle(handle)
        if agent is None:
            return None
        if agent.id not in {a.id for a in candidates}:
            return None
        return agent

    def _resolve_task(
        self, tag: str, candidates: list[Agent], cycle: CollaborationCycleState
    ) -> Agent | None:
        roles = self.detector.roles_for_task(tag)
        matches = [a for a in candidates if normalize_role(a.role) in roles]
        if not matches:
            matches = [a for a in candidates if any(tag in c.lower() for c in a.capabilities)]
        for agent in matches:
            if self._available(agent, cycle):
                return agent
        return None

    def _initial_agent(
        self, candidates: list[Agent], cycle: CollaborationCycleState
    ) -> Agent | None:
        coordinators = [a for a in candidates if normalize_role(a.role) == Role.COORDINATOR]
        pool = coordinators or candidates[:1]
        for agent in pool:
            if self._available(agent, cycle):
                return agent
        return None

    # =========================================================================
    # Invocation
    # =========================================================================

    async def _invoke(
        self,
        agent: Agent,
        trigger: Message,
        cycle: CollaborationCycleState,
        *,
        reason: str,
    ) -> Message | None:
        if not self._available(agent, cycle):
            logger.debug("Skipping %s: inactive, cooling down or over the cycle cap", agent.id)
            return None

        conversation_id = trigger.conversation_id
        cycle.mark_recent(agent.id, self._state.now(), self.cooldown_window)
        await self._sleep(self.cooldown_delay)

        await self._set_typing(conversation_id, agent.id, True)
        try:
            history = await self._repository.get_recent_messages(
                conversation_id, self.history_window
            )
            memory = await self._repository.get_memory(MemoryScope.CONVERSATION, conversation_id)
            names = {a.id: a.name for a in self._registry.all()}
            prompt = build_collaboration_prompt(
                agent, trigger, history, memory, names, reason=reason
            )
            result = await self._gateway.generate(prompt, agent.config)
        except CompletionGatewayError as exc:
            logger.warning("Agent %s failed to respond in %s: %s", agent.id, conversation_id, exc)
            return None
        finally:
            await self._set_typing(conversation_id, agent.id, False)

        reply = await self._repository.create_message(
            Message(
                conversation_id=conversation_id,
                sender_id=agent.id,
                content=result.content,
                metadata={"model": result.model, "provider": result.provider, "trigger": reason},
            )
        )
        await self._publisher.emit_to_room(conversation_id, EventType.NEW_MESSAGE, reply.to_dict())
        cycle.cycle_count += 1
        logger.info(
            "%s replied in %s (%s), cycle %d/%d",
            agent.id,
            conversation_id,
            reason,
            cycle.cycle_count,
            self.max_cycles,
        )
        return reply

    async def _set_typing(self, conversation_id: str, agent_id: str, is_typing: bool) -> None:
        await self._publisher.emit_to_room(
            conversation_id,
            EventType.TYPING_INDICATOR,
            {"agent_id": agent_id, "is_typing": is_typing},
        )

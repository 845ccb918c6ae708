"""Main orchestrator - admits messages and routes them to the team."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from .collaboration import CollaborativeRouter, Sleep
from .completion import CompletionGateway
from .config import settings
from .entities import Agent, GenerationConfig, Message
from .events import Publisher
from .gate import MessageGate
from .registry import AgentRegistry
from .repository import Repository
from .roles import TEAM_ROLES, normalize_role
from .state import Clock, OrchestratorState
from .triage import Triager
from .triggers import TriggerDetector
from .workflow.team_workflow import StructuredWorkflowEngine

logger = logging.getLogger(__name__)


class Mode(StrEnum):
    STRUCTURED = "structured"
    COLLABORATIVE = "collaborative"


class OutcomeStatus(StrEnum):
    DENIED = "denied"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ProcessingOutcome:
    """How one ``process_message`` call ended."""

    conversation_id: str
    message_id: str
    status: OutcomeStatus
    mode: Mode | None = None
    replies: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "conversation_id": self.conversation_id,
            "message_id": self.message_id,
            "status": self.status.value,
            "mode": self.mode.value if self.mode else None,
            "replies": self.replies,
            "error": self.error,
        }


OutcomeListener = Callable[[ProcessingOutcome], Awaitable[None] | None]


class TeamOrchestrator:
    """Single coordinator instance owning all runtime state."""

    def __init__(
        self,
        repository: Repository,
        publisher: Publisher,
        gateway: CompletionGateway,
        *,
        detector: TriggerDetector | None = None,
        triager: Triager | None = None,
        clock: Clock | None = None,
        sleep: Sleep = asyncio.sleep,
        relay_agent_messages: bool | None = None,
        sweep_interval: float | None = None,
        **limits: Any,
    ) -> None:
        self.state = OrchestratorState(clock) if clock else OrchestratorState()
        self.repository = repository
        self.registry = AgentRegistry(repository, publisher)
        self.gate = MessageGate(
            self.state,
            lock_timeout=limits.pop("lock_timeout", None),
            history_size=limits.pop("history_size", None),
        )
        self.router = CollaborativeRouter(
            self.state,
            self.registry,
            repository,
            publisher,
            gateway,
            detector,
            max_cycles=limits.pop("max_cycles", None),
            cooldown_delay=limits.pop("cooldown_delay", None),
            cooldown_window=limits.pop("cooldown_window", None),
            history_window=limits.pop("history_window", None),
            sleep=sleep,
        )
        self.engine = StructuredWorkflowEngine(
            self.state,
            self.registry,
            repository,
            publisher,
            gateway,
            triager,
            max_rounds=limits.pop("max_rounds", None),
            round_delay=limits.pop("round_delay", None),
            max_retries=limits.pop("max_retries", None),
            sleep=sleep,
        )
        if limits:
            raise TypeError(f"Unknown orchestrator limits: {sorted(limits)}")

        self.relay_agent_messages = (
            settings.relay_agent_messages if relay_agent_messages is None else relay_agent_messages
        )
        self.sweep_interval = (
            settings.sweep_interval_seconds if sweep_interval is None else sweep_interval
        )
        self._tasks: set[asyncio.Task[ProcessingOutcome]] = set()
        self._listeners: list[OutcomeListener] = []
        self._sweeper: asyncio.Task[None] | None = None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Load agents, seed the system/user records and start the lock sweeper."""
        await self.registry.load()
        await self.registry.ensure_seed_agents()
        if self._sweeper is None:
            self._sweeper = asyncio.create_task(self._sweep_loop(), name="huddle-sweeper")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            released = self.gate.sweep()
            if released:
                logger.info("Sweeper released %d stale locks", released)

    async def drain(self) -> None:
        """Wait until no processing task (including relays) is in flight."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
        await self.drain()

    def reset(self) -> None:
        self.state.reset()

    def on_outcome(self, listener: OutcomeListener) -> None:
        self._listeners.append(listener)

    # =========================================================================
    # Message Processing
    # =========================================================================

    def process_message(self, message: Message, conversation_id: str | None = None) -> asyncio.Task:
        """Schedule processing and return immediately; the task never raises."""
        task = asyncio.create_task(
            self._process_chain(message, conversation_id), name=f"huddle-{message.id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _process_chain(
        self, message: Message, conversation_id: str | None
    ) -> ProcessingOutcome:
        if conversation_id and conversation_id != message.conversation_id:
            error = (
                f"Message {message.id} belongs to {message.conversation_id}, "
                f"not {conversation_id}"
            )
            logger.warning("Rejected message: %s", error)
            outcome = ProcessingOutcome(
                conversation_id, message.id, OutcomeStatus.FAILED, error=error
            )
            await self._notify(outcome)
            return outcome

        outcome, replies = await self._process(message)
        if not self.relay_agent_messages:
            return outcome

        # replies are relayed one at a time, breadth first, inside this task
        pending = deque(replies)
        while pending:
            reply = pending.popleft()
            relayed, more = await self._process(reply)
            if relayed.status == OutcomeStatus.DENIED:
                logger.info("Relay of %s skipped, %s is busy", reply.id, reply.conversation_id)
            pending.extend(more)
        return outcome

    async def _process(self, message: Message) -> tuple[ProcessingOutcome, list[Message]]:
        conversation_id = message.conversation_id
        if not self.gate.admit(conversation_id, message.id):
            outcome = ProcessingOutcome(conversation_id, message.id, OutcomeStatus.DENIED)
            await self._notify(outcome)
            return outcome, []

        mode: Mode | None = None
        replies: list[Message] = []
        try:
            mode, replies = await self._route(message)
            outcome = ProcessingOutcome(
                conversation_id, message.id, OutcomeStatus.COMPLETED, mode, len(replies)
            )
        except Exception as exc:
            logger.exception("Processing %s in %s failed", message.id, conversation_id)
            outcome = ProcessingOutcome(
                conversation_id, message.id, OutcomeStatus.FAILED, mode, error=str(exc)
            )
        finally:
            self.gate.release(conversation_id, message.id)

        await self._notify(outcome)
        return outcome, replies

    async def _route(self, message: Message) -> tuple[Mode, list[Message]]:
        roster = await self._roster(message.conversation_id)
        if await self._is_build_request(message, roster):
            conversation = await self.repository.get_conversation(message.conversation_id)
            try:
                await self.engine.run(
                    message, project_id=conversation.project_id if conversation else None
                )
                return Mode.STRUCTURED, []
            except Exception:
                logger.exception(
                    "Structured run failed in %s, falling back to collaboration",
                    message.conversation_id,
                )

        replies = await self.router.handle(message, roster)
        return Mode.COLLABORATIVE, replies

    async def _roster(self, conversation_id: str) -> list[Agent]:
        conversation = await self.repository.get_conversation(conversation_id)
        if conversation is None or not conversation.participants:
            return self.registry.all()
        agents = [self.registry.get(agent_id) for agent_id in conversation.participants]
        return [a for a in agents if a is not None]

    async def _is_build_request(self, message: Message, roster: list[Agent]) -> bool:
        """First human message in a conversation staffed with a build team."""
        if not self.registry.is_user_sender(message.sender_id):
            return False
        if not any(normalize_role(a.role) in TEAM_ROLES for a in roster):
            return False
        recent = await self.repository.get_recent_messages(message.conversation_id, 2)
        return len(recent) <= 1

    async def _notify(self, outcome: ProcessingOutcome) -> None:
        for listener in self._listeners:
            try:
                result = listener(outcome)
                if hasattr(result, "__await__"):
                    await result
            except Exception:
                logger.exception("Outcome listener failed for %s", outcome.message_id)

    # =========================================================================
    # Agents & Status
    # =========================================================================

    async def reload_agents(self) -> list[Agent]:
        return await self.registry.load()

    def get_all_agents(self) -> list[Agent]:
        return self.registry.all()

    def get_agent(self, agent_id: str) -> Agent | None:
        return self.registry.get(agent_id)

    async def add_agent(
        self,
        *,
        name: str,
        role: str,
        config: GenerationConfig | None = None,
        capabilities: list[str] | None = None,
        **fields: Any,
    ) -> Agent:
        return await self.registry.add(
            name=name, role=role, config=config, capabilities=capabilities, **fields
        )

    async def update_agent(self, agent_id: str, **changes: Any) -> Agent:
        return await self.registry.update(agent_id, **changes)

    async def remove_agent(self, agent_id: str) -> None:
        await self.registry.remove(agent_id)

    def get_workflow_status(self, conversation_id: str) -> dict[str, Any] | None:
        return self.engine.get_workflow_status(conversation_id)

    def get_workspace_status(self, conversation_id: str) -> dict[str, Any] | None:
        return self.engine.get_workspace_status(conversation_id)

"""Runtime state owned by one orchestrator instance, keyed by conversation id.

Each conversation has a single writer at a time: the gate admits one message
per conversation, and only the task processing that message touches the
conversation's entries below.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field

from .workflow.phases import ConversationWorkflowState
from .workflow.workspace import Workspace

Clock = Callable[[], float]


@dataclass
class ProcessingLock:
    conversation_id: str
    message_id: str
    acquired_at: float


@dataclass
class CollaborationCycleState:
    """Per-conversation invocation budget and cooldown bookkeeping."""

    conversation_id: str
    cycle_count: int = 0
    recent: dict[str, float] = field(default_factory=dict)  # agent id -> cooldown expiry

    def prune(self, now: float) -> None:
        expired = [agent_id for agent_id, expiry in self.recent.items() if expiry <= now]
        for agent_id in expired:
            del self.recent[agent_id]

    def is_recent(self, agent_id: str, now: float) -> bool:
        self.prune(now)
        return agent_id in self.recent

    def mark_recent(self, agent_id: str, now: float, window: float) -> None:
        self.recent[agent_id] = now + window

    def reset(self) -> None:
        self.cycle_count = 0
        self.recent.clear()


class OrchestratorState:
    """All mutable per-conversation state in one place."""

    def __init__(self, clock: Clock = time.monotonic) -> None:
        self.clock = clock
        self.locks: dict[str, ProcessingLock] = {}
        self.processed: dict[str, dict[str, None]] = {}  # insertion-ordered id sets
        self.cycles: dict[str, CollaborationCycleState] = {}
        self.workflows: dict[str, ConversationWorkflowState] = {}
        self.workspaces: dict[str, Workspace] = {}

    def now(self) -> float:
        return self.clock()

    def cycle(self, conversation_id: str) -> CollaborationCycleState:
        state = self.cycles.get(conversation_id)
        if state is None:
            state = self.cycles[conversation_id] = CollaborationCycleState(conversation_id)
        return state

    def workspace(self, conversation_id: str) -> Workspace:
        ws = self.workspaces.get(conversation_id)
        if ws is None:
            ws = self.workspaces[conversation_id] = Workspace()
        return ws

    def reset(self) -> None:
        self.locks.clear()
        self.processed.clear()
        self.cycles.clear()
        self.workflows.clear()
        self.workspaces.clear()

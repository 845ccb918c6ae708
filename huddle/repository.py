"""Storage boundary consumed by the orchestrator."""

from __future__ import annotations

from enum import StrEnum
from typing import Any, Protocol

from .entities import Agent, Conversation, Message


class MemoryScope(StrEnum):
    PROJECT = "project"
    CONVERSATION = "conversation"


def default_memory(scope: MemoryScope) -> dict[str, Any]:
    """Blob returned for a scope that has never been written."""
    if scope == MemoryScope.PROJECT:
        return {"project": {}, "decisions": [], "artifacts": []}
    return {"context": {}, "messages": [], "summary": ""}


class Repository(Protocol):
    async def list_agents(self) -> list[Agent]: ...

    async def create_agent(self, agent: Agent) -> Agent: ...

    async def update_agent(self, agent: Agent) -> Agent: ...

    async def delete_agent(self, agent_id: str) -> None: ...

    async def upsert_agent(self, agent: Agent) -> Agent: ...

    async def get_conversation(self, conversation_id: str) -> Conversation | None: ...

    async def create_conversation(self, conversation: Conversation) -> Conversation: ...

    async def create_message(self, message: Message) -> Message: ...

    async def get_recent_messages(self, conversation_id: str, count: int) -> list[Message]: ...

    async def get_memory(self, scope: MemoryScope, scope_id: str) -> dict[str, Any]: ...

    async def update_memory(
        self, scope: MemoryScope, scope_id: str, data: dict[str, Any]
    ) -> None: ...

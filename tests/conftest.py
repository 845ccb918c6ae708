"""Shared test fixtures and fakes for pytest."""

from __future__ import annotations

import asyncio
from copy import deepcopy
from typing import Any

import pytest

from huddle.completion import ChunkCallback, CompletionResult
from huddle.entities import Agent, Conversation, GenerationConfig, Message
from huddle.errors import AgentNotFoundError, CompletionGatewayError
from huddle.events import EventType
from huddle.repository import MemoryScope, default_memory


class InMemoryRepository:
    def __init__(self, agents: list[Agent] | None = None) -> None:
        self.agents: list[Agent] = list(agents or [])
        self.conversations: dict[str, Conversation] = {}
        self.messages: list[Message] = []
        self.memory: dict[tuple[str, str], dict[str, Any]] = {}

    async def list_agents(self) -> list[Agent]:
        return list(self.agents)

    async def create_agent(self, agent: Agent) -> Agent:
        self.agents.append(agent)
        return agent

    async def update_agent(self, agent: Agent) -> Agent:
        for i, existing in enumerate(self.agents):
            if existing.id == agent.id:
                self.agents[i] = agent
                return agent
        raise AgentNotFoundError(agent.id)

    async def delete_agent(self, agent_id: str) -> None:
        self.agents = [a for a in self.agents if a.id != agent_id]
        self.messages = [m for m in self.messages if m.sender_id != agent_id]
        for conversation in self.conversations.values():
            conversation.participants = [p for p in conversation.participants if p != agent_id]

    async def upsert_agent(self, agent: Agent) -> Agent:
        self.agents = [a for a in self.agents if a.id != agent.id]
        self.agents.append(agent)
        return agent

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        return self.conversations.get(conversation_id)

    async def create_conversation(self, conversation: Conversation) -> Conversation:
        self.conversations[conversation.id] = conversation
        return conversation

    async def create_message(self, message: Message) -> Message:
        self.messages.append(message)
        return message

    async def get_recent_messages(self, conversation_id: str, count: int) -> list[Message]:
        return [m for m in self.messages if m.conversation_id == conversation_id][-count:]

    async def get_memory(self, scope: MemoryScope, scope_id: str) -> dict[str, Any]:
        return deepcopy(self.memory.get((scope.value, scope_id), default_memory(scope)))

    async def update_memory(self, scope: MemoryScope, scope_id: str, data: dict[str, Any]) -> None:
        self.memory[(scope.value, scope_id)] = deepcopy(data)


class RecordingPublisher:
    def __init__(self) -> None:
        self.events: list[tuple[str | None, EventType, dict[str, Any]]] = []

    async def emit(self, event: EventType, payload: dict[str, Any]) -> None:
        self.events.append((None, event, payload))

    async def emit_to_room(
        self, conversation_id: str, event: EventType, payload: dict[str, Any]
    ) -> None:
        self.events.append((conversation_id, event, payload))

    def of_type(self, event: EventType) -> list[dict[str, Any]]:
        return [payload for _, e, payload in self.events if e == event]


class ScriptedGateway:
    """Returns replies keyed by the agent name found in the prompt."""

    def __init__(self, replies: dict[str, Any] | None = None, default: Any = "On it.") -> None:
        self.replies = replies or {}
        self.default = default
        self.calls: list[tuple[str, GenerationConfig]] = []
        self.gate: asyncio.Event | None = None

    def _reply_for(self, prompt: str) -> str:
        reply = self.default
        for marker, scripted in self.replies.items():
            if f"Respond as {marker}" in prompt:
                reply = scripted
                break
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(prompt)
        return reply

    async def generate(self, prompt: str, config: GenerationConfig) -> CompletionResult:
        self.calls.append((prompt, config))
        if self.gate is not None:
            await self.gate.wait()
        return CompletionResult(
            content=self._reply_for(prompt), model=config.resolved_model, provider=config.provider
        )

    async def stream(self, prompt: str, config: GenerationConfig, on_chunk: ChunkCallback) -> str:
        self.calls.append((prompt, config))
        text = self._reply_for(prompt)
        for word in text.split(" "):
            result = on_chunk(word + " ")
            if hasattr(result, "__await__"):
                await result
        return text


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


async def no_sleep(seconds: float) -> None:
    del seconds
    await asyncio.sleep(0)


def make_agent(agent_id: str, role: str, name: str | None = None, **kwargs: Any) -> Agent:
    return Agent(
        id=agent_id,
        name=name or agent_id.title(),
        role=role,
        config=GenerationConfig(provider="ollama", system_prompt=f"You are the {role}."),
        **kwargs,
    )


def team() -> list[Agent]:
    return [
        make_agent("alex", "coordinator", "Alex"),
        make_agent("maya", "designer", "Maya"),
        make_agent("sam", "frontend-developer", "Sam"),
        make_agent("jordan", "backend-developer", "Jordan"),
    ]


def gateway_error(text: str = "provider unavailable") -> CompletionGatewayError:
    return CompletionGatewayError(text)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def repository() -> InMemoryRepository:
    return InMemoryRepository(team())


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def gateway() -> ScriptedGateway:
    return ScriptedGateway()

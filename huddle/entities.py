"""Domain records shared by the registry, the router and the workflow engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any
from uuid import uuid4

from .model_config import DEFAULT_PROVIDER, resolve_model


class MessageType(StrEnum):
    TEXT = "text"
    SYSTEM = "system"
    TOOL_CALL = "tool_call"
    TOOL_RESPONSE = "tool_response"


class ConversationType(StrEnum):
    DIRECT = "direct"
    GROUP = "group"


def _now_utc() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return str(uuid4())


@dataclass
class GenerationConfig:
    """How an agent talks to its model provider."""

    provider: str = DEFAULT_PROVIDER
    model: str = ""
    temperature: float = 0.7
    max_tokens: int = 1000
    system_prompt: str = ""

    @property
    def resolved_model(self) -> str:
        return resolve_model(self.provider, self.model or None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "model": self.model,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "system_prompt": self.system_prompt,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> GenerationConfig:
        data = data or {}
        return cls(
            provider=data.get("provider") or data.get("llmProvider") or DEFAULT_PROVIDER,
            model=data.get("model") or "",
            temperature=float(data.get("temperature", 0.7)),
            max_tokens=int(data.get("max_tokens", data.get("maxTokens", 1000))),
            system_prompt=data.get("system_prompt") or data.get("systemPrompt") or "",
        )


@dataclass
class Agent:
    id: str
    name: str
    role: str
    capabilities: list[str] = field(default_factory=list)
    config: GenerationConfig = field(default_factory=GenerationConfig)
    is_active: bool = True
    description: str = ""
    avatar: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role,
            "capabilities": list(self.capabilities),
            "config": self.config.to_dict(),
            "is_active": self.is_active,
            "description": self.description,
            "avatar": self.avatar,
        }


@dataclass
class Message:
    conversation_id: str
    sender_id: str
    content: str
    id: str = field(default_factory=_new_id)
    type: MessageType = MessageType.TEXT
    timestamp: datetime = field(default_factory=_now_utc)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "sender_id": self.sender_id,
            "content": self.content,
            "type": self.type.value,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }


@dataclass
class Conversation:
    id: str
    name: str = ""
    type: ConversationType = ConversationType.GROUP
    participants: list[str] = field(default_factory=list)
    project_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "participants": list(self.participants),
            "project_id": self.project_id,
        }

"""In-memory, repository-backed cache of agent definitions."""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Any

from .entities import Agent, GenerationConfig
from .errors import AgentNotFoundError
from .events import EventType, Publisher
from .repository import Repository
from .roles import NON_INVOCABLE_ROLES, Role, default_capabilities_for_role, normalize_role

logger = logging.getLogger(__name__)

SYSTEM_AGENT_ID = "system-agent"
USER_AGENT_ID = "user-agent"
USER_SENDER_IDS = frozenset({"user", USER_AGENT_ID})

SEED_AGENTS: tuple[Agent, ...] = (
    Agent(
        id=SYSTEM_AGENT_ID,
        name="System",
        role=Role.SYSTEM.value,
        description="System messages and notifications",
        config=GenerationConfig(provider="none"),
    ),
    Agent(
        id=USER_AGENT_ID,
        name="User",
        role=Role.USER.value,
        description="Human user",
        config=GenerationConfig(provider="none"),
    ),
)


def name_slug(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


class AgentRegistry:
    """Agent lookup by id and role.

    Not implicitly shared: a holder that may be stale calls ``load()``.
    """

    def __init__(self, repository: Repository, publisher: Publisher) -> None:
        self._repository = repository
        self._publisher = publisher
        self._agents: dict[str, Agent] = {}

    async def load(self) -> list[Agent]:
        """Replace the cache from the repository; the first record for an id wins."""
        agents: dict[str, Agent] = {}
        for agent in await self._repository.list_agents():
            if agent.id in agents:
                logger.warning("Duplicate agent id %s ignored", agent.id)
                continue
            agents[agent.id] = agent
        self._agents = agents
        logger.info("Loaded %d agents", len(agents))
        return list(agents.values())

    async def ensure_seed_agents(self) -> None:
        for seed in SEED_AGENTS:
            agent = await self._repository.upsert_agent(seed)
            self._agents[agent.id] = agent

    def all(self) -> list[Agent]:
        return list(self._agents.values())

    def get(self, agent_id: str) -> Agent | None:
        return self._agents.get(agent_id)

    def require(self, agent_id: str) -> Agent:
        agent = self._agents.get(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)
        return agent

    def find_by_role(self, role: str, *, active_only: bool = True) -> Agent | None:
        wanted = normalize_role(role)
        for agent in self._agents.values():
            if active_only and not agent.is_active:
                continue
            if normalize_role(agent.role) == wanted:
                return agent
        return None

    def find_by_handle(self, handle: str) -> Agent | None:
        """Resolve an ``@handle`` against id, role and name slug, in that order."""
        key = handle.lower()
        if key in self._agents:
            return self._agents[key]
        for agent in self._agents.values():
            if agent.id.lower() == key:
                return agent
        by_role = self.find_by_role(key, active_only=False)
        if by_role is not None:
            return by_role
        for agent in self._agents.values():
            slug = name_slug(agent.name)
            if key in (slug, slug.replace("-", "_"), slug.split("-")[0]):
                return agent
        return None

    def is_known(self, agent_id: str) -> bool:
        return agent_id in self._agents

    def is_user_sender(self, sender_id: str) -> bool:
        """Humans write as ``user``/``user-agent`` or under any id that is not an agent."""
        if sender_id in USER_SENDER_IDS:
            return True
        agent = self._agents.get(sender_id)
        return agent is None or agent.role == Role.USER

    def invocable(self, agents: list[Agent] | None = None) -> list[Agent]:
        pool = self._agents.values() if agents is None else agents
        return [a for a in pool if a.is_active and a.role not in NON_INVOCABLE_ROLES]

    # =========================================================================
    # Mutation
    # =========================================================================

    async def add(
        self,
        *,
        name: str,
        role: str,
        config: GenerationConfig | None = None,
        capabilities: list[str] | None = None,
        agent_id: str | None = None,
        description: str = "",
        avatar: str | None = None,
        is_active: bool = True,
    ) -> Agent:
        agent = Agent(
            id=agent_id or name_slug(name) or name,
            name=name,
            role=role,
            capabilities=(
                list(capabilities) if capabilities else default_capabilities_for_role(role)
            ),
            config=config or GenerationConfig(),
            is_active=is_active,
            description=description,
            avatar=avatar,
        )
        created = await self._repository.create_agent(agent)
        self._agents[created.id] = created
        await self._publisher.emit(EventType.AGENT_CREATED, created.to_dict())
        logger.info("Agent %s (%s) created", created.id, created.role)
        return created

    async def update(self, agent_id: str, **changes: Any) -> Agent:
        current = self.require(agent_id)
        allowed = {"name", "role", "capabilities", "config", "is_active", "description", "avatar"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValueError(f"Unknown agent fields: {sorted(unknown)}")

        merged = replace(current, **changes)
        updated = await self._repository.update_agent(merged)
        self._agents[agent_id] = updated
        await self._publisher.emit(EventType.AGENT_UPDATED, updated.to_dict())
        return updated

    async def remove(self, agent_id: str) -> None:
        self.require(agent_id)
        await self._repository.delete_agent(agent_id)
        del self._agents[agent_id]
        await self._publisher.emit(EventType.AGENT_DELETED, {"id": agent_id})
        logger.info("Agent %s deleted", agent_id)

"""Async database connection and operations for the team orchestrator."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .config import settings
from .entities import Agent, Conversation, ConversationType, GenerationConfig, Message, MessageType
from .errors import (
    AgentNotFoundError,
    RepositoryError,
    SchemaNotInitializedError,
    is_schema_missing_error,
    schema_not_initialized_message,
)
from .models import AgentRow, Base, ConversationRow, MemoryRow, MessageRow
from .repository import MemoryScope, default_memory

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def configure(url: str | None = None, **engine_kwargs: Any) -> async_sessionmaker[AsyncSession]:
    """(Re)create the module engine and session factory."""
    global _engine, _session_factory
    url = url or settings.async_database_url
    if url.startswith("postgresql"):
        engine_kwargs.setdefault("pool_pre_ping", True)
    _engine = create_async_engine(url, echo=False, **engine_kwargs)
    _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    return _session_factory


def get_engine() -> AsyncEngine:
    if _engine is None:
        configure()
    assert _engine is not None
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    if _session_factory is None:
        return configure()
    return _session_factory


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Create all tables."""
    async with (engine or get_engine()).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose() -> None:
    if _engine is not None:
        await _engine.dispose()


@asynccontextmanager
async def get_session(
    factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncGenerator[AsyncSession]:
    """Async context manager for database sessions."""
    async with (factory or get_session_factory())() as session:
        try:
            yield session
            await session.commit()
        except Exception as exc:
            await session.rollback()
            if isinstance(exc, SQLAlchemyError) and is_schema_missing_error(exc):
                raise SchemaNotInitializedError(schema_not_initialized_message(exc)) from exc
            raise


# =============================================================================
# Row Conversion
# =============================================================================


def agent_from_row(row: AgentRow) -> Agent:
    return Agent(
        id=row.id,
        name=row.name,
        role=row.role,
        capabilities=list(row.capabilities or []),
        config=GenerationConfig.from_dict(row.config),
        is_active=row.is_active,
        description=row.description or "",
        avatar=row.avatar,
    )


def message_from_row(row: MessageRow) -> Message:
    timestamp = row.timestamp
    # sqlite drops tzinfo on the way back
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=UTC)
    return Message(
        id=row.id,
        conversation_id=row.conversation_id,
        sender_id=row.sender_id,
        content=row.content,
        type=MessageType(row.type),
        timestamp=timestamp,
        metadata=dict(row.metadata_ or {}),
    )


def conversation_from_row(row: ConversationRow) -> Conversation:
    return Conversation(
        id=row.id,
        name=row.name,
        type=ConversationType(row.type),
        participants=list(row.participants or []),
        project_id=row.project_id,
    )


def _apply_agent(row: AgentRow, agent: Agent) -> None:
    row.name = agent.name
    row.role = agent.role
    row.description = agent.description
    row.avatar = agent.avatar
    row.config = agent.config.to_dict()
    row.capabilities = list(agent.capabilities)
    row.is_active = agent.is_active


# =============================================================================
# Agent Operations
# =============================================================================


async def list_agents(session: AsyncSession) -> list[AgentRow]:
    result = await session.execute(select(AgentRow).order_by(AgentRow.created_at, AgentRow.id))
    return list(result.scalars().all())


async def get_agent_by_id(session: AsyncSession, agent_id: str) -> AgentRow | None:
    result = await session.execute(select(AgentRow).where(AgentRow.id == agent_id))
    return result.scalar_one_or_none()


async def create_agent(session: AsyncSession, agent: Agent) -> AgentRow:
    row = AgentRow(id=agent.id)
    _apply_agent(row, agent)
    session.add(row)
    await session.flush()
    return row


async def update_agent(session: AsyncSession, agent: Agent) -> AgentRow:
    row = await get_agent_by_id(session, agent.id)
    if row is None:
        raise AgentNotFoundError(agent.id)
    _apply_agent(row, agent)
    await session.flush()
    return row


async def upsert_agent(session: AsyncSession, agent: Agent) -> AgentRow:
    row = await get_agent_by_id(session, agent.id)
    if row is None:
        return await create_agent(session, agent)
    _apply_agent(row, agent)
    await session.flush()
    return row


async def delete_agent(session: AsyncSession, agent_id: str) -> None:
    """Delete an agent, its messages, and its conversation memberships."""
    row = await get_agent_by_id(session, agent_id)
    if row is None:
        raise AgentNotFoundError(agent_id)

    await session.execute(delete(MessageRow).where(MessageRow.sender_id == agent_id))

    result = await session.execute(select(ConversationRow))
    for conversation in result.scalars().all():
        participants = list(conversation.participants or [])
        if agent_id in participants:
            conversation.participants = [p for p in participants if p != agent_id]

    await session.delete(row)
    await session.flush()


# =============================================================================
# Conversation & Message Operations
# =============================================================================


async def get_conversation(session: AsyncSession, conversation_id: str) -> ConversationRow | None:
    result = await session.execute(
        select(ConversationRow).where(ConversationRow.id == conversation_id)
    )
    return result.scalar_one_or_none()


async def create_conversation(session: AsyncSession, conversation: Conversation) -> ConversationRow:
    row = ConversationRow(
        id=conversation.id,
        name=conversation.name,
        type=conversation.type.value,
        participants=list(conversation.participants),
        project_id=conversation.project_id,
    )
    session.add(row)
    await session.flush()
    return row


async def create_message(session: AsyncSession, message: Message) -> MessageRow:
    row = MessageRow(
        id=message.id,
        conversation_id=message.conversation_id,
        sender_id=message.sender_id,
        content=message.content,
        type=message.type.value,
        metadata_=dict(message.metadata),
        timestamp=message.timestamp,
    )
    session.add(row)
    await session.flush()
    return row


async def get_recent_messages(
    session: AsyncSession, conversation_id: str, count: int
) -> list[MessageRow]:
    """Return the latest ``count`` messages, oldest first."""
    result = await session.execute(
        select(MessageRow)
        .where(MessageRow.conversation_id == conversation_id)
        .order_by(MessageRow.timestamp.desc())
        .limit(count)
    )
    return list(reversed(result.scalars().all()))


# =============================================================================
# Memory Operations
# =============================================================================


async def get_memory(session: AsyncSession, scope: MemoryScope, scope_id: str) -> MemoryRow | None:
    result = await session.execute(
        select(MemoryRow).where(MemoryRow.scope == scope.value, MemoryRow.scope_id == scope_id)
    )
    return result.scalar_one_or_none()


async def update_memory(
    session: AsyncSession, scope: MemoryScope, scope_id: str, data: dict[str, Any]
) -> MemoryRow:
    row = await get_memory(session, scope, scope_id)
    if row is None:
        row = MemoryRow(scope=scope.value, scope_id=scope_id, data=dict(data))
        session.add(row)
    else:
        row.data = dict(data)
    await session.flush()
    return row


# =============================================================================
# Repository Adapter
# =============================================================================


class SqlRepository:
    """Repository backed by the async SQLAlchemy session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        self._factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession]:
        try:
            async with get_session(self._factory) as session:
                yield session
        except SQLAlchemyError as exc:
            raise RepositoryError(f"Repository operation failed: {exc}") from exc

    async def list_agents(self) -> list[Agent]:
        async with self._session() as session:
            return [agent_from_row(row) for row in await list_agents(session)]

    async def create_agent(self, agent: Agent) -> Agent:
        async with self._session() as session:
            return agent_from_row(await create_agent(session, agent))

    async def update_agent(self, agent: Agent) -> Agent:
        async with self._session() as session:
            return agent_from_row(await update_agent(session, agent))

    async def delete_agent(self, agent_id: str) -> None:
        async with self._session() as session:
            await delete_agent(session, agent_id)

    async def upsert_agent(self, agent: Agent) -> Agent:
        async with self._session() as session:
            return agent_from_row(await upsert_agent(session, agent))

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        async with self._session() as session:
            row = await get_conversation(session, conversation_id)
            return conversation_from_row(row) if row else None

    async def create_conversation(self, conversation: Conversation) -> Conversation:
        async with self._session() as session:
            return conversation_from_row(await create_conversation(session, conversation))

    async def create_message(self, message: Message) -> Message:
        async with self._session() as session:
            return message_from_row(await create_message(session, message))

    async def get_recent_messages(self, conversation_id: str, count: int) -> list[Message]:
        async with self._session() as session:
            rows = await get_recent_messages(session, conversation_id, count)
            return [message_from_row(row) for row in rows]

    async def get_memory(self, scope: MemoryScope, scope_id: str) -> dict[str, Any]:
        async with self._session() as session:
            row = await get_memory(session, scope, scope_id)
            if row is None:
                return default_memory(scope)
            return dict(row.data or {})

    async def update_memory(self, scope: MemoryScope, scope_id: str, data: dict[str, Any]) -> None:
        async with self._session() as session:
            await update_memory(session, scope, scope_id, data)

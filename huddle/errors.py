"""Error types and helpers for the team orchestrator."""

from __future__ import annotations

import re

import click


class HuddleError(Exception):
    """Base class for orchestrator errors."""


class AgentNotFoundError(HuddleError, LookupError):
    """Raised when no agent matches a requested id or role."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Agent not found: {key}")
        self.key = key


class CompletionGatewayError(HuddleError, RuntimeError):
    """Raised when the completion gateway fails to produce text."""


class RepositoryError(HuddleError, RuntimeError):
    """Raised when the storage backend rejects an operation."""


class OutputParseError(HuddleError, ValueError):
    """Raised when agent output cannot be parsed as structured data."""


class SchemaNotInitializedError(click.ClickException):
    """Raised when the database tables have not been created."""


_PG_MISSING_RELATION_RE = re.compile(r'relation "(?P<table>[^"]+)" does not exist', re.IGNORECASE)
_SQLITE_MISSING_TABLE_RE = re.compile(r"no such table:\s*(?P<table>[A-Za-z0-9_]+)", re.IGNORECASE)


def _unwrap_exception_chain(exc: BaseException) -> list[BaseException]:
    chain: list[BaseException] = []
    current: BaseException | None = exc
    while current is not None and current not in chain:
        chain.append(current)
        current = current.__cause__ or current.__context__
    return chain


def missing_table_name(exc: BaseException) -> str | None:
    """Best-effort extraction of the missing table name from a DB exception."""
    for e in _unwrap_exception_chain(exc):
        match = _PG_MISSING_RELATION_RE.search(str(e)) or _SQLITE_MISSING_TABLE_RE.search(str(e))
        if match:
            return match.group("table")
    return None


def is_schema_missing_error(exc: BaseException) -> bool:
    """Return True if the exception looks like a missing-table error."""
    if missing_table_name(exc):
        return True

    for e in _unwrap_exception_chain(exc):
        message = str(e).lower()
        if "undefinedtableerror" in message:
            return True
    return False


def schema_not_initialized_message(exc: BaseException) -> str:
    table = missing_table_name(exc)
    table_hint = f" (missing table `{table}`)" if table else ""
    return "\n".join(
        [
            f"Database schema is not initialized{table_hint}.",
            "Run: `huddle init-db`",
        ]
    )

"""Prompt assembly for collaborative replies and workflow rounds."""

from __future__ import annotations

import json
from typing import Any

from .entities import Agent, Message

MAX_TRANSCRIPT_CHARS = 400

RESPONSE_REQUIREMENTS = """RESPONSE REQUIREMENTS:
- Keep response concise and actionable
- Focus on your specific role and phase
- Reference the workspace context
- Provide clear next steps or deliverables"""


def _format_transcript(messages: list[Message], names: dict[str, str]) -> str:
    if not messages:
        return "(none)"
    lines: list[str] = []
    for m in messages:
        speaker = names.get(m.sender_id, m.sender_id)
        content = m.content
        if len(content) > MAX_TRANSCRIPT_CHARS:
            content = content[:MAX_TRANSCRIPT_CHARS] + "..."
        lines.append(f"  [{speaker}]: {content}")
    return "\n".join(lines)


def _format_memory(memory: dict[str, Any]) -> str:
    if not memory:
        return "(none)"
    return json.dumps(memory, indent=2, default=str)


def _format_capabilities(agent: Agent) -> str:
    return ", ".join(agent.capabilities) or "(general)"


def build_collaboration_prompt(
    agent: Agent,
    trigger: Message,
    history: list[Message],
    memory: dict[str, Any],
    names: dict[str, str],
    *,
    reason: str,
) -> str:
    """Prompt for an agent pulled into a free-form conversation."""
    context_block = f"""
=== CONVERSATION CONTEXT ===

YOU ARE: {agent.name} ({agent.role})
CAPABILITIES: {_format_capabilities(agent)}
WHY YOU WERE CALLED: {reason}

RECENT MESSAGES:
{_format_transcript(history, names)}

CONVERSATION MEMORY:
{_format_memory(memory)}

=== END CONTEXT ===

LATEST MESSAGE FROM {names.get(trigger.sender_id, trigger.sender_id)}:
{trigger.content}

Respond as {agent.name} ({agent.role}):"""
    return f"{agent.config.system_prompt}\n\n---\n{context_block}"


def build_workflow_prompt(
    agent: Agent,
    *,
    instruction: str,
    role_context: str,
    workspace: dict[str, Any],
    phase: str,
    round_number: int,
) -> str:
    """Prompt for the agent holding the active role in a structured round."""
    return f"""{agent.config.system_prompt}

CONTEXT:
{role_context}

CURRENT TASK ({phase} phase, round {round_number}):
{instruction}

WORKSPACE STATUS:
{json.dumps(workspace, indent=2, default=str)}

{RESPONSE_REQUIREMENTS}

Respond as {agent.name} ({agent.role}):"""

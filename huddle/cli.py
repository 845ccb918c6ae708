"""Operator CLI for the team orchestrator."""

import asyncio
import logging

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from . import db
from .completion import HttpCompletionGateway
from .config import settings
from .entities import Conversation, GenerationConfig, Message
from .events import EventBus, EventType, HuddleEvent, RedisPublishHandler
from .orchestrate import TeamOrchestrator
from .registry import AgentRegistry
from .roles import DEFAULT_ROLE_CONFIG

console = Console()

DEFAULT_TEAM = {
    "coordinator": "Alex",
    "designer": "Maya",
    "frontend-developer": "Sam",
    "backend-developer": "Jordan",
}


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


def _build_bus() -> EventBus:
    bus = EventBus()
    if settings.redis_publish_enabled:
        from .redis_client import get_redis_client

        bus.on_event(RedisPublishHandler(get_redis_client()))
    return bus


@click.group()
@click.version_option(version="0.1.0")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
def main(verbose: bool) -> None:
    """Multi-agent team conversation orchestrator.

    Route messages to a virtual team of AI agents and drive structured build workflows.
    """
    _configure_logging(verbose)


@main.command("init-db")
def init_db() -> None:
    """Create the database tables."""
    asyncio.run(db.init_db())
    console.print("[green]Database tables created[/green]")


@main.command()
@click.option("--provider", default="openai", help="Model provider for the default team")
def seed(provider: str) -> None:
    """Create the system/user records and a default four-person team."""

    async def run() -> None:
        registry = AgentRegistry(db.SqlRepository(), _build_bus())
        await registry.load()
        await registry.ensure_seed_agents()
        for role, name in DEFAULT_TEAM.items():
            if registry.find_by_role(role, active_only=False):
                console.print(f"[dim]{role} already staffed, skipping[/dim]")
                continue
            agent = await registry.add(
                name=name,
                role=role,
                agent_id=role,
                description=DEFAULT_ROLE_CONFIG[role]["description"],
                config=GenerationConfig(
                    provider=provider,
                    system_prompt=f"You are {name}, the team's {role}. "
                    f"{DEFAULT_ROLE_CONFIG[role]['description']}.",
                ),
            )
            console.print(f"[green]Created {agent.name} ({agent.role})[/green]")

    asyncio.run(run())


@main.command()
def agents() -> None:
    """List registered agents."""

    async def run() -> None:
        registry = AgentRegistry(db.SqlRepository(), EventBus())
        loaded = await registry.load()
        if not loaded:
            console.print("[yellow]No agents. Run `huddle seed`.[/yellow]")
            return

        table = Table(title="Agents")
        table.add_column("ID", style="cyan")
        table.add_column("Name")
        table.add_column("Role")
        table.add_column("Provider / Model")
        table.add_column("Active")
        for agent in loaded:
            table.add_row(
                agent.id,
                agent.name,
                agent.role,
                f"{agent.config.provider} / {agent.config.resolved_model}",
                "[green]yes[/green]" if agent.is_active else "[red]no[/red]",
            )
        console.print(table)

    asyncio.run(run())


@main.command()
@click.argument("conversation_id")
@click.argument("text")
@click.option("--sender", default="user", help="Sender id (defaults to the human user)")
def send(conversation_id: str, text: str, sender: str) -> None:
    """Send TEXT into CONVERSATION_ID and wait for the team to finish.

    CONVERSATION_ID: Conversation to post into (created if missing)
    """

    async def show_event(event: HuddleEvent) -> None:
        if event.type == EventType.NEW_MESSAGE:
            payload = event.payload
            console.print(
                Panel(payload["content"], title=payload["sender_id"], title_align="left")
            )

    async def run() -> None:
        repository = db.SqlRepository()
        bus = _build_bus()
        bus.on_event(show_event)
        gateway = HttpCompletionGateway()
        orchestrator = TeamOrchestrator(repository, bus, gateway)
        try:
            await orchestrator.start()
            if await repository.get_conversation(conversation_id) is None:
                participants = [a.id for a in orchestrator.registry.invocable()]
                await repository.create_conversation(
                    Conversation(
                        id=conversation_id, name=conversation_id, participants=participants
                    )
                )

            message = await repository.create_message(
                Message(conversation_id=conversation_id, sender_id=sender, content=text)
            )
            outcome = await orchestrator.process_message(message, conversation_id)
            await orchestrator.drain()
        finally:
            await orchestrator.aclose()
            await gateway.aclose()

        style = "green" if outcome.status == "completed" else "red"
        console.print(
            f"[{style}]{outcome.status}[/{style}] mode={outcome.mode or '-'}"
            + (f" error={outcome.error}" if outcome.error else "")
        )
        workflow = orchestrator.get_workflow_status(conversation_id)
        if workflow:
            console.print(
                f"Workflow: phase=[cyan]{workflow['phase']}[/cyan] "
                f"round {workflow['round']}/{workflow['max_rounds']}"
            )

    asyncio.run(run())


@main.command()
@click.argument("conversation_id")
@click.option("-n", "--count", default=10, help="Messages to show")
def status(conversation_id: str, count: int) -> None:
    """Show recent messages and the saved workspace of a conversation."""

    async def run() -> None:
        repository = db.SqlRepository()
        conversation = await repository.get_conversation(conversation_id)
        if conversation is None:
            console.print(f"[red]Conversation not found: {conversation_id}[/red]")
            return

        console.print(
            Panel(
                f"Type: {conversation.type.value}\n"
                f"Participants: {', '.join(conversation.participants) or '(all agents)'}",
                title=f"Conversation: {conversation.name or conversation.id}",
            )
        )

        table = Table(title="Recent messages")
        table.add_column("Time")
        table.add_column("Sender", style="cyan")
        table.add_column("Content")
        for message in await repository.get_recent_messages(conversation_id, count):
            content = message.content
            if len(content) > 120:
                content = content[:117] + "..."
            table.add_row(message.timestamp.strftime("%H:%M:%S"), message.sender_id, content)
        console.print(table)

        from .repository import MemoryScope

        memory = await repository.get_memory(MemoryScope.CONVERSATION, conversation_id)
        workflow = memory.get("workflow")
        if workflow:
            console.print(
                Panel(
                    f"Phase: [cyan]{workflow['phase']}[/cyan]\n"
                    f"Round: {workflow['round']}/{workflow['max_rounds']}\n"
                    f"Completed: {', '.join(workflow['completed_tasks']) or '(none)'}\n"
                    f"Pending: {', '.join(workflow['pending_tasks']) or '(none)'}\n"
                    f"Error: {workflow.get('error') or '-'}",
                    title="Workflow",
                )
            )

    asyncio.run(run())


if __name__ == "__main__":
    main()

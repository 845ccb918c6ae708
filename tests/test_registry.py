import pytest
from conftest import InMemoryRepository, RecordingPublisher, make_agent

from huddle.errors import AgentNotFoundError
from huddle.events import EventType
from huddle.registry import AgentRegistry
from huddle.roles import default_capabilities_for_role


@pytest.mark.asyncio
async def test_load_deduplicates_first_occurrence_wins() -> None:
    repository = InMemoryRepository(
        [
            make_agent("maya", "designer", "Maya"),
            make_agent("maya", "coordinator", "Impostor"),
            make_agent("sam", "frontend-developer", "Sam"),
        ]
    )
    registry = AgentRegistry(repository, RecordingPublisher())

    agents = await registry.load()

    assert [a.id for a in agents] == ["maya", "sam"]
    assert registry.get("maya").name == "Maya"


@pytest.mark.asyncio
async def test_lookup_helpers(repository, publisher) -> None:
    registry = AgentRegistry(repository, publisher)
    await registry.load()

    assert registry.find_by_role("frontend").id == "sam"
    assert registry.find_by_role("UI/UX Designer").id == "maya"
    assert registry.find_by_handle("alex").role == "coordinator"
    assert registry.find_by_handle("backend-developer").id == "jordan"
    assert registry.find_by_handle("nobody") is None
    assert registry.is_user_sender("user")
    assert registry.is_user_sender("user-agent")
    assert registry.is_user_sender("someone-new")
    assert not registry.is_user_sender("maya")


@pytest.mark.asyncio
async def test_add_assigns_role_capabilities_and_publishes(publisher) -> None:
    registry = AgentRegistry(InMemoryRepository(), publisher)

    agent = await registry.add(name="Dana Lee", role="ui/ux designer")

    assert agent.id == "dana-lee"
    assert agent.capabilities == default_capabilities_for_role("designer")
    assert "wireframing" in agent.capabilities
    assert publisher.of_type(EventType.AGENT_CREATED)[0]["id"] == "dana-lee"


@pytest.mark.asyncio
async def test_add_unknown_role_gets_generic_capabilities(publisher) -> None:
    registry = AgentRegistry(InMemoryRepository(), publisher)

    agent = await registry.add(name="Quinn", role="tester")

    assert agent.capabilities == ["general_assistance", "communication", "problem_solving"]


@pytest.mark.asyncio
async def test_update_and_remove(repository, publisher) -> None:
    registry = AgentRegistry(repository, publisher)
    await registry.load()

    updated = await registry.update("maya", name="Maya R.")
    assert updated.name == "Maya R."
    assert repository.agents[1].name == "Maya R."

    await registry.remove("maya")
    assert registry.get("maya") is None
    assert [a.id for a in repository.agents] == ["alex", "sam", "jordan"]
    assert publisher.of_type(EventType.AGENT_DELETED) == [{"id": "maya"}]


@pytest.mark.asyncio
async def test_unknown_ids_raise(repository, publisher) -> None:
    registry = AgentRegistry(repository, publisher)
    await registry.load()

    with pytest.raises(AgentNotFoundError):
        await registry.update("ghost", name="Boo")
    with pytest.raises(AgentNotFoundError):
        await registry.remove("ghost")
    with pytest.raises(ValueError):
        await registry.update("maya", colour="blue")


@pytest.mark.asyncio
async def test_repository_failure_propagates_and_cache_is_untouched(publisher) -> None:
    class FailingRepository(InMemoryRepository):
        async def create_agent(self, agent):
            raise RuntimeError("disk full")

    registry = AgentRegistry(FailingRepository(), publisher)

    with pytest.raises(RuntimeError):
        await registry.add(name="Zed", role="coordinator")
    assert registry.all() == []
    assert publisher.events == []


@pytest.mark.asyncio
async def test_seed_agents_are_idempotent(repository, publisher) -> None:
    registry = AgentRegistry(repository, publisher)

    await registry.ensure_seed_agents()
    await registry.ensure_seed_agents()

    seeds = [a for a in repository.agents if a.id in ("system-agent", "user-agent")]
    assert len(seeds) == 2
    assert registry.invocable(seeds) == []

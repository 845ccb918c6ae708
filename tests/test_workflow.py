import pytest
from conftest import (
    FakeClock,
    InMemoryRepository,
    RecordingPublisher,
    ScriptedGateway,
    gateway_error,
    make_agent,
    no_sleep,
)

from huddle.entities import Message
from huddle.events import EventType
from huddle.registry import AgentRegistry
from huddle.repository import MemoryScope
from huddle.state import OrchestratorState
from huddle.workflow.phases import PHASE_ORDER, Phase
from huddle.workflow.team_workflow import StructuredWorkflowEngine

HAPPY_PATH = {
    "Alex": "Kicking off. @designer please start the wireframes, @backend will follow.",
    "Maya": "Wireframe for home, product list and cart pages is done.",
    "Sam": 'Frontend implemented. ```json\n{"techStack": ["react", "vite"]}\n```',
    "Jordan": "The API is ready: GET /products, POST /orders.",
}


async def _engine(
    repository: InMemoryRepository,
    publisher: RecordingPublisher,
    gateway: ScriptedGateway,
    clock: FakeClock,
    **kwargs,
) -> tuple[StructuredWorkflowEngine, OrchestratorState]:
    state = OrchestratorState(clock)
    registry = AgentRegistry(repository, publisher)
    await registry.load()
    kwargs.setdefault("max_rounds", 8)
    engine = StructuredWorkflowEngine(
        state,
        registry,
        repository,
        publisher,
        gateway,
        round_delay=0,
        max_retries=3,
        sleep=no_sleep,
        **kwargs,
    )
    return engine, state


def _request(text: str) -> Message:
    return Message(conversation_id="c1", sender_id="user", content=text)


@pytest.mark.asyncio
async def test_full_run_reaches_complete(repository, publisher, clock) -> None:
    gateway = ScriptedGateway(HAPPY_PATH)
    engine, _ = await _engine(repository, publisher, gateway, clock)

    wf = await engine.run(_request("build an ecommerce platform with checkout"))

    assert wf.phase == Phase.COMPLETE
    assert wf.error is None
    assert wf.completed_tasks == [
        "coordinator:requirements",
        "designer:design",
        "frontend-developer:frontend",
        "backend-developer:backend",
        "coordinator:integration",
    ]
    assert wf.round == 5

    workspace = engine.get_workspace_status("c1")
    assert workspace["project"]["type"] == "ecommerce"
    assert workspace["project"]["name"] == "ecommerce Project"
    assert "payment processing" in workspace["project"]["requirements"]
    assert workspace["design"]["approved"] is True
    assert workspace["frontend"]["completed"] is True
    assert workspace["frontend"]["dependencies"] == ["react", "vite"]
    assert workspace["backend"]["completed"] is True
    assert len(workspace["decisions"]) == 5
    assert workspace["decisions"][0]["rationale"] == "coordinator in requirements phase"
    assert workspace["decisions"][0]["decision"].endswith("...")


@pytest.mark.asyncio
async def test_reply_metadata_and_streaming_events(repository, publisher, clock) -> None:
    gateway = ScriptedGateway(HAPPY_PATH)
    engine, _ = await _engine(repository, publisher, gateway, clock, max_rounds=1)

    await engine.run(_request("build a restaurant site"))

    (reply,) = repository.messages
    assert reply.sender_id == "alex"
    assert reply.metadata == {
        "model": "llama2",
        "provider": "ollama",
        "workflowPhase": "requirements",
        "workflowRound": 1,
    }
    streamed = publisher.of_type(EventType.AGENT_STREAMING)
    assert streamed
    assert streamed[-1]["content"].strip() == HAPPY_PATH["Alex"]


@pytest.mark.asyncio
async def test_phases_never_move_backwards(repository, publisher, clock) -> None:
    gateway = ScriptedGateway(HAPPY_PATH)
    engine, state = await _engine(repository, publisher, gateway, clock)

    await engine.run(_request("build a blog"))

    indexes = [PHASE_ORDER.index(p) for p in state.workflows["c1"].history]
    assert indexes == sorted(indexes)


@pytest.mark.asyncio
async def test_stops_after_max_rounds_when_phase_never_finishes(
    repository, publisher, clock
) -> None:
    gateway = ScriptedGateway(default="Still thinking about it.")
    engine, _ = await _engine(repository, publisher, gateway, clock, max_rounds=8)

    wf = await engine.run(_request("build a dashboard"))

    assert wf.round == 8
    assert wf.phase != Phase.COMPLETE
    assert wf.phase == Phase.DESIGN
    assert len(gateway.calls) == 8


@pytest.mark.asyncio
async def test_coordinator_delegations_become_pending_tasks(repository, publisher, clock) -> None:
    gateway = ScriptedGateway(HAPPY_PATH)
    engine, _ = await _engine(repository, publisher, gateway, clock, max_rounds=1)

    wf = await engine.run(_request("build a portfolio"))

    # designer is picked up by the transition, backend remains outstanding
    assert wf.pending_tasks == ["backend-developer"]
    assert wf.active_role == "designer"


@pytest.mark.asyncio
async def test_gateway_failures_retry_then_complete_with_error(
    repository, publisher, clock
) -> None:
    gateway = ScriptedGateway({"Alex": gateway_error()})
    engine, state = await _engine(repository, publisher, gateway, clock)

    wf = await engine.run(_request("build a shop"))

    assert wf.phase == Phase.COMPLETE
    assert wf.error == "Max retries exceeded"
    assert wf.retry_count == 3
    assert wf.round == 3
    # no synthetic message is published on failure
    assert repository.messages == []
    errors = [r.error for r in state.workspaces["c1"].rounds]
    assert errors == ["provider unavailable"] * 3


@pytest.mark.asyncio
async def test_missing_role_halts_run(publisher, clock) -> None:
    repository = InMemoryRepository([make_agent("alex", "coordinator", "Alex")])
    gateway = ScriptedGateway(HAPPY_PATH)
    engine, _ = await _engine(repository, publisher, gateway, clock)

    wf = await engine.run(_request("build a store"))

    assert wf.phase == Phase.COMPLETE
    assert wf.round == 1
    assert "designer" in (wf.error or "")


@pytest.mark.asyncio
async def test_workspace_is_persisted_to_conversation_memory(repository, publisher, clock) -> None:
    gateway = ScriptedGateway(HAPPY_PATH)
    engine, _ = await _engine(repository, publisher, gateway, clock, max_rounds=2)

    await engine.run(_request("build an online store"))

    memory = await repository.get_memory(MemoryScope.CONVERSATION, "c1")
    assert memory["workflow"]["phase"] == "frontend"
    assert memory["workspace"]["design"]["approved"] is True
    project = await repository.get_memory(MemoryScope.PROJECT, "c1")
    assert project["project"]["type"] == "ecommerce"


@pytest.mark.asyncio
async def test_rerun_resets_state(repository, publisher, clock) -> None:
    gateway = ScriptedGateway(HAPPY_PATH)
    engine, _ = await _engine(repository, publisher, gateway, clock)
    await engine.run(_request("build a blog"))

    engine.max_rounds = 1
    wf = await engine.run(_request("build a restaurant site"))

    assert wf.round == 1
    assert wf.phase == Phase.DESIGN
    assert engine.get_workspace_status("c1")["project"]["type"] == "restaurant"

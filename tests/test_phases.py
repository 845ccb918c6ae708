import pytest

from huddle.workflow.base import (
    RoundLoop,
    RoundResult,
    RoundStatus,
    RoundStep,
    StopReason,
    WorkflowContext,
)
from huddle.workflow.phases import (
    ConversationWorkflowState,
    Phase,
    criterion_met,
    instruction_for,
    next_transition,
)
from huddle.workflow.workspace import Workspace, apply_role_output


def test_transition_table() -> None:
    assert next_transition("requirements", "coordinator") == (Phase.DESIGN, "designer")
    assert next_transition(Phase.BACKEND, "coordinator") == (
        Phase.INTEGRATION,
        "frontend-developer",
    )
    assert next_transition("integration", "frontend") == (Phase.COMPLETE, "coordinator")


def test_unmatched_pair_completes() -> None:
    assert next_transition("requirements", "designer") == (Phase.COMPLETE, "coordinator")


def test_instruction_lookup_and_default() -> None:
    assert "Delegate specific tasks" in instruction_for("coordinator", "requirements")
    assert instruction_for("designer", "backend") == (
        "Continue working on backend phase. Keep response brief and actionable."
    )


def test_criteria_follow_workspace_flags() -> None:
    workspace = Workspace()
    assert not criterion_met("design", workspace)
    apply_role_output(
        workspace, role="designer", phase="design", agent_id="maya", text="Wireframes attached"
    )
    assert criterion_met("design", workspace)
    assert criterion_met("integration", workspace)


def test_backend_needs_api_and_ready() -> None:
    workspace = Workspace()
    apply_role_output(
        workspace, role="backend-developer", phase="backend", agent_id="j", text="api is ready"
    )
    assert not workspace.backend.completed
    apply_role_output(
        workspace, role="backend-developer", phase="backend", agent_id="j", text="API is Ready"
    )
    assert workspace.backend.completed


def test_state_advance_records_completed_task() -> None:
    wf = ConversationWorkflowState(conversation_id="c1")
    wf.retry_count = 2

    wf.advance(Phase.DESIGN, "designer")

    assert wf.completed_tasks == ["coordinator:requirements"]
    assert wf.retry_count == 0
    assert wf.history == [Phase.REQUIREMENTS, Phase.DESIGN]
    with pytest.raises(ValueError):
        wf.advance(Phase.REQUIREMENTS, "coordinator")


class FlakyStep(RoundStep):
    name = "flaky"

    def __init__(self, halt_after: int | None = None) -> None:
        self.halt_after = halt_after

    async def execute(self, ctx: WorkflowContext) -> RoundResult:
        wf = ctx.workflow
        wf.round += 1
        if self.halt_after is not None and wf.round >= self.halt_after:
            wf.complete(error="stop")
            return RoundResult(RoundStatus.HALTED, wf.round, wf.phase.value, error="stop")
        return RoundResult(RoundStatus.FAILED, wf.round, wf.phase.value, error="boom")


@pytest.mark.asyncio
async def test_round_loop_stops_at_round_budget() -> None:
    wf = ConversationWorkflowState(conversation_id="c1", max_rounds=4)
    ctx = WorkflowContext(conversation_id="c1", workflow=wf, workspace=Workspace())

    summary = await RoundLoop("test", FlakyStep()).run(ctx)

    assert summary.stop_reason == StopReason.MAX_ROUNDS
    assert summary.to_dict() == {"stop_reason": "max_rounds", "rounds": 4, "failures": 4}


@pytest.mark.asyncio
async def test_round_loop_stops_when_workflow_completes() -> None:
    wf = ConversationWorkflowState(conversation_id="c1", max_rounds=8)
    ctx = WorkflowContext(conversation_id="c1", workflow=wf, workspace=Workspace())

    summary = await RoundLoop("test", FlakyStep(halt_after=2)).run(ctx)

    assert summary.stop_reason == StopReason.COMPLETE
    assert [r.status for r in summary.rounds] == [RoundStatus.FAILED, RoundStatus.HALTED]
    assert not summary.rounds[-1].ok

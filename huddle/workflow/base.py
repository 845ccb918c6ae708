"""
Round-based workflow primitives for structured team runs.

A run is a sequence of rounds. Each round is executed by a ``RoundStep`` that
reads and mutates the ``WorkflowContext``; ``RoundLoop`` keeps calling it until
the workflow state reports completion or the round budget is spent.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Optional

from ..entities import Message
from .phases import ConversationWorkflowState
from .workspace import Workspace


class RoundStatus(StrEnum):
    ADVANCED = "advanced"
    REPEAT = "repeat"
    FAILED = "failed"
    HALTED = "halted"


class StopReason(StrEnum):
    COMPLETE = "complete"
    MAX_ROUNDS = "max_rounds"


@dataclass
class WorkflowContext:
    """Everything a round needs for one conversation's run."""

    conversation_id: str
    workflow: ConversationWorkflowState
    workspace: Workspace
    trigger: Optional[Message] = None


@dataclass
class RoundResult:
    status: RoundStatus
    round: int
    phase: str
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in (RoundStatus.ADVANCED, RoundStatus.REPEAT)


@dataclass
class RunSummary:
    stop_reason: StopReason
    rounds: list[RoundResult] = field(default_factory=list)

    @property
    def failures(self) -> int:
        return sum(1 for r in self.rounds if r.status == RoundStatus.FAILED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "stop_reason": self.stop_reason.value,
            "rounds": len(self.rounds),
            "failures": self.failures,
        }


class RoundStep(ABC):
    """One unit of work executed per round."""

    name: str

    @abstractmethod
    async def execute(self, ctx: WorkflowContext) -> RoundResult:
        pass

    async def on_error(self, ctx: WorkflowContext, error: Exception) -> None:
        del ctx
        del error


class RoundLoop:
    """Runs a step until the workflow completes or its round budget is spent."""

    def __init__(self, name: str, step: RoundStep):
        self.name = name
        self.step = step

    async def run(self, ctx: WorkflowContext) -> RunSummary:
        wf = ctx.workflow
        results: list[RoundResult] = []
        while not wf.is_complete and wf.round < wf.max_rounds:
            try:
                result = await self.step.execute(ctx)
            except Exception as exc:
                await self.step.on_error(ctx, exc)
                raise
            results.append(result)

        reason = StopReason.COMPLETE if wf.is_complete else StopReason.MAX_ROUNDS
        return RunSummary(stop_reason=reason, rounds=results)

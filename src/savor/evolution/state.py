"""
Evolution cycle state - One pass of the draft, edit, analyze, commit loop.

A cycle is a small mutable record the pipeline moves through its states.
Everything durable lives in the stores; the cycle only remembers which
rows it produced and where it is, so a failed step can be retried
without redoing the ones before it.
"""

from dataclasses import dataclass, field
from enum import Enum

from ..diff import DiffChunk
from ..errors import SavorError, ValidationError

__all__ = [
    "CycleCancelledError",
    "CycleState",
    "EvolutionCycle",
    "InvalidTransitionError",
]


class CycleState(Enum):
    """Where a cycle is in the loop."""

    IDLE = "idle"
    DRAFT_REQUESTED = "draft_requested"        # Waiting on the capability
    DRAFT_READY = "draft_ready"                # Article persisted
    AWAITING_EDIT = "awaiting_edit"            # Human refinement saved
    DIFFING = "diffing"                        # Chunks computed
    ANALYSIS_REQUESTED = "analysis_requested"  # Waiting on the capability
    ANALYSIS_READY = "analysis_ready"          # DiffRecord persisted
    COMMITTED = "committed"                    # New version appended
    FAILED = "failed"                          # A capability call failed


_TRANSITIONS: dict[CycleState, frozenset[CycleState]] = {
    CycleState.IDLE: frozenset({CycleState.DRAFT_REQUESTED}),
    CycleState.DRAFT_REQUESTED: frozenset({CycleState.DRAFT_READY, CycleState.FAILED}),
    CycleState.DRAFT_READY: frozenset({CycleState.AWAITING_EDIT}),
    CycleState.AWAITING_EDIT: frozenset({CycleState.AWAITING_EDIT, CycleState.DIFFING}),
    CycleState.DIFFING: frozenset({
        CycleState.DIFFING,
        CycleState.AWAITING_EDIT,
        CycleState.ANALYSIS_REQUESTED,
    }),
    CycleState.ANALYSIS_REQUESTED: frozenset({CycleState.ANALYSIS_READY, CycleState.FAILED}),
    CycleState.ANALYSIS_READY: frozenset({CycleState.COMMITTED, CycleState.AWAITING_EDIT}),
    CycleState.COMMITTED: frozenset(),
    # FAILED only goes back to the step that failed, see EvolutionCycle.advance
    CycleState.FAILED: frozenset({CycleState.DRAFT_REQUESTED, CycleState.ANALYSIS_REQUESTED}),
}


class InvalidTransitionError(ValidationError):
    """The requested step is not allowed from the cycle's current state."""

    def __init__(self, current: CycleState, target: CycleState):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move cycle from {current.value} to {target.value}")


class CycleCancelledError(SavorError):
    """The caller abandoned a capability call; its result was discarded."""


@dataclass
class EvolutionCycle:
    """Mutable state of one evolution cycle.

    Attributes:
        skill_id: Skill the draft is written under.
        state: Current state.
        article_id: Article produced by the draft step.
        version_used: Skill version read before the draft call.
        chunks: Last diff computed between draft and edit.
        diff_record_id: DiffRecord produced by the analysis step.
        committed_version: Version number appended by commit.
        failed_step: Which capability step failed, if the cycle is FAILED.
        error: Message of the last failure.
    """

    skill_id: int | None = None
    state: CycleState = CycleState.IDLE
    article_id: int | None = None
    version_used: int | None = None
    chunks: list[DiffChunk] = field(default_factory=list)
    diff_record_id: int | None = None
    committed_version: int | None = None
    failed_step: CycleState | None = None
    error: str | None = None

    def can_advance(self, target: CycleState) -> bool:
        if target not in _TRANSITIONS[self.state]:
            return False
        if self.state is CycleState.FAILED:
            return target is self.failed_step
        return True

    def advance(self, target: CycleState) -> CycleState:
        """Move to ``target`` and return the state left behind.

        Raises:
            InvalidTransitionError: If the move is not allowed.
        """
        if not self.can_advance(target):
            raise InvalidTransitionError(self.state, target)
        previous = self.state
        self.state = target
        if target is not CycleState.FAILED:
            self.failed_step = None
            self.error = None
        return previous

    def fail(self, error: str) -> None:
        """Record a failure of the capability step in progress."""
        step = self.state
        self.advance(CycleState.FAILED)
        self.failed_step = step
        self.error = error

    def snapshot(self) -> tuple[CycleState, CycleState | None, str | None]:
        return self.state, self.failed_step, self.error

    def restore(self, snapshot: tuple[CycleState, CycleState | None, str | None]) -> None:
        """Return to a snapshot taken before a cancelled step. No transition check."""
        self.state, self.failed_step, self.error = snapshot

    @property
    def is_finished(self) -> bool:
        return self.state is CycleState.COMMITTED

    def __repr__(self) -> str:
        return (
            f"<EvolutionCycle(skill={self.skill_id}, state={self.state.value}, "
            f"article={self.article_id}, record={self.diff_record_id})>"
        )

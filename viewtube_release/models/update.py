"""Update-run state machine models — deterministic transitions."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class UpdateState(str, Enum):
    """States of a single update run on one host."""

    IDLE = "idle"
    CHECKING = "checking"
    DOWNLOADING = "downloading"
    VERIFYING = "verifying"
    UNPACKING = "unpacking"
    BUILDING = "building"
    INSTALLING = "installing"
    RESTARTING = "restarting"
    DONE = "done"
    FAILED = "failed"


# Valid state transitions, enforced by UpdateMachine.
# Any non-terminal state may also move to FAILED.
# Terminal states (DONE, FAILED) have no outgoing transitions.
VALID_TRANSITIONS: dict[UpdateState, set[UpdateState]] = {
    UpdateState.IDLE: {UpdateState.CHECKING, UpdateState.VERIFYING},  # verifying: offline apply
    UpdateState.CHECKING: {UpdateState.DOWNLOADING, UpdateState.DONE},  # done: already latest
    UpdateState.DOWNLOADING: {UpdateState.VERIFYING},
    UpdateState.VERIFYING: {UpdateState.UNPACKING},
    UpdateState.UNPACKING: {UpdateState.BUILDING},
    UpdateState.BUILDING: {UpdateState.INSTALLING},
    UpdateState.INSTALLING: {UpdateState.RESTARTING},
    UpdateState.RESTARTING: {UpdateState.DONE},
    UpdateState.DONE: set(),
    UpdateState.FAILED: set(),
}

TERMINAL_STATES: frozenset[UpdateState] = frozenset(
    {UpdateState.DONE, UpdateState.FAILED}
)


class UpdateTransition(BaseModel):
    """Records a single state transition for the run history."""

    model_config = ConfigDict(frozen=True)

    from_state: UpdateState
    to_state: UpdateState
    reason: str = ""
    at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class UpdateResult(BaseModel):
    """Outcome of one update run.

    ``state`` is DONE or FAILED, or IDLE when ``lock_held``.  On failure
    ``failed_stage`` names the state the run was in and ``reason`` carries
    the error message.
    ``lock_held`` marks a run that never left IDLE because another run
    owns the host.
    """

    model_config = ConfigDict(frozen=True)

    state: UpdateState
    previous_version: str = ""
    target_version: str = ""
    failed_stage: UpdateState | None = None
    reason: str = ""
    error_type: str = ""
    lock_held: bool = False
    transitions: list[UpdateTransition] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state == UpdateState.DONE

    @property
    def updated(self) -> bool:
        """True when a new version was installed (not a no-op)."""
        return self.succeeded and any(
            t.to_state == UpdateState.INSTALLING for t in self.transitions
        )

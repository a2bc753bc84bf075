"""Deterministic update-run state machine.

Enforces:
- Valid state transitions only (VALID_TRANSITIONS table)
- FAILED reachable from every non-terminal state
- No transition out of DONE or FAILED
- Every transition recorded in the run history and logged
"""

from __future__ import annotations

import logging

from viewtube_release.core.errors import InvalidTransitionError
from viewtube_release.models.update import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    UpdateState,
    UpdateTransition,
)

logger = logging.getLogger(__name__)


class UpdateMachine:
    """Tracks one update run from IDLE to DONE or FAILED."""

    def __init__(self) -> None:
        self._state = UpdateState.IDLE
        self._history: list[UpdateTransition] = []
        self._failed_stage: UpdateState | None = None

    # ------------------------------------------------------------------
    # State queries
    # ------------------------------------------------------------------

    @property
    def state(self) -> UpdateState:
        return self._state

    @property
    def history(self) -> list[UpdateTransition]:
        return list(self._history)

    @property
    def failed_stage(self) -> UpdateState | None:
        """The state the run was in when it failed, if it failed."""
        return self._failed_stage

    @property
    def is_terminal(self) -> bool:
        return self._state in TERMINAL_STATES

    def get_available_transitions(self) -> set[UpdateState]:
        allowed = set(VALID_TRANSITIONS.get(self._state, set()))
        if not self.is_terminal:
            allowed.add(UpdateState.FAILED)
        return allowed

    # ------------------------------------------------------------------
    # Transition logic
    # ------------------------------------------------------------------

    def transition(self, target: UpdateState, reason: str = "") -> UpdateTransition:
        """Move to *target*, raising ``InvalidTransitionError`` if not allowed."""
        allowed = self.get_available_transitions()
        if target not in allowed:
            raise InvalidTransitionError(
                f"Cannot transition update from {self._state.value} to {target.value}. "
                f"Allowed: {sorted(s.value for s in allowed)}"
            )
        record = UpdateTransition(
            from_state=self._state, to_state=target, reason=reason
        )
        self._history.append(record)
        if target == UpdateState.FAILED:
            self._failed_stage = self._state
            logger.error("Update failed during %s: %s", self._state.value, reason)
        else:
            logger.info(
                "Update %s -> %s%s",
                self._state.value,
                target.value,
                f" ({reason})" if reason else "",
            )
        self._state = target
        return record

    def fail(self, reason: str) -> UpdateTransition:
        return self.transition(UpdateState.FAILED, reason)

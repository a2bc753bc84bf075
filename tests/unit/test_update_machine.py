"""Tests for the update-run state machine."""

from __future__ import annotations

import pytest

from viewtube_release.core.errors import InvalidTransitionError
from viewtube_release.core.update_machine import UpdateMachine
from viewtube_release.models.update import VALID_TRANSITIONS, UpdateState

HAPPY_PATH = [
    UpdateState.CHECKING,
    UpdateState.DOWNLOADING,
    UpdateState.VERIFYING,
    UpdateState.UNPACKING,
    UpdateState.BUILDING,
    UpdateState.INSTALLING,
    UpdateState.RESTARTING,
    UpdateState.DONE,
]


class TestUpdateMachine:
    def test_starts_idle(self):
        machine = UpdateMachine()
        assert machine.state == UpdateState.IDLE
        assert machine.history == []
        assert not machine.is_terminal

    def test_happy_path(self):
        machine = UpdateMachine()
        for state in HAPPY_PATH:
            machine.transition(state)
        assert machine.state == UpdateState.DONE
        assert machine.is_terminal
        assert [t.to_state for t in machine.history] == HAPPY_PATH
        assert machine.failed_stage is None

    def test_already_latest_shortcut(self):
        machine = UpdateMachine()
        machine.transition(UpdateState.CHECKING)
        machine.transition(UpdateState.DONE, "already latest")
        assert machine.history[-1].reason == "already latest"
        assert [t.to_state for t in machine.history] == [UpdateState.CHECKING, UpdateState.DONE]

    def test_offline_entry_at_verifying(self):
        machine = UpdateMachine()
        machine.transition(UpdateState.VERIFYING)
        assert machine.state == UpdateState.VERIFYING

    def test_cannot_skip_verification(self):
        machine = UpdateMachine()
        machine.transition(UpdateState.CHECKING)
        machine.transition(UpdateState.DOWNLOADING)
        with pytest.raises(InvalidTransitionError):
            machine.transition(UpdateState.INSTALLING)

    def test_cannot_restart_before_install(self):
        machine = UpdateMachine()
        for state in HAPPY_PATH[:5]:
            machine.transition(state)
        with pytest.raises(InvalidTransitionError):
            machine.transition(UpdateState.RESTARTING)

    @pytest.mark.parametrize("stop", range(len(HAPPY_PATH) - 1))
    def test_fail_from_any_non_terminal_state(self, stop: int):
        machine = UpdateMachine()
        for state in HAPPY_PATH[: stop + 1]:
            machine.transition(state)
        reached = machine.state
        machine.fail("boom")
        assert machine.state == UpdateState.FAILED
        assert machine.failed_stage == reached

    @pytest.mark.parametrize("terminal", [UpdateState.DONE, UpdateState.FAILED])
    def test_terminal_states_are_final(self, terminal: UpdateState):
        machine = UpdateMachine()
        machine.transition(UpdateState.CHECKING)
        machine.transition(terminal)
        assert machine.get_available_transitions() == set()
        with pytest.raises(InvalidTransitionError):
            machine.fail("again")

    def test_available_transitions_include_failed(self):
        machine = UpdateMachine()
        assert machine.get_available_transitions() == (
            VALID_TRANSITIONS[UpdateState.IDLE] | {UpdateState.FAILED}
        )

"""
Tests for the suite phase machine.
"""

import threading

import pytest

from e2einfra.exceptions import PhaseError
from e2einfra.suite import SuitePhase
from e2einfra.suite.phases import TRANSITIONS, PhaseMachine

HAPPY_PATH = [
    SuitePhase.LEADER_SETUP_RUNNING,
    SuitePhase.STATE_DISTRIBUTED,
    SuitePhase.WORKERS_RUNNING,
    SuitePhase.ALL_WORKERS_DONE,
    SuitePhase.TEARDOWN_RUNNING,
    SuitePhase.COMPLETE,
]


@pytest.mark.unit
class TestPhaseMachine:
    def test_starts_idle(self):
        assert PhaseMachine().phase is SuitePhase.IDLE

    def test_happy_path(self):
        machine = PhaseMachine()
        for phase in HAPPY_PATH:
            machine.transition(phase)
        assert machine.phase is SuitePhase.COMPLETE

    def test_failed_setup_shortcut(self):
        machine = PhaseMachine()
        machine.transition(SuitePhase.LEADER_SETUP_RUNNING)
        assert machine.transition(SuitePhase.COMPLETE) is SuitePhase.LEADER_SETUP_RUNNING

    @pytest.mark.parametrize(
        "target",
        [SuitePhase.WORKERS_RUNNING, SuitePhase.TEARDOWN_RUNNING, SuitePhase.IDLE],
    )
    def test_illegal_transition(self, target):
        machine = PhaseMachine()
        machine.transition(SuitePhase.LEADER_SETUP_RUNNING)
        with pytest.raises(PhaseError, match="illegal suite phase transition"):
            machine.transition(target)
        assert machine.phase is SuitePhase.LEADER_SETUP_RUNNING

    def test_complete_is_final(self):
        assert TRANSITIONS[SuitePhase.COMPLETE] == frozenset()

    def test_never_moves_backwards(self):
        order = list(SuitePhase)
        for source, targets in TRANSITIONS.items():
            assert all(order.index(t) > order.index(source) for t in targets)

    def test_require(self):
        machine = PhaseMachine()
        machine.require(SuitePhase.IDLE, operation="x")
        with pytest.raises(PhaseError, match="teardown not allowed") as exc_info:
            machine.require(SuitePhase.ALL_WORKERS_DONE, operation="teardown")
        assert exc_info.value.context["phase"] == "idle"

    def test_wait_for_times_out(self):
        assert PhaseMachine().wait_for(SuitePhase.ALL_WORKERS_DONE, timeout=0.01) is False

    def test_wait_for_later_phase_counts(self):
        machine = PhaseMachine()
        for phase in HAPPY_PATH:
            machine.transition(phase)
        assert machine.wait_for(SuitePhase.ALL_WORKERS_DONE, timeout=0)

    def test_wait_for_wakes_on_transition(self):
        machine = PhaseMachine()
        woke = []
        waiter = threading.Thread(
            target=lambda: woke.append(machine.wait_for(SuitePhase.STATE_DISTRIBUTED, 5))
        )
        waiter.start()
        machine.transition(SuitePhase.LEADER_SETUP_RUNNING)
        machine.transition(SuitePhase.STATE_DISTRIBUTED)
        waiter.join(5)
        assert woke == [True]

"""
Suite lifecycle phases and their legal transitions.

    IDLE -> LEADER_SETUP_RUNNING -> STATE_DISTRIBUTED -> WORKERS_RUNNING
         -> ALL_WORKERS_DONE -> TEARDOWN_RUNNING -> COMPLETE

A failed global setup goes straight from LEADER_SETUP_RUNNING to COMPLETE.
"""

import enum
import threading
from typing import Any

from ..exceptions import PhaseError


class SuitePhase(enum.Enum):
    IDLE = "idle"
    LEADER_SETUP_RUNNING = "leader_setup_running"
    STATE_DISTRIBUTED = "state_distributed"
    WORKERS_RUNNING = "workers_running"
    ALL_WORKERS_DONE = "all_workers_done"
    TEARDOWN_RUNNING = "teardown_running"
    COMPLETE = "complete"


TRANSITIONS: dict[SuitePhase, frozenset[SuitePhase]] = {
    SuitePhase.IDLE: frozenset({SuitePhase.LEADER_SETUP_RUNNING}),
    SuitePhase.LEADER_SETUP_RUNNING: frozenset(
        {SuitePhase.STATE_DISTRIBUTED, SuitePhase.COMPLETE}
    ),
    SuitePhase.STATE_DISTRIBUTED: frozenset({SuitePhase.WORKERS_RUNNING}),
    SuitePhase.WORKERS_RUNNING: frozenset({SuitePhase.ALL_WORKERS_DONE}),
    SuitePhase.ALL_WORKERS_DONE: frozenset({SuitePhase.TEARDOWN_RUNNING}),
    SuitePhase.TEARDOWN_RUNNING: frozenset({SuitePhase.COMPLETE}),
    SuitePhase.COMPLETE: frozenset(),
}


class PhaseMachine:
    """
    Thread-safe holder of the current suite phase.

    Waiters can block until a phase is reached (used as the worker barrier).
    """

    def __init__(self, lg: Any = None) -> None:
        self._phase = SuitePhase.IDLE
        self._cond = threading.Condition()
        self._lg = lg

    @property
    def phase(self) -> SuitePhase:
        with self._cond:
            return self._phase

    def transition(self, target: SuitePhase) -> SuitePhase:
        """
        Move to ``target``.

        Raises:
            PhaseError: If the transition is not allowed from the current phase
        """
        with self._cond:
            current = self._phase
            if target not in TRANSITIONS[current]:
                raise PhaseError(
                    "illegal suite phase transition",
                    current=current.value,
                    target=target.value,
                )
            self._phase = target
            self._cond.notify_all()

        if self._lg is not None:
            self._lg.debug(
                "suite phase", extra={"from": current.value, "to": target.value}
            )
        return current

    def require(self, *phases: SuitePhase, operation: str) -> None:
        """
        Raises:
            PhaseError: If the current phase is not one of ``phases``
        """
        with self._cond:
            if self._phase not in phases:
                raise PhaseError(
                    f"{operation} not allowed in this phase",
                    phase=self._phase.value,
                    allowed=",".join(p.value for p in phases),
                )

    def wait_for(self, phase: SuitePhase, timeout: float | None = None) -> bool:
        """Block until ``phase`` (or a later one) is reached; False on timeout."""
        order = list(SuitePhase)
        with self._cond:
            return self._cond.wait_for(
                lambda: order.index(self._phase) >= order.index(phase), timeout
            )

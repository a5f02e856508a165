"""Distributed suite lifecycle: coordinator, phases, workers and reporting."""

from .coordinator import Deployer, SetupContext, SuiteCoordinator, new_run_id
from .phases import PhaseMachine, SuitePhase
from .pool import PoolResult, WorkerPool, partition
from .report import (
    OutcomeStatus,
    RunReport,
    TeardownIssue,
    TeardownReport,
    TestOutcome,
)
from .worker import CaseContext, TestCase, WorkerSession, run_cases

__all__ = [
    "SuiteCoordinator",
    "SetupContext",
    "Deployer",
    "new_run_id",
    "SuitePhase",
    "PhaseMachine",
    "WorkerPool",
    "PoolResult",
    "partition",
    "WorkerSession",
    "CaseContext",
    "TestCase",
    "run_cases",
    "OutcomeStatus",
    "TestOutcome",
    "TeardownIssue",
    "TeardownReport",
    "RunReport",
]

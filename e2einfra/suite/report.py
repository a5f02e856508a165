"""
Run results: per-test outcomes, teardown issues and the run summary.

A run passes when global setup succeeded and no test failed. Teardown
issues (leaked or undeletable resources) are reported separately and never
change that verdict.
"""

from __future__ import annotations

import enum
import os
import sys
import time
from dataclasses import dataclass, field
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..exceptions import TeardownFailure
from ..time import delta_str


class OutcomeStatus(enum.Enum):
    PASSED = "passed"
    FAILED = "failed"
    ERROR = "error"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class TestOutcome:
    """
    Result of one test case.

    Attributes:
        name: Test case name
        worker_id: Worker that ran the case
        status: Outcome
        correlation_id: Correlation id every request of the case carried
        duration: Wall time in seconds
        message: Failure message (None when passed)
        resources: Descriptions of resources the case had created on failure
        diagnostics: "<hook>:<status>" for every failure hook invoked
    """

    __test__ = False

    name: str
    worker_id: str
    status: OutcomeStatus
    correlation_id: str | None = None
    duration: float = 0.0
    message: str | None = None
    resources: tuple[str, ...] = ()
    diagnostics: tuple[str, ...] = ()

    @property
    def failed(self) -> bool:
        return self.status in (OutcomeStatus.FAILED, OutcomeStatus.ERROR)


@dataclass(frozen=True)
class TeardownIssue:
    """
    A teardown step that did not succeed.

    Attributes:
        step: Teardown step ("shared_resources", "leak_sweep", "deployer")
        message: What went wrong
        resource: Resource involved, if any
        leaked: The resource was left over by a test rather than suite-shared
        correlation_id: Correlation id of the request that failed, if known
    """

    step: str
    message: str
    resource: str | None = None
    leaked: bool = False
    correlation_id: str | None = None

    def __str__(self) -> str:
        parts = [f"[{self.step}] {self.message}"]
        if self.resource:
            parts.append(f"resource={self.resource}")
        if self.correlation_id:
            parts.append(f"correlation_id={self.correlation_id}")
        return " ".join(parts)


@dataclass
class TeardownReport:
    """Everything global teardown did and failed to do."""

    deleted: list[str] = field(default_factory=list)
    leaked: list[str] = field(default_factory=list)
    issues: list[TeardownIssue] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues

    def add(self, issue: TeardownIssue) -> None:
        self.issues.append(issue)

    def raise_for_issues(self) -> None:
        """
        Raises:
            TeardownFailure: If any teardown step left an issue behind
        """
        if self.issues:
            raise TeardownFailure(
                f"global teardown left {len(self.issues)} issue(s)", list(self.issues)
            )


@dataclass
class RunReport:
    """Summary of a whole distributed run."""

    run_id: str | None
    outcomes: list[TestOutcome] = field(default_factory=list)
    setup_error: str | None = None
    teardown: TeardownReport | None = None
    crashed_workers: list[str] = field(default_factory=list)
    started_at: float = field(default_factory=time.time)
    finished_at: float | None = None

    @property
    def passed(self) -> bool:
        """True when setup succeeded and no test failed."""
        if self.setup_error is not None:
            return False
        return not any(o.failed for o in self.outcomes)

    @property
    def failures(self) -> list[TestOutcome]:
        return [o for o in self.outcomes if o.failed]

    def counts(self) -> dict[str, int]:
        counts = {s.value: 0 for s in OutcomeStatus}
        for outcome in self.outcomes:
            counts[outcome.status.value] += 1
        return counts

    @property
    def duration(self) -> float:
        end = self.finished_at if self.finished_at is not None else time.time()
        return end - self.started_at

    def render(self, file: Any = None) -> None:
        """Print the report as tables."""
        out = file or sys.stdout
        console = Console(
            file=out,
            no_color=bool(os.environ.get("NO_COLOR")),
            force_terminal=bool(os.environ.get("FORCE_COLOR")) or None,
        )
        console.print(self._outcome_table())
        if self.teardown is not None and self.teardown.issues:
            console.print(_teardown_table(self.teardown))

        verdict = "[green]PASSED[/green]" if self.passed else "[red bold]FAILED[/red bold]"
        counts = ", ".join(f"{v} {k}" for k, v in self.counts().items() if v)
        console.print(
            f"run {self.run_id or '-'}: {verdict} ({counts or 'no tests'}) "
            f"in {delta_str(self.duration)}"
        )
        if self.setup_error:
            console.print(f"[red]setup failed:[/red] {escape(self.setup_error)}")
        if self.crashed_workers:
            console.print(
                f"[yellow]crashed workers:[/yellow] {', '.join(self.crashed_workers)}"
            )

    def _outcome_table(self) -> Table:
        table = Table(title="Results")
        table.add_column("Test")
        table.add_column("Worker")
        table.add_column("Status")
        table.add_column("Duration", justify="right")
        table.add_column("Correlation ID")
        table.add_column("Details")

        styles = {
            OutcomeStatus.PASSED: "green",
            OutcomeStatus.FAILED: "red",
            OutcomeStatus.ERROR: "red bold",
            OutcomeStatus.SKIPPED: "dim",
        }
        for o in sorted(self.outcomes, key=lambda o: o.name):
            details = o.message or ""
            if o.diagnostics:
                details += f" (diagnostics: {', '.join(o.diagnostics)})"
            table.add_row(
                escape(o.name),
                o.worker_id,
                f"[{styles[o.status]}]{o.status.value}[/{styles[o.status]}]",
                delta_str(o.duration),
                o.correlation_id or "",
                escape(details),
            )
        return table


def _teardown_table(teardown: TeardownReport) -> Table:
    table = Table(title="Teardown")
    table.add_column("Step")
    table.add_column("Resource")
    table.add_column("Issue")
    for issue in teardown.issues:
        table.add_row(issue.step, escape(issue.resource or ""), escape(issue.message))
    return table

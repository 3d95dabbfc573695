"""
Root conftest.py — Shared Pytest fixtures.

Provides:
- FakeTestRailClient: in-memory stand-in for the TestRail API client that
  records every remote call.
- Log capture for loguru messages.
- Sample outcome sets.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Any, Dict, Generator, List, Optional, Tuple

import pytest
from loguru import logger

from testrail_reporter.testrail_client.api_client import TestRailClientError
from testrail_reporter.testrail_client.models import (
    FAILED,
    PASSED,
    SKIPPED,
    Outcome,
    PlanEntry,
    Plan,
    Project,
    Result,
    ResultSubmission,
    Run,
    Suite,
    Test,
)


# ---------------------------------------------------------------------------
# Fake TestRail client
# ---------------------------------------------------------------------------


class FakeTestRailClient:
    """
    In-memory TestRail client.

    Entities are plain lists that tests fill in. Every call is appended to
    ``calls`` as (method_name, args); ``fail_on`` maps a method name to the
    exception it should raise.
    """

    def __init__(self) -> None:
        self.projects: List[Project] = [
            Project(id=1, name="Website QA"),
            Project(id=42, name="Mobile QA"),
        ]
        self.plans: List[Plan] = [Plan(id=7, name="Release 1.0")]
        self.suites: List[Suite] = [Suite(id=3, name="Regression")]
        self.runs: List[Run] = []
        self.tests: List[Test] = []
        self.results: Optional[List[Result]] = None
        self.next_run = Run(id=100, name="new run", created_on=0)
        self.fail_on: Dict[str, Exception] = {}
        self.calls: List[Tuple[str, tuple]] = []
        self._lock = threading.Lock()

    def _record(self, name: str, *args: Any) -> None:
        with self._lock:
            self.calls.append((name, args))
        if name in self.fail_on:
            raise self.fail_on[name]

    def call_names(self) -> List[str]:
        return [name for name, _ in self.calls]

    def calls_to(self, name: str) -> List[tuple]:
        return [args for call, args in self.calls if call == name]

    def test_connection(self) -> None:
        self._record("test_connection")

    def get_projects(self) -> List[Project]:
        self._record("get_projects")
        return list(self.projects)

    def get_plans(self, project_id: int) -> List[Plan]:
        self._record("get_plans", project_id)
        return list(self.plans)

    def get_suites(self, project_id: int) -> List[Suite]:
        self._record("get_suites", project_id)
        return list(self.suites)

    def get_runs(self, project_id: int) -> List[Run]:
        self._record("get_runs", project_id)
        return list(self.runs)

    def close_run(self, run_id: int) -> Run:
        self._record("close_run", run_id)
        return Run(id=run_id, is_completed=True)

    def add_run(self, project_id: int, payload: Dict[str, Any]) -> Run:
        self._record("add_run", project_id, payload)
        return self.next_run

    def add_plan_entry(self, plan_id: int, payload: Dict[str, Any]) -> PlanEntry:
        self._record("add_plan_entry", plan_id, payload)
        return PlanEntry(id="entry-1", name=payload["name"], runs=[Run(id=200, name=payload["name"])])

    def add_results_for_cases(
        self, run_id: int, submissions: List[ResultSubmission]
    ) -> List[Result]:
        self._record("add_results_for_cases", run_id, submissions)
        if self.results is not None:
            return list(self.results)
        # One result per submission, matching the test created for its case
        results = []
        for index, submission in enumerate(submissions):
            test = next((t for t in self.tests if t.case_id == submission.case_id), None)
            results.append(Result(
                id=1000 + index,
                test_id=test.id if test else 9000 + index,
                status_id=submission.status_id,
            ))
        return results

    def get_tests(self, run_id: int) -> List[Test]:
        self._record("get_tests", run_id)
        return list(self.tests)

    def add_attachment_to_result(self, result_id: int, file_path: str) -> Dict[str, Any]:
        self._record("add_attachment_to_result", result_id, file_path)
        return {"attachment_id": len(self.calls)}

    def close(self) -> None:
        self._record("close")


@pytest.fixture
def fake_client() -> FakeTestRailClient:
    """Provide a fresh in-memory TestRail client."""
    return FakeTestRailClient()


@pytest.fixture
def api_error() -> TestRailClientError:
    """A representative API failure."""
    return TestRailClientError("TestRail API request failed: 500 Server Error", status_code=500)


# ---------------------------------------------------------------------------
# Log capture
# ---------------------------------------------------------------------------


@pytest.fixture
def log_records() -> Generator[List[Dict[str, Any]], None, None]:
    """Capture loguru records emitted during the test."""
    records: List[Dict[str, Any]] = []
    handler_id = logger.add(lambda message: records.append(message.record), level="DEBUG")
    yield records
    logger.remove(handler_id)


def messages_at(records: List[Dict[str, Any]], level: str) -> List[str]:
    """Return the messages logged at the given level name."""
    return [r["message"] for r in records if r["level"].name == level]


# ---------------------------------------------------------------------------
# Sample data
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_outcomes() -> List[Outcome]:
    """Three mapped outcomes and one unmapped outcome."""
    return [
        Outcome(name="login works", case_id=11, status=PASSED),
        Outcome(
            name="checkout fails",
            case_id=12,
            status=FAILED,
            errors=("\x1b[31mAssertionError: total mismatch\x1b[0m", "at checkout.py:42"),
            screenshots=("shots/checkout-1.png", "shots/checkout-2.png"),
        ),
        Outcome(name="no mapping", case_id=0, status=PASSED),
        Outcome(name="search skipped", case_id=13, status=SKIPPED),
    ]


def days_ago(days: float, now: datetime) -> int:
    """Unix timestamp for a moment `days` before `now`."""
    return int((now - timedelta(days=days)).timestamp())

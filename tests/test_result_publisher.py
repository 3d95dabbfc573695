"""
Unit Tests for the Result Publisher.

Covers:
- Submission building (mapping, skipping, comment composition).
- The full publish flow against an in-memory TestRail client.
- Screenshot attachment matching.
- Summary reporting and failure handling.
"""

from __future__ import annotations

from datetime import datetime
from typing import List

import pytest

from testrail_reporter.testrail_client.models import (
    FAILED,
    PASSED,
    Outcome,
    Result,
    Run,
    Test,
)
from testrail_reporter.testrail_client.resolver import ResolutionError
from testrail_reporter.testrail_client.result_publisher import (
    PublishError,
    PublishTarget,
    ResultPublisher,
    build_submissions,
    match_result,
)
from testrail_reporter.testrail_client.run_manager import RunManager
from tests.conftest import FakeTestRailClient, messages_at

FIXED_NOW = datetime(2024, 1, 1, 0, 0, 0)


def _publisher(
    client: FakeTestRailClient,
    upload_screenshots: bool = True,
    **target_fields,
) -> ResultPublisher:
    target_fields.setdefault("project", "Website QA")
    target = PublishTarget(upload_screenshots=upload_screenshots, **target_fields)
    return ResultPublisher(client, target, clock=lambda: FIXED_NOW)


# ---------------------------------------------------------------------------
# Phase A: submissions
# ---------------------------------------------------------------------------


class TestBuildSubmissions:
    """Tests for converting outcomes into submissions."""

    def test_unmapped_outcomes_skipped_with_one_warning_each(self, log_records) -> None:
        """Test that unmapped outcomes are skipped with one warning each."""
        outcomes = [
            Outcome(name="a", case_id=0, status=PASSED),
            Outcome(name="b", case_id=21, status=PASSED),
            Outcome(name="c", case_id=-1, status=FAILED),
            Outcome(name="d", case_id=22, status=FAILED),
        ]

        submissions, case_ids = build_submissions(outcomes)

        assert [s.case_id for s in submissions] == [21, 22]
        assert case_ids == [21, 22]
        warnings = messages_at(log_records, "WARNING")
        assert warnings == [
            "Test a missing the TestRail Case ID in test metadata",
            "Test c missing the TestRail Case ID in test metadata",
        ]

    def test_comment_composition(self, sample_outcomes: List[Outcome]) -> None:
        """Test the composed comment of each submission."""
        submissions, _ = build_submissions(sample_outcomes)

        assert submissions[0].comment == "Test Passed\n"
        assert submissions[1].status_id == 5
        assert submissions[1].comment == (
            "Test Failed\nAssertionError: total mismatch\nat checkout.py:42"
        )
        assert submissions[2].status_id == 2
        assert submissions[2].comment == "Test Skipped\n"

    def test_empty_input(self) -> None:
        """Test building submissions from no outcomes."""
        assert build_submissions([]) == ([], [])


# ---------------------------------------------------------------------------
# Attachment matching
# ---------------------------------------------------------------------------


class TestMatchResult:
    """Tests for mapping an outcome to its created result."""

    OUTCOME = Outcome(name="x", case_id=12, status=FAILED, screenshots=("a.png",))

    def test_match_via_test(self) -> None:
        """Test matching a result through the run's test."""
        tests = [Test(id=501, case_id=11), Test(id=502, case_id=12)]
        results = [Result(id=1000, test_id=501), Result(id=1001, test_id=502)]
        assert match_result(self.OUTCOME, tests, results).id == 1001

    def test_no_test_for_case(self) -> None:
        """Test that no result matches without a test for the case."""
        results = [Result(id=1000, test_id=501)]
        assert match_result(self.OUTCOME, [Test(id=501, case_id=11)], results) is None

    def test_no_result_for_test(self) -> None:
        """Test that no result matches without a result for the test."""
        results = [Result(id=1000, test_id=999)]
        assert match_result(self.OUTCOME, [Test(id=502, case_id=12)], results) is None


# ---------------------------------------------------------------------------
# Full flow
# ---------------------------------------------------------------------------


class TestPublishTestRun:
    """Tests for the end-to-end publish flow."""

    def test_nothing_to_publish_makes_no_remote_calls(
        self, fake_client: FakeTestRailClient, log_records
    ) -> None:
        """Test that nothing is sent when no outcome is mapped."""
        outcomes = [Outcome(name="unmapped", case_id=0, status=PASSED)]

        run = _publisher(fake_client).publish_test_run(outcomes, ["chrome"])

        assert run is None
        assert fake_client.calls == []
        assert "No test case data found to publish" in messages_at(log_records, "WARNING")

    def test_publish_creates_run_and_submits(
        self, fake_client: FakeTestRailClient, sample_outcomes: List[Outcome], log_records
    ) -> None:
        """Test the full flow creating a run and submitting results."""
        fake_client.tests = [Test(id=501, case_id=11), Test(id=502, case_id=12), Test(id=503, case_id=13)]
        publisher = _publisher(fake_client, suite_id="S3", run_name="%DATE% run (%AGENTS%)",
                               run_description="nightly")

        run = publisher.publish_test_run(sample_outcomes, ["chrome", "firefox"])

        assert run is fake_client.next_run
        assert fake_client.call_names() == [
            "get_projects",
            "get_suites",
            "add_run",
            "add_results_for_cases",
            "get_tests",
            "add_attachment_to_result",
            "add_attachment_to_result",
        ]
        project_id, payload = fake_client.calls_to("add_run")[0]
        assert project_id == 1
        assert payload == {
            "suite_id": 3,
            "include_all": False,
            "case_ids": [11, 12, 13],
            "name": "2024-01-01 00:00:00 run (chrome, firefox)",
            "description": "nightly",
        }
        run_id, submissions = fake_client.calls_to("add_results_for_cases")[0]
        assert run_id == 100
        assert [s.case_id for s in submissions] == [11, 12, 13]
        assert fake_client.calls_to("add_attachment_to_result") == [
            (1001, "shots/checkout-1.png"),
            (1001, "shots/checkout-2.png"),
        ]
        assert "Run added successfully." in messages_at(log_records, "INFO")
        assert any("Results added to TestRail successfully (3/3" in m
                   for m in messages_at(log_records, "INFO"))

    def test_publish_into_plan(
        self, fake_client: FakeTestRailClient, sample_outcomes: List[Outcome]
    ) -> None:
        """Test publishing into a plan entry."""
        publisher = _publisher(fake_client, plan_id="R7", upload_screenshots=False)

        run = publisher.publish_test_run(sample_outcomes, ["chrome"])

        assert run.id == 200
        assert fake_client.call_names() == [
            "get_projects",
            "get_plans",
            "add_plan_entry",
            "add_results_for_cases",
            "get_tests",
        ]
        assert fake_client.calls_to("add_results_for_cases")[0][0] == 200

    def test_screenshots_not_uploaded_when_disabled(
        self, fake_client: FakeTestRailClient, sample_outcomes: List[Outcome]
    ) -> None:
        """Test that screenshots are not uploaded when disabled."""
        fake_client.tests = [Test(id=502, case_id=12)]
        _publisher(fake_client, upload_screenshots=False).publish_test_run(sample_outcomes, ["chrome"])
        assert fake_client.calls_to("add_attachment_to_result") == []

    def test_unmatched_screenshots_skipped_silently(
        self, fake_client: FakeTestRailClient, sample_outcomes: List[Outcome]
    ) -> None:
        """Test that unmatched screenshots are skipped silently."""
        fake_client.tests = [Test(id=501, case_id=11)]  # no test for case 12

        run = _publisher(fake_client).publish_test_run(sample_outcomes, ["chrome"])

        assert run is not None
        assert fake_client.calls_to("add_attachment_to_result") == []

    def test_stale_runs_closed_before_new_run(
        self, fake_client: FakeTestRailClient, sample_outcomes: List[Outcome]
    ) -> None:
        """Test that stale runs are closed before the new run is added."""
        fake_client.runs = [Run(id=9, name="old", created_on=0)]
        publisher = ResultPublisher(
            fake_client,
            PublishTarget(project_id="P1"),
            run_manager=RunManager(fake_client, close_after_days=5),
        )

        publisher.publish_test_run(sample_outcomes, ["chrome"])

        names = fake_client.call_names()
        assert names.index("close_run") < names.index("add_run")

    def test_resolution_failure_stops_before_run(
        self, fake_client: FakeTestRailClient, sample_outcomes: List[Outcome]
    ) -> None:
        """Test that a resolution failure stops before run creation."""
        publisher = _publisher(fake_client, suite="Does not exist")

        with pytest.raises(ResolutionError, match="Suite does not exist"):
            publisher.publish_test_run(sample_outcomes, ["chrome"])
        assert "add_run" not in fake_client.call_names()

    def test_run_creation_failure_is_publish_error(
        self, fake_client: FakeTestRailClient, sample_outcomes: List[Outcome], api_error
    ) -> None:
        """Test that a run creation failure raises PublishError."""
        fake_client.fail_on["add_run"] = api_error

        with pytest.raises(PublishError, match="Could not prepare test run"):
            _publisher(fake_client).publish_test_run(sample_outcomes, ["chrome"])
        assert "add_results_for_cases" not in fake_client.call_names()


# ---------------------------------------------------------------------------
# Phase B: publish_results
# ---------------------------------------------------------------------------


class TestPublishResults:
    """Tests for batch submission and its summary."""

    RUN = Run(id=100, name="run")

    def test_zero_results_is_warning_not_error(
        self, fake_client: FakeTestRailClient, sample_outcomes: List[Outcome], log_records
    ) -> None:
        """Test that zero results is a warning, not an error."""
        fake_client.results = []
        submissions, _ = build_submissions(sample_outcomes)

        results = _publisher(fake_client).publish_results(self.RUN, submissions, sample_outcomes)

        assert results == []
        assert "No data has been published to TestRail." in messages_at(log_records, "WARNING")
        assert messages_at(log_records, "ERROR") == []

    def test_submission_failure_is_publish_error(
        self, fake_client: FakeTestRailClient, sample_outcomes: List[Outcome], api_error, log_records
    ) -> None:
        """Test that a submission failure raises PublishError."""
        fake_client.fail_on["add_results_for_cases"] = api_error
        submissions, _ = build_submissions(sample_outcomes)

        with pytest.raises(PublishError, match="500 Server Error"):
            _publisher(fake_client).publish_results(self.RUN, submissions, sample_outcomes)
        assert any("Could not post test results" in m for m in messages_at(log_records, "ERROR"))

    def test_attachment_failure_is_publish_error(
        self, fake_client: FakeTestRailClient, sample_outcomes: List[Outcome], api_error
    ) -> None:
        """Test that an attachment failure raises PublishError."""
        fake_client.tests = [Test(id=502, case_id=12)]
        fake_client.fail_on["add_attachment_to_result"] = api_error
        submissions, _ = build_submissions(sample_outcomes)

        with pytest.raises(PublishError):
            _publisher(fake_client).publish_results(self.RUN, submissions, sample_outcomes)
        # Submitted results are not rolled back
        assert len(fake_client.calls_to("add_results_for_cases")) == 1

"""
Result Publisher Module.

Entry point of the publishing pipeline. Given the outcomes of a test
session it:
1. Builds one result submission per outcome mapped to a TestRail case.
2. Resolves the target project, plan and suite.
3. Prepares the run (new run, or new entry in a plan).
4. Submits all results in a single batch call.
5. Attaches screenshots to the results they belong to.
6. Reports a summary.

Fatal conditions raise (ResolutionError, PublishError); the caller decides
how the process exits. Unmapped outcomes and unmatched attachments are
skipped with a warning or silently, never fatal.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple

from loguru import logger

from testrail_reporter.testrail_client.api_client import (
    TestRailClient,
    TestRailClientError,
)
from testrail_reporter.testrail_client.formatting import compose_comment
from testrail_reporter.testrail_client.models import (
    Outcome,
    Result,
    ResultSubmission,
    Run,
    Test,
)
from testrail_reporter.testrail_client.resolver import (
    IdentifierResolver,
    IdentifierValue,
    find_first,
)
from testrail_reporter.testrail_client.run_manager import (
    RunManager,
    build_run_name,
    build_run_payload,
)

SEPARATOR = "-" * 54


class PublishError(TestRailClientError):
    """Raised when preparing the run or submitting results fails."""


@dataclass
class PublishTarget:
    """
    Where and how results are published.

    Attributes:
        project: Project name.
        project_id: Project ID ("P12" or 12); wins over the name.
        plan: Optional plan name.
        plan_id: Optional plan ID ("R7" or 7).
        suite: Optional suite name.
        suite_id: Optional suite ID ("S3" or 3).
        run_name: Optional run name template (%DATE%, %AGENTS%).
        run_description: Optional run description.
        upload_screenshots: Whether screenshots are attached to results.
    """

    project: Optional[str] = None
    project_id: IdentifierValue = None
    plan: Optional[str] = None
    plan_id: IdentifierValue = None
    suite: Optional[str] = None
    suite_id: IdentifierValue = None
    run_name: Optional[str] = None
    run_description: Optional[str] = None
    upload_screenshots: bool = False


def build_submissions(
    outcomes: Sequence[Outcome],
) -> Tuple[List[ResultSubmission], List[int]]:
    """
    Convert outcomes into result submissions.

    Outcomes without a case ID (case_id <= 0) are skipped with one warning
    each; the order of the remaining outcomes is preserved.

    Returns:
        (submissions, case_ids)
    """
    submissions: List[ResultSubmission] = []
    case_ids: List[int] = []

    for outcome in outcomes:
        if outcome.case_id > 0:
            submissions.append(ResultSubmission(
                case_id=outcome.case_id,
                status_id=outcome.status.value,
                comment=compose_comment(outcome.status, outcome.errors),
            ))
            case_ids.append(outcome.case_id)
        else:
            logger.warning(
                f"Test {outcome.name} missing the TestRail Case ID in test metadata"
            )

    return submissions, case_ids


def match_result(
    outcome: Outcome,
    tests: Sequence[Test],
    results: Sequence[Result],
) -> Optional[Result]:
    """Find the result created for an outcome via the run's test for its case."""
    test = find_first(tests, lambda t: t.case_id == outcome.case_id)
    if test is None:
        return None
    return find_first(results, lambda r: r.test_id == test.id)


class ResultPublisher:
    """
    Publishes a batch of outcomes into TestRail.

    Usage::

        publisher = ResultPublisher(
            client,
            PublishTarget(project="Website QA", suite_id="S3"),
            run_manager=RunManager(client, close_after_days=5),
        )
        run = publisher.publish_test_run(outcomes, agents=["chrome"])
    """

    def __init__(
        self,
        client: TestRailClient,
        target: PublishTarget,
        run_manager: Optional[RunManager] = None,
        resolver: Optional[IdentifierResolver] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._client = client
        self.target = target
        self.run_manager = run_manager or RunManager(client)
        self.resolver = resolver or IdentifierResolver(client)
        self._clock = clock

    def publish_test_run(
        self,
        outcomes: Sequence[Outcome],
        agents: Sequence[str],
    ) -> Optional[Run]:
        """
        Run the whole publish flow.

        Returns:
            The run results were published to, or None when no outcome
            was mapped to a case (nothing is sent to TestRail then).

        Raises:
            ResolutionError: If the project, plan or suite cannot be resolved.
            PublishError: If the run cannot be prepared or results not submitted.
        """
        logger.info(SEPARATOR)
        logger.info("Publishing the results to TestRail...")

        submissions, case_ids = build_submissions(outcomes)
        if not submissions:
            logger.warning("No test case data found to publish")
            return None

        target = self.target
        project_id = self.resolver.resolve_project(target.project, target.project_id)
        plan_id = self.resolver.resolve_plan(target.plan, target.plan_id, project_id)
        suite_id = self.resolver.resolve_suite(target.suite, target.suite_id, project_id)

        run_name = build_run_name(target.run_name, agents, self._clock())
        payload = build_run_payload(suite_id, case_ids, run_name, target.run_description)

        try:
            run = self.run_manager.prepare_run(project_id, plan_id, payload)
        except Exception as e:
            logger.error(f"Could not prepare test run. {e}")
            raise PublishError(f"Could not prepare test run: {e}") from e

        logger.info(SEPARATOR)
        logger.info("Run added successfully.")
        logger.info(f"Run name {run_name}")

        self.publish_results(run, submissions, outcomes)
        return run

    def publish_results(
        self,
        run: Run,
        submissions: List[ResultSubmission],
        outcomes: Sequence[Outcome],
    ) -> List[Result]:
        """
        Submit results in one batch and attach screenshots.

        Raises:
            PublishError: If any step of submission or attachment fails.
        """
        try:
            results = self._client.add_results_for_cases(run.id, submissions)
            tests = self._client.get_tests(run.id)

            if self.target.upload_screenshots:
                self._attach_screenshots(outcomes, tests, results)
        except Exception as e:
            logger.error(f"Could not post test results. {e}")
            raise PublishError(f"Could not post test results: {e}") from e

        if not results:
            logger.warning("No data has been published to TestRail.")
        else:
            logger.info(SEPARATOR)
            logger.info(
                f"Results added to TestRail successfully "
                f"({len(results)}/{len(submissions)} results, run {run.id})."
            )
        return results

    def _attach_screenshots(
        self,
        outcomes: Sequence[Outcome],
        tests: Sequence[Test],
        results: Sequence[Result],
    ) -> int:
        """Upload screenshots one by one; returns the number uploaded."""
        uploaded = 0
        for outcome in outcomes:
            if not outcome.screenshots or outcome.case_id <= 0:
                continue
            result = match_result(outcome, tests, results)
            if result is None:
                logger.debug(f"No result matched for {outcome.name}, skipping screenshots")
                continue
            for screenshot in outcome.screenshots:
                self._client.add_attachment_to_result(result.id, screenshot)
                uploaded += 1
        if uploaded:
            logger.info(f"Uploaded {uploaded} screenshot(s)")
        return uploaded

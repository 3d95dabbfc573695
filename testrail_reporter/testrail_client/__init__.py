"""
TestRail Client Module.

Provides integration with the TestRail REST API for:
- Resolving project, plan and suite identifiers.
- Creating runs or plan entries, closing outdated runs.
- Publishing test results in one batch and attaching screenshots.
- Mapping pytest functions to TestRail case IDs.
"""

from testrail_reporter.testrail_client.api_client import (
    ConnectivityError,
    TestRailClient,
    TestRailClientError,
    TestRailConfig,
)
from testrail_reporter.testrail_client.case_mapper import CaseMapper, CaseMapping
from testrail_reporter.testrail_client.models import (
    FAILED,
    PASSED,
    SKIPPED,
    Outcome,
    ResultSubmission,
    TestStatus,
)
from testrail_reporter.testrail_client.resolver import IdentifierResolver, ResolutionError
from testrail_reporter.testrail_client.result_publisher import (
    PublishError,
    PublishTarget,
    ResultPublisher,
)
from testrail_reporter.testrail_client.run_manager import RunManager

__all__ = [
    "TestRailClient",
    "TestRailClientError",
    "TestRailConfig",
    "ConnectivityError",
    "CaseMapper",
    "CaseMapping",
    "Outcome",
    "ResultSubmission",
    "TestStatus",
    "PASSED",
    "SKIPPED",
    "FAILED",
    "IdentifierResolver",
    "ResolutionError",
    "PublishError",
    "PublishTarget",
    "ResultPublisher",
    "RunManager",
]

"""
Pytest plugin publishing session results to TestRail.

Enable with ``pytest --testrail``. Tests are linked to cases with::

    @pytest.mark.testrail("C123")
    def test_login(testrail_screenshot):
        ...
        testrail_screenshot("artifacts/login.png")

At the end of the session one Outcome per executed test is built and the
batch is published through ResultPublisher.
"""

from __future__ import annotations

import platform
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import pytest
from loguru import logger

from testrail_reporter.config.loader import ConfigLoader, ConfigurationError
from testrail_reporter.config.settings import TestRailSettings
from testrail_reporter.testrail_client.api_client import TestRailClient, TestRailClientError
from testrail_reporter.testrail_client.case_mapper import MARKER_NAME, CaseMapper
from testrail_reporter.testrail_client.models import (
    FAILED,
    STATUS_BY_NAME,
    Outcome,
    TestStatus,
)
from testrail_reporter.testrail_client.result_publisher import ResultPublisher
from testrail_reporter.testrail_client.run_manager import RunManager

SCREENSHOT_PROPERTY = "testrail_screenshot"
PLUGIN_NAME = "testrail-reporter"


def default_agent() -> str:
    """Label describing the environment the session runs in."""
    return f"{platform.system()} / Python {platform.python_version()}"


# ---------------------------------------------------------------------------
# Hooks
# ---------------------------------------------------------------------------


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("testrail", "Publish results to TestRail")
    group.addoption(
        "--testrail",
        action="store_true",
        default=False,
        help="Publish test results to TestRail at the end of the session",
    )
    group.addoption(
        "--testrail-config",
        default=None,
        help="Path to the TestRail reporter config (YAML/JSON). Default: testrail.yaml if present",
    )
    group.addoption(
        "--testrail-agent",
        action="append",
        default=[],
        help="Agent label for the run name (repeatable). Default: platform / Python version",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        f"{MARKER_NAME}(case_id): Map this test to a TestRail case ID (e.g. 'C123')",
    )
    if not config.getoption("--testrail"):
        return

    try:
        settings = ConfigLoader(config_dir=config.rootpath).load_settings(
            config.getoption("--testrail-config")
        )
    except ConfigurationError as e:
        raise pytest.UsageError(f"TestRail reporter configuration error: {e}") from e

    if not settings.enabled:
        logger.info("TestRail reporting disabled by configuration")
        return

    agents = config.getoption("--testrail-agent") or [default_agent()]
    config.pluginmanager.register(TestRailPlugin(settings, agents), PLUGIN_NAME)


@pytest.fixture
def testrail_screenshot(record_property: Callable[[str, Any], None]) -> Callable[[str], None]:
    """Register a screenshot file to attach to this test's TestRail result."""

    def _attach(path: str) -> None:
        record_property(SCREENSHOT_PROPERTY, str(path))

    return _attach


# ---------------------------------------------------------------------------
# Outcome collection
# ---------------------------------------------------------------------------


@dataclass
class _Record:
    name: str
    status: TestStatus
    errors: List[str] = field(default_factory=list)
    screenshots: List[str] = field(default_factory=list)


class TestRailPlugin:
    """Collects outcomes during the session and publishes them at the end."""

    __test__ = False

    def __init__(
        self,
        settings: TestRailSettings,
        agents: List[str],
        client_factory: Callable[[TestRailSettings], TestRailClient] = (
            lambda s: TestRailClient(config=s.to_client_config())
        ),
    ) -> None:
        self.settings = settings
        self.agents = agents
        self.mapper = CaseMapper()
        self._client_factory = client_factory
        self._records: Dict[str, _Record] = {}

    def pytest_collection_modifyitems(self, items: List[pytest.Item]) -> None:
        self.mapper.collect_from_items(items)
        for nodeid in sorted(self.mapper.get_unmapped_nodeids()):
            logger.debug(f"No TestRail case mapped for {nodeid}")

    def pytest_runtest_logreport(self, report: pytest.TestReport) -> None:
        record = self._records.get(report.nodeid)

        if report.when == "call" or (report.when == "setup" and not report.passed):
            status = STATUS_BY_NAME[report.outcome]
            record = _Record(name=report.nodeid, status=status)
            self._records[report.nodeid] = record
            error = _error_text(report)
            if error:
                record.errors.append(error)
        elif report.when == "teardown" and report.failed and record is not None:
            record.status = FAILED
            record.errors.append(_error_text(report))

        if record is not None and report.when == "teardown":
            record.screenshots.extend(
                str(value) for name, value in report.user_properties
                if name == SCREENSHOT_PROPERTY
            )

    def build_outcomes(self) -> List[Outcome]:
        return [
            Outcome(
                name=record.name,
                case_id=self.mapper.get_case_id(nodeid),
                status=record.status,
                errors=tuple(record.errors),
                screenshots=tuple(record.screenshots),
            )
            for nodeid, record in self._records.items()
        ]

    def pytest_sessionfinish(self, session: pytest.Session) -> None:
        outcomes = self.build_outcomes()
        if not outcomes:
            logger.info("No test outcomes collected, nothing to publish to TestRail")
            return

        client = self._client_factory(self.settings)
        publisher = ResultPublisher(
            client,
            self.settings.to_publish_target(),
            run_manager=RunManager(
                client,
                close_after_days=self.settings.run_close_after_days,
                close_wait_timeout_sec=self.settings.close_wait_timeout_sec,
            ),
        )
        try:
            client.test_connection()
            publisher.publish_test_run(outcomes, self.agents)
        except TestRailClientError as e:
            logger.error(f"TestRail publishing failed: {e}")
            reporter = session.config.pluginmanager.get_plugin("terminalreporter")
            if reporter is not None:
                reporter.write_line(f"TestRail publishing failed: {e}", red=True, bold=True)
        finally:
            client.close()


def _error_text(report: pytest.TestReport) -> Optional[str]:
    if report.passed:
        return None
    if report.skipped and isinstance(report.longrepr, tuple):
        return str(report.longrepr[2])
    return report.longreprtext

"""
Run Lifecycle Manager.

Decides where a publish lands:
- With a plan: a new plan entry is added and its first run is the target.
- Without a plan: stale runs of the project are closed (when a day
  threshold is configured), then a fresh run is created.

Stale-run closure is best-effort cleanup. Closures run concurrently and are
joined with a bounded wait before the new run is created; a failing closure
is logged and never aborts the publish.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, wait
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

from testrail_reporter.testrail_client.api_client import TestRailClient
from testrail_reporter.testrail_client.models import Run

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DATE_MARKER = "%DATE%"
AGENTS_MARKER = "%AGENTS%"


def build_run_name(
    template: Optional[str],
    agents: Sequence[str],
    created_at: datetime,
) -> str:
    """
    Derive the run name.

    Args:
        template: Optional name template with %DATE% / %AGENTS% markers.
        agents: Labels of the environments the tests ran in.
        created_at: Creation time, rendered as YYYY-MM-DD HH:MM:SS.

    Returns:
        The run name, e.g. "2024-01-01 00:00:00 (chrome, firefox)".
    """
    timestamp = created_at.strftime(DATE_FORMAT)
    agent_list = ", ".join(agents)
    if template:
        return template.replace(DATE_MARKER, timestamp).replace(AGENTS_MARKER, agent_list)
    return f"{timestamp} ({agent_list})"


def build_run_payload(
    suite_id: Optional[int],
    case_ids: List[int],
    name: str,
    description: Optional[str] = None,
) -> Dict[str, Any]:
    """Payload shared by add_run and add_plan_entry."""
    return {
        "suite_id": suite_id,
        "include_all": False,
        "case_ids": case_ids,
        "name": name,
        "description": description,
    }


class RunManager:
    """
    Creates or reuses the run a publish targets.

    Attributes:
        close_after_days: Age threshold for closing incomplete runs;
            None or 0 disables closure.
        close_wait_timeout_sec: Upper bound on waiting for closures.
    """

    def __init__(
        self,
        client: TestRailClient,
        close_after_days: Optional[int] = None,
        close_wait_timeout_sec: float = 30.0,
        max_workers: int = 4,
    ) -> None:
        self._client = client
        self.close_after_days = close_after_days
        self.close_wait_timeout_sec = close_wait_timeout_sec
        self.max_workers = max_workers

    def prepare_run(
        self,
        project_id: int,
        plan_id: Optional[int],
        payload: Dict[str, Any],
    ) -> Run:
        """
        Return the run results will be published to.

        Raises:
            TestRailClientError: If the plan entry or run cannot be created.
        """
        if plan_id:
            logger.info(f"Adding plan entry to plan {plan_id}")
            entry = self._client.add_plan_entry(plan_id, payload)
            if not entry.runs:
                raise ValueError(f"Plan entry {entry.id} was created without runs")
            return entry.runs[0]

        self.close_stale_runs(project_id)
        logger.info(f"Adding run to project {project_id}")
        return self._client.add_run(project_id, payload)

    def find_stale_runs(self, runs: List[Run], now: Optional[datetime] = None) -> List[Run]:
        """Return incomplete runs created at or before the age threshold."""
        if not self.close_after_days:
            return []
        now = now or datetime.now()
        cutoff = (now - timedelta(days=self.close_after_days)).timestamp()
        return [r for r in runs if not r.is_completed and r.created_on <= cutoff]

    def close_stale_runs(self, project_id: int, now: Optional[datetime] = None) -> List[Run]:
        """
        Close outdated runs of a project.

        Closures still pending after close_wait_timeout_sec keep running on
        the shared client. Once the client is closed they fail with
        TestRailClientError and are logged like any other failed closure.

        Returns:
            The runs whose closure was requested.
        """
        if not self.close_after_days:
            return []

        stale = self.find_stale_runs(self._client.get_runs(project_id), now)
        if not stale:
            return []

        executor = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="close-run"
        )
        futures = {executor.submit(self._close_run, run): run for run in stale}
        _, pending = wait(futures, timeout=self.close_wait_timeout_sec)
        # Pending closures keep running detached.
        executor.shutdown(wait=False)

        if pending:
            logger.warning(
                f"{len(pending)} run closure(s) still pending after "
                f"{self.close_wait_timeout_sec}s, continuing"
            )
        return stale

    def _close_run(self, run: Run) -> None:
        logger.info(f"Closing outdated run: {run.name}")
        try:
            self._client.close_run(run.id)
        except Exception as e:
            logger.warning(f"Could not close run {run.name} ({run.id}): {e}")

"""
TestRail REST API Client.

Provides a dedicated client for the TestRail API v2:
- Basic authentication with fixed credentials.
- Generic GET/POST calls returning parsed JSON.
- Multipart attachment upload.
- Typed calls for the entities the result publisher needs.

API reference: https://support.testrail.com/hc/en-us/sections/7077196685204-Reference
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import requests
from loguru import logger

from testrail_reporter.testrail_client.models import (
    PlanEntry,
    Plan,
    Project,
    Result,
    ResultSubmission,
    Run,
    Suite,
    Test,
)


class TestRailClientError(Exception):
    """Raised when a TestRail API operation fails."""

    __test__ = False

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ConnectivityError(TestRailClientError):
    """Raised when the TestRail instance cannot be reached."""


@dataclass
class TestRailConfig:
    """Connection settings for the TestRail API client."""

    __test__ = False

    host: str
    user: str = ""
    password: str = ""
    timeout_sec: Optional[float] = None
    verify_ssl: bool = True


class TestRailClient:
    """
    Client for the TestRail REST API v2.

    Every call is a single blocking request: no retries, no pagination
    beyond what one call returns. Failures surface as TestRailClientError.

    Usage::

        client = TestRailClient(
            host="https://example.testrail.io",
            user="qa@example.com",
            password="api-key",
        )
        projects = client.get_projects()
    """

    __test__ = False

    API_PATH = "/index.php?/api/v2/"

    ENDPOINTS = {
        "get_projects": "get_projects",
        "get_plans": "get_plans/{project_id}",
        "get_suites": "get_suites/{project_id}",
        "get_runs": "get_runs/{project_id}",
        "add_run": "add_run/{project_id}",
        "close_run": "close_run/{run_id}",
        "add_plan_entry": "add_plan_entry/{plan_id}",
        "get_tests": "get_tests/{run_id}",
        "add_results_for_cases": "add_results_for_cases/{run_id}",
        "add_attachment_to_result": "add_attachment_to_result/{result_id}",
    }

    def __init__(
        self,
        host: str = "",
        user: str = "",
        password: str = "",
        timeout_sec: Optional[float] = None,
        verify_ssl: bool = True,
        config: Optional[TestRailConfig] = None,
    ) -> None:
        """
        Initialize the TestRail client.

        Args:
            host: TestRail instance URL (e.g., "https://example.testrail.io").
            user: Account e-mail.
            password: Account password or API key.
            timeout_sec: Optional request timeout. None waits indefinitely.
            verify_ssl: Whether to verify SSL certificates.
            config: Optional TestRailConfig dataclass (overrides individual params).
        """
        if config:
            self._config = config
            self._config.host = self._config.host.rstrip("/")
        else:
            self._config = TestRailConfig(
                host=host.rstrip("/"),
                user=user,
                password=password,
                timeout_sec=timeout_sec,
                verify_ssl=verify_ssl,
            )

        self._session: Optional[requests.Session] = None
        self._closed = False
        logger.info(f"TestRailClient initialized — host={self._config.host}")

    def _get_session(self) -> requests.Session:
        """
        Get or create an HTTP session carrying the Basic auth credentials.

        Raises:
            TestRailClientError: If the client has been closed.
        """
        if self._closed:
            raise TestRailClientError("TestRail client is closed")
        if self._session is None:
            self._session = requests.Session()
            self._session.verify = self._config.verify_ssl
            self._session.auth = (self._config.user, self._config.password)
            self._session.headers.update({"Accept": "application/json"})
        return self._session

    def build_url(self, path: str, query: Optional[Dict[str, Any]] = None) -> str:
        """
        Build the full API URL for an operation path.

        The API lives behind a query-string route, so extra parameters are
        appended with "&" rather than "?".
        """
        url = f"{self._config.host}{self.API_PATH}{path}"
        if query:
            url += "&" + urlencode(query)
        return url

    def _request(
        self,
        method: str,
        path: str,
        query: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> Any:
        """
        Make an authenticated API request and return the parsed JSON body.

        Raises:
            TestRailClientError: If the request fails or the body is not JSON.
        """
        session = self._get_session()
        url = self.build_url(path, query)
        logger.debug(f"TestRail API {method} {url}")

        try:
            response = session.request(
                method=method,
                url=url,
                timeout=self._config.timeout_sec,
                **kwargs,
            )
            response.raise_for_status()
            return response.json()
        except requests.exceptions.HTTPError as e:
            status_code = e.response.status_code if e.response is not None else None
            detail = _error_detail(e.response)
            logger.error(f"TestRail API HTTP error: {e} (status={status_code}) {detail}")
            raise TestRailClientError(
                f"TestRail API request failed: {e} {detail}".rstrip(),
                status_code=status_code,
            ) from e
        except requests.exceptions.ConnectionError as e:
            logger.error(f"TestRail API connection error: {e}")
            raise TestRailClientError(f"Cannot connect to TestRail: {e}") from e
        except requests.exceptions.Timeout as e:
            logger.error(f"TestRail API timeout: {e}")
            raise TestRailClientError(
                f"TestRail API request timed out after {self._config.timeout_sec}s"
            ) from e
        except requests.exceptions.JSONDecodeError as e:
            logger.error(f"TestRail API returned a malformed response: {e}")
            raise TestRailClientError(f"Malformed TestRail response: {e}") from e
        except requests.exceptions.RequestException as e:
            logger.error(f"TestRail API request error: {e}")
            raise TestRailClientError(f"TestRail API request failed: {e}") from e

    def get(self, path: str, query: Optional[Dict[str, Any]] = None) -> Any:
        """Issue a GET call against an API operation path."""
        return self._request("GET", path, query, headers={"Content-Type": "application/json"})

    def post(
        self,
        path: str,
        body: Optional[Any] = None,
        query: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Issue a POST call with an optional JSON body."""
        return self._request(
            "POST",
            path,
            query,
            json=body,
            headers={"Content-Type": "application/json"},
        )

    def upload_attachment(self, result_id: int, file_path: str) -> Any:
        """
        Upload a file to a result as multipart form data (field "attachment").

        The file handle is closed once the request returns.
        """
        endpoint = self.ENDPOINTS["add_attachment_to_result"].format(result_id=result_id)
        file_path = str(file_path)
        with open(file_path, "rb") as f:
            files = {"attachment": (Path(file_path).name, f)}
            # Session headers carry no Content-Type; requests sets the multipart one.
            return self._request("POST", endpoint, files=files)

    def test_connection(self) -> None:
        """
        Verify the TestRail instance is reachable with the given credentials.

        Raises:
            ConnectivityError: If the project list cannot be fetched.
        """
        logger.info("Testing connection to TestRail...")
        try:
            self.get_projects()
        except TestRailClientError as e:
            logger.error("Connection to TestRail instance could not be established.")
            raise ConnectivityError(
                f"Connection to TestRail instance could not be established: {e}",
                status_code=e.status_code,
            ) from e
        logger.info("Done")

    # ------------------------------------------------------------------
    # Projects / Plans / Suites
    # ------------------------------------------------------------------

    def get_projects(self) -> List[Project]:
        response = self.get(self.ENDPOINTS["get_projects"])
        return [Project.from_dict(p) for p in _unwrap_list(response, "projects")]

    def get_plans(self, project_id: int) -> List[Plan]:
        endpoint = self.ENDPOINTS["get_plans"].format(project_id=project_id)
        response = self.get(endpoint)
        return [Plan.from_dict(p) for p in _unwrap_list(response, "plans")]

    def get_suites(self, project_id: int) -> List[Suite]:
        endpoint = self.ENDPOINTS["get_suites"].format(project_id=project_id)
        response = self.get(endpoint)
        return [Suite.from_dict(s) for s in _unwrap_list(response, "suites")]

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def get_runs(self, project_id: int) -> List[Run]:
        endpoint = self.ENDPOINTS["get_runs"].format(project_id=project_id)
        response = self.get(endpoint)
        return [Run.from_dict(r) for r in _unwrap_list(response, "runs")]

    def add_run(self, project_id: int, payload: Dict[str, Any]) -> Run:
        endpoint = self.ENDPOINTS["add_run"].format(project_id=project_id)
        return Run.from_dict(self.post(endpoint, payload))

    def close_run(self, run_id: int) -> Run:
        endpoint = self.ENDPOINTS["close_run"].format(run_id=run_id)
        return Run.from_dict(self.post(endpoint))

    def add_plan_entry(self, plan_id: int, payload: Dict[str, Any]) -> PlanEntry:
        endpoint = self.ENDPOINTS["add_plan_entry"].format(plan_id=plan_id)
        return PlanEntry.from_dict(self.post(endpoint, payload))

    # ------------------------------------------------------------------
    # Tests / Results / Attachments
    # ------------------------------------------------------------------

    def get_tests(self, run_id: int) -> List[Test]:
        endpoint = self.ENDPOINTS["get_tests"].format(run_id=run_id)
        response = self.get(endpoint)
        return [Test.from_dict(t) for t in _unwrap_list(response, "tests")]

    def add_results_for_cases(
        self,
        run_id: int,
        submissions: List[ResultSubmission],
    ) -> List[Result]:
        """Submit all results for a run in one call."""
        endpoint = self.ENDPOINTS["add_results_for_cases"].format(run_id=run_id)
        payload = {"results": [s.to_dict() for s in submissions]}
        response = self.post(endpoint, payload)
        return [Result.from_dict(r) for r in _unwrap_list(response, "results")]

    def add_attachment_to_result(self, result_id: int, file_path: str) -> Dict[str, Any]:
        logger.debug(f"Attaching {file_path} to result {result_id}")
        return self.upload_attachment(result_id, file_path)

    def close(self) -> None:
        """
        Close the HTTP session.

        Later calls raise TestRailClientError instead of opening a new session.
        """
        self._closed = True
        if self._session is not None:
            self._session.close()
            self._session = None
            logger.debug("TestRail client session closed")


def _unwrap_list(response: Any, key: str) -> List[Dict[str, Any]]:
    """
    Return the entity list from a list response.

    TestRail 6.7+ wraps list responses (e.g. {"offset": 0, "runs": [...]});
    older instances return a bare array.
    """
    if isinstance(response, list):
        return response
    if isinstance(response, dict) and isinstance(response.get(key), list):
        return response[key]
    raise TestRailClientError(
        f"Unexpected TestRail response shape for '{key}': {type(response).__name__}"
    )


def _error_detail(response: Optional[requests.Response]) -> str:
    """Extract TestRail's {"error": "..."} message from a failed response."""
    if response is None:
        return ""
    try:
        body = response.json()
    except requests.exceptions.JSONDecodeError:
        return ""
    if isinstance(body, dict) and body.get("error"):
        return f"({body['error']})"
    return ""

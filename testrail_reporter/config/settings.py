"""
Reporter Settings.

TestRailSettings gathers everything the publisher consumes: connection
credentials, the project/plan/suite identifiers, run naming, stale-run
closure and attachment upload. Values come from the "testrail" section of
a configuration file, then environment variables override them.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Dict, Mapping, Optional, Union

from testrail_reporter.testrail_client.api_client import TestRailConfig
from testrail_reporter.testrail_client.result_publisher import PublishTarget

# Environment variable -> settings field
ENV_OVERRIDES: Dict[str, str] = {
    "TESTRAIL_ENABLE": "enabled",
    "TESTRAIL_HOST": "host",
    "TESTRAIL_USER": "user",
    "TESTRAIL_PASS": "password",
    "PROJECT_NAME": "project",
    "PROJECT_ID": "project_id",
    "PLAN_NAME": "plan",
    "PLAN_ID": "plan_id",
    "SUITE_NAME": "suite",
    "SUITE_ID": "suite_id",
    "RUN_NAME": "run_name",
    "RUN_DESCRIPTION": "run_description",
    "RUN_CLOSE_AFTER_DAYS": "run_close_after_days",
    "UPLOAD_SCREENSHOTS": "upload_screenshots",
}

_TRUE_VALUES = {"true", "1", "yes", "on"}


@dataclass
class TestRailSettings:
    """Resolved reporter settings."""

    __test__ = False

    enabled: bool = True
    host: str = ""
    user: str = ""
    password: str = ""
    timeout_sec: Optional[float] = None
    verify_ssl: bool = True
    project: Optional[str] = None
    project_id: Union[str, int, None] = None
    plan: Optional[str] = None
    plan_id: Union[str, int, None] = None
    suite: Optional[str] = None
    suite_id: Union[str, int, None] = None
    run_name: Optional[str] = None
    run_description: Optional[str] = None
    run_close_after_days: Optional[int] = None
    close_wait_timeout_sec: float = 30.0
    upload_screenshots: bool = False

    @classmethod
    def from_dict(cls, section: Mapping[str, Any]) -> "TestRailSettings":
        """Build settings from the "testrail" section, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in section.items() if k in known})

    def apply_env(self, environ: Mapping[str, str]) -> "TestRailSettings":
        """Override fields from environment variables that are set and non-empty."""
        for env_name, field_name in ENV_OVERRIDES.items():
            raw = environ.get(env_name)
            if raw is None or raw == "":
                continue
            if field_name in ("enabled", "upload_screenshots"):
                value: Any = raw.strip().lower() in _TRUE_VALUES
            elif field_name == "run_close_after_days":
                value = int(raw)
            else:
                value = raw
            setattr(self, field_name, value)
        return self

    def missing_fields(self) -> list[str]:
        """Names of required settings that are not filled in."""
        missing = [name for name in ("host", "user", "password") if not getattr(self, name)]
        if not self.project and not self.project_id:
            missing.append("project or project_id")
        return missing

    def to_client_config(self) -> TestRailConfig:
        return TestRailConfig(
            host=self.host,
            user=self.user,
            password=self.password,
            timeout_sec=self.timeout_sec,
            verify_ssl=self.verify_ssl,
        )

    def to_publish_target(self) -> PublishTarget:
        return PublishTarget(
            project=self.project,
            project_id=self.project_id,
            plan=self.plan,
            plan_id=self.plan_id,
            suite=self.suite,
            suite_id=self.suite_id,
            run_name=self.run_name,
            run_description=self.run_description,
            upload_screenshots=self.upload_screenshots,
        )

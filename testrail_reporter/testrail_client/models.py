"""
TestRail Entity Models.

Typed views over the JSON objects returned by the TestRail API, plus the
local values the publisher works with:
- Outcome: one executed test, as produced by the outcome source.
- ResultSubmission: the per-case payload sent in a batch result call.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger


# ---------------------------------------------------------------------------
# Remote entities
# ---------------------------------------------------------------------------


@dataclass
class Project:
    """TestRail project."""

    id: int
    name: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Project":
        return cls(id=int(data["id"]), name=data.get("name", ""))


@dataclass
class Plan:
    """TestRail test plan."""

    id: int
    name: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Plan":
        return cls(id=int(data["id"]), name=data.get("name", ""))


@dataclass
class Suite:
    """TestRail test suite."""

    id: int
    name: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Suite":
        return cls(id=int(data["id"]), name=data.get("name", ""))


@dataclass
class Run:
    """
    TestRail test run.

    Attributes:
        id: Run ID.
        name: Run name.
        is_completed: Whether the run has been closed.
        created_on: Creation time as a unix timestamp (seconds).
    """

    id: int
    name: str = ""
    is_completed: bool = False
    created_on: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Run":
        return cls(
            id=int(data["id"]),
            name=data.get("name", ""),
            is_completed=bool(data.get("is_completed", False)),
            created_on=int(data.get("created_on") or 0),
        )


@dataclass
class PlanEntry:
    """Entry of a test plan; holds the runs created for it."""

    id: str
    name: str = ""
    runs: List[Run] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlanEntry":
        return cls(
            id=str(data.get("id", "")),
            name=data.get("name", ""),
            runs=[Run.from_dict(r) for r in data.get("runs", [])],
        )


@dataclass
class Test:
    """Instance of a case inside a run."""

    __test__ = False

    id: int
    case_id: int
    run_id: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Test":
        return cls(
            id=int(data["id"]),
            case_id=int(data.get("case_id") or 0),
            run_id=int(data.get("run_id") or 0),
        )


@dataclass
class Result:
    """Result recorded against a test."""

    id: int
    test_id: int
    status_id: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Result":
        return cls(
            id=int(data["id"]),
            test_id=int(data.get("test_id") or 0),
            status_id=data.get("status_id"),
        )


# ---------------------------------------------------------------------------
# Local values
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TestStatus:
    """
    Status classification of an outcome.

    Attributes:
        value: TestRail status ID.
        text: Display text used in the result comment.
    """

    __test__ = False

    value: int
    text: str


PASSED = TestStatus(1, "Passed")
SKIPPED = TestStatus(2, "Skipped")
FAILED = TestStatus(5, "Failed")

STATUS_BY_NAME: Dict[str, TestStatus] = {
    "passed": PASSED,
    "skipped": SKIPPED,
    "failed": FAILED,
}


def parse_case_id(value: Any) -> int:
    """
    Normalize a case identifier to its numeric form.

    Accepts ints, digit strings and "C"-prefixed strings ("C123").
    Anything else maps to 0, meaning "no mapping".
    """
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if text[:1] in ("C", "c"):
        text = text[1:]
    if not (text.isascii() and text.isdigit()):
        logger.warning(f"Invalid TestRail case ID '{value}', treating as unmapped")
        return 0
    return int(text)


@dataclass(frozen=True)
class Outcome:
    """
    Outcome of one executed test.

    Attributes:
        name: Test name.
        case_id: TestRail case ID; 0 means the test is not mapped.
        status: Status classification.
        errors: Captured failure/error texts.
        screenshots: Paths of screenshot files to attach.
    """

    name: str
    case_id: int
    status: TestStatus
    errors: Tuple[str, ...] = ()
    screenshots: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Outcome":
        """Build an outcome from an entry of a JSON outcomes file."""
        status = data.get("status", "passed")
        if isinstance(status, dict):
            status = TestStatus(int(status["value"]), str(status["text"]))
        else:
            key = str(status).lower()
            if key not in STATUS_BY_NAME:
                raise ValueError(
                    f"Unknown status '{status}' for test '{data.get('name', '')}'. "
                    f"Valid: {sorted(STATUS_BY_NAME)}"
                )
            status = STATUS_BY_NAME[key]

        return cls(
            name=data.get("name", ""),
            case_id=parse_case_id(data.get("case_id")),
            status=status,
            errors=_string_tuple(data, "errors"),
            screenshots=_string_tuple(data, "screenshots"),
        )


def _string_tuple(data: Dict[str, Any], key: str) -> Tuple[str, ...]:
    """Read an optional list of strings, rejecting scalars."""
    value = data.get(key)
    if value is None:
        return ()
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"'{key}' must be a list, got {type(value).__name__}")
    return tuple(str(v) for v in value)


@dataclass(frozen=True)
class ResultSubmission:
    """Result payload for one case in a batch submission."""

    case_id: int
    status_id: int
    comment: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "case_id": self.case_id,
            "status_id": self.status_id,
            "comment": self.comment,
        }

"""Text helpers for composing TestRail result comments."""

from __future__ import annotations

import re
from typing import Iterable

from testrail_reporter.testrail_client.models import TestStatus

# CSI / escape sequences emitted by colourised tracebacks and assertion diffs.
ANSI_ESCAPE_RE = re.compile(
    r"[\u001b\u009b][\[()#;?]*(?:[0-9]{1,4}(?:;[0-9]{0,4})*)?[0-9A-ORZcf-nqry=><]"
)


def strip_ansi(text: str) -> str:
    """Remove ANSI escape sequences from text."""
    return ANSI_ESCAPE_RE.sub("", text)


def compose_comment(status: TestStatus, errors: Iterable[str]) -> str:
    """
    Build the result comment: status line followed by the error log.

    Example:
        >>> compose_comment(TestStatus(5, "Failed"), ["\\x1b[31mAssertionError\\x1b[0m"])
        'Test Failed\\nAssertionError'
    """
    error_log = "\n".join(strip_ansi(e) for e in errors)
    return f"Test {status.text}\n{error_log}"

#!/usr/bin/env python
"""
TestRail Publish CLI.

Publishes test outcomes stored in a JSON file to TestRail.

Usage:
    python -m testrail_reporter --results outcomes.json
    python -m testrail_reporter --results outcomes.json --config testrail.yaml --agent chrome --agent firefox

Outcomes file format:
    {
      "agents": ["chrome 120 / Linux"],
      "outcomes": [
        {"name": "login works", "case_id": "C12", "status": "passed"},
        {"name": "logout works", "case_id": 13, "status": "failed",
         "errors": ["AssertionError: ..."], "screenshots": ["shots/logout.png"]}
      ]
    }
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from loguru import logger

from testrail_reporter.config.loader import ConfigLoader, ConfigurationError
from testrail_reporter.config.schema_registry import SchemaRegistry, SchemaValidationError
from testrail_reporter.testrail_client.api_client import TestRailClient, TestRailClientError
from testrail_reporter.testrail_client.models import Outcome
from testrail_reporter.testrail_client.result_publisher import ResultPublisher
from testrail_reporter.testrail_client.run_manager import RunManager

OUTCOMES_SCHEMA = "outcomes_schema"


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments for result publishing."""
    parser = argparse.ArgumentParser(
        prog="testrail-publish",
        description="TestRail Reporter — publish test outcomes to TestRail",
    )
    parser.add_argument(
        "--results",
        type=str,
        required=True,
        help="Path to the JSON outcomes file",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to the reporter config file (default: testrail.yaml if present)",
    )
    parser.add_argument(
        "--agent",
        action="append",
        default=[],
        help="Agent label for the run name; repeatable, overrides the file's agents",
    )
    return parser.parse_args(argv)


def load_outcomes(path: str | Path) -> Tuple[List[Outcome], List[str]]:
    """
    Read outcomes and agent labels from a JSON outcomes file.

    Raises:
        ConfigurationError: If the file cannot be read, does not match the
            outcomes schema, or has an invalid entry.
    """
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Failed to read outcomes file {path}: {e}") from e

    if isinstance(data, list):
        data = {"outcomes": data}
    try:
        SchemaRegistry().validate(data, OUTCOMES_SCHEMA)
    except SchemaValidationError as e:
        raise ConfigurationError(f"Invalid outcomes file {path}: {e}") from e

    try:
        outcomes = [Outcome.from_dict(entry) for entry in data["outcomes"]]
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid outcome entry in {path}: {e}") from e

    return outcomes, [str(a) for a in data.get("agents", [])]


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point; returns the process exit code."""
    args = parse_args(argv)

    logger.info("=" * 60)
    logger.info("TestRail Reporter — publish results")
    logger.info("=" * 60)

    try:
        settings = ConfigLoader().load_settings(args.config)
        outcomes, agents = load_outcomes(args.results)
    except ConfigurationError as e:
        logger.error(f"Error: {e}")
        return 1

    if not settings.enabled:
        logger.info("TestRail reporting is disabled, nothing to do")
        return 0

    agents = args.agent or agents
    logger.info(f"Outcomes: {len(outcomes)} from {args.results}, agents: {agents}")

    client = TestRailClient(config=settings.to_client_config())
    publisher = ResultPublisher(
        client,
        settings.to_publish_target(),
        run_manager=RunManager(
            client,
            close_after_days=settings.run_close_after_days,
            close_wait_timeout_sec=settings.close_wait_timeout_sec,
        ),
    )

    try:
        client.test_connection()
        publisher.publish_test_run(outcomes, agents)
    except TestRailClientError as e:
        logger.error(f"Error: {e}")
        return 1
    finally:
        client.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())

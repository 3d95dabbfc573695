"""
Identifier Resolver Module.

Turns the human-friendly project/plan/suite identifiers found in the
configuration into the numeric IDs TestRail uses.

An identifier is either an ID (optionally carrying TestRail's display
prefix: "P12" for projects, "R7" for plans, "S3" for suites) or an exact
entity name. IDs take precedence over names.
"""

from __future__ import annotations

from typing import Callable, Iterable, List, Optional, TypeVar, Union

from loguru import logger

from testrail_reporter.testrail_client.api_client import (
    TestRailClient,
    TestRailClientError,
)

T = TypeVar("T")

IdentifierValue = Union[str, int, None]


class ResolutionError(TestRailClientError):
    """Raised when a configured project, plan or suite cannot be resolved."""


def find_first(items: Iterable[T], predicate: Callable[[T], bool]) -> Optional[T]:
    """Return the first item matching the predicate, or None."""
    return next((item for item in items if predicate(item)), None)


def parse_prefixed_id(value: IdentifierValue, prefix: str) -> Optional[int]:
    """
    Parse an identifier such as "P12" (prefix "P") into 12.

    Returns None for empty values. Bare integers and digit strings are
    accepted as-is.

    Raises:
        ResolutionError: If the value is not a valid ID.
    """
    if value is None or value == "":
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if text[:1].upper() == prefix:
        text = text[1:]
    if not (text.isascii() and text.isdigit()):
        raise ResolutionError(f"Invalid identifier '{value}' (expected {prefix}<number>)")
    return int(text)


class IdentifierResolver:
    """
    Resolves project, plan and suite identifiers against a TestRail instance.

    Usage::

        resolver = IdentifierResolver(client)
        project_id = resolver.resolve_project("Website QA", None)
        plan_id = resolver.resolve_plan(None, "R7", project_id)   # -> 7
        suite_id = resolver.resolve_suite(None, None, project_id)  # -> None
    """

    PROJECT = ("Project", "P")
    PLAN = ("Plan", "R")
    SUITE = ("Suite", "S")

    def __init__(self, client: TestRailClient) -> None:
        self._client = client

    def resolve_project(self, name: Optional[str], identifier: IdentifierValue) -> int:
        """
        Resolve the target project. A project is always required.

        Raises:
            ResolutionError: If the project list cannot be fetched or
                no project matches.
        """
        project_id = self._resolve(
            self.PROJECT, name, identifier, self._client.get_projects
        )
        if project_id is None:
            raise ResolutionError("Project does not exist.")
        return project_id

    def resolve_plan(
        self,
        name: Optional[str],
        identifier: IdentifierValue,
        project_id: int,
    ) -> Optional[int]:
        """Resolve an optional plan within a project. None when not requested."""
        if not name and not identifier:
            return None
        plan_id = self._resolve(
            self.PLAN, name, identifier, lambda: self._client.get_plans(project_id)
        )
        if plan_id is None:
            raise ResolutionError("Plan does not exist.")
        return plan_id

    def resolve_suite(
        self,
        name: Optional[str],
        identifier: IdentifierValue,
        project_id: int,
    ) -> Optional[int]:
        """Resolve an optional suite within a project. None when not requested."""
        if not name and not identifier:
            return None
        suite_id = self._resolve(
            self.SUITE, name, identifier, lambda: self._client.get_suites(project_id)
        )
        if suite_id is None:
            raise ResolutionError("Suite does not exist.")
        return suite_id

    def _resolve(
        self,
        kind: tuple,
        name: Optional[str],
        identifier: IdentifierValue,
        fetch: Callable[[], List],
    ) -> Optional[int]:
        """Fetch the entity list and match by ID first, else by exact name."""
        label, prefix = kind
        wanted_id = parse_prefixed_id(identifier, prefix)

        try:
            entities = fetch()
        except TestRailClientError as e:
            logger.error(f"Could not retrieve {label.lower()} list: {e}")
            raise ResolutionError(
                f"Could not retrieve {label.lower()} list: {e}",
                status_code=e.status_code,
            ) from e

        if wanted_id is not None:
            entity = find_first(entities, lambda e: e.id == wanted_id)
        else:
            entity = find_first(entities, lambda e: e.name == name)

        if entity is None or not entity.id:
            logger.error(f"{label} does not exist: name={name!r}, id={identifier!r}")
            return None

        logger.info(f"{label} name (id) {entity.name} ({entity.id})")
        return entity.id

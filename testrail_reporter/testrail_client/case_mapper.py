"""
Case Mapper Module.

Maps pytest functions to TestRail case IDs through the
@pytest.mark.testrail("C123") marker.

The mapper supports:
- Collecting mappings from collected pytest items.
- Lookup of the case ID for a pytest nodeid (0 when unmapped).
- Reporting which tests carry no case ID.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Set

from loguru import logger

from testrail_reporter.testrail_client.models import parse_case_id

MARKER_NAME = "testrail"


@dataclass
class CaseMapping:
    """
    Link between a pytest test and a TestRail case.

    Attributes:
        case_id: Numeric TestRail case ID.
        nodeid: Pytest node ID.
        function_name: Pytest function name.
    """

    case_id: int
    nodeid: str
    function_name: str = ""


class CaseMapper:
    """
    Maps pytest nodeids to TestRail case IDs.

    A test carrying several testrail markers is mapped to the closest one
    (the marker applied directly to the function wins over class markers).

    Usage::

        mapper = CaseMapper()
        mapper.collect_from_items(items)
        case_id = mapper.get_case_id("tests/test_login.py::test_valid_login")
    """

    def __init__(self) -> None:
        self._nodeid_to_mapping: Dict[str, CaseMapping] = {}
        self._unmapped_nodeids: Set[str] = set()

    def collect_from_items(self, items: list) -> None:
        """
        Collect case mappings from pytest collected items.

        Args:
            items: List of pytest.Item objects from collection.
        """
        self._nodeid_to_mapping.clear()
        self._unmapped_nodeids.clear()

        for item in items:
            marker = item.get_closest_marker(MARKER_NAME)
            case_id = parse_case_id(marker.args[0]) if marker and marker.args else 0

            if case_id > 0:
                self._nodeid_to_mapping[item.nodeid] = CaseMapping(
                    case_id=case_id,
                    nodeid=item.nodeid,
                    function_name=item.name,
                )
            else:
                self._unmapped_nodeids.add(item.nodeid)

        logger.info(
            f"CaseMapper collected: {len(self._nodeid_to_mapping)} mapped, "
            f"{len(self._unmapped_nodeids)} unmapped tests"
        )

    def get_case_id(self, nodeid: str) -> int:
        """Return the case ID for a nodeid, or 0 if the test is unmapped."""
        mapping = self._nodeid_to_mapping.get(nodeid)
        return mapping.case_id if mapping else 0

    def get_unmapped_nodeids(self) -> Set[str]:
        """Return nodeids of tests without a testrail marker."""
        return set(self._unmapped_nodeids)

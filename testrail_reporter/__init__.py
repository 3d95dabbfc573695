"""
TestRail Reporter - Core Source Package.

This package contains the core logic for:
- TestRail Client: API access, identifier resolution, run lifecycle and
  result publishing.
- Configuration: Reporter settings loading and validation.
- Plugin: Pytest integration collecting outcomes and publishing them.
"""

__version__ = "0.1.0"

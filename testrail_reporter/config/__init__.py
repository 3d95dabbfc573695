"""
Configuration Management Module.

Handles loading and validation of:
- TestRail reporter configuration files (YAML/JSON).
- Environment variable overrides.
"""

from testrail_reporter.config.loader import ConfigLoader, ConfigurationError
from testrail_reporter.config.schema_registry import SchemaRegistry, SchemaValidationError
from testrail_reporter.config.settings import TestRailSettings

__all__ = [
    "ConfigLoader",
    "ConfigurationError",
    "SchemaRegistry",
    "SchemaValidationError",
    "TestRailSettings",
]

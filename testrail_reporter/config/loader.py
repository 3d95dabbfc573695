"""
Configuration Loader Module.

Loads the reporter configuration:
- YAML or JSON files, validated against the bundled JSON schema.
- Environment variable overrides (TESTRAIL_HOST, PROJECT_ID, ...).
- A final completeness check producing TestRailSettings.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from loguru import logger

from testrail_reporter.config.schema_registry import SchemaRegistry
from testrail_reporter.config.settings import TestRailSettings


class ConfigurationError(Exception):
    """Raised when a configuration file is invalid or cannot be loaded."""

    pass


class ConfigLoader:
    """
    Configuration loader with schema validation.

    Attributes:
        config_dir: Base directory for relative configuration paths.
        schema_registry: Registry of JSON schemas for validation.
    """

    SUPPORTED_EXTENSIONS = {".yaml", ".yml", ".json"}
    SETTINGS_SCHEMA = "testrail_config_schema"
    DEFAULT_FILENAMES = ("testrail.yaml", "testrail.yml", "testrail.json")

    def __init__(
        self,
        config_dir: str | Path = ".",
        schema_dir: str | Path | None = None,
    ) -> None:
        """
        Initialize the configuration loader.

        Args:
            config_dir: Directory searched for relative config paths.
            schema_dir: Directory with JSON schema files. Defaults to the
                schemas bundled with the package.
        """
        self.config_dir = Path(config_dir)
        self.schema_registry = SchemaRegistry(schema_dir)
        logger.debug(f"ConfigLoader initialized — config_dir={self.config_dir}")

    def load(
        self,
        filename: str | Path,
        schema_name: Optional[str] = None,
        *,
        validate: bool = True,
    ) -> Dict[str, Any]:
        """
        Load a configuration file with optional schema validation.

        Raises:
            ConfigurationError: If the file cannot be parsed or fails validation.
            FileNotFoundError: If the configuration file does not exist.
        """
        file_path = self._resolve_path(filename)
        logger.info(f"Loading configuration: {file_path}")
        data = self._read_file(file_path)

        if validate:
            self._validate(data, schema_name or self.SETTINGS_SCHEMA)

        return data

    def load_settings(
        self,
        filename: str | Path | None = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> TestRailSettings:
        """
        Build reporter settings from a file (optional) and the environment.

        Without an explicit filename the default names (testrail.yaml, ...)
        are looked up in config_dir; if none exists only the environment
        is used.

        Raises:
            ConfigurationError: If the file is invalid, an environment value
                cannot be parsed, or required settings are missing while the
                reporter is enabled.
        """
        environ = os.environ if environ is None else environ
        path = Path(filename) if filename else self._find_default_file()

        section: Dict[str, Any] = {}
        if path is not None:
            try:
                section = self.load(path).get("testrail", {})
            except FileNotFoundError as e:
                raise ConfigurationError(str(e)) from e

        try:
            settings = TestRailSettings.from_dict(section).apply_env(environ)
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment override: {e}") from e

        missing = settings.missing_fields()
        if settings.enabled and missing:
            raise ConfigurationError(
                f"Missing required TestRail settings: {', '.join(missing)}"
            )

        logger.debug(
            f"TestRail settings loaded — host={settings.host}, "
            f"project={settings.project or settings.project_id}, enabled={settings.enabled}"
        )
        return settings

    def _find_default_file(self) -> Optional[Path]:
        for name in self.DEFAULT_FILENAMES:
            candidate = self.config_dir / name
            if candidate.exists():
                return candidate
        return None

    def _resolve_path(self, filename: str | Path) -> Path:
        """Resolve a filename to a full path, checking config_dir first."""
        path = Path(filename)
        if path.is_absolute() and path.exists():
            return path

        config_path = self.config_dir / filename
        if config_path.exists():
            return config_path

        if path.exists():
            return path

        raise FileNotFoundError(
            f"Configuration file not found: {filename} "
            f"(searched in {self.config_dir} and current directory)"
        )

    def _read_file(self, file_path: Path) -> Dict[str, Any]:
        """Read and parse a YAML or JSON file."""
        suffix = file_path.suffix.lower()
        if suffix not in self.SUPPORTED_EXTENSIONS:
            raise ConfigurationError(
                f"Unsupported file format '{suffix}'. "
                f"Supported: {sorted(self.SUPPORTED_EXTENSIONS)}"
            )

        try:
            content = file_path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"Failed to read file {file_path}: {e}") from e

        try:
            if suffix in {".yaml", ".yml"}:
                data = yaml.safe_load(content)
            else:
                data = json.loads(content)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Failed to parse {file_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Configuration file must contain a mapping (dict), "
                f"got {type(data).__name__}: {file_path}"
            )

        return data

    def _validate(self, data: Dict[str, Any], schema_name: str) -> None:
        """Validate configuration data against a JSON schema."""
        try:
            self.schema_registry.validate(data, schema_name)
        except Exception as e:
            raise ConfigurationError(
                f"Configuration validation failed against schema '{schema_name}': {e}"
            ) from e

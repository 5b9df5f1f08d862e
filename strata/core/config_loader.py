"""Settings loader for strata.yaml files."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from .errors import ConfigError
from .expression import DEFAULT_MAX_PASSES

SETTINGS_FILE_NAME = "strata.yaml"


class ExpressionSettings(BaseModel):
    max_passes: int = Field(default=DEFAULT_MAX_PASSES, ge=1)
    mask_unresolved: bool = True
    strict: bool = False


class FilterSettings(BaseModel):
    metadata_filtered: bool = True


class SourceSettings(BaseModel):
    """A YAML file source declared in the settings file."""

    path: Path
    name: Optional[str] = None
    ordinal: int = 0
    writable: bool = True


class StrataSettings(BaseModel):
    """Root settings model, every section is optional."""

    expressions: ExpressionSettings = Field(default_factory=ExpressionSettings)
    filters: FilterSettings = Field(default_factory=FilterSettings)
    sources: List[SourceSettings] = Field(default_factory=list)
    required_resolvers: List[str] = Field(default_factory=list)


class ConfigLoader:
    """Handles loading and parsing of strata.yaml settings files."""

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        """Initialize config loader.

        Args:
            config_path: Path to strata.yaml. If None, looks in the current
                directory and its parents.
        """
        self.config_path = self._find_config_file(config_path)
        self._raw: Optional[Dict[str, Any]] = None

    def _find_config_file(
        self, config_path: Optional[Union[str, Path]] = None
    ) -> Optional[Path]:
        if config_path is not None:
            path = Path(config_path)
            if path.exists():
                return path
            return None

        current = Path.cwd()
        while True:
            candidate = current / SETTINGS_FILE_NAME
            if candidate.exists():
                return candidate
            if current == current.parent:
                return None
            current = current.parent

    def load(self) -> Dict[str, Any]:
        """Load the raw settings file.

        Returns:
            Parsed settings dictionary, or empty dict if there is no file.

        Raises:
            ConfigError: If the file is invalid YAML.
        """
        if self.config_path is None:
            return {}

        if self._raw is not None:
            return self._raw

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(
                f"Invalid {SETTINGS_FILE_NAME} at {self.config_path}: {e}",
                {"path": str(self.config_path)},
            ) from e
        except OSError as e:
            logger.warning(f"Could not read {SETTINGS_FILE_NAME} at {self.config_path}: {e}")
            return {}

        if not isinstance(data, dict):
            raise ConfigError(
                f"{SETTINGS_FILE_NAME} at {self.config_path} must contain a mapping",
                {"path": str(self.config_path)},
            )
        self._raw = data
        return self._raw

    def settings(self) -> StrataSettings:
        """Load and validate the settings.

        Relative source paths are resolved against the settings file's
        directory.
        """
        try:
            settings = StrataSettings.model_validate(self.load())
        except ValidationError as e:
            raise ConfigError(
                f"Invalid settings in {self.config_path}: {e}",
                {"path": str(self.config_path)},
            ) from e

        if self.config_path is not None:
            base = self.config_path.parent
            for source in settings.sources:
                if not source.path.is_absolute():
                    source.path = base / source.path
        return settings

"""
Configuration loader module.

Loads the optional ``dbaquery.json`` settings file:
- library/temp directories
- connection and query timeouts
- ODBC driver and encryption preferences
- named target aliases
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config") / "dbaquery.json"
CONFIG_ENV_VAR = "DBAQUERY_CONFIG"
LIBRARY_DIR_ENV_VAR = "DBAQUERY_LIBRARY_DIR"

# Bundled SMO assemblies ship next to the package
DEFAULT_LIBRARY_DIR = Path(__file__).resolve().parent.parent / "lib"


class Settings(BaseModel):
    """Runtime settings, all optional with working defaults."""

    model_config = ConfigDict(extra="ignore")

    library_dir: Path = Field(DEFAULT_LIBRARY_DIR, description="Directory holding the bundled SMO library")
    temp_dir: Path = Field(default_factory=lambda: Path(tempfile.gettempdir()), description="Where scoped temp files go")
    query_timeout: int = Field(600, description="Default query timeout in seconds")
    connect_timeout: int = Field(15, description="Connection timeout in seconds")
    odbc_driver: Optional[str] = Field(None, description="ODBC driver name; autodetected when unset")
    encrypt: bool = Field(False, description="Request an encrypted connection")
    trust_server_certificate: bool = Field(True, description="Skip server certificate validation")
    targets: Dict[str, str] = Field(default_factory=dict, description="Alias -> instance string")

    @field_validator("query_timeout", "connect_timeout")
    @classmethod
    def validate_timeouts(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Timeouts cannot be negative")
        return v

    def resolve_target(self, name: str) -> str:
        """Expand a configured alias, passing unknown names through."""
        return self.targets.get(name, name)


class ConfigLoader:
    """
    Load and validate the settings file.

    The file is optional: a missing default file yields default settings, a
    missing explicitly requested file is an error.
    """

    def __init__(self, config_path: str | Path | None = None):
        explicit = config_path or os.environ.get(CONFIG_ENV_VAR)
        self.required = bool(explicit)
        self.config_path = Path(explicit) if explicit else DEFAULT_CONFIG_PATH
        logger.debug("ConfigLoader using %s (required=%s)", self.config_path, self.required)

    def _load_json_file(self, filepath: Path, required: bool = True) -> dict | None:
        """
        Load and parse a JSON file with clear error messages.

        Raises:
            FileNotFoundError: If required file doesn't exist
            ValueError: If JSON is malformed or empty
            PermissionError: If file cannot be read
        """
        if not filepath.exists():
            if required:
                raise FileNotFoundError(f"Configuration file not found: {filepath}")
            logger.debug("Optional config not found: %s", filepath)
            return None

        try:
            content = filepath.read_text(encoding="utf-8")
        except PermissionError as e:
            raise PermissionError(
                f"Cannot read config file (permission denied): {filepath}"
            ) from e

        if not content.strip():
            raise ValueError(f"Configuration file is empty: {filepath}")

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise ValueError(
                f"Invalid JSON in config file: {filepath}\n"
                f"Error at line {e.lineno}, column {e.colno}: {e.msg}"
            ) from e

        if not isinstance(data, dict):
            raise ValueError(f"Configuration root must be an object: {filepath}")
        return data

    def load_settings(self) -> Settings:
        """
        Load settings, applying environment overrides.

        Raises:
            FileNotFoundError: If an explicitly requested file doesn't exist
            ValueError: If the file is invalid
        """
        data = self._load_json_file(self.config_path, required=self.required) or {}

        library_override = os.environ.get(LIBRARY_DIR_ENV_VAR)
        if library_override:
            data["library_dir"] = library_override

        try:
            settings = Settings.model_validate(data)
        except ValidationError as e:
            raise ValueError(f"Invalid settings in {self.config_path}:\n{e}") from e

        logger.debug(
            "Settings loaded: library_dir=%s, %d target aliases",
            settings.library_dir, len(settings.targets),
        )
        return settings

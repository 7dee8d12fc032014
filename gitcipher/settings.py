"""
Settings file loading, validation, and normalization.

This module answers one question:
    "How does the user want gpg to be invoked?"

Responsibilities:
- Load the optional `.git-cipher/config.yml` file
- Validate structure and version
- Normalize defaults
- Expose a clean Python representation

This module does NOT:
- Read or write git configuration
- Touch secrets
- Run gpg
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .config import DEFAULT_GPG_PROGRAM, SUPPORTED_SETTINGS_VERSION
from .errors import ConfigError


# ---------------------------------------------------------------------------
# Data models
# ---------------------------------------------------------------------------


@dataclass
class GpgConfig:
    program: str = DEFAULT_GPG_PROGRAM
    recipient: Optional[str] = None


@dataclass
class Settings:
    version: int = SUPPORTED_SETTINGS_VERSION
    gpg: GpgConfig = field(default_factory=GpgConfig)

    # ------------------------------------------------------------------
    # Loading API
    # ------------------------------------------------------------------

    @classmethod
    def load(cls, path: str | Path) -> "Settings":
        """
        Load and validate a settings file.

        A missing file is not an error; defaults are returned.

        Raises:
            ConfigError: if the file is unreadable or invalid
        """

        path = Path(path)
        if not path.exists():
            return cls()

        try:
            with path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read settings file {path}: {e}") from e

        if raw is None:
            return cls()
        if not isinstance(raw, dict):
            raise ConfigError(f"Settings file {path} must contain a mapping")

        return cls._from_dict(raw)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @classmethod
    def _from_dict(cls, data: Dict[str, Any]) -> "Settings":
        version = data.get("version", SUPPORTED_SETTINGS_VERSION)
        if version != SUPPORTED_SETTINGS_VERSION:
            raise ConfigError(f"Unsupported settings version: {version}")

        return cls(version=version, gpg=cls._parse_gpg(data.get("gpg") or {}))

    @staticmethod
    def _parse_gpg(data: Any) -> GpgConfig:
        if not isinstance(data, dict):
            raise ConfigError("Settings key 'gpg' must be a mapping")

        program = data.get("program", DEFAULT_GPG_PROGRAM)
        recipient = data.get("recipient")

        if not isinstance(program, str) or not program:
            raise ConfigError("Settings key 'gpg.program' must be a non-empty string")
        if recipient is not None and not isinstance(recipient, str):
            raise ConfigError("Settings key 'gpg.recipient' must be a string")

        return GpgConfig(program=program, recipient=recipient or None)

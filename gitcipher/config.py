"""
Global configuration and environment handling.

This module is responsible for:
- Defining the wire-format and protocol constants
- Naming the git filter/diff/merge drivers and their configuration keys
- Defining on-disk locations of public and private secrets
- Reading overrides from the environment

Nothing in this file should depend on:
- the filesystem
- git
- CLI arguments

If something here changes, every encrypted blob in every repository
changes with it.
"""

from __future__ import annotations

import os
from typing import Dict, Final, Optional

# ---------------------------------------------------------------------------
# Tool / format versioning
# ---------------------------------------------------------------------------

TOOL_VERSION: Final[str] = "0.1.0"

BLOB_MAGIC: Final[str] = "git-cipher"
BLOB_URL: Final[str] = "https://github.com/wincent/git-cipher"
BLOB_VERSION: Final[int] = 1
BLOB_ALGORITHM: Final[str] = "aes-256-cbc"
HEX_WRAP_WIDTH: Final[int] = 72

SUPPORTED_SETTINGS_VERSION: Final[int] = 1

# ---------------------------------------------------------------------------
# Key material sizes and scrypt cost
# ---------------------------------------------------------------------------

KEY_SIZE: Final[int] = 32
IV_SIZE: Final[int] = 16
MAC_SIZE: Final[int] = 32
KEY_SALT_SIZE: Final[int] = 64
PASSPHRASE_SIZE: Final[int] = 128

SCRYPT_N: Final[int] = 2 ** 14
SCRYPT_R: Final[int] = 8
SCRYPT_P: Final[int] = 1

# ---------------------------------------------------------------------------
# Git wiring
# ---------------------------------------------------------------------------

DRIVER_NAME: Final[str] = "git-cipher"
DEFAULT_TOOL_COMMAND: Final[str] = "git-cipher"

FILTER_REQUIRED_KEY: Final[str] = f"filter.{DRIVER_NAME}.required"
TEXTCONV_NOTES_REF: Final[str] = f"refs/notes/textconv/{DRIVER_NAME}"
ATTRIBUTES_FILE: Final[str] = ".gitattributes"

# ---------------------------------------------------------------------------
# On-disk layout
# ---------------------------------------------------------------------------

PUBLIC_SECRETS_DIR: Final[str] = ".git-cipher"
PUBLIC_SECRETS_FILE: Final[str] = "secrets.json.asc"
SETTINGS_FILE: Final[str] = "config.yml"
PRIVATE_SECRETS_DIR: Final[str] = "git-cipher"
PRIVATE_SECRETS_FILE: Final[str] = "secrets.json"

PRIVATE_DIR_MODE: Final[int] = 0o700
PRIVATE_FILE_MODE: Final[int] = 0o600

# ---------------------------------------------------------------------------
# Environment variable names
# ---------------------------------------------------------------------------

ENV_GPG_USER: Final[str] = "GPG_USER"
ENV_GPG_PROGRAM: Final[str] = "GIT_CIPHER_GPG"

DEFAULT_GPG_PROGRAM: Final[str] = "gpg"

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def filter_config(tool_command: str) -> Dict[str, str]:
    """
    Return the git configuration that wires the drivers to `tool_command`.

    `filter.<name>.required` is not included; it is the lock bit and
    only lock/unlock write it.
    """

    return {
        f"filter.{DRIVER_NAME}.clean": f"{tool_command} clean %f",
        f"filter.{DRIVER_NAME}.smudge": f"{tool_command} smudge %f",
        f"diff.{DRIVER_NAME}.textconv": f"{tool_command} textconv",
        f"diff.{DRIVER_NAME}.binary": "true",
        f"diff.{DRIVER_NAME}.cachetextconv": "true",
        f"merge.{DRIVER_NAME}.driver": f"{tool_command} merge %O %A %B %L %P",
        f"merge.{DRIVER_NAME}.name": f"{DRIVER_NAME} merge driver",
        "merge.renormalize": "true",
    }


def env_recipient() -> Optional[str]:
    """Return the asymmetric-encryption recipient from the environment, if set."""

    return os.getenv(ENV_GPG_USER) or None


def env_gpg_program() -> Optional[str]:
    return os.getenv(ENV_GPG_PROGRAM) or None

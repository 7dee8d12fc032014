"""
Shared utility helpers.

This module contains small, reusable helpers that do not belong
to cryptography, blob parsing, or git orchestration.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import List


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------


def chunk_text(text: str, size: int) -> List[str]:
    """Split text into fixed-size chunks; the last one may be shorter."""
    return [text[i : i + size] for i in range(0, len(text), size)]


def wrap_hex(data: bytes, width: int) -> str:
    """Hex-encode bytes and wrap the result at `width` columns."""
    return "\n".join(chunk_text(data.hex(), width))


_GLOB_SPECIAL = re.compile(r"([\\*?\[\]])")
_NEEDS_QUOTING = re.compile(r'[\s"]')


def escape_glob(path: str) -> str:
    """Backslash-escape wildcard characters so `path` only matches itself."""
    return _GLOB_SPECIAL.sub(r"\\\1", path)


def quote_attribute_path(path: str) -> str:
    """
    Turn a top-level-relative path into a .gitattributes pattern for exactly that file.

    The pattern is anchored with a leading `/`, so it neither matches
    same-named files in subdirectories nor starts with `#` or `!`.
    Wildcards and backslashes are escaped. Patterns with whitespace
    or quotes are wrapped in double quotes with C-style escaping.
    """
    pattern = "/" + escape_glob(path)
    if not _NEEDS_QUOTING.search(pattern):
        return pattern
    escaped = (
        pattern.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\t", "\\t")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
    )
    return f'"{escaped}"'


# ---------------------------------------------------------------------------
# Filesystem helpers
# ---------------------------------------------------------------------------


def ensure_parent_dir(path: Path) -> None:
    """Ensure the parent directory of a file exists."""
    path.parent.mkdir(parents=True, exist_ok=True)


def ensure_private_dir(path: Path, mode: int) -> None:
    """Create `path` (and parents) and force its permissions to `mode`."""
    path.mkdir(mode=mode, parents=True, exist_ok=True)
    os.chmod(path, mode)


def write_private_file(path: Path, data: bytes, mode: int) -> None:
    """Write `data` to `path`, truncating it, readable only per `mode`."""
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
    with os.fdopen(fd, "wb") as fh:
        os.fchmod(fh.fileno(), mode)
        fh.write(data)

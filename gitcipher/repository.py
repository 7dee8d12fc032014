"""
Repository context.

One `Repository` is built per process invocation. It resolves the
top-level and metadata directories, the settings file and the list
of managed files lazily, at most once, and never shares them with
other invocations.

Everything git-related the core needs goes through here:
- reading and writing configuration (driver wiring, the lock bit)
- enumerating managed files
- appending .gitattributes entries
- the working tree reset and dirty check used by lock/unlock
- the three-way plaintext merge used by the merge driver
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from .config import (
    ATTRIBUTES_FILE,
    DRIVER_NAME,
    FILTER_REQUIRED_KEY,
    PUBLIC_SECRETS_DIR,
    SETTINGS_FILE,
    TEXTCONV_NOTES_REF,
    env_gpg_program,
    env_recipient,
    filter_config,
)
from .errors import CollaboratorError, ConfigError, GitCipherError
from .runner import CommandResult, Runner
from .settings import Settings
from .utils import escape_glob, quote_attribute_path

_MANAGED_PATHSPEC = f":(attr:filter={DRIVER_NAME})"


def attribute_line(path: str) -> str:
    """Return the .gitattributes line that opts `path` into every driver."""
    return f"{quote_attribute_path(path)}\tdiff={DRIVER_NAME}\tfilter={DRIVER_NAME}\tmerge={DRIVER_NAME}"


class Repository:
    def __init__(
        self,
        runner: Runner,
        cwd: Optional[Path] = None,
        gpg_program: Optional[str] = None,
        recipient: Optional[str] = None,
    ):
        self.runner = runner
        self.cwd = Path(cwd) if cwd else Path.cwd()
        self._gpg_program = gpg_program
        self._recipient = recipient

        # Lazy-loaded
        self._top_level: Optional[Path] = None
        self._metadata_dir: Optional[Path] = None
        self._settings: Optional[Settings] = None
        self._managed_files: Optional[List[str]] = None

    # ------------------------------------------------------------------
    # Locations
    # ------------------------------------------------------------------

    @property
    def top_level(self) -> Path:
        """Working tree root, resolved lazily."""
        if self._top_level is None:
            self._top_level = self._rev_parse("--show-toplevel")
        return self._top_level

    @property
    def metadata_dir(self) -> Path:
        """The `.git` directory (or its equivalent for worktrees), resolved lazily."""
        if self._metadata_dir is None:
            self._metadata_dir = self._rev_parse("--absolute-git-dir")
        return self._metadata_dir

    def _rev_parse(self, flag: str) -> Path:
        try:
            result = self.runner.run(["git", "rev-parse", flag], cwd=self.cwd)
        except CollaboratorError as e:
            raise ConfigError(f"Cannot run git: {e}") from e
        value = result.text.strip()
        if not result.ok or not value:
            raise ConfigError(f"Not a git repository (or `git rev-parse {flag}` failed): {self.cwd}")
        path = Path(value)
        return path if path.is_absolute() else (self.cwd / path).resolve()

    @property
    def public_dir(self) -> Path:
        return self.top_level / PUBLIC_SECRETS_DIR

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            self._settings = Settings.load(self.public_dir / SETTINGS_FILE)
        return self._settings

    @property
    def gpg_program(self) -> str:
        return self._gpg_program or env_gpg_program() or self.settings.gpg.program

    @property
    def recipient(self) -> str:
        """
        Identity public secrets are encrypted to.

        Raises:
            ConfigError: if no flag, environment, setting or user.email supplies one
        """

        recipient = (
            self._recipient
            or env_recipient()
            or self.settings.gpg.recipient
            or self.config_get("user.email")
        )
        if not recipient:
            raise ConfigError("No gpg recipient configured (set GPG_USER or gpg.recipient in settings)")
        return recipient

    # ------------------------------------------------------------------
    # Git plumbing
    # ------------------------------------------------------------------

    def git(self, *args: str, stdin: Optional[bytes] = None, check: bool = True) -> CommandResult:
        """Run a git command from the top-level directory."""
        result = self.runner.run(["git", *args], stdin=stdin, cwd=self.top_level)
        return result.check() if check else result

    def config_get(self, key: str) -> Optional[str]:
        result = self.git("config", "--get", key, check=False)
        # Exit status 1 means "key not set".
        if result.returncode == 1:
            return None
        result.check()
        return result.text.strip()

    def config_set(self, key: str, value: str) -> None:
        self.git("config", "--local", key, value)

    @property
    def filter_required(self) -> bool:
        value = self.config_get(FILTER_REQUIRED_KEY)
        return value is not None and value.lower() in ("true", "yes", "on", "1")

    def set_filter_required(self, required: bool) -> None:
        self.config_set(FILTER_REQUIRED_KEY, "true" if required else "false")

    def initialize_filter_config(self, tool_command: str) -> None:
        """Register the filter, diff and merge drivers. Safe to repeat."""
        for key, value in filter_config(tool_command).items():
            self.config_set(key, value)

    # ------------------------------------------------------------------
    # Managed files
    # ------------------------------------------------------------------

    def list_managed_files(self) -> Optional[List[str]]:
        """
        Tracked files carrying the filter attribute, relative to the top-level.

        Returns None if enumeration fails; callers must not treat that as "no files".
        """

        if self._managed_files is None:
            self._managed_files = self._ls_files()
        return self._managed_files

    def list_untracked_managed_files(self) -> Optional[List[str]]:
        return self._ls_files("--others", "--exclude-standard")

    def list_historical_paths(self, name: str) -> List[str]:
        """
        Every path with basename `name` in reachable history, most recent first.

        Covers files that have since been deleted or moved out of the
        managed set. Returns an empty list if history cannot be read.
        """

        pathspec = f":(glob)**/{escape_glob(name)}"
        result = self.git("log", "--all", "--format=", "--name-only", "-z", "--", pathspec, check=False)
        if not result.ok:
            return []

        paths: List[str] = []
        for entry in result.stdout.decode("utf-8").split("\0"):
            entry = entry.strip("\n")
            if entry and entry not in paths:
                paths.append(entry)
        return paths

    def _ls_files(self, *flags: str) -> Optional[List[str]]:
        try:
            result = self.git("ls-files", "-z", *flags, "--", _MANAGED_PATHSPEC)
        except GitCipherError:
            return None
        return [p for p in result.stdout.decode("utf-8").split("\0") if p]

    def add_attributes(self, paths: Sequence[str | Path]) -> List[str]:
        """
        Append .gitattributes entries for `paths` not already present.

        Returns:
            List of top-level-relative paths that were added
        """

        attributes = self.top_level / ATTRIBUTES_FILE
        existing = attributes.read_text(encoding="utf-8") if attributes.exists() else ""
        present = set(existing.splitlines())

        added: List[str] = []
        lines: List[str] = []
        for path in paths:
            rel = self.relative_path(path)
            line = attribute_line(rel)
            if line in present or rel in added:
                continue
            added.append(rel)
            lines.append(line)

        if lines:
            prefix = "" if not existing or existing.endswith("\n") else "\n"
            with attributes.open("a", encoding="utf-8") as fh:
                fh.write(prefix + "\n".join(lines) + "\n")
        return added

    def relative_path(self, path: str | Path) -> str:
        """Express `path` (relative to cwd, or absolute) relative to the top-level."""
        absolute = Path(os.path.realpath(self.cwd / Path(path)))
        try:
            return absolute.relative_to(self.top_level.resolve()).as_posix()
        except ValueError:
            raise ConfigError(f"Path is outside the repository: {path}")

    # ------------------------------------------------------------------
    # Working tree
    # ------------------------------------------------------------------

    def is_dirty(self) -> bool:
        result = self.git("status", "--porcelain", "--untracked-files=no")
        return bool(result.stdout.strip())

    def reset_files(self, files: Sequence[str]) -> None:
        """Re-checkout `files` so they pass through the smudge filter again."""
        if not files:
            return
        for name in files:
            path = self.top_level / name
            if path.exists():
                path.unlink()
        self.git("checkout", "--", *files)

    def remove_textconv_cache(self) -> None:
        exists = self.git("show-ref", "--verify", "--quiet", TEXTCONV_NOTES_REF, check=False)
        if exists.ok:
            self.git("update-ref", "-d", TEXTCONV_NOTES_REF)

    def merge_text(self, ours: bytes, base: bytes, theirs: bytes, marker_size: int) -> Tuple[bytes, bool]:
        """
        Three-way merge of plaintext with `git merge-file`.

        Returns:
            (merged bytes, whether conflicts remain)
        """

        with tempfile.TemporaryDirectory(prefix="git-cipher-merge-") as tmp:
            names = []
            for label, data in (("ours", ours), ("base", base), ("theirs", theirs)):
                path = Path(tmp) / label
                fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
                with os.fdopen(fd, "wb") as fh:
                    fh.write(data)
                names.append(str(path))

            result = self.git(
                "merge-file", "-p", f"--marker-size={marker_size}",
                "-L", "ours", "-L", "base", "-L", "theirs",
                *names,
                check=False,
            )

        # merge-file exits with the number of conflicts, or >127 / <0 on error.
        if result.returncode < 0 or result.returncode > 127:
            result.check()
        return result.stdout, result.returncode > 0

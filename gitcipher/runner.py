"""
External command execution.

The core never spawns processes directly; it is handed a `Runner`
and asks it to run git or gpg. Tests substitute a scripted fake.
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, Sequence

from .errors import CollaboratorError


@dataclass(frozen=True)
class CommandResult:
    args: Sequence[str]
    returncode: int
    stdout: bytes
    stderr: bytes

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")

    def check(self) -> "CommandResult":
        """Raise CollaboratorError unless the command exited 0."""
        if not self.ok:
            raise CollaboratorError(
                self.args,
                self.returncode,
                self.stderr.decode("utf-8", errors="replace"),
            )
        return self


class Runner(Protocol):
    def run(
        self,
        args: Sequence[str],
        stdin: Optional[bytes] = None,
        cwd: Optional[Path] = None,
    ) -> CommandResult:
        ...


class SubprocessRunner:
    """Runs commands with `subprocess.run`, capturing stdout and stderr."""

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout

    def run(
        self,
        args: Sequence[str],
        stdin: Optional[bytes] = None,
        cwd: Optional[Path] = None,
    ) -> CommandResult:
        try:
            proc = subprocess.run(
                list(args),
                input=stdin if stdin is not None else b"",
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=str(cwd) if cwd else None,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as e:
            raise CollaboratorError(args, reason=f"command not found: {args[0]}") from e
        except subprocess.TimeoutExpired as e:
            raise CollaboratorError(args, reason=f"timed out after {self.timeout}s") from e
        except OSError as e:
            raise CollaboratorError(args, reason=str(e)) from e

        return CommandResult(args=list(args), returncode=proc.returncode, stdout=proc.stdout, stderr=proc.stderr)

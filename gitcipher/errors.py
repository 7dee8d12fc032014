"""
Error taxonomy.

Library modules raise these; only the CLI turns them into a
diagnostic line and an exit status.
"""

from __future__ import annotations

from typing import Optional, Sequence


class GitCipherError(RuntimeError):
    """Base class for every error the tool reports to the user."""


class ConfigError(GitCipherError):
    """Repository top-level, metadata directory or settings cannot be resolved."""


class SecretsError(GitCipherError):
    """Public secrets missing, undecryptable or malformed; private secrets malformed."""


class CryptoError(GitCipherError):
    """Key derivation or cipher failure."""


class BlobFormatError(GitCipherError):
    """A serialized blob is malformed and must not be stored."""


class CollaboratorError(GitCipherError):
    """An external command exited non-zero or could not be spawned."""

    def __init__(
        self,
        command: Sequence[str],
        returncode: Optional[int] = None,
        stderr: str = "",
        reason: Optional[str] = None,
    ):
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr

        name = " ".join(self.command[:2])
        if reason:
            message = f"`{name}` failed: {reason}"
        else:
            message = f"`{name}` exited with status {returncode}"
        detail = stderr.strip().splitlines()
        if detail:
            message += f" ({detail[-1]})"
        super().__init__(message)


class DirtyWorktreeError(GitCipherError):
    """Lock/unlock would discard uncommitted changes."""

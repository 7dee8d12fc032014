"""
Lock/unlock state machine.

Two states, derived rather than stored:
- Unlocked: private secrets exist and `filter.git-cipher.required` is true
- Locked: neither

Each transition is an ordered sequence of durable steps over a file
and git configuration, neither of which is transactional. Steps run
in the listed order and none is skipped.
"""

from __future__ import annotations

from typing import Callable, List, Optional

from .errors import ConfigError, DirtyWorktreeError, SecretsError
from .repository import Repository
from .secrets import Secrets, SecretsStore

Reporter = Callable[[str], None]


def _silent(msg: str) -> None:
    pass


class Lifecycle:
    def __init__(self, repo: Repository, store: Optional[SecretsStore] = None, report: Reporter = _silent):
        self.repo = repo
        self.store = store or SecretsStore(repo)
        self.report = report

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def is_unlocked(self) -> bool:
        return self.store.has_private() and self.repo.filter_required

    def _require_clean(self, action: str, force: bool) -> None:
        if not force and self.repo.is_dirty():
            raise DirtyWorktreeError(
                f"Working tree has uncommitted changes; {action} would discard them (use --force)"
            )

    def _managed_files(self) -> List[str]:
        files = self.repo.list_managed_files()
        if files is None:
            raise ConfigError("Cannot enumerate managed files")
        return files

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def initialize(self, tool_command: str, recipient: Optional[str] = None, force: bool = False) -> Secrets:
        """
        Create secrets for a repository that has none and leave it unlocked.

        Raises:
            SecretsError: public secrets already exist and `force` is not set
        """

        if self.store.public_path.exists() and not force:
            raise SecretsError(f"{self.store.public_path} already exists (use --force to overwrite)")

        recipient = recipient or self.repo.recipient

        self.report("Generating secrets")
        secrets = Secrets.generate()

        self.report(f"Encrypting public secrets for {recipient}")
        self.store.write_public(secrets, recipient)
        self.store.write_private(secrets)

        self.repo.initialize_filter_config(tool_command)
        self.repo.set_filter_required(True)
        return secrets

    def unlock(self, force: bool = False) -> List[str]:
        """
        Decrypt public secrets and re-checkout managed files as plaintext.

        Private secrets are written before `required` is set.

        Returns:
            Managed files that were reset
        """

        self._require_clean("unlock", force)
        files = self._managed_files()

        secrets = self.store.read_public()
        self.report("Decrypted public secrets")

        self.store.write_private(secrets)
        self.report(f"Wrote private secrets to {self.store.private_path}")

        self.repo.set_filter_required(True)

        self.repo.reset_files(files)
        self.report(f"Reset {len(files)} managed file(s)")
        return files

    def lock(self, force: bool = False) -> List[str]:
        """
        Forget the private secrets and re-checkout managed files as ciphertext.

        Private secrets are removed before `required` is cleared.

        Returns:
            Managed files that were reset
        """

        self._require_clean("lock", force)
        files = self._managed_files()

        self.store.remove_private()
        self.report("Removed private secrets")

        self.repo.remove_textconv_cache()

        self.repo.set_filter_required(False)

        self.repo.reset_files(files)
        self.report(f"Reset {len(files)} managed file(s)")
        return files

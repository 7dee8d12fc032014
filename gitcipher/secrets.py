"""
Secrets storage.

Secrets exist in two places:
- public: `<top-level>/.git-cipher/secrets.json.asc`, gpg-encrypted and
  committed
- private: `<git-dir>/git-cipher/secrets.json`, plaintext JSON readable
  only by the owner, present only while the repository is unlocked

`SecretsStore` is the only code that creates, reads or deletes the
private file.
"""

from __future__ import annotations

import binascii
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .config import (
    KEY_SIZE,
    PRIVATE_DIR_MODE,
    PRIVATE_FILE_MODE,
    PRIVATE_SECRETS_DIR,
    PRIVATE_SECRETS_FILE,
    PUBLIC_SECRETS_FILE,
)
from .crypto import derive_key, generate_key_salt, generate_random_passphrase
from .errors import CollaboratorError, SecretsError
from .repository import Repository
from .utils import ensure_parent_dir, ensure_private_dir, write_private_file


# ---------------------------------------------------------------------------
# Data models
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Secrets:
    authentication_key: bytes
    encryption_key: bytes
    salt: bytes

    @classmethod
    def generate(cls) -> "Secrets":
        """
        Create fresh key material.

        The two keys come from independent random passphrases so that
        encryption and authentication never share a key.
        """

        salt = generate_key_salt()
        return cls(
            authentication_key=derive_key(generate_random_passphrase(), salt),
            encryption_key=derive_key(generate_random_passphrase(), salt),
            salt=salt,
        )

    def to_json(self) -> bytes:
        return json.dumps(
            {
                "authenticationKey": self.authentication_key.hex(),
                "encryptionKey": self.encryption_key.hex(),
                "salt": self.salt.hex(),
            },
            indent=2,
        ).encode("utf-8") + b"\n"

    @classmethod
    def from_json(cls, data: bytes, source: str = "secrets") -> "Secrets":
        """
        Parse and validate a secrets document.

        Raises:
            SecretsError: if the document is not a JSON object with the
                three required hex string fields
        """

        try:
            raw = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise SecretsError(f"{source}: not valid JSON") from e

        if not isinstance(raw, dict):
            raise SecretsError(f"{source}: expected a JSON object")

        return cls(
            authentication_key=_hex_field(raw, "authenticationKey", source, KEY_SIZE),
            encryption_key=_hex_field(raw, "encryptionKey", source, KEY_SIZE),
            salt=_hex_field(raw, "salt", source),
        )


def _hex_field(raw: Dict[str, Any], name: str, source: str, size: Optional[int] = None) -> bytes:
    value = raw.get(name)
    if not isinstance(value, str) or not value:
        raise SecretsError(f"{source}: missing string field {name!r}")
    try:
        decoded = binascii.unhexlify(value)
    except (binascii.Error, ValueError) as e:
        raise SecretsError(f"{source}: field {name!r} is not valid hex") from e
    if size is not None and len(decoded) != size:
        raise SecretsError(f"{source}: field {name!r} must be {size} bytes")
    return decoded


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


class SecretsStore:
    def __init__(self, repo: Repository):
        self.repo = repo

    @property
    def public_path(self) -> Path:
        return self.repo.public_dir / PUBLIC_SECRETS_FILE

    @property
    def private_dir(self) -> Path:
        return self.repo.metadata_dir / PRIVATE_SECRETS_DIR

    @property
    def private_path(self) -> Path:
        return self.private_dir / PRIVATE_SECRETS_FILE

    # ------------------------------------------------------------------
    # Public (committed, gpg-encrypted)
    # ------------------------------------------------------------------

    def read_public(self) -> Secrets:
        """
        Decrypt and validate the committed secrets document.

        Raises:
            SecretsError: if it is missing, gpg cannot decrypt it, or it is malformed
        """

        path = self.public_path
        if not path.exists():
            raise SecretsError(f"Public secrets not found: {path}")

        args = [self.repo.gpg_program, "--batch", "--quiet", "--decrypt", str(path)]
        try:
            result = self.repo.runner.run(args, cwd=self.repo.top_level).check()
        except CollaboratorError as e:
            raise SecretsError(f"Cannot decrypt {path}: {e}") from e

        return Secrets.from_json(result.stdout, source=str(path))

    def write_public(self, secrets: Secrets, recipient: str) -> None:
        path = self.public_path
        ensure_parent_dir(path)

        args = [
            self.repo.gpg_program, "--batch", "--yes", "--armor",
            "--encrypt", "--recipient", recipient,
            "--output", str(path),
        ]
        try:
            self.repo.runner.run(args, stdin=secrets.to_json(), cwd=self.repo.top_level).check()
        except CollaboratorError as e:
            raise SecretsError(f"Cannot encrypt secrets for {recipient}: {e}") from e

    # ------------------------------------------------------------------
    # Private (local, plaintext, owner-only)
    # ------------------------------------------------------------------

    def write_private(self, secrets: Secrets) -> None:
        ensure_private_dir(self.private_dir, PRIVATE_DIR_MODE)
        write_private_file(self.private_path, secrets.to_json(), PRIVATE_FILE_MODE)

    def read_private(self) -> Optional[Secrets]:
        """
        Return the local secrets, or None while the repository is locked.

        Raises:
            SecretsError: if the file exists but is malformed or unreadable
        """

        path = self.private_path
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise SecretsError(f"Cannot read {path}: {e}") from e
        return Secrets.from_json(data, source=str(path))

    def remove_private(self) -> None:
        try:
            self.private_path.unlink()
        except FileNotFoundError:
            pass

    def has_private(self) -> bool:
        return self.private_path.exists()

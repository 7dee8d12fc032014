"""
Per-file content transformation.

Git invokes one of these per file: clean when staging, smudge on
checkout, reveal for diff/log/show, merge for three-way merges.
Each function depends only on its arguments (operation, path, bytes
and the secrets, or None while locked) and reports what it did via
`FilterResult.status`.

This module is intentionally dumb about where secrets come from and
how git is driven.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Tuple

from .blob import AlreadyDecrypted, EncryptedBlob, Empty, ParseError, Success, classify, serialize
from .crypto import decrypt, encrypt, generate_file_salt, mac, verify
from .errors import BlobFormatError, CryptoError, SecretsError
from .secrets import Secrets


class FilterStatus(enum.Enum):
    ENCRYPTED = "encrypted"
    DECRYPTED = "decrypted"
    EMPTY = "empty"
    ALREADY_ENCRYPTED = "already-encrypted"
    LOCKED = "locked"
    PLAINTEXT = "plaintext"
    CORRUPT = "corrupt"
    TAMPERED = "tampered"
    UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class FilterResult:
    output: bytes
    status: FilterStatus
    detail: str = ""

    @property
    def failed(self) -> bool:
        return self.status is FilterStatus.TAMPERED


@dataclass(frozen=True)
class MergeResult:
    output: bytes
    conflicted: bool


MergeFunc = Callable[[bytes, bytes, bytes, int], Tuple[bytes, bool]]


# ---------------------------------------------------------------------------
# Clean (working tree -> object store)
# ---------------------------------------------------------------------------


def encrypt_contents(path: str, contents: bytes, secrets: Secrets) -> bytes:
    """Encrypt-then-MAC `contents` and serialize the blob."""
    iv = generate_file_salt(path, contents, secrets.salt)
    ciphertext = encrypt(contents, secrets.encryption_key, iv)
    tag = mac(path, iv, ciphertext, secrets.authentication_key)
    return serialize(EncryptedBlob(iv=iv, ciphertext=ciphertext, mac=tag))


def clean(path: str, contents: bytes, secrets: Optional[Secrets]) -> FilterResult:
    """
    Encrypt plaintext for storage.

    Raises:
        SecretsError: plaintext arrived while the repository is locked
        BlobFormatError: input starts like a blob but is malformed
        CryptoError: input is a blob whose MAC does not verify
    """

    parsed = classify(contents)

    if isinstance(parsed, Empty):
        return FilterResult(contents, FilterStatus.EMPTY)

    if isinstance(parsed, Success):
        if secrets is not None and not _verified(path, parsed.blob, secrets):
            raise CryptoError(f"{path}: already-encrypted contents fail verification")
        return FilterResult(contents, FilterStatus.ALREADY_ENCRYPTED)

    if isinstance(parsed, ParseError):
        raise BlobFormatError(f"{path}: refusing to store malformed blob ({parsed.reason})")

    if isinstance(parsed, AlreadyDecrypted):
        if secrets is None:
            raise SecretsError(f"{path}: cannot encrypt while the repository is locked")
        return FilterResult(encrypt_contents(path, contents, secrets), FilterStatus.ENCRYPTED)

    raise TypeError(f"unexpected parse result: {parsed!r}")


# ---------------------------------------------------------------------------
# Smudge / reveal (object store -> working tree or display)
# ---------------------------------------------------------------------------


def _verified(path: str, blob: EncryptedBlob, secrets: Secrets) -> bool:
    return verify(blob.mac, path, blob.iv, blob.ciphertext, secrets.authentication_key)


def smudge(path: str, contents: bytes, secrets: Optional[Secrets]) -> FilterResult:
    """
    Decrypt stored contents.

    While locked the stored bytes pass through untouched. A blob whose
    MAC does not verify yields TAMPERED with no output.
    """

    if not contents:
        return FilterResult(contents, FilterStatus.EMPTY)
    if secrets is None:
        return FilterResult(contents, FilterStatus.LOCKED)

    parsed = classify(contents)

    if isinstance(parsed, AlreadyDecrypted):
        return FilterResult(contents, FilterStatus.PLAINTEXT, f"{path}: contents are not encrypted")
    if isinstance(parsed, ParseError):
        return FilterResult(contents, FilterStatus.CORRUPT, f"{path}: {parsed.reason}")
    if isinstance(parsed, Empty):
        return FilterResult(contents, FilterStatus.EMPTY)

    blob = parsed.blob
    if not _verified(path, blob, secrets):
        return FilterResult(b"", FilterStatus.TAMPERED, f"{path}: MAC verification failed")

    plaintext = decrypt(blob.ciphertext, secrets.encryption_key, blob.iv)
    return FilterResult(plaintext, FilterStatus.DECRYPTED)


def reveal(path: str, contents: bytes, secrets: Optional[Secrets]) -> FilterResult:
    """Read-only decode for diff, log and show; never writes anything back."""
    return smudge(path, contents, secrets)


def reveal_any(candidates: Iterable[str], contents: bytes, secrets: Optional[Secrets]) -> FilterResult:
    """
    Reveal `contents` when the originating path is unknown.

    Each candidate path is tried in turn; the first whose MAC verifies
    wins. Without a known path a MAC failure cannot be told apart from
    a missing candidate, so when none verifies the ciphertext is
    returned unchanged as UNRESOLVED rather than TAMPERED.
    """

    if not contents:
        return FilterResult(contents, FilterStatus.EMPTY)
    if secrets is None:
        return FilterResult(contents, FilterStatus.LOCKED)

    parsed = classify(contents)

    if isinstance(parsed, AlreadyDecrypted):
        return FilterResult(contents, FilterStatus.PLAINTEXT, "contents are not encrypted")
    if isinstance(parsed, ParseError):
        return FilterResult(contents, FilterStatus.CORRUPT, parsed.reason)
    if isinstance(parsed, Empty):
        return FilterResult(contents, FilterStatus.EMPTY)

    blob = parsed.blob
    tried = 0
    for path in candidates:
        tried += 1
        if _verified(path, blob, secrets):
            plaintext = decrypt(blob.ciphertext, secrets.encryption_key, blob.iv)
            return FilterResult(plaintext, FilterStatus.DECRYPTED)

    return FilterResult(
        contents,
        FilterStatus.UNRESOLVED,
        f"cannot determine which path these contents belong to ({tried} candidate(s) tried); "
        "showing ciphertext, pass --path to verify it",
    )


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def merge(
    path: str,
    ours: bytes,
    base: bytes,
    theirs: bytes,
    secrets: Optional[Secrets],
    merge_text: MergeFunc,
    marker_size: int = 7,
) -> MergeResult:
    """
    Three-way merge performed on plaintext.

    Every side is decoded through the smudge path, merged with
    `merge_text`, and the merged plaintext (conflict markers included)
    is encrypted again through the clean path.

    Raises:
        CryptoError: one of the sides fails MAC verification
        SecretsError: the repository is locked
    """

    if secrets is None:
        raise SecretsError(f"{path}: cannot merge while the repository is locked")

    views = []
    for label, contents in (("ours", ours), ("base", base), ("theirs", theirs)):
        result = smudge(path, contents, secrets)
        if result.failed:
            raise CryptoError(f"{path} ({label}): MAC verification failed")
        views.append(result.output)

    merged, conflicted = merge_text(views[0], views[1], views[2], marker_size)
    encoded = clean(path, merged, secrets)
    return MergeResult(output=encoded.output, conflicted=conflicted)

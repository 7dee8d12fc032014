"""
Encrypted blob wire format.

A blob is ASCII text: four `key = value` header lines followed by
three hex fields, each introduced by a `name =` line and wrapped at
a fixed width:

    magic = git-cipher
    url = https://github.com/wincent/git-cipher
    version = 1
    algorithm = aes-256-cbc
    iv =
    <hex>
    ciphertext =
    <hex>
    hmac =
    <hex>

This module answers one question:
    "What is in these bytes?"

It does NOT decrypt or verify anything.
"""

from __future__ import annotations

import binascii
from dataclasses import dataclass
from typing import List, Tuple, Union

from .config import (
    BLOB_ALGORITHM,
    BLOB_MAGIC,
    BLOB_URL,
    BLOB_VERSION,
    HEX_WRAP_WIDTH,
    IV_SIZE,
    MAC_SIZE,
)
from .utils import wrap_hex


# ---------------------------------------------------------------------------
# Data models
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EncryptedBlob:
    iv: bytes
    ciphertext: bytes
    mac: bytes
    magic: str = BLOB_MAGIC
    url: str = BLOB_URL
    version: int = BLOB_VERSION
    algorithm: str = BLOB_ALGORITHM


@dataclass(frozen=True)
class Empty:
    """Zero-length input; nothing to decode."""


@dataclass(frozen=True)
class AlreadyDecrypted:
    """Non-empty input that does not start with the blob header."""


@dataclass(frozen=True)
class Success:
    blob: EncryptedBlob


@dataclass(frozen=True)
class ParseError:
    reason: str


ParseResult = Union[AlreadyDecrypted, Success, ParseError]
Classification = Union[Empty, AlreadyDecrypted, Success, ParseError]


class _Malformed(Exception):
    pass


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def serialize(blob: EncryptedBlob) -> bytes:
    lines = [
        f"magic = {blob.magic}",
        f"url = {blob.url}",
        f"version = {blob.version}",
        f"algorithm = {blob.algorithm}",
        "iv =",
        wrap_hex(blob.iv, HEX_WRAP_WIDTH),
        "ciphertext =",
        wrap_hex(blob.ciphertext, HEX_WRAP_WIDTH),
        "hmac =",
        wrap_hex(blob.mac, HEX_WRAP_WIDTH),
    ]
    return ("\n".join(lines) + "\n").encode("ascii")


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def classify(contents: bytes) -> Classification:
    """Like `parse`, but zero-length input is reported as `Empty`."""
    if not contents:
        return Empty()
    return parse(contents)


def parse(contents: bytes) -> ParseResult:
    """
    Parse serialized blob bytes.

    Returns:
        AlreadyDecrypted: the first line is not the magic line
        Success: a well-formed blob of a supported version/algorithm
        ParseError: anything else that starts with the magic line
    """

    magic_line = f"magic = {BLOB_MAGIC}\n".encode("ascii")
    if not contents.startswith(magic_line):
        return AlreadyDecrypted()

    try:
        text = contents.decode("ascii")
    except UnicodeDecodeError:
        return ParseError("blob contains non-ASCII bytes")

    try:
        return Success(_parse_text(text))
    except _Malformed as e:
        return ParseError(str(e))


def _parse_text(text: str) -> EncryptedBlob:
    if not text.endswith("\n"):
        raise _Malformed("blob does not end with a newline")

    lines = text[:-1].split("\n")
    if len(lines) < 10:
        raise _Malformed("blob is truncated")

    _expect_header(lines[1], "url", BLOB_URL)
    version = _header_value(lines[2], "version")
    if version != str(BLOB_VERSION):
        raise _Malformed(f"unsupported version: {version}")
    algorithm = _header_value(lines[3], "algorithm")
    if algorithm != BLOB_ALGORITHM:
        raise _Malformed(f"unsupported algorithm: {algorithm}")

    pos = 4
    iv, pos = _hex_field(lines, pos, "iv", "ciphertext")
    ciphertext, pos = _hex_field(lines, pos, "ciphertext", "hmac")
    mac, pos = _hex_field(lines, pos, "hmac", None)

    if len(iv) != IV_SIZE:
        raise _Malformed(f"iv must be {IV_SIZE} bytes, got {len(iv)}")
    if len(mac) != MAC_SIZE:
        raise _Malformed(f"hmac must be {MAC_SIZE} bytes, got {len(mac)}")

    return EncryptedBlob(iv=iv, ciphertext=ciphertext, mac=mac)


def _header_value(line: str, key: str) -> str:
    prefix = f"{key} = "
    if not line.startswith(prefix):
        raise _Malformed(f"expected `{key}` header, got {line[:40]!r}")
    return line[len(prefix):]


def _expect_header(line: str, key: str, expected: str) -> None:
    value = _header_value(line, key)
    if value != expected:
        raise _Malformed(f"unexpected {key}: {value}")


def _hex_field(lines: List[str], pos: int, name: str, next_name: str | None) -> Tuple[bytes, int]:
    if pos >= len(lines) or lines[pos] != f"{name} =":
        raise _Malformed(f"expected `{name} =` field")
    pos += 1

    chunks: List[str] = []
    terminator = f"{next_name} =" if next_name else None
    while pos < len(lines) and lines[pos] != terminator:
        chunks.append(lines[pos])
        pos += 1

    if next_name and pos >= len(lines):
        raise _Malformed(f"missing `{next_name} =` field")
    if not chunks:
        raise _Malformed(f"`{name}` field is empty")

    # Every line but the last is exactly one wrap width long.
    for chunk in chunks[:-1]:
        if len(chunk) != HEX_WRAP_WIDTH:
            raise _Malformed(f"`{name}` field is not wrapped at {HEX_WRAP_WIDTH} columns")
    if not 0 < len(chunks[-1]) <= HEX_WRAP_WIDTH:
        raise _Malformed(f"`{name}` field is not wrapped at {HEX_WRAP_WIDTH} columns")

    digits = "".join(chunks)
    if digits != digits.lower():
        raise _Malformed(f"`{name}` field contains uppercase hex")
    try:
        return binascii.unhexlify(digits), pos
    except (binascii.Error, ValueError) as e:
        raise _Malformed(f"`{name}` field is not valid hex: {e}") from e

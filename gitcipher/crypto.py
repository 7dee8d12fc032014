"""
Cryptographic primitives.

Key derivation, deterministic IV construction, AES-256-CBC and
HMAC-SHA-256 over the ciphertext. This module knows nothing about
blobs, secrets files or git.
"""

from __future__ import annotations

from Crypto.Cipher import AES
from Crypto.Hash import HMAC, SHA256
from Crypto.Protocol.KDF import scrypt
from Crypto.Random import get_random_bytes
from Crypto.Util.Padding import pad, unpad

from .config import (
    IV_SIZE,
    KEY_SALT_SIZE,
    KEY_SIZE,
    PASSPHRASE_SIZE,
    SCRYPT_N,
    SCRYPT_P,
    SCRYPT_R,
)
from .errors import CryptoError


# ---------------------------------------------------------------------------
# Random material
# ---------------------------------------------------------------------------


def generate_random(size: int) -> bytes:
    return get_random_bytes(size)


def generate_key_salt() -> bytes:
    return generate_random(KEY_SALT_SIZE)


def generate_random_passphrase() -> bytes:
    return generate_random(PASSPHRASE_SIZE)


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------


def derive_key(passphrase: bytes, salt: bytes) -> bytes:
    """
    Derive a 256-bit key from `passphrase` and `salt` with scrypt.

    Raises:
        CryptoError: if scrypt rejects its inputs
    """

    try:
        return scrypt(passphrase, salt, KEY_SIZE, N=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P)
    except (TypeError, ValueError) as e:
        raise CryptoError(f"key derivation failed: {e}") from e


def generate_file_salt(path: str, contents: bytes, base: bytes) -> bytes:
    """
    Return the deterministic IV for `contents` stored at `path`.

    HMAC-SHA-256 over the contents, keyed by `base || path`, truncated
    to the AES block size. The same (path, contents, base) always gives
    the same IV, so unchanged files encrypt to unchanged blobs.
    """

    h = HMAC.new(base + path.encode("utf-8"), digestmod=SHA256)
    h.update(contents)
    return h.digest()[:IV_SIZE]


# ---------------------------------------------------------------------------
# Cipher
# ---------------------------------------------------------------------------


def _cipher(key: bytes, iv: bytes):
    try:
        return AES.new(key, AES.MODE_CBC, iv=iv)
    except (TypeError, ValueError) as e:
        raise CryptoError(f"invalid key or IV: {e}") from e


def encrypt(plaintext: bytes, key: bytes, iv: bytes) -> bytes:
    return _cipher(key, iv).encrypt(pad(plaintext, AES.block_size))


def decrypt(ciphertext: bytes, key: bytes, iv: bytes) -> bytes:
    """
    Decrypt and strip padding.

    Only call this on ciphertext whose MAC has already been verified.

    Raises:
        CryptoError: on a bad key/IV, a partial block or invalid padding
    """

    try:
        padded = _cipher(key, iv).decrypt(ciphertext)
        return unpad(padded, AES.block_size)
    except ValueError as e:
        raise CryptoError(f"decryption failed: {e}") from e


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


def _hmac(path: str, iv: bytes, ciphertext: bytes, auth_key: bytes) -> HMAC.HMAC:
    h = HMAC.new(auth_key + path.encode("utf-8"), digestmod=SHA256)
    h.update(iv)
    h.update(ciphertext)
    return h


def mac(path: str, iv: bytes, ciphertext: bytes, auth_key: bytes) -> bytes:
    """HMAC-SHA-256 over `iv || ciphertext`, keyed by `auth_key || path`."""
    return _hmac(path, iv, ciphertext, auth_key).digest()


def verify(candidate: bytes, path: str, iv: bytes, ciphertext: bytes, auth_key: bytes) -> bool:
    """Recompute the MAC and compare it to `candidate` in constant time."""
    try:
        _hmac(path, iv, ciphertext, auth_key).verify(candidate)
    except ValueError:
        return False
    return True

"""
git-cipher

Transparent, deterministic, tamper-evident encryption of selected
files in a git repository, wired in through git's filter, diff and
merge drivers. History only ever holds ciphertext; plaintext exists
only in the working tree of an unlocked clone.
"""

__version__ = "0.1.0"

from .blob import EncryptedBlob, parse, serialize
from .filters import FilterResult, FilterStatus, clean, merge, reveal, smudge
from .lifecycle import Lifecycle
from .repository import Repository
from .secrets import Secrets, SecretsStore

__all__ = [
    "EncryptedBlob",
    "parse",
    "serialize",
    "FilterResult",
    "FilterStatus",
    "clean",
    "merge",
    "reveal",
    "smudge",
    "Lifecycle",
    "Repository",
    "Secrets",
    "SecretsStore",
]

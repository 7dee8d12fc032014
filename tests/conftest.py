# FILE: tests/conftest.py
"""
Shared fixtures.

FakeRunner stands in for git and gpg so the core can be exercised
without spawning processes. It models just enough of both:
configuration, rev-parse, ls-files, log, status, checkout (which runs the
smudge filter the way git would), refs, merge-file, and a gpg whose
"encryption" is the identity.
"""

import re
import sys
from pathlib import Path, PurePosixPath

_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import pytest
from typing import Dict, List, Optional, Sequence

from gitcipher.filters import clean, smudge
from gitcipher.repository import Repository
from gitcipher.runner import CommandResult
from gitcipher.secrets import Secrets, SecretsStore


def _ok(args: Sequence[str], stdout: bytes = b"") -> CommandResult:
    return CommandResult(args=list(args), returncode=0, stdout=stdout, stderr=b"")


def _fail(args: Sequence[str], code: int, stderr: bytes = b"") -> CommandResult:
    return CommandResult(args=list(args), returncode=code, stdout=b"", stderr=stderr)


class FakeRunner:
    """Scripted git + gpg."""

    def __init__(self, root: Path):
        self.root = root
        self.git_dir = root / ".git"
        self.git_dir.mkdir(parents=True, exist_ok=True)

        self.config: Dict[str, str] = {}
        self.objects: Dict[str, bytes] = {}
        self.untracked: List[str] = []
        self.history: List[str] = []
        self.refs = set()
        self.dirty = False
        self.is_repo = True
        self.gpg_error: Optional[bytes] = None
        self.calls: List[List[str]] = []

    # ------------------------------------------------------------------

    def run(self, args, stdin=None, cwd=None) -> CommandResult:
        args = list(args)
        self.calls.append(args)
        if args[0] == "git":
            return self._git(args, args[1:])
        if args[0] == "gpg":
            return self._gpg(args, stdin)
        return _fail(args, 127, b"command not found")

    def git_calls(self, subcommand: str) -> List[List[str]]:
        return [c for c in self.calls if c[:2] == ["git", subcommand]]

    # ------------------------------------------------------------------

    def _git(self, args, rest):
        sub = rest[0]

        if sub == "rev-parse":
            if not self.is_repo:
                return _fail(args, 128, b"fatal: not a git repository")
            target = self.root if rest[1] == "--show-toplevel" else self.git_dir
            return _ok(args, f"{target}\n".encode())

        if sub == "config":
            if rest[1] == "--get":
                value = self.config.get(rest[2])
                return _ok(args, f"{value}\n".encode()) if value is not None else _fail(args, 1)
            if rest[1] == "--local":
                self.config[rest[2]] = rest[3]
                return _ok(args)

        if sub == "ls-files":
            names = self.untracked if "--others" in rest else sorted(self.objects)
            return _ok(args, b"".join(n.encode() + b"\0" for n in names))

        if sub == "status":
            return _ok(args, b" M dirty.txt\n" if self.dirty else b"")

        if sub == "checkout":
            for name in rest[rest.index("--") + 1:]:
                self._checkout(name)
            return _ok(args)

        if sub == "show-ref":
            return _ok(args) if rest[-1] in self.refs else _fail(args, 1)

        if sub == "update-ref":
            self.refs.discard(rest[-1])
            return _ok(args)

        if sub == "log":
            name = re.sub(r"\\(.)", r"\1", rest[-1].split("**/", 1)[1])
            names = [n for n in self.history if PurePosixPath(n).name == name]
            return _ok(args, b"".join(n.encode() + b"\0" for n in names))

        if sub == "merge-file":
            return self._merge_file(args, rest)

        return _fail(args, 1, f"unsupported: {' '.join(rest)}".encode())

    def _private_secrets(self) -> Optional[Secrets]:
        path = self.git_dir / "git-cipher" / "secrets.json"
        return Secrets.from_json(path.read_bytes()) if path.exists() else None

    def _checkout(self, name: str) -> None:
        result = smudge(name, self.objects[name], self._private_secrets())
        path = self.root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(result.output)

    def _merge_file(self, args, rest):
        ours, base, theirs = (Path(p).read_bytes() for p in rest[-3:])
        if ours == theirs or theirs == base:
            return _ok(args, ours)
        if ours == base:
            return _ok(args, theirs)
        merged = b"<<<<<<< ours\n" + ours + b"=======\n" + theirs + b">>>>>>> theirs\n"
        return CommandResult(args=args, returncode=1, stdout=merged, stderr=b"")

    # ------------------------------------------------------------------

    def _gpg(self, args, stdin):
        if self.gpg_error is not None:
            return _fail(args, 2, self.gpg_error)
        if "--decrypt" in args:
            path = Path(args[-1])
            if not path.exists():
                return _fail(args, 2, b"gpg: can't open file")
            return _ok(args, path.read_bytes())
        if "--encrypt" in args:
            output = Path(args[args.index("--output") + 1])
            output.write_bytes(stdin)
            return _ok(args)
        return _fail(args, 2, b"gpg: unsupported")

    # ------------------------------------------------------------------

    def commit(self, name: str, plaintext: bytes, secrets: Secrets) -> bytes:
        """Store `plaintext` as git would after running the clean filter."""
        blob = clean(name, plaintext, secrets).output
        self.objects[name] = blob
        self.history.insert(0, name)
        return blob


@pytest.fixture
def secrets():
    return Secrets(
        authentication_key=bytes(range(32)),
        encryption_key=bytes(range(32, 64)),
        salt=bytes(range(64)),
    )


@pytest.fixture
def fake_git(tmp_path):
    return FakeRunner(tmp_path)


@pytest.fixture
def repo(fake_git, tmp_path):
    return Repository(fake_git, cwd=tmp_path)


@pytest.fixture
def store(repo):
    return SecretsStore(repo)


@pytest.fixture
def published(store, secrets):
    """Repository with committed public secrets."""
    store.write_public(secrets, "me@example.com")
    return secrets


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    monkeypatch.delenv("GPG_USER", raising=False)
    monkeypatch.delenv("GIT_CIPHER_GPG", raising=False)

# FILE: tests/test_lifecycle.py
"""
Tests for gitcipher/lifecycle.py
init / unlock / lock transitions and their step ordering.
"""

import pytest

from gitcipher.blob import AlreadyDecrypted, Success, classify
from gitcipher.config import FILTER_REQUIRED_KEY, TEXTCONV_NOTES_REF
from gitcipher.errors import ConfigError, DirtyWorktreeError, SecretsError
from gitcipher.lifecycle import Lifecycle


@pytest.fixture
def lifecycle(repo, store):
    return Lifecycle(repo, store)


@pytest.fixture
def populated(fake_git, published):
    """Two managed files committed as ciphertext, working tree still encrypted."""
    for name, text in (("notes.txt", b"hello world\n"), ("dir/creds.yml", b"token: abc\n")):
        blob = fake_git.commit(name, text, published)
        path = fake_git.root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(blob)
    return fake_git


class TestInitialize:
    """Test first-time setup."""

    def test_creates_everything(self, lifecycle, store, fake_git):
        secrets = lifecycle.initialize("git-cipher", recipient="me@example.com")
        assert store.read_public() == secrets
        assert store.read_private() == secrets
        assert fake_git.config["filter.git-cipher.clean"] == "git-cipher clean %f"
        assert fake_git.config["merge.git-cipher.driver"] == "git-cipher merge %O %A %B %L %P"
        assert fake_git.config["merge.renormalize"] == "true"
        assert fake_git.config[FILTER_REQUIRED_KEY] == "true"
        assert lifecycle.is_unlocked()

    def test_refuses_to_overwrite(self, lifecycle, published):
        with pytest.raises(SecretsError, match="already exists"):
            lifecycle.initialize("git-cipher", recipient="me@example.com")

    def test_force_overwrites(self, lifecycle, store, published):
        secrets = lifecycle.initialize("git-cipher", recipient="me@example.com", force=True)
        assert secrets != published
        assert store.read_public() == secrets

    def test_recipient_from_user_email(self, lifecycle, fake_git):
        fake_git.config["user.email"] = "dev@example.com"
        lifecycle.initialize("git-cipher")
        encrypt_call = next(c for c in fake_git.calls if "--encrypt" in c)
        assert "dev@example.com" in encrypt_call

    def test_no_recipient(self, lifecycle):
        with pytest.raises(ConfigError):
            lifecycle.initialize("git-cipher")


class TestUnlock:
    """Test the Locked -> Unlocked transition."""

    def test_decrypts_working_tree(self, lifecycle, store, populated, published):
        files = lifecycle.unlock()
        assert sorted(files) == ["dir/creds.yml", "notes.txt"]
        assert store.read_private() == published
        assert populated.config[FILTER_REQUIRED_KEY] == "true"
        assert (populated.root / "notes.txt").read_bytes() == b"hello world\n"
        assert (populated.root / "dir/creds.yml").read_bytes() == b"token: abc\n"

    def test_twice(self, lifecycle, store, populated, published):
        lifecycle.unlock()
        lifecycle.unlock()
        assert store.read_private() == published
        assert lifecycle.is_unlocked()

    def test_gpg_failure_leaves_state_unchanged(self, lifecycle, store, populated):
        populated.gpg_error = b"gpg: decryption failed: No secret key\n"
        with pytest.raises(SecretsError):
            lifecycle.unlock()
        assert not store.has_private()
        assert FILTER_REQUIRED_KEY not in populated.config
        assert not populated.git_calls("checkout")

    def test_dirty_worktree(self, lifecycle, store, populated):
        populated.dirty = True
        with pytest.raises(DirtyWorktreeError):
            lifecycle.unlock()
        assert not store.has_private()

    def test_dirty_worktree_forced(self, lifecycle, populated):
        populated.dirty = True
        lifecycle.unlock(force=True)
        assert lifecycle.is_unlocked()

    def test_secrets_written_before_required(self, lifecycle, store, populated):
        seen = []
        original = populated.run

        def spy(args, stdin=None, cwd=None):
            if list(args[:3]) == ["git", "config", "--local"] and args[3] == FILTER_REQUIRED_KEY:
                seen.append(store.has_private())
            return original(args, stdin=stdin, cwd=cwd)

        populated.run = spy
        lifecycle.unlock()
        assert seen == [True]


class TestLock:
    """Test the Unlocked -> Locked transition."""

    def test_encrypts_working_tree(self, lifecycle, store, populated):
        lifecycle.unlock()
        populated.refs.add(TEXTCONV_NOTES_REF)

        lifecycle.lock()
        assert not store.has_private()
        assert TEXTCONV_NOTES_REF not in populated.refs
        assert populated.config[FILTER_REQUIRED_KEY] == "false"
        for name in ("notes.txt", "dir/creds.yml"):
            data = (populated.root / name).read_bytes()
            assert isinstance(classify(data), Success)
            assert data == populated.objects[name]
        assert not lifecycle.is_unlocked()

    def test_twice(self, lifecycle, store, populated):
        lifecycle.unlock()
        lifecycle.lock()
        assert not store.private_path.exists()
        lifecycle.lock()
        assert not store.private_path.exists()

    def test_secrets_removed_before_reset(self, lifecycle, store, populated):
        lifecycle.unlock()
        seen = []
        original = populated.run

        def spy(args, stdin=None, cwd=None):
            if list(args[:2]) == ["git", "config"] and FILTER_REQUIRED_KEY in args and "--local" in args:
                seen.append(("required", store.has_private()))
            if list(args[:2]) == ["git", "checkout"]:
                seen.append(("checkout", store.has_private()))
            return original(args, stdin=stdin, cwd=cwd)

        populated.run = spy
        lifecycle.lock()
        assert seen == [("required", False), ("checkout", False)]

    def test_dirty_worktree(self, lifecycle, store, populated):
        lifecycle.unlock()
        populated.dirty = True
        with pytest.raises(DirtyWorktreeError):
            lifecycle.lock()
        assert store.has_private()

    def test_round_trip_restores_plaintext(self, lifecycle, populated):
        lifecycle.unlock()
        lifecycle.lock()
        lifecycle.unlock()
        data = (populated.root / "notes.txt").read_bytes()
        assert isinstance(classify(data), AlreadyDecrypted)
        assert data == b"hello world\n"

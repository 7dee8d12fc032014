# FILE: tests/test_cli.py
"""
Tests for gitcipher/cli.py
Process-boundary behavior: exit codes, stdout contents, diagnostics.
"""

import io
import json

import pytest

from gitcipher.cli import main
from gitcipher.filters import clean


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def unlocked(store, secrets):
    store.write_private(secrets)
    return secrets


def run(fake_git, argv, data=b""):
    stdout = io.BytesIO()
    code = main(argv, runner=fake_git, stdin=io.BytesIO(data), stdout=stdout)
    return code, stdout.getvalue()


def flip_ciphertext_digit(blob: bytes) -> bytes:
    text = blob.decode("ascii")
    start = text.index("ciphertext =\n") + len("ciphertext =\n")
    replacement = "1" if text[start] != "1" else "2"
    return (text[:start] + replacement + text[start + 1:]).encode("ascii")


class TestFilterCommands:
    """Test clean / smudge through main()."""

    def test_clean_then_smudge(self, workdir, fake_git, unlocked):
        code, blob = run(fake_git, ["clean", "notes.txt"], b"hello world")
        assert code == 0
        assert blob.startswith(b"magic = git-cipher\n")

        code, plaintext = run(fake_git, ["smudge", "notes.txt"], blob)
        assert code == 0
        assert plaintext == b"hello world"

    def test_clean_while_locked_fails(self, workdir, fake_git, capsys):
        code, out = run(fake_git, ["clean", "notes.txt"], b"hello world")
        assert code == 1
        assert out == b""
        err = capsys.readouterr().err
        assert len(err.strip().splitlines()) == 1
        assert "locked" in err
        assert "Traceback" not in err

    def test_smudge_while_locked_passes_through(self, workdir, fake_git, secrets):
        blob = clean("notes.txt", b"hello", secrets).output
        code, out = run(fake_git, ["smudge", "notes.txt"], blob)
        assert code == 0
        assert out == blob

    def test_smudge_tampered(self, workdir, fake_git, unlocked, capsys):
        blob = clean("notes.txt", b"hello world", unlocked).output
        code, out = run(fake_git, ["smudge", "notes.txt"], flip_ciphertext_digit(blob))
        assert code == 1
        assert out == b""
        assert "MAC verification failed" in capsys.readouterr().err

    def test_smudge_plaintext_warns(self, workdir, fake_git, unlocked, capsys):
        code, out = run(fake_git, ["smudge", "notes.txt"], b"plain")
        assert code == 0
        assert out == b"plain"
        assert "Warning" in capsys.readouterr().err


class TestTextconv:
    """Test the diff driver entry point."""

    def test_resolves_path_from_temp_name(self, workdir, fake_git, unlocked):
        fake_git.commit("docs/notes.txt", b"hello", unlocked)
        fake_git.commit("other.txt", b"other", unlocked)
        temp = workdir / "Ab12Cd_notes.txt"
        temp.write_bytes(fake_git.objects["docs/notes.txt"])

        code, out = run(fake_git, ["textconv", str(temp)])
        assert code == 0
        assert out == b"hello"

    def test_explicit_path_from_stdin(self, workdir, fake_git, unlocked):
        blob = clean("notes.txt", b"hello", unlocked).output
        code, out = run(fake_git, ["reveal", "--path", "notes.txt"], blob)
        assert code == 0
        assert out == b"hello"

    def test_removed_file_from_history(self, workdir, fake_git, unlocked):
        fake_git.commit("old/removed.txt", b"gone", unlocked)
        del fake_git.objects["old/removed.txt"]
        temp = workdir / "Ab12Cd_removed.txt"
        temp.write_bytes(clean("old/removed.txt", b"gone", unlocked).output)

        code, out = run(fake_git, ["textconv", str(temp)])
        assert code == 0
        assert out == b"gone"

    def test_unknown_path_shows_ciphertext(self, workdir, fake_git, unlocked, capsys):
        fake_git.commit("notes.txt", b"hello", unlocked)
        blob = clean("renamed/elsewhere.txt", b"moved", unlocked).output
        temp = workdir / "Ab12Cd_unrelated.txt"
        temp.write_bytes(blob)

        code, out = run(fake_git, ["textconv", str(temp)])
        assert code == 0
        assert out == blob
        err = capsys.readouterr().err
        assert "cannot determine" in err
        assert "MAC verification failed" not in err

    def test_explicit_path_tampered(self, workdir, fake_git, unlocked, capsys):
        blob = clean("notes.txt", b"hello", unlocked).output
        code, out = run(fake_git, ["textconv", "--path", "notes.txt"], flip_ciphertext_digit(blob))
        assert code == 1
        assert out == b""
        assert "MAC verification failed" in capsys.readouterr().err

    def test_working_tree_plaintext_is_quiet(self, workdir, fake_git, unlocked, capsys):
        fake_git.commit("notes.txt", b"hello", unlocked)
        edited = workdir / "notes.txt"
        edited.write_bytes(b"hello, edited")

        code, out = run(fake_git, ["textconv", str(edited)])
        assert code == 0
        assert out == b"hello, edited"
        assert "Warning" not in capsys.readouterr().err

    def test_locked_shows_ciphertext(self, workdir, fake_git, secrets):
        blob = clean("notes.txt", b"hello", secrets).output
        code, out = run(fake_git, ["textconv"], blob)
        assert code == 0
        assert out == blob


class TestMergeCommand:
    """Test the merge driver entry point."""

    def write(self, workdir, name, secrets, text):
        path = workdir / name
        path.write_bytes(clean("notes.txt", text, secrets).output)
        return path

    def test_clean_merge(self, workdir, fake_git, unlocked):
        base = self.write(workdir, "base", unlocked, b"one\n")
        ours = self.write(workdir, "ours", unlocked, b"one\n")
        theirs = self.write(workdir, "theirs", unlocked, b"two\n")

        code, _ = run(fake_git, ["merge", str(base), str(ours), str(theirs), "7", "notes.txt"])
        assert code == 0
        assert ours.read_bytes() == theirs.read_bytes()

    def test_conflict(self, workdir, fake_git, unlocked):
        base = self.write(workdir, "base", unlocked, b"one\n")
        ours = self.write(workdir, "ours", unlocked, b"two\n")
        theirs = self.write(workdir, "theirs", unlocked, b"three\n")

        code, _ = run(fake_git, ["merge", str(base), str(ours), str(theirs), "7", "notes.txt"])
        assert code == 1
        assert ours.read_bytes().startswith(b"magic = git-cipher\n")


class TestUserCommands:
    """Test init / add / lock / unlock / ls / status."""

    def test_init(self, workdir, fake_git):
        code, _ = run(fake_git, ["init", "--recipient", "me@example.com"])
        assert code == 0
        assert (workdir / ".git-cipher" / "secrets.json.asc").exists()
        assert fake_git.config["filter.git-cipher.required"] == "true"

    def test_init_custom_command(self, workdir, fake_git):
        run(fake_git, ["init", "--recipient", "me@example.com", "--command", "python -m gitcipher"])
        assert fake_git.config["filter.git-cipher.smudge"] == "python -m gitcipher smudge %f"

    def test_add_and_ls(self, workdir, fake_git, capsys):
        code, _ = run(fake_git, ["add", "notes.txt"])
        assert code == 0
        assert (workdir / ".gitattributes").read_text() == (
            "/notes.txt\tdiff=git-cipher\tfilter=git-cipher\tmerge=git-cipher\n"
        )

        fake_git.objects = {"notes.txt": b""}
        fake_git.untracked = ["new.txt"]
        capsys.readouterr()
        code, _ = run(fake_git, ["ls", "--untracked"])
        assert code == 0
        assert capsys.readouterr().out.splitlines() == ["notes.txt", "? new.txt"]

    def test_unlock_then_lock(self, workdir, fake_git, published, store):
        assert run(fake_git, ["unlock"])[0] == 0
        assert store.has_private()
        assert run(fake_git, ["lock"])[0] == 0
        assert not store.has_private()

    def test_unlock_failure(self, workdir, fake_git, capsys):
        code, _ = run(fake_git, ["unlock"])
        assert code == 1
        assert "Public secrets not found" in capsys.readouterr().err

    def test_lock_dirty(self, workdir, fake_git, unlocked, capsys):
        fake_git.dirty = True
        assert run(fake_git, ["lock"])[0] == 1
        assert "--force" in capsys.readouterr().err
        assert run(fake_git, ["lock", "--force"])[0] == 0

    def test_status_json(self, workdir, fake_git, unlocked, capsys):
        fake_git.config["filter.git-cipher.required"] = "true"
        fake_git.objects = {"a.txt": b"", "b.txt": b""}
        capsys.readouterr()
        assert run(fake_git, ["status", "--json"])[0] == 0
        status = json.loads(capsys.readouterr().out)
        assert status["state"] == "unlocked"
        assert status["managed_files"] == 2
        assert status["untracked_managed_files"] == 0

    def test_status_inconsistent(self, workdir, fake_git, capsys):
        fake_git.config["filter.git-cipher.required"] = "true"
        assert run(fake_git, ["status"])[0] == 1
        assert "git-cipher lock" in capsys.readouterr().err

    def test_help(self, workdir, fake_git, capsys):
        assert run(fake_git, [])[0] == 0
        assert "COMMANDS" in capsys.readouterr().out

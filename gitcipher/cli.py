"""
Command-line interface for git-cipher.

This module orchestrates all other components and provides
the commands git and the user invoke:
- clean / smudge / textconv / merge (called by git)
- init / add / lock / unlock
- ls / status
- help

Filter commands own stdout for file contents, so every diagnostic
goes to stderr.
"""

from __future__ import annotations

import sys
import re
import json
import argparse
from pathlib import Path, PurePosixPath
from typing import BinaryIO, List, Optional

from .config import DEFAULT_TOOL_COMMAND, TOOL_VERSION
from .errors import ConfigError, GitCipherError
from .filters import FilterResult, FilterStatus, clean, merge, reveal, reveal_any, smudge
from .lifecycle import Lifecycle
from .repository import Repository
from .runner import Runner, SubprocessRunner
from .secrets import Secrets, SecretsStore


# ---------------------------------------------------------------------------
# Color output helpers
# ---------------------------------------------------------------------------


class Colors:
    """ANSI color codes for terminal output."""
    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    BLUE = "\033[94m"
    CYAN = "\033[96m"
    RESET = "\033[0m"
    BOLD = "\033[1m"

    enabled = True


def colored(text: str, color: str) -> str:
    """Return colored text for terminal output."""
    if not Colors.enabled:
        return text
    return f"{color}{text}{Colors.RESET}"


def print_error(msg: str) -> None:
    """Print error message to stderr."""
    print(colored(f"✗ Error: {msg}", Colors.RED), file=sys.stderr)


def print_success(msg: str) -> None:
    """Print success message to stderr."""
    print(colored(f"✓ {msg}", Colors.GREEN), file=sys.stderr)


def print_warning(msg: str) -> None:
    """Print warning message to stderr."""
    print(colored(f"⚠ Warning: {msg}", Colors.YELLOW), file=sys.stderr)


def print_info(msg: str) -> None:
    """Print info message to stderr."""
    print(colored(f"ℹ {msg}", Colors.CYAN), file=sys.stderr)


# ---------------------------------------------------------------------------
# CLI context
# ---------------------------------------------------------------------------


class CLIContext:
    """Per-invocation state shared by command implementations."""

    def __init__(
        self,
        runner: Runner,
        verbose: bool,
        quiet: bool,
        gpg_program: Optional[str] = None,
        stdin: Optional[BinaryIO] = None,
        stdout: Optional[BinaryIO] = None,
    ):
        self.runner = runner
        self.verbose = verbose
        self.quiet = quiet
        self.gpg_program = gpg_program
        self._stdin = stdin
        self._stdout = stdout

        # Lazy-loaded
        self._repo: Optional[Repository] = None
        self._store: Optional[SecretsStore] = None
        self._secrets_loaded = False
        self._secrets: Optional[Secrets] = None

    @property
    def repo(self) -> Repository:
        if self._repo is None:
            self._repo = Repository(self.runner, gpg_program=self.gpg_program)
        return self._repo

    @property
    def store(self) -> SecretsStore:
        if self._store is None:
            self._store = SecretsStore(self.repo)
        return self._store

    @property
    def secrets(self) -> Optional[Secrets]:
        """Private secrets, or None while locked. Read at most once."""
        if not self._secrets_loaded:
            self._secrets = self.store.read_private()
            self._secrets_loaded = True
        return self._secrets

    def lifecycle(self) -> Lifecycle:
        return Lifecycle(self.repo, self.store, report=self.log_verbose)

    def read_input(self) -> bytes:
        return (self._stdin or sys.stdin.buffer).read()

    def write_output(self, data: bytes) -> None:
        out = self._stdout or sys.stdout.buffer
        out.write(data)
        out.flush()

    def log(self, msg: str) -> None:
        """Print command output to stdout if not quiet."""
        if not self.quiet:
            print(msg)

    def log_verbose(self, msg: str) -> None:
        """Log message to stderr if verbose."""
        if self.verbose:
            print(colored(f"  → {msg}", Colors.BLUE), file=sys.stderr)

    def emit(self, result: FilterResult, expect_plaintext: bool = False) -> int:
        """
        Write a filter result, reporting anything other than a clean pass.

        `expect_plaintext` silences the warning for unencrypted input, which
        textconv sees whenever git diffs the working tree copy.
        """
        self.log_verbose(f"{result.status.value}")

        if result.failed:
            print_error(result.detail)
            return 1
        if result.status is FilterStatus.PLAINTEXT and not expect_plaintext:
            print_warning(result.detail)
        elif result.status in (FilterStatus.CORRUPT, FilterStatus.UNRESOLVED):
            print_warning(result.detail)

        self.write_output(result.output)
        return 0


# ---------------------------------------------------------------------------
# Filter commands (invoked by git)
# ---------------------------------------------------------------------------


def cmd_clean(ctx: CLIContext, args: argparse.Namespace) -> int:
    """
    Encrypt stdin for storage. Any failure aborts the stage.
    """
    data = ctx.read_input()
    return ctx.emit(clean(args.path, data, ctx.secrets))


def cmd_smudge(ctx: CLIContext, args: argparse.Namespace) -> int:
    """
    Decrypt stdin for the working tree, or pass it through while locked.
    """
    data = ctx.read_input()
    return ctx.emit(smudge(args.path, data, ctx.secrets))


_TEXTCONV_TEMP = re.compile(r"^[A-Za-z0-9]{6}_(.+)$")


def _reveal_candidates(ctx: CLIContext, file: str) -> List[str]:
    """
    Paths `file` may have been checked in under, most likely first.

    Managed files sharing the basename come first, then any other path
    with that basename in history (deleted or renamed files), then the
    remaining managed files.
    """
    managed = ctx.repo.list_managed_files()
    if managed is None:
        raise ConfigError("Cannot enumerate managed files")

    name = Path(file).name if file else ""
    match = _TEXTCONV_TEMP.match(name)
    if match:
        name = match.group(1)

    candidates = [p for p in managed if PurePosixPath(p).name == name]
    if name:
        candidates += [p for p in ctx.repo.list_historical_paths(name) if p not in candidates]
    return candidates + [p for p in managed if p not in candidates]


def cmd_textconv(ctx: CLIContext, args: argparse.Namespace) -> int:
    """
    Print the plaintext of a stored blob for diff, log and show.
    """
    data = Path(args.file).read_bytes() if args.file else ctx.read_input()

    if args.path:
        return ctx.emit(reveal(args.path, data, ctx.secrets), expect_plaintext=True)

    if ctx.secrets is None or not data:
        return ctx.emit(reveal("", data, ctx.secrets), expect_plaintext=True)

    candidates = _reveal_candidates(ctx, args.file or "")
    return ctx.emit(reveal_any(candidates, data, ctx.secrets), expect_plaintext=True)


def cmd_merge(ctx: CLIContext, args: argparse.Namespace) -> int:
    """
    Three-way merge driver: merges plaintext, stores ciphertext in <ours>.
    """
    ours_path = Path(args.ours)
    result = merge(
        args.path,
        ours=ours_path.read_bytes(),
        base=Path(args.base).read_bytes(),
        theirs=Path(args.theirs).read_bytes(),
        secrets=ctx.secrets,
        merge_text=ctx.repo.merge_text,
        marker_size=args.marker_size,
    )
    ours_path.write_bytes(result.output)

    if result.conflicted:
        print_warning(f"Merge conflict in {args.path}")
        return 1
    ctx.log_verbose(f"Merged {args.path}")
    return 0


# ---------------------------------------------------------------------------
# User commands
# ---------------------------------------------------------------------------


def cmd_init(ctx: CLIContext, args: argparse.Namespace) -> int:
    """
    Generate secrets, wire up the drivers, and leave the repository unlocked.
    """
    lifecycle = ctx.lifecycle()
    lifecycle.initialize(args.command_line, recipient=args.recipient, force=args.force)

    print_success(f"Initialized; public secrets at {ctx.store.public_path}")
    print_info(f"Commit {ctx.store.public_path.relative_to(ctx.repo.top_level)} to share access")
    return 0


def cmd_add(ctx: CLIContext, args: argparse.Namespace) -> int:
    """
    Opt files into encryption by appending .gitattributes entries.
    """
    added = ctx.repo.add_attributes(args.paths)

    if not added:
        print_info("Nothing to add; all paths are already managed")
        return 0

    for path in added:
        ctx.log(f"  ✓ {path}")
    print_success(f"Added {len(added)} path(s) to .gitattributes")
    return 0


def cmd_lock(ctx: CLIContext, args: argparse.Namespace) -> int:
    """
    Remove private secrets and return managed files to ciphertext.
    """
    files = ctx.lifecycle().lock(force=args.force)
    print_success(f"Locked ({len(files)} managed file(s))")
    return 0


def cmd_unlock(ctx: CLIContext, args: argparse.Namespace) -> int:
    """
    Decrypt public secrets and return managed files to plaintext.
    """
    files = ctx.lifecycle().unlock(force=args.force)
    print_success(f"Unlocked ({len(files)} managed file(s))")
    return 0


def cmd_ls(ctx: CLIContext, args: argparse.Namespace) -> int:
    """
    List managed files.
    """
    tracked = ctx.repo.list_managed_files()
    if tracked is None:
        print_error("Cannot enumerate managed files")
        return 1

    for path in tracked:
        ctx.log(path)

    if args.untracked:
        untracked = ctx.repo.list_untracked_managed_files()
        if untracked is None:
            print_error("Cannot enumerate untracked managed files")
            return 1
        for path in untracked:
            ctx.log(f"? {path}")

    return 0


def cmd_status(ctx: CLIContext, args: argparse.Namespace) -> int:
    """
    Show lock state and managed file counts.
    """
    repo = ctx.repo
    has_private = ctx.store.has_private()
    required = repo.filter_required
    tracked = repo.list_managed_files()
    untracked = repo.list_untracked_managed_files()

    if tracked is None or untracked is None:
        print_error("Cannot enumerate managed files")
        return 1

    unlocked = has_private and required
    inconsistent = required and not has_private

    if args.json:
        output = {
            "state": "unlocked" if unlocked else "locked",
            "filter_required": required,
            "private_secrets": has_private,
            "public_secrets": ctx.store.public_path.exists(),
            "managed_files": len(tracked),
            "untracked_managed_files": len(untracked),
        }
        print(json.dumps(output, indent=2))
        return 0

    state = colored("unlocked", Colors.GREEN) if unlocked else colored("locked", Colors.YELLOW)
    ctx.log(colored("Repository Status", Colors.BOLD))
    ctx.log("")
    ctx.log(f"  State:                   {state}")
    ctx.log(f"  Filter required:         {'yes' if required else 'no'}")
    ctx.log(f"  Private secrets:         {'present' if has_private else 'absent'}")
    ctx.log(f"  Managed files:           {len(tracked)}")
    ctx.log(f"  Untracked managed files: {len(untracked)}")
    ctx.log("")

    if inconsistent:
        print_warning("filter is required but private secrets are missing; run `git-cipher lock` to recover")
        return 1
    return 0


def cmd_help(ctx: Optional[CLIContext], args: argparse.Namespace) -> int:
    """
    Show help message.
    """
    help_text = f"""
{colored('git-cipher', Colors.BOLD)} - transparent encryption of files in a git repository

{colored('USAGE:', Colors.CYAN)}
  git-cipher <command> [options] [args...]

{colored('DESCRIPTION:', Colors.CYAN)}
  Files opted in with `add` are stored in history only as authenticated
  ciphertext. In an unlocked clone they appear as plaintext in the
  working tree; in a locked clone they stay encrypted.

{colored('COMMANDS:', Colors.CYAN)}
  init        Generate secrets and configure the repository
  add         Mark files for encryption
  lock        Remove local secrets and re-encrypt the working tree
  unlock      Decrypt secrets and decrypt the working tree
  ls          List managed files
  status      Show lock state
  help        Show this help message

{colored('GIT DRIVER COMMANDS:', Colors.CYAN)}
  clean <path>                                   stdin plaintext -> stdout blob
  smudge <path>                                  stdin blob -> stdout plaintext
  textconv [file] [--path PATH]                  blob -> plaintext for display
  merge <base> <ours> <theirs> <marker-size> <path>

{colored('GLOBAL OPTIONS:', Colors.CYAN)}
  --gpg PROGRAM             gpg executable to use
  --no-color                Disable colored output
  -v, --verbose             Enable verbose output
  -q, --quiet               Suppress non-error output
  -h, --help                Show this help message and exit

{colored('ENVIRONMENT:', Colors.CYAN)}
  GPG_USER                  Recipient public secrets are encrypted to
  GIT_CIPHER_GPG            gpg executable to use

{colored('EXAMPLES:', Colors.CYAN)}
  git-cipher init --recipient me@example.com
  git-cipher add config/credentials.yml
  git-cipher lock
  git-cipher unlock
  git-cipher status --json

{colored('VERSION:', Colors.CYAN)}
  {TOOL_VERSION}
"""
    print(help_text)
    return 0


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="git-cipher",
        description="Transparent encryption of files in a git repository",
        add_help=False,
    )

    # Global options
    parser.add_argument("--gpg", help="gpg executable to use")
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument("-q", "--quiet", action="store_true", help="Suppress non-error output")
    parser.add_argument("-h", "--help", action="store_true", help="Show help message")

    # Subcommands
    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # Driver commands
    clean_parser = subparsers.add_parser("clean", help="Encrypt stdin (filter driver)")
    clean_parser.add_argument("path", help="Path of the file being staged")

    smudge_parser = subparsers.add_parser("smudge", help="Decrypt stdin (filter driver)")
    smudge_parser.add_argument("path", help="Path of the file being checked out")

    textconv_parser = subparsers.add_parser("textconv", aliases=["reveal"], help="Show plaintext (diff driver)")
    textconv_parser.add_argument("file", nargs="?", help="File to read instead of stdin")
    textconv_parser.add_argument("--path", help="Repository path the contents belong to")

    merge_parser = subparsers.add_parser("merge", help="Three-way merge (merge driver)")
    merge_parser.add_argument("base", help="Common ancestor (%%O)")
    merge_parser.add_argument("ours", help="Current version, receives the result (%%A)")
    merge_parser.add_argument("theirs", help="Other branch version (%%B)")
    merge_parser.add_argument("marker_size", type=int, help="Conflict marker size (%%L)")
    merge_parser.add_argument("path", help="Repository path being merged (%%P)")

    # init command
    init_parser = subparsers.add_parser("init", help="Generate secrets and configure drivers")
    init_parser.add_argument("--recipient", help="gpg identity to encrypt secrets to")
    init_parser.add_argument("--force", action="store_true", help="Overwrite existing public secrets")
    init_parser.add_argument(
        "--command",
        dest="command_line",
        default=DEFAULT_TOOL_COMMAND,
        help="Command git should run for the drivers",
    )

    # add command
    add_parser = subparsers.add_parser("add", help="Mark files for encryption")
    add_parser.add_argument("paths", nargs="+", help="Files to manage")

    # lock / unlock commands
    lock_parser = subparsers.add_parser("lock", help="Re-encrypt the working tree")
    lock_parser.add_argument("--force", action="store_true", help="Proceed with a dirty worktree")

    unlock_parser = subparsers.add_parser("unlock", help="Decrypt the working tree")
    unlock_parser.add_argument("--force", action="store_true", help="Proceed with a dirty worktree")

    # ls command
    ls_parser = subparsers.add_parser("ls", help="List managed files")
    ls_parser.add_argument("--untracked", action="store_true", help="Include untracked managed files")

    # status command
    status_parser = subparsers.add_parser("status", help="Show lock state")
    status_parser.add_argument("--json", action="store_true", help="Output status as JSON")

    # help command
    subparsers.add_parser("help", help="Show help message")

    return parser


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


COMMANDS = {
    "clean": cmd_clean,
    "smudge": cmd_smudge,
    "textconv": cmd_textconv,
    "reveal": cmd_textconv,
    "merge": cmd_merge,
    "init": cmd_init,
    "add": cmd_add,
    "lock": cmd_lock,
    "unlock": cmd_unlock,
    "ls": cmd_ls,
    "status": cmd_status,
    "help": cmd_help,
}


def main(
    argv: Optional[List[str]] = None,
    runner: Optional[Runner] = None,
    stdin: Optional[BinaryIO] = None,
    stdout: Optional[BinaryIO] = None,
) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    Colors.enabled = not args.no_color and sys.stderr.isatty()

    # Show help if requested or no command
    if args.help or not args.command:
        return cmd_help(None, args)

    # Build context
    ctx = CLIContext(
        runner=runner or SubprocessRunner(),
        verbose=args.verbose,
        quiet=args.quiet,
        gpg_program=args.gpg,
        stdin=stdin,
        stdout=stdout,
    )

    cmd_func = COMMANDS.get(args.command)
    if not cmd_func:
        print_error(f"Unknown command: {args.command}")
        return 1

    try:
        return cmd_func(ctx, args)
    except KeyboardInterrupt:
        print_error("Interrupted")
        return 130
    except GitCipherError as e:
        print_error(str(e))
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1
    except OSError as e:
        print_error(str(e))
        return 1
    except Exception as e:
        print_error(f"Unexpected error: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())

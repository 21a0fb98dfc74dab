"""Shell, git and console utilities.

Provides thin wrappers around subprocess calls for running commands and git
operations, plus the terminal output helpers used by every stage.
"""

from __future__ import annotations

import subprocess
from pathlib import Path

import click

from .errors import CommandError

_verbose = False


def set_verbose(enabled: bool) -> None:
    """Turn debug output on or off for the whole process."""
    global _verbose
    _verbose = enabled


def is_verbose() -> bool:
    return _verbose


def git(*args: str, check: bool = True, cwd: Path | None = None) -> str:
    """Run a git command and return stdout.

    Args:
        *args: Arguments to pass to git (e.g., "tag", "--list").
        check: If True (default), raise CommandError on non-zero exit. Set to
               False for commands that may legitimately fail (e.g., tag lookup).
        cwd: Repository directory, defaults to the current directory.

    Returns:
        Stripped stdout from the git command.
    """
    result = subprocess.run(
        ["git", *args], capture_output=True, text=True, cwd=cwd
    )
    if check and result.returncode != 0:
        raise CommandError(" ".join(["git", *args]), result.returncode, result.stderr)
    return result.stdout.strip()


def run(
    *args: str, check: bool = True, cwd: Path | None = None
) -> subprocess.CompletedProcess[str]:
    """Run a command with captured output.

    Args:
        *args: Command and arguments (e.g., "npm", "publish").
        check: If True (default), raise CommandError on non-zero exit.
        cwd: Working directory for the command.

    Returns:
        CompletedProcess with returncode, stdout and stderr.
    """
    result = subprocess.run(args, capture_output=True, text=True, cwd=cwd)
    if check and result.returncode != 0:
        raise CommandError(" ".join(args), result.returncode, result.stderr)
    debug_output(args[0], result.stdout, result.stderr)
    return result


def debug_output(label: str, stdout: str, stderr: str) -> None:
    """Echo captured command output, prefixed with a label, in verbose mode."""
    if not _verbose:
        return
    for line in stdout.splitlines():
        click.echo(f"  [{label}] {line}")
    for line in stderr.splitlines():
        click.echo(f"  [{label}] {line}", err=True)


def step(msg: str) -> None:
    """Print a visually distinct step header.

    Used to separate major phases of a run in terminal output.
    """
    click.echo(f"\n{'─' * 60}\n{msg}\n{'─' * 60}")


def info(msg: str) -> None:
    click.echo(f"  {msg}")


def success(msg: str) -> None:
    click.echo(click.style(f"  ✓ {msg}", fg="green"))


def warn(msg: str) -> None:
    click.echo(click.style(f"  ⚠ {msg}", fg="yellow"))


def error(msg: str) -> None:
    click.echo(click.style(f"  ✗ {msg}", fg="red"), err=True)


def debug(msg: str) -> None:
    """Print only when --verbose is on."""
    if _verbose:
        click.echo(click.style(f"  · {msg}", dim=True))

"""Version control operations used by releases and rollbacks."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from .shell import git


class Vcs(Protocol):
    def last_tag(self, pattern: str) -> str | None: ...

    def log_since(self, tag: str | None) -> list[str]: ...

    def commit(self, paths: list[Path], message: str) -> None: ...

    def create_tag(self, tag: str, message: str) -> None: ...

    def remove_tag(self, tag: str) -> None: ...

    def is_clean(self) -> bool: ...

    def current_branch(self) -> str: ...


class GitRepository:
    """Vcs implementation on top of the git CLI.

    Args:
        root: Repository root.
        remote: Remote that release tags are pushed to and removed from.
    """

    def __init__(self, root: Path, remote: str = "origin") -> None:
        self.root = root
        self.remote = remote

    def last_tag(self, pattern: str) -> str | None:
        """Most recent tag matching ``pattern``, sorted by version."""
        tags = git(
            "tag", "--list", pattern, "--sort=-v:refname", check=False, cwd=self.root
        )
        return tags.splitlines()[0] if tags else None

    def log_since(self, tag: str | None) -> list[str]:
        """One-line commit summaries since ``tag`` (all commits if None)."""
        revision = [f"{tag}..HEAD"] if tag else []
        output = git(
            "log", *revision, "--oneline", "--no-merges", check=False, cwd=self.root
        )
        return output.splitlines() if output else []

    def commit(self, paths: list[Path], message: str) -> None:
        git("add", *(str(p) for p in paths), cwd=self.root)
        git("commit", "-m", message, cwd=self.root)

    def create_tag(self, tag: str, message: str) -> None:
        git("tag", "-a", tag, "-m", message, cwd=self.root)

    def remove_tag(self, tag: str) -> None:
        """Delete ``tag`` locally and on the remote.

        The local tag may already be gone from an earlier, partly failed
        rollback; only a failed remote deletion raises.
        """
        git("tag", "-d", tag, check=False, cwd=self.root)
        git("push", self.remote, f":refs/tags/{tag}", cwd=self.root)

    def is_clean(self) -> bool:
        """Whether the working tree has no uncommitted or untracked changes."""
        return git("status", "--porcelain", cwd=self.root) == ""

    def current_branch(self) -> str:
        return git("branch", "--show-current", cwd=self.root)

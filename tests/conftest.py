"""Shared test fixtures."""

from __future__ import annotations

import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
import tomlkit

from monorel.errors import CommandError
from monorel.models import Package
from monorel.runner import CommandResult
from monorel.workspace import Workspace, load_workspace

WorkspaceFactory = Callable[..., Path]

# core ← tools, testing, cli; tools and core disagree on X.
SCENARIO: dict[str, dict[str, Any]] = {
    "core": {
        "dependencies": {"X": "^5.0.0"},
        "scripts": {"build": "make build", "test": "make test"},
    },
    "tools": {
        "dependencies": {"core": "^1.2.0", "X": "^4.9.0"},
        "peer-dependencies": {"X": "^3.0.0"},
        "scripts": {"build": "make build", "test": "make test"},
    },
    "testing": {
        "dev-dependencies": {"core": "^1.2.0"},
        "scripts": {"test": "make test", "test:coverage": "make coverage"},
    },
    "cli": {
        "dependencies": {"core": "^1.2.0"},
        "scripts": {"build": "make build", "test": "make test"},
    },
}


def write_manifest(package_dir: Path, name: str, fields: dict[str, Any]) -> None:
    package_dir.mkdir(parents=True, exist_ok=True)
    doc: dict[str, Any] = {
        "package": {"name": name, "version": fields.get("version", "1.2.0")}
    }
    for table in ("dependencies", "dev-dependencies", "peer-dependencies", "scripts"):
        if table in fields:
            doc[table] = fields[table]
    (package_dir / "package.toml").write_text(tomlkit.dumps(doc))


@pytest.fixture
def make_workspace(tmp_path: Path) -> WorkspaceFactory:
    """Return a function that writes a workspace under tmp_path."""

    def factory(
        packages: dict[str, dict[str, Any]], config: dict[str, Any] | None = None
    ) -> Path:
        settings: dict[str, Any] = {"publish-delay": 0, "verify-interval": 0}
        settings.update(config or {})
        (tmp_path / "pyproject.toml").write_text(
            tomlkit.dumps(
                {"project": {"name": "workspace"}, "tool": {"monorel": settings}}
            )
        )
        for name, fields in packages.items():
            write_manifest(tmp_path / "packages" / name, name, fields)
        return tmp_path

    return factory


@pytest.fixture
def scenario_root(make_workspace: WorkspaceFactory) -> Path:
    """Four-package workspace at version 1.2.0."""
    return make_workspace(SCENARIO, {"version": "1.2.0"})


@pytest.fixture
def scenario(scenario_root: Path) -> Workspace:
    return load_workspace(scenario_root)


class FakeRunner:
    """CommandRunner that records calls instead of starting processes."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.failing: set[str] = set()
        self.stdout: dict[str, str] = {}
        self._lock = threading.Lock()

    def run(self, package: Package, script: str) -> CommandResult:
        with self._lock:
            self.calls.append((package.name, script))
        if package.name in self.failing:
            return CommandResult(returncode=1, stderr=f"{package.name} broke")
        return CommandResult(returncode=0, stdout=self.stdout.get(package.name, ""))

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]


class FakeRegistry:
    """In-memory registry.

    Attributes:
        published: (name, version) pairs visible on the registry.
        hidden_for: name → number of ``exists`` queries that still miss a
            published version, to simulate propagation delay.
        failing: Package names whose publish or unpublish raises.
        authenticated: Whether ``check_auth`` passes.
    """

    def __init__(self) -> None:
        self.published: set[tuple[str, str]] = set()
        self.hidden_for: dict[str, int] = {}
        self.failing: set[str] = set()
        self.authenticated = True
        self.calls: list[tuple[str, str]] = []

    def check_auth(self) -> None:
        if not self.authenticated:
            raise CommandError("npm whoami", 1, "ENEEDAUTH")

    def exists(self, name: str, version: str) -> bool:
        self.calls.append(("exists", name))
        if self.hidden_for.get(name, 0) > 0:
            self.hidden_for[name] -= 1
            return False
        return (name, version) in self.published

    def pack_check(self, package: Package) -> None:
        self.calls.append(("pack", package.name))

    def publish(self, package: Package) -> None:
        self.calls.append(("publish", package.name))
        if package.name in self.failing:
            raise CommandError("npm publish", 1, "E403 forbidden")
        self.published.add((package.name, package.version))

    def unpublish(self, name: str, version: str) -> None:
        self.calls.append(("unpublish", name))
        if name in self.failing:
            raise CommandError("npm unpublish", 1, "E405 not allowed")
        self.published.discard((name, version))

    def published_calls(self) -> list[str]:
        return [name for action, name in self.calls if action == "publish"]


class FakeVcs:
    """Vcs that keeps tags and commits in lists."""

    def __init__(self) -> None:
        self.tags: list[str] = []
        self.history: list[str] = []
        self.commits: list[tuple[list[Path], str]] = []
        self.removed: list[str] = []
        self.fail_remove = False
        self.dirty = False
        self.branch = "main"

    def is_clean(self) -> bool:
        return not self.dirty

    def current_branch(self) -> str:
        return self.branch

    def last_tag(self, pattern: str) -> str | None:
        prefix = pattern.rstrip("*")
        matching = [t for t in self.tags if t.startswith(prefix)]
        return matching[-1] if matching else None

    def log_since(self, tag: str | None) -> list[str]:
        return list(self.history)

    def commit(self, paths: list[Path], message: str) -> None:
        self.commits.append((paths, message))

    def create_tag(self, tag: str, message: str) -> None:
        self.tags.append(tag)

    def remove_tag(self, tag: str) -> None:
        if self.fail_remove:
            raise CommandError(f"git tag -d {tag}", 1, f"tag '{tag}' not found.")
        self.removed.append(tag)
        if tag in self.tags:
            self.tags.remove(tag)


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def fake_registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture
def fake_vcs() -> FakeVcs:
    return FakeVcs()

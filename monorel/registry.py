"""Package registry access.

The publish orchestrator talks to the registry only through the Registry
protocol. CommandRegistry implements it with the command templates from
``[tool.monorel.commands]``.
"""

from __future__ import annotations

import shlex
from pathlib import Path
from typing import Protocol

from .config import RegistryCommands
from .models import Package
from .shell import run


class Registry(Protocol):
    def exists(self, name: str, version: str) -> bool:
        """Whether ``name@version`` is available on the registry."""
        ...

    def pack_check(self, package: Package) -> None:
        """Dry-run packaging; raises CommandError if the package is broken."""
        ...

    def publish(self, package: Package) -> None:
        ...

    def unpublish(self, name: str, version: str) -> None:
        ...

    def check_auth(self) -> None:
        """Raise CommandError unless publishing credentials are set up."""
        ...


class CommandRegistry:
    """Registry backed by CLI commands (npm by default).

    Args:
        commands: Command templates with {name}, {version} and {registry}.
        url: Registry endpoint substituted for {registry}.
        root: Workspace root, where commands not tied to a package run.
    """

    def __init__(self, commands: RegistryCommands, url: str, root: Path) -> None:
        self.commands = commands
        self.url = url
        self.root = root

    def _argv(self, template: str, name: str, version: str) -> list[str]:
        return shlex.split(
            template.format(name=name, version=version, registry=self.url)
        )

    def exists(self, name: str, version: str) -> bool:
        # `npm view` exits 0 with empty output for a missing version
        result = run(
            *self._argv(self.commands.exists, name, version),
            check=False,
            cwd=self.root,
        )
        return result.returncode == 0 and version in result.stdout.split()

    def pack_check(self, package: Package) -> None:
        run(
            *self._argv(self.commands.pack, package.name, package.version),
            cwd=package.path,
        )

    def publish(self, package: Package) -> None:
        run(
            *self._argv(self.commands.publish, package.name, package.version),
            cwd=package.path,
        )

    def unpublish(self, name: str, version: str) -> None:
        run(*self._argv(self.commands.unpublish, name, version), cwd=self.root)

    def check_auth(self) -> None:
        run(*self._argv(self.commands.auth, "", ""), cwd=self.root)

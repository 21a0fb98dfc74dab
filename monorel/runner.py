"""Running package scripts.

The orchestrators never start processes themselves; they go through a
CommandRunner so tests can swap in a fake.
"""

from __future__ import annotations

import os
import subprocess
from typing import Protocol

from pydantic import BaseModel

from .models import Package
from .shell import debug_output


class CommandResult(BaseModel):
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner(Protocol):
    def run(self, package: Package, script: str) -> CommandResult:
        """Run ``package.scripts[script]`` inside the package directory."""
        ...


class SubprocessRunner:
    """Runs scripts through the shell, with CI=true, capturing output."""

    def run(self, package: Package, script: str) -> CommandResult:
        command = package.scripts[script]
        result = subprocess.run(
            command,
            shell=True,
            cwd=package.path,
            capture_output=True,
            text=True,
            env={**os.environ, "CI": "true"},
        )
        debug_output(package.name, result.stdout, result.stderr)
        return CommandResult(
            returncode=result.returncode, stdout=result.stdout, stderr=result.stderr
        )

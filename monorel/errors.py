"""Exceptions raised by monorel.

Structural errors (cycles, unresolved dependencies, bad configuration) are
raised before anything touches a manifest, the registry or git. Per-package
errors (build, test, publish, rollback) are raised inside a package step and
caught at the package boundary by the orchestrators, which record them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import ReleaseState


class MonorelError(Exception):
    """Base class for every error monorel raises on purpose."""


class WorkspaceError(MonorelError):
    """The workspace layout or its configuration is unusable."""


class InvalidVersionError(MonorelError):
    """A version string is not a valid semantic version."""


class CircularDependencyError(MonorelError):
    """Internal dependencies form a cycle.

    Attributes:
        node: Package where the cycle was closed.
        cycle: Package names along the cycle, first and last equal.
    """

    def __init__(self, node: str, cycle: list[str] | None = None) -> None:
        self.node = node
        self.cycle = cycle or [node]
        super().__init__(
            f"Circular dependency detected involving {node}: "
            + " -> ".join(self.cycle)
        )


class UnresolvedInternalDependencyError(MonorelError):
    """A package references an internal dependency that cannot be resolved."""

    def __init__(self, package: str, dependency: str, detail: str) -> None:
        self.package = package
        self.dependency = dependency
        super().__init__(f"{package}: {detail}")


class CommandError(MonorelError):
    """An external command exited with a non-zero status."""

    def __init__(self, command: str, returncode: int, stderr: str = "") -> None:
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        message = f"`{command}` failed with code {returncode}"
        if stderr.strip():
            message += f": {stderr.strip()}"
        super().__init__(message)


class BuildFailure(MonorelError):
    """A package's build script failed."""


class TestFailure(MonorelError):
    """A package's test script failed."""

    # Keep pytest from collecting this as a test class.
    __test__ = False


class PublishFailure(MonorelError):
    """Publishing a package failed.

    ``state`` holds everything recorded up to the failure so the caller can
    still print a release summary.
    """

    def __init__(
        self, package: str, message: str, state: ReleaseState | None = None
    ) -> None:
        self.package = package
        self.state = state
        super().__init__(f"Failed to publish {package}: {message}")


class VerificationTimeout(MonorelError):
    """Packages did not show up on the registry within the polling budget."""

    def __init__(self, version: str, names: list[str]) -> None:
        self.version = version
        self.names = names
        super().__init__(
            f"Timed out waiting for {version} of: {', '.join(names)}"
        )


class CheckFailure(MonorelError):
    """A single pre-release or pre-publish check did not pass."""


class PreflightFailure(MonorelError):
    """One or more pre-release or pre-publish checks failed.

    ``results`` holds the outcome of every check that ran.
    """

    def __init__(self, message: str, results: list | None = None) -> None:
        self.results = results or []
        super().__init__(message)


class RollbackFailure(MonorelError):
    """Undoing one part of a release failed."""


class ForceRequiredError(MonorelError):
    """A destructive operation was requested without --force."""

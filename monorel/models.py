"""Data models for monorel.

These Pydantic models represent the core data structures shared by the
graph, dependency sync, build and publish stages.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field

# Dependency maps that take part in graph building, keyed by attribute name.
DEPENDENCY_FIELDS = ("dependencies", "dev_dependencies", "peer_dependencies")

# Dependency maps that sync operations are allowed to rewrite.
SYNCED_FIELDS = ("dependencies", "dev_dependencies")


class Package(BaseModel):
    """Metadata for a single package in the monorepo workspace.

    Attributes:
        name: Package name, unique within the workspace.
        version: Current version string from the manifest.
        path: Package directory.
        scripts: Script name → shell command (e.g. "build", "test").
        dependencies: Runtime dependency name → version range.
        dev_dependencies: Development dependency name → version range.
        peer_dependencies: Peer dependency name → version range. Read only,
            never rewritten by sync.
    """

    name: str
    version: str
    path: Path
    scripts: dict[str, str] = Field(default_factory=dict)
    dependencies: dict[str, str] = Field(default_factory=dict)
    dev_dependencies: dict[str, str] = Field(default_factory=dict)
    peer_dependencies: dict[str, str] = Field(default_factory=dict)

    def declared_dependencies(self) -> list[tuple[str, str]]:
        """All (name, range) pairs in manifest order across the three maps."""
        return [
            (dep, rng)
            for field in DEPENDENCY_FIELDS
            for dep, rng in getattr(self, field).items()
        ]


class DependencyGraphNode(BaseModel):
    """A package plus the edges derived from it.

    Attributes:
        package: The wrapped package.
        internal_dependencies: Workspace packages this one depends on, in
            declaration order, without duplicates.
        dependents: Workspace packages that depend on this one.
    """

    package: Package
    internal_dependencies: list[str] = Field(default_factory=list)
    dependents: list[str] = Field(default_factory=list)

    @property
    def name(self) -> str:
        return self.package.name


class DependencyGraph(BaseModel):
    """Package name → node, in discovery order."""

    nodes: dict[str, DependencyGraphNode] = Field(default_factory=dict)

    def __contains__(self, name: object) -> bool:
        return name in self.nodes

    def __getitem__(self, name: str) -> DependencyGraphNode:
        return self.nodes[name]

    def __len__(self) -> int:
        return len(self.nodes)

    @property
    def names(self) -> list[str]:
        return list(self.nodes)


class VersionConflict(BaseModel):
    """An external dependency declared with more than one version range.

    Attributes:
        name: External dependency name.
        versions: Range → names of the packages declaring it.
        suggested: Canonical range every package should converge on.
        confident: False when ranges were not semver and the suggestion
            came from the lexicographic fallback.
    """

    name: str
    versions: dict[str, list[str]]
    suggested: str
    confident: bool = True


class DependencyUpdate(BaseModel):
    """One range rewritten in a package manifest."""

    package: str
    section: str
    dependency: str
    old: str
    new: str


class VersionBump(BaseModel):
    """Records a version change for a package.

    Attributes:
        old: The version before bumping.
        new: The version after bumping.
    """

    old: str
    new: str


class BuildStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"
    BLOCKED = "blocked"
    DRY_RUN = "dry_run"


class PackageResult(BaseModel):
    """Outcome of running one script for one package."""

    name: str
    status: BuildStatus
    duration: float = 0.0
    message: str = ""
    level: int | None = None
    coverage: float | None = None

    @property
    def ok(self) -> bool:
        return self.status not in (BuildStatus.FAILED, BuildStatus.BLOCKED)


class PublishStatus(str, Enum):
    PUBLISHED = "published"
    SKIPPED = "skipped"
    DRY_RUN = "dry_run"
    FAILED = "failed"


class PublishRecord(BaseModel):
    name: str
    version: str
    status: PublishStatus
    reason: str = ""
    message: str = ""


class VerificationStatus(str, Enum):
    VERIFIED = "verified"
    TIMEOUT = "timeout"


class VerificationResult(BaseModel):
    name: str
    version: str
    status: VerificationStatus
    attempts: int


class RollbackStatus(str, Enum):
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    FAILED = "failed"
    DRY_RUN = "dry_run"


class RollbackRecord(BaseModel):
    """Outcome of one rollback action.

    Attributes:
        action: "remove_tag" or "unpublish".
        target: Tag name for remove_tag, package name for unpublish.
    """

    action: str
    target: str
    status: RollbackStatus
    message: str = ""


class ReleaseState(BaseModel):
    """Everything one publish run accumulates. Not persisted.

    Attributes:
        order: Topological publish order.
        records: Per-package publish records, in the order they happened.
    """

    order: list[str] = Field(default_factory=list)
    records: list[PublishRecord] = Field(default_factory=list)

    def by_status(self, status: PublishStatus) -> list[str]:
        return [r.name for r in self.records if r.status == status]

    @property
    def rollback_plan(self) -> list[str]:
        """Packages published in this run, newest first."""
        return list(reversed(self.by_status(PublishStatus.PUBLISHED)))

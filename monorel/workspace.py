"""Workspace discovery.

Finds every package directory matched by ``[tool.monorel].members``, reads
their manifests and computes the dependency graph, topological order and
build levels in one go. Structural problems (duplicate names, cycles,
unresolved internal dependencies) surface here, before any command runs or
any file is written.
"""

from __future__ import annotations

import glob
from pathlib import Path

from pydantic import BaseModel

from .config import WorkspaceConfig, load_config
from .errors import WorkspaceError
from .graph import build_graph, build_levels, topo_sort
from .manifest import read_package
from .models import DependencyGraph, Package
from .shell import debug


class Workspace(BaseModel):
    """A loaded workspace. Graph, order and levels are read only once built."""

    root: Path
    config: WorkspaceConfig
    packages: dict[str, Package]
    graph: DependencyGraph
    order: list[str]
    levels: list[list[str]]

    def package(self, name: str) -> Package:
        return self.packages[name]

    def ordered_packages(self) -> list[Package]:
        return [self.packages[name] for name in self.order]

    def is_internal(self, name: str) -> bool:
        return name in self.packages


def discover_packages(root: Path, config: WorkspaceConfig) -> list[Package]:
    """Scan the workspace and read every package manifest.

    Expands the member globs in sorted order and keeps the directories that
    contain a manifest. Discovery order is the order of the globs, then the
    sorted matches of each glob.

    Raises:
        WorkspaceError: If nothing matches, or two manifests share a name.
    """
    member_dirs: list[Path] = []
    for pattern in config.members:
        for match in sorted(glob.glob(str(root / pattern))):
            p = Path(match)
            if (p / config.manifest).exists() and p not in member_dirs:
                member_dirs.append(p)

    if not member_dirs:
        raise WorkspaceError(
            f"No packages found matching workspace members: {', '.join(config.members)}"
        )

    packages: list[Package] = []
    seen: dict[str, Path] = {}
    for d in member_dirs:
        pkg = read_package(d, config.manifest)
        if pkg.name in seen:
            raise WorkspaceError(
                f"Duplicate package name {pkg.name!r} in {seen[pkg.name]} and {d}"
            )
        seen[pkg.name] = d
        packages.append(pkg)
        debug(f"found {pkg.name} {pkg.version} ({d.relative_to(root)})")

    return packages


def load_workspace(root: Path) -> Workspace:
    """Discover packages and compute graph, order and levels.

    Raises:
        WorkspaceError: On configuration or discovery problems.
        CircularDependencyError: If internal dependencies form a cycle.
        UnresolvedInternalDependencyError: On self or dangling workspace deps.
    """
    root = root.resolve()
    config = load_config(root)
    packages = discover_packages(root, config)
    graph = build_graph(packages)
    order = topo_sort(graph)
    levels = build_levels(graph)
    return Workspace(
        root=root,
        config=config,
        packages={p.name: p for p in packages},
        graph=graph,
        order=order,
        levels=levels,
    )

"""Dependency graph utilities.

Builds the workspace dependency graph, computes the build/publish order and
groups packages into levels that can run in parallel. If package A depends on
package B, B always comes first.

Iteration order is always the discovery order of packages and the declaration
order of dependencies, never a sort, so the same manifests always give the
same order.
"""

from __future__ import annotations

from .errors import CircularDependencyError, UnresolvedInternalDependencyError
from .models import DependencyGraph, DependencyGraphNode, Package

# Range prefix that marks a dependency as explicitly internal.
WORKSPACE_PROTOCOL = "workspace:"


def build_graph(packages: list[Package]) -> DependencyGraph:
    """Build a dependency graph from the discovered packages.

    A dependency is internal when its name is exactly the name of another
    discovered package; every other name is external and ignored here.

    Args:
        packages: Discovered packages, in discovery order.

    Returns:
        A DependencyGraph with forward and reverse edges.

    Raises:
        UnresolvedInternalDependencyError: If a package depends on itself, or
            uses a ``workspace:`` range for a package that was not discovered.
    """
    names = {p.name for p in packages}
    graph = DependencyGraph()

    # First pass: one node per package with its internal deps
    for pkg in packages:
        internal: list[str] = []
        for dep, rng in pkg.declared_dependencies():
            if dep == pkg.name:
                raise UnresolvedInternalDependencyError(
                    pkg.name, dep, "a package cannot depend on itself"
                )
            if dep in names:
                # Same dep may appear in several maps; keep the first position
                if dep not in internal:
                    internal.append(dep)
            elif rng.startswith(WORKSPACE_PROTOCOL):
                raise UnresolvedInternalDependencyError(
                    pkg.name,
                    dep,
                    f"workspace dependency {dep!r} ({rng}) is not a workspace package",
                )
        graph.nodes[pkg.name] = DependencyGraphNode(
            package=pkg, internal_dependencies=internal
        )

    # Second pass: reverse edges, once every node exists
    for name, node in graph.nodes.items():
        for dep in node.internal_dependencies:
            graph.nodes[dep].dependents.append(name)

    return graph


def topo_sort(graph: DependencyGraph) -> list[str]:
    """Topologically sort packages by their internal dependencies.

    Depth-first search with three states per node: unvisited, in progress
    and done. Reaching a node that is still in progress means the path
    walked so far loops back on itself.

    Returns:
        List of package names in build order (dependencies first).

    Raises:
        CircularDependencyError: On the first cycle found. No partial order
            is returned.

    Example:
        If A depends on B, and B depends on C:
        topo_sort({A, B, C}) → [C, B, A]
    """
    done: set[str] = set()
    in_progress: list[str] = []
    order: list[str] = []

    def visit(name: str) -> None:
        if name in done:
            return
        if name in in_progress:
            cycle = in_progress[in_progress.index(name) :] + [name]
            raise CircularDependencyError(name, cycle)

        in_progress.append(name)
        for dep in graph[name].internal_dependencies:
            visit(dep)
        in_progress.pop()

        done.add(name)
        order.append(name)

    for name in graph.names:
        visit(name)

    return order


def build_levels(graph: DependencyGraph) -> list[list[str]]:
    """Group packages into levels of mutually independent packages.

    Level 0 holds packages without internal deps, level 1 packages that only
    depend on level 0, and so on. Every package lands in the lowest level
    its dependencies allow. Packages in the same level can run in parallel;
    a level must finish before the next starts.

    Raises:
        CircularDependencyError: If a pass makes no progress, which only
            happens when the graph has a cycle.
    """
    leveled: set[str] = set()
    levels: list[list[str]] = []

    while len(leveled) < len(graph):
        level = [
            name
            for name, node in graph.nodes.items()
            if name not in leveled
            and all(dep in leveled for dep in node.internal_dependencies)
        ]
        if not level:
            cycle = _find_cycle(graph, [n for n in graph.names if n not in leveled])
            raise CircularDependencyError(cycle[0], cycle)
        leveled.update(level)
        levels.append(level)

    return levels


def _find_cycle(graph: DependencyGraph, remaining: list[str]) -> list[str]:
    """Return one cycle among the packages that could not be leveled.

    Follows unleveled dependencies from the first remaining package until a
    package repeats. Every remaining package has an unleveled dependency, so
    the walk always closes a cycle.
    """
    pending = set(remaining)
    path = [remaining[0]]
    while True:
        dep = next(
            d for d in graph[path[-1]].internal_dependencies if d in pending
        )
        if dep in path:
            return path[path.index(dep) :] + [dep]
        path.append(dep)


def transitive_dependents(graph: DependencyGraph, names: list[str]) -> list[str]:
    """Every package that depends, directly or indirectly, on ``names``.

    The given names themselves are not included unless one of them depends
    on another. Returned in graph order.
    """
    found: set[str] = set()
    queue = list(names)
    while queue:
        node = queue.pop(0)
        for dependent in graph[node].dependents:
            if dependent not in found:
                found.add(dependent)
                queue.append(dependent)
    return [name for name in graph.names if name in found]

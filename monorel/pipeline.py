"""Workspace-level operations: status → sync → version → release.

Each function takes an already loaded Workspace, so cycles and unresolved
dependencies have been rejected before anything here writes a file:

1. status: print the graph, levels and script coverage (read only)
2. sync: report external version conflicts and rewrite manifests
3. version: set every package to one version and re-point internal deps
4. release: check the tree, analyse commits, bump, prepend the changelog,
   commit and tag
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from .changelog import analyze_commits, prepend_entry, render_entry
from .checks import pre_release_checks, run_checks
from .config import write_workspace_version
from .deps import align_internal_ranges, apply_conflict_resolutions, find_conflicts
from .manifest import rewrite_manifest
from .models import DependencyUpdate, VersionBump, VersionConflict
from .runner import CommandRunner
from .shell import info, step, success, warn
from .vcs import Vcs
from .versions import BUMP_PARTS, bump_version, validate_version
from .workspace import Workspace


def health_report(ws: Workspace) -> dict[str, Any]:
    """Summarise the workspace as plain data (used by ``status --json``)."""
    packages = list(ws.packages.values())
    external = {
        dep
        for pkg in packages
        for dep, _ in pkg.declared_dependencies()
        if not ws.is_internal(dep)
    }
    return {
        "packages": len(packages),
        "version": ws.config.version,
        "dependencies": {
            "internal": sum(len(n.internal_dependencies) for n in ws.graph.nodes.values()),
            "external": len(external),
            "conflicts": len(find_conflicts(packages)),
        },
        "build_order": ws.order,
        "levels": ws.levels,
        "scripts": {
            script: sum(1 for p in packages if script in p.scripts)
            for script in ("build", "test", "lint")
        },
    }


def print_status(ws: Workspace) -> None:
    """Print the package overview, levels and script coverage."""
    report = health_report(ws)

    step("Workspace packages")
    for name in ws.order:
        node = ws.graph[name]
        pkg = node.package
        deps = f" → [{', '.join(node.internal_dependencies)}]" if node.internal_dependencies else ""
        info(f"{name} {pkg.version} ({pkg.path.relative_to(ws.root)}){deps}")

    step("Build levels")
    for idx, level in enumerate(ws.levels):
        info(f"Level {idx + 1}: {', '.join(level)}")

    step("Overview")
    deps = report["dependencies"]
    info(f"Packages: {report['packages']}")
    info(f"Workspace version: {report['version'] or '<unset>'}")
    info(f"Internal dependency edges: {deps['internal']}")
    info(f"External dependencies: {deps['external']}")
    info(f"Version conflicts: {deps['conflicts']}")
    for script, count in report["scripts"].items():
        info(f"Packages with {script} script: {count}/{report['packages']}")


def report_conflicts(conflicts: list[VersionConflict]) -> None:
    if not conflicts:
        success("No version conflicts")
        return
    warn(f"Found {len(conflicts)} version conflicts:")
    for conflict in conflicts:
        info(f"{conflict.name}:")
        for rng, users in conflict.versions.items():
            info(f"  {rng} used by: {', '.join(users)}")
        note = "" if conflict.confident else " (not semver, picked lexicographically)"
        info(f"  suggested: {conflict.suggested}{note}")


def report_updates(updates: list[DependencyUpdate], dry_run: bool) -> None:
    prefix = "[dry run] would update" if dry_run else "Updated"
    for u in updates:
        info(f"{prefix} {u.package}: {u.dependency} {u.old} → {u.new} ({u.section})")


def sync_dependencies(
    ws: Workspace, *, dry_run: bool = False
) -> tuple[list[VersionConflict], list[DependencyUpdate]]:
    """Report external version conflicts and converge every package on them.

    Also re-points internal dependencies at the workspace version when one
    is configured.
    """
    step("Synchronizing dependency versions")
    packages = ws.ordered_packages()

    conflicts = find_conflicts(packages)
    report_conflicts(conflicts)

    updates = apply_conflict_resolutions(
        packages, conflicts, ws.config.manifest, dry_run=dry_run
    )
    if ws.config.version:
        updates += align_internal_ranges(
            packages, ws.config.version, ws.config.manifest, dry_run=dry_run
        )

    report_updates(updates, dry_run)
    touched = {u.package for u in updates}
    success(f"Dependency sync completed: {len(touched)} packages updated")
    return conflicts, updates


def bump_versions(
    ws: Workspace, new_version: str, *, dry_run: bool = False
) -> dict[str, VersionBump]:
    """Set every package to ``new_version`` and internal deps to ``^new_version``.

    Raises:
        InvalidVersionError: If ``new_version`` is not a full semver version.
    """
    validate_version(new_version)
    step(f"Updating version to {new_version}")

    packages = ws.ordered_packages()
    updates = align_internal_ranges(
        packages, new_version, ws.config.manifest, dry_run=dry_run
    )

    bumped: dict[str, VersionBump] = {}
    for pkg in packages:
        bumped[pkg.name] = VersionBump(old=pkg.version, new=new_version)
        pkg.version = new_version
        if not dry_run:
            rewrite_manifest(pkg, ws.config.manifest, version=new_version)
        info(f"{pkg.name}: {bumped[pkg.name].old} → {new_version}")

    report_updates(updates, dry_run)
    if not dry_run:
        write_workspace_version(ws.root, new_version)
    ws.config.version = new_version
    return bumped


def resolve_next_version(current: str | None, bump: str) -> str:
    """Turn "patch"/"minor"/"major" or an explicit version into a version."""
    if bump in BUMP_PARTS:
        return bump_version(current or "0.0.0", bump)
    return validate_version(bump)


def run_release(
    ws: Workspace,
    vcs: Vcs,
    runner: CommandRunner,
    *,
    bump: str | None = None,
    dry_run: bool = False,
    skip_checks: bool = False,
) -> str:
    """Cut a release: bump versions, prepend the changelog, commit and tag.

    Args:
        ws: Loaded workspace.
        vcs: Repository to read history from and to commit/tag in.
        runner: Runs the test and build scripts for the pre-release checks.
        bump: "patch", "minor", "major" or an explicit version. Defaults to
            the bump suggested by the commits since the last release.
        dry_run: Only print the preview.
        skip_checks: Don't run the pre-release checks.

    Returns:
        The released version.

    Raises:
        PreflightFailure: If a pre-release check failed. Nothing has been
            written at that point.
    """
    if not skip_checks:
        run_checks("Pre-release", pre_release_checks(ws, vcs, runner, dry_run=dry_run))

    step("Analysing commits since last release")
    last_tag = vcs.last_tag(f"{ws.config.tag_prefix}*")
    commits = vcs.log_since(last_tag)
    analysis = analyze_commits(commits)
    info(f"Last tag: {last_tag or '<none>'}")
    info(f"Commits: {len(commits)}, suggested bump: {analysis.suggested_bump}")

    version = resolve_next_version(ws.config.version, bump or analysis.suggested_bump)
    entry = render_entry(analysis, version)

    if dry_run:
        step(f"Release preview: {ws.config.version or '<unset>'} → {version}")
        for line in entry.splitlines():
            info(line)
        return version

    bump_versions(ws, version)

    changelog = ws.root / ws.config.changelog
    prepend_entry(changelog, entry)
    success(f"Updated {ws.config.changelog}")

    touched: list[Path] = [ws.root / "pyproject.toml", changelog]
    touched += [p.path / ws.config.manifest for p in ws.ordered_packages()]
    vcs.commit(touched, f"chore(release): {version}")

    tag = ws.config.tag_for(version)
    vcs.create_tag(tag, f"Release {version}")
    success(f"Created tag {tag}")
    info("Next: push the commit and tag, then run `monorel publish`")
    return version

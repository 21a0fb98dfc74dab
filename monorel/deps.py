"""Dependency range handling.

Finds external dependencies that packages declare with different version
ranges, picks a canonical range for each, and rewrites manifests so every
package converges on it. Internal dependencies are kept on ``^<version>`` of
the workspace release.

Only ``dependencies`` and ``dev-dependencies`` are compared and rewritten;
``peer-dependencies`` are read only. Nothing is ever deleted.
"""

from __future__ import annotations

from .manifest import SECTIONS, rewrite_manifest
from .models import SYNCED_FIELDS, DependencyUpdate, Package, VersionConflict
from .versions import pick_canonical_range


def collect_external_usage(packages: list[Package]) -> dict[str, dict[str, list[str]]]:
    """Map every external dependency to the ranges used and who uses them.

    Returns:
        External dependency name → version range → package names, all in
        first-seen order.
    """
    internal = {p.name for p in packages}
    usage: dict[str, dict[str, list[str]]] = {}
    for pkg in packages:
        for field in SYNCED_FIELDS:
            for dep, rng in getattr(pkg, field).items():
                if dep in internal:
                    continue
                users = usage.setdefault(dep, {}).setdefault(rng, [])
                if pkg.name not in users:
                    users.append(pkg.name)
    return usage


def find_conflicts(packages: list[Package]) -> list[VersionConflict]:
    """Report every external dependency declared with more than one range."""
    conflicts: list[VersionConflict] = []
    for dep, versions in collect_external_usage(packages).items():
        if len(versions) < 2:
            continue
        suggested, confident = pick_canonical_range(list(versions))
        conflicts.append(
            VersionConflict(
                name=dep,
                versions=versions,
                suggested=suggested,
                confident=confident,
            )
        )
    return conflicts


def _apply_updates(
    packages: list[Package],
    wanted: dict[str, str],
    manifest_name: str,
    dry_run: bool,
) -> list[DependencyUpdate]:
    """Set each dependency named in ``wanted`` to its range, everywhere.

    Updates the Package models in place and, unless ``dry_run``, their
    manifests on disk.
    """
    updates: list[DependencyUpdate] = []
    for pkg in packages:
        changed: dict[str, dict[str, str]] = {}
        for field in SYNCED_FIELDS:
            deps: dict[str, str] = getattr(pkg, field)
            for dep, old in deps.items():
                new = wanted.get(dep)
                if new is None or new == old:
                    continue
                changed.setdefault(field, {})[dep] = new
                updates.append(
                    DependencyUpdate(
                        package=pkg.name,
                        section=SECTIONS[field],
                        dependency=dep,
                        old=old,
                        new=new,
                    )
                )
        for field, ranges in changed.items():
            getattr(pkg, field).update(ranges)
        if changed and not dry_run:
            rewrite_manifest(pkg, manifest_name, ranges=changed)
    return updates


def apply_conflict_resolutions(
    packages: list[Package],
    conflicts: list[VersionConflict],
    manifest_name: str,
    *,
    dry_run: bool = False,
) -> list[DependencyUpdate]:
    """Rewrite every conflicting range to the conflict's suggested range."""
    wanted = {c.name: c.suggested for c in conflicts}
    return _apply_updates(packages, wanted, manifest_name, dry_run)


def align_internal_ranges(
    packages: list[Package],
    version: str,
    manifest_name: str,
    *,
    dry_run: bool = False,
) -> list[DependencyUpdate]:
    """Point every internal dependency at ``^<version>``."""
    wanted = {p.name: f"^{version}" for p in packages}
    return _apply_updates(packages, wanted, manifest_name, dry_run)
